"""
User Journeys Report

Each user's stage in the credit repair journey, inferred from their document
at read time.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Union

from ..models.records import UserRecord
from .date_ranges import AllTimePolicy, DateRange, now_local, resolve_range, to_local
from .document_store import DocumentStore
from .user_directory import UserDirectory

logger = logging.getLogger(__name__)

MONITORING_AFTER_DAYS = 30


class JourneyStage(str, Enum):
    ONBOARDING = "Onboarding & profile complete"
    CREDIT_PULL = "Credit pull & analysis"
    PLAN_ASSIGNED = "Plan assigned"
    DISPUTES_CREATED = "Disputes created & letters queued"
    MAILING = "Mailing & bureau responses"
    MONITORING = "Monitoring & follow-up"


STAGE_PROGRESS = {
    JourneyStage.ONBOARDING: 12,
    JourneyStage.CREDIT_PULL: 25,
    JourneyStage.PLAN_ASSIGNED: 45,
    JourneyStage.DISPUTES_CREATED: 65,
    JourneyStage.MAILING: 85,
    JourneyStage.MONITORING: 95,
}


@dataclass
class UserJourney:
    id: str
    name: str
    email: str
    plan: str
    stage: JourneyStage
    progress: int
    last_updated: str


def journey_stage(user: UserRecord, now: Optional[datetime] = None) -> JourneyStage:
    """
    First unmet step of the ladder.

    A user with disputes but no letters moves to monitoring once inactive for
    more than 30 days; otherwise they sit in mailing.
    """
    if not user.documents_completed:
        return JourneyStage.ONBOARDING
    if not user.credit_report_url:
        return JourneyStage.CREDIT_PULL
    if not user.raw_tier:
        return JourneyStage.PLAN_ASSIGNED
    if not user.dispute_candidates:
        return JourneyStage.DISPUTES_CREATED
    if user.has_letters:
        return JourneyStage.MAILING

    if user.last_activity:
        idle = now_local(now) - to_local(user.last_activity)
        if idle > timedelta(days=MONITORING_AFTER_DAYS):
            return JourneyStage.MONITORING
    return JourneyStage.MAILING


class UserJourneyService:
    """Builds the user journeys report."""

    def __init__(self, store: DocumentStore, now: Optional[datetime] = None):
        self.store = store
        self.now = now

    def _to_journey(self, user: UserRecord) -> UserJourney:
        stage = journey_stage(user, self.now)
        last_activity = user.last_activity or now_local(self.now)
        return UserJourney(
            id=user.id,
            name=user.name or "Unknown User",
            email=user.email or "No email",
            plan=user.tier.value,
            stage=stage,
            progress=STAGE_PROGRESS[stage],
            last_updated=to_local(last_activity).strftime("%Y-%m-%d"),
        )

    def get_user_journeys(self, date_range: Union[str, DateRange] = DateRange.ALL_TIME) -> List[UserJourney]:
        """Users whose last activity is in range (all users for all_time), most recent first."""
        window = resolve_range(date_range, all_time=AllTimePolicy.UNBOUNDED, now=self.now)

        journeys = []
        for user in UserDirectory(self.store, self.now).all():
            if window and not window.contains(user.last_activity):
                continue
            journeys.append(self._to_journey(user))

        journeys.sort(key=lambda j: j.last_updated, reverse=True)
        return journeys
