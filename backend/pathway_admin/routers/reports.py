"""
Pathway Admin - Reports Router
Disputes, mailing logs, user journeys and support issues tabs.
"""
from datetime import datetime
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict

from ..auth import require_admin
from ..services.date_ranges import DateRange
from ..services.disputes_service import DisputesService, DisputeStatus
from ..services.document_store import DocumentStore, get_store
from ..services.mailing_service import MailingService
from ..services.support_service import SupportService
from ..services.user_journey_service import JourneyStage, UserJourneyService
from .deps import get_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["reports"], dependencies=[Depends(require_admin)])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class DisputeRowResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user: str
    case_id: str
    type: str
    status: DisputeStatus
    last_updated: str


class MailLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user: str
    item: str
    channel: str
    status: str
    created_at: str
    error: Optional[str] = None


class UserJourneyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    plan: str
    stage: JourneyStage
    progress: int
    last_updated: str


class IssueRowResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user: str
    subject: str
    channel: str
    advisor: str
    status: str
    last_contact: str


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.get("/disputes", response_model=List[DisputeRowResponse])
async def get_disputes(
    range: DateRange = Query(DateRange.ALL_TIME),
    store: DocumentStore = Depends(get_store),
    now: Optional[datetime] = Depends(get_now),
):
    """One row per dispute candidate, newest first."""
    rows = DisputesService(store, now).get_disputes(range)
    return [DisputeRowResponse.model_validate(r) for r in rows]


@router.get("/mailing-logs", response_model=List[MailLogResponse])
async def get_mailing_logs(
    range: DateRange = Query(DateRange.ALL_TIME),
    store: DocumentStore = Depends(get_store),
    now: Optional[datetime] = Depends(get_now),
):
    """Generated letters with their delivery status."""
    logs = MailingService(store, now).get_mailing_logs(range)
    return [MailLogResponse.model_validate(log) for log in logs]


@router.get("/user-journeys", response_model=List[UserJourneyResponse])
async def get_user_journeys(
    range: DateRange = Query(DateRange.ALL_TIME),
    store: DocumentStore = Depends(get_store),
    now: Optional[datetime] = Depends(get_now),
):
    """Each active user's journey stage and progress."""
    journeys = UserJourneyService(store, now).get_user_journeys(range)
    return [UserJourneyResponse.model_validate(j) for j in journeys]


@router.get("/support-issues", response_model=List[IssueRowResponse])
async def get_support_issues(
    range: DateRange = Query(DateRange.ALL_TIME),
    store: DocumentStore = Depends(get_store),
    now: Optional[datetime] = Depends(get_now),
):
    """Support chats and scheduled calls, most recent contact first."""
    issues = SupportService(store, now).get_support_issues(range)
    return [IssueRowResponse.model_validate(i) for i in issues]
