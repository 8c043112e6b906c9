"""
Disputes & Letters Report

One row per dispute candidate found under
users/<uid>.creditReportAnalysis.disputeCandidates.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

from ..models.records import DisputeCandidate, UserRecord, truncate
from .date_ranges import (
    AllTimePolicy,
    DateRange,
    now_local,
    parse_date_string,
    parse_iso_datetime,
    resolve_range,
    to_local,
)
from .document_store import DocumentStore
from .user_directory import UserDirectory

logger = logging.getLogger(__name__)


class DisputeStatus(str, Enum):
    OPEN = "open"
    MAILED = "mailed"
    RESOLVED = "resolved"


@dataclass
class DisputeRow:
    id: str
    user: str
    case_id: str
    type: str
    status: DisputeStatus
    last_updated: str


# =============================================================================
# DERIVATIONS (shared with the dashboard activity feed)
# =============================================================================

def last_updated_date(dispute: DisputeCandidate, user: UserRecord, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Most recent parseable date attached to a dispute.

    Considers the dispute's own timestamps, its MM/DD/YYYY activity and
    payment strings, and the owner's creditReportAnalysisUpdatedAt.
    """
    dates = list(dispute.timestamps)
    for raw in (dispute.last_activity_date, dispute.last_payment_date):
        if raw:
            parsed = parse_date_string(raw, now)
            if parsed:
                dates.append(parsed)
    analysis_updated = user.credit_report_analysis_updated_at
    if analysis_updated:
        parsed = parse_iso_datetime(analysis_updated) or parse_date_string(analysis_updated, now)
        if parsed:
            dates.append(parsed)
    if not dates:
        return None
    return max(dates)


def dispute_status(dispute: DisputeCandidate, user: UserRecord) -> DisputeStatus:
    """resolved/closed -> resolved; any letters on the user -> mailed; else open."""
    if dispute.is_resolved:
        return DisputeStatus.RESOLVED
    if user.has_letters:
        return DisputeStatus.MAILED
    return DisputeStatus.OPEN


def dispute_type(dispute: DisputeCandidate) -> str:
    if dispute.category:
        return dispute.category
    if dispute.reason:
        return truncate(dispute.reason, 30)
    return "Dispute"


def case_id(user_id: str, index: int) -> str:
    return f"D-{user_id[:8]}-{index}"


# =============================================================================
# SERVICE
# =============================================================================

class DisputesService:
    """Builds the disputes report."""

    def __init__(self, store: DocumentStore, now: Optional[datetime] = None):
        self.store = store
        self.now = now

    def get_disputes(self, date_range: Union[str, DateRange] = DateRange.ALL_TIME) -> List[DisputeRow]:
        """
        Disputes whose last-updated date falls in range.

        Disputes with no parseable date are always included.
        """
        window = resolve_range(date_range, all_time=AllTimePolicy.UNBOUNDED, now=self.now)
        today = now_local(self.now).strftime("%Y-%m-%d")

        rows: List[DisputeRow] = []
        for user in UserDirectory(self.store, self.now).all():
            for dispute in user.dispute_candidates:
                last_updated = last_updated_date(dispute, user, self.now)
                if window and last_updated and not window.contains(last_updated):
                    continue
                rows.append(DisputeRow(
                    id=f"{user.id}-{dispute.index}",
                    user=user.display_name,
                    case_id=case_id(user.id, dispute.index),
                    type=dispute_type(dispute),
                    status=dispute_status(dispute, user),
                    last_updated=to_local(last_updated).strftime("%Y-%m-%d") if last_updated else today,
                ))

        rows.sort(key=lambda r: r.last_updated, reverse=True)
        logger.debug(f"Disputes report ({date_range}): {len(rows)} rows")
        return rows
