"""
Pathway Admin - Dashboard Router
Headline stats, daily usage, recent activity and the stats report download.
"""
from datetime import datetime
from typing import Dict, List, Optional
import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict

from ..auth import require_admin
from ..services.dashboard_service import DashboardService, build_stats_report, stats_report_csv
from ..services.date_ranges import DateRange
from ..services.document_store import DocumentStore, get_store
from ..services.export_service import export_filename
from .deps import csv_download, get_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dashboard", tags=["dashboard"], dependencies=[Depends(require_admin)])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class MembersByTierResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    by_tier: Dict[str, int]
    percentage: int


class PreviousPeriodResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_users: int
    active_users: int
    members_by_tier: int
    open_disputes: int
    letters_generated: int


class DashboardStatsResponse(BaseModel):
    """Headline counts plus the same counts for the previous period."""
    model_config = ConfigDict(from_attributes=True)

    total_users: int
    active_users: int
    members_by_tier: MembersByTierResponse
    open_disputes: int
    letters_generated: int
    previous_period_stats: Optional[PreviousPeriodResponse] = None


class UsagePointResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    label: str
    value: int
    date: datetime


class DailyUsageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    points: List[UsagePointResponse]
    total: int
    percentage_change: float


class ActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    time_ago: str
    color_class: str
    timestamp: datetime


class StatRowResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    label: str
    value: str
    delta: float


def get_dashboard_service(
    store: DocumentStore = Depends(get_store),
    now: Optional[datetime] = Depends(get_now),
) -> DashboardService:
    return DashboardService(store, now)


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.get("/stats", response_model=DashboardStatsResponse)
async def get_stats(
    range: DateRange = Query(DateRange.LAST_7_DAYS),
    service: DashboardService = Depends(get_dashboard_service),
):
    """
    Total users, active users, paid-member share, open disputes and letters
    generated. `all_time` counts everything since 2000-01-01.
    """
    return DashboardStatsResponse.model_validate(service.get_dashboard_stats(range))


@router.get("/stats/report", response_model=List[StatRowResponse])
async def get_stats_report(
    range: DateRange = Query(DateRange.LAST_7_DAYS),
    service: DashboardService = Depends(get_dashboard_service),
):
    """The five stat cards with their deltas."""
    stats = service.get_dashboard_stats(range)
    return [StatRowResponse.model_validate(row) for row in build_stats_report(stats)]


@router.get("/stats/export")
async def export_stats(
    range: DateRange = Query(DateRange.LAST_7_DAYS),
    service: DashboardService = Depends(get_dashboard_service),
    now: Optional[datetime] = Depends(get_now),
):
    """Download the stats report as CSV."""
    stats = service.get_dashboard_stats(range)
    filename = export_filename("dashboard-report", range.value, now)
    logger.info(f"Dashboard report exported: {filename}")
    return csv_download(filename, stats_report_csv(stats, range.value))


@router.get("/usage", response_model=DailyUsageResponse)
async def get_usage(
    range: DateRange = Query(DateRange.LAST_7_DAYS),
    service: DashboardService = Depends(get_dashboard_service),
):
    """Daily (monthly for all_time) activity series."""
    return DailyUsageResponse.model_validate(service.get_daily_usage(range))


@router.get("/activities", response_model=List[ActivityResponse])
async def get_activities(
    range: DateRange = Query(DateRange.LAST_7_DAYS),
    limit: int = Query(10, ge=1, le=50),
    service: DashboardService = Depends(get_dashboard_service),
):
    """Recent signups, disputes, letters and memberships."""
    return [ActivityResponse.model_validate(a) for a in service.get_recent_activities(range, limit=limit)]
