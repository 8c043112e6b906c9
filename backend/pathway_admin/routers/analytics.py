"""
Pathway Admin - Analytics Router
Active users, membership distribution, system engagement, top articles and
the analytics export.
"""
from datetime import date, datetime
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, EmailStr, field_validator

from ..auth import require_admin
from ..services.analytics_service import AnalyticsService, ExportFormat
from ..services.date_ranges import DateRange
from ..services.document_store import DocumentStore, get_store
from .deps import csv_download, get_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analytics", tags=["analytics"], dependencies=[Depends(require_admin)])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class ActiveUsersPointResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    label: str
    value: int
    date: datetime


class DistributionPointResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    label: str
    value: int
    color: str


class SystemEngagementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    imports: int
    letters: int
    disputes: int
    total: int
    change: float


class TopArticleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    title: str
    views: int


class ExportRequest(BaseModel):
    """Which sections to include, and optionally who to send the file to."""
    range: DateRange = DateRange.LAST_7_DAYS
    start: Optional[date] = None  # custom range only
    end: Optional[date] = None
    include_users: bool = True
    include_disputes: bool = True
    include_content: bool = True
    format: str = ExportFormat.CSV
    email: Optional[EmailStr] = None

    @field_validator('format')
    @classmethod
    def validate_format(cls, v):
        if v not in (ExportFormat.CSV, ExportFormat.PDF):
            raise ValueError('Format must be csv or pdf')
        return v


class ExportResponse(BaseModel):
    message: str


def get_analytics_service(
    store: DocumentStore = Depends(get_store),
    now: Optional[datetime] = Depends(get_now),
) -> AnalyticsService:
    return AnalyticsService(store, now)


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.get("/daily-active-users", response_model=List[ActiveUsersPointResponse])
async def daily_active_users(
    range: DateRange = Query(DateRange.LAST_7_DAYS),
    start: Optional[date] = None,
    end: Optional[date] = None,
    service: AnalyticsService = Depends(get_analytics_service),
):
    """One point per day of the range."""
    return [ActiveUsersPointResponse.model_validate(p) for p in service.get_daily_active_users(range, start, end)]


@router.get("/weekly-active-users", response_model=List[ActiveUsersPointResponse])
async def weekly_active_users(
    range: DateRange = Query(DateRange.LAST_7_DAYS),
    start: Optional[date] = None,
    end: Optional[date] = None,
    service: AnalyticsService = Depends(get_analytics_service),
):
    """One point per Monday-aligned week, oldest first."""
    return [ActiveUsersPointResponse.model_validate(p) for p in service.get_weekly_active_users(range, start, end)]


@router.get("/membership-distribution", response_model=List[DistributionPointResponse])
async def membership_distribution(service: AnalyticsService = Depends(get_analytics_service)):
    return [DistributionPointResponse.model_validate(p) for p in service.get_membership_distribution()]


@router.get("/system-engagement", response_model=SystemEngagementResponse)
async def system_engagement(
    range: DateRange = Query(DateRange.LAST_7_DAYS),
    start: Optional[date] = None,
    end: Optional[date] = None,
    service: AnalyticsService = Depends(get_analytics_service),
):
    return SystemEngagementResponse.model_validate(service.get_system_engagement(range, start, end))


@router.get("/top-articles", response_model=List[TopArticleResponse])
async def top_articles(
    range: DateRange = Query(DateRange.LAST_7_DAYS),
    start: Optional[date] = None,
    end: Optional[date] = None,
    service: AnalyticsService = Depends(get_analytics_service),
):
    return [TopArticleResponse.model_validate(a) for a in service.get_top_articles(range, start, end)]


@router.post("/export")
async def export_analytics(request: ExportRequest, service: AnalyticsService = Depends(get_analytics_service)):
    """
    Build the analytics export. CSV is returned as a download; PDF is not
    available yet and answers with a message.
    """
    if not (request.include_users or request.include_disputes or request.include_content):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Select at least one dataset to export"
        )

    export = service.build_analytics_export(
        request.range,
        include_users=request.include_users,
        include_disputes=request.include_disputes,
        include_content=request.include_content,
        export_format=request.format,
        email=request.email,
        start=request.start,
        end=request.end,
    )
    if export is None:
        return ExportResponse(message="PDF export is not available yet")
    return csv_download(export.filename, export.content)
