"""
Pathway Admin - Content Router
Articles, videos and draft-only content (lessons, links, static pages).
"""
from datetime import datetime
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..database import get_db
from ..models.db_models import DraftKind
from ..models.records import ContentKind, ContentOrigin
from ..services.content_service import ContentService, DraftRepository, list_content
from ..services.document_store import DocumentStore, get_store
from .deps import get_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/content", tags=["content"], dependencies=[Depends(require_admin)])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class ContentItemResponse(BaseModel):
    """A console content row; `origin` tells persisted items from drafts."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    kind: ContentKind
    origin: ContentOrigin
    type_label: str
    title: str
    category: str
    visibility: str
    tier: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    author: Optional[str] = None


class CreateContentRequest(BaseModel):
    title: str = Field(..., min_length=1)
    category: str = "General"
    visibility: str = Field("visible", pattern="^(visible|hidden)$")
    tier: str = Field("free", pattern="^(free|paid|vip)$")


class UpdateContentRequest(BaseModel):
    title: Optional[str] = None
    category: Optional[str] = None
    visibility: Optional[str] = Field(None, pattern="^(visible|hidden)$")
    tier: Optional[str] = Field(None, pattern="^(free|paid|vip)$")


class CreateDraftRequest(CreateContentRequest):
    kind: DraftKind
    body: Optional[str] = None


class UpdateDraftRequest(UpdateContentRequest):
    body: Optional[str] = None


class CreatedResponse(BaseModel):
    id: str


class MessageResponse(BaseModel):
    message: str


def get_content_service(
    store: DocumentStore = Depends(get_store),
    now: Optional[datetime] = Depends(get_now),
) -> ContentService:
    return ContentService(store, now)


def get_draft_repository(
    db: Session = Depends(get_db),
    now: Optional[datetime] = Depends(get_now),
) -> DraftRepository:
    return DraftRepository(db, now)


# =============================================================================
# COMBINED LISTING
# =============================================================================

@router.get("", response_model=List[ContentItemResponse])
async def get_content(
    kind: Optional[ContentKind] = Query(None),
    content: ContentService = Depends(get_content_service),
    drafts: DraftRepository = Depends(get_draft_repository),
):
    """
    Every content item, newest first, optionally of one kind.
    """
    return [ContentItemResponse.model_validate(item) for item in list_content(content, drafts, kind)]


# =============================================================================
# ARTICLES
# =============================================================================

@router.get("/articles", response_model=List[ContentItemResponse])
async def get_articles(content: ContentService = Depends(get_content_service)):
    return [ContentItemResponse.model_validate(item) for item in content.get_articles()]


@router.post("/articles", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_article(request: CreateContentRequest, content: ContentService = Depends(get_content_service)):
    return CreatedResponse(id=content.create_article(**request.model_dump()))


@router.patch("/articles/{article_id}", response_model=MessageResponse)
async def update_article(article_id: str, request: UpdateContentRequest,
                         content: ContentService = Depends(get_content_service)):
    content.update_article(article_id, request.model_dump(exclude_unset=True))
    return MessageResponse(message="Article updated")


@router.delete("/articles/{article_id}", response_model=MessageResponse)
async def delete_article(article_id: str, content: ContentService = Depends(get_content_service)):
    content.delete_article(article_id)
    return MessageResponse(message="Article deleted")


# =============================================================================
# VIDEOS
# =============================================================================

@router.get("/videos", response_model=List[ContentItemResponse])
async def get_videos(content: ContentService = Depends(get_content_service)):
    return [ContentItemResponse.model_validate(item) for item in content.get_education_content()]


@router.post("/videos", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_video(request: CreateContentRequest, content: ContentService = Depends(get_content_service)):
    return CreatedResponse(id=content.create_education_content(**request.model_dump()))


@router.patch("/videos/{video_id}", response_model=MessageResponse)
async def update_video(video_id: str, request: UpdateContentRequest,
                       content: ContentService = Depends(get_content_service)):
    content.update_education_content(video_id, request.model_dump(exclude_unset=True))
    return MessageResponse(message="Video updated")


@router.delete("/videos/{video_id}", response_model=MessageResponse)
async def delete_video(video_id: str, content: ContentService = Depends(get_content_service)):
    content.delete_education_content(video_id)
    return MessageResponse(message="Video deleted")


# =============================================================================
# DRAFTS
# =============================================================================

@router.get("/drafts", response_model=List[ContentItemResponse])
async def get_drafts(
    kind: Optional[DraftKind] = Query(None),
    drafts: DraftRepository = Depends(get_draft_repository),
):
    return [ContentItemResponse.model_validate(item) for item in drafts.list(kind)]


@router.post("/drafts", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_draft(request: CreateDraftRequest, drafts: DraftRepository = Depends(get_draft_repository)):
    """Lessons, resource links and static pages are kept as drafts only."""
    return CreatedResponse(id=drafts.create(**request.model_dump()))


@router.patch("/drafts/{draft_id}", response_model=MessageResponse)
async def update_draft(draft_id: str, request: UpdateDraftRequest,
                       drafts: DraftRepository = Depends(get_draft_repository)):
    drafts.update(draft_id, request.model_dump(exclude_unset=True))
    return MessageResponse(message="Draft updated")


@router.delete("/drafts/{draft_id}", response_model=MessageResponse)
async def delete_draft(draft_id: str, drafts: DraftRepository = Depends(get_draft_repository)):
    drafts.delete(draft_id)
    return MessageResponse(message="Draft deleted")
