"""
Content Service

Articles (`articles`) and videos (`educationContent`) live in the document
store. Lessons, resource links and static pages exist only as console drafts
in the content_drafts table.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import DEFAULT_CONTENT_AUTHOR
from ..errors import DocumentNotFoundError, IndexMissingError, StoreError, ValidationError
from ..models.db_models import ContentDraftDB, DraftKind
from ..models.records import (
    CONTENT_TIERS,
    VISIBILITIES,
    ContentItem,
    ContentKind,
    ContentOrigin,
    as_datetime,
    normalize_article,
    normalize_video,
)
from .document_store import DocumentStore

logger = logging.getLogger(__name__)

ARTICLES = "articles"
EDUCATION_CONTENT = "educationContent"


def _require_title(title: Optional[str]) -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationError("Title is required")
    return title


def _check_choice(value: Optional[str], allowed, label: str) -> None:
    if value is not None and value not in allowed:
        raise ValidationError(f"Invalid {label}: {value}")


# =============================================================================
# PERSISTED CONTENT
# =============================================================================

class ContentService:
    """CRUD for articles and videos."""

    def __init__(self, store: DocumentStore, now: Optional[datetime] = None):
        self.store = store
        self.now = now

    def _now(self) -> datetime:
        return self.now or datetime.now(timezone.utc)

    def _ordered(self, collection: str, order_field: str):
        try:
            return self.store.query(collection, order_by=order_field, descending=True)
        except IndexMissingError as e:
            logger.warning(f"Ordered {collection} query unavailable, sorting in memory: {e}")
            docs = self.store.scan(collection)
            epoch = datetime.min.replace(tzinfo=timezone.utc)
            docs.sort(key=lambda d: as_datetime(d.get(order_field)) or epoch, reverse=True)
            return docs

    # -------------------------------------------------------------------------
    # Articles
    # -------------------------------------------------------------------------

    def get_articles(self) -> List[ContentItem]:
        """Newest first by createdAt."""
        return [normalize_article(doc) for doc in self._ordered(ARTICLES, "createdAt")]

    def create_article(self, title: str, category: str = "General", visibility: str = "visible",
                       tier: str = "free") -> str:
        _check_choice(visibility, VISIBILITIES, "visibility")
        _check_choice(tier, CONTENT_TIERS, "tier")
        doc_id = self.store.add(ARTICLES, {
            "title": _require_title(title),
            "authorName": DEFAULT_CONTENT_AUTHOR,
            "category": (category or "General").strip(),
            "visibility": visibility,
            "tier": tier,
            "createdAt": self._now(),
            "thumbnailUrl": None,
            "readTimeMinutes": None,
            "summary": "",
            "body": "",
            "sections": [],
        })
        logger.info(f"Created article {doc_id}")
        return doc_id

    def update_article(self, article_id: str, updates: Dict[str, Any]) -> None:
        data: Dict[str, Any] = {"updatedAt": self._now()}
        if updates.get("title") is not None:
            data["title"] = _require_title(updates["title"])
        if updates.get("category") is not None:
            data["category"] = updates["category"].strip()
        if updates.get("visibility") is not None:
            _check_choice(updates["visibility"], VISIBILITIES, "visibility")
            data["visibility"] = updates["visibility"]
        if updates.get("tier") is not None:
            _check_choice(updates["tier"], CONTENT_TIERS, "tier")
            data["tier"] = updates["tier"]
        self.store.update(ARTICLES, article_id, data)
        logger.info(f"Updated article {article_id}")

    def delete_article(self, article_id: str) -> None:
        self.store.delete(ARTICLES, article_id)
        logger.info(f"Deleted article {article_id}")

    # -------------------------------------------------------------------------
    # Videos
    # -------------------------------------------------------------------------

    def get_education_content(self) -> List[ContentItem]:
        """Newest first by publishedAt."""
        return [normalize_video(doc) for doc in self._ordered(EDUCATION_CONTENT, "publishedAt")]

    def create_education_content(self, title: str, category: str = "General", visibility: str = "visible",
                                 tier: str = "free") -> str:
        _check_choice(visibility, VISIBILITIES, "visibility")
        _check_choice(tier, CONTENT_TIERS, "tier")
        doc_id = self.store.add(EDUCATION_CONTENT, {
            "title": _require_title(title),
            "sectionLabel": (category or "General").strip(),
            "visibility": visibility,
            "requiredTier": tier,
            "publishedAt": self._now(),
            "authorName": DEFAULT_CONTENT_AUTHOR,
            "coverImageUrl": "",
            "durationMinutes": 0,
            "presentedBy": DEFAULT_CONTENT_AUTHOR,
            "shortDescription": "",
            "thumbnailUrl": "",
            "videoUrl": "",
        })
        logger.info(f"Created video {doc_id}")
        return doc_id

    def update_education_content(self, content_id: str, updates: Dict[str, Any]) -> None:
        data: Dict[str, Any] = {"updatedAt": self._now()}
        if updates.get("title") is not None:
            data["title"] = _require_title(updates["title"])
        if updates.get("category") is not None:
            data["sectionLabel"] = updates["category"].strip()
        if updates.get("visibility") is not None:
            _check_choice(updates["visibility"], VISIBILITIES, "visibility")
            data["visibility"] = updates["visibility"]
        if updates.get("tier") is not None:
            _check_choice(updates["tier"], CONTENT_TIERS, "tier")
            data["requiredTier"] = updates["tier"]
        self.store.update(EDUCATION_CONTENT, content_id, data)
        logger.info(f"Updated video {content_id}")

    def delete_education_content(self, content_id: str) -> None:
        self.store.delete(EDUCATION_CONTENT, content_id)
        logger.info(f"Deleted video {content_id}")


# =============================================================================
# DRAFTS
# =============================================================================

def _draft_item(row: ContentDraftDB) -> ContentItem:
    def aware(value):
        return value.replace(tzinfo=timezone.utc) if value else None

    return ContentItem(
        id=row.id,
        kind=ContentKind(row.kind),
        origin=ContentOrigin.DRAFT,
        title=row.title,
        category=row.category or "General",
        visibility=row.visibility or "visible",
        tier=row.tier or "free",
        created_at=aware(row.created_at),
        updated_at=aware(row.updated_at),
    )


class DraftRepository:
    """Lesson, link and static page drafts. Never touches the document store."""

    def __init__(self, db: Session, now: Optional[datetime] = None):
        self.db = db
        self.now = now

    def _utcnow(self) -> datetime:
        current = self.now or datetime.now(timezone.utc)
        return current.astimezone(timezone.utc).replace(tzinfo=None)

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Draft write failed: {e}")
            raise StoreError(str(e)) from e

    def _row(self, draft_id: str) -> ContentDraftDB:
        row = self.db.query(ContentDraftDB).filter(ContentDraftDB.id == draft_id).first()
        if row is None:
            raise DocumentNotFoundError(f"content_drafts/{draft_id}")
        return row

    def list(self, kind: Optional[DraftKind] = None) -> List[ContentItem]:
        query = self.db.query(ContentDraftDB)
        if kind is not None:
            query = query.filter(ContentDraftDB.kind == DraftKind(kind).value)
        return [_draft_item(row) for row in query.order_by(ContentDraftDB.created_at.desc()).all()]

    def create(self, kind: Union[str, DraftKind], title: str, category: str = "General",
               visibility: str = "visible", tier: str = "free", body: Optional[str] = None) -> str:
        try:
            kind = DraftKind(kind)
        except ValueError:
            raise ValidationError(f"Not a draft content type: {kind}")
        _check_choice(visibility, VISIBILITIES, "visibility")
        _check_choice(tier, CONTENT_TIERS, "tier")

        now = self._utcnow()
        row = ContentDraftDB(
            id=str(uuid.uuid4()),
            kind=kind.value,
            title=_require_title(title),
            category=(category or "General").strip(),
            visibility=visibility,
            tier=tier,
            body=body,
            created_at=now,
            updated_at=now,
        )
        self.db.add(row)
        self._commit()
        logger.info(f"Created {kind.value} draft {row.id}")
        return row.id

    def update(self, draft_id: str, updates: Dict[str, Any]) -> None:
        row = self._row(draft_id)
        if updates.get("title") is not None:
            row.title = _require_title(updates["title"])
        if updates.get("category") is not None:
            row.category = updates["category"].strip()
        if updates.get("visibility") is not None:
            _check_choice(updates["visibility"], VISIBILITIES, "visibility")
            row.visibility = updates["visibility"]
        if updates.get("tier") is not None:
            _check_choice(updates["tier"], CONTENT_TIERS, "tier")
            row.tier = updates["tier"]
        if updates.get("body") is not None:
            row.body = updates["body"]
        row.updated_at = self._utcnow()
        self._commit()

    def delete(self, draft_id: str) -> None:
        self.db.delete(self._row(draft_id))
        self._commit()
        logger.info(f"Deleted draft {draft_id}")


# =============================================================================
# COMBINED LISTING
# =============================================================================

def list_content(content: ContentService, drafts: DraftRepository,
                 kind: Optional[Union[str, ContentKind]] = None) -> List[ContentItem]:
    """
    The content console table: persisted articles and videos plus drafts,
    newest first. Items keep their origin so drafts are never mistaken for
    published content.
    """
    kind = ContentKind(kind) if kind else None
    items: List[ContentItem] = []
    if kind in (None, ContentKind.ARTICLE):
        items.extend(content.get_articles())
    if kind in (None, ContentKind.VIDEO):
        items.extend(content.get_education_content())
    if kind is None:
        items.extend(drafts.list())
    elif kind.value in {k.value for k in DraftKind}:
        items.extend(drafts.list(DraftKind(kind.value)))

    epoch = datetime.min.replace(tzinfo=timezone.utc)
    items.sort(key=lambda item: item.sort_time or epoch, reverse=True)
    return items
