"""
Pathway Admin - Canonical Records

Stored documents drift in shape (membershipTier / tier / membership,
letters / generatedLetters, category / sectionLabel, tier / requiredTier).
The normalize_* functions resolve that drift once, where a document leaves
the store, and every service works on the typed records below.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from ..services.document_store.base import DocumentSnapshot


# =============================================================================
# ENUMS
# =============================================================================

class UserTier(str, Enum):
    """Membership plan shown in the console."""
    CORE = "Core"
    ADVANTAGE = "Advantage"
    PRO = "Pro"


class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class ContentKind(str, Enum):
    """Persisted kinds live in the document store; the rest are drafts."""
    ARTICLE = "article"
    VIDEO = "video"
    LESSON = "lesson"
    LINK = "link"
    PAGE = "page"


class ContentOrigin(str, Enum):
    PERSISTED = "persisted"
    DRAFT = "draft"


CONTENT_TYPE_LABELS = {
    ContentKind.ARTICLE: "Article",
    ContentKind.VIDEO: "Video",
    ContentKind.LESSON: "Lesson",
    ContentKind.LINK: "Resource Link",
    ContentKind.PAGE: "Static Page",
}

CONTENT_TIERS = ("free", "paid", "vip")
VISIBILITIES = ("visible", "hidden")

# Days of inactivity after which a user without an explicit status is inactive
ACTIVE_WINDOW_DAYS = 30

BUREAUS = ("equifax", "experian", "transunion")


# =============================================================================
# FIELD HELPERS
# =============================================================================

def as_datetime(value: Any) -> Optional[datetime]:
    """Stored timestamp -> aware datetime. Strings and numbers are not timestamps."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return None


def first_present(data: Dict[str, Any], *keys: str) -> Any:
    """First truthy value among `keys`."""
    for key in keys:
        value = data.get(key)
        if value:
            return value
    return None


def truncate(text: str, length: int) -> str:
    """Cut to `length` characters and mark with '...' when cut."""
    if len(text) > length:
        return text[:length] + "..."
    return text


def map_tier(raw: Optional[str]) -> UserTier:
    """Stored tier string -> plan. Unknown values are Core."""
    if not raw:
        return UserTier.CORE
    normalized = str(raw).lower().strip()
    if normalized in ("pro", "premium"):
        return UserTier.PRO
    if normalized in ("advantage", "advanced"):
        return UserTier.ADVANTAGE
    return UserTier.CORE


def activity_status(last_activity: Optional[datetime], now: datetime) -> UserStatus:
    """Active iff last activity falls within the last 30 days."""
    if last_activity is None:
        return UserStatus.INACTIVE
    cutoff = now - timedelta(days=ACTIVE_WINDOW_DAYS)
    return UserStatus.ACTIVE if last_activity >= cutoff else UserStatus.INACTIVE


def parse_address(address: Optional[str]) -> Dict[str, Optional[str]]:
    """'Street, City, State, ZIP' -> parts; missing parts are None."""
    if not address:
        return {"address": None, "city": None, "state": None, "zipCode": None}
    parts = [p.strip() for p in address.split(",")]
    parts += [""] * (4 - len(parts))
    return {
        "address": parts[0] or None,
        "city": parts[1] or None,
        "state": parts[2] or None,
        "zipCode": parts[3] or None,
    }


# =============================================================================
# USERS
# =============================================================================

@dataclass
class BureauScore:
    current_score: Optional[int] = None
    starting_score: Optional[int] = None
    last_updated: Optional[datetime] = None


@dataclass
class DisputeCandidate:
    """One entry of creditReportAnalysis.disputeCandidates."""
    index: int
    id: Optional[str] = None
    status: Optional[str] = None
    category: Optional[str] = None
    reason: Optional[str] = None
    created_at: Optional[datetime] = None
    opened_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_activity_date: Optional[str] = None
    last_payment_date: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.status in ("resolved", "closed")

    @property
    def is_open(self) -> bool:
        return not self.status or self.status in ("open", "pending")

    @property
    def timestamps(self) -> List[datetime]:
        return [ts for ts in (self.updated_at, self.opened_at, self.resolved_at, self.created_at) if ts]


@dataclass
class LetterRecord:
    """A generated letter, from the letters collection or embedded in a user."""
    id: str
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    status: Optional[str] = None
    sent_at: Optional[datetime] = None
    error: Optional[str] = None
    channel: Optional[str] = None
    type: Optional[str] = None


@dataclass
class UserRecord:
    """A users/<uid> document with its schema drift resolved."""
    id: str
    name: Optional[str]
    email: str
    phone: Optional[str]
    street: Optional[str]
    city: Optional[str]
    state: Optional[str]
    zip_code: Optional[str]
    raw_tier: Optional[str]
    tier: UserTier
    status: UserStatus
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    documents_completed: bool = False
    credit_report_url: Optional[str] = None
    driving_license_url: Optional[str] = None
    photo_url: Optional[str] = None
    scores: Dict[str, BureauScore] = field(default_factory=dict)
    credit_report_analysis: Optional[Dict[str, Any]] = None
    credit_report_analysis_updated_at: Optional[str] = None
    dispute_candidates: List[DisputeCandidate] = field(default_factory=list)
    letters: List[LetterRecord] = field(default_factory=list)
    letter_count: int = 0
    account_summary: Optional[Dict[str, Any]] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def last_activity(self) -> Optional[datetime]:
        return self.updated_at or self.created_at

    @property
    def display_name(self) -> str:
        """name, then email, then 'Unknown User'."""
        return self.name or self.email or "Unknown User"

    @property
    def address(self) -> Optional[str]:
        parts = [p for p in (self.street, self.city, self.state, self.zip_code) if p]
        return ", ".join(parts) if parts else None

    @property
    def has_letters(self) -> bool:
        return self.letter_count > 0


def _explicit_status(data: Dict[str, Any], last_activity: Optional[datetime], now: datetime) -> UserStatus:
    # isActive, then status, then userStatus, then derived from activity
    if data.get("isActive") is not None:
        return UserStatus.ACTIVE if data["isActive"] else UserStatus.INACTIVE
    for key in ("status", "userStatus"):
        if data.get(key) is not None:
            if data[key] in ("active", "inactive"):
                return UserStatus(data[key])
            return activity_status(last_activity, now)
    return activity_status(last_activity, now)


def _normalize_dispute(index: int, raw: Any) -> DisputeCandidate:
    if not isinstance(raw, dict):
        # Malformed entries still count as a candidate with no fields
        raw = {}
    last_activity = raw.get("lastActivityDate")
    last_payment = raw.get("lastPaymentDate")
    return DisputeCandidate(
        index=index,
        id=raw.get("id"),
        status=raw.get("status"),
        category=raw.get("category"),
        reason=raw.get("reason"),
        created_at=as_datetime(raw.get("createdAt")),
        opened_at=as_datetime(raw.get("openedAt")),
        resolved_at=as_datetime(raw.get("resolvedAt")),
        updated_at=as_datetime(raw.get("updatedAt")),
        last_activity_date=str(last_activity) if last_activity else None,
        last_payment_date=str(last_payment) if last_payment else None,
    )


def normalize_letter(letter_id: str, data: Dict[str, Any], user_id: Optional[str] = None) -> LetterRecord:
    user = data.get("user")
    return LetterRecord(
        id=letter_id,
        user_id=data.get("userId") or (user.get("id") if isinstance(user, dict) else None) or user_id,
        created_at=as_datetime(data.get("createdAt")) or as_datetime(data.get("generatedAt")),
        status=data.get("status"),
        sent_at=as_datetime(data.get("sentAt")),
        error=data.get("error") or None,
        channel=str(data["channel"]) if data.get("channel") else None,
        type=str(data["type"]) if data.get("type") else None,
    )


def normalize_user(doc: DocumentSnapshot, now: Optional[datetime] = None) -> UserRecord:
    """Resolve a users/<uid> document into a UserRecord."""
    if now is None:
        now = datetime.now(timezone.utc)
    data = doc.data
    created_at = as_datetime(data.get("createdAt"))
    updated_at = as_datetime(data.get("updatedAt"))
    raw_tier = first_present(data, "membershipTier", "tier", "membership")

    analysis = data.get("creditReportAnalysis")
    if not isinstance(analysis, dict):
        analysis = None
    candidates_raw = (analysis or {}).get("disputeCandidates") or []
    disputes: List[DisputeCandidate] = []
    if isinstance(candidates_raw, list):
        for index, raw in enumerate(candidates_raw):
            disputes.append(_normalize_dispute(index, raw))

    # an empty `letters` list still wins over generatedLetters
    letters_raw = data.get("letters")
    if letters_raw is None:
        letters_raw = data.get("generatedLetters") or []
    letters: List[LetterRecord] = []
    if isinstance(letters_raw, list):
        for index, raw in enumerate(letters_raw):
            if isinstance(raw, dict):
                letter_id = raw.get("id") or f"{doc.id}-{index}"
                letters.append(normalize_letter(letter_id, raw, user_id=doc.id))

    scores: Dict[str, BureauScore] = {}
    raw_scores = data.get("scores")
    if isinstance(raw_scores, dict):
        for bureau in BUREAUS:
            entry = raw_scores.get(bureau)
            if isinstance(entry, dict):
                scores[bureau] = BureauScore(
                    current_score=entry.get("currentScore"),
                    starting_score=entry.get("startingScore"),
                    last_updated=as_datetime(entry.get("lastUpdated")),
                )

    analysis_updated = data.get("creditReportAnalysisUpdatedAt")
    if isinstance(analysis_updated, datetime):
        analysis_updated = analysis_updated.isoformat()

    return UserRecord(
        id=doc.id,
        name=data.get("name") or None,
        email=data.get("email") or "",
        phone=data.get("phone") or None,
        street=data.get("address") or None,
        city=data.get("city") or None,
        state=data.get("state") or None,
        zip_code=data.get("zipCode") or None,
        raw_tier=str(raw_tier) if raw_tier else None,
        tier=map_tier(raw_tier),
        status=_explicit_status(data, updated_at or created_at, now),
        created_at=created_at,
        updated_at=updated_at,
        documents_completed=data.get("documentsCompleted") is True,
        credit_report_url=data.get("creditReportUrl") or None,
        driving_license_url=data.get("drivingLicenseUrl") or None,
        photo_url=data.get("photoUrl") or None,
        scores=scores,
        credit_report_analysis=analysis,
        credit_report_analysis_updated_at=analysis_updated or None,
        dispute_candidates=disputes,
        letters=letters,
        letter_count=len(letters_raw) if isinstance(letters_raw, list) else 0,
        account_summary=(analysis or {}).get("accountSummary"),
        raw=data,
    )


# =============================================================================
# CONTENT
# =============================================================================

@dataclass
class ContentItem:
    """A row of the content console, persisted or draft."""
    id: str
    kind: ContentKind
    origin: ContentOrigin
    title: str
    category: str
    visibility: str
    tier: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    author: Optional[str] = None

    @property
    def type_label(self) -> str:
        return CONTENT_TYPE_LABELS[self.kind]

    @property
    def sort_time(self) -> Optional[datetime]:
        return self.created_at


def content_tier(raw: Optional[str]) -> str:
    """free / paid / vip; anything else is free."""
    if not raw:
        return "free"
    lowered = str(raw).lower()
    return lowered if lowered in CONTENT_TIERS else "free"


def _visibility(raw: Any) -> str:
    return "hidden" if raw == "hidden" else "visible"


def normalize_article(doc: DocumentSnapshot) -> ContentItem:
    data = doc.data
    return ContentItem(
        id=doc.id,
        kind=ContentKind.ARTICLE,
        origin=ContentOrigin.PERSISTED,
        title=data.get("title") or "Untitled Article",
        category=data.get("category") or "General",
        visibility=_visibility(data.get("visibility")),
        tier=content_tier(data.get("tier")),
        created_at=as_datetime(data.get("createdAt")),
        updated_at=as_datetime(data.get("updatedAt")),
        author=data.get("authorName"),
    )


def normalize_video(doc: DocumentSnapshot) -> ContentItem:
    data = doc.data
    return ContentItem(
        id=doc.id,
        kind=ContentKind.VIDEO,
        origin=ContentOrigin.PERSISTED,
        title=data.get("title") or "Untitled Video",
        category=data.get("sectionLabel") or "General",
        visibility=_visibility(data.get("visibility")),
        tier=content_tier(data.get("requiredTier")),
        created_at=as_datetime(data.get("publishedAt")),
        updated_at=as_datetime(data.get("updatedAt")),
        author=data.get("authorName"),
    )


# =============================================================================
# SUPPORT
# =============================================================================

@dataclass
class ThreadMessage:
    id: str
    sender: str
    text: str
    created_at: Optional[datetime] = None


@dataclass
class SupportThread:
    """supportThreads/<uid>; the document id is the user's id."""
    id: str
    user_id: str
    subject: Optional[str]
    status: str
    priority: str
    assigned_to: str
    last_message: str
    last_message_at: Optional[datetime]
    created_at: Optional[datetime]
    admin_note: Optional[str] = None

    @property
    def activity_time(self) -> Optional[datetime]:
        return self.last_message_at or self.created_at

    @property
    def display_subject(self) -> str:
        if self.subject:
            return self.subject
        if self.last_message:
            return truncate(self.last_message, 50)
        return "No subject"


def normalize_thread(doc: DocumentSnapshot) -> SupportThread:
    data = doc.data
    return SupportThread(
        id=doc.id,
        user_id=data.get("userId") or doc.id,
        subject=data.get("subject") or None,
        status=data.get("status") or "open",
        priority=data.get("priority") or "medium",
        assigned_to=data.get("assignedTo") or "",
        last_message=data.get("lastMessage") or "",
        last_message_at=as_datetime(data.get("lastMessageAt")),
        created_at=as_datetime(data.get("createdAt")),
        admin_note=data.get("adminNote"),
    )


def normalize_message(doc: DocumentSnapshot) -> ThreadMessage:
    data = doc.data
    return ThreadMessage(
        id=doc.id,
        sender=data.get("sender") or "user",
        text=data.get("text") or "",
        created_at=as_datetime(data.get("createdAt")),
    )


# =============================================================================
# REPORT ROWS
# =============================================================================

@dataclass
class MailLog:
    id: str
    user: str
    item: str
    channel: str
    status: str
    created_at: str
    error: Optional[str] = None


@dataclass
class IssueRow:
    id: str
    user: str
    subject: str
    channel: str
    advisor: str
    status: str
    last_contact: str
    sort_time: Optional[datetime] = None
