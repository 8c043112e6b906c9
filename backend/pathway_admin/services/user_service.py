"""
User Service

Console user list, details, creation and edits over users/<uid> documents.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..errors import (
    ACCOUNT_CREATION_MESSAGES,
    IdentityError,
    IndexMissingError,
    ServiceError,
    StoreError,
    ValidationError,
    user_facing_message,
)
from ..models.records import UserRecord, UserStatus, as_datetime, normalize_user, parse_address
from .date_ranges import now_local, parse_iso_datetime, to_local
from .document_store import DocumentStore
from .identity_service import IdentityService, validate_password
from .user_directory import USERS

logger = logging.getLogger(__name__)

SORT_FIELDS = {
    "date_joined": "createdAt",
    "last_activity": "updatedAt",
}


@dataclass
class UserRow:
    id: str
    name: str
    email: str
    tier: str
    status: str
    date_joined: str
    last_activity: str
    phone: Optional[str] = None
    address: Optional[str] = None
    avatar_url: Optional[str] = None


@dataclass
class UserDetails(UserRow):
    driving_license_url: Optional[str] = None
    credit_report_url: Optional[str] = None
    documents_completed: bool = False
    credit_report_analysis: Optional[Dict[str, Any]] = None
    scores: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass
class UsersPage:
    users: List[UserRow]
    total: int
    has_more: bool


def _parse_form_date(value: Optional[str]) -> Optional[datetime]:
    """Date from an edit form; unparseable input is ignored."""
    if not value:
        return None
    parsed = parse_iso_datetime(value)
    if parsed is None:
        logger.warning(f"Ignoring unparseable date '{value}'")
    return parsed


class UserService:
    """Reads and writes users/<uid> documents."""

    def __init__(self, store: DocumentStore, identity: Optional[IdentityService] = None, now: Optional[datetime] = None):
        self.store = store
        self.identity = identity
        self.now = now

    def _now(self) -> datetime:
        return self.now or datetime.now(timezone.utc)

    def _day(self, value: Optional[datetime]) -> str:
        return to_local(value or now_local(self.now)).strftime("%Y-%m-%d")

    def _to_row(self, user: UserRecord) -> UserRow:
        return UserRow(
            id=user.id,
            name=user.name or "Unknown User",
            email=user.email,
            tier=user.tier.value,
            status=user.status.value,
            date_joined=self._day(user.created_at),
            last_activity=self._day(user.last_activity),
            phone=user.phone,
            address=user.address,
            avatar_url=user.photo_url,
        )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def _ordered_users(self, sort_field: str) -> List[UserRecord]:
        try:
            docs = self.store.query(USERS, order_by=sort_field, descending=True)
        except IndexMissingError as e:
            logger.warning(f"Ordered users query unavailable, sorting in memory: {e}")
            docs = self.store.scan(USERS)
            epoch = datetime.min.replace(tzinfo=timezone.utc)
            docs.sort(key=lambda d: as_datetime(d.get(sort_field)) or epoch, reverse=True)
        return [normalize_user(doc, self._now()) for doc in docs]

    def get_users(
        self,
        page: int = 1,
        page_size: int = 20,
        search: Optional[str] = None,
        tier_filter: Optional[str] = None,
        status_filter: Optional[str] = None,
        sort_by: str = "date_joined",
    ) -> UsersPage:
        """
        One page of users, newest first by the chosen field.

        Search, tier and status filters apply in memory. Any store failure
        gives an empty page.
        """
        sort_field = SORT_FIELDS.get(sort_by, "createdAt")
        try:
            rows = [self._to_row(user) for user in self._ordered_users(sort_field)]
        except StoreError as e:
            logger.error(f"Error fetching users: {e}")
            return UsersPage(users=[], total=0, has_more=False)

        if search and search.strip():
            needle = search.strip().lower()
            rows = [r for r in rows if needle in r.name.lower() or needle in r.email.lower()]
        if tier_filter and tier_filter != "all":
            rows = [r for r in rows if r.tier == tier_filter]
        if status_filter and status_filter != "all":
            rows = [r for r in rows if r.status == status_filter]

        total = len(rows)
        start = (max(page, 1) - 1) * page_size
        end = start + page_size
        return UsersPage(users=rows[start:end], total=total, has_more=end < total)

    def get_total_users_count(self) -> int:
        try:
            return len(self.store.scan(USERS))
        except StoreError as e:
            logger.error(f"Error getting total users count: {e}")
            return 0

    def get_user_by_id(self, user_id: str) -> Optional[UserDetails]:
        doc = self.store.get(USERS, user_id)
        if doc is None:
            return None

        user = normalize_user(doc, self._now())
        row = self._to_row(user)
        scores = {
            bureau: {
                "currentScore": score.current_score,
                "startingScore": score.starting_score,
                "lastUpdated": score.last_updated,
            }
            for bureau, score in user.scores.items()
        }
        return UserDetails(
            **row.__dict__,
            driving_license_url=user.driving_license_url,
            credit_report_url=user.credit_report_url,
            documents_completed=user.documents_completed,
            credit_report_analysis=user.credit_report_analysis,
            scores=scores,
        )

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def create_user(self, data: Dict[str, Any]) -> str:
        """
        Create the identity account, then the users/<uid> document.

        If the document write fails the new account is deleted again, so no
        account exists without its document.
        """
        problem = validate_password(data.get("password"))
        if problem:
            raise ValidationError(problem)
        if self.identity is None:
            raise ServiceError("Failed to create user")

        try:
            uid = self.identity.create_account(data["email"], data["password"], display_name=data.get("name"))
        except (IdentityError, StoreError) as e:
            logger.error(f"Error creating user account: {e}")
            raise ServiceError(user_facing_message(e, ACCOUNT_CREATION_MESSAGES, "Failed to create user")) from e

        now = self._now()
        status = data.get("status") or UserStatus.ACTIVE.value
        address = parse_address(data.get("address"))
        document = {
            "uid": uid,
            "name": data.get("name"),
            "email": data["email"],
            "phone": data.get("phone") or None,
            "address": address["address"],
            "city": address["city"],
            "state": address["state"],
            "zipCode": address["zipCode"],
            "membershipTier": str(data.get("tier") or "core").lower(),
            "isActive": status == UserStatus.ACTIVE.value,
            "status": status,
            "createdAt": _parse_form_date(data.get("date_joined")) or now,
            "updatedAt": now,
            "documentsCompleted": False,
        }

        try:
            self.store.set(USERS, uid, document)
        except StoreError as e:
            logger.error(f"Error writing user document {uid}, removing account: {e}")
            try:
                self.identity.delete_account(uid)
            except (IdentityError, StoreError) as cleanup_error:
                logger.error(f"Account {uid} exists without a user document: {cleanup_error}")
            raise ServiceError(user_facing_message(e, ACCOUNT_CREATION_MESSAGES, "Failed to create user")) from e

        logger.info(f"User created successfully: {uid}")
        return uid

    def update_user(self, user_id: str, updates: Dict[str, Any]) -> None:
        """Apply the provided fields; updatedAt is always bumped."""
        data: Dict[str, Any] = {"updatedAt": self._now()}

        if updates.get("name") is not None:
            data["name"] = updates["name"]
        if updates.get("email") is not None:
            # Only the document changes; the sign-in email stays as it was
            data["email"] = updates["email"]
        if "phone" in updates:
            data["phone"] = updates["phone"] or None
        if updates.get("tier") is not None:
            data["membershipTier"] = str(updates["tier"]).lower()
        if updates.get("status") is not None:
            data["isActive"] = updates["status"] == UserStatus.ACTIVE.value
            data["status"] = updates["status"]
        if "address" in updates:
            data.update(parse_address(updates["address"]))

        joined = _parse_form_date(updates.get("date_joined"))
        if joined:
            data["createdAt"] = joined
        last_activity = _parse_form_date(updates.get("last_activity"))
        if last_activity:
            data["updatedAt"] = last_activity

        try:
            self.store.update(USERS, user_id, data)
        except StoreError as e:
            logger.error(f"Error updating user {user_id}: {e}")
            raise
        logger.info(f"User updated successfully: {user_id}")
