"""
User Directory

Best-effort user lookups shared by the report services. A miss returns None
and the caller substitutes its own placeholder.
"""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from ..errors import StoreError
from ..models.records import UserRecord, normalize_user
from .document_store import DocumentStore

logger = logging.getLogger(__name__)

USERS = "users"


class UserDirectory:
    """Reads users/<uid> documents, caching what it has seen."""

    def __init__(self, store: DocumentStore, now: Optional[datetime] = None):
        self.store = store
        self.now = now
        self._cache: Dict[str, Optional[UserRecord]] = {}

    def all(self) -> List[UserRecord]:
        """Every user, normalized."""
        users = [normalize_user(doc, self.now) for doc in self.store.scan(USERS)]
        for user in users:
            self._cache[user.id] = user
        return users

    def get(self, uid: str) -> Optional[UserRecord]:
        if uid in self._cache:
            return self._cache[uid]
        try:
            doc = self.store.get(USERS, uid)
        except StoreError as e:
            logger.error(f"Error fetching user {uid}: {e}")
            return None
        user = normalize_user(doc, self.now) if doc else None
        self._cache[uid] = user
        return user

    def prefetch(self, uids: Iterable[str]) -> None:
        for uid in set(uids):
            if uid:
                self.get(uid)

    def name_for(self, uid: Optional[str]) -> Optional[str]:
        """name, else email; None when the user cannot be read."""
        if not uid:
            return None
        user = self.get(uid)
        if user is None:
            return None
        return user.name or user.email or None

    def email_for(self, uid: str) -> str:
        """email, else name, else the id itself."""
        user = self.get(uid)
        if user is None:
            return uid
        return user.email or user.name or uid

    def find_id_by_email(self, email: str) -> Optional[str]:
        """Exact email match over a full scan."""
        try:
            docs = self.store.scan(USERS)
        except StoreError as e:
            logger.error(f"Error finding user by email {email}: {e}")
            return None
        for doc in docs:
            if doc.get("email") == email:
                return doc.id
        return None
