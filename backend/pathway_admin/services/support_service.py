"""
User Issues & Support Report

Rows from support chats (`chats`) and scheduled phone calls
(`scheduled_calls`).
"""
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Tuple, Union

from ..errors import StoreError
from ..models.records import IssueRow, as_datetime, truncate
from .date_ranges import (
    AllTimePolicy,
    DateRange,
    DateWindow,
    format_time_ago,
    now_local,
    resolve_range,
    to_local,
)
from .document_store import DocumentSnapshot, DocumentStore, collection_path
from .user_directory import UserDirectory

logger = logging.getLogger(__name__)

CHATS = "chats"
MESSAGES = "messages"
SCHEDULED_CALLS = "scheduled_calls"

DEFAULT_ADVISOR = "advisor_default"
ADVISOR_NAMES = {
    "advisor_default": "Alex G.",
    "advisor_1": "Sam R.",
    "advisor_2": "Taylor P.",
}

OPEN_WITHIN = timedelta(hours=24)
IN_PROGRESS_WITHIN = timedelta(hours=168)


class IssueStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


def advisor_name(advisor_id: Optional[str]) -> str:
    advisor_id = advisor_id or DEFAULT_ADVISOR
    if advisor_id in ADVISOR_NAMES:
        return ADVISOR_NAMES[advisor_id]
    return advisor_id.replace("advisor_", "Advisor ", 1).replace("_", " ", 1)


def chat_status(chat: dict, now: Optional[datetime] = None) -> IssueStatus:
    """Unread and < 24h -> open; nothing unread and < 7d -> in progress; else resolved."""
    last_message_at = as_datetime(chat.get("lastMessageAt")) or as_datetime(chat.get("createdAt"))
    if last_message_at is None:
        return IssueStatus.RESOLVED

    unread = chat.get("unreadCount") or 0
    elapsed = now_local(now) - to_local(last_message_at)
    if unread > 0 and elapsed < OPEN_WITHIN:
        return IssueStatus.OPEN
    if unread == 0 and elapsed < IN_PROGRESS_WITHIN:
        return IssueStatus.IN_PROGRESS
    return IssueStatus.RESOLVED


def call_status(call: dict) -> IssueStatus:
    status = call.get("status")
    if status in ("completed", "cancelled"):
        return IssueStatus.RESOLVED
    if status == "approved":
        return IssueStatus.IN_PROGRESS
    return IssueStatus.OPEN


def chat_subject(chat: dict, latest_text: Optional[str]) -> str:
    if latest_text:
        return truncate(latest_text, 50)
    if chat.get("lastMessage"):
        return truncate(str(chat["lastMessage"]), 50)
    return "Support request"


class SupportService:
    """Builds the user issues & support report."""

    def __init__(self, store: DocumentStore, now: Optional[datetime] = None):
        self.store = store
        self.now = now

    def _latest_message(self, chat_id: str) -> Optional[Tuple[str, datetime]]:
        try:
            docs = self.store.query(
                collection_path(CHATS, chat_id, MESSAGES),
                order_by="sentAt",
                descending=True,
                limit=1,
            )
        except StoreError as e:
            logger.error(f"Error fetching latest message for chat {chat_id}: {e}")
            return None
        if not docs:
            return None
        latest = docs[0]
        sent_at = as_datetime(latest.get("sentAt")) or now_local(self.now)
        return latest.get("text") or "", sent_at

    def _chat_row(self, chat: DocumentSnapshot, window: Optional[DateWindow], directory: UserDirectory) -> Optional[IssueRow]:
        data = chat.data
        last_message_at = as_datetime(data.get("lastMessageAt")) or as_datetime(data.get("createdAt"))
        if window and last_message_at and not window.contains(last_message_at):
            return None

        latest = self._latest_message(chat.id)
        contact = last_message_at or now_local(self.now)
        return IssueRow(
            id=f"chat-{chat.id}",
            user=directory.name_for(data.get("userId")) or "Unknown User",
            subject=chat_subject(data, latest[0] if latest else None),
            channel="Chat",
            advisor=advisor_name(data.get("advisorId")),
            status=chat_status(data, self.now).value,
            last_contact=format_time_ago(contact, self.now, yesterday=True),
            sort_time=contact,
        )

    def _call_row(self, call: DocumentSnapshot, window: Optional[DateWindow], directory: UserDirectory) -> Optional[IssueRow]:
        data = call.data
        contact = (as_datetime(data.get("scheduledAt"))
                   or as_datetime(data.get("createdAt"))
                   or now_local(self.now))
        if window and not window.contains(contact):
            return None
        return IssueRow(
            id=f"call-{call.id}",
            user=directory.name_for(data.get("userId")) or "Unknown User",
            subject=data.get("topic") or "Scheduled call",
            channel="Phone",
            advisor=advisor_name(data.get("advisorId")),
            status=call_status(data).value,
            last_contact=format_time_ago(contact, self.now, yesterday=True),
            sort_time=contact,
        )

    def get_support_issues(self, date_range: Union[str, DateRange] = DateRange.ALL_TIME) -> List[IssueRow]:
        """
        Chats and scheduled calls, most recent contact first.

        Chats without any timestamp are kept even when a range is given; calls
        always have a contact time (falling back to now).
        """
        window = resolve_range(date_range, all_time=AllTimePolicy.UNBOUNDED, now=self.now)
        directory = UserDirectory(self.store, self.now)

        chats = self.store.scan(CHATS)
        calls = self.store.scan(SCHEDULED_CALLS)
        directory.prefetch(doc.get("userId") for doc in chats + calls)

        issues: List[IssueRow] = []
        for chat in chats:
            row = self._chat_row(chat, window, directory)
            if row:
                issues.append(row)
        for call in calls:
            row = self._call_row(call, window, directory)
            if row:
                issues.append(row)

        issues.sort(key=lambda r: r.sort_time, reverse=True)
        return issues
