"""
Support Tickets Service

Ticket threads live in supportThreads/<uid> (one thread per user, keyed by the
user's id) with messages in supportThreads/<uid>/messages.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from ..errors import ServiceError, StoreError, ValidationError
from ..models.records import SupportThread, ThreadMessage, normalize_message, normalize_thread
from .date_ranges import AllTimePolicy, DateRange, coerce_range, format_time_ago, resolve_range, to_local
from .document_store import SERVER_TIMESTAMP, DocumentStore, collection_path
from .export_service import export_filename, to_csv
from .user_directory import UserDirectory

logger = logging.getLogger(__name__)

SUPPORT_THREADS = "supportThreads"
MESSAGES = "messages"
RECENT_MESSAGES = 10

TICKET_STATUSES = ("open", "in_progress", "resolved")
TICKET_PRIORITIES = ("low", "medium", "high")

# Editable thread fields, request name -> document field
METADATA_FIELDS = {
    "status": "status",
    "priority": "priority",
    "assigned_to": "assignedTo",
    "subject": "subject",
    "admin_note": "adminNote",
}

TICKET_CSV_HEADER = ["id", "subject", "user", "status", "priority", "assignedTo", "message", "lastUpdated"]


@dataclass
class TicketMessage:
    id: str
    author: str
    text: str
    date: str


@dataclass
class SupportTicket:
    id: str
    subject: str
    user: str
    status: str
    priority: str
    assigned_to: str
    message: str
    last_updated: str
    messages: List[TicketMessage] = field(default_factory=list)
    sort_time: Optional[datetime] = None


def message_author(message: ThreadMessage, user_email: str) -> str:
    if message.sender == "user":
        return user_email
    if message.sender in ("admin", "support"):
        return "Support"
    return message.sender


def build_ticket_export(tickets: List[SupportTicket]) -> str:
    """Ticket rows; subject and message are always quoted."""
    rows = [
        [t.id, t.subject, t.user, t.status, t.priority, t.assigned_to, t.message, t.last_updated]
        for t in tickets
    ]
    return to_csv(TICKET_CSV_HEADER, rows, quoted={1, 6})


class SupportTicketsService:
    """Reads and writes support ticket threads."""

    def __init__(self, store: DocumentStore, now: Optional[datetime] = None):
        self.store = store
        self.now = now

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def _recent_messages(self, thread_id: str) -> List[ThreadMessage]:
        try:
            docs = self.store.query(
                collection_path(SUPPORT_THREADS, thread_id, MESSAGES),
                order_by="createdAt",
                descending=True,
                limit=RECENT_MESSAGES,
            )
        except StoreError as e:
            logger.error(f"Error fetching messages for thread {thread_id}: {e}")
            return []
        return [normalize_message(doc) for doc in reversed(docs)]

    def _to_ticket(self, thread: SupportThread, directory: UserDirectory) -> SupportTicket:
        user_email = directory.email_for(thread.user_id)
        messages = [
            TicketMessage(
                id=m.id,
                author=message_author(m, user_email),
                text=m.text,
                date=to_local(m.created_at).strftime("%Y-%m-%d") if m.created_at else "",
            )
            for m in self._recent_messages(thread.id)
        ]
        activity = thread.activity_time
        return SupportTicket(
            id=thread.id,
            subject=thread.display_subject,
            user=user_email,
            status=thread.status,
            priority=thread.priority,
            assigned_to=thread.assigned_to,
            message=thread.last_message,
            last_updated=format_time_ago(activity, self.now, yesterday=True) if activity else "Never",
            messages=messages,
            sort_time=activity,
        )

    def get_support_tickets(self, date_range: Union[str, DateRange] = DateRange.ALL_TIME) -> List[SupportTicket]:
        """
        Threads active in range, most recent first.

        When a range is bounded, threads without any timestamp are skipped.
        """
        window = resolve_range(date_range, all_time=AllTimePolicy.UNBOUNDED, now=self.now)
        threads = [normalize_thread(doc) for doc in self.store.scan(SUPPORT_THREADS)]
        if window:
            threads = [t for t in threads if window.contains(t.activity_time)]

        directory = UserDirectory(self.store, self.now)
        directory.prefetch(t.user_id for t in threads)
        tickets = [self._to_ticket(t, directory) for t in threads]

        # Tickets without a timestamp sort last
        dated = sorted((t for t in tickets if t.sort_time), key=lambda t: t.sort_time, reverse=True)
        return dated + [t for t in tickets if not t.sort_time]

    def get_support_thread_messages(self, thread_id: str) -> List[ThreadMessage]:
        """Every message of a thread, oldest first."""
        docs = self.store.query(collection_path(SUPPORT_THREADS, thread_id, MESSAGES), order_by="createdAt")
        return [normalize_message(doc) for doc in docs]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def send_admin_reply(self, thread_id: str, text: str) -> str:
        """Append an admin message and bump the thread's last message in one batch."""
        text = (text or "").strip()
        if not text:
            raise ValidationError("Reply text is required")

        batch = self.store.batch()
        message_id = batch.add(collection_path(SUPPORT_THREADS, thread_id, MESSAGES), {
            "userId": thread_id,
            "sender": "admin",
            "text": text,
            "createdAt": SERVER_TIMESTAMP,
        })
        batch.update(SUPPORT_THREADS, thread_id, {
            "lastMessage": text,
            "lastMessageAt": SERVER_TIMESTAMP,
        })
        batch.commit()
        logger.info(f"Admin reply {message_id} sent on thread {thread_id}")
        return message_id

    def update_ticket_metadata(self, thread_id: str, updates: Dict[str, Any]) -> None:
        """Write only the fields present in `updates`."""
        data = {}
        for key, doc_field in METADATA_FIELDS.items():
            if updates.get(key) is not None:
                data[doc_field] = updates[key]

        if "status" in data and data["status"] not in TICKET_STATUSES:
            raise ValidationError(f"Invalid status: {data['status']}")
        if "priority" in data and data["priority"] not in TICKET_PRIORITIES:
            raise ValidationError(f"Invalid priority: {data['priority']}")
        if not data:
            return

        self.store.update(SUPPORT_THREADS, thread_id, data)
        logger.info(f"Updated ticket {thread_id}: {', '.join(sorted(data))}")

    def create_support_ticket(self, user: str, subject: str, initial_message: Optional[str] = None) -> str:
        """
        Create (or reopen) the thread for a user.

        `user` is a user id or, when it contains '@', an email to look up.
        Returns the thread id, which is the user id.
        """
        subject = (subject or "").strip()
        if not subject:
            raise ValidationError("Subject is required")

        user_id = user
        if "@" in user:
            user_id = UserDirectory(self.store, self.now).find_id_by_email(user)
            if not user_id:
                raise ServiceError(f"User not found with email: {user}")

        initial_message = (initial_message or "").strip()
        thread_data = {
            "userId": user_id,
            "subject": subject,
            "status": "open",
            "priority": "medium",
            "assignedTo": "",
            "createdAt": SERVER_TIMESTAMP,
            "lastMessageAt": SERVER_TIMESTAMP,
            "lastMessage": initial_message or subject,
        }

        batch = self.store.batch()
        if self.store.get(SUPPORT_THREADS, user_id):
            batch.update(SUPPORT_THREADS, user_id, thread_data)
        else:
            batch.set(SUPPORT_THREADS, user_id, thread_data)
        if initial_message:
            batch.add(collection_path(SUPPORT_THREADS, user_id, MESSAGES), {
                "userId": user_id,
                "sender": "admin",
                "text": initial_message,
                "createdAt": SERVER_TIMESTAMP,
            })
        batch.commit()
        logger.info(f"Created support ticket for user {user_id}")
        return user_id

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    def export_tickets(self, date_range: Union[str, DateRange] = DateRange.ALL_TIME):
        """(filename, csv text) for the tickets in range."""
        rng = coerce_range(date_range)
        tickets = self.get_support_tickets(rng)
        return export_filename("support-tickets", rng.value, self.now), build_ticket_export(tickets)
