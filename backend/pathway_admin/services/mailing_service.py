"""
Mailing Logs Report

Letters from the `letters` collection plus letters embedded in user documents.
"""
import logging
from datetime import datetime
from typing import List, Optional, Union

from ..errors import StoreError
from ..models.records import LetterRecord, MailLog, normalize_letter
from .date_ranges import AllTimePolicy, DateRange, DateWindow, now_local, resolve_range, to_local
from .document_store import DocumentStore, FieldFilter
from .user_directory import UserDirectory

logger = logging.getLogger(__name__)

LETTERS = "letters"


def letter_status(letter: LetterRecord) -> str:
    """error -> failed; sentAt or status 'sent' -> sent; else queued."""
    if letter.error:
        return "failed"
    if letter.sent_at or letter.status == "sent":
        return "sent"
    return "queued"


def letter_channel(letter: LetterRecord) -> str:
    return "Email" if (letter.channel or "").lower() == "email" else "Mail"


def letter_item(letter: LetterRecord, letter_id: str) -> str:
    if "email" in (letter.type or "").lower():
        return "Email notice"
    return f"Letter #{letter_id[:6]}"


def format_log_time(value: datetime) -> str:
    return to_local(value).strftime("%Y-%m-%d %H:%M")


class MailingService:
    """Builds the mailing logs report."""

    def __init__(self, store: DocumentStore, now: Optional[datetime] = None):
        self.store = store
        self.now = now

    def _collection_logs(self, window: Optional[DateWindow], directory: UserDirectory) -> List[MailLog]:
        filters = []
        if window:
            filters = [
                FieldFilter("createdAt", ">=", window.start),
                FieldFilter("createdAt", "<=", window.end),
            ]
        try:
            docs = self.store.query(LETTERS, filters)
        except StoreError as e:
            logger.warning(f"Letters collection query failed, using user documents only: {e}")
            return []

        letters = [normalize_letter(doc.id, doc.data) for doc in docs]
        directory.prefetch(letter.user_id for letter in letters)

        logs = []
        for letter in letters:
            created_at = letter.created_at or now_local(self.now)
            if window and not window.contains(created_at):
                continue
            logs.append(MailLog(
                id=letter.id,
                user=directory.name_for(letter.user_id) or "Unknown User",
                item=letter_item(letter, letter.id),
                channel=letter_channel(letter),
                status=letter_status(letter),
                created_at=format_log_time(created_at),
                error=letter.error,
            ))
        return logs

    def _embedded_logs(self, window: Optional[DateWindow], directory: UserDirectory) -> List[MailLog]:
        logs = []
        for user in directory.all():
            for index, letter in enumerate(user.letters):
                if letter.created_at is None:
                    continue
                if window and not window.contains(letter.created_at):
                    continue
                logs.append(MailLog(
                    id=f"{user.id}-{index}",
                    user=user.display_name,
                    item=letter_item(letter, letter.id),
                    channel=letter_channel(letter),
                    status=letter_status(letter),
                    created_at=format_log_time(letter.created_at),
                    error=letter.error,
                ))
        return logs

    def get_mailing_logs(self, date_range: Union[str, DateRange] = DateRange.ALL_TIME) -> List[MailLog]:
        """Newest first, by the formatted createdAt string."""
        window = resolve_range(date_range, all_time=AllTimePolicy.UNBOUNDED, now=self.now)
        directory = UserDirectory(self.store, self.now)

        logs = self._collection_logs(window, directory)
        logs.extend(self._embedded_logs(window, directory))
        logs.sort(key=lambda log: log.created_at, reverse=True)
        logger.debug(f"Mailing logs ({date_range}): {len(logs)} rows")
        return logs
