"""
SQL Document Store

Documents live in the `documents` table, one row per (collection path, id),
with the body in a JSON column. Filtering and ordering run in Python after a
per-collection read, which keeps the table portable across SQL dialects.

Composite queries (filters on more than one field, or an order on a field
other than the filtered one) need a declared composite index, exactly like a
hosted document store; undeclared combinations raise IndexMissingError so
callers exercise their full-scan fallback.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import DocumentNotFoundError, IndexMissingError, StoreError
from ...models.db_models import DocumentDB
from .base import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    FieldFilter,
    as_utc,
    lookup,
    matches,
)

logger = logging.getLogger(__name__)

_DATETIME_TAG = "__datetime__"

# Shared by every store instance in the process (one is built per request).
# Separate worker processes each keep their own clock.
_clock_lock = threading.Lock()
_last_server_time: Optional[datetime] = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def next_server_time() -> datetime:
    """Process-wide monotonic UTC timestamp."""
    global _last_server_time
    with _clock_lock:
        now = _utc_now()
        if _last_server_time is not None and now <= _last_server_time:
            now = _last_server_time + timedelta(microseconds=1)
        _last_server_time = now
        return now


# =============================================================================
# ENCODING
# =============================================================================

def encode_value(value: Any) -> Any:
    """Make a document body JSON-safe; datetimes become tagged ISO strings."""
    if isinstance(value, datetime):
        return {_DATETIME_TAG: as_utc(value).isoformat()}
    if isinstance(value, dict):
        return {k: encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    return value


def decode_value(value: Any) -> Any:
    """Inverse of encode_value."""
    if isinstance(value, dict):
        if set(value.keys()) == {_DATETIME_TAG}:
            return datetime.fromisoformat(value[_DATETIME_TAG])
        return {k: decode_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_value(v) for v in value]
    return value


def _set_dotted(data: Dict[str, Any], dotted: str, value: Any) -> None:
    parts = dotted.split(".")
    current = data
    for part in parts[:-1]:
        nxt = current.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            current[part] = nxt
        current = nxt
    current[parts[-1]] = value


def _sort_key(value: Any) -> Tuple[int, Any]:
    # Store ordering: numbers before strings before timestamps
    if isinstance(value, bool):
        return (0, int(value))
    if isinstance(value, (int, float)):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    if isinstance(value, datetime):
        return (3, as_utc(value).timestamp())
    return (4, str(value))


class SQLDocumentStore(DocumentStore):
    """Document store over a SQLAlchemy session."""

    def __init__(self, db: Session, composite_indexes: Iterable[Tuple[str, ...]] = ()):
        self.db = db
        self.composite_indexes = {tuple(ix) for ix in composite_indexes}

    # -------------------------------------------------------------------------
    # helpers
    # -------------------------------------------------------------------------

    def new_id(self) -> str:
        return uuid4().hex[:20]

    def server_time(self) -> datetime:
        """Monotonic server timestamp for SERVER_TIMESTAMP fields."""
        return next_server_time()

    def _resolve_sentinels(self, value: Any, stamp: datetime) -> Any:
        if value is SERVER_TIMESTAMP:
            return stamp
        if isinstance(value, dict):
            return {k: self._resolve_sentinels(v, stamp) for k, v in value.items()}
        if isinstance(value, list):
            return [self._resolve_sentinels(v, stamp) for v in value]
        return value

    @staticmethod
    def _snapshot(row: DocumentDB) -> DocumentSnapshot:
        return DocumentSnapshot(
            collection=row.collection,
            id=row.doc_id,
            data=decode_value(row.data or {}),
        )

    def _row(self, collection: str, doc_id: str) -> Optional[DocumentDB]:
        return self.db.query(DocumentDB).filter(
            DocumentDB.collection == collection,
            DocumentDB.doc_id == doc_id,
        ).first()

    def _check_index(self, filters: Sequence[FieldFilter], order_by: Optional[str]) -> None:
        fields = []
        for flt in filters:
            if flt.field not in fields:
                fields.append(flt.field)
        if order_by and order_by not in fields:
            fields.append(order_by)
        if len(fields) <= 1:
            return
        if tuple(fields) in self.composite_indexes:
            return
        raise IndexMissingError(
            f"The query requires a composite index on ({', '.join(fields)})"
        )

    # -------------------------------------------------------------------------
    # reads
    # -------------------------------------------------------------------------

    def scan(self, collection: str) -> List[DocumentSnapshot]:
        try:
            rows = self.db.query(DocumentDB).filter(
                DocumentDB.collection == collection
            ).order_by(DocumentDB.doc_id).all()
        except SQLAlchemyError as e:
            logger.error(f"Scan of {collection} failed: {e}")
            raise StoreError(str(e)) from e
        return [self._snapshot(row) for row in rows]

    def scan_many(self, collections: Iterable[str]) -> Dict[str, List[DocumentSnapshot]]:
        paths = list(collections)
        result: Dict[str, List[DocumentSnapshot]] = {path: [] for path in paths}
        if not paths:
            return result
        try:
            rows = self.db.query(DocumentDB).filter(
                DocumentDB.collection.in_(paths)
            ).order_by(DocumentDB.collection, DocumentDB.doc_id).all()
        except SQLAlchemyError as e:
            logger.error(f"Scan of {len(paths)} collections failed: {e}")
            raise StoreError(str(e)) from e
        for row in rows:
            result[row.collection].append(self._snapshot(row))
        return result

    def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[DocumentSnapshot]:
        self._check_index(filters, order_by)
        docs = [doc for doc in self.scan(collection) if all(matches(doc.data, f) for f in filters)]
        if order_by:
            # Documents without the order field are excluded, as in the hosted store
            docs = [doc for doc in docs if lookup(doc.data, order_by)[1] is not None]
            docs.sort(key=lambda d: _sort_key(lookup(d.data, order_by)[1]), reverse=descending)
        if limit is not None:
            docs = docs[:limit]
        return docs

    def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        try:
            row = self._row(collection, doc_id)
        except SQLAlchemyError as e:
            logger.error(f"Read of {collection}/{doc_id} failed: {e}")
            raise StoreError(str(e)) from e
        return self._snapshot(row) if row else None

    # -------------------------------------------------------------------------
    # writes
    # -------------------------------------------------------------------------

    def _apply(self, op: str, collection: str, doc_id: str, data: Optional[Dict[str, Any]], stamp: datetime) -> None:
        row = self._row(collection, doc_id)
        if op == "set":
            body = encode_value(self._resolve_sentinels(data or {}, stamp))
            if row is None:
                self.db.add(DocumentDB(collection=collection, doc_id=doc_id, data=body))
            else:
                row.data = body
        elif op == "update":
            if row is None:
                raise DocumentNotFoundError(f"{collection}/{doc_id}")
            merged = decode_value(row.data or {})
            for key, value in self._resolve_sentinels(data or {}, stamp).items():
                _set_dotted(merged, key, value)
            row.data = encode_value(merged)
        elif op == "delete":
            if row is not None:
                self.db.delete(row)
        else:
            raise ValueError(f"Unknown write operation: {op}")
        self.db.flush()

    def commit_batch(self, operations: Sequence[Tuple[str, str, str, Optional[Dict[str, Any]]]]) -> None:
        stamp = self.server_time()
        try:
            for op, collection, doc_id, data in operations:
                self._apply(op, collection, doc_id, data, stamp)
            self.db.commit()
        except DocumentNotFoundError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Write of {len(operations)} operation(s) failed: {e}")
            raise StoreError(str(e)) from e

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self.commit_batch([("set", collection, doc_id, data)])

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self.commit_batch([("update", collection, doc_id, data)])

    def delete(self, collection: str, doc_id: str) -> None:
        self.commit_batch([("delete", collection, doc_id, None)])
