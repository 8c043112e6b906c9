"""
Document Store Interface

Collections, sub-collections ("parent/<id>/child") and JSON-like documents.
Every service reads and writes through this interface; the backend is chosen
at startup (SQL table or Firestore).
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple


class _ServerTimestamp:
    """Sentinel replaced by the store's server time when a write is applied."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()

OPERATORS = ("==", "<", "<=", ">", ">=")


@dataclass(frozen=True)
class FieldFilter:
    """Single-field equality or range predicate."""
    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in OPERATORS:
            raise ValueError(f"Unsupported operator: {self.op}")


@dataclass(frozen=True)
class DocumentSnapshot:
    """A document as read from the store."""
    collection: str
    id: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def path(self) -> str:
        return f"{self.collection}/{self.id}"

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


def collection_path(*parts: str) -> str:
    """Join path segments: collection_path("supportThreads", uid, "messages")."""
    return "/".join(str(p).strip("/") for p in parts)


def lookup(data: Dict[str, Any], dotted: str) -> Tuple[bool, Any]:
    """Resolve a dotted field path. Returns (found, value)."""
    current: Any = data
    for part in dotted.split("."):
        if not isinstance(current, dict) or part not in current:
            return False, None
        current = current[part]
    return True, current


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _comparable(value: Any) -> Any:
    if isinstance(value, datetime):
        return as_utc(value)
    return value


def matches(data: Dict[str, Any], flt: FieldFilter) -> bool:
    """Evaluate a filter the way a document store does: missing fields never match."""
    found, value = lookup(data, flt.field)
    if not found or value is None:
        return False
    left, right = _comparable(value), _comparable(flt.value)
    try:
        if flt.op == "==":
            return left == right
        if flt.op == "<":
            return left < right
        if flt.op == "<=":
            return left <= right
        if flt.op == ">":
            return left > right
        return left >= right
    except TypeError:
        # Mixed types never compare in a document store
        return False


class WriteBatch:
    """
    Buffered writes applied together by `commit()`.

    Either every operation lands or none does.
    """

    def __init__(self, store: "DocumentStore"):
        self._store = store
        self._ops: List[Tuple[str, str, str, Optional[Dict[str, Any]]]] = []

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> "WriteBatch":
        self._ops.append(("set", collection, doc_id, dict(data)))
        return self

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = self._store.new_id()
        self._ops.append(("set", collection, doc_id, dict(data)))
        return doc_id

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> "WriteBatch":
        self._ops.append(("update", collection, doc_id, dict(data)))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self._ops.append(("delete", collection, doc_id, None))
        return self

    @property
    def operations(self) -> Sequence[Tuple[str, str, str, Optional[Dict[str, Any]]]]:
        return tuple(self._ops)

    def commit(self) -> None:
        self._store.commit_batch(self._ops)
        self._ops = []


class DocumentStore(ABC):
    """Interface every backend implements."""

    @abstractmethod
    def scan(self, collection: str) -> List[DocumentSnapshot]:
        """Every document of a collection."""

    def scan_many(self, collections: Iterable[str]) -> Dict[str, List[DocumentSnapshot]]:
        """Scan several collections; backends may serve this in one round trip."""
        return {path: self.scan(path) for path in collections}

    @abstractmethod
    def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[DocumentSnapshot]:
        """Filtered/ordered read. Raises IndexMissingError when unsupported."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        """Single document or None."""

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Create or overwrite a document."""

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        """Create a document with a generated id."""
        doc_id = self.new_id()
        self.set(collection, doc_id, data)
        return doc_id

    @abstractmethod
    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Merge fields into an existing document. Raises DocumentNotFoundError."""

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        """Remove a document. Deleting a missing document is a no-op."""

    @abstractmethod
    def commit_batch(self, operations: Sequence[Tuple[str, str, str, Optional[Dict[str, Any]]]]) -> None:
        """Apply buffered batch operations atomically."""

    @abstractmethod
    def new_id(self) -> str:
        """Generate a document id."""

    def batch(self) -> WriteBatch:
        return WriteBatch(self)
