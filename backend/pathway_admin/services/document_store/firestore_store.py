"""
Firestore Document Store

Hosted backend. Collection paths with slashes address sub-collections
directly ("supportThreads/<uid>/messages").
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from google.api_core import exceptions as gcp_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1 import FieldFilter as FirestoreFieldFilter

from ...errors import DocumentNotFoundError, IndexMissingError, StoreError
from .base import SERVER_TIMESTAMP, DocumentSnapshot, DocumentStore, FieldFilter

logger = logging.getLogger(__name__)


def _to_firestore(value: Any) -> Any:
    """Swap our SERVER_TIMESTAMP sentinel for the client's."""
    if value is SERVER_TIMESTAMP:
        return firestore.SERVER_TIMESTAMP
    if isinstance(value, dict):
        return {k: _to_firestore(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_firestore(v) for v in value]
    return value


def _snapshot(collection: str, doc) -> DocumentSnapshot:
    return DocumentSnapshot(collection=collection, id=doc.id, data=doc.to_dict() or {})


class FirestoreDocumentStore(DocumentStore):
    """Document store over google-cloud-firestore."""

    def __init__(self, client: Optional[firestore.Client] = None, project: Optional[str] = None):
        self.client = client or firestore.Client(project=project)

    def new_id(self) -> str:
        return self.client.collection("_ids").document().id

    def _ref(self, collection: str, doc_id: str):
        return self.client.collection(collection).document(doc_id)

    def scan(self, collection: str) -> List[DocumentSnapshot]:
        try:
            return [_snapshot(collection, doc) for doc in self.client.collection(collection).stream()]
        except gcp_exceptions.GoogleAPICallError as e:
            logger.error(f"Scan of {collection} failed: {e}")
            raise StoreError(str(e)) from e

    def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[DocumentSnapshot]:
        q = self.client.collection(collection)
        for flt in filters:
            q = q.where(filter=FirestoreFieldFilter(flt.field, flt.op, flt.value))
        if order_by:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            q = q.order_by(order_by, direction=direction)
        if limit is not None:
            q = q.limit(limit)
        try:
            return [_snapshot(collection, doc) for doc in q.stream()]
        except gcp_exceptions.FailedPrecondition as e:
            # Missing composite index
            raise IndexMissingError(str(e)) from e
        except gcp_exceptions.GoogleAPICallError as e:
            logger.error(f"Query on {collection} failed: {e}")
            raise StoreError(str(e)) from e

    def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        try:
            doc = self._ref(collection, doc_id).get()
        except gcp_exceptions.GoogleAPICallError as e:
            logger.error(f"Read of {collection}/{doc_id} failed: {e}")
            raise StoreError(str(e)) from e
        if not doc.exists:
            return None
        return _snapshot(collection, doc)

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self.commit_batch([("set", collection, doc_id, data)])

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self.commit_batch([("update", collection, doc_id, data)])

    def delete(self, collection: str, doc_id: str) -> None:
        self.commit_batch([("delete", collection, doc_id, None)])

    def commit_batch(self, operations: Sequence[Tuple[str, str, str, Optional[Dict[str, Any]]]]) -> None:
        batch = self.client.batch()
        for op, collection, doc_id, data in operations:
            ref = self._ref(collection, doc_id)
            if op == "set":
                batch.set(ref, _to_firestore(data or {}))
            elif op == "update":
                batch.update(ref, _to_firestore(data or {}))
            elif op == "delete":
                batch.delete(ref)
            else:
                raise ValueError(f"Unknown write operation: {op}")
        try:
            batch.commit()
        except gcp_exceptions.NotFound as e:
            path = next((f"{c}/{d}" for o, c, d, _ in operations if o == "update"), "")
            raise DocumentNotFoundError(path) from e
        except gcp_exceptions.GoogleAPICallError as e:
            logger.error(f"Write of {len(operations)} operation(s) failed: {e}")
            raise StoreError(str(e)) from e
