"""
Document store package.

`get_store` is the FastAPI dependency every router uses; the backend follows
DOCUMENT_STORE_BACKEND.
"""
from fastapi import Depends
from sqlalchemy.orm import Session

from ...config import DOCUMENT_STORE_BACKEND, FIRESTORE_PROJECT_ID
from ...database import get_db
from .base import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    FieldFilter,
    WriteBatch,
    collection_path,
)
from .sql_store import SQLDocumentStore

_firestore_store = None


def get_store(db: Session = Depends(get_db)) -> DocumentStore:
    """Dependency - the configured document store."""
    global _firestore_store
    if DOCUMENT_STORE_BACKEND == "firestore":
        if _firestore_store is None:
            from .firestore_store import FirestoreDocumentStore
            _firestore_store = FirestoreDocumentStore(project=FIRESTORE_PROJECT_ID)
        return _firestore_store
    return SQLDocumentStore(db)


__all__ = [
    "SERVER_TIMESTAMP",
    "DocumentSnapshot",
    "DocumentStore",
    "FieldFilter",
    "WriteBatch",
    "collection_path",
    "SQLDocumentStore",
    "get_store",
]
