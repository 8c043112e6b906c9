"""
Pathway Admin - SQLAlchemy ORM Models
Tables for the SQL-backed document store, identity accounts and content drafts
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, Integer, DateTime, Text, JSON, Boolean, Index
from ..database import Base


# =============================================================================
# ENUMS
# =============================================================================

class AdminRole(str, Enum):
    """Roles an admin account can hold."""
    SUPERADMIN = "superadmin"
    SUPPORT = "support"


class DraftKind(str, Enum):
    """Content kinds that exist only as console drafts."""
    LESSON = "lesson"
    LINK = "link"
    PAGE = "page"


# =============================================================================
# DOCUMENT STORE
# =============================================================================

class DocumentDB(Base):
    """
    One document of the document store.

    `collection` is the full collection path, e.g. "users" or
    "supportThreads/<uid>/messages". `data` holds the JSON body with
    datetimes encoded as tagged ISO strings.
    """
    __tablename__ = "documents"

    collection = Column(String(500), primary_key=True)
    doc_id = Column(String(255), primary_key=True)
    data = Column(JSON, nullable=False, default=dict)
    create_time = Column(DateTime, default=datetime.utcnow)
    update_time = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_documents_collection", "collection"),
    )


# =============================================================================
# IDENTITY
# =============================================================================

class AuthAccountDB(Base):
    """Credential record for the identity collaborator."""
    __tablename__ = "auth_accounts"

    uid = Column(String(36), primary_key=True)  # UUID, also the users/<uid> document id
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=True)

    # Admin console access
    is_admin = Column(Boolean, default=False)
    role = Column(String(20), nullable=True)  # superadmin / support
    disabled = Column(Boolean, default=False)

    # Sign-in throttling
    failed_sign_ins = Column(Integer, default=0)
    locked_until = Column(DateTime, nullable=True)

    # Session state
    token_version = Column(Integer, default=0)  # bumped on sign-out
    last_authenticated_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class PasswordResetDB(Base):
    """Issued password-reset request."""
    __tablename__ = "password_reset_requests"

    id = Column(String(36), primary_key=True)  # UUID
    uid = Column(String(36), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    token_hash = Column(String(64), nullable=False, unique=True)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


# =============================================================================
# CONTENT DRAFTS
# =============================================================================

class ContentDraftDB(Base):
    """Lesson / link / static page drafts. Never written to the document store."""
    __tablename__ = "content_drafts"

    id = Column(String(36), primary_key=True)  # UUID
    kind = Column(String(20), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    category = Column(String(255), default="General")
    visibility = Column(String(20), default="visible")
    tier = Column(String(20), default="free")
    body = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
