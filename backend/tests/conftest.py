"""
Shared fixtures: an in-memory SQLite database behind the SQL document store,
a frozen "now", document factories and an authenticated API client.
"""
import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Never reach for a real database from the test run
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DASHBOARD_TIMEZONE", "UTC")

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pathway_admin.database import Base
from pathway_admin.models import db_models  # noqa: F401  registers tables
from pathway_admin.services.document_store import SQLDocumentStore

# Wednesday 18 March 2026, 15:00 UTC
NOW = datetime(2026, 3, 18, 15, 0, tzinfo=timezone.utc)


def days_ago(days: float, now: datetime = NOW) -> datetime:
    return now - timedelta(days=days)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def store(db):
    return SQLDocumentStore(db)


@pytest.fixture
def add_user(store):
    """Create users/<uid> with sensible defaults; keyword args override fields."""
    def _add(uid: str, **fields):
        data = {
            "name": f"User {uid}",
            "email": f"{uid}@example.com",
            "createdAt": days_ago(60),
        }
        data.update(fields)
        store.set("users", uid, data)
        return uid
    return _add


# =============================================================================
# API CLIENT
# =============================================================================

@pytest.fixture
def admin_credentials():
    return {"email": "admin@example.com", "password": "adminpass123"}


@pytest.fixture
def app(db):
    from pathway_admin.database import get_db
    from pathway_admin.main import app
    from pathway_admin.routers.deps import get_now

    def override_db():
        yield db

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_now] = lambda: NOW
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient
    return TestClient(app)


@pytest.fixture
def admin_token(db, client, admin_credentials):
    from pathway_admin.models.db_models import AdminRole
    from pathway_admin.services.identity_service import IdentityService

    IdentityService(db).create_account(
        admin_credentials["email"], admin_credentials["password"], role=AdminRole.SUPERADMIN
    )
    response = client.post("/auth/login", json=admin_credentials)
    assert response.status_code == 200
    return response.json()["access_token"]


@pytest.fixture
def auth_headers(admin_token):
    return {"Authorization": f"Bearer {admin_token}"}
