"""
Test configuration and fixtures for the todo backend tests.

Provides:
- Test database with SQLite in-memory for speed (foreign keys enforced)
- FastAPI test client with database dependency override
- Authentication helpers (JWT token generation)
- Common fixtures for tenants, users, request contexts and labels
"""

import os
import sys
import logging
from datetime import timedelta
from typing import Generator, Dict

# In-memory defaults so importing the app never touches a database file
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("AUTO_CREATE_SCHEMA", "false")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import Base, get_db
from main import app
import models
from models import UserRole
from auth.security import create_access_token
from todos.context import RequestContext

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

# SQLite in-memory database for fast testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"
CRON_SECRET = os.environ["CRON_SECRET"]


@pytest.fixture(scope="function")
def test_db() -> Generator[Session, None, None]:
    """
    Create a fresh in-memory SQLite database for each test.

    This ensures test isolation and fast execution.
    """
    logger.debug("Creating test database")

    engine = create_engine(
        SQLALCHEMY_TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
        logger.debug("Test database cleaned up")


@pytest.fixture(scope="function")
def client(test_db: Session) -> TestClient:
    """
    Create FastAPI test client with database dependency override.
    """
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def _create_user(db: Session, email: str, tenant: models.Tenant, role: UserRole = UserRole.MEMBER) -> models.User:
    user = models.User(email=email, role=role, tenant_id=tenant.id, email_reminders_enabled=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Created user {email} with ID: {user.id}")
    return user


@pytest.fixture(scope="function")
def tenant(test_db: Session) -> models.Tenant:
    tenant = models.Tenant(name="Acme")
    test_db.add(tenant)
    test_db.commit()
    test_db.refresh(tenant)
    return tenant


@pytest.fixture(scope="function")
def other_tenant(test_db: Session) -> models.Tenant:
    tenant = models.Tenant(name="Globex")
    test_db.add(tenant)
    test_db.commit()
    test_db.refresh(tenant)
    return tenant


@pytest.fixture(scope="function")
def admin_user(test_db: Session, tenant: models.Tenant) -> models.User:
    """Admin of the main tenant."""
    return _create_user(test_db, "admin@example.com", tenant, UserRole.ADMIN)


@pytest.fixture(scope="function")
def member_user(test_db: Session, tenant: models.Tenant) -> models.User:
    """Regular member of the main tenant."""
    return _create_user(test_db, "member@example.com", tenant)


@pytest.fixture(scope="function")
def outsider_user(test_db: Session, other_tenant: models.Tenant) -> models.User:
    """Member of a different tenant, used for isolation checks."""
    return _create_user(test_db, "outsider@example.com", other_tenant)


def make_context(user: models.User) -> RequestContext:
    return RequestContext(user_id=user.id, tenant_id=user.tenant_id)


@pytest.fixture(scope="function")
def admin_ctx(admin_user: models.User) -> RequestContext:
    return make_context(admin_user)


@pytest.fixture(scope="function")
def member_ctx(member_user: models.User) -> RequestContext:
    return make_context(member_user)


@pytest.fixture(scope="function")
def outsider_ctx(outsider_user: models.User) -> RequestContext:
    return make_context(outsider_user)


def create_auth_token(user: models.User, expires_delta: timedelta = None) -> str:
    """
    Helper to create JWT access token for a user.

    Args:
        user: User to create token for
        expires_delta: Optional expiration time override

    Returns:
        JWT access token string
    """
    logger.debug(f"Creating auth token for user {user.id}")
    token_data = {
        "sub": str(user.id),
        "tenant_id": user.tenant_id,
    }
    return create_access_token(token_data, expires_delta)


@pytest.fixture(scope="function")
def auth_headers(admin_user: models.User) -> Dict[str, str]:
    """
    Create authorization headers with admin token.
    """
    return {"Authorization": f"Bearer {create_auth_token(admin_user)}"}


@pytest.fixture(scope="function")
def member_headers(member_user: models.User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_auth_token(member_user)}"}


@pytest.fixture(scope="function")
def outsider_headers(outsider_user: models.User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_auth_token(outsider_user)}"}


@pytest.fixture(scope="function")
def cron_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {CRON_SECRET}"}


def create_label(db: Session, tenant: models.Tenant, name: str, color: str = "#3366FF") -> models.Label:
    label = models.Label(name=name, color=color, tenant_id=tenant.id)
    db.add(label)
    db.commit()
    db.refresh(label)
    return label


@pytest.fixture(scope="function")
def label_urgent(test_db: Session, tenant: models.Tenant) -> models.Label:
    return create_label(test_db, tenant, "urgent", "#FF0000")


@pytest.fixture(scope="function")
def label_home(test_db: Session, tenant: models.Tenant) -> models.Label:
    return create_label(test_db, tenant, "home", "#00AA00")


@pytest.fixture(scope="function")
def foreign_label(test_db: Session, other_tenant: models.Tenant) -> models.Label:
    return create_label(test_db, other_tenant, "foreign", "#000000")
