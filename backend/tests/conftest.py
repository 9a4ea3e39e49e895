"""
Shared test fixtures for the PO workflow tests

Provides database setup, an in-memory user directory, a recording push
gateway, workflow wiring and an API client with dependency overrides.
"""
import os

# Must be set before po_workflow reads its settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("USER_DIRECTORY_BACKEND", "memory")
os.environ.setdefault("PUSH_GATEWAY", "log")
os.environ.setdefault("PO_NUMBER_TIMEZONE", "UTC")

import pytest
from typing import List, Sequence
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from po_workflow.main import app
from po_workflow.db.base import Base
from po_workflow.db.session import get_db
from po_workflow.api.deps import get_object_storage, get_push_gateway, get_user_directory
from po_workflow.services.notification_orchestrator import NotificationOrchestrator
from po_workflow.services.object_storage import LocalObjectStorage
from po_workflow.services.purchase_order_workflow import Caller, PurchaseOrderWorkflow
from po_workflow.services.push_gateway import PushMessage, PushResult
from po_workflow.services.user_directory import DirectoryUser, InMemoryUserDirectory
from tests.factories import po_payload, reset_sequences


# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

STORAGE_BASE_URL = "https://files.test/uploads"


def create_tables(engine):
    """Create all tables for testing using SQLAlchemy metadata"""
    # Import all models to ensure they're registered with Base
    from po_workflow.models import (  # noqa: F401
        AuditLog, DeviceToken, Notification, PurchaseOrder, PurchaseOrderAttachment,
        PurchaseOrderItem, PurchaseOrderNote, PurchaseOrderSequence, User,
    )

    Base.metadata.create_all(bind=engine)


def drop_tables(engine):
    """Drop all tables after testing"""
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Create a fresh database session for each test"""
    create_tables(engine)
    reset_sequences()

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        drop_tables(engine)


# =============================================================================
# Collaborators
# =============================================================================

class FakePushGateway:
    """Records multicast calls; can be told to fail or to reject tokens."""

    name = "fake"

    def __init__(self):
        self.calls: List[tuple] = []
        self.fail = False
        self.invalid_tokens = set()

    def send_multicast(self, tokens: Sequence[str], message: PushMessage) -> List[PushResult]:
        self.calls.append((list(tokens), message))
        if self.fail:
            raise RuntimeError("gateway down")
        results = []
        for token in tokens:
            if token in self.invalid_tokens:
                results.append(PushResult(
                    token=token,
                    success=False,
                    error_code="messaging/registration-token-not-registered",
                    error_message="Requested entity was not found.",
                ))
            else:
                results.append(PushResult(token=token, success=True))
        return results

    @property
    def sent_tokens(self) -> List[str]:
        return [token for tokens, _message in self.calls for token in tokens]


TEST_USERS = (
    DirectoryUser(id="emp-1", name="Omar Employee", email="omar@test.com", role="employee"),
    DirectoryUser(id="emp-2", name="Hala Employee", email="hala@test.com", role="employee"),
    DirectoryUser(id="asst-1", name="Sara Assistant", email="sara@test.com", role="assistant_manager"),
    DirectoryUser(id="mgr-1", name="Ahmad Manager", email="ahmad@test.com", role="manager"),
    DirectoryUser(id="fin-1", name="Rami Finance", email="rami@test.com", role="finance_manager"),
    DirectoryUser(id="gm-1", name="Nour General", email="nour@test.com", role="general_manager"),
    DirectoryUser(id="proc-1", name="Karim Procurement", email="karim@test.com", role="procurement_officer"),
    DirectoryUser(id="aud-1", name="Lina Auditor", email="lina@test.com", role="auditor"),
    DirectoryUser(
        id="mgr-old", name="Former Manager", email="former@test.com", role="manager", active=False,
    ),
)


@pytest.fixture
def directory():
    return InMemoryUserDirectory(TEST_USERS)


@pytest.fixture
def push_gateway():
    return FakePushGateway()


@pytest.fixture
def storage(tmp_path):
    return LocalObjectStorage(str(tmp_path / "uploads"), STORAGE_BASE_URL)


@pytest.fixture
def orchestrator(db_session, directory, push_gateway):
    return NotificationOrchestrator(db_session, directory, push_gateway)


@pytest.fixture
def workflow(db_session, directory, orchestrator, storage):
    """Workflow wired the way api/deps.py does it, with test collaborators"""
    return PurchaseOrderWorkflow(
        db_session,
        directory,
        orchestrator=orchestrator,
        storage=storage,
    )


# =============================================================================
# Callers
# =============================================================================

@pytest.fixture
def employee():
    return Caller.of("emp-1", "employee")


@pytest.fixture
def other_employee():
    return Caller.of("emp-2", "employee")


@pytest.fixture
def assistant():
    return Caller.of("asst-1", "assistant_manager")


@pytest.fixture
def manager():
    return Caller.of("mgr-1", "manager")


@pytest.fixture
def finance():
    return Caller.of("fin-1", "finance_manager")


@pytest.fixture
def general_manager():
    return Caller.of("gm-1", "general_manager")


@pytest.fixture
def procurement():
    return Caller.of("proc-1", "procurement_officer")


@pytest.fixture
def auditor():
    return Caller.of("aud-1", "auditor")


@pytest.fixture
def new_po_data():
    return po_payload()


# =============================================================================
# API client
# =============================================================================

def caller_headers(user_id: str, role: str) -> dict:
    return {"X-User-Id": user_id, "X-User-Role": role}


@pytest.fixture
def client(db_session, directory, push_gateway, storage):
    """Create a test client with database and collaborator overrides"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_user_directory] = lambda: directory
    app.dependency_overrides[get_push_gateway] = lambda: push_gateway
    app.dependency_overrides[get_object_storage] = lambda: storage
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def employee_headers():
    return caller_headers("emp-1", "employee")


@pytest.fixture
def assistant_headers():
    return caller_headers("asst-1", "assistant_manager")


@pytest.fixture
def manager_headers():
    return caller_headers("mgr-1", "manager")


@pytest.fixture
def procurement_headers():
    return caller_headers("proc-1", "procurement_officer")


@pytest.fixture
def auditor_headers():
    return caller_headers("aud-1", "auditor")


@pytest.fixture
def general_manager_headers():
    return caller_headers("gm-1", "general_manager")
