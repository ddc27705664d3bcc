"""
Pytest configuration and fixtures for ContentGate API tests.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("NOTIFICATION_WEBHOOKS_ENABLED", "false")

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from contentgate.auth import create_access_token, get_password_hash
from contentgate.database import Base, get_db
from contentgate.engine import ApprovalOrchestrator, WorkflowRegistry
from contentgate.engine.checks import AutomatedCheckRunner, PolicyScore
from contentgate.engine.identity import DirectoryIdentityResolver, StaticIdentityResolver
from contentgate.engine.notifications import NotificationDispatcher
from contentgate.limiter import limiter
from contentgate.main import app
from contentgate.models.user import User
from contentgate.routes.approvals import get_orchestrator
from contentgate.schemas.workflow import WorkflowDefinition

# Disable rate limiting for tests
limiter.enabled = False

# Use in-memory SQLite for tests with shared connection
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Global session for sharing across requests
_test_session = None


def get_test_db():
    """Get the shared test database session."""
    yield _test_session


# ============================================================
# ENGINE COLLABORATORS
# ============================================================

class StubScorer:
    """Policy scorer returning canned results per dimension.

    A result may be a PolicyScore, an exception instance (raised on every
    call) or a callable taking the content.
    """

    def __init__(self, **results):
        self.results = results
        self.calls = []

    def score(self, content, dimension, options):
        self.calls.append(dimension)
        result = self.results.get(dimension, PolicyScore(passed=True, score=1.0))
        if isinstance(result, Exception):
            raise result
        if callable(result):
            return result(content)
        return result


class RecordingSink:
    """Notification sink that keeps every event it is given."""

    def __init__(self):
        self.events = []

    def notify(self, event, recipients, channels):
        self.events.append(event)

    def names(self):
        return [e.name for e in self.events]

    def named(self, name):
        return [e for e in self.events if e.name == name]


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    global _test_session

    # Create all tables
    Base.metadata.create_all(bind=engine)

    # Create a session
    _test_session = TestingSessionLocal()

    # Override the get_db dependency
    app.dependency_overrides[get_db] = get_test_db

    yield _test_session

    # Cleanup
    app.dependency_overrides.clear()
    _test_session.close()
    _test_session = None

    # Drop all tables
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def scorer():
    return StubScorer()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def check_runner(scorer):
    return AutomatedCheckRunner(scorer, max_attempts=2, backoff_min=0, backoff_max=0)


@pytest.fixture
def identity():
    """Reviewer -> roles map used by engine tests."""
    return StaticIdentityResolver({
        "casey": ["content_manager"],
        "jordan": ["content_manager"],
        "morgan": ["marketing_director"],
        "lee": ["legal"],
    })


@pytest.fixture
def orchestrator(db, check_runner, identity, sink, clock):
    return ApprovalOrchestrator(
        db,
        check_runner=check_runner,
        identity=identity,
        notifier=NotificationDispatcher([sink]),
        clock=clock,
    )


@pytest.fixture
def registry(db):
    return WorkflowRegistry(db)


@pytest.fixture
def make_workflow(registry):
    """Create a workflow from step dicts; rules and organization are optional."""
    def factory(steps, rules=None, organization_id="org_1", name="Review"):
        definition = WorkflowDefinition.model_validate({
            "organization_id": organization_id,
            "name": name,
            "steps": steps,
            "rules": rules or {},
        })
        return registry.create(definition, created_by="tester")
    return factory


@pytest.fixture
def submission():
    """Build an ApprovalRequestCreate payload for a workflow."""
    def factory(workflow_id, body="Launching our new spring collection this week.", **overrides):
        payload = {
            "content_piece_id": "piece-1",
            "workflow_id": workflow_id,
            "metadata": {"platform": "instagram", "content_type": "post"},
            "content": {"title": "Spring", "body": body, "hashtags": ["#spring"]},
        }
        payload.update(overrides)
        return payload
    return factory


# ============================================================
# API FIXTURES
# ============================================================

@pytest.fixture(scope="function")
def client(db, check_runner, sink):
    """Create a test client whose engine uses the stub scorer and users table."""
    def get_test_orchestrator():
        return ApprovalOrchestrator(
            _test_session,
            check_runner=check_runner,
            identity=DirectoryIdentityResolver(_test_session),
            notifier=NotificationDispatcher([sink]),
        )

    app.dependency_overrides[get_orchestrator] = get_test_orchestrator
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(db):
    def factory(username, roles=(), organization_id="org_1", password="testpassword123"):
        user = User(
            email=f"{username}@example.com",
            username=username,
            hashed_password=get_password_hash(password),
            display_name=username.title(),
            organization_id=organization_id,
            roles=list(roles),
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return factory


@pytest.fixture(scope="function")
def test_user(make_user):
    """Create a test user."""
    return make_user("tester", roles=["creator"])


def headers_for(user):
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def auth_headers(test_user):
    """Get auth headers for the test user."""
    return headers_for(test_user)


@pytest.fixture
def headers():
    """Auth headers for any user."""
    return headers_for
