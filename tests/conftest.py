"""Pytest configuration and fixtures."""

import os
import secrets
from unittest.mock import MagicMock

import pytest

# Generate a unique test secret for this test run to prevent token forgery
_TEST_JWT_SECRET = f"test-only-{secrets.token_urlsafe(32)}"

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("SUPABASE_PUBLISHABLE_KEY", "test-publishable-key")
os.environ.setdefault("JWT_SECRET_KEY", _TEST_JWT_SECRET)

from fastapi.testclient import TestClient  # noqa: E402

from obelixia.auth import create_access_token  # noqa: E402
from obelixia.config import get_settings  # noqa: E402
from obelixia.database import get_db  # noqa: E402
from obelixia.main import app  # noqa: E402
from obelixia.rate_limit import limiter  # noqa: E402
from obelixia.services.panels import PanelService  # noqa: E402
from obelixia.services.visits import VisitSheetAutosaver  # noqa: E402

TEST_ORG = "org_TEST_ONLY"
TEST_USER = "usr_TEST_ONLY_000000"
TEST_MANAGER = "usr_TEST_MANAGER_00"


@pytest.fixture
def mock_db():
    """Supabase client stand-in; route tests patch the database helpers."""
    return MagicMock()


class RecordingQuery:
    """Query builder stand-in that records each chained call."""

    def __init__(self, table: str, rows: list[dict]):
        self.table = table
        self.rows = rows
        self.calls = []

    def __getattr__(self, name):
        def chained(*args, **kwargs):
            self.calls.append((name, args))
            return self
        return chained

    @property
    def selected(self) -> str:
        return next(args[0] for name, args in self.calls if name == "select")

    def filters(self, name: str) -> list[tuple]:
        return [args for call, args in self.calls if call == name]

    def execute(self):
        return MagicMock(data=self.rows, count=len(self.rows))


@pytest.fixture
def recording_db():
    """Supabase client stand-in for testing the database helpers' queries.

    Seed ``rows[table]`` with the rows a table should return; every query
    built is appended to ``queries``.
    """
    db = MagicMock()
    db.rows = {}
    db.queries = []

    def table(name):
        query = RecordingQuery(name, db.rows.get(name, []))
        db.queries.append(query)
        return query

    db.table.side_effect = table
    return db


@pytest.fixture
def client(mock_db):
    """Create a test client with the lifespan running and no real Supabase."""
    app.dependency_overrides[get_db] = lambda: mock_db
    with TestClient(app) as test_client:
        # Long delay so queued edits stay pending until flushed explicitly
        app.state.autosaver = VisitSheetAutosaver(lambda: mock_db, delay=60)
        app.state.panels = PanelService(get_settings(), lambda: mock_db)
        yield test_client
    app.dependency_overrides.clear()


def _headers(user_id: str, role: str) -> dict:
    token = create_access_token(
        get_settings(), user_id=user_id, organization_id=TEST_ORG, role=role
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers():
    """Auth headers for a gestor."""
    return _headers(TEST_USER, "gestor")


@pytest.fixture
def manager_headers():
    """Auth headers for a commercial director."""
    return _headers(TEST_MANAGER, "director_comercial")


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield
