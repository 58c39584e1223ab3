# sentient/conftest.py
import os
from datetime import datetime, timezone
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import insert

os.environ.setdefault("ENV", "test")

from sentient.core.auth import CurrentUser  # noqa: E402
from sentient.core.config import settings  # noqa: E402
from sentient.core.database import (  # noqa: E402
    admin_users,
    create_all_tables,
    dispose_engine,
    drop_all_tables,
    get_db_session,
    get_session_factory,
    init_engine,
)
from sentient.core.supabase_auth import TEST_JWT_SECRET, create_test_jwt, set_jwks_provider_for_tests  # noqa: E402
from sentient.features.storage.provider import get_object_store  # noqa: E402
from sentient.tests.mocks import FakeObjectStore  # noqa: E402


@pytest.fixture(scope="function", autouse=True)
def sqlite_db():
    """
    Fresh in-memory SQLite database per test.

    The engine uses a single shared connection, so sessions opened by the app
    and by the test see the same data.
    """
    init_engine("sqlite+pysqlite:///:memory:")
    create_all_tables()
    yield
    drop_all_tables()
    dispose_engine()


@pytest.fixture(scope="function", autouse=True)
def jwt_settings(sqlite_db, monkeypatch):
    """HS256 verification with the test secret; no JWKS fetches."""
    monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setattr(settings, "SUPABASE_JWKS_URL", None)
    yield
    set_jwks_provider_for_tests(None)


@pytest.fixture
def db_session():
    session = get_session_factory()()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def app():
    from sentient.main import app as fastapi_app
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def object_store(app):
    store = FakeObjectStore()
    app.dependency_overrides[get_object_store] = lambda: store
    return store


@pytest.fixture
def trader():
    return CurrentUser(
        id="user-trader-1",
        email="jane.doe@example.com",
        full_name="Jane Doe",
        access_token="unused",
    )


def bearer(user_id: str, email: Optional[str] = "trader@example.com", full_name: Optional[str] = None) -> dict:
    token = create_test_jwt(sub=user_id, email=email, full_name=full_name)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_headers():
    return bearer


@pytest.fixture
def auth_headers():
    return bearer("user-trader-1", email="jane.doe@example.com", full_name="Jane Doe")


def seed_admin(user_id: str, role: str = "admin") -> None:
    with get_db_session() as session:
        session.execute(
            insert(admin_users).values(id=user_id, role=role, created_at=datetime.now(timezone.utc))
        )


@pytest.fixture
def make_admin():
    def _make(user_id: str, role: str = "admin", email: str = "ops@sentientmarkets.io") -> dict:
        seed_admin(user_id, role)
        return bearer(user_id, email=email)
    return _make


@pytest.fixture
def admin_headers():
    seed_admin("admin-1")
    return bearer("admin-1", email="ops@sentientmarkets.io", full_name="Ops Admin")
