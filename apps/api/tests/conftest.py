"""
Pytest configuration and fixtures

Every test gets its own throwaway SQLite database, so nothing leaks between
tests and no Postgres/Redis is needed. Redis is forced "unavailable" so the
token refresh falls back to in-process locks.
"""
import pytest
import sys
import os
from uuid import uuid4
from cryptography.fernet import Fernet

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Settings are read once at import time; pin them before any app module loads.
os.environ["SECRET_KEY"] = "test-secret-key-for-jwt-signing-0123456789abcdef"
os.environ["TOKEN_ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["WHOOP_CLIENT_ID"] = "test-client-id"
os.environ["WHOOP_CLIENT_SECRET"] = "test-client-secret"
os.environ["WHOOP_REDIRECT_URI"] = "http://testserver/v1/whoop/callback"
os.environ["WEB_APP_BASE_URL"] = "http://web.test"
os.environ["LOG_FORMAT"] = "text"
os.environ["ENVIRONMENT"] = "test"

from core.database import StorageClient  # noqa: E402
from core.security import create_access_token  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_token_encryption():
    """Fresh cipher per test (picks up the pinned key)."""
    import services.token_encryption as te_mod
    te_mod._token_encryption = None
    yield
    te_mod._token_encryption = None


@pytest.fixture(autouse=True)
def _no_redis(monkeypatch):
    monkeypatch.setattr("services.whoop_service.get_redis_client", lambda: None)


@pytest.fixture
def storage(tmp_path):
    """A migrated SQLite storage handle, disposed after the test."""
    client = StorageClient.open(f"sqlite:///{tmp_path / 'test.db'}")
    client.create_all()
    yield client
    client.close()


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def auth_headers(user_id):
    token = create_access_token({"sub": str(user_id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(storage):
    """TestClient wired to the per-test storage (lifespan is not run)."""
    from fastapi.testclient import TestClient
    from core.database import get_storage
    from main import app

    app.dependency_overrides[get_storage] = lambda: storage
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def add_rows(storage):
    """Insert ORM rows in one transaction."""
    def _add(*rows):
        with storage.session() as db:
            db.add_all(rows)
        return rows
    return _add
