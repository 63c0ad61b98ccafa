"""
Shared fixtures: a fresh encryption key for the session, a temporary SQLite
file per test, and an in-process HTTP client bound to the app.
"""

import os
from datetime import datetime, timedelta, timezone

import pytest
from cryptography.fernet import Fernet

# Must be set before noke.settings is imported
os.environ["NOKE_ENCRYPTION_KEY"] = Fernet.generate_key().decode("utf-8")

from httpx import ASGITransport, AsyncClient  # noqa: E402

from noke.main import app  # noqa: E402
from noke.settings import settings  # noqa: E402
from noke.storage import SQLiteDocumentStore, close_sqlite_db_connection  # noqa: E402
from noke.utils import FernetEncryptor  # noqa: E402


class FakeClock:
    """Controllable replacement for datetime.now(timezone.utc)."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def db(tmp_path, monkeypatch):
    """Point the shared SQLite connection at a temp file for the duration of a test."""
    await close_sqlite_db_connection()
    monkeypatch.setattr(settings, "sqlite_db_path", str(tmp_path / "noke_test.sqlite3"))
    yield
    await close_sqlite_db_connection()


@pytest.fixture
async def store(db):
    document_store = SQLiteDocumentStore()
    await document_store.initialize()
    return document_store


@pytest.fixture
def encryptor():
    return FernetEncryptor(settings.noke_encryption_key)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def client(db):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
