"""Shared fixtures for the EasyPrompt test suite.

Provides:
- A known ENCRYPTION_MASTER_KEY and a clean provider environment for every test
- Temporary SQLite database per test
- AppContext wired to that database
- FastAPI async test client via httpx.AsyncClient
- A factory for fake LiteLLM completion responses
"""

from types import SimpleNamespace

import pytest
import pytest_asyncio

TEST_MASTER_KEY = "0123456789abcdef" * 4
OTHER_MASTER_KEY = "fedcba9876543210" * 4

PROVIDER_ENV_PREFIXES = ("ANTHROPIC", "OPENAI", "GOOGLE", "KIMI", "OPENROUTER", "OLLAMA")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Known master key; no provider keys or endpoints leaking in from the host."""
    monkeypatch.setenv("ENCRYPTION_MASTER_KEY", TEST_MASTER_KEY)
    for prefix in PROVIDER_ENV_PREFIXES:
        monkeypatch.delenv(f"{prefix}_API_KEY", raising=False)
        monkeypatch.delenv(f"{prefix}_ENDPOINT", raising=False)
    monkeypatch.delenv("VERCEL", raising=False)


@pytest_asyncio.fixture
async def database(tmp_path):
    """Fresh, initialised database in a temp dir."""
    from db import Database

    database = Database(tmp_path / "test.db")
    await database.init_db()
    return database


@pytest_asyncio.fixture
async def user(database):
    row = await database.create_user("test@example.com", "hashed_pw_123", "Test User")
    return {"id": row["id"], "email": row["email"], "name": row["name"]}


@pytest_asyncio.fixture
async def other_user(database):
    row = await database.create_user("other@example.com", "hashed_pw_456")
    return {"id": row["id"], "email": row["email"], "name": row["name"]}


@pytest.fixture
def settings(tmp_path):
    from settings import Settings

    return Settings(db_path=tmp_path / "test.db")


@pytest.fixture
def ctx(database, settings):
    from actions import AppContext

    return AppContext(db=database, settings=settings)


@pytest.fixture
def completion():
    """Build an object shaped like a LiteLLM ModelResponse with the given text."""
    def _make(content):
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])
    return _make


@pytest_asyncio.fixture
async def app_client(tmp_path, monkeypatch):
    """httpx.AsyncClient wired to the FastAPI app through its lifespan.

    Uses httpx.ASGITransport so no real HTTP server is started.
    """
    import httpx

    monkeypatch.setenv("DB_PATH", str(tmp_path / "api.db"))
    from app import app, lifespan

    async with lifespan(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver", timeout=30.0) as client:
            yield client


@pytest_asyncio.fixture
async def auth_headers(app_client):
    """Register a user through the API and return a Bearer header for it."""
    resp = await app_client.post("/api/auth/register", json={
        "email": "apiuser@example.com",
        "password": "TestPass123!",
    })
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}
