"""Pytest configuration and shared fixtures.

Tests run against a throwaway SQLite file (aiosqlite) unless DATABASE_URL is set.
"""

import os
import tempfile

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test DB before app imports so config/engine use it
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///" + os.path.join(tempfile.gettempdir(), "token_session_test.db"),
)

from token_session.db.base import Base
from token_session.db.session import async_session_maker, engine
from token_session.main import app
from token_session.models import SessionRecord, TokenBinding  # noqa: F401 - register tables
from token_session.services.session_store import DbSessionStore
from token_session.services.token_rotator import TokenRotator
from token_session.services.token_store import TokenStore


@pytest_asyncio.fixture
async def clean_db():
    """Recreate all tables so each test starts empty."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield


@pytest_asyncio.fixture
async def client(clean_db):
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def token_store(clean_db):
    return TokenStore(engine, async_session_maker)


@pytest_asyncio.fixture
async def session_store(clean_db):
    return DbSessionStore(async_session_maker, timeout=600)


@pytest_asyncio.fixture
async def rotator(token_store, session_store):
    return TokenRotator(token_store, session_store, timeout=600, max_attempts=3)
