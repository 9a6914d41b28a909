"""Shared fixtures.

Tests run against a throwaway SQLite file unless TEST_DATABASE_URL points at
a PostgreSQL database (postgresql+asyncpg://...). DATABASE_URL has to be set
before db.connection is first imported, hence the module-level assignment.
"""
import os
import tempfile

import pytest
import pytest_asyncio

_DB_DIR = tempfile.mkdtemp(prefix="callpulse-tests-")
os.environ["DATABASE_URL"] = (
    os.environ.get("TEST_DATABASE_URL")
    or f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"
)

PROVIDER_ENV = (
    "ELEVENLABS_API_KEY",
    "ELEVENLABS_AGENT_ID",
    "MODULATE_API_KEY",
    "VELMA_API_URL",
    "AIRIA_WEBHOOK_URL",
    "AIRIA_API_KEY",
    "IMPROVEMENT_BATCH_SIZE",
    "IMPROVEMENT_PAUSED",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Start every test with provider credentials and improvement knobs unset."""
    for name in PROVIDER_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest_asyncio.fixture
async def database():
    """Fresh tables per test; the engine pool is disposed on the test's loop."""
    from db.connection import engine
    from db.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def utterance():
    """Factory for diarized utterances."""
    from schemas.call import Utterance

    def make(speaker_id, emotion=None, start_ms=0, text="hello"):
        return Utterance(speaker_id=speaker_id, start_ms=start_ms, text=text, emotion=emotion)

    return make
