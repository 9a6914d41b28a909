"""Integration tests for core repository methods."""
from datetime import datetime, timezone

import pytest

from db import get_db
from db.repositories import calls as calls_repo
from db.repositories import improvement as improvement_repo
from db.repositories import playbooks as playbooks_repo
from errors import PersistenceError

pytestmark = pytest.mark.usefixtures("database")


@pytest.mark.asyncio
async def test_merge_upsert_dedups_on_conversation_id():
    """Two merges for one conversation return the same row."""
    async with get_db() as session:
        first = await calls_repo.merge_upsert(session, "conv-a", {"transcript": "agent: hi"})
    async with get_db() as session:
        second = await calls_repo.merge_upsert(session, "conv-a", {"outcome": "callback"})

    assert first.id == second.id
    assert second.transcript == "agent: hi"
    assert second.outcome == "callback"


@pytest.mark.asyncio
async def test_merge_upsert_sets_playbook_only_once():
    async with get_db() as session:
        await playbooks_repo.seed_baseline(session)
        v1 = await playbooks_repo.get_active(session)
        v2 = await playbooks_repo.create_next(session, playbooks_repo.BASELINE_PLAYBOOK)
        await calls_repo.merge_upsert(session, "conv-p", {}, playbook_id=v1.id)
        call = await calls_repo.merge_upsert(session, "conv-p", {}, playbook_id=v2.id)
    assert call.playbook_id == v1.id


@pytest.mark.asyncio
async def test_merge_upsert_rejects_unknown_fields():
    async with get_db() as session:
        with pytest.raises(ValueError):
            await calls_repo.merge_upsert(session, "conv-x", {"created_at": "now"})


@pytest.mark.asyncio
async def test_playbook_versions_increase():
    async with get_db() as session:
        assert await playbooks_repo.get_active(session) is None
        seeded = await playbooks_repo.seed_baseline(session)
        assert seeded.version == 1
        assert await playbooks_repo.seed_baseline(session) is None
        nxt = await playbooks_repo.create_next(session, playbooks_repo.BASELINE_PLAYBOOK)
    assert nxt.version == 2
    async with get_db() as session:
        active = await playbooks_repo.get_active(session)
    assert active.id == nxt.id


@pytest.mark.asyncio
async def test_invalid_outcome_is_a_persistence_error():
    with pytest.raises(PersistenceError):
        async with get_db() as session:
            await calls_repo.merge_upsert(session, "conv-bad", {"outcome": "sold"})
    async with get_db() as session:
        assert await calls_repo.get_by_external_id(session, "conv-bad") is None


@pytest.mark.asyncio
async def test_watermark_and_counts():
    async with get_db() as session:
        assert await improvement_repo.get_watermark(session) == improvement_repo.EPOCH
        await calls_repo.merge_upsert(session, "before", {})

    async with get_db() as session:
        entry = await improvement_repo.record_cycle(session, 1, analysis_summary="first pass")

    async with get_db() as session:
        await calls_repo.merge_upsert(session, "after", {})

    async with get_db() as session:
        watermark = await improvement_repo.get_watermark(session)
        assert watermark == entry.created_at
        assert await calls_repo.count_since(session, watermark) == 1
        recent = await calls_repo.get_since(session, watermark)
        logs = await improvement_repo.get_recent_logs(session)
    assert [c.external_conversation_id for c in recent] == ["after"]
    assert [log.analysis_summary for log in logs] == ["first pass"]


@pytest.mark.asyncio
async def test_trigger_claim_is_exclusive():
    watermark = datetime(2026, 1, 1, tzinfo=timezone.utc)
    async with get_db() as session:
        claim = await improvement_repo.claim_trigger(session, watermark, 3)
    assert claim is not None

    async with get_db() as session:
        assert await improvement_repo.claim_trigger(session, watermark, 4) is None
        await improvement_repo.release_trigger(session, claim.id)

    async with get_db() as session:
        assert await improvement_repo.claim_trigger(session, watermark, 5) is not None


@pytest.mark.asyncio
async def test_summary():
    async with get_db() as session:
        empty = await calls_repo.summary(session)
    assert empty == {"total_calls": 0, "analyzed_calls": 0, "latest_call": None}

    async with get_db() as session:
        await calls_repo.merge_upsert(session, "conv-s", {"transcript": "y" * 300})
    async with get_db() as session:
        result = await calls_repo.summary(session)
    assert result["total_calls"] == 1
    assert result["latest_call"]["conversation_id"] == "conv-s"
    assert result["latest_call"]["transcript_preview"] == "y" * 180
    assert result["latest_call"]["has_analysis"] is False
