"""Route tests over the ASGI app (no network, SQLite store)."""
from unittest.mock import patch

import httpx
import pytest
import pytest_asyncio

from server import app

pytestmark = pytest.mark.usefixtures("database")

PLAYBOOK = {
    "strategy": "Discovery first",
    "opener": "Hey, quick one",
    "objection_style": "Acknowledge, then reframe",
    "tone": "Peer to peer",
    "close_technique": "Offer two slots",
    "rationale": "Baseline",
}


@pytest_asyncio.fixture
async def client():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.mark.asyncio
async def test_transcript_webhook_dedups(client):
    payload = {"conversation_id": "conv-1", "transcript": "agent: hi"}
    first = await client.post("/api/webhooks/transcript", json=payload)
    second = await client.post("/api/webhooks/transcript", json=payload)

    assert first.status_code == 200
    assert first.json()["status"] == "processed"
    assert first.json()["call_id"] == second.json()["call_id"]

    summary = (await client.get("/api/calls/summary")).json()
    assert summary["total_calls"] == 1
    assert summary["latest_call"]["transcript_preview"] == "agent: hi"


@pytest.mark.asyncio
async def test_unrecognized_webhook_is_acknowledged(client):
    resp = await client.post("/api/webhooks/transcript", json={"type": "ping"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "ignored"


@pytest.mark.asyncio
async def test_non_json_body_is_rejected(client):
    resp = await client.post(
        "/api/webhooks/transcript",
        content=b"not json",
        headers={"content-type": "application/json"},
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_audio_webhook_without_velma_key(client):
    resp = await client.post(
        "/api/webhooks/audio",
        json={"conversation_id": "conv-9", "audio_base64": "aGVsbG8="},
    )
    assert resp.status_code == 503
    assert "MODULATE_API_KEY" in resp.json()["error"]

    # the call record was committed before analysis was attempted
    summary = (await client.get("/api/calls/summary")).json()
    assert summary["total_calls"] == 1
    assert summary["analyzed_calls"] == 0


@pytest.mark.asyncio
async def test_playbook_lifecycle(client):
    missing = await client.get("/api/playbooks/latest")
    assert missing.status_code == 404

    created = await client.post("/api/playbooks", json=PLAYBOOK)
    assert created.status_code == 201
    assert created.json()["version"] == 1

    again = await client.post("/api/playbooks", json={**PLAYBOOK, "tone": "Warmer"})
    assert again.json()["version"] == 2

    latest = (await client.get("/api/playbooks/latest")).json()
    assert latest["version"] == 2
    assert latest["tone"] == "Warmer"


@pytest.mark.asyncio
async def test_recent_calls_follow_the_watermark(client):
    await client.post("/api/webhooks/transcript", json={"conversation_id": "old"})
    log = await client.post("/api/improvement-logs", json={"calls_analyzed": 1})
    assert log.status_code == 201
    await client.post("/api/webhooks/transcript", json={"conversation_id": "new"})

    recent = (await client.get("/api/calls/recent")).json()
    assert recent["count"] == 1
    assert recent["calls"][0]["elevenlabs_conversation_id"] == "new"
    assert recent["calls"][0]["call_analysis"] is None

    logs = (await client.get("/api/improvement-logs")).json()["logs"]
    assert [entry["calls_analyzed"] for entry in logs] == [1]


@pytest.mark.asyncio
async def test_trigger_improvement(client, monkeypatch):
    monkeypatch.setenv("IMPROVEMENT_BATCH_SIZE", "2")
    await client.post("/api/webhooks/transcript", json={"conversation_id": "c1"})

    below = (await client.post("/api/trigger-improvement")).json()
    assert below == {
        "triggered": False,
        "calls_since_last": 1,
        "threshold": 2,
        "reason": "below_threshold",
    }

    await client.post("/api/webhooks/transcript", json={"conversation_id": "c2"})
    unconfigured = await client.post("/api/trigger-improvement")
    assert unconfigured.status_code == 503

    monkeypatch.setenv("AIRIA_WEBHOOK_URL", "https://airia.test/hook")
    with patch("pipeline.improvement.submit_improvement_context") as mock_submit:
        fired = await client.post("/api/trigger-improvement")
    assert fired.status_code == 200
    assert fired.json()["triggered"] is True
    assert mock_submit.call_count == 1


@pytest.mark.asyncio
async def test_signed_url_unconfigured(client):
    resp = await client.get("/api/elevenlabs/signed-url")
    assert resp.status_code == 503
    assert "ELEVENLABS_AGENT_ID" in resp.json()["error"]


@pytest.mark.asyncio
async def test_call_ended_schedules_finalization(client):
    finalized = []

    async def fake_finalize(conversation_id):
        finalized.append(conversation_id)

    with patch("pipeline.ingest.finalize_call", fake_finalize):
        resp = await client.post("/api/calls/conv-7/ended")
    assert resp.status_code == 202
    assert finalized == ["conv-7"]


@pytest.mark.asyncio
async def test_save_transcript_route(client):
    with patch(
        "pipeline.ingest.elevenlabs_get_conversation",
        return_value={"conversation_id": "conv-3", "status": "in-progress"},
    ):
        pending = await client.post("/api/calls/save-transcript", json={"conversation_id": "conv-3"})
    assert pending.json() == {"ok": False, "pending": True}

    missing = await client.post("/api/calls/save-transcript", json={})
    assert missing.status_code == 422
