"""Integration tests for call reconciliation and the ingest handlers."""
import base64
from unittest.mock import patch

import pytest

from db import get_db
from db.repositories import analysis as analysis_repo
from db.repositories import calls as calls_repo
from db.repositories import playbooks as playbooks_repo
from db.repositories.improvement import EPOCH
from pipeline import ingest
from pipeline.normalizer import normalize_event
from pipeline.reconciler import attach_analysis, reconcile
from schemas.call import CallAnalysisOutput, CallEvent, Utterance

pytestmark = pytest.mark.usefixtures("database")

INGEST_MODULE = "pipeline.ingest"

TRANSCRIPT_WEBHOOK = {
    "type": "post_call_transcription",
    "data": {
        "conversation_id": "conv-1",
        "status": "done",
        "transcript": [
            {"role": "agent", "message": "Hi, quick one"},
            {"role": "user", "message": "Go ahead"},
        ],
        "analysis": {"data_collection_results": {"outcome": {"value": "no_close"}}},
    },
}

VELMA_UTTERANCES = [
    Utterance(speaker_id=1, start_ms=0, text="Hi, quick one", emotion="Confident"),
    Utterance(speaker_id=2, start_ms=1200, text="Go ahead", emotion="Interested"),
    Utterance(speaker_id=2, start_ms=5000, text="Not right now", emotion="Bored"),
]


async def _snapshot(conversation_id):
    async with get_db() as session:
        call = await calls_repo.get_by_external_id(session, conversation_id)
        return {
            "id": call.id,
            "transcript": call.transcript,
            "outcome": call.outcome,
            "main_objection": call.main_objection,
            "interest_level": call.interest_level,
            "playbook_id": call.playbook_id,
            "created_at": call.created_at,
        }


@pytest.mark.asyncio
async def test_duplicate_delivery_is_idempotent():
    event = normalize_event(TRANSCRIPT_WEBHOOK)
    async with get_db() as session:
        await reconcile(session, event)
    once = await _snapshot("conv-1")

    async with get_db() as session:
        await reconcile(session, event)
    twice = await _snapshot("conv-1")

    assert once == twice
    assert twice["transcript"] == "agent: Hi, quick one\nuser: Go ahead"
    async with get_db() as session:
        assert await calls_repo.count_since(session, EPOCH) == 1


@pytest.mark.asyncio
async def test_empty_values_never_erase():
    async with get_db() as session:
        await reconcile(session, CallEvent(
            external_conversation_id="conv-m",
            transcript="agent: hello",
            outcome="callback",
            main_objection="price",
        ))
        await reconcile(session, CallEvent(
            external_conversation_id="conv-m",
            transcript="",
            interest_level="high",
        ))
    snap = await _snapshot("conv-m")
    assert snap["transcript"] == "agent: hello"
    assert snap["outcome"] == "callback"
    assert snap["main_objection"] == "price"
    assert snap["interest_level"] == "high"


@pytest.mark.asyncio
async def test_later_values_overwrite():
    async with get_db() as session:
        await reconcile(session, CallEvent(external_conversation_id="conv-o", outcome="callback"))
        call = await reconcile(session, CallEvent(external_conversation_id="conv-o", outcome="converted"))
    assert call.outcome == "converted"


@pytest.mark.asyncio
async def test_active_playbook_attached_on_first_write():
    async with get_db() as session:
        await playbooks_repo.seed_baseline(session)
    async with get_db() as session:
        result = await ingest.handle_transcript_event(session, TRANSCRIPT_WEBHOOK)
    async with get_db() as session:
        active = await playbooks_repo.get_active(session)
    assert result["status"] == "processed"
    assert (await _snapshot("conv-1"))["playbook_id"] == active.id


@pytest.mark.asyncio
async def test_unrecognized_payload_is_ignored():
    async with get_db() as session:
        result = await ingest.handle_transcript_event(session, {"ping": True})
    assert result == {"status": "ignored", "reason": "no conversation id"}


@pytest.mark.asyncio
async def test_attach_analysis_replaces_wholesale():
    async with get_db() as session:
        call = await reconcile(session, CallEvent(external_conversation_id="conv-a"))
        await attach_analysis(session, call.id, CallAnalysisOutput(
            engagement_score=0.9, engagement_trend="rising", agent_tone="Calm",
        ))
    async with get_db() as session:
        await attach_analysis(session, call.id, CallAnalysisOutput(engagement_score=0.4))
    async with get_db() as session:
        row = await analysis_repo.get_by_call(session, call.id)
    assert row.engagement_score == 0.4
    assert row.engagement_trend is None
    assert row.agent_tone is None


@pytest.mark.asyncio
@patch(f"{INGEST_MODULE}.velma_transcribe", return_value=VELMA_UTTERANCES)
async def test_audio_before_transcript(mock_velma):
    """Audio analysis lands first; the transcript fills in later without touching it."""
    audio_payload = {
        "conversation_id": "conv-2",
        "audio_base64": base64.b64encode(b"fake mp3").decode(),
    }
    async with get_db() as session:
        result = await ingest.handle_audio_event(session, audio_payload)
    assert result["status"] == "processed"
    mock_velma.assert_called_once_with(b"fake mp3", "conv-2.mp3")

    before = await _snapshot("conv-2")
    assert before["transcript"] is None
    async with get_db() as session:
        analysis_before = await analysis_repo.get_by_call(session, before["id"])
    assert analysis_before.engagement_score == pytest.approx(0.5)
    assert analysis_before.agent_tone == "Confident"
    assert analysis_before.key_moments == [
        {"timestamp_seconds": 1, "label": "Interested", "description": '"Go ahead"'}
    ]

    transcript_payload = {
        "conversation_id": "conv-2",
        "transcript": "agent: Hi, quick one\nuser: Go ahead",
    }
    async with get_db() as session:
        await ingest.handle_transcript_event(session, transcript_payload)

    after = await _snapshot("conv-2")
    assert after["id"] == before["id"]
    assert after["created_at"] == before["created_at"]
    assert after["transcript"] == "agent: Hi, quick one\nuser: Go ahead"
    async with get_db() as session:
        analysis_after = await analysis_repo.get_by_call(session, after["id"])
    assert analysis_after.engagement_score == analysis_before.engagement_score
    assert analysis_after.deception_flags == analysis_before.deception_flags


@pytest.mark.asyncio
@patch(f"{INGEST_MODULE}.velma_transcribe", return_value=[])
@patch(f"{INGEST_MODULE}.elevenlabs_get_conversation_audio", return_value=b"from provider")
async def test_audio_falls_back_to_provider_fetch(mock_audio, mock_velma):
    async with get_db() as session:
        await ingest.handle_audio_event(session, {"conversation_id": "conv-f"})
    mock_audio.assert_called_once_with("conv-f")
    mock_velma.assert_called_once_with(b"from provider", "conv-f.mp3")


@pytest.mark.asyncio
@patch(f"{INGEST_MODULE}.elevenlabs_get_conversation")
async def test_save_transcript_pending_then_done(mock_get):
    mock_get.return_value = {"conversation_id": "conv-s", "status": "processing", "transcript": []}
    async with get_db() as session:
        pending = await ingest.save_transcript(session, "conv-s")
    assert pending == {"ok": False, "pending": True}
    async with get_db() as session:
        assert await calls_repo.get_by_external_id(session, "conv-s") is None

    mock_get.return_value = {
        "conversation_id": "conv-s",
        "status": "done",
        "transcript": [{"role": "agent", "message": "Bye"}],
        "analysis": {"data_collection_results": {"interest_level": {"value": "low"}}},
    }
    async with get_db() as session:
        done = await ingest.save_transcript(session, "conv-s")
    assert done["ok"] is True
    snap = await _snapshot("conv-s")
    assert snap["transcript"] == "agent: Bye"
    assert snap["interest_level"] == "low"
