"""Inbound call events: provider webhooks and the console's save request.

Each handler runs inside one database session owned by the caller and
returns a small status dict the HTTP layer serializes as is.
"""
import asyncio
import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from db.connection import get_db
from db.repositories import playbooks as playbooks_repo
from pipeline.finalization import persist_transcript_with_retry
from pipeline.improvement import trigger_in_background
from pipeline.normalizer import normalize_event
from pipeline.reconciler import attach_analysis, reconcile
from pipeline.scoring import score_utterances
from schemas.call import CallEvent
from tools.elevenlabs_tools import (
    download_audio,
    elevenlabs_get_conversation,
    elevenlabs_get_conversation_audio,
)
from tools.velma_tools import velma_transcribe

logger = logging.getLogger(__name__)

# Provider conversation statuses after which no transcript will appear.
TERMINAL_STATUSES = frozenset({"done", "failed"})


def _ignored(reason: str) -> dict:
    return {"status": "ignored", "reason": reason}


async def _active_playbook_id(session: AsyncSession):
    playbook = await playbooks_repo.get_active(session)
    return playbook.id if playbook else None


async def handle_transcript_event(session: AsyncSession, payload: Any) -> dict:
    """Merge a post-call transcript webhook into its call record."""
    event = normalize_event(payload)
    if event is None:
        logger.info("Ignoring transcript webhook without a conversation id")
        return _ignored("no conversation id")

    call = await reconcile(session, event, await _active_playbook_id(session))
    return {"status": "processed", "call_id": str(call.id)}


async def _resolve_audio(event: CallEvent) -> bytes:
    if event.audio_bytes:
        return event.audio_bytes
    if event.audio_url:
        logger.info("Downloading audio for %s from webhook URL", event.external_conversation_id)
        return await asyncio.to_thread(download_audio, event.audio_url)
    logger.info("Fetching audio for %s from ElevenLabs", event.external_conversation_id)
    return await asyncio.to_thread(
        elevenlabs_get_conversation_audio, event.external_conversation_id
    )


async def handle_audio_event(session: AsyncSession, payload: Any) -> dict:
    """Diarize and score a call's audio, then attach the analysis.

    The call record is created (or merged with any transcript fields the
    payload carries) and committed before the provider round trips, so a
    slow or failed analysis never holds the record's row lock.
    """
    event = normalize_event(payload)
    if event is None:
        logger.info("Ignoring audio webhook without a conversation id")
        return _ignored("no conversation id")

    call = await reconcile(session, event, await _active_playbook_id(session))
    call_id = call.id
    await session.commit()

    audio = await _resolve_audio(event)
    utterances = await asyncio.to_thread(
        velma_transcribe, audio, f"{event.external_conversation_id}.mp3"
    )
    analysis = score_utterances(utterances)
    await attach_analysis(session, call_id, analysis)
    return {"status": "processed", "call_id": str(call_id)}


async def save_transcript(session: AsyncSession, conversation_id: str) -> dict:
    """Pull the conversation from the voice provider and merge it.

    Returns {"ok": True, "call_id": ...} once stored, or
    {"ok": False, "pending": True} while the provider is still producing the
    transcript. Nothing is written while pending.
    """
    conversation = await asyncio.to_thread(elevenlabs_get_conversation, conversation_id)
    event: Optional[CallEvent] = normalize_event(conversation)
    if event is None:
        event = CallEvent(external_conversation_id=conversation_id)
    elif event.external_conversation_id != conversation_id:
        event = event.model_copy(update={"external_conversation_id": conversation_id})

    if not event.transcript and event.status not in TERMINAL_STATUSES:
        logger.debug("Conversation %s not finalized (status=%s)", conversation_id, event.status)
        return {"ok": False, "pending": True}

    call = await reconcile(session, event, await _active_playbook_id(session))
    return {"ok": True, "call_id": str(call.id)}


async def _save_in_own_session(conversation_id: str) -> dict:
    async with get_db() as session:
        return await save_transcript(session, conversation_id)


async def finalize_call(conversation_id: str) -> bool:
    """Background job for a call-ended notification."""
    saved = await persist_transcript_with_retry(conversation_id, _save_in_own_session)
    if saved:
        await trigger_in_background()
    return saved
