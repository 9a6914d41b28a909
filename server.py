"""HTTP surface: provider webhooks plus the read/admin routes used by the
agent console and the playbook rewrite pipeline.

Run with `python main.py serve` or `uvicorn server:app`.
"""
import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, FastAPI, Request
from fastapi.responses import JSONResponse

from db.connection import dispose_engine, get_db
from db.models import CallRecord, ImprovementLog, Playbook
from db.repositories import calls as calls_repo
from db.repositories import improvement as improvement_repo
from db.repositories import playbooks as playbooks_repo
from errors import CallPulseError, UpstreamError
from pipeline import ingest
from pipeline.improvement import maybe_trigger, publish_playbook, trigger_in_background
from schemas.playbook import ImprovementLogCreate, PlaybookCreate, SaveTranscriptRequest
from tools.elevenlabs_tools import elevenlabs_get_signed_url

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await dispose_engine()


app = FastAPI(title="Call Pulse", lifespan=lifespan)

webhooks = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])
calls = APIRouter(prefix="/api/calls", tags=["Calls"])
improvement = APIRouter(prefix="/api", tags=["Improvement"])


@app.exception_handler(CallPulseError)
async def call_pulse_error_handler(request: Request, exc: CallPulseError):
    logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    detail = exc.detail if isinstance(exc, UpstreamError) else None
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc), "detail": detail})


async def _json_body(request: Request) -> Optional[Any]:
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as exc:
        logger.warning("Webhook body is not JSON: %s", exc)
        return None


def _bad_body() -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "Request body must be JSON"})


# ---------------------------------------------------------------------------
# Serializers
# ---------------------------------------------------------------------------


def _call_dict(call: CallRecord) -> dict:
    analysis = call.analysis
    return {
        "id": str(call.id),
        "elevenlabs_conversation_id": call.external_conversation_id,
        "transcript": call.transcript,
        "outcome": call.outcome,
        "main_objection": call.main_objection,
        "interest_level": call.interest_level,
        "playbook_id": str(call.playbook_id) if call.playbook_id else None,
        "created_at": call.created_at.isoformat(),
        "call_analysis": {
            "engagement_score": analysis.engagement_score,
            "engagement_trend": analysis.engagement_trend,
            "prospect_emotions": analysis.prospect_emotions,
            "agent_tone": analysis.agent_tone,
            "deception_flags": analysis.deception_flags,
            "key_moments": analysis.key_moments,
        }
        if analysis is not None
        else None,
    }


def _playbook_dict(playbook: Playbook) -> dict:
    return {
        "id": str(playbook.id),
        "version": playbook.version,
        "strategy": playbook.strategy,
        "opener": playbook.opener,
        "objection_style": playbook.objection_style,
        "tone": playbook.tone,
        "close_technique": playbook.close_technique,
        "rationale": playbook.rationale,
        "created_at": playbook.created_at.isoformat(),
    }


def _log_dict(entry: ImprovementLog) -> dict:
    return {
        "id": str(entry.id),
        "calls_analyzed": entry.calls_analyzed,
        "old_playbook_id": str(entry.old_playbook_id) if entry.old_playbook_id else None,
        "new_playbook_id": str(entry.new_playbook_id) if entry.new_playbook_id else None,
        "analysis_summary": entry.analysis_summary,
        "created_at": entry.created_at.isoformat(),
    }


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


@webhooks.get("/transcript")
async def transcript_webhook_health():
    return {"ok": True, "endpoint": "POST /api/webhooks/transcript"}


@webhooks.post("/transcript")
async def transcript_webhook(request: Request, background_tasks: BackgroundTasks):
    payload = await _json_body(request)
    if payload is None:
        return _bad_body()
    async with get_db() as session:
        result = await ingest.handle_transcript_event(session, payload)
    if result["status"] == "processed":
        background_tasks.add_task(trigger_in_background)
    return result


@webhooks.post("/audio")
async def audio_webhook(request: Request, background_tasks: BackgroundTasks):
    payload = await _json_body(request)
    if payload is None:
        return _bad_body()
    async with get_db() as session:
        result = await ingest.handle_audio_event(session, payload)
    if result["status"] == "processed":
        background_tasks.add_task(trigger_in_background)
    return result


# ---------------------------------------------------------------------------
# Calls
# ---------------------------------------------------------------------------


@calls.post("/save-transcript")
async def save_transcript(body: SaveTranscriptRequest):
    async with get_db() as session:
        return await ingest.save_transcript(session, body.conversation_id)


@calls.post("/{conversation_id}/ended", status_code=202)
async def call_ended(conversation_id: str, background_tasks: BackgroundTasks):
    background_tasks.add_task(ingest.finalize_call, conversation_id)
    return {"status": "accepted", "conversation_id": conversation_id}


@calls.get("/recent")
async def recent_calls():
    async with get_db() as session:
        since = await improvement_repo.get_watermark(session)
        rows = await calls_repo.get_since(session, since)
    return {
        "since": since.isoformat(),
        "count": len(rows),
        "calls": [_call_dict(c) for c in rows],
    }


@calls.get("/summary")
async def calls_summary():
    async with get_db() as session:
        return await calls_repo.summary(session)


# ---------------------------------------------------------------------------
# Playbooks, improvement cycle, console
# ---------------------------------------------------------------------------


@improvement.get("/playbooks/latest")
async def latest_playbook():
    async with get_db() as session:
        playbook = await playbooks_repo.get_active(session)
    if playbook is None:
        return JSONResponse(status_code=404, content={"error": "No playbook found"})
    return _playbook_dict(playbook)


@improvement.post("/playbooks", status_code=201)
async def create_playbook(body: PlaybookCreate):
    playbook = await publish_playbook(body.model_dump())
    return _playbook_dict(playbook)


@improvement.post("/improvement-logs", status_code=201)
async def create_improvement_log(body: ImprovementLogCreate):
    async with get_db() as session:
        entry = await improvement_repo.record_cycle(
            session,
            body.calls_analyzed,
            old_playbook_id=body.old_playbook_id,
            new_playbook_id=body.new_playbook_id,
            analysis_summary=body.analysis_summary,
        )
    return _log_dict(entry)


@improvement.get("/improvement-logs")
async def list_improvement_logs(limit: int = 20):
    async with get_db() as session:
        entries = await improvement_repo.get_recent_logs(session, limit=limit)
    return {"logs": [_log_dict(e) for e in entries]}


@improvement.post("/trigger-improvement")
async def trigger_improvement():
    async with get_db() as session:
        result = await maybe_trigger(session)
    return result.model_dump()


@improvement.get("/elevenlabs/signed-url")
async def signed_url():
    url = await asyncio.to_thread(elevenlabs_get_signed_url)
    return {"signed_url": url}


app.include_router(webhooks)
app.include_router(calls)
app.include_router(improvement)
