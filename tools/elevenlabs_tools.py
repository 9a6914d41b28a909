"""ElevenLabs Conversational AI client.

Read-only calls used after a conversation ends: conversation detail (for
transcript finalization), post-call audio, and the signed session URL the
browser console needs to start a call.

Blocking `requests` calls; async callers wrap them in asyncio.to_thread.
"""
import logging
from typing import Any, Dict, Optional

import requests

from config import optional, require
from errors import MissingConfigError, UpstreamError

logger = logging.getLogger(__name__)


ELEVENLABS_BASE = "https://api.elevenlabs.io/v1"
SERVICE = "ElevenLabs"


def _headers() -> Dict[str, str]:
    return {"xi-api-key": require("ELEVENLABS_API_KEY")}


def _get(path: str, timeout: int, **kwargs) -> requests.Response:
    headers = _headers()
    try:
        resp = requests.get(f"{ELEVENLABS_BASE}{path}", headers=headers, timeout=timeout, **kwargs)
    except requests.RequestException as exc:
        raise UpstreamError(SERVICE, str(exc)) from exc
    if not resp.ok:
        logger.error("ElevenLabs GET %s failed: %s %s", path, resp.status_code, resp.text[:500])
        raise UpstreamError(SERVICE, resp.text[:500], resp.status_code)
    return resp


def elevenlabs_get_conversation(conversation_id: str) -> Dict[str, Any]:
    """Fetch conversation detail.

    Args:
        conversation_id: ElevenLabs conversation id.

    Returns:
        The raw conversation dict: 'conversation_id', 'status', 'transcript'
        (list of role/message turns) and 'analysis.data_collection_results'.
    """
    resp = _get(f"/convai/conversations/{conversation_id}", timeout=10)
    return resp.json()


def elevenlabs_get_conversation_audio(conversation_id: str) -> bytes:
    """Download the recorded audio (mp3) of a finished conversation."""
    resp = _get(f"/convai/conversations/{conversation_id}/audio", timeout=60)
    return resp.content


def elevenlabs_get_signed_url(agent_id: Optional[str] = None) -> str:
    """Return a signed websocket URL for starting a session with the agent.

    Args:
        agent_id: Conversational AI agent id (defaults to env ELEVENLABS_AGENT_ID).
    """
    agent = agent_id or optional("ELEVENLABS_AGENT_ID")
    if not agent or agent == "your_agent_id_here":
        raise MissingConfigError(
            "ELEVENLABS_AGENT_ID", "create an agent in the ElevenLabs console first"
        )
    resp = _get("/convai/conversation/get_signed_url", timeout=10, params={"agent_id": agent})
    return resp.json().get("signed_url", "")


def download_audio(url: str) -> bytes:
    """Fetch audio from a URL carried in a webhook payload."""
    try:
        resp = requests.get(url, timeout=60)
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise UpstreamError("audio download", str(exc)) from exc
    return resp.content
