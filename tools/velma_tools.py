"""Modulate Velma batch speech-to-text client.

Submits call audio with speaker diarization and emotion tagging switched on
and returns the utterance list the scorer consumes.
"""
import logging
from typing import List

import requests

from config import require, velma_url
from errors import UpstreamError
from schemas.call import Utterance

logger = logging.getLogger(__name__)

SERVICE = "Velma"

FORM_FIELDS = {
    "speaker_diarization": "true",
    "emotion_signal": "true",
    "accent_signal": "false",
    "pii_phi_tagging": "false",
}


def _to_utterance(raw: dict) -> Utterance:
    return Utterance(
        speaker_id=int(raw.get("speaker") or 0),
        start_ms=int(raw.get("start_ms") or 0),
        duration_ms=int(raw.get("duration_ms") or 0),
        text=raw.get("text") or "",
        emotion=raw.get("emotion") or None,
    )


def velma_transcribe(audio_bytes: bytes, filename: str = "call.mp3") -> List[Utterance]:
    """Diarize and emotion-tag a recording.

    Args:
        audio_bytes: Raw audio (mp3 from the voice provider).
        filename: Name sent with the multipart upload.

    Returns:
        Utterances in the order Velma returned them.
    """
    api_key = require("MODULATE_API_KEY")
    try:
        resp = requests.post(
            velma_url(),
            headers={"X-API-Key": api_key},
            files={"upload_file": (filename, audio_bytes, "audio/mpeg")},
            data=FORM_FIELDS,
            timeout=300,
        )
    except requests.RequestException as exc:
        raise UpstreamError(SERVICE, str(exc)) from exc

    if not resp.ok:
        logger.error("Velma request failed: %s %s", resp.status_code, resp.text[:500])
        raise UpstreamError(SERVICE, resp.text[:500], resp.status_code)

    try:
        body = resp.json()
    except ValueError as exc:
        raise UpstreamError(SERVICE, "response was not JSON") from exc

    utterances = [_to_utterance(u) for u in body.get("utterances") or [] if isinstance(u, dict)]
    logger.info(
        "Velma returned %d utterances (%s ms of audio)",
        len(utterances),
        body.get("duration_ms"),
    )
    return utterances
