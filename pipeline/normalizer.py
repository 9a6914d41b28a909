"""Provider payload normalization.

Maps the webhook and API shapes the voice provider sends (post-call
transcription webhooks, post-call audio webhooks, conversation detail
responses, plus older flat variants) onto one CallEvent.

Every lookup is an ordered chain of candidate locations; the first
non-empty match wins. Nothing here performs I/O or raises on a payload that
parsed as JSON: unknown shapes degrade to absent fields, and a payload with
no conversation id normalizes to None ("ignored").
"""
import base64
import binascii
import json
import logging
from typing import Any, Callable, Iterable, Optional

from schemas.call import CALL_OUTCOMES, CallEvent

logger = logging.getLogger(__name__)

ID_KEYS = ("conversation_id", "conversationId", "elevenlabs_conversation_id")
TRANSCRIPT_KEYS = ("transcript",)
INLINE_AUDIO_KEYS = ("audio", "audio_base64", "full_audio")
AUDIO_URL_KEYS = ("audio_url", "recording_url")
STATUS_KEYS = ("status",)

Location = Callable[[dict], Optional[dict]]


def _top_level(payload: dict) -> Optional[dict]:
    return payload


def _data(payload: dict) -> Optional[dict]:
    data = payload.get("data")
    return data if isinstance(data, dict) else None


def _event_data(payload: dict) -> Optional[dict]:
    event = payload.get("event")
    if not isinstance(event, dict):
        return None
    data = event.get("data")
    return data if isinstance(data, dict) else None


# Priority order for every field lookup.
LOCATIONS: tuple[Location, ...] = (_top_level, _data, _event_data)


def _containers(payload: dict) -> Iterable[dict]:
    for location in LOCATIONS:
        container = location(payload)
        if container is not None:
            yield container


def _first_value(payload: dict, keys: Iterable[str]) -> Any:
    keys = tuple(keys)
    for container in _containers(payload):
        for key in keys:
            value = container.get(key)
            if value is None:
                continue
            if isinstance(value, str) and not value.strip():
                continue
            if isinstance(value, (list, dict)) and not value:
                continue
            return value
    return None


def extract_conversation_id(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    value = _first_value(payload, ID_KEYS)
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    value = str(value).strip()
    return value or None


def _is_turn_list(value: list) -> bool:
    """Every item is a dict and at least one carries a "message" key."""
    return (
        bool(value)
        and all(isinstance(t, dict) for t in value)
        and any("message" in t for t in value)
    )


def flatten_transcript(value: Any) -> Optional[str]:
    """Render a transcript as text; empty results are None.

    - str: stripped as is
    - list of {role, message} turns: "role: message" lines, turns with an
      empty message (tool calls) skipped
    - anything else, including lists with no such turns: JSON, verbatim
    """
    if value is None:
        return None
    if isinstance(value, str):
        text = value
    elif isinstance(value, list) and _is_turn_list(value):
        lines = []
        for turn in value:
            message = turn.get("message")
            if message is None or not str(message).strip():
                continue
            role = turn.get("role") or "unknown"
            lines.append(f"{role}: {str(message).strip()}")
        text = "\n".join(lines)
    else:
        try:
            text = json.dumps(value, default=str)
        except (TypeError, ValueError):
            text = str(value)
    text = text.strip()
    return text or None


def decode_audio(value: Any) -> Optional[bytes]:
    """Decode inline base64 audio; undecodable or empty input is None."""
    if not isinstance(value, str) or not value.strip():
        return None
    encoded = "".join(value.split())
    if encoded.startswith("data:") and "," in encoded:
        encoded = encoded.split(",", 1)[1]
    try:
        audio = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        logger.debug("Inline audio is not valid base64 (%d chars)", len(encoded))
        return None
    return audio or None


def _classification_sources(payload: dict) -> Iterable[dict]:
    for container in _containers(payload):
        results = container.get("data_collection_results")
        if isinstance(results, dict):
            yield results
        analysis = container.get("analysis")
        if isinstance(analysis, dict):
            nested = analysis.get("data_collection_results")
            if isinstance(nested, dict):
                yield nested


def extract_classification(payload: dict, field: str) -> Optional[str]:
    """Read data_collection_results.<field>.value from the first location that has it."""
    for results in _classification_sources(payload):
        entry = results.get(field)
        if isinstance(entry, dict):
            value = entry.get("value")
        else:
            value = entry
        if value is None or isinstance(value, (dict, list)):
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def normalize_outcome(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    outcome = value.strip().lower().replace(" ", "_").replace("-", "_")
    if not outcome:
        return None
    return outcome if outcome in CALL_OUTCOMES else "unknown"


def normalize_event(payload: Any) -> Optional[CallEvent]:
    """Normalize a provider payload, or return None when no conversation id is found."""
    conversation_id = extract_conversation_id(payload)
    if conversation_id is None:
        return None

    audio_url = _first_value(payload, AUDIO_URL_KEYS)
    status = _first_value(payload, STATUS_KEYS)

    return CallEvent(
        external_conversation_id=conversation_id,
        transcript=flatten_transcript(_first_value(payload, TRANSCRIPT_KEYS)),
        outcome=normalize_outcome(extract_classification(payload, "outcome")),
        main_objection=extract_classification(payload, "main_objection"),
        interest_level=extract_classification(payload, "interest_level"),
        audio_bytes=decode_audio(_first_value(payload, INLINE_AUDIO_KEYS)),
        audio_url=audio_url.strip() if isinstance(audio_url, str) else None,
        status=str(status).strip().lower() if isinstance(status, str) else None,
    )
