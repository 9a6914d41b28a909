"""Bounded-retry transcript finalization.

When a call ends the provider may still be processing the transcript, and
the post-call webhook may be late or never arrive. The finalization client
polls the save-transcript operation on a fixed backoff schedule until the
transcript is stored or the schedule runs out.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

# Delay before each attempt; the first attempt runs immediately.
RETRY_DELAYS_MS = (0, 1500, 3000, 6000, 10000)

SaveFn = Callable[[str], Awaitable[Any]]
SleepFn = Callable[[float], Awaitable[Any]]


async def persist_transcript_with_retry(
    conversation_id: str,
    save: SaveFn,
    sleep: SleepFn = asyncio.sleep,
) -> bool:
    """Call `save(conversation_id)` until it reports ok, or give up.

    `save` returns {"ok": True} once the transcript is stored and
    {"ok": False, "pending": True} while the provider is still processing.
    Any other result, or an exception, stops the loop immediately.

    Returns:
        True if the transcript was stored, False otherwise. Never raises.
    """
    for attempt, delay_ms in enumerate(RETRY_DELAYS_MS, start=1):
        if delay_ms:
            await sleep(delay_ms / 1000)
        try:
            result = await save(conversation_id)
        except Exception:
            logger.exception(
                "Transcript save for %s failed on attempt %d", conversation_id, attempt
            )
            return False

        if isinstance(result, dict) and result.get("ok"):
            logger.info("Transcript for %s saved on attempt %d", conversation_id, attempt)
            return True
        if isinstance(result, dict) and result.get("pending"):
            logger.debug("Transcript for %s still pending (attempt %d)", conversation_id, attempt)
            continue

        logger.error(
            "Transcript save for %s returned %r on attempt %d; giving up",
            conversation_id,
            result,
            attempt,
        )
        return False

    logger.warning(
        "Transcript for %s still pending after %d attempts",
        conversation_id,
        len(RETRY_DELAYS_MS),
    )
    return False
