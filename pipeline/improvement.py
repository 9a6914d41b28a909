"""Threshold-gated playbook improvement trigger.

Counts calls since the last improvement cycle (the watermark) and, once the
count reaches IMPROVEMENT_BATCH_SIZE, asks the rewrite service to produce a
new playbook. Each threshold crossing fires at most once: the caller that
inserts the claim row for the current watermark is the only one that calls
the rewrite service.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config import improvement_batch_size, improvement_paused, require
from db.connection import get_db
from db.models import Playbook
from db.repositories import calls as calls_repo
from db.repositories import improvement as improvement_repo
from db.repositories import playbooks as playbooks_repo
from errors import PersistenceError
from schemas.call import TriggerResult
from tools.rewrite_tools import submit_improvement_context

logger = logging.getLogger(__name__)

PLAYBOOK_CREATE_ATTEMPTS = 3

SubmitFn = Callable[[Dict[str, Any]], Any]


async def maybe_trigger(
    session: AsyncSession,
    submit: Optional[SubmitFn] = None,
) -> TriggerResult:
    """Fire the rewrite service if enough calls arrived since the watermark.

    Raises:
        MissingConfigError: threshold reached but AIRIA_WEBHOOK_URL is unset.
        UpstreamError: the rewrite service rejected the request. The claim
            is released first, so a later call can fire the same crossing.
    """
    submit = submit or submit_improvement_context
    watermark = await improvement_repo.get_watermark(session)
    calls_since = await calls_repo.count_since(session, watermark)
    threshold = improvement_batch_size()

    def result(triggered: bool, reason=None) -> TriggerResult:
        return TriggerResult(
            triggered=triggered,
            calls_since_last=calls_since,
            threshold=threshold,
            reason=reason,
        )

    if calls_since < threshold:
        return result(False, "below_threshold")
    if improvement_paused():
        logger.info("Improvement paused with %d calls pending", calls_since)
        return result(False, "paused")

    require("AIRIA_WEBHOOK_URL")

    claim = await improvement_repo.claim_trigger(session, watermark, calls_since)
    if claim is None:
        return result(False, "already_triggered")
    # Make the claim visible to concurrent triggers before the slow call.
    await session.commit()

    payload = {
        "calls_since": calls_since,
        "triggered_at": datetime.now(timezone.utc).isoformat(),
    }
    try:
        await asyncio.to_thread(submit, payload)
    except Exception:
        await improvement_repo.release_trigger(session, claim.id)
        await session.commit()
        raise

    logger.info(
        "Improvement cycle triggered: %d calls since %s (threshold %d)",
        calls_since,
        watermark.isoformat(),
        threshold,
    )
    return result(True)


async def trigger_in_background() -> None:
    """Best-effort trigger run after a successful webhook write."""
    try:
        async with get_db() as session:
            outcome = await maybe_trigger(session)
        logger.debug("Background improvement check: %s", outcome.model_dump())
    except Exception:
        logger.warning("Background improvement trigger failed", exc_info=True)


async def publish_playbook(data: Dict[str, Any]) -> Playbook:
    """Create the next playbook version, retrying on a concurrent version collision."""
    attempt = 1
    while True:
        try:
            async with get_db() as session:
                playbook = await playbooks_repo.create_next(session, data)
            logger.info("Published playbook v%d (%s)", playbook.version, playbook.id)
            return playbook
        except PersistenceError as exc:
            if not isinstance(exc.__cause__, IntegrityError) or attempt == PLAYBOOK_CREATE_ATTEMPTS:
                raise
            logger.warning("Playbook version collision on attempt %d; retrying", attempt)
            attempt += 1
