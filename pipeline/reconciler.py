"""Apply normalized events and analyses to the stored call record."""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from db.models import CallAnalysis, CallRecord
from db.repositories import analysis as analysis_repo
from db.repositories import calls as calls_repo
from schemas.call import CallAnalysisOutput, CallEvent

logger = logging.getLogger(__name__)


async def reconcile(
    session: AsyncSession,
    event: CallEvent,
    active_playbook_id: Optional[UUID] = None,
) -> CallRecord:
    """Merge an event into the call record for its conversation.

    Safe under duplicate and out-of-order delivery: present values overwrite,
    absent ones never erase, and the playbook is only attached the first time.
    """
    fields = event.merge_fields()
    call = await calls_repo.merge_upsert(
        session,
        event.external_conversation_id,
        fields,
        playbook_id=active_playbook_id,
    )
    logger.info(
        "Reconciled call %s (%s): merged %s",
        call.id,
        event.external_conversation_id,
        ", ".join(sorted(fields)) or "nothing",
    )
    return call


async def attach_analysis(
    session: AsyncSession, call_id: UUID, analysis: CallAnalysisOutput
) -> CallAnalysis:
    row = await analysis_repo.upsert(session, call_id, analysis.model_dump(mode="json"))
    logger.info(
        "Stored analysis for call %s (score=%s, trend=%s)",
        call_id,
        analysis.engagement_score,
        analysis.engagement_trend,
    )
    return row
