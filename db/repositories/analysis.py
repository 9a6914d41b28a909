"""Call analysis repository: wholesale upsert by call id."""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.dialect import upsert_insert
from db.models import CallAnalysis

logger = logging.getLogger(__name__)

ANALYSIS_FIELDS = (
    "engagement_score",
    "engagement_trend",
    "prospect_emotions",
    "agent_tone",
    "deception_flags",
    "key_moments",
)


async def upsert(session: AsyncSession, call_id: UUID, data: dict) -> CallAnalysis:
    """Insert or replace the analysis for a call (dedup key: call_id).

    Every analysis field is overwritten, including with NULL: a re-run on
    the same audio replaces the previous result rather than merging into it.
    """
    values = {k: data.get(k) for k in ANALYSIS_FIELDS}
    stmt = upsert_insert(session, CallAnalysis).values(call_id=call_id, **values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["call_id"],
        set_={k: stmt.excluded[k] for k in ANALYSIS_FIELDS},
    ).returning(CallAnalysis)
    result = await session.execute(stmt, execution_options={"populate_existing": True})
    await session.flush()
    return result.scalar_one()


async def get_by_call(session: AsyncSession, call_id: UUID) -> Optional[CallAnalysis]:
    """Return the analysis for a call, or None."""
    result = await session.execute(
        select(CallAnalysis).where(CallAnalysis.call_id == call_id)
    )
    return result.scalar_one_or_none()
