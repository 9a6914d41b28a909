"""Call repository: merge upsert by conversation id and watermark queries."""
import logging
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from db.dialect import upsert_insert
from db.models import CallAnalysis, CallRecord

logger = logging.getLogger(__name__)

MERGEABLE_FIELDS = ("transcript", "outcome", "main_objection", "interest_level")


async def get_by_external_id(
    session: AsyncSession, external_conversation_id: str
) -> Optional[CallRecord]:
    """Return the CallRecord for this provider conversation id, or None."""
    result = await session.execute(
        select(CallRecord)
        .options(selectinload(CallRecord.analysis))
        .where(CallRecord.external_conversation_id == external_conversation_id)
    )
    return result.scalar_one_or_none()


async def merge_upsert(
    session: AsyncSession,
    external_conversation_id: str,
    fields: dict[str, Any],
    playbook_id: Optional[UUID] = None,
) -> CallRecord:
    """Insert or merge a call by external_conversation_id (dedup key).

    `fields` must only hold present, non-empty values for MERGEABLE_FIELDS;
    they overwrite the stored values. Fields not passed keep whatever is
    stored. playbook_id is set only while the stored value is NULL.

    One INSERT ... ON CONFLICT DO UPDATE statement, so two events for the
    same conversation racing each other cannot lose an update.
    """
    unknown = set(fields) - set(MERGEABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unmergeable call fields: {sorted(unknown)}")

    table = CallRecord.__table__
    stmt = upsert_insert(session, CallRecord).values(
        external_conversation_id=external_conversation_id,
        playbook_id=playbook_id,
        **fields,
    )
    set_ = {k: stmt.excluded[k] for k in fields}
    set_["playbook_id"] = func.coalesce(table.c.playbook_id, stmt.excluded.playbook_id)
    stmt = stmt.on_conflict_do_update(
        index_elements=["external_conversation_id"],
        set_=set_,
    ).returning(CallRecord)
    result = await session.execute(stmt, execution_options={"populate_existing": True})
    await session.flush()
    call = result.scalar_one()
    return call


async def count_since(session: AsyncSession, since: datetime) -> int:
    """Count calls created at or after `since`."""
    result = await session.execute(
        select(func.count(CallRecord.id)).where(CallRecord.created_at >= since)
    )
    return int(result.scalar_one() or 0)


async def get_since(session: AsyncSession, since: datetime) -> list[CallRecord]:
    """Return calls created at or after `since`, oldest first, analysis loaded."""
    result = await session.execute(
        select(CallRecord)
        .options(selectinload(CallRecord.analysis))
        .where(CallRecord.created_at >= since)
        .order_by(CallRecord.created_at)
    )
    return list(result.scalars().all())


async def summary(session: AsyncSession) -> dict:
    """Return total/analyzed call counts and a preview of the latest call."""
    total = await session.execute(select(func.count(CallRecord.id)))
    analyzed = await session.execute(select(func.count(CallAnalysis.id)))
    latest_result = await session.execute(
        select(CallRecord)
        .options(selectinload(CallRecord.analysis))
        .order_by(CallRecord.created_at.desc())
        .limit(1)
    )
    latest = latest_result.scalar_one_or_none()

    return {
        "total_calls": int(total.scalar_one() or 0),
        "analyzed_calls": int(analyzed.scalar_one() or 0),
        "latest_call": {
            "id": str(latest.id),
            "conversation_id": latest.external_conversation_id,
            "created_at": latest.created_at.isoformat(),
            "transcript_preview": (latest.transcript or "")[:180],
            "has_analysis": latest.analysis is not None,
        }
        if latest
        else None,
    }
