"""Self-improvement repository: cycle audit log, watermark and trigger claims."""
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.dialect import upsert_insert
from db.models import ImprovementLog, ImprovementTrigger

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def get_watermark(session: AsyncSession) -> datetime:
    """Return created_at of the newest improvement log, or the epoch if none."""
    result = await session.execute(
        select(ImprovementLog.created_at)
        .order_by(ImprovementLog.created_at.desc())
        .limit(1)
    )
    latest = result.scalar_one_or_none()
    return _as_utc(latest) if latest is not None else EPOCH


async def record_cycle(
    session: AsyncSession,
    calls_analyzed: int,
    *,
    old_playbook_id: Optional[UUID] = None,
    new_playbook_id: Optional[UUID] = None,
    analysis_summary: Optional[str] = None,
) -> ImprovementLog:
    """Append a completed rewrite cycle. Moves the watermark forward."""
    entry = ImprovementLog(
        calls_analyzed=calls_analyzed,
        old_playbook_id=old_playbook_id,
        new_playbook_id=new_playbook_id,
        analysis_summary=analysis_summary,
    )
    session.add(entry)
    await session.flush()
    return entry


async def get_recent_logs(session: AsyncSession, limit: int = 20) -> list[ImprovementLog]:
    """Return the newest improvement logs first."""
    result = await session.execute(
        select(ImprovementLog)
        .order_by(ImprovementLog.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def claim_trigger(
    session: AsyncSession, watermark: datetime, calls_since: int
) -> Optional[ImprovementTrigger]:
    """Claim the threshold crossing that started at `watermark`.

    Returns the new claim row, or None when another caller already holds it.
    """
    stmt = (
        upsert_insert(session, ImprovementTrigger)
        .values(watermark=watermark, calls_since=calls_since)
        .on_conflict_do_nothing(index_elements=["watermark"])
        .returning(ImprovementTrigger)
    )
    result = await session.execute(stmt)
    await session.flush()
    return result.scalar_one_or_none()


async def release_trigger(session: AsyncSession, trigger_id: UUID) -> None:
    """Drop a claim so the same crossing can be fired again."""
    await session.execute(
        delete(ImprovementTrigger).where(ImprovementTrigger.id == trigger_id)
    )
    await session.flush()
