"""Playbook repository: active version lookup and versioned creation."""
import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Playbook

logger = logging.getLogger(__name__)

PLAYBOOK_FIELDS = (
    "strategy",
    "opener",
    "objection_style",
    "tone",
    "close_technique",
    "rationale",
)

BASELINE_PLAYBOOK = {
    "strategy": (
        "Lead with curiosity and problem discovery. Avoid pitching features upfront. "
        "Understand the prospect's pain, confirm they own the problem, then position "
        "the product as the natural solution."
    ),
    "opener": (
        "Hey [Name], I'll keep this quick. I noticed [relevant trigger]. Most folks I "
        "talk to in [role] are dealing with [pain point]. Is that something that's been "
        "on your radar lately?"
    ),
    "objection_style": (
        "When objections come up, acknowledge before responding. For price objections: "
        "anchor to cost of inaction. For timing objections: ask what would need to change "
        "for this to be the right time. For competitor objections: focus on the specific "
        "outcome we deliver better."
    ),
    "tone": (
        "Conversational and direct. No corporate buzzwords. Match the prospect's energy: "
        "if they're brief, be brief. Sound like a peer, not a vendor."
    ),
    "close_technique": (
        "Soft close first: \"Does this seem like it could solve [pain point] for you?\" "
        "If yes, move to calendar: \"I'd love to show you exactly how. Are you free [day] "
        "or [day] this week?\" Never ask open-ended scheduling questions."
    ),
    "rationale": (
        "Version 1, handcrafted baseline playbook. Uses classic consultative selling "
        "structure: hook with pain, confirm fit, handle objections with empathy, close "
        "with a concrete next step. No data yet; this is the starting hypothesis."
    ),
}


async def get_active(session: AsyncSession) -> Optional[Playbook]:
    """Return the playbook with the highest version, or None if none exist."""
    result = await session.execute(
        select(Playbook).order_by(Playbook.version.desc()).limit(1)
    )
    return result.scalar_one_or_none()


async def get_max_version(session: AsyncSession) -> int:
    result = await session.execute(select(func.max(Playbook.version)))
    return result.scalar_one() or 0


async def create_next(session: AsyncSession, data: dict) -> Playbook:
    """Create a playbook at version max(version) + 1.

    data keys: strategy, opener, objection_style, tone, close_technique,
    rationale. Two concurrent creators collide on uq_playbook_version; the
    loser's IntegrityError is surfaced so its caller can resubmit.
    """
    version = await get_max_version(session) + 1
    playbook = Playbook(version=version, **{k: data[k] for k in PLAYBOOK_FIELDS})
    session.add(playbook)
    await session.flush()
    return playbook


async def seed_baseline(session: AsyncSession) -> Optional[Playbook]:
    """Insert the version-1 baseline playbook if the table is empty."""
    if await get_max_version(session) > 0:
        return None
    playbook = await create_next(session, BASELINE_PLAYBOOK)
    logger.info("Seeded baseline playbook v%d (%s)", playbook.version, playbook.id)
    return playbook
