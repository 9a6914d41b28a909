"""SQLAlchemy 2.0 ORM models for the call pipeline.

Covers 5 tables:
  - calls: playbooks, call_records, call_analysis
  - improve: improvement_logs, improvement_triggers

Tables live in the default schema so the same metadata runs on PostgreSQL
and on SQLite (local runs and tests).
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    Uuid,
    CheckConstraint,
    DateTime,
    Float,
    Integer,
    JSON,
    Text,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from schemas.call import CALL_OUTCOMES, ENGAGEMENT_TRENDS


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Shared base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# CHECK constraint expressions
# ---------------------------------------------------------------------------

_OUTCOME_CHECK = (
    "outcome IS NULL OR outcome IN ("
    + ", ".join(f"'{s}'" for s in CALL_OUTCOMES)
    + ")"
)

_TREND_CHECK = (
    "engagement_trend IS NULL OR engagement_trend IN ("
    + ", ".join(f"'{s}'" for s in ENGAGEMENT_TRENDS)
    + ")"
)


# ===========================================================================
# Calls
# ===========================================================================


class Playbook(Base):
    """playbooks: versioned, immutable sales playbook. Active = max(version)."""

    __tablename__ = "playbooks"
    __table_args__ = (
        UniqueConstraint("version", name="uq_playbook_version"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    strategy: Mapped[str] = mapped_column(Text, nullable=False)
    opener: Mapped[str] = mapped_column(Text, nullable=False)
    objection_style: Mapped[str] = mapped_column(Text, nullable=False)
    tone: Mapped[str] = mapped_column(Text, nullable=False)
    close_technique: Mapped[str] = mapped_column(Text, nullable=False)
    rationale: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    call_records: Mapped[list["CallRecord"]] = relationship(
        "CallRecord", back_populates="playbook"
    )


class CallRecord(Base):
    """call_records: one row per real-world conversation, merged across events."""

    __tablename__ = "call_records"
    __table_args__ = (
        CheckConstraint(_OUTCOME_CHECK, name="ck_call_outcome"),
        UniqueConstraint(
            "external_conversation_id", name="uq_call_external_conversation_id"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    external_conversation_id: Mapped[str] = mapped_column(Text, nullable=False)
    transcript: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    outcome: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    main_objection: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    interest_level: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    playbook_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("playbooks.id"),
        nullable=True,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    # Relationships
    playbook: Mapped[Optional["Playbook"]] = relationship(
        "Playbook", back_populates="call_records"
    )
    analysis: Mapped[Optional["CallAnalysis"]] = relationship(
        "CallAnalysis",
        back_populates="call_record",
        cascade="all, delete-orphan",
        uselist=False,
    )


class CallAnalysis(Base):
    """call_analysis: emotion/engagement analysis, at most one per call."""

    __tablename__ = "call_analysis"
    __table_args__ = (
        CheckConstraint(_TREND_CHECK, name="ck_analysis_engagement_trend"),
        UniqueConstraint("call_id", name="uq_call_analysis_call_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    call_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("call_records.id", ondelete="CASCADE"),
        nullable=False,
    )
    engagement_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    engagement_trend: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    prospect_emotions: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(
        JSON(none_as_null=True), nullable=True
    )
    agent_tone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    deception_flags: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(
        JSON(none_as_null=True), nullable=True
    )
    key_moments: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(
        JSON(none_as_null=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    # Relationship
    call_record: Mapped["CallRecord"] = relationship(
        "CallRecord", back_populates="analysis"
    )


# ===========================================================================
# Improvement loop
# ===========================================================================


class ImprovementLog(Base):
    """improvement_logs: append-only audit of completed rewrite cycles.

    The newest created_at is the watermark for counting pending calls.
    """

    __tablename__ = "improvement_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    calls_analyzed: Mapped[int] = mapped_column(Integer, nullable=False)
    old_playbook_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("playbooks.id"), nullable=True
    )
    new_playbook_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("playbooks.id"), nullable=True
    )
    analysis_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )


class ImprovementTrigger(Base):
    """improvement_triggers: one row per fired threshold crossing.

    Inserting the row for a watermark is the claim that lets exactly one
    caller invoke the rewrite service for that crossing.
    """

    __tablename__ = "improvement_triggers"
    __table_args__ = (
        UniqueConstraint("watermark", name="uq_improvement_trigger_watermark"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    watermark: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    calls_since: Mapped[int] = mapped_column(Integer, nullable=False)
    triggered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

__all__ = [
    "Base",
    "CALL_OUTCOMES",
    "ENGAGEMENT_TRENDS",
    # calls
    "Playbook",
    "CallRecord",
    "CallAnalysis",
    # improve
    "ImprovementLog",
    "ImprovementTrigger",
]
