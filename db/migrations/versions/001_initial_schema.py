"""Initial schema: playbooks, call records, analysis, improvement cycle.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ─── Calls ───────────────────────────────────────────────────────────────

    op.create_table(
        "playbooks",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("version", sa.Integer, nullable=False),
        sa.Column("strategy", sa.Text, nullable=False),
        sa.Column("opener", sa.Text, nullable=False),
        sa.Column("objection_style", sa.Text, nullable=False),
        sa.Column("tone", sa.Text, nullable=False),
        sa.Column("close_technique", sa.Text, nullable=False),
        sa.Column("rationale", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("version", name="uq_playbook_version"),
    )

    op.create_table(
        "call_records",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("external_conversation_id", sa.Text, nullable=False),
        sa.Column("transcript", sa.Text, nullable=True),
        sa.Column("outcome", sa.Text, nullable=True),
        sa.Column("main_objection", sa.Text, nullable=True),
        sa.Column("interest_level", sa.Text, nullable=True),
        sa.Column("playbook_id", sa.Uuid, sa.ForeignKey("playbooks.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "outcome IS NULL OR outcome IN ('converted', 'no_close', 'callback', 'hung_up', 'unknown')",
            name="ck_call_outcome",
        ),
        sa.UniqueConstraint("external_conversation_id", name="uq_call_external_conversation_id"),
    )
    op.create_index("ix_call_records_playbook_id", "call_records", ["playbook_id"])
    op.create_index("ix_call_records_created_at", "call_records", ["created_at"])

    op.create_table(
        "call_analysis",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "call_id",
            sa.Uuid,
            sa.ForeignKey("call_records.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("engagement_score", sa.Float, nullable=True),
        sa.Column("engagement_trend", sa.Text, nullable=True),
        sa.Column("prospect_emotions", sa.JSON, nullable=True),
        sa.Column("agent_tone", sa.Text, nullable=True),
        sa.Column("deception_flags", sa.JSON, nullable=True),
        sa.Column("key_moments", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "engagement_trend IS NULL OR engagement_trend IN ('rising', 'falling', 'flat')",
            name="ck_analysis_engagement_trend",
        ),
        sa.UniqueConstraint("call_id", name="uq_call_analysis_call_id"),
    )

    # ─── Improvement cycle ───────────────────────────────────────────────────

    op.create_table(
        "improvement_logs",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("calls_analyzed", sa.Integer, nullable=False),
        sa.Column("old_playbook_id", sa.Uuid, sa.ForeignKey("playbooks.id"), nullable=True),
        sa.Column("new_playbook_id", sa.Uuid, sa.ForeignKey("playbooks.id"), nullable=True),
        sa.Column("analysis_summary", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_improvement_logs_created_at", "improvement_logs", ["created_at"])

    op.create_table(
        "improvement_triggers",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("watermark", sa.DateTime(timezone=True), nullable=False),
        sa.Column("calls_since", sa.Integer, nullable=False),
        sa.Column("triggered_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("watermark", name="uq_improvement_trigger_watermark"),
    )


def downgrade() -> None:
    op.drop_table("improvement_triggers")
    op.drop_index("ix_improvement_logs_created_at", table_name="improvement_logs")
    op.drop_table("improvement_logs")
    op.drop_table("call_analysis")
    op.drop_index("ix_call_records_created_at", table_name="call_records")
    op.drop_index("ix_call_records_playbook_id", table_name="call_records")
    op.drop_table("call_records")
    op.drop_table("playbooks")
