"""membership_lifecycle_tables

Create members, promotion applications, recurring meeting occurrences,
participation records / events, exemption requests and the audit log.

Revision ID: a7c3e91f0b24
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "a7c3e91f0b24"
down_revision = None
branch_labels = None
depends_on = None


def _enum(name, *values):
    return sa.Enum(*values, name=name, native_enum=False, length=30)


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "members" not in existing_tables:
        op.create_table(
            "members",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column(
                "role",
                _enum("member_role", "regular", "elevated", "lead", "operator"),
                nullable=False,
                server_default="regular",
            ),
            sa.Column("member_number", sa.String(length=20), nullable=True),
            sa.Column("enrolled_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("contact_confirmed_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email", name="uq_members_email"),
            sa.UniqueConstraint("member_number", name="uq_members_member_number"),
        )
        op.create_index("ix_members_enrolled_at", "members", ["enrolled_at"])

    if "promotion_applications" not in existing_tables:
        op.create_table(
            "promotion_applications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("member_id", sa.Integer(), nullable=False),
            sa.Column(
                "status",
                _enum("application_status", "draft", "pending", "approved", "completed"),
                nullable=False,
                server_default="draft",
            ),
            sa.Column("meeting_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("assessment_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("assessment_score", sa.Integer(), nullable=True),
            sa.Column("survey_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("survey_answers", sa.JSON(), nullable=True),
            sa.Column("applied_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("reviewed_by", sa.String(length=150), nullable=True),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
            sa.Column("compliance_score", sa.Integer(), nullable=True),
            sa.Column("compliance_passed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("onboarding_video_progress", sa.Float(), nullable=False, server_default="0"),
            sa.Column("onboarding_completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["member_id"], ["members.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("member_id", name="uq_promotion_applications_member"),
        )

    if "meeting_occurrences" not in existing_tables:
        op.create_table(
            "meeting_occurrences",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("date", sa.DateTime(timezone=True), nullable=False),
            sa.Column("attendance_code", sa.String(length=50), nullable=True),
            sa.Column("recording_url", sa.String(length=500), nullable=True),
            sa.Column("survey_url", sa.String(length=500), nullable=True),
            sa.Column("application_deadline", sa.DateTime(timezone=True), nullable=True),
            sa.Column("attendance_deadline", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_meeting_occurrences_date", "meeting_occurrences", ["date"])

    if "participation_records" not in existing_tables:
        op.create_table(
            "participation_records",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("occurrence_id", sa.Integer(), nullable=False),
            sa.Column("member_id", sa.Integer(), nullable=False),
            sa.Column(
                "participation_intent",
                _enum("participation_intent", "undecided", "will_attend", "will_not_attend"),
                nullable=False,
                server_default="undecided",
            ),
            sa.Column("intent_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column(
                "attendance_method",
                _enum("attendance_method", "none", "code", "video_survey", "exemption"),
                nullable=False,
                server_default="none",
            ),
            sa.Column("attendance_completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("video_progress", sa.Float(), nullable=False, server_default="0"),
            sa.Column("video_watched", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("video_completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("survey_completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("is_overdue", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("interview_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("interview_completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("interview_completed_by", sa.String(length=150), nullable=True),
            sa.Column("final_approval", _enum("final_approval", "maintained", "demoted"), nullable=True),
            sa.Column("final_approval_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("final_approval_by", sa.String(length=150), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["occurrence_id"], ["meeting_occurrences.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["member_id"], ["members.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("occurrence_id", "member_id", name="uq_participation_occurrence_member"),
        )
        op.create_index("ix_participation_records_occurrence_id", "participation_records", ["occurrence_id"])
        op.create_index("ix_participation_records_member_id", "participation_records", ["member_id"])

    if "exemption_requests" not in existing_tables:
        op.create_table(
            "exemption_requests",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("occurrence_id", sa.Integer(), nullable=False),
            sa.Column("member_id", sa.Integer(), nullable=False),
            sa.Column(
                "status",
                _enum("exemption_status", "pending", "approved", "rejected"),
                nullable=False,
                server_default="pending",
            ),
            sa.Column("reason", sa.Text(), nullable=False),
            sa.Column("reviewer_notes", sa.Text(), nullable=True),
            sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("reviewed_by", sa.String(length=150), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["occurrence_id"], ["meeting_occurrences.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["member_id"], ["members.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("occurrence_id", "member_id", name="uq_exemption_occurrence_member"),
        )
        op.create_index("ix_exemption_requests_occurrence_id", "exemption_requests", ["occurrence_id"])
        op.create_index("ix_exemption_requests_member_id", "exemption_requests", ["member_id"])

    if "participation_events" not in existing_tables:
        op.create_table(
            "participation_events",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("occurrence_id", sa.Integer(), nullable=False),
            sa.Column("member_id", sa.Integer(), nullable=False),
            sa.Column("kind", sa.String(length=30), nullable=False),
            sa.Column("qualifying", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("payload", sa.JSON(), nullable=True),
            sa.Column("actor", sa.String(length=150), nullable=True),
            sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["occurrence_id"], ["meeting_occurrences.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["member_id"], ["members.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_participation_events_pair", "participation_events", ["occurrence_id", "member_id"],
        )

    if "audit_logs" not in existing_tables:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("entity_type", sa.String(length=30), nullable=False),
            sa.Column("entity_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("actor", sa.String(length=150), nullable=False, server_default="system"),
            sa.Column("diff_json", sa.Text(), nullable=True),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
        op.create_index("idx_audit_action", "audit_logs", ["action"])
        op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    for table in (
        "audit_logs",
        "participation_events",
        "exemption_requests",
        "participation_records",
        "meeting_occurrences",
        "promotion_applications",
        "members",
    ):
        if table in existing_tables:
            op.drop_table(table)
