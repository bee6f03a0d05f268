"""
Recurring meeting domain model.

Models:
    - RecurringMeetingOccurrence: one dated instance of the mandatory meeting.
    - ParticipationRecord: one per (occurrence, member), created on first
      interaction. Holds raw evidence only; the "officially attended"
      verdict is always recomputed by AttendanceResolver.
    - ExemptionRequest: at most one per (occurrence, member).
    - ParticipationEvent: append-only log of every evidence event, including
      stale (after-deadline) ones, so history is never lost.
"""

from datetime import datetime, timezone

from sqlalchemy.orm import validates

from app.models import db
from app.models.enums import (
    AttendanceMethod,
    ExemptionStatus,
    FinalApproval,
    ParticipationIntent,
    enum_value,
    sa_enum,
)


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class RecurringMeetingOccurrence(db.Model):
    __tablename__ = "meeting_occurrences"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    attendance_code = db.Column(db.String(50), nullable=True)
    recording_url = db.Column(db.String(500), nullable=True, comment="Recorded session reference")
    survey_url = db.Column(db.String(500), nullable=True, comment="Survey reference")
    application_deadline = db.Column(
        db.DateTime(timezone=True),
        nullable=True,
        comment="Last moment to state intent or request an exemption",
    )
    attendance_deadline = db.Column(
        db.DateTime(timezone=True),
        nullable=True,
        comment="Code / video+survey evidence after this moment does not qualify",
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self, *, include_code: bool = False) -> dict:
        data = {
            "id": self.id,
            "title": self.title,
            "date": _iso(self.date),
            "has_attendance_code": bool(self.attendance_code),
            "has_recording": bool(self.recording_url),
            "has_survey": bool(self.survey_url),
            "recording_url": self.recording_url,
            "survey_url": self.survey_url,
            "application_deadline": _iso(self.application_deadline),
            "attendance_deadline": _iso(self.attendance_deadline),
        }
        if include_code:
            data["attendance_code"] = self.attendance_code
        return data

    def __repr__(self) -> str:
        return f"<RecurringMeetingOccurrence #{self.id} {self.title}>"


class ParticipationRecord(db.Model):
    __tablename__ = "participation_records"
    __table_args__ = (
        db.UniqueConstraint("occurrence_id", "member_id", name="uq_participation_occurrence_member"),
    )

    id = db.Column(db.Integer, primary_key=True)
    occurrence_id = db.Column(
        db.Integer,
        db.ForeignKey("meeting_occurrences.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    member_id = db.Column(
        db.Integer,
        db.ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Stated intent: routes the member in the UI, never decides attendance
    participation_intent = db.Column(
        sa_enum(ParticipationIntent, "participation_intent"),
        nullable=False,
        default=ParticipationIntent.UNDECIDED,
    )
    intent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Attendance evidence
    attendance_method = db.Column(
        sa_enum(AttendanceMethod, "attendance_method"),
        nullable=False,
        default=AttendanceMethod.NONE,
        comment="none | code | video_survey",
    )
    attendance_completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    video_progress = db.Column(db.Float, nullable=False, default=0.0)
    video_watched = db.Column(db.Boolean, nullable=False, default=False)
    video_completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    survey_completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    is_overdue = db.Column(
        db.Boolean,
        nullable=False,
        default=False,
        comment="Some evidence for this pair arrived after the attendance deadline",
    )

    # Manual review
    interview_completed = db.Column(db.Boolean, nullable=False, default=False)
    interview_completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    interview_completed_by = db.Column(db.String(150), nullable=True)
    final_approval = db.Column(sa_enum(FinalApproval, "final_approval"), nullable=True)
    final_approval_at = db.Column(db.DateTime(timezone=True), nullable=True)
    final_approval_by = db.Column(db.String(150), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    occurrence = db.relationship("RecurringMeetingOccurrence")
    member = db.relationship("Member")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "occurrence_id": self.occurrence_id,
            "member_id": self.member_id,
            "participation_intent": enum_value(self.participation_intent),
            "intent_at": _iso(self.intent_at),
            "attendance_method": enum_value(self.attendance_method),
            "attendance_completed_at": _iso(self.attendance_completed_at),
            "video_progress": self.video_progress,
            "video_watched": self.video_watched,
            "video_completed_at": _iso(self.video_completed_at),
            "survey_completed_at": _iso(self.survey_completed_at),
            "is_overdue": self.is_overdue,
            "interview_completed": self.interview_completed,
            "interview_completed_at": _iso(self.interview_completed_at),
            "final_approval": enum_value(self.final_approval),
            "final_approval_at": _iso(self.final_approval_at),
            "final_approval_by": self.final_approval_by,
        }

    def __repr__(self) -> str:
        return f"<ParticipationRecord occ={self.occurrence_id} member={self.member_id}>"


class ExemptionRequest(db.Model):
    __tablename__ = "exemption_requests"
    __table_args__ = (
        db.UniqueConstraint("occurrence_id", "member_id", name="uq_exemption_occurrence_member"),
    )

    id = db.Column(db.Integer, primary_key=True)
    occurrence_id = db.Column(
        db.Integer,
        db.ForeignKey("meeting_occurrences.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    member_id = db.Column(
        db.Integer,
        db.ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status = db.Column(
        sa_enum(ExemptionStatus, "exemption_status"),
        nullable=False,
        default=ExemptionStatus.PENDING,
    )
    reason = db.Column(db.Text, nullable=False)
    reviewer_notes = db.Column(db.Text, nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reviewed_by = db.Column(db.String(150), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "occurrence_id": self.occurrence_id,
            "member_id": self.member_id,
            "status": enum_value(self.status),
            "reason": self.reason,
            "reviewer_notes": self.reviewer_notes,
            "reviewed_at": _iso(self.reviewed_at),
            "reviewed_by": self.reviewed_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<ExemptionRequest #{self.id} occ={self.occurrence_id} {enum_value(self.status)}>"


PARTICIPATION_EVENT_KINDS = frozenset({
    "intent",
    "code",
    "video_progress",
    "survey",
    "exemption_submitted",
    "exemption_withdrawn",
    "exemption_reviewed",
    "interview",
    "final_approval",
})


class ParticipationEvent(db.Model):
    """Append-only evidence log. Rows are never updated or deleted."""

    __tablename__ = "participation_events"
    __table_args__ = (
        db.Index("ix_participation_events_pair", "occurrence_id", "member_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    occurrence_id = db.Column(
        db.Integer,
        db.ForeignKey("meeting_occurrences.id", ondelete="CASCADE"),
        nullable=False,
    )
    member_id = db.Column(
        db.Integer,
        db.ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
    )
    kind = db.Column(db.String(30), nullable=False)
    qualifying = db.Column(
        db.Boolean,
        nullable=False,
        default=True,
        comment="False when the event arrived after the relevant deadline",
    )
    payload = db.Column(db.JSON, nullable=True)
    actor = db.Column(db.String(150), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    @validates("kind")
    def _known_kind(self, key, value):
        if value not in PARTICIPATION_EVENT_KINDS:
            raise ValueError(f"Unknown participation event kind: {value}")
        return value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "occurrence_id": self.occurrence_id,
            "member_id": self.member_id,
            "kind": self.kind,
            "qualifying": self.qualifying,
            "payload": self.payload,
            "actor": self.actor,
            "occurred_at": _iso(self.occurred_at),
        }
