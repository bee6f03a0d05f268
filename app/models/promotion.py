"""
Promotion domain model.

Models:
    - PromotionApplication: one row per member working towards the ELEVATED
      role. Latest state only, no history table.

Business rules:
    - Created lazily on the first qualifying evidence event.
    - The three pre-submission flags are set independently by evidence
      events; they never touch ``applied_at``.
    - ``applied_at`` is non-null iff the member explicitly submitted and no
      rejection happened since.
    - Secondary (onboarding) evidence is stored here too and only evaluated
      once the operator approved the submission.
"""

from datetime import datetime, timezone

from app.models import db
from app.models.enums import ApplicationStatus, enum_value, sa_enum


def _iso(value):
    return value.isoformat() if value else None


class PromotionApplication(db.Model):
    __tablename__ = "promotion_applications"

    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(
        db.Integer,
        db.ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    status = db.Column(
        sa_enum(ApplicationStatus, "application_status"),
        nullable=False,
        default=ApplicationStatus.DRAFT,
        comment="draft | pending | approved | completed",
    )

    # Pre-submission checklist
    meeting_completed = db.Column(db.Boolean, nullable=False, default=False)
    assessment_completed = db.Column(db.Boolean, nullable=False, default=False)
    assessment_score = db.Column(db.Integer, nullable=True, comment="Best score seen (0-100)")
    survey_completed = db.Column(db.Boolean, nullable=False, default=False)
    survey_answers = db.Column(db.JSON, nullable=True, comment="Opaque survey payload")

    applied_at = db.Column(
        db.DateTime(timezone=True),
        nullable=True,
        comment="Set only by an explicit submit; cleared by reject",
    )

    # Operator review
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reviewed_by = db.Column(db.String(150), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    # Post-approval onboarding checklist
    compliance_score = db.Column(db.Integer, nullable=True, comment="Best score seen (0-100)")
    compliance_passed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    onboarding_video_progress = db.Column(db.Float, nullable=False, default=0.0)
    onboarding_completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    member = db.relationship("Member", back_populates="promotion_application")

    def missing_checklist_items(self) -> list[str]:
        missing = []
        if not self.meeting_completed:
            missing.append("meeting")
        if not self.assessment_completed:
            missing.append("assessment")
        if not self.survey_completed:
            missing.append("survey")
        return missing

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "member_id": self.member_id,
            "status": enum_value(self.status),
            "meeting_completed": self.meeting_completed,
            "assessment_completed": self.assessment_completed,
            "assessment_score": self.assessment_score,
            "survey_completed": self.survey_completed,
            "applied_at": _iso(self.applied_at),
            "reviewed_at": _iso(self.reviewed_at),
            "reviewed_by": self.reviewed_by,
            "rejection_reason": self.rejection_reason,
            "compliance_score": self.compliance_score,
            "compliance_passed_at": _iso(self.compliance_passed_at),
            "onboarding_video_progress": self.onboarding_video_progress,
            "onboarding_completed_at": _iso(self.onboarding_completed_at),
            "completed_at": _iso(self.completed_at),
        }

    def __repr__(self) -> str:
        return f"<PromotionApplication #{self.id} member={self.member_id} {enum_value(self.status)}>"
