"""
Promotion eligibility: REGULAR → ELEVATED.

Checklist (pre-submission, independent flags, any order):
    meeting     one orientation meeting completed
    assessment  basic test passed (score ≥ ASSESSMENT_PASSING_SCORE)
    survey      application survey submitted

Application status transitions:
    draft ──submit──▶ pending ──approve──▶ approved ──(onboarding done)──▶ completed
      ▲                  │
      └─────reject───────┘   (flags kept, applied_at cleared)

Onboarding checklist (evaluated only once approved):
    contact      contact details confirmed
    compliance   compliance test passed (score ≥ COMPLIANCE_PASSING_SCORE)
    video        onboarding video watched (progress ≥ ONBOARDING_VIDEO_THRESHOLD)

Completing the flags never submits: ``applied_at`` is written by ``submit``
only and cleared by ``reject`` only.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from app.core.exceptions import (
    AlreadySubmitted,
    IncompleteChecklist,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.models.audit import write_audit
from app.models.enums import ApplicationStatus, EligibilityPhase, MemberRole, enum_value
from app.models.member import Member
from app.models.promotion import PromotionApplication
from app.utils.helpers import as_utc, utcnow

logger = logging.getLogger(__name__)

_ITEM_ACTIONS = {
    "meeting": "attend_meeting",
    "assessment": "pass_assessment",
    "survey": "submit_survey",
    "contact": "confirm_contact",
    "compliance": "pass_compliance_test",
    "video": "watch_onboarding_video",
}


@dataclass(frozen=True)
class ChecklistItem:
    key: str
    completed: bool


@dataclass(frozen=True)
class EligibilityState:
    """Immutable snapshot of where a member stands on the promotion path."""

    member_id: int
    phase: EligibilityPhase
    checklist: tuple[ChecklistItem, ...] = ()
    secondary_checklist: tuple[ChecklistItem, ...] = ()
    pending_actions: tuple[str, ...] = ()
    applied_at: datetime | None = None
    can_submit: bool = False
    application_id: int | None = None
    application_status: ApplicationStatus | None = None

    def to_dict(self) -> dict:
        return {
            "member_id": self.member_id,
            "phase": self.phase.value,
            "checklist": {item.key: item.completed for item in self.checklist},
            "secondary_checklist": {item.key: item.completed for item in self.secondary_checklist},
            "pending_actions": list(self.pending_actions),
            "applied_at": self.applied_at.isoformat() if self.applied_at else None,
            "can_submit": self.can_submit,
            "application_id": self.application_id,
            "application_status": enum_value(self.application_status),
        }


def _validate_score(score) -> int:
    if isinstance(score, bool) or not isinstance(score, int) or not 0 <= score <= 100:
        raise ValidationError(
            f"Score must be an integer between 0 and 100, got {score!r}",
            details={"score": "0..100"},
        )
    return score


def validate_answers(answers) -> dict:
    """Survey answers are opaque, but must be a non-empty JSON object."""
    if not isinstance(answers, dict) or not answers:
        raise ValidationError(
            "Survey answers must be a non-empty JSON object",
            details={"answers": "non-empty object required"},
        )
    if not all(isinstance(key, str) for key in answers):
        raise ValidationError("Survey answer keys must be strings", details={"answers": "string keys"})
    return answers


class PromotionEligibilityEvaluator:
    """Evidence intake, gating state and the one-time promotion."""

    def __init__(
        self,
        db,
        *,
        assessment_passing_score: int = 70,
        compliance_passing_score: int = 90,
        onboarding_video_threshold: float = 0.9,
    ):
        self.db = db
        self.assessment_passing_score = assessment_passing_score
        self.compliance_passing_score = compliance_passing_score
        self.onboarding_video_threshold = onboarding_video_threshold

    @classmethod
    def from_config(cls, db, config) -> "PromotionEligibilityEvaluator":
        return cls(
            db,
            assessment_passing_score=config.get("ASSESSMENT_PASSING_SCORE", 70),
            compliance_passing_score=config.get("COMPLIANCE_PASSING_SCORE", 90),
            onboarding_video_threshold=config.get("ONBOARDING_VIDEO_THRESHOLD", 0.9),
        )

    # ── lookups ──────────────────────────────────────────────────────────

    def _member(self, member_id: int) -> Member:
        member = self.db.session.get(Member, member_id)
        if member is None:
            raise NotFoundError(resource="Member", resource_id=member_id)
        return member

    def _application(self, application_id: int) -> PromotionApplication:
        application = self.db.session.get(PromotionApplication, application_id)
        if application is None:
            raise NotFoundError(resource="PromotionApplication", resource_id=application_id)
        return application

    def _application_for(self, member: Member) -> PromotionApplication:
        """Return the member's application, creating it on first evidence."""
        if member.promotion_application is None:
            application = PromotionApplication(member=member, status=ApplicationStatus.DRAFT)
            self.db.session.add(application)
            self.db.session.flush()
            logger.info(
                "Promotion application opened",
                extra={"member_id": member.id, "application_id": application.id},
            )
        return member.promotion_application

    # ── evaluation ───────────────────────────────────────────────────────

    @staticmethod
    def _checklist(application: PromotionApplication | None) -> tuple[ChecklistItem, ...]:
        if application is None:
            return (
                ChecklistItem("meeting", False),
                ChecklistItem("assessment", False),
                ChecklistItem("survey", False),
            )
        return (
            ChecklistItem("meeting", bool(application.meeting_completed)),
            ChecklistItem("assessment", bool(application.assessment_completed)),
            ChecklistItem("survey", bool(application.survey_completed)),
        )

    @staticmethod
    def _secondary_checklist(member: Member, application) -> tuple[ChecklistItem, ...]:
        return (
            ChecklistItem("contact", member.contact_confirmed_at is not None),
            ChecklistItem("compliance", application is not None and application.compliance_passed_at is not None),
            ChecklistItem("video", application is not None and application.onboarding_completed_at is not None),
        )

    def _phase(self, member: Member, application, checklist) -> EligibilityPhase:
        if application is None:
            return EligibilityPhase.NOT_STARTED if member.role == MemberRole.REGULAR else EligibilityPhase.PROMOTED
        if application.status == ApplicationStatus.COMPLETED:
            return EligibilityPhase.PROMOTED
        if application.status == ApplicationStatus.APPROVED:
            return EligibilityPhase.ONBOARDING
        if application.status == ApplicationStatus.PENDING:
            return EligibilityPhase.SUBMITTED
        if member.role != MemberRole.REGULAR:
            return EligibilityPhase.PROMOTED
        if all(item.completed for item in checklist):
            return EligibilityPhase.READY
        return EligibilityPhase.COLLECTING

    def _state(self, member: Member) -> EligibilityState:
        application = member.promotion_application
        checklist = self._checklist(application)
        secondary = self._secondary_checklist(member, application)
        phase = self._phase(member, application, checklist)

        if phase in (EligibilityPhase.NOT_STARTED, EligibilityPhase.COLLECTING):
            pending = tuple(_ITEM_ACTIONS[i.key] for i in checklist if not i.completed)
        elif phase == EligibilityPhase.READY:
            pending = ("submit_application",)
        elif phase == EligibilityPhase.SUBMITTED:
            pending = ("await_review",)
        elif phase == EligibilityPhase.ONBOARDING:
            pending = tuple(_ITEM_ACTIONS[i.key] for i in secondary if not i.completed)
        else:
            pending = ()

        return EligibilityState(
            member_id=member.id,
            phase=phase,
            checklist=checklist,
            secondary_checklist=secondary,
            pending_actions=pending,
            applied_at=as_utc(application.applied_at) if application else None,
            can_submit=phase == EligibilityPhase.READY,
            application_id=application.id if application else None,
            application_status=application.status if application else None,
        )

    def evaluate(self, member_id: int) -> EligibilityState:
        """Current gating state. Read-only: evaluating twice yields equal states."""
        return self._state(self._member(member_id))

    # ── pre-submission evidence ──────────────────────────────────────────

    def record_meeting_completed(self, member_id: int) -> EligibilityState:
        member = self._member(member_id)
        application = self._application_for(member)
        if not application.meeting_completed:
            application.meeting_completed = True
            logger.info("Checklist: meeting completed", extra={"member_id": member_id})
        self.db.session.commit()
        return self._state(member)

    def record_assessment_score(self, member_id: int, score) -> EligibilityState:
        """Store the best score; passing sets the flag, a later lower score never clears it."""
        score = _validate_score(score)
        member = self._member(member_id)
        passed = score >= self.assessment_passing_score
        if member.promotion_application is None and not passed:
            logger.info(
                "Assessment attempt below passing score (%d)", score, extra={"member_id": member_id},
            )
            return self._state(member)

        application = self._application_for(member)
        if application.assessment_score is None or score > application.assessment_score:
            application.assessment_score = score
        if passed and not application.assessment_completed:
            application.assessment_completed = True
            logger.info("Checklist: assessment passed (%d)", score, extra={"member_id": member_id})
        self.db.session.commit()
        return self._state(member)

    def record_survey_submitted(self, member_id: int, answers) -> EligibilityState:
        answers = validate_answers(answers)
        member = self._member(member_id)
        application = self._application_for(member)
        application.survey_answers = answers
        if not application.survey_completed:
            application.survey_completed = True
            logger.info("Checklist: survey submitted", extra={"member_id": member_id})
        self.db.session.commit()
        return self._state(member)

    # ── onboarding evidence ──────────────────────────────────────────────

    def record_contact_confirmed(self, member_id: int) -> EligibilityState:
        member = self._member(member_id)
        if member.contact_confirmed_at is None:
            member.contact_confirmed_at = utcnow()
            logger.info("Onboarding: contact confirmed", extra={"member_id": member_id})
        if member.promotion_application is not None:
            self._maybe_complete(member.promotion_application)
        self.db.session.commit()
        return self._state(member)

    def record_compliance_score(self, member_id: int, score) -> EligibilityState:
        score = _validate_score(score)
        member = self._member(member_id)
        application = self._application_for(member)
        if application.compliance_score is None or score > application.compliance_score:
            application.compliance_score = score
        if score >= self.compliance_passing_score and application.compliance_passed_at is None:
            application.compliance_passed_at = utcnow()
            logger.info("Onboarding: compliance test passed (%d)", score, extra={"member_id": member_id})
        self._maybe_complete(application)
        self.db.session.commit()
        return self._state(member)

    def record_onboarding_progress(self, member_id: int, progress) -> EligibilityState:
        if isinstance(progress, bool) or not isinstance(progress, (int, float)):
            raise ValidationError("progress must be a number between 0 and 1", details={"progress": "0..1"})
        progress = min(max(float(progress), 0.0), 1.0)
        member = self._member(member_id)
        application = self._application_for(member)
        if progress > (application.onboarding_video_progress or 0.0):
            application.onboarding_video_progress = progress
        if (
            application.onboarding_completed_at is None
            and application.onboarding_video_progress >= self.onboarding_video_threshold
        ):
            application.onboarding_completed_at = utcnow()
            logger.info("Onboarding: video watched", extra={"member_id": member_id})
        self._maybe_complete(application)
        self.db.session.commit()
        return self._state(member)

    # ── transitions ──────────────────────────────────────────────────────

    def submit(self, member_id: int) -> PromotionApplication:
        """Explicit submission. The only writer of ``applied_at``."""
        member = self._member(member_id)
        if member.role != MemberRole.REGULAR:
            raise InvalidTransitionError(
                f"Member {member_id} is {enum_value(member.role)}; only regular members can apply",
                precondition="role=regular",
            )
        application = member.promotion_application
        if application is not None and (
            application.applied_at is not None or application.status != ApplicationStatus.DRAFT
        ):
            raise AlreadySubmitted(member_id, applied_at=as_utc(application.applied_at))
        missing = application.missing_checklist_items() if application else ["meeting", "assessment", "survey"]
        if missing:
            raise IncompleteChecklist(member_id, missing)

        application.applied_at = utcnow()
        application.status = ApplicationStatus.PENDING
        write_audit(
            self.db.session,
            entity_type="promotion_application",
            entity_id=application.id,
            action="promotion.submit",
            diff={"status": {"old": "draft", "new": "pending"}},
        )
        self.db.session.commit()
        logger.info(
            "Promotion application submitted",
            extra={"member_id": member_id, "application_id": application.id},
        )
        return application

    def approve(self, application_id: int, operator: str | None = None) -> PromotionApplication:
        application = self._application(application_id)
        if application.status != ApplicationStatus.PENDING:
            raise InvalidTransitionError(
                f"Cannot approve application {application_id} (status={enum_value(application.status)})",
                precondition="status=pending",
            )
        missing = application.missing_checklist_items()
        if missing:
            raise IncompleteChecklist(application.member_id, missing)

        application.status = ApplicationStatus.APPROVED
        application.reviewed_at = utcnow()
        application.reviewed_by = operator
        write_audit(
            self.db.session,
            entity_type="promotion_application",
            entity_id=application.id,
            action="promotion.approve",
            actor=operator,
            diff={"status": {"old": "pending", "new": "approved"}},
        )
        self._maybe_complete(application)
        self.db.session.commit()
        logger.info(
            "Promotion application approved",
            extra={"member_id": application.member_id, "application_id": application.id},
        )
        return application

    def reject(self, application_id: int, reason: str, operator: str | None = None) -> PromotionApplication:
        """Send a pending application back to draft. Flags survive; ``applied_at`` does not."""
        reason = (reason or "").strip() if isinstance(reason, str) else ""
        if not reason:
            raise ValidationError("A rejection reason is required", details={"reason": "required"})
        application = self._application(application_id)
        if application.status != ApplicationStatus.PENDING:
            raise InvalidTransitionError(
                f"Cannot reject application {application_id} (status={enum_value(application.status)})",
                precondition="status=pending",
            )

        old_applied_at = application.applied_at
        application.status = ApplicationStatus.DRAFT
        application.applied_at = None
        application.rejection_reason = reason
        application.reviewed_at = utcnow()
        application.reviewed_by = operator
        write_audit(
            self.db.session,
            entity_type="promotion_application",
            entity_id=application.id,
            action="promotion.reject",
            actor=operator,
            diff={
                "status": {"old": "pending", "new": "draft"},
                "applied_at": {"old": old_applied_at, "new": None},
                "reason": reason,
            },
        )
        self.db.session.commit()
        logger.info(
            "Promotion application rejected",
            extra={"member_id": application.member_id, "application_id": application.id},
        )
        return application

    def _maybe_complete(self, application: PromotionApplication) -> bool:
        """Promote once the onboarding checklist is complete for an approved application."""
        if application.status != ApplicationStatus.APPROVED:
            return False
        member = application.member
        if not all(item.completed for item in self._secondary_checklist(member, application)):
            return False

        application.status = ApplicationStatus.COMPLETED
        application.completed_at = utcnow()
        old_role = enum_value(member.role)
        member.role = MemberRole.ELEVATED
        write_audit(
            self.db.session,
            entity_type="member",
            entity_id=member.id,
            action="promotion.complete",
            diff={"role": {"old": old_role, "new": MemberRole.ELEVATED.value}},
        )
        logger.info(
            "Member promoted to elevated",
            extra={"member_id": member.id, "application_id": application.id},
        )
        return True
