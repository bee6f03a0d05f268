"""
Attendance evidence intake for recurring meetings.

Every inbound event updates the (occurrence, member) ParticipationRecord or
ExemptionRequest and appends one ParticipationEvent row. Evidence that
arrives after the attendance deadline is still stored (``qualifying=False``,
``is_overdue=True``) so history is kept; the resolver decides whether it
counts.

Only ELEVATED members take part in the mandatory meeting.
"""

import logging
from dataclasses import dataclass

from app.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from app.models.audit import write_audit
from app.models.enums import (
    AttendanceMethod,
    ExemptionStatus,
    ParticipationIntent,
    enum_value,
    parse_enum,
)
from app.models.meeting import (
    ExemptionRequest,
    ParticipationEvent,
    ParticipationRecord,
    RecurringMeetingOccurrence,
)
from app.models.member import Member
from app.services.attendance_resolver import video_survey_completed_at
from app.services.promotion_eligibility import validate_answers
from app.utils.helpers import as_utc, is_after, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CodeEntryResult:
    record: ParticipationRecord
    stale: bool
    first_entry: bool

    def to_dict(self) -> dict:
        return {**self.record.to_dict(), "stale": self.stale, "first_entry": self.first_entry}


class ParticipationEventRecorder:
    """Applies member and operator attendance events."""

    def __init__(
        self,
        db,
        *,
        video_threshold: float = 0.9,
        reason_min_length: int = 10,
        reason_max_length: int = 1000,
    ):
        self.db = db
        self.video_threshold = video_threshold
        self.reason_min_length = reason_min_length
        self.reason_max_length = reason_max_length

    @classmethod
    def from_config(cls, db, config) -> "ParticipationEventRecorder":
        return cls(
            db,
            video_threshold=config.get("MEETING_VIDEO_THRESHOLD", 0.9),
            reason_min_length=config.get("EXEMPTION_REASON_MIN_LENGTH", 10),
            reason_max_length=config.get("EXEMPTION_REASON_MAX_LENGTH", 1000),
        )

    # ── lookups ──────────────────────────────────────────────────────────

    def _occurrence(self, occurrence_id: int) -> RecurringMeetingOccurrence:
        occurrence = self.db.session.get(RecurringMeetingOccurrence, occurrence_id)
        if occurrence is None:
            raise NotFoundError(resource="MeetingOccurrence", resource_id=occurrence_id)
        return occurrence

    def _participant(self, occurrence_id: int, member_id: int):
        occurrence = self._occurrence(occurrence_id)
        member = self.db.session.get(Member, member_id)
        if member is None:
            raise NotFoundError(resource="Member", resource_id=member_id)
        if not member.is_elevated:
            raise InvalidTransitionError(
                f"Member {member_id} is {enum_value(member.role)}; only elevated members attend meetings",
                precondition="role=elevated",
            )
        return occurrence, member

    def _record(self, occurrence, member) -> ParticipationRecord:
        record = self.db.session.query(ParticipationRecord).filter_by(
            occurrence_id=occurrence.id, member_id=member.id,
        ).one_or_none()
        if record is None:
            record = ParticipationRecord(
                occurrence=occurrence,
                member=member,
                participation_intent=ParticipationIntent.UNDECIDED,
                attendance_method=AttendanceMethod.NONE,
                video_progress=0.0,
                video_watched=False,
                is_overdue=False,
                interview_completed=False,
            )
            self.db.session.add(record)
        return record

    def _exemption(self, occurrence_id: int, member_id: int) -> ExemptionRequest | None:
        return self.db.session.query(ExemptionRequest).filter_by(
            occurrence_id=occurrence_id, member_id=member_id,
        ).one_or_none()

    def _event(self, occurrence_id, member_id, kind, *, now, qualifying=True, payload=None, actor=None):
        self.db.session.add(ParticipationEvent(
            occurrence_id=occurrence_id,
            member_id=member_id,
            kind=kind,
            qualifying=qualifying,
            payload=payload,
            actor=actor,
            occurred_at=now,
        ))

    @staticmethod
    def _stamp_video_survey(record: ParticipationRecord) -> None:
        """Set method VIDEO_SURVEY once both halves exist and nothing was recorded yet."""
        completed_at = video_survey_completed_at(record)
        if completed_at is not None and record.attendance_method == AttendanceMethod.NONE:
            record.attendance_method = AttendanceMethod.VIDEO_SURVEY
            record.attendance_completed_at = completed_at

    # ── intent ───────────────────────────────────────────────────────────

    def set_intent(self, occurrence_id: int, member_id: int, intent) -> ParticipationRecord:
        intent = parse_enum(ParticipationIntent, intent, field="participation_intent")
        occurrence, member = self._participant(occurrence_id, member_id)
        now = utcnow()
        if is_after(now, occurrence.application_deadline):
            raise InvalidTransitionError(
                f"Application deadline for meeting {occurrence_id} has passed",
                precondition="before application_deadline",
            )
        record = self._record(occurrence, member)
        record.participation_intent = intent
        record.intent_at = now
        self._event(occurrence.id, member.id, "intent", now=now, payload={"intent": intent.value})
        self.db.session.commit()
        logger.info(
            "Participation intent set to %s", intent.value,
            extra={"occurrence_id": occurrence_id, "member_id": member_id},
        )
        return record

    # ── attendance code ──────────────────────────────────────────────────

    def submit_attendance_code(self, occurrence_id: int, member_id: int, code) -> CodeEntryResult:
        if not isinstance(code, str) or not code.strip():
            raise ValidationError("Attendance code is required", details={"code": "required"})
        occurrence, member = self._participant(occurrence_id, member_id)
        if not occurrence.attendance_code:
            raise InvalidTransitionError(
                f"Meeting {occurrence_id} has no attendance code",
                precondition="attendance_code configured",
            )
        if code.strip().lower() != occurrence.attendance_code.strip().lower():
            raise ValidationError("Attendance code does not match", details={"code": "mismatch"})

        now = utcnow()
        stale = is_after(now, occurrence.attendance_deadline)
        record = self._record(occurrence, member)
        first_entry = record.attendance_method == AttendanceMethod.NONE
        if first_entry:
            record.attendance_method = AttendanceMethod.CODE
            record.attendance_completed_at = now
        if stale:
            record.is_overdue = True
            logger.warning(
                "Attendance code entered after the deadline",
                extra={"occurrence_id": occurrence_id, "member_id": member_id},
            )
        self._event(occurrence.id, member.id, "code", now=now, qualifying=not stale)
        self.db.session.commit()
        if first_entry and not stale:
            logger.info("Attendance code accepted", extra={"occurrence_id": occurrence_id, "member_id": member_id})
        return CodeEntryResult(record=record, stale=stale, first_entry=first_entry)

    # ── recorded session + survey ────────────────────────────────────────

    def record_video_progress(self, occurrence_id: int, member_id: int, progress) -> ParticipationRecord:
        if isinstance(progress, bool) or not isinstance(progress, (int, float)):
            raise ValidationError("progress must be a number between 0 and 1", details={"progress": "0..1"})
        occurrence, member = self._participant(occurrence_id, member_id)
        if not occurrence.recording_url:
            raise InvalidTransitionError(
                f"Meeting {occurrence_id} has no recording",
                precondition="recording configured",
            )

        progress = min(max(float(progress), 0.0), 1.0)
        now = utcnow()
        stale = is_after(now, occurrence.attendance_deadline)
        record = self._record(occurrence, member)
        if progress > (record.video_progress or 0.0):
            record.video_progress = progress
        if not record.video_watched and record.video_progress >= self.video_threshold:
            record.video_watched = True
            record.video_completed_at = now
            if stale:
                record.is_overdue = True
            logger.info("Recording watched", extra={"occurrence_id": occurrence_id, "member_id": member_id})
        self._stamp_video_survey(record)
        self._event(
            occurrence.id, member.id, "video_progress",
            now=now, qualifying=not stale, payload={"progress": progress},
        )
        self.db.session.commit()
        return record

    def submit_survey(self, occurrence_id: int, member_id: int, answers) -> ParticipationRecord:
        answers = validate_answers(answers)
        occurrence, member = self._participant(occurrence_id, member_id)
        if not occurrence.survey_url:
            raise InvalidTransitionError(
                f"Meeting {occurrence_id} has no survey",
                precondition="survey configured",
            )
        record = self._record(occurrence, member)
        if not record.video_watched:
            raise InvalidTransitionError(
                "The recording must be watched before the survey",
                precondition="video_watched",
            )

        now = utcnow()
        stale = is_after(now, occurrence.attendance_deadline)
        if record.survey_completed_at is None:
            record.survey_completed_at = now
            if stale:
                record.is_overdue = True
                logger.warning(
                    "Survey submitted after the deadline",
                    extra={"occurrence_id": occurrence_id, "member_id": member_id},
                )
        self._stamp_video_survey(record)
        self._event(occurrence.id, member.id, "survey", now=now, qualifying=not stale, payload=answers)
        self.db.session.commit()
        return record

    # ── exemptions ───────────────────────────────────────────────────────

    def _validate_reason(self, reason) -> str:
        reason = reason.strip() if isinstance(reason, str) else ""
        if not self.reason_min_length <= len(reason) <= self.reason_max_length:
            raise ValidationError(
                f"Reason must be {self.reason_min_length}-{self.reason_max_length} characters",
                details={"reason": f"{self.reason_min_length}..{self.reason_max_length} characters"},
            )
        return reason

    def submit_exemption(self, occurrence_id: int, member_id: int, reason) -> ExemptionRequest:
        reason = self._validate_reason(reason)
        occurrence, member = self._participant(occurrence_id, member_id)
        now = utcnow()
        if now >= as_utc(occurrence.date):
            raise InvalidTransitionError(
                f"Meeting {occurrence_id} has already started",
                precondition="before meeting start",
            )
        if is_after(now, occurrence.application_deadline):
            raise InvalidTransitionError(
                f"Application deadline for meeting {occurrence_id} has passed",
                precondition="before application_deadline",
            )

        exemption = self._exemption(occurrence.id, member.id)
        if exemption is not None and exemption.status != ExemptionStatus.PENDING:
            raise InvalidTransitionError(
                f"Exemption request {exemption.id} was already reviewed",
                precondition="exemption pending",
            )
        if exemption is None:
            exemption = ExemptionRequest(
                occurrence_id=occurrence.id,
                member_id=member.id,
                status=ExemptionStatus.PENDING,
                reason=reason,
            )
            self.db.session.add(exemption)
        else:
            exemption.reason = reason

        record = self._record(occurrence, member)
        record.participation_intent = ParticipationIntent.WILL_NOT_ATTEND
        record.intent_at = now
        self._event(occurrence.id, member.id, "exemption_submitted", now=now, payload={"reason": reason})
        self.db.session.commit()
        logger.info(
            "Exemption requested",
            extra={"occurrence_id": occurrence_id, "member_id": member_id, "exemption_id": exemption.id},
        )
        return exemption

    def withdraw_exemption(self, occurrence_id: int, member_id: int) -> ParticipationRecord:
        occurrence, member = self._participant(occurrence_id, member_id)
        exemption = self._exemption(occurrence.id, member.id)
        if exemption is None:
            raise NotFoundError(resource="ExemptionRequest")
        if exemption.status != ExemptionStatus.PENDING:
            raise InvalidTransitionError(
                f"Exemption request {exemption.id} was already reviewed",
                precondition="exemption pending",
            )

        now = utcnow()
        self.db.session.delete(exemption)
        record = self._record(occurrence, member)
        record.participation_intent = ParticipationIntent.UNDECIDED
        record.intent_at = now
        self._event(occurrence.id, member.id, "exemption_withdrawn", now=now)
        self.db.session.commit()
        logger.info("Exemption withdrawn", extra={"occurrence_id": occurrence_id, "member_id": member_id})
        return record

    def review_exemption(
        self,
        exemption_id: int,
        status,
        notes: str | None = None,
        operator: str | None = None,
    ) -> ExemptionRequest:
        status = parse_enum(ExemptionStatus, status, field="status")
        if status == ExemptionStatus.PENDING:
            raise ValidationError(
                "Review status must be approved or rejected",
                details={"status": "approved | rejected"},
            )
        exemption = self.db.session.get(ExemptionRequest, exemption_id)
        if exemption is None:
            raise NotFoundError(resource="ExemptionRequest", resource_id=exemption_id)
        if exemption.status != ExemptionStatus.PENDING:
            raise InvalidTransitionError(
                f"Exemption request {exemption_id} was already reviewed",
                precondition="exemption pending",
            )

        now = utcnow()
        exemption.status = status
        exemption.reviewer_notes = notes
        exemption.reviewed_at = now
        exemption.reviewed_by = operator
        self._event(
            exemption.occurrence_id, exemption.member_id, "exemption_reviewed",
            now=now, payload={"status": status.value}, actor=operator,
        )
        write_audit(
            self.db.session,
            entity_type="exemption_request",
            entity_id=exemption.id,
            action="exemption.review",
            actor=operator,
            diff={"status": {"old": "pending", "new": status.value}},
        )
        self.db.session.commit()
        logger.info(
            "Exemption %s", status.value,
            extra={"exemption_id": exemption_id, "member_id": exemption.member_id},
        )
        return exemption
