"""
Role maintenance decision per meeting occurrence.

    explicit final_approval set        → that value
    else officially attended           → MAINTAINED (defaulted, never stored)
    else                               → None (needs operator review)

The interview is a separate manual review step: it is recorded and
reverted independently and never sets the final approval by itself.
"""

import logging
from dataclasses import dataclass

from app.core.exceptions import NotFoundError
from app.models.audit import write_audit
from app.models.enums import FinalApproval, enum_value, parse_enum
from app.models.meeting import ParticipationEvent, ParticipationRecord, RecurringMeetingOccurrence
from app.models.member import Member
from app.utils.helpers import is_after, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EffectiveApproval:
    value: FinalApproval | None
    defaulted: bool = False

    @property
    def resolved(self) -> bool:
        return self.value is not None

    def to_dict(self) -> dict:
        return {"effective_approval": enum_value(self.value), "approval_defaulted": self.defaulted}


class MaintenanceDecisionEngine:
    """Combines attendance verdicts with manual review into a maintenance decision."""

    def __init__(self, db, resolver):
        self.db = db
        self.resolver = resolver

    def _pair(self, occurrence_id: int, member_id: int):
        session = self.db.session
        occurrence = session.get(RecurringMeetingOccurrence, occurrence_id)
        if occurrence is None:
            raise NotFoundError(resource="MeetingOccurrence", resource_id=occurrence_id)
        member = session.get(Member, member_id)
        if member is None:
            raise NotFoundError(resource="Member", resource_id=member_id)
        return occurrence, member

    def _record_for(self, occurrence, member) -> ParticipationRecord:
        record = self.db.session.query(ParticipationRecord).filter_by(
            occurrence_id=occurrence.id, member_id=member.id,
        ).one_or_none()
        if record is None:
            record = ParticipationRecord(occurrence=occurrence, member=member)
            self.db.session.add(record)
            self.db.session.flush()
        return record

    # ── decision ─────────────────────────────────────────────────────────

    @staticmethod
    def decide(record, verdict) -> EffectiveApproval:
        """Pure default policy over a stored record and a resolver verdict."""
        if record is not None and record.final_approval is not None:
            return EffectiveApproval(record.final_approval, defaulted=False)
        if verdict.officially_attended:
            return EffectiveApproval(FinalApproval.MAINTAINED, defaulted=True)
        return EffectiveApproval(None)

    def effective_approval(self, occurrence_id: int, member_id: int) -> EffectiveApproval:
        occurrence, record, exemption = self.resolver.load(occurrence_id, member_id)
        return self.decide(record, self.resolver.resolve(occurrence, record, exemption))

    # ── manual review ────────────────────────────────────────────────────

    def record_interview(
        self,
        occurrence_id: int,
        member_id: int,
        completed: bool = True,
        operator: str | None = None,
    ) -> ParticipationRecord:
        """Mark the review interview done (or revert it to pending)."""
        occurrence, member = self._pair(occurrence_id, member_id)
        record = self._record_for(occurrence, member)
        now = utcnow()
        overdue = bool(completed) and is_after(now, occurrence.attendance_deadline)

        if completed:
            record.interview_completed = True
            record.interview_completed_at = now
            record.interview_completed_by = operator
            if overdue:
                record.is_overdue = True
        else:
            record.interview_completed = False
            record.interview_completed_at = None
            record.interview_completed_by = None

        self.db.session.add(ParticipationEvent(
            occurrence_id=occurrence.id,
            member_id=member.id,
            kind="interview",
            qualifying=not overdue,
            payload={"completed": bool(completed)},
            actor=operator,
            occurred_at=now,
        ))
        write_audit(
            self.db.session,
            entity_type="participation_record",
            entity_id=record.id,
            action="participation.interview",
            actor=operator,
            diff={"interview_completed": bool(completed)},
        )
        self.db.session.commit()
        logger.info(
            "Interview %s", "recorded" if completed else "reverted",
            extra={"occurrence_id": occurrence_id, "member_id": member_id},
        )
        return record

    def set_final_approval(
        self,
        occurrence_id: int,
        member_id: int,
        decision,
        operator: str | None = None,
    ) -> ParticipationRecord:
        """Store an explicit MAINTAINED / DEMOTED decision for the pair."""
        decision = parse_enum(FinalApproval, decision, field="final_approval")
        occurrence, member = self._pair(occurrence_id, member_id)
        record = self._record_for(occurrence, member)
        old = enum_value(record.final_approval)
        now = utcnow()
        record.final_approval = decision
        record.final_approval_at = now
        record.final_approval_by = operator

        self.db.session.add(ParticipationEvent(
            occurrence_id=occurrence.id,
            member_id=member.id,
            kind="final_approval",
            payload={"decision": decision.value},
            actor=operator,
            occurred_at=now,
        ))
        write_audit(
            self.db.session,
            entity_type="participation_record",
            entity_id=record.id,
            action="participation.final_approval",
            actor=operator,
            diff={"final_approval": {"old": old, "new": decision.value}},
        )
        self.db.session.commit()
        logger.info(
            "Final approval set to %s", decision.value,
            extra={"occurrence_id": occurrence_id, "member_id": member_id},
        )
        return record
