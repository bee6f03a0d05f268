"""
Read-only lifecycle projections.

Nothing here writes: every number is recomputed from stored evidence on
each call, so a summary can never drift from the underlying records.
"""

from app.core.exceptions import NotFoundError
from app.models.enums import (
    AttendanceMethod,
    FinalApproval,
    MemberRole,
    ParticipationIntent,
    enum_value,
)
from app.models.meeting import ExemptionRequest, ParticipationRecord, RecurringMeetingOccurrence
from app.models.member import Member


class LifecycleReporting:
    def __init__(self, db, evaluator, resolver, decisions):
        self.db = db
        self.evaluator = evaluator
        self.resolver = resolver
        self.decisions = decisions

    def member_summary(self, member_id: int) -> dict:
        member = self.db.session.get(Member, member_id)
        if member is None:
            raise NotFoundError(resource="Member", resource_id=member_id)
        return {
            "member_id": member.id,
            "member_number": member.member_number,
            "role": enum_value(member.role),
            "eligibility": self.evaluator.evaluate(member.id).to_dict(),
        }

    def _participant_row(self, occurrence, record, exemption) -> dict:
        verdict = self.resolver.resolve(occurrence, record, exemption)
        approval = self.decisions.decide(record, verdict)
        interview_completed = bool(record and record.interview_completed)
        return {
            "officially_attended": verdict.officially_attended,
            "method": verdict.method.value,
            "participation_intent": (
                enum_value(record.participation_intent) if record else ParticipationIntent.UNDECIDED.value
            ),
            "exemption_status": enum_value(exemption.status) if exemption else None,
            "interview_completed": interview_completed,
            "effective_approval": enum_value(approval.value),
            "approval_defaulted": approval.defaulted,
            "is_overdue": bool(record and record.is_overdue),
            "needs_interview": not verdict.officially_attended and not interview_completed and not approval.resolved,
        }

    def participant_summary(self, occurrence_id: int, member_id: int) -> dict:
        occurrence, record, exemption = self.resolver.load(occurrence_id, member_id)
        return {
            "occurrence_id": occurrence.id,
            "member_id": member_id,
            **self._participant_row(occurrence, record, exemption),
        }

    def occurrence_summary(self, occurrence_id: int, *, include_participants: bool = True) -> dict:
        """Counts by method, intent and effective approval over all participants.

        Participants: current ELEVATED members plus anyone holding a record
        or exemption for this occurrence (e.g. since demoted).
        """
        session = self.db.session
        occurrence = session.get(RecurringMeetingOccurrence, occurrence_id)
        if occurrence is None:
            raise NotFoundError(resource="MeetingOccurrence", resource_id=occurrence_id)

        records = {
            r.member_id: r
            for r in session.query(ParticipationRecord).filter_by(occurrence_id=occurrence_id)
        }
        exemptions = {
            e.member_id: e
            for e in session.query(ExemptionRequest).filter_by(occurrence_id=occurrence_id)
        }
        elevated_ids = {
            member_id
            for (member_id,) in session.query(Member.id).filter(Member.role == MemberRole.ELEVATED)
        }
        participant_ids = sorted(elevated_ids | set(records) | set(exemptions))
        numbers = dict(
            session.query(Member.id, Member.member_number).filter(Member.id.in_(participant_ids))
        ) if participant_ids else {}

        by_method = {m.value: 0 for m in AttendanceMethod}
        by_intent = {i.value: 0 for i in ParticipationIntent}
        by_approval = {a.value: 0 for a in FinalApproval}
        by_approval["unresolved"] = 0
        attended = 0
        participants = []

        for member_id in participant_ids:
            row = self._participant_row(occurrence, records.get(member_id), exemptions.get(member_id))
            by_method[row["method"]] += 1
            by_intent[row["participation_intent"]] += 1
            by_approval[row["effective_approval"] or "unresolved"] += 1
            attended += int(row["officially_attended"])
            participants.append({"member_id": member_id, "member_number": numbers.get(member_id), **row})

        summary = {
            "occurrence": occurrence.to_dict(),
            "total_participants": len(participant_ids),
            "officially_attended": attended,
            "by_method": by_method,
            "by_intent": by_intent,
            "by_approval": by_approval,
        }
        if include_participants:
            summary["participants"] = participants
        return summary
