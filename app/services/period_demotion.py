"""
Period demotion: apply DEMOTED decisions for the meetings of a period.

Operator-triggered (CLI ``flask apply-demotions`` or the demotions
endpoint), never scheduled. For every occurrence dated in [start, end):

    effective approval DEMOTED and role ELEVATED
        → role REGULAR
        → promotion application deleted (onboarding evidence reset)
        → one ``member.demoted`` audit row

All demotions of one run commit together.
"""

import logging
from datetime import date, datetime, time, timezone

from app.core.exceptions import ValidationError
from app.models.audit import write_audit
from app.models.enums import FinalApproval, MemberRole
from app.models.meeting import ExemptionRequest, ParticipationRecord, RecurringMeetingOccurrence
from app.models.member import Member

logger = logging.getLogger(__name__)


def _as_bound(value) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    raise ValidationError("Period bounds must be dates", details={"period": "YYYY-MM-DD"})


class PeriodDemotion:
    def __init__(self, db, resolver, decisions):
        self.db = db
        self.resolver = resolver
        self.decisions = decisions

    def demotion_candidates(self, start, end) -> list[tuple[int, int]]:
        """(occurrence_id, member_id) pairs whose effective approval is DEMOTED."""
        start, end = _as_bound(start), _as_bound(end)
        if start >= end:
            raise ValidationError("Period start must be before its end", details={"period": "start < end"})

        session = self.db.session
        occurrences = (
            session.query(RecurringMeetingOccurrence)
            .filter(RecurringMeetingOccurrence.date >= start, RecurringMeetingOccurrence.date < end)
            .order_by(RecurringMeetingOccurrence.date.asc())
            .all()
        )
        pairs = []
        for occurrence in occurrences:
            records = session.query(ParticipationRecord).filter_by(occurrence_id=occurrence.id).all()
            exemptions = {
                e.member_id: e
                for e in session.query(ExemptionRequest).filter_by(occurrence_id=occurrence.id)
            }
            for record in records:
                verdict = self.resolver.resolve(occurrence, record, exemptions.get(record.member_id))
                if self.decisions.decide(record, verdict).value == FinalApproval.DEMOTED:
                    pairs.append((occurrence.id, record.member_id))
        return pairs

    def apply_demotions(self, start, end, operator: str | None = None) -> dict:
        pairs = self.demotion_candidates(start, end)
        session = self.db.session
        summary = {"occurrences": sorted({o for o, _ in pairs}), "demoted": [], "skipped": []}

        seen = set()
        for occurrence_id, member_id in pairs:
            if member_id in seen:
                continue
            seen.add(member_id)
            member = session.get(Member, member_id)
            if member is None or not member.is_elevated:
                summary["skipped"].append(member_id)
                continue

            member.role = MemberRole.REGULAR
            had_application = member.promotion_application is not None
            if had_application:
                session.delete(member.promotion_application)
            write_audit(
                session,
                entity_type="member",
                entity_id=member.id,
                action="member.demoted",
                actor=operator,
                diff={
                    "role": {"old": MemberRole.ELEVATED.value, "new": MemberRole.REGULAR.value},
                    "occurrence_id": occurrence_id,
                    "application_removed": had_application,
                },
            )
            summary["demoted"].append(member_id)
            logger.info(
                "Member demoted to regular",
                extra={"member_id": member_id, "occurrence_id": occurrence_id},
            )

        session.commit()
        logger.info(
            "Period demotion finished: %d demoted, %d skipped",
            len(summary["demoted"]), len(summary["skipped"]),
        )
        return summary
