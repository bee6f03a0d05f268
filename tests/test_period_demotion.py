"""
Period demotion tests: DEMOTED decisions in [start, end) revert members to REGULAR.
"""

from datetime import date, timedelta

import pytest

from app.core.exceptions import ValidationError
from app.models import db
from app.models.audit import AuditLog
from app.models.enums import MemberRole
from app.models.member import Member
from app.models.promotion import PromotionApplication

from tests.conftest import NOW

PERIOD = (date(2026, 3, 1), date(2026, 4, 1))


@pytest.fixture()
def demotion(services, clock):
    return services.demotion


def _demote(services, occurrence, member):
    services.decisions.set_final_approval(occurrence.id, member.id, "demoted", operator="ops")


def test_candidates_only_inside_period(demotion, services, make_member, make_occurrence):
    inside = make_occurrence()
    outside = make_occurrence(date=NOW + timedelta(days=40))
    member = make_member(MemberRole.ELEVATED)
    _demote(services, inside, member)
    _demote(services, outside, member)

    assert demotion.demotion_candidates(*PERIOD) == [(inside.id, member.id)]


def test_maintained_and_unresolved_are_not_candidates(demotion, services, make_member, make_occurrence):
    occurrence = make_occurrence()
    attended = make_member(MemberRole.ELEVATED)
    undecided = make_member(MemberRole.ELEVATED)
    services.participation.submit_attendance_code(occurrence.id, attended.id, "SPRING-26")
    services.participation.set_intent(occurrence.id, undecided.id, "will_attend")

    assert demotion.demotion_candidates(*PERIOD) == []


def test_apply_demotions(demotion, services, make_member, make_occurrence):
    occurrence = make_occurrence()
    member = make_member(MemberRole.ELEVATED, member_number="UGS0000003")
    db.session.add(PromotionApplication(member_id=member.id))
    db.session.commit()
    _demote(services, occurrence, member)

    summary = demotion.apply_demotions(*PERIOD, operator="ops")

    assert summary == {"occurrences": [occurrence.id], "demoted": [member.id], "skipped": []}
    refreshed = db.session.get(Member, member.id)
    assert refreshed.role == MemberRole.REGULAR
    assert refreshed.member_number == "UGS0000003"
    assert PromotionApplication.query.count() == 0
    log = AuditLog.query.filter_by(action="member.demoted").one()
    assert log.actor == "ops"
    assert log.diff["application_removed"] is True


def test_apply_demotions_twice_skips(demotion, services, make_member, make_occurrence):
    occurrence = make_occurrence()
    member = make_member(MemberRole.ELEVATED)
    _demote(services, occurrence, member)
    demotion.apply_demotions(*PERIOD)

    summary = demotion.apply_demotions(*PERIOD)

    assert summary["demoted"] == []
    assert summary["skipped"] == [member.id]
    assert AuditLog.query.filter_by(action="member.demoted").count() == 1


def test_member_demoted_in_two_meetings_is_handled_once(demotion, services, make_member, make_occurrence):
    first = make_occurrence()
    second = make_occurrence(date=NOW + timedelta(days=8))
    member = make_member(MemberRole.ELEVATED)
    _demote(services, first, member)
    _demote(services, second, member)

    summary = demotion.apply_demotions(*PERIOD)

    assert summary["demoted"] == [member.id]
    assert summary["occurrences"] == sorted([first.id, second.id])


def test_invalid_period(demotion):
    with pytest.raises(ValidationError):
        demotion.demotion_candidates(date(2026, 4, 1), date(2026, 3, 1))
    with pytest.raises(ValidationError):
        demotion.demotion_candidates("2026-03-01", date(2026, 4, 1))
