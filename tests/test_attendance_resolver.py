"""
Attendance resolution tests.

Most cases build unsaved model instances and call ``resolve`` directly;
the resolver is a pure function of (occurrence, record, exemption).
"""

from datetime import timedelta

import pytest

from app.core.exceptions import NotFoundError
from app.models.enums import AttendanceMethod, ExemptionStatus, ParticipationIntent
from app.models.meeting import ExemptionRequest, ParticipationRecord, RecurringMeetingOccurrence
from app.services.attendance_resolver import (
    NOT_ATTENDED,
    AttendanceResolver,
    AttendanceVerdict,
    video_survey_completed_at,
)

from tests.conftest import NOW

MEETING = NOW + timedelta(days=1)
DEADLINE = MEETING + timedelta(days=7)


def _occurrence(deadline=DEADLINE):
    return RecurringMeetingOccurrence(title="Monthly", date=MEETING, attendance_deadline=deadline)


def _record(**fields):
    values = dict(
        participation_intent=ParticipationIntent.UNDECIDED,
        attendance_method=AttendanceMethod.NONE,
        attendance_completed_at=None,
        video_progress=0.0,
        video_watched=False,
        video_completed_at=None,
        survey_completed_at=None,
    )
    values.update(fields)
    return ParticipationRecord(**values)


def _exemption(status):
    return ExemptionRequest(status=status, reason="Travelling for work that week")


@pytest.fixture()
def resolver():
    return AttendanceResolver()


# ── Code path ────────────────────────────────────────────────────────────


def test_code_before_deadline_attends(resolver):
    record = _record(attendance_method=AttendanceMethod.CODE, attendance_completed_at=MEETING)
    assert resolver.resolve(_occurrence(), record) == AttendanceVerdict(True, AttendanceMethod.CODE)


def test_code_exactly_at_deadline_attends(resolver):
    record = _record(attendance_method=AttendanceMethod.CODE, attendance_completed_at=DEADLINE)
    assert resolver.resolve(_occurrence(), record).officially_attended is True


def test_stale_code_does_not_attend(resolver):
    record = _record(
        attendance_method=AttendanceMethod.CODE,
        attendance_completed_at=DEADLINE + timedelta(seconds=1),
    )
    assert resolver.resolve(_occurrence(), record) == NOT_ATTENDED


def test_code_without_deadline_always_counts(resolver):
    record = _record(
        attendance_method=AttendanceMethod.CODE,
        attendance_completed_at=MEETING + timedelta(days=365),
    )
    assert resolver.resolve(_occurrence(deadline=None), record).method == AttendanceMethod.CODE


def test_naive_database_timestamps_compare_as_utc(resolver):
    record = _record(
        attendance_method=AttendanceMethod.CODE,
        attendance_completed_at=(DEADLINE - timedelta(minutes=1)).replace(tzinfo=None),
    )
    occurrence = _occurrence(deadline=DEADLINE.replace(tzinfo=None))
    assert resolver.resolve(occurrence, record).officially_attended is True


# ── Video + survey path ──────────────────────────────────────────────────


def test_video_and_survey_together_attend(resolver):
    record = _record(
        video_watched=True,
        video_completed_at=MEETING + timedelta(days=1),
        survey_completed_at=MEETING + timedelta(days=2),
    )
    verdict = resolver.resolve(_occurrence(), record)
    assert verdict == AttendanceVerdict(True, AttendanceMethod.VIDEO_SURVEY)


def test_video_alone_is_not_attendance(resolver):
    record = _record(video_watched=True, video_completed_at=MEETING)
    assert resolver.resolve(_occurrence(), record) == NOT_ATTENDED


def test_survey_alone_is_not_attendance(resolver):
    record = _record(survey_completed_at=MEETING)
    assert resolver.resolve(_occurrence(), record) == NOT_ATTENDED


def test_late_survey_makes_video_path_stale(resolver):
    record = _record(
        video_watched=True,
        video_completed_at=MEETING,
        survey_completed_at=DEADLINE + timedelta(hours=1),
    )
    assert resolver.resolve(_occurrence(), record) == NOT_ATTENDED


def test_completion_moment_is_the_later_stamp():
    record = _record(
        video_watched=True,
        video_completed_at=MEETING + timedelta(hours=5),
        survey_completed_at=MEETING + timedelta(hours=2),
    )
    assert video_survey_completed_at(record) == MEETING + timedelta(hours=5)


# ── Exemption path & precedence ──────────────────────────────────────────


@pytest.mark.parametrize("status, attended", [
    (ExemptionStatus.APPROVED, True),
    (ExemptionStatus.PENDING, False),
    (ExemptionStatus.REJECTED, False),
])
def test_exemption_counts_only_when_approved(resolver, status, attended):
    verdict = resolver.resolve(_occurrence(), None, _exemption(status))
    assert verdict.officially_attended is attended
    assert verdict.method == (AttendanceMethod.EXEMPTION if attended else AttendanceMethod.NONE)


def test_code_wins_over_other_paths(resolver):
    record = _record(
        attendance_method=AttendanceMethod.CODE,
        attendance_completed_at=MEETING,
        video_watched=True,
        video_completed_at=MEETING,
        survey_completed_at=MEETING,
    )
    verdict = resolver.resolve(_occurrence(), record, _exemption(ExemptionStatus.APPROVED))
    assert verdict.method == AttendanceMethod.CODE


def test_video_survey_wins_over_exemption(resolver):
    record = _record(video_watched=True, video_completed_at=MEETING, survey_completed_at=MEETING)
    verdict = resolver.resolve(_occurrence(), record, _exemption(ExemptionStatus.APPROVED))
    assert verdict.method == AttendanceMethod.VIDEO_SURVEY


def test_stale_code_falls_through_to_exemption(resolver):
    record = _record(
        attendance_method=AttendanceMethod.CODE,
        attendance_completed_at=DEADLINE + timedelta(days=1),
    )
    verdict = resolver.resolve(_occurrence(), record, _exemption(ExemptionStatus.APPROVED))
    assert verdict.method == AttendanceMethod.EXEMPTION


def test_intent_never_decides_attendance(resolver):
    promised = _record(participation_intent=ParticipationIntent.WILL_ATTEND)
    assert resolver.resolve(_occurrence(), promised) == NOT_ATTENDED

    declined = _record(
        participation_intent=ParticipationIntent.WILL_NOT_ATTEND,
        attendance_method=AttendanceMethod.CODE,
        attendance_completed_at=MEETING,
    )
    assert resolver.resolve(_occurrence(), declined).officially_attended is True


def test_no_evidence_at_all(resolver):
    assert resolver.resolve(_occurrence()) == NOT_ATTENDED
    assert NOT_ATTENDED.to_dict() == {"officially_attended": False, "method": "none"}


# ── Loading from storage ─────────────────────────────────────────────────


def test_resolve_for_reads_stored_rows(services, session, make_member, make_occurrence):
    member = make_member()
    occurrence = make_occurrence()
    session.add(_record(
        occurrence_id=occurrence.id,
        member_id=member.id,
        attendance_method=AttendanceMethod.CODE,
        attendance_completed_at=occurrence.date,
    ))
    session.commit()

    verdict = services.resolver.resolve_for(occurrence.id, member.id)
    assert verdict == AttendanceVerdict(True, AttendanceMethod.CODE)


def test_resolve_for_pair_without_rows(services, make_member, make_occurrence):
    member = make_member()
    occurrence = make_occurrence()
    assert services.resolver.resolve_for(occurrence.id, member.id) == NOT_ATTENDED


def test_resolve_for_unknown_occurrence(services, make_member):
    member = make_member()
    with pytest.raises(NotFoundError):
        services.resolver.resolve_for(999, member.id)


def test_resolve_for_unknown_member(services, make_occurrence):
    occurrence = make_occurrence()
    with pytest.raises(NotFoundError) as excinfo:
        services.resolver.resolve_for(occurrence.id, 424242)
    assert excinfo.value.resource == "Member"
