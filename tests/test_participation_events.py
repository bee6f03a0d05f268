"""
Participation evidence intake tests.

Timeline used throughout (see conftest):
    NOW                       clock start
    NOW + 12h                 application deadline
    NOW + 1d                  meeting
    NOW + 8d                  attendance deadline
"""

import pytest

from app.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from app.models.enums import (
    AttendanceMethod,
    ExemptionStatus,
    MemberRole,
    ParticipationIntent,
)
from app.models import db
from app.models.meeting import ExemptionRequest, ParticipationEvent, ParticipationRecord
from app.services.attendance_resolver import AttendanceResolver

REASON = "Business travel abroad during the meeting week"


@pytest.fixture()
def recorder(services, clock):
    return services.participation


@pytest.fixture()
def elevated(make_member):
    return make_member(MemberRole.ELEVATED)


def _verdict(occurrence_id, member_id):
    return AttendanceResolver(db).resolve_for(occurrence_id, member_id)


def _events(kind=None):
    query = ParticipationEvent.query.order_by(ParticipationEvent.id)
    if kind:
        query = query.filter_by(kind=kind)
    return query.all()


# ── Role gate ────────────────────────────────────────────────────────────


def test_regular_members_cannot_take_part(recorder, make_member, make_occurrence):
    regular = make_member()
    occurrence = make_occurrence()
    with pytest.raises(InvalidTransitionError) as excinfo:
        recorder.set_intent(occurrence.id, regular.id, "will_attend")
    assert excinfo.value.precondition == "role=elevated"
    assert ParticipationRecord.query.count() == 0


def test_unknown_occurrence(recorder, elevated):
    with pytest.raises(NotFoundError):
        recorder.submit_attendance_code(77, elevated.id, "SPRING-26")


# ── Intent ───────────────────────────────────────────────────────────────


def test_set_intent_before_deadline(recorder, elevated, make_occurrence):
    occurrence = make_occurrence()
    record = recorder.set_intent(occurrence.id, elevated.id, "will_attend")
    assert record.participation_intent == ParticipationIntent.WILL_ATTEND
    assert [e.payload for e in _events("intent")] == [{"intent": "will_attend"}]


def test_set_intent_after_application_deadline(recorder, clock, elevated, make_occurrence):
    occurrence = make_occurrence()
    clock.advance(hours=13)
    with pytest.raises(InvalidTransitionError):
        recorder.set_intent(occurrence.id, elevated.id, "will_attend")


def test_unknown_intent(recorder, elevated, make_occurrence):
    occurrence = make_occurrence()
    with pytest.raises(ValidationError):
        recorder.set_intent(occurrence.id, elevated.id, "maybe")


# ── Attendance code ──────────────────────────────────────────────────────


def test_code_match_is_case_insensitive(recorder, clock, elevated, make_occurrence):
    occurrence = make_occurrence()
    clock.advance(days=1)

    result = recorder.submit_attendance_code(occurrence.id, elevated.id, "  spring-26 ")

    assert result.first_entry is True
    assert result.stale is False
    assert result.record.attendance_method == AttendanceMethod.CODE
    assert _verdict(occurrence.id, elevated.id).method == AttendanceMethod.CODE


def test_wrong_code_records_nothing(recorder, elevated, make_occurrence):
    occurrence = make_occurrence()
    with pytest.raises(ValidationError):
        recorder.submit_attendance_code(occurrence.id, elevated.id, "AUTUMN-25")
    assert ParticipationRecord.query.count() == 0
    assert _events() == []


def test_blank_code_is_rejected(recorder, elevated, make_occurrence):
    occurrence = make_occurrence()
    with pytest.raises(ValidationError):
        recorder.submit_attendance_code(occurrence.id, elevated.id, "   ")


def test_occurrence_without_code(recorder, elevated, make_occurrence):
    occurrence = make_occurrence(attendance_code=None)
    with pytest.raises(InvalidTransitionError):
        recorder.submit_attendance_code(occurrence.id, elevated.id, "SPRING-26")


def test_repeated_code_keeps_first_timestamp(recorder, clock, elevated, make_occurrence):
    occurrence = make_occurrence()
    first = recorder.submit_attendance_code(occurrence.id, elevated.id, "SPRING-26")
    first_at = first.record.attendance_completed_at
    clock.advance(hours=3)

    second = recorder.submit_attendance_code(occurrence.id, elevated.id, "SPRING-26")

    assert second.first_entry is False
    assert second.record.attendance_completed_at == first_at
    assert len(_events("code")) == 2


def test_stale_code_is_stored_but_not_qualifying(recorder, clock, elevated, make_occurrence):
    occurrence = make_occurrence()
    clock.advance(days=9)

    result = recorder.submit_attendance_code(occurrence.id, elevated.id, "SPRING-26")

    assert result.stale is True
    assert result.record.is_overdue is True
    assert _events("code")[0].qualifying is False
    assert _verdict(occurrence.id, elevated.id).officially_attended is False


# ── Recording + survey ───────────────────────────────────────────────────


def test_video_progress_is_monotonic_and_clamped(recorder, elevated, make_occurrence):
    occurrence = make_occurrence()
    recorder.record_video_progress(occurrence.id, elevated.id, 0.5)
    record = recorder.record_video_progress(occurrence.id, elevated.id, 0.2)
    assert record.video_progress == 0.5
    assert record.video_watched is False

    record = recorder.record_video_progress(occurrence.id, elevated.id, 3)
    assert record.video_progress == 1.0
    assert record.video_watched is True


def test_survey_requires_watched_video(recorder, elevated, make_occurrence):
    occurrence = make_occurrence()
    recorder.record_video_progress(occurrence.id, elevated.id, 0.4)
    with pytest.raises(InvalidTransitionError) as excinfo:
        recorder.submit_survey(occurrence.id, elevated.id, {"q1": "yes"})
    assert excinfo.value.precondition == "video_watched"


def test_video_then_survey_attends(recorder, clock, elevated, make_occurrence):
    occurrence = make_occurrence()
    clock.advance(days=2)
    recorder.record_video_progress(occurrence.id, elevated.id, 0.95)
    clock.advance(hours=1)

    record = recorder.submit_survey(occurrence.id, elevated.id, {"q1": "Useful session"})

    assert record.attendance_method == AttendanceMethod.VIDEO_SURVEY
    assert record.survey_completed_at is not None
    assert _verdict(occurrence.id, elevated.id).method == AttendanceMethod.VIDEO_SURVEY


def test_late_survey_does_not_attend(recorder, clock, elevated, make_occurrence):
    occurrence = make_occurrence()
    recorder.record_video_progress(occurrence.id, elevated.id, 1.0)
    clock.advance(days=10)

    record = recorder.submit_survey(occurrence.id, elevated.id, {"q1": "late"})

    assert record.is_overdue is True
    assert _events("survey")[0].qualifying is False
    assert _verdict(occurrence.id, elevated.id).officially_attended is False


def test_occurrence_without_recording(recorder, elevated, make_occurrence):
    occurrence = make_occurrence(recording_url=None)
    with pytest.raises(InvalidTransitionError):
        recorder.record_video_progress(occurrence.id, elevated.id, 1.0)


# ── Exemptions ───────────────────────────────────────────────────────────


def test_submit_exemption_sets_will_not_attend(recorder, elevated, make_occurrence):
    occurrence = make_occurrence()

    exemption = recorder.submit_exemption(occurrence.id, elevated.id, f"  {REASON}  ")

    assert exemption.status == ExemptionStatus.PENDING
    assert exemption.reason == REASON
    record = ParticipationRecord.query.one()
    assert record.participation_intent == ParticipationIntent.WILL_NOT_ATTEND


@pytest.mark.parametrize("reason", ["too short", "x" * 1001, None, "          "])
def test_exemption_reason_length(recorder, elevated, make_occurrence, reason):
    occurrence = make_occurrence()
    with pytest.raises(ValidationError):
        recorder.submit_exemption(occurrence.id, elevated.id, reason)


def test_exemption_after_application_deadline(recorder, clock, elevated, make_occurrence):
    occurrence = make_occurrence()
    clock.advance(hours=18)
    with pytest.raises(InvalidTransitionError):
        recorder.submit_exemption(occurrence.id, elevated.id, REASON)


def test_exemption_after_meeting_start_without_deadline(recorder, clock, elevated, make_occurrence):
    occurrence = make_occurrence(no_deadlines=True)
    clock.advance(days=1)
    with pytest.raises(InvalidTransitionError) as excinfo:
        recorder.submit_exemption(occurrence.id, elevated.id, REASON)
    assert excinfo.value.precondition == "before meeting start"


def test_resubmitting_pending_exemption_updates_reason(recorder, elevated, make_occurrence):
    occurrence = make_occurrence()
    recorder.submit_exemption(occurrence.id, elevated.id, REASON)
    recorder.submit_exemption(occurrence.id, elevated.id, "Hospital appointment that morning")
    assert ExemptionRequest.query.one().reason == "Hospital appointment that morning"


def test_withdraw_exemption(recorder, elevated, make_occurrence):
    occurrence = make_occurrence()
    recorder.submit_exemption(occurrence.id, elevated.id, REASON)

    record = recorder.withdraw_exemption(occurrence.id, elevated.id)

    assert ExemptionRequest.query.count() == 0
    assert record.participation_intent == ParticipationIntent.UNDECIDED
    assert [e.kind for e in _events()] == ["exemption_submitted", "exemption_withdrawn"]


def test_withdraw_without_request(recorder, elevated, make_occurrence):
    occurrence = make_occurrence()
    with pytest.raises(NotFoundError):
        recorder.withdraw_exemption(occurrence.id, elevated.id)


def test_approved_exemption_attends(recorder, elevated, make_occurrence):
    occurrence = make_occurrence()
    exemption = recorder.submit_exemption(occurrence.id, elevated.id, REASON)

    reviewed = recorder.review_exemption(exemption.id, "approved", notes="ok", operator="ops")

    assert reviewed.status == ExemptionStatus.APPROVED
    assert reviewed.reviewed_by == "ops"
    assert _verdict(occurrence.id, elevated.id).method == AttendanceMethod.EXEMPTION


def test_reviewed_exemption_is_final(recorder, elevated, make_occurrence):
    occurrence = make_occurrence()
    exemption = recorder.submit_exemption(occurrence.id, elevated.id, REASON)
    recorder.review_exemption(exemption.id, "rejected")

    with pytest.raises(InvalidTransitionError):
        recorder.review_exemption(exemption.id, "approved")
    with pytest.raises(InvalidTransitionError):
        recorder.withdraw_exemption(occurrence.id, elevated.id)
    with pytest.raises(InvalidTransitionError):
        recorder.submit_exemption(occurrence.id, elevated.id, REASON)


def test_review_status_must_be_terminal(recorder, elevated, make_occurrence):
    occurrence = make_occurrence()
    exemption = recorder.submit_exemption(occurrence.id, elevated.id, REASON)
    with pytest.raises(ValidationError):
        recorder.review_exemption(exemption.id, "pending")


def test_event_log_rejects_unknown_kinds(elevated, make_occurrence):
    occurrence = make_occurrence()
    with pytest.raises(ValueError):
        ParticipationEvent(occurrence_id=occurrence.id, member_id=elevated.id, kind="coffee")
    assert ParticipationEvent.query.count() == 0
