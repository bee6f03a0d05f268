"""
Attendance resolution for one (meeting occurrence, member) pair.

Resolution order, first match wins:
    1. code          attendance_method == CODE, entered on/before the deadline
    2. video_survey  video watched AND survey submitted, both on/before the deadline
    3. exemption     exemption request APPROVED
    4. none

Stated intent never participates. No attendance deadline means every path
is always in time.

``resolve`` is pure (rows in, verdict out). The verdict is recomputed on
every read and never stored.
"""

from dataclasses import dataclass

from app.core.exceptions import NotFoundError
from app.models.enums import AttendanceMethod, ExemptionStatus
from app.models.member import Member
from app.models.meeting import ExemptionRequest, ParticipationRecord, RecurringMeetingOccurrence
from app.utils.helpers import as_utc, is_after


@dataclass(frozen=True)
class AttendanceVerdict:
    officially_attended: bool
    method: AttendanceMethod

    def to_dict(self) -> dict:
        return {"officially_attended": self.officially_attended, "method": self.method.value}


NOT_ATTENDED = AttendanceVerdict(False, AttendanceMethod.NONE)


def code_entered_in_time(occurrence, record) -> bool:
    if record is None or record.attendance_method != AttendanceMethod.CODE:
        return False
    if record.attendance_completed_at is None:
        return occurrence.attendance_deadline is None
    return not is_after(record.attendance_completed_at, occurrence.attendance_deadline)


def video_survey_completed_at(record):
    """Moment the video+survey path completed: the later of the two stamps."""
    if record is None or not record.video_watched or record.survey_completed_at is None:
        return None
    stamps = [as_utc(s) for s in (record.video_completed_at, record.survey_completed_at) if s is not None]
    return max(stamps)


def video_and_survey_completed(occurrence, record) -> bool:
    """Both halves are required; either one alone never counts."""
    completed_at = video_survey_completed_at(record)
    if completed_at is None:
        return False
    return not is_after(completed_at, occurrence.attendance_deadline)


def exemption_approved(exemption) -> bool:
    return exemption is not None and exemption.status == ExemptionStatus.APPROVED


class AttendanceResolver:
    """Reconciles stored evidence into an "officially attended" verdict."""

    def __init__(self, db=None):
        self.db = db

    def resolve(self, occurrence, record=None, exemption=None) -> AttendanceVerdict:
        if code_entered_in_time(occurrence, record):
            return AttendanceVerdict(True, AttendanceMethod.CODE)
        if video_and_survey_completed(occurrence, record):
            return AttendanceVerdict(True, AttendanceMethod.VIDEO_SURVEY)
        if exemption_approved(exemption):
            return AttendanceVerdict(True, AttendanceMethod.EXEMPTION)
        return NOT_ATTENDED

    def load(self, occurrence_id: int, member_id: int):
        """Fetch (occurrence, record, exemption) for a pair; record/exemption may be None."""
        session = self.db.session
        occurrence = session.get(RecurringMeetingOccurrence, occurrence_id)
        if occurrence is None:
            raise NotFoundError(resource="MeetingOccurrence", resource_id=occurrence_id)
        if session.get(Member, member_id) is None:
            raise NotFoundError(resource="Member", resource_id=member_id)
        record = session.query(ParticipationRecord).filter_by(
            occurrence_id=occurrence_id, member_id=member_id,
        ).one_or_none()
        exemption = session.query(ExemptionRequest).filter_by(
            occurrence_id=occurrence_id, member_id=member_id,
        ).one_or_none()
        return occurrence, record, exemption

    def resolve_for(self, occurrence_id: int, member_id: int) -> AttendanceVerdict:
        occurrence, record, exemption = self.load(occurrence_id, member_id)
        return self.resolve(occurrence, record, exemption)
