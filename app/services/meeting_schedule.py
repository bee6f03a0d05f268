"""Recurring meeting occurrences: create and read."""

import logging

from app.core.exceptions import NotFoundError, ValidationError
from app.models.meeting import RecurringMeetingOccurrence
from app.utils.helpers import as_utc

logger = logging.getLogger(__name__)


class MeetingSchedule:
    def __init__(self, db):
        self.db = db

    def get(self, occurrence_id: int) -> RecurringMeetingOccurrence:
        occurrence = self.db.session.get(RecurringMeetingOccurrence, occurrence_id)
        if occurrence is None:
            raise NotFoundError(resource="MeetingOccurrence", resource_id=occurrence_id)
        return occurrence

    def create_occurrence(
        self,
        *,
        title: str,
        date,
        attendance_code: str | None = None,
        recording_url: str | None = None,
        survey_url: str | None = None,
        application_deadline=None,
        attendance_deadline=None,
    ) -> RecurringMeetingOccurrence:
        """Datetimes must already be parsed; naive values are taken as UTC."""
        title = (title or "").strip()
        if not title:
            raise ValidationError("title is required", details={"title": "required"})
        if date is None:
            raise ValidationError("date is required", details={"date": "required"})
        date = as_utc(date)
        application_deadline = as_utc(application_deadline)
        attendance_deadline = as_utc(attendance_deadline)
        if application_deadline and application_deadline > date:
            raise ValidationError(
                "application_deadline must not be after the meeting date",
                details={"application_deadline": "<= date"},
            )
        if attendance_deadline and attendance_deadline < date:
            raise ValidationError(
                "attendance_deadline must not be before the meeting date",
                details={"attendance_deadline": ">= date"},
            )

        occurrence = RecurringMeetingOccurrence(
            title=title,
            date=date,
            attendance_code=(attendance_code or "").strip() or None,
            recording_url=recording_url or None,
            survey_url=survey_url or None,
            application_deadline=application_deadline,
            attendance_deadline=attendance_deadline,
        )
        self.db.session.add(occurrence)
        self.db.session.commit()
        logger.info("Meeting occurrence created", extra={"occurrence_id": occurrence.id})
        return occurrence
