"""
Recurring Meeting Blueprint.

Endpoints (all under /api/v1):
    POST   /meetings                                   create occurrence
    GET    /meetings                                   list (limit/offset)
    GET    /meetings/<oid>
    GET    /meetings/<oid>/summary                     counts + participants

    Participant evidence (member must be elevated):
    POST   /meetings/<oid>/participants/<mid>/intent            { "intent": "will_attend" }
    POST   /meetings/<oid>/participants/<mid>/attendance-code   { "code": "..." }   (rate limited)
    POST   /meetings/<oid>/participants/<mid>/video-progress    { "progress": 0.95 }
    POST   /meetings/<oid>/participants/<mid>/survey            { "answers": {...} }
    POST   /meetings/<oid>/participants/<mid>/exemption         { "reason": "..." }
    DELETE /meetings/<oid>/participants/<mid>/exemption
    GET    /meetings/<oid>/participants/<mid>                   participant summary
    GET    /meetings/<oid>/participants/<mid>/events            evidence log

    Operator review:
    POST   /meetings/<oid>/participants/<mid>/interview         { "completed": true }
    POST   /meetings/<oid>/participants/<mid>/final-approval    { "decision": "demoted" }
    POST   /exemptions/<exemption_id>/review                    { "status": "approved", "notes": "..." }
    POST   /demotions/apply                                     { "start": "2026-01-01", "end": "2026-02-01" }
"""

import logging

from flask import Blueprint, current_app, jsonify

from app import limiter
from app.blueprints import (
    RequestError,
    json_body,
    operator_name,
    optional_datetime,
    paginate_query,
    register_error_handlers,
    require,
    services,
)
from app.models import db
from app.models.meeting import ParticipationEvent, RecurringMeetingOccurrence
from app.utils.errors import E
from app.utils.helpers import parse_date

logger = logging.getLogger(__name__)

meeting_bp = Blueprint("meetings", __name__, url_prefix="/api/v1")
register_error_handlers(meeting_bp)


def _attendance_code_limit():
    return current_app.config.get("ATTENDANCE_CODE_RATE_LIMIT", "10 per minute")


# ── Occurrences ─────────────────────────────────────────────────────────────


@meeting_bp.route("/meetings", methods=["POST"])
def create_meeting():
    data = json_body()
    date = optional_datetime(data, "date")
    if date is None:
        raise RequestError("date is required", "date", E.VALIDATION_REQUIRED)
    occurrence = services().meetings.create_occurrence(
        title=require(data, "title"),
        date=date,
        attendance_code=data.get("attendance_code"),
        recording_url=data.get("recording_url"),
        survey_url=data.get("survey_url"),
        application_deadline=optional_datetime(data, "application_deadline"),
        attendance_deadline=optional_datetime(data, "attendance_deadline"),
    )
    return jsonify(occurrence.to_dict(include_code=True)), 201


@meeting_bp.route("/meetings", methods=["GET"])
def list_meetings():
    query = db.session.query(RecurringMeetingOccurrence).order_by(RecurringMeetingOccurrence.date.desc())
    items, total = paginate_query(query)
    return jsonify({"items": [o.to_dict() for o in items], "total": total}), 200


@meeting_bp.route("/meetings/<int:occurrence_id>", methods=["GET"])
def get_meeting(occurrence_id):
    return jsonify(services().meetings.get(occurrence_id).to_dict()), 200


@meeting_bp.route("/meetings/<int:occurrence_id>/summary", methods=["GET"])
def meeting_summary(occurrence_id):
    return jsonify(services().reporting.occurrence_summary(occurrence_id)), 200


# ── Participant evidence ────────────────────────────────────────────────────


@meeting_bp.route("/meetings/<int:occurrence_id>/participants/<int:member_id>/intent", methods=["POST"])
def set_intent(occurrence_id, member_id):
    data = json_body()
    record = services().participation.set_intent(occurrence_id, member_id, require(data, "intent"))
    return jsonify(record.to_dict()), 200


@meeting_bp.route(
    "/meetings/<int:occurrence_id>/participants/<int:member_id>/attendance-code", methods=["POST"],
)
@limiter.limit(_attendance_code_limit)
def submit_attendance_code(occurrence_id, member_id):
    data = json_body()
    result = services().participation.submit_attendance_code(occurrence_id, member_id, require(data, "code"))
    return jsonify(result.to_dict()), 200


@meeting_bp.route(
    "/meetings/<int:occurrence_id>/participants/<int:member_id>/video-progress", methods=["POST"],
)
def record_video_progress(occurrence_id, member_id):
    data = json_body()
    record = services().participation.record_video_progress(occurrence_id, member_id, require(data, "progress"))
    return jsonify(record.to_dict()), 200


@meeting_bp.route("/meetings/<int:occurrence_id>/participants/<int:member_id>/survey", methods=["POST"])
def submit_survey(occurrence_id, member_id):
    data = json_body()
    record = services().participation.submit_survey(occurrence_id, member_id, require(data, "answers"))
    return jsonify(record.to_dict()), 200


@meeting_bp.route("/meetings/<int:occurrence_id>/participants/<int:member_id>/exemption", methods=["POST"])
def submit_exemption(occurrence_id, member_id):
    data = json_body()
    exemption = services().participation.submit_exemption(occurrence_id, member_id, require(data, "reason"))
    return jsonify(exemption.to_dict()), 201


@meeting_bp.route("/meetings/<int:occurrence_id>/participants/<int:member_id>/exemption", methods=["DELETE"])
def withdraw_exemption(occurrence_id, member_id):
    record = services().participation.withdraw_exemption(occurrence_id, member_id)
    return jsonify(record.to_dict()), 200


@meeting_bp.route("/meetings/<int:occurrence_id>/participants/<int:member_id>", methods=["GET"])
def participant_summary(occurrence_id, member_id):
    return jsonify(services().reporting.participant_summary(occurrence_id, member_id)), 200


@meeting_bp.route("/meetings/<int:occurrence_id>/participants/<int:member_id>/events", methods=["GET"])
def participant_events(occurrence_id, member_id):
    services().meetings.get(occurrence_id)
    query = (
        db.session.query(ParticipationEvent)
        .filter_by(occurrence_id=occurrence_id, member_id=member_id)
        .order_by(ParticipationEvent.occurred_at.asc(), ParticipationEvent.id.asc())
    )
    items, total = paginate_query(query)
    return jsonify({"items": [e.to_dict() for e in items], "total": total}), 200


# ── Operator review ─────────────────────────────────────────────────────────


@meeting_bp.route("/meetings/<int:occurrence_id>/participants/<int:member_id>/interview", methods=["POST"])
def record_interview(occurrence_id, member_id):
    data = json_body()
    completed = data.get("completed", True)
    if not isinstance(completed, bool):
        raise RequestError("completed must be a boolean", "completed", E.VALIDATION_INVALID)
    record = services().decisions.record_interview(
        occurrence_id, member_id, completed=completed, operator=operator_name(data),
    )
    return jsonify(record.to_dict()), 200


@meeting_bp.route(
    "/meetings/<int:occurrence_id>/participants/<int:member_id>/final-approval", methods=["POST"],
)
def set_final_approval(occurrence_id, member_id):
    data = json_body()
    record = services().decisions.set_final_approval(
        occurrence_id, member_id, require(data, "decision"), operator=operator_name(data),
    )
    return jsonify(record.to_dict()), 200


@meeting_bp.route("/exemptions/<int:exemption_id>/review", methods=["POST"])
def review_exemption(exemption_id):
    data = json_body()
    exemption = services().participation.review_exemption(
        exemption_id, require(data, "status"), notes=data.get("notes"), operator=operator_name(data),
    )
    return jsonify(exemption.to_dict()), 200


@meeting_bp.route("/demotions/apply", methods=["POST"])
def apply_demotions():
    data = json_body()
    bounds = {}
    for field in ("start", "end"):
        bounds[field] = parse_date(require(data, field))
        if bounds[field] is None:
            raise RequestError(f"{field} must be a date (YYYY-MM-DD)", field, E.VALIDATION_INVALID)
    summary = services().demotion.apply_demotions(bounds["start"], bounds["end"], operator=operator_name(data))
    return jsonify(summary), 200
