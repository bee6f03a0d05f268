"""
Promotion Blueprint.

Endpoints:
    POST   /api/v1/members/<member_id>/promotion/evidence
           Body: { "kind": "meeting_completed|assessment_score|survey_submitted|
                           contact_confirmed|compliance_score|onboarding_progress",
                   "score": <int>, "answers": {...}, "progress": <float> }
           Returns: 200 with the evaluated eligibility state.
    GET    /api/v1/members/<member_id>/promotion
    POST   /api/v1/members/<member_id>/promotion/submit
           Returns: 201 with the submitted application.
    POST   /api/v1/promotions/<application_id>/approve    Body: { "operator": "..." }
    POST   /api/v1/promotions/<application_id>/reject     Body: { "reason": "...", "operator": "..." }
"""

import logging

from flask import Blueprint, jsonify

from app.blueprints import RequestError, json_body, operator_name, register_error_handlers, require, services
from app.utils.errors import E

logger = logging.getLogger(__name__)

promotion_bp = Blueprint("promotions", __name__, url_prefix="/api/v1")
register_error_handlers(promotion_bp)

EVIDENCE_KINDS = (
    "meeting_completed",
    "assessment_score",
    "survey_submitted",
    "contact_confirmed",
    "compliance_score",
    "onboarding_progress",
)


def _apply_evidence(member_id: int, kind: str, data: dict):
    evaluator = services().evaluator
    if kind == "meeting_completed":
        return evaluator.record_meeting_completed(member_id)
    if kind == "assessment_score":
        return evaluator.record_assessment_score(member_id, require(data, "score"))
    if kind == "survey_submitted":
        return evaluator.record_survey_submitted(member_id, require(data, "answers"))
    if kind == "contact_confirmed":
        return evaluator.record_contact_confirmed(member_id)
    if kind == "compliance_score":
        return evaluator.record_compliance_score(member_id, require(data, "score"))
    return evaluator.record_onboarding_progress(member_id, require(data, "progress"))


@promotion_bp.route("/members/<int:member_id>/promotion/evidence", methods=["POST"])
def record_evidence(member_id):
    data = json_body()
    kind = require(data, "kind")
    if kind not in EVIDENCE_KINDS:
        raise RequestError(
            f"Invalid kind {kind!r}. Must be one of: {', '.join(EVIDENCE_KINDS)}",
            "kind", E.VALIDATION_INVALID,
        )
    state = _apply_evidence(member_id, kind, data)
    return jsonify(state.to_dict()), 200


@promotion_bp.route("/members/<int:member_id>/promotion", methods=["GET"])
def evaluate(member_id):
    return jsonify(services().evaluator.evaluate(member_id).to_dict()), 200


@promotion_bp.route("/members/<int:member_id>/promotion/submit", methods=["POST"])
def submit(member_id):
    application = services().evaluator.submit(member_id)
    return jsonify(application.to_dict()), 201


@promotion_bp.route("/promotions/<int:application_id>/approve", methods=["POST"])
def approve(application_id):
    data = json_body()
    application = services().evaluator.approve(application_id, operator=operator_name(data))
    return jsonify(application.to_dict()), 200


@promotion_bp.route("/promotions/<int:application_id>/reject", methods=["POST"])
def reject(application_id):
    data = json_body()
    application = services().evaluator.reject(
        application_id, require(data, "reason"), operator=operator_name(data),
    )
    return jsonify(application.to_dict()), 200
