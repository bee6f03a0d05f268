"""
Member Blueprint.

Endpoints:
    POST   /api/v1/members                          enroll + allocate member number
           Body: { "name": "...", "email": "...", "role": "regular" }
    GET    /api/v1/members/<member_id>
    POST   /api/v1/members/<member_id>/member-number   allocate (idempotent)
    GET    /api/v1/members/<member_id>/summary

Layer contract:
    - Blueprint: parse + validate input, call service, return JSON.
    - NO db.session writes here; all writes are owned by the services.
"""

import logging

from flask import Blueprint, jsonify

from app.blueprints import json_body, register_error_handlers, require, services
from app.models.enums import MemberRole

logger = logging.getLogger(__name__)

member_bp = Blueprint("members", __name__, url_prefix="/api/v1/members")
register_error_handlers(member_bp)


@member_bp.route("", methods=["POST"])
def enroll_member():
    data = json_body()
    member = services().members.enroll(
        name=require(data, "name"),
        email=require(data, "email"),
        role=data.get("role") or MemberRole.REGULAR,
    )
    return jsonify(member.to_dict()), 201


@member_bp.route("/<int:member_id>", methods=["GET"])
def get_member(member_id):
    return jsonify(services().members.get(member_id).to_dict()), 200


@member_bp.route("/<int:member_id>/member-number", methods=["POST"])
def allocate_member_number(member_id):
    number = services().allocator.allocate(member_id)
    return jsonify({"member_id": member_id, "member_number": number}), 200


@member_bp.route("/<int:member_id>/summary", methods=["GET"])
def member_summary(member_id):
    return jsonify(services().reporting.member_summary(member_id)), 200
