"""
Membership Lifecycle Platform
Blueprint registry and shared request helpers.
"""

import logging

from flask import current_app, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from app.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    MemberNumberRangeExhausted,
    NotFoundError,
    ValidationError,
)
from app.models import db
from app.utils.errors import E, api_error
from app.utils.helpers import parse_datetime_input

logger = logging.getLogger(__name__)


class RequestError(ValueError):
    """Missing or ill-typed request field. Answered with HTTP 400."""

    def __init__(self, message: str, field: str, code: str):
        self.field = field
        self.code = code
        super().__init__(message)


def register_error_handlers(bp):
    """Map service exceptions to JSON errors; every failure rolls the session back."""

    @bp.errorhandler(RequestError)
    def _handle_request_error(error: RequestError):
        db.session.rollback()
        return api_error(error.code, str(error), details={"field": error.field})

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        db.session.rollback()
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        db.session.rollback()
        return api_error(E.VALIDATION_CONSTRAINT, str(error), details=error.details)

    @bp.errorhandler(InvalidTransitionError)
    def _handle_transition(error: InvalidTransitionError):
        db.session.rollback()
        return api_error(E.INVALID_TRANSITION, str(error), details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        db.session.rollback()
        code = E.CONFLICT_EXHAUSTED if isinstance(error, MemberNumberRangeExhausted) else E.CONFLICT_DUPLICATE
        return api_error(code, str(error), details={"field": error.field})

    @bp.errorhandler(SQLAlchemyError)
    def _handle_database(error: SQLAlchemyError):
        db.session.rollback()
        logger.exception("Database error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.DATABASE, "Database error")

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return {"error": error.name, "detail": error.description}, error.code
        db.session.rollback()
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")


def services():
    """Lifecycle services registered on the current app."""
    return current_app.extensions["lifecycle"]


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise RequestError("Request body must be a JSON object", "body", "ERR_VALIDATION_INVALID")
    return data


def require(data: dict, field: str):
    value = data.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise RequestError(f"{field} is required", field, "ERR_VALIDATION_REQUIRED")
    return value


def optional_datetime(data: dict, field: str):
    try:
        return parse_datetime_input(data.get(field))
    except ValueError as exc:
        raise RequestError(str(exc), field, "ERR_VALIDATION_INVALID") from exc


def operator_name(data: dict | None = None) -> str | None:
    """Operator identity: explicit ``operator`` field, else the X-Operator header."""
    if data and data.get("operator"):
        return str(data["operator"])
    return request.headers.get("X-Operator")


def paginate_query(query, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit:  max items (default 200, capped at max_limit)
        offset: starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total
