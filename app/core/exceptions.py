"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and map them to consistent HTTP status codes:

    NotFoundError           → 404
    ValidationError         → 422
    InvalidTransitionError  → 409  (AlreadySubmitted, IncompleteChecklist)
    ConflictError           → 409  (AllocationConflict)

Usage:
    from app.core.exceptions import NotFoundError, InvalidTransitionError

    raise NotFoundError(resource="Member", resource_id=42)
    raise InvalidTransitionError("Application is not pending", precondition="status=pending")
"""


class NotFoundError(Exception):
    """Raised when a referenced member, occurrence or request does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Member", "MeetingOccurrence").
        resource_id: The key that was looked up. Included in logs and the message.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Examples: unknown enum string, wrong attendance code, exemption reason
    too short, survey answers that are not a JSON object.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InvalidTransitionError(Exception):
    """Raised when a lifecycle action is not allowed from the current state.

    Always raised before anything is written, so the operation is never
    partially applied.

    Args:
        message: Human-readable explanation.
        precondition: Short machine-readable name of the violated precondition.
    """

    def __init__(self, message: str, precondition: str | None = None) -> None:
        self.precondition = precondition
        super().__init__(message)

    @property
    def details(self) -> dict:
        return {"precondition": self.precondition} if self.precondition else {}


class AlreadySubmitted(InvalidTransitionError):
    """Submit called on an application whose applied_at is already set."""

    def __init__(self, member_id: int, applied_at=None) -> None:
        self.member_id = member_id
        self.applied_at = applied_at
        super().__init__(
            f"Promotion application for member {member_id} is already submitted",
            precondition="applied_at is null",
        )


class IncompleteChecklist(InvalidTransitionError):
    """Submit / approve called while pre-submission checklist items are missing."""

    def __init__(self, member_id: int, missing: list[str]) -> None:
        self.member_id = member_id
        self.missing = list(missing)
        super().__init__(
            f"Checklist incomplete for member {member_id}: missing {', '.join(self.missing)}",
            precondition="checklist complete",
        )

    @property
    def details(self) -> dict:
        return {"precondition": self.precondition, "missing": self.missing}


class ConflictError(Exception):
    """Raised when an operation would violate a unique constraint.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(
        self, resource: str, field: str, value: str | None = None, message: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(message or f"{resource} with {field}={value!r} already exists")


class AllocationConflict(ConflictError):
    """Two allocations produced the same member number.

    Fatal: the transaction is rolled back and the error propagates. It is
    never retried into a different value.
    """

    def __init__(self, value: str | None = None) -> None:
        super().__init__("Member", "member_number", value)


class MemberNumberRangeExhausted(ConflictError):
    """The next sequence no longer fits in the configured member number width."""

    def __init__(self, seq: int, width: int) -> None:
        self.seq = seq
        self.width = width
        super().__init__(
            "Member", "member_number",
            message=f"Member number range exhausted: {seq} does not fit in {width} digits",
        )
