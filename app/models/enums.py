"""
Closed enumerations for every role / status string that crosses the API
boundary.

Each enum serialises as its lowercase ``value`` and is parsed back through
``parse_enum``, the only string → enum mapping in the codebase. Unknown
values are rejected with ``ValidationError``; they are never passed through.
"""

import enum

from app.core.exceptions import ValidationError


class MemberRole(str, enum.Enum):
    REGULAR = "regular"
    ELEVATED = "elevated"
    LEAD = "lead"
    OPERATOR = "operator"


class ApplicationStatus(str, enum.Enum):
    DRAFT = "draft"           # collecting evidence, not submitted
    PENDING = "pending"       # submitted, waiting for operator review
    APPROVED = "approved"     # operator approved, onboarding checklist open
    COMPLETED = "completed"   # onboarding done, role is ELEVATED


class EligibilityPhase(str, enum.Enum):
    NOT_STARTED = "not_started"
    COLLECTING = "collecting"
    READY = "ready"
    SUBMITTED = "submitted"
    ONBOARDING = "onboarding"
    PROMOTED = "promoted"


class ParticipationIntent(str, enum.Enum):
    UNDECIDED = "undecided"
    WILL_ATTEND = "will_attend"
    WILL_NOT_ATTEND = "will_not_attend"


class AttendanceMethod(str, enum.Enum):
    NONE = "none"
    CODE = "code"
    VIDEO_SURVEY = "video_survey"
    EXEMPTION = "exemption"   # resolver output only, never stored


class ExemptionStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class FinalApproval(str, enum.Enum):
    MAINTAINED = "maintained"
    DEMOTED = "demoted"


def parse_enum(enum_cls, value, *, field: str | None = None):
    """Map a boundary string onto ``enum_cls``.

    Accepts an existing member, or a string matching a member's value or
    name case-insensitively. Anything else raises ``ValidationError`` naming
    the field and the allowed values.
    """
    if isinstance(value, enum_cls):
        return value
    label = field or enum_cls.__name__
    if isinstance(value, str):
        token = value.strip().lower()
        for member in enum_cls:
            if token == member.value or token == member.name.lower():
                return member
    allowed = [m.value for m in enum_cls]
    raise ValidationError(
        f"Invalid {label} {value!r}. Must be one of: {', '.join(allowed)}",
        details={label: f"must be one of {allowed}"},
    )


def enum_value(member) -> str | None:
    """Serialise an enum member (or None) for JSON output."""
    return member.value if member is not None else None


def sa_enum(enum_cls, name: str):
    """SQLAlchemy column type storing ``enum_cls`` by value as VARCHAR."""
    from app.models import db

    return db.Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=30,
        values_callable=lambda cls: [m.value for m in cls],
        validate_strings=True,
    )
