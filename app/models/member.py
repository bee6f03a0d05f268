"""
Member domain model.

Models:
    - Member: identity, role and the allocated member number.

The member number (``UGS0000001``) is printed on documents and used for
support lookups. Once set it never changes and is never reused; the unique
constraint is the last line of defence behind the serializable allocation
transaction in ``app.services.member_id_allocator``.
"""

from datetime import datetime, timezone

from sqlalchemy.orm import validates

from app.core.exceptions import ValidationError
from app.models import db
from app.models.enums import MemberRole, enum_value, sa_enum


class Member(db.Model):
    __tablename__ = "members"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True)
    role = db.Column(
        sa_enum(MemberRole, "member_role"),
        nullable=False,
        default=MemberRole.REGULAR,
        comment="regular | elevated | lead | operator",
    )
    member_number = db.Column(
        db.String(20),
        nullable=True,
        unique=True,
        comment="Fixed prefix + zero-padded sequence, immutable once set",
    )
    enrolled_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
    contact_confirmed_at = db.Column(
        db.DateTime(timezone=True),
        nullable=True,
        comment="Onboarding evidence: manager contact details confirmed",
    )

    promotion_application = db.relationship(
        "PromotionApplication",
        back_populates="member",
        uselist=False,
        cascade="all, delete-orphan",
    )

    @validates("member_number")
    def _freeze_member_number(self, key, value):
        if self.member_number and value != self.member_number:
            raise ValidationError(
                f"member_number of member {self.id} is immutable",
                details={"member_number": self.member_number},
            )
        return value

    @property
    def is_elevated(self) -> bool:
        return self.role == MemberRole.ELEVATED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": enum_value(self.role),
            "member_number": self.member_number,
            "enrolled_at": self.enrolled_at.isoformat() if self.enrolled_at else None,
            "contact_confirmed_at": (
                self.contact_confirmed_at.isoformat() if self.contact_confirmed_at else None
            ),
        }

    def __repr__(self) -> str:
        return f"<Member #{self.id} {self.member_number or '-'} {enum_value(self.role)}>"
