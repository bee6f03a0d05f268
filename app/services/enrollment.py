"""
Member enrollment.

A member row is committed first, then the member number is allocated in its
own serializable transaction. If allocation fails the member stays enrolled
without a number and is picked up by the backfill.
"""

import logging

from sqlalchemy.exc import IntegrityError

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.audit import write_audit
from app.models.enums import MemberRole, parse_enum
from app.models.member import Member

logger = logging.getLogger(__name__)


class MemberRegistry:
    def __init__(self, db, allocator):
        self.db = db
        self.allocator = allocator

    def get(self, member_id: int) -> Member:
        member = self.db.session.get(Member, member_id)
        if member is None:
            raise NotFoundError(resource="Member", resource_id=member_id)
        return member

    def enroll(self, name: str, email: str, role=MemberRole.REGULAR) -> Member:
        name = (name or "").strip()
        email = (email or "").strip().lower()
        if not name or not email:
            raise ValidationError("name and email are required", details={"name": "required", "email": "required"})
        if "@" not in email:
            raise ValidationError(f"Invalid email {email!r}", details={"email": "invalid"})
        role = parse_enum(MemberRole, role, field="role")

        session = self.db.session
        if session.query(Member.id).filter_by(email=email).first() is not None:
            raise ConflictError("Member", "email", email)

        member = Member(name=name, email=email, role=role)
        session.add(member)
        try:
            session.flush()
            write_audit(
                session,
                entity_type="member",
                entity_id=member.id,
                action="member.enrolled",
                diff={"role": role.value},
            )
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError("Member", "email", email) from exc
        logger.info("Member enrolled", extra={"member_id": member.id})

        self.allocator.allocate(member.id)
        return member
