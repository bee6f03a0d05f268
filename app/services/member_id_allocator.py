"""
Member number allocation.

Format: {PREFIX}{SEQ}, SEQ zero-padded to a fixed width (UGS0000001).
Numbers are a durable external contract: once assigned they never change
and are never reused.

Allocation runs inside one SERIALIZABLE transaction (SQLite: BEGIN
IMMEDIATE via the engine listeners in ``app/__init__.py``):

    1. read prefixed numbers in descending order
    2. take the first whose suffix parses (unparsable ones are ignored)
    3. increment, re-encode, assign to the member, commit

Transient serialization failures are retried with backoff. A unique
constraint violation means two callers produced the same value; that is
fatal (``AllocationConflict``) and never retried into another value.

Usage:
    allocator = MemberIdAllocator(db, prefix="UGS", width=7)
    number = allocator.allocate(member.id)
    summary = allocator.backfill(apply=True)
"""

import logging
import time

from sqlalchemy import or_, select
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError

from app.core.exceptions import (
    AllocationConflict,
    ConflictError,
    MemberNumberRangeExhausted,
    NotFoundError,
)
from app.models.audit import write_audit
from app.models.member import Member

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "UGS"
DEFAULT_WIDTH = 7

# PostgreSQL serialization_failure / deadlock_detected
_TRANSIENT_SQLSTATES = frozenset({"40001", "40P01"})


# ── Pure format helpers ─────────────────────────────────────────────────────

def format_member_number(seq: int, prefix: str = DEFAULT_PREFIX, width: int = DEFAULT_WIDTH) -> str:
    """Encode *seq* as ``{prefix}{seq:0{width}d}``.

    Raises ValueError when *seq* is not positive and
    MemberNumberRangeExhausted when it overflows the width.
    """
    if seq < 1:
        raise ValueError(f"Member sequence must be positive, got {seq}")
    if len(str(seq)) > width:
        raise MemberNumberRangeExhausted(seq, width)
    return f"{prefix}{seq:0{width}d}"


def parse_member_number(value, prefix: str = DEFAULT_PREFIX, width: int = DEFAULT_WIDTH) -> int | None:
    """Return the numeric suffix of *value*, or None if it is not well-formed."""
    if not isinstance(value, str) or not value.startswith(prefix):
        return None
    suffix = value[len(prefix):]
    if len(suffix) != width or not suffix.isascii() or not suffix.isdigit():
        return None
    return int(suffix)


def is_valid_member_number(value, prefix: str = DEFAULT_PREFIX, width: int = DEFAULT_WIDTH) -> bool:
    return parse_member_number(value, prefix, width) is not None


def is_transient_db_error(exc: Exception) -> bool:
    """True for serialization failures worth retrying (never for constraint errors)."""
    if isinstance(exc, IntegrityError):
        return False
    orig = getattr(exc, "orig", exc)
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in _TRANSIENT_SQLSTATES:
        return True
    return "database is locked" in str(orig).lower()


# ── Allocator ───────────────────────────────────────────────────────────────

class MemberIdAllocator:
    """Allocates sequential member numbers on the injected storage handle."""

    def __init__(
        self,
        db,
        *,
        prefix: str = DEFAULT_PREFIX,
        width: int = DEFAULT_WIDTH,
        max_retries: int = 5,
        backoff_seconds: float = 0.05,
    ):
        self.db = db
        self.prefix = prefix
        self.width = width
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds

    @classmethod
    def from_config(cls, db, config) -> "MemberIdAllocator":
        return cls(
            db,
            prefix=config.get("MEMBER_ID_PREFIX", DEFAULT_PREFIX),
            width=config.get("MEMBER_ID_WIDTH", DEFAULT_WIDTH),
            max_retries=config.get("MEMBER_ID_MAX_RETRIES", 5),
        )

    # ── helpers ──────────────────────────────────────────────────────────

    def format(self, seq: int) -> str:
        return format_member_number(seq, self.prefix, self.width)

    def _current_max(self, session) -> int:
        """Highest well-formed sequence in use, 0 when there is none."""
        rows = session.execute(
            select(Member.member_number)
            .where(Member.member_number.like(f"{self.prefix}%"))
            .order_by(Member.member_number.desc())
        ).scalars()
        for value in rows:
            seq = parse_member_number(value, self.prefix, self.width)
            if seq is not None:
                return seq
            logger.warning("Ignoring malformed member number %r", value)
        return 0

    # ── single allocation ────────────────────────────────────────────────

    def allocate(self, member_id: int) -> str:
        """Assign the next member number to *member_id* and return it.

        Idempotent: a member that already holds a number gets it back.

        Raises:
            NotFoundError: member does not exist.
            AllocationConflict: the unique constraint rejected the value.
            MemberNumberRangeExhausted: the next sequence overflows the width.
            DBAPIError: transient failures persisted past ``max_retries``.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return self._allocate_once(member_id)
            except AllocationConflict:
                raise
            except DBAPIError as exc:
                self.db.session.rollback()
                if not is_transient_db_error(exc) or attempt > self.max_retries:
                    raise
                logger.warning(
                    "Member number allocation retry %d/%d after transient error",
                    attempt, self.max_retries,
                    extra={"member_id": member_id, "attempt": attempt},
                )
                time.sleep(self.backoff_seconds * (2 ** (attempt - 1)))

    def _allocate_once(self, member_id: int) -> str:
        session = self.db.session
        # Isolation can only be chosen before the transaction starts
        if session().in_transaction():
            session.commit()
        session.connection(execution_options={"isolation_level": "SERIALIZABLE"})

        member = session.get(Member, member_id)
        if member is None:
            session.rollback()
            raise NotFoundError(resource="Member", resource_id=member_id)
        if member.member_number:
            existing = member.member_number
            session.commit()
            return existing

        try:
            number = self.format(self._current_max(session) + 1)
        except MemberNumberRangeExhausted:
            session.rollback()
            logger.error("Member number range exhausted", extra={"member_id": member_id})
            raise
        member.member_number = number
        try:
            write_audit(
                session,
                entity_type="member",
                entity_id=member.id,
                action="member.number_allocated",
                diff={"member_number": {"old": None, "new": number}},
            )
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            logger.error(
                "Member number collision on %s", number,
                extra={"member_id": member_id, "member_number": number},
            )
            raise AllocationConflict(number) from exc

        logger.info(
            "Member number allocated",
            extra={"member_id": member_id, "member_number": number},
        )
        return number

    # ── batch backfill ───────────────────────────────────────────────────

    def _unnumbered_ids(self) -> list[int]:
        return list(
            self.db.session.execute(
                select(Member.id)
                .where(or_(Member.member_number.is_(None), Member.member_number == ""))
                .order_by(Member.enrolled_at.asc(), Member.id.asc())
            ).scalars()
        )

    def backfill(self, *, apply: bool = False) -> dict:
        """Allocate numbers for every member without one, oldest enrollment first.

        Each member gets its own transaction; one failure is logged and
        counted and does not stop the run. Dry-run (default) only reports
        the planned assignment.
        """
        member_ids = self._unnumbered_ids()
        summary = {
            "mode": "apply" if apply else "dry-run",
            "candidates": len(member_ids),
            "assigned": 0,
            "errors": 0,
            "plan": [],
        }

        if not apply:
            start = self._current_max(self.db.session)
            for offset, member_id in enumerate(member_ids, start=1):
                summary["plan"].append({"member_id": member_id, "member_number": self.format(start + offset)})
            self.db.session.rollback()
            return summary

        for member_id in member_ids:
            try:
                number = self.allocate(member_id)
            except (ConflictError, NotFoundError, SQLAlchemyError):
                self.db.session.rollback()
                summary["errors"] += 1
                logger.exception("Backfill allocation failed", extra={"member_id": member_id})
                continue
            summary["assigned"] += 1
            summary["plan"].append({"member_id": member_id, "member_number": number})

        logger.info(
            "Member number backfill finished: %d assigned, %d errors",
            summary["assigned"], summary["errors"],
        )
        return summary
