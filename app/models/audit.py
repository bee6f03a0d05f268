"""
Membership Lifecycle Platform
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail for lifecycle events.
"""

import json
from datetime import UTC, datetime

from app.models import db

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {
    "member", "promotion_application", "participation_record", "exemption_request",
}

AUDIT_ACTIONS = {
    # Member
    "member.enrolled",
    "member.number_allocated",
    "member.demoted",
    # Promotion lifecycle
    "promotion.submit",
    "promotion.approve",
    "promotion.reject",
    "promotion.complete",
    "promotion.repair_applied_at",
    # Meeting review
    "participation.interview",
    "participation.final_approval",
    "exemption.review",
}


class AuditLog(db.Model):
    """
    Immutable audit trail for every lifecycle transition.

    One row per action. ``diff_json`` carries an old→new snapshot of the
    fields the transition touched.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)

    # Polymorphic entity reference
    entity_type = db.Column(
        db.String(30), nullable=False,
        comment="member | promotion_application | participation_record | …",
    )
    entity_id = db.Column(
        db.String(36), nullable=False,
        comment="PK of the referenced entity as string",
    )

    # What happened
    action = db.Column(
        db.String(60), nullable=False,
        comment="promotion.approve | participation.final_approval | …",
    )
    actor = db.Column(
        db.String(150), nullable=False, default="system",
        comment="Operator identifier or 'system'",
    )

    diff_json = db.Column(db.Text, default="{}", comment="JSON: {field: {old, new}}")

    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    @property
    def diff(self) -> dict:
        """Deserialise *diff_json* to a Python dict."""
        try:
            return json.loads(self.diff_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor": self.actor,
            "diff": self.diff,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    session,
    *,
    entity_type: str,
    entity_id,
    action: str,
    actor: str | None = None,
    diff: dict | None = None,
) -> AuditLog:
    """
    Append a single audit row to *session*. Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) AuditLog instance.
    """
    if entity_type not in AUDIT_ENTITY_TYPES:
        raise ValueError(f"Unknown audit entity type: {entity_type}")
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action: {action}")

    log = AuditLog(
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor=actor or "system",
        diff_json=json.dumps(diff or {}, default=str),
    )
    session.add(log)
    session.flush()
    return log
