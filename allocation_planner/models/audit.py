"""
Allocation Planner
Global audit trail model.

Models:
    - AuditLog: append-only, cross-cutting record of "who did what" across the
      application. Written best-effort by the audit sink after the business
      transaction committed; losing an entry here never affects the caller.
      The plan change ledger (PlanChangeLog) is the mandatory record.
"""

import json
from datetime import UTC, datetime

from allocation_planner.models import db


class AuditLog(db.Model):
    """
    One row per audited action.  ``diff_json`` carries the before/after
    snapshot pair.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_actor", "actor"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)

    # Polymorphic entity reference
    entity_type = db.Column(
        db.String(50), nullable=False,
        comment="ALLOCATION_PLAN | …",
    )
    entity_id = db.Column(
        db.String(36), nullable=False,
        comment="PK of the referenced entity (int-as-string)",
    )

    action = db.Column(
        db.String(60), nullable=False,
        comment="allocation_plan.create | allocation_plan.archive | …",
    )
    actor = db.Column(db.String(150), nullable=False, default="system")

    diff_json = db.Column(
        db.Text, default="{}",
        comment='JSON: {"before": …, "after": …}',
    )

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
    *,
    entity_type: str,
    entity_id,
    action: str,
    actor: str = "system",
    before=None,
    after=None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) AuditLog instance.
    """
    log = AuditLog(
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor=actor or "system",
        diff_json=json.dumps({"before": before, "after": after}, default=str),
    )
    db.session.add(log)
    db.session.flush()
    return log
