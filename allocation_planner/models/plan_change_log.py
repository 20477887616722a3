"""
Allocation Planner
Plan change ledger model.

Models:
    - PlanChangeLog: immutable, append-only record of every mutation applied
      to an allocation plan.

Rows are written in the same transaction as the plan mutation they
describe. The ORM refuses updates and deletes; clean-up of old entries is an
administrative task outside the application.
"""

import json
from datetime import datetime, timezone

from sqlalchemy import event

from allocation_planner.models import db


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Constants ────────────────────────────────────────────────────────────────

CHANGE_TYPES = {"CREATE", "UPDATE", "STATUS_CHANGE"}

ENTITY_ALLOCATION_PLAN = "ALLOCATION_PLAN"


class ImmutableLedgerError(RuntimeError):
    """Raised when code tries to modify or delete a written ledger entry."""


class PlanChangeLog(db.Model):
    """
    One ledger entry per plan mutation.

    ``old_value`` / ``new_value`` hold canonical JSON snapshots (or the
    plain string form when a value could not be serialised).
    """

    __tablename__ = "plan_change_logs"
    __table_args__ = (
        db.Index("idx_plan_change_plan", "plan_id"),
        db.Index("idx_plan_change_entity", "entity_type", "entity_id"),
        db.Index("idx_plan_change_type", "change_type"),
        db.Index("idx_plan_change_ts", "event_timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    plan_id = db.Column(
        db.Integer,
        db.ForeignKey("allocation_plans.id", ondelete="RESTRICT"),
        nullable=False,
    )
    changed_by = db.Column(db.String(150), nullable=False, default="system")
    event_timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    change_type = db.Column(
        db.String(30), nullable=False,
        comment="CREATE | UPDATE | STATUS_CHANGE | …",
    )
    entity_type = db.Column(db.String(50), nullable=False, default=ENTITY_ALLOCATION_PLAN)
    entity_id = db.Column(db.Integer, nullable=True)
    old_value = db.Column(db.Text, nullable=True)
    new_value = db.Column(db.Text, nullable=True)
    reason = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    plan = db.relationship("AllocationPlan", lazy="select")

    @staticmethod
    def _decode(raw):
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return raw

    @property
    def old(self):
        """Decoded *old_value*; the raw string when it is not JSON."""
        return self._decode(self.old_value)

    @property
    def new(self):
        return self._decode(self.new_value)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "plan_id": self.plan_id,
            "changed_by": self.changed_by,
            "event_timestamp": self.event_timestamp.isoformat() if self.event_timestamp else None,
            "change_type": self.change_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "old_value": self.old,
            "new_value": self.new,
            "reason": self.reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<PlanChangeLog {self.id}: {self.change_type} plan={self.plan_id}>"


@event.listens_for(PlanChangeLog, "before_update")
def _refuse_update(mapper, connection, target):
    raise ImmutableLedgerError(f"Plan change log {target.id} is immutable")


@event.listens_for(PlanChangeLog, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise ImmutableLedgerError(f"Plan change log {target.id} cannot be deleted")
