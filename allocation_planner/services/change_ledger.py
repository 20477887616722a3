"""
Plan change ledger service.

Append-only record of every mutation applied to an allocation plan.

Rules:
  - ``record`` adds and flushes; it never commits. The entry shares the
    caller's transaction so it commits or rolls back with the plan write.
  - Snapshots are canonical JSON (sorted keys, compact separators). A value
    that cannot be serialised is stored in its ``str()`` form and a warning
    is logged; recording never fails for that reason.
  - Queries are read-only, newest first (``event_timestamp DESC, id DESC``).
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select

from allocation_planner.core.exceptions import NotFoundError, SerializationDegraded, ValidationError
from allocation_planner.models import db
from allocation_planner.models.plan_change_log import (
    CHANGE_TYPES,
    ENTITY_ALLOCATION_PLAN,
    PlanChangeLog,
)
from allocation_planner.services.helpers.plan_queries import require_plan

logger = logging.getLogger(__name__)

PER_PAGE_DEFAULT = 50
PER_PAGE_MAX = 200


# ── Serialisation ────────────────────────────────────────────────────────────


def _json_default(value: Any):
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def canonical_json(value: Any) -> str:
    """Serialise *value* canonically or raise SerializationDegraded."""
    try:
        return json.dumps(value, sort_keys=True, separators=(",", ":"), default=_json_default)
    except (TypeError, ValueError) as exc:
        raise SerializationDegraded(str(exc)) from exc


def serialize_snapshot(value: Any) -> str | None:
    """Canonical JSON for *value*; falls back to ``str(value)`` on failure."""
    if value is None:
        return None
    try:
        return canonical_json(value)
    except SerializationDegraded as exc:
        logger.warning("Ledger snapshot degraded to plain string: %s", exc)
        return str(value)


# ── Write ────────────────────────────────────────────────────────────────────


def record(
    plan_id: int,
    change_type: str,
    entity_type: str = ENTITY_ALLOCATION_PLAN,
    entity_id: int | None = None,
    old_value: Any = None,
    new_value: Any = None,
    reason: str | None = None,
    *,
    actor: str = "system",
) -> PlanChangeLog:
    """Append one ledger entry inside the caller's transaction.

    Raises:
        ValidationError: Unknown *change_type*.
        NotFoundError: If *plan_id* does not resolve to a plan.
    """
    if change_type not in CHANGE_TYPES:
        raise ValidationError(
            f"Unknown change type: {change_type!r}", details={"change_type": "invalid"},
        )
    require_plan(plan_id)

    entry = PlanChangeLog(
        plan_id=plan_id,
        changed_by=actor or "system",
        change_type=change_type,
        entity_type=entity_type,
        entity_id=entity_id if entity_id is not None else plan_id,
        old_value=serialize_snapshot(old_value),
        new_value=serialize_snapshot(new_value),
        reason=reason,
    )
    db.session.add(entry)
    db.session.flush()
    logger.debug("Ledger entry %s recorded", entry.id,
                 extra={"plan_id": plan_id, "change_type": change_type, "actor": entry.changed_by})
    return entry


# ── Read ─────────────────────────────────────────────────────────────────────


def _filtered(stmt, *, plan_id=None, entity_type=None, change_type=None,
              start=None, end=None, actor=None):
    if plan_id is not None:
        stmt = stmt.where(PlanChangeLog.plan_id == plan_id)
    if entity_type:
        stmt = stmt.where(PlanChangeLog.entity_type == entity_type)
    if change_type:
        stmt = stmt.where(PlanChangeLog.change_type == change_type)
    if start is not None:
        stmt = stmt.where(PlanChangeLog.event_timestamp >= start)
    if end is not None:
        stmt = stmt.where(PlanChangeLog.event_timestamp <= end)
    if actor:
        stmt = stmt.where(PlanChangeLog.changed_by == actor)
    return stmt.order_by(PlanChangeLog.event_timestamp.desc(), PlanChangeLog.id.desc())


def _page(stmt, page: int, per_page: int) -> dict:
    page = max(1, page or 1)
    per_page = min(PER_PAGE_MAX, max(1, per_page or PER_PAGE_DEFAULT))
    paginated = db.paginate(stmt, page=page, per_page=per_page, error_out=False)
    return {
        "items": [log.to_dict() for log in paginated.items],
        "total": paginated.total,
        "page": paginated.page,
        "per_page": paginated.per_page,
        "pages": paginated.pages,
    }


def logs_by_plan(
    plan_id: int,
    *,
    entity_type: str | None = None,
    change_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    actor: str | None = None,
    page: int = 1,
    per_page: int = PER_PAGE_DEFAULT,
) -> dict:
    """Ledger page for one plan; NotFoundError if the plan is unknown."""
    require_plan(plan_id)
    stmt = _filtered(
        select(PlanChangeLog), plan_id=plan_id, entity_type=entity_type,
        change_type=change_type, start=start, end=end, actor=actor,
    )
    return _page(stmt, page, per_page)


def logs_by_filters(
    *,
    plan_id: int | None = None,
    entity_type: str | None = None,
    change_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    actor: str | None = None,
    page: int = 1,
    per_page: int = PER_PAGE_DEFAULT,
) -> dict:
    stmt = _filtered(
        select(PlanChangeLog), plan_id=plan_id, entity_type=entity_type,
        change_type=change_type, start=start, end=end, actor=actor,
    )
    return _page(stmt, page, per_page)


def get_log(log_id: int) -> PlanChangeLog:
    entry = db.session.get(PlanChangeLog, log_id)
    if entry is None:
        raise NotFoundError(resource="PlanChangeLog", resource_id=log_id)
    return entry
