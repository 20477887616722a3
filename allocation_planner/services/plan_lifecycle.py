"""
Allocation plan lifecycle service.

Manages allocation plan creation and mutation with:
  - Forward-only status (draft → in_review → approved → archived)
  - One current plan per academic year (bulk unset, then set, under a row
    lock on the year)
  - Mutations of an existing plan lock its year, then re-read the plan row
    before checking whether it is archived
  - Exactly one change-ledger entry per successful mutation, written in the
    same transaction as the mutation itself
  - Best-effort global audit after the commit

Rules:
  - ``actor`` is always an explicit keyword argument (never from g).
  - All validation happens before the first write.
  - db.session.commit() happens only in ``plan_mutation``.

Usage:
    from allocation_planner.services.plan_lifecycle import PlanPatch, update_plan

    plan = update_plan(42, PlanPatch(status="approved", notes=None), actor="registrar")
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, fields
from typing import Any

from flask import current_app

from allocation_planner.core.exceptions import (
    DuplicateVersionError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from allocation_planner.models import db
from allocation_planner.models.allocation import (
    PLAN_NAME_MAX,
    PLAN_STATUS_ORDER,
    PLAN_STATUSES,
    PLAN_VERSION_MAX,
    TERMINAL_PLAN_STATUS,
    AllocationPlan,
    is_forward_transition,
)
from allocation_planner.models.plan_change_log import ENTITY_ALLOCATION_PLAN
from allocation_planner.services import change_ledger
from allocation_planner.services.audit_sink import get_audit_sink
from allocation_planner.services.helpers.plan_queries import (
    current_plan_for_year,
    lock_plan,
    most_recent_plans,
    plan_version_exists,
    query_plans,
    require_academic_year,
    require_plan,
    unset_current_for_year,
)

logger = logging.getLogger(__name__)


# ── Patch / mutation types ───────────────────────────────────────────────────


class _Missing:
    """Marker for a patch field the caller did not supply."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "MISSING"

    def __bool__(self):
        return False


MISSING: Any = _Missing()

_REQUIRED_PATCH_FIELDS = frozenset({"plan_name", "plan_version", "status", "is_current"})


@dataclass(frozen=True)
class PlanPatch:
    """Partial update for an allocation plan.

    A field left as ``MISSING`` is untouched; a field set to ``None`` is
    cleared. Only ``notes`` may be cleared.
    """

    plan_name: Any = MISSING
    plan_version: Any = MISSING
    status: Any = MISSING
    is_current: Any = MISSING
    notes: Any = MISSING

    @classmethod
    def from_mapping(cls, data: dict) -> "PlanPatch":
        """Build a patch from a request body; only keys present are applied."""
        allowed = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - allowed)
        if unknown:
            raise ValidationError(
                f"Fields cannot be updated: {', '.join(unknown)}",
                details={"unknown_fields": unknown},
            )
        return cls(**{k: data[k] for k in data if k in allowed})

    def present(self) -> dict:
        """Supplied fields only, in declaration order."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not MISSING
        }


@dataclass
class PlanMutation:
    """What a lifecycle step changed; consumed by ``plan_mutation``."""

    plan: AllocationPlan
    before: Any
    after: Any
    reason: str | None = None


# ── Transaction + ledger wrapper ─────────────────────────────────────────────


def plan_mutation(change_type: str, reason: str, audit_action: str):
    """
    Decorator: run a plan mutation as one unit of work.

    The wrapped function stages its writes and returns a PlanMutation. The
    wrapper then records exactly one ledger entry in the same session and
    commits. Any exception rolls the whole unit back (plan write and ledger
    entry together) and is re-raised. Once committed, the change is handed to
    the global audit sink, whose outcome never reaches the caller.

    Returns the serialised plan dict.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            actor = kwargs.setdefault("actor", "system") or "system"
            try:
                mutation = f(*args, **kwargs)
                db.session.flush()
                change_ledger.record(
                    mutation.plan.id,
                    change_type,
                    ENTITY_ALLOCATION_PLAN,
                    mutation.plan.id,
                    mutation.before,
                    mutation.after,
                    mutation.reason or reason,
                    actor=actor,
                )
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise

            plan = mutation.plan
            logger.info(
                "Allocation plan %s: %s by %s", plan.id, change_type, actor,
                extra={
                    "plan_id": plan.id,
                    "academic_year_id": plan.academic_year_id,
                    "actor": actor,
                    "change_type": change_type,
                },
            )
            sink = get_audit_sink()
            if sink is not None:
                sink.record_async(
                    actor, audit_action, ENTITY_ALLOCATION_PLAN, plan.id,
                    before=mutation.before, after=mutation.after,
                )
            return plan.to_dict()
        return decorated
    return decorator


# ── Validation helpers ───────────────────────────────────────────────────────


def _clean_text(field: str, value, max_len: int) -> str:
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required.", details={field: "required"})
    value = value.strip()
    if len(value) > max_len:
        raise ValidationError(
            f"{field} must be at most {max_len} characters.",
            details={field: f"max_length={max_len}"},
        )
    return value


def _check_status(status) -> str:
    if status not in PLAN_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(PLAN_STATUS_ORDER)}",
            details={"status": "invalid"},
        )
    return status


def _check_bool(field: str, value) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be a boolean.", details={field: "invalid"})
    return value


def _ensure_mutable(plan: AllocationPlan, action: str):
    if plan.is_archived:
        raise InvalidTransitionError(plan.id, action, plan.status, "Archived plans are read-only")


def _require_locked_plan(plan_id: int) -> AllocationPlan:
    """The plan, re-read under the row lock of its academic year."""
    plan = require_plan(plan_id)
    require_academic_year(plan.academic_year_id, lock=True)
    return lock_plan(plan)


# ── Create ───────────────────────────────────────────────────────────────────


def stage_new_plan(
    year_id: int,
    plan_name: str,
    plan_version: str,
    initial_status: str = "draft",
    is_current: bool = False,
    notes: str | None = None,
    *,
    actor: str = "system",
) -> PlanMutation:
    """Validate and add a new plan to the session without committing.

    Shared by ``create_plan`` and the run-allocation orchestration so both
    obey the same invariants.
    """
    plan_name = _clean_text("plan_name", plan_name, PLAN_NAME_MAX)
    plan_version = _clean_text("plan_version", plan_version, PLAN_VERSION_MAX)
    _check_status(initial_status)
    if initial_status == TERMINAL_PLAN_STATUS:
        raise ValidationError(
            "A plan cannot be created as archived.", details={"status": "invalid"},
        )
    is_current = _check_bool("is_current", is_current)

    year = require_academic_year(year_id, lock=is_current)
    if plan_version_exists(year.id, plan_version):
        raise DuplicateVersionError(year.id, plan_version)

    if is_current:
        unset_current_for_year(year.id)

    plan = AllocationPlan(
        academic_year_id=year.id,
        plan_name=plan_name,
        plan_version=plan_version,
        status=initial_status,
        is_current=is_current,
        notes=notes,
        created_by=actor or "system",
    )
    db.session.add(plan)
    db.session.flush()
    return PlanMutation(plan=plan, before=None, after=plan.to_dict())


@plan_mutation("CREATE", "Created allocation plan", "allocation_plan.create")
def create_plan(
    year_id: int,
    plan_name: str,
    plan_version: str,
    initial_status: str = "draft",
    is_current: bool = False,
    notes: str | None = None,
    *,
    actor: str = "system",
) -> PlanMutation:
    """Create a plan for an academic year.

    Raises:
        NotFoundError: Unknown academic year.
        ValidationError: Blank/too long name or version, unknown status.
        DuplicateVersionError: ``(year_id, plan_version)`` already exists.
    """
    return stage_new_plan(
        year_id, plan_name, plan_version, initial_status, is_current, notes, actor=actor,
    )


# ── Update ───────────────────────────────────────────────────────────────────


@plan_mutation("UPDATE", "Updated allocation plan", "allocation_plan.update")
def update_plan(plan_id: int, patch: PlanPatch, *, actor: str = "system") -> PlanMutation:
    """Apply the fields present in *patch*.

    Raises:
        NotFoundError: Unknown plan.
        InvalidTransitionError: Plan archived, backward status move, or
            ``status="archived"`` (use ``archive_plan``).
        ValidationError: Invalid or cleared required field.
        DuplicateVersionError: New version already used in the year.
    """
    plan = _require_locked_plan(plan_id)
    _ensure_mutable(plan, "update")

    changes = patch.present()
    for name in _REQUIRED_PATCH_FIELDS & changes.keys():
        if changes[name] is None:
            raise ValidationError(f"{name} cannot be cleared.", details={name: "required"})

    if "plan_name" in changes:
        changes["plan_name"] = _clean_text("plan_name", changes["plan_name"], PLAN_NAME_MAX)
    if "plan_version" in changes:
        changes["plan_version"] = _clean_text("plan_version", changes["plan_version"], PLAN_VERSION_MAX)
        if changes["plan_version"] != plan.plan_version and plan_version_exists(
            plan.academic_year_id, changes["plan_version"], exclude_plan_id=plan.id,
        ):
            raise DuplicateVersionError(plan.academic_year_id, changes["plan_version"])
    if "status" in changes:
        new_status = _check_status(changes["status"])
        if new_status == TERMINAL_PLAN_STATUS:
            raise InvalidTransitionError(
                plan.id, "update", plan.status, "Use the archive operation to archive a plan",
            )
        if not is_forward_transition(plan.status, new_status):
            raise InvalidTransitionError(
                plan.id, "update", plan.status, f"Status cannot move back to {new_status!r}",
            )
    if "is_current" in changes:
        _check_bool("is_current", changes["is_current"])
    if "notes" in changes and changes["notes"] is not None and not isinstance(changes["notes"], str):
        raise ValidationError("notes must be a string.", details={"notes": "invalid"})

    before = plan.to_dict()

    if changes.get("is_current") is True and not plan.is_current:
        unset_current_for_year(plan.academic_year_id, except_plan_id=plan.id)

    for name, value in changes.items():
        setattr(plan, name, value)
    db.session.flush()

    return PlanMutation(plan=plan, before=before, after=plan.to_dict())


# ── Current flag / archive ───────────────────────────────────────────────────


@plan_mutation("STATUS_CHANGE", "Set as current plan", "allocation_plan.set_current")
def set_current_plan(plan_id: int, *, actor: str = "system") -> PlanMutation:
    """Make *plan_id* the current plan of its year; idempotent when it already is."""
    plan = _require_locked_plan(plan_id)
    _ensure_mutable(plan, "set_current")

    was_current = plan.is_current
    unset_current_for_year(plan.academic_year_id, except_plan_id=plan.id)
    plan.is_current = True
    db.session.flush()

    return PlanMutation(
        plan=plan,
        before={"is_current": was_current},
        after={"is_current": plan.is_current},
    )


@plan_mutation("STATUS_CHANGE", "Archived allocation plan", "allocation_plan.archive")
def archive_plan(plan_id: int, *, actor: str = "system") -> PlanMutation:
    """Archive a plan. Not idempotent: archiving twice raises."""
    plan = _require_locked_plan(plan_id)
    if plan.is_archived:
        raise InvalidTransitionError(plan.id, "archive", plan.status, "Plan is already archived")

    before = {"status": plan.status, "is_current": plan.is_current}
    plan.is_current = False
    plan.status = TERMINAL_PLAN_STATUS
    db.session.flush()

    return PlanMutation(
        plan=plan,
        before=before,
        after={"status": plan.status, "is_current": plan.is_current},
    )


# ── Reads ────────────────────────────────────────────────────────────────────


def get_plan(plan_id: int) -> dict:
    return require_plan(plan_id).to_dict()


def get_current_plan_for_year(year_id: int) -> dict:
    """The current plan of the year, or NotFoundError when there is none."""
    require_academic_year(year_id)
    plan = current_plan_for_year(year_id)
    if plan is None:
        raise NotFoundError(resource="Current AllocationPlan for AcademicYear", resource_id=year_id)
    return plan.to_dict()


def list_plans(
    year_id: int | None = None,
    status: str | None = None,
    is_current: bool | None = None,
    page: int = 1,
    per_page: int | None = None,
) -> dict:
    """Paginated plans, newest first."""
    if status:
        _check_status(status)
    per_page_max = current_app.config.get("PLANS_PER_PAGE_MAX", 200)
    if per_page is None:
        per_page = current_app.config.get("PLANS_PER_PAGE_DEFAULT", 50)
    page = max(1, page or 1)
    per_page = min(per_page_max, max(1, per_page))

    paginated = db.paginate(
        query_plans(year_id=year_id, status=status, is_current=is_current),
        page=page, per_page=per_page, error_out=False,
    )
    return {
        "items": [p.to_dict() for p in paginated.items],
        "total": paginated.total,
        "page": paginated.page,
        "per_page": paginated.per_page,
        "pages": paginated.pages,
    }


def latest_plan() -> AllocationPlan:
    """Most recently created plan (``created_at DESC, id DESC``)."""
    plans = most_recent_plans(1)
    if not plans:
        raise NotFoundError(resource="AllocationPlan")
    return plans[0]
