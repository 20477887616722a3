"""
Plan, assignment and reference-data query helpers.

The lifecycle, ledger, report and run-allocation services share these so
that lookups raise the same NotFoundError and "most recent plan" means the
same thing everywhere: ``created_at DESC, id DESC``.

Usage:
    plan = require_plan(plan_id)
    year = require_academic_year(plan.academic_year_id, lock=True)
    changed = unset_current_for_year(year.id, except_plan_id=plan.id)
"""

import logging

from sqlalchemy import select, update
from sqlalchemy.orm import joinedload

from allocation_planner.core.exceptions import NotFoundError
from allocation_planner.models import db
from allocation_planner.models.academic import (
    INACTIVE_EMPLOYMENT_STATUSES,
    AcademicYear,
    Teacher,
)
from allocation_planner.models.allocation import AllocationPlan, TeacherAssignment

logger = logging.getLogger(__name__)


# ── Single-entity lookups ────────────────────────────────────────────────────


def require_plan(plan_id: int) -> AllocationPlan:
    """Return the plan or raise NotFoundError."""
    plan = db.session.get(AllocationPlan, plan_id)
    if plan is None:
        raise NotFoundError(resource="AllocationPlan", resource_id=plan_id)
    return plan


def require_academic_year(year_id: int, *, lock: bool = False) -> AcademicYear:
    """Return the academic year or raise NotFoundError.

    With ``lock=True`` the row is read with ``SELECT … FOR UPDATE`` so that
    concurrent current-flag flips for the same year queue behind each
    other. SQLite ignores the clause; its writer lock already serialises.
    """
    stmt = select(AcademicYear).where(AcademicYear.id == year_id)
    if lock:
        stmt = stmt.with_for_update()
    year = db.session.execute(stmt).unique().scalar_one_or_none()
    if year is None:
        raise NotFoundError(resource="AcademicYear", resource_id=year_id)
    return year


def lock_plan(plan: AllocationPlan) -> AllocationPlan:
    """Re-read *plan* with ``SELECT … FOR UPDATE``, overwriting stale state.

    Call after the year lock is held; checks on the returned row see any
    change committed before the lock was granted.
    """
    stmt = (
        select(AllocationPlan)
        .where(AllocationPlan.id == plan.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    fresh = db.session.execute(stmt).unique().scalar_one_or_none()
    if fresh is None:
        raise NotFoundError(resource="AllocationPlan", resource_id=plan.id)
    return fresh


def plan_version_exists(year_id: int, plan_version: str, *, exclude_plan_id: int | None = None) -> bool:
    stmt = select(AllocationPlan.id).where(
        AllocationPlan.academic_year_id == year_id,
        AllocationPlan.plan_version == plan_version,
    )
    if exclude_plan_id is not None:
        stmt = stmt.where(AllocationPlan.id != exclude_plan_id)
    return db.session.execute(stmt.limit(1)).first() is not None


# ── Current flag ─────────────────────────────────────────────────────────────


def unset_current_for_year(year_id: int, *, except_plan_id: int | None = None) -> int:
    """Clear ``is_current`` on every plan of the year in one bulk UPDATE.

    Does not commit. Returns the number of rows changed.
    """
    stmt = (
        update(AllocationPlan)
        .where(
            AllocationPlan.academic_year_id == year_id,
            AllocationPlan.is_current.is_(True),
        )
        .values(is_current=False)
        .execution_options(synchronize_session="fetch")
    )
    if except_plan_id is not None:
        stmt = stmt.where(AllocationPlan.id != except_plan_id)
    changed = db.session.execute(stmt).rowcount or 0
    if changed:
        logger.debug("Cleared current flag on %d plan(s)", changed,
                     extra={"academic_year_id": year_id})
    return changed


def current_plan_for_year(year_id: int) -> AllocationPlan | None:
    return db.session.execute(
        select(AllocationPlan).where(
            AllocationPlan.academic_year_id == year_id,
            AllocationPlan.is_current.is_(True),
        )
    ).unique().scalar_one_or_none()


# ── Listing ──────────────────────────────────────────────────────────────────


def _newest_first(stmt):
    return stmt.order_by(AllocationPlan.created_at.desc(), AllocationPlan.id.desc())


def query_plans(year_id: int | None = None, status: str | None = None, is_current: bool | None = None):
    """Build a filtered select over plans, newest first."""
    stmt = select(AllocationPlan)
    if year_id is not None:
        stmt = stmt.where(AllocationPlan.academic_year_id == year_id)
    if status:
        stmt = stmt.where(AllocationPlan.status == status)
    if is_current is not None:
        stmt = stmt.where(AllocationPlan.is_current.is_(is_current))
    return _newest_first(stmt)


def most_recent_plans(limit: int = 1) -> list[AllocationPlan]:
    return list(
        db.session.execute(_newest_first(select(AllocationPlan)).limit(limit)).unique().scalars()
    )


def plan_versions_for_year(year_id: int) -> list[str]:
    return list(
        db.session.execute(
            select(AllocationPlan.plan_version).where(AllocationPlan.academic_year_id == year_id)
        ).scalars()
    )


# ── Assignments / teachers ───────────────────────────────────────────────────


def _with_details(stmt):
    return stmt.options(
        joinedload(TeacherAssignment.teacher).joinedload(Teacher.school),
        joinedload(TeacherAssignment.internship_type),
        joinedload(TeacherAssignment.subject),
    )


def assignments_by_plan(plan_id: int) -> list[TeacherAssignment]:
    stmt = _with_details(
        select(TeacherAssignment)
        .where(TeacherAssignment.plan_id == plan_id)
        .order_by(TeacherAssignment.id)
    )
    return list(db.session.execute(stmt).unique().scalars())


def assignments_by_teacher_and_year(teacher_id: int, year_id: int) -> list[TeacherAssignment]:
    stmt = _with_details(
        select(TeacherAssignment)
        .join(AllocationPlan, TeacherAssignment.plan_id == AllocationPlan.id)
        .where(
            TeacherAssignment.teacher_id == teacher_id,
            AllocationPlan.academic_year_id == year_id,
        )
        .order_by(TeacherAssignment.id)
    )
    return list(db.session.execute(stmt).unique().scalars())


def list_active_teachers() -> list[Teacher]:
    """Active teachers that are not on leave or retired."""
    stmt = (
        select(Teacher)
        .options(joinedload(Teacher.school))
        .where(
            Teacher.is_active.is_(True),
            Teacher.employment_status.not_in(INACTIVE_EMPLOYMENT_STATUSES),
        )
        .order_by(Teacher.last_name, Teacher.first_name, Teacher.id)
    )
    return list(db.session.execute(stmt).unique().scalars())
