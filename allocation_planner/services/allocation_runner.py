"""
Run-allocation orchestration.

The allocation algorithm itself is opaque to this project: anything with a
``run(academic_year) -> AllocationResult`` method can be registered on the
app. This module turns its output into a new plan that obeys every
lifecycle invariant (same validation, same CREATE ledger entry, same
transaction as ``create_plan``) and then notifies the credit-hour
recalculation seam once per affected teacher.

Usage:
    register_allocation_algorithm(app, MyAlgorithm())
    new_plan_id = run_allocation_for_year(seed_plan_id, actor="registrar")
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Protocol

from flask import current_app

from allocation_planner.core.exceptions import ValidationError
from allocation_planner.models import db
from allocation_planner.models.academic import AcademicYear
from allocation_planner.models.allocation import ASSIGNMENT_STATUSES, TeacherAssignment
from allocation_planner.services.helpers.plan_queries import (
    plan_versions_for_year,
    require_plan,
)
from allocation_planner.services.plan_lifecycle import (
    PlanMutation,
    plan_mutation,
    stage_new_plan,
)

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"^v(\d+)$")


# ── Algorithm contract ───────────────────────────────────────────────────────


@dataclass
class ProposedAssignment:
    """One placement proposed by the algorithm."""

    teacher_id: int | None
    internship_type_id: int | None = None
    subject_id: int | None = None
    student_group_size: int | None = None
    assignment_status: str | None = "planned"
    notes: str | None = None


@dataclass
class AllocationResult:
    """Algorithm output; becomes a new plan."""

    plan_name: str
    plan_version: str | None = None
    notes: str | None = None
    is_current: bool = False
    assignments: list[ProposedAssignment] = field(default_factory=list)


class AllocationAlgorithm(Protocol):
    def run(self, academic_year: AcademicYear) -> AllocationResult:
        ...


class CreditHourRecalculator(Protocol):
    def recalculate(self, teacher_id: int, academic_year_id: int) -> None:
        ...


class NoOpCreditHourRecalculator:
    """Default recalculation hook: intentionally does nothing."""

    def recalculate(self, teacher_id: int, academic_year_id: int) -> None:
        return None


def register_allocation_algorithm(app, algorithm: AllocationAlgorithm):
    app.extensions["allocation_algorithm"] = algorithm


def register_credit_hour_recalculator(app, recalculator: CreditHourRecalculator):
    app.extensions["credit_hour_recalculator"] = recalculator


def _resolve_algorithm(algorithm):
    algorithm = algorithm or current_app.extensions.get("allocation_algorithm")
    if algorithm is None:
        raise ValidationError(
            "No allocation algorithm is configured.",
            details={"allocation_algorithm": "missing"},
        )
    return algorithm


def _resolve_recalculator(recalculator):
    return (
        recalculator
        or current_app.extensions.get("credit_hour_recalculator")
        or NoOpCreditHourRecalculator()
    )


# ── Versioning ───────────────────────────────────────────────────────────────


def next_plan_version(year_id: int) -> str:
    """Next free ``v<N>`` for the year (``v1`` when none exist)."""
    highest = 0
    for version in plan_versions_for_year(year_id):
        match = _VERSION_RE.match(version or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return f"v{highest + 1}"


# ── Orchestration ────────────────────────────────────────────────────────────


@plan_mutation("CREATE", "Created by allocation run", "allocation_plan.run_allocation")
def _create_plan_from_result(
    year_id: int,
    result: AllocationResult,
    *,
    is_current: bool | None = None,
    plan_version: str | None = None,
    actor: str = "system",
) -> PlanMutation:
    version = plan_version or result.plan_version or next_plan_version(year_id)
    for proposed in result.assignments:
        if proposed.assignment_status is not None and proposed.assignment_status not in ASSIGNMENT_STATUSES:
            raise ValidationError(
                f"Unknown assignment status {proposed.assignment_status!r}",
                details={"assignment_status": "invalid"},
            )

    mutation = stage_new_plan(
        year_id,
        result.plan_name,
        version,
        "draft",
        result.is_current if is_current is None else is_current,
        result.notes,
        actor=actor,
    )
    for proposed in result.assignments:
        db.session.add(TeacherAssignment(
            plan_id=mutation.plan.id,
            teacher_id=proposed.teacher_id,
            internship_type_id=proposed.internship_type_id,
            subject_id=proposed.subject_id,
            student_group_size=proposed.student_group_size,
            assignment_status=proposed.assignment_status,
            notes=proposed.notes,
        ))
    db.session.flush()
    mutation.after = dict(mutation.after, assignment_count=len(result.assignments))
    return mutation


def run_allocation_for_year(
    plan_id: int,
    *,
    algorithm: AllocationAlgorithm | None = None,
    recalculator: CreditHourRecalculator | None = None,
    is_current: bool | None = None,
    plan_version: str | None = None,
    actor: str = "system",
) -> int:
    """Run the allocation algorithm for the seed plan's year.

    Args:
        plan_id:      Seed plan; its academic year is the one allocated.
        algorithm:    Overrides the app-registered algorithm.
        recalculator: Overrides the app-registered credit-hour hook.
        is_current:   Overrides the result's current flag.
        plan_version: Overrides the result's version.
        actor:        Who triggered the run.

    Returns:
        Id of the newly created plan.

    Raises:
        NotFoundError: Unknown seed plan.
        ValidationError: No algorithm configured or invalid result.
        DuplicateVersionError: The chosen version already exists.
    """
    seed = require_plan(plan_id)
    algorithm = _resolve_algorithm(algorithm)
    year = seed.academic_year

    logger.info("Running allocation for academic year %s", year.id,
                extra={"plan_id": seed.id, "academic_year_id": year.id, "actor": actor})
    result = algorithm.run(year)

    plan = _create_plan_from_result(
        year.id, result, is_current=is_current, plan_version=plan_version, actor=actor,
    )

    hook = _resolve_recalculator(recalculator)
    teacher_ids = sorted({a.teacher_id for a in result.assignments if a.teacher_id is not None})
    for teacher_id in teacher_ids:
        hook.recalculate(teacher_id, plan["academic_year_id"])

    logger.info("Allocation run created plan %s with %d assignment(s)",
                plan["id"], len(result.assignments),
                extra={"plan_id": plan["id"], "academic_year_id": year.id, "actor": actor})
    return plan["id"]
