"""Tests for the run-allocation orchestration.

Coverage:
  1. New plan created with the algorithm's assignments and one CREATE entry
  2. Version autogeneration (v<N>) and explicit overrides
  3. Lifecycle invariants still apply (duplicate version, current flag)
  4. Credit-hour recalculation seam called once per distinct teacher
  5. Missing algorithm / unknown seed plan
"""

import pytest
from sqlalchemy import func, select

from allocation_planner.core.exceptions import DuplicateVersionError, NotFoundError, ValidationError
from allocation_planner.models import db
from allocation_planner.models.academic import AcademicYear, Teacher
from allocation_planner.models.allocation import AllocationPlan, TeacherAssignment
from allocation_planner.models.plan_change_log import PlanChangeLog
from allocation_planner.services import plan_lifecycle as lifecycle
from allocation_planner.services.allocation_runner import (
    AllocationResult,
    NoOpCreditHourRecalculator,
    ProposedAssignment,
    next_plan_version,
    register_allocation_algorithm,
    register_credit_hour_recalculator,
    run_allocation_for_year,
)
from allocation_planner.services.helpers.plan_queries import assignments_by_teacher_and_year


# ── Helpers ─────────────────────────────────────────────────────────────────


class _FixedAlgorithm:
    """Returns a canned result and remembers which year it ran for."""

    def __init__(self, result: AllocationResult):
        self.result = result
        self.years = []

    def run(self, academic_year):
        self.years.append(academic_year.id)
        return self.result


class _RecordingRecalculator:
    def __init__(self):
        self.calls = []

    def recalculate(self, teacher_id, academic_year_id):
        self.calls.append((teacher_id, academic_year_id))


def _make_teachers(n: int) -> list[Teacher]:
    teachers = [Teacher(email=f"t{i}@x.org", last_name=f"T{i}") for i in range(n)]
    db.session.add_all(teachers)
    db.session.commit()
    return teachers


def _result(teachers, **kwargs) -> AllocationResult:
    assignments = [ProposedAssignment(teacher_id=t.id, student_group_size=2) for t in teachers]
    assignments.append(ProposedAssignment(teacher_id=teachers[0].id, student_group_size=1,
                                          assignment_status="confirmed", notes="second slot"))
    return AllocationResult(plan_name="Algorithm run", assignments=assignments, **kwargs)


def _seed(year_id: int, version: str = "seed") -> dict:
    return lifecycle.create_plan(year_id, "Seed", version)


# ── Tests ────────────────────────────────────────────────────────────────────


class TestRunAllocation:
    def test_creates_plan_with_assignments(self, academic_year):
        seed = _seed(academic_year.id)
        teachers = _make_teachers(2)
        algorithm = _FixedAlgorithm(_result(teachers))
        recalc = _RecordingRecalculator()

        new_id = run_allocation_for_year(seed["id"], algorithm=algorithm, recalculator=recalc,
                                         actor="scheduler")

        plan = db.session.get(AllocationPlan, new_id)
        assert new_id != seed["id"]
        assert plan.plan_name == "Algorithm run"
        assert plan.status == "draft"
        assert plan.created_by == "scheduler"
        assert algorithm.years == [academic_year.id]
        assert db.session.execute(
            select(func.count(TeacherAssignment.id)).where(TeacherAssignment.plan_id == new_id)
        ).scalar_one() == 3

        entries = list(db.session.execute(
            select(PlanChangeLog).where(PlanChangeLog.plan_id == new_id)
        ).scalars())
        assert [e.change_type for e in entries] == ["CREATE"]
        assert entries[0].new["assignment_count"] == 3

    def test_recalculator_called_once_per_teacher(self, academic_year):
        seed = _seed(academic_year.id)
        teachers = _make_teachers(3)
        recalc = _RecordingRecalculator()

        run_allocation_for_year(seed["id"], algorithm=_FixedAlgorithm(_result(teachers)),
                                recalculator=recalc)

        assert sorted(recalc.calls) == sorted((t.id, academic_year.id) for t in teachers)

    def test_default_recalculator_is_noop(self):
        assert NoOpCreditHourRecalculator().recalculate(1, 1) is None

    def test_version_autogenerated(self, academic_year):
        seed = _seed(academic_year.id, "v3")
        teachers = _make_teachers(1)
        algorithm = _FixedAlgorithm(_result(teachers))

        first = run_allocation_for_year(seed["id"], algorithm=algorithm)
        second = run_allocation_for_year(seed["id"], algorithm=algorithm)

        assert db.session.get(AllocationPlan, first).plan_version == "v4"
        assert db.session.get(AllocationPlan, second).plan_version == "v5"

    def test_next_plan_version_without_plans(self, academic_year):
        assert next_plan_version(academic_year.id) == "v1"

    def test_explicit_version_duplicate_rejected(self, academic_year):
        seed = _seed(academic_year.id, "v1")
        teachers = _make_teachers(1)
        before = db.session.execute(select(func.count(AllocationPlan.id))).scalar_one()

        with pytest.raises(DuplicateVersionError):
            run_allocation_for_year(seed["id"], algorithm=_FixedAlgorithm(_result(teachers)),
                                    plan_version="v1")

        assert db.session.execute(select(func.count(AllocationPlan.id))).scalar_one() == before
        assert db.session.execute(select(func.count(TeacherAssignment.id))).scalar_one() == 0

    def test_current_result_takes_the_flag(self, academic_year):
        seed = lifecycle.create_plan(academic_year.id, "Seed", "seed", is_current=True)
        teachers = _make_teachers(1)

        new_id = run_allocation_for_year(
            seed["id"], algorithm=_FixedAlgorithm(_result(teachers, is_current=True)),
        )

        assert db.session.get(AllocationPlan, new_id).is_current is True
        assert db.session.get(AllocationPlan, seed["id"]).is_current is False

    def test_invalid_assignment_status_rejected(self, academic_year):
        seed = _seed(academic_year.id)
        teachers = _make_teachers(1)
        result = AllocationResult(
            plan_name="Bad", assignments=[ProposedAssignment(teacher_id=teachers[0].id,
                                                              assignment_status="done")],
        )
        with pytest.raises(ValidationError):
            run_allocation_for_year(seed["id"], algorithm=_FixedAlgorithm(result))

    def test_registered_algorithm_is_used(self, app, academic_year):
        seed = _seed(academic_year.id)
        teachers = _make_teachers(1)
        register_allocation_algorithm(app, _FixedAlgorithm(_result(teachers)))
        try:
            new_id = run_allocation_for_year(seed["id"])
        finally:
            app.extensions.pop("allocation_algorithm", None)
        assert db.session.get(AllocationPlan, new_id) is not None

    def test_missing_algorithm(self, academic_year):
        seed = _seed(academic_year.id)
        with pytest.raises(ValidationError):
            run_allocation_for_year(seed["id"])

    def test_unknown_seed_plan(self):
        with pytest.raises(NotFoundError):
            run_allocation_for_year(777, algorithm=_FixedAlgorithm(AllocationResult(plan_name="x")))

    def test_registered_recalculator_is_used(self, app, academic_year):
        seed = _seed(academic_year.id)
        teachers = _make_teachers(2)
        recalc = _RecordingRecalculator()
        register_credit_hour_recalculator(app, recalc)
        try:
            run_allocation_for_year(seed["id"], algorithm=_FixedAlgorithm(_result(teachers)))
        finally:
            app.extensions.pop("credit_hour_recalculator", None)
        assert sorted(recalc.calls) == sorted((t.id, academic_year.id) for t in teachers)


class TestAssignmentsByTeacherAndYear:
    def test_only_assignments_of_that_year(self, academic_year):
        other_year = AcademicYear(year_name="2026/27", total_credit_hours=40)
        db.session.add(other_year)
        db.session.commit()
        teacher, colleague = _make_teachers(2)

        this_plan = _seed(academic_year.id, "v1")
        next_plan = _seed(other_year.id, "v1")
        db.session.add_all([
            TeacherAssignment(plan_id=this_plan["id"], teacher_id=teacher.id),
            TeacherAssignment(plan_id=this_plan["id"], teacher_id=colleague.id),
            TeacherAssignment(plan_id=next_plan["id"], teacher_id=teacher.id),
        ])
        db.session.commit()

        found = assignments_by_teacher_and_year(teacher.id, academic_year.id)

        assert [a.plan_id for a in found] == [this_plan["id"]]
        assert found[0].teacher.email == teacher.email

    def test_spans_every_plan_of_the_year(self, academic_year):
        teacher = _make_teachers(1)[0]
        run_allocation_for_year(
            _seed(academic_year.id)["id"], algorithm=_FixedAlgorithm(_result([teacher])),
        )
        assert len(assignments_by_teacher_and_year(teacher.id, academic_year.id)) == 2
        assert assignments_by_teacher_and_year(teacher.id, academic_year.id + 1) == []
