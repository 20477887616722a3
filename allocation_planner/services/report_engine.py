"""
Allocation report engine.

Builds the allocation report for a plan: per-assignment detail rows, a
credit-hour budget summary and a four-way utilization analysis of every
active teacher. Read-only; missing relations degrade to placeholder values
so a report is always producible for an existing plan. A separate health
report checks the plan against the per-school-type budgets of its year.

Budget rule: two assignments consume one credit hour.
"""

import logging
from collections import Counter
from datetime import datetime, timezone

from allocation_planner.models.allocation import AllocationPlan
from allocation_planner.services.helpers.plan_queries import (
    assignments_by_plan,
    list_active_teachers,
    require_plan,
)
from allocation_planner.services.plan_lifecycle import latest_plan

logger = logging.getLogger(__name__)

HOURS_PER_ASSIGNMENT = 0.5
ELEMENTARY_SCHOOL_TYPE = "primary"
MIDDLE_SCHOOL_TYPE = "middle"
PERFECT_ASSIGNMENT_COUNT = 2

UNKNOWN = "Unknown"
UNKNOWN_STATUS = "UNKNOWN"

NOTE_UNASSIGNED = "Warning: Unused Resource"
NOTE_UNDER_UTILIZED = "Warning: Only 1 assignment (Needs 2 for credit)"

# Per-school-type budgets may be overrun by this many hours; the year total may not.
SCHOOL_TYPE_TOLERANCE_HOURS = 5
BUDGET_EXCEEDED_WARNING = "Budget limits exceeded!"


def _teacher_name(teacher) -> str:
    if teacher is None:
        return UNKNOWN
    return f"{teacher.last_name or ''}, {teacher.first_name or ''}"


def _school_name(teacher) -> str:
    school = teacher.school if teacher is not None else None
    if school is None or not school.school_name:
        return UNKNOWN
    return school.school_name


def _hours(value) -> float:
    return float(value) if value is not None else 0.0


def _metric(allocated: float, used: float) -> dict:
    return {"allocated": allocated, "used": used, "remaining": allocated - used}


def _school_type(assignment):
    teacher = assignment.teacher
    if teacher is None or teacher.school is None:
        return None
    return teacher.school.school_type


# ═════════════════════════════════════════════════════════════════════════════
# REPORT ENGINE
# ═════════════════════════════════════════════════════════════════════════════

class ReportEngine:
    """Produces allocation reports as plain dicts."""

    @classmethod
    def generate_report(cls, plan_id: int) -> dict:
        """Report for an explicit plan id; NotFoundError if it does not exist."""
        return cls._build(require_plan(plan_id))

    @classmethod
    def generate_latest_report(cls) -> dict:
        """Report for the most recently created plan (``created_at DESC, id DESC``)."""
        return cls._build(latest_plan())

    @classmethod
    def generate_health_report(cls, plan_id: int) -> dict:
        """Budget compliance of a plan against its year's per-school-type budgets.

        Only assignments whose teacher belongs to a school are counted.
        Primary schools draw on the elementary budget, every other school
        type on the middle-school budget.
        """
        plan = require_plan(plan_id)
        year = plan.academic_year

        types = Counter(t for t in (_school_type(a) for a in assignments_by_plan(plan.id)) if t)
        elementary_used = types[ELEMENTARY_SCHOOL_TYPE] * HOURS_PER_ASSIGNMENT
        middle_used = (sum(types.values()) - types[ELEMENTARY_SCHOOL_TYPE]) * HOURS_PER_ASSIGNMENT

        total = _hours(year.total_credit_hours if year is not None else None)
        elementary = _hours(year.elementary_school_hours if year is not None else None)
        middle = _hours(year.middle_school_hours if year is not None else None)

        compliant = (
            elementary_used <= elementary + SCHOOL_TYPE_TOLERANCE_HOURS
            and middle_used <= middle + SCHOOL_TYPE_TOLERANCE_HOURS
            and elementary_used + middle_used <= total
        )
        if not compliant:
            logger.info("Plan %s exceeds its budget", plan.id, extra={"plan_id": plan.id})

        return {
            "plan_id": plan.id,
            "plan_name": plan.plan_name,
            "academic_year": year.year_name if year is not None and year.year_name else UNKNOWN,
            "status": plan.status.upper() if plan.status else UNKNOWN_STATUS,
            "total_budget": _metric(total, elementary_used + middle_used),
            "elementary_budget": _metric(elementary, elementary_used),
            "middle_school_budget": _metric(middle, middle_used),
            "total_assignments": sum(types.values()),
            "is_budget_compliant": compliant,
            "compliance_warning": None if compliant else BUDGET_EXCEEDED_WARNING,
        }

    # ── Assembly ─────────────────────────────────────────────────────────

    @classmethod
    def _build(cls, plan: AllocationPlan) -> dict:
        assignments = assignments_by_plan(plan.id)
        teachers = list_active_teachers()
        logger.info("Generating allocation report: %d assignment(s), %d active teacher(s)",
                    len(assignments), len(teachers), extra={"plan_id": plan.id})

        year = plan.academic_year
        return {
            "header": {
                "plan_id": plan.id,
                "plan_name": plan.plan_name,
                "plan_version": plan.plan_version,
                "academic_year": year.year_name if year is not None and year.year_name else UNKNOWN,
                "status": plan.status.upper() if plan.status else UNKNOWN_STATUS,
                "generated_at": datetime.now(timezone.utc).isoformat(),
            },
            "assignments": [cls.detail_row(a) for a in assignments],
            "budget_summary": cls.budget_summary(plan, assignments),
            "utilization_analysis": cls.utilization(teachers, assignments),
        }

    @staticmethod
    def detail_row(assignment) -> dict:
        teacher = assignment.teacher
        school = teacher.school if teacher is not None else None

        zone = UNKNOWN
        if school is not None and school.zone_number is not None:
            zone = f"Zone {school.zone_number}"

        internship = assignment.internship_type
        subject = assignment.subject
        status = assignment.assignment_status

        return {
            "assignment_id": assignment.id,
            "teacher_name": _teacher_name(teacher),
            "teacher_email": teacher.email if teacher is not None else None,
            "school_name": _school_name(teacher),
            "school_zone": zone,
            "internship_code": internship.internship_code if internship and internship.internship_code else UNKNOWN,
            "subject_code": subject.subject_code if subject and subject.subject_code else UNKNOWN,
            "student_group_size": assignment.student_group_size or 0,
            "assignment_status": status.upper() if status else UNKNOWN_STATUS,
        }

    @staticmethod
    def budget_summary(plan: AllocationPlan, assignments: list) -> dict:
        used = len(assignments) * HOURS_PER_ASSIGNMENT
        types = Counter(_school_type(a) for a in assignments)

        year = plan.academic_year
        total = _hours(year.total_credit_hours if year is not None else None)

        return {
            "total_budget_hours": total,
            "used_hours": used,
            "remaining_hours": total - used,
            "elementary_hours_used": types[ELEMENTARY_SCHOOL_TYPE] * HOURS_PER_ASSIGNMENT,
            "middle_school_hours_used": types[MIDDLE_SCHOOL_TYPE] * HOURS_PER_ASSIGNMENT,
            "is_over_budget": used > total,
        }

    @staticmethod
    def classify(count: int) -> tuple[str, str | None]:
        """Utilization bucket and note for an assignment count."""
        if count == 0:
            return "unassigned", NOTE_UNASSIGNED
        if count == 1:
            return "under_utilized", NOTE_UNDER_UTILIZED
        if count == PERFECT_ASSIGNMENT_COUNT:
            return "perfectly_utilized", None
        return "over_utilized", f"Alert: Overloaded ({count} assignments)"

    @classmethod
    def utilization(cls, teachers: list, assignments: list) -> dict:
        counts = Counter(a.teacher_id for a in assignments if a.teacher_id is not None)
        buckets = {
            "unassigned": [],
            "under_utilized": [],
            "perfectly_utilized": [],
            "over_utilized": [],
        }
        for teacher in teachers:
            count = counts.get(teacher.id, 0)
            bucket, note = cls.classify(count)
            buckets[bucket].append({
                "teacher_id": teacher.id,
                "teacher_name": _teacher_name(teacher),
                "email": teacher.email,
                "school_name": _school_name(teacher),
                "assignment_count": count,
                "notes": note,
            })
        return buckets
