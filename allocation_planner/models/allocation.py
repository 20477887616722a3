"""
Allocation Planner
Allocation domain models.

Models:
    - AllocationPlan: one versioned allocation proposal for an academic year.
    - TeacherAssignment: one teacher ↔ internship/subject placement inside a plan.

Plan status is forward-only:

    draft → in_review → approved → archived

Skipping ahead is allowed, moving back is not, and ``archived`` is terminal.
Independently of status, at most one plan per academic year carries
``is_current = True``; the partial unique index below backs that up at the
database level.
"""

from datetime import datetime, timezone

from allocation_planner.models import db


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


# ── Constants ────────────────────────────────────────────────────────────────

PLAN_STATUS_ORDER = ("draft", "in_review", "approved", "archived")
PLAN_STATUSES = frozenset(PLAN_STATUS_ORDER)
TERMINAL_PLAN_STATUS = "archived"

ASSIGNMENT_STATUSES = {"planned", "confirmed", "cancelled", "on_hold"}

PLAN_NAME_MAX = 255
PLAN_VERSION_MAX = 100


def status_rank(status: str) -> int:
    """Position of *status* in the forward-only order (ValueError if unknown)."""
    return PLAN_STATUS_ORDER.index(status)


def is_forward_transition(old_status: str, new_status: str) -> bool:
    """True when moving *old_status* → *new_status* does not go backwards.

    Staying on the same status counts as forward. ``archived`` is never a
    valid source.
    """
    if old_status == TERMINAL_PLAN_STATUS:
        return False
    return status_rank(new_status) >= status_rank(old_status)


class AllocationPlan(db.Model):
    """
    Versioned allocation plan.

    ``(academic_year_id, plan_version)`` is unique. Archived plans are
    frozen: the lifecycle service refuses every further mutation.
    """

    __tablename__ = "allocation_plans"
    __table_args__ = (
        db.UniqueConstraint(
            "academic_year_id", "plan_version", name="uq_allocation_plan_year_version",
        ),
        db.Index("idx_allocation_plan_year", "academic_year_id"),
        db.Index("idx_allocation_plan_status", "status"),
        db.Index("idx_allocation_plan_created", "created_at", "id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    academic_year_id = db.Column(
        db.Integer,
        db.ForeignKey("academic_years.id", ondelete="RESTRICT"),
        nullable=False,
    )
    plan_name = db.Column(db.String(PLAN_NAME_MAX), nullable=False)
    plan_version = db.Column(
        db.String(PLAN_VERSION_MAX), nullable=False,
        comment="e.g. v1.0, draft-001; unique per academic year",
    )
    status = db.Column(
        db.String(20), nullable=False, default="draft",
        comment="draft | in_review | approved | archived",
    )
    is_current = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(150), nullable=False, default="system")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    last_modified = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    academic_year = db.relationship("AcademicYear", back_populates="plans", lazy="joined")
    assignments = db.relationship(
        "TeacherAssignment",
        back_populates="plan",
        lazy="dynamic",
        cascade="all, delete-orphan",
    )

    @property
    def is_archived(self) -> bool:
        return self.status == TERMINAL_PLAN_STATUS

    def to_dict(self) -> dict:
        year = self.academic_year
        return {
            "id": self.id,
            "academic_year_id": self.academic_year_id,
            "academic_year_name": year.year_name if year else None,
            "plan_name": self.plan_name,
            "plan_version": self.plan_version,
            "status": self.status,
            "is_current": self.is_current,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "last_modified": _iso(self.last_modified),
        }

    def __repr__(self):
        flag = " current" if self.is_current else ""
        return f"<AllocationPlan {self.id}: {self.plan_name} {self.plan_version} [{self.status}{flag}]>"


# One current plan per academic year, enforced by the database as well.
db.Index(
    "uq_allocation_plan_current_per_year",
    AllocationPlan.academic_year_id,
    unique=True,
    postgresql_where=db.text("is_current"),
    sqlite_where=db.text("is_current = 1"),
)


class TeacherAssignment(db.Model):
    """
    Placement of one teacher for one internship type and subject.

    Produced by the allocation algorithm; the reporting core reads these
    rows and tolerates missing relations (the report shows "Unknown").
    """

    __tablename__ = "teacher_assignments"
    __table_args__ = (
        db.UniqueConstraint(
            "plan_id", "teacher_id", "internship_type_id", "subject_id",
            name="uq_teacher_assignment_plan_teacher_internship_subject",
        ),
        db.Index("idx_teacher_assignment_plan", "plan_id"),
        db.Index("idx_teacher_assignment_teacher", "teacher_id"),
        db.Index("idx_teacher_assignment_status", "assignment_status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    plan_id = db.Column(
        db.Integer,
        db.ForeignKey("allocation_plans.id", ondelete="CASCADE"),
        nullable=False,
    )
    teacher_id = db.Column(
        db.Integer, db.ForeignKey("teachers.id", ondelete="SET NULL"), nullable=True,
    )
    internship_type_id = db.Column(
        db.Integer, db.ForeignKey("internship_types.id", ondelete="SET NULL"), nullable=True,
    )
    subject_id = db.Column(
        db.Integer, db.ForeignKey("subjects.id", ondelete="SET NULL"), nullable=True,
    )
    student_group_size = db.Column(db.Integer, nullable=True)
    assignment_status = db.Column(
        db.String(20), nullable=True,
        comment="planned | confirmed | cancelled | on_hold",
    )
    is_manual_override = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    plan = db.relationship("AllocationPlan", back_populates="assignments")
    teacher = db.relationship("Teacher", lazy="select")
    internship_type = db.relationship("InternshipType", lazy="select")
    subject = db.relationship("Subject", lazy="select")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "plan_id": self.plan_id,
            "teacher_id": self.teacher_id,
            "internship_type_id": self.internship_type_id,
            "subject_id": self.subject_id,
            "student_group_size": self.student_group_size,
            "assignment_status": self.assignment_status,
            "is_manual_override": self.is_manual_override,
            "notes": self.notes,
        }

    def __repr__(self):
        return f"<TeacherAssignment {self.id}: plan={self.plan_id} teacher={self.teacher_id}>"
