"""
Allocation Planner
Reference data models — academic years, schools, teachers, internship types, subjects.

These tables are maintained by the administrative CRUD screens; the planning
core only reads them.

Models:
    - AcademicYear: budget envelope (credit hours) for one allocation round.
    - School: placement school with type and zone.
    - Teacher: mentor teacher employed at a school.
    - InternshipType: internship programme (e.g. PDP, ZSP, SFP).
    - Subject: teaching subject.
"""

from datetime import datetime, timezone

from allocation_planner.models import db


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


# ── Constants ────────────────────────────────────────────────────────────────

SCHOOL_TYPES = {"primary", "middle", "secondary", "vocational", "special_education"}

EMPLOYMENT_STATUSES = {
    "full_time", "part_time", "on_leave", "contract", "probation", "retired",
}

# Teachers in these employment states are not offered for allocation.
INACTIVE_EMPLOYMENT_STATUSES = frozenset({"on_leave", "retired"})


class AcademicYear(db.Model):
    """One academic year and its credit-hour budget."""

    __tablename__ = "academic_years"

    id = db.Column(db.Integer, primary_key=True)
    year_name = db.Column(db.String(50), nullable=False, unique=True)
    total_credit_hours = db.Column(
        db.Integer, nullable=True,
        comment="Credit-hour budget for the whole year; NULL reads as 0",
    )
    elementary_school_hours = db.Column(db.Integer, nullable=True)
    middle_school_hours = db.Column(db.Integer, nullable=True)
    budget_announcement_date = db.Column(db.DateTime(timezone=True), nullable=True)
    allocation_deadline = db.Column(db.DateTime(timezone=True), nullable=True)
    is_locked = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    plans = db.relationship(
        "AllocationPlan", back_populates="academic_year", lazy="dynamic",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "year_name": self.year_name,
            "total_credit_hours": self.total_credit_hours,
            "elementary_school_hours": self.elementary_school_hours,
            "middle_school_hours": self.middle_school_hours,
            "budget_announcement_date": _iso(self.budget_announcement_date),
            "allocation_deadline": _iso(self.allocation_deadline),
            "is_locked": self.is_locked,
        }

    def __repr__(self):
        return f"<AcademicYear {self.id}: {self.year_name}>"


class School(db.Model):
    __tablename__ = "schools"
    __table_args__ = (
        db.Index("idx_school_type", "school_type"),
        db.Index("idx_school_zone", "zone_number"),
    )

    id = db.Column(db.Integer, primary_key=True)
    school_name = db.Column(db.String(255), nullable=False, unique=True)
    school_type = db.Column(
        db.String(30), nullable=False, default="primary",
        comment="primary | middle | secondary | vocational | special_education",
    )
    zone_number = db.Column(db.Integer, nullable=True)
    address = db.Column(db.String(500), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    teachers = db.relationship("Teacher", back_populates="school", lazy="select")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "school_name": self.school_name,
            "school_type": self.school_type,
            "zone_number": self.zone_number,
            "address": self.address,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<School {self.id}: {self.school_name} ({self.school_type})>"


class Teacher(db.Model):
    __tablename__ = "teachers"
    __table_args__ = (
        db.Index("idx_teacher_school", "school_id"),
        db.Index("idx_teacher_employment_status", "employment_status"),
        db.Index("idx_teacher_name", "last_name", "first_name"),
    )

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(
        db.Integer,
        db.ForeignKey("schools.id", ondelete="SET NULL"),
        nullable=True,
    )
    first_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    employment_status = db.Column(
        db.String(30), nullable=False, default="full_time",
        comment="full_time | part_time | on_leave | contract | probation | retired",
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    school = db.relationship("School", back_populates="teachers", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "school_id": self.school_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "employment_status": self.employment_status,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<Teacher {self.id}: {self.last_name}, {self.first_name}>"


class InternshipType(db.Model):
    __tablename__ = "internship_types"

    id = db.Column(db.Integer, primary_key=True)
    internship_code = db.Column(db.String(20), nullable=False, unique=True)
    full_name = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "internship_code": self.internship_code, "full_name": self.full_name}


class Subject(db.Model):
    __tablename__ = "subjects"

    id = db.Column(db.Integer, primary_key=True)
    subject_code = db.Column(db.String(20), nullable=False, unique=True)
    subject_title = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "subject_code": self.subject_code, "subject_title": self.subject_title}
