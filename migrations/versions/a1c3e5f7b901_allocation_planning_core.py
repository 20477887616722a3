"""allocation_planning_core

Creates the allocation planning tables:
  - academic_years, schools, teachers, internship_types, subjects  — reference data
  - allocation_plans        — versioned plans, one current plan per year
  - teacher_assignments     — placements produced by allocation runs
  - plan_change_logs        — immutable plan mutation ledger
  - audit_logs              — best-effort global audit trail

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via db.create_all()
in a development environment.

Revision ID: a1c3e5f7b901
Revises:
Create Date: 2026-10-18 09:12:44.501233
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = 'a1c3e5f7b901'
down_revision = None
branch_labels = None
depends_on = None


def _ts(name, nullable=False):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Reference data ────────────────────────────────────────────────────
    if "academic_years" not in existing:
        op.create_table(
            "academic_years",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("year_name", sa.String(length=50), nullable=False),
            sa.Column(
                "total_credit_hours", sa.Integer(), nullable=True,
                comment="Credit-hour budget for the whole year; NULL reads as 0",
            ),
            sa.Column("elementary_school_hours", sa.Integer(), nullable=True),
            sa.Column("middle_school_hours", sa.Integer(), nullable=True),
            _ts("budget_announcement_date", nullable=True),
            _ts("allocation_deadline", nullable=True),
            sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
            _ts("created_at"),
            _ts("updated_at"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("year_name"),
        )

    if "schools" not in existing:
        op.create_table(
            "schools",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("school_name", sa.String(length=255), nullable=False),
            sa.Column(
                "school_type", sa.String(length=30), nullable=False,
                server_default="primary",
                comment="primary | middle | secondary | vocational | special_education",
            ),
            sa.Column("zone_number", sa.Integer(), nullable=True),
            sa.Column("address", sa.String(length=500), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            _ts("created_at"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("school_name"),
        )
        op.create_index("idx_school_type", "schools", ["school_type"])
        op.create_index("idx_school_zone", "schools", ["zone_number"])

    if "teachers" not in existing:
        op.create_table(
            "teachers",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("school_id", sa.Integer(), nullable=True),
            sa.Column("first_name", sa.String(length=100), nullable=True),
            sa.Column("last_name", sa.String(length=100), nullable=True),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column(
                "employment_status", sa.String(length=30), nullable=False,
                server_default="full_time",
                comment="full_time | part_time | on_leave | contract | probation | retired",
            ),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            _ts("created_at"),
            sa.ForeignKeyConstraint(["school_id"], ["schools.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )
        op.create_index("idx_teacher_school", "teachers", ["school_id"])
        op.create_index("idx_teacher_employment_status", "teachers", ["employment_status"])
        op.create_index("idx_teacher_name", "teachers", ["last_name", "first_name"])

    if "internship_types" not in existing:
        op.create_table(
            "internship_types",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("internship_code", sa.String(length=20), nullable=False),
            sa.Column("full_name", sa.String(length=255), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("internship_code"),
        )

    if "subjects" not in existing:
        op.create_table(
            "subjects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("subject_code", sa.String(length=20), nullable=False),
            sa.Column("subject_title", sa.String(length=255), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("subject_code"),
        )

    # ── AllocationPlan ────────────────────────────────────────────────────
    if "allocation_plans" not in existing:
        op.create_table(
            "allocation_plans",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("academic_year_id", sa.Integer(), nullable=False),
            sa.Column("plan_name", sa.String(length=255), nullable=False),
            sa.Column(
                "plan_version", sa.String(length=100), nullable=False,
                comment="e.g. v1.0, draft-001; unique per academic year",
            ),
            sa.Column(
                "status", sa.String(length=20), nullable=False,
                server_default="draft",
                comment="draft | in_review | approved | archived",
            ),
            sa.Column("is_current", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("created_by", sa.String(length=150), nullable=False, server_default="system"),
            _ts("created_at"),
            _ts("last_modified"),
            sa.ForeignKeyConstraint(["academic_year_id"], ["academic_years.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "academic_year_id", "plan_version", name="uq_allocation_plan_year_version",
            ),
        )
        op.create_index("idx_allocation_plan_year", "allocation_plans", ["academic_year_id"])
        op.create_index("idx_allocation_plan_status", "allocation_plans", ["status"])
        op.create_index("idx_allocation_plan_created", "allocation_plans", ["created_at", "id"])
        op.create_index(
            "uq_allocation_plan_current_per_year",
            "allocation_plans",
            ["academic_year_id"],
            unique=True,
            postgresql_where=sa.text("is_current"),
            sqlite_where=sa.text("is_current = 1"),
        )

    # ── TeacherAssignment ─────────────────────────────────────────────────
    if "teacher_assignments" not in existing:
        op.create_table(
            "teacher_assignments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("plan_id", sa.Integer(), nullable=False),
            sa.Column("teacher_id", sa.Integer(), nullable=True),
            sa.Column("internship_type_id", sa.Integer(), nullable=True),
            sa.Column("subject_id", sa.Integer(), nullable=True),
            sa.Column("student_group_size", sa.Integer(), nullable=True),
            sa.Column(
                "assignment_status", sa.String(length=20), nullable=True,
                comment="planned | confirmed | cancelled | on_hold",
            ),
            sa.Column("is_manual_override", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("notes", sa.Text(), nullable=True),
            _ts("created_at"),
            sa.ForeignKeyConstraint(["plan_id"], ["allocation_plans.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["teacher_id"], ["teachers.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["internship_type_id"], ["internship_types.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["subject_id"], ["subjects.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "plan_id", "teacher_id", "internship_type_id", "subject_id",
                name="uq_teacher_assignment_plan_teacher_internship_subject",
            ),
        )
        op.create_index("idx_teacher_assignment_plan", "teacher_assignments", ["plan_id"])
        op.create_index("idx_teacher_assignment_teacher", "teacher_assignments", ["teacher_id"])
        op.create_index("idx_teacher_assignment_status", "teacher_assignments", ["assignment_status"])

    # ── PlanChangeLog ─────────────────────────────────────────────────────
    if "plan_change_logs" not in existing:
        op.create_table(
            "plan_change_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("plan_id", sa.Integer(), nullable=False),
            sa.Column("changed_by", sa.String(length=150), nullable=False, server_default="system"),
            _ts("event_timestamp"),
            sa.Column(
                "change_type", sa.String(length=30), nullable=False,
                comment="CREATE | UPDATE | STATUS_CHANGE | …",
            ),
            sa.Column(
                "entity_type", sa.String(length=50), nullable=False,
                server_default="ALLOCATION_PLAN",
            ),
            sa.Column("entity_id", sa.Integer(), nullable=True),
            sa.Column("old_value", sa.Text(), nullable=True),
            sa.Column("new_value", sa.Text(), nullable=True),
            sa.Column("reason", sa.Text(), nullable=True),
            _ts("created_at"),
            sa.ForeignKeyConstraint(["plan_id"], ["allocation_plans.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_plan_change_plan", "plan_change_logs", ["plan_id"])
        op.create_index("idx_plan_change_entity", "plan_change_logs", ["entity_type", "entity_id"])
        op.create_index("idx_plan_change_type", "plan_change_logs", ["change_type"])
        op.create_index("idx_plan_change_ts", "plan_change_logs", ["event_timestamp"])

    # ── AuditLog ──────────────────────────────────────────────────────────
    if "audit_logs" not in existing:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("entity_type", sa.String(length=50), nullable=False),
            sa.Column("entity_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("actor", sa.String(length=150), nullable=False, server_default="system"),
            sa.Column("diff_json", sa.Text(), nullable=True),
            _ts("timestamp"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
        op.create_index("idx_audit_actor", "audit_logs", ["actor"])
        op.create_index("idx_audit_action", "audit_logs", ["action"])
        op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])


def downgrade():
    op.drop_table("audit_logs")
    op.drop_table("plan_change_logs")
    op.drop_table("teacher_assignments")
    op.drop_index("uq_allocation_plan_current_per_year", table_name="allocation_plans")
    op.drop_table("allocation_plans")
    op.drop_table("subjects")
    op.drop_table("internship_types")
    op.drop_table("teachers")
    op.drop_table("schools")
    op.drop_table("academic_years")
