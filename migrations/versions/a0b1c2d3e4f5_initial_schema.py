"""Initial training center schema.

Revision ID: a0b1c2d3e4f5
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a0b1c2d3e4f5"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(*, updated: bool = True) -> list[sa.Column]:
    cols = [sa.Column("created_at", sa.DateTime(), nullable=False)]
    if updated:
        cols.append(sa.Column("updated_at", sa.DateTime(), nullable=False))
    return cols


def _user_fk(name: str, *, nullable: bool = True, ondelete: str = "SET NULL") -> tuple[sa.Column, sa.ForeignKeyConstraint]:
    return (
        sa.Column(name, sa.Integer(), nullable=nullable),
        sa.ForeignKeyConstraint([name], ["users.id"], ondelete=ondelete),
    )


def upgrade() -> None:
    # ---------- Platform ----------
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("email"),
    )
    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("phone", sa.String(64), nullable=True),
        sa.Column("avatar_url", sa.String(1024), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id"),
    )
    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(64), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("key"),
    )
    op.create_table(
        "permissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(128), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("key"),
    )
    op.create_table(
        "user_roles",
        sa.Column("user_id", sa.Integer(), primary_key=True),
        sa.Column("role_id", sa.Integer(), primary_key=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
    )
    op.create_table(
        "role_permissions",
        sa.Column("role_id", sa.Integer(), primary_key=True),
        sa.Column("permission_id", sa.Integer(), primary_key=True),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["permission_id"], ["permissions.id"], ondelete="CASCADE"),
    )
    actor_col, actor_fk = _user_fk("actor_user_id")
    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("client_ip", sa.String(64), nullable=True),
        actor_col,
        sa.Column("actor_user_email", sa.String(320), nullable=True),
        sa.Column("action", sa.String(128), nullable=False),
        sa.Column("entity_type", sa.String(128), nullable=True),
        sa.Column("entity_id", sa.String(128), nullable=True),
        sa.Column("reason", sa.String(512), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        actor_fk,
    )
    op.create_index("idx_audit_entity", "audit_events", ["entity_type", "entity_id"])
    op.create_index("idx_audit_created", "audit_events", ["created_at"])

    # ---------- Academics ----------
    op.create_table(
        "programs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("eligible_levels", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("idx_programs_active", "programs", ["is_active"])

    trainer_col, trainer_fk = _user_fk("trainer_user_id")
    op.create_table(
        "classes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("level", sa.String(8), nullable=False),
        sa.Column("shift", sa.String(16), nullable=False),
        sa.Column("max_capacity", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("current_enrollment", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("program_id", sa.Integer(), nullable=True),
        trainer_col,
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["program_id"], ["programs.id"], ondelete="SET NULL"),
        trainer_fk,
    )
    op.create_index("idx_classes_level_shift", "classes", ["level", "shift"])
    op.create_index("idx_classes_program", "classes", ["program_id"])

    op.create_table(
        "fee_structures",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("program_id", sa.Integer(), nullable=True),
        sa.Column("level", sa.String(8), nullable=True),
        sa.Column("registration_fee", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("internship_fee", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["program_id"], ["programs.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_fee_structures_program_level", "fee_structures", ["program_id", "level"])

    # ---------- Students / attendance ----------
    op.create_table(
        "students",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("registration_number", sa.String(32), nullable=False),
        sa.Column("school_name", sa.String(255), nullable=True),
        sa.Column("level", sa.String(8), nullable=False),
        sa.Column("preferred_shift", sa.String(16), nullable=False),
        sa.Column("class_id", sa.Integer(), nullable=True),
        sa.Column("has_whatsapp", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("alternative_whatsapp", sa.String(64), nullable=True),
        sa.Column("registration_fee_paid", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("logbook_submitted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["class_id"], ["classes.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("user_id"),
        sa.UniqueConstraint("registration_number"),
    )
    op.create_index("idx_students_class", "students", ["class_id"])
    op.create_index("idx_students_level_shift", "students", ["level", "preferred_shift"])

    recorder_col, recorder_fk = _user_fk("recorded_by_user_id")
    op.create_table(
        "attendance",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column("class_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("is_present", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        recorder_col,
        *_timestamps(),
        sa.ForeignKeyConstraint(["student_id"], ["students.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["class_id"], ["classes.id"], ondelete="CASCADE"),
        recorder_fk,
        sa.UniqueConstraint("student_id", "class_id", "date", name="uq_attendance_student_class_date"),
    )
    op.create_index("idx_attendance_date", "attendance", ["date"])

    # ---------- Finance ----------
    recorder_col, recorder_fk = _user_fk("recorded_by_user_id")
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_type", sa.String(32), nullable=False, server_default="registration"),
        sa.Column("payment_method", sa.String(32), nullable=False, server_default="cash"),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("notes", sa.Text(), nullable=True),
        recorder_col,
        *_timestamps(),
        sa.ForeignKeyConstraint(["student_id"], ["students.id"], ondelete="CASCADE"),
        recorder_fk,
    )
    op.create_index("idx_payments_student", "payments", ["student_id"])
    op.create_index("idx_payments_status_created", "payments", ["status", "created_at"])

    recorder_col, recorder_fk = _user_fk("recorded_by_user_id")
    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("description", sa.String(512), nullable=False),
        sa.Column("category", sa.String(32), nullable=False, server_default="other"),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_method", sa.String(32), nullable=False, server_default="cash"),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("receipt_storage_key", sa.Text(), nullable=True),
        sa.Column("receipt_filename", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        recorder_col,
        sa.Column("created_at", sa.DateTime(), nullable=False),
        recorder_fk,
    )
    op.create_index("idx_expenses_date", "expenses", ["expense_date"])

    # ---------- Payroll ----------
    op.create_table(
        "salaries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("employee_user_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_period", sa.String(16), nullable=False, server_default="monthly"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["employee_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("employee_user_id"),
    )

    processed_col, processed_fk = _user_fk("processed_by_user_id")
    op.create_table(
        "payroll",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("employee_user_id", sa.Integer(), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("base_salary", sa.Numeric(12, 2), nullable=False),
        sa.Column("advances_deducted", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_payable", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        processed_col,
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.Column("payment_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["employee_user_id"], ["users.id"], ondelete="CASCADE"),
        processed_fk,
    )
    op.create_index("idx_payroll_period", "payroll", ["period_start", "period_end"])

    forwarded_col, forwarded_fk = _user_fk("forwarded_by_user_id")
    reviewed_col, reviewed_fk = _user_fk("reviewed_by_user_id")
    op.create_table(
        "salary_advances",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("employee_user_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("forwarded_to_admin", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        forwarded_col,
        sa.Column("forwarded_at", sa.DateTime(), nullable=True),
        sa.Column("forward_comment", sa.Text(), nullable=True),
        reviewed_col,
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("review_comment", sa.Text(), nullable=True),
        sa.Column("deducted_in_payroll_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["employee_user_id"], ["users.id"], ondelete="CASCADE"),
        forwarded_fk,
        reviewed_fk,
        sa.ForeignKeyConstraint(["deducted_in_payroll_id"], ["payroll.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_salary_advances_employee_status", "salary_advances", ["employee_user_id", "status"])

    reviewed_col, reviewed_fk = _user_fk("reviewed_by_user_id")
    op.create_table(
        "leave_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("trainer_user_id", sa.Integer(), nullable=False),
        sa.Column("leave_date", sa.Date(), nullable=False),
        sa.Column("return_date", sa.Date(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        reviewed_col,
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("review_comment", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["trainer_user_id"], ["users.id"], ondelete="CASCADE"),
        reviewed_fk,
    )

    # ---------- Certificates ----------
    creator_col, creator_fk = _user_fk("created_by_user_id")
    op.create_table(
        "certificate_templates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("logo_url", sa.String(1024), nullable=True),
        sa.Column("background_color", sa.String(7), nullable=False, server_default="#ffffff"),
        sa.Column("text_color", sa.String(7), nullable=False, server_default="#1f2937"),
        sa.Column("border_style", sa.String(16), nullable=False, server_default="classic"),
        sa.Column("font_family", sa.String(16), nullable=False, server_default="serif"),
        sa.Column("include_dates", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("include_registration_number", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("additional_text", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        creator_col,
        *_timestamps(),
        creator_fk,
    )

    issuer_col, issuer_fk = _user_fk("issued_by_user_id")
    op.create_table(
        "issued_certificates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("certificate_number", sa.String(64), nullable=True),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column("template_id", sa.Integer(), nullable=False),
        issuer_col,
        sa.Column("issued_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["student_id"], ["students.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["template_id"], ["certificate_templates.id"], ondelete="RESTRICT"),
        issuer_fk,
        sa.UniqueConstraint("certificate_number"),
        sa.UniqueConstraint("student_id", "template_id", name="uq_issued_certificates_student_template"),
    )

    # ---------- Notices ----------
    creator_col, creator_fk = _user_fk("created_by_user_id")
    op.create_table(
        "notices",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("notice_type", sa.String(32), nullable=False, server_default="general"),
        sa.Column("target_roles", sa.JSON(), nullable=False),
        sa.Column("is_holiday", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("holiday_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        creator_col,
        *_timestamps(),
        creator_fk,
    )
    op.create_index("idx_notices_active_created", "notices", ["is_active", "created_at"])

    # ---------- Careers ----------
    poster_col, poster_fk = _user_fk("posted_by_user_id")
    op.create_table(
        "job_postings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("department", sa.String(128), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("employment_type", sa.String(32), nullable=False, server_default="full-time"),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("requirements", sa.Text(), nullable=True),
        sa.Column("responsibilities", sa.Text(), nullable=True),
        sa.Column("skills", sa.JSON(), nullable=False),
        sa.Column("salary_range", sa.String(128), nullable=True),
        sa.Column("application_deadline", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        poster_col,
        *_timestamps(),
        poster_fk,
    )
    op.create_index("idx_job_postings_active_deadline", "job_postings", ["is_active", "application_deadline"])

    reviewed_col, reviewed_fk = _user_fk("reviewed_by_user_id")
    op.create_table(
        "job_applications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("job_id", sa.Integer(), nullable=False),
        sa.Column("first_name", sa.String(128), nullable=False),
        sa.Column("last_name", sa.String(128), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("phone", sa.String(64), nullable=True),
        sa.Column("highest_degree", sa.String(128), nullable=False),
        sa.Column("experience_years", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cover_letter", sa.Text(), nullable=True),
        sa.Column("cv_storage_key", sa.Text(), nullable=True),
        sa.Column("cv_filename", sa.String(255), nullable=True),
        sa.Column("application_key", sa.String(12), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        reviewed_col,
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["job_id"], ["job_postings.id"], ondelete="CASCADE"),
        reviewed_fk,
        sa.UniqueConstraint("application_key"),
    )
    op.create_index("idx_job_applications_job_status", "job_applications", ["job_id", "status"])
    op.create_index("idx_job_applications_email", "job_applications", ["email"])

    # ---------- Equipment ----------
    assigned_col, assigned_fk = _user_fk("assigned_to_user_id")
    creator_col, creator_fk = _user_fk("created_by_user_id")
    updater_col, updater_fk = _user_fk("updated_by_user_id")
    op.create_table(
        "equipment",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("category", sa.String(128), nullable=True),
        sa.Column("model", sa.String(128), nullable=True),
        sa.Column("serial_number", sa.String(128), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        assigned_col,
        sa.Column("purchase_date", sa.Date(), nullable=True),
        sa.Column("purchase_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("warranty_expiry", sa.Date(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        creator_col,
        updater_col,
        assigned_fk,
        creator_fk,
        updater_fk,
        sa.UniqueConstraint("code"),
    )
    op.create_index("idx_equipment_status", "equipment", ["status"])
    op.create_index("idx_equipment_location", "equipment", ["location"])
    op.create_index("idx_equipment_warranty", "equipment", ["warranty_expiry"])

    # ---------- Materials ----------
    creator_col, creator_fk = _user_fk("created_by_user_id")
    op.create_table(
        "materials_inventory",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("type", sa.String(32), nullable=False, server_default="consumable"),
        sa.Column("category", sa.String(128), nullable=True),
        sa.Column("unit", sa.String(32), nullable=False, server_default="pcs"),
        sa.Column("current_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("minimum_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unit_cost", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("supplier", sa.String(255), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("barcode", sa.String(128), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        creator_col,
        creator_fk,
        sa.UniqueConstraint("code"),
    )
    op.create_index("idx_materials_type_category", "materials_inventory", ["type", "category"])
    op.create_index("idx_materials_active", "materials_inventory", ["is_active"])

    recipient_col, recipient_fk = _user_fk("recipient_user_id")
    recorder_col, recorder_fk = _user_fk("recorded_by_user_id")
    op.create_table(
        "material_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("material_id", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(16), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_cost", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_cost", sa.Numeric(12, 2), nullable=False, server_default="0"),
        recipient_col,
        sa.Column("recipient_name", sa.String(255), nullable=True),
        sa.Column("purpose", sa.String(512), nullable=True),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("is_returned", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("returned_at", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        recorder_col,
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["material_id"], ["materials_inventory.id"], ondelete="CASCADE"),
        recipient_fk,
        recorder_fk,
    )
    op.create_index("idx_material_transactions_material", "material_transactions", ["material_id"])
    op.create_index(
        "idx_material_transactions_type_returned", "material_transactions", ["transaction_type", "is_returned"]
    )

    # ---------- IT ----------
    creator_col, creator_fk = _user_fk("created_by_user_id")
    op.create_table(
        "wifi_networks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("password", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("assigned_roles", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        creator_col,
        *_timestamps(),
        creator_fk,
    )


def downgrade() -> None:
    for table in (
        "wifi_networks",
        "material_transactions",
        "materials_inventory",
        "equipment",
        "job_applications",
        "job_postings",
        "notices",
        "issued_certificates",
        "certificate_templates",
        "leave_requests",
        "salary_advances",
        "payroll",
        "salaries",
        "expenses",
        "payments",
        "attendance",
        "students",
        "fee_structures",
        "classes",
        "programs",
        "audit_events",
        "role_permissions",
        "user_roles",
        "permissions",
        "roles",
        "profiles",
        "users",
    ):
        op.drop_table(table)
