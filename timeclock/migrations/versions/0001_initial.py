"""Initial timeclock schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


entry_status = sa.Enum("pending", "submitted", "approved", "rejected", name="timeclock_entry_status")
audit_actor_type = sa.Enum("USER", "SYSTEM", name="audit_actor_type")


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def upgrade() -> None:
    op.create_table(
        "departments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("is_super_admin", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "permissions",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("department_id", sa.Integer(), nullable=True),
        sa.Column("role_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_users_department_id", "users", ["department_id"], unique=False)

    op.create_table(
        "manager_assignments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("department_id", sa.Integer(), nullable=False),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "department_id", name="uq_manager_assignments_user_department"),
    )
    op.create_index("ix_manager_assignments_user_id", "manager_assignments", ["user_id"], unique=False)
    op.create_index("ix_manager_assignments_department_id", "manager_assignments", ["department_id"], unique=False)

    op.create_table(
        "timeclock_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("clock_in", sa.DateTime(timezone=True), nullable=False),
        sa.Column("clock_out", sa.DateTime(timezone=True), nullable=True),
        sa.Column("raw_duration", sa.Integer(), nullable=True),
        sa.Column("break_deducted", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("duration", sa.Integer(), nullable=True),
        sa.Column("flag_reason", sa.String(length=50), nullable=True),
        sa.Column("auto_approved", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("status", entry_status, nullable=False, server_default=sa.text("'pending'")),
        sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("rejected_note", sa.Text(), nullable=True),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_edited_by", sa.Integer(), nullable=True),
        sa.Column("last_edited_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["approved_by"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["last_edited_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("duration IS NULL OR duration >= 0", name="ck_timeclock_entries_duration_non_negative"),
        sa.CheckConstraint(
            "(duration IS NULL) = (clock_out IS NULL)",
            name="ck_timeclock_entries_duration_matches_clock_out",
        ),
        sa.CheckConstraint(
            "status <> 'rejected' OR is_locked = false",
            name="ck_timeclock_entries_rejected_unlocked",
        ),
    )
    op.create_index("ix_timeclock_entries_user_id", "timeclock_entries", ["user_id"], unique=False)
    op.create_index("ix_timeclock_entries_clock_in", "timeclock_entries", ["clock_in"], unique=False)
    op.create_index("ix_timeclock_entries_status", "timeclock_entries", ["status"], unique=False)
    op.create_index(
        "ix_timeclock_entries_user_open",
        "timeclock_entries",
        ["user_id"],
        unique=False,
        postgresql_where=sa.text("clock_out IS NULL"),
    )

    op.create_table(
        "timeclock_rules_config",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("rounding_mode", sa.String(length=20), nullable=False, server_default=sa.text("'none'")),
        sa.Column("break_deduction_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("break_deduction_after_hours", sa.Float(), nullable=False, server_default=sa.text("6")),
        sa.Column("break_deduction_minutes", sa.Integer(), nullable=False, server_default=sa.text("30")),
        sa.Column("min_duration_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("min_duration_seconds", sa.Integer(), nullable=False, server_default=sa.text("60")),
        sa.Column("min_duration_action", sa.String(length=20), nullable=False, server_default=sa.text("'flag'")),
        sa.Column("auto_approve_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("auto_approve_min_hours", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("auto_approve_max_hours", sa.Float(), nullable=False, server_default=sa.text("12")),
        sa.Column("auto_approve_block_on_overtime", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("missed_punch_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("missed_punch_threshold_hours", sa.Float(), nullable=False, server_default=sa.text("12")),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "overtime_config",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("daily_threshold", sa.Integer(), nullable=True),
        sa.Column("weekly_threshold", sa.Integer(), nullable=True),
        sa.Column("alert_before_daily", sa.Integer(), nullable=True),
        sa.Column("alert_before_weekly", sa.Integer(), nullable=True),
        sa.Column("notify_employee", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "pay_period_config",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False, server_default=sa.text("'biweekly'")),
        sa.Column("start_day_of_week", sa.Integer(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "pay_period_locks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _timestamp("locked_at"),
        sa.Column("locked_by", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["locked_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("period_start", "period_end", name="uq_pay_period_locks_period"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        _timestamp("ts_utc"),
        sa.Column("actor_type", audit_actor_type, nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=255), nullable=True),
        sa.Column("entity_id", sa.String(length=255), nullable=True),
        sa.Column("ip", sa.String(length=128), nullable=True),
        sa.Column("user_agent", sa.String(length=1024), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "details",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_ts_utc", "audit_logs", ["ts_utc"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_logs_ts_utc", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("pay_period_locks")
    op.drop_table("pay_period_config")
    op.drop_table("overtime_config")
    op.drop_table("timeclock_rules_config")
    op.drop_index("ix_timeclock_entries_user_open", table_name="timeclock_entries")
    op.drop_index("ix_timeclock_entries_status", table_name="timeclock_entries")
    op.drop_index("ix_timeclock_entries_clock_in", table_name="timeclock_entries")
    op.drop_index("ix_timeclock_entries_user_id", table_name="timeclock_entries")
    op.drop_table("timeclock_entries")
    op.drop_index("ix_manager_assignments_department_id", table_name="manager_assignments")
    op.drop_index("ix_manager_assignments_user_id", table_name="manager_assignments")
    op.drop_table("manager_assignments")
    op.drop_index("ix_users_department_id", table_name="users")
    op.drop_table("users")
    op.drop_table("roles")
    op.drop_table("departments")
    entry_status.drop(op.get_bind(), checkfirst=True)
    audit_actor_type.drop(op.get_bind(), checkfirst=True)
