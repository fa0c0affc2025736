from __future__ import annotations

import enum
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from timeclock.db import Base


class EntryStatus(str, enum.Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class RoundingMode(str, enum.Enum):
    NONE = "none"
    FIVE_MIN = "5min"
    SIX_MIN = "6min"
    SEVEN_MIN = "7min"
    FIFTEEN_MIN = "15min"


class MinDurationAction(str, enum.Enum):
    FLAG = "flag"
    REJECT = "reject"


class PayPeriodType(str, enum.Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    SEMIMONTHLY = "semimonthly"
    MONTHLY = "monthly"


class AuditActorType(str, enum.Enum):
    USER = "USER"
    SYSTEM = "SYSTEM"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Department(Base):
    __tablename__ = "departments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))

    users: Mapped[list[User]] = relationship(back_populates="department")
    manager_assignments: Mapped[list[ManagerAssignment]] = relationship(back_populates="department")


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    is_super_admin: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    permissions: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
    )

    users: Mapped[list[User]] = relationship(back_populates="role")


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    department_id: Mapped[int | None] = mapped_column(
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    role_id: Mapped[int | None] = mapped_column(
        ForeignKey("roles.id", ondelete="SET NULL"),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))

    department: Mapped[Department | None] = relationship(back_populates="users")
    role: Mapped[Role | None] = relationship(back_populates="users")
    timeclock_entries: Mapped[list[TimeclockEntry]] = relationship(
        back_populates="user",
        foreign_keys="TimeclockEntry.user_id",
    )
    manager_assignments: Mapped[list[ManagerAssignment]] = relationship(back_populates="user")


class ManagerAssignment(Base):
    __tablename__ = "manager_assignments"
    __table_args__ = (
        UniqueConstraint("user_id", "department_id", name="uq_manager_assignments_user_department"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    department_id: Mapped[int] = mapped_column(
        ForeignKey("departments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    user: Mapped[User] = relationship(back_populates="manager_assignments")
    department: Mapped[Department] = relationship(back_populates="manager_assignments")


class TimeclockEntry(Base):
    __tablename__ = "timeclock_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    clock_in: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    clock_out: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    raw_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    break_deducted: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    flag_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)
    auto_approved: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    status: Mapped[EntryStatus] = mapped_column(
        Enum(EntryStatus, name="timeclock_entry_status", values_callable=lambda items: [item.value for item in items]),
        nullable=False,
        default=EntryStatus.PENDING,
        server_default=text("'pending'"),
        index=True,
    )
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    rejected_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_edited_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    last_edited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("1"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=_utcnow,
    )

    user: Mapped[User] = relationship(back_populates="timeclock_entries", foreign_keys=[user_id])

    __mapper_args__ = {"version_id_col": version}


class TimeclockRulesConfig(Base):
    __tablename__ = "timeclock_rules_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    rounding_mode: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=RoundingMode.NONE.value,
        server_default=text("'none'"),
    )
    break_deduction_enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    break_deduction_after_hours: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=6.0,
        server_default=text("6"),
    )
    break_deduction_minutes: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=30,
        server_default=text("30"),
    )
    min_duration_enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    min_duration_seconds: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=60,
        server_default=text("60"),
    )
    min_duration_action: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=MinDurationAction.FLAG.value,
        server_default=text("'flag'"),
    )
    auto_approve_enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    auto_approve_min_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default=text("0"))
    auto_approve_max_hours: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=12.0,
        server_default=text("12"),
    )
    auto_approve_block_on_overtime: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )
    missed_punch_enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )
    missed_punch_threshold_hours: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=12.0,
        server_default=text("12"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=_utcnow,
    )


class OvertimeConfig(Base):
    __tablename__ = "overtime_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    daily_threshold: Mapped[int | None] = mapped_column(Integer, nullable=True, default=480)
    weekly_threshold: Mapped[int | None] = mapped_column(Integer, nullable=True, default=2400)
    alert_before_daily: Mapped[int | None] = mapped_column(Integer, nullable=True, default=30)
    alert_before_weekly: Mapped[int | None] = mapped_column(Integer, nullable=True, default=120)
    notify_employee: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=_utcnow,
    )


class PayPeriodConfig(Base):
    __tablename__ = "pay_period_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PayPeriodType.BIWEEKLY.value,
        server_default=text("'biweekly'"),
    )
    start_day_of_week: Mapped[int | None] = mapped_column(Integer, nullable=True, default=0)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=_utcnow,
    )


class PayPeriodLock(Base):
    __tablename__ = "pay_period_locks"
    __table_args__ = (
        UniqueConstraint("period_start", "period_end", name="uq_pay_period_locks_period"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    locked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    locked_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ts_utc: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        index=True,
    )
    actor_type: Mapped[AuditActorType] = mapped_column(
        Enum(AuditActorType, name="audit_actor_type"),
        nullable=False,
    )
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip: Mapped[str | None] = mapped_column(String(128), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    details: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
    )
