"""Manager-facing rollups over a pay period of entries."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from timeclock.errors import EntryAuthorizationError
from timeclock.models import Department, EntryStatus, TimeclockEntry, User
from timeclock.security import Actor
from timeclock.services.config_store import OvertimePolicy, get_overtime_policy, load_pay_period_config
from timeclock.services.overtime import EmployeeOvertime, calculate_overtime, entry_minutes
from timeclock.services.pay_period import PayPeriod, get_pay_period_by_index
from timeclock.services.scope import (
    ManagerScope,
    ensure_department_filter_allowed,
    ensure_scope_not_empty,
    resolve_manager_scope,
)
from timeclock.settings import get_timeclock_timezone

BULK_APPROVABLE_STATUSES = frozenset({EntryStatus.PENDING, EntryStatus.SUBMITTED})


@dataclass(frozen=True)
class EntryOvertimeFlags:
    exceeds_daily_threshold: bool
    has_employee_overtime: bool
    daily_overtime_minutes: int
    weekly_overtime_minutes: int


@dataclass
class EmployeeSummary:
    user_id: int
    user_name: str | None
    user_email: str | None
    department_id: int | None
    department_name: str | None
    total_minutes: int = 0
    regular_minutes: int = 0
    daily_overtime_minutes: int = 0
    weekly_overtime_minutes: int = 0
    entry_count: int = 0
    open_count: int = 0
    pending_count: int = 0
    submitted_count: int = 0
    approved_count: int = 0
    rejected_count: int = 0

    @property
    def overtime_minutes(self) -> int:
        return self.daily_overtime_minutes + self.weekly_overtime_minutes

    @property
    def has_overtime(self) -> bool:
        return self.overtime_minutes > 0


@dataclass
class DepartmentSummary:
    department_id: int | None
    department_name: str | None
    employee_count: int = 0
    entry_count: int = 0
    total_minutes: int = 0
    regular_minutes: int = 0
    overtime_minutes: int = 0


@dataclass
class TeamSummary:
    employees: list[EmployeeSummary]
    departments: list[DepartmentSummary]
    entries: list[TimeclockEntry]
    entry_flags: dict[int, EntryOvertimeFlags]
    bulk_approvable_ids: list[int]
    overtime_policy: OvertimePolicy | None
    period: PayPeriod | None = None
    accessible_departments: list[Department] = field(default_factory=list)

    @property
    def total_entries(self) -> int:
        return len(self.entries)


def is_bulk_approvable(entry: TimeclockEntry) -> bool:
    return entry.clock_out is not None and EntryStatus(entry.status) in BULK_APPROVABLE_STATUSES


def _new_employee_summary(entry: TimeclockEntry) -> EmployeeSummary:
    owner: User | None = entry.user
    department = owner.department if owner is not None else None
    return EmployeeSummary(
        user_id=entry.user_id,
        user_name=owner.name if owner is not None else None,
        user_email=owner.email if owner is not None else None,
        department_id=owner.department_id if owner is not None else None,
        department_name=department.name if department is not None else None,
    )


def _count_status(summary: EmployeeSummary, entry: TimeclockEntry) -> None:
    summary.entry_count += 1
    if entry.clock_out is None:
        summary.open_count += 1
        return
    status = EntryStatus(entry.status)
    if status == EntryStatus.PENDING:
        summary.pending_count += 1
    elif status == EntryStatus.SUBMITTED:
        summary.submitted_count += 1
    elif status == EntryStatus.APPROVED:
        summary.approved_count += 1
    else:
        summary.rejected_count += 1


def _apply_overtime(summary: EmployeeSummary, overtime: EmployeeOvertime | None) -> None:
    if overtime is None:
        return
    summary.total_minutes = overtime.total_minutes
    summary.regular_minutes = overtime.regular_minutes
    summary.daily_overtime_minutes = overtime.daily_overtime_minutes
    summary.weekly_overtime_minutes = overtime.weekly_overtime_minutes


def _entry_flags(
    entry: TimeclockEntry,
    policy: OvertimePolicy | None,
    overtime: EmployeeOvertime | None,
) -> EntryOvertimeFlags:
    exceeds_daily = False
    if policy is not None and policy.daily_threshold and entry.clock_out is not None and entry.duration:
        exceeds_daily = entry_minutes(entry) > policy.daily_threshold
    return EntryOvertimeFlags(
        exceeds_daily_threshold=exceeds_daily,
        has_employee_overtime=overtime is not None and overtime.overtime_minutes > 0,
        daily_overtime_minutes=overtime.daily_overtime_minutes if overtime is not None else 0,
        weekly_overtime_minutes=overtime.weekly_overtime_minutes if overtime is not None else 0,
    )


def _department_rollups(employees: Sequence[EmployeeSummary]) -> list[DepartmentSummary]:
    rollups: dict[int | None, DepartmentSummary] = {}
    for employee in employees:
        rollup = rollups.get(employee.department_id)
        if rollup is None:
            rollup = DepartmentSummary(
                department_id=employee.department_id,
                department_name=employee.department_name,
            )
            rollups[employee.department_id] = rollup
        rollup.employee_count += 1
        rollup.entry_count += employee.entry_count
        rollup.total_minutes += employee.total_minutes
        rollup.regular_minutes += employee.regular_minutes
        rollup.overtime_minutes += employee.overtime_minutes
    return sorted(rollups.values(), key=lambda item: (item.department_name is None, item.department_name or ""))


def build_team_summary(
    entries: Sequence[TimeclockEntry],
    overtime_policy: OvertimePolicy | None,
    tz: tzinfo,
) -> TeamSummary:
    calculation = calculate_overtime(entries, overtime_policy, tz)

    employees: dict[int, EmployeeSummary] = {}
    for entry in entries:
        summary = employees.get(entry.user_id)
        if summary is None:
            summary = _new_employee_summary(entry)
            employees[entry.user_id] = summary
        _count_status(summary, entry)

    for user_id, summary in employees.items():
        _apply_overtime(summary, calculation.employees.get(user_id))

    entry_flags = {
        entry.id: _entry_flags(entry, overtime_policy, calculation.employees.get(entry.user_id))
        for entry in entries
    }
    ordered = sorted(employees.values(), key=lambda item: ((item.user_name or "").lower(), item.user_id))

    return TeamSummary(
        employees=ordered,
        departments=_department_rollups(ordered),
        entries=list(entries),
        entry_flags=entry_flags,
        bulk_approvable_ids=[entry.id for entry in entries if is_bulk_approvable(entry)],
        overtime_policy=overtime_policy,
    )


def ensure_can_view_team(actor: Actor) -> None:
    capabilities = actor.capabilities
    if not capabilities.can_view_team_entries and not capabilities.can_view_all_entries:
        raise EntryAuthorizationError(
            code="FORBIDDEN",
            message="You do not have permission to view team entries.",
        )


def list_accessible_departments(db: Session, scope: ManagerScope) -> list[Department]:
    stmt = select(Department).where(Department.is_active.is_(True))
    if not scope.all_departments:
        stmt = stmt.where(Department.id.in_(sorted(scope.department_ids)))
    return list(db.scalars(stmt.order_by(Department.name.asc())).all())


def query_team_entries(
    db: Session,
    scope: ManagerScope,
    *,
    starts_at: datetime,
    ends_at: datetime,
    department_id: int | None = None,
    user_id: int | None = None,
    status: EntryStatus | None = None,
) -> list[TimeclockEntry]:
    stmt = (
        select(TimeclockEntry)
        .join(User, TimeclockEntry.user_id == User.id)
        .options(selectinload(TimeclockEntry.user).selectinload(User.department))
        .where(TimeclockEntry.clock_in >= starts_at, TimeclockEntry.clock_in <= ends_at)
    )
    if department_id is not None:
        stmt = stmt.where(User.department_id == department_id)
    elif not scope.all_departments:
        stmt = stmt.where(User.department_id.in_(sorted(scope.department_ids)))
    if user_id is not None:
        stmt = stmt.where(TimeclockEntry.user_id == user_id)
    if status is not None:
        stmt = stmt.where(TimeclockEntry.status == status)
    stmt = stmt.order_by(TimeclockEntry.clock_in.desc(), TimeclockEntry.id.desc())
    entries = db.scalars(stmt).all()
    if scope.all_departments:
        return list(entries)
    return [entry for entry in entries if entry.user is not None and scope.contains(entry.user.department_id)]


def get_team_summary(
    db: Session,
    actor: Actor,
    period_index: int = 0,
    *,
    department_id: int | None = None,
    user_id: int | None = None,
    status: EntryStatus | None = None,
    today: date | None = None,
) -> TeamSummary:
    ensure_can_view_team(actor)
    scope = resolve_manager_scope(db, actor)
    ensure_scope_not_empty(scope)
    ensure_department_filter_allowed(scope, department_id)

    tz = get_timeclock_timezone()
    reference_day = today or datetime.now(tz).date()
    period = get_pay_period_by_index(load_pay_period_config(db), period_index, today=reference_day)

    entries = query_team_entries(
        db,
        scope,
        starts_at=period.starts_at(tz),
        ends_at=period.ends_at(tz),
        department_id=department_id,
        user_id=user_id,
        status=status,
    )
    summary = build_team_summary(entries, get_overtime_policy(db), tz)
    summary.period = period
    summary.accessible_departments = list_accessible_departments(db, scope)
    return summary
