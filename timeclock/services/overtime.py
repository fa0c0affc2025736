from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Iterable, Protocol

from timeclock.services.config_store import OvertimePolicy


class OvertimeEntry(Protocol):
    user_id: int
    clock_in: datetime
    clock_out: datetime | None
    duration: int | None


@dataclass(frozen=True)
class EmployeeOvertime:
    user_id: int
    regular_minutes: int
    daily_overtime_minutes: int
    weekly_overtime_minutes: int
    total_minutes: int
    entries_processed: int

    @property
    def overtime_minutes(self) -> int:
        return self.daily_overtime_minutes + self.weekly_overtime_minutes


@dataclass
class OvertimeCalculation:
    employees: dict[int, EmployeeOvertime] = field(default_factory=dict)
    total_regular_minutes: int = 0
    total_daily_overtime_minutes: int = 0
    total_weekly_overtime_minutes: int = 0

    @property
    def total_overtime_minutes(self) -> int:
        return self.total_daily_overtime_minutes + self.total_weekly_overtime_minutes


@dataclass(frozen=True)
class ThresholdStatus:
    current_minutes: int
    threshold_minutes: int | None
    approaching: bool
    exceeded: bool


@dataclass(frozen=True)
class AlertStatus:
    daily: ThresholdStatus
    weekly: ThresholdStatus


def local_date(moment: datetime, tz: tzinfo) -> date:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).date()


def entry_minutes(entry: OvertimeEntry) -> int:
    return max(0, int(entry.duration or 0)) // 60


def is_completed(entry: OvertimeEntry) -> bool:
    return entry.clock_out is not None and entry.duration is not None


def _week_start(day: date) -> date:
    # Weeks start on Sunday.
    return day - timedelta(days=(day.weekday() + 1) % 7)


def split_daily(day_total: int, daily_threshold: int | None) -> tuple[int, int]:
    """Return ``(regular, overtime)`` minutes for one day."""
    if daily_threshold is None:
        return day_total, 0
    threshold = max(0, daily_threshold)
    return min(day_total, threshold), max(0, day_total - threshold)


def split_weekly(week_regular: int, weekly_threshold: int | None) -> tuple[int, int]:
    """Split one Sunday-start week's daily-regular minutes into ``(regular, overtime)``."""
    if weekly_threshold is None:
        return week_regular, 0
    threshold = max(0, weekly_threshold)
    return min(week_regular, threshold), max(0, week_regular - threshold)


def calculate_employee_overtime(
    user_id: int,
    entries: Iterable[OvertimeEntry],
    policy: OvertimePolicy | None,
    tz: tzinfo,
) -> EmployeeOvertime:
    completed = [entry for entry in entries if is_completed(entry)]

    minutes_by_day: dict[date, int] = defaultdict(int)
    for entry in completed:
        minutes_by_day[local_date(entry.clock_in, tz)] += entry_minutes(entry)

    daily_threshold = policy.daily_threshold if policy is not None else None
    weekly_threshold = policy.weekly_threshold if policy is not None else None

    regular_by_week: dict[date, int] = defaultdict(int)
    daily_overtime = 0
    for day, day_total in minutes_by_day.items():
        regular, overtime = split_daily(day_total, daily_threshold)
        regular_by_week[_week_start(day)] += regular
        daily_overtime += overtime

    regular_minutes = 0
    weekly_overtime = 0
    for week_pool in regular_by_week.values():
        regular, overtime = split_weekly(week_pool, weekly_threshold)
        regular_minutes += regular
        weekly_overtime += overtime

    return EmployeeOvertime(
        user_id=user_id,
        regular_minutes=regular_minutes,
        daily_overtime_minutes=daily_overtime,
        weekly_overtime_minutes=weekly_overtime,
        total_minutes=regular_minutes + daily_overtime + weekly_overtime,
        entries_processed=len(completed),
    )


def calculate_overtime(
    entries: Iterable[OvertimeEntry],
    policy: OvertimePolicy | None,
    tz: tzinfo,
) -> OvertimeCalculation:
    by_user: dict[int, list[OvertimeEntry]] = defaultdict(list)
    for entry in entries:
        if not is_completed(entry):
            continue
        by_user[entry.user_id].append(entry)

    result = OvertimeCalculation()
    for user_id, user_entries in by_user.items():
        employee = calculate_employee_overtime(user_id, user_entries, policy, tz)
        result.employees[user_id] = employee
        result.total_regular_minutes += employee.regular_minutes
        result.total_daily_overtime_minutes += employee.daily_overtime_minutes
        result.total_weekly_overtime_minutes += employee.weekly_overtime_minutes
    return result


def calculate_daily_minutes(entries: Iterable[OvertimeEntry], target: date, tz: tzinfo) -> int:
    return sum(
        entry_minutes(entry)
        for entry in entries
        if entry.duration is not None and local_date(entry.clock_in, tz) == target
    )


def calculate_weekly_minutes(entries: Iterable[OvertimeEntry], reference: date, tz: tzinfo) -> int:
    week_start = _week_start(reference)
    week_end = week_start + timedelta(days=7)
    return sum(
        entry_minutes(entry)
        for entry in entries
        if entry.duration is not None and week_start <= local_date(entry.clock_in, tz) < week_end
    )


def _threshold_status(current: int, threshold: int | None, alert_before: int | None) -> ThresholdStatus:
    if threshold is None:
        return ThresholdStatus(current_minutes=current, threshold_minutes=None, approaching=False, exceeded=False)
    exceeded = current >= threshold
    approaching = False
    if not exceeded and alert_before is not None:
        approaching = current >= threshold - alert_before
    return ThresholdStatus(
        current_minutes=current,
        threshold_minutes=threshold,
        approaching=approaching,
        exceeded=exceeded,
    )


def check_alert_status(
    entries: Iterable[OvertimeEntry],
    policy: OvertimePolicy | None,
    reference: date,
    tz: tzinfo,
    *,
    active_minutes: int = 0,
) -> AlertStatus | None:
    """Daily and weekly threshold flags for one employee.

    ``active_minutes`` is time on a still-open entry, counted toward both
    totals. Returns ``None`` when no threshold is configured.
    """
    if policy is None or not policy.has_thresholds:
        return None

    items = list(entries)
    active = max(0, active_minutes)
    daily_total = calculate_daily_minutes(items, reference, tz) + active
    weekly_total = calculate_weekly_minutes(items, reference, tz) + active

    return AlertStatus(
        daily=_threshold_status(daily_total, policy.daily_threshold, policy.alert_before_daily),
        weekly=_threshold_status(weekly_total, policy.weekly_threshold, policy.alert_before_weekly),
    )
