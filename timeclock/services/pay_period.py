"""Pay period boundaries.

Periods are whole calendar days, inclusive on both ends. Consecutive periods
for one configuration are contiguous and never overlap, so walking backwards
from today with :func:`get_previous_period` enumerates history.
"""

from __future__ import annotations

from calendar import monthrange
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo

from timeclock.models import PayPeriodConfig, PayPeriodType

# A known Sunday; biweekly periods alternate from the week containing it.
DEFAULT_BIWEEKLY_ANCHOR = date(2025, 1, 5)


@dataclass(frozen=True)
class PayPeriod:
    start_date: date
    end_date: date
    label: str
    type: str

    def starts_at(self, tz: tzinfo) -> datetime:
        return datetime.combine(self.start_date, time.min, tzinfo=tz)

    def ends_at(self, tz: tzinfo) -> datetime:
        return datetime.combine(self.end_date, time.max, tzinfo=tz)

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    @property
    def days(self) -> int:
        return (self.end_date - self.start_date).days + 1


def _sunday_based_weekday(day: date) -> int:
    return (day.weekday() + 1) % 7


def _week_start(day: date, start_day_of_week: int) -> date:
    diff = (_sunday_based_weekday(day) - start_day_of_week) % 7
    return day - timedelta(days=diff)


def format_period_label(start: date, end: date) -> str:
    start_month = start.strftime("%b")
    end_month = end.strftime("%b")
    if start_month == end_month and start.year == end.year:
        return f"{start_month} {start.day} - {end.day}, {end.year}"
    return f"{start_month} {start.day} - {end_month} {end.day}, {end.year}"


def _build(start: date, end: date, period_type: PayPeriodType) -> PayPeriod:
    return PayPeriod(
        start_date=start,
        end_date=end,
        label=format_period_label(start, end),
        type=period_type.value,
    )


def _weekly_period(day: date, start_day_of_week: int) -> PayPeriod:
    start = _week_start(day, start_day_of_week)
    return _build(start, start + timedelta(days=6), PayPeriodType.WEEKLY)


def _biweekly_period(day: date, start_day_of_week: int, anchor: date | None) -> PayPeriod:
    current_week_start = _week_start(day, start_day_of_week)
    reference_week_start = _week_start(anchor or DEFAULT_BIWEEKLY_ANCHOR, start_day_of_week)
    weeks_since_reference = (current_week_start - reference_week_start).days // 7
    start = current_week_start - timedelta(days=(weeks_since_reference % 2) * 7)
    return _build(start, start + timedelta(days=13), PayPeriodType.BIWEEKLY)


def _semimonthly_period(day: date) -> PayPeriod:
    if day.day <= 15:
        return _build(day.replace(day=1), day.replace(day=15), PayPeriodType.SEMIMONTHLY)
    last_day = monthrange(day.year, day.month)[1]
    return _build(day.replace(day=16), day.replace(day=last_day), PayPeriodType.SEMIMONTHLY)


def _monthly_period(day: date) -> PayPeriod:
    last_day = monthrange(day.year, day.month)[1]
    return _build(day.replace(day=1), day.replace(day=last_day), PayPeriodType.MONTHLY)


def get_pay_period_for_date(day: date, config: PayPeriodConfig | None) -> PayPeriod:
    if config is None:
        return _weekly_period(day, 0)

    start_day_of_week = config.start_day_of_week if config.start_day_of_week is not None else 0
    try:
        period_type = PayPeriodType(config.type)
    except ValueError:
        return _weekly_period(day, 0)

    if period_type == PayPeriodType.WEEKLY:
        return _weekly_period(day, start_day_of_week)
    if period_type == PayPeriodType.BIWEEKLY:
        return _biweekly_period(day, start_day_of_week, config.start_date)
    if period_type == PayPeriodType.SEMIMONTHLY:
        return _semimonthly_period(day)
    return _monthly_period(day)


def get_previous_period(period: PayPeriod, config: PayPeriodConfig | None) -> PayPeriod:
    return get_pay_period_for_date(period.start_date - timedelta(days=1), config)


def get_next_period(period: PayPeriod, config: PayPeriodConfig | None) -> PayPeriod:
    return get_pay_period_for_date(period.end_date + timedelta(days=1), config)


def get_recent_periods(config: PayPeriodConfig | None, count: int = 5, *, today: date) -> list[PayPeriod]:
    """Most recent first; index 0 is the period containing ``today``."""
    if count <= 0:
        return []
    current = get_pay_period_for_date(today, config)
    periods = [current]
    for _ in range(1, count):
        current = get_previous_period(current, config)
        periods.append(current)
    return periods


def get_pay_period_by_index(config: PayPeriodConfig | None, index: int, *, today: date) -> PayPeriod:
    if index < 0:
        raise ValueError("Pay period index must be zero or positive.")
    period = get_pay_period_for_date(today, config)
    for _ in range(index):
        period = get_previous_period(period, config)
    return period
