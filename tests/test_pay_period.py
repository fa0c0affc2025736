from __future__ import annotations

import unittest
from datetime import date, time, timedelta
from zoneinfo import ZoneInfo

from timeclock.models import PayPeriodConfig
from timeclock.services.pay_period import (
    format_period_label,
    get_next_period,
    get_pay_period_by_index,
    get_pay_period_for_date,
    get_previous_period,
    get_recent_periods,
)


def _config(period_type: str, *, start_day_of_week: int | None = 0, start_date: date | None = None) -> PayPeriodConfig:
    return PayPeriodConfig(id=1, type=period_type, start_day_of_week=start_day_of_week, start_date=start_date)


class PeriodBoundaryTests(unittest.TestCase):
    def test_weekly_period_respects_start_day(self) -> None:
        period = get_pay_period_for_date(date(2026, 3, 4), _config("weekly", start_day_of_week=1))
        self.assertEqual(period.start_date, date(2026, 3, 2))
        self.assertEqual(period.end_date, date(2026, 3, 8))
        self.assertEqual(period.type, "weekly")
        self.assertEqual(period.days, 7)

    def test_missing_config_defaults_to_sunday_weeks(self) -> None:
        period = get_pay_period_for_date(date(2026, 3, 4), None)
        self.assertEqual(period.start_date, date(2026, 3, 1))
        self.assertEqual(period.end_date, date(2026, 3, 7))

    def test_unknown_type_falls_back_to_weekly(self) -> None:
        period = get_pay_period_for_date(date(2026, 3, 4), _config("fortnightly-ish"))
        self.assertEqual(period.type, "weekly")
        self.assertEqual(period.start_date, date(2026, 3, 1))

    def test_biweekly_alternates_from_default_anchor(self) -> None:
        config = _config("biweekly")
        self.assertEqual(get_pay_period_for_date(date(2025, 1, 5), config).start_date, date(2025, 1, 5))
        self.assertEqual(get_pay_period_for_date(date(2025, 1, 12), config).start_date, date(2025, 1, 5))
        second = get_pay_period_for_date(date(2025, 1, 19), config)
        self.assertEqual(second.start_date, date(2025, 1, 19))
        self.assertEqual(second.end_date, date(2025, 2, 1))

    def test_biweekly_before_anchor_stays_aligned(self) -> None:
        period = get_pay_period_for_date(date(2025, 1, 4), _config("biweekly"))
        self.assertEqual(period.start_date, date(2024, 12, 22))
        self.assertEqual(period.end_date, date(2025, 1, 4))

    def test_biweekly_custom_anchor(self) -> None:
        config = _config("biweekly", start_date=date(2025, 1, 12))
        period = get_pay_period_for_date(date(2025, 1, 14), config)
        self.assertEqual(period.start_date, date(2025, 1, 12))
        self.assertEqual(period.end_date, date(2025, 1, 25))

    def test_semimonthly_halves(self) -> None:
        config = _config("semimonthly")
        first = get_pay_period_for_date(date(2024, 2, 15), config)
        second = get_pay_period_for_date(date(2024, 2, 16), config)
        self.assertEqual((first.start_date, first.end_date), (date(2024, 2, 1), date(2024, 2, 15)))
        self.assertEqual((second.start_date, second.end_date), (date(2024, 2, 16), date(2024, 2, 29)))

    def test_monthly_uses_calendar_month(self) -> None:
        period = get_pay_period_for_date(date(2026, 2, 10), _config("monthly"))
        self.assertEqual((period.start_date, period.end_date), (date(2026, 2, 1), date(2026, 2, 28)))
        self.assertEqual(period.label, "Feb 1 - 28, 2026")

    def test_datetime_bounds_cover_whole_days(self) -> None:
        tz = ZoneInfo("America/Chicago")
        period = get_pay_period_for_date(date(2026, 3, 4), None)
        self.assertEqual(period.starts_at(tz).time(), time.min)
        self.assertEqual(period.ends_at(tz).time(), time.max)
        self.assertEqual(period.ends_at(tz).date(), date(2026, 3, 7))
        self.assertTrue(period.contains(date(2026, 3, 7)))
        self.assertFalse(period.contains(date(2026, 3, 8)))


class PeriodLabelTests(unittest.TestCase):
    def test_same_month(self) -> None:
        self.assertEqual(format_period_label(date(2025, 1, 1), date(2025, 1, 15)), "Jan 1 - 15, 2025")

    def test_month_boundary(self) -> None:
        self.assertEqual(format_period_label(date(2025, 1, 26), date(2025, 2, 8)), "Jan 26 - Feb 8, 2025")

    def test_year_boundary(self) -> None:
        self.assertEqual(format_period_label(date(2024, 12, 22), date(2025, 1, 4)), "Dec 22 - Jan 4, 2025")


class PeriodNavigationTests(unittest.TestCase):
    def test_recent_periods_are_contiguous(self) -> None:
        today = date(2026, 3, 4)
        for period_type in ("weekly", "biweekly", "semimonthly", "monthly"):
            periods = get_recent_periods(_config(period_type), 6, today=today)
            self.assertEqual(len(periods), 6)
            self.assertTrue(periods[0].contains(today))
            for newer, older in zip(periods, periods[1:]):
                self.assertEqual(older.end_date + timedelta(days=1), newer.start_date, msg=period_type)

    def test_previous_and_next_are_inverse(self) -> None:
        config = _config("semimonthly")
        current = get_pay_period_for_date(date(2026, 3, 20), config)
        self.assertEqual(get_next_period(get_previous_period(current, config), config), current)

    def test_index_walks_backwards(self) -> None:
        config = _config("biweekly")
        today = date(2026, 3, 4)
        recent = get_recent_periods(config, 4, today=today)
        self.assertEqual(get_pay_period_by_index(config, 0, today=today), recent[0])
        self.assertEqual(get_pay_period_by_index(config, 3, today=today), recent[3])

    def test_negative_index_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            get_pay_period_by_index(None, -1, today=date(2026, 3, 4))

    def test_non_positive_count_returns_nothing(self) -> None:
        self.assertEqual(get_recent_periods(None, 0, today=date(2026, 3, 4)), [])


if __name__ == "__main__":
    unittest.main()
