from __future__ import annotations

import unittest
from typing import Any

from timeclock.errors import EntryValidationError
from timeclock.models import OvertimeConfig, PayPeriodConfig, TimeclockRulesConfig
from timeclock.services.config_store import (
    ConfigCache,
    OvertimePolicy,
    RulesPolicy,
    get_overtime_policy,
    get_rules_policy,
    load_rules_config,
    update_rules_config,
    update_timeclock_config,
)


class _FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class _FakeConfigDB:
    def __init__(self, rows: dict[type, Any] | None = None) -> None:
        self.rows = dict(rows or {})
        self.added: list[Any] = []
        self.commits = 0
        self.selects = 0

    def scalar(self, statement):  # type: ignore[no-untyped-def]
        self.selects += 1
        sql = str(statement)
        for model, row in self.rows.items():
            if f"FROM {model.__tablename__}" in sql:
                return row
        return None

    def add(self, obj: Any) -> None:
        self.added.append(obj)
        self.rows[type(obj)] = obj

    def commit(self) -> None:
        self.commits += 1

    def refresh(self, obj: Any) -> None:
        if getattr(obj, "id", None) is None:
            obj.id = 1


class ConfigCacheTests(unittest.TestCase):
    def test_value_is_served_until_ttl_expires(self) -> None:
        clock = _FakeClock()
        cache: ConfigCache[int] = ConfigCache(30, clock=clock)
        calls: list[int] = []

        def loader() -> int:
            calls.append(1)
            return len(calls)

        self.assertFalse(cache.is_warm)
        self.assertEqual(cache.get(loader), 1)
        clock.now += 29
        self.assertEqual(cache.get(loader), 1)
        self.assertTrue(cache.is_warm)
        clock.now += 1
        self.assertEqual(cache.get(loader), 2)
        self.assertEqual(len(calls), 2)

    def test_invalidate_forces_reload(self) -> None:
        cache: ConfigCache[str] = ConfigCache(300, clock=_FakeClock())
        self.assertEqual(cache.get(lambda: "first"), "first")
        cache.invalidate()
        self.assertFalse(cache.is_warm)
        self.assertEqual(cache.get(lambda: "second"), "second")


class ConfigLoadTests(unittest.TestCase):
    def test_missing_row_is_created_with_defaults(self) -> None:
        db = _FakeConfigDB()

        row = load_rules_config(db)

        self.assertIsInstance(row, TimeclockRulesConfig)
        self.assertEqual(db.commits, 1)
        self.assertEqual(row.rounding_mode, "none")
        self.assertEqual(row.auto_approve_max_hours, 12.0)
        self.assertTrue(row.auto_approve_block_on_overtime)

    def test_policy_reads_through_cache(self) -> None:
        row = TimeclockRulesConfig(id=1, **{**RulesPolicy().__dict__, "rounding_mode": "15min"})
        db = _FakeConfigDB({TimeclockRulesConfig: row})
        cache: ConfigCache[RulesPolicy] = ConfigCache(30, clock=_FakeClock())

        first = get_rules_policy(db, cache=cache)
        second = get_rules_policy(db, cache=cache)

        self.assertEqual(first.rounding_mode, "15min")
        self.assertIs(first, second)
        self.assertEqual(db.selects, 1)

    def test_overtime_policy_keeps_null_thresholds(self) -> None:
        row = OvertimeConfig(
            id=1,
            daily_threshold=None,
            weekly_threshold=2400,
            alert_before_daily=None,
            alert_before_weekly=60,
            notify_employee=False,
        )
        db = _FakeConfigDB({OvertimeConfig: row})
        cache: ConfigCache[OvertimePolicy] = ConfigCache(30, clock=_FakeClock())

        policy = get_overtime_policy(db, cache=cache)

        self.assertIsNone(policy.daily_threshold)
        self.assertEqual(policy.weekly_threshold, 2400)
        self.assertTrue(policy.has_thresholds)
        self.assertFalse(policy.notify_employee)


class ConfigUpdateTests(unittest.TestCase):
    def test_update_returns_before_values_and_invalidates(self) -> None:
        row = TimeclockRulesConfig(id=1, **RulesPolicy().__dict__)
        db = _FakeConfigDB({TimeclockRulesConfig: row})
        cache: ConfigCache[RulesPolicy] = ConfigCache(30, clock=_FakeClock())
        self.assertEqual(get_rules_policy(db, cache=cache).rounding_mode, "none")

        updated, before = update_rules_config(
            db,
            {"rounding_mode": "6min", "unknown_field": 1},
            cache=cache,
        )

        self.assertEqual(updated.rounding_mode, "6min")
        self.assertEqual(before, {"rounding_mode": "none"})
        self.assertFalse(cache.is_warm)
        self.assertEqual(get_rules_policy(db, cache=cache).rounding_mode, "6min")

    def test_partial_update_is_checked_against_stored_window(self) -> None:
        row = TimeclockRulesConfig(id=1, **RulesPolicy().__dict__)
        db = _FakeConfigDB({TimeclockRulesConfig: row})
        cache: ConfigCache[RulesPolicy] = ConfigCache(30, clock=_FakeClock())
        get_rules_policy(db, cache=cache)

        with self.assertRaises(EntryValidationError) as ctx:
            update_rules_config(db, {"auto_approve_min_hours": 13}, cache=cache)

        self.assertEqual(ctx.exception.code, "INVALID_AUTO_APPROVE_WINDOW")
        self.assertEqual(row.auto_approve_min_hours, 0.0)
        self.assertEqual(db.commits, 0)
        self.assertTrue(cache.is_warm)

        updated, _ = update_rules_config(db, {"auto_approve_min_hours": 12}, cache=cache)
        self.assertEqual(updated.auto_approve_min_hours, 12)

    def test_combined_update_only_touches_changed_sections(self) -> None:
        overtime = OvertimeConfig(id=1, daily_threshold=480, weekly_threshold=2400)
        pay_period = PayPeriodConfig(id=1, type="biweekly", start_day_of_week=0, start_date=None)
        db = _FakeConfigDB({OvertimeConfig: overtime, PayPeriodConfig: pay_period})
        cache: ConfigCache[OvertimePolicy] = ConfigCache(30, clock=_FakeClock())

        overtime_row, pay_period_row, before = update_timeclock_config(
            db,
            overtime_changes={"daily_threshold": None},
            cache=cache,
        )

        self.assertIsNone(overtime_row.daily_threshold)
        self.assertEqual(pay_period_row.type, "biweekly")
        self.assertEqual(before, {"overtime": {"daily_threshold": 480}})
        self.assertEqual(db.commits, 1)


if __name__ == "__main__":
    unittest.main()
