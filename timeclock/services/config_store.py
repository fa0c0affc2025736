"""Singleton timeclock configuration rows and their per-process caches.

Every reader goes through a :class:`ConfigCache`. A write through this module
invalidates the cache of the process that performed it; other processes keep
serving their cached snapshot until the TTL expires. That bounded staleness
window (``config_cache_ttl_seconds``) is accepted behaviour.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from timeclock.errors import EntryValidationError
from timeclock.models import OvertimeConfig, PayPeriodConfig, TimeclockRulesConfig
from timeclock.settings import get_settings

logger = logging.getLogger("timeclock.config")

T = TypeVar("T")

DEFAULT_RULES_CONFIG: dict[str, Any] = {
    "rounding_mode": "none",
    "break_deduction_enabled": False,
    "break_deduction_after_hours": 6.0,
    "break_deduction_minutes": 30,
    "min_duration_enabled": False,
    "min_duration_seconds": 60,
    "min_duration_action": "flag",
    "auto_approve_enabled": False,
    "auto_approve_min_hours": 0.0,
    "auto_approve_max_hours": 12.0,
    "auto_approve_block_on_overtime": True,
    "missed_punch_enabled": True,
    "missed_punch_threshold_hours": 12.0,
}

DEFAULT_OVERTIME_CONFIG: dict[str, Any] = {
    "daily_threshold": 480,
    "weekly_threshold": 2400,
    "alert_before_daily": 30,
    "alert_before_weekly": 120,
    "notify_employee": True,
}

DEFAULT_PAY_PERIOD_CONFIG: dict[str, Any] = {
    "type": "biweekly",
    "start_day_of_week": 0,
    "start_date": None,
}


@dataclass(frozen=True)
class RulesPolicy:
    rounding_mode: str = "none"
    break_deduction_enabled: bool = False
    break_deduction_after_hours: float = 6.0
    break_deduction_minutes: int = 30
    min_duration_enabled: bool = False
    min_duration_seconds: int = 60
    min_duration_action: str = "flag"
    auto_approve_enabled: bool = False
    auto_approve_min_hours: float = 0.0
    auto_approve_max_hours: float = 12.0
    auto_approve_block_on_overtime: bool = True
    missed_punch_enabled: bool = True
    missed_punch_threshold_hours: float = 12.0

    @classmethod
    def from_row(cls, row: TimeclockRulesConfig) -> RulesPolicy:
        return cls(**{key: getattr(row, key) for key in DEFAULT_RULES_CONFIG})


@dataclass(frozen=True)
class OvertimePolicy:
    daily_threshold: int | None = None
    weekly_threshold: int | None = None
    alert_before_daily: int | None = None
    alert_before_weekly: int | None = None
    notify_employee: bool = False

    @classmethod
    def from_row(cls, row: OvertimeConfig) -> OvertimePolicy:
        return cls(**{key: getattr(row, key) for key in DEFAULT_OVERTIME_CONFIG})

    @property
    def has_thresholds(self) -> bool:
        return self.daily_threshold is not None or self.weekly_threshold is not None


class ConfigCache(Generic[T]):
    """One cached value with an expiry timestamp."""

    def __init__(self, ttl_seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._value: T | None = None
        self._expires_at = 0.0

    def get(self, loader: Callable[[], T]) -> T:
        now = self._clock()
        with self._lock:
            if self._value is not None and now < self._expires_at:
                return self._value

        value = loader()
        with self._lock:
            self._value = value
            self._expires_at = now + self.ttl_seconds
        return value

    def invalidate(self) -> None:
        with self._lock:
            self._value = None
            self._expires_at = 0.0

    @property
    def is_warm(self) -> bool:
        with self._lock:
            return self._value is not None and self._clock() < self._expires_at


rules_config_cache: ConfigCache[RulesPolicy] = ConfigCache(get_settings().config_cache_ttl_seconds)
overtime_config_cache: ConfigCache[OvertimePolicy] = ConfigCache(get_settings().config_cache_ttl_seconds)


def _get_or_create(db: Session, model: type, defaults: dict[str, Any]) -> Any:
    row = db.scalar(select(model).order_by(model.id.asc()).limit(1))
    if row is not None:
        return row

    row = model(**defaults)
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("config_default_row_created", extra={"table": model.__tablename__})
    return row


def load_rules_config(db: Session) -> TimeclockRulesConfig:
    return _get_or_create(db, TimeclockRulesConfig, DEFAULT_RULES_CONFIG)


def load_overtime_config(db: Session) -> OvertimeConfig:
    return _get_or_create(db, OvertimeConfig, DEFAULT_OVERTIME_CONFIG)


def load_pay_period_config(db: Session) -> PayPeriodConfig:
    return _get_or_create(db, PayPeriodConfig, DEFAULT_PAY_PERIOD_CONFIG)


def get_rules_policy(db: Session, *, cache: ConfigCache[RulesPolicy] | None = None) -> RulesPolicy:
    cache = cache or rules_config_cache
    return cache.get(lambda: RulesPolicy.from_row(load_rules_config(db)))


def get_overtime_policy(db: Session, *, cache: ConfigCache[OvertimePolicy] | None = None) -> OvertimePolicy:
    cache = cache or overtime_config_cache
    return cache.get(lambda: OvertimePolicy.from_row(load_overtime_config(db)))


def invalidate_rules_config_cache() -> None:
    rules_config_cache.invalidate()


def invalidate_overtime_config_cache() -> None:
    overtime_config_cache.invalidate()


def _apply_changes(row: Any, changes: dict[str, Any], allowed: dict[str, Any]) -> dict[str, Any]:
    before: dict[str, Any] = {}
    for key, value in changes.items():
        if key not in allowed:
            continue
        before[key] = getattr(row, key)
        setattr(row, key, value)
    return before


def _ensure_auto_approve_window(row: TimeclockRulesConfig, changes: dict[str, Any]) -> None:
    # A partial update is checked against the stored value of the other bound.
    min_hours = changes.get("auto_approve_min_hours", row.auto_approve_min_hours)
    max_hours = changes.get("auto_approve_max_hours", row.auto_approve_max_hours)
    if min_hours is not None and max_hours is not None and min_hours > max_hours:
        raise EntryValidationError(
            code="INVALID_AUTO_APPROVE_WINDOW",
            message=f"auto_approve_min_hours ({min_hours}) must not exceed auto_approve_max_hours ({max_hours}).",
        )


def update_rules_config(
    db: Session,
    changes: dict[str, Any],
    *,
    cache: ConfigCache[RulesPolicy] | None = None,
) -> tuple[TimeclockRulesConfig, dict[str, Any]]:
    row = load_rules_config(db)
    _ensure_auto_approve_window(row, changes)
    before = _apply_changes(row, changes, DEFAULT_RULES_CONFIG)
    db.commit()
    db.refresh(row)
    (cache or rules_config_cache).invalidate()
    return row, before


def update_overtime_config(
    db: Session,
    changes: dict[str, Any],
    *,
    cache: ConfigCache[OvertimePolicy] | None = None,
) -> tuple[OvertimeConfig, dict[str, Any]]:
    row = load_overtime_config(db)
    before = _apply_changes(row, changes, DEFAULT_OVERTIME_CONFIG)
    db.commit()
    db.refresh(row)
    (cache or overtime_config_cache).invalidate()
    return row, before


def update_pay_period_config(db: Session, changes: dict[str, Any]) -> tuple[PayPeriodConfig, dict[str, Any]]:
    row = load_pay_period_config(db)
    before = _apply_changes(row, changes, DEFAULT_PAY_PERIOD_CONFIG)
    db.commit()
    db.refresh(row)
    return row, before


def update_timeclock_config(
    db: Session,
    *,
    overtime_changes: dict[str, Any] | None = None,
    pay_period_changes: dict[str, Any] | None = None,
    cache: ConfigCache[OvertimePolicy] | None = None,
) -> tuple[OvertimeConfig, PayPeriodConfig, dict[str, Any]]:
    """Overtime and pay-period settings are edited together on one screen."""
    before: dict[str, Any] = {}
    overtime_row = load_overtime_config(db)
    if overtime_changes:
        overtime_row, before["overtime"] = update_overtime_config(db, overtime_changes, cache=cache)
    pay_period_row = load_pay_period_config(db)
    if pay_period_changes:
        pay_period_row, before["pay_period"] = update_pay_period_config(db, pay_period_changes)
    return overtime_row, pay_period_row, before
