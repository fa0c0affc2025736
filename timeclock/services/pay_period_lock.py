from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from timeclock.errors import ApiError, EntryStateError
from timeclock.models import PayPeriodLock

logger = logging.getLogger("timeclock.pay_period_lock")


@dataclass(frozen=True)
class PayPeriodLockStatus:
    is_locked: bool
    lock: PayPeriodLock | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _find_lock(db: Session, period_start: datetime, period_end: datetime) -> PayPeriodLock | None:
    return db.scalar(
        select(PayPeriodLock).where(
            PayPeriodLock.period_start == period_start,
            PayPeriodLock.period_end == period_end,
        )
    )


def get_pay_period_lock_status(db: Session, period_start: datetime, period_end: datetime) -> PayPeriodLockStatus:
    lock = _find_lock(db, period_start, period_end)
    if lock is None or not lock.is_active:
        return PayPeriodLockStatus(is_locked=False)
    return PayPeriodLockStatus(is_locked=True, lock=lock)


def lock_pay_period(
    db: Session,
    period_start: datetime,
    period_end: datetime,
    *,
    locked_by: int,
    now: datetime | None = None,
) -> PayPeriodLock:
    if period_end < period_start:
        raise ApiError(status_code=422, code="INVALID_PERIOD", message="Period end must not precede period start.")

    locked_at = now or _utcnow()
    lock = _find_lock(db, period_start, period_end)
    if lock is None:
        lock = PayPeriodLock(
            period_start=period_start,
            period_end=period_end,
            is_active=True,
            locked_at=locked_at,
            locked_by=locked_by,
        )
        db.add(lock)
    else:
        lock.is_active = True
        lock.locked_at = locked_at
        lock.locked_by = locked_by

    db.commit()
    db.refresh(lock)
    logger.info(
        "pay_period_locked",
        extra={
            "period_start": period_start.isoformat(),
            "period_end": period_end.isoformat(),
            "locked_by": locked_by,
        },
    )
    return lock


def unlock_pay_period(db: Session, period_start: datetime, period_end: datetime) -> PayPeriodLock:
    """Soft unlock: the row stays, with ``is_active`` cleared."""
    lock = _find_lock(db, period_start, period_end)
    if lock is None:
        raise ApiError(status_code=404, code="PAY_PERIOD_LOCK_NOT_FOUND", message="Pay period lock not found.")

    lock.is_active = False
    db.commit()
    db.refresh(lock)
    logger.info(
        "pay_period_unlocked",
        extra={"period_start": period_start.isoformat(), "period_end": period_end.isoformat()},
    )
    return lock


def is_time_in_locked_period(db: Session, moment: datetime) -> bool:
    lock = db.scalar(
        select(PayPeriodLock)
        .where(
            PayPeriodLock.is_active.is_(True),
            PayPeriodLock.period_start <= moment,
            PayPeriodLock.period_end >= moment,
        )
        .limit(1)
    )
    return lock is not None


def ensure_not_in_locked_period(db: Session, *moments: datetime | None) -> None:
    for moment in moments:
        if moment is not None and is_time_in_locked_period(db, moment):
            raise EntryStateError(
                code="PERIOD_LOCKED",
                message="Cannot modify entries in a locked pay period.",
            )
