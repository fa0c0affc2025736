"""Entry operations: clock in/out, submit, decide, edit and bulk approval.

Every mutation goes through :func:`apply_transition`, so status, lock and
approval fields only change the way the transition table says they do. Each
operation commits its own row; bulk approval commits item by item.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from timeclock.errors import (
    EntryAuthorizationError,
    EntryNotFoundError,
    EntryStateError,
    EntryValidationError,
)
from timeclock.models import EntryStatus, TimeclockEntry, User
from timeclock.security import Actor, ensure_capability
from timeclock.services.clock_out import process_clock_out
from timeclock.services.config_store import get_overtime_policy, get_rules_policy, load_pay_period_config
from timeclock.services.entry_state import (
    EntryAction,
    apply_transition,
    entry_state,
    resolve_transition,
)
from timeclock.services.overtime import AlertStatus, check_alert_status, local_date
from timeclock.services.pay_period import PayPeriod, get_pay_period_by_index
from timeclock.services.pay_period_lock import ensure_not_in_locked_period
from timeclock.services.scope import (
    ensure_can_access_entry,
    ensure_department_filter_allowed,
    ensure_scope_not_empty,
    resolve_manager_scope,
)
from timeclock.services.summary import is_bulk_approvable
from timeclock.settings import get_timeclock_timezone

logger = logging.getLogger("timeclock.entries")


class Decision(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"


class BulkOutcome(str, enum.Enum):
    APPROVED = "approved"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class BulkApproveItem:
    entry_id: int
    outcome: BulkOutcome
    reason: str | None = None
    previous_status: str | None = None
    previous_locked: bool | None = None
    employee_name: str | None = None


@dataclass
class BulkApproveResult:
    items: list[BulkApproveItem] = field(default_factory=list)

    def _count(self, outcome: BulkOutcome) -> int:
        return sum(1 for item in self.items if item.outcome == outcome)

    @property
    def approved(self) -> int:
        return self._count(BulkOutcome.APPROVED)

    @property
    def skipped(self) -> int:
        return self._count(BulkOutcome.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(BulkOutcome.FAILED)

    @property
    def approved_ids(self) -> list[int]:
        return [item.entry_id for item in self.items if item.outcome == BulkOutcome.APPROVED]

    @property
    def message(self) -> str:
        return (
            f"Bulk approval complete: {self.approved} approved, "
            f"{self.skipped} skipped, {self.failed} failed"
        )


@dataclass(frozen=True)
class EntryEdit:
    entry: TimeclockEntry
    before: dict[str, Any]
    after: dict[str, Any]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _elapsed_seconds(start: datetime, end: datetime) -> int:
    """Whole seconds between two instants, truncated toward the earlier one."""
    return (_aware(end) - _aware(start)) // timedelta(seconds=1)


def _edited_seconds(start: datetime, end: datetime) -> int:
    # Manual edits round to the nearest second instead of truncating.
    return round((_aware(end) - _aware(start)).total_seconds())


def entry_snapshot(entry: TimeclockEntry) -> dict[str, Any]:
    return {
        "clock_in": entry.clock_in.isoformat() if entry.clock_in else None,
        "clock_out": entry.clock_out.isoformat() if entry.clock_out else None,
        "duration": entry.duration,
        "status": EntryStatus(entry.status).value,
        "is_locked": bool(entry.is_locked),
    }


def _load_entry(db: Session, entry_id: int) -> TimeclockEntry:
    entry = db.get(TimeclockEntry, entry_id)
    if entry is None:
        raise EntryNotFoundError()
    return entry


def _entry_owner(db: Session, entry: TimeclockEntry) -> User:
    owner = entry.user
    if owner is None:
        owner = db.get(User, entry.user_id)
    if owner is None:
        raise EntryNotFoundError(message="Entry owner not found.")
    return owner


def _commit_entry(db: Session, entry: TimeclockEntry) -> TimeclockEntry:
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        logger.warning("entry_concurrent_update", extra={"entry_id": entry.id})
        raise EntryStateError(
            code="CONCURRENT_UPDATE",
            message="Entry was changed by another request. Reload and try again.",
        ) from exc
    db.refresh(entry)
    return entry


def find_open_entry(db: Session, user_id: int) -> TimeclockEntry | None:
    return db.scalar(
        select(TimeclockEntry)
        .where(TimeclockEntry.user_id == user_id, TimeclockEntry.clock_out.is_(None))
        .order_by(TimeclockEntry.clock_in.desc())
        .limit(1)
    )


def clock_in(db: Session, actor: Actor, *, now: datetime | None = None) -> TimeclockEntry:
    ensure_capability(actor, "can_clock_in_out", "You do not have permission to use the timeclock.")

    if find_open_entry(db, actor.user_id) is not None:
        raise EntryStateError(code="ALREADY_CLOCKED_IN", message="You are already clocked in.")

    entry = TimeclockEntry(
        user_id=actor.user_id,
        clock_in=now or _utcnow(),
        clock_out=None,
        break_deducted=0,
        auto_approved=False,
        status=EntryStatus.PENDING,
        is_locked=False,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    logger.info("clock_in_recorded", extra={"entry_id": entry.id, "user_id": actor.user_id})
    return entry


def clock_out_entry(
    db: Session,
    actor: Actor,
    entry_id: int | None = None,
    *,
    now: datetime | None = None,
) -> TimeclockEntry:
    """Close the actor's entry and persist every field the pipeline computes.

    Without ``entry_id`` the actor's open entry is used.
    """
    ensure_capability(actor, "can_clock_in_out", "You do not have permission to use the timeclock.")

    if entry_id is None:
        entry = find_open_entry(db, actor.user_id)
        if entry is None:
            raise EntryStateError(code="NOT_CLOCKED_IN", message="You are not clocked in.")
    else:
        entry = _load_entry(db, entry_id)
        if entry.user_id != actor.user_id:
            raise EntryAuthorizationError(code="NOT_OWNER", message="You can only clock out your own entries.")

    resolve_transition(entry_state(entry), EntryAction.CLOCK_OUT)

    clock_out_at = now or _utcnow()
    raw_duration = _elapsed_seconds(entry.clock_in, clock_out_at)
    rules = get_rules_policy(db)
    overtime = get_overtime_policy(db) if rules.auto_approve_block_on_overtime else None
    outcome = process_clock_out(raw_duration, entry.user_id, rules, overtime)

    apply_transition(entry, EntryAction.CLOCK_OUT, actor_id=actor.user_id, now=clock_out_at, outcome=outcome)
    _commit_entry(db, entry)
    logger.info(
        "clock_out_processed",
        extra={
            "entry_id": entry.id,
            "user_id": entry.user_id,
            "raw_duration": outcome.raw_duration,
            "duration": outcome.final_duration,
            "break_deducted": outcome.break_deducted,
            "flag_reason": outcome.flag_reason,
            "auto_approved": outcome.auto_approved,
            "status": outcome.status.value,
        },
    )
    return entry


def submit_entry(db: Session, entry_id: int, actor: Actor, *, now: datetime | None = None) -> TimeclockEntry:
    entry = _load_entry(db, entry_id)
    if entry.user_id != actor.user_id:
        raise EntryAuthorizationError(code="NOT_OWNER", message="You can only submit your own entries.")

    apply_transition(entry, EntryAction.SUBMIT, actor_id=actor.user_id, now=now or _utcnow())
    _commit_entry(db, entry)
    logger.info("entry_submitted", extra={"entry_id": entry.id, "user_id": actor.user_id})
    return entry


def decide_entry(
    db: Session,
    entry_id: int,
    actor: Actor,
    decision: Decision,
    note: str | None = None,
    *,
    now: datetime | None = None,
) -> TimeclockEntry:
    decision = Decision(decision)
    ensure_capability(actor, "can_approve_entries", "You do not have permission to approve or reject entries.")

    entry = _load_entry(db, entry_id)
    owner = _entry_owner(db, entry)
    scope = resolve_manager_scope(db, actor)
    ensure_can_access_entry(
        actor,
        scope,
        owner,
        message=f"You can only {decision.value} entries in your assigned departments.",
    )

    action = EntryAction.APPROVE if decision == Decision.APPROVE else EntryAction.REJECT
    previous_status = EntryStatus(entry.status).value
    apply_transition(entry, action, actor_id=actor.user_id, now=now or _utcnow(), note=note)
    _commit_entry(db, entry)
    logger.info(
        "entry_decided",
        extra={
            "entry_id": entry.id,
            "decision": decision.value,
            "previous_status": previous_status,
            "actor_id": actor.user_id,
        },
    )
    return entry


def edit_entry(
    db: Session,
    entry_id: int,
    actor: Actor,
    *,
    clock_in: datetime | None = None,
    clock_out: datetime | None = None,
    now: datetime | None = None,
) -> EntryEdit:
    """Change clock times and recompute the duration as plain elapsed time.

    Break deduction and rounding are not re-applied.
    """
    ensure_capability(actor, "can_edit_team_entries", "You do not have permission to edit timeclock entries.")
    if clock_in is None and clock_out is None:
        raise EntryValidationError(code="EMPTY_EDIT", message="At least one of clock_in or clock_out is required.")

    entry = _load_entry(db, entry_id)
    if entry.is_locked:
        raise EntryStateError(code="ENTRY_LOCKED", message="Cannot edit locked entries.")

    owner = _entry_owner(db, entry)
    scope = resolve_manager_scope(db, actor)
    ensure_can_access_entry(
        actor,
        scope,
        owner,
        message="You can only edit entries in your assigned departments.",
    )

    new_clock_in = clock_in or entry.clock_in
    new_clock_out = clock_out or entry.clock_out
    ensure_not_in_locked_period(db, entry.clock_in, entry.clock_out, clock_in, clock_out)

    duration: int | None = None
    if new_clock_out is not None:
        duration = _edited_seconds(new_clock_in, new_clock_out)
        if duration < 0:
            raise EntryValidationError(
                code="NEGATIVE_DURATION",
                message="Clock out time cannot be before clock in time.",
            )

    before = entry_snapshot(entry)
    apply_transition(entry, EntryAction.EDIT, actor_id=actor.user_id, now=now or _utcnow())
    entry.clock_in = new_clock_in
    entry.clock_out = new_clock_out
    entry.duration = duration
    entry.raw_duration = duration
    entry.break_deducted = 0
    _commit_entry(db, entry)

    after = entry_snapshot(entry)
    logger.info("entry_edited", extra={"entry_id": entry.id, "actor_id": actor.user_id})
    return EntryEdit(entry=entry, before=before, after=after)


def _unique_ids(entry_ids: Iterable[int]) -> list[int]:
    seen: set[int] = set()
    ordered: list[int] = []
    for entry_id in entry_ids:
        if entry_id in seen:
            continue
        seen.add(entry_id)
        ordered.append(entry_id)
    return ordered


def _bulk_skip_reason(entry: TimeclockEntry) -> str | None:
    if EntryStatus(entry.status) == EntryStatus.APPROVED:
        return "Already approved"
    if entry.is_locked:
        return "Entry is locked"
    if entry.clock_out is None:
        return "Active entry (no clock out)"
    return None


def bulk_approve_entries(
    db: Session,
    entry_ids: Iterable[int],
    actor: Actor,
    *,
    now: datetime | None = None,
) -> BulkApproveResult:
    """Approve many entries, one commit per entry.

    Not atomic: an item that fails is rolled back and reported while the
    others keep their outcome.
    """
    ensure_capability(actor, "can_approve_entries", "You do not have permission to approve entries.")
    ids = _unique_ids(entry_ids)
    if not ids:
        raise EntryValidationError(code="EMPTY_BULK_REQUEST", message="No entry ids were provided.")

    approved_at = now or _utcnow()
    scope = resolve_manager_scope(db, actor)
    result = BulkApproveResult()

    for entry_id in ids:
        entry = db.get(TimeclockEntry, entry_id)
        if entry is None:
            result.items.append(BulkApproveItem(entry_id, BulkOutcome.FAILED, "Entry not found"))
            continue

        owner = entry.user or db.get(User, entry.user_id)
        employee_name = owner.name if owner is not None else None
        previous_status = EntryStatus(entry.status).value
        previous_locked = bool(entry.is_locked)

        skip_reason = _bulk_skip_reason(entry)
        if skip_reason is not None:
            result.items.append(
                BulkApproveItem(
                    entry_id,
                    BulkOutcome.SKIPPED,
                    skip_reason,
                    previous_status=previous_status,
                    previous_locked=previous_locked,
                    employee_name=employee_name,
                )
            )
            continue

        if owner is None or not scope.contains(owner.department_id):
            result.items.append(
                BulkApproveItem(
                    entry_id,
                    BulkOutcome.FAILED,
                    "Not in assigned department",
                    previous_status=previous_status,
                    previous_locked=previous_locked,
                    employee_name=employee_name,
                )
            )
            continue

        try:
            apply_transition(entry, EntryAction.APPROVE, actor_id=actor.user_id, now=approved_at)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("bulk_approve_item_failed", extra={"entry_id": entry_id, "actor_id": actor.user_id})
            result.items.append(
                BulkApproveItem(
                    entry_id,
                    BulkOutcome.FAILED,
                    "Failed to save approval",
                    previous_status=previous_status,
                    previous_locked=previous_locked,
                    employee_name=employee_name,
                )
            )
            continue

        result.items.append(
            BulkApproveItem(
                entry_id,
                BulkOutcome.APPROVED,
                previous_status=previous_status,
                previous_locked=previous_locked,
                employee_name=employee_name,
            )
        )

    logger.info(
        "bulk_approve_complete",
        extra={
            "actor_id": actor.user_id,
            "approved": result.approved,
            "skipped": result.skipped,
            "failed": result.failed,
        },
    )
    return result


def get_entry_for_actor(db: Session, entry_id: int, actor: Actor) -> TimeclockEntry:
    entry = _load_entry(db, entry_id)
    if entry.user_id == actor.user_id:
        return entry

    capabilities = actor.capabilities
    if not capabilities.can_view_team_entries and not capabilities.can_view_all_entries:
        raise EntryAuthorizationError(code="FORBIDDEN", message="You do not have permission to view this entry.")

    owner = _entry_owner(db, entry)
    ensure_can_access_entry(actor, resolve_manager_scope(db, actor), owner)
    return entry


def list_own_entries(
    db: Session,
    actor: Actor,
    period_index: int = 0,
    *,
    today: date | None = None,
) -> tuple[PayPeriod, list[TimeclockEntry]]:
    ensure_capability(actor, "can_view_own_entries", "You do not have permission to view timeclock entries.")

    tz = get_timeclock_timezone()
    period = get_pay_period_by_index(
        load_pay_period_config(db),
        period_index,
        today=today or datetime.now(tz).date(),
    )
    entries = db.scalars(
        select(TimeclockEntry)
        .where(
            TimeclockEntry.user_id == actor.user_id,
            TimeclockEntry.clock_in >= period.starts_at(tz),
            TimeclockEntry.clock_in <= period.ends_at(tz),
        )
        .order_by(TimeclockEntry.clock_in.desc())
    ).all()
    return period, [entry for entry in entries if entry.user_id == actor.user_id]


def list_pending_entries(
    db: Session,
    actor: Actor,
    *,
    department_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[TimeclockEntry]:
    """Approval queue: closed entries that are pending or submitted."""
    ensure_capability(actor, "can_approve_entries", "You do not have permission to approve entries.")
    scope = resolve_manager_scope(db, actor)
    ensure_scope_not_empty(scope)
    ensure_department_filter_allowed(scope, department_id)

    stmt = (
        select(TimeclockEntry)
        .join(User, TimeclockEntry.user_id == User.id)
        .options(selectinload(TimeclockEntry.user).selectinload(User.department))
        .where(
            TimeclockEntry.status.in_([EntryStatus.PENDING, EntryStatus.SUBMITTED]),
            TimeclockEntry.clock_out.is_not(None),
        )
    )
    if department_id is not None:
        stmt = stmt.where(User.department_id == department_id)
    elif not scope.all_departments:
        stmt = stmt.where(User.department_id.in_(sorted(scope.department_ids)))
    if start is not None:
        stmt = stmt.where(TimeclockEntry.clock_in >= start)
    if end is not None:
        stmt = stmt.where(TimeclockEntry.clock_in <= end)

    entries = db.scalars(stmt.order_by(TimeclockEntry.clock_in.asc())).all()
    return [
        entry
        for entry in entries
        if is_bulk_approvable(entry) and entry.user is not None and scope.contains(entry.user.department_id)
    ]


def list_missed_punches(db: Session, actor: Actor, *, now: datetime | None = None) -> list[TimeclockEntry]:
    """Open entries older than the configured missed-punch threshold."""
    ensure_capability(actor, "can_approve_entries", "You do not have permission to review missed punches.")
    rules = get_rules_policy(db)
    if not rules.missed_punch_enabled:
        return []

    scope = resolve_manager_scope(db, actor)
    if scope.is_empty:
        return []

    cutoff = (now or _utcnow()) - timedelta(hours=rules.missed_punch_threshold_hours)
    stmt = (
        select(TimeclockEntry)
        .join(User, TimeclockEntry.user_id == User.id)
        .options(selectinload(TimeclockEntry.user).selectinload(User.department))
        .where(TimeclockEntry.clock_out.is_(None), TimeclockEntry.clock_in < cutoff)
    )
    if not scope.all_departments:
        stmt = stmt.where(User.department_id.in_(sorted(scope.department_ids)))

    entries = db.scalars(stmt.order_by(TimeclockEntry.clock_in.asc())).all()
    return [entry for entry in entries if entry.user is not None and scope.contains(entry.user.department_id)]


@dataclass(frozen=True)
class OwnAlertStatus:
    status: AlertStatus | None
    active_minutes: int
    notify_employee: bool


def get_own_alert_status(db: Session, actor: Actor, *, now: datetime | None = None) -> OwnAlertStatus:
    """Overtime threshold flags for the actor's current day and week."""
    ensure_capability(actor, "can_clock_in_out", "You do not have permission to use the timeclock.")

    tz = get_timeclock_timezone()
    current = now or _utcnow()
    reference = local_date(current, tz)
    week_start = reference - timedelta(days=(reference.weekday() + 1) % 7)
    since = datetime.combine(week_start, time.min, tzinfo=tz)

    entries = list(
        db.scalars(
            select(TimeclockEntry)
            .where(TimeclockEntry.user_id == actor.user_id, TimeclockEntry.clock_in >= since)
            .order_by(TimeclockEntry.clock_in.asc())
        ).all()
    )
    open_entry = next((entry for entry in entries if entry.clock_out is None), None)
    active_minutes = max(0, _elapsed_seconds(open_entry.clock_in, current) // 60) if open_entry else 0

    policy = get_overtime_policy(db)
    return OwnAlertStatus(
        status=check_alert_status(entries, policy, reference, tz, active_minutes=active_minutes),
        active_minutes=active_minutes,
        notify_employee=policy.notify_employee,
    )
