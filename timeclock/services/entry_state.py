"""Timeclock entry lifecycle as an explicit transition table.

Every (state, action) pair is listed in ``TRANSITIONS`` or in
``BLOCKED_TRANSITIONS``; nothing falls through to an implicit default. Two rules
are worth spotting in the table: approval always locks, and rejection always
unlocks, including from an approved and locked entry.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime

from timeclock.errors import EntryStateError, EntryValidationError
from timeclock.models import EntryStatus, TimeclockEntry
from timeclock.services.clock_out import ClockOutResult


class EntryState(str, enum.Enum):
    OPEN = "open"
    PENDING = "pending"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class EntryAction(str, enum.Enum):
    CLOCK_OUT = "clock_out"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    EDIT = "edit"


class Effect(str, enum.Enum):
    SET = "set"
    CLEAR = "clear"
    KEEP = "keep"


@dataclass(frozen=True)
class Transition:
    # None means the next status comes from the clock-out pipeline outcome.
    next_status: EntryStatus | None
    lock: Effect = Effect.KEEP
    approval_stamp: Effect = Effect.KEEP
    rejected_note: Effect = Effect.KEEP
    edit_stamp: bool = False


@dataclass(frozen=True)
class BlockedTransition:
    error: type[EntryStateError] | type[EntryValidationError]
    code: str
    message: str


_CLOSED_STATES = (EntryState.PENDING, EntryState.SUBMITTED, EntryState.APPROVED, EntryState.REJECTED)

_APPROVE = Transition(
    next_status=EntryStatus.APPROVED,
    lock=Effect.SET,
    approval_stamp=Effect.SET,
    rejected_note=Effect.CLEAR,
)
_REJECT = Transition(
    next_status=EntryStatus.REJECTED,
    lock=Effect.CLEAR,
    approval_stamp=Effect.CLEAR,
    rejected_note=Effect.SET,
)

TRANSITIONS: dict[tuple[EntryState, EntryAction], Transition] = {
    (EntryState.OPEN, EntryAction.CLOCK_OUT): Transition(next_status=None),
    (EntryState.OPEN, EntryAction.EDIT): Transition(next_status=EntryStatus.PENDING, edit_stamp=True),
    (EntryState.PENDING, EntryAction.SUBMIT): Transition(next_status=EntryStatus.SUBMITTED),
    **{(state, EntryAction.APPROVE): _APPROVE for state in _CLOSED_STATES},
    **{(state, EntryAction.REJECT): _REJECT for state in _CLOSED_STATES},
    **{
        (state, EntryAction.EDIT): Transition(next_status=EntryStatus(state.value), edit_stamp=True)
        for state in _CLOSED_STATES
    },
}

_ALREADY_CLOSED = BlockedTransition(EntryStateError, "INVALID_STATE", "Entry is already clocked out.")
_ACTIVE_ENTRY = BlockedTransition(
    EntryValidationError,
    "ENTRY_ACTIVE",
    "Cannot submit an active entry. Please clock out first.",
)

BLOCKED_TRANSITIONS: dict[tuple[EntryState, EntryAction], BlockedTransition] = {
    (EntryState.OPEN, EntryAction.SUBMIT): _ACTIVE_ENTRY,
    (EntryState.OPEN, EntryAction.APPROVE): BlockedTransition(
        EntryStateError,
        "CLOCK_OUT_REQUIRED",
        "Cannot approve active entries. Please wait for clock out.",
    ),
    (EntryState.OPEN, EntryAction.REJECT): BlockedTransition(
        EntryStateError,
        "CLOCK_OUT_REQUIRED",
        "Cannot reject active entries. Please wait for clock out.",
    ),
    **{(state, EntryAction.CLOCK_OUT): _ALREADY_CLOSED for state in _CLOSED_STATES},
    **{
        (state, EntryAction.SUBMIT): BlockedTransition(
            EntryStateError,
            "INVALID_STATE",
            f'Cannot submit entry with status "{state.value}".',
        )
        for state in (EntryState.SUBMITTED, EntryState.APPROVED, EntryState.REJECTED)
    },
}


def entry_state(entry: TimeclockEntry) -> EntryState:
    if entry.clock_out is None:
        return EntryState.OPEN
    return EntryState(EntryStatus(entry.status).value)


def resolve_transition(state: EntryState, action: EntryAction) -> Transition:
    transition = TRANSITIONS.get((state, action))
    if transition is not None:
        return transition
    blocked = BLOCKED_TRANSITIONS[(state, action)]
    raise blocked.error(code=blocked.code, message=blocked.message)


def can_transition(entry: TimeclockEntry, action: EntryAction) -> bool:
    if action == EntryAction.EDIT and entry.is_locked:
        return False
    return (entry_state(entry), action) in TRANSITIONS


def apply_transition(
    entry: TimeclockEntry,
    action: EntryAction,
    *,
    actor_id: int | None,
    now: datetime,
    note: str | None = None,
    outcome: ClockOutResult | None = None,
) -> TimeclockEntry:
    """Apply ``action`` to ``entry`` in place.

    ``outcome`` is required for CLOCK_OUT, where ``now`` becomes the clock-out
    time. ``note`` is required for REJECT. Field changes
    of an EDIT (times, durations) are the caller's; this only records who
    edited and when.
    """
    if action == EntryAction.EDIT and entry.is_locked:
        raise EntryStateError(code="ENTRY_LOCKED", message="Cannot edit locked entries.")

    transition = resolve_transition(entry_state(entry), action)

    if transition.rejected_note == Effect.SET:
        normalized_note = (note or "").strip()
        if not normalized_note:
            raise EntryValidationError(code="MISSING_NOTE", message="Rejection note is required.")
        note = normalized_note

    if transition.next_status is None:
        if outcome is None:
            raise ValueError("Clock-out transition requires a pipeline outcome.")
        _apply_clock_out_outcome(entry, outcome, now=now)
        return entry

    entry.status = transition.next_status

    if transition.lock == Effect.SET:
        entry.is_locked = True
    elif transition.lock == Effect.CLEAR:
        entry.is_locked = False

    if transition.approval_stamp == Effect.SET:
        entry.approved_by = actor_id
        entry.approved_at = now
    elif transition.approval_stamp == Effect.CLEAR:
        entry.approved_by = None
        entry.approved_at = None

    if transition.rejected_note == Effect.SET:
        entry.rejected_note = note
    elif transition.rejected_note == Effect.CLEAR:
        entry.rejected_note = None

    if transition.edit_stamp:
        entry.last_edited_by = actor_id
        entry.last_edited_at = now

    return entry


def _apply_clock_out_outcome(entry: TimeclockEntry, outcome: ClockOutResult, *, now: datetime) -> None:
    entry.clock_out = now
    entry.raw_duration = outcome.raw_duration
    entry.duration = outcome.final_duration
    entry.break_deducted = outcome.break_deducted
    entry.flag_reason = outcome.flag_reason
    entry.auto_approved = outcome.auto_approved
    entry.status = outcome.status
    entry.rejected_note = outcome.rejected_note
    entry.is_locked = outcome.status == EntryStatus.APPROVED
    entry.approved_by = None
    entry.approved_at = now if outcome.auto_approved else None
