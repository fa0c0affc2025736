from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from itertools import product

from timeclock.errors import EntryStateError, EntryValidationError
from timeclock.models import EntryStatus, TimeclockEntry
from timeclock.services.clock_out import ClockOutResult
from timeclock.services.entry_state import (
    BLOCKED_TRANSITIONS,
    TRANSITIONS,
    EntryAction,
    EntryState,
    apply_transition,
    can_transition,
    entry_state,
)

NOW = datetime(2026, 3, 4, 17, 0, tzinfo=timezone.utc)


def _entry(
    *,
    status: EntryStatus = EntryStatus.PENDING,
    closed: bool = True,
    is_locked: bool = False,
    rejected_note: str | None = None,
) -> TimeclockEntry:
    clock_in = NOW - timedelta(hours=8)
    return TimeclockEntry(
        id=1,
        user_id=7,
        clock_in=clock_in,
        clock_out=NOW if closed else None,
        raw_duration=8 * 3600 if closed else None,
        duration=8 * 3600 if closed else None,
        break_deducted=0,
        auto_approved=False,
        status=status,
        is_locked=is_locked,
        rejected_note=rejected_note,
    )


class TransitionTableTests(unittest.TestCase):
    def test_every_state_action_pair_is_defined_exactly_once(self) -> None:
        for pair in product(EntryState, EntryAction):
            in_allowed = pair in TRANSITIONS
            in_blocked = pair in BLOCKED_TRANSITIONS
            self.assertTrue(in_allowed != in_blocked, msg=str(pair))

    def test_entry_state_is_open_until_clock_out(self) -> None:
        self.assertEqual(entry_state(_entry(closed=False)), EntryState.OPEN)
        self.assertEqual(entry_state(_entry(status=EntryStatus.SUBMITTED)), EntryState.SUBMITTED)


class SubmitTests(unittest.TestCase):
    def test_pending_entry_becomes_submitted(self) -> None:
        entry = apply_transition(_entry(), EntryAction.SUBMIT, actor_id=7, now=NOW)
        self.assertEqual(entry.status, EntryStatus.SUBMITTED)

    def test_open_entry_cannot_be_submitted(self) -> None:
        with self.assertRaises(EntryValidationError) as ctx:
            apply_transition(_entry(closed=False), EntryAction.SUBMIT, actor_id=7, now=NOW)
        self.assertEqual(ctx.exception.code, "ENTRY_ACTIVE")

    def test_only_pending_entries_can_be_submitted(self) -> None:
        for status in (EntryStatus.SUBMITTED, EntryStatus.APPROVED, EntryStatus.REJECTED):
            note = "fix" if status == EntryStatus.REJECTED else None
            with self.assertRaises(EntryStateError) as ctx:
                apply_transition(_entry(status=status, rejected_note=note), EntryAction.SUBMIT, actor_id=7, now=NOW)
            self.assertEqual(ctx.exception.code, "INVALID_STATE")


class DecisionTests(unittest.TestCase):
    def test_approve_locks_and_stamps(self) -> None:
        entry = apply_transition(_entry(status=EntryStatus.SUBMITTED), EntryAction.APPROVE, actor_id=3, now=NOW)
        self.assertEqual(entry.status, EntryStatus.APPROVED)
        self.assertTrue(entry.is_locked)
        self.assertEqual(entry.approved_by, 3)
        self.assertEqual(entry.approved_at, NOW)

    def test_approve_clears_previous_rejection_note(self) -> None:
        entry = _entry(status=EntryStatus.REJECTED, rejected_note="wrong day")
        apply_transition(entry, EntryAction.APPROVE, actor_id=3, now=NOW)
        self.assertIsNone(entry.rejected_note)

    def test_reject_unlocks_an_approved_entry(self) -> None:
        entry = _entry(status=EntryStatus.APPROVED, is_locked=True)
        entry.approved_by = 3
        entry.approved_at = NOW

        apply_transition(entry, EntryAction.REJECT, actor_id=3, now=NOW, note="missing clock-out correction")

        self.assertEqual(entry.status, EntryStatus.REJECTED)
        self.assertFalse(entry.is_locked)
        self.assertIsNone(entry.approved_by)
        self.assertIsNone(entry.approved_at)
        self.assertEqual(entry.rejected_note, "missing clock-out correction")

    def test_reject_from_every_closed_state_unlocks(self) -> None:
        for status in EntryStatus:
            entry = _entry(
                status=status,
                is_locked=status == EntryStatus.APPROVED,
                rejected_note="old" if status == EntryStatus.REJECTED else None,
            )
            apply_transition(entry, EntryAction.REJECT, actor_id=3, now=NOW, note="  redo  ")
            self.assertFalse(entry.is_locked)
            self.assertEqual(entry.rejected_note, "redo")

    def test_reject_requires_a_note(self) -> None:
        for note in (None, "", "   "):
            with self.assertRaises(EntryValidationError) as ctx:
                apply_transition(_entry(), EntryAction.REJECT, actor_id=3, now=NOW, note=note)
            self.assertEqual(ctx.exception.code, "MISSING_NOTE")

    def test_open_entries_cannot_be_decided(self) -> None:
        for action in (EntryAction.APPROVE, EntryAction.REJECT):
            with self.assertRaises(EntryStateError) as ctx:
                apply_transition(_entry(closed=False), action, actor_id=3, now=NOW, note="x")
            self.assertEqual(ctx.exception.code, "CLOCK_OUT_REQUIRED")


class EditTests(unittest.TestCase):
    def test_locked_entry_cannot_be_edited(self) -> None:
        entry = _entry(status=EntryStatus.APPROVED, is_locked=True)
        self.assertFalse(can_transition(entry, EntryAction.EDIT))
        with self.assertRaises(EntryStateError) as ctx:
            apply_transition(entry, EntryAction.EDIT, actor_id=3, now=NOW)
        self.assertEqual(ctx.exception.code, "ENTRY_LOCKED")

    def test_edit_keeps_status_and_stamps_editor(self) -> None:
        entry = _entry(status=EntryStatus.REJECTED, rejected_note="fix times")
        apply_transition(entry, EntryAction.EDIT, actor_id=4, now=NOW)
        self.assertEqual(entry.status, EntryStatus.REJECTED)
        self.assertEqual(entry.rejected_note, "fix times")
        self.assertEqual(entry.last_edited_by, 4)
        self.assertEqual(entry.last_edited_at, NOW)

    def test_open_entry_is_editable(self) -> None:
        entry = _entry(closed=False)
        self.assertTrue(can_transition(entry, EntryAction.EDIT))
        apply_transition(entry, EntryAction.EDIT, actor_id=4, now=NOW)
        self.assertEqual(entry.status, EntryStatus.PENDING)


class ClockOutTransitionTests(unittest.TestCase):
    def test_auto_approved_outcome_locks_entry(self) -> None:
        entry = _entry(closed=False)
        outcome = ClockOutResult(
            raw_duration=30600,
            final_duration=28800,
            break_deducted=1800,
            flag_reason=None,
            auto_approved=True,
            status=EntryStatus.APPROVED,
            rejected_note=None,
        )

        apply_transition(entry, EntryAction.CLOCK_OUT, actor_id=7, now=NOW, outcome=outcome)

        self.assertEqual(entry.clock_out, NOW)
        self.assertEqual(entry.duration, 28800)
        self.assertEqual(entry.raw_duration, 30600)
        self.assertEqual(entry.break_deducted, 1800)
        self.assertTrue(entry.is_locked)
        self.assertEqual(entry.approved_at, NOW)
        self.assertIsNone(entry.approved_by)

    def test_rejected_outcome_stays_unlocked(self) -> None:
        entry = _entry(closed=False)
        outcome = ClockOutResult(
            raw_duration=600,
            final_duration=600,
            break_deducted=0,
            flag_reason="min_duration",
            auto_approved=False,
            status=EntryStatus.REJECTED,
            rejected_note="Auto-rejected: duration (10m) below minimum threshold (60m)",
        )

        apply_transition(entry, EntryAction.CLOCK_OUT, actor_id=7, now=NOW, outcome=outcome)

        self.assertEqual(entry.status, EntryStatus.REJECTED)
        self.assertFalse(entry.is_locked)
        self.assertTrue(entry.rejected_note.startswith("Auto-rejected"))

    def test_closed_entry_cannot_be_clocked_out_again(self) -> None:
        with self.assertRaises(EntryStateError) as ctx:
            apply_transition(_entry(), EntryAction.CLOCK_OUT, actor_id=7, now=NOW)
        self.assertEqual(ctx.exception.code, "INVALID_STATE")


if __name__ == "__main__":
    unittest.main()
