from __future__ import annotations

import unittest
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import OperationalError

from timeclock.audit import AuditChange, log_audit
from timeclock.models import AuditActorType, AuditLog, EntryStatus


class _FakeAuditDB:
    def __init__(self, *, fail_commit: bool = False) -> None:
        self.fail_commit = fail_commit
        self.added: list[Any] = []
        self.rollbacks = 0

    def add(self, obj: Any) -> None:
        self.added.append(obj)

    def commit(self) -> None:
        if self.fail_commit:
            raise OperationalError("INSERT INTO audit_logs", {}, Exception("db down"))

    def rollback(self) -> None:
        self.rollbacks += 1


class AuditChangeTests(unittest.TestCase):
    def test_entry_edit_lists_changed_fields(self) -> None:
        change = AuditChange(
            before={"clock_in": datetime(2026, 3, 4, 8, 0, tzinfo=timezone.utc), "duration": 28800, "status": "pending"},
            after={"clock_in": datetime(2026, 3, 4, 7, 30, tzinfo=timezone.utc), "duration": 30600, "status": EntryStatus.PENDING},
        )

        details = change.to_details()

        self.assertEqual(details["changed_fields"], ["clock_in", "duration"])
        self.assertEqual(details["after"]["clock_in"], "2026-03-04T07:30:00+00:00")
        self.assertEqual(details["after"]["status"], "pending")

    def test_creation_has_no_before_state(self) -> None:
        details = AuditChange(after={"user_id": 90, "department_id": 1}).to_details()

        self.assertEqual(details, {"after": {"user_id": 90, "department_id": 1}})

    def test_context_is_kept_beside_state(self) -> None:
        change = AuditChange(
            before={"is_active": True},
            after={"is_active": False},
            context={"unlocked_by": 90},
        )

        self.assertEqual(
            change.to_details(),
            {
                "unlocked_by": 90,
                "before": {"is_active": True},
                "after": {"is_active": False},
                "changed_fields": ["is_active"],
            },
        )


class LogAuditTests(unittest.TestCase):
    def test_row_carries_change_details(self) -> None:
        db = _FakeAuditDB()

        log_audit(
            db,
            actor_type=AuditActorType.USER,
            actor_id="90",
            action="TIMECLOCK_ENTRY_SUBMITTED",
            success=True,
            entity_type="TimeclockEntry",
            entity_id="5",
            change=AuditChange(before={"status": EntryStatus.PENDING}, after={"status": EntryStatus.SUBMITTED}),
        )

        self.assertEqual(len(db.added), 1)
        row = db.added[0]
        self.assertIsInstance(row, AuditLog)
        self.assertEqual(row.details["changed_fields"], ["status"])
        self.assertEqual(row.details["after"], {"status": "submitted"})

    def test_failed_write_is_rolled_back_and_logged(self) -> None:
        db = _FakeAuditDB(fail_commit=True)

        with self.assertLogs("timeclock.audit", "ERROR") as logs:
            log_audit(
                db,
                actor_type=AuditActorType.USER,
                actor_id="90",
                action="TIMECLOCK_CLOCK_IN",
                success=True,
            )

        self.assertEqual(db.rollbacks, 1)
        self.assertIn("audit_log_write_failed", logs.output[0])


if __name__ == "__main__":
    unittest.main()
