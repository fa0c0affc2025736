from __future__ import annotations

import unittest
from datetime import datetime, timezone
from typing import Any

from timeclock.errors import ApiError, EntryStateError
from timeclock.models import Department, ManagerAssignment, PayPeriodLock, User
from timeclock.services.manager_assignments import create_manager_assignment, delete_manager_assignment
from timeclock.services.pay_period_lock import (
    ensure_not_in_locked_period,
    get_pay_period_lock_status,
    lock_pay_period,
    unlock_pay_period,
)

UTC = timezone.utc
START = datetime(2026, 3, 1, 0, 0, tzinfo=UTC)
END = datetime(2026, 3, 14, 23, 59, 59, tzinfo=UTC)


class _FakeAdminDB:
    def __init__(self, *, row: Any = None, users: dict[int, User] | None = None, departments: dict[int, Department] | None = None):
        self.row = row
        self.users = users or {}
        self.departments = departments or {}
        self.added: list[Any] = []
        self.deleted: list[Any] = []
        self.commits = 0

    def get(self, model, pk):  # type: ignore[no-untyped-def]
        if model is User:
            return self.users.get(pk)
        if model is Department:
            return self.departments.get(pk)
        return None

    def scalar(self, _statement):  # type: ignore[no-untyped-def]
        return self.row

    def add(self, obj: Any) -> None:
        self.added.append(obj)

    def delete(self, obj: Any) -> None:
        self.deleted.append(obj)

    def commit(self) -> None:
        self.commits += 1

    def refresh(self, obj: Any) -> None:
        if getattr(obj, "id", None) is None:
            obj.id = 1


class PayPeriodLockTests(unittest.TestCase):
    def test_lock_creates_row(self) -> None:
        db = _FakeAdminDB()

        lock = lock_pay_period(db, START, END, locked_by=90, now=END)

        self.assertEqual(db.added, [lock])
        self.assertTrue(lock.is_active)
        self.assertEqual(lock.locked_by, 90)
        self.assertEqual(lock.locked_at, END)

    def test_relock_reactivates_existing_row(self) -> None:
        existing = PayPeriodLock(id=4, period_start=START, period_end=END, is_active=False, locked_by=1)
        db = _FakeAdminDB(row=existing)

        lock = lock_pay_period(db, START, END, locked_by=90, now=END)

        self.assertIs(lock, existing)
        self.assertTrue(lock.is_active)
        self.assertEqual(lock.locked_by, 90)
        self.assertEqual(db.added, [])

    def test_inverted_range_is_rejected(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            lock_pay_period(_FakeAdminDB(), END, START, locked_by=90)
        self.assertEqual(ctx.exception.code, "INVALID_PERIOD")

    def test_unlock_is_soft(self) -> None:
        existing = PayPeriodLock(id=4, period_start=START, period_end=END, is_active=True, locked_by=1)
        db = _FakeAdminDB(row=existing)

        lock = unlock_pay_period(db, START, END)

        self.assertFalse(lock.is_active)
        self.assertFalse(get_pay_period_lock_status(db, START, END).is_locked)

    def test_unlock_missing_lock(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            unlock_pay_period(_FakeAdminDB(), START, END)
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertEqual(ctx.exception.code, "PAY_PERIOD_LOCK_NOT_FOUND")

    def test_locked_period_blocks_changes(self) -> None:
        db = _FakeAdminDB(row=PayPeriodLock(id=4, period_start=START, period_end=END, is_active=True))
        ensure_not_in_locked_period(_FakeAdminDB(), START, None)
        with self.assertRaises(EntryStateError) as ctx:
            ensure_not_in_locked_period(db, None, START)
        self.assertEqual(ctx.exception.code, "PERIOD_LOCKED")


class ManagerAssignmentTests(unittest.TestCase):
    def setUp(self) -> None:
        self.user = User(id=90, name="Manager", email="manager@example.com", is_active=True)
        self.department = Department(id=1, name="Kitchen", is_active=True)

    def test_create_assignment(self) -> None:
        db = _FakeAdminDB(users={90: self.user}, departments={1: self.department})

        assignment = create_manager_assignment(db, user_id=90, department_id=1)

        self.assertEqual((assignment.user_id, assignment.department_id), (90, 1))
        self.assertEqual(db.commits, 1)

    def test_unknown_user_or_department(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            create_manager_assignment(_FakeAdminDB(departments={1: self.department}), user_id=90, department_id=1)
        self.assertEqual(ctx.exception.code, "USER_NOT_FOUND")

        with self.assertRaises(ApiError) as ctx:
            create_manager_assignment(_FakeAdminDB(users={90: self.user}), user_id=90, department_id=1)
        self.assertEqual(ctx.exception.code, "DEPARTMENT_NOT_FOUND")

    def test_duplicate_assignment_conflicts(self) -> None:
        db = _FakeAdminDB(
            row=ManagerAssignment(id=3, user_id=90, department_id=1),
            users={90: self.user},
            departments={1: self.department},
        )
        with self.assertRaises(ApiError) as ctx:
            create_manager_assignment(db, user_id=90, department_id=1)
        self.assertEqual(ctx.exception.status_code, 409)
        self.assertEqual(ctx.exception.code, "ASSIGNMENT_EXISTS")

    def test_delete_assignment(self) -> None:
        existing = ManagerAssignment(id=3, user_id=90, department_id=1)
        db = _FakeAdminDB(row=existing)

        self.assertIs(delete_manager_assignment(db, user_id=90, department_id=1), existing)
        self.assertEqual(db.deleted, [existing])

        with self.assertRaises(ApiError) as ctx:
            delete_manager_assignment(_FakeAdminDB(), user_id=90, department_id=1)
        self.assertEqual(ctx.exception.code, "ASSIGNMENT_NOT_FOUND")


if __name__ == "__main__":
    unittest.main()
