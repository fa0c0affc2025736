from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session

from timeclock.errors import EntryAuthorizationError
from timeclock.models import ManagerAssignment, User
from timeclock.security import Actor


@dataclass(frozen=True)
class ManagerScope:
    all_departments: bool = False
    department_ids: frozenset[int] = field(default_factory=frozenset)

    def contains(self, department_id: int | None) -> bool:
        if self.all_departments:
            return True
        return department_id is not None and department_id in self.department_ids

    @property
    def is_empty(self) -> bool:
        return not self.all_departments and not self.department_ids


def list_assigned_department_ids(db: Session, user_id: int) -> list[int]:
    return list(
        db.scalars(
            select(ManagerAssignment.department_id)
            .where(ManagerAssignment.user_id == user_id)
            .order_by(ManagerAssignment.department_id.asc())
        ).all()
    )


def resolve_manager_scope(db: Session, actor: Actor) -> ManagerScope:
    if actor.capabilities.can_view_all_entries:
        return ManagerScope(all_departments=True)
    return ManagerScope(department_ids=frozenset(list_assigned_department_ids(db, actor.user_id)))


def ensure_can_access_entry(
    actor: Actor,
    scope: ManagerScope,
    owner: User,
    *,
    allow_owner: bool = False,
    message: str = "You can only access entries in your assigned departments.",
) -> None:
    if allow_owner and owner.id == actor.user_id:
        return
    if not scope.contains(owner.department_id):
        raise EntryAuthorizationError(code="OUT_OF_SCOPE", message=message)


def ensure_department_filter_allowed(scope: ManagerScope, department_id: int | None) -> None:
    if department_id is None:
        return
    if not scope.contains(department_id):
        raise EntryAuthorizationError(
            code="OUT_OF_SCOPE",
            message="You are not assigned to this department.",
        )


def ensure_scope_not_empty(scope: ManagerScope) -> None:
    if scope.is_empty:
        raise EntryAuthorizationError(
            code="NO_DEPARTMENT_ASSIGNMENTS",
            message="You have no department assignments.",
        )
