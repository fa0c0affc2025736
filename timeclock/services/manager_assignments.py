from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from timeclock.errors import ApiError
from timeclock.models import Department, ManagerAssignment, User

logger = logging.getLogger("timeclock.manager_assignments")


def list_manager_assignments(
    db: Session,
    *,
    user_id: int | None = None,
    department_id: int | None = None,
) -> list[ManagerAssignment]:
    stmt = select(ManagerAssignment).options(
        selectinload(ManagerAssignment.user),
        selectinload(ManagerAssignment.department),
    )
    if user_id is not None:
        stmt = stmt.where(ManagerAssignment.user_id == user_id)
    if department_id is not None:
        stmt = stmt.where(ManagerAssignment.department_id == department_id)
    stmt = stmt.order_by(ManagerAssignment.user_id.asc(), ManagerAssignment.department_id.asc())
    return list(db.scalars(stmt).all())


def _find_assignment(db: Session, user_id: int, department_id: int) -> ManagerAssignment | None:
    return db.scalar(
        select(ManagerAssignment).where(
            ManagerAssignment.user_id == user_id,
            ManagerAssignment.department_id == department_id,
        )
    )


def create_manager_assignment(db: Session, *, user_id: int, department_id: int) -> ManagerAssignment:
    user = db.get(User, user_id)
    if user is None:
        raise ApiError(status_code=404, code="USER_NOT_FOUND", message="User not found.")
    department = db.get(Department, department_id)
    if department is None:
        raise ApiError(status_code=404, code="DEPARTMENT_NOT_FOUND", message="Department not found.")
    if _find_assignment(db, user_id, department_id) is not None:
        raise ApiError(
            status_code=409,
            code="ASSIGNMENT_EXISTS",
            message="This manager is already assigned to this department.",
        )

    assignment = ManagerAssignment(user_id=user_id, department_id=department_id)
    db.add(assignment)
    db.commit()
    db.refresh(assignment)
    logger.info("manager_assignment_created", extra={"user_id": user_id, "department_id": department_id})
    return assignment


def delete_manager_assignment(db: Session, *, user_id: int, department_id: int) -> ManagerAssignment:
    assignment = _find_assignment(db, user_id, department_id)
    if assignment is None:
        raise ApiError(status_code=404, code="ASSIGNMENT_NOT_FOUND", message="Assignment not found.")

    db.delete(assignment)
    db.commit()
    logger.info("manager_assignment_deleted", extra={"user_id": user_id, "department_id": department_id})
    return assignment
