from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from timeclock.audit import AuditChange, log_audit
from timeclock.db import get_db
from timeclock.models import AuditActorType, ManagerAssignment
from timeclock.schemas import (
    ManagerAssignmentCreate,
    ManagerAssignmentRead,
    OvertimeConfigRead,
    PayPeriodConfigRead,
    PayPeriodLockRead,
    PayPeriodLockRequest,
    PayPeriodLockStatusResponse,
    RulesConfigRead,
    RulesConfigUpdate,
    TimeclockConfigRead,
    TimeclockConfigUpdate,
)
from timeclock.security import Actor, require_actor, require_capability
from timeclock.services.config_store import (
    load_overtime_config,
    load_pay_period_config,
    load_rules_config,
    update_rules_config,
    update_timeclock_config,
)
from timeclock.services.manager_assignments import (
    create_manager_assignment,
    delete_manager_assignment,
    list_manager_assignments,
)
from timeclock.services.pay_period_lock import (
    get_pay_period_lock_status,
    lock_pay_period,
    unlock_pay_period,
)

router = APIRouter(prefix="/api/timeclock", tags=["timeclock-admin"])


def _client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def _user_agent(request: Request) -> str | None:
    return request.headers.get("user-agent")


def _audit(
    db: Session,
    request: Request,
    actor: Actor,
    *,
    action: str,
    entity_type: str,
    entity_id: str | None,
    change: AuditChange,
) -> None:
    log_audit(
        db,
        actor_type=AuditActorType.USER,
        actor_id=str(actor.user_id),
        action=action,
        success=True,
        entity_type=entity_type,
        entity_id=entity_id,
        ip=_client_ip(request),
        user_agent=_user_agent(request),
        change=change,
        request_id=getattr(request.state, "request_id", None),
    )


def _assignment_read(assignment: ManagerAssignment) -> ManagerAssignmentRead:
    return ManagerAssignmentRead(
        id=assignment.id,
        user_id=assignment.user_id,
        department_id=assignment.department_id,
        user_name=assignment.user.name if assignment.user is not None else None,
        department_name=assignment.department.name if assignment.department is not None else None,
        created_at=assignment.created_at,
    )


@router.get("/rules-config", response_model=RulesConfigRead)
def get_rules_config(
    _actor: Actor = Depends(require_actor),
    db: Session = Depends(get_db),
) -> RulesConfigRead:
    return RulesConfigRead.model_validate(load_rules_config(db))


@router.put("/rules-config", response_model=RulesConfigRead)
def put_rules_config(
    payload: RulesConfigUpdate,
    request: Request,
    actor: Actor = Depends(require_capability("can_manage_config")),
    db: Session = Depends(get_db),
) -> RulesConfigRead:
    changes = payload.changes()
    row, before = update_rules_config(db, changes)
    _audit(
        db,
        request,
        actor,
        action="TIMECLOCK_RULES_CONFIG_UPDATED",
        entity_type="TimeclockRulesConfig",
        entity_id=str(row.id),
        change=AuditChange(before=before, after=changes),
    )
    return RulesConfigRead.model_validate(row)


@router.get("/config", response_model=TimeclockConfigRead)
def get_timeclock_config(
    _actor: Actor = Depends(require_actor),
    db: Session = Depends(get_db),
) -> TimeclockConfigRead:
    return TimeclockConfigRead(
        overtime=OvertimeConfigRead.model_validate(load_overtime_config(db)),
        pay_period=PayPeriodConfigRead.model_validate(load_pay_period_config(db)),
    )


@router.put("/config", response_model=TimeclockConfigRead)
def put_timeclock_config(
    payload: TimeclockConfigUpdate,
    request: Request,
    actor: Actor = Depends(require_capability("can_manage_config")),
    db: Session = Depends(get_db),
) -> TimeclockConfigRead:
    overtime_changes = payload.overtime_changes()
    pay_period_changes = payload.pay_period_changes()
    overtime_row, pay_period_row, before = update_timeclock_config(
        db,
        overtime_changes=overtime_changes,
        pay_period_changes=pay_period_changes,
    )
    _audit(
        db,
        request,
        actor,
        action="TIMECLOCK_CONFIG_UPDATED",
        entity_type="TimeclockConfig",
        entity_id=None,
        change=AuditChange(
            before=before,
            after={"overtime": overtime_changes, "pay_period": pay_period_changes},
        ),
    )
    return TimeclockConfigRead(
        overtime=OvertimeConfigRead.model_validate(overtime_row),
        pay_period=PayPeriodConfigRead.model_validate(pay_period_row),
    )


@router.get("/manager-assignments", response_model=list[ManagerAssignmentRead])
def get_manager_assignments(
    user_id: int | None = Query(default=None, ge=1),
    department_id: int | None = Query(default=None, ge=1),
    _actor: Actor = Depends(require_capability("can_assign_managers")),
    db: Session = Depends(get_db),
) -> list[ManagerAssignmentRead]:
    assignments = list_manager_assignments(db, user_id=user_id, department_id=department_id)
    return [_assignment_read(item) for item in assignments]


@router.post("/manager-assignments", response_model=ManagerAssignmentRead, status_code=201)
def post_manager_assignment(
    payload: ManagerAssignmentCreate,
    request: Request,
    actor: Actor = Depends(require_capability("can_assign_managers")),
    db: Session = Depends(get_db),
) -> ManagerAssignmentRead:
    assignment = create_manager_assignment(db, user_id=payload.user_id, department_id=payload.department_id)
    _audit(
        db,
        request,
        actor,
        action="MANAGER_ASSIGNMENT_CREATED",
        entity_type="ManagerAssignment",
        entity_id=str(assignment.id),
        change=AuditChange(after={"user_id": assignment.user_id, "department_id": assignment.department_id}),
    )
    return _assignment_read(assignment)


@router.delete("/manager-assignments")
def remove_manager_assignment(
    request: Request,
    user_id: int = Query(ge=1),
    department_id: int = Query(ge=1),
    actor: Actor = Depends(require_capability("can_assign_managers")),
    db: Session = Depends(get_db),
) -> dict[str, bool]:
    assignment = delete_manager_assignment(db, user_id=user_id, department_id=department_id)
    _audit(
        db,
        request,
        actor,
        action="MANAGER_ASSIGNMENT_DELETED",
        entity_type="ManagerAssignment",
        entity_id=str(assignment.id),
        change=AuditChange(before={"user_id": user_id, "department_id": department_id}),
    )
    return {"ok": True}


@router.get("/pay-period-lock", response_model=PayPeriodLockStatusResponse)
def get_pay_period_lock(
    period_start: datetime = Query(),
    period_end: datetime = Query(),
    _actor: Actor = Depends(require_capability("can_manage_config")),
    db: Session = Depends(get_db),
) -> PayPeriodLockStatusResponse:
    status = get_pay_period_lock_status(db, period_start, period_end)
    return PayPeriodLockStatusResponse(
        is_locked=status.is_locked,
        lock=PayPeriodLockRead.model_validate(status.lock) if status.lock is not None else None,
    )


@router.post("/pay-period-lock", response_model=PayPeriodLockRead)
def post_pay_period_lock(
    payload: PayPeriodLockRequest,
    request: Request,
    actor: Actor = Depends(require_capability("can_manage_config")),
    db: Session = Depends(get_db),
) -> PayPeriodLockRead:
    lock = lock_pay_period(db, payload.period_start, payload.period_end, locked_by=actor.user_id)
    _audit(
        db,
        request,
        actor,
        action="PAY_PERIOD_LOCKED",
        entity_type="PayPeriodLock",
        entity_id=str(lock.id),
        change=AuditChange(
            after={
                "period_start": lock.period_start,
                "period_end": lock.period_end,
                "is_active": True,
                "locked_by": actor.user_id,
            }
        ),
    )
    return PayPeriodLockRead.model_validate(lock)


@router.delete("/pay-period-lock", response_model=PayPeriodLockRead)
def delete_pay_period_lock(
    payload: PayPeriodLockRequest,
    request: Request,
    actor: Actor = Depends(require_capability("can_manage_config")),
    db: Session = Depends(get_db),
) -> PayPeriodLockRead:
    lock = unlock_pay_period(db, payload.period_start, payload.period_end)
    _audit(
        db,
        request,
        actor,
        action="PAY_PERIOD_UNLOCKED",
        entity_type="PayPeriodLock",
        entity_id=str(lock.id),
        change=AuditChange(
            before={"is_active": True},
            after={"is_active": False},
            context={
                "period_start": lock.period_start,
                "period_end": lock.period_end,
                "unlocked_by": actor.user_id,
            },
        ),
    )
    return PayPeriodLockRead.model_validate(lock)
