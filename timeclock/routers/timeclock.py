from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from timeclock.audit import AuditChange, log_audit
from timeclock.db import get_db
from timeclock.models import AuditActorType, EntryStatus, TimeclockEntry
from timeclock.schemas import (
    AlertStatusResponse,
    BulkApproveItemRead,
    BulkApproveRequest,
    BulkApproveResponse,
    DepartmentRead,
    DepartmentSummaryRead,
    EmployeeSummaryRead,
    EntryEditRequest,
    EntryOvertimeFlagsRead,
    EntryOwnerRead,
    EntryRead,
    EntryRejectRequest,
    OvertimeThresholdsRead,
    OwnEntriesResponse,
    PayPeriodListResponse,
    PayPeriodRead,
    TeamEntryRead,
    TeamSummaryResponse,
    ThresholdStatusRead,
)
from timeclock.security import Actor, require_actor
from timeclock.services.config_store import load_pay_period_config
from timeclock.services.entries import (
    BulkOutcome,
    Decision,
    bulk_approve_entries,
    clock_in,
    clock_out_entry,
    decide_entry,
    edit_entry,
    get_entry_for_actor,
    get_own_alert_status,
    list_missed_punches,
    list_own_entries,
    list_pending_entries,
    submit_entry,
)
from timeclock.services.pay_period import PayPeriod, get_recent_periods
from timeclock.services.summary import EntryOvertimeFlags, get_team_summary
from timeclock.settings import get_settings, get_timeclock_timezone

router = APIRouter(prefix="/api/timeclock", tags=["timeclock"])


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
    entry_id: int | None,
    change: AuditChange,
) -> None:
    log_audit(
        db,
        actor_type=AuditActorType.USER,
        actor_id=str(actor.user_id),
        action=action,
        success=True,
        entity_type="TimeclockEntry",
        entity_id=str(entry_id) if entry_id is not None else None,
        ip=_client_ip(request),
        user_agent=_user_agent(request),
        change=change,
        request_id=getattr(request.state, "request_id", None),
    )


def _period_read(period: PayPeriod, index: int) -> PayPeriodRead:
    tz = get_timeclock_timezone()
    return PayPeriodRead(
        index=index,
        start_date=period.start_date,
        end_date=period.end_date,
        label=period.label,
        type=period.type,
        starts_at=period.starts_at(tz),
        ends_at=period.ends_at(tz),
    )


def _owner_read(entry: TimeclockEntry) -> EntryOwnerRead | None:
    owner = entry.user
    if owner is None:
        return None
    return EntryOwnerRead(
        id=owner.id,
        name=owner.name,
        email=owner.email,
        department_id=owner.department_id,
        department_name=owner.department.name if owner.department is not None else None,
    )


def _team_entry_read(entry: TimeclockEntry, flags: EntryOvertimeFlags | None = None) -> TeamEntryRead:
    payload = EntryRead.model_validate(entry).model_dump()
    return TeamEntryRead(
        **payload,
        user=_owner_read(entry),
        ot_flags=EntryOvertimeFlagsRead(**vars(flags)) if flags is not None else None,
    )


def _today() -> date:
    return datetime.now(get_timeclock_timezone()).date()


@router.post("/clock-in", response_model=EntryRead)
def clock_in_endpoint(
    request: Request,
    actor: Actor = Depends(require_actor),
    db: Session = Depends(get_db),
) -> EntryRead:
    entry = clock_in(db, actor)
    _audit(
        db,
        request,
        actor,
        action="TIMECLOCK_CLOCK_IN",
        entry_id=entry.id,
        change=AuditChange(after={"clock_in": entry.clock_in, "status": entry.status}),
    )
    return EntryRead.model_validate(entry)


def _clock_out(db: Session, request: Request, actor: Actor, entry_id: int | None) -> EntryRead:
    entry = clock_out_entry(db, actor, entry_id)
    _audit(
        db,
        request,
        actor,
        action="TIMECLOCK_CLOCK_OUT",
        entry_id=entry.id,
        change=AuditChange(
            before={"clock_out": None},
            after={
                "clock_in": entry.clock_in,
                "clock_out": entry.clock_out,
                "raw_duration": entry.raw_duration,
                "duration": entry.duration,
                "break_deducted": entry.break_deducted,
                "flag_reason": entry.flag_reason,
                "auto_approved": entry.auto_approved,
                "status": entry.status,
                "is_locked": entry.is_locked,
            },
        ),
    )
    return EntryRead.model_validate(entry)


@router.post("/clock-out", response_model=EntryRead)
def clock_out_endpoint(
    request: Request,
    actor: Actor = Depends(require_actor),
    db: Session = Depends(get_db),
) -> EntryRead:
    return _clock_out(db, request, actor, None)


@router.post("/entries/{entry_id}/clock-out", response_model=EntryRead)
def clock_out_entry_endpoint(
    entry_id: int,
    request: Request,
    actor: Actor = Depends(require_actor),
    db: Session = Depends(get_db),
) -> EntryRead:
    return _clock_out(db, request, actor, entry_id)


@router.get("/entries", response_model=OwnEntriesResponse)
def list_own_entries_endpoint(
    period: int = Query(default=0, ge=0, le=104),
    actor: Actor = Depends(require_actor),
    db: Session = Depends(get_db),
) -> OwnEntriesResponse:
    pay_period, entries = list_own_entries(db, actor, period, today=_today())
    return OwnEntriesResponse(
        period=_period_read(pay_period, period),
        entries=[EntryRead.model_validate(entry) for entry in entries],
    )


@router.get("/entries/{entry_id}", response_model=TeamEntryRead)
def get_entry_endpoint(
    entry_id: int,
    actor: Actor = Depends(require_actor),
    db: Session = Depends(get_db),
) -> TeamEntryRead:
    return _team_entry_read(get_entry_for_actor(db, entry_id, actor))


@router.post("/entries/{entry_id}/submit", response_model=EntryRead)
def submit_entry_endpoint(
    entry_id: int,
    request: Request,
    actor: Actor = Depends(require_actor),
    db: Session = Depends(get_db),
) -> EntryRead:
    entry = submit_entry(db, entry_id, actor)
    _audit(
        db,
        request,
        actor,
        action="TIMECLOCK_ENTRY_SUBMITTED",
        entry_id=entry.id,
        change=AuditChange(before={"status": EntryStatus.PENDING}, after={"status": EntryStatus.SUBMITTED}),
    )
    return EntryRead.model_validate(entry)


@router.post("/entries/{entry_id}/approve", response_model=EntryRead)
def approve_entry_endpoint(
    entry_id: int,
    request: Request,
    actor: Actor = Depends(require_actor),
    db: Session = Depends(get_db),
) -> EntryRead:
    entry = decide_entry(db, entry_id, actor, Decision.APPROVE)
    _audit(
        db,
        request,
        actor,
        action="TIMECLOCK_ENTRY_APPROVED",
        entry_id=entry.id,
        change=AuditChange(
            after={
                "status": EntryStatus.APPROVED,
                "is_locked": True,
                "approved_by": actor.user_id,
                "approved_at": entry.approved_at,
            }
        ),
    )
    return EntryRead.model_validate(entry)


@router.post("/entries/{entry_id}/reject", response_model=EntryRead)
def reject_entry_endpoint(
    entry_id: int,
    payload: EntryRejectRequest,
    request: Request,
    actor: Actor = Depends(require_actor),
    db: Session = Depends(get_db),
) -> EntryRead:
    entry = decide_entry(db, entry_id, actor, Decision.REJECT, payload.note)
    _audit(
        db,
        request,
        actor,
        action="TIMECLOCK_ENTRY_REJECTED",
        entry_id=entry.id,
        change=AuditChange(
            after={
                "status": EntryStatus.REJECTED,
                "is_locked": False,
                "rejected_note": entry.rejected_note,
            }
        ),
    )
    return EntryRead.model_validate(entry)


@router.put("/entries/{entry_id}", response_model=EntryRead)
def edit_entry_endpoint(
    entry_id: int,
    payload: EntryEditRequest,
    request: Request,
    actor: Actor = Depends(require_actor),
    db: Session = Depends(get_db),
) -> EntryRead:
    result = edit_entry(db, entry_id, actor, clock_in=payload.clock_in, clock_out=payload.clock_out)
    _audit(
        db,
        request,
        actor,
        action="TIMECLOCK_ENTRY_EDITED",
        entry_id=result.entry.id,
        change=AuditChange(before=result.before, after=result.after),
    )
    return EntryRead.model_validate(result.entry)


@router.post("/bulk-approve", response_model=BulkApproveResponse)
def bulk_approve_endpoint(
    payload: BulkApproveRequest,
    request: Request,
    actor: Actor = Depends(require_actor),
    db: Session = Depends(get_db),
) -> BulkApproveResponse:
    result = bulk_approve_entries(db, payload.entry_ids, actor)
    for item in result.items:
        if item.outcome != BulkOutcome.APPROVED:
            continue
        _audit(
            db,
            request,
            actor,
            action="TIMECLOCK_ENTRY_APPROVED",
            entry_id=item.entry_id,
            change=AuditChange(
                before={"status": item.previous_status, "is_locked": item.previous_locked},
                after={"status": EntryStatus.APPROVED, "is_locked": True},
                context={"employee_name": item.employee_name, "bulk_operation": True, "approved_by": actor.user_id},
            ),
        )
    return BulkApproveResponse(
        message=result.message,
        approved=result.approved,
        skipped=result.skipped,
        failed=result.failed,
        details=[
            BulkApproveItemRead(entry_id=item.entry_id, status=item.outcome.value, reason=item.reason)
            for item in result.items
        ],
    )


@router.get("/team", response_model=TeamSummaryResponse)
def team_summary_endpoint(
    period: int = Query(default=0, ge=0, le=104),
    department_id: int | None = Query(default=None, ge=1),
    user_id: int | None = Query(default=None, ge=1),
    status: EntryStatus | None = Query(default=None),
    actor: Actor = Depends(require_actor),
    db: Session = Depends(get_db),
) -> TeamSummaryResponse:
    summary = get_team_summary(
        db,
        actor,
        period,
        department_id=department_id,
        user_id=user_id,
        status=status,
        today=_today(),
    )
    policy = summary.overtime_policy
    return TeamSummaryResponse(
        period=_period_read(summary.period, period),
        employees=[
            EmployeeSummaryRead(
                **{
                    **vars(employee),
                    "overtime_minutes": employee.overtime_minutes,
                    "has_overtime": employee.has_overtime,
                }
            )
            for employee in summary.employees
        ],
        departments=[DepartmentSummaryRead.model_validate(item) for item in summary.departments],
        entries=[_team_entry_read(entry, summary.entry_flags.get(entry.id)) for entry in summary.entries],
        bulk_approvable_ids=summary.bulk_approvable_ids,
        accessible_departments=[DepartmentRead.model_validate(item) for item in summary.accessible_departments],
        total_entries=summary.total_entries,
        overtime_config=(
            OvertimeThresholdsRead(daily_threshold=policy.daily_threshold, weekly_threshold=policy.weekly_threshold)
            if policy is not None
            else None
        ),
    )


@router.get("/pending", response_model=list[TeamEntryRead])
def pending_entries_endpoint(
    department_id: int | None = Query(default=None, ge=1),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    actor: Actor = Depends(require_actor),
    db: Session = Depends(get_db),
) -> list[TeamEntryRead]:
    entries = list_pending_entries(db, actor, department_id=department_id, start=start, end=end)
    return [_team_entry_read(entry) for entry in entries]


@router.get("/missed-punches", response_model=list[TeamEntryRead])
def missed_punches_endpoint(
    actor: Actor = Depends(require_actor),
    db: Session = Depends(get_db),
) -> list[TeamEntryRead]:
    return [_team_entry_read(entry) for entry in list_missed_punches(db, actor)]


@router.get("/alerts", response_model=AlertStatusResponse)
def alerts_endpoint(
    actor: Actor = Depends(require_actor),
    db: Session = Depends(get_db),
) -> AlertStatusResponse:
    result = get_own_alert_status(db, actor, now=datetime.now(timezone.utc))
    if result.status is None:
        return AlertStatusResponse(
            enabled=False,
            notify_employee=result.notify_employee,
            active_minutes=result.active_minutes,
        )
    return AlertStatusResponse(
        enabled=True,
        notify_employee=result.notify_employee,
        active_minutes=result.active_minutes,
        daily=ThresholdStatusRead.model_validate(result.status.daily),
        weekly=ThresholdStatusRead.model_validate(result.status.weekly),
    )


@router.get("/pay-periods", response_model=PayPeriodListResponse)
def pay_periods_endpoint(
    count: int | None = Query(default=None, ge=1, le=52),
    _actor: Actor = Depends(require_actor),
    db: Session = Depends(get_db),
) -> PayPeriodListResponse:
    periods = get_recent_periods(
        load_pay_period_config(db),
        count or get_settings().recent_pay_period_count,
        today=_today(),
    )
    return PayPeriodListResponse(periods=[_period_read(item, index) for index, item in enumerate(periods)])
