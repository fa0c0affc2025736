from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from timeclock.models import EntryStatus, MinDurationAction, PayPeriodType, RoundingMode


class EntryRead(BaseModel):
    id: int
    user_id: int
    clock_in: datetime
    clock_out: datetime | None
    raw_duration: int | None
    break_deducted: int
    duration: int | None
    flag_reason: str | None
    auto_approved: bool
    status: EntryStatus
    is_locked: bool
    rejected_note: str | None
    approved_by: int | None
    approved_at: datetime | None
    last_edited_by: int | None
    last_edited_at: datetime | None

    model_config = ConfigDict(from_attributes=True)


class EntryOwnerRead(BaseModel):
    id: int
    name: str
    email: str
    department_id: int | None
    department_name: str | None = None


class EntryOvertimeFlagsRead(BaseModel):
    exceeds_daily_threshold: bool
    has_employee_overtime: bool
    daily_overtime_minutes: int
    weekly_overtime_minutes: int


class TeamEntryRead(EntryRead):
    user: EntryOwnerRead | None = None
    ot_flags: EntryOvertimeFlagsRead | None = None


class EntryRejectRequest(BaseModel):
    note: str | None = Field(default=None, max_length=2000)


class EntryEditRequest(BaseModel):
    clock_in: datetime | None = None
    clock_out: datetime | None = None


class BulkApproveRequest(BaseModel):
    entry_ids: list[int] = Field(default_factory=list, max_length=500)


class BulkApproveItemRead(BaseModel):
    entry_id: int
    status: Literal["approved", "skipped", "failed"]
    reason: str | None = None


class BulkApproveResponse(BaseModel):
    message: str
    approved: int
    skipped: int
    failed: int
    details: list[BulkApproveItemRead]


class PayPeriodRead(BaseModel):
    index: int
    start_date: date
    end_date: date
    label: str
    type: PayPeriodType
    starts_at: datetime
    ends_at: datetime


class OwnEntriesResponse(BaseModel):
    period: PayPeriodRead
    entries: list[EntryRead]


class EmployeeSummaryRead(BaseModel):
    user_id: int
    user_name: str | None
    user_email: str | None
    department_id: int | None
    department_name: str | None
    total_minutes: int
    regular_minutes: int
    overtime_minutes: int
    daily_overtime_minutes: int
    weekly_overtime_minutes: int
    has_overtime: bool
    entry_count: int
    open_count: int
    pending_count: int
    submitted_count: int
    approved_count: int
    rejected_count: int

    model_config = ConfigDict(from_attributes=True)


class DepartmentSummaryRead(BaseModel):
    department_id: int | None
    department_name: str | None
    employee_count: int
    entry_count: int
    total_minutes: int
    regular_minutes: int
    overtime_minutes: int

    model_config = ConfigDict(from_attributes=True)


class DepartmentRead(BaseModel):
    id: int
    name: str

    model_config = ConfigDict(from_attributes=True)


class OvertimeThresholdsRead(BaseModel):
    daily_threshold: int | None
    weekly_threshold: int | None


class TeamSummaryResponse(BaseModel):
    period: PayPeriodRead
    employees: list[EmployeeSummaryRead]
    departments: list[DepartmentSummaryRead]
    entries: list[TeamEntryRead]
    bulk_approvable_ids: list[int]
    accessible_departments: list[DepartmentRead]
    total_entries: int
    overtime_config: OvertimeThresholdsRead | None


class ThresholdStatusRead(BaseModel):
    current_minutes: int
    threshold_minutes: int | None
    approaching: bool
    exceeded: bool

    model_config = ConfigDict(from_attributes=True)


class AlertStatusResponse(BaseModel):
    enabled: bool
    notify_employee: bool
    active_minutes: int
    daily: ThresholdStatusRead | None = None
    weekly: ThresholdStatusRead | None = None


class RulesConfigRead(BaseModel):
    rounding_mode: RoundingMode
    break_deduction_enabled: bool
    break_deduction_after_hours: float
    break_deduction_minutes: int
    min_duration_enabled: bool
    min_duration_seconds: int
    min_duration_action: MinDurationAction
    auto_approve_enabled: bool
    auto_approve_min_hours: float
    auto_approve_max_hours: float
    auto_approve_block_on_overtime: bool
    missed_punch_enabled: bool
    missed_punch_threshold_hours: float

    model_config = ConfigDict(from_attributes=True)


class RulesConfigUpdate(BaseModel):
    rounding_mode: RoundingMode | None = None
    break_deduction_enabled: bool | None = None
    break_deduction_after_hours: float | None = Field(default=None, ge=0, le=24)
    break_deduction_minutes: int | None = Field(default=None, ge=0, le=120)
    min_duration_enabled: bool | None = None
    min_duration_seconds: int | None = Field(default=None, ge=0, le=3600)
    min_duration_action: MinDurationAction | None = None
    auto_approve_enabled: bool | None = None
    auto_approve_min_hours: float | None = Field(default=None, ge=0, le=24)
    auto_approve_max_hours: float | None = Field(default=None, ge=0, le=24)
    auto_approve_block_on_overtime: bool | None = None
    missed_punch_enabled: bool | None = None
    missed_punch_threshold_hours: float | None = Field(default=None, ge=1, le=72)

    @model_validator(mode="after")
    def _validate_hour_window(self) -> "RulesConfigUpdate":
        if (
            self.auto_approve_min_hours is not None
            and self.auto_approve_max_hours is not None
            and self.auto_approve_min_hours > self.auto_approve_max_hours
        ):
            raise ValueError("auto_approve_min_hours must not exceed auto_approve_max_hours.")
        return self

    def changes(self) -> dict[str, object]:
        values = self.model_dump(exclude_unset=True, exclude_none=True)
        for key in ("rounding_mode", "min_duration_action"):
            if key in values:
                values[key] = values[key].value
        return values


class OvertimeConfigRead(BaseModel):
    daily_threshold: int | None
    weekly_threshold: int | None
    alert_before_daily: int | None
    alert_before_weekly: int | None
    notify_employee: bool

    model_config = ConfigDict(from_attributes=True)


class PayPeriodConfigRead(BaseModel):
    type: PayPeriodType
    start_day_of_week: int | None
    start_date: date | None

    model_config = ConfigDict(from_attributes=True)


class TimeclockConfigRead(BaseModel):
    overtime: OvertimeConfigRead
    pay_period: PayPeriodConfigRead


class TimeclockConfigUpdate(BaseModel):
    # Null thresholds disable overtime tracking, so explicit nulls are kept.
    daily_threshold: int | None = Field(default=None, ge=0, le=1440)
    weekly_threshold: int | None = Field(default=None, ge=0, le=10080)
    alert_before_daily: int | None = Field(default=None, ge=0, le=1440)
    alert_before_weekly: int | None = Field(default=None, ge=0, le=10080)
    notify_employee: bool | None = None
    type: PayPeriodType | None = None
    start_day_of_week: int | None = Field(default=None, ge=0, le=6)
    start_date: date | None = None

    def overtime_changes(self) -> dict[str, object]:
        values = self.model_dump(
            include={"daily_threshold", "weekly_threshold", "alert_before_daily", "alert_before_weekly", "notify_employee"},
            exclude_unset=True,
        )
        if values.get("notify_employee", True) is None:
            values.pop("notify_employee")
        return values

    def pay_period_changes(self) -> dict[str, object]:
        values = self.model_dump(include={"type", "start_day_of_week", "start_date"}, exclude_unset=True)
        if "type" in values:
            if values["type"] is None:
                values.pop("type")
            else:
                values["type"] = values["type"].value
        return values


class ManagerAssignmentCreate(BaseModel):
    user_id: int = Field(ge=1)
    department_id: int = Field(ge=1)


class ManagerAssignmentRead(BaseModel):
    id: int
    user_id: int
    department_id: int
    user_name: str | None = None
    department_name: str | None = None
    created_at: datetime | None = None


class PayPeriodLockRequest(BaseModel):
    period_start: datetime
    period_end: datetime

    @model_validator(mode="after")
    def _validate_range(self) -> "PayPeriodLockRequest":
        if self.period_end < self.period_start:
            raise ValueError("period_end must not precede period_start.")
        return self


class PayPeriodLockRead(BaseModel):
    id: int
    period_start: datetime
    period_end: datetime
    is_active: bool
    locked_at: datetime
    locked_by: int | None

    model_config = ConfigDict(from_attributes=True)


class PayPeriodLockStatusResponse(BaseModel):
    is_locked: bool
    lock: PayPeriodLockRead | None = None


class PayPeriodListResponse(BaseModel):
    periods: list[PayPeriodRead]
