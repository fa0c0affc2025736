from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from timeclock.errors import EntryValidationError
from timeclock.models import EntryStatus, MinDurationAction
from timeclock.services.config_store import OvertimePolicy, RulesPolicy

logger = logging.getLogger("timeclock.clock_out")

FLAG_MIN_DURATION = "min_duration"

ROUNDING_INTERVAL_SECONDS: dict[str, int] = {
    "5min": 300,
    "6min": 360,
    "7min": 420,
    "15min": 900,
}


@dataclass(frozen=True)
class MinDurationCheck:
    passed: bool
    action: Literal["pass", "flag", "reject"]


@dataclass(frozen=True)
class AutoApproveCheck:
    should_auto_approve: bool
    reason: str | None = None


@dataclass(frozen=True)
class ClockOutResult:
    raw_duration: int
    final_duration: int
    break_deducted: int
    flag_reason: str | None
    auto_approved: bool
    status: EntryStatus
    rejected_note: str | None


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def apply_break_deduction(duration_seconds: int, policy: RulesPolicy) -> tuple[int, int]:
    """Return ``(deducted_seconds, adjusted_duration)``."""
    if not policy.break_deduction_enabled:
        return 0, duration_seconds

    threshold_seconds = policy.break_deduction_after_hours * 3600
    if duration_seconds <= threshold_seconds:
        return 0, duration_seconds

    deducted = policy.break_deduction_minutes * 60
    return deducted, max(0, duration_seconds - deducted)


def apply_rounding(duration_seconds: int, mode: str) -> int:
    # Half-up to the nearest interval; a rounded value is already a multiple, so it maps to itself.
    interval = ROUNDING_INTERVAL_SECONDS.get(mode)
    if not interval:
        return duration_seconds
    return ((duration_seconds + interval // 2) // interval) * interval


def check_min_duration(duration_seconds: int, policy: RulesPolicy) -> MinDurationCheck:
    if not policy.min_duration_enabled:
        return MinDurationCheck(passed=True, action="pass")
    if duration_seconds >= policy.min_duration_seconds:
        return MinDurationCheck(passed=True, action="pass")
    if policy.min_duration_action == MinDurationAction.REJECT.value:
        return MinDurationCheck(passed=False, action="reject")
    return MinDurationCheck(passed=False, action="flag")


def check_auto_approve(
    duration_seconds: int,
    policy: RulesPolicy,
    overtime: OvertimePolicy | None,
) -> AutoApproveCheck:
    if not policy.auto_approve_enabled:
        return AutoApproveCheck(should_auto_approve=False, reason="auto-approve disabled")

    duration_hours = duration_seconds / 3600
    if duration_hours < policy.auto_approve_min_hours:
        return AutoApproveCheck(should_auto_approve=False, reason="below minimum hours")
    if duration_hours > policy.auto_approve_max_hours:
        return AutoApproveCheck(should_auto_approve=False, reason="exceeds maximum hours")

    # Same-entry check only; period totals are the aggregator's concern.
    if policy.auto_approve_block_on_overtime and overtime is not None and overtime.daily_threshold is not None:
        if duration_seconds > overtime.daily_threshold * 60:
            return AutoApproveCheck(should_auto_approve=False, reason="triggers daily overtime")

    return AutoApproveCheck(should_auto_approve=True)


def build_min_duration_note(final_duration: int, threshold_seconds: int) -> str:
    return (
        f"Auto-rejected: duration ({_round_half_up(final_duration / 60)}m) "
        f"below minimum threshold ({_round_half_up(threshold_seconds / 60)}m)"
    )


def process_clock_out(
    raw_duration_seconds: int,
    user_id: int,
    rules: RulesPolicy,
    overtime: OvertimePolicy | None,
) -> ClockOutResult:
    """Break deduction, rounding, minimum-duration check, then auto-approval.

    Pure apart from logging: persistence is the caller's job. ``user_id`` only
    tags the log records; no stage depends on it.
    """
    if raw_duration_seconds < 0:
        raise EntryValidationError(
            code="NEGATIVE_DURATION",
            message="Clock out time cannot be before clock in time.",
        )

    break_deducted, adjusted = apply_break_deduction(raw_duration_seconds, rules)
    final_duration = apply_rounding(adjusted, rules.rounding_mode)

    min_check = check_min_duration(final_duration, rules)
    if min_check.action == "reject":
        logger.info(
            "clock_out_auto_rejected",
            extra={"user_id": user_id, "final_duration": final_duration, "threshold": rules.min_duration_seconds},
        )
        return ClockOutResult(
            raw_duration=raw_duration_seconds,
            final_duration=final_duration,
            break_deducted=break_deducted,
            flag_reason=FLAG_MIN_DURATION,
            auto_approved=False,
            status=EntryStatus.REJECTED,
            rejected_note=build_min_duration_note(final_duration, rules.min_duration_seconds),
        )

    flag_reason = FLAG_MIN_DURATION if min_check.action == "flag" else None
    status = EntryStatus.PENDING
    auto_approved = False
    if flag_reason is None:
        decision = check_auto_approve(final_duration, rules, overtime)
        if decision.should_auto_approve:
            auto_approved = True
            status = EntryStatus.APPROVED
        else:
            logger.debug(
                "clock_out_left_pending",
                extra={"user_id": user_id, "final_duration": final_duration, "reason": decision.reason},
            )

    return ClockOutResult(
        raw_duration=raw_duration_seconds,
        final_duration=final_duration,
        break_deducted=break_deducted,
        flag_reason=flag_reason,
        auto_approved=auto_approved,
        status=status,
        rejected_note=None,
    )
