from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Mapping

from sqlalchemy.orm import Session

from timeclock.models import AuditActorType, AuditLog

logger = logging.getLogger("timeclock.audit")


def _jsonable(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


@dataclass(frozen=True)
class AuditChange:
    """State of the audited record before and after a mutation.

    ``before`` is ``None`` for creations and ``after`` is ``None`` for
    deletions. ``context`` carries facts that are not record fields, such as
    ``bulk_operation``.
    """

    before: Mapping[str, Any] | None = None
    after: Mapping[str, Any] | None = None
    context: Mapping[str, Any] = field(default_factory=dict)

    @property
    def changed_fields(self) -> list[str]:
        before = _jsonable(self.before or {})
        after = _jsonable(self.after or {})
        return sorted(key for key in set(before) | set(after) if before.get(key) != after.get(key))

    def to_details(self) -> dict[str, Any]:
        details: dict[str, Any] = _jsonable(self.context)
        if self.before is not None:
            details["before"] = _jsonable(self.before)
        if self.after is not None:
            details["after"] = _jsonable(self.after)
        if self.before is not None and self.after is not None:
            details["changed_fields"] = self.changed_fields
        return details


def log_audit(
    db: Session,
    *,
    actor_type: AuditActorType,
    actor_id: str,
    action: str,
    success: bool,
    entity_type: str | None = None,
    entity_id: str | None = None,
    ip: str | None = None,
    user_agent: str | None = None,
    change: AuditChange | None = None,
    request_id: str | None = None,
) -> None:
    details = change.to_details() if change is not None else {}
    audit = AuditLog(
        ts_utc=datetime.now(timezone.utc),
        actor_type=actor_type,
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        ip=ip,
        user_agent=user_agent,
        success=success,
        details=details,
    )
    db.add(audit)
    try:
        db.commit()
    except Exception:
        # The mutation being audited is already committed; a lost audit row only logs.
        db.rollback()
        logger.exception(
            "audit_log_write_failed",
            extra={
                "request_id": request_id,
                "action": action,
                "actor_id": actor_id,
                "entity_type": entity_type,
                "entity_id": entity_id,
            },
        )
        return

    logger.info(
        "audit_event",
        extra={
            "request_id": request_id,
            "action": action,
            "actor_type": actor_type.value,
            "actor_id": actor_id,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "success": success,
            "changed_fields": details.get("changed_fields"),
        },
    )
