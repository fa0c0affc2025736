from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping
from uuid import uuid4

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from timeclock.db import get_db
from timeclock.errors import ApiError, EntryAuthorizationError
from timeclock.models import User
from timeclock.settings import get_settings

bearer_scheme = HTTPBearer(auto_error=False)

# Stored role permissions use the camelCase keys of the user directory.
_CAPABILITY_KEYS: dict[str, str] = {
    "canClockInOut": "can_clock_in_out",
    "canViewOwnEntries": "can_view_own_entries",
    "canViewTeamEntries": "can_view_team_entries",
    "canViewAllEntries": "can_view_all_entries",
    "canApproveEntries": "can_approve_entries",
    "canEditTeamEntries": "can_edit_team_entries",
    "canManageConfig": "can_manage_config",
    "canAssignManagers": "can_assign_managers",
}


@dataclass(frozen=True)
class TimeclockCapabilities:
    can_clock_in_out: bool = False
    can_view_own_entries: bool = False
    can_view_team_entries: bool = False
    can_view_all_entries: bool = False
    can_approve_entries: bool = False
    can_edit_team_entries: bool = False
    can_manage_config: bool = False
    can_assign_managers: bool = False

    @classmethod
    def full(cls) -> TimeclockCapabilities:
        return cls(**{item.name: True for item in fields(cls)})

    @property
    def is_manager(self) -> bool:
        return (
            self.can_view_team_entries
            or self.can_view_all_entries
            or self.can_approve_entries
            or self.can_edit_team_entries
        )

    def to_dict(self) -> dict[str, bool]:
        return {item.name: getattr(self, item.name) for item in fields(self)}


@dataclass(frozen=True)
class Actor:
    user_id: int
    department_id: int | None
    capabilities: TimeclockCapabilities
    name: str | None = None


def normalize_capabilities(raw: Mapping[str, Any] | None) -> TimeclockCapabilities:
    """Build capabilities from a role permission map.

    Accepts either ``{"timeclock": {"canApproveEntries": true}}`` or the flat
    inner map; snake_case names are accepted too. Unknown keys are ignored.
    """
    if not isinstance(raw, Mapping):
        return TimeclockCapabilities()

    section = raw.get("timeclock", raw)
    if not isinstance(section, Mapping):
        return TimeclockCapabilities()

    known = {item.name for item in fields(TimeclockCapabilities)}
    values: dict[str, bool] = {}
    for key, value in section.items():
        name = _CAPABILITY_KEYS.get(key, key)
        if name not in known:
            continue
        values[name] = bool(value)
    return TimeclockCapabilities(**values)


def capabilities_for_user(user: User) -> TimeclockCapabilities:
    role = user.role
    if role is None:
        return TimeclockCapabilities()
    if role.is_super_admin:
        return TimeclockCapabilities.full()
    return normalize_capabilities(role.permissions)


def actor_from_user(user: User) -> Actor:
    return Actor(
        user_id=user.id,
        department_id=user.department_id,
        capabilities=capabilities_for_user(user),
        name=user.name,
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_access_token(*, user_id: int) -> tuple[str, int]:
    settings = get_settings()
    now = _utcnow()
    claims = {
        "sub": str(user_id),
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=settings.access_token_minutes)).timestamp()),
        "jti": str(uuid4()),
        "typ": "access",
    }
    token = jwt.encode(claims, settings.jwt_secret, algorithm="HS256")
    return token, settings.access_token_minutes * 60


def decode_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require_sub": True, "require_iat": True, "require_exp": True},
        )
    except JWTError as exc:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token is invalid.") from exc

    if payload.get("typ") != "access":
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token type is invalid.")

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject.isdigit():
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token subject is invalid.")

    return payload


def require_actor(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Actor:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Missing bearer token.")

    payload = decode_token(credentials.credentials)
    user = db.get(User, int(payload["sub"]))
    if user is None or not user.is_active:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="User is not active.")

    actor = actor_from_user(user)
    request.state.actor = "user"
    request.state.actor_id = str(actor.user_id)
    return actor


def ensure_capability(actor: Actor, capability: str, message: str | None = None) -> None:
    if not hasattr(actor.capabilities, capability):
        raise ValueError(f"Unknown timeclock capability: {capability}")
    if not getattr(actor.capabilities, capability):
        raise EntryAuthorizationError(
            code="FORBIDDEN",
            message=message or "Insufficient permissions.",
        )


def require_capability(capability: str) -> Callable[..., Actor]:
    if capability not in {item.name for item in fields(TimeclockCapabilities)}:
        raise ValueError(f"Unknown timeclock capability: {capability}")

    def _dependency(actor: Actor = Depends(require_actor)) -> Actor:
        ensure_capability(actor, capability)
        return actor

    return _dependency
