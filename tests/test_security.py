from __future__ import annotations

import os
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from jose import jwt

from timeclock.errors import ApiError, EntryAuthorizationError
from timeclock.models import Role, User
from timeclock.security import (
    Actor,
    TimeclockCapabilities,
    actor_from_user,
    create_access_token,
    decode_token,
    ensure_capability,
    normalize_capabilities,
    require_capability,
)
from timeclock.settings import get_settings

TEST_ENV = {
    "JWT_SECRET": "timeclock-test-secret",
    "JWT_ISSUER": "timeclock-core",
    "JWT_AUDIENCE": "timeclock-api",
}


class CapabilityTests(unittest.TestCase):
    def test_nested_camel_case_permissions(self) -> None:
        capabilities = normalize_capabilities(
            {"timeclock": {"canApproveEntries": True, "canViewTeamEntries": 1, "canManageConfig": False}}
        )
        self.assertTrue(capabilities.can_approve_entries)
        self.assertTrue(capabilities.can_view_team_entries)
        self.assertFalse(capabilities.can_manage_config)
        self.assertTrue(capabilities.is_manager)

    def test_flat_snake_case_and_unknown_keys(self) -> None:
        capabilities = normalize_capabilities({"can_clock_in_out": True, "canFlyPlanes": True})
        self.assertTrue(capabilities.can_clock_in_out)
        self.assertFalse(capabilities.is_manager)

    def test_garbage_permissions_grant_nothing(self) -> None:
        self.assertEqual(normalize_capabilities(None), TimeclockCapabilities())
        self.assertEqual(normalize_capabilities({"timeclock": "all"}), TimeclockCapabilities())

    def test_super_admin_role_gets_every_capability(self) -> None:
        user = User(id=3, name="Root", email="root@example.com", department_id=None, is_active=True)
        user.role = Role(id=1, name="owner", is_super_admin=True, permissions={})

        actor = actor_from_user(user)

        self.assertEqual(actor.capabilities, TimeclockCapabilities.full())
        self.assertEqual(actor.user_id, 3)

    def test_user_without_role_has_no_capabilities(self) -> None:
        user = User(id=4, name="Temp", email="temp@example.com", department_id=2, is_active=True)
        self.assertEqual(actor_from_user(user).capabilities, TimeclockCapabilities())

    def test_ensure_capability_raises_forbidden(self) -> None:
        actor = Actor(user_id=1, department_id=None, capabilities=TimeclockCapabilities(can_clock_in_out=True))
        ensure_capability(actor, "can_clock_in_out")
        with self.assertRaises(EntryAuthorizationError) as ctx:
            ensure_capability(actor, "can_approve_entries")
        self.assertEqual(ctx.exception.status_code, 403)
        self.assertEqual(ctx.exception.code, "FORBIDDEN")

    def test_unknown_capability_is_a_programming_error(self) -> None:
        with self.assertRaises(ValueError):
            require_capability("can_do_anything")


class AccessTokenTests(unittest.TestCase):
    def setUp(self) -> None:
        get_settings.cache_clear()
        self._env = patch.dict(os.environ, TEST_ENV, clear=False)
        self._env.start()

    def tearDown(self) -> None:
        self._env.stop()
        get_settings.cache_clear()

    def test_token_round_trip(self) -> None:
        token, expires_in = create_access_token(user_id=42)

        payload = decode_token(token)

        self.assertEqual(payload["sub"], "42")
        self.assertEqual(payload["typ"], "access")
        self.assertEqual(expires_in, get_settings().access_token_minutes * 60)

    def test_wrong_token_type_is_rejected(self) -> None:
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {
                "sub": "42",
                "iss": TEST_ENV["JWT_ISSUER"],
                "aud": TEST_ENV["JWT_AUDIENCE"],
                "iat": int(now.timestamp()),
                "exp": int((now + timedelta(minutes=5)).timestamp()),
                "typ": "refresh",
            },
            TEST_ENV["JWT_SECRET"],
            algorithm="HS256",
        )
        with self.assertRaises(ApiError) as ctx:
            decode_token(token)
        self.assertEqual(ctx.exception.code, "INVALID_TOKEN")
        self.assertEqual(ctx.exception.status_code, 401)

    def test_tampered_token_is_rejected(self) -> None:
        token, _ = create_access_token(user_id=42)
        with self.assertRaises(ApiError) as ctx:
            decode_token(token[:-4] + "abcd")
        self.assertEqual(ctx.exception.code, "INVALID_TOKEN")


if __name__ == "__main__":
    unittest.main()
