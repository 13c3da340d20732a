"""Tests for roles and the device permission resolver."""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from auth.permissions import VALID_ROLES, PermissionResolver, Role


class _BrokenSession:
    async def execute(self, *args, **kwargs):
        raise SQLAlchemyError("connection reset")


class TestRole:

    def test_known_values(self):
        assert Role.from_value("admin") is Role.ADMIN
        assert Role.from_value("user") is Role.USER
        assert VALID_ROLES == {"admin", "user"}

    @pytest.mark.parametrize("value", ["editor", "ADMIN", "", None])
    def test_unknown_values_get_least_privilege(self, value):
        assert Role.from_value(value) is Role.USER

    def test_only_admin_can_access_all_devices(self):
        assert Role.ADMIN.can_access_all_devices is True
        assert Role.USER.can_access_all_devices is False


class TestPermissionResolver:

    @pytest.mark.asyncio
    async def test_admin_is_permitted(self, session_factory, admin_user):
        async with session_factory() as db:
            assert await PermissionResolver().has_permission(db, admin_user.id, 1) is True

    @pytest.mark.asyncio
    async def test_user_is_not_permitted(self, session_factory, regular_user):
        async with session_factory() as db:
            assert await PermissionResolver().has_permission(db, regular_user.id, 1) is False

    @pytest.mark.asyncio
    async def test_unknown_user_is_not_permitted(self, session_factory):
        async with session_factory() as db:
            assert await PermissionResolver().has_permission(db, 4242, 1) is False

    @pytest.mark.asyncio
    async def test_unrecognised_stored_role_is_not_permitted(self, session_factory, make_user):
        user = await make_user(role="superuser")
        async with session_factory() as db:
            assert await PermissionResolver().has_permission(db, user.id, 1) is False

    @pytest.mark.asyncio
    async def test_storage_error_fails_closed(self):
        assert await PermissionResolver().has_permission(_BrokenSession(), 1, 1) is False


class TestRoleDependencies:
    """require_role / require_admin through real endpoints."""

    @pytest.mark.asyncio
    async def test_admin_only_route_rejects_user(self, async_client, user_headers):
        response = await async_client.get("/api/auth/users", headers=user_headers)
        assert response.status_code == 403
        assert "Insufficient permissions" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_admin_only_route_accepts_admin(self, async_client, admin_headers):
        response = await async_client.get("/api/auth/users", headers=admin_headers)
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_role_change_applies_to_existing_token(
        self, async_client, admin_headers, regular_user, user_headers
    ):
        """The role is read from the user row, not from the token claim."""
        response = await async_client.patch(
            f"/api/auth/users/{regular_user.id}/role",
            json={"role": "admin"},
            headers=admin_headers,
        )
        assert response.status_code == 200

        response = await async_client.get("/api/auth/users", headers=user_headers)
        assert response.status_code == 200
