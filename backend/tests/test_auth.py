"""
Test suite for the authentication system.

Covers:
- JWT token creation and validation
- Password hashing
- Registration, login, logout and profile endpoints
- User management endpoints (role and status changes)
"""

import pytest
from datetime import timedelta
from jose import JWTError
from httpx import AsyncClient

from auth.jwt_service import create_access_token, subject_user_id, verify_access_token
from auth.passwords import hash_password, verify_password


# ──────────────────────────────────────────────────────────────────────────────
# JWT SERVICE TESTS
# ──────────────────────────────────────────────────────────────────────────────


class TestJWTService:
    """Tests for JWT token creation and validation."""

    def test_create_access_token(self):
        """Test that create_access_token creates a valid token with correct claims."""
        token = create_access_token(user_id=123, role="admin")

        assert isinstance(token, str)
        payload = verify_access_token(token)
        assert payload["sub"] == "123"
        assert payload["role"] == "admin"
        assert payload["type"] == "access"
        assert "iat" in payload
        assert "exp" in payload

    def test_expired_token_rejected(self):
        """Test that an expired token raises JWTError when verified."""
        token = create_access_token(
            user_id=789,
            role="user",
            expires_delta=timedelta(seconds=-1),
        )

        with pytest.raises(JWTError):
            verify_access_token(token)

    def test_tampered_token_rejected(self):
        """Test that a tampered token raises JWTError when verified."""
        token = create_access_token(user_id=999, role="admin")
        tampered_token = token[:-1] + ("x" if token[-1] != "x" else "y")

        with pytest.raises(JWTError):
            verify_access_token(tampered_token)

    def test_non_access_token_rejected(self):
        token = create_access_token(user_id=1, role="user", extra_claims={"type": "refresh"})

        with pytest.raises(JWTError):
            verify_access_token(token)

    def test_subject_user_id(self):
        assert subject_user_id({"sub": "42"}) == 42
        assert subject_user_id({"sub": "admin"}) is None
        assert subject_user_id({}) is None


class TestPasswords:

    def test_hash_and_verify(self):
        hashed = hash_password("correct horse")
        assert hashed != "correct horse"
        assert verify_password("correct horse", hashed) is True
        assert verify_password("wrong horse", hashed) is False

    def test_malformed_hash_does_not_verify(self):
        assert verify_password("anything", "not-a-bcrypt-hash") is False


# ──────────────────────────────────────────────────────────────────────────────
# AUTH ENDPOINT TESTS
# ──────────────────────────────────────────────────────────────────────────────


class TestRegisterAndLogin:

    @pytest.mark.asyncio
    async def test_register_creates_user_role(self, async_client: AsyncClient):
        response = await async_client.post(
            "/api/auth/register",
            json={"name": "Dana", "email": "Dana@Example.com", "password": "s3cretpass"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["role"] == "user"
        assert data["email"] == "dana@example.com"
        assert data["token_type"] == "Bearer"

        me = await async_client.get(
            "/api/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"}
        )
        assert me.status_code == 200
        assert me.json()["name"] == "Dana"

    @pytest.mark.asyncio
    async def test_register_duplicate_email(self, async_client, regular_user):
        response = await async_client.post(
            "/api/auth/register",
            json={"name": "Again", "email": regular_user.email, "password": "s3cretpass"},
        )
        assert response.status_code == 409

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        {"name": "Short", "email": "short@example.com", "password": "1234567"},
        {"name": "Mail", "email": "not-an-email", "password": "s3cretpass"},
        {"name": "Mismatch", "email": "m@example.com", "password": "s3cretpass",
         "confirm_password": "different"},
    ])
    async def test_register_validation(self, async_client, payload):
        response = await async_client.post("/api/auth/register", json=payload)
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_login_success(self, async_client, regular_user):
        response = await async_client.post(
            "/api/auth/login",
            json={"email": regular_user.email, "password": "password123"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == regular_user.id
        assert data["role"] == "user"
        assert verify_access_token(data["access_token"])["sub"] == str(regular_user.id)

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, async_client, regular_user):
        response = await async_client.post(
            "/api/auth/login",
            json={"email": regular_user.email, "password": "wrong-password"},
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"

    @pytest.mark.asyncio
    async def test_login_unknown_user(self, async_client):
        response = await async_client.post(
            "/api/auth/login",
            json={"email": "ghost@example.com", "password": "password123"},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_login_disabled_user(self, async_client, make_user):
        user = await make_user(is_active=False)
        response = await async_client.post(
            "/api/auth/login",
            json={"email": user.email, "password": "password123"},
        )
        assert response.status_code == 403


class TestProtectedEndpoints:

    @pytest.mark.asyncio
    async def test_get_me_no_token(self, async_client: AsyncClient):
        response = await async_client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.json()["detail"] == "Missing authorization credentials"

    @pytest.mark.asyncio
    async def test_get_me_invalid_token(self, async_client: AsyncClient):
        response = await async_client.get(
            "/api/auth/me",
            headers={"Authorization": "Bearer invalid_token_xyz"},
        )
        assert response.status_code == 401
        assert "Invalid or expired token" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_malformed_subject_rejected(self, async_client: AsyncClient):
        token = create_access_token(user_id="not-a-number", role="admin")
        response = await async_client.get(
            "/api/auth/me", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid token payload"

    @pytest.mark.asyncio
    async def test_inactive_user_token_rejected(self, async_client, make_user, headers_for):
        user = await make_user(is_active=False)
        response = await async_client.get("/api/auth/me", headers=headers_for(user))
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_logout(self, async_client, user_headers):
        response = await async_client.post("/api/auth/logout", headers=user_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestUserManagement:

    @pytest.mark.asyncio
    async def test_list_users(self, async_client, admin_headers, regular_user):
        response = await async_client.get("/api/auth/users", headers=admin_headers)
        assert response.status_code == 200
        emails = {u["email"] for u in response.json()}
        assert emails == {"admin@example.com", regular_user.email}

    @pytest.mark.asyncio
    async def test_update_user_role(self, async_client, admin_headers, regular_user):
        response = await async_client.patch(
            f"/api/auth/users/{regular_user.id}/role",
            headers=admin_headers,
            json={"role": "admin"},
        )
        assert response.status_code == 200
        assert response.json()["role"] == "admin"

    @pytest.mark.asyncio
    async def test_update_role_rejects_unknown_role(self, async_client, admin_headers, regular_user):
        response = await async_client.patch(
            f"/api/auth/users/{regular_user.id}/role",
            headers=admin_headers,
            json={"role": "editor"},
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_update_role_missing_user(self, async_client, admin_headers):
        response = await async_client.patch(
            "/api/auth/users/999/role", headers=admin_headers, json={"role": "user"}
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_deactivate_user(self, async_client, admin_headers, regular_user, user_headers):
        response = await async_client.patch(
            f"/api/auth/users/{regular_user.id}/status",
            headers=admin_headers,
            json={"is_active": False},
        )
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        response = await async_client.get("/api/auth/me", headers=user_headers)
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_admin_cannot_deactivate_self(self, async_client, admin_headers, admin_user):
        response = await async_client.patch(
            f"/api/auth/users/{admin_user.id}/status",
            headers=admin_headers,
            json={"is_active": False},
        )
        assert response.status_code == 400
