"""Tests for the blocked attempt audit trail endpoints and recorder."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import SQLAlchemyError

from models import BlockedAttempt
from services.recorders import record_blocked_attempt, record_security_alert


class _FailingSession:
    def __init__(self):
        self.rolled_back = False

    def add(self, obj):
        pass

    async def commit(self):
        raise SQLAlchemyError("database is locked")

    async def refresh(self, obj):
        pass

    async def rollback(self):
        self.rolled_back = True


class TestRecorders:

    @pytest.mark.asyncio
    async def test_request_details_always_carry_user_and_reason(self, session_factory):
        async with session_factory() as db:
            attempt = await record_blocked_attempt(
                db,
                user_id=7,
                source_ip="10.0.0.5",
                target_device_id=3,
                attempt_type="unauthorized_access",
                details={"reason": "no_permission_secured_device", "device_name": "Camera"},
            )

        assert attempt.attempt_count == 1
        assert attempt.blocked_at is not None
        assert attempt.request_details == {
            "user_id": 7,
            "blocked_reason": "no_permission_secured_device",
            "reason": "no_permission_secured_device",
            "device_name": "Camera",
        }

    @pytest.mark.asyncio
    async def test_default_reason(self, session_factory):
        async with session_factory() as db:
            attempt = await record_blocked_attempt(
                db, user_id=1, source_ip="10.0.0.5", target_device_id=None,
                attempt_type="brute_force",
            )
        assert attempt.request_details["blocked_reason"] == "unauthorized_access"

    @pytest.mark.asyncio
    async def test_caller_details_cannot_replace_user_or_reason(self, session_factory):
        async with session_factory() as db:
            attempt = await record_blocked_attempt(
                db, user_id=7, source_ip="10.0.0.5", target_device_id=3,
                attempt_type="unauthorized_access",
                details={"user_id": 99, "blocked_reason": "spoofed", "reason": "device_offline"},
            )
        assert attempt.request_details["user_id"] == 7
        assert attempt.request_details["blocked_reason"] == "device_offline"

    @pytest.mark.asyncio
    async def test_blocked_attempt_failure_is_swallowed(self):
        db = _FailingSession()
        result = await record_blocked_attempt(
            db, user_id=1, source_ip="10.0.0.5", target_device_id=1, attempt_type="malware",
        )
        assert result is None
        assert db.rolled_back is True

    @pytest.mark.asyncio
    async def test_security_alert_failure_is_swallowed(self):
        db = _FailingSession()
        result = await record_security_alert(
            db, device_id=1, alert_type="Test", severity="low",
            description=None, source_ip=None,
        )
        assert result is None
        assert db.rolled_back is True

    @pytest.mark.asyncio
    async def test_security_alert_starts_active(self, session_factory):
        async with session_factory() as db:
            alert = await record_security_alert(
                db, device_id=None, alert_type="Test", severity="high",
                description="d", source_ip="10.0.0.1", metadata={"k": "v"},
            )
        assert alert.status == "active"
        assert alert.detected_at is not None
        assert alert.resolved_at is None
        assert alert.alert_metadata == {"k": "v"}


class TestBlockedAttemptEndpoints:

    @pytest.mark.asyncio
    async def test_create_attempt(self, async_client, user_headers, regular_user):
        payload = {
            "source_ip": "203.0.113.45",
            "target_device_id": 4242,
            "attempt_type": "Brute_Force",
            "attempt_count": 15,
            "user_agent": "curl/7.68.0",
            "request_details": {"target_port": 22, "protocol": "SSH"},
        }
        response = await async_client.post(
            "/api/blocked-attempts", json=payload, headers=user_headers
        )

        assert response.status_code == 201
        data = response.json()
        assert data["attempt_type"] == "brute_force"
        assert data["attempt_count"] == 15
        # Unknown target devices are kept for the audit trail
        assert data["target_device_id"] == 4242
        assert data["request_details"]["protocol"] == "SSH"
        assert data["request_details"]["reported_by"] == regular_user.id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        {"source_ip": "not-an-ip", "attempt_type": "port_scan"},
        {"source_ip": "10.0.0.1", "attempt_type": "port scan!"},
        {"source_ip": "10.0.0.1", "attempt_type": "port_scan", "attempt_count": 0},
    ])
    async def test_create_attempt_validation(self, async_client, user_headers, payload):
        response = await async_client.post(
            "/api/blocked-attempts", json=payload, headers=user_headers
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_create_requires_authentication(self, async_client):
        response = await async_client.post(
            "/api/blocked-attempts", json={"source_ip": "10.0.0.1", "attempt_type": "malware"}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_no_update_or_delete_routes(self, async_client, admin_headers):
        assert (await async_client.delete("/api/blocked-attempts/1", headers=admin_headers)).status_code in (404, 405)
        assert (await async_client.put("/api/blocked-attempts/1", json={}, headers=admin_headers)).status_code in (404, 405)

    @pytest.mark.asyncio
    async def test_list_filters(self, async_client, user_headers, session_factory):
        async with session_factory() as db:
            db.add_all([
                BlockedAttempt(source_ip="10.0.0.1", attempt_type="port_scan", target_device_id=1),
                BlockedAttempt(source_ip="10.0.0.1", attempt_type="malware", target_device_id=2),
                BlockedAttempt(source_ip="10.0.0.2", attempt_type="port_scan", target_device_id=2),
            ])
            await db.commit()

        response = await async_client.get(
            "/api/blocked-attempts", params={"source_ip": "10.0.0.1"}, headers=user_headers
        )
        assert response.json()["total"] == 2

        response = await async_client.get(
            "/api/blocked-attempts",
            params={"attempt_type": "port_scan", "device_id": 2},
            headers=user_headers,
        )
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["source_ip"] == "10.0.0.2"

    @pytest.mark.asyncio
    async def test_stats_summary(self, async_client, user_headers, session_factory):
        now = datetime.now(timezone.utc)
        async with session_factory() as db:
            db.add_all([
                BlockedAttempt(source_ip="10.0.0.1", attempt_type="port_scan", blocked_at=now),
                BlockedAttempt(source_ip="10.0.0.1", attempt_type="port_scan", blocked_at=now),
                BlockedAttempt(
                    source_ip="10.0.0.2", attempt_type="malware",
                    blocked_at=now - timedelta(days=2),
                ),
            ])
            await db.commit()

        response = await async_client.get(
            "/api/blocked-attempts/stats/summary", headers=user_headers
        )
        data = response.json()
        assert data["total"] == 3
        assert data["recent"] == 2
        assert data["by_type"] == {"port_scan": 2, "malware": 1}

    @pytest.mark.asyncio
    async def test_reported_attempt_stays_out_of_other_users_activity(
        self, async_client, user_headers, regular_user, admin_user, admin_headers
    ):
        payload = {
            "source_ip": "10.0.0.9",
            "attempt_type": "unauthorized_access",
            "request_details": {"user_id": admin_user.id, "reported_by": 999},
        }
        response = await async_client.post(
            "/api/blocked-attempts", json=payload, headers=user_headers
        )
        assert response.status_code == 201
        details = response.json()["request_details"]
        assert details["user_id"] is None
        assert details["reported_by"] == regular_user.id

        response = await async_client.get("/device-access", headers=admin_headers)
        assert response.json()["recent_activity"] == []
