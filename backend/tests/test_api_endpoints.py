"""
API endpoint tests for the dashboard backend.

Tests cover:
- Info endpoints and request ID tracking
- Validation error formatting
- Device CRUD, heartbeat and device logs
- Dashboard counters and overview
- System metrics
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from models import BlockedAttempt, SecurityAlert
from routers.dashboard import last_seen_label


class TestInfo:

    @pytest.mark.asyncio
    async def test_api_info(self, async_client: AsyncClient):
        response = await async_client.get("/api/info")
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "IoT Intrusion Dashboard"
        assert "version" in data

    @pytest.mark.asyncio
    async def test_api_root_lists_endpoints(self, async_client: AsyncClient):
        response = await async_client.get("/api")
        assert response.status_code == 200
        assert response.json()["endpoints"]["device_access"] == "/device-access"

    @pytest.mark.asyncio
    async def test_request_id_header(self, async_client: AsyncClient):
        response = await async_client.get("/api/info")
        assert "x-request-id" in response.headers
        assert len(response.headers["x-request-id"]) == 36


class TestDevicesCRUD:

    @pytest.mark.asyncio
    async def test_create_device_starts_offline(self, async_client, admin_headers):
        payload = {
            "name": "IoT Camera - Lobby",
            "device_type": "camera",
            "mac_address": "00-1b-44-11-3a-b7",
            "ip_address": "192.168.1.101",
            "location": "Building Lobby",
            "firmware_version": "2.1.4",
        }
        response = await async_client.post("/api/devices", json=payload, headers=admin_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "offline"
        assert data["mac_address"] == "00:1B:44:11:3A:B7"
        assert data["has_security_enabled"] is True
        assert data["last_seen"] is None

    @pytest.mark.asyncio
    async def test_create_device_requires_admin(self, async_client, user_headers):
        response = await async_client.post(
            "/api/devices", json={"name": "x", "device_type": "sensor"}, headers=user_headers
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_duplicate_mac_conflicts(self, async_client, admin_headers, make_device):
        await make_device(mac_address="00:1B:44:11:3A:B8")
        response = await async_client.post(
            "/api/devices",
            json={"name": "Clone", "device_type": "sensor", "mac_address": "00:1b:44:11:3a:b8"},
            headers=admin_headers,
        )
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_create_device_validation(self, async_client, admin_headers):
        response = await async_client.post(
            "/api/devices",
            json={"name": "  ", "device_type": "sensor", "ip_address": "999.1.1.1"},
            headers=admin_headers,
        )
        assert response.status_code == 422
        fields = {e["field"] for e in response.json()["errors"]}
        assert fields == {"name", "ip_address"}

    @pytest.mark.asyncio
    async def test_list_with_filters(self, async_client, user_headers, make_device):
        await make_device(status="online", device_type="camera")
        await make_device(status="offline", device_type="camera")
        await make_device(status="online", device_type="sensor")

        response = await async_client.get(
            "/api/devices", params={"status": "online"}, headers=user_headers
        )
        assert response.json()["total"] == 2

        response = await async_client.get(
            "/api/devices",
            params={"device_type": "camera", "limit": 1, "offset": 1},
            headers=user_headers,
        )
        data = response.json()
        assert data["total"] == 2
        assert len(data["items"]) == 1
        assert data["limit"] == 1
        assert data["offset"] == 1

    @pytest.mark.asyncio
    async def test_get_missing_device(self, async_client, user_headers):
        response = await async_client.get("/api/devices/999", headers=user_headers)
        assert response.status_code == 404
        assert response.json()["detail"] == "Device not found"

    @pytest.mark.asyncio
    async def test_update_to_online_stamps_last_seen(
        self, async_client, admin_headers, make_device
    ):
        device = await make_device(status="offline")
        response = await async_client.put(
            f"/api/devices/{device.id}",
            json={"status": "online", "firmware_version": "3.0.0"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "online"
        assert data["last_seen"] is not None
        assert data["updated_at"] is not None
        assert data["has_security_enabled"] is True

    @pytest.mark.asyncio
    async def test_update_invalid_status(self, async_client, admin_headers, make_device):
        device = await make_device()
        response = await async_client.put(
            f"/api/devices/{device.id}", json={"status": "broken"}, headers=admin_headers
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_delete_device(self, async_client, admin_headers, make_device):
        device = await make_device()
        response = await async_client.delete(f"/api/devices/{device.id}", headers=admin_headers)
        assert response.status_code == 204

        response = await async_client.get(f"/api/devices/{device.id}", headers=admin_headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_device_with_alerts_conflicts(
        self, async_client, admin_headers, make_device, session_factory
    ):
        device = await make_device()
        async with session_factory() as db:
            db.add(SecurityAlert(device_id=device.id, alert_type="Test", severity="low"))
            await db.commit()

        response = await async_client.delete(f"/api/devices/{device.id}", headers=admin_headers)
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_heartbeat_brings_device_online(self, async_client, user_headers, make_device):
        device = await make_device(status="offline")
        response = await async_client.post(
            f"/api/devices/{device.id}/heartbeat", headers=user_headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "online"
        assert response.json()["last_seen"] is not None


class TestDeviceLogs:

    @pytest.mark.asyncio
    async def test_create_and_list_logs(self, async_client, user_headers, make_device):
        device = await make_device()
        for level, message in [("INFO", "booted"), ("error", "sensor fault")]:
            response = await async_client.post(
                f"/api/devices/{device.id}/logs",
                json={"log_level": level, "message": message, "metadata": {"uptime": 12}},
                headers=user_headers,
            )
            assert response.status_code == 201

        response = await async_client.get(f"/api/devices/{device.id}/logs", headers=user_headers)
        logs = response.json()
        assert [entry["message"] for entry in logs] == ["sensor fault", "booted"]
        assert logs[1]["log_level"] == "info"
        assert logs[1]["metadata"] == {"uptime": 12}

        response = await async_client.get(
            f"/api/devices/{device.id}/logs", params={"log_level": "error"}, headers=user_headers
        )
        assert len(response.json()) == 1

    @pytest.mark.asyncio
    async def test_invalid_log_level(self, async_client, user_headers, make_device):
        device = await make_device()
        response = await async_client.post(
            f"/api/devices/{device.id}/logs",
            json={"log_level": "fatal", "message": "x"},
            headers=user_headers,
        )
        assert response.status_code == 422


class TestDashboard:

    @pytest.mark.asyncio
    async def test_stats(self, async_client, user_headers, make_device, session_factory):
        device = await make_device()
        await make_device(status="offline")
        now = datetime.now(timezone.utc)
        async with session_factory() as db:
            db.add_all([
                SecurityAlert(device_id=device.id, alert_type="A", severity="high"),
                SecurityAlert(
                    device_id=device.id, alert_type="B", severity="low",
                    status="resolved", resolved_at=now,
                ),
                BlockedAttempt(source_ip="10.0.0.1", attempt_type="port_scan", blocked_at=now),
                BlockedAttempt(
                    source_ip="10.0.0.1", attempt_type="port_scan",
                    blocked_at=now - timedelta(hours=30),
                ),
            ])
            await db.commit()

        response = await async_client.get("/api/dashboard/stats", headers=user_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["totalDevices"] == 2
        assert data["activeThreats"] == 1
        assert data["blockedAttempts"] == 1
        assert data["systemStatus"] == "Active"
        assert "timestamp" in data

    @pytest.mark.asyncio
    async def test_overview(self, async_client, user_headers, make_device, session_factory):
        device = await make_device(name="Camera", last_seen=datetime.now(timezone.utc))
        await make_device(name="Never Seen", last_seen=None)
        async with session_factory() as db:
            db.add(SecurityAlert(device_id=device.id, alert_type="Malware", severity="critical"))
            db.add(SecurityAlert(alert_type="Orphan", severity="low"))
            await db.commit()

        response = await async_client.get("/api/dashboard", headers=user_headers)

        data = response.json()
        assert data["stats"]["totalDevices"] == 2
        assert {a["device"] for a in data["recent_alerts"]} == {"Camera", "Unknown Device"}
        assert [d["name"] for d in data["devices"]] == ["Camera", "Never Seen"]
        assert data["devices"][0]["last_seen_label"] == "now"
        assert data["devices"][1]["last_seen_label"] == "never"

    @pytest.mark.asyncio
    async def test_requires_authentication(self, async_client):
        response = await async_client.get("/api/dashboard/stats")
        assert response.status_code == 401

    def test_last_seen_label(self):
        now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert last_seen_label(None, now) == "never"
        assert last_seen_label(now - timedelta(minutes=2), now) == "now"
        assert last_seen_label(now - timedelta(minutes=30), now) == "30 min ago"
        assert last_seen_label(datetime(2024, 1, 1, 9, 0), now) == "3 hours ago"


class TestMetrics:

    @pytest.mark.asyncio
    async def test_record_and_latest(self, async_client, user_headers):
        for metric_type, value in [("cpu", 20.0), ("cpu", 35.5), ("memory", 61.2)]:
            response = await async_client.post(
                "/api/metrics",
                json={"metric_type": metric_type, "metric_value": value},
                headers=user_headers,
            )
            assert response.status_code == 201

        response = await async_client.get("/api/metrics/latest", headers=user_headers)
        latest = {m["metric_type"]: m["metric_value"] for m in response.json()}
        assert latest == {"cpu": 35.5, "memory": 61.2}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        {"metric_type": "gpu", "metric_value": 10},
        {"metric_type": "cpu", "metric_value": 120},
        {"metric_type": "cpu", "metric_value": -1},
    ])
    async def test_invalid_metrics(self, async_client, user_headers, payload):
        response = await async_client.post("/api/metrics", json=payload, headers=user_headers)
        assert response.status_code == 422
