#!/usr/bin/env python3
"""
IoT Intrusion Dashboard Demo Seed Data
======================================

Populates the database with a small example deployment for demos and testing.

Devices (mix of secured and unsecured, online and offline):
  IoT Camera - Lobby          camera        fw 2.1.4   online   (secured)
  Smart Thermostat            thermostat    fw ""      online   (unsecured)
  Access Point - Floor 2      access_point  fw 3.2.1   offline  (secured)
  Door Sensor - Main Entry    sensor        fw null    online   (unsecured)
  Motion Detector - Parking   sensor        fw 2.0.3   online   (secured)

Accounts:
  admin@iot-security.local    admin
  user@iot-security.local     user

Usage:
    python scripts/seed_demo_data.py              # seed fresh data (clears existing)
    python scripts/seed_demo_data.py --append     # add to existing data
    python scripts/seed_demo_data.py --db data/demo.db

Requirements:
    Run from the backend/ directory (or set PYTHONPATH).
"""

import argparse
import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# ── Ensure we can import project modules ────────────────────────────
SCRIPT_DIR = Path(__file__).resolve().parent
BACKEND_DIR = SCRIPT_DIR.parent
sys.path.insert(0, str(BACKEND_DIR))

# ── Default DB path ─────────────────────────────────────────────────
DEFAULT_DB = BACKEND_DIR / "data" / "iot_intrusion.db"

DEFAULT_PASSWORD = "ChangeMe123!"


# ══════════════════════════════════════════════════════════════════════
# Demo data definitions
# ══════════════════════════════════════════════════════════════════════

USERS = [
    {"name": "Administrator", "email": "admin@iot-security.local", "role": "admin"},
    {"name": "Demo User", "email": "user@iot-security.local", "role": "user"},
]

# last_seen is an offset in seconds before "now"
DEVICES = [
    {
        "name": "IoT Camera - Lobby",
        "device_type": "camera",
        "mac_address": "00:1B:44:11:3A:B7",
        "ip_address": "192.168.1.101",
        "location": "Building Lobby",
        "firmware_version": "2.1.4",
        "status": "online",
        "last_seen": 0,
    },
    {
        "name": "Smart Thermostat",
        "device_type": "thermostat",
        "mac_address": "00:1B:44:11:3A:B8",
        "ip_address": "192.168.1.102",
        "location": "Main Office",
        "firmware_version": "",
        "status": "online",
        "last_seen": 300,
    },
    {
        "name": "Access Point - Floor 2",
        "device_type": "access_point",
        "mac_address": "00:1B:44:11:3A:B9",
        "ip_address": "192.168.1.103",
        "location": "Second Floor",
        "firmware_version": "3.2.1",
        "status": "offline",
        "last_seen": 3600,
    },
    {
        "name": "Door Sensor - Main Entry",
        "device_type": "sensor",
        "mac_address": "00:1B:44:11:3A:BA",
        "ip_address": "192.168.1.104",
        "location": "Main Entrance",
        "firmware_version": None,
        "status": "online",
        "last_seen": 0,
    },
    {
        "name": "Motion Detector - Parking",
        "device_type": "sensor",
        "mac_address": "00:1B:44:11:3A:BB",
        "ip_address": "192.168.1.105",
        "location": "Parking Lot",
        "firmware_version": "2.0.3",
        "status": "online",
        "last_seen": 60,
    },
]

# device is an index into DEVICES; detected_at is seconds before "now"
ALERTS = [
    {
        "device": 0,
        "alert_type": "Unauthorized Access Attempt",
        "severity": "high",
        "description": "Multiple failed login attempts detected from suspicious IP",
        "source_ip": "203.0.113.45",
        "detected_at": 7200,
        "metadata": {"failed_attempts": 15, "attack_pattern": "brute_force"},
    },
    {
        "device": 1,
        "alert_type": "Suspicious Network Activity",
        "severity": "medium",
        "description": "Unusual data transfer patterns detected",
        "source_ip": "198.51.100.23",
        "detected_at": 3600,
        "metadata": {"data_volume": "2.3GB", "transfer_time": "15 minutes"},
    },
    {
        "device": 2,
        "alert_type": "Port Scanning Activity",
        "severity": "medium",
        "description": "Systematic port scanning detected from external source",
        "source_ip": "192.0.2.100",
        "detected_at": 1800,
        "metadata": {"scanned_ports": [22, 23, 80, 443, 8080]},
    },
    {
        "device": 3,
        "alert_type": "Malware Detection",
        "severity": "critical",
        "description": "Potential malware signature detected in network traffic",
        "source_ip": "10.0.0.15",
        "detected_at": 900,
        "metadata": {"malware_type": "trojan", "signature": "TR.Mirai.Variant"},
    },
    {
        "device": 4,
        "alert_type": "Firmware Vulnerability",
        "severity": "high",
        "description": "Outdated firmware with known vulnerabilities detected",
        "source_ip": None,
        "detected_at": 300,
        "metadata": {"current_version": "1.2.0", "recommended_action": "update_firmware"},
    },
]

BLOCKED_ATTEMPTS = [
    {
        "source_ip": "203.0.113.45",
        "device": 0,
        "attempt_type": "brute_force",
        "blocked_at": 7200,
        "attempt_count": 15,
        "user_agent": "curl/7.68.0",
        "request_details": {"target_port": 22, "protocol": "SSH"},
    },
    {
        "source_ip": "198.51.100.23",
        "device": 1,
        "attempt_type": "port_scan",
        "blocked_at": 5400,
        "attempt_count": 50,
        "user_agent": None,
        "request_details": {"scanned_ports": "1-1000", "scan_type": "TCP_SYN"},
    },
    {
        "source_ip": "192.0.2.100",
        "device": 2,
        "attempt_type": "unauthorized_access",
        "blocked_at": 3600,
        "attempt_count": 8,
        "user_agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
        "request_details": {"attempted_path": "/admin/login", "authentication_failures": 8},
    },
    {
        "source_ip": "10.0.0.25",
        "device": 3,
        "attempt_type": "malware",
        "blocked_at": 1800,
        "attempt_count": 1,
        "user_agent": None,
        "request_details": {"malware_signature": "Mirai.Bot.Variant"},
    },
    {
        "source_ip": "172.16.0.50",
        "device": 4,
        "attempt_type": "ddos",
        "blocked_at": 900,
        "attempt_count": 1000,
        "user_agent": None,
        "request_details": {"attack_type": "UDP_FLOOD", "packets_per_second": 10000},
    },
    {
        "source_ip": "203.0.113.67",
        "device": 0,
        "attempt_type": "brute_force",
        "blocked_at": 300,
        "attempt_count": 3,
        "user_agent": "python-requests/2.28.1",
        "request_details": {"target_service": "HTTP_AUTH", "attempted_credentials": 3},
    },
]

METRICS = [
    ("cpu", 23.5),
    ("memory", 61.2),
    ("network", 12.8),
    ("storage", 44.0),
]


# ══════════════════════════════════════════════════════════════════════
# Seeding
# ══════════════════════════════════════════════════════════════════════

async def seed_database(append: bool = False, password: str = DEFAULT_PASSWORD) -> None:
    """Create tables and insert the demo deployment."""
    from sqlalchemy import delete, select

    from auth.passwords import hash_password
    from database import AsyncSessionLocal, close_db, init_db
    from models import BlockedAttempt, Device, DeviceLog, SecurityAlert, SystemMetric, User

    await init_db()
    now = datetime.now(timezone.utc)

    async with AsyncSessionLocal() as db:
        if not append:
            print("🗑️  Clearing existing data...")
            for model in (DeviceLog, SystemMetric, SecurityAlert, BlockedAttempt, Device):
                await db.execute(delete(model))
            await db.commit()

        print("👤 Creating accounts...")
        for spec in USERS:
            existing = await db.execute(select(User).where(User.email == spec["email"]))
            if existing.scalar_one_or_none():
                print(f"   • {spec['email']} already exists, skipping")
                continue
            db.add(User(password_hash=hash_password(password), is_active=True, **spec))
            print(f"   ✓ {spec['email']} ({spec['role']})")
        await db.commit()

        print("📟 Creating devices...")
        devices = []
        for spec in DEVICES:
            fields = dict(spec)
            if append:
                existing = await db.execute(
                    select(Device).where(Device.mac_address == fields["mac_address"])
                )
                found = existing.scalar_one_or_none()
                if found:
                    devices.append(found)
                    print(f"   • {found.name} already exists, reusing")
                    continue
            fields["last_seen"] = now - timedelta(seconds=fields["last_seen"])
            device = Device(**fields)
            db.add(device)
            devices.append(device)
            security = "secured" if device.has_security_enabled else "unsecured"
            print(f"   ✓ {device.name} [{device.status}, {security}]")
        await db.flush()

        print("🚨 Creating security alerts...")
        for spec in ALERTS:
            db.add(SecurityAlert(
                device_id=devices[spec["device"]].id,
                alert_type=spec["alert_type"],
                severity=spec["severity"],
                description=spec["description"],
                source_ip=spec["source_ip"],
                detected_at=now - timedelta(seconds=spec["detected_at"]),
                status="active",
                alert_metadata=spec["metadata"],
            ))
        print(f"   ✓ {len(ALERTS)} alerts")

        print("🛡️  Creating blocked attempts...")
        for spec in BLOCKED_ATTEMPTS:
            db.add(BlockedAttempt(
                source_ip=spec["source_ip"],
                target_device_id=devices[spec["device"]].id,
                attempt_type=spec["attempt_type"],
                blocked_at=now - timedelta(seconds=spec["blocked_at"]),
                attempt_count=spec["attempt_count"],
                user_agent=spec["user_agent"],
                request_details=spec["request_details"],
            ))
        print(f"   ✓ {len(BLOCKED_ATTEMPTS)} blocked attempts")

        print("📈 Creating system metrics and device logs...")
        for metric_type, value in METRICS:
            db.add(SystemMetric(metric_type=metric_type, metric_value=value, recorded_at=now))
        for device in devices:
            event = "connection" if device.status == "online" else "disconnection"
            db.add(DeviceLog(
                device_id=device.id,
                log_level="info",
                message=f"{device.name} reported {device.status}",
                event_type=event,
            ))

        await db.commit()

    await close_db()
    print("\n✅ Demo data seeded")
    print(f"   Log in as admin@iot-security.local / {password}")


# ══════════════════════════════════════════════════════════════════════
# CLI
# ══════════════════════════════════════════════════════════════════════

def main():
    parser = argparse.ArgumentParser(
        description="IoT Intrusion Dashboard demo seed data",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/seed_demo_data.py                         # Seed fresh demo data
  python scripts/seed_demo_data.py --append                # Add demo data to existing
  python scripts/seed_demo_data.py --db /path/to/iot.db    # Use specific DB file
        """,
    )
    parser.add_argument(
        "--db", type=str, default=str(DEFAULT_DB),
        help=f"Path to SQLite database (default: {DEFAULT_DB})",
    )
    parser.add_argument(
        "--append", action="store_true",
        help="Add data without clearing existing records",
    )
    parser.add_argument(
        "--password", type=str, default=DEFAULT_PASSWORD,
        help="Password for the demo accounts",
    )

    args = parser.parse_args()
    db_path = Path(args.db).resolve()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    # Must be set before config/database are imported
    os.environ["DATABASE_URL"] = f"sqlite:///{db_path}"

    asyncio.run(seed_database(append=args.append, password=args.password))


if __name__ == "__main__":
    main()
