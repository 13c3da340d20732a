"""
Pydantic v2 schemas with strict input validation and lenient output serialization.

Architecture:
  - *Fields classes: pure field definitions, no validators.  Shared by both
    input (Create/Update) and output (Response) schemas.
  - *Create / *Update classes: inherit from *Fields and ADD strict validators
    so bad data is rejected early with clear, actionable error messages.
  - *Response classes: inherit from *Fields directly (no validators) so any
    data already in the database serializes without crashing.

Responses are lenient because rows are also written by the access decision
engine and by older clients (e.g. attempt types outside the known set).
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from ipaddress import ip_address as parse_ip
import re

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ── Allowed value sets (for input validation) ────────────────────────

VALID_DEVICE_STATUSES = frozenset({"online", "offline", "alert"})

VALID_SEVERITIES = frozenset({"low", "medium", "high", "critical"})

VALID_ALERT_STATUSES = frozenset({"active", "investigating", "resolved", "false_positive"})

VALID_LOG_LEVELS = frozenset({"debug", "info", "warning", "error"})

VALID_METRIC_TYPES = frozenset({"cpu", "memory", "network", "storage"})

# Attempt types are an open set; these are the ones the system itself produces
KNOWN_ATTEMPT_TYPES = frozenset({
    "brute_force", "port_scan", "malware", "unauthorized_access",
    "invalid_device", "offline_device",
})

# ── Reusable validators ──────────────────────────────────────────────

MAC_RE = re.compile(r"^([0-9A-Fa-f]{2}[:\-]){5}[0-9A-Fa-f]{2}$")
SLUG_RE = re.compile(r"^[a-z0-9_]+$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

MIN_PASSWORD_LENGTH = 8


def _validate_ip(value: str, field_name: str = "IP address") -> str:
    """Validate an IPv4 or IPv6 address string."""
    try:
        parse_ip(value)
    except ValueError:
        raise ValueError(
            f"Invalid {field_name} '{value}'. "
            "Expected IPv4 (e.g. 192.168.1.1) or IPv6 (e.g. 2001:db8::1)"
        )
    return value


def _validate_mac(value: str) -> str:
    """Validate a MAC address string and normalise it to upper-case, colon separated."""
    if not MAC_RE.match(value):
        raise ValueError(
            f"Invalid MAC address '{value}'. "
            "Expected format XX:XX:XX:XX:XX:XX or XX-XX-XX-XX-XX-XX "
            "(6 pairs of hex digits)"
        )
    return value.replace("-", ":").upper()


def _validate_choice(value: str, allowed: frozenset, label: str) -> str:
    lower = value.strip().lower()
    if lower not in allowed:
        raise ValueError(
            f"Invalid {label} '{value}'. "
            f"Allowed values: {', '.join(sorted(allowed))}"
        )
    return lower


def _validate_non_blank(value: str, label: str) -> str:
    stripped = value.strip()
    if not stripped:
        raise ValueError(f"{label} must not be empty")
    return stripped


# ═══════════════════════════════════════════════════════════════════════
# DEVICE SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class DeviceFields(BaseModel):
    """Pure field definitions for devices.  No validators."""

    name: str
    device_type: str
    mac_address: Optional[str] = None
    ip_address: Optional[str] = None
    location: Optional[str] = Field(None, max_length=255)
    firmware_version: Optional[str] = Field(None, max_length=50)


class _DeviceInput(BaseModel):
    """Optional device fields plus the validators shared by create and update."""

    name: Optional[str] = None
    device_type: Optional[str] = None
    mac_address: Optional[str] = None
    ip_address: Optional[str] = None
    location: Optional[str] = Field(None, max_length=255)
    firmware_version: Optional[str] = Field(None, max_length=50)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if len(v) > 255:
            raise ValueError("Device name too long. Maximum 255 characters allowed")
        return _validate_non_blank(v, "Device name")

    @field_validator("device_type")
    @classmethod
    def validate_device_type(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if len(v) > 100:
            raise ValueError("Device type too long. Maximum 100 characters allowed")
        return _validate_non_blank(v, "Device type")

    @field_validator("mac_address")
    @classmethod
    def validate_mac(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _validate_mac(v)

    @field_validator("ip_address")
    @classmethod
    def validate_ip_address(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _validate_ip(v)


class DeviceCreate(_DeviceInput):
    """Schema for registering a device. New devices always start ``offline``."""

    name: str
    device_type: str


class DeviceUpdate(_DeviceInput):
    """Schema for updating a device (all fields optional, with validation)."""

    status: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _validate_choice(v, VALID_DEVICE_STATUSES, "device status")


class DeviceResponse(DeviceFields):
    """Device as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    status: str
    has_security_enabled: bool = False
    last_seen: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ═══════════════════════════════════════════════════════════════════════
# DEVICE LOG SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class DeviceLogFields(BaseModel):
    log_level: str
    message: str
    event_type: Optional[str] = Field(None, max_length=100)
    metadata: Optional[Dict[str, Any]] = None


class DeviceLogCreate(DeviceLogFields):

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        return _validate_choice(v, VALID_LOG_LEVELS, "log level")

    @field_validator("message")
    @classmethod
    def validate_message(cls, v: str) -> str:
        return _validate_non_blank(v, "Log message")


class DeviceLogResponse(DeviceLogFields):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    device_id: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="log_metadata")
    created_at: Optional[datetime] = None


# ═══════════════════════════════════════════════════════════════════════
# SECURITY ALERT SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class SecurityAlertFields(BaseModel):
    """Pure field definitions for security alerts.  No validators."""

    device_id: Optional[int] = None
    alert_type: str
    severity: str
    description: Optional[str] = None
    source_ip: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class SecurityAlertCreate(SecurityAlertFields):
    """Schema for creating an alert.  Status is always initialised to ``active``."""

    description: Optional[str] = Field(None, max_length=5000)

    @field_validator("alert_type")
    @classmethod
    def validate_alert_type(cls, v: str) -> str:
        if len(v) > 100:
            raise ValueError("Alert type too long. Maximum 100 characters allowed")
        return _validate_non_blank(v, "Alert type")

    @field_validator("severity")
    @classmethod
    def validate_severity(cls, v: str) -> str:
        return _validate_choice(v, VALID_SEVERITIES, "severity level")

    @field_validator("source_ip")
    @classmethod
    def validate_source_ip(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _validate_ip(v, "source IP")

    @field_validator("device_id")
    @classmethod
    def validate_device_id(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("Device ID must be a positive integer")
        return v


class SecurityAlertResolve(BaseModel):
    """Body of the resolve transition.  Both fields are optional."""

    resolved_by: Optional[int] = Field(None, ge=1)
    resolution_note: Optional[str] = Field(None, max_length=2000)


class SecurityAlertResponse(SecurityAlertFields):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    status: str
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="alert_metadata")
    detected_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[int] = None


# ═══════════════════════════════════════════════════════════════════════
# BLOCKED ATTEMPT SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class BlockedAttemptFields(BaseModel):
    """Pure field definitions for blocked attempts.  No validators."""

    source_ip: str
    target_device_id: Optional[int] = None
    attempt_type: str
    attempt_count: int = 1
    user_agent: Optional[str] = None
    request_details: Optional[Dict[str, Any]] = None


class BlockedAttemptCreate(BlockedAttemptFields):
    """Schema for the public blocked-attempt creation endpoint."""

    attempt_count: int = Field(1, ge=1)
    user_agent: Optional[str] = Field(None, max_length=1000)

    @field_validator("source_ip")
    @classmethod
    def validate_source_ip(cls, v: str) -> str:
        return _validate_ip(v, "source IP")

    @field_validator("attempt_type")
    @classmethod
    def validate_attempt_type(cls, v: str) -> str:
        lower = v.strip().lower()
        if not lower or len(lower) > 100 or not SLUG_RE.match(lower):
            raise ValueError(
                f"Invalid attempt type '{v}'. Use lower-case letters, digits and "
                f"underscores (e.g. {', '.join(sorted(KNOWN_ATTEMPT_TYPES))})"
            )
        return lower


class BlockedAttemptResponse(BlockedAttemptFields):
    model_config = ConfigDict(from_attributes=True)

    id: int
    blocked_at: Optional[datetime] = None


# ═══════════════════════════════════════════════════════════════════════
# SYSTEM METRIC SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class SystemMetricFields(BaseModel):
    metric_type: str
    metric_value: float
    unit: str = "percent"
    device_id: Optional[int] = None


class SystemMetricCreate(SystemMetricFields):

    @field_validator("metric_type")
    @classmethod
    def validate_metric_type(cls, v: str) -> str:
        return _validate_choice(v, VALID_METRIC_TYPES, "metric type")

    @field_validator("metric_value")
    @classmethod
    def validate_metric_value(cls, v: float) -> float:
        if v < 0 or v > 999.99:
            raise ValueError("Metric value must be between 0 and 999.99")
        return v

    @model_validator(mode="after")
    def check_percent_range(self) -> "SystemMetricCreate":
        if self.unit == "percent" and self.metric_value > 100:
            raise ValueError("Percent metrics must be between 0 and 100")
        return self


class SystemMetricResponse(SystemMetricFields):
    model_config = ConfigDict(from_attributes=True)

    id: int
    recorded_at: Optional[datetime] = None


# ═══════════════════════════════════════════════════════════════════════
# USER / AUTH SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str
    password: str
    confirm_password: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip().lower()
        if not EMAIL_RE.match(v):
            raise ValueError(f"Invalid email address '{v}'")
        return v

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
            )
        return v

    @model_validator(mode="after")
    def check_passwords_match(self) -> "RegisterRequest":
        if self.confirm_password is not None and self.confirm_password != self.password:
            raise ValueError("Passwords do not match")
        return self


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    user_id: int
    name: str
    email: str
    role: str


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    role: str
    is_active: bool
    created_at: datetime
    last_login_at: Optional[datetime] = None


class RoleUpdateRequest(BaseModel):
    role: str = Field(..., pattern="^(admin|user)$")


class StatusUpdateRequest(BaseModel):
    is_active: bool


# ═══════════════════════════════════════════════════════════════════════
# COMMON
# ═══════════════════════════════════════════════════════════════════════

class PaginatedResponse(BaseModel):
    total: int
    limit: int
    offset: int
    items: List[Any]
