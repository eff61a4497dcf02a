"""
Fleet Gateway - Message and request schemas

Inbound MQTT envelopes and HTTP request bodies. Wire names are camelCase;
attributes are snake_case.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from fleet_gateway.core.errors import MalformedMessage
from fleet_gateway.models.device import DeviceStatus
from fleet_gateway.models.health import HealthStatus
from fleet_gateway.models.mission import MissionPriority, MissionType


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


def as_utc(value: datetime | None) -> datetime | None:
    """Naive timestamps from devices are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ==================== MQTT ENVELOPES ====================

class RegistrationMessage(WireModel):
    """device/{id}/register"""

    vehicle_id: str | None = None
    password: str = Field(min_length=1)
    name: str | None = None
    model: str | None = None
    manufacturer: str | None = None
    capabilities: list[str] | None = None
    metadata: dict[str, Any] | None = None


class AuthMessage(WireModel):
    """device/{id}/auth"""

    vehicle_id: str | None = None
    password: str = Field(min_length=1)


class SignedMessage(WireModel):
    token: str | None = None
    timestamp: datetime | None = None

    @field_validator("timestamp")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class TelemetryMessage(SignedMessage):
    """device/{id}/telemetry"""

    latitude: float
    longitude: float
    altitude: float | None = None
    speed: float | None = None
    heading: float | None = None
    battery_level: float | None = None
    sensors: dict[str, Any] | None = None
    additional_data: dict[str, Any] | None = None


class HealthMessage(SignedMessage):
    """device/{id}/health"""

    overall_status: HealthStatus
    cpu_usage: float | None = None
    memory_usage: float | None = None
    disk_usage: float | None = None
    temperature: float | None = None
    battery_health: float | None = None
    system_errors: list[Any] | None = None
    warnings: list[Any] | None = None
    diagnostics: dict[str, Any] | None = None


class MissionStatusMessage(SignedMessage):
    """device/{id}/mission/status"""

    mission_id: str = Field(min_length=1)
    current_state: str = Field(min_length=1)
    progress_percentage: float | None = Field(default=None, ge=0, le=100)
    current_waypoint_index: int | None = None
    current_latitude: float | None = None
    current_longitude: float | None = None
    distance_remaining: float | None = None
    estimated_time_remaining: int | None = None
    status_message: str | None = None
    additional_data: dict[str, Any] | None = None


def parse_message(model: type[WireModel], message: dict) -> Any:
    """Validate a decoded envelope, raising MalformedMessage on failure."""
    try:
        return model.model_validate(message)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise MalformedMessage(f"Invalid {model.__name__}: {fields}")


# ==================== HTTP REQUESTS ====================

class RegisterDeviceRequest(WireModel):
    vehicle_id: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=100)
    model: str | None = None
    manufacturer: str | None = None
    capabilities: list[str] | None = None
    metadata: dict[str, Any] | None = None


class AuthenticateDeviceRequest(WireModel):
    vehicle_id: str = Field(min_length=1)
    password: str = Field(min_length=1)


class DeviceStatusUpdate(WireModel):
    status: DeviceStatus


class Waypoint(WireModel):
    latitude: float
    longitude: float
    altitude: float | None = None
    action: str | None = None


class CreateMissionRequest(WireModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    type: MissionType = MissionType.CUSTOM
    priority: MissionPriority = MissionPriority.MEDIUM
    assigned_vehicle_id: str | None = None
    waypoints: list[Waypoint]
    parameters: dict[str, Any] | None = None
    scheduled_start_time: datetime | None = None


class AssignMissionRequest(WireModel):
    vehicle_id: str = Field(min_length=1)
