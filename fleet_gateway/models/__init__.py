# Database models
from fleet_gateway.models.device import Device, DeviceStatus
from fleet_gateway.models.health import HealthRecord, HealthStatus
from fleet_gateway.models.mission import (
    Mission,
    MissionPriority,
    MissionState,
    MissionStatusRecord,
    MissionType,
)
from fleet_gateway.models.telemetry import Telemetry

__all__ = [
    "Device",
    "DeviceStatus",
    "HealthRecord",
    "HealthStatus",
    "Mission",
    "MissionPriority",
    "MissionState",
    "MissionStatusRecord",
    "MissionType",
    "Telemetry",
]
