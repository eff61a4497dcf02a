"""
Ingestion sinks - persist authorized device messages
"""

import logging
from datetime import datetime, timezone

from fleet_gateway.core.errors import DeviceNotFound, InvalidStatusTransition
from fleet_gateway.models.device import DeviceStatus
from fleet_gateway.models.health import ALERT_STATUSES, HealthRecord
from fleet_gateway.models.mission import MissionStatusRecord
from fleet_gateway.models.telemetry import Telemetry
from fleet_gateway.schemas import HealthMessage, MissionStatusMessage, TelemetryMessage
from fleet_gateway.services.directory import DeviceDirectory
from fleet_gateway.services.missions import MissionStateMachine
from fleet_gateway.services.timeseries import TimeseriesStore

logger = logging.getLogger(__name__)


class IngestionSinks:
    """Telemetry, health and mission-status sinks."""

    def __init__(
        self,
        store: TimeseriesStore,
        directory: DeviceDirectory,
        missions: MissionStateMachine,
    ):
        self.store = store
        self.directory = directory
        self.missions = missions

    async def save_telemetry(self, device_uid: str, data: TelemetryMessage) -> Telemetry:
        received_at = datetime.now(timezone.utc)
        record = await self.store.insert(Telemetry(
            device_uid=device_uid,
            timestamp=data.timestamp or received_at,
            latitude=data.latitude,
            longitude=data.longitude,
            altitude=data.altitude,
            speed=data.speed,
            heading=data.heading,
            battery_level=data.battery_level,
            sensors=data.sensors,
            additional_data=data.additional_data,
        ))
        await self.directory.touch_seen(
            device_uid, position=(data.latitude, data.longitude), seen_at=received_at
        )
        logger.debug(f"💾 Telemetry saved for {device_uid}")
        return record

    async def save_health(self, device_uid: str, data: HealthMessage) -> HealthRecord:
        record = await self.store.insert(HealthRecord(
            device_uid=device_uid,
            timestamp=data.timestamp or datetime.now(timezone.utc),
            overall_status=data.overall_status,
            cpu_usage=data.cpu_usage,
            memory_usage=data.memory_usage,
            disk_usage=data.disk_usage,
            temperature=data.temperature,
            battery_health=data.battery_health,
            system_errors=data.system_errors,
            warnings=data.warnings,
            diagnostics=data.diagnostics,
        ))

        if data.overall_status in ALERT_STATUSES:
            try:
                await self.directory.set_status(device_uid, DeviceStatus.MAINTENANCE)
                logger.warning(
                    f"🔧 Device {device_uid} reported {data.overall_status.value}, set to maintenance"
                )
            except (InvalidStatusTransition, DeviceNotFound) as e:
                logger.warning(f"Health alert from {device_uid} did not change status: {e}")

        logger.debug(f"💾 Health saved for {device_uid}")
        return record

    async def save_mission_status(
        self, device_uid: str, data: MissionStatusMessage
    ) -> MissionStatusRecord:
        """Store the report as history, then feed it to the state machine."""
        received_at = datetime.now(timezone.utc)
        record = await self.store.insert(MissionStatusRecord(
            mission_id=data.mission_id,
            device_uid=device_uid,
            timestamp=data.timestamp or received_at,
            current_state=data.current_state,
            progress_percentage=data.progress_percentage,
            current_waypoint_index=data.current_waypoint_index,
            current_latitude=data.current_latitude,
            current_longitude=data.current_longitude,
            distance_remaining=data.distance_remaining,
            estimated_time_remaining=data.estimated_time_remaining,
            status_message=data.status_message,
            additional_data=data.additional_data,
        ))
        await self.missions.apply_report(
            data.mission_id,
            device_uid,
            data.current_state,
            progress=data.progress_percentage,
            received_at=received_at,
        )
        return record
