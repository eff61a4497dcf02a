"""
Missions - lifecycle state machine and mission management

    pending -> assigned -> in_progress -> completed | failed
    any non-terminal state -> cancelled (cancel_mission only)

Device reports are applied with conditional UPDATEs guarded on the mission
being non-terminal and assigned to the reporting device, so a late or
duplicate report can never move a finished mission.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fleet_gateway.core.errors import InvalidMissionState, MissionNotFound, VehicleInactive
from fleet_gateway.models.device import DeviceStatus
from fleet_gateway.models.mission import (
    Mission,
    MissionPriority,
    MissionState,
    MissionType,
    TERMINAL_STATES,
)
from fleet_gateway.mqtt.dispatcher import CommandDispatcher, mission_command_payload
from fleet_gateway.services.directory import DeviceDirectory

logger = logging.getLogger(__name__)

# States from which a mission can still be (re)assigned
ASSIGNABLE_STATES = (MissionState.PENDING, MissionState.ASSIGNED)


def new_mission_id() -> str:
    return f"MISSION-{uuid.uuid4()}"


class MissionStateMachine:
    """Advances missions from device-reported status."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def apply_report(
        self,
        mission_id: str,
        device_uid: str,
        reported_state: str,
        progress: float | None = None,
        received_at: datetime | None = None,
    ) -> bool:
        """
        Apply one status report in arrival order.

        - in_progress with no start time yet: start the mission
        - completed: complete it, progress forced to 100
        - failed: fail it, keeping the last progress unless this report has one
        - anything else: adopt the reported progress only

        Returns True if the mission row changed.
        """
        now = received_at or datetime.now(timezone.utc)

        if reported_state == MissionState.IN_PROGRESS.value:
            values = {"state": MissionState.IN_PROGRESS, "actual_start_time": now}
            if progress is not None:
                values["progress_percentage"] = progress
            if await self._update(
                mission_id, device_uid, values, Mission.actual_start_time.is_(None)
            ):
                logger.info(f"🚀 Mission {mission_id} started by {device_uid}")
                return True
            values = {}
        elif reported_state == MissionState.COMPLETED.value:
            values = {
                "state": MissionState.COMPLETED,
                "actual_completion_time": now,
                "progress_percentage": 100,
            }
        elif reported_state == MissionState.FAILED.value:
            values = {"state": MissionState.FAILED}
        else:
            values = {}

        if progress is not None and "progress_percentage" not in values:
            values["progress_percentage"] = progress
        if not values:
            return False

        changed = await self._update(mission_id, device_uid, values)
        if not changed:
            logger.info(
                f"Mission {mission_id}: report '{reported_state}' from {device_uid} not applied "
                f"(unknown, finished, or assigned to another device)"
            )
        elif "state" in values:
            logger.info(f"🏁 Mission {mission_id} {values['state'].value}")
        return changed

    async def _update(self, mission_id: str, device_uid: str, values: dict, *conditions) -> bool:
        async with self._session_maker() as session:
            result = await session.execute(
                update(Mission)
                .where(
                    Mission.mission_id == mission_id,
                    Mission.assigned_device_uid == device_uid,
                    Mission.state.not_in(TERMINAL_STATES),
                    *conditions,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        return bool(result.rowcount)


class MissionService:
    """Mission management: create, assign, cancel, query."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        directory: DeviceDirectory,
        dispatcher: CommandDispatcher | None = None,
    ):
        self._session_maker = session_maker
        self.directory = directory
        self.dispatcher = dispatcher

    async def create_mission(
        self,
        name: str,
        waypoints: list[dict[str, Any]],
        description: str | None = None,
        type: MissionType = MissionType.CUSTOM,
        priority: MissionPriority = MissionPriority.MEDIUM,
        assigned_device_uid: str | None = None,
        parameters: dict[str, Any] | None = None,
        scheduled_start_time: datetime | None = None,
    ) -> Mission:
        """Create a mission; if a device is given it must be active and gets the command."""
        if assigned_device_uid:
            await self._require_active(assigned_device_uid)

        mission = Mission(
            mission_id=new_mission_id(),
            name=name,
            description=description,
            type=type,
            priority=priority,
            state=MissionState.ASSIGNED if assigned_device_uid else MissionState.PENDING,
            assigned_device_uid=assigned_device_uid,
            waypoints=waypoints,
            parameters=parameters,
            scheduled_start_time=scheduled_start_time,
        )
        async with self._session_maker() as session:
            session.add(mission)
            await session.commit()
        logger.info(f"🆕 Mission {mission.mission_id} created")

        if assigned_device_uid:
            await self._publish_command(mission)
        return mission

    async def get_mission(self, mission_id: str) -> Mission:
        async with self._session_maker() as session:
            result = await session.execute(select(Mission).where(Mission.mission_id == mission_id))
            mission = result.scalar_one_or_none()
        if mission is None:
            raise MissionNotFound(f"Mission {mission_id} not found")
        return mission

    async def list_missions(
        self, state: MissionState | None = None, device_uid: str | None = None
    ) -> list[Mission]:
        query = select(Mission)
        if state is not None:
            query = query.where(Mission.state == state)
        if device_uid is not None:
            query = query.where(Mission.assigned_device_uid == device_uid)
        query = query.order_by(Mission.created_at.desc(), Mission.id.desc())

        async with self._session_maker() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def assign_mission(self, mission_id: str, device_uid: str) -> Mission:
        """Assign a pending/assigned mission to an active device and send it the command."""
        await self._require_active(device_uid)
        await self.get_mission(mission_id)

        async with self._session_maker() as session:
            result = await session.execute(
                update(Mission)
                .where(Mission.mission_id == mission_id, Mission.state.in_(ASSIGNABLE_STATES))
                .values(assigned_device_uid=device_uid, state=MissionState.ASSIGNED)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        mission = await self.get_mission(mission_id)
        if not result.rowcount:
            raise InvalidMissionState(f"Mission {mission_id} is {mission.state.value}, cannot assign")

        logger.info(f"📌 Mission {mission_id} assigned to {device_uid}")
        await self._publish_command(mission)
        return mission

    async def cancel_mission(self, mission_id: str) -> Mission:
        """Cancel a non-terminal mission and notify its device, if any."""
        await self.get_mission(mission_id)

        async with self._session_maker() as session:
            result = await session.execute(
                update(Mission)
                .where(Mission.mission_id == mission_id, Mission.state.not_in(TERMINAL_STATES))
                .values(state=MissionState.CANCELLED)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        mission = await self.get_mission(mission_id)
        if not result.rowcount:
            raise InvalidMissionState(f"Mission {mission_id} is already {mission.state.value}")

        logger.info(f"🛑 Mission {mission_id} cancelled")
        if mission.assigned_device_uid and self.dispatcher is not None:
            await self.dispatcher.send_cancel(mission.assigned_device_uid, mission_id)
        return mission

    async def _require_active(self, device_uid: str) -> None:
        device = await self.directory.get(device_uid)
        if device.status != DeviceStatus.ACTIVE:
            raise VehicleInactive(f"Device {device_uid} is {device.status.value}, not active")

    async def _publish_command(self, mission: Mission) -> None:
        if self.dispatcher is None or not mission.assigned_device_uid:
            return
        await self.dispatcher.send_command(mission.assigned_device_uid, mission_command_payload(mission))
