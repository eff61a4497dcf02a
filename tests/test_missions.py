"""
Tests for mission management and the device-report state machine.
"""

import pytest

from fleet_gateway.core.errors import (
    DeviceNotFound,
    InvalidMissionState,
    MissionNotFound,
    PublishError,
    VehicleInactive,
)
from fleet_gateway.models.device import DeviceStatus
from fleet_gateway.models.mission import MissionState
from fleet_gateway.services.missions import MissionService, MissionStateMachine


@pytest.fixture
def missions(session_maker, directory, mock_dispatcher):
    return MissionService(session_maker, directory, mock_dispatcher)


@pytest.fixture
def machine(session_maker):
    return MissionStateMachine(session_maker)


async def add_active_device(directory, device_uid="VEHICLE-001"):
    await directory.register(device_uid, "hash")
    await directory.set_status(device_uid, DeviceStatus.ACTIVE)


class TestCreateMission:
    """Tests for MissionService.create_mission."""

    @pytest.mark.asyncio
    async def test_create_unassigned(self, missions, sample_waypoints, mock_dispatcher):
        mission = await missions.create_mission("Patrol A", sample_waypoints)

        assert mission.mission_id.startswith("MISSION-")
        assert mission.state == MissionState.PENDING
        assert mission.assigned_device_uid is None
        mock_dispatcher.send_command.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_create_assigned_sends_command(
        self, missions, directory, sample_waypoints, mock_dispatcher
    ):
        await add_active_device(directory)

        mission = await missions.create_mission(
            "Delivery", sample_waypoints, assigned_device_uid="VEHICLE-001"
        )

        assert mission.state == MissionState.ASSIGNED
        device_uid, payload = mock_dispatcher.send_command.await_args.args
        assert device_uid == "VEHICLE-001"
        assert payload["missionId"] == mission.mission_id
        assert payload["waypoints"] == sample_waypoints

    @pytest.mark.asyncio
    async def test_create_for_inactive_device(self, missions, directory, sample_waypoints):
        """Test that a registered but never-authenticated device cannot get missions."""
        await directory.register("VEHICLE-001", "hash")

        with pytest.raises(VehicleInactive):
            await missions.create_mission("Delivery", sample_waypoints, assigned_device_uid="VEHICLE-001")
        assert await missions.list_missions() == []

    @pytest.mark.asyncio
    async def test_create_for_unknown_device(self, missions, sample_waypoints):
        with pytest.raises(DeviceNotFound):
            await missions.create_mission("Delivery", sample_waypoints, assigned_device_uid="ghost")

    @pytest.mark.asyncio
    async def test_command_failure_surfaces(
        self, missions, directory, sample_waypoints, mock_dispatcher
    ):
        await add_active_device(directory)
        mock_dispatcher.send_command.side_effect = PublishError("offline")

        with pytest.raises(PublishError):
            await missions.create_mission("Delivery", sample_waypoints, assigned_device_uid="VEHICLE-001")


class TestMissionQueries:
    """Tests for get/list."""

    @pytest.mark.asyncio
    async def test_get_unknown(self, missions):
        with pytest.raises(MissionNotFound):
            await missions.get_mission("MISSION-nope")

    @pytest.mark.asyncio
    async def test_list_filters(self, missions, directory, sample_waypoints):
        await add_active_device(directory)
        pending = await missions.create_mission("A", sample_waypoints)
        assigned = await missions.create_mission("B", sample_waypoints, assigned_device_uid="VEHICLE-001")

        by_state = await missions.list_missions(state=MissionState.PENDING)
        by_device = await missions.list_missions(device_uid="VEHICLE-001")

        assert [m.mission_id for m in by_state] == [pending.mission_id]
        assert [m.mission_id for m in by_device] == [assigned.mission_id]
        assert len(await missions.list_missions()) == 2


class TestAssignAndCancel:
    """Tests for MissionService.assign_mission and cancel_mission."""

    @pytest.mark.asyncio
    async def test_assign_pending(self, missions, directory, sample_waypoints, mock_dispatcher):
        await add_active_device(directory)
        mission = await missions.create_mission("A", sample_waypoints)

        assigned = await missions.assign_mission(mission.mission_id, "VEHICLE-001")

        assert assigned.state == MissionState.ASSIGNED
        assert assigned.assigned_device_uid == "VEHICLE-001"
        mock_dispatcher.send_command.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_assign_finished_mission(self, missions, directory, sample_waypoints):
        await add_active_device(directory)
        mission = await missions.create_mission("A", sample_waypoints)
        await missions.cancel_mission(mission.mission_id)

        with pytest.raises(InvalidMissionState):
            await missions.assign_mission(mission.mission_id, "VEHICLE-001")

    @pytest.mark.asyncio
    async def test_cancel_notifies_device(self, missions, directory, sample_waypoints, mock_dispatcher):
        await add_active_device(directory)
        mission = await missions.create_mission("A", sample_waypoints, assigned_device_uid="VEHICLE-001")

        cancelled = await missions.cancel_mission(mission.mission_id)

        assert cancelled.state == MissionState.CANCELLED
        mock_dispatcher.send_cancel.assert_awaited_once_with("VEHICLE-001", mission.mission_id)

    @pytest.mark.asyncio
    async def test_cancel_twice(self, missions, sample_waypoints):
        mission = await missions.create_mission("A", sample_waypoints)
        await missions.cancel_mission(mission.mission_id)

        with pytest.raises(InvalidMissionState):
            await missions.cancel_mission(mission.mission_id)


class TestStateMachine:
    """Tests for MissionStateMachine.apply_report."""

    @pytest.fixture
    async def mission(self, missions, directory, sample_waypoints):
        await add_active_device(directory)
        return await missions.create_mission("A", sample_waypoints, assigned_device_uid="VEHICLE-001")

    @pytest.mark.asyncio
    async def test_first_in_progress_starts(self, machine, missions, mission):
        assert await machine.apply_report(mission.mission_id, "VEHICLE-001", "in_progress", 10)

        stored = await missions.get_mission(mission.mission_id)
        assert stored.state == MissionState.IN_PROGRESS
        assert stored.actual_start_time is not None
        assert stored.progress_percentage == 10

    @pytest.mark.asyncio
    async def test_start_time_set_once(self, machine, missions, mission):
        await machine.apply_report(mission.mission_id, "VEHICLE-001", "in_progress", 10)
        started = (await missions.get_mission(mission.mission_id)).actual_start_time

        await machine.apply_report(mission.mission_id, "VEHICLE-001", "in_progress", 20)

        stored = await missions.get_mission(mission.mission_id)
        assert stored.actual_start_time == started
        assert stored.progress_percentage == 20

    @pytest.mark.asyncio
    async def test_completed_forces_full_progress(self, machine, missions, mission):
        """Test that completion sets 100% whatever the report says."""
        await machine.apply_report(mission.mission_id, "VEHICLE-001", "in_progress", 40)
        await machine.apply_report(mission.mission_id, "VEHICLE-001", "completed", 90)

        stored = await missions.get_mission(mission.mission_id)
        assert stored.state == MissionState.COMPLETED
        assert stored.progress_percentage == 100
        assert stored.actual_completion_time is not None

    @pytest.mark.asyncio
    async def test_completed_is_sticky(self, machine, missions, mission):
        """Test that a late in_progress report cannot reopen a completed mission."""
        await machine.apply_report(mission.mission_id, "VEHICLE-001", "completed")

        changed = await machine.apply_report(mission.mission_id, "VEHICLE-001", "in_progress", 50)

        stored = await missions.get_mission(mission.mission_id)
        assert changed is False
        assert stored.state == MissionState.COMPLETED
        assert stored.progress_percentage == 100

    @pytest.mark.asyncio
    async def test_failed_keeps_last_progress(self, machine, missions, mission):
        await machine.apply_report(mission.mission_id, "VEHICLE-001", "in_progress", 30)
        await machine.apply_report(mission.mission_id, "VEHICLE-001", "failed")

        stored = await missions.get_mission(mission.mission_id)
        assert stored.state == MissionState.FAILED
        assert stored.progress_percentage == 30

    @pytest.mark.asyncio
    async def test_other_state_updates_progress_only(self, machine, missions, mission):
        await machine.apply_report(mission.mission_id, "VEHICLE-001", "paused", 15)

        stored = await missions.get_mission(mission.mission_id)
        assert stored.state == MissionState.ASSIGNED
        assert stored.progress_percentage == 15

    @pytest.mark.asyncio
    async def test_report_from_other_device(self, machine, missions, directory, mission):
        await add_active_device(directory, "VEHICLE-002")

        changed = await machine.apply_report(mission.mission_id, "VEHICLE-002", "completed")

        assert changed is False
        assert (await missions.get_mission(mission.mission_id)).state == MissionState.ASSIGNED

    @pytest.mark.asyncio
    async def test_cancelled_mission_frozen(self, machine, missions, mission):
        await missions.cancel_mission(mission.mission_id)

        assert await machine.apply_report(mission.mission_id, "VEHICLE-001", "in_progress", 10) is False
        assert (await missions.get_mission(mission.mission_id)).state == MissionState.CANCELLED

    @pytest.mark.asyncio
    async def test_unknown_mission(self, machine):
        assert await machine.apply_report("MISSION-nope", "VEHICLE-001", "completed") is False
