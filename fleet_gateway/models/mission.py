"""
Mission models - mission records (primary store) and device status reports (time-series store)
"""

import enum
from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fleet_gateway.core.database import Base, TimeseriesBase
from fleet_gateway.models.device import enum_column, utcnow


class MissionType(str, enum.Enum):
    DELIVERY = "delivery"
    PATROL = "patrol"
    INSPECTION = "inspection"
    SURVEY = "survey"
    CUSTOM = "custom"


class MissionPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class MissionState(str, enum.Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = (MissionState.COMPLETED, MissionState.FAILED, MissionState.CANCELLED)


class Mission(Base):
    """Mission assigned to (at most) one device."""

    __tablename__ = "missions"

    id: Mapped[int] = mapped_column(primary_key=True)
    mission_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[MissionType] = mapped_column(enum_column(MissionType), default=MissionType.CUSTOM)
    priority: Mapped[MissionPriority] = mapped_column(
        enum_column(MissionPriority), default=MissionPriority.MEDIUM
    )
    state: Mapped[MissionState] = mapped_column(
        enum_column(MissionState), default=MissionState.PENDING, index=True
    )

    assigned_device_uid: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)

    # [{"latitude": .., "longitude": .., "altitude": .., "action": ..}, ...]
    waypoints: Mapped[list] = mapped_column(JSON, default=list)
    parameters: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    scheduled_start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_completion_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    progress_percentage: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def to_public(self) -> dict:
        def iso(value: datetime | None) -> str | None:
            return value.isoformat() if value else None

        return {
            "missionId": self.mission_id,
            "name": self.name,
            "description": self.description,
            "type": self.type.value,
            "priority": self.priority.value,
            "state": self.state.value,
            "assignedVehicleId": self.assigned_device_uid,
            "waypoints": self.waypoints,
            "parameters": self.parameters,
            "scheduledStartTime": iso(self.scheduled_start_time),
            "actualStartTime": iso(self.actual_start_time),
            "actualCompletionTime": iso(self.actual_completion_time),
            "progressPercentage": self.progress_percentage,
        }

    def __repr__(self) -> str:
        return f"<Mission {self.mission_id} ({self.state.value})>"


class MissionStatusRecord(TimeseriesBase):
    """Progress report sent by a device. Append-only."""

    __tablename__ = "mission_status"
    __table_args__ = (Index("ix_mission_status_mission_ts", "mission_id", "timestamp"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    mission_id: Mapped[str] = mapped_column(String(64), index=True)
    device_uid: Mapped[str] = mapped_column(String(100), index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    # Reported as-is; may be any string the device sends
    current_state: Mapped[str] = mapped_column(String(32))
    progress_percentage: Mapped[float | None] = mapped_column(Float, nullable=True)
    current_waypoint_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    current_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    current_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    distance_remaining: Mapped[float | None] = mapped_column(Float, nullable=True)  # m
    estimated_time_remaining: Mapped[int | None] = mapped_column(Integer, nullable=True)  # s
    status_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    additional_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def to_public(self) -> dict:
        return {
            "missionId": self.mission_id,
            "vehicleId": self.device_uid,
            "timestamp": self.timestamp.isoformat(),
            "currentState": self.current_state,
            "progressPercentage": self.progress_percentage,
            "currentWaypointIndex": self.current_waypoint_index,
            "currentLatitude": self.current_latitude,
            "currentLongitude": self.current_longitude,
            "distanceRemaining": self.distance_remaining,
            "estimatedTimeRemaining": self.estimated_time_remaining,
            "statusMessage": self.status_message,
        }

    def __repr__(self) -> str:
        return f"<MissionStatusRecord {self.mission_id} {self.current_state}>"
