"""
Device model - a fleet vehicle connected over MQTT
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Enum, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from fleet_gateway.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeviceStatus(str, enum.Enum):
    REGISTERED = "registered"
    ACTIVE = "active"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"
    DECOMMISSIONED = "decommissioned"


# Lifecycle: registered -> active -> inactive|maintenance -> decommissioned,
# with active <-> maintenance as the only way back. A registered device may
# skip straight to maintenance when it reports a critical health status.
STATUS_TRANSITIONS: dict[DeviceStatus, frozenset[DeviceStatus]] = {
    DeviceStatus.REGISTERED: frozenset({
        DeviceStatus.ACTIVE, DeviceStatus.MAINTENANCE, DeviceStatus.DECOMMISSIONED,
    }),
    DeviceStatus.ACTIVE: frozenset({
        DeviceStatus.INACTIVE, DeviceStatus.MAINTENANCE, DeviceStatus.DECOMMISSIONED,
    }),
    DeviceStatus.MAINTENANCE: frozenset({DeviceStatus.ACTIVE, DeviceStatus.DECOMMISSIONED}),
    DeviceStatus.INACTIVE: frozenset({DeviceStatus.DECOMMISSIONED}),
    DeviceStatus.DECOMMISSIONED: frozenset(),
}


def allowed_predecessors(status: DeviceStatus) -> list[DeviceStatus]:
    """Statuses from which `status` may be reached (itself included)."""
    return [status] + [src for src, targets in STATUS_TRANSITIONS.items() if status in targets]


def enum_column(enum_cls: type[enum.Enum]) -> Enum:
    """Store enums by value as plain strings (portable across Postgres and SQLite)."""
    return Enum(
        enum_cls,
        native_enum=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class Device(Base):
    """Fleet vehicle known to the gateway."""

    __tablename__ = "devices"

    id: Mapped[int] = mapped_column(primary_key=True)
    device_uid: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(100))
    model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    manufacturer: Mapped[str | None] = mapped_column(String(100), nullable=True)
    capabilities: Mapped[list | None] = mapped_column(JSON, nullable=True)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)

    status: Mapped[DeviceStatus] = mapped_column(
        enum_column(DeviceStatus), default=DeviceStatus.REGISTERED
    )

    # Credentials
    password_hash: Mapped[str] = mapped_column(String(100))
    # Only the latest issued token is accepted (replay suppression)
    current_token: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    # Last-seen cache, fed by authorized messages and telemetry
    last_seen: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    last_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    def to_public(self) -> dict:
        """Public view (no credentials)."""
        return {
            "vehicleId": self.device_uid,
            "name": self.name,
            "model": self.model,
            "manufacturer": self.manufacturer,
            "status": self.status.value,
            "capabilities": self.capabilities,
            "metadata": self.metadata_,
            "lastSeenAt": self.last_seen.isoformat() if self.last_seen else None,
            "lastKnownLatitude": self.last_latitude,
            "lastKnownLongitude": self.last_longitude,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<Device {self.device_uid} ({self.status.value})>"
