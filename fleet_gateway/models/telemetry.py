"""
Telemetry model - position and sensor readings from devices (time-series store)
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from fleet_gateway.core.database import TimeseriesBase


class Telemetry(TimeseriesBase):
    """Point-in-time position report. Append-only."""

    __tablename__ = "device_telemetry"
    __table_args__ = (Index("ix_device_telemetry_device_ts", "device_uid", "timestamp"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    device_uid: Mapped[str] = mapped_column(String(100), index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    # Position
    latitude: Mapped[float] = mapped_column(Float)
    longitude: Mapped[float] = mapped_column(Float)
    altitude: Mapped[float | None] = mapped_column(Float, nullable=True)  # m
    speed: Mapped[float | None] = mapped_column(Float, nullable=True)  # m/s
    heading: Mapped[float | None] = mapped_column(Float, nullable=True)  # degrees

    battery_level: Mapped[float | None] = mapped_column(Float, nullable=True)  # %
    sensors: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    additional_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def to_public(self) -> dict:
        return {
            "vehicleId": self.device_uid,
            "timestamp": self.timestamp.isoformat(),
            "latitude": self.latitude,
            "longitude": self.longitude,
            "altitude": self.altitude,
            "speed": self.speed,
            "heading": self.heading,
            "batteryLevel": self.battery_level,
            "sensors": self.sensors,
            "additionalData": self.additional_data,
        }

    def __repr__(self) -> str:
        return f"<Telemetry device={self.device_uid} ({self.latitude}, {self.longitude})>"
