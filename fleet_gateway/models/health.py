"""
Health model - system health reports from devices (time-series store)
"""

import enum
from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from fleet_gateway.core.database import TimeseriesBase
from fleet_gateway.models.device import enum_column


class HealthStatus(str, enum.Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    ERROR = "error"


# Health statuses that force the device into maintenance
ALERT_STATUSES = frozenset({HealthStatus.CRITICAL, HealthStatus.ERROR})


class HealthRecord(TimeseriesBase):
    """Point-in-time health snapshot. Append-only."""

    __tablename__ = "device_health"
    __table_args__ = (Index("ix_device_health_device_ts", "device_uid", "timestamp"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    device_uid: Mapped[str] = mapped_column(String(100), index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    overall_status: Mapped[HealthStatus] = mapped_column(enum_column(HealthStatus))

    # Resource utilization, %
    cpu_usage: Mapped[float | None] = mapped_column(Float, nullable=True)
    memory_usage: Mapped[float | None] = mapped_column(Float, nullable=True)
    disk_usage: Mapped[float | None] = mapped_column(Float, nullable=True)

    temperature: Mapped[float | None] = mapped_column(Float, nullable=True)  # Celsius
    battery_health: Mapped[float | None] = mapped_column(Float, nullable=True)  # %

    system_errors: Mapped[list | None] = mapped_column(JSON, nullable=True)
    warnings: Mapped[list | None] = mapped_column(JSON, nullable=True)
    diagnostics: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def to_public(self) -> dict:
        return {
            "vehicleId": self.device_uid,
            "timestamp": self.timestamp.isoformat(),
            "overallStatus": self.overall_status.value,
            "cpuUsage": self.cpu_usage,
            "memoryUsage": self.memory_usage,
            "diskUsage": self.disk_usage,
            "temperature": self.temperature,
            "batteryHealth": self.battery_health,
            "systemErrors": self.system_errors,
            "warnings": self.warnings,
            "diagnostics": self.diagnostics,
        }

    def __repr__(self) -> str:
        return f"<HealthRecord device={self.device_uid} {self.overall_status.value}>"
