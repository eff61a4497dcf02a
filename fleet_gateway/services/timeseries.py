"""
Time-series store - append-only fact records (telemetry, health, mission status)
"""

from datetime import datetime
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fleet_gateway.models.health import HealthRecord
from fleet_gateway.models.mission import MissionStatusRecord
from fleet_gateway.models.telemetry import Telemetry

Record = TypeVar("Record", Telemetry, HealthRecord, MissionStatusRecord)

# Range queries never return more than this many rows
MAX_ROWS = 1000


class TimeseriesStore:
    """Insert and range-query fact records. Records are never updated."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def insert(self, record: Record) -> Record:
        async with self._session_maker() as session:
            session.add(record)
            await session.commit()
        return record

    async def find_telemetry(
        self, device_uid: str, start: datetime | None = None, end: datetime | None = None,
    ) -> list[Telemetry]:
        return await self._find(Telemetry, Telemetry.device_uid == device_uid, start, end)

    async def find_health(
        self, device_uid: str, start: datetime | None = None, end: datetime | None = None,
    ) -> list[HealthRecord]:
        return await self._find(HealthRecord, HealthRecord.device_uid == device_uid, start, end)

    async def find_mission_status(
        self, mission_id: str, start: datetime | None = None, end: datetime | None = None,
    ) -> list[MissionStatusRecord]:
        return await self._find(
            MissionStatusRecord, MissionStatusRecord.mission_id == mission_id, start, end
        )

    async def _find(self, model, condition, start, end) -> list:
        query = select(model).where(condition)
        if start is not None:
            query = query.where(model.timestamp >= start)
        if end is not None:
            query = query.where(model.timestamp <= end)
        query = query.order_by(model.timestamp.desc(), model.id.desc()).limit(MAX_ROWS)

        async with self._session_maker() as session:
            result = await session.execute(query)
            return list(result.scalars().all())
