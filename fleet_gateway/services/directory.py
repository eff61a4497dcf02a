"""
Device Directory - authoritative record of known devices

Every write is a single statement or a compare-and-set, so concurrent
handlers for the same device cannot lose updates. Registration is
additionally serialised per device id inside the process; the unique index
on device_uid covers racing writers in other processes.
"""

import asyncio
import logging
import weakref
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fleet_gateway.core.errors import AlreadyRegistered, DeviceNotFound, InvalidStatusTransition
from fleet_gateway.models.device import Device, DeviceStatus, STATUS_TRANSITIONS, allowed_predecessors

logger = logging.getLogger(__name__)

Position = tuple[float, float]


class DeviceDirectory:
    """Device records in the primary store."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def lock_for(self, device_uid: str) -> asyncio.Lock:
        lock = self._locks.get(device_uid)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[device_uid] = lock
        return lock

    async def register(
        self, device_uid: str, password_hash: str, profile: dict[str, Any] | None = None
    ) -> Device:
        """
        Create a device record.

        The secret arrives already hashed (hashing is slow and must not run
        under the per-device lock). Raises AlreadyRegistered on a duplicate id.
        """
        profile = profile or {}
        async with self.lock_for(device_uid):
            async with self._session_maker() as session:
                existing = await session.execute(
                    select(Device.id).where(Device.device_uid == device_uid)
                )
                if existing.scalar_one_or_none() is not None:
                    raise AlreadyRegistered(f"Device {device_uid} already registered")

                device = Device(
                    device_uid=device_uid,
                    name=profile.get("name") or device_uid,
                    model=profile.get("model"),
                    manufacturer=profile.get("manufacturer"),
                    capabilities=profile.get("capabilities"),
                    metadata_=profile.get("metadata"),
                    status=DeviceStatus.REGISTERED,
                    password_hash=password_hash,
                )
                session.add(device)
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    raise AlreadyRegistered(f"Device {device_uid} already registered")

        logger.info(f"🆕 Registered device {device_uid}")
        return device

    async def find_by_id(self, device_uid: str) -> Device | None:
        async with self._session_maker() as session:
            result = await session.execute(select(Device).where(Device.device_uid == device_uid))
            return result.scalar_one_or_none()

    async def get(self, device_uid: str) -> Device:
        """Like find_by_id, but raises DeviceNotFound."""
        device = await self.find_by_id(device_uid)
        if device is None:
            raise DeviceNotFound(f"Device {device_uid} not found")
        return device

    async def list_devices(self) -> list[Device]:
        async with self._session_maker() as session:
            result = await session.execute(select(Device).order_by(Device.created_at.desc()))
            return list(result.scalars().all())

    async def set_current_token(self, device_uid: str, token: str | None) -> None:
        """Replace the device's current token; any earlier token stops being accepted."""
        await self._update(device_uid, current_token=token)

    async def touch_seen(
        self,
        device_uid: str,
        position: Position | None = None,
        seen_at: datetime | None = None,
    ) -> None:
        """Update last-seen time and, when given, the last known position."""
        values: dict[str, Any] = {"last_seen": seen_at or datetime.now(timezone.utc)}
        if position is not None:
            values["last_latitude"], values["last_longitude"] = position
        await self._update(device_uid, **values)

    async def set_status(self, device_uid: str, status: DeviceStatus) -> bool:
        """
        Move a device to `status` following the lifecycle table.

        Returns True once the device holds `status`; setting the current
        status again is a no-op. Raises
        InvalidStatusTransition when the move is not allowed and
        DeviceNotFound for an unknown device.
        """
        async with self._session_maker() as session:
            result = await session.execute(
                update(Device)
                .where(
                    Device.device_uid == device_uid,
                    Device.status.in_(allowed_predecessors(status)),
                )
                .values(status=status)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            if result.rowcount:
                return True

        device = await self.get(device_uid)
        raise InvalidStatusTransition(
            f"Device {device_uid}: {device.status.value} -> {status.value} not allowed "
            f"(allowed: {sorted(s.value for s in STATUS_TRANSITIONS[device.status]) or 'none'})"
        )

    async def _update(self, device_uid: str, **values: Any) -> None:
        async with self._session_maker() as session:
            result = await session.execute(
                update(Device)
                .where(Device.device_uid == device_uid)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        if not result.rowcount:
            raise DeviceNotFound(f"Device {device_uid} not found")
