"""
Device registration and authentication flows

Shared by the MQTT bootstrap topics and the HTTP API. Both end with a fresh
token stored as the device's current token and pushed to its token topic.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from fleet_gateway.core.errors import InvalidCredentials, PublishError
from fleet_gateway.core.security import CredentialVerifier
from fleet_gateway.models.device import Device, DeviceStatus
from fleet_gateway.mqtt.dispatcher import CommandDispatcher
from fleet_gateway.services.directory import DeviceDirectory

logger = logging.getLogger(__name__)


@dataclass
class IssuedToken:
    device: Device
    token: str
    delivered: bool  # broker confirmed the token message

    @property
    def status(self) -> DeviceStatus:
        return self.device.status

    def to_public(self) -> dict:
        return {
            "vehicleId": self.device.device_uid,
            "token": self.token,
            "status": self.status.value,
            "delivered": self.delivered,
        }


class DeviceService:
    """Registers and authenticates devices."""

    def __init__(
        self,
        verifier: CredentialVerifier,
        directory: DeviceDirectory,
        dispatcher: CommandDispatcher | None = None,
    ):
        self.verifier = verifier
        self.directory = directory
        self.dispatcher = dispatcher

    async def register_device(
        self, device_uid: str, secret: str, profile: dict[str, Any] | None = None
    ) -> IssuedToken:
        """Create the device and issue its first token. Raises AlreadyRegistered."""
        password_hash = await asyncio.to_thread(self.verifier.hash_secret, secret)
        device = await self.directory.register(device_uid, password_hash, profile)
        token = await self._rotate_token(device_uid)
        device.current_token = token

        delivered = await self._deliver(device_uid, token)
        logger.info(f"✅ Device {device_uid} registered")
        return IssuedToken(device, token, delivered)

    async def authenticate_device(self, device_uid: str, secret: str) -> IssuedToken:
        """
        Check the device secret and issue a token superseding the previous one.

        Unknown, decommissioned and wrong-secret devices all raise
        InvalidCredentials so callers cannot tell them apart.
        """
        device = await self.directory.find_by_id(device_uid)
        if device is None:
            logger.warning(f"Authentication failed: device {device_uid} not found")
            raise InvalidCredentials("Invalid credentials")
        if device.status == DeviceStatus.DECOMMISSIONED:
            logger.warning(f"Authentication failed: device {device_uid} is decommissioned")
            raise InvalidCredentials("Invalid credentials")

        valid = await asyncio.to_thread(self.verifier.verify_secret, secret, device.password_hash)
        if not valid:
            logger.warning(f"Authentication failed: invalid password for device {device_uid}")
            raise InvalidCredentials("Invalid credentials")

        token = await self._rotate_token(device_uid)
        device.current_token = token
        if device.status == DeviceStatus.REGISTERED:
            await self.directory.set_status(device_uid, DeviceStatus.ACTIVE)
            device.status = DeviceStatus.ACTIVE
        await self.directory.touch_seen(device_uid)

        delivered = await self._deliver(device_uid, token)
        logger.info(f"✅ Device {device_uid} authenticated")
        return IssuedToken(device, token, delivered)

    async def _rotate_token(self, device_uid: str) -> str:
        # Issue and store under the device lock so concurrent logins supersede cleanly
        async with self.directory.lock_for(device_uid):
            token = self.verifier.issue(device_uid)
            await self.directory.set_current_token(device_uid, token)
        return token

    async def _deliver(self, device_uid: str, token: str) -> bool:
        if self.dispatcher is None:
            return False
        # A newer login may have rotated the token meanwhile; under the lock the
        # superseded token is never published after its replacement
        async with self.directory.lock_for(device_uid):
            device = await self.directory.find_by_id(device_uid)
            if device is None or device.current_token != token:
                logger.info(f"Token for {device_uid} superseded before delivery, not sent")
                return False
            try:
                await self.dispatcher.send_token(device_uid, token)
            except PublishError:
                # Token stays stored; failure is reported through IssuedToken.delivered
                return False
        return True
