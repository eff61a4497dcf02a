"""
Authorization Gate - per-message token check for non-bootstrap topics
"""

import logging
from typing import Any

from fleet_gateway.core.errors import InvalidToken
from fleet_gateway.core.security import CredentialVerifier
from fleet_gateway.models.device import Device, DeviceStatus
from fleet_gateway.services.directory import DeviceDirectory

logger = logging.getLogger(__name__)


class AuthorizationGate:
    """
    Accepts a message only if its token is valid, bound to the topic's
    device, and is that device's current token.

    Side effect: an accepted message refreshes the device's last-seen time
    through DeviceDirectory.touch_seen. Rejections are logged and raised as
    InvalidToken; the caller drops the message without replying.
    """

    def __init__(self, verifier: CredentialVerifier, directory: DeviceDirectory):
        self.verifier = verifier
        self.directory = directory

    async def authorize(self, device_uid: str, topic: str, message: dict[str, Any]) -> Device:
        token = message.get("token")
        if not isinstance(token, str) or not token:
            self._reject(device_uid, topic, "missing authentication token")

        try:
            claims = self.verifier.verify(token)
        except InvalidToken:
            self._reject(device_uid, topic, "invalid or expired token")

        if claims.get("vehicleId") != device_uid:
            self._reject(device_uid, topic, f"token issued for {claims.get('vehicleId')}")

        device = await self.directory.find_by_id(device_uid)
        if device is None:
            self._reject(device_uid, topic, "unknown device")
        if device.status == DeviceStatus.DECOMMISSIONED:
            self._reject(device_uid, topic, "device decommissioned")
        if device.current_token and device.current_token != token:
            self._reject(device_uid, topic, "outdated token")

        await self.directory.touch_seen(device_uid)
        return device

    @staticmethod
    def _reject(device_uid: str, topic: str, reason: str) -> None:
        logger.warning(f"🚫 Rejected message from {device_uid} on {topic}: {reason}")
        raise InvalidToken(reason)
