"""
Ingestion Router - classify inbound device messages and hand them to sinks
"""

import json
import logging
from typing import Any

from fleet_gateway.core.errors import (
    AlreadyRegistered,
    GatewayError,
    InvalidCredentials,
    InvalidToken,
    MalformedMessage,
)
from fleet_gateway.mqtt import topics
from fleet_gateway.schemas import (
    AuthMessage,
    HealthMessage,
    MissionStatusMessage,
    RegistrationMessage,
    TelemetryMessage,
    parse_message,
)
from fleet_gateway.services.authorization import AuthorizationGate
from fleet_gateway.services.devices import DeviceService
from fleet_gateway.services.ingest import IngestionSinks

logger = logging.getLogger(__name__)


def decode_payload(raw: bytes) -> dict[str, Any]:
    """Decode a JSON object body or raise MalformedMessage."""
    try:
        message = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedMessage(f"Body is not JSON: {e}")
    if not isinstance(message, dict):
        raise MalformedMessage("Body is not a JSON object")
    return message


class IngestionRouter:
    """
    Entry point for every inbound message.

    Bootstrap topics (register, auth) go straight to the device flows; all
    other inbound topics must pass the authorization gate first. Nothing is
    ever sent back for a rejected or failed message.
    """

    def __init__(
        self,
        gate: AuthorizationGate,
        sinks: IngestionSinks,
        devices: DeviceService,
        prefix: str | None = None,
    ):
        self.gate = gate
        self.sinks = sinks
        self.devices = devices
        self.prefix = prefix

    async def handle_message(self, topic: str, raw: bytes) -> None:
        """Route one message. Never raises."""
        parsed = topics.parse_topic(topic, self.prefix)
        if parsed is None or parsed[1] not in topics.INBOUND:
            return
        device_uid, kind = parsed

        try:
            message = decode_payload(raw)
            if kind not in topics.BOOTSTRAP:
                await self.gate.authorize(device_uid, topic, message)
            await self._dispatch(kind, device_uid, message)
        except InvalidToken:
            # Logged by the gate; silent drop
            return
        except MalformedMessage as e:
            logger.warning(f"⚠️ Dropped malformed message from {device_uid} on {topic}: {e}")
        except GatewayError as e:
            logger.warning(f"⚠️ Dropped message from {device_uid} on {topic}: {e.message}")
        except Exception:
            logger.exception(f"❌ Error handling message on {topic}")

    async def _dispatch(self, kind: str, device_uid: str, message: dict[str, Any]) -> None:
        if kind == topics.TELEMETRY:
            await self.sinks.save_telemetry(device_uid, parse_message(TelemetryMessage, message))
        elif kind == topics.HEALTH:
            await self.sinks.save_health(device_uid, parse_message(HealthMessage, message))
        elif kind == topics.MISSION_STATUS:
            await self.sinks.save_mission_status(
                device_uid, parse_message(MissionStatusMessage, message)
            )
        elif kind == topics.AUTH:
            await self._handle_auth(device_uid, parse_message(AuthMessage, message))
        elif kind == topics.REGISTER:
            await self._handle_registration(device_uid, parse_message(RegistrationMessage, message))

    async def _handle_auth(self, device_uid: str, data: AuthMessage) -> None:
        logger.info(f"🔑 Authentication request from {device_uid}")
        if data.vehicle_id and data.vehicle_id != device_uid:
            logger.warning(f"Authentication failed: topic {device_uid} but body {data.vehicle_id}")
            return
        try:
            await self.devices.authenticate_device(device_uid, data.password)
        except InvalidCredentials:
            # Already logged with the reason; no reply to the sender
            return

    async def _handle_registration(self, device_uid: str, data: RegistrationMessage) -> None:
        logger.info(f"📝 Registration request from {device_uid}")
        if data.vehicle_id and data.vehicle_id != device_uid:
            logger.warning(f"Registration refused: topic {device_uid} but body {data.vehicle_id}")
            return
        profile = data.model_dump(exclude={"vehicle_id", "password"}, exclude_none=True)
        try:
            await self.devices.register_device(device_uid, data.password, profile)
        except AlreadyRegistered:
            logger.warning(f"Registration refused: {device_uid} already registered")
