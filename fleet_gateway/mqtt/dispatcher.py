"""
Command Dispatcher - outbound messages to devices
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from fleet_gateway.core.errors import PublishError
from fleet_gateway.models.mission import Mission
from fleet_gateway.mqtt import topics
from fleet_gateway.mqtt.session import SessionManager

logger = logging.getLogger(__name__)


def mission_command_payload(mission: Mission) -> dict[str, Any]:
    """Public mission fields sent to the assigned device."""
    return {
        "missionId": mission.mission_id,
        "name": mission.name,
        "description": mission.description,
        "type": mission.type.value,
        "priority": mission.priority.value,
        "waypoints": mission.waypoints,
        "parameters": mission.parameters,
        "scheduledStartTime": (
            mission.scheduled_start_time.isoformat() if mission.scheduled_start_time else None
        ),
    }


def _now_fields() -> dict[str, Any]:
    now = datetime.now(timezone.utc)
    return {"issuedAt": now.isoformat(), "timestamp": int(now.timestamp() * 1000)}


class CommandDispatcher:
    """
    Publishes to a device's command topics at QoS 1.

    Every send returns only after the broker confirms delivery and raises
    PublishError otherwise. Failed sends are not retried here.
    """

    def __init__(self, session: SessionManager, qos: int = 1):
        self.session = session
        self.qos = qos

    async def send_command(self, device_uid: str, payload: dict[str, Any]) -> None:
        await self._send(device_uid, topics.MISSION_COMMAND, payload)
        logger.info(f"📤 Mission command sent to {device_uid}: {payload.get('missionId')}")

    async def send_token(self, device_uid: str, token: str) -> None:
        await self._send(device_uid, topics.AUTH_TOKEN, {"token": token, **_now_fields()})
        logger.info(f"🔐 Auth token published to {device_uid}")

    async def send_cancel(self, device_uid: str, mission_id: str) -> None:
        payload = {"missionId": mission_id, "timestamp": _now_fields()["timestamp"]}
        await self._send(device_uid, topics.MISSION_CANCEL, payload)
        logger.info(f"🛑 Mission cancel sent to {device_uid}: {mission_id}")

    async def _send(self, device_uid: str, suffix: str, payload: dict[str, Any]) -> None:
        topic = topics.device_topic(device_uid, suffix, self.session.config.mqtt_topic_prefix)
        body = json.dumps(payload, default=str).encode("utf-8")
        try:
            await self.session.publish(topic, body, qos=self.qos)
        except PublishError as e:
            logger.error(f"❌ Failed to publish to {topic}: {e}")
            raise
