"""
MQTT topic layout: {prefix}/{device_uid}/{suffix}
"""

from fleet_gateway.core.config import settings

# Inbound (device -> gateway)
REGISTER = "register"
AUTH = "auth"
TELEMETRY = "telemetry"
HEALTH = "health"
MISSION_STATUS = "mission/status"

# Outbound (gateway -> device)
MISSION_COMMAND = "mission/command"
MISSION_CANCEL = "mission/cancel"
AUTH_TOKEN = "auth/token"

# Usable without a token: this is how a device gets its first one
BOOTSTRAP = frozenset({REGISTER, AUTH})
INBOUND = frozenset({REGISTER, AUTH, TELEMETRY, HEALTH, MISSION_STATUS})

SUBSCRIBED = (REGISTER, AUTH, TELEMETRY, HEALTH, MISSION_STATUS, MISSION_COMMAND)


def subscription_patterns(prefix: str | None = None) -> list[str]:
    """Per-device wildcard patterns the gateway subscribes to."""
    prefix = prefix or settings.mqtt_topic_prefix
    return [f"{prefix}/+/{suffix}" for suffix in SUBSCRIBED]


def device_topic(device_uid: str, suffix: str, prefix: str | None = None) -> str:
    prefix = prefix or settings.mqtt_topic_prefix
    return f"{prefix}/{device_uid}/{suffix}"


def parse_topic(topic: str, prefix: str | None = None) -> tuple[str, str] | None:
    """Split a topic into (device_uid, suffix); None if it is not a device topic."""
    prefix = prefix or settings.mqtt_topic_prefix
    parts = topic.split("/")
    if len(parts) < 3 or parts[0] != prefix or not parts[1]:
        return None
    return parts[1], "/".join(parts[2:])
