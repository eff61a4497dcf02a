"""
Tests for inbound envelope validation.
"""

from datetime import datetime, timezone

import pytest

from fleet_gateway.core.errors import MalformedMessage
from fleet_gateway.models.health import HealthStatus
from fleet_gateway.schemas import (
    HealthMessage,
    MissionStatusMessage,
    RegistrationMessage,
    TelemetryMessage,
    parse_message,
)


class TestEnvelopes:
    """Tests for camelCase envelopes."""

    def test_telemetry_camel_case(self):
        message = parse_message(TelemetryMessage, {
            "token": "t", "latitude": 1, "longitude": 2, "batteryLevel": 80, "unknownField": True,
        })

        assert message.battery_level == 80
        assert message.timestamp is None

    def test_naive_timestamp_is_utc(self):
        message = parse_message(TelemetryMessage, {
            "latitude": 1, "longitude": 2, "timestamp": "2026-01-01T12:00:00",
        })

        assert message.timestamp == datetime(2026, 1, 1, 12, tzinfo=timezone.utc)

    def test_offset_timestamp_converted(self):
        message = parse_message(TelemetryMessage, {
            "latitude": 1, "longitude": 2, "timestamp": "2026-01-01T14:00:00+02:00",
        })

        assert message.timestamp == datetime(2026, 1, 1, 12, tzinfo=timezone.utc)
        assert message.timestamp.utcoffset().total_seconds() == 0

    def test_missing_position(self):
        with pytest.raises(MalformedMessage) as exc:
            parse_message(TelemetryMessage, {"latitude": 1})

        assert "longitude" in exc.value.message

    def test_health_status_enum(self):
        assert parse_message(HealthMessage, {"overallStatus": "critical"}).overall_status == HealthStatus.CRITICAL
        with pytest.raises(MalformedMessage):
            parse_message(HealthMessage, {"overallStatus": "on fire"})

    def test_mission_status_progress_range(self):
        with pytest.raises(MalformedMessage):
            parse_message(MissionStatusMessage, {
                "missionId": "M", "currentState": "in_progress", "progressPercentage": 120,
            })

    def test_mission_status_any_state(self):
        """Test that device-reported states are free text."""
        message = parse_message(MissionStatusMessage, {"missionId": "M", "currentState": "paused"})

        assert message.current_state == "paused"
        assert message.progress_percentage is None

    def test_registration_requires_password(self):
        with pytest.raises(MalformedMessage):
            parse_message(RegistrationMessage, {"vehicleId": "V-1", "password": ""})
