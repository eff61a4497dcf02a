"""
Fleet Gateway - Error hierarchy

Bus-side errors are logged and the message dropped; API-side errors are
mapped to HTTP responses through `http_status`.
"""


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    http_status: int = 500
    code: str = "gateway_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__

    def to_response(self) -> dict:
        return {"error": {"code": self.code, "message": self.message}}


class AlreadyRegistered(GatewayError):
    """Device already registered."""

    http_status = 409
    code = "already_registered"


class InvalidCredentials(GatewayError):
    """Invalid credentials."""

    http_status = 401
    code = "invalid_credentials"


class InvalidToken(GatewayError):
    """Invalid or expired token."""

    http_status = 401
    code = "invalid_token"


class VehicleInactive(GatewayError):
    """Device is not active."""

    http_status = 409
    code = "vehicle_inactive"


class PublishError(GatewayError):
    """Broker did not confirm delivery."""

    http_status = 502
    code = "publish_failed"


class MalformedMessage(GatewayError):
    """Message body is not a valid envelope."""

    http_status = 400
    code = "malformed_message"


class DeviceNotFound(GatewayError):
    """Device not found."""

    http_status = 404
    code = "device_not_found"


class MissionNotFound(GatewayError):
    """Mission not found."""

    http_status = 404
    code = "mission_not_found"


class InvalidStatusTransition(GatewayError):
    """Device status transition not allowed."""

    http_status = 409
    code = "invalid_status_transition"


class InvalidMissionState(GatewayError):
    """Operation not allowed in the mission's current state."""

    http_status = 409
    code = "invalid_mission_state"
