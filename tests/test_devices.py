"""
Tests for device registration, authentication and the authorization gate.
"""

import asyncio

import pytest

from fleet_gateway.core.errors import AlreadyRegistered, InvalidCredentials, InvalidToken, PublishError
from fleet_gateway.models.device import DeviceStatus
from fleet_gateway.services.authorization import AuthorizationGate
from fleet_gateway.services.devices import DeviceService


@pytest.fixture
def devices(verifier, directory, mock_dispatcher):
    return DeviceService(verifier, directory, mock_dispatcher)


@pytest.fixture
def gate(verifier, directory):
    return AuthorizationGate(verifier, directory)


class TestRegisterDevice:
    """Tests for DeviceService.register_device."""

    @pytest.mark.asyncio
    async def test_register_issues_token(self, devices, directory, verifier, mock_dispatcher):
        """Test that registration stores a hash and pushes the first token."""
        issued = await devices.register_device("VEHICLE-001", "12345", {"name": "Van"})

        assert issued.delivered is True
        assert issued.status == DeviceStatus.REGISTERED
        assert verifier.verify(issued.token)["vehicleId"] == "VEHICLE-001"
        mock_dispatcher.send_token.assert_awaited_once_with("VEHICLE-001", issued.token)

        device = await directory.get("VEHICLE-001")
        assert device.current_token == issued.token
        assert device.password_hash != "12345"
        assert verifier.verify_secret("12345", device.password_hash)

    @pytest.mark.asyncio
    async def test_public_view(self, devices):
        issued = await devices.register_device("VEHICLE-001", "12345")

        assert issued.to_public() == {
            "vehicleId": "VEHICLE-001",
            "token": issued.token,
            "status": "registered",
            "delivered": True,
        }

    @pytest.mark.asyncio
    async def test_concurrent_duplicate(self, devices, directory):
        results = await asyncio.gather(
            devices.register_device("VEHICLE-001", "12345"),
            devices.register_device("VEHICLE-001", "12345"),
            return_exceptions=True,
        )

        assert sum(isinstance(r, AlreadyRegistered) for r in results) == 1
        assert len(await directory.list_devices()) == 1

    @pytest.mark.asyncio
    async def test_undelivered_token_is_kept(self, devices, directory, mock_dispatcher):
        """Test that a failed token push is reported, not raised."""
        mock_dispatcher.send_token.side_effect = PublishError("offline")

        issued = await devices.register_device("VEHICLE-001", "12345")

        assert issued.delivered is False
        assert (await directory.get("VEHICLE-001")).current_token == issued.token

    @pytest.mark.asyncio
    async def test_without_dispatcher(self, verifier, directory):
        issued = await DeviceService(verifier, directory).register_device("VEHICLE-001", "12345")

        assert issued.delivered is False


class TestAuthenticateDevice:
    """Tests for DeviceService.authenticate_device."""

    @pytest.mark.asyncio
    async def test_authenticate_activates(self, devices, directory):
        """Test that the first login moves a registered device to active."""
        await devices.register_device("VEHICLE-001", "12345")

        issued = await devices.authenticate_device("VEHICLE-001", "12345")

        device = await directory.get("VEHICLE-001")
        assert issued.status == DeviceStatus.ACTIVE
        assert device.status == DeviceStatus.ACTIVE
        assert device.current_token == issued.token
        assert device.last_seen is not None

    @pytest.mark.asyncio
    async def test_authenticate_keeps_maintenance(self, devices, directory):
        await devices.register_device("VEHICLE-001", "12345")
        await directory.set_status("VEHICLE-001", DeviceStatus.ACTIVE)
        await directory.set_status("VEHICLE-001", DeviceStatus.MAINTENANCE)

        issued = await devices.authenticate_device("VEHICLE-001", "12345")

        assert issued.status == DeviceStatus.MAINTENANCE

    @pytest.mark.asyncio
    async def test_wrong_password(self, devices, mock_dispatcher):
        await devices.register_device("VEHICLE-001", "12345")
        mock_dispatcher.send_token.reset_mock()

        with pytest.raises(InvalidCredentials):
            await devices.authenticate_device("VEHICLE-001", "wrong")
        mock_dispatcher.send_token.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_device(self, devices):
        with pytest.raises(InvalidCredentials):
            await devices.authenticate_device("ghost", "12345")

    @pytest.mark.asyncio
    async def test_decommissioned_device(self, devices, directory):
        await devices.register_device("VEHICLE-001", "12345")
        await directory.set_status("VEHICLE-001", DeviceStatus.DECOMMISSIONED)

        with pytest.raises(InvalidCredentials):
            await devices.authenticate_device("VEHICLE-001", "12345")

    @pytest.mark.asyncio
    async def test_concurrent_logins_deliver_current_token_last(self, devices, directory, mock_dispatcher):
        """Test that the last token published is the one the gate accepts."""
        await devices.register_device("VEHICLE-001", "12345")
        sent = []

        async def slow_first_send(device_uid, token):
            if not sent:
                await asyncio.sleep(0.1)
            sent.append(token)

        mock_dispatcher.send_token.side_effect = slow_first_send

        await asyncio.gather(
            devices.authenticate_device("VEHICLE-001", "12345"),
            devices.authenticate_device("VEHICLE-001", "12345"),
        )

        device = await directory.get("VEHICLE-001")
        assert sent
        assert sent[-1] == device.current_token


class TestAuthorizationGate:
    """Tests for AuthorizationGate.authorize."""

    TOPIC = "device/VEHICLE-001/telemetry"

    @pytest.mark.asyncio
    async def test_current_token_accepted(self, devices, gate, directory):
        issued = await devices.register_device("VEHICLE-001", "12345")

        device = await gate.authorize("VEHICLE-001", self.TOPIC, {"token": issued.token})

        assert device.device_uid == "VEHICLE-001"
        assert (await directory.get("VEHICLE-001")).last_seen is not None

    @pytest.mark.asyncio
    async def test_missing_token(self, devices, gate):
        await devices.register_device("VEHICLE-001", "12345")

        with pytest.raises(InvalidToken):
            await gate.authorize("VEHICLE-001", self.TOPIC, {"latitude": 1})

    @pytest.mark.asyncio
    async def test_token_for_other_device(self, devices, gate):
        """Test that a valid token cannot be used on another device's topic."""
        await devices.register_device("VEHICLE-001", "12345")
        other = await devices.register_device("VEHICLE-002", "12345")

        with pytest.raises(InvalidToken):
            await gate.authorize("VEHICLE-001", self.TOPIC, {"token": other.token})

    @pytest.mark.asyncio
    async def test_superseded_token(self, devices, gate):
        """Test that re-authentication invalidates the previous token."""
        first = await devices.register_device("VEHICLE-001", "12345")
        second = await devices.authenticate_device("VEHICLE-001", "12345")

        with pytest.raises(InvalidToken):
            await gate.authorize("VEHICLE-001", self.TOPIC, {"token": first.token})
        await gate.authorize("VEHICLE-001", self.TOPIC, {"token": second.token})

    @pytest.mark.asyncio
    async def test_unknown_device(self, gate, verifier):
        with pytest.raises(InvalidToken):
            await gate.authorize("VEHICLE-001", self.TOPIC, {"token": verifier.issue("VEHICLE-001")})

    @pytest.mark.asyncio
    async def test_decommissioned_device(self, devices, gate, directory):
        issued = await devices.register_device("VEHICLE-001", "12345")
        await directory.set_status("VEHICLE-001", DeviceStatus.DECOMMISSIONED)

        with pytest.raises(InvalidToken):
            await gate.authorize("VEHICLE-001", self.TOPIC, {"token": issued.token})
