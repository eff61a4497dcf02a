"""
Pytest configuration and fixtures for Fleet Gateway tests.
"""

import os
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# Settings are read at import time; never point tests at a real database
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("VEHICLE_JWT_SECRET", "test-secret")

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from fleet_gateway.core.config import Settings  # noqa: E402
from fleet_gateway.core.database import Base, TimeseriesBase  # noqa: E402
from fleet_gateway.core.security import CredentialVerifier  # noqa: E402
from fleet_gateway.mqtt.session import SessionManager  # noqa: E402
from fleet_gateway.services.directory import DeviceDirectory  # noqa: E402
from fleet_gateway.services.timeseries import TimeseriesStore  # noqa: E402


@pytest.fixture
def test_settings():
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        mqtt_topic_prefix="device",
        mqtt_reconnect_delay=5,
        vehicle_jwt_secret="test-secret",
        bcrypt_rounds=4,
    )


@pytest.fixture
async def test_engine(tmp_path):
    """Fresh SQLite database holding both stores' tables."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'fleet.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.run_sync(TimeseriesBase.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session_maker(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def verifier():
    # Minimum bcrypt cost keeps hashing fast
    return CredentialVerifier(secret="test-secret", rounds=4)


@pytest.fixture
def directory(session_maker):
    return DeviceDirectory(session_maker)


@pytest.fixture
def store(session_maker):
    return TimeseriesStore(session_maker)


@pytest.fixture
def mock_mqtt_client():
    """Create a mock paho client for testing."""
    client = MagicMock()

    result = MagicMock()
    result.rc = 0  # MQTT_ERR_SUCCESS
    result.mid = 1
    client.publish.return_value = result

    return client


@pytest.fixture
def mqtt_session(mock_mqtt_client, test_settings):
    return SessionManager(config=test_settings, client=mock_mqtt_client)


@pytest.fixture
def mock_dispatcher():
    """Dispatcher whose sends all succeed."""
    dispatcher = MagicMock()
    dispatcher.send_token = AsyncMock()
    dispatcher.send_command = AsyncMock()
    dispatcher.send_cancel = AsyncMock()
    return dispatcher


@pytest.fixture
def sample_registration():
    return {
        "vehicleId": "VEHICLE-001",
        "password": "12345",
        "name": "Delivery Van 1",
        "model": "DV-200",
        "manufacturer": "Acme",
        "capabilities": ["gps", "lidar"],
    }


@pytest.fixture
def sample_waypoints():
    return [
        {"latitude": 40.7128, "longitude": -74.0060, "altitude": 10},
        {"latitude": 40.7138, "longitude": -74.0070, "action": "drop"},
    ]
