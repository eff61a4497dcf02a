"""
Fleet Gateway - MQTT Message Processor
Authenticates device messages, stores telemetry/health/mission status,
and sends tokens and mission commands back to devices
"""

import asyncio
import logging
import signal
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fleet_gateway.core.config import Settings, settings
from fleet_gateway.core.database import async_session_maker, timeseries_session_maker
from fleet_gateway.core.security import CredentialVerifier
from fleet_gateway.mqtt.dispatcher import CommandDispatcher
from fleet_gateway.mqtt.router import IngestionRouter
from fleet_gateway.mqtt.session import SessionManager
from fleet_gateway.services.authorization import AuthorizationGate
from fleet_gateway.services.devices import DeviceService
from fleet_gateway.services.directory import DeviceDirectory
from fleet_gateway.services.ingest import IngestionSinks
from fleet_gateway.services.missions import MissionService, MissionStateMachine
from fleet_gateway.services.timeseries import TimeseriesStore

logger = logging.getLogger(__name__)


@dataclass
class Gateway:
    """All gateway components, wired together."""

    session: SessionManager
    dispatcher: CommandDispatcher
    directory: DeviceDirectory
    store: TimeseriesStore
    devices: DeviceService
    missions: MissionService
    router: IngestionRouter


def build_gateway(
    session_maker: async_sessionmaker[AsyncSession],
    timeseries_session_maker: async_sessionmaker[AsyncSession],
    config: Settings | None = None,
    session: SessionManager | None = None,
    verifier: CredentialVerifier | None = None,
) -> Gateway:
    config = config or settings
    verifier = verifier or CredentialVerifier()
    session = session or SessionManager(config=config)

    directory = DeviceDirectory(session_maker)
    store = TimeseriesStore(timeseries_session_maker)
    dispatcher = CommandDispatcher(session)
    devices = DeviceService(verifier, directory, dispatcher)
    sinks = IngestionSinks(store, directory, MissionStateMachine(session_maker))
    router = IngestionRouter(
        AuthorizationGate(verifier, directory), sinks, devices, prefix=config.mqtt_topic_prefix
    )
    session.handler = router.handle_message

    return Gateway(
        session=session,
        dispatcher=dispatcher,
        directory=directory,
        store=store,
        devices=devices,
        missions=MissionService(session_maker, directory, dispatcher),
        router=router,
    )


class GatewayProcessor:
    """Runs the gateway until stopped."""

    def __init__(self, gateway: Gateway):
        self.gateway = gateway
        self.running = False

    async def run(self):
        """Main run loop."""
        self.running = True
        logger.info("🚀 Starting Fleet Gateway...")

        # Broker connection lives in paho's thread; loss of it is retried there
        self.gateway.session.start()

        try:
            while self.running:
                await asyncio.sleep(1)
        finally:
            # loop_stop joins paho's thread
            await asyncio.to_thread(self.gateway.session.stop)
            await self.gateway.session.wait_idle()
            logger.info("⏹️ Fleet Gateway stopped")

    def stop(self):
        """Stop the processor."""
        self.running = False


async def main():
    """Entry point."""
    processor = GatewayProcessor(build_gateway(async_session_maker, timeseries_session_maker))

    # Handle shutdown signals
    def signal_handler(sig, frame):
        logger.info("⏹️ Shutting down...")
        processor.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    await processor.run()


if __name__ == "__main__":
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(main())
