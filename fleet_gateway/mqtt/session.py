"""
Session Manager - the gateway's single MQTT broker session

paho runs the network loop in its own thread; inbound messages are handed to
the asyncio loop, queued per device, and publish acknowledgements resolve
asyncio futures.
"""

import asyncio
import enum
import logging
import threading
from typing import Awaitable, Callable

import paho.mqtt.client as mqtt

from fleet_gateway.core.config import Settings, settings as default_settings
from fleet_gateway.core.errors import PublishError
from fleet_gateway.mqtt.topics import parse_topic, subscription_patterns

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str, bytes], Awaitable[None]]


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def _is_failure(reason_code) -> bool:
    # paho v2 ReasonCode objects or plain ints
    if hasattr(reason_code, "is_failure"):
        return bool(reason_code.is_failure)
    try:
        return int(getattr(reason_code, "value", reason_code)) != 0
    except (TypeError, ValueError):
        return True


class SessionManager:
    """
    Owns the broker connection.

    Reconnects forever with a fixed delay; every (re)connect re-subscribes to
    the device topics. publish() is rejected while not connected and
    otherwise resolves once the broker confirms delivery. Inbound messages
    from one device are handled one at a time in arrival order; different
    devices proceed concurrently.
    """

    def __init__(
        self,
        handler: MessageHandler | None = None,
        config: Settings | None = None,
        client: mqtt.Client | None = None,
        client_id: str | None = None,
        subscribe: bool = True,
    ):
        self.config = config or default_settings
        self.handler = handler
        # Publish-only sessions (e.g. the API) subscribe to nothing
        self.topics = subscription_patterns(self.config.mqtt_topic_prefix) if subscribe else []
        self.state = ConnectionState.DISCONNECTED

        self._loop: asyncio.AbstractEventLoop | None = None
        self._stopping = False
        self._lock = threading.Lock()
        self._pending: dict[int, asyncio.Future] = {}
        self._early_acks: dict[int, object] = {}
        self._queues: dict[str, asyncio.Queue] = {}
        self._workers: dict[str, asyncio.Task] = {}

        self.client = client or mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id or self.config.mqtt_client_id,
            clean_session=True,
        )
        if self.config.mqtt_username:
            self.client.username_pw_set(self.config.mqtt_username, self.config.mqtt_password)
        delay = self.config.mqtt_reconnect_delay
        self.client.reconnect_delay_set(min_delay=delay, max_delay=delay)

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message
        self.client.on_publish = self._on_publish
        self.client.on_subscribe = self._on_subscribe

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    # ==================== LIFECYCLE ====================

    def start(self) -> None:
        """Connect in the background. Must be called from the asyncio loop."""
        self._loop = asyncio.get_running_loop()
        self._stopping = False
        self.state = ConnectionState.CONNECTING

        logger.info(f"📡 Connecting to {self.config.mqtt_broker}:{self.config.mqtt_port}")
        # connect_async + loop_start: paho's thread retries the first connection too
        self.client.connect_async(
            self.config.mqtt_broker, self.config.mqtt_port, keepalive=self.config.mqtt_keepalive
        )
        self.client.loop_start()

    def stop(self) -> None:
        """Disconnect and join paho's thread. Safe to call off the event loop."""
        self._stopping = True
        self.client.disconnect()
        self.client.loop_stop()
        self.state = ConnectionState.DISCONNECTED

        with self._lock:
            pending, self._pending = self._pending, {}
            self._early_acks.clear()
        for future in pending.values():
            future.get_loop().call_soon_threadsafe(
                self._resolve, future, PublishError("Session stopped before delivery was confirmed")
            )
        logger.info("⏹️ MQTT session stopped")

    # ==================== PUBLISH ====================

    async def publish(self, topic: str, payload: bytes, qos: int = 1) -> None:
        """
        Publish and wait for the broker's confirmation.

        Raises PublishError if not connected or if paho refuses the message.
        While waiting, the outcome is unknown; a dropped connection leaves
        the call pending until paho redelivers after reconnect.
        """
        if not self.is_connected:
            raise PublishError(f"Not connected to broker (state={self.state.value}), {topic} not sent")

        future = asyncio.get_running_loop().create_future()
        info = self.client.publish(topic, payload, qos=qos)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise PublishError(f"Publish to {topic} failed: {mqtt.error_string(info.rc)}")

        with self._lock:
            early = self._early_acks.pop(info.mid, None)
            if early is None:
                self._pending[info.mid] = future
        if early is not None:
            self._resolve(future, early)

        await future

    def _on_publish(self, client, userdata, mid, reason_code, properties):
        """Called from paho's thread when the broker confirms a publish."""
        result = PublishError(f"Broker rejected message {mid}: {reason_code}") if _is_failure(reason_code) else None
        with self._lock:
            future = self._pending.pop(mid, None)
            if future is None:
                # Acknowledged before publish() registered the future
                self._early_acks[mid] = result or True
                return
        future.get_loop().call_soon_threadsafe(self._resolve, future, result)

    @staticmethod
    def _resolve(future: asyncio.Future, result) -> None:
        if future.done():
            return
        if isinstance(result, Exception):
            future.set_exception(result)
        else:
            future.set_result(None)

    # ==================== CONNECTION EVENTS ====================

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if _is_failure(reason_code):
            logger.error(f"❌ Broker refused connection: {reason_code}. Retrying…")
            self.state = ConnectionState.CONNECTING
            return

        self.state = ConnectionState.CONNECTED
        logger.info(f"✅ Connected to MQTT broker: {self.config.mqtt_broker}:{self.config.mqtt_port}")
        for topic in self.topics:
            client.subscribe(topic, qos=1)
            logger.info(f"📡 Subscribed to: {topic}")

    def _on_subscribe(self, client, userdata, mid, reason_codes, properties):
        if any(_is_failure(rc) for rc in reason_codes):
            logger.warning(f"⚠️ Subscription {mid} rejected by broker: {reason_codes}")

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties):
        if self._stopping:
            self.state = ConnectionState.DISCONNECTED
            return
        self.state = ConnectionState.CONNECTING
        logger.warning(
            f"⚠️ Disconnected from MQTT broker: {reason_code}. "
            f"Reconnecting every {self.config.mqtt_reconnect_delay}s"
        )

    # ==================== INBOUND ====================

    def _on_message(self, client, userdata, msg):
        """Queue the raw message for its device; never raises into paho."""
        if self.handler is None or self._loop is None:
            logger.debug(f"No handler for message on {msg.topic}, dropped")
            return
        self._loop.call_soon_threadsafe(self._enqueue, msg.topic, bytes(msg.payload))

    def _enqueue(self, topic: str, payload: bytes) -> None:
        # One queue per device: its messages are handled one at a time, in arrival order
        parsed = parse_topic(topic, self.config.mqtt_topic_prefix)
        key = parsed[0] if parsed else topic

        queue = self._queues.get(key)
        if queue is None:
            queue = self._queues[key] = asyncio.Queue()
            self._workers[key] = asyncio.create_task(self._drain(key, queue))
        queue.put_nowait((topic, payload))

    async def _drain(self, key: str, queue: asyncio.Queue) -> None:
        while True:
            topic, payload = await queue.get()
            try:
                await self.handler(topic, payload)
            except Exception as e:
                logger.error(f"❌ Error processing message on {topic}: {e!r}")
            if queue.empty():
                del self._queues[key]
                del self._workers[key]
                return

    async def wait_idle(self) -> None:
        """Wait until every queued inbound message has been handled."""
        while self._workers:
            await asyncio.gather(*list(self._workers.values()))
