"""MQTT transport adapter.

Owns the broker connection and turns it into a small set of events:

- ``connected`` — a connection was established (once per connection)
- ``discovery_message(topic, payload)`` — config message inside the window
- ``runtime_message(topic, payload)`` — any message after the window closed
- ``discovery_window_closed`` — the one-shot window timer fired
- ``disconnected`` — the connection was released
- ``transport_error(exc)`` — connect/listen failure (never raised)

All events, including the timer, go through one queue drained by a single
dispatcher task, so listeners run strictly one after another in arrival
order.
"""

import asyncio
import contextlib
import inspect
import logging
import ssl
from collections.abc import Callable
from contextlib import AsyncExitStack
from typing import Any

import aiomqtt

from mqbridge.config import BrokerSettings, DiscoverySettings
from mqbridge.errors import BrokerConnectionError, PublishError
from mqbridge.shared.utils import RECONNECT_BASE_S, jittered_delay, log_task_exception, next_retry_delay

logger = logging.getLogger(__name__)

EVENT_CONNECTED = "connected"
EVENT_DISCOVERY_MESSAGE = "discovery_message"
EVENT_RUNTIME_MESSAGE = "runtime_message"
EVENT_WINDOW_CLOSED = "discovery_window_closed"
EVENT_DISCONNECTED = "disconnected"
EVENT_TRANSPORT_ERROR = "transport_error"

EVENTS = frozenset(
    {
        EVENT_CONNECTED,
        EVENT_DISCOVERY_MESSAGE,
        EVENT_RUNTIME_MESSAGE,
        EVENT_WINDOW_CLOSED,
        EVENT_DISCONNECTED,
        EVENT_TRANSPORT_ERROR,
    }
)


class MqttTransport:
    """aiomqtt connection with a time-bounded discovery window."""

    def __init__(
        self,
        settings: BrokerSettings,
        discovery: DiscoverySettings | None = None,
        client_factory: Callable[[], Any] | None = None,
    ):
        self.settings = settings
        self.discovery = discovery or DiscoverySettings()
        self._client_factory = client_factory or self._default_client

        self._listeners: dict[str, list[Callable]] = {event: [] for event in EVENTS}
        self._events: asyncio.Queue | None = None
        self._dispatcher: asyncio.Task | None = None

        self._stack: AsyncExitStack | None = None
        self._client = None
        self._connected = False
        self._window_open = False
        self._window_generation = 0

        self._running = False
        self._run_task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Listener interface
    # ------------------------------------------------------------------

    def on(self, event: str, callback: Callable) -> None:
        """Register a sync or async listener for ``event``."""
        if event not in EVENTS:
            raise ValueError(f"Unknown transport event: {event}")
        self._listeners[event].append(callback)

    def off(self, event: str, callback: Callable) -> None:
        with contextlib.suppress(KeyError, ValueError):
            self._listeners[event].remove(callback)

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def window_open(self) -> bool:
        return self._window_open

    def subscriptions(self) -> list[str]:
        return self.settings.discovery_subscriptions() + list(self.discovery.extra_subscriptions)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def _default_client(self) -> aiomqtt.Client:
        tls_context = ssl.create_default_context() if self.settings.tls else None
        return aiomqtt.Client(
            hostname=self.settings.hostname,
            port=self.settings.port,
            username=self.settings.username,
            password=self.settings.password,
            identifier=self.settings.client_id,
            tls_context=tls_context,
        )

    async def connect(self) -> None:
        """Connect, subscribe to the discovery topics and open the window.

        Raises:
            BrokerConnectionError: the broker could not be reached.
        """
        if self._client is not None:
            return

        stack = AsyncExitStack()
        try:
            client = await stack.enter_async_context(self._client_factory())
        except aiomqtt.MqttError as e:
            await stack.aclose()
            raise BrokerConnectionError(f"Cannot reach MQTT broker {self.settings.url}:{self.settings.port}: {e}") from e

        self._stack = stack
        self._client = client
        self._connected = True
        logger.info("MQTT connected to %s:%s", self.settings.hostname, self.settings.port)
        self._emit(EVENT_CONNECTED)

        try:
            for topic in self.subscriptions():
                await client.subscribe(topic)
        except aiomqtt.MqttError as e:
            await self._release()
            raise BrokerConnectionError(f"Subscribe failed: {e}") from e
        logger.debug("Subscribed to %s", ", ".join(self.subscriptions()))

        self._open_window()

    async def run(self) -> None:
        """Connect and listen until ``disconnect()``, reconnecting on failure.

        Backoff starts at 5s, doubles up to 60s, with ±25% jitter. Failures
        are reported as ``transport_error`` events, never raised.
        """
        self._running = True
        self._run_task = asyncio.current_task()
        retry_delay = RECONNECT_BASE_S

        while self._running:
            try:
                await self.connect()
                retry_delay = RECONNECT_BASE_S
                await self._listen()
            except (BrokerConnectionError, aiomqtt.MqttError) as e:
                logger.warning("MQTT connection failed: %s", e)
                self._emit(EVENT_TRANSPORT_ERROR, e)
            finally:
                await self._release()

            if not self._running:
                break
            delay = jittered_delay(retry_delay)
            logger.info("MQTT reconnecting in %.1fs", delay)
            await asyncio.sleep(delay)
            retry_delay = next_retry_delay(retry_delay)

    async def _listen(self) -> None:
        async for message in self._client.messages:
            self.handle_message(str(message.topic), _payload_bytes(message.payload))

    async def disconnect(self) -> None:
        """Stop the run loop and release the connection. Idempotent."""
        self._running = False
        run_task = self._run_task
        self._run_task = None
        if run_task is not None and run_task is not asyncio.current_task() and not run_task.done():
            run_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await run_task
        await self._release()

    async def close(self) -> None:
        """Disconnect, deliver pending events and stop the dispatcher."""
        # Turns any armed window timer into a no-op
        self._window_generation += 1
        self._window_open = False
        await self.disconnect()
        await self.drain()
        if self._dispatcher is not None:
            self._dispatcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._dispatcher
            self._dispatcher = None

    async def _release(self) -> None:
        if self._window_open:
            # A window cut short by a disconnect never reports closure
            self._window_generation += 1
            self._window_open = False
            logger.info("Connection lost during discovery window; session abandoned")
        stack, self._stack = self._stack, None
        self._client = None
        was_connected, self._connected = self._connected, False
        if stack is not None:
            try:
                await stack.aclose()
            except aiomqtt.MqttError as e:
                logger.debug("MQTT disconnect error — %s", e)
        if was_connected:
            logger.info("MQTT disconnected from %s", self.settings.hostname)
            self._emit(EVENT_DISCONNECTED)

    # ------------------------------------------------------------------
    # Discovery window and routing
    # ------------------------------------------------------------------

    def _open_window(self) -> None:
        # A later connection bumps the generation so a stale timer is a no-op
        self._window_generation += 1
        self._window_open = True
        asyncio.get_running_loop().call_later(
            self.discovery.window_seconds, self._close_window, self._window_generation
        )

    def _close_window(self, generation: int) -> None:
        if generation != self._window_generation or not self._window_open:
            return
        self._window_open = False
        logger.debug("Discovery window closed after %dms", self.discovery.window_ms)
        self._emit(EVENT_WINDOW_CLOSED)

    def is_discovery_topic(self, topic: str) -> bool:
        return topic.startswith(self.settings.discovery_root_topic) and topic.endswith("/config")

    def handle_message(self, topic: str, payload: bytes) -> None:
        """Route one inbound message according to the window state."""
        if self._window_open:
            if self.is_discovery_topic(topic):
                self._emit(EVENT_DISCOVERY_MESSAGE, topic, payload)
            else:
                logger.debug("Message on %s dropped during discovery window", topic)
            return
        self._emit(EVENT_RUNTIME_MESSAGE, topic, payload)

    # ------------------------------------------------------------------
    # Publish
    # ------------------------------------------------------------------

    async def publish(self, topic: str, payload: bytes | str, qos: int = 0, retain: bool = False) -> None:
        """Publish a message.

        Raises:
            PublishError: not connected, or the broker rejected the publish.
        """
        if self._client is None:
            raise PublishError(f"Cannot publish to {topic}: not connected")
        try:
            await self._client.publish(topic, payload=payload, qos=qos, retain=retain)
        except aiomqtt.MqttError as e:
            raise PublishError(f"Publish to {topic} failed: {e}") from e

    # ------------------------------------------------------------------
    # Event dispatch
    # ------------------------------------------------------------------

    def _emit(self, event: str, *args: Any) -> None:
        if self._events is None:
            self._events = asyncio.Queue()
        if self._dispatcher is None or self._dispatcher.done():
            self._dispatcher = asyncio.get_running_loop().create_task(
                self._dispatch_loop(), name="mqtt_event_dispatch"
            )
            self._dispatcher.add_done_callback(log_task_exception)
        self._events.put_nowait((event, args))

    async def _dispatch_loop(self) -> None:
        while True:
            event, args = await self._events.get()
            try:
                for callback in list(self._listeners[event]):
                    try:
                        result = callback(*args)
                        if inspect.isawaitable(result):
                            await result
                    except Exception:
                        logger.exception("Listener for %s failed", event)
            finally:
                self._events.task_done()

    async def drain(self) -> None:
        """Wait until every queued event has been delivered."""
        if self._events is not None:
            await self._events.join()


def _payload_bytes(payload: Any) -> bytes:
    if payload is None:
        return b""
    if isinstance(payload, bytes | bytearray):
        return bytes(payload)
    return str(payload).encode()
