"""Bridge application — wires transport, collector and orchestrator together."""

import asyncio
import logging

from mqbridge.bridge.orchestrator import BridgeOrchestrator
from mqbridge.bridge.registrar import Registrar, create_registrar
from mqbridge.config import BridgeConfig
from mqbridge.discovery.collector import DiscoveryCollector
from mqbridge.models import DiscoverySession, FrozenSession, RegistrationReport
from mqbridge.shared.utils import log_task_exception
from mqbridge.transport import (
    EVENT_CONNECTED,
    EVENT_DISCONNECTED,
    EVENT_DISCOVERY_MESSAGE,
    EVENT_RUNTIME_MESSAGE,
    EVENT_TRANSPORT_ERROR,
    EVENT_WINDOW_CLOSED,
    MqttTransport,
)

logger = logging.getLogger(__name__)


class BridgeApp:
    """One bridge instance: a transport, its discovery sessions and registrations."""

    def __init__(
        self,
        config: BridgeConfig,
        transport: MqttTransport | None = None,
        registrar: Registrar | None = None,
    ):
        self.config = config
        self.transport = transport or MqttTransport(config.mqtt, config.discovery)
        self.registrar = registrar or create_registrar(config.registration)
        self.collector = DiscoveryCollector(config.mqtt.discovery_root_topic)
        self.orchestrator = BridgeOrchestrator(self.registrar, config.registration)

        self.last_session: FrozenSession | None = None
        self.runtime_messages = 0
        self.last_error: str | None = None
        self._run_task: asyncio.Task | None = None

        self.transport.on(EVENT_CONNECTED, self._on_connected)
        self.transport.on(EVENT_DISCOVERY_MESSAGE, self.collector.on_discovery_message)
        self.transport.on(EVENT_WINDOW_CLOSED, self._on_window_closed)
        self.transport.on(EVENT_RUNTIME_MESSAGE, self._on_runtime_message)
        self.transport.on(EVENT_DISCONNECTED, self._on_disconnected)
        self.transport.on(EVENT_TRANSPORT_ERROR, self._on_transport_error)

    # ------------------------------------------------------------------
    # Read accessors (status API)
    # ------------------------------------------------------------------

    @property
    def connected(self) -> bool:
        return self.transport.connected

    @property
    def current_session(self) -> DiscoverySession | None:
        return self.collector.session

    @property
    def last_report(self) -> RegistrationReport | None:
        return self.orchestrator.last_report

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the transport loop in the background."""
        if self._run_task is not None and not self._run_task.done():
            return
        logger.info(
            "Bridge starting: broker=%s:%s discovery=%s window=%dms",
            self.config.mqtt.hostname,
            self.config.mqtt.port,
            self.config.mqtt.discovery_root_topic,
            self.config.discovery.window_ms,
        )
        self._run_task = asyncio.create_task(self.transport.run(), name="mqtt_transport")
        self._run_task.add_done_callback(log_task_exception)

    async def shutdown(self) -> None:
        """Release the transport, optionally unregister devices, close the registrar.

        The transport goes first so no window can close and register devices
        after the unregister pass.
        """
        await self.transport.close()
        self._run_task = None
        if self.config.registration.unregister_on_shutdown:
            await self.unregister_all()
        await self.registrar.close()
        logger.info("Bridge shut down")

    async def unregister_all(self) -> None:
        """Unregister every device registered during this run."""
        for device_identifier in self.orchestrator.registered_devices:
            try:
                await self.registrar.unregister(device_identifier)
            except Exception as e:
                logger.warning("Unregister of %s failed: %s", device_identifier, e)
                continue
            self.orchestrator.forget(device_identifier)

    # ------------------------------------------------------------------
    # Transport event handlers
    # ------------------------------------------------------------------

    def _on_connected(self) -> None:
        self.collector.start_session()

    async def _on_window_closed(self) -> None:
        session = self.collector.close_session()
        self.last_session = session
        await self.orchestrator.on_discovery_window_closed(session)

    def _on_runtime_message(self, topic: str, payload: bytes) -> None:
        # Reserved: live state after discovery has no consumer yet
        self.runtime_messages += 1
        logger.debug("Runtime message on %s (%d bytes)", topic, len(payload))

    def _on_disconnected(self) -> None:
        logger.info("Broker connection lost")

    def _on_transport_error(self, exc: Exception) -> None:
        self.last_error = str(exc)
        logger.warning("Transport error: %s", exc)
