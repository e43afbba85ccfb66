"""Shared factories and fakes for mqbridge tests."""

import asyncio
import json
from typing import Any

import aiomqtt

from mqbridge.config import BridgeConfig
from mqbridge.models import EntityRecord, NumericRange

ROOT = "homeassistant"


def make_payload(  # noqa: PLR0913
    unique_id: str = "e1",
    name: str | None = "Temperature",
    device_name: str = "Living Room Sensor",
    identifiers: Any = None,
    device_class: str | None = None,
    unit: str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Build a discovery config payload dict."""
    payload: dict[str, Any] = {
        "unique_id": unique_id,
        "device": {
            "name": device_name,
            "identifiers": identifiers if identifiers is not None else ["dev-1"],
        },
        "state_topic": f"lorawan_1/{unique_id}/state",
    }
    if name is not None:
        payload["name"] = name
    if device_class is not None:
        payload["device_class"] = device_class
    if unit is not None:
        payload["unit_of_measurement"] = unit
    payload.update(extra)
    return payload


def encode(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload).encode()


def topic_for(discovery_type: str, object_id: str, node: str | None = None) -> str:
    if node:
        return f"{ROOT}/{discovery_type}/{node}/{object_id}/config"
    return f"{ROOT}/{discovery_type}/{object_id}/config"


def make_entity(  # noqa: PLR0913
    entity_id: str = "e1",
    discovery_type: str = "sensor",
    device_class: str | None = None,
    unit: str | None = None,
    numeric_range: tuple[float, float] | None = None,
    device_identifier: str = "dev-1",
    name: str | None = None,
) -> EntityRecord:
    """Build an EntityRecord directly, bypassing payload parsing."""
    return EntityRecord(
        entity_id=entity_id,
        device_identifier=device_identifier,
        display_name=name or entity_id,
        discovery_type=discovery_type,
        device_class=device_class,
        unit_of_measurement=unit,
        numeric_range=NumericRange(*numeric_range) if numeric_range else None,
    )


def make_config(window_ms: int = 20, **values: Any) -> BridgeConfig:
    return BridgeConfig.from_mapping({"discovery.window_ms": window_ms, **values})


class FakeMessage:
    def __init__(self, topic: str, payload: bytes):
        self.topic = topic
        self.payload = payload


class FakeMqttClient:
    """Stands in for aiomqtt.Client: async context manager + message stream."""

    def __init__(self, fail_connect: bool = False, fail_publish: bool = False):
        self.fail_connect = fail_connect
        self.fail_publish = fail_publish
        self.subscribed: list[str] = []
        self.published: list[tuple[str, Any, int, bool]] = []
        self.entered = 0
        self.exited = 0
        self._queue: asyncio.Queue = asyncio.Queue()

    async def __aenter__(self):
        if self.fail_connect:
            raise aiomqtt.MqttError("connection refused")
        self.entered += 1
        return self

    async def __aexit__(self, *exc_info):
        self.exited += 1
        return False

    async def subscribe(self, topic: str, *args, **kwargs):
        self.subscribed.append(topic)

    async def publish(self, topic: str, payload=None, qos: int = 0, retain: bool = False, **kwargs):
        if self.fail_publish:
            raise aiomqtt.MqttError("not authorized")
        self.published.append((topic, payload, qos, retain))

    def deliver(self, topic: str, payload: bytes) -> None:
        self._queue.put_nowait(FakeMessage(topic, payload))

    def end_stream(self) -> None:
        self._queue.put_nowait(None)

    @property
    def messages(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            message = await self._queue.get()
            if message is None:
                return
            yield message


class RecordingRegistrar:
    """Registrar that records calls and can reject chosen devices."""

    def __init__(self, reject: set[str] | None = None, delay: float = 0):
        self.reject = reject or set()
        self.delay = delay
        self.registered: list = []
        self.unregistered: list[str] = []
        self.closed = False

    async def register(self, registration) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if registration.device_identifier in self.reject:
            raise RuntimeError(f"rejected {registration.device_identifier}")
        self.registered.append(registration)

    async def unregister(self, device_identifier: str) -> None:
        self.unregistered.append(device_identifier)

    async def close(self) -> None:
        self.closed = True
