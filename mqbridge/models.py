"""Discovery data model — entities, devices and the discovery session.

A ``DiscoverySession`` lives for one broker connection. It is filled while
its window is open and then frozen into a ``FrozenSession``, which is the
only thing the bridge orchestrator ever sees.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from mqbridge.errors import SessionStateError

logger = logging.getLogger(__name__)

SESSION_OPEN = "open"
SESSION_FROZEN = "frozen"


@dataclass(frozen=True)
class NumericRange:
    min: float
    max: float


@dataclass(frozen=True)
class EntityRecord:
    """One discovered entity (sensor, switch, number, ...)."""

    entity_id: str
    device_identifier: str
    display_name: str
    discovery_type: str
    device_class: str | None = None
    unit_of_measurement: str | None = None
    numeric_range: NumericRange | None = None
    discovery_topic: str = ""
    raw_attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.entity_id:
            raise ValueError("entity_id must not be empty")
        if not self.device_identifier:
            raise ValueError("device_identifier must not be empty")
        if not isinstance(self.raw_attributes, MappingProxyType):
            object.__setattr__(self, "raw_attributes", MappingProxyType(dict(self.raw_attributes)))


@dataclass(frozen=True)
class DeviceRecord:
    """A physical device grouping one or more entities."""

    device_identifier: str
    display_name: str
    entities: Mapping[str, EntityRecord] = field(default_factory=dict)


@dataclass(frozen=True)
class DiscoveryError:
    """A recoverable per-message error recorded during a session."""

    topic: str
    kind: str
    message: str


@dataclass(frozen=True)
class FrozenSession:
    """Read-only snapshot handed to the orchestrator once the window closes."""

    session_id: int
    devices: Mapping[str, DeviceRecord]
    entities: Mapping[str, EntityRecord]
    errors: tuple[DiscoveryError, ...]
    duplicates: int
    opened_at: datetime
    closed_at: datetime

    @property
    def window_open(self) -> bool:
        return False


class DiscoverySession:
    """Mutable device/entity graph for one connection lifetime."""

    def __init__(self, session_id: int):
        self.session_id = session_id
        self.state = SESSION_OPEN
        self.opened_at = datetime.now(UTC)
        self.closed_at: datetime | None = None
        self.errors: list[DiscoveryError] = []
        self.duplicates = 0
        self._devices: dict[str, DeviceRecord] = {}
        self._entities: dict[str, EntityRecord] = {}

    @property
    def window_open(self) -> bool:
        return self.state == SESSION_OPEN

    @property
    def devices(self) -> Mapping[str, DeviceRecord]:
        return MappingProxyType(self._devices)

    @property
    def entities(self) -> Mapping[str, EntityRecord]:
        return MappingProxyType(self._entities)

    def add_entity(self, entity: EntityRecord, device_name: str) -> bool:
        """Insert an entity, creating its device on first sighting.

        Returns False when the entity id was already seen; the stored record
        is left untouched.
        """
        self._require_open()
        if entity.entity_id in self._entities:
            self.duplicates += 1
            return False

        device = self._devices.get(entity.device_identifier)
        if device is None:
            device = DeviceRecord(
                device_identifier=entity.device_identifier,
                display_name=device_name,
                entities={},
            )
            self._devices[entity.device_identifier] = device
            logger.debug("New device %s (%s)", device.device_identifier, device.display_name)

        self._entities[entity.entity_id] = entity
        device.entities[entity.entity_id] = entity
        return True

    def record_error(self, topic: str, kind: str, message: str) -> None:
        self._require_open()
        self.errors.append(DiscoveryError(topic=topic, kind=kind, message=message))

    def freeze(self) -> FrozenSession:
        """Close the session and return its read-only snapshot."""
        self._require_open()
        self.state = SESSION_FROZEN
        self.closed_at = datetime.now(UTC)

        devices = {
            ident: DeviceRecord(
                device_identifier=dev.device_identifier,
                display_name=dev.display_name,
                entities=MappingProxyType(dict(dev.entities)),
            )
            for ident, dev in self._devices.items()
        }
        return FrozenSession(
            session_id=self.session_id,
            devices=MappingProxyType(devices),
            entities=MappingProxyType(dict(self._entities)),
            errors=tuple(self.errors),
            duplicates=self.duplicates,
            opened_at=self.opened_at,
            closed_at=self.closed_at,
        )

    def _require_open(self) -> None:
        if self.state != SESSION_OPEN:
            raise SessionStateError(f"session {self.session_id} is {self.state}")


@dataclass(frozen=True)
class ChildCapability:
    name: str
    capability_type: str
    entity_id: str


@dataclass(frozen=True)
class DeviceRegistration:
    """Composite registration request for one device."""

    device_identifier: str
    display_name: str
    vendor: str
    vendor_id: int
    model: str
    serial: str
    firmware_version: str
    children: tuple[ChildCapability, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_identifier": self.device_identifier,
            "display_name": self.display_name,
            "vendor": self.vendor,
            "vendor_id": self.vendor_id,
            "model": self.model,
            "serial": self.serial,
            "firmware_version": self.firmware_version,
            "children": [
                {"name": c.name, "capability_type": c.capability_type, "entity_id": c.entity_id}
                for c in self.children
            ],
        }


@dataclass
class RegistrationReport:
    """Outcome of one orchestrator pass over a frozen session."""

    session_id: int
    registered: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    registrations: dict[str, DeviceRegistration] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "registered": list(self.registered),
            "failed": dict(self.failed),
            "skipped": list(self.skipped),
            "registrations": {k: v.to_dict() for k, v in self.registrations.items()},
        }
