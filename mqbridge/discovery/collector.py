"""Discovery collector — builds the device/entity graph from config messages.

Owns the current ``DiscoverySession``. A new session is started on every
broker connection and frozen when the discovery window closes. Malformed
messages are logged and dropped; they never abort the session.
"""

import logging

from mqbridge.discovery.payload import parse_payload
from mqbridge.errors import PayloadError
from mqbridge.models import DiscoverySession, EntityRecord, FrozenSession, NumericRange

logger = logging.getLogger(__name__)


class DiscoveryCollector:
    """Consumes discovery messages into an explicitly owned session."""

    def __init__(self, discovery_root_topic: str):
        self.discovery_root_topic = discovery_root_topic.rstrip("/")
        self._session: DiscoverySession | None = None
        self._next_session_id = 1

    @property
    def session(self) -> DiscoverySession | None:
        return self._session

    def start_session(self) -> DiscoverySession:
        """Start a fresh session, superseding any previous one."""
        if self._session is not None and self._session.window_open:
            logger.info(
                "Discarding open discovery session %d (%d devices) — superseded by reconnect",
                self._session.session_id,
                len(self._session.devices),
            )
        self._session = DiscoverySession(self._next_session_id)
        self._next_session_id += 1
        logger.debug("Discovery session %d opened", self._session.session_id)
        return self._session

    def close_session(self) -> FrozenSession:
        """Freeze the current session and return its read-only snapshot.

        Raises:
            SessionStateError: the session was already frozen.
            RuntimeError: no session was ever started.
        """
        if self._session is None:
            raise RuntimeError("No discovery session to close")
        frozen = self._session.freeze()
        logger.info(
            "Discovery session %d closed: %d devices, %d entities, %d errors, %d duplicates",
            frozen.session_id,
            len(frozen.devices),
            len(frozen.entities),
            len(frozen.errors),
            frozen.duplicates,
        )
        return frozen

    def discovery_type(self, topic: str) -> str:
        """Path segment following the discovery root, e.g. ``sensor``."""
        prefix = f"{self.discovery_root_topic}/"
        rest = topic[len(prefix):] if topic.startswith(prefix) else topic
        return rest.split("/", 1)[0]

    def on_discovery_message(self, topic: str, raw_payload: bytes | str) -> EntityRecord | None:
        """Record one discovery message.

        Returns the stored entity when the message added a new one, None when
        it was malformed, a duplicate, or arrived with no open session.
        """
        session = self._session
        if session is None or not session.window_open:
            logger.debug("Discovery message on %s ignored: no open session", topic)
            return None

        try:
            payload, document = parse_payload(raw_payload)
        except PayloadError as e:
            session.record_error(topic, e.kind, str(e))
            logger.warning("Dropped discovery message on %s (%s): %s", topic, e.kind, e)
            return None

        numeric_range = None
        if payload.min is not None and payload.max is not None:
            numeric_range = NumericRange(min=payload.min, max=payload.max)

        entity = EntityRecord(
            entity_id=payload.unique_id,
            device_identifier=payload.device.identifiers[0],
            display_name=payload.name or payload.unique_id,
            discovery_type=self.discovery_type(topic),
            device_class=payload.device_class,
            unit_of_measurement=payload.unit_of_measurement,
            numeric_range=numeric_range,
            discovery_topic=topic,
            raw_attributes=document,
        )

        if not session.add_entity(entity, device_name=payload.device.name):
            logger.debug("Duplicate discovery for %s on %s ignored (first message wins)", entity.entity_id, topic)
            return None

        logger.debug(
            "Entity %s (%s) added to device %s",
            entity.entity_id,
            entity.discovery_type,
            entity.device_identifier,
        )
        return entity
