"""Exception hierarchy for the bridge.

Per-message and per-device errors are recoverable: callers log them and move
on. Transport errors are surfaced as events by the transport itself.
"""


class BridgeError(Exception):
    """Base class for all bridge errors."""


class ConfigError(BridgeError):
    """Invalid or missing configuration value."""


class BrokerConnectionError(BridgeError, ConnectionError):
    """The MQTT broker could not be reached."""


class PublishError(BridgeError):
    """A publish could not be handed to the broker."""


class PayloadError(BridgeError):
    """A discovery message was unusable and has been dropped.

    ``kind`` is one of ``parse`` (not a JSON object), ``missing_field``
    (unique_id / device name / device identifier absent) or ``invalid``
    (a field had the wrong shape).
    """

    def __init__(self, kind: str, message: str):
        super().__init__(message)
        self.kind = kind


class RegistrationError(BridgeError):
    """The registration boundary rejected a device."""

    def __init__(self, device_identifier: str, message: str):
        super().__init__(f"{device_identifier}: {message}")
        self.device_identifier = device_identifier


class SessionStateError(BridgeError):
    """Operation not allowed in the discovery session's current state."""
