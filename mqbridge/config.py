"""Bridge configuration.

Settings are flat dotted keys (``mqtt.host``, ``discovery.window_ms``, ...)
read from an optional JSON file. ``MQBRIDGE_*`` environment variables are
authoritative and override file values.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mqbridge.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_DISCOVERY_TOPIC = "homeassistant"
DEFAULT_WINDOW_MS = 500
DEFAULT_MQTT_PORT = 1883
DEFAULT_CLIENT_ID = "mqbridge"

REGISTRAR_KINDS = {"logging", "http"}

# Matter test vendor id, used until a real vendor id is configured
DEFAULT_VENDOR_ID = 0xFFF1

ENV_OVERRIDES = {
    "MQBRIDGE_MQTT_HOST": "mqtt.host",
    "MQBRIDGE_MQTT_PORT": "mqtt.port",
    "MQBRIDGE_MQTT_USERNAME": "mqtt.username",
    "MQBRIDGE_MQTT_PASSWORD": "mqtt.password",
    "MQBRIDGE_DISCOVERY_TOPIC": "mqtt.discovery_topic",
    "MQBRIDGE_WINDOW_MS": "discovery.window_ms",
    "MQBRIDGE_REGISTRAR_URL": "registration.registrar_url",
}

SCHEME_PLAIN = "mqtt://"
SCHEME_TLS = "mqtts://"


@dataclass
class BrokerSettings:
    """Connection settings for the MQTT broker.

    ``host`` may carry an ``mqtt://`` or ``mqtts://`` prefix; ``hostname``
    and ``tls`` are derived from it.
    """

    discovery_root_topic: str = DEFAULT_DISCOVERY_TOPIC
    host: str = "localhost"
    port: int = DEFAULT_MQTT_PORT
    username: str | None = None
    password: str | None = None
    client_id: str = DEFAULT_CLIENT_ID

    @property
    def tls(self) -> bool:
        return self.host.startswith(SCHEME_TLS)

    @property
    def hostname(self) -> str:
        for scheme in (SCHEME_TLS, SCHEME_PLAIN):
            if self.host.startswith(scheme):
                return self.host[len(scheme):].rstrip("/")
        return self.host

    @property
    def url(self) -> str:
        if self.host.startswith((SCHEME_PLAIN, SCHEME_TLS)):
            return self.host
        return f"{SCHEME_PLAIN}{self.host}"

    def discovery_subscriptions(self) -> list[str]:
        """Two- and three-level wildcard forms of the discovery config topic."""
        root = self.discovery_root_topic.rstrip("/")
        return [f"{root}/+/+/config", f"{root}/+/+/+/config"]


@dataclass
class DiscoverySettings:
    window_ms: int = DEFAULT_WINDOW_MS
    extra_subscriptions: list[str] = field(default_factory=list)

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000


@dataclass
class RegistrationSettings:
    vendor: str = "Matterbridge"
    vendor_id: int = DEFAULT_VENDOR_ID
    model: str = "MQTT Bridged Device"
    serial: str = "unknown"
    firmware_version: str = "1.0.0"
    registrar: str = "logging"
    registrar_url: str = ""
    unregister_on_shutdown: bool = False


@dataclass
class ApiSettings:
    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 8099


@dataclass
class BridgeConfig:
    mqtt: BrokerSettings = field(default_factory=BrokerSettings)
    discovery: DiscoverySettings = field(default_factory=DiscoverySettings)
    registration: RegistrationSettings = field(default_factory=RegistrationSettings)
    api: ApiSettings = field(default_factory=ApiSettings)

    @classmethod
    def from_mapping(cls, values: dict[str, Any]) -> "BridgeConfig":
        """Build a config from flat dotted keys. Unknown keys are ignored."""
        mqtt = BrokerSettings(
            discovery_root_topic=str(values.get("mqtt.discovery_topic", DEFAULT_DISCOVERY_TOPIC)).rstrip("/"),
            host=str(values.get("mqtt.host", "localhost")),
            port=_as_int(values, "mqtt.port", DEFAULT_MQTT_PORT),
            username=values.get("mqtt.username") or None,
            password=values.get("mqtt.password") or None,
            client_id=str(values.get("mqtt.client_id", DEFAULT_CLIENT_ID)),
        )
        if not mqtt.discovery_root_topic:
            raise ConfigError("mqtt.discovery_topic must not be empty")

        window_ms = _as_int(values, "discovery.window_ms", DEFAULT_WINDOW_MS)
        if window_ms <= 0:
            raise ConfigError(f"discovery.window_ms must be positive, got {window_ms}")
        discovery = DiscoverySettings(
            window_ms=window_ms,
            extra_subscriptions=_as_list(values.get("discovery.extra_subscriptions", [])),
        )

        registrar = str(values.get("registration.registrar", "logging")).lower()
        if registrar not in REGISTRAR_KINDS:
            raise ConfigError(f"registration.registrar must be one of {sorted(REGISTRAR_KINDS)}, got {registrar!r}")
        registrar_url = str(values.get("registration.registrar_url", "")).rstrip("/")
        if registrar == "http" and not registrar_url:
            raise ConfigError("registration.registrar_url is required for the http registrar")
        registration = RegistrationSettings(
            vendor=str(values.get("registration.vendor", "Matterbridge")),
            vendor_id=_as_int(values, "registration.vendor_id", DEFAULT_VENDOR_ID),
            model=str(values.get("registration.model", "MQTT Bridged Device")),
            serial=str(values.get("registration.serial", "unknown")),
            firmware_version=str(values.get("registration.firmware_version", "1.0.0")),
            registrar=registrar,
            registrar_url=registrar_url,
            unregister_on_shutdown=_as_bool(values.get("registration.unregister_on_shutdown", False)),
        )

        api = ApiSettings(
            enabled=_as_bool(values.get("api.enabled", True)),
            host=str(values.get("api.host", "127.0.0.1")),
            port=_as_int(values, "api.port", 8099),
        )
        return cls(mqtt=mqtt, discovery=discovery, registration=registration, api=api)


def load_config(path: str | Path | None = None, environ: dict[str, str] | None = None) -> BridgeConfig:
    """Load config from an optional JSON file, then apply env overrides."""
    values: dict[str, Any] = {}
    if path:
        try:
            raw = json.loads(Path(path).read_text())
        except FileNotFoundError as e:
            raise ConfigError(f"Config file not found: {path}") from e
        except json.JSONDecodeError as e:
            raise ConfigError(f"Config file {path} is not valid JSON: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigError(f"Config file {path} must contain a JSON object")
        values.update(_flatten(raw))

    env = os.environ if environ is None else environ
    for env_key, config_key in ENV_OVERRIDES.items():
        if env.get(env_key):
            values[config_key] = env[env_key]

    config = BridgeConfig.from_mapping(values)
    logger.debug(
        "Config loaded: broker=%s:%s root=%s window=%dms registrar=%s",
        config.mqtt.hostname,
        config.mqtt.port,
        config.mqtt.discovery_root_topic,
        config.discovery.window_ms,
        config.registration.registrar,
    )
    return config


def _flatten(raw: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten nested sections ({"mqtt": {"host": ..}}) into dotted keys."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        dotted = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict):
            flat.update(_flatten(value, dotted))
        else:
            flat[dotted] = value
    return flat


def _as_int(values: dict[str, Any], key: str, default: int) -> int:
    value = values.get(key, default)
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from e


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("true", "1", "yes")


def _as_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [s.strip() for s in value.split(",") if s.strip()]
    return [str(s) for s in value or []]
