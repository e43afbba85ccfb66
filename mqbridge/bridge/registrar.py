"""Device registration boundary.

The orchestrator hands each composite device to a ``Registrar``. Two
implementations ship: ``LoggingRegistrar`` (dry run) and ``HttpRegistrar``,
which posts registrations to a bridge service over HTTP.
"""

import logging
from typing import Protocol

import aiohttp

from mqbridge.config import RegistrationSettings
from mqbridge.errors import RegistrationError
from mqbridge.models import DeviceRegistration

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 10


class Registrar(Protocol):
    async def register(self, registration: DeviceRegistration) -> None: ...

    async def unregister(self, device_identifier: str) -> None: ...

    async def close(self) -> None: ...


class LoggingRegistrar:
    """Dry-run registrar: logs each registration and keeps it in memory."""

    def __init__(self):
        self.registrations: dict[str, DeviceRegistration] = {}

    async def register(self, registration: DeviceRegistration) -> None:
        self.registrations[registration.device_identifier] = registration
        logger.info(
            "Registered %s (%s) with %d children: %s",
            registration.device_identifier,
            registration.display_name,
            len(registration.children),
            ", ".join(f"{c.name}={c.capability_type}" for c in registration.children),
        )

    async def unregister(self, device_identifier: str) -> None:
        self.registrations.pop(device_identifier, None)
        logger.info("Unregistered %s", device_identifier)

    async def close(self) -> None:
        return None


class HttpRegistrar:
    """Registers devices with a bridge service's REST API.

    ``POST {base_url}/devices`` with the registration JSON and
    ``DELETE {base_url}/devices/{id}``. Any non-2xx response raises
    RegistrationError.
    """

    def __init__(
        self,
        base_url: str,
        session: aiohttp.ClientSession | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ):
        self.base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def register(self, registration: DeviceRegistration) -> None:
        url = f"{self.base_url}/devices"
        try:
            async with self._get_session().post(url, json=registration.to_dict()) as resp:
                if resp.status >= 300:
                    body = await resp.text()
                    raise RegistrationError(registration.device_identifier, f"HTTP {resp.status}: {body[:200]}")
        except aiohttp.ClientError as e:
            raise RegistrationError(registration.device_identifier, f"request failed: {e}") from e
        logger.info("Registered %s via %s", registration.device_identifier, url)

    async def unregister(self, device_identifier: str) -> None:
        url = f"{self.base_url}/devices/{device_identifier}"
        try:
            async with self._get_session().delete(url) as resp:
                if resp.status >= 300 and resp.status != 404:
                    body = await resp.text()
                    raise RegistrationError(device_identifier, f"HTTP {resp.status}: {body[:200]}")
        except aiohttp.ClientError as e:
            raise RegistrationError(device_identifier, f"request failed: {e}") from e
        logger.info("Unregistered %s", device_identifier)

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None


def create_registrar(settings: RegistrationSettings) -> Registrar:
    """Build the registrar named by ``registration.registrar``."""
    if settings.registrar == "http":
        return HttpRegistrar(settings.registrar_url)
    return LoggingRegistrar()
