"""Bridge orchestrator — turns a frozen discovery session into registrations.

One composite registration per device, one child capability per entity.
Registration failures are isolated per device: a rejected device is recorded
in the report and the remaining devices are still submitted. A device that
registered successfully is never submitted again during the same run, even
when a reconnect rediscovers it.
"""

import logging

from mqbridge.bridge.registrar import Registrar
from mqbridge.config import RegistrationSettings
from mqbridge.discovery.classifier import classify
from mqbridge.models import ChildCapability, DeviceRecord, DeviceRegistration, FrozenSession, RegistrationReport

logger = logging.getLogger(__name__)


class BridgeOrchestrator:
    """Registers every device of a closed discovery window exactly once."""

    def __init__(self, registrar: Registrar, settings: RegistrationSettings | None = None):
        self.registrar = registrar
        self.settings = settings or RegistrationSettings()
        self._reports: dict[int, RegistrationReport] = {}
        # Run-wide, in registration order
        self._registered: dict[str, DeviceRegistration] = {}
        self.last_report: RegistrationReport | None = None

    @property
    def registered_devices(self) -> list[str]:
        """Identifiers of every device registered during this run."""
        return list(self._registered)

    def forget(self, device_identifier: str) -> None:
        """Drop a device from the run-wide record after it was unregistered."""
        self._registered.pop(device_identifier, None)

    def build_registration(self, device: DeviceRecord) -> DeviceRegistration:
        """Classify the device's entities into a composite registration."""
        children = []
        used_names: set[str] = set()
        for entity in device.entities.values():
            name = entity.display_name
            if name in used_names:
                # Child names are keys on the composite device
                name = f"{name} ({entity.entity_id})"
                logger.debug("Child name collision on %s, using %r", device.device_identifier, name)
            used_names.add(name)
            children.append(
                ChildCapability(name=name, capability_type=classify(entity), entity_id=entity.entity_id)
            )

        return DeviceRegistration(
            device_identifier=device.device_identifier,
            display_name=device.display_name,
            vendor=self.settings.vendor,
            vendor_id=self.settings.vendor_id,
            model=self.settings.model,
            serial=self.settings.serial,
            firmware_version=self.settings.firmware_version,
            children=tuple(children),
        )

    async def on_discovery_window_closed(self, session: FrozenSession) -> RegistrationReport:
        """Register all devices of ``session``; repeated calls are no-ops."""
        existing = self._reports.get(session.session_id)
        if existing is not None:
            logger.debug("Session %d already registered — skipping", session.session_id)
            return existing

        report = RegistrationReport(session_id=session.session_id)
        self._reports[session.session_id] = report
        self.last_report = report

        for device in session.devices.values():
            if not device.entities:
                continue
            if device.device_identifier in self._registered:
                report.skipped.append(device.device_identifier)
                logger.debug("Device %s already registered this run", device.device_identifier)
                continue
            registration = self.build_registration(device)
            report.registrations[device.device_identifier] = registration
            try:
                await self.registrar.register(registration)
            except Exception as e:
                report.failed[device.device_identifier] = str(e)
                logger.error("Registration of device %s failed: %s", device.device_identifier, e)
                continue
            self._registered[device.device_identifier] = registration
            report.registered.append(device.device_identifier)

        logger.info(
            "Session %d: registered %d devices, %d failed, %d already registered",
            session.session_id,
            len(report.registered),
            len(report.failed),
            len(report.skipped),
        )
        return report
