"""Status API — read-only view of discovery sessions and registrations.

Also exposes a publish endpoint as the hook for control commands.
"""

import logging

from fastapi import APIRouter, FastAPI, HTTPException
from pydantic import BaseModel

from mqbridge.app import BridgeApp
from mqbridge.discovery.classifier import (
    CAPABILITY_TYPES,
    DEVICE_CLASS_CAPABILITIES,
    ELECTRICAL_UNITS,
    TEMPERATURE_UNITS,
    explain,
)
from mqbridge.errors import PublishError

logger = logging.getLogger(__name__)


class PublishRequest(BaseModel):
    topic: str
    payload: str = ""
    qos: int = 0
    retain: bool = False


def create_api(bridge: BridgeApp) -> FastAPI:
    app = FastAPI(title="mqbridge", description="MQTT discovery bridge status")
    router = APIRouter()
    _register_status_routes(router, bridge)
    _register_capability_routes(router)
    _register_publish_routes(router, bridge)
    app.include_router(router)
    return app


def _register_status_routes(router: APIRouter, bridge: BridgeApp) -> None:
    """Register health, device and registration endpoints."""

    @router.get("/health")
    async def health():
        session = bridge.current_session
        return {
            "status": "ok",
            "connected": bridge.connected,
            "window_open": bridge.transport.window_open,
            "session_id": session.session_id if session else None,
            "last_error": bridge.last_error,
        }

    @router.get("/api/devices")
    async def list_devices():
        """Devices of the last closed session, or the open one if none closed yet."""
        session = bridge.last_session or bridge.current_session
        if session is None:
            return {"session_id": None, "window_open": False, "devices": []}

        devices = []
        for device in session.devices.values():
            entities = []
            for entity in device.entities.values():
                capability_type, rule = explain(entity)
                entities.append(
                    {
                        "entity_id": entity.entity_id,
                        "name": entity.display_name,
                        "discovery_type": entity.discovery_type,
                        "device_class": entity.device_class,
                        "unit_of_measurement": entity.unit_of_measurement,
                        "capability_type": capability_type,
                        "rule": rule,
                    }
                )
            devices.append(
                {
                    "device_identifier": device.device_identifier,
                    "name": device.display_name,
                    "entities": entities,
                }
            )
        return {
            "session_id": session.session_id,
            "window_open": session.window_open,
            "errors": [{"topic": e.topic, "kind": e.kind, "message": e.message} for e in session.errors],
            "duplicates": session.duplicates,
            "devices": devices,
        }

    @router.get("/api/registrations")
    async def registrations():
        report = bridge.last_report
        if report is None:
            raise HTTPException(404, "No discovery window has closed yet")
        return report.to_dict()


def _register_capability_routes(router: APIRouter) -> None:
    """Register classifier table endpoint."""

    @router.get("/api/capabilities")
    async def capabilities():
        return {
            "capability_types": sorted(CAPABILITY_TYPES),
            "device_classes": dict(DEVICE_CLASS_CAPABILITIES),
            "electrical_units": sorted(ELECTRICAL_UNITS),
            "temperature_units": sorted(TEMPERATURE_UNITS),
        }


def _register_publish_routes(router: APIRouter, bridge: BridgeApp) -> None:
    """Register the publish passthrough."""

    @router.post("/api/publish")
    async def publish(body: PublishRequest):
        if not bridge.connected:
            raise HTTPException(503, "Not connected to MQTT broker")
        if body.qos not in (0, 1, 2):
            raise HTTPException(400, "qos must be 0, 1 or 2")
        try:
            await bridge.transport.publish(body.topic, body.payload, qos=body.qos, retain=body.retain)
        except PublishError as e:
            logger.warning("Publish via API failed: %s", e)
            raise HTTPException(502, str(e)) from e
        return {"published": True, "topic": body.topic}
