"""Tests for the registration boundary implementations."""

import json
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from mqbridge.bridge.registrar import HttpRegistrar, LoggingRegistrar, create_registrar
from mqbridge.config import RegistrationSettings
from mqbridge.errors import RegistrationError
from mqbridge.models import ChildCapability, DeviceRegistration


def make_registration(device_identifier: str = "dev-1") -> DeviceRegistration:
    return DeviceRegistration(
        device_identifier=device_identifier,
        display_name="Sensor",
        vendor="Matterbridge",
        vendor_id=0xFFF1,
        model="MQTT Bridged Device",
        serial="unknown",
        firmware_version="1.0.0",
        children=(ChildCapability("Temp", "temperature_sensor", "e1"),),
    )


def make_response(data="", status=200):
    """Create a mock aiohttp response usable as an async context manager."""
    resp = AsyncMock()
    resp.status = status
    resp.text = AsyncMock(return_value=json.dumps(data) if isinstance(data, list | dict) else str(data))
    resp.__aenter__ = AsyncMock(return_value=resp)
    resp.__aexit__ = AsyncMock(return_value=False)
    return resp


class TestLoggingRegistrar:
    @pytest.mark.asyncio
    async def test_register_and_unregister(self):
        registrar = LoggingRegistrar()
        await registrar.register(make_registration())
        assert "dev-1" in registrar.registrations

        await registrar.unregister("dev-1")
        assert registrar.registrations == {}

    @pytest.mark.asyncio
    async def test_unregister_unknown_is_noop(self):
        await LoggingRegistrar().unregister("missing")


class TestHttpRegistrar:
    @pytest.mark.asyncio
    async def test_register_posts_json(self):
        session = MagicMock()
        session.post = MagicMock(return_value=make_response(status=201))
        registrar = HttpRegistrar("http://bridge:8283/api/", session=session)

        await registrar.register(make_registration())

        url = session.post.call_args[0][0]
        body = session.post.call_args[1]["json"]
        assert url == "http://bridge:8283/api/devices"
        assert body["device_identifier"] == "dev-1"
        assert body["children"][0]["capability_type"] == "temperature_sensor"

    @pytest.mark.asyncio
    async def test_register_rejected(self):
        session = MagicMock()
        session.post = MagicMock(return_value=make_response({"error": "duplicate"}, status=409))
        registrar = HttpRegistrar("http://bridge", session=session)

        with pytest.raises(RegistrationError, match="HTTP 409") as exc:
            await registrar.register(make_registration())
        assert exc.value.device_identifier == "dev-1"

    @pytest.mark.asyncio
    async def test_register_network_error(self):
        session = MagicMock()
        session.post = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))
        registrar = HttpRegistrar("http://bridge", session=session)

        with pytest.raises(RegistrationError, match="request failed"):
            await registrar.register(make_registration())

    @pytest.mark.asyncio
    async def test_unregister_tolerates_404(self):
        session = MagicMock()
        session.delete = MagicMock(return_value=make_response(status=404))
        registrar = HttpRegistrar("http://bridge", session=session)

        await registrar.unregister("dev-1")
        assert session.delete.call_args[0][0] == "http://bridge/devices/dev-1"

    @pytest.mark.asyncio
    async def test_unregister_error(self):
        session = MagicMock()
        session.delete = MagicMock(return_value=make_response("boom", status=500))
        registrar = HttpRegistrar("http://bridge", session=session)

        with pytest.raises(RegistrationError):
            await registrar.unregister("dev-1")

    @pytest.mark.asyncio
    async def test_close_leaves_injected_session_open(self):
        session = MagicMock()
        session.close = AsyncMock()
        registrar = HttpRegistrar("http://bridge", session=session)
        await registrar.close()
        session.close.assert_not_awaited()


class TestCreateRegistrar:
    def test_default_is_logging(self):
        assert isinstance(create_registrar(RegistrationSettings()), LoggingRegistrar)

    def test_http(self):
        registrar = create_registrar(RegistrationSettings(registrar="http", registrar_url="http://bridge"))
        assert isinstance(registrar, HttpRegistrar)
        assert registrar.base_url == "http://bridge"
