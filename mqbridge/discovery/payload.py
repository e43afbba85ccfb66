"""Validation model for Home Assistant MQTT discovery config payloads.

Only the fields the bridge reads are declared; everything else is kept as
extra data and ends up in ``EntityRecord.raw_attributes``. Home Assistant
accepts abbreviated keys (``uniq_id``, ``dev``, ``ids``, ...), so both forms
are read.
"""

import json
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from mqbridge.errors import PayloadError


class DevicePayload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str = Field(min_length=1)
    identifiers: list[str] = Field(
        min_length=1,
        validation_alias=AliasChoices("identifiers", "ids"),
    )

    @field_validator("identifiers", mode="before")
    @classmethod
    def _coerce_identifiers(cls, value: Any) -> Any:
        if isinstance(value, str | int):
            value = [value]
        if isinstance(value, list):
            # The first identifier keys the device, so an empty one counts as missing
            if value and value[0] in (None, ""):
                return []
            return [str(v) for v in value if v not in (None, "")]
        return value


class DiscoveryPayload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    unique_id: str = Field(min_length=1, validation_alias=AliasChoices("unique_id", "uniq_id"))
    name: str | None = None
    device: DevicePayload = Field(validation_alias=AliasChoices("device", "dev"))
    device_class: str | None = Field(default=None, validation_alias=AliasChoices("device_class", "dev_cla"))
    unit_of_measurement: str | None = Field(
        default=None,
        validation_alias=AliasChoices("unit_of_measurement", "unit_of_meas"),
    )
    min: float | None = None
    max: float | None = None

    @field_validator("unique_id", mode="before")
    @classmethod
    def _coerce_unique_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    # Optional fields never reject the entity: scalars become text, anything
    # else is treated as absent.
    @field_validator("name", "device_class", "unit_of_measurement", mode="before")
    @classmethod
    def _lenient_text(cls, value: Any) -> str | None:
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, int | float | bool):
            return str(value)
        return None

    @field_validator("min", "max", mode="before")
    @classmethod
    def _lenient_bound(cls, value: Any) -> float | None:
        if value is None or isinstance(value, bool):
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None


def parse_payload(raw: bytes | str) -> tuple[DiscoveryPayload, dict[str, Any]]:
    """Parse and validate a raw discovery payload.

    Returns the validated model and the full decoded document.

    Raises:
        PayloadError: ``parse`` when the payload is not a JSON object,
            ``missing_field`` when a required field is absent, ``invalid``
            for any other validation failure.
    """
    if isinstance(raw, bytes | bytearray):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise PayloadError("parse", f"payload is not UTF-8: {e}") from e
    if not raw or not raw.strip():
        raise PayloadError("parse", "empty payload")

    try:
        document = json.loads(raw)
    except json.JSONDecodeError as e:
        raise PayloadError("parse", f"invalid JSON: {e}") from e
    if not isinstance(document, dict):
        raise PayloadError("parse", f"expected a JSON object, got {type(document).__name__}")

    try:
        payload = DiscoveryPayload.model_validate(document)
    except ValidationError as e:
        errors = e.errors()
        missing = [".".join(str(p) for p in err["loc"]) for err in errors if _is_missing(err)]
        if missing:
            raise PayloadError("missing_field", f"missing required field(s): {', '.join(missing)}") from e
        raise PayloadError("invalid", f"invalid payload: {errors[0]['msg']}") from e

    return payload, document


def _is_missing(err: dict[str, Any]) -> bool:
    # An empty identifiers list or empty string counts as missing too
    return err["type"] in ("missing", "too_short", "string_too_short")
