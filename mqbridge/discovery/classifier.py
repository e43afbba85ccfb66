"""Capability classifier — maps a discovered entity to a bridged device type.

Resolution order (first match wins):
1. ``device_class`` lookup in DEVICE_CLASS_CAPABILITIES
2. unit of measurement (electrical / temperature units)
3. ``number`` entities: 0..100 range → dimmable light, otherwise mode select
4. ``select`` entities → mode select
5. generic switch

Explicit semantic class beats unit inference, which beats the discovery
type, which beats the fallback. Reordering these steps changes results for
entities that match more than one rule.
"""

from mqbridge.models import EntityRecord

# Capability types (bridged device types)
TEMPERATURE_SENSOR = "temperature_sensor"
HUMIDITY_SENSOR = "humidity_sensor"
PRESSURE_SENSOR = "pressure_sensor"
LIGHT_SENSOR = "light_sensor"
ELECTRICAL_SENSOR = "electrical_sensor"
AIR_QUALITY_SENSOR = "air_quality_sensor"
OCCUPANCY_SENSOR = "occupancy_sensor"
CONTACT_SENSOR = "contact_sensor"
WATER_LEAK_DETECTOR = "water_leak_detector"
SMOKE_CO_ALARM = "smoke_co_alarm"
DIMMABLE_LIGHT = "dimmable_light"
ON_OFF_SWITCH = "on_off_switch"
ON_OFF_OUTLET = "on_off_outlet"
WATER_VALVE = "water_valve"
COVER = "cover"
FAN = "fan"
AIR_PURIFIER = "air_purifier"
THERMOSTAT = "thermostat"
DOOR_LOCK = "door_lock"
MODE_SELECT = "mode_select"
GENERIC_SWITCH = "generic_switch"

DEVICE_CLASS_CAPABILITIES = {
    "temperature": TEMPERATURE_SENSOR,
    "humidity": HUMIDITY_SENSOR,
    "pressure": PRESSURE_SENSOR,
    "illuminance": LIGHT_SENSOR,
    "power": ELECTRICAL_SENSOR,
    "energy": ELECTRICAL_SENSOR,
    "voltage": ELECTRICAL_SENSOR,
    "current": ELECTRICAL_SENSOR,
    "carbon_dioxide": AIR_QUALITY_SENSOR,
    "carbon_monoxide": AIR_QUALITY_SENSOR,
    "volatile_organic_compounds": AIR_QUALITY_SENSOR,
    "volatile_organic_compounds_parts": AIR_QUALITY_SENSOR,
    "motion": OCCUPANCY_SENSOR,
    "presence": OCCUPANCY_SENSOR,
    "door": CONTACT_SENSOR,
    "window": CONTACT_SENSOR,
    "moisture": WATER_LEAK_DETECTOR,
    "smoke": SMOKE_CO_ALARM,
    "gas": SMOKE_CO_ALARM,
    "light": DIMMABLE_LIGHT,
    "switch": ON_OFF_SWITCH,
    "outlet": ON_OFF_OUTLET,
    "valve": WATER_VALVE,
    "cover": COVER,
    "fan": FAN,
    "humidifier": AIR_PURIFIER,
    "dehumidifier": AIR_PURIFIER,
    "thermostat": THERMOSTAT,
    "lock": DOOR_LOCK,
}

ELECTRICAL_UNITS = frozenset({"W", "Wh", "kWh"})
TEMPERATURE_UNITS = frozenset({"°C", "°F"})

CAPABILITY_TYPES = frozenset(DEVICE_CLASS_CAPABILITIES.values()) | {MODE_SELECT, GENERIC_SWITCH}

# Rule names reported by explain()
RULE_DEVICE_CLASS = "device_class"
RULE_UNIT = "unit"
RULE_NUMBER_RANGE = "number_range"
RULE_NUMBER = "number"
RULE_SELECT = "select"
RULE_FALLBACK = "fallback"


def explain(entity: EntityRecord) -> tuple[str, str]:
    """Classify an entity and report which rule decided it."""
    capability = DEVICE_CLASS_CAPABILITIES.get(entity.device_class) if entity.device_class else None
    if capability:
        return capability, RULE_DEVICE_CLASS

    unit = entity.unit_of_measurement
    if unit in ELECTRICAL_UNITS:
        return ELECTRICAL_SENSOR, RULE_UNIT
    if unit in TEMPERATURE_UNITS:
        return TEMPERATURE_SENSOR, RULE_UNIT

    if entity.discovery_type == "number":
        rng = entity.numeric_range
        if rng is not None and rng.min >= 0 and rng.max <= 100:
            return DIMMABLE_LIGHT, RULE_NUMBER_RANGE
        return MODE_SELECT, RULE_NUMBER

    if entity.discovery_type == "select":
        return MODE_SELECT, RULE_SELECT

    return GENERIC_SWITCH, RULE_FALLBACK


def classify(entity: EntityRecord) -> str:
    """Return the capability type for an entity. Never fails."""
    return explain(entity)[0]
