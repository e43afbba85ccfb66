"""Tests for the capability classifier — precedence, fallbacks, totality."""

import pytest

from mqbridge.discovery.classifier import (
    AIR_QUALITY_SENSOR,
    CAPABILITY_TYPES,
    CONTACT_SENSOR,
    DEVICE_CLASS_CAPABILITIES,
    DIMMABLE_LIGHT,
    ELECTRICAL_SENSOR,
    GENERIC_SWITCH,
    MODE_SELECT,
    RULE_DEVICE_CLASS,
    RULE_FALLBACK,
    RULE_NUMBER,
    RULE_NUMBER_RANGE,
    RULE_SELECT,
    RULE_UNIT,
    TEMPERATURE_SENSOR,
    classify,
    explain,
)
from tests.helpers import make_entity


class TestDeviceClass:
    """Step 1 — explicit device_class lookup."""

    @pytest.mark.parametrize(
        ("device_class", "expected"),
        [
            ("temperature", "temperature_sensor"),
            ("humidity", "humidity_sensor"),
            ("pressure", "pressure_sensor"),
            ("illuminance", "light_sensor"),
            ("power", "electrical_sensor"),
            ("energy", "electrical_sensor"),
            ("voltage", "electrical_sensor"),
            ("current", "electrical_sensor"),
            ("carbon_dioxide", "air_quality_sensor"),
            ("carbon_monoxide", "air_quality_sensor"),
            ("volatile_organic_compounds", "air_quality_sensor"),
            ("motion", "occupancy_sensor"),
            ("presence", "occupancy_sensor"),
            ("door", "contact_sensor"),
            ("window", "contact_sensor"),
            ("moisture", "water_leak_detector"),
            ("smoke", "smoke_co_alarm"),
            ("gas", "smoke_co_alarm"),
            ("light", "dimmable_light"),
            ("switch", "on_off_switch"),
            ("outlet", "on_off_outlet"),
            ("valve", "water_valve"),
            ("cover", "cover"),
            ("fan", "fan"),
            ("humidifier", "air_purifier"),
            ("dehumidifier", "air_purifier"),
            ("thermostat", "thermostat"),
            ("lock", "door_lock"),
        ],
    )
    def test_class_table(self, device_class, expected):
        assert classify(make_entity(device_class=device_class)) == expected

    def test_voc_parts_variant(self):
        entity = make_entity(device_class="volatile_organic_compounds_parts")
        assert classify(entity) == AIR_QUALITY_SENSOR

    def test_class_beats_unit(self):
        """door + W is a contact sensor, not electrical."""
        entity = make_entity(device_class="door", unit="W")
        assert explain(entity) == (CONTACT_SENSOR, RULE_DEVICE_CLASS)

    def test_class_beats_number_range(self):
        entity = make_entity(discovery_type="number", device_class="temperature", numeric_range=(0, 100))
        assert classify(entity) == TEMPERATURE_SENSOR

    def test_unknown_class_falls_through(self):
        """An unmapped class (e.g. battery) does not stop unit inference."""
        entity = make_entity(device_class="battery", unit="kWh")
        assert explain(entity) == (ELECTRICAL_SENSOR, RULE_UNIT)


class TestUnitFallback:
    """Step 2 — unit of measurement."""

    @pytest.mark.parametrize("unit", ["W", "Wh", "kWh"])
    def test_electrical_units(self, unit):
        assert classify(make_entity(unit=unit)) == ELECTRICAL_SENSOR

    @pytest.mark.parametrize("unit", ["°C", "°F"])
    def test_temperature_units(self, unit):
        assert classify(make_entity(unit=unit)) == TEMPERATURE_SENSOR

    def test_unit_beats_number_type(self):
        entity = make_entity(discovery_type="number", unit="W", numeric_range=(0, 100))
        assert classify(entity) == ELECTRICAL_SENSOR

    def test_unit_is_case_sensitive(self):
        """'kwh' is not a recognised unit."""
        assert classify(make_entity(unit="kwh")) == GENERIC_SWITCH


class TestStructuralFallback:
    """Steps 3 and 4 — number and select entities."""

    def test_number_percentage_range_is_dimmable(self):
        entity = make_entity(discovery_type="number", numeric_range=(0, 100))
        assert explain(entity) == (DIMMABLE_LIGHT, RULE_NUMBER_RANGE)

    def test_number_wide_range_is_mode_select(self):
        entity = make_entity(discovery_type="number", numeric_range=(0, 255))
        assert explain(entity) == (MODE_SELECT, RULE_NUMBER)

    def test_number_negative_min_is_mode_select(self):
        entity = make_entity(discovery_type="number", numeric_range=(-10, 50))
        assert classify(entity) == MODE_SELECT

    def test_number_without_range_is_mode_select(self):
        assert classify(make_entity(discovery_type="number")) == MODE_SELECT

    def test_select(self):
        assert explain(make_entity(discovery_type="select")) == (MODE_SELECT, RULE_SELECT)

    def test_range_ignored_for_non_number(self):
        entity = make_entity(discovery_type="sensor", numeric_range=(0, 100))
        assert classify(entity) == GENERIC_SWITCH


class TestUniversalFallback:
    def test_binary_sensor_without_class(self):
        entity = make_entity(discovery_type="binary_sensor")
        assert explain(entity) == (GENERIC_SWITCH, RULE_FALLBACK)

    def test_empty_discovery_type(self):
        assert classify(make_entity(discovery_type="")) == GENERIC_SWITCH


class TestPurity:
    def test_deterministic(self):
        entity = make_entity(discovery_type="number", numeric_range=(0, 100))
        results = {classify(entity) for _ in range(20)}
        assert results == {DIMMABLE_LIGHT}

    def test_always_returns_known_type(self):
        samples = [
            make_entity(),
            make_entity(device_class="nonsense", unit="lux", discovery_type="climate"),
            make_entity(discovery_type="number", numeric_range=(100, 0)),
        ] + [make_entity(device_class=c) for c in DEVICE_CLASS_CAPABILITIES]
        assert all(classify(e) in CAPABILITY_TYPES for e in samples)

    def test_entity_not_mutated(self):
        entity = make_entity(device_class="door", unit="W")
        before = (entity.device_class, entity.unit_of_measurement, entity.discovery_type)
        classify(entity)
        assert (entity.device_class, entity.unit_of_measurement, entity.discovery_type) == before
