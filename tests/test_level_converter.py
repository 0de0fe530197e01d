"""Tests for raw sensor value to level conversion."""
import logging
import math

import pytest

from core.exceptions import ComputationError
from core.level_converter import convert_to_level, pressure_to_pascals


def test_top_mounted_ultrasonic():
    result = convert_to_level(0.5, "ultrasonic", 2.0)
    assert result.level == pytest.approx(1.5)
    assert result.method == "top_mounted_distance"
    assert result.data_quality is None


@pytest.mark.parametrize("sensor_type", ["radar", "laser_level_sensor", "level2", "ULTRASONIC"])
def test_top_mounted_aliases(sensor_type):
    assert convert_to_level(1.0, sensor_type, 3.0).level == pytest.approx(2.0)


def test_top_mounted_with_sensor_offset():
    assert convert_to_level(1.0, "ultrasonic", 3.0, sensor_offset=0.2).level == pytest.approx(1.8)


def test_calibration_offset_added_to_raw_value():
    assert convert_to_level(1.0, "ultrasonic", 3.0, calibration_offset=0.5).level == pytest.approx(1.5)


def test_pressure_in_bar_uses_default_density():
    result = convert_to_level(0.1, "pressure_submersible", 3.0, sensor_config={"pressure_unit": "bar"})
    assert result.level == pytest.approx(10000.0 / (1000.0 * 9.81))
    assert result.method == "hydrostatic_pressure"


def test_pressure_in_kpa_with_liquid_density():
    result = convert_to_level(8.34, "pressure", 3.0, sensor_config={"pressure_unit": "kPa", "liquid_density": 850})
    assert result.level == pytest.approx(8340.0 / (850 * 9.81))


def test_pressure_in_psi():
    result = convert_to_level(1.0, "submersible", 5.0, sensor_config={"pressure_unit": "psi"})
    assert result.level == pytest.approx(6894.76 / 9810.0)


def test_guided_wave_radar_probe_length():
    assert convert_to_level(0.5, "guided_wave_radar", 3.0, sensor_config={"probe_length": 2.5}).level == pytest.approx(2.0)
    assert convert_to_level(0.5, "guided_wave_radar", 3.0).level == pytest.approx(2.5)


def test_float_offset():
    result = convert_to_level(1.2, "float", 3.0, sensor_config={"float_offset": 0.2})
    assert result.level == pytest.approx(1.0)
    assert result.method == "float"


def test_capacitive_percentage_and_direct():
    pct = convert_to_level(50, "capacitive", 3.0, sensor_config={"output_type": "percentage"})
    assert pct.level == pytest.approx(1.5)
    assert pct.method == "capacitive_percentage"

    direct = convert_to_level(1.1, "capacitive_level_sensor", 3.0)
    assert direct.level == pytest.approx(1.1)
    assert direct.method == "capacitive_direct"


def test_unknown_sensor_passes_through_with_fair_quality(caplog):
    with caplog.at_level(logging.WARNING):
        result = convert_to_level(1.25, "sonar_x", 3.0)
    assert result.level == pytest.approx(1.25)
    assert result.method == "direct_reading"
    assert result.data_quality == "fair"
    assert "sonar_x" in caplog.text


def test_level_is_clamped_to_tank_depth():
    empty = convert_to_level(5.0, "ultrasonic", 3.0)
    assert empty.level == 0.0
    assert empty.unclamped_level == pytest.approx(-2.0)

    overfull = convert_to_level(1.0, "pressure", 3.0, sensor_config={"pressure_unit": "bar"})
    assert overfull.level == 3.0


@pytest.mark.parametrize("depth", [0.0, -1.0, math.nan, None])
def test_invalid_depth_raises(depth):
    with pytest.raises(ComputationError):
        convert_to_level(1.0, "ultrasonic", depth)


def test_pressure_unit_conversion():
    assert pressure_to_pascals(2.0, "kpa") == pytest.approx(2000.0)
    assert pressure_to_pascals(2.0, None) == pytest.approx(2.0)
    assert pressure_to_pascals(2.0, "mmHg") == pytest.approx(2.0)
