# File: tank_volume_engine/core/level_converter.py
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

from config import settings
from core.exceptions import ComputationError

logger = logging.getLogger(__name__)

# Sensor type families, keyed by the names devices report
TOP_MOUNTED_SENSORS = {
    "ultrasonic", "ultrasonic_level_sensor", "laser", "laser_level_sensor",
    "radar", "radar_level_sensor", "level2",
}
PRESSURE_SENSORS = {
    "pressure_submersible", "pressure", "pressure_transmitter",
    "submersible", "submersible_level_sensor",
}
GUIDED_WAVE_RADAR_SENSORS = {"guided_wave_radar"}
FLOAT_SENSORS = {"float", "float_level", "float_switch"}
CAPACITIVE_SENSORS = {"capacitive", "capacitive_level_sensor"}

# Multipliers to pascals
PRESSURE_UNIT_TO_PA = {
    "pa": 1.0,
    "kpa": 1000.0,
    "bar": 100000.0,
    "psi": 6894.76,
}


@dataclass
class LevelResult:
    """Liquid level derived from one raw sensor value."""
    level: float
    method: str
    data_quality: Optional[str] = None
    unclamped_level: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "level": round(self.level, 4),
            "method": self.method,
            "data_quality": self.data_quality,
            "unclamped_level": round(self.unclamped_level, 4) if self.unclamped_level is not None else None,
        }


def pressure_to_pascals(value: float, unit: Optional[str]) -> float:
    unit_key = (unit or "pa").lower()
    factor = PRESSURE_UNIT_TO_PA.get(unit_key)
    if factor is None:
        logger.warning(f"Unknown pressure unit '{unit}'. Treating reading as pascals.")
        factor = 1.0
    return value * factor


def convert_to_level(raw_value: float,
                     sensor_type: Optional[str],
                     tank_depth: float,
                     sensor_config: Optional[Dict[str, Any]] = None,
                     sensor_offset: float = 0.0,
                     calibration_offset: float = 0.0) -> LevelResult:
    """
    Converts a raw sensor value into a liquid level in metres above the tank bottom.

    Args:
        raw_value: Value reported by the sensor (distance in m, pressure, or percent).
        sensor_type: Mounting/technology of the sensor, e.g. "ultrasonic".
        tank_depth: Effective height of the tank in metres.
        sensor_config: Per-tank sensor settings (pressure_unit, liquid_density,
            probe_length, float_offset, output_type).
        sensor_offset: Distance between sensor face and tank top (top-mounted sensors).
        calibration_offset: Device calibration offset added to the raw value.

    Returns:
        LevelResult with the level clamped to [0, tank_depth].

    Raises:
        ComputationError: tank_depth is not a positive number.
    """
    if tank_depth is None or math.isnan(tank_depth) or tank_depth <= 0:
        raise ComputationError(f"Invalid tank depth for level calculation: {tank_depth}")

    sensor_config = sensor_config or {}
    sensor_key = (sensor_type or "unknown").lower()
    reading = float(raw_value) + float(calibration_offset or 0.0)
    data_quality = None

    if sensor_key in TOP_MOUNTED_SENSORS:
        # Reading is the air gap between sensor and surface
        level = tank_depth - reading - float(sensor_offset or 0.0)
        method = "top_mounted_distance"

    elif sensor_key in PRESSURE_SENSORS:
        density = float(sensor_config.get("liquid_density") or settings.DEFAULT_LIQUID_DENSITY_KG_M3)
        pressure_pa = pressure_to_pascals(reading, sensor_config.get("pressure_unit"))
        level = pressure_pa / (density * settings.GRAVITY_M_S2)
        method = "hydrostatic_pressure"

    elif sensor_key in GUIDED_WAVE_RADAR_SENSORS:
        probe_length = float(sensor_config.get("probe_length") or tank_depth)
        level = probe_length - reading
        method = "guided_wave_radar"

    elif sensor_key in FLOAT_SENSORS:
        level = reading - float(sensor_config.get("float_offset") or 0.0)
        method = "float"

    elif sensor_key in CAPACITIVE_SENSORS:
        if sensor_config.get("output_type") == "percentage":
            level = (reading / 100.0) * tank_depth
            method = "capacitive_percentage"
        else:
            level = reading
            method = "capacitive_direct"

    else:
        logger.warning(f"Unknown sensor type '{sensor_type}'. Using the raw reading as the level.")
        level = reading
        method = "direct_reading"
        data_quality = "fair"

    clamped = max(0.0, min(level, tank_depth))
    if clamped != level:
        logger.debug(f"Level {level:.4f} m outside [0, {tank_depth}] m for sensor '{sensor_key}', clamped to {clamped:.4f} m")

    return LevelResult(level=clamped, method=method, data_quality=data_quality, unclamped_level=level)
