# File: tank_volume_engine/utils/volume_calculator.py

import logging
from dataclasses import dataclass, asdict
from typing import Optional, Tuple

import numpy as np

from config import settings
from core.exceptions import ComputationError
from core.geometry import Geometry

logger = logging.getLogger(__name__)

LITRES_PER_M3 = 1000.0


@dataclass
class VolumeResult:
    level: float
    volume_m3: float
    volume_liters: float
    total_volume_m3: float
    usable_volume_m3: float
    fill_percentage: float
    volume_in_units: float
    unit: str
    calculation_method: str
    mass_kg: Optional[float] = None

    @property
    def total_volume_liters(self) -> float:
        return self.total_volume_m3 * LITRES_PER_M3

    @property
    def usable_volume_liters(self) -> float:
        return self.usable_volume_m3 * LITRES_PER_M3

    def to_dict(self) -> dict:
        return asdict(self)


def build_volume_table(geometry: Geometry, steps: Optional[int] = None) -> Tuple[np.ndarray, np.ndarray]:
    """
    Tabulates the level -> volume curve of a geometry.

    Returns two arrays (levels in m, volumes in m³) with `steps + 1` points
    from empty to max_height. Volumes are non-decreasing for every shape.
    """
    steps = steps or settings.VOLUME_TABLE_STEPS
    levels = np.linspace(0.0, geometry.max_height, steps + 1)
    volumes = np.array([geometry.compute_volume(level) for level in levels])
    # Guard interpolation against float noise in the closed forms
    volumes = np.maximum.accumulate(volumes)
    return levels, volumes


def level_for_volume(geometry: Geometry, volume_m3: float, steps: Optional[int] = None) -> float:
    """Inverse of compute_volume by interpolating the volume table. Out-of-range volumes clamp to the ends."""
    if volume_m3 is None or not np.isfinite(volume_m3):
        raise ComputationError(f"Cannot derive a level from volume {volume_m3}")
    levels, volumes = build_volume_table(geometry, steps)
    return float(np.interp(volume_m3, volumes, levels))


class VolumeCalculator:
    """
    Turns a liquid level into the volume figures stored with each reading:
    occupied volume, total and usable volume, fill percentage, volume in
    display units and (when density is known) mass.
    """

    def calculate(self, tank, level: float) -> VolumeResult:
        """
        Args:
            tank: StorageTank whose geometry and capacity apply.
            level: Liquid level in metres above the tank bottom.

        Raises:
            ComputationError: unsupported shape, missing dimensions or a
                failed formula (data_quality set accordingly).
        """
        geometry = tank.get_geometry()

        volume_m3 = geometry.compute_volume(level, tank.dead_space)
        total_volume_m3 = geometry.total_volume()
        dead_space_volume_m3 = geometry.compute_volume(tank.dead_space) if tank.dead_space > 0 else 0.0
        usable_volume_m3 = max(0.0, total_volume_m3 - dead_space_volume_m3)

        capacity_m3 = tank.capacity_litres / LITRES_PER_M3 if tank.capacity_litres > 0 else None
        if capacity_m3 is not None and volume_m3 > capacity_m3:
            logger.debug(f"Tank {tank.tank_id}: volume {volume_m3:.4f} m³ exceeds capacity {capacity_m3:.4f} m³, clamped")
            volume_m3 = capacity_m3

        if not np.isfinite(volume_m3):
            raise ComputationError(f"Non-finite volume for tank {tank.tank_id} at level {level}")

        if usable_volume_m3 > 0:
            fill_percentage = min(max(volume_m3 / usable_volume_m3 * 100.0, 0.0), 100.0)
        else:
            fill_percentage = 0.0

        density = tank.density_kg_m3
        mass_kg = volume_m3 * density if density else None

        if tank.material_type == "solid" and mass_kg is not None:
            volume_in_units, unit = mass_kg / 1000.0, "t"
        elif tank.material_type == "liquid":
            volume_in_units, unit = volume_m3 * LITRES_PER_M3, "L"
        else:
            volume_in_units, unit = volume_m3, "m3"

        return VolumeResult(
            level=level,
            volume_m3=volume_m3,
            volume_liters=volume_m3 * LITRES_PER_M3,
            total_volume_m3=total_volume_m3,
            usable_volume_m3=usable_volume_m3,
            fill_percentage=fill_percentage,
            volume_in_units=volume_in_units,
            unit=unit,
            calculation_method=geometry.calculation_method,
            mass_kg=mass_kg,
        )
