# File: tank_volume_engine/core/models/tank.py
import logging
import datetime
from typing import Optional, Dict, Any, List

from .base import Asset, DataPoint, ensure_utc
from core.exceptions import ComputationError, TankConfigurationError
from core.geometry import Geometry, build_geometry
from core.level_converter import TOP_MOUNTED_SENSORS
from core.rules import resolve_thresholds, validate_thresholds

logger = logging.getLogger(__name__)

MATERIAL_TYPES = ("liquid", "solid", "gas", "mixed")


class StorageTank(Asset):
    def __init__(self, tank_id: str, shape: str, capacity_litres: float,
                 dimensions: Optional[Dict[str, Any]] = None,
                 orientation: str = "vertical",
                 offset_depth: float = 0.0,
                 ullage: float = 0.0,
                 dead_space: float = 0.0,
                 material_type: str = "liquid",
                 bulk_density: Optional[float] = None,
                 sensor_type: Optional[str] = None,
                 sensor_config: Optional[Dict[str, Any]] = None,
                 alert_thresholds: Optional[Dict[str, float]] = None,
                 current_volume_litres: Optional[float] = None,
                 current_fill_percentage: Optional[float] = None,
                 current_level: Optional[float] = None,
                 last_reading_at: Optional[datetime.datetime] = None,
                 configuration_revision: int = 0,
                 **kwargs):

        super().__init__(asset_id=tank_id, asset_type="StorageTank", **kwargs)

        self.tank_id = tank_id
        self.shape = (shape or "").lower()
        self.orientation = (orientation or "vertical").lower()
        self.dimensions: Dict[str, Any] = dict(dimensions or {})
        self.capacity_litres = float(capacity_litres) if capacity_litres is not None else 0.0
        self.offset_depth = float(offset_depth or 0.0)
        self.ullage = float(ullage or 0.0)
        self.dead_space = float(dead_space or 0.0)
        self.material_type = material_type or "liquid"
        self.bulk_density = float(bulk_density) if bulk_density else None
        self.sensor_type = sensor_type
        self.sensor_config: Dict[str, Any] = dict(sensor_config or {})
        self.alert_thresholds = resolve_thresholds(alert_thresholds)
        self.configuration_revision = configuration_revision or 0

        self.current_volume_litres = DataPoint(name="Volume", unit="L")
        self.current_fill_percentage = DataPoint(name="Fill Percentage", unit="%")
        self.current_level = DataPoint(name="Level", unit="m")
        if last_reading_at is not None:
            last_reading_at = ensure_utc(last_reading_at)
            self.current_volume_litres.update(current_volume_litres, last_reading_at)
            self.current_fill_percentage.update(current_fill_percentage, last_reading_at)
            self.current_level.update(current_level, last_reading_at)

        # Geometry is chosen once per configuration; a bad shape is kept as an error
        # so readings can still be recorded with a degraded quality tag.
        self.geometry: Optional[Geometry] = None
        self.geometry_error: Optional[ComputationError] = None
        try:
            self.geometry = build_geometry(self.shape, self.orientation, self.dimensions)
        except ComputationError as e:
            self.geometry_error = e
            logger.warning(f"Tank {tank_id}: cannot build geometry for shape '{shape}': {e}")

    @property
    def last_reading_at(self) -> Optional[datetime.datetime]:
        return self.current_level.timestamp_utc

    @property
    def density_kg_m3(self) -> Optional[float]:
        """Density used for mass estimates: bulk density, else a configured liquid density."""
        if self.bulk_density:
            return self.bulk_density
        liquid_density = self.sensor_config.get("liquid_density")
        return float(liquid_density) if liquid_density else None

    def get_geometry(self) -> Geometry:
        if self.geometry is None:
            raise self.geometry_error or ComputationError(f"No geometry for tank {self.tank_id}")
        return self.geometry

    @property
    def effective_height(self) -> float:
        return self.get_geometry().max_height

    def validate(self) -> List[str]:
        """Collects configuration problems for the tank-management side. Empty list means valid."""
        errors: List[str] = []

        if self.geometry_error is not None:
            errors.append(str(self.geometry_error))
        if self.capacity_litres <= 0:
            errors.append("Tank capacity must be a positive number of litres")
        if self.material_type not in MATERIAL_TYPES:
            errors.append(f"Material type must be one of {', '.join(MATERIAL_TYPES)}")
        if self.material_type == "solid" and not self.bulk_density:
            errors.append("Bulk density is required for solid materials")
        if self.shape == "silo" and self.material_type != "solid":
            errors.append("Silo tanks must have 'solid' material type")
        if self.dead_space < 0 or self.ullage < 0:
            errors.append("Dead space and ullage cannot be negative")
        if (self.sensor_type or "").lower() in TOP_MOUNTED_SENSORS and self.offset_depth < 0:
            errors.append(f"{self.sensor_type} requires a non-negative offset depth")

        errors.extend(validate_thresholds(self.alert_thresholds))

        if errors:
            logger.warning(f"Tank {self.tank_id} configuration errors: {errors}")
        return errors

    def validate_or_raise(self):
        errors = self.validate()
        if errors:
            raise TankConfigurationError(self.tank_id, errors)

    def update_current_state(self, volume_litres: float, fill_percentage: float, level: float,
                             timestamp: datetime.datetime, status: str = "OK") -> bool:
        """
        Refreshes the cached current values, clamped to the tank invariants.
        Returns False (and changes nothing) when the timestamp is older than the cached one.
        """
        if self.last_reading_at is not None and ensure_utc(timestamp) < self.last_reading_at:
            return False
        max_level = self.geometry.max_height if self.geometry else level
        self.current_volume_litres.update(min(max(volume_litres, 0.0), self.capacity_litres), timestamp, status)
        self.current_fill_percentage.update(min(max(fill_percentage, 0.0), 100.0), timestamp, status)
        self.current_level.update(min(max(level, 0.0), max_level), timestamp, status)
        return True

    def restore_current_state(self, volume_litres: Optional[float], fill_percentage: Optional[float],
                              level: Optional[float], timestamp: Optional[datetime.datetime]):
        """Replaces the cached values with stored ones, even when the stored ones are older."""
        for point in (self.current_volume_litres, self.current_fill_percentage, self.current_level):
            point.reset()
        if timestamp is not None:
            self.update_current_state(volume_litres or 0.0, fill_percentage or 0.0, level or 0.0, timestamp)

    def snapshot(self) -> Dict[str, Any]:
        """Geometry and thresholds as they are right now, stored with each history record."""
        return {
            "name": self.name,
            "shape": self.shape,
            "orientation": self.orientation,
            "dimensions": dict(self.dimensions),
            "capacity_litres": self.capacity_litres,
            "offset_depth": self.offset_depth,
            "dead_space": self.dead_space,
            "ullage": self.ullage,
            "material_type": self.material_type,
            "bulk_density": self.bulk_density,
            "sensor_type": self.sensor_type,
            "alert_thresholds": dict(self.alert_thresholds),
            "configuration_revision": self.configuration_revision,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(self.snapshot())
        data.update({
            "current_volume_litres": self.current_volume_litres.to_dict(),
            "current_fill_percentage": self.current_fill_percentage.to_dict(),
            "current_level": self.current_level.to_dict(),
        })
        return data
