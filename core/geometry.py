# File: tank_volume_engine/core/geometry.py
"""
Tank Geometry

Closed set of tank shapes, each turning a liquid level (metres, measured from
the tank bottom) into an occupied volume in cubic metres:

- Vertical / horizontal cylinders
- Rectangular boxes
- Spheres (spherical cap)
- Cone-bottom tanks and conical hoppers
- Silos (plain cylinder, or frustum hopper + cylinder when a cone angle is set)
- Capsules (cylinder with hemispherical ends)
- Elliptical cross-section tanks

A geometry is built once per tank configuration with build_geometry() and
then reused for every reading of that tank.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

from core.exceptions import ComputationError

logger = logging.getLogger(__name__)

PI = math.pi


class Geometry:
    """Common interface of all tank shapes."""

    shape: str = "unknown"
    orientation: str = "vertical"

    @property
    def max_height(self) -> float:
        raise NotImplementedError

    def _volume_at(self, h: float) -> float:
        raise NotImplementedError

    @property
    def calculation_method(self) -> str:
        return f"{self.shape}_{self.orientation}"

    def compute_volume(self, level: float, dead_space: float = 0.0) -> float:
        """
        Volume in m³ occupied up to `level`, with the bottom dead space removed.

        The effective level is clamped to [0, max_height], so the result never
        exceeds the volume of the full tank.
        """
        effective_level = max(0.0, float(level) - float(dead_space or 0.0))
        effective_level = min(effective_level, self.max_height)
        if effective_level <= 0:
            return 0.0
        try:
            volume = self._volume_at(effective_level)
        except (ValueError, ZeroDivisionError) as e:
            raise ComputationError(f"{self.calculation_method} volume failed at level {effective_level:.4f} m: {e}") from e
        return max(0.0, volume)

    def total_volume(self) -> float:
        return self.compute_volume(self.max_height)


def circular_segment_area(radius: float, h: float) -> float:
    """Area of the segment of a circle filled to height h."""
    if h <= 0:
        return 0.0
    if h >= 2 * radius:
        return PI * radius * radius
    cos_arg = max(-1.0, min(1.0, (radius - h) / radius))
    return radius * radius * math.acos(cos_arg) - (radius - h) * math.sqrt(max(0.0, 2 * radius * h - h * h))


def spherical_cap_volume(radius: float, h: float) -> float:
    if h <= 0:
        return 0.0
    if h >= 2 * radius:
        return (4.0 / 3.0) * PI * radius ** 3
    return PI * h * h * (3 * radius - h) / 3.0


@dataclass
class VerticalCylinder(Geometry):
    radius: float
    height: float
    shape = "cylindrical"
    orientation = "vertical"

    @property
    def max_height(self) -> float:
        return self.height

    def _volume_at(self, h: float) -> float:
        return PI * self.radius * self.radius * h


@dataclass
class HorizontalCylinder(Geometry):
    radius: float
    length: float
    shape = "cylindrical"
    orientation = "horizontal"

    @property
    def max_height(self) -> float:
        return 2 * self.radius

    def _volume_at(self, h: float) -> float:
        # Closed forms at the ends keep acos/sqrt inside their domains
        if h >= 2 * self.radius:
            return PI * self.radius * self.radius * self.length
        return circular_segment_area(self.radius, h) * self.length


@dataclass
class Rectangular(Geometry):
    length: float
    width: float
    height: float
    shape = "rectangular"

    @property
    def max_height(self) -> float:
        return self.height

    def _volume_at(self, h: float) -> float:
        return self.length * self.width * h


@dataclass
class Spherical(Geometry):
    radius: float
    shape = "spherical"

    @property
    def max_height(self) -> float:
        return 2 * self.radius

    def _volume_at(self, h: float) -> float:
        return spherical_cap_volume(self.radius, h)


@dataclass
class ConeBottom(Geometry):
    radius: float
    cone_height: float
    cylinder_height: float
    shape = "cone_bottom"

    @property
    def max_height(self) -> float:
        return self.cone_height + self.cylinder_height

    def _volume_at(self, h: float) -> float:
        if self.cone_height > 0 and h <= self.cone_height:
            cone_radius = (h / self.cone_height) * self.radius
            return PI * cone_radius * cone_radius * h / 3.0
        cone_volume = PI * self.radius * self.radius * self.cone_height / 3.0
        return cone_volume + PI * self.radius * self.radius * (h - self.cone_height)


@dataclass
class Conical(Geometry):
    """Inverted cone, apex at the bottom."""
    radius: float
    height: float
    shape = "conical"

    @property
    def max_height(self) -> float:
        return self.height

    def _volume_at(self, h: float) -> float:
        liquid_radius = (h / self.height) * self.radius
        return PI * liquid_radius * liquid_radius * h / 3.0


@dataclass
class Silo(Geometry):
    radius: float
    total_height: float
    cone_angle: float = 0.0
    outlet_radius: float = 0.0
    shape = "silo"

    @property
    def max_height(self) -> float:
        return self.total_height

    @property
    def hopper_height(self) -> float:
        if self.cone_angle <= 0 or self.radius <= self.outlet_radius:
            return 0.0
        hopper = (self.radius - self.outlet_radius) / math.tan(math.radians(self.cone_angle))
        return min(hopper, self.total_height)

    @property
    def calculation_method(self) -> str:
        return "silo_hopper" if self.hopper_height > 0 else "silo_cylinder"

    def _volume_at(self, h: float) -> float:
        hopper = self.hopper_height
        if hopper <= 0:
            return PI * self.radius * self.radius * h

        r1 = self.outlet_radius
        if h <= hopper:
            r2 = r1 + (h / hopper) * (self.radius - r1)
            return PI * h * (r1 * r1 + r1 * r2 + r2 * r2) / 3.0
        hopper_volume = PI * hopper * (r1 * r1 + r1 * self.radius + self.radius * self.radius) / 3.0
        return hopper_volume + PI * self.radius * self.radius * (h - hopper)


@dataclass
class Capsule(Geometry):
    """Cylinder with hemispherical ends."""
    radius: float
    cylinder_length: float
    orientation: str = "horizontal"
    shape = "capsule"

    @property
    def max_height(self) -> float:
        if self.orientation == "horizontal":
            return 2 * self.radius
        return 2 * self.radius + self.cylinder_length

    def _volume_at(self, h: float) -> float:
        r = self.radius
        if self.orientation == "horizontal":
            # The two end caps together form one sphere
            return circular_segment_area(r, h) * self.cylinder_length + spherical_cap_volume(r, h)

        if h <= r:
            return spherical_cap_volume(r, h)
        bottom_hemisphere = (2.0 / 3.0) * PI * r ** 3
        if h <= r + self.cylinder_length:
            return bottom_hemisphere + PI * r * r * (h - r)
        t = h - r - self.cylinder_length
        top_fill = PI * r * r * t - PI * t ** 3 / 3.0
        return bottom_hemisphere + PI * r * r * self.cylinder_length + top_fill


@dataclass
class Elliptical(Geometry):
    """Elliptical cross-section; semi_minor is the vertical half-axis when lying horizontally."""
    semi_major: float
    semi_minor: float
    length: float
    orientation: str = "horizontal"
    shape = "elliptical"

    @property
    def max_height(self) -> float:
        if self.orientation == "horizontal":
            return 2 * self.semi_minor
        return self.length

    def _volume_at(self, h: float) -> float:
        a, b = self.semi_major, self.semi_minor
        if self.orientation != "horizontal":
            return PI * a * b * h
        if h >= 2 * b:
            return PI * a * b * self.length
        y = b - h
        cos_arg = max(-1.0, min(1.0, y / b))
        area = a * b * math.acos(cos_arg) - (a / b) * y * math.sqrt(max(0.0, b * b - y * y))
        return area * self.length


# --- Dimension helpers ---

def _number(dimensions: Dict[str, Any], key: str) -> Optional[float]:
    value = dimensions.get(key)
    if value is None:
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(value) or value <= 0:
        return None
    return value


def _first(dimensions: Dict[str, Any], *keys: str) -> Optional[float]:
    for key in keys:
        value = _number(dimensions, key)
        if value is not None:
            return value
    return None


def _require(value: Optional[float], shape: str, what: str) -> float:
    if value is None:
        raise ComputationError(f"{shape} tank requires a positive {what}")
    return value


def _radius(dimensions: Dict[str, Any], shape: str) -> float:
    diameter = _number(dimensions, "diameter")
    if diameter is not None:
        return diameter / 2
    return _require(_number(dimensions, "radius"), shape, "diameter or radius")


SUPPORTED_SHAPES = (
    "cylindrical", "rectangular", "spherical", "cone_bottom", "silo", "conical",
    "capsule", "horizontal_capsule", "vertical_capsule",
    "elliptical", "horizontal_elliptical", "vertical_elliptical",
)


def build_geometry(shape: str, orientation: Optional[str], dimensions: Optional[Dict[str, Any]]) -> Geometry:
    """
    Selects the geometry variant for a tank configuration.

    Raises ComputationError with data_quality "unsupported_shape" for shapes
    outside SUPPORTED_SHAPES, and plain ComputationError for missing or
    non-positive dimensions.
    """
    shape_key = (shape or "").lower()
    orientation = (orientation or "vertical").lower()
    dimensions = dimensions or {}

    if shape_key not in SUPPORTED_SHAPES:
        raise ComputationError(f"Unsupported tank shape: {shape}", data_quality="unsupported_shape")

    if shape_key == "cylindrical":
        radius = _radius(dimensions, shape_key)
        if orientation == "horizontal":
            length = _require(_first(dimensions, "length", "height"), shape_key, "length")
            return HorizontalCylinder(radius=radius, length=length)
        height = _require(_first(dimensions, "height", "total_height"), shape_key, "height")
        return VerticalCylinder(radius=radius, height=height)

    if shape_key == "rectangular":
        return Rectangular(
            length=_require(_number(dimensions, "length"), shape_key, "length"),
            width=_require(_number(dimensions, "width"), shape_key, "width"),
            height=_require(_first(dimensions, "height", "total_height"), shape_key, "height"),
        )

    if shape_key == "spherical":
        return Spherical(radius=_radius(dimensions, shape_key))

    if shape_key == "cone_bottom":
        radius = _radius(dimensions, shape_key)
        cone_height = _require(_number(dimensions, "cone_height"), shape_key, "cone_height")
        cylinder_height = _number(dimensions, "cylinder_height")
        if cylinder_height is None:
            total = _require(_first(dimensions, "total_height", "height"), shape_key, "total_height or cylinder_height")
            cylinder_height = max(0.0, total - cone_height)
        return ConeBottom(radius=radius, cone_height=cone_height, cylinder_height=cylinder_height)

    if shape_key == "silo":
        radius = _radius(dimensions, shape_key)
        total_height = _require(_first(dimensions, "total_height", "height"), shape_key, "total_height")
        outlet = _number(dimensions, "outlet_diameter")
        return Silo(
            radius=radius,
            total_height=total_height,
            cone_angle=_number(dimensions, "cone_angle") or 0.0,
            outlet_radius=outlet / 2 if outlet else 0.0,
        )

    if shape_key == "conical":
        return Conical(
            radius=_radius(dimensions, shape_key),
            height=_require(_first(dimensions, "height", "total_height"), shape_key, "height"),
        )

    if shape_key.endswith("capsule"):
        if shape_key != "capsule":
            orientation = shape_key.split("_")[0]
        cylinder_length = dimensions.get("capsule_length")
        try:
            cylinder_length = float(cylinder_length) if cylinder_length is not None else None
        except (TypeError, ValueError):
            cylinder_length = None
        if cylinder_length is None or cylinder_length < 0:
            raise ComputationError("capsule tank requires a non-negative capsule_length")
        return Capsule(radius=_radius(dimensions, shape_key), cylinder_length=cylinder_length, orientation=orientation)

    # elliptical variants
    if shape_key != "elliptical":
        orientation = shape_key.split("_")[0]
    major = _require(_first(dimensions, "major_axis", "width"), shape_key, "major_axis")
    minor = _require(_first(dimensions, "minor_axis", "height"), shape_key, "minor_axis")
    length = _require(_number(dimensions, "length"), shape_key, "length")
    return Elliptical(semi_major=major / 2, semi_minor=minor / 2, length=length, orientation=orientation)
