"""Tests for the tank geometry variants."""
import math

import numpy as np
import pytest

from core.exceptions import ComputationError
from core.geometry import (
    Capsule, ConeBottom, Conical, Elliptical, HorizontalCylinder, Rectangular, Silo, Spherical,
    VerticalCylinder, build_geometry, circular_segment_area,
)


def test_vertical_cylinder_half_height():
    geometry = build_geometry("cylindrical", "vertical", {"diameter": 2, "height": 3})
    assert isinstance(geometry, VerticalCylinder)
    assert geometry.compute_volume(1.5) == pytest.approx(math.pi * 1.5)
    assert geometry.compute_volume(1.5) * 1000 == pytest.approx(4712.389, abs=1e-3)


def test_horizontal_cylinder_half_full():
    geometry = build_geometry("cylindrical", "horizontal", {"diameter": 2, "length": 4})
    assert isinstance(geometry, HorizontalCylinder)
    assert geometry.max_height == 2
    assert geometry.compute_volume(1.0) == pytest.approx(math.pi / 2 * 4)


def test_horizontal_cylinder_closed_forms_at_ends():
    geometry = HorizontalCylinder(radius=1.0, length=4.0)
    assert geometry.compute_volume(0.0) == 0.0
    assert geometry.compute_volume(2.0) == pytest.approx(math.pi * 4)
    assert geometry.compute_volume(5.0) == pytest.approx(math.pi * 4)


def test_rectangular():
    geometry = build_geometry("rectangular", None, {"length": 2, "width": 3, "height": 2})
    assert isinstance(geometry, Rectangular)
    assert geometry.compute_volume(1.0) == pytest.approx(6.0)
    assert geometry.calculation_method == "rectangular_vertical"


def test_sphere_cap_and_full():
    geometry = build_geometry("spherical", None, {"diameter": 2})
    assert isinstance(geometry, Spherical)
    assert geometry.compute_volume(1.0) == pytest.approx(2.0 / 3.0 * math.pi)
    assert geometry.compute_volume(2.0) == pytest.approx(4.0 / 3.0 * math.pi)
    assert geometry.compute_volume(3.0) == pytest.approx(4.0 / 3.0 * math.pi)


def test_cone_bottom_inside_and_above_cone():
    geometry = build_geometry("cone_bottom", "vertical", {"diameter": 2, "cone_height": 1, "cylinder_height": 2})
    assert isinstance(geometry, ConeBottom)
    assert geometry.max_height == 3
    assert geometry.compute_volume(0.5) == pytest.approx(math.pi * 0.25 * 0.5 / 3)
    assert geometry.compute_volume(2.0) == pytest.approx(math.pi / 3 + math.pi)


def test_cone_bottom_from_total_height():
    geometry = build_geometry("cone_bottom", "vertical", {"diameter": 2, "cone_height": 1, "total_height": 4})
    assert geometry.cylinder_height == pytest.approx(3.0)


def test_conical():
    geometry = build_geometry("conical", None, {"diameter": 2, "height": 3})
    assert isinstance(geometry, Conical)
    assert geometry.compute_volume(3.0) == pytest.approx(math.pi)
    assert geometry.compute_volume(1.5) == pytest.approx(math.pi / 8)


def test_silo_without_hopper_is_a_cylinder():
    geometry = build_geometry("silo", "vertical", {"diameter": 2, "total_height": 5})
    assert isinstance(geometry, Silo)
    assert geometry.calculation_method == "silo_cylinder"
    assert geometry.compute_volume(2.0) == pytest.approx(math.pi * 2)


def test_silo_with_hopper():
    geometry = build_geometry("silo", "vertical", {"diameter": 2, "total_height": 5, "cone_angle": 45})
    assert geometry.calculation_method == "silo_hopper"
    assert geometry.hopper_height == pytest.approx(1.0)
    assert geometry.compute_volume(geometry.hopper_height) == pytest.approx(math.pi / 3)
    assert geometry.compute_volume(3.0) == pytest.approx(math.pi / 3 + math.pi * 2, rel=1e-6)


def test_horizontal_capsule():
    geometry = build_geometry("horizontal_capsule", None, {"diameter": 2, "capsule_length": 3})
    assert isinstance(geometry, Capsule)
    full = math.pi * 3 + 4.0 / 3.0 * math.pi
    assert geometry.total_volume() == pytest.approx(full)
    assert geometry.compute_volume(1.0) == pytest.approx(full / 2)


def test_vertical_capsule():
    geometry = build_geometry("capsule", "vertical", {"diameter": 2, "capsule_length": 3})
    assert geometry.max_height == 5
    assert geometry.compute_volume(1.0) == pytest.approx(2.0 / 3.0 * math.pi)
    assert geometry.compute_volume(5.0) == pytest.approx(math.pi * 3 + 4.0 / 3.0 * math.pi)


def test_horizontal_elliptical():
    geometry = build_geometry("elliptical", "horizontal", {"major_axis": 4, "minor_axis": 2, "length": 5})
    assert isinstance(geometry, Elliptical)
    full = math.pi * 2 * 1 * 5
    assert geometry.compute_volume(1.0) == pytest.approx(full / 2)
    assert geometry.compute_volume(2.0) == pytest.approx(full)


def test_dead_space_is_removed_from_level():
    geometry = VerticalCylinder(radius=1.0, height=3.0)
    assert geometry.compute_volume(2.0, dead_space=0.5) == pytest.approx(math.pi * 1.5)
    assert geometry.compute_volume(0.3, dead_space=0.5) == 0.0


def test_circular_segment_area_bounds():
    assert circular_segment_area(1.0, 0.0) == 0.0
    assert circular_segment_area(1.0, 1.0) == pytest.approx(math.pi / 2)
    assert circular_segment_area(1.0, 2.0) == pytest.approx(math.pi)


def test_unsupported_shape():
    with pytest.raises(ComputationError) as excinfo:
        build_geometry("toroidal", "vertical", {"diameter": 2})
    assert excinfo.value.data_quality == "unsupported_shape"


@pytest.mark.parametrize("shape,dimensions", [
    ("cylindrical", {"height": 3}),
    ("rectangular", {"length": 2, "width": 0, "height": 1}),
    ("cone_bottom", {"diameter": 2}),
    ("capsule", {"diameter": 2}),
])
def test_missing_dimensions(shape, dimensions):
    with pytest.raises(ComputationError) as excinfo:
        build_geometry(shape, "vertical", dimensions)
    assert excinfo.value.data_quality == "error"


ALL_SHAPES = [
    ("cylindrical", "vertical", {"diameter": 2, "height": 3}),
    ("cylindrical", "horizontal", {"diameter": 2, "length": 4}),
    ("rectangular", "vertical", {"length": 2, "width": 3, "height": 2}),
    ("spherical", "vertical", {"diameter": 3}),
    ("cone_bottom", "vertical", {"diameter": 2, "cone_height": 1, "cylinder_height": 2}),
    ("conical", "vertical", {"diameter": 2, "height": 2}),
    ("silo", "vertical", {"diameter": 3, "total_height": 8, "cone_angle": 30, "outlet_diameter": 0.5}),
    ("capsule", "horizontal", {"diameter": 2, "capsule_length": 4}),
    ("capsule", "vertical", {"diameter": 2, "capsule_length": 4}),
    ("elliptical", "horizontal", {"major_axis": 3, "minor_axis": 2, "length": 6}),
]


@pytest.mark.parametrize("shape,orientation,dimensions", ALL_SHAPES)
def test_volume_is_bounded_and_monotonic(shape, orientation, dimensions):
    geometry = build_geometry(shape, orientation, dimensions)
    full = geometry.compute_volume(geometry.max_height)
    volumes = [geometry.compute_volume(level) for level in np.linspace(0.0, geometry.max_height, 101)]

    assert volumes[0] == 0.0
    assert all(0.0 <= v <= full + 1e-9 for v in volumes)
    assert all(b >= a - 1e-9 for a, b in zip(volumes, volumes[1:]))
