"""Tests for fill-status classification and threshold validation."""
from types import SimpleNamespace

import pytest

from core.rules import alert_level_for_record, evaluate_fill_status, resolve_thresholds, validate_thresholds


@pytest.mark.parametrize("fill,expected", [
    (100.0, "critical"),
    (95.0, "critical"),
    (94.9, "high"),
    (80.0, "high"),
    (50.0, "normal"),
    (10.1, "normal"),
    (10.0, "low"),
    (0.0, "low"),
])
def test_default_thresholds(fill, expected):
    assert evaluate_fill_status(fill, None) == expected


def test_tank_specific_thresholds():
    thresholds = {"low": 20, "high": 70, "critical": 90}
    assert evaluate_fill_status(75, thresholds) == "high"
    assert evaluate_fill_status(15, thresholds) == "low"
    assert evaluate_fill_status(90, thresholds) == "critical"


def test_missing_fill_is_unknown():
    assert evaluate_fill_status(None, {"low": 20}) == "unknown"


def test_partial_thresholds_fall_back_to_defaults():
    assert resolve_thresholds({"low": 25}) == {"low": 25.0, "high": 80.0, "critical": 95.0}


def test_valid_thresholds():
    assert validate_thresholds({"low": 10, "high": 80, "critical": 95}) == []


def test_threshold_order_violations():
    errors = validate_thresholds({"low": 85, "high": 80, "critical": 95})
    assert "Low threshold must be less than high threshold" in errors

    errors = validate_thresholds({"low": 10, "high": 96, "critical": 95})
    assert "High threshold must be less than critical threshold" in errors


def test_threshold_out_of_range():
    errors = validate_thresholds({"low": -5, "high": 80, "critical": 120})
    assert "Low threshold must be between 0 and 100" in errors
    assert "Critical threshold must be between 0 and 100" in errors


def test_alert_level_uses_record_snapshot():
    record = SimpleNamespace(fill_percentage=72.0,
                             tank_snapshot={"alert_thresholds": {"low": 10, "high": 70, "critical": 90}})
    assert alert_level_for_record(record) == "high"


def test_alert_level_without_thresholds_is_normal():
    record = SimpleNamespace(fill_percentage=99.0, tank_snapshot={})
    assert alert_level_for_record(record) == "normal"


def test_alert_level_of_degraded_record_is_unknown():
    record = SimpleNamespace(fill_percentage=0.0, calculation_method="error",
                             tank_snapshot={"alert_thresholds": {"low": 10, "high": 80, "critical": 95}})
    assert alert_level_for_record(record) == "unknown"
