"""Tests for history and analytics queries."""
import datetime

import pytest

from data import database

T0 = datetime.datetime(2024, 3, 13, 10, 5, tzinfo=datetime.timezone.utc)


def minutes(n):
    return T0 + datetime.timedelta(minutes=n)


@pytest.fixture
def cube_history(make_cube_tank, record, recorder, monkeypatch):
    """Five good readings and one degraded one for CUBE-01."""
    make_cube_tank("CUBE-01")
    for offset, raw in ((0, 0.500), (10, 0.450), (20, 0.520), (30, 0.400), (40, 0.410)):
        record({"tank_id": "CUBE-01", "timestamp": minutes(offset), "raw_value": raw})

    from core.exceptions import ComputationError

    def broken(tank, level):
        raise ComputationError("sensor glitch")

    with monkeypatch.context() as patch:
        patch.setattr(recorder.calculator, "calculate", broken)
        record({"tank_id": "CUBE-01", "timestamp": minutes(50), "raw_value": 0.9})
    return "CUBE-01"


def test_volume_history_is_newest_first(cube_history, fetch):
    history = fetch(database.get_volume_history, cube_history)
    assert len(history) == 6
    assert history[0]["data_quality"] == "error"
    assert history[1]["volume_liters"] == pytest.approx(410.0)
    assert history[-1]["volume_liters"] == pytest.approx(500.0)
    assert history[1]["volume_gallons"] == pytest.approx(410.0 / 3.78541)


def test_volume_history_window_and_limit(cube_history, fetch):
    history = fetch(database.get_volume_history, cube_history,
                    start_time=minutes(10), end_time=minutes(30))
    assert [round(h["volume_liters"]) for h in history] == [400, 520, 450]

    assert len(fetch(database.get_volume_history, cube_history, limit=2)) == 2


def test_latest_record_skips_degraded(cube_history, fetch):
    latest = fetch(database.get_latest_volume_record, cube_history)
    assert latest.data_quality == "good"
    assert latest.volume_liters == pytest.approx(410.0)


def test_history_by_tank_uses_hour_window(cube_history, fetch):
    now = minutes(60)
    assert len(fetch(database.get_history_by_tank, cube_history, hours=1, now=now)) == 6
    assert fetch(database.get_history_by_tank, cube_history, hours=1, now=now + datetime.timedelta(hours=2)) == []


def test_average_excludes_error_records(cube_history, fetch):
    average = fetch(database.get_average_by_tank, cube_history, hours=24, now=minutes(60))
    assert average["count"] == 5
    assert average["avg_volume_liters"] == pytest.approx((500 + 450 + 520 + 400 + 410) / 5)
    assert average["min_fill"] == pytest.approx(40.0)
    assert average["max_fill"] == pytest.approx(52.0)
    assert average["avg_mass_kg"] is None


def test_average_without_readings(make_cube_tank, fetch):
    make_cube_tank("CUBE-01")
    assert fetch(database.get_average_by_tank, "CUBE-01", now=T0) is None


def test_usage_and_additions(cube_history, fetch):
    usage = fetch(database.calculate_usage_and_additions, cube_history, minutes(0), minutes(60))
    assert usage["reading_count"] == 5
    assert usage["volume_used_liters"] == pytest.approx(50.0 + 120.0)
    assert usage["volume_added_liters"] == pytest.approx(70.0 + 10.0)


def test_usage_needs_two_readings(make_cube_tank, record, fetch):
    make_cube_tank("CUBE-01")
    record({"tank_id": "CUBE-01", "timestamp": T0, "raw_value": 0.3})
    usage = fetch(database.calculate_usage_and_additions, "CUBE-01", minutes(-5), minutes(5))
    assert usage == {"volume_used_liters": 0.0, "volume_added_liters": 0.0, "reading_count": 1}


def test_period_analytics_filtered_by_start(cube_history, fetch):
    rows = fetch(database.get_period_analytics, cube_history, "hourly",
                 start_time=minutes(60), end_time=minutes(120))
    assert rows == []
    (row,) = fetch(database.get_period_analytics, cube_history, "hourly")
    assert row["reading_count"] == 5
