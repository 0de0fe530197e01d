"""Shared pytest fixtures for testing."""
import os
import shutil
import tempfile

# Settings read the database URL at import time; keep tests off any real server
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(tempfile.gettempdir(), "tank_volume_engine_unused.db")

import pytest
from sqlalchemy.orm import sessionmaker

from data import database
from data.db_models import Base, Device, Tank
from volume_service.history_recorder import HistoryRecorder


@pytest.fixture(scope='function')
def temp_db(monkeypatch):
    """Create a temporary database and point data.database at it."""
    temp_dir = tempfile.mkdtemp()
    db_path = os.path.join(temp_dir, 'test_tank_volume.db')

    test_engine = database.create_db_engine(f'sqlite:///{db_path}')
    Base.metadata.create_all(bind=test_engine)
    TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    monkeypatch.setattr(database, "SessionLocal", TestSessionLocal)

    yield TestSessionLocal

    test_engine.dispose()
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def make_tank(temp_db):
    """Insert a tank row. Defaults: vertical cylinder, 2 m diameter, 2 m high, top-mounted ultrasonic."""
    def _make(tank_id="TK-001", **overrides):
        data = dict(
            tank_id=tank_id,
            name=f"Tank {tank_id}",
            shape="cylindrical",
            orientation="vertical",
            dimensions={"diameter": 2.0, "height": 2.0},
            capacity_litres=6300.0,
            sensor_type="ultrasonic",
            offset_depth=0.0,
        )
        data.update(overrides)
        db = temp_db()
        try:
            db.add(Tank(**data))
            db.commit()
        finally:
            db.close()
        return tank_id
    return _make


@pytest.fixture
def make_cube_tank(make_tank):
    """1 m x 1 m x 1 m box read by a float sensor, so raw value == level and 1 mm == 1 L."""
    def _make(tank_id="CUBE-01", **overrides):
        data = dict(
            shape="rectangular",
            dimensions={"length": 1.0, "width": 1.0, "height": 1.0},
            capacity_litres=1000.0,
            sensor_type="float",
        )
        data.update(overrides)
        return make_tank(tank_id, **data)
    return _make


@pytest.fixture
def make_device(temp_db):
    def _make(device_id="DEV-001", tank_id="TK-001", calibration_offset=0.0, **overrides):
        db = temp_db()
        try:
            db.add(Device(device_id=device_id, serial_number=f"SN-{device_id}", tank_id=tank_id,
                          calibration_offset=calibration_offset, **overrides))
            db.commit()
        finally:
            db.close()
        return device_id
    return _make


@pytest.fixture
def recorder():
    return HistoryRecorder()


@pytest.fixture
def record(recorder):
    """Record one reading in its own transaction, like the processor does."""
    def _record(reading):
        with database.session_scope() as db:
            return recorder.record_reading(db, reading)
    return _record


@pytest.fixture
def fetch(temp_db):
    """Run a read-only query function against the test database."""
    def _fetch(func, *args, **kwargs):
        with database.get_db() as db:
            return func(db, *args, **kwargs)
    return _fetch
