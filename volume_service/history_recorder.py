# File: tank_volume_engine/volume_service/history_recorder.py
"""
History Recorder

Turns one sensor reading into an immutable volume history record:

1. validate the payload and resolve tank / device
2. snapshot the tank's previous good record (used for both the delta and
   the period buckets)
3. level conversion, then volume calculation
4. quality score and numeric checks
5. persist, refresh the tank's cached state, update the period buckets
6. classify the fill status for the caller's alert path

Computation failures are still recorded, as degraded records that touch
neither the tank cache nor the buckets.
"""
import datetime
import logging
import math
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Union

from sqlalchemy.orm import Session

from config import settings
from config.tank_loader import TankRegistry
from core.exceptions import ComputationError, ReadingValidationError
from core.level_converter import convert_to_level
from core.models import StorageTank, SensorReadingPayload, ensure_utc, parse_reading
from core.rules import FILL_STATUS_NORMAL, FILL_STATUS_UNKNOWN, evaluate_fill_status
from data import database
from data.db_models import Tank, VolumeHistory
from utils.volume_calculator import VolumeCalculator, VolumeResult, level_for_volume
from volume_service.period_aggregator import PeriodAggregator

logger = logging.getLogger(__name__)

QUALITY_SCORES = {"excellent": 100, "good": 80, "fair": 60, "poor": 40, "error": 0}
DEFAULT_QUALITY_SCORE = 50

SOURCE_SENSOR = "sensor_reading"
SOURCE_MANUAL = "manual_adjustment"


def quality_score_for(data_quality: Optional[str]) -> int:
    return QUALITY_SCORES.get(data_quality, DEFAULT_QUALITY_SCORE)


@dataclass
class RecordingResult:
    """What the caller gets back for one recorded reading."""
    record_id: int
    tank_id: str
    timestamp: datetime.datetime
    data_quality: str
    volume_liters: float
    fill_percentage: float
    fill_status: str
    aggregated: bool
    out_of_order: bool = False
    volume_delta_liters: Optional[float] = None
    processing_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


def _run_compute(tank: StorageTank, compute):
    # Bad values in a tank's configuration surface here as plain Python errors
    try:
        return compute()
    except (ValueError, TypeError) as e:
        raise ComputationError(f"Tank {tank.tank_id}: cannot compute volume from its configuration: {e}") from e


def _check_numeric(record: VolumeHistory):
    for field in ("actual_level", "volume_liters", "volume_m3", "fill_percentage", "mass_kg",
                  "total_volume_liters", "usable_volume_liters"):
        value = getattr(record, field)
        if value is None and field == "mass_kg":
            continue
        if value is None or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise ReadingValidationError(f"{field} is not a finite number: {value!r}", field=field)
        if value < 0:
            raise ReadingValidationError(f"{field} cannot be negative: {value}", field=field)


class HistoryRecorder:

    def __init__(self, registry: Optional[TankRegistry] = None,
                 calculator: Optional[VolumeCalculator] = None,
                 aggregator: Optional[PeriodAggregator] = None):
        self.registry = registry or TankRegistry()
        self.calculator = calculator or VolumeCalculator()
        self.aggregator = aggregator or PeriodAggregator()

    def record_reading(self, db: Session,
                       reading: Union[Dict[str, Any], SensorReadingPayload]) -> Optional[RecordingResult]:
        """
        Records one sensor reading inside the caller's transaction.

        Returns None when the tank or device is unknown (logged, not fatal).

        Raises:
            ReadingValidationError: malformed payload, or a computed field failed the numeric checks.
        """
        payload = parse_reading(reading)

        tank_row = database.get_tank(db, payload.tank_id)
        if tank_row is None:
            logger.warning(f"Reading for unknown tank '{payload.tank_id}' skipped.")
            return None

        calibration_offset = 0.0
        if payload.device_id:
            device = database.get_device(db, payload.device_id)
            if device is None:
                logger.warning(f"Reading from unknown device '{payload.device_id}' (tank {payload.tank_id}) skipped.")
                return None
            if device.tank_id and device.tank_id != payload.tank_id:
                logger.warning(f"Device '{payload.device_id}' belongs to tank {device.tank_id}, not {payload.tank_id}. Skipped.")
                return None
            calibration_offset = device.calibration_offset or 0.0

        tank = self.registry.get_tank(tank_row)
        if tank is None:
            logger.warning(f"Tank '{payload.tank_id}' could not be built from its configuration. Reading skipped.")
            return None

        def compute():
            level_result = convert_to_level(
                payload.raw_value, tank.sensor_type, tank.effective_height,
                sensor_config=tank.sensor_config,
                sensor_offset=tank.offset_depth,
                calibration_offset=calibration_offset,
            )
            quality = level_result.data_quality or payload.data_quality or "good"
            return self.calculator.calculate(tank, level_result.level), quality

        return self._record(
            db, tank_row, tank, payload.timestamp, compute,
            device_id=payload.device_id,
            raw_value=payload.raw_value,
            sensor_type=tank.sensor_type,
            source=payload.source or SOURCE_SENSOR,
            extra={
                "temperature": payload.temperature,
                "humidity": payload.humidity,
                "battery_level": payload.battery_level,
                "signal_rssi_dbm": payload.signal_rssi_dbm,
                "error_code": payload.error_code,
            },
        )

    def record_manual_adjustment(self, db: Session, tank_id: str, timestamp: datetime.datetime,
                                 level: Optional[float] = None,
                                 volume_litres: Optional[float] = None) -> Optional[RecordingResult]:
        """
        Records an operator-entered level or volume (dipstick, delivery note).
        A volume is turned back into a level through the tank's volume table.
        """
        if (level is None) == (volume_litres is None):
            raise ReadingValidationError("Provide exactly one of level or volume_litres for a manual adjustment")
        entered = level if level is not None else volume_litres
        if not math.isfinite(entered) or entered < 0:
            raise ReadingValidationError(f"Manual adjustment value must be a non-negative number: {entered}")

        tank_row = database.get_tank(db, tank_id)
        if tank_row is None:
            logger.warning(f"Manual adjustment for unknown tank '{tank_id}' skipped.")
            return None
        tank = self.registry.get_tank(tank_row)
        if tank is None:
            return None

        def compute():
            target_level = level
            if target_level is None:
                geometry = tank.get_geometry()
                target_level = level_for_volume(geometry, volume_litres / 1000.0)
                if target_level > 0:
                    target_level = min(target_level + tank.dead_space, geometry.max_height)
            target_level = min(max(target_level, 0.0), tank.effective_height)
            return self.calculator.calculate(tank, target_level), "manual"

        return self._record(
            db, tank_row, tank, ensure_utc(timestamp), compute,
            device_id=None, raw_value=entered, sensor_type="manual", source=SOURCE_MANUAL, extra={},
        )

    def _record(self, db: Session, tank_row: Tank, tank: StorageTank, timestamp: datetime.datetime,
                compute, device_id: Optional[str], raw_value: float, sensor_type: Optional[str],
                source: str, extra: Dict[str, Any]) -> RecordingResult:
        latest = database.get_latest_volume_record(db, tank.tank_id)
        out_of_order = latest is not None and ensure_utc(latest.timestamp) > timestamp
        previous = latest
        if out_of_order:
            logger.warning(f"Tank {tank.tank_id}: reading at {timestamp.isoformat()} is older than the latest "
                           f"record ({ensure_utc(latest.timestamp).isoformat()}); stored without aggregation.")
            previous = database.get_latest_volume_record(db, tank.tank_id, at_or_before=timestamp)

        record = VolumeHistory(
            tank_id=tank.tank_id,
            device_id=device_id,
            timestamp=timestamp,
            raw_sensor_reading=raw_value,
            sensor_type=sensor_type,
            source=source,
            processing_version=settings.PROCESSING_VERSION,
            tank_snapshot=tank.snapshot(),
            **extra,
        )

        try:
            volume, data_quality = _run_compute(tank, compute)
        except ComputationError as e:
            logger.warning(f"Tank {tank.tank_id}: volume computation failed ({e.data_quality}): {e}")
            self._fill_degraded(record, e)
            database.save_volume_record(db, record)
            return self._result(record, FILL_STATUS_UNKNOWN, aggregated=False, out_of_order=out_of_order)

        self._fill_computed(record, volume, data_quality, previous)
        _check_numeric(record)
        database.save_volume_record(db, record)

        aggregated = False
        if not out_of_order:
            # Decided against the stored row; the cached tank may hold a rolled-back reading
            stored_at = ensure_utc(tank_row.last_reading_at)
            if stored_at is None or timestamp >= stored_at:
                tank.update_current_state(volume.volume_liters, volume.fill_percentage, volume.level, timestamp)
                database.update_tank_current_state(
                    db, tank_row,
                    tank.current_volume_litres.value,
                    tank.current_fill_percentage.value,
                    tank.current_level.value,
                    timestamp,
                )
            self.aggregator.update(db, tank, record, previous)
            aggregated = True

        fill_status = evaluate_fill_status(record.fill_percentage, tank.alert_thresholds)
        if fill_status != FILL_STATUS_NORMAL:
            logger.info(f"Tank {tank.tank_id} fill {record.fill_percentage:.1f}% is {fill_status.upper()}")
        return self._result(record, fill_status, aggregated=aggregated, out_of_order=out_of_order)

    @staticmethod
    def _fill_computed(record: VolumeHistory, volume: VolumeResult, data_quality: str,
                       previous: Optional[VolumeHistory]):
        record.actual_level = volume.level
        record.volume_m3 = volume.volume_m3
        record.volume_liters = volume.volume_liters
        record.total_volume_liters = volume.total_volume_liters
        record.usable_volume_liters = volume.usable_volume_liters
        record.fill_percentage = volume.fill_percentage
        record.mass_kg = volume.mass_kg
        record.calculation_method = volume.calculation_method
        record.data_quality = data_quality
        record.quality_score = quality_score_for(data_quality)
        if previous is not None:
            record.volume_delta_liters = volume.volume_liters - previous.volume_liters

    @staticmethod
    def _fill_degraded(record: VolumeHistory, error: ComputationError):
        record.actual_level = 0.0
        record.volume_m3 = 0.0
        record.volume_liters = 0.0
        record.fill_percentage = 0.0
        record.calculation_method = "error"
        record.processing_error = str(error)
        record.data_quality = error.data_quality
        record.quality_score = quality_score_for(error.data_quality)

    @staticmethod
    def _result(record: VolumeHistory, fill_status: str, aggregated: bool, out_of_order: bool) -> RecordingResult:
        return RecordingResult(
            record_id=record.id,
            tank_id=record.tank_id,
            timestamp=ensure_utc(record.timestamp),
            data_quality=record.data_quality,
            volume_liters=record.volume_liters,
            fill_percentage=record.fill_percentage,
            fill_status=fill_status,
            aggregated=aggregated,
            out_of_order=out_of_order,
            volume_delta_liters=record.volume_delta_liters,
            processing_error=record.processing_error,
        )
