# File: tank_volume_engine/volume_service/period_aggregator.py
import datetime
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from core.exceptions import PersistenceError
from core.models import StorageTank, ensure_utc
from data import database
from data.db_models import VolumeAnalytics, VolumeHistory

logger = logging.getLogger(__name__)

PERIOD_HOURLY = "hourly"
PERIOD_DAILY = "daily"
PERIOD_WEEKLY = "weekly"
PERIOD_MONTHLY = "monthly"
PERIOD_TYPES = (PERIOD_HOURLY, PERIOD_DAILY, PERIOD_WEEKLY, PERIOD_MONTHLY)


def period_start_for(timestamp: datetime.datetime, period_type: str) -> datetime.datetime:
    """Start of the UTC bucket containing `timestamp`. Weeks start on Monday (ISO)."""
    ts = ensure_utc(timestamp)
    if period_type == PERIOD_HOURLY:
        return ts.replace(minute=0, second=0, microsecond=0)
    day_start = ts.replace(hour=0, minute=0, second=0, microsecond=0)
    if period_type == PERIOD_DAILY:
        return day_start
    if period_type == PERIOD_WEEKLY:
        return day_start - datetime.timedelta(days=day_start.weekday())
    if period_type == PERIOD_MONTHLY:
        return day_start.replace(day=1)
    raise ValueError(f"Unknown period type: {period_type}")


def period_end_for(period_start: datetime.datetime, period_type: str) -> datetime.datetime:
    if period_type == PERIOD_HOURLY:
        return period_start + datetime.timedelta(hours=1)
    if period_type == PERIOD_DAILY:
        return period_start + datetime.timedelta(days=1)
    if period_type == PERIOD_WEEKLY:
        return period_start + datetime.timedelta(days=7)
    if period_type == PERIOD_MONTHLY:
        if period_start.month == 12:
            return period_start.replace(year=period_start.year + 1, month=1)
        return period_start.replace(month=period_start.month + 1)
    raise ValueError(f"Unknown period type: {period_type}")


def _running_average(average: Optional[float], count: int, value: float) -> float:
    """Mean after adding `value` as the count-th sample."""
    if average is None or count <= 1:
        return value
    return (average * (count - 1) + value) / count


class PeriodAggregator:
    """
    Maintains the hourly, daily, weekly and monthly analytics rows of a tank.

    Must run in the same transaction as the history insert, with the same
    previous record the recorder used for its delta; otherwise flow between
    two readings can be counted twice or not at all.
    """

    def __init__(self, period_types=PERIOD_TYPES):
        self.period_types = tuple(period_types)

    def update(self, db: Session, tank: StorageTank, record: VolumeHistory,
               previous: Optional[VolumeHistory]) -> List[VolumeAnalytics]:
        timestamp = ensure_utc(record.timestamp)
        rows = []
        for period_type in self.period_types:
            period_start = period_start_for(timestamp, period_type)
            row = database.get_period_analytics_row(db, tank.tank_id, period_type, period_start)
            if row is None:
                row = self._new_row(tank.tank_id, period_type, period_start, record)
                if database.add_period_analytics_row(db, row):
                    rows.append(row)
                    continue
                row = database.get_period_analytics_row(db, tank.tank_id, period_type, period_start)
                if row is None:
                    raise PersistenceError(f"Analytics row {tank.tank_id}/{period_type}/{period_start} vanished after conflict")
            self._apply(row, period_start, record, previous)
            rows.append(row)
        db.flush()
        logger.debug(f"Updated {len(rows)} analytics bucket(s) for tank {tank.tank_id} at {timestamp.isoformat()}")
        return rows

    @staticmethod
    def _new_row(tank_id: str, period_type: str, period_start: datetime.datetime,
                 record: VolumeHistory) -> VolumeAnalytics:
        volume = record.volume_liters
        fill = record.fill_percentage
        mass = record.mass_kg
        row = VolumeAnalytics(
            tank_id=tank_id,
            period_type=period_type,
            period_start=period_start,
            period_end=period_end_for(period_start, period_type),
            opening_volume=volume, opening_timestamp=record.timestamp,
            closing_volume=volume, closing_timestamp=record.timestamp,
            min_volume=volume, min_volume_timestamp=record.timestamp,
            max_volume=volume, max_volume_timestamp=record.timestamp,
            average_volume=volume,
            average_fill_percentage=fill, min_fill_percentage=fill, max_fill_percentage=fill,
            total_added=0.0, total_used=0.0, net_change=0.0,
            reading_count=1,
            average_quality_score=float(record.quality_score),
            weight_reading_count=0,
        )
        if mass is not None:
            row.opening_weight = row.closing_weight = mass
            row.min_weight = row.max_weight = row.average_weight = mass
            row.total_weight_added = row.total_weight_used = 0.0
            row.weight_reading_count = 1
        return row

    @staticmethod
    def _apply(row: VolumeAnalytics, period_start: datetime.datetime,
               record: VolumeHistory, previous: Optional[VolumeHistory]):
        volume = record.volume_liters
        fill = record.fill_percentage
        mass = record.mass_kg

        row.closing_volume = volume
        row.closing_timestamp = record.timestamp
        if volume < row.min_volume:
            row.min_volume = volume
            row.min_volume_timestamp = record.timestamp
        if volume > row.max_volume:
            row.max_volume = volume
            row.max_volume_timestamp = record.timestamp

        previous_in_period = previous is not None and ensure_utc(previous.timestamp) >= period_start
        if previous_in_period:
            delta = volume - previous.volume_liters
            if delta > 0:
                row.total_added = (row.total_added or 0.0) + delta
            elif delta < 0:
                row.total_used = (row.total_used or 0.0) - delta
        row.net_change = (row.total_added or 0.0) - (row.total_used or 0.0)

        count = (row.reading_count or 0) + 1
        row.reading_count = count
        row.average_volume = _running_average(row.average_volume, count, volume)
        row.average_fill_percentage = _running_average(row.average_fill_percentage, count, fill)
        row.min_fill_percentage = fill if row.min_fill_percentage is None else min(row.min_fill_percentage, fill)
        row.max_fill_percentage = fill if row.max_fill_percentage is None else max(row.max_fill_percentage, fill)
        row.average_quality_score = _running_average(row.average_quality_score, count, float(record.quality_score))

        if mass is None:
            return
        weight_count = (row.weight_reading_count or 0) + 1
        row.weight_reading_count = weight_count
        if row.opening_weight is None:
            row.opening_weight = mass
            row.total_weight_added = row.total_weight_used = 0.0
        row.closing_weight = mass
        row.min_weight = mass if row.min_weight is None else min(row.min_weight, mass)
        row.max_weight = mass if row.max_weight is None else max(row.max_weight, mass)
        row.average_weight = _running_average(row.average_weight, weight_count, mass)
        if previous_in_period and previous.mass_kg is not None:
            weight_delta = mass - previous.mass_kg
            if weight_delta > 0:
                row.total_weight_added = (row.total_weight_added or 0.0) + weight_delta
            elif weight_delta < 0:
                row.total_weight_used = (row.total_weight_used or 0.0) - weight_delta
