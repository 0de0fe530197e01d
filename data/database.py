# File: tank_volume_engine/data/database.py
import datetime
import logging
from typing import List, Dict, Any, Optional
from contextlib import contextmanager

import pandas as pd
from sqlalchemy import create_engine, select, func, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.exc import SQLAlchemyError, IntegrityError

from config import settings
from core.exceptions import PersistenceError
from data.db_models import (
    Tank, Device, VolumeHistory, VolumeAnalytics, GOOD_QUALITY_TAGS, AVERAGE_QUALITY_TAGS
)
from utils.helpers import utc_now

logger = logging.getLogger(__name__)


def _enable_sqlite_transactions(db_engine):
    """
    pysqlite defers BEGIN until the first write, which breaks SAVEPOINTs and
    lets two writers interleave. Emit BEGIN IMMEDIATE ourselves so every
    session holds the write lock for its whole transaction.
    """
    @event.listens_for(db_engine, "connect")
    def on_connect(dbapi_conn, connection_record):
        dbapi_conn.isolation_level = None

    @event.listens_for(db_engine, "begin")
    def on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(database_url: str):
    if database_url.startswith("sqlite"):
        db_engine = create_engine(database_url, connect_args={'check_same_thread': False, 'timeout': 30}, echo=False)
        _enable_sqlite_transactions(db_engine)
        return db_engine
    return create_engine(database_url, pool_pre_ping=True)


try:
    engine = create_db_engine(settings.DATABASE_URL)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    logger.info("Database engine created successfully and SessionLocal configured.")
except Exception as e:
    logger.critical(f"CRITICAL: Failed to create database engine or SessionLocal: {e}", exc_info=True)
    engine = None
    SessionLocal = None


@contextmanager
def get_db() -> Optional[Session]:
    """Provide a session for read-only work. Nothing is committed."""
    if not SessionLocal:
        logger.error("Database SessionLocal is not initialized. Cannot provide DB session.")
        yield None
        return

    db = SessionLocal()
    try:
        yield db
    except SQLAlchemyError as e:
        logger.error(f"Database Session Error during yield: {e}", exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def session_scope() -> Session:
    """Transactional scope: commit on success, roll back on any error."""
    if not SessionLocal:
        logger.critical("Database SessionLocal is not initialized! Cannot create session.")
        raise PersistenceError("Database session factory (SessionLocal) is not initialized.")

    session = SessionLocal()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        logger.debug(f"Database transaction failed, rolling back: {e}")
        session.rollback()
        raise
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# --- Write path (called inside session_scope; errors propagate to the retry loop) ---

def get_tank(db: Session, tank_id: str) -> Optional[Tank]:
    return db.get(Tank, tank_id)


def get_device(db: Session, device_id: str) -> Optional[Device]:
    return db.get(Device, device_id)


def get_latest_volume_record(db: Session, tank_id: str,
                             at_or_before: Optional[datetime.datetime] = None) -> Optional[VolumeHistory]:
    """Most recent record that carries a usable volume (degraded records are skipped)."""
    query = select(VolumeHistory).where(
        VolumeHistory.tank_id == tank_id,
        VolumeHistory.data_quality.in_(GOOD_QUALITY_TAGS),
    )
    if at_or_before is not None:
        query = query.where(VolumeHistory.timestamp <= at_or_before)
    query = query.order_by(VolumeHistory.timestamp.desc(), VolumeHistory.id.desc()).limit(1)
    return db.execute(query).scalar_one_or_none()


def save_volume_record(db: Session, record: VolumeHistory) -> VolumeHistory:
    db.add(record)
    db.flush()
    return record


def update_tank_current_state(db: Session, tank: Tank, volume_litres: float, fill_percentage: float,
                              level: float, timestamp: datetime.datetime) -> Tank:
    tank.current_volume_litres = volume_litres
    tank.current_fill_percentage = fill_percentage
    tank.current_level = level
    tank.last_reading_at = timestamp
    db.flush()
    return tank


def get_period_analytics_row(db: Session, tank_id: str, period_type: str,
                             period_start: datetime.datetime) -> Optional[VolumeAnalytics]:
    return db.execute(
        select(VolumeAnalytics).where(
            VolumeAnalytics.tank_id == tank_id,
            VolumeAnalytics.period_type == period_type,
            VolumeAnalytics.period_start == period_start,
        )
    ).scalar_one_or_none()


def add_period_analytics_row(db: Session, row: VolumeAnalytics) -> bool:
    """
    Inserts a new bucket row inside a savepoint. Returns False when another
    writer created the same (tank, period_type, period_start) row first.
    """
    try:
        with db.begin_nested():
            db.add(row)
        return True
    except IntegrityError:
        logger.info(f"Analytics row {row.tank_id}/{row.period_type}/{row.period_start} created concurrently; re-reading.")
        return False


# --- Queries ---

def get_volume_history(db: Session, tank_id: str,
                       start_time: Optional[datetime.datetime] = None,
                       end_time: Optional[datetime.datetime] = None,
                       limit: int = 1000) -> List[Dict[str, Any]]:
    if not db: return []
    try:
        query = select(VolumeHistory).where(VolumeHistory.tank_id == tank_id)
        if start_time: query = query.where(VolumeHistory.timestamp >= start_time)
        if end_time: query = query.where(VolumeHistory.timestamp <= end_time)
        results = db.execute(query.order_by(VolumeHistory.timestamp.desc(), VolumeHistory.id.desc()).limit(limit)).scalars().all()
        return [record.to_dict() for record in results]
    except SQLAlchemyError as e:
        logger.error(f"DB Error getting volume history for {tank_id}: {e}", exc_info=True)
        return []


def get_history_by_tank(db: Session, tank_id: str, hours: int = 24, limit: int = 100,
                        now: Optional[datetime.datetime] = None) -> List[Dict[str, Any]]:
    start_time = (now or utc_now()) - datetime.timedelta(hours=hours)
    return get_volume_history(db, tank_id, start_time=start_time, limit=limit)


def get_average_by_tank(db: Session, tank_id: str, hours: int = 24,
                        now: Optional[datetime.datetime] = None) -> Optional[Dict[str, Any]]:
    """Averages over trusted readings only (excellent, good, fair, manual)."""
    if not db: return None
    start_time = (now or utc_now()) - datetime.timedelta(hours=hours)
    try:
        row = db.execute(
            select(
                func.avg(VolumeHistory.fill_percentage),
                func.avg(VolumeHistory.volume_liters),
                func.avg(VolumeHistory.actual_level),
                func.count(VolumeHistory.id),
                func.min(VolumeHistory.fill_percentage),
                func.max(VolumeHistory.fill_percentage),
                func.avg(VolumeHistory.mass_kg),
            ).where(
                VolumeHistory.tank_id == tank_id,
                VolumeHistory.timestamp >= start_time,
                VolumeHistory.data_quality.in_(AVERAGE_QUALITY_TAGS),
            )
        ).one()
        if not row[3]:
            return None
        return {
            "avg_fill_percentage": row[0], "avg_volume_liters": row[1], "avg_level": row[2],
            "count": row[3], "min_fill": row[4], "max_fill": row[5], "avg_mass_kg": row[6],
        }
    except SQLAlchemyError as e:
        logger.error(f"DB Error getting average volume for {tank_id}: {e}", exc_info=True)
        return None


def get_period_analytics(db: Session, tank_id: str, period_type: str,
                         start_time: Optional[datetime.datetime] = None,
                         end_time: Optional[datetime.datetime] = None) -> List[Dict[str, Any]]:
    if not db: return []
    try:
        query = select(VolumeAnalytics).where(
            VolumeAnalytics.tank_id == tank_id, VolumeAnalytics.period_type == period_type
        )
        if start_time: query = query.where(VolumeAnalytics.period_start >= start_time)
        if end_time: query = query.where(VolumeAnalytics.period_start <= end_time)
        results = db.execute(query.order_by(VolumeAnalytics.period_start)).scalars().all()
        return [row.to_dict() for row in results]
    except SQLAlchemyError as e:
        logger.error(f"DB Error getting {period_type} analytics for {tank_id}: {e}", exc_info=True)
        return []


def calculate_usage_and_additions(db: Session, tank_id: str,
                                  start_time: datetime.datetime,
                                  end_time: datetime.datetime) -> Dict[str, float]:
    """
    Sums volume used and added between consecutive sensor records in a window,
    independently of the stored period buckets.
    """
    usage = {"volume_used_liters": 0.0, "volume_added_liters": 0.0, "reading_count": 0}
    if not db: return usage
    try:
        rows = db.execute(
            select(VolumeHistory.timestamp, VolumeHistory.volume_liters).where(
                VolumeHistory.tank_id == tank_id,
                VolumeHistory.data_quality.in_(GOOD_QUALITY_TAGS),
                VolumeHistory.timestamp >= start_time,
                VolumeHistory.timestamp <= end_time,
            ).order_by(VolumeHistory.timestamp, VolumeHistory.id)
        ).all()
    except SQLAlchemyError as e:
        logger.error(f"DB Error calculating usage for {tank_id}: {e}", exc_info=True)
        return usage

    usage["reading_count"] = len(rows)
    if len(rows) < 2:
        return usage

    df = pd.DataFrame(rows, columns=["timestamp", "volume_liters"])
    deltas = df["volume_liters"].diff().dropna()
    usage["volume_added_liters"] = float(deltas[deltas > 0].sum())
    usage["volume_used_liters"] = float(-deltas[deltas < 0].sum())
    return usage

