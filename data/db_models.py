# File: tank_volume_engine/data/db_models.py
from sqlalchemy import (
    Column, String, Float, Boolean, Text, Index, func, Integer, JSON, ForeignKey, TIMESTAMP, UniqueConstraint
)
from sqlalchemy.orm import declarative_base

# Base class for all ORM models
Base = declarative_base()

LITRES_PER_US_GALLON = 3.78541

# Data quality tags that carry a usable volume
GOOD_QUALITY_TAGS = ("excellent", "good", "fair", "poor", "manual")
AVERAGE_QUALITY_TAGS = ("excellent", "good", "fair", "manual")


def _isoformat(value):
    return value.isoformat() if value else None


class Tank(Base):
    __tablename__ = 'tanks'
    tank_id = Column(String(50), primary_key=True)
    name = Column(String(100))
    description = Column(String(255))
    shape = Column(String(30), nullable=False)
    orientation = Column(String(20), default='vertical')
    dimensions = Column(JSON, nullable=False, default=dict)
    capacity_litres = Column(Float, nullable=False)
    offset_depth = Column(Float, default=0.0)
    ullage = Column(Float, default=0.0)
    dead_space = Column(Float, default=0.0)
    material_type = Column(String(20), default='liquid')
    bulk_density = Column(Float)
    sensor_type = Column(String(50))
    sensor_config = Column(JSON, default=dict)
    alert_thresholds = Column(JSON)
    current_volume_litres = Column(Float)
    current_fill_percentage = Column(Float)
    current_level = Column(Float)
    last_reading_at = Column(TIMESTAMP(timezone=True))
    configuration_revision = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True)
    version = Column(Integer, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    last_updated = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}

    def to_dict(self):
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}


class Device(Base):
    __tablename__ = 'devices'
    device_id = Column(String(50), primary_key=True)
    serial_number = Column(String(100), unique=True)
    tank_id = Column(String(50), ForeignKey('tanks.tank_id'), index=True)
    sensor_type = Column(String(50))
    calibration_offset = Column(Float, default=0.0)
    is_active = Column(Boolean, default=True)

    def to_dict(self):
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}


class VolumeHistory(Base):
    __tablename__ = 'tank_volume_history'
    id = Column(Integer, primary_key=True, autoincrement=True)
    tank_id = Column(String(50), ForeignKey('tanks.tank_id'), nullable=False, index=True)
    device_id = Column(String(50), index=True)
    timestamp = Column(TIMESTAMP(timezone=True), nullable=False, index=True)

    raw_sensor_reading = Column(Float)
    actual_level = Column(Float, nullable=False, default=0.0)
    volume_liters = Column(Float, nullable=False, default=0.0)
    volume_m3 = Column(Float, nullable=False, default=0.0)
    total_volume_liters = Column(Float)
    usable_volume_liters = Column(Float)
    fill_percentage = Column(Float, nullable=False, default=0.0)
    mass_kg = Column(Float)
    volume_delta_liters = Column(Float)

    data_quality = Column(String(30), nullable=False, default='good', index=True)
    quality_score = Column(Integer, nullable=False, default=50)

    temperature = Column(Float)
    humidity = Column(Float)
    battery_level = Column(Float)
    signal_rssi_dbm = Column(Float)
    error_code = Column(String(50))
    source = Column(String(30), default='sensor_reading')

    calculation_method = Column(String(50))
    sensor_type = Column(String(50))
    processing_error = Column(Text)
    processing_version = Column(String(20))
    tank_snapshot = Column(JSON)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())

    __table_args__ = (
        Index('ix_tank_volume_history_tank_time', 'tank_id', 'timestamp'),
    )

    @property
    def volume_gallons(self) -> float:
        return (self.volume_liters or 0.0) / LITRES_PER_US_GALLON

    def to_dict(self):
        return {
            "id": self.id, "tank_id": self.tank_id, "device_id": self.device_id,
            "timestamp": _isoformat(self.timestamp),
            "raw_sensor_reading": self.raw_sensor_reading, "actual_level": self.actual_level,
            "volume_liters": self.volume_liters, "volume_m3": self.volume_m3,
            "volume_gallons": self.volume_gallons,
            "total_volume_liters": self.total_volume_liters, "usable_volume_liters": self.usable_volume_liters,
            "fill_percentage": self.fill_percentage, "mass_kg": self.mass_kg,
            "volume_delta_liters": self.volume_delta_liters,
            "data_quality": self.data_quality, "quality_score": self.quality_score,
            "temperature": self.temperature, "humidity": self.humidity,
            "battery_level": self.battery_level, "signal_rssi_dbm": self.signal_rssi_dbm,
            "error_code": self.error_code, "source": self.source,
            "calculation_method": self.calculation_method, "sensor_type": self.sensor_type,
            "processing_error": self.processing_error, "processing_version": self.processing_version,
            "tank_snapshot": self.tank_snapshot,
        }


class VolumeAnalytics(Base):
    __tablename__ = 'volume_analytics'
    id = Column(Integer, primary_key=True, autoincrement=True)
    tank_id = Column(String(50), ForeignKey('tanks.tank_id'), nullable=False, index=True)
    period_type = Column(String(10), nullable=False)
    period_start = Column(TIMESTAMP(timezone=True), nullable=False)
    period_end = Column(TIMESTAMP(timezone=True), nullable=False)

    # Volumes in litres
    opening_volume = Column(Float, nullable=False)
    opening_timestamp = Column(TIMESTAMP(timezone=True), nullable=False)
    closing_volume = Column(Float, nullable=False)
    closing_timestamp = Column(TIMESTAMP(timezone=True), nullable=False)
    min_volume = Column(Float, nullable=False)
    min_volume_timestamp = Column(TIMESTAMP(timezone=True))
    max_volume = Column(Float, nullable=False)
    max_volume_timestamp = Column(TIMESTAMP(timezone=True))
    average_volume = Column(Float, nullable=False)

    average_fill_percentage = Column(Float)
    min_fill_percentage = Column(Float)
    max_fill_percentage = Column(Float)

    total_added = Column(Float, nullable=False, default=0.0)
    total_used = Column(Float, nullable=False, default=0.0)
    net_change = Column(Float, nullable=False, default=0.0)
    reading_count = Column(Integer, nullable=False, default=0)
    average_quality_score = Column(Float)

    # Weight statistics in kg, only when the tank has a density
    opening_weight = Column(Float)
    closing_weight = Column(Float)
    min_weight = Column(Float)
    max_weight = Column(Float)
    average_weight = Column(Float)
    total_weight_added = Column(Float)
    total_weight_used = Column(Float)
    weight_reading_count = Column(Integer, nullable=False, default=0)

    version = Column(Integer, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    last_updated = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        UniqueConstraint('tank_id', 'period_type', 'period_start', name='uq_volume_analytics_period'),
    )

    def to_dict(self):
        data = {c.name: getattr(self, c.name) for c in self.__table__.columns}
        for key in ("period_start", "period_end", "opening_timestamp", "closing_timestamp",
                    "min_volume_timestamp", "max_volume_timestamp", "created_at", "last_updated"):
            data[key] = _isoformat(data[key])
        return data
