# File: tank_volume_engine/core/models/reading.py
import datetime
import logging
import math
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, field_validator, ValidationError

from core.exceptions import ReadingValidationError
from utils.helpers import parse_iso_datetime

logger = logging.getLogger(__name__)

# Accepted ranges for the optional environmental fields
ENVIRONMENT_RANGES = {
    "temperature": (-50.0, 100.0),
    "humidity": (0.0, 100.0),
    "battery_level": (0.0, 100.0),
    "signal_rssi_dbm": (-150.0, 0.0),
}

# Quality hints a device may attach to a reading
SENSOR_QUALITY_TAGS = ("excellent", "good", "fair", "poor")


class SensorReadingPayload(BaseModel):
    tank_id: str
    device_id: Optional[str] = None
    timestamp: datetime.datetime
    raw_value: float
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    battery_level: Optional[float] = None
    signal_rssi_dbm: Optional[float] = None
    error_code: Optional[str] = None
    data_quality: Optional[str] = None
    source: str = "sensor_reading"

    @field_validator('timestamp', mode='before')
    @classmethod
    def validate_timestamp(cls, v_value):
        if isinstance(v_value, str):
            dt = parse_iso_datetime(v_value)
            if dt is None:
                raise ValueError("Invalid timestamp string format. Expected ISO 8601.")
            return dt
        if isinstance(v_value, datetime.datetime):
            if v_value.tzinfo is None:
                return v_value.replace(tzinfo=datetime.timezone.utc)
            return v_value.astimezone(datetime.timezone.utc)
        if v_value is None:
            raise ValueError("timestamp cannot be null.")
        raise TypeError("timestamp must be a string or datetime object.")

    @field_validator('raw_value')
    @classmethod
    def validate_raw_value(cls, v_value: float) -> float:
        if not math.isfinite(v_value):
            raise ValueError("raw_value must be a finite number.")
        if v_value < 0:
            raise ValueError("raw_value cannot be negative.")
        return v_value

    @field_validator('temperature', 'humidity', 'battery_level', 'signal_rssi_dbm')
    @classmethod
    def drop_out_of_range(cls, v_value: Optional[float], info) -> Optional[float]:
        if v_value is None:
            return None
        low, high = ENVIRONMENT_RANGES[info.field_name]
        if not math.isfinite(v_value) or v_value < low or v_value > high:
            logger.warning(f"Ignoring out-of-range {info.field_name}={v_value} (allowed {low}..{high})")
            return None
        return v_value

    @field_validator('data_quality')
    @classmethod
    def validate_data_quality(cls, v_value: Optional[str]) -> Optional[str]:
        if v_value is None:
            return None
        v_value = v_value.lower()
        if v_value not in SENSOR_QUALITY_TAGS:
            logger.warning(f"Ignoring unknown data quality hint '{v_value}'")
            return None
        return v_value


def parse_reading(data: Union[Dict[str, Any], SensorReadingPayload]) -> SensorReadingPayload:
    """Validates an incoming reading; malformed payloads raise ReadingValidationError."""
    if isinstance(data, SensorReadingPayload):
        return data
    try:
        return SensorReadingPayload(**data)
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ReadingValidationError(f"Invalid sensor reading: {e}", field=field) from e
    except TypeError as e:
        raise ReadingValidationError(f"Invalid sensor reading: {e}") from e
