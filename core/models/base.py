# File: tank_volume_engine/core/models/base.py
import datetime
import logging
from typing import Any, Optional, Dict

logger = logging.getLogger(__name__)


def ensure_utc(timestamp: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """Returns a timezone-aware UTC datetime. Naive values are taken as UTC (SQLite drops tzinfo)."""
    if timestamp is None:
        return None
    if timestamp.tzinfo is None or timestamp.tzinfo.utcoffset(timestamp) is None:
        return timestamp.replace(tzinfo=datetime.timezone.utc)
    return timestamp.astimezone(datetime.timezone.utc)


class DataPoint:
    """A single cached value with its unit and the time it was observed."""
    def __init__(self, name: str, unit: Optional[str] = None):
        self.name: str = name
        self.value: Any = None
        self.unit: Optional[str] = unit
        self.timestamp_utc: Optional[datetime.datetime] = None
        self.status: str = "NoData"

    def update(self, value: Any, timestamp_utc: datetime.datetime, status: str = "OK") -> bool:
        """Stores the value unless it is older than the one already held. Returns True when stored."""
        timestamp_utc = ensure_utc(timestamp_utc)
        if self.timestamp_utc is not None and timestamp_utc < self.timestamp_utc:
            logger.debug(f"Ignoring stale update for {self.name}: {timestamp_utc} < {self.timestamp_utc}")
            return False
        self.value = value
        self.timestamp_utc = timestamp_utc
        self.status = status
        return True

    def reset(self):
        self.value = None
        self.timestamp_utc = None
        self.status = "NoData"

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "value": self.value,
            "unit": self.unit,
            "timestamp_utc": self.timestamp_utc.isoformat(timespec='seconds') if self.timestamp_utc else None,
            "status": self.status
        }

    def __str__(self) -> str:
        ts_str = self.timestamp_utc.strftime('%Y-%m-%d %H:%M:%S %Z') if self.timestamp_utc else "N/A"
        unit_str = f" {self.unit}" if self.unit else ""
        return f"{self.name}: {self.value}{unit_str} (Status: {self.status} @ {ts_str})"


class Asset:
    """Base class for monitored assets (tanks, silos, vessels)."""
    def __init__(self,
                 asset_id: str,
                 asset_type: str,
                 name: Optional[str] = None,
                 description: Optional[str] = None,
                 is_active: bool = True,
                 **kwargs):
        self.asset_id: str = asset_id
        self.asset_type: str = asset_type
        self.name: Optional[str] = name
        self.description: Optional[str] = description
        self.is_active: bool = is_active

        # Columns we do not model explicitly are kept for to_dict()
        self._additional_properties: Dict[str, Any] = {}
        for key, value in kwargs.items():
            if hasattr(self, key):
                logger.debug(f"Skipping kwarg '{key}' for asset '{asset_id}': attribute already exists.")
                continue
            self._additional_properties[key] = value

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "asset_id": self.asset_id,
            "asset_type": self.asset_type,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
        }
        data.update(self._additional_properties)
        return data

    def __str__(self) -> str:
        return f"{self.asset_type} - {self.asset_id} ({self.name or self.description or 'No description'})"
