# File: tank_volume_engine/core/models/__init__.py
import logging

logger = logging.getLogger(__name__)
logger.debug("Initializing core.models package...")

from .base import Asset, DataPoint, ensure_utc
from .tank import StorageTank
from .reading import SensorReadingPayload, parse_reading

__all__ = [
    "Asset",
    "DataPoint",
    "ensure_utc",
    "StorageTank",
    "SensorReadingPayload",
    "parse_reading",
]
