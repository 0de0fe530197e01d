# File: tank_volume_engine/utils/helpers.py
import logging
import datetime
from typing import Optional

logger = logging.getLogger(__name__)


def parse_iso_datetime(timestamp_str: str) -> Optional[datetime.datetime]:
    """Parses an ISO 8601 timestamp string to a timezone-aware datetime object (UTC)."""
    if not timestamp_str:
        return None
    try:
        if timestamp_str.endswith('Z'):
            timestamp_str = timestamp_str[:-1] + '+00:00'
        dt = datetime.datetime.fromisoformat(timestamp_str)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=datetime.timezone.utc)
        return dt.astimezone(datetime.timezone.utc)
    except (ValueError, TypeError) as e:
        logger.warning(f"Could not parse timestamp string: {timestamp_str}. Error: {e}")
        return None


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)
