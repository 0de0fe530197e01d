# File: tank_volume_engine/core/rules.py
# Fill-status rules evaluated against tank-specific thresholds
import logging
from typing import Any, Dict, List, Mapping, Optional

from config import settings

logger = logging.getLogger(__name__)

FILL_STATUS_CRITICAL = "critical"
FILL_STATUS_HIGH = "high"
FILL_STATUS_LOW = "low"
FILL_STATUS_NORMAL = "normal"
# No usable fill percentage, e.g. a degraded record
FILL_STATUS_UNKNOWN = "unknown"


def resolve_thresholds(thresholds: Optional[Mapping[str, Any]]) -> Dict[str, float]:
    """Fills in missing threshold entries from the configured defaults."""
    resolved = dict(settings.DEFAULT_ALERT_THRESHOLDS)
    for key, value in (thresholds or {}).items():
        if key in resolved and value is not None:
            resolved[key] = float(value)
    return resolved


def validate_thresholds(thresholds: Optional[Mapping[str, Any]]) -> List[str]:
    """Returns the list of ordering violations; empty when low < high < critical."""
    errors = []
    resolved = resolve_thresholds(thresholds)
    low, high, critical = resolved["low"], resolved["high"], resolved["critical"]

    for name, value in resolved.items():
        if value < 0 or value > 100:
            errors.append(f"{name.capitalize()} threshold must be between 0 and 100")
    if low >= high:
        errors.append("Low threshold must be less than high threshold")
    if high >= critical:
        errors.append("High threshold must be less than critical threshold")
    if low >= critical:
        errors.append("Low threshold must be less than critical threshold")
    return errors


def evaluate_fill_status(fill_percentage: Optional[float], thresholds: Optional[Mapping[str, Any]]) -> str:
    """
    Classifies a fill percentage. Critical is checked first, then high, then low.
    A missing percentage is unknown, never normal.
    """
    if fill_percentage is None:
        return FILL_STATUS_UNKNOWN
    resolved = resolve_thresholds(thresholds)
    if fill_percentage >= resolved["critical"]:
        return FILL_STATUS_CRITICAL
    if fill_percentage >= resolved["high"]:
        return FILL_STATUS_HIGH
    if fill_percentage <= resolved["low"]:
        return FILL_STATUS_LOW
    return FILL_STATUS_NORMAL


def alert_level_for_record(record: Any) -> str:
    """Evaluates a stored history record against the thresholds captured in its tank snapshot."""
    if getattr(record, "calculation_method", None) == "error":
        return FILL_STATUS_UNKNOWN
    snapshot = getattr(record, "tank_snapshot", None) or {}
    thresholds = snapshot.get("alert_thresholds")
    if not thresholds:
        return FILL_STATUS_NORMAL
    return evaluate_fill_status(record.fill_percentage, thresholds)
