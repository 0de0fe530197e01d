# File: tank_volume_engine/core/exceptions.py
from typing import List, Optional


class VolumeEngineError(Exception):
    """Base class for all errors raised by the volume engine."""


class ReadingValidationError(VolumeEngineError):
    """A reading (or a record computed from it) carries a non-numeric, negative or out-of-range field."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ComputationError(VolumeEngineError):
    """Level or volume could not be computed (unsupported shape, degenerate geometry, domain errors)."""

    def __init__(self, message: str, data_quality: str = "error"):
        super().__init__(message)
        self.data_quality = data_quality


class PersistenceError(VolumeEngineError):
    """Storage failure. Callers treat it as transient and may retry."""


class TankConfigurationError(VolumeEngineError):
    """Tank configuration is inconsistent (dimensions, thresholds, density)."""

    def __init__(self, tank_id: str, errors: List[str]):
        super().__init__(f"Invalid configuration for tank {tank_id}: {'; '.join(errors)}")
        self.tank_id = tank_id
        self.errors = errors
