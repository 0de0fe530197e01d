# File: tank_volume_engine/config/tank_loader.py

import logging
import threading
from typing import Dict, Any, Optional, Tuple

from data import database
from data.db_models import Tank
from core.models import StorageTank

logger = logging.getLogger(__name__)


def create_tank_instance(tank_data: Dict[str, Any]) -> Optional[StorageTank]:
    """Builds a StorageTank from a `tanks` row dict. Returns None when the row cannot be used."""
    try:
        return StorageTank(**tank_data)
    except (TypeError, ValueError) as e:
        logger.error(f"Failed to instantiate tank {tank_data.get('tank_id')}: {e}", exc_info=True)
        return None


class TankRegistry:
    """
    Keeps one StorageTank (and so one geometry) per tank configuration
    revision. A bumped configuration_revision on the row replaces the entry.
    """

    def __init__(self):
        self._tanks: Dict[str, Tuple[int, StorageTank]] = {}
        self._lock = threading.Lock()

    def get_tank(self, row: Tank) -> Optional[StorageTank]:
        revision = row.configuration_revision or 0
        with self._lock:
            cached = self._tanks.get(row.tank_id)
            if cached is not None and cached[0] == revision:
                tank = cached[1]
                self._sync_current_state(tank, row)
                return tank

        tank = create_tank_instance(row.to_dict())
        if tank is None:
            return None
        if cached is not None:
            logger.info(f"Tank {row.tank_id} reconfigured (revision {cached[0]} -> {revision}); rebuilding geometry.")
        with self._lock:
            self._tanks[row.tank_id] = (revision, tank)
        return tank

    @staticmethod
    def _sync_current_state(tank: StorageTank, row: Tank):
        # The row is authoritative. Another process may have moved it on, and a
        # rolled-back reading may have left this copy ahead of it.
        tank.restore_current_state(
            row.current_volume_litres,
            row.current_fill_percentage,
            row.current_level,
            row.last_reading_at,
        )

    def preload(self) -> Dict[str, StorageTank]:
        """Loads every active tank, logging configuration problems found on the way."""
        tanks: Dict[str, StorageTank] = {}
        with database.get_db() as db:
            if not db:
                logger.error("Could not get a database session for loading tanks.")
                return tanks
            rows = db.query(Tank).filter(Tank.is_active == True).order_by(Tank.tank_id).all()  # noqa: E712
            for row in rows:
                tank = self.get_tank(row)
                if tank is None:
                    continue
                errors = tank.validate()
                if errors:
                    logger.warning(f"Tank {tank.tank_id} loaded with configuration errors: {'; '.join(errors)}")
                tanks[tank.tank_id] = tank

        logger.info(f"Loaded {len(tanks)} tank configuration(s) from the database.")
        if not tanks:
            logger.warning("Tank loading returned empty. This might be normal if the DB is empty.")
        return tanks
