# create_db_tables.py

import sys
import logging
from typing import List, Optional

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from data.database import engine
from data.db_models import Base

logger = logging.getLogger(__name__)


def missing_tables(db_engine: Engine) -> List[str]:
    existing = set(inspect(db_engine).get_table_names())
    return sorted(name for name in Base.metadata.tables if name not in existing)


def main(db_engine: Optional[Engine] = None) -> bool:
    """
    Creates the volume engine schema: tank configuration (`tanks`, `devices`),
    the append-only `tank_volume_history` and the per-period `volume_analytics`
    rows with their unique (tank, period type, period start) key.

    Tables that already exist are left untouched, so this is safe to re-run
    after adding a table.
    """
    db_engine = db_engine or engine
    if not db_engine:
        logger.critical("Database engine is not configured. Cannot create tables. Check your .env and config settings.")
        return False

    try:
        to_create = missing_tables(db_engine)
        if not to_create:
            logger.info("All volume engine tables already exist.")
            return True
        logger.info(f"Creating tables: {', '.join(to_create)}")
        Base.metadata.create_all(bind=db_engine)
        still_missing = missing_tables(db_engine)
    except SQLAlchemyError as e:
        logger.critical(f"An error occurred while creating database tables: {e}", exc_info=True)
        return False

    if still_missing:
        logger.critical(f"Tables still missing after create_all: {', '.join(still_missing)}")
        return False
    return True


if __name__ == "__main__":
    sys.exit(0 if main() else 1)
