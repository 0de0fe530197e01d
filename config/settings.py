# File: tank_volume_engine/config/settings.py
import os
import logging
import sys
from dotenv import load_dotenv

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper(),
                    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

try:
    project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
    dotenv_path = os.path.join(project_root, '.env')
    logger.info(f"Attempting to load .env file from: {dotenv_path}")

    if os.path.exists(dotenv_path):
        if load_dotenv(dotenv_path=dotenv_path):
            logger.info(f"Successfully loaded .env file from {dotenv_path}")
        else:
            logger.info(f".env file at {dotenv_path} processed but might be empty or set no new vars.")
    else:
        logger.info(f".env file not found at {dotenv_path}. Using system environment variables or defaults.")
except Exception as e:
    logger.error(f"Error loading .env file: {e}", exc_info=True)


# --- Database Configuration (For SQLAlchemy) ---
# DATABASE_URL wins when set (e.g. sqlite for local runs); otherwise the
# PostgreSQL URL is assembled from the DB_* parts.
DATABASE_URL = os.getenv("DATABASE_URL")

if not DATABASE_URL:
    DB_NAME = os.getenv("DB_NAME", "tank_volume_db")
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASSWORD = os.getenv("DB_PASSWORD")
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")

    if not DB_PASSWORD:
        logger.critical("Neither DATABASE_URL nor DB_PASSWORD is set. Please configure the database via .env or environment variables.")
        sys.exit(1)

    DATABASE_URL = f"postgresql+psycopg2://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
    masked_db_url = f"postgresql+psycopg2://{DB_USER}:***@{DB_HOST}:{DB_PORT}/{DB_NAME}"
    logger.info(f"DATABASE_URL constructed: {masked_db_url}")
else:
    logger.info(f"DATABASE_URL taken from environment (driver: {DATABASE_URL.split(':', 1)[0]})")


# --- Physical Constants ---
GRAVITY_M_S2 = float(os.getenv("GRAVITY_M_S2", "9.81"))
DEFAULT_LIQUID_DENSITY_KG_M3 = float(os.getenv("DEFAULT_LIQUID_DENSITY_KG_M3", "1000.0"))
logger.info(f"DEFAULT_LIQUID_DENSITY_KG_M3 = {DEFAULT_LIQUID_DENSITY_KG_M3}")


# --- Fill Status Thresholds (percent) ---
DEFAULT_ALERT_THRESHOLDS = {
    "low": float(os.getenv("DEFAULT_LOW_THRESHOLD", "10")),
    "high": float(os.getenv("DEFAULT_HIGH_THRESHOLD", "80")),
    "critical": float(os.getenv("DEFAULT_CRITICAL_THRESHOLD", "95")),
}
logger.info(f"DEFAULT_ALERT_THRESHOLDS = {DEFAULT_ALERT_THRESHOLDS}")


# --- Processing Settings ---
PROCESSING_WORKERS = int(os.getenv("PROCESSING_WORKERS", "4"))
PERSISTENCE_MAX_RETRIES = int(os.getenv("PERSISTENCE_MAX_RETRIES", "3"))
VOLUME_TABLE_STEPS = int(os.getenv("VOLUME_TABLE_STEPS", "200"))
PROCESSING_VERSION = os.getenv("PROCESSING_VERSION", "1.0")

logger.info(f"PROCESSING_WORKERS = {PROCESSING_WORKERS}")
logger.info(f"PERSISTENCE_MAX_RETRIES = {PERSISTENCE_MAX_RETRIES}")

logger.info("Configuration settings loaded.")
