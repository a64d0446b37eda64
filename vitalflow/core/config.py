# vitalflow/core/config.py
import os
import json
import logging
from dotenv import load_dotenv
from pathlib import Path
from typing import List, Optional

# project root
BASE_DIR = Path(__file__).resolve().parent.parent.parent

# load .env before any setting is read
env_path = BASE_DIR / ".env"
load_dotenv(dotenv_path=env_path)

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings:
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "VitalFlow Reminder Service")
    PROJECT_VERSION: str = os.getenv("PROJECT_VERSION", "1.0.0")
    DEBUG: bool = _env_bool("DEBUG", "False")
    API_V1_STR: str = os.getenv("API_V1_STR", "/api/v1")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # MongoDB
    MONGO_URI: str = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    MONGO_DB_NAME: str = os.getenv("MONGO_DB_NAME", "vitalflow")

    # MQTT
    MQTT_ENABLED: bool = _env_bool("MQTT_ENABLED", "True")
    MQTT_BROKER_HOST: Optional[str] = os.getenv("MQTT_BROKER_HOST", "localhost")
    MQTT_BROKER_PORT: int = int(os.getenv("MQTT_BROKER_PORT", 1883))
    MQTT_USERNAME: Optional[str] = os.getenv("MQTT_USERNAME") or None
    MQTT_PASSWORD: Optional[str] = os.getenv("MQTT_PASSWORD") or None
    MQTT_CLIENT_ID_PREFIX: str = os.getenv("MQTT_CLIENT_ID_PREFIX", "vitalflow_reminders_")
    MQTT_TOPIC_PREFIX: str = os.getenv("MQTT_TOPIC_PREFIX", "vitalflow").strip("/")

    # Reminder engine
    REMINDER_TIMEZONE: Optional[str] = os.getenv("REMINDER_TIMEZONE") or None  # IANA name, host zone if unset
    EXACT_TIMERS_ALLOWED: bool = _env_bool("EXACT_TIMERS_ALLOWED", "True")
    EXACT_MISFIRE_GRACE_SECONDS: int = int(os.getenv("EXACT_MISFIRE_GRACE_SECONDS", 60))
    ARM_RETRY_ATTEMPTS: int = int(os.getenv("ARM_RETRY_ATTEMPTS", 3))
    ARM_RETRY_DELAY_SECONDS: float = float(os.getenv("ARM_RETRY_DELAY_SECONDS", 0.5))
    REBUILD_CONCURRENCY: int = int(os.getenv("REBUILD_CONCURRENCY", 8))
    DEFAULT_REMINDER_LABEL: str = os.getenv("DEFAULT_REMINDER_LABEL", "Measure Blood Pressure")
    REMINDER_NOTIFICATION_TITLE: str = os.getenv("REMINDER_NOTIFICATION_TITLE", "Blood Pressure Reminder")

    # CORS
    BACKEND_CORS_ORIGINS_STR: Optional[str] = os.getenv("BACKEND_CORS_ORIGINS")
    BACKEND_CORS_ORIGINS: List[str] = []
    if BACKEND_CORS_ORIGINS_STR:
        try:
            BACKEND_CORS_ORIGINS = json.loads(BACKEND_CORS_ORIGINS_STR)
        except json.JSONDecodeError:
            raise ValueError(f"BACKEND_CORS_ORIGINS is not a valid JSON list: {BACKEND_CORS_ORIGINS_STR}")

    # basic sanity checks
    if not MONGO_DB_NAME: raise ValueError("MONGO_DB_NAME not set")
    if MQTT_ENABLED and not MQTT_BROKER_HOST: raise ValueError("MQTT_BROKER_HOST not set")
    if ARM_RETRY_ATTEMPTS < 1: raise ValueError("ARM_RETRY_ATTEMPTS must be >= 1")
    if REBUILD_CONCURRENCY < 1: raise ValueError("REBUILD_CONCURRENCY must be >= 1")
    if LOG_LEVEL not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ValueError(f"Unknown LOG_LEVEL: {LOG_LEVEL}")


settings = Settings()


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if settings.DEBUG:
        logger.debug("--- Application Settings Loaded ---")
        logger.debug(f"PROJECT_NAME: {settings.PROJECT_NAME}")
        logger.debug(f"MONGO_URI: {settings.MONGO_URI.split('@')[-1]}")
        logger.debug(f"MQTT_BROKER_HOST: {settings.MQTT_BROKER_HOST} (enabled={settings.MQTT_ENABLED})")
        logger.debug(f"REMINDER_TIMEZONE: {settings.REMINDER_TIMEZONE or 'host local'}")
        logger.debug(f"EXACT_TIMERS_ALLOWED: {settings.EXACT_TIMERS_ALLOWED}")
