# library_booking/core/config.py
import os
import sys
import logging
from datetime import time
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel, Field, field_validator, model_validator

# --- Load .env from the project root if present ---
project_root = Path(__file__).resolve().parent.parent.parent
dotenv_path = project_root / ".env"
if dotenv_path.is_file():
    logger.info(f"Loading environment variables from: {dotenv_path}")
    load_dotenv(dotenv_path=dotenv_path, override=False)
else:
    logger.debug(f".env file not found at {dotenv_path}. Relying on system environment variables.")


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}. Using default: {default}.")
        return default


# --- Intercept handler (routes stdlib logging into Loguru) ---
class InterceptHandler(logging.Handler):
    """Handler that forwards standard library log records to Loguru."""
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1
        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging():
    """Configure Loguru sinks and intercept standard logging."""
    log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    log_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
    )
    log_file_path_str = os.getenv("LOG_FILE_PATH", "logs/app_{time:YYYY-MM-DD}.log")
    log_rotation = os.getenv("LOG_ROTATION", "1 day")
    log_retention = os.getenv("LOG_RETENTION", "7 days")
    log_serialize = _env_bool("LOG_SERIALIZE")

    logger.remove()

    # Console
    logger.add(sys.stderr, level=log_level_name, format=log_format, colorize=True)

    # File (empty LOG_FILE_PATH disables it)
    if log_file_path_str:
        log_file_path = Path(log_file_path_str)
        try:
            log_file_path.parent.mkdir(parents=True, exist_ok=True)
            logger.add(
                log_file_path,
                level=log_level_name,
                format=log_format,
                rotation=log_rotation,
                retention=log_retention,
                serialize=log_serialize,
                enqueue=True,
                backtrace=True,
                diagnose=False,
                encoding="utf-8",
            )
            logger.info(f"File logging enabled at: {log_file_path}")
        except OSError as e:
            logger.error(f"Failed to setup file logging at {log_file_path}: {e}")

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in list(logging.root.manager.loggerDict):
        if name.startswith(("uvicorn", "fastapi", "starlette", "apscheduler")):
            existing_logger = logging.getLogger(name)
            existing_logger.handlers = [InterceptHandler()]
            existing_logger.propagate = False

    logger.info(f"Loguru logging setup complete. Level: {log_level_name}")


# --- Booking policy configuration ---
class OperatingHours(BaseModel):
    """Opening and closing time of the library for one kind of day."""
    start: time
    end: time

    @classmethod
    def parse(cls, value: str) -> "OperatingHours":
        """Parse a ``HH:MM-HH:MM`` range."""
        try:
            opening, closing = (part.strip() for part in value.split("-", 1))
            return cls(start=time.fromisoformat(opening), end=time.fromisoformat(closing))
        except ValueError as e:
            raise ValueError(f"Invalid operating hours {value!r}, expected HH:MM-HH:MM") from e

    @model_validator(mode="after")
    def check_order(self):
        if self.end <= self.start:
            raise ValueError("Operating hours must close after they open")
        return self


class BookingPolicySettings(BaseModel):
    max_renewals_per_booking: int = Field(default=2, ge=0)
    max_window_days: int = Field(default=15, gt=0)
    post_renewal_extension_days: int = Field(default=7, gt=0)
    min_occupancy: int = Field(default=1, ge=0)
    max_occupancy: int = Field(default=10, gt=0)
    max_reservation_hours: int = Field(default=4, gt=0)
    weekday_operating_hours: OperatingHours = Field(
        default_factory=lambda: OperatingHours.parse("08:00-20:00")
    )
    saturday_operating_hours: OperatingHours = Field(
        default_factory=lambda: OperatingHours.parse("09:00-14:00")
    )
    timezone: str = "UTC"

    @field_validator("weekday_operating_hours", "saturday_operating_hours", mode="before")
    @classmethod
    def parse_hours(cls, value):
        if isinstance(value, str):
            return OperatingHours.parse(value)
        return value


@lru_cache
def get_policy_settings() -> BookingPolicySettings:
    """Policy settings read from the environment, cached for the process."""
    settings = BookingPolicySettings(
        max_renewals_per_booking=_env_int("MAX_RENEWALS_PER_BOOKING", 2),
        max_window_days=_env_int("MAX_WINDOW_DAYS", 15),
        post_renewal_extension_days=_env_int("POST_RENEWAL_EXTENSION_DAYS", 7),
        min_occupancy=_env_int("MIN_OCCUPANCY", 1),
        max_occupancy=_env_int("MAX_OCCUPANCY", 10),
        max_reservation_hours=_env_int("MAX_RESERVATION_HOURS", 4),
        weekday_operating_hours=os.getenv("WEEKDAY_OPERATING_HOURS", "08:00-20:00"),
        saturday_operating_hours=os.getenv("SATURDAY_OPERATING_HOURS", "09:00-14:00"),
        timezone=os.getenv("LIBRARY_TIMEZONE", "UTC"),
    )
    logger.info(
        f"Booking policy: max_renewals={settings.max_renewals_per_booking}, "
        f"max_window_days={settings.max_window_days}, "
        f"extension_days={settings.post_renewal_extension_days}, timezone={settings.timezone}"
    )
    return settings


# --- JWT Configuration ---
SECRET_KEY: str = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    logger.critical("FATAL: SECRET_KEY environment variable is not set.")
    raise ValueError("SECRET_KEY environment variable is not set.")

ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES: int = _env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 30)

# --- Storage Configuration ---
STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "mongo").strip().lower()
if STORAGE_BACKEND not in ("mongo", "memory"):
    logger.critical(f"FATAL: Unknown STORAGE_BACKEND '{STORAGE_BACKEND}'.")
    raise ValueError(f"Unknown STORAGE_BACKEND '{STORAGE_BACKEND}', expected 'mongo' or 'memory'.")

MONGODB_URL: str = os.getenv("MONGODB_URL", "")
if STORAGE_BACKEND == "mongo" and not MONGODB_URL:
    logger.critical("FATAL: MONGODB_URL environment variable is not set.")
    raise ValueError("MONGODB_URL environment variable is not set.")

DATABASE_NAME: str = os.getenv("DATABASE_NAME", "library_db")
# Replica sets only; standalone servers reject multi-document transactions
MONGODB_TRANSACTIONS: bool = _env_bool("MONGODB_TRANSACTIONS")

LOCK_TIMEOUT_SECONDS: int = _env_int("LOCK_TIMEOUT_SECONDS", 5)
LOCK_TTL_SECONDS: int = _env_int("LOCK_TTL_SECONDS", 30)

# --- Scheduler / misc ---
RECONCILE_INTERVAL_MINUTES: int = _env_int("RECONCILE_INTERVAL_MINUTES", 15)
SCHEDULER_TIMEZONE: str = os.getenv("SCHEDULER_TIMEZONE", "UTC")
RATE_LIMIT_ENABLED: bool = _env_bool("RATE_LIMIT_ENABLED", "true")

logger.info(f"JWT Algorithm: {ALGORITHM}")
logger.info(f"Storage backend: {STORAGE_BACKEND}")
if STORAGE_BACKEND == "mongo":
    logger.info(f"Database Name: {DATABASE_NAME} (transactions: {MONGODB_TRANSACTIONS})")
