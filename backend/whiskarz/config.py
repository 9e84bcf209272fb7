import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import pendulum

from whiskarz.services.time_utils import hhmm_to_minutes

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = str(Path(__file__).resolve().parents[1] / "data" / "whiskarz.sqlite3")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r; expected an integer, using %s", name, raw, default)
        return default
    if value <= 0:
        logger.warning("Ignoring %s=%r; expected a positive integer, using %s", name, raw, default)
        return default
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r; expected a number, using %s", name, raw, default)
        return default
    if value < 0:
        logger.warning("Ignoring %s=%r; expected a non-negative number, using %s", name, raw, default)
        return default
    return value


def _env_time(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        hhmm_to_minutes(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r; expected HH:mm, using %s", name, raw, default)
        return default
    return raw.strip()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class SettingsDefaults:
    """Values used when a sitter's availability settings are created lazily."""

    max_daily_bookings: int = 5
    advance_notice_hours: int = 24
    travel_distance: int = 10
    weekday_start: str = "09:00"
    weekday_end: str = "17:00"


@dataclass(frozen=True)
class SchedulingConfig:
    """Business parameters for range expansion and booking admission.

    Built once and handed to the engine objects; the engine never reads the
    environment itself.
    """

    timezone: str = "America/Toronto"
    default_start_time: str = "09:00"
    default_end_time: str = "17:00"
    min_window_minutes: int = 60
    daily_rate: float = 46.0
    enforce_advance_notice: bool = False
    db_path: str = DEFAULT_DB_PATH
    settings_defaults: SettingsDefaults = field(default_factory=SettingsDefaults)

    def __post_init__(self) -> None:
        try:
            pendulum.timezone(self.timezone)
        except Exception as exc:
            raise ValueError(f"Unknown business timezone: {self.timezone!r}") from exc
        if self.min_window_minutes < 1:
            raise ValueError("min_window_minutes must be >= 1")
        for name in ("default_start_time", "default_end_time"):
            hhmm_to_minutes(getattr(self, name))

    @classmethod
    def from_env(cls) -> "SchedulingConfig":
        defaults = SettingsDefaults(
            max_daily_bookings=_env_int("WHISKARZ_MAX_DAILY_BOOKINGS", 5),
            advance_notice_hours=_env_int("WHISKARZ_ADVANCE_NOTICE_HOURS", 24),
            travel_distance=_env_int("WHISKARZ_TRAVEL_DISTANCE", 10),
        )
        return cls(
            timezone=os.getenv("WHISKARZ_TIMEZONE", "America/Toronto").strip() or "America/Toronto",
            default_start_time=_env_time("WHISKARZ_DEFAULT_START_TIME", "09:00"),
            default_end_time=_env_time("WHISKARZ_DEFAULT_END_TIME", "17:00"),
            min_window_minutes=_env_int("WHISKARZ_MIN_WINDOW_MINUTES", 60),
            daily_rate=_env_float("WHISKARZ_DAILY_RATE", 46.0),
            enforce_advance_notice=_env_bool("WHISKARZ_ENFORCE_ADVANCE_NOTICE", False),
            db_path=os.getenv("WHISKARZ_DB_PATH", DEFAULT_DB_PATH),
            settings_defaults=defaults,
        )


def configure_logging() -> None:
    level_name = os.getenv("WHISKARZ_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


settings = SchedulingConfig.from_env()
