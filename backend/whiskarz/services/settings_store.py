import json
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import List

from whiskarz.config import SettingsDefaults, settings as app_settings
from whiskarz.models import (
    AvailabilitySettings,
    AvailabilitySettingsUpdate,
    HolidayRates,
    WeekendRates,
    WeeklySchedule,
    parse_weekday,
)
from whiskarz.services.time_utils import parse_iso_date
from whiskarz.services.weekly_schedule import default_weekly_schedule

logger = logging.getLogger(__name__)


@dataclass
class SettingsStore:
    """One live AvailabilitySettings row per sitter; writes overwrite, no history."""

    db_path: str
    defaults: SettingsDefaults = field(default_factory=SettingsDefaults)

    def __post_init__(self) -> None:
        self._lock = Lock()
        path = Path(self.db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = str(path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._lock:
            with self._connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS availability_settings (
                        sitter_id TEXT PRIMARY KEY,
                        weekly_schedule_json TEXT NOT NULL,
                        max_daily_bookings INTEGER NOT NULL,
                        advance_notice_hours INTEGER NOT NULL,
                        travel_distance INTEGER NOT NULL,
                        holiday_rates_json TEXT NOT NULL,
                        weekend_rates_json TEXT NOT NULL,
                        unavailable_dates_json TEXT NOT NULL DEFAULT '[]',
                        is_active INTEGER NOT NULL DEFAULT 1,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
                conn.commit()

    def _default_settings(self, sitter_id: str) -> AvailabilitySettings:
        return AvailabilitySettings(
            sitter_id=sitter_id,
            weekly_schedule=default_weekly_schedule(self.defaults),
            max_daily_bookings=self.defaults.max_daily_bookings,
            advance_notice_hours=self.defaults.advance_notice_hours,
            travel_distance=self.defaults.travel_distance,
            holiday_rates=HolidayRates(),
            weekend_rates=WeekendRates(),
            unavailable_dates=[],
            is_active=True,
        )

    def _row_to_settings(self, row: sqlite3.Row) -> AvailabilitySettings:
        return AvailabilitySettings(
            sitter_id=row["sitter_id"],
            weekly_schedule=WeeklySchedule.model_validate_json(row["weekly_schedule_json"]),
            max_daily_bookings=row["max_daily_bookings"],
            advance_notice_hours=row["advance_notice_hours"],
            travel_distance=row["travel_distance"],
            holiday_rates=HolidayRates.model_validate_json(row["holiday_rates_json"]),
            weekend_rates=WeekendRates.model_validate_json(row["weekend_rates_json"]),
            unavailable_dates=json.loads(row["unavailable_dates_json"]),
            is_active=bool(row["is_active"]),
            updated_at=row["updated_at"],
        )

    def _write(self, conn: sqlite3.Connection, value: AvailabilitySettings, *, replace: bool) -> AvailabilitySettings:
        updated_at = datetime.now(timezone.utc).isoformat()
        verb = "INSERT OR REPLACE" if replace else "INSERT OR IGNORE"
        conn.execute(
            f"""
            {verb} INTO availability_settings (
                sitter_id, weekly_schedule_json, max_daily_bookings, advance_notice_hours, travel_distance,
                holiday_rates_json, weekend_rates_json, unavailable_dates_json, is_active, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                value.sitter_id,
                value.weekly_schedule.model_dump_json(),
                value.max_daily_bookings,
                value.advance_notice_hours,
                value.travel_distance,
                value.holiday_rates.model_dump_json(),
                value.weekend_rates.model_dump_json(),
                json.dumps(value.unavailable_dates),
                int(value.is_active),
                updated_at,
            ),
        )
        return value.model_copy(update={"updated_at": updated_at})

    def _normalize_dates(self, values: List[str], *, field: str) -> List[str]:
        return sorted({parse_iso_date(value, field=field).isoformat() for value in values})

    def get_settings(self, sitter_id: str) -> AvailabilitySettings:
        with self._lock:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT * FROM availability_settings WHERE sitter_id = ?",
                    (sitter_id,),
                ).fetchone()
                if row:
                    return self._row_to_settings(row)
                created = self._write(conn, self._default_settings(sitter_id), replace=False)
                conn.commit()
        logger.info("Created default availability settings for sitter %s", sitter_id)
        return created

    def update_settings(self, sitter_id: str, update: AvailabilitySettingsUpdate) -> AvailabilitySettings:
        """Merge ``update`` onto the current (or default) settings and upsert."""
        unavailable_dates = None
        if update.unavailable_dates is not None:
            unavailable_dates = self._normalize_dates(update.unavailable_dates, field="unavailable_dates")
        holiday_rates = update.holiday_rates
        if holiday_rates is not None:
            holiday_rates = holiday_rates.model_copy(
                update={"holidays": self._normalize_dates(holiday_rates.holidays, field="holidays")}
            )

        with self._lock:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT * FROM availability_settings WHERE sitter_id = ?",
                    (sitter_id,),
                ).fetchone()
                current = self._row_to_settings(row) if row else self._default_settings(sitter_id)

                changes = update.model_dump(
                    exclude_unset=True,
                    exclude_none=True,
                    exclude={"weekly_schedule", "unavailable_dates", "holiday_rates"},
                )
                if update.weekly_schedule is not None:
                    changes["weekly_schedule"] = current.weekly_schedule.with_days(
                        {parse_weekday(name): entry for name, entry in update.weekly_schedule.items()}
                    )
                if unavailable_dates is not None:
                    changes["unavailable_dates"] = unavailable_dates
                if holiday_rates is not None:
                    changes["holiday_rates"] = holiday_rates

                merged = AvailabilitySettings.model_validate({**current.model_dump(), **changes})
                stored = self._write(conn, merged, replace=True)
                conn.commit()
        return stored


settings_store = SettingsStore(db_path=app_settings.db_path, defaults=app_settings.settings_defaults)
