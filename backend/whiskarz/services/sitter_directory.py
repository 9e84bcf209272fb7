import json
import re
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Iterable, List, Set

from whiskarz.config import settings as app_settings
from whiskarz.models import Sitter
from whiskarz.services.errors import SchedulingNotFoundError

_PLURAL_SUFFIX = re.compile(r"\(s\)$")


def normalize_pet_type(label: str) -> str:
    """"Dog(s)", "dog" and "Dog" all compare equal."""
    return _PLURAL_SUFFIX.sub("", label.strip()).strip().lower()


def normalize_pet_types(labels: Iterable[str]) -> Set[str]:
    return {normalize_pet_type(label) for label in labels if label.strip()}


def services_pet_types(sitter: Sitter, requested: Iterable[str]) -> bool:
    """An empty serviced set means the sitter takes any pet."""
    serviced = normalize_pet_types(sitter.pet_types_serviced)
    if not serviced:
        return True
    return normalize_pet_types(requested) <= serviced


@dataclass
class SitterDirectory:
    db_path: str

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
                    CREATE TABLE IF NOT EXISTS sitters (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        email TEXT NOT NULL DEFAULT '',
                        status TEXT NOT NULL DEFAULT 'active',
                        pet_types_json TEXT NOT NULL DEFAULT '[]'
                    )
                    """
                )
                conn.commit()

    def _row_to_sitter(self, row: sqlite3.Row) -> Sitter:
        return Sitter(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            status=row["status"],
            pet_types_serviced=json.loads(row["pet_types_json"]),
        )

    def upsert(self, sitter: Sitter) -> Sitter:
        with self._lock:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO sitters (id, name, email, status, pet_types_json)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (sitter.id, sitter.name, sitter.email, sitter.status, json.dumps(sitter.pet_types_serviced)),
                )
                conn.commit()
        return sitter

    def get(self, sitter_id: str) -> Sitter:
        with self._lock:
            with self._connect() as conn:
                row = conn.execute("SELECT * FROM sitters WHERE id = ?", (sitter_id,)).fetchone()
        if not row:
            raise SchedulingNotFoundError("Sitter not found")
        return self._row_to_sitter(row)

    def list_active(self) -> List[Sitter]:
        with self._lock:
            with self._connect() as conn:
                rows = conn.execute("SELECT * FROM sitters WHERE status = 'active' ORDER BY name, id").fetchall()
        return [self._row_to_sitter(row) for row in rows]


sitter_directory = SitterDirectory(db_path=app_settings.db_path)
