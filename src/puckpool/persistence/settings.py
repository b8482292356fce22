"""Process-wide key/JSON-value settings (current round, last sync, verification)."""

from __future__ import annotations

import json
import sqlite3
from contextlib import AbstractContextManager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

if TYPE_CHECKING:  # pragma: no cover
    from . import PoolStore


CURRENT_ROUND_KEY = "current_round"
STATS_LAST_UPDATED_KEY = "stats_last_updated"
STATS_VERIFIED_KEY = "stats_verified"

DEFAULT_SETTINGS: Dict[str, Any] = {
    CURRENT_ROUND_KEY: 0,
    STATS_LAST_UPDATED_KEY: None,
    STATS_VERIFIED_KEY: False,
}


class SettingsStore:
    """Raw key → JSON value table."""

    def __init__(self, connect: Callable[[], AbstractContextManager[sqlite3.Connection]]):
        self._connect = connect
        with self._connect() as conn:
            now = datetime.now(timezone.utc).isoformat()
            conn.executemany(
                "INSERT OR IGNORE INTO settings (key, value_json, updated_at) VALUES (?, ?, ?)",
                [(key, json.dumps(value), now) for key, value in DEFAULT_SETTINGS.items()],
            )

    def get(self, key: str, default: Any = None) -> Any:
        with self._connect() as conn:
            row = conn.execute("SELECT value_json FROM settings WHERE key = ?", (key,)).fetchone()
        if row is None:
            return default
        return json.loads(row["value_json"])

    def set(self, key: str, value: Any) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO settings (key, value_json, updated_at) VALUES (?, ?, ?)
                ON CONFLICT (key) DO UPDATE SET value_json = excluded.value_json, updated_at = excluded.updated_at
                """,
                (key, json.dumps(value), datetime.now(timezone.utc).isoformat()),
            )

    def all(self) -> Dict[str, Any]:
        with self._connect() as conn:
            rows = conn.execute("SELECT key, value_json FROM settings ORDER BY key").fetchall()
        return {row["key"]: json.loads(row["value_json"]) for row in rows}


class PoolSettings:
    """Typed accessors over :class:`SettingsStore`, injected where settings are needed."""

    def __init__(self, store: SettingsStore, pool: "PoolStore"):
        self._store = store
        self._pool = pool

    @property
    def current_round(self) -> int:
        value = self._store.get(CURRENT_ROUND_KEY, 0)
        try:
            return int(value)
        except (TypeError, ValueError):
            return 0

    def set_current_round(self, round_number: int) -> None:
        if not 0 <= round_number <= 3:
            raise ValueError("Invalid round number (must be 0-3)")
        self._store.set(CURRENT_ROUND_KEY, round_number)

    def lock_dates(self) -> Dict[int, datetime]:
        return {
            window.round_number: window.pick_deadline
            for window in self._pool.list_rounds()
            if window.pick_deadline is not None
        }

    @property
    def stats_last_updated(self) -> Optional[datetime]:
        value = self._store.get(STATS_LAST_UPDATED_KEY)
        return datetime.fromisoformat(value) if value else None

    def mark_stats_updated(self, when: datetime) -> None:
        self._store.set(STATS_LAST_UPDATED_KEY, when.isoformat())

    @property
    def stats_verified(self) -> bool:
        return bool(self._store.get(STATS_VERIFIED_KEY, False))

    def set_stats_verified(self, verified: bool) -> None:
        self._store.set(STATS_VERIFIED_KEY, bool(verified))

    def as_dict(self) -> Dict[str, Any]:
        last = self.stats_last_updated
        return {
            "current_round": self.current_round,
            "lock_dates": {str(k): v.isoformat() for k, v in sorted(self.lock_dates().items())},
            "last_update": last.isoformat() if last else None,
            "is_verified": self.stats_verified,
        }
