"""Persistence layer for teams, players, rounds, rosters, stat snapshots and sync runs."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

from puckpool.config import PoolRules, get_rules
from puckpool.models import (
    Player,
    Roster,
    RosterSelection,
    RoundWindow,
    StatLine,
    StatSnapshot,
    Team,
    TeamQualification,
    Tiebreaker,
    UpdateLogEntry,
    User,
)

from .settings import PoolSettings, SettingsStore


class StoreConflict(RuntimeError):
    """A write lost a race against a state change (e.g. the roster got submitted)."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return as_utc(value).isoformat() if value else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return as_utc(datetime.fromisoformat(value)) if value else None


_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS teams (
        abbrev TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        conference TEXT NOT NULL CHECK (conference IN ('western', 'eastern')),
        is_eliminated INTEGER NOT NULL DEFAULT 0,
        eliminated_round INTEGER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS players (
        id TEXT PRIMARY KEY,
        external_id INTEGER UNIQUE NOT NULL,
        name TEXT NOT NULL,
        team_abbrev TEXT NOT NULL REFERENCES teams(abbrev),
        role TEXT NOT NULL CHECK (role IN ('forward', 'defense', 'goaltender')),
        cost INTEGER NOT NULL CHECK (cost >= 1 AND cost <= 5),
        is_active INTEGER NOT NULL DEFAULT 1,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_players_team ON players(team_abbrev)",
    """
    CREATE TABLE IF NOT EXISTS rounds (
        round_number INTEGER PRIMARY KEY CHECK (round_number >= 0 AND round_number <= 3),
        name TEXT NOT NULL,
        pick_deadline TEXT,
        end_date TEXT,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS team_qualifications (
        round_number INTEGER NOT NULL REFERENCES rounds(round_number),
        team_abbrev TEXT NOT NULL REFERENCES teams(abbrev),
        qualified INTEGER NOT NULL DEFAULT 1,
        PRIMARY KEY (round_number, team_abbrev)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS player_stats (
        player_id TEXT NOT NULL REFERENCES players(id) ON DELETE CASCADE,
        round INTEGER NOT NULL CHECK (round >= 1 AND round <= 3),
        goals INTEGER NOT NULL DEFAULT 0,
        assists INTEGER NOT NULL DEFAULT 0,
        wins INTEGER NOT NULL DEFAULT 0,
        shutouts INTEGER NOT NULL DEFAULT 0,
        games_played INTEGER NOT NULL DEFAULT 0,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (player_id, round)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        username TEXT UNIQUE NOT NULL,
        is_verified INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rosters (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        round INTEGER NOT NULL CHECK (round >= 1 AND round <= 3),
        is_submitted INTEGER NOT NULL DEFAULT 0,
        submitted_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (user_id, round)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS roster_players (
        roster_id TEXT NOT NULL REFERENCES rosters(id) ON DELETE CASCADE,
        player_id TEXT NOT NULL REFERENCES players(id) ON DELETE CASCADE,
        is_star INTEGER NOT NULL DEFAULT 0,
        PRIMARY KEY (roster_id, player_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tiebreakers (
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        round INTEGER NOT NULL CHECK (round >= 1 AND round <= 3),
        question_1 INTEGER,
        question_2 INTEGER,
        PRIMARY KEY (user_id, round)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS stat_update_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        started_at TEXT NOT NULL,
        completed_at TEXT,
        players_updated INTEGER NOT NULL DEFAULT 0,
        errors_json TEXT NOT NULL DEFAULT '[]',
        status TEXT NOT NULL DEFAULT 'running'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS settings (
        key TEXT PRIMARY KEY,
        value_json TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
)


class PoolStore:
    """SQLite-backed store for every pool entity.

    Each public method opens its own connection, so a store can be shared across
    threads; multi-statement writes run inside a single transaction.
    """

    def __init__(self, db_path: Path | str, *, rules: PoolRules | None = None):
        self.rules = rules or get_rules()
        self._use_uri = isinstance(db_path, str) and db_path.startswith("file:")
        self.db_path: Path | str = db_path if self._use_uri else Path(db_path)
        self._ensure_schema()
        self.settings_store = SettingsStore(self._connection)
        self.settings = PoolSettings(self.settings_store, self)

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path, uri=self._use_uri, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        now = utcnow().isoformat()
        with self._connection() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)
            for round_number, name in sorted(self.rules.round_names.items()):
                conn.execute(
                    "INSERT OR IGNORE INTO rounds (round_number, name, updated_at) VALUES (?, ?, ?)",
                    (round_number, name, now),
                )

    # ------------------------------------------------------------------ #
    # Teams
    # ------------------------------------------------------------------ #
    def upsert_team(self, team: Team) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO teams (abbrev, name, conference, is_eliminated, eliminated_round)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (abbrev) DO UPDATE SET name = excluded.name, conference = excluded.conference
                """,
                (team.abbrev, team.name, team.conference, int(team.eliminated), team.eliminated_round),
            )

    def get_team(self, abbrev: str) -> Optional[Team]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM teams WHERE abbrev = ?", (abbrev.upper(),)).fetchone()
        return self._row_to_team(row) if row else None

    def list_teams(self) -> List[Team]:
        with self._connection() as conn:
            rows = conn.execute("SELECT * FROM teams ORDER BY name").fetchall()
        return [self._row_to_team(row) for row in rows]

    def mark_team_eliminated(self, abbrev: str, round_number: int) -> bool:
        with self._connection() as conn:
            cursor = conn.execute(
                "UPDATE teams SET is_eliminated = 1, eliminated_round = ? WHERE abbrev = ?",
                (round_number, abbrev.upper()),
            )
            return cursor.rowcount > 0

    # ------------------------------------------------------------------ #
    # Players
    # ------------------------------------------------------------------ #
    def upsert_player(self, player: Player) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO players (id, external_id, name, team_abbrev, role, cost, is_active, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (id) DO UPDATE SET
                    external_id = excluded.external_id,
                    name = excluded.name,
                    team_abbrev = excluded.team_abbrev,
                    role = excluded.role,
                    cost = excluded.cost,
                    is_active = excluded.is_active,
                    updated_at = excluded.updated_at
                """,
                (
                    player.player_id,
                    player.external_id,
                    player.name,
                    player.team,
                    player.role,
                    player.cost,
                    int(player.active),
                    utcnow().isoformat(),
                ),
            )

    def get_player(self, player_id: str) -> Optional[Player]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM players WHERE id = ?", (player_id,)).fetchone()
        return self._row_to_player(row) if row else None

    def get_players(self, player_ids: Iterable[str]) -> Dict[str, Player]:
        ids = list(dict.fromkeys(player_ids))
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        with self._connection() as conn:
            rows = conn.execute(f"SELECT * FROM players WHERE id IN ({placeholders})", ids).fetchall()
        return {row["id"]: self._row_to_player(row) for row in rows}

    def list_players(
        self,
        *,
        active_only: bool = True,
        conference: str | None = None,
        role: str | None = None,
        team: str | None = None,
    ) -> List[Player]:
        query = "SELECT p.* FROM players p JOIN teams t ON p.team_abbrev = t.abbrev"
        conditions: list[str] = []
        params: list[str | int] = []
        if active_only:
            conditions.append("p.is_active = 1")
        if conference:
            conditions.append("t.conference = ?")
            params.append(conference)
        if role:
            conditions.append("p.role = ?")
            params.append(role)
        if team:
            conditions.append("p.team_abbrev = ?")
            params.append(team.upper())
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY p.cost DESC, p.name ASC"
        with self._connection() as conn:
            rows = conn.execute(query, tuple(params)).fetchall()
        return [self._row_to_player(row) for row in rows]

    # ------------------------------------------------------------------ #
    # Rounds & qualification
    # ------------------------------------------------------------------ #
    def get_round(self, round_number: int) -> Optional[RoundWindow]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM rounds WHERE round_number = ?", (round_number,)).fetchone()
        return self._row_to_round(row) if row else None

    def list_rounds(self) -> List[RoundWindow]:
        with self._connection() as conn:
            rows = conn.execute("SELECT * FROM rounds ORDER BY round_number").fetchall()
        return [self._row_to_round(row) for row in rows]

    def set_pick_deadline(self, round_number: int, deadline: datetime) -> RoundWindow:
        return self._update_round(round_number, "pick_deadline", deadline)

    def set_end_date(self, round_number: int, end_date: datetime) -> RoundWindow:
        return self._update_round(round_number, "end_date", end_date)

    def _update_round(self, round_number: int, column: str, value: datetime) -> RoundWindow:
        with self._connection() as conn:
            cursor = conn.execute(
                f"UPDATE rounds SET {column} = ?, updated_at = ? WHERE round_number = ?",
                (_iso(value), utcnow().isoformat(), round_number),
            )
            if cursor.rowcount == 0:
                raise KeyError(f"Round {round_number} not found")
        updated = self.get_round(round_number)
        if updated is None:  # pragma: no cover
            raise KeyError(f"Round {round_number} not found after update")
        return updated

    def set_qualified_teams(self, round_number: int, abbrevs: Sequence[str]) -> int:
        """Replace the qualified set for a round in one transaction."""

        teams = [abbrev.upper() for abbrev in abbrevs]
        with self._connection() as conn:
            conn.execute("DELETE FROM team_qualifications WHERE round_number = ?", (round_number,))
            conn.executemany(
                "INSERT INTO team_qualifications (round_number, team_abbrev, qualified) VALUES (?, ?, 1)",
                [(round_number, team) for team in teams],
            )
        return len(teams)

    def list_qualifications(self, round_number: int) -> List[TeamQualification]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM team_qualifications WHERE round_number = ? ORDER BY team_abbrev",
                (round_number,),
            ).fetchall()
        return [
            TeamQualification(round_number=row["round_number"], team=row["team_abbrev"], qualified=bool(row["qualified"]))
            for row in rows
        ]

    def qualified_teams(self, round_number: int) -> set[str]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT team_abbrev FROM team_qualifications WHERE round_number = ? AND qualified = 1",
                (round_number,),
            ).fetchall()
        return {row["team_abbrev"] for row in rows}

    # ------------------------------------------------------------------ #
    # Stat snapshots
    # ------------------------------------------------------------------ #
    def upsert_stat_snapshots(self, player_id: str, stats: Mapping[int, StatLine]) -> None:
        """Overwrite every (player, round) snapshot with freshly computed totals."""

        now = utcnow().isoformat()
        with self._connection() as conn:
            conn.executemany(
                """
                INSERT INTO player_stats (player_id, round, goals, assists, wins, shutouts, games_played, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (player_id, round) DO UPDATE SET
                    goals = excluded.goals,
                    assists = excluded.assists,
                    wins = excluded.wins,
                    shutouts = excluded.shutouts,
                    games_played = excluded.games_played,
                    updated_at = excluded.updated_at
                """,
                [
                    (
                        player_id,
                        round_number,
                        line.goals,
                        line.assists,
                        line.wins,
                        line.shutouts,
                        line.games_played,
                        now,
                    )
                    for round_number, line in sorted(stats.items())
                ],
            )

    def get_snapshots(self, player_id: str) -> Dict[int, StatSnapshot]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM player_stats WHERE player_id = ? ORDER BY round", (player_id,)
            ).fetchall()
        return {row["round"]: self._row_to_snapshot(row) for row in rows}

    def all_snapshots(self) -> Dict[Tuple[str, int], StatSnapshot]:
        with self._connection() as conn:
            rows = conn.execute("SELECT * FROM player_stats").fetchall()
        return {(row["player_id"], row["round"]): self._row_to_snapshot(row) for row in rows}

    # ------------------------------------------------------------------ #
    # Users
    # ------------------------------------------------------------------ #
    def upsert_user(self, user: User) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO users (id, username, is_verified, created_at) VALUES (?, ?, ?, ?)
                ON CONFLICT (id) DO UPDATE SET username = excluded.username, is_verified = excluded.is_verified
                """,
                (user.user_id, user.username, int(user.verified), utcnow().isoformat()),
            )

    def get_user(self, user_id: str) -> Optional[User]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_user(row) if row else None

    def list_users(self, *, verified_only: bool = False) -> List[User]:
        query = "SELECT * FROM users"
        if verified_only:
            query += " WHERE is_verified = 1"
        query += " ORDER BY username"
        with self._connection() as conn:
            rows = conn.execute(query).fetchall()
        return [self._row_to_user(row) for row in rows]

    # ------------------------------------------------------------------ #
    # Rosters
    # ------------------------------------------------------------------ #
    def get_roster(self, user_id: str, round_number: int) -> Optional[Roster]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM rosters WHERE user_id = ? AND round = ?", (user_id, round_number)
            ).fetchone()
            if row is None:
                return None
            return self._load_roster(conn, row)

    def list_rosters(self, *, submitted_only: bool = False) -> List[Roster]:
        query = "SELECT * FROM rosters"
        if submitted_only:
            query += " WHERE is_submitted = 1"
        query += " ORDER BY user_id, round"
        with self._connection() as conn:
            rows = conn.execute(query).fetchall()
            return [self._load_roster(conn, row) for row in rows]

    def save_roster(
        self,
        *,
        user_id: str,
        round_number: int,
        selections: Sequence[RosterSelection],
        tiebreaker: Tiebreaker | None = None,
    ) -> Roster:
        """Replace a roster's selections (and tiebreaker) atomically."""

        now = utcnow().isoformat()
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            existing = conn.execute(
                "SELECT id, is_submitted FROM rosters WHERE user_id = ? AND round = ?",
                (user_id, round_number),
            ).fetchone()
            if existing is None:
                roster_id = uuid4().hex
                conn.execute(
                    """
                    INSERT INTO rosters (id, user_id, round, is_submitted, created_at, updated_at)
                    VALUES (?, ?, ?, 0, ?, ?)
                    """,
                    (roster_id, user_id, round_number, now, now),
                )
            else:
                if existing["is_submitted"]:
                    raise StoreConflict(f"Roster for user {user_id} round {round_number} is already submitted")
                roster_id = existing["id"]
                conn.execute("DELETE FROM roster_players WHERE roster_id = ?", (roster_id,))
                conn.execute("UPDATE rosters SET updated_at = ? WHERE id = ?", (now, roster_id))
            conn.executemany(
                "INSERT INTO roster_players (roster_id, player_id, is_star) VALUES (?, ?, ?)",
                [(roster_id, selection.player_id, int(selection.is_star)) for selection in selections],
            )
            if tiebreaker is not None:
                conn.execute(
                    """
                    INSERT INTO tiebreakers (user_id, round, question_1, question_2) VALUES (?, ?, ?, ?)
                    ON CONFLICT (user_id, round) DO UPDATE SET
                        question_1 = excluded.question_1,
                        question_2 = excluded.question_2
                    """,
                    (user_id, round_number, tiebreaker.question_1, tiebreaker.question_2),
                )
            row = conn.execute("SELECT * FROM rosters WHERE id = ?", (roster_id,)).fetchone()
            return self._load_roster(conn, row)

    def submit_roster(self, roster_id: str, *, submitted_at: datetime | None = None) -> Roster:
        stamp = _iso(submitted_at or utcnow())
        with self._connection() as conn:
            cursor = conn.execute(
                "UPDATE rosters SET is_submitted = 1, submitted_at = ?, updated_at = ? WHERE id = ? AND is_submitted = 0",
                (stamp, stamp, roster_id),
            )
            if cursor.rowcount == 0:
                raise StoreConflict(f"Roster {roster_id} is missing or already submitted")
            row = conn.execute("SELECT * FROM rosters WHERE id = ?", (roster_id,)).fetchone()
            return self._load_roster(conn, row)

    def get_tiebreaker(self, user_id: str, round_number: int) -> Optional[Tiebreaker]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM tiebreakers WHERE user_id = ? AND round = ?", (user_id, round_number)
            ).fetchone()
        if row is None:
            return None
        return Tiebreaker(
            user_id=row["user_id"],
            round_number=row["round"],
            question_1=row["question_1"],
            question_2=row["question_2"],
        )

    # ------------------------------------------------------------------ #
    # Sync run log
    # ------------------------------------------------------------------ #
    def start_update_log(self) -> int:
        with self._connection() as conn:
            cursor = conn.execute(
                "INSERT INTO stat_update_log (started_at, status) VALUES (?, 'running')",
                (utcnow().isoformat(),),
            )
            return int(cursor.lastrowid)

    def complete_update_log(
        self,
        log_id: int,
        *,
        players_updated: int,
        errors: Sequence[str],
        status: str = "completed",
    ) -> UpdateLogEntry:
        with self._connection() as conn:
            cursor = conn.execute(
                """
                UPDATE stat_update_log
                SET completed_at = ?, players_updated = ?, errors_json = ?, status = ?
                WHERE id = ?
                """,
                (utcnow().isoformat(), players_updated, json.dumps(list(errors)), status, log_id),
            )
            if cursor.rowcount == 0:
                raise KeyError(f"Update log {log_id} not found")
        entry = self.get_update_log(log_id)
        if entry is None:  # pragma: no cover
            raise KeyError(f"Update log {log_id} not found after update")
        return entry

    def get_update_log(self, log_id: int) -> Optional[UpdateLogEntry]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM stat_update_log WHERE id = ?", (log_id,)).fetchone()
        return self._row_to_log(row) if row else None

    def list_update_logs(self, limit: int = 20) -> List[UpdateLogEntry]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM stat_update_log ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
        return [self._row_to_log(row) for row in rows]

    # ------------------------------------------------------------------ #
    # Row mapping
    # ------------------------------------------------------------------ #
    def _load_roster(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Roster:
        selection_rows = conn.execute(
            "SELECT player_id, is_star FROM roster_players WHERE roster_id = ? ORDER BY rowid",
            (row["id"],),
        ).fetchall()
        return Roster(
            roster_id=row["id"],
            user_id=row["user_id"],
            round_number=row["round"],
            submitted=bool(row["is_submitted"]),
            submitted_at=_parse_ts(row["submitted_at"]),
            selections=[
                RosterSelection(player_id=sel["player_id"], is_star=bool(sel["is_star"]))
                for sel in selection_rows
            ],
        )

    def _row_to_team(self, row: sqlite3.Row) -> Team:
        return Team(
            abbrev=row["abbrev"],
            name=row["name"],
            conference=row["conference"],
            eliminated=bool(row["is_eliminated"]),
            eliminated_round=row["eliminated_round"],
        )

    def _row_to_player(self, row: sqlite3.Row) -> Player:
        return Player(
            player_id=row["id"],
            external_id=row["external_id"],
            name=row["name"],
            team=row["team_abbrev"],
            role=row["role"],
            cost=row["cost"],
            active=bool(row["is_active"]),
        )

    def _row_to_round(self, row: sqlite3.Row) -> RoundWindow:
        return RoundWindow(
            round_number=row["round_number"],
            name=row["name"],
            pick_deadline=_parse_ts(row["pick_deadline"]),
            end_date=_parse_ts(row["end_date"]),
        )

    def _row_to_snapshot(self, row: sqlite3.Row) -> StatSnapshot:
        return StatSnapshot(
            player_id=row["player_id"],
            round_number=row["round"],
            goals=row["goals"],
            assists=row["assists"],
            wins=row["wins"],
            shutouts=row["shutouts"],
            games_played=row["games_played"],
            updated_at=_parse_ts(row["updated_at"]),
        )

    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(user_id=row["id"], username=row["username"], verified=bool(row["is_verified"]))

    def _row_to_log(self, row: sqlite3.Row) -> UpdateLogEntry:
        return UpdateLogEntry(
            log_id=row["id"],
            started_at=_parse_ts(row["started_at"]),
            completed_at=_parse_ts(row["completed_at"]),
            players_updated=row["players_updated"],
            errors=json.loads(row["errors_json"] or "[]"),
            status=row["status"],
        )


__all__ = [
    "PoolSettings",
    "PoolStore",
    "SettingsStore",
    "StoreConflict",
    "as_utc",
    "utcnow",
]
