"""Domain records for the playoff pool."""

from .player import (
    CONFERENCES,
    Conference,
    GameResult,
    Player,
    Role,
    Roster,
    RosterSelection,
    RoundWindow,
    SeriesResult,
    StatLine,
    StatSnapshot,
    Team,
    TeamQualification,
    Tiebreaker,
    UpdateLogEntry,
    User,
)

__all__ = [
    "CONFERENCES",
    "Conference",
    "GameResult",
    "Player",
    "Role",
    "Roster",
    "RosterSelection",
    "RoundWindow",
    "SeriesResult",
    "StatLine",
    "StatSnapshot",
    "Team",
    "TeamQualification",
    "Tiebreaker",
    "UpdateLogEntry",
    "User",
]
