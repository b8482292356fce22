"""Pydantic models for API I/O."""

from .pool import (
    DeadlineRequest,
    EndDateRequest,
    LeaderboardResponse,
    LeaderboardRow,
    PlayerStatsResponse,
    QualifiedTeamsRequest,
    SettingsResponse,
    SettingsUpdateRequest,
    SyncSummaryResponse,
    VerifyRequest,
)
from .roster import (
    RosterResponse,
    RosterSaveRequest,
    RosterWriteResponse,
    StarDesignations,
    TiebreakerAnswers,
)

__all__ = [
    "DeadlineRequest",
    "EndDateRequest",
    "LeaderboardResponse",
    "LeaderboardRow",
    "PlayerStatsResponse",
    "QualifiedTeamsRequest",
    "RosterResponse",
    "RosterSaveRequest",
    "RosterWriteResponse",
    "SettingsResponse",
    "SettingsUpdateRequest",
    "StarDesignations",
    "SyncSummaryResponse",
    "TiebreakerAnswers",
    "VerifyRequest",
]
