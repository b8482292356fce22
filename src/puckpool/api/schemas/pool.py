from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class PlayerStatsResponse(BaseModel):
    player_id: str
    external_id: int
    name: str
    team: str
    role: str
    cost: int
    conference: str
    is_eliminated: bool
    eliminated_round: Optional[int] = None
    stats: Dict[str, Dict[str, int]]


class LeaderboardRow(BaseModel):
    user_id: str
    username: str
    total_points: int
    r1_points: int = 0
    r2_points: int = 0
    r3_points: int = 0


class LeaderboardResponse(BaseModel):
    standings: List[LeaderboardRow]
    last_update: Optional[datetime] = None
    is_verified: bool = False


class SyncSummaryResponse(BaseModel):
    success: bool
    players_updated: int
    errors: List[str]
    log_id: Optional[int] = None
    eliminated_teams: List[str] = Field(default_factory=list)
    unclassified_games: Dict[str, int] = Field(default_factory=dict)
    elapsed: float = 0.0


class SettingsResponse(BaseModel):
    current_round: int
    lock_dates: Dict[str, datetime]
    last_update: Optional[datetime] = None
    is_verified: bool


class SettingsUpdateRequest(BaseModel):
    current_round: int = Field(..., ge=0, le=3)


class VerifyRequest(BaseModel):
    verified: bool = True


class DeadlineRequest(BaseModel):
    pick_deadline: datetime


class EndDateRequest(BaseModel):
    end_date: datetime


class QualifiedTeamsRequest(BaseModel):
    teams: List[str]
