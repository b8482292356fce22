"""Canonical pool records shared across ingestion, sync, roster and scoring layers."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


Role = Literal["forward", "defense", "goaltender"]
Conference = Literal["western", "eastern"]
UpdateStatus = Literal["running", "completed", "failed"]

CONFERENCES: tuple[str, ...] = ("western", "eastern")


class Player(BaseModel):
    """Draftable player; cost and role are fixed for the season."""

    player_id: str = Field(..., min_length=1)
    external_id: int
    name: str
    team: str
    role: Role
    cost: int = Field(..., ge=1, le=5)
    active: bool = True

    model_config = ConfigDict(frozen=True)

    @property
    def is_goaltender(self) -> bool:
        return self.role == "goaltender"


class Team(BaseModel):
    abbrev: str = Field(..., min_length=2, max_length=3)
    name: str
    conference: Conference
    eliminated: bool = False
    eliminated_round: Optional[int] = None

    model_config = ConfigDict(frozen=True)


class RoundWindow(BaseModel):
    """Pick window of one round; a round without a deadline never locks."""

    round_number: int = Field(..., ge=0, le=3)
    name: str
    pick_deadline: Optional[datetime] = None
    end_date: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)

    def is_locked(self, now: datetime) -> bool:
        return self.pick_deadline is not None and now > self.pick_deadline


class TeamQualification(BaseModel):
    round_number: int = Field(..., ge=0, le=3)
    team: str
    qualified: bool = True

    model_config = ConfigDict(frozen=True)


class StatLine(BaseModel):
    """Cumulative totals for one round."""

    goals: int = 0
    assists: int = 0
    wins: int = 0
    shutouts: int = 0
    games_played: int = 0

    model_config = ConfigDict(frozen=True)


class StatSnapshot(StatLine):
    player_id: str
    round_number: int = Field(..., ge=1, le=3)
    updated_at: Optional[datetime] = None


class User(BaseModel):
    user_id: str = Field(..., min_length=1)
    username: str
    verified: bool = False

    model_config = ConfigDict(frozen=True)


class RosterSelection(BaseModel):
    player_id: str
    is_star: bool = False

    model_config = ConfigDict(frozen=True)


class Roster(BaseModel):
    roster_id: str
    user_id: str
    round_number: int = Field(..., ge=1, le=3)
    submitted: bool = False
    submitted_at: Optional[datetime] = None
    selections: List[RosterSelection] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @property
    def star_ids(self) -> set[str]:
        return {selection.player_id for selection in self.selections if selection.is_star}


class Tiebreaker(BaseModel):
    user_id: str
    round_number: int = Field(..., ge=1, le=3)
    question_1: Optional[int] = None
    question_2: Optional[int] = None

    model_config = ConfigDict(frozen=True)


class UpdateLogEntry(BaseModel):
    log_id: int
    started_at: datetime
    completed_at: Optional[datetime] = None
    players_updated: int = 0
    errors: List[str] = Field(default_factory=list)
    status: UpdateStatus = "running"

    model_config = ConfigDict(frozen=True)


class GameResult(BaseModel):
    """One row of an upstream player game log.

    Skaters report goals/assists; goaltenders report a decision, an optional
    shutout count and goals against. Missing numeric fields stay ``None`` so the
    aggregator can tell "absent" from "zero".
    """

    game_id: str
    goals: int = 0
    assists: int = 0
    decision: Optional[str] = None
    shutouts: Optional[int] = None
    goals_against: Optional[int] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_win(self) -> bool:
        return (self.decision or "").upper() == "W"


class SeriesResult(BaseModel):
    round_number: int
    winning_team: str
    losing_team: str

    model_config = ConfigDict(frozen=True)
