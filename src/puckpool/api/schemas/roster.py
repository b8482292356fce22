from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class StarDesignations(BaseModel):
    forward: Optional[str] = None
    defense: Optional[str] = None
    goaltender: Optional[str] = None


class TiebreakerAnswers(BaseModel):
    q1: Optional[int] = None
    q2: Optional[int] = None


class RosterSaveRequest(BaseModel):
    player_ids: List[str] = Field(default_factory=list)
    stars: StarDesignations = Field(default_factory=StarDesignations)
    tiebreakers: Optional[TiebreakerAnswers] = None


class RosterResponse(BaseModel):
    roster_id: str
    round: int
    is_submitted: bool
    submitted_at: Optional[datetime] = None
    selections: Dict[str, Dict[str, List[str]]]
    stars: Dict[str, Optional[str]]


class RosterWriteResponse(BaseModel):
    message: str
    roster: RosterResponse

