"""Helpers to load team and player CSVs used to seed a season."""

from __future__ import annotations

import csv
import logging
import re
from pathlib import Path
from typing import List, Mapping, Optional

from pydantic import ValidationError

from puckpool.models import Player, Team


logger = logging.getLogger(__name__)

ROLE_ALIASES: dict[str, str] = {
    "F": "forward",
    "C": "forward",
    "L": "forward",
    "R": "forward",
    "LW": "forward",
    "RW": "forward",
    "FORWARD": "forward",
    "D": "defense",
    "DEFENSE": "defense",
    "DEFENCE": "defense",
    "DEFENSEMAN": "defense",
    "G": "goaltender",
    "GOALIE": "goaltender",
    "GOALTENDER": "goaltender",
}

CONFERENCE_ALIASES: dict[str, str] = {
    "W": "western",
    "WEST": "western",
    "WESTERN": "western",
    "E": "eastern",
    "EAST": "eastern",
    "EASTERN": "eastern",
}


def normalize_role(raw: str) -> str:
    key = re.sub(r"[^A-Z]", "", raw.upper())
    if key not in ROLE_ALIASES:
        raise ValueError(f"unknown role '{raw}'")
    return ROLE_ALIASES[key]


def normalize_conference(raw: str) -> str:
    key = raw.strip().upper()
    if key not in CONFERENCE_ALIASES:
        raise ValueError(f"unknown conference '{raw}'")
    return CONFERENCE_ALIASES[key]


def _cell(row: Mapping[str, Optional[str]], key: str) -> str:
    value = row.get(key)
    return value.strip() if value else ""


def load_teams_csv(path: Path) -> List[Team]:
    """Read ``abbrev,name,conference`` rows."""

    teams: list[Team] = []
    with path.open(newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        for line_no, row in enumerate(reader, start=2):
            try:
                teams.append(
                    Team(
                        abbrev=_cell(row, "abbrev").upper(),
                        name=_cell(row, "name"),
                        conference=normalize_conference(_cell(row, "conference")),
                    )
                )
            except (ValueError, ValidationError) as exc:
                raise ValueError(f"{path.name}:{line_no}: {exc}") from exc
    return teams


def load_players_csv(path: Path) -> List[Player]:
    """Read ``external_id,name,team,role,cost`` rows (``player_id`` optional)."""

    players: list[Player] = []
    seen: set[int] = set()
    with path.open(newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        for line_no, row in enumerate(reader, start=2):
            try:
                external_id = int(_cell(row, "external_id"))
                player = Player(
                    player_id=_cell(row, "player_id") or str(external_id),
                    external_id=external_id,
                    name=_cell(row, "name"),
                    team=_cell(row, "team").upper(),
                    role=normalize_role(_cell(row, "role")),
                    cost=int(_cell(row, "cost")),
                )
            except (ValueError, ValidationError) as exc:
                raise ValueError(f"{path.name}:{line_no}: {exc}") from exc
            if external_id in seen:
                logger.warning("Skipping duplicate external id %s at %s:%s", external_id, path.name, line_no)
                continue
            seen.add(external_id)
            players.append(player)
    return players
