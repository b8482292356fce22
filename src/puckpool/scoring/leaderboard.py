"""Point formula and leaderboard aggregation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from puckpool.config import get_rules
from puckpool.models import Player, Roster, StatLine, User


STAR_MULTIPLIER = 2


def score(role: str, stats: Optional[StatLine], is_star: bool = False) -> int:
    """Skaters: goals + assists. Goaltenders: 2 per win + 1 per shutout. Stars double."""

    if stats is None:
        return 0
    if role == "goaltender":
        base = stats.wins * 2 + stats.shutouts
    else:
        base = stats.goals + stats.assists
    return base * (STAR_MULTIPLIER if is_star else 1)


@dataclass
class LeaderboardEntry:
    user_id: str
    username: str
    total_points: int = 0
    round_points: Dict[int, int] = field(default_factory=dict)

    def as_dict(self) -> dict:
        payload = {
            "user_id": self.user_id,
            "username": self.username,
            "total_points": self.total_points,
        }
        for round_number, points in sorted(self.round_points.items()):
            payload[f"r{round_number}_points"] = points
        return payload


def roster_points(
    roster: Roster,
    players: Mapping[str, Player],
    snapshots: Mapping[Tuple[str, int], StatLine],
) -> int:
    total = 0
    for selection in roster.selections:
        player = players.get(selection.player_id)
        if player is None:
            continue
        stats = snapshots.get((selection.player_id, roster.round_number))
        total += score(player.role, stats, selection.is_star)
    return total


def build_leaderboard(
    users: Iterable[User],
    rosters: Iterable[Roster],
    players: Mapping[str, Player],
    snapshots: Mapping[Tuple[str, int], StatLine],
) -> List[LeaderboardEntry]:
    """Rank verified users by total points from their submitted rosters.

    Unsubmitted rosters score nothing; verified users without any submitted
    roster are listed with zero points. Equal totals keep username order.
    """

    rounds = get_rules().scoring_rounds
    entries: Dict[str, LeaderboardEntry] = {
        user.user_id: LeaderboardEntry(
            user_id=user.user_id,
            username=user.username,
            round_points={round_number: 0 for round_number in rounds},
        )
        for user in users
        if user.verified
    }

    for roster in rosters:
        entry = entries.get(roster.user_id)
        if entry is None or not roster.submitted:
            continue
        points = roster_points(roster, players, snapshots)
        entry.round_points[roster.round_number] = entry.round_points.get(roster.round_number, 0) + points
        entry.total_points += points

    return sorted(entries.values(), key=lambda entry: (-entry.total_points, entry.username.lower()))


def stats_by_round(role: str, snapshots: Mapping[int, StatLine]) -> Dict[str, Dict[str, int]]:
    """Shape per-round stats for display: goals/assists for skaters, wins/shutouts for goaltenders."""

    shaped: Dict[str, Dict[str, int]] = {}
    for round_number in get_rules().scoring_rounds:
        line = snapshots.get(round_number)
        if role == "goaltender":
            shaped[f"r{round_number}"] = {
                "wins": line.wins if line else 0,
                "shutouts": line.shutouts if line else 0,
            }
        else:
            shaped[f"r{round_number}"] = {
                "goals": line.goals if line else 0,
                "assists": line.assists if line else 0,
            }
    return shaped
