"""Budget and composition checks for roster saves and submissions."""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Sequence

from puckpool.config import PoolRules, get_rules
from puckpool.models import CONFERENCES, Player, Roster, RosterSelection, RoundWindow, Team


INVALID_ROUND = "invalid_round"
DEADLINE_NOT_SET = "deadline_not_set"
ROUND_LOCKED = "round_locked"
ALREADY_SUBMITTED = "already_submitted"
UNKNOWN_PLAYER = "unknown_player"
DUPLICATE_PLAYER = "duplicate_player"
OVER_SALARY_CAP = "over_salary_cap"
TEAM_NOT_QUALIFIED = "team_not_qualified"
INVALID_STAR = "invalid_star"
NO_ROSTER = "no_roster"
ROSTER_INCOMPLETE = "roster_incomplete"


class RosterRejection(ValueError):
    """A roster write refused for a specific, user-facing reason."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


def check_round_open(
    round_number: int,
    window: Optional[RoundWindow],
    *,
    now: datetime,
    rules: PoolRules | None = None,
) -> None:
    rules = rules or get_rules()
    if round_number not in rules.scoring_rounds:
        raise RosterRejection(INVALID_ROUND, "Invalid round")
    if window is None or window.pick_deadline is None:
        raise RosterRejection(DEADLINE_NOT_SET, "Round deadline not set")
    if window.is_locked(now):
        raise RosterRejection(ROUND_LOCKED, "Round is locked")


def roster_cost(player_ids: Sequence[str], players: Mapping[str, Player]) -> int:
    return sum(players[player_id].cost for player_id in player_ids)


def validate_save(
    round_number: int,
    window: Optional[RoundWindow],
    roster: Optional[Roster],
    player_ids: Sequence[str],
    stars: Mapping[str, Optional[str]],
    players: Mapping[str, Player],
    qualified_teams: set[str],
    *,
    now: datetime,
    rules: PoolRules | None = None,
) -> list[RosterSelection]:
    """Return the selection set that should replace the roster's current one.

    Raises :class:`RosterRejection` on the first failed check, in priority order:
    round, deadline, lock, submitted, unknown/duplicate players, salary cap,
    qualification, star designations.
    """

    rules = rules or get_rules()
    check_round_open(round_number, window, now=now, rules=rules)
    if roster is not None and roster.submitted:
        raise RosterRejection(ALREADY_SUBMITTED, "Roster already submitted")

    missing = [player_id for player_id in player_ids if player_id not in players]
    if missing:
        raise RosterRejection(
            UNKNOWN_PLAYER,
            "Invalid player selection - one or more players not found",
            {"player_ids": missing},
        )
    duplicates = sorted(player_id for player_id, count in Counter(player_ids).items() if count > 1)
    if duplicates:
        raise RosterRejection(DUPLICATE_PLAYER, "Duplicate player detected", {"player_ids": duplicates})

    total_cost = roster_cost(player_ids, players)
    if total_cost > rules.salary_cap:
        raise RosterRejection(
            OVER_SALARY_CAP,
            "Over salary cap",
            {"total_cost": total_cost, "salary_cap": rules.salary_cap},
        )

    unqualified = sorted({players[player_id].team for player_id in player_ids} - qualified_teams)
    if unqualified:
        raise RosterRejection(
            TEAM_NOT_QUALIFIED,
            f"Team not qualified for round {round_number}",
            {"teams": unqualified},
        )

    star_ids: set[str] = set()
    for role, player_id in stars.items():
        if player_id is None:
            continue
        if role not in rules.star_roles:
            raise RosterRejection(INVALID_STAR, f"Unknown star role '{role}'")
        if player_id not in player_ids:
            raise RosterRejection(INVALID_STAR, f"Star {role} must be one of the selected players")
        if players[player_id].role != role:
            raise RosterRejection(INVALID_STAR, f"Star {role} must play {role}")
        star_ids.add(player_id)

    return [RosterSelection(player_id=player_id, is_star=player_id in star_ids) for player_id in player_ids]


def composition_counts(
    roster: Roster,
    players: Mapping[str, Player],
    teams: Mapping[str, Team],
    *,
    rules: PoolRules | None = None,
) -> Dict[str, Dict[str, int]]:
    rules = rules or get_rules()
    counts = {conference: {role: 0 for role in rules.composition} for conference in CONFERENCES}
    for selection in roster.selections:
        player = players[selection.player_id]
        conference = teams[player.team].conference
        counts[conference][player.role] += 1
    return counts


def validate_submit(
    round_number: int,
    window: Optional[RoundWindow],
    roster: Optional[Roster],
    players: Mapping[str, Player],
    teams: Mapping[str, Team],
    *,
    now: datetime,
    rules: PoolRules | None = None,
) -> Roster:
    """Check a stored roster can be submitted; returns it when it can."""

    rules = rules or get_rules()
    check_round_open(round_number, window, now=now, rules=rules)
    if roster is None:
        raise RosterRejection(NO_ROSTER, "No roster found")
    if roster.submitted:
        raise RosterRejection(ALREADY_SUBMITTED, "Already submitted")

    counts = composition_counts(roster, players, teams, rules=rules)
    star_roles = Counter(
        players[selection.player_id].role for selection in roster.selections if selection.is_star
    )
    star_count = sum(star_roles.values())

    complete = all(counts[conference] == dict(rules.composition) for conference in CONFERENCES)
    stars_ok = star_count == len(rules.star_roles) and all(star_roles[role] == 1 for role in rules.star_roles)
    if not (complete and stars_ok):
        raise RosterRejection(
            ROSTER_INCOMPLETE,
            "Roster incomplete. Need 3F/2D/1G per conference and 3 star players.",
            {"counts": counts, "star_count": star_count},
        )
    return roster
