"""Fold a player's game log into per-round cumulative totals."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable

from puckpool.config import get_rules
from puckpool.models import GameResult, StatLine

from .rounds import classify


@dataclass
class _RoundTotals:
    goals: int = 0
    assists: int = 0
    wins: int = 0
    shutouts: int = 0
    games_played: int = 0

    def freeze(self) -> StatLine:
        return StatLine(
            goals=self.goals,
            assists=self.assists,
            wins=self.wins,
            shutouts=self.shutouts,
            games_played=self.games_played,
        )


def _goaltender_shutouts(game: GameResult) -> int:
    # An explicit count wins; otherwise a clean win is worth one shutout.
    if game.shutouts:
        return game.shutouts
    if game.is_win and game.goals_against == 0:
        return 1
    return 0


def aggregate(
    role: str,
    games: Iterable[GameResult],
    *,
    classifier: Callable[[object], int] = classify,
) -> Dict[int, StatLine]:
    """Return ``{round: StatLine}`` for every scoring round.

    Always recomputed from the complete log, so the result for an unchanged log
    is identical no matter how many times it runs.
    """

    rounds = get_rules().scoring_rounds
    totals = {round_number: _RoundTotals() for round_number in rounds}
    is_goaltender = role == "goaltender"

    for game in games:
        round_number = classifier(game.game_id)
        bucket = totals.get(round_number)
        if bucket is None:
            continue
        if is_goaltender:
            if game.is_win:
                bucket.wins += 1
            bucket.shutouts += _goaltender_shutouts(game)
        else:
            bucket.goals += game.goals
            bucket.assists += game.assists
        bucket.games_played += 1

    return {round_number: bucket.freeze() for round_number, bucket in totals.items()}
