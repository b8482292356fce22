"""Scoring engine and leaderboard builder."""

from __future__ import annotations

from typing import List

from puckpool.persistence import PoolStore

from .leaderboard import (
    STAR_MULTIPLIER,
    LeaderboardEntry,
    build_leaderboard,
    roster_points,
    score,
    stats_by_round,
)


def leaderboard(store: PoolStore) -> List[LeaderboardEntry]:
    """Read-only leaderboard over the store's current snapshots and submitted rosters."""

    rosters = store.list_rosters(submitted_only=True)
    players = store.get_players(sel.player_id for roster in rosters for sel in roster.selections)
    return build_leaderboard(
        store.list_users(verified_only=True),
        rosters,
        players,
        store.all_snapshots(),
    )


__all__ = [
    "STAR_MULTIPLIER",
    "LeaderboardEntry",
    "build_leaderboard",
    "leaderboard",
    "roster_points",
    "score",
    "stats_by_round",
]
