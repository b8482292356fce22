"""Input adapters: upstream stats client, round classification, aggregation and seed files."""

from .aggregate import aggregate
from .client import StatsClient, StatsClientError
from .players import load_players_csv, load_teams_csv
from .rounds import RoundClassificationError, RoundClassifier, classify

__all__ = [
    "RoundClassificationError",
    "RoundClassifier",
    "StatsClient",
    "StatsClientError",
    "aggregate",
    "classify",
    "load_players_csv",
    "load_teams_csv",
]
