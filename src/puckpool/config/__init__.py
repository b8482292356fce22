"""Configuration helpers for pool rules."""

from .rules import ROUND_CODE_RANGES, PoolRules, get_rules

__all__ = [
    "PoolRules",
    "ROUND_CODE_RANGES",
    "get_rules",
]
