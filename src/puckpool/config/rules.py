"""Pool rules: budget, roster composition, qualification sizes and round codes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Tuple


@dataclass(frozen=True)
class PoolRules:
    salary_cap: int
    scoring_rounds: Tuple[int, ...]
    composition: Mapping[str, int]
    star_roles: Tuple[str, ...]
    qualified_team_counts: Mapping[int, int]
    round_names: Mapping[int, str] = field(default_factory=dict)

    @property
    def roster_size(self) -> int:
        """Players per conference times the two conferences."""

        return sum(self.composition.values()) * 2

    def required_qualified(self, round_number: int) -> int:
        if round_number not in self.qualified_team_counts:
            raise KeyError(f"No qualification size configured for round {round_number}")
        return self.qualified_team_counts[round_number]


# Upstream playoff game ids end in <round-code><game-number>; ranges are inclusive.
# Conference finals (3x) and the championship series (4x) score together as round 3.
ROUND_CODE_RANGES: Tuple[Tuple[int, int, int], ...] = (
    (11, 17, 1),
    (21, 27, 2),
    (31, 47, 3),
)


_PLAYOFF_RULES = PoolRules(
    salary_cap=30,
    scoring_rounds=(1, 2, 3),
    composition={"forward": 3, "defense": 2, "goaltender": 1},
    star_roles=("forward", "defense", "goaltender"),
    qualified_team_counts={0: 32, 1: 16, 2: 8, 3: 4},
    round_names={
        0: "Test Round",
        1: "First Round",
        2: "Second Round",
        3: "Conference Finals & Cup Final",
    },
)

_RULES: Dict[str, PoolRules] = {"PLAYOFFS": _PLAYOFF_RULES}


def get_rules(key: str = "PLAYOFFS") -> PoolRules:
    """Fetch a rule set by key, raising KeyError if missing."""

    normalized = key.upper()
    if normalized not in _RULES:
        raise KeyError(f"No pool rules configured for {key!r}")
    return _RULES[normalized]
