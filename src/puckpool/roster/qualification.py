"""Administrator-curated list of teams eligible in each round."""

from __future__ import annotations

import logging
from typing import Sequence

from puckpool.config import PoolRules, get_rules
from puckpool.persistence import PoolStore


logger = logging.getLogger(__name__)


class QualificationError(ValueError):
    pass


def set_qualified_teams(
    store: PoolStore,
    round_number: int,
    teams: Sequence[str],
    *,
    rules: PoolRules | None = None,
) -> int:
    """Replace a round's qualified teams; the round size is fixed (32/16/8/4)."""

    rules = rules or get_rules()
    try:
        required = rules.required_qualified(round_number)
    except KeyError:
        raise QualificationError("Invalid round number (must be 0-3)") from None

    abbrevs = [team.strip().upper() for team in teams]
    if len(set(abbrevs)) != len(abbrevs):
        raise QualificationError("Duplicate team in qualification list")
    if len(abbrevs) != required:
        raise QualificationError(
            f"Round {round_number} requires exactly {required} teams (you provided {len(abbrevs)})"
        )
    known = {team.abbrev for team in store.list_teams()}
    unknown = sorted(set(abbrevs) - known)
    if unknown:
        raise QualificationError(f"Unknown teams: {', '.join(unknown)}")

    count = store.set_qualified_teams(round_number, abbrevs)
    logger.info("Set %s qualified teams for round %s", count, round_number)
    return count
