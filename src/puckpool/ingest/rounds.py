"""Map upstream playoff game identifiers onto pool rounds."""

from __future__ import annotations

import logging
import threading
from collections import Counter
from typing import Iterable, Tuple

from puckpool.config import ROUND_CODE_RANGES


logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_ROUND = 1


class RoundClassificationError(ValueError):
    """Raised in strict mode when a game id carries no known round code."""


def round_code(game_id: object) -> int | None:
    """Return the two digits preceding the trailing game number, if any."""

    text = str(game_id).strip()
    if len(text) < 4:
        return None
    code = text[-4:-2]
    if not code.isdigit():
        return None
    return int(code)


def _lookup(code: int | None, ranges: Iterable[Tuple[int, int, int]]) -> int | None:
    if code is None:
        return None
    for low, high, round_number in ranges:
        if low <= code <= high:
            return round_number
    return None


def classify(game_id: object, *, fallback: int = DEFAULT_FALLBACK_ROUND) -> int:
    """Pure classification: known codes map to 1/2/3, anything else to ``fallback``."""

    resolved = _lookup(round_code(game_id), ROUND_CODE_RANGES)
    return fallback if resolved is None else resolved


class RoundClassifier:
    """Classifier that makes the fallback observable.

    Unknown identifiers are logged and counted; with ``strict=True`` they raise
    :class:`RoundClassificationError` instead of silently landing in the
    fallback round.
    """

    def __init__(self, *, fallback: int = DEFAULT_FALLBACK_ROUND, strict: bool = False):
        if fallback not in (1, 2, 3):
            raise ValueError(f"fallback round must be 1, 2 or 3, got {fallback!r}")
        self.fallback = fallback
        self.strict = strict
        self._unclassified: Counter[str] = Counter()
        self._lock = threading.Lock()

    def __call__(self, game_id: object) -> int:
        return self.classify(game_id)

    def classify(self, game_id: object) -> int:
        resolved = _lookup(round_code(game_id), ROUND_CODE_RANGES)
        if resolved is not None:
            return resolved
        if self.strict:
            raise RoundClassificationError(f"game id {game_id!r} has no known round code")
        with self._lock:
            self._unclassified[str(game_id)] += 1
        logger.warning("Unrecognized round code in game id %r; defaulting to round %s", game_id, self.fallback)
        return self.fallback

    @property
    def unclassified(self) -> dict[str, int]:
        with self._lock:
            return dict(self._unclassified)

    def reset(self) -> None:
        with self._lock:
            self._unclassified.clear()
