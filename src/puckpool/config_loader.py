"""Load and persist sync settings from the environment or a JSON profile."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any, Mapping


logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "t", "yes", "y", "on"}


def _env_float(name: str, default: float, *, clamp_min: float | None = None) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Invalid float for %s: %s; using default %.2f", name, raw, default)
        return default
    if clamp_min is not None:
        value = max(clamp_min, value)
    return value


def _env_int(name: str, default: int, *, min_value: int | None = None, max_value: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid int for %s: %s; using default %d", name, raw, default)
        return default
    if min_value is not None:
        value = max(min_value, value)
    if max_value is not None:
        value = min(max_value, value)
    return value


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


@dataclass(frozen=True)
class SyncSettings:
    season: str = "20252026"
    game_type: str = "3"
    api_base: str = "https://api-web.nhle.com/v1"
    timeout: float = 10.0
    request_interval: float = 0.1
    workers: int = 1
    fallback_round: int = 1
    strict_rounds: bool = False
    db_path: str = "puckpool.sqlite"

    @classmethod
    def from_env(cls) -> "SyncSettings":
        defaults = cls()
        return cls(
            season=os.getenv("PUCKPOOL_SEASON", defaults.season),
            game_type=os.getenv("PUCKPOOL_GAME_TYPE", defaults.game_type),
            api_base=os.getenv("PUCKPOOL_API_BASE", defaults.api_base).rstrip("/"),
            timeout=_env_float("PUCKPOOL_TIMEOUT", defaults.timeout, clamp_min=0.5),
            request_interval=_env_float("PUCKPOOL_REQUEST_INTERVAL", defaults.request_interval, clamp_min=0.0),
            workers=_env_int("PUCKPOOL_WORKERS", defaults.workers, min_value=1, max_value=8),
            fallback_round=_env_int("PUCKPOOL_FALLBACK_ROUND", defaults.fallback_round, min_value=1, max_value=3),
            strict_rounds=_env_flag("PUCKPOOL_STRICT_ROUNDS", defaults.strict_rounds),
            db_path=os.getenv("PUCKPOOL_DB_PATH", defaults.db_path),
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SyncSettings":
        known = {key: value for key, value in data.items() if key in cls.__dataclass_fields__}
        unknown = sorted(set(data) - set(known))
        if unknown:
            logger.warning("Ignoring unknown sync settings: %s", ", ".join(unknown))
        return replace(cls(), **known)

    @classmethod
    def load(cls, path: Path) -> "SyncSettings":
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"settings profile {path} must contain a JSON object")
        return cls.from_mapping(data)

    def save(self, path: Path) -> None:
        path.write_text(json.dumps(asdict(self), indent=2), encoding="utf-8")
