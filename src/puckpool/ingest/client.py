"""HTTP client for the upstream stats provider (game logs and playoff bracket)."""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

import httpx
from pydantic import ValidationError

from puckpool.config_loader import SyncSettings
from puckpool.models import GameResult, SeriesResult


logger = logging.getLogger(__name__)


class StatsClientError(RuntimeError):
    """Upstream call failed for a reason other than "no games yet"."""


def _as_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_game(row: Mapping[str, Any]) -> GameResult:
    game_id = row.get("gameId", row.get("game_id"))
    if game_id is None:
        raise ValueError("game log row has no gameId")
    return GameResult(
        game_id=str(game_id),
        goals=_as_int(row.get("goals")) or 0,
        assists=_as_int(row.get("assists")) or 0,
        decision=row.get("decision") or None,
        shutouts=_as_int(row.get("shutouts")),
        goals_against=_as_int(row.get("goalsAgainst", row.get("goals_against"))),
    )


def _seed(series: Mapping[str, Any], *keys: str) -> Mapping[str, Any]:
    for key in keys:
        value = series.get(key)
        if isinstance(value, Mapping):
            return value
    return {}


def parse_series(series: Mapping[str, Any]) -> Optional[SeriesResult]:
    """Return a completed series, or ``None`` while it is still being played."""

    winning_id = series.get("winningTeamId")
    losing_id = series.get("losingTeamId")
    if not winning_id or not losing_id:
        return None
    round_number = _as_int(series.get("playoffRound", series.get("round")))
    if round_number is None:
        return None

    top = _seed(series, "topSeedTeam", "topSeed")
    bottom = _seed(series, "bottomSeedTeam", "bottomSeed")
    by_id = {seed.get("id"): seed.get("abbrev") for seed in (top, bottom) if seed.get("id") is not None}
    winner = by_id.get(winning_id)
    loser = by_id.get(losing_id)
    if not winner or not loser:
        return None
    return SeriesResult(round_number=round_number, winning_team=str(winner), losing_team=str(loser))


class StatsClient:
    """Thin wrapper over :class:`httpx.Client` for the two upstream endpoints."""

    def __init__(
        self,
        settings: SyncSettings | None = None,
        *,
        client: httpx.Client | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.settings = settings or SyncSettings.from_env()
        self._owns_client = client is None
        self._client = client or httpx.Client(
            base_url=self.settings.api_base,
            timeout=self.settings.timeout,
            transport=transport,
        )

    def __enter__(self) -> "StatsClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _get_json(self, path: str) -> Any:
        try:
            response = self._client.get(path)
        except httpx.HTTPError as exc:
            raise StatsClientError(f"GET {path} failed: {exc}") from exc
        if response.status_code == 404:
            return None
        try:
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise StatsClientError(f"GET {path} returned {exc.response.status_code}") from exc
        except ValueError as exc:
            raise StatsClientError(f"GET {path} returned invalid JSON") from exc

    def fetch_game_log(self, external_id: int | str) -> List[GameResult]:
        """Return the player's playoff games; a 404 means no games yet."""

        path = f"/player/{external_id}/game-log/{self.settings.season}/{self.settings.game_type}"
        payload = self._get_json(path)
        if payload is None:
            logger.debug("No game log for player %s", external_id)
            return []
        rows = payload.get("gameLog") if isinstance(payload, Mapping) else None
        if not isinstance(rows, list):
            # Only a 404 means "no games yet".
            raise StatsClientError(f"game log response for player {external_id} has no gameLog list")
        games: list[GameResult] = []
        for row in rows:
            if not isinstance(row, Mapping):
                continue
            try:
                games.append(parse_game(row))
            except (ValueError, ValidationError) as exc:
                raise StatsClientError(f"malformed game log row for player {external_id}: {exc}") from exc
        return games

    def fetch_bracket(self) -> List[SeriesResult]:
        """Return completed series from the playoff bracket."""

        payload = self._get_json(f"/playoff-bracket/{self.settings.season}")
        if not isinstance(payload, Mapping):
            return []
        series_rows = payload.get("series")
        if not isinstance(series_rows, list):
            return []
        results = []
        for series in series_rows:
            if not isinstance(series, Mapping):
                continue
            parsed = parse_series(series)
            if parsed is not None:
                results.append(parsed)
        return results
