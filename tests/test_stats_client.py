import httpx
import pytest

from puckpool.config_loader import SyncSettings
from puckpool.ingest import StatsClient, StatsClientError
from puckpool.ingest.client import parse_series


SETTINGS = SyncSettings(api_base="https://stats.test/v1", season="20252026", game_type="3")


def _client(handler) -> StatsClient:
    return StatsClient(SETTINGS, transport=httpx.MockTransport(handler))


def test_fetch_game_log_parses_rows():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(
            200,
            json={
                "gameLog": [
                    {"gameId": 2025031101, "goals": 1, "assists": 2},
                    {"gameId": 2025031102, "decision": "W", "goalsAgainst": 0, "shutouts": 1},
                ]
            },
        )

    with _client(handler) as client:
        games = client.fetch_game_log(8478402)

    assert seen == ["/v1/player/8478402/game-log/20252026/3"]
    assert [game.game_id for game in games] == ["2025031101", "2025031102"]
    assert games[0].goals == 1 and games[0].assists == 2
    assert games[1].is_win
    assert games[1].goals_against == 0
    assert games[1].shutouts == 1
    assert games[0].shutouts is None


def test_fetch_game_log_404_is_empty():
    with _client(lambda request: httpx.Response(404)) as client:
        assert client.fetch_game_log(1) == []


def test_fetch_game_log_without_game_list_raises():
    with _client(lambda request: httpx.Response(200, json={"message": "Service unavailable"})) as client:
        with pytest.raises(StatsClientError, match="no gameLog"):
            client.fetch_game_log(1)


def test_fetch_game_log_server_error_raises():
    with _client(lambda request: httpx.Response(503)) as client:
        with pytest.raises(StatsClientError, match="503"):
            client.fetch_game_log(1)


def test_fetch_game_log_transport_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with _client(handler) as client:
        with pytest.raises(StatsClientError):
            client.fetch_game_log(1)


def test_fetch_game_log_invalid_json_raises():
    with _client(lambda request: httpx.Response(200, text="<html>")) as client:
        with pytest.raises(StatsClientError, match="invalid JSON"):
            client.fetch_game_log(1)


def test_fetch_bracket_returns_completed_series_only():
    payload = {
        "series": [
            {
                "playoffRound": 1,
                "topSeedTeam": {"id": 21, "abbrev": "COL"},
                "bottomSeedTeam": {"id": 16, "abbrev": "CHI"},
                "winningTeamId": 21,
                "losingTeamId": 16,
            },
            {
                "playoffRound": 1,
                "topSeedTeam": {"id": 6, "abbrev": "BOS"},
                "bottomSeedTeam": {"id": 10, "abbrev": "TOR"},
            },
        ]
    }

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/playoff-bracket/20252026"
        return httpx.Response(200, json=payload)

    with _client(handler) as client:
        results = client.fetch_bracket()

    assert len(results) == 1
    assert results[0].winning_team == "COL"
    assert results[0].losing_team == "CHI"
    assert results[0].round_number == 1


def test_parse_series_loser_can_be_top_seed():
    series = {
        "round": 2,
        "topSeed": {"id": 6, "abbrev": "BOS"},
        "bottomSeed": {"id": 10, "abbrev": "TOR"},
        "winningTeamId": 10,
        "losingTeamId": 6,
    }
    result = parse_series(series)
    assert result is not None
    assert result.winning_team == "TOR"
    assert result.losing_team == "BOS"
    assert result.round_number == 2


def test_parse_series_unknown_ids_is_none():
    series = {
        "playoffRound": 1,
        "topSeedTeam": {"id": 6, "abbrev": "BOS"},
        "bottomSeedTeam": {"id": 10, "abbrev": "TOR"},
        "winningTeamId": 99,
        "losingTeamId": 6,
    }
    assert parse_series(series) is None
