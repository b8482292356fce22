import httpx
import pytest

from puckpool.config_loader import SyncSettings
from puckpool.ingest import StatsClient
from puckpool.sync import RateLimitedScheduler, SyncInProgress, SyncService

from .sample_pool import NOW, PLAYERS


SETTINGS = SyncSettings(api_base="https://stats.test/v1", request_interval=0.0)

BRACKET = {
    "series": [
        {
            "playoffRound": 1,
            "topSeedTeam": {"id": 21, "abbrev": "COL"},
            "bottomSeedTeam": {"id": 16, "abbrev": "CHI"},
            "winningTeamId": 21,
            "losingTeamId": 16,
        }
    ]
}


class Upstream:
    """Serves canned game logs keyed by external id; unknown ids 404."""

    def __init__(self, logs=None, *, failing=(), bracket=BRACKET, bracket_status=200):
        self.logs = dict(logs or {})
        self.failing = set(failing)
        self.bracket = bracket
        self.bracket_status = bracket_status
        self.calls: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append(path)
        if "/playoff-bracket/" in path:
            if self.bracket_status != 200:
                return httpx.Response(self.bracket_status)
            return httpx.Response(200, json=self.bracket)
        external_id = int(path.split("/")[3])
        if external_id in self.failing:
            return httpx.Response(500)
        if external_id not in self.logs:
            return httpx.Response(404)
        return httpx.Response(200, json={"gameLog": self.logs[external_id]})


def _service(store, upstream: Upstream, **kwargs) -> SyncService:
    client = StatsClient(SETTINGS, transport=httpx.MockTransport(upstream))
    return SyncService(
        store,
        client,
        scheduler=RateLimitedScheduler(0.0),
        clock=lambda: NOW,
        **kwargs,
    )


def _stat_rows(store) -> dict:
    return {
        key: snapshot.model_dump(exclude={"updated_at"})
        for key, snapshot in store.all_snapshots().items()
    }


def test_sync_writes_per_round_snapshots(pool):
    upstream = Upstream(
        {
            8470001: [{"gameId": 2025031101, "goals": 1, "assists": 1}],
            8470006: [
                {"gameId": 2025031101, "decision": "W", "goalsAgainst": 0},
                {"gameId": 2025032101, "decision": "L", "goalsAgainst": 3},
            ],
        }
    )
    result = _service(pool, upstream).run_sync()

    assert result.success
    assert result.errors == []
    assert result.players_updated == len(PLAYERS)

    forward = pool.get_snapshots("wf1")
    assert forward[1].goals == 1
    assert forward[1].assists == 1
    assert forward[1].games_played == 1
    assert (forward[2].goals, forward[2].assists, forward[2].games_played) == (0, 0, 0)

    goalie = pool.get_snapshots("wg1")
    assert (goalie[1].wins, goalie[1].shutouts) == (1, 1)
    assert (goalie[2].wins, goalie[2].shutouts, goalie[2].games_played) == (0, 0, 1)

    # Players without games still get zeroed rows for every round.
    assert set(pool.get_snapshots("xf1")) == {1, 2, 3}


def test_sync_twice_with_same_upstream_is_idempotent(pool):
    upstream = Upstream({8470001: [{"gameId": 2025031101, "goals": 2, "assists": 0}]})
    service = _service(pool, upstream)

    service.run_sync()
    first = _stat_rows(pool)
    service.run_sync()
    assert _stat_rows(pool) == first


def test_sync_overwrites_previous_totals(pool):
    upstream = Upstream({8470001: [{"gameId": 2025031101, "goals": 1}]})
    service = _service(pool, upstream)
    service.run_sync()

    upstream.logs[8470001] = [
        {"gameId": 2025031101, "goals": 1},
        {"gameId": 2025031102, "goals": 2},
    ]
    service.run_sync()
    assert pool.get_snapshots("wf1")[1].goals == 3


def test_player_failure_does_not_abort_run(pool):
    upstream = Upstream({8470001: [{"gameId": 2025031101, "goals": 1}]}, failing={8470002})
    result = _service(pool, upstream).run_sync()

    assert result.success
    assert result.players_updated == len(PLAYERS) - 1
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Player 8470002:")
    assert pool.get_snapshots("wf1")[1].goals == 1
    assert pool.get_snapshots("wf2") == {}

    log = pool.get_update_log(result.log_id)
    assert log.status == "completed"
    assert log.players_updated == len(PLAYERS) - 1
    assert log.errors == result.errors
    assert log.completed_at is not None


def test_bracket_marks_losers_eliminated(pool):
    result = _service(pool, Upstream()).run_sync()

    assert result.eliminated_teams == ["CHI"]
    chicago = pool.get_team("CHI")
    assert chicago.eliminated
    assert chicago.eliminated_round == 1
    assert not pool.get_team("COL").eliminated


def test_bracket_failure_is_soft(pool):
    result = _service(pool, Upstream(bracket_status=502)).run_sync()

    assert result.success
    assert result.eliminated_teams == []
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Bracket:")
    assert pool.get_update_log(result.log_id).status == "completed"


def test_sync_updates_timestamp_and_resets_verification(pool):
    pool.settings.set_stats_verified(True)
    _service(pool, Upstream()).run_sync()

    assert pool.settings.stats_last_updated == NOW
    assert pool.settings.stats_verified is False


def test_fatal_error_marks_log_failed(pool, monkeypatch):
    def broken(**kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(pool, "list_players", broken)
    result = _service(pool, Upstream()).run_sync()

    assert not result.success
    assert result.players_updated == 0
    assert result.errors == ["Fatal error: database unavailable"]
    log = pool.get_update_log(result.log_id)
    assert log.status == "failed"
    assert pool.settings.stats_last_updated is None


def test_concurrent_run_is_rejected(pool):
    service = _service(pool, Upstream())
    assert not service.running
    service._run_lock.acquire()
    try:
        assert service.running
        with pytest.raises(SyncInProgress):
            service.run_sync()
    finally:
        service._run_lock.release()
    assert service.run_sync().success


def test_unknown_round_codes_are_reported(pool):
    upstream = Upstream({8470001: [{"gameId": 2025039901, "goals": 1}]})
    result = _service(pool, upstream).run_sync()

    assert result.unclassified_games == {"2025039901": 1}
    assert pool.get_snapshots("wf1")[1].goals == 1


def test_strict_rounds_turn_unknown_codes_into_player_errors(pool):
    upstream = Upstream({8470001: [{"gameId": 2025039901, "goals": 1}]})
    settings = SyncSettings(api_base=SETTINGS.api_base, request_interval=0.0, strict_rounds=True)
    result = _service(pool, upstream, settings=settings).run_sync()

    assert result.success
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Player 8470001:")
    assert pool.get_snapshots("wf1") == {}


def test_update_logs_are_listed_newest_first(pool):
    service = _service(pool, Upstream())
    first = service.run_sync()
    second = service.run_sync()
    logs = pool.list_update_logs()
    assert [entry.log_id for entry in logs[:2]] == [second.log_id, first.log_id]


def test_failure_while_finalizing_closes_log_as_failed(pool, monkeypatch):
    def locked(when):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(pool.settings, "mark_stats_updated", locked)
    service = _service(pool, Upstream({8470001: [{"gameId": 2025031101, "goals": 1}]}))
    result = service.run_sync()

    assert not result.success
    assert result.players_updated == len(PLAYERS)
    assert result.errors == ["Fatal error: database is locked"]
    assert result.eliminated_teams == ["CHI"]
    log = pool.get_update_log(result.log_id)
    assert log.status == "failed"
    assert log.errors == result.errors
    assert log.completed_at is not None
    assert not service.running


def test_malformed_game_log_keeps_previous_totals(pool):
    upstream = Upstream({8470001: [{"gameId": 2025031101, "goals": 4}]})
    service = _service(pool, upstream)
    service.run_sync()

    upstream.logs[8470001] = None
    result = service.run_sync()

    assert result.success
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Player 8470001:")
    assert pool.get_snapshots("wf1")[1].goals == 4
