import csv
import json

import httpx

from puckpool import cli
from puckpool.ingest import StatsClient
from puckpool.persistence import PoolStore


def _write_seed_files(tmp_path):
    teams = tmp_path / "teams.csv"
    teams.write_text("abbrev,name,conference\nEDM,Edmonton Oilers,W\nNYR,New York Rangers,E\n", encoding="utf-8")
    players = tmp_path / "players.csv"
    players.write_text(
        "external_id,name,team,role,cost\n8478402,Connor McDavid,EDM,C,5\n8478048,Igor Shesterkin,NYR,G,3\n",
        encoding="utf-8",
    )
    return teams, players


def test_seed_and_admin_commands(tmp_path, capsys):
    db = tmp_path / "pool.sqlite"
    teams, players = _write_seed_files(tmp_path)

    assert cli.main(["--db", str(db), "init-db"]) == 0
    assert cli.main(["--db", str(db), "seed", "--teams", str(teams), "--players", str(players)]) == 0
    assert "Seeded 2 teams and 2 players" in capsys.readouterr().out

    assert cli.main(["--db", str(db), "add-user", "u1", "alice"]) == 0
    assert cli.main(["--db", str(db), "set-deadline", "1", "2026-04-19T16:00:00+00:00"]) == 0
    assert cli.main(["--db", str(db), "set-round", "1"]) == 0
    assert cli.main(["--db", str(db), "set-round", "9"]) == 1
    assert cli.main(["--db", str(db), "qualify", "1", "EDM", "NYR"]) == 1
    assert "requires exactly 16 teams" in capsys.readouterr().out
    assert cli.main(["--db", str(db), "verify"]) == 0

    store = PoolStore(db)
    assert store.get_player("8478402").role == "forward"
    assert store.get_user("u1").verified
    assert store.get_round(1).pick_deadline.isoformat() == "2026-04-19T16:00:00+00:00"
    assert store.settings.current_round == 1
    assert store.settings.stats_verified


def test_sync_command_prints_summary(tmp_path, capsys, monkeypatch):
    db = tmp_path / "pool.sqlite"
    teams, players = _write_seed_files(tmp_path)
    cli.main(["--db", str(db), "seed", "--teams", str(teams), "--players", str(players)])
    capsys.readouterr()

    def upstream(request: httpx.Request) -> httpx.Response:
        if "/game-log/" in request.url.path and "8478402" in request.url.path:
            return httpx.Response(200, json={"gameLog": [{"gameId": 2025031101, "goals": 2, "assists": 1}]})
        return httpx.Response(404)

    def mock_client(settings):
        return StatsClient(settings, transport=httpx.MockTransport(upstream))

    monkeypatch.setattr(cli, "StatsClient", mock_client)
    assert cli.main(["--db", str(db), "sync", "--interval", "0"]) == 0

    summary = json.loads(capsys.readouterr().out)
    assert summary["success"] is True
    assert summary["players_updated"] == 2
    assert PoolStore(db).get_snapshots("8478402")[1].goals == 2


def test_leaderboard_csv(tmp_path, capsys):
    db = tmp_path / "pool.sqlite"
    cli.main(["--db", str(db), "add-user", "u1", "alice"])
    cli.main(["--db", str(db), "add-user", "u2", "bob"])
    cli.main(["--db", str(db), "add-user", "u3", "eve", "--unverified"])
    out = tmp_path / "board.csv"

    assert cli.main(["--db", str(db), "leaderboard", "--output", str(out)]) == 0

    with out.open(newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert [row["username"] for row in rows] == ["alice", "bob"]
    assert rows[0]["total_points"] == "0"
    assert rows[0]["rank"] == "1"
