"""Command-line interface for seeding, syncing and scoring the pool."""

from __future__ import annotations

import argparse
import csv
import json
import logging
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

from puckpool.config_loader import SyncSettings
from puckpool.ingest import StatsClient, load_players_csv, load_teams_csv
from puckpool.models import User
from puckpool.persistence import PoolStore
from puckpool.roster import QualificationError, set_qualified_teams
from puckpool.scoring import leaderboard
from puckpool.sync import SyncInProgress, SyncService


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Playoff pool stats sync and scoring")
    parser.add_argument("--db", type=Path, default=None, help="SQLite database path (default from PUCKPOOL_DB_PATH)")
    parser.add_argument("--profile", type=Path, default=None, help="Load sync settings from a JSON profile")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the database schema")

    seed = sub.add_parser("seed", help="Load teams and players from CSV files")
    seed.add_argument("--teams", type=Path, required=True, help="CSV with abbrev,name,conference")
    seed.add_argument("--players", type=Path, required=True, help="CSV with external_id,name,team,role,cost")

    user = sub.add_parser("add-user", help="Register a pool participant")
    user.add_argument("user_id")
    user.add_argument("username")
    user.add_argument("--unverified", action="store_true", help="Keep the user off the leaderboard")

    sync = sub.add_parser("sync", help="Run one full stats sync and print the summary")
    sync.add_argument("--interval", type=float, default=None, help="Override minimum seconds between requests")
    sync.add_argument("--workers", type=int, default=None, help="Override worker count")

    board = sub.add_parser("leaderboard", help="Print the leaderboard")
    board.add_argument("--output", type=Path, default=None, help="Write the leaderboard to CSV")

    deadline = sub.add_parser("set-deadline", help="Set a round's pick deadline (ISO timestamp)")
    deadline.add_argument("round", type=int)
    deadline.add_argument("deadline", type=datetime.fromisoformat)

    qualify = sub.add_parser("qualify", help="Set the qualified teams of a round")
    qualify.add_argument("round", type=int)
    qualify.add_argument("teams", nargs="+", help="Team abbreviations")

    verify = sub.add_parser("verify", help="Mark the current stats as verified")
    verify.add_argument("--unset", action="store_true", help="Mark stats unverified instead")

    current = sub.add_parser("set-round", help="Set the current active round (0-3)")
    current.add_argument("round", type=int)
    return parser


def _load_settings(args: argparse.Namespace) -> SyncSettings:
    settings = SyncSettings.load(args.profile) if args.profile else SyncSettings.from_env()
    overrides = {}
    if args.db is not None:
        overrides["db_path"] = str(args.db)
    if getattr(args, "interval", None) is not None:
        overrides["request_interval"] = max(0.0, args.interval)
    if getattr(args, "workers", None) is not None:
        overrides["workers"] = max(1, args.workers)
    if overrides:
        settings = replace(settings, **overrides)
    return settings


def _write_leaderboard_csv(path: Path, rows: list[dict]) -> None:
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(["rank", "username", "total_points", "r1_points", "r2_points", "r3_points"])
        for index, row in enumerate(rows, start=1):
            writer.writerow([
                index,
                row["username"],
                row["total_points"],
                row.get("r1_points", 0),
                row.get("r2_points", 0),
                row.get("r3_points", 0),
            ])


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = _load_settings(args)
    store = PoolStore(Path(settings.db_path))

    if args.command == "init-db":
        print(f"Database ready at {store.db_path}")
        return 0

    if args.command == "seed":
        teams = load_teams_csv(args.teams)
        players = load_players_csv(args.players)
        for team in teams:
            store.upsert_team(team)
        for player in players:
            store.upsert_player(player)
        print(f"Seeded {len(teams)} teams and {len(players)} players")
        return 0

    if args.command == "add-user":
        store.upsert_user(User(user_id=args.user_id, username=args.username, verified=not args.unverified))
        print(f"Saved user {args.username}")
        return 0

    if args.command == "sync":
        with StatsClient(settings) as client:
            service = SyncService(store, client, settings=settings)
            try:
                result = service.run_sync()
            except SyncInProgress as exc:
                print(str(exc))
                return 1
        print(json.dumps(result.as_dict(), indent=2))
        return 0 if result.success else 1

    if args.command == "leaderboard":
        rows = [entry.as_dict() for entry in leaderboard(store)]
        if args.output:
            _write_leaderboard_csv(args.output, rows)
            print(f"Wrote {len(rows)} rows to {args.output}")
        else:
            for index, row in enumerate(rows, start=1):
                print(
                    f"{index:>3}. {row['username']:<24} {row['total_points']:>5}  "
                    f"(R1 {row.get('r1_points', 0)} / R2 {row.get('r2_points', 0)} / R3 {row.get('r3_points', 0)})"
                )
        return 0

    if args.command == "set-deadline":
        window = store.set_pick_deadline(args.round, args.deadline)
        print(f"Round {window.round_number} pick deadline set to {window.pick_deadline.isoformat()}")
        return 0

    if args.command == "qualify":
        try:
            count = set_qualified_teams(store, args.round, args.teams, rules=store.rules)
        except QualificationError as exc:
            print(str(exc))
            return 1
        print(f"Set {count} qualified teams for round {args.round}")
        return 0

    if args.command == "verify":
        store.settings.set_stats_verified(not args.unset)
        print("Stats marked " + ("unverified" if args.unset else "verified"))
        return 0

    if args.command == "set-round":
        try:
            store.settings.set_current_round(args.round)
        except ValueError as exc:
            print(str(exc))
            return 1
        print(f"Current round set to {args.round}")
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
