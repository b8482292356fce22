"""Lightweight REST client for the puckpool API."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

import httpx


def _print(resp: httpx.Response) -> None:
    if resp.status_code >= 400:
        try:
            detail = resp.json().get("detail")
        except ValueError:
            detail = resp.text
        raise SystemExit(f"{resp.request.method} {resp.request.url.path} failed ({resp.status_code}): {detail}")
    print(json.dumps(resp.json(), indent=2))


def main() -> None:
    parser = argparse.ArgumentParser(description="Interact with the puckpool REST API")
    parser.add_argument("base_url", help="Base URL of the API, e.g. http://localhost:8000")
    parser.add_argument("--user", help="User id sent as X-User-Id for roster calls")
    parser.add_argument("--sync", action="store_true", help="Run a stats sync and print the summary")
    parser.add_argument("--background", action="store_true", help="With --sync, return immediately")
    parser.add_argument("--logs", action="store_true", help="List recent sync runs")
    parser.add_argument("--leaderboard", action="store_true", help="Print the leaderboard")
    parser.add_argument("--verify", action="store_true", help="Mark current stats as verified")
    parser.add_argument("--round", type=int, default=1, help="Round for roster calls (default 1)")
    parser.add_argument("--save-roster", type=Path, metavar="JSON", help="Save the roster described in a JSON file")
    parser.add_argument("--submit", action="store_true", help="Submit the user's roster for --round")
    parser.add_argument("--timeout", type=float, default=120.0, help="Request timeout in seconds")
    args = parser.parse_args()

    headers = {"X-User-Id": args.user} if args.user else {}
    if (args.save_roster or args.submit) and not args.user:
        raise SystemExit("--user is required for roster calls")

    with httpx.Client(base_url=args.base_url, timeout=args.timeout, headers=headers) as client:
        if args.sync:
            _print(client.post("/sync", params={"background": str(args.background).lower()}))
        if args.verify:
            _print(client.post("/stats/verify", json={"verified": True}))
        if args.save_roster:
            body = json.loads(args.save_roster.read_text(encoding="utf-8"))
            _print(client.put(f"/rosters/{args.round}", json=body))
        if args.submit:
            _print(client.post(f"/rosters/{args.round}/submit"))
        if args.logs:
            _print(client.get("/sync/logs"))
        if args.leaderboard:
            resp = client.get("/leaderboard")
            resp.raise_for_status()
            board = resp.json()
            status = "verified" if board["is_verified"] else "unverified"
            print(f"Last update: {board['last_update'] or 'never'} ({status})")
            for index, row in enumerate(board["standings"], start=1):
                print(f"{index:>3}. {row['username']:<24} {row['total_points']:>5}")


if __name__ == "__main__":
    main()
