"""REST API for the playoff pool."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from fastapi import BackgroundTasks, FastAPI, Header, HTTPException, Query
from fastapi.responses import JSONResponse

from puckpool.api.schemas import (
    DeadlineRequest,
    EndDateRequest,
    LeaderboardResponse,
    LeaderboardRow,
    PlayerStatsResponse,
    QualifiedTeamsRequest,
    RosterResponse,
    RosterSaveRequest,
    RosterWriteResponse,
    SettingsResponse,
    SettingsUpdateRequest,
    SyncSummaryResponse,
    VerifyRequest,
)
from puckpool.config_loader import SyncSettings
from puckpool.ingest import StatsClient
from puckpool.models import Player, StatSnapshot, Team
from puckpool.persistence import PoolStore, utcnow
from puckpool.roster import QualificationError, RosterRejection, RosterService, set_qualified_teams
from puckpool.scoring import leaderboard, stats_by_round
from puckpool.sync import SyncInProgress, SyncService


logger = logging.getLogger("uvicorn.error")


def _player_payload(player: Player, team: Team | None, snapshots: Dict[int, StatSnapshot]) -> PlayerStatsResponse:
    return PlayerStatsResponse(
        player_id=player.player_id,
        external_id=player.external_id,
        name=player.name,
        team=player.team,
        role=player.role,
        cost=player.cost,
        conference=team.conference if team else "",
        is_eliminated=team.eliminated if team else False,
        eliminated_round=team.eliminated_round if team else None,
        stats=stats_by_round(player.role, snapshots),
    )


def _rejection(exc: RosterRejection) -> HTTPException:
    return HTTPException(status_code=400, detail=exc.as_dict())


def create_app(
    store: PoolStore | None = None,
    *,
    sync_service: SyncService | None = None,
    settings: SyncSettings | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> FastAPI:
    settings = settings or SyncSettings.from_env()
    store = store or PoolStore(Path(settings.db_path))
    if sync_service is None:
        sync_service = SyncService(store, StatsClient(settings), settings=settings)
    roster_service = RosterService(store, rules=store.rules, clock=clock)

    app = FastAPI(title="puckpool")
    app.state.store = store
    app.state.sync_service = sync_service
    app.state.roster_service = roster_service

    @app.on_event("shutdown")
    def _close_client() -> None:
        sync_service.client.close()

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    # ------------------------------------------------------------------ #
    # Settings
    # ------------------------------------------------------------------ #
    @app.get("/settings", response_model=SettingsResponse)
    def get_settings() -> Dict[str, Any]:
        return store.settings.as_dict()

    @app.put("/settings", response_model=SettingsResponse)
    def update_settings(payload: SettingsUpdateRequest) -> Dict[str, Any]:
        store.settings.set_current_round(payload.current_round)
        return store.settings.as_dict()

    @app.post("/stats/verify", response_model=SettingsResponse)
    def verify_stats(payload: VerifyRequest) -> Dict[str, Any]:
        store.settings.set_stats_verified(payload.verified)
        logger.info("Stats marked %s", "verified" if payload.verified else "unverified")
        return store.settings.as_dict()

    # ------------------------------------------------------------------ #
    # Sync
    # ------------------------------------------------------------------ #
    def _background_sync() -> None:
        try:
            sync_service.run_sync()
        except SyncInProgress:
            logger.info("Background sync skipped; another run is in progress")

    @app.post("/sync", response_model=None)
    def trigger_sync(
        background_tasks: BackgroundTasks,
        background: bool = Query(False),
    ) -> Any:
        if sync_service.running:
            raise HTTPException(status_code=409, detail="A stats sync is already running")
        if background:
            background_tasks.add_task(_background_sync)
            return JSONResponse(status_code=202, content={"status": "started"})
        try:
            result = sync_service.run_sync()
        except SyncInProgress as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return SyncSummaryResponse(**result.as_dict())

    @app.get("/sync/logs")
    def sync_logs(limit: int = Query(20, ge=1, le=200)) -> list[dict]:
        return [entry.model_dump(mode="json") for entry in store.list_update_logs(limit)]

    # ------------------------------------------------------------------ #
    # Players
    # ------------------------------------------------------------------ #
    @app.get("/players", response_model=list[PlayerStatsResponse])
    def list_players(
        conference: Optional[str] = Query(None),
        role: Optional[str] = Query(None),
    ) -> list[PlayerStatsResponse]:
        teams = {team.abbrev: team for team in store.list_teams()}
        snapshots: Dict[str, Dict[int, StatSnapshot]] = {}
        for (player_id, round_number), snapshot in store.all_snapshots().items():
            snapshots.setdefault(player_id, {})[round_number] = snapshot
        return [
            _player_payload(player, teams.get(player.team), snapshots.get(player.player_id, {}))
            for player in store.list_players(conference=conference, role=role)
        ]

    @app.get("/players/{player_id}", response_model=PlayerStatsResponse)
    def get_player(player_id: str) -> PlayerStatsResponse:
        player = store.get_player(player_id)
        if player is None:
            raise HTTPException(status_code=404, detail="Player not found")
        return _player_payload(player, store.get_team(player.team), store.get_snapshots(player_id))

    @app.get("/teams/{abbrev}/players", response_model=list[PlayerStatsResponse])
    def team_players(abbrev: str) -> list[PlayerStatsResponse]:
        team = store.get_team(abbrev)
        if team is None:
            raise HTTPException(status_code=404, detail="Team not found")
        return [
            _player_payload(player, team, store.get_snapshots(player.player_id))
            for player in store.list_players(team=abbrev)
        ]

    # ------------------------------------------------------------------ #
    # Rosters
    # ------------------------------------------------------------------ #
    @app.get("/rosters")
    def my_rosters(x_user_id: str = Header(...)) -> dict:
        if store.get_user(x_user_id) is None:
            raise HTTPException(status_code=404, detail="User not found")
        rosters = roster_service.rosters_for_user(x_user_id)
        return {"rosters": {str(round_number): roster for round_number, roster in rosters.items()}}

    @app.put("/rosters/{round_number}", response_model=RosterWriteResponse)
    def save_roster(
        round_number: int,
        payload: RosterSaveRequest,
        x_user_id: str = Header(...),
    ) -> RosterWriteResponse:
        try:
            roster = roster_service.save(
                x_user_id,
                round_number,
                payload.player_ids,
                payload.stars.model_dump(),
                payload.tiebreakers.model_dump() if payload.tiebreakers else None,
            )
        except RosterRejection as exc:
            raise _rejection(exc) from exc
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc.args[0])) from exc
        message = "Roster saved successfully" if roster.selections else "Roster saved (empty)"
        return RosterWriteResponse(message=message, roster=RosterResponse(**roster_service.organize(roster)))

    @app.post("/rosters/{round_number}/submit", response_model=RosterWriteResponse)
    def submit_roster(round_number: int, x_user_id: str = Header(...)) -> RosterWriteResponse:
        try:
            roster = roster_service.submit(x_user_id, round_number)
        except RosterRejection as exc:
            raise _rejection(exc) from exc
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc.args[0])) from exc
        return RosterWriteResponse(
            message="Roster submitted successfully",
            roster=RosterResponse(**roster_service.organize(roster)),
        )

    @app.get("/users/{user_id}/rosters/{round_number}")
    def user_roster(user_id: str, round_number: int) -> dict:
        if not 0 <= round_number <= 3:
            raise HTTPException(status_code=400, detail="Invalid user ID or round")
        user = store.get_user(user_id)
        if user is None:
            raise HTTPException(status_code=404, detail="User not found")
        user_payload = {"user_id": user.user_id, "username": user.username}
        roster = store.get_roster(user_id, round_number) if round_number >= 1 else None
        if roster is None:
            return {"user": user_payload, "round": round_number, "roster": None, "message": "No roster found for this round"}
        teams = {team.abbrev: team for team in store.list_teams()}
        players = store.get_players(sel.player_id for sel in roster.selections)
        details = []
        for selection in roster.selections:
            player = players.get(selection.player_id)
            if player is None:
                continue
            payload = _player_payload(player, teams.get(player.team), store.get_snapshots(player.player_id))
            details.append({**payload.model_dump(), "is_star": selection.is_star})
        tiebreaker = store.get_tiebreaker(user_id, round_number)
        return {
            "user": user_payload,
            "round": round_number,
            "roster": {**roster_service.organize(roster), "players": details},
            "tiebreakers": {
                "question_1": tiebreaker.question_1 if tiebreaker else None,
                "question_2": tiebreaker.question_2 if tiebreaker else None,
            },
        }

    # ------------------------------------------------------------------ #
    # Leaderboard
    # ------------------------------------------------------------------ #
    @app.get("/leaderboard", response_model=LeaderboardResponse)
    def get_leaderboard() -> LeaderboardResponse:
        rows = [LeaderboardRow(**entry.as_dict()) for entry in leaderboard(store)]
        return LeaderboardResponse(
            standings=rows,
            last_update=store.settings.stats_last_updated,
            is_verified=store.settings.stats_verified,
        )

    # ------------------------------------------------------------------ #
    # Round administration
    # ------------------------------------------------------------------ #
    @app.get("/rounds")
    def list_rounds() -> dict:
        teams = {team.abbrev: team for team in store.list_teams()}
        rounds = []
        for window in store.list_rounds():
            qualified = [entry.team for entry in store.list_qualifications(window.round_number) if entry.qualified]
            rounds.append(
                {
                    **window.model_dump(mode="json"),
                    "qualified_teams": [
                        {"abbrev": abbrev, "name": teams[abbrev].name if abbrev in teams else abbrev}
                        for abbrev in qualified
                    ],
                }
            )
        return {"rounds": rounds}

    @app.put("/rounds/{round_number}/deadline")
    def set_deadline(round_number: int, payload: DeadlineRequest) -> dict:
        if not 0 <= round_number <= 3:
            raise HTTPException(status_code=400, detail="Invalid round number (must be 0-3)")
        window = store.set_pick_deadline(round_number, payload.pick_deadline)
        return {"message": "Pick deadline updated successfully", "round": window.model_dump(mode="json")}

    @app.put("/rounds/{round_number}/end-date")
    def set_end_date(round_number: int, payload: EndDateRequest) -> dict:
        if not 0 <= round_number <= 3:
            raise HTTPException(status_code=400, detail="Invalid round number (must be 0-3)")
        window = store.set_end_date(round_number, payload.end_date)
        return {"message": "End date updated successfully", "round": window.model_dump(mode="json")}

    @app.post("/rounds/{round_number}/qualified-teams")
    def qualify_teams(round_number: int, payload: QualifiedTeamsRequest) -> dict:
        try:
            count = set_qualified_teams(store, round_number, payload.teams, rules=store.rules)
        except QualificationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {
            "message": f"Successfully set {count} qualified teams for round {round_number}",
            "round_number": round_number,
            "count": count,
        }

    return app
