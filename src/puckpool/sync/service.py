"""Stats synchronization: pull game logs, recompute per-round snapshots, track eliminations."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from puckpool.config_loader import SyncSettings
from puckpool.ingest import RoundClassifier, StatsClient, aggregate
from puckpool.models import Player, StatLine
from puckpool.persistence import PoolStore, utcnow

from .scheduler import RateLimitedScheduler


logger = logging.getLogger("uvicorn.error")
logger.setLevel(logging.INFO)


class SyncInProgress(RuntimeError):
    """Another sync run currently holds the run lock."""


@dataclass
class SyncResult:
    success: bool
    players_updated: int
    errors: List[str] = field(default_factory=list)
    log_id: Optional[int] = None
    eliminated_teams: List[str] = field(default_factory=list)
    unclassified_games: Dict[str, int] = field(default_factory=dict)
    elapsed: float = 0.0

    def as_dict(self) -> dict:
        return {
            "success": self.success,
            "players_updated": self.players_updated,
            "errors": list(self.errors),
            "log_id": self.log_id,
            "eliminated_teams": list(self.eliminated_teams),
            "unclassified_games": dict(self.unclassified_games),
            "elapsed": round(self.elapsed, 3),
        }


class SyncService:
    """Single-flight orchestrator for one full stats sync."""

    def __init__(
        self,
        store: PoolStore,
        client: StatsClient,
        *,
        settings: SyncSettings | None = None,
        scheduler: RateLimitedScheduler | None = None,
        classifier: RoundClassifier | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.client = client
        self.settings = settings or client.settings
        self.scheduler = scheduler or RateLimitedScheduler(
            self.settings.request_interval,
            self.settings.workers,
        )
        self.classifier = classifier or RoundClassifier(
            fallback=self.settings.fallback_round,
            strict=self.settings.strict_rounds,
        )
        self._clock = clock
        self._run_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._run_lock.locked()

    def run_sync(self) -> SyncResult:
        if not self._run_lock.acquire(blocking=False):
            raise SyncInProgress("A stats sync is already running")
        try:
            return self._run()
        finally:
            self._run_lock.release()

    def _fetch_player(self, player: Player) -> Dict[int, StatLine]:
        games = self.client.fetch_game_log(player.external_id)
        return aggregate(player.role, games, classifier=self.classifier)

    def _run(self) -> SyncResult:
        run_start = time.perf_counter()
        log_id = self.store.start_update_log()
        errors: list[str] = []
        players_updated = 0

        try:
            players = self.store.list_players(active_only=True)
        except Exception as exc:
            logger.exception("Stats sync %s failed before processing players", log_id)
            errors.append(f"Fatal error: {exc}")
            self._close_failed(log_id, 0, errors)
            return SyncResult(
                success=False,
                players_updated=0,
                errors=errors,
                log_id=log_id,
                elapsed=time.perf_counter() - run_start,
            )

        logger.info(
            "Stats sync %s – fetching %s players (interval %.2fs, workers %s)",
            log_id,
            len(players),
            self.scheduler.min_interval,
            self.scheduler.max_workers,
        )
        self.classifier.reset()

        try:
            for outcome in self.scheduler.map(self._fetch_player, players):
                player = outcome.item
                if not outcome.ok:
                    errors.append(f"Player {player.external_id}: {outcome.error}")
                    logger.warning("Stats sync %s – player %s failed: %s", log_id, player.external_id, outcome.error)
                    continue
                try:
                    self.store.upsert_stat_snapshots(player.player_id, outcome.result or {})
                except Exception as exc:
                    errors.append(f"Player {player.external_id}: {exc}")
                    logger.warning("Stats sync %s – storing player %s failed: %s", log_id, player.external_id, exc)
                    continue
                players_updated += 1
        except Exception as exc:
            logger.exception("Stats sync %s aborted", log_id)
            errors.append(f"Fatal error: {exc}")
            self._close_failed(log_id, players_updated, errors)
            return SyncResult(
                success=False,
                players_updated=players_updated,
                errors=errors,
                log_id=log_id,
                unclassified_games=self.classifier.unclassified,
                elapsed=time.perf_counter() - run_start,
            )

        eliminated = self.update_eliminations(errors)

        try:
            self.store.settings.mark_stats_updated(self._clock())
            # Fresh numbers stay unverified until an operator confirms them.
            self.store.settings.set_stats_verified(False)
            self.store.complete_update_log(log_id, players_updated=players_updated, errors=errors, status="completed")
        except Exception as exc:
            logger.exception("Stats sync %s failed while finalizing", log_id)
            errors.append(f"Fatal error: {exc}")
            self._close_failed(log_id, players_updated, errors)
            return SyncResult(
                success=False,
                players_updated=players_updated,
                errors=errors,
                log_id=log_id,
                eliminated_teams=eliminated,
                unclassified_games=self.classifier.unclassified,
                elapsed=time.perf_counter() - run_start,
            )

        elapsed = time.perf_counter() - run_start
        logger.info(
            "Stats sync %s completed – %s/%s players updated, %s errors, %s eliminated (%.2fs)",
            log_id,
            players_updated,
            len(players),
            len(errors),
            len(eliminated),
            elapsed,
        )
        return SyncResult(
            success=True,
            players_updated=players_updated,
            errors=errors,
            log_id=log_id,
            eliminated_teams=eliminated,
            unclassified_games=self.classifier.unclassified,
            elapsed=elapsed,
        )

    def _close_failed(self, log_id: int, players_updated: int, errors: List[str]) -> None:
        try:
            self.store.complete_update_log(log_id, players_updated=players_updated, errors=errors, status="failed")
        except Exception:
            logger.exception("Could not mark stats sync %s as failed", log_id)

    def update_eliminations(self, errors: List[str] | None = None) -> List[str]:
        """Mark losers of completed series eliminated; failures never escape."""

        eliminated: list[str] = []
        try:
            for series in self.client.fetch_bracket():
                if self.store.mark_team_eliminated(series.losing_team, series.round_number):
                    eliminated.append(series.losing_team)
                else:
                    logger.info("Bracket loser %s is not a known team; skipping", series.losing_team)
        except Exception as exc:
            logger.warning("Updating eliminated teams failed: %s", exc)
            if errors is not None:
                errors.append(f"Bracket: {exc}")
        return eliminated
