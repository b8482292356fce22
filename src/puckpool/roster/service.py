"""Apply validated roster saves and submissions through the store."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from puckpool.config import PoolRules, get_rules
from puckpool.models import CONFERENCES, Roster, Tiebreaker
from puckpool.persistence import PoolStore, StoreConflict, utcnow

from .validation import ALREADY_SUBMITTED, UNKNOWN_PLAYER, RosterRejection, validate_save, validate_submit


logger = logging.getLogger(__name__)

_ROLE_GROUPS = {"forward": "forwards", "defense": "defense", "goaltender": "goalies"}


class RosterService:
    def __init__(
        self,
        store: PoolStore,
        *,
        rules: PoolRules | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.rules = rules or get_rules()
        self._clock = clock

    def _require_user(self, user_id: str) -> None:
        if self.store.get_user(user_id) is None:
            raise KeyError(f"User {user_id} not found")

    def save(
        self,
        user_id: str,
        round_number: int,
        player_ids: Sequence[str],
        stars: Mapping[str, Optional[str]] | None = None,
        tiebreaker: Mapping[str, Optional[int]] | None = None,
    ) -> Roster:
        self._require_user(user_id)
        ids = list(player_ids)
        selections = validate_save(
            round_number,
            self.store.get_round(round_number),
            self.store.get_roster(user_id, round_number),
            ids,
            stars or {},
            self.store.get_players(ids),
            self.store.qualified_teams(round_number),
            now=self._clock(),
            rules=self.rules,
        )
        answers = None
        if tiebreaker is not None:
            answers = Tiebreaker(
                user_id=user_id,
                round_number=round_number,
                question_1=tiebreaker.get("q1"),
                question_2=tiebreaker.get("q2"),
            )
        try:
            roster = self.store.save_roster(
                user_id=user_id,
                round_number=round_number,
                selections=selections,
                tiebreaker=answers,
            )
        except StoreConflict as exc:
            raise RosterRejection(ALREADY_SUBMITTED, "Roster already submitted") from exc
        except sqlite3.IntegrityError as exc:
            # A selected player was removed after validation.
            raise RosterRejection(
                UNKNOWN_PLAYER,
                "Invalid player selection - one or more players not found",
                {"player_ids": ids},
            ) from exc
        logger.info("Saved round %s roster for user %s (%s players)", round_number, user_id, len(selections))
        return roster

    def submit(self, user_id: str, round_number: int) -> Roster:
        self._require_user(user_id)
        roster = self.store.get_roster(user_id, round_number)
        players = self.store.get_players(sel.player_id for sel in roster.selections) if roster else {}
        teams = {team.abbrev: team for team in self.store.list_teams()}
        now = self._clock()
        roster = validate_submit(
            round_number,
            self.store.get_round(round_number),
            roster,
            players,
            teams,
            now=now,
            rules=self.rules,
        )
        try:
            submitted = self.store.submit_roster(roster.roster_id, submitted_at=now)
        except StoreConflict as exc:
            raise RosterRejection(ALREADY_SUBMITTED, "Already submitted") from exc
        logger.info("User %s submitted round %s roster", user_id, round_number)
        return submitted

    def organize(self, roster: Roster) -> Dict[str, Any]:
        """Group a roster's player ids by conference and role, plus star ids by role."""

        players = self.store.get_players(sel.player_id for sel in roster.selections)
        teams = {team.abbrev: team for team in self.store.list_teams()}
        selections: Dict[str, Dict[str, list]] = {
            conference: {group: [] for group in _ROLE_GROUPS.values()} for conference in CONFERENCES
        }
        stars: Dict[str, Optional[str]] = {role: None for role in self.rules.star_roles}
        for selection in roster.selections:
            player = players.get(selection.player_id)
            if player is None:
                continue
            conference = teams[player.team].conference
            selections[conference][_ROLE_GROUPS[player.role]].append(player.player_id)
            if selection.is_star:
                stars[player.role] = player.player_id
        return {
            "roster_id": roster.roster_id,
            "round": roster.round_number,
            "is_submitted": roster.submitted,
            "submitted_at": roster.submitted_at.isoformat() if roster.submitted_at else None,
            "selections": selections,
            "stars": stars,
        }

    def rosters_for_user(self, user_id: str) -> Dict[int, Optional[Dict[str, Any]]]:
        result: Dict[int, Optional[Dict[str, Any]]] = {}
        for round_number in self.rules.scoring_rounds:
            roster = self.store.get_roster(user_id, round_number)
            result[round_number] = self.organize(roster) if roster else None
        return result
