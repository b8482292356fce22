"""Roster validation and persistence rules."""

from .qualification import QualificationError, set_qualified_teams
from .service import RosterService
from .validation import (
    RosterRejection,
    check_round_open,
    composition_counts,
    roster_cost,
    validate_save,
    validate_submit,
)

__all__ = [
    "QualificationError",
    "RosterRejection",
    "RosterService",
    "check_round_open",
    "composition_counts",
    "roster_cost",
    "set_qualified_teams",
    "validate_save",
    "validate_submit",
]
