"""Playoff fantasy pool: stats sync, roster validation and scoring."""

__version__ = "0.1.0"
