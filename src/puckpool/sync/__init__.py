"""Stats sync orchestration."""

from .scheduler import RateLimitedScheduler, TaskOutcome
from .service import SyncInProgress, SyncResult, SyncService

__all__ = ["RateLimitedScheduler", "SyncInProgress", "SyncResult", "SyncService", "TaskOutcome"]
