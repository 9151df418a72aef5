"""Sync engine, n-way service and periodic scheduler."""

from .engine import FailurePolicy, HandledSet, PairwiseSyncEngine, SyncReport
from .scheduler import SyncScheduler, TickOutcome
from .service import PhotoSyncService

__all__ = [
    "FailurePolicy",
    "HandledSet",
    "PairwiseSyncEngine",
    "PhotoSyncService",
    "SyncReport",
    "SyncScheduler",
    "TickOutcome",
]
