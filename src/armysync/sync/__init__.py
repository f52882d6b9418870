"""Synchronization core: service, change detection, scheduling and session wiring."""

from armysync.sync.detector import ChangeDetector
from armysync.sync.manager import SyncManager, SyncStatus
from armysync.sync.scheduler import DebounceScheduler, IntervalScheduler, SchedulerStatus
from armysync.sync.service import SyncService

__all__ = [
    "ChangeDetector",
    "DebounceScheduler",
    "IntervalScheduler",
    "SchedulerStatus",
    "SyncManager",
    "SyncService",
    "SyncStatus",
]
