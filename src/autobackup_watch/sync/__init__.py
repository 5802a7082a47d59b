"""Sync engine for change detection and versioned backups."""

from .backup_manager import BackupManager, CycleReport
from .file_tracker import FileRegistry
from .models import ReconcileResult, ReconcileStatus, TrackedFile, TrackResult
from .state_store import StateStore

__all__ = [
    "BackupManager",
    "CycleReport",
    "FileRegistry",
    "ReconcileResult",
    "ReconcileStatus",
    "StateStore",
    "TrackedFile",
    "TrackResult",
]
