"""File tracking for change detection and version state management."""

import logging
import os
import threading
import time
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Union

from ..destinations.local_backup import BackupWriter
from ..exceptions import CorruptStateError, UnreadableFileError
from ..utils.file_utils import FileHelper
from ..utils.hashing import ContentHasher
from .models import (
    UNKNOWN_FINGERPRINT,
    ReconcileResult,
    ReconcileStatus,
    TrackedFile,
    TrackResult,
)
from .state_store import StateStore

logger = logging.getLogger(__name__)


class FileRegistry:
    """Track file versions for content-based change detection.

    Each tracked name maps to its last known fingerprint, the modification
    time observed when that fingerprint was computed, and a version counter
    that starts at 1 and grows by exactly one per confirmed content change.
    Entries are never evicted, even when the file disappears.

    All mutations go through a single lock, so one entry is never updated
    by two callers at once.
    """

    def __init__(self, watch_directory: Union[str, Path],
                 hasher: Optional[ContentHasher] = None,
                 backup_writer: Optional[BackupWriter] = None,
                 state_store: Optional[StateStore] = None):
        """Initialize file registry.

        Args:
            watch_directory: Directory the tracked names live in
            hasher: Content hasher used for fingerprints
            backup_writer: Writer invoked on every confirmed change
            state_store: Durable storage used by load_state/save_state
        """
        self.watch_directory = Path(watch_directory)
        self.hasher = hasher or ContentHasher()
        self.backup_writer = backup_writer
        self.state_store = state_store
        self._files: Dict[str, TrackedFile] = {}
        # Names whose stored mtime is too recent to trust the mtime pre-check
        self._racy: Set[str] = set()
        self._dirty = False
        self._lock = threading.RLock()

    def __contains__(self, name: str) -> bool:
        return name in self._files

    def __len__(self) -> int:
        return len(self._files)

    @property
    def is_dirty(self) -> bool:
        """True if the registry has mutations that haven't been saved."""
        return self._dirty

    def get(self, name: str) -> Optional[TrackedFile]:
        """Get the tracked entry for a name, or None."""
        return self._files.get(name)

    def names(self) -> List[str]:
        """Get all tracked names, sorted."""
        return sorted(self._files)

    def track_if_new(self, name: str, stat_info: Optional[os.stat_result] = None) -> TrackResult:
        """Start tracking a file if it isn't tracked yet.

        The first observation is the baseline: the entry starts at version 1
        and no backup is written.

        Args:
            name: File name inside the watched directory
            stat_info: Stat result taken before hashing (looked up if omitted)

        Returns:
            TrackResult.ADDED or TrackResult.ALREADY_TRACKED

        Raises:
            UnreadableFileError: If the file cannot be stat'ed or read
        """
        with self._lock:
            if name in self._files:
                return TrackResult.ALREADY_TRACKED

            path = self._path(name)
            if stat_info is None:
                try:
                    stat_info = path.stat()
                except OSError as e:
                    raise UnreadableFileError(path, e.strerror or str(e)) from e

            fingerprint = self.hasher.fingerprint(path)

            self._files[name] = TrackedFile(
                name=name,
                content_fingerprint=fingerprint,
                last_observed_mtime=int(stat_info.st_mtime),
                version=1,
            )
            self._dirty = True
            self._note_observation(name, int(stat_info.st_mtime))

        logger.info(f"Now tracking: {name}")
        return TrackResult.ADDED

    def reconcile(self, name: str, current_stat_info: Optional[os.stat_result] = None) -> ReconcileResult:
        """Compare a tracked file against disk and version it if its content changed.

        Files whose modification time hasn't advanced are reported unchanged
        without hashing, unless the stored mtime is still the current second
        or the stored content is unknown. A newer mtime with identical content only refreshes
        the stored mtime. A content change writes a backup for the next
        version before the entry is updated, so a failed backup leaves the
        entry as it was and the change is retried on the next call.

        Args:
            name: Tracked file name
            current_stat_info: Fresh stat result (looked up if omitted)

        Returns:
            ReconcileResult describing the outcome

        Raises:
            KeyError: If the name isn't tracked
            BackupWriteError: If the change was confirmed but the backup failed
        """
        with self._lock:
            entry = self._files.get(name)
            if entry is None:
                raise KeyError(f"Not tracked: {name}")

            path = self._path(name)
            if current_stat_info is None:
                try:
                    current_stat_info = path.stat()
                except OSError as e:
                    error = UnreadableFileError(path, e.strerror or str(e))
                    logger.warning(f"Cannot access {name}: {error}")
                    return ReconcileResult(ReconcileStatus.INACCESSIBLE, entry.version, error=error)

            mtime = int(current_stat_info.st_mtime)
            if not self._needs_hash(entry, mtime):
                return ReconcileResult(ReconcileStatus.UNCHANGED, entry.version)

            try:
                fingerprint = self.hasher.fingerprint(path)
            except UnreadableFileError as e:
                logger.warning(f"Cannot read {name}: {e}")
                return ReconcileResult(ReconcileStatus.INACCESSIBLE, entry.version, error=e)

            observed_mtime = max(mtime, entry.last_observed_mtime)

            if entry.content_fingerprint == UNKNOWN_FINGERPRINT:
                self._files[name] = replace(entry, content_fingerprint=fingerprint,
                                            last_observed_mtime=observed_mtime)
                self._dirty = True
                self._note_observation(name, observed_mtime)
                logger.info(f"Recorded content of {name} at v{entry.version}")
                return ReconcileResult(ReconcileStatus.UNCHANGED, entry.version)

            if fingerprint == entry.content_fingerprint:
                if mtime > entry.last_observed_mtime:
                    self._files[name] = replace(entry, last_observed_mtime=mtime)
                    self._dirty = True
                    logger.debug(f"Touched without content change: {name}")
                self._note_observation(name, observed_mtime)
                return ReconcileResult(ReconcileStatus.UNCHANGED, entry.version)

            if self.backup_writer is None:
                raise RuntimeError("No backup writer configured")

            new_version = entry.version + 1
            base_name, extension = FileHelper.split_name(name)
            artifact = self.backup_writer.write(path, base_name, extension, new_version)

            if artifact.fingerprint != fingerprint:
                logger.warning(f"{name} changed while being backed up; "
                               f"v{new_version} holds the newer content")

            self._files[name] = TrackedFile(
                name=name,
                content_fingerprint=artifact.fingerprint,
                last_observed_mtime=observed_mtime,
                version=new_version,
            )
            self._dirty = True
            self._note_observation(name, observed_mtime)

        logger.info(f"Backed up: {name} -> v{new_version} ({artifact.name})")
        return ReconcileResult(ReconcileStatus.CHANGED, new_version, artifact=artifact)

    def _needs_hash(self, entry: TrackedFile, mtime: int) -> bool:
        """Decide whether the file has to be hashed to know if it changed.

        A newer mtime always needs a hash. An unchanged mtime still does while
        the stored mtime falls in the same second the content was last read,
        since a write later in that second leaves the whole-second mtime as is.
        """
        if entry.content_fingerprint == UNKNOWN_FINGERPRINT:
            return True
        if mtime > entry.last_observed_mtime:
            return True
        return mtime == entry.last_observed_mtime and entry.name in self._racy

    def _note_observation(self, name: str, mtime: int) -> None:
        if mtime >= int(time.time()):
            self._racy.add(name)
        else:
            self._racy.discard(name)

    def snapshot(self) -> List[TrackedFile]:
        """Get a read-only view of all entries, sorted by name."""
        with self._lock:
            return [self._files[name] for name in sorted(self._files)]

    def restore(self, files: Iterable[TrackedFile]) -> None:
        """Replace the registry contents wholesale.

        Args:
            files: Entries to install

        Raises:
            CorruptStateError: On a duplicate name or a non-positive version.
                The registry is left unchanged in that case.
        """
        restored: Dict[str, TrackedFile] = {}
        for entry in files:
            if entry.name in restored:
                raise CorruptStateError(f"Duplicate tracked file: {entry.name}")
            if entry.version < 1:
                raise CorruptStateError(
                    f"Invalid version {entry.version} for tracked file: {entry.name}"
                )
            restored[entry.name] = entry

        with self._lock:
            self._files = restored
            self._dirty = False
            self._racy = set()
            for entry in restored.values():
                self._note_observation(entry.name, entry.last_observed_mtime)

    def load_state(self) -> bool:
        """Restore the registry from the state store.

        Returns:
            True if saved state was found, False if there was none

        Raises:
            CorruptStateError: If the saved state is malformed or inconsistent
        """
        files = self._require_store().load()
        if files is None:
            return False
        self.restore(files)
        return True

    def save_state(self) -> None:
        """Persist the current registry contents to the state store."""
        with self._lock:
            self._require_store().save(self.snapshot())
            self._dirty = False

    def _require_store(self) -> StateStore:
        if self.state_store is None:
            raise RuntimeError("No state store configured")
        return self.state_store

    def _path(self, name: str) -> Path:
        return self.watch_directory / name
