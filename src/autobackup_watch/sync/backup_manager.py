"""Main backup manager driving the poll loop."""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..config.settings import CorruptStatePolicy, WatchConfig
from ..destinations.local_backup import BackupWriter
from ..exceptions import (
    BackupWriteError,
    CorruptStateError,
    StateStoreError,
    UnreadableFileError,
)
from ..utils.file_utils import FileHelper
from ..utils.hashing import ContentHasher
from ..utils.logging import TimedOperation
from .file_tracker import FileRegistry
from .models import ReconcileStatus, TrackResult
from .state_store import StateStore

# Module logger
logger = logging.getLogger(__name__)


@dataclass
class CycleReport:
    """What happened during one poll cycle."""
    started: datetime
    added: List[str] = field(default_factory=list)
    changed: Dict[str, int] = field(default_factory=dict)
    unchanged: int = 0
    inaccessible: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    duration: float = 0.0

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


class BackupManager:
    """Polls the watched directory and feeds the file registry.

    Everything happens on the calling thread, one file at a time. ``stop()``
    may be called from a signal handler or another thread; it interrupts the
    wait between cycles but lets the file currently being reconciled finish
    before state is saved.
    """

    def __init__(self, config: WatchConfig,
                 clock: Optional[Callable[[], datetime]] = None):
        """Initialize backup manager.

        Args:
            config: Watch configuration
            clock: Timestamp source for backup names (defaults to local time)
        """
        self.config = config
        self.hasher = ContentHasher(config.chunk_size)
        self.backup_writer = BackupWriter(
            config.backup_directory,
            hasher=self.hasher,
            clock=clock or datetime.now,
        )
        self.state_store = StateStore(config.state_file)
        self.registry = FileRegistry(
            config.watch_directory,
            hasher=self.hasher,
            backup_writer=self.backup_writer,
            state_store=self.state_store,
        )
        self._stop_event = threading.Event()
        self._started = False

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def start(self) -> bool:
        """Validate the watched directory, prepare the backup directory and load state.

        Returns:
            True if previously saved state was restored

        Raises:
            InvalidDirectoryError: If the watched directory is unusable
            CorruptStateError: If saved state is corrupt and the policy is ``abort``
        """
        self.config.validate_directory()
        self.backup_writer.ensure_directory()
        restored = self._load_state()
        self._started = True
        return restored

    def _load_state(self) -> bool:
        try:
            return self.registry.load_state()
        except CorruptStateError as e:
            if self.config.on_corrupt_state == CorruptStatePolicy.ABORT:
                logger.error(f"Saved state is corrupt: {e}")
                raise

            moved_to = self.state_store.quarantine()
            self.registry.restore([])
            logger.warning(f"Saved state is corrupt ({e}); moved it to {moved_to} "
                           f"and started tracking from scratch")
            return False

    def enumerate(self) -> List:
        """List the files in the watched directory eligible for tracking."""
        return FileHelper.list_candidates(self.config.watch_directory,
                                          self.config.reserved_names)

    def run_cycle(self) -> CycleReport:
        """Run one poll cycle: discover new files, reconcile tracked ones, save.

        Returns:
            Report of the cycle
        """
        if not self._started:
            self.start()

        report = CycleReport(started=datetime.now())

        with TimedOperation(logger, "poll cycle", log_level="DEBUG") as timer:
            try:
                candidates = self.enumerate()
            except OSError as e:
                logger.error(f"Cannot scan {self.config.watch_directory}: {e}")
                report.errors.append(f"Scan failed: {e}")
                candidates = []

            current = {}
            for name, stat_info in candidates:
                current[name] = stat_info
                try:
                    if self.registry.track_if_new(name, stat_info) == TrackResult.ADDED:
                        report.added.append(name)
                except UnreadableFileError as e:
                    logger.warning(f"Cannot start tracking {name}: {e}")
                    report.errors.append(f"{name}: {e}")

            for name in self.registry.names():
                if self.stopping:
                    break
                if name in report.added:
                    continue
                self._reconcile(name, current.get(name), report)

            if self.registry.is_dirty:
                self._save_state(report)

        report.duration = timer.duration
        return report

    def _reconcile(self, name: str, stat_info, report: CycleReport) -> None:
        try:
            result = self.registry.reconcile(name, stat_info)
        except BackupWriteError as e:
            logger.error(f"Backup of {name} failed, will retry: {e}")
            report.errors.append(f"{name}: {e}")
            return

        if result.status == ReconcileStatus.CHANGED:
            report.changed[name] = result.version
            # Persist right away so a crash can't reissue this version
            self._save_state(report)
        elif result.status == ReconcileStatus.INACCESSIBLE:
            report.inaccessible.append(name)
        else:
            report.unchanged += 1

    def _save_state(self, report: CycleReport) -> None:
        try:
            self.registry.save_state()
        except StateStoreError as e:
            # Registry stays dirty, so the next save retries
            logger.error(f"Could not save state: {e}")
            report.errors.append(str(e))

    def run(self, max_cycles: Optional[int] = None,
            on_cycle: Optional[Callable[[CycleReport], None]] = None) -> int:
        """Poll until stopped.

        Args:
            max_cycles: Stop after this many cycles (run forever if None)
            on_cycle: Callback invoked with each cycle's report

        Returns:
            Number of cycles completed

        Raises:
            StateStoreError: If unsaved changes could not be written on exit
        """
        if not self._started:
            self.start()

        logger.info(f"Monitoring {self.config.watch_directory} "
                    f"every {self.config.poll_interval}s")
        cycles = 0
        try:
            while not self.stopping:
                report = self.run_cycle()
                cycles += 1
                if on_cycle:
                    on_cycle(report)
                if max_cycles is not None and cycles >= max_cycles:
                    break
                if self._stop_event.wait(self.config.poll_interval):
                    break
        finally:
            self.shutdown()

        return cycles

    def stop(self) -> None:
        """Request the poll loop to stop after the current file."""
        self._stop_event.set()

    def shutdown(self) -> None:
        """Persist any unsaved registry changes.

        Raises:
            StateStoreError: If unsaved changes could not be written
        """
        if self.registry.is_dirty:
            try:
                self.registry.save_state()
            except StateStoreError as e:
                logger.error(f"Could not save state on shutdown: {e}")
                raise
        logger.info("Watcher stopped.")

    def get_status(self) -> List[Dict[str, Any]]:
        """Describe every tracked file for status displays."""
        status = []
        for entry in self.registry.snapshot():
            path = self.config.watch_directory / entry.name
            status.append({
                'name': entry.name,
                'version': entry.version,
                'fingerprint': entry.content_fingerprint,
                'last_observed': datetime.fromtimestamp(entry.last_observed_mtime),
                'present': path.is_file(),
                'backups': len(self.backup_writer.list_artifacts(entry.name)),
            })
        return status
