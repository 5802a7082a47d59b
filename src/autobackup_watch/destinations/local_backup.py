"""Local backup destination writing versioned copies of tracked files."""

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Union

from ..exceptions import BackupCollisionError, BackupWriteError
from ..utils.file_utils import BACKUP_NAME_PATTERN, FileHelper
from ..utils.hashing import ContentHasher

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
PARTIAL_SUFFIX = ".partial"


@dataclass(frozen=True)
class BackupArtifact:
    """An immutable copy of a tracked file's content at one version."""
    path: Path
    version: int
    fingerprint: str
    size: int
    created: datetime

    @property
    def name(self) -> str:
        return self.path.name


def artifact_name(base_name: str, extension: str, version: int, timestamp: datetime) -> str:
    """Build the deterministic artifact file name.

    Args:
        base_name: Original file name without extension
        extension: Original extension including the dot, or ""
        version: Version number the artifact captures
        timestamp: Creation time, rendered with second granularity

    Returns:
        File name such as ``report_v2_backup_20240101_120000.txt``
    """
    return f"{base_name}_v{version}_backup_{timestamp.strftime(TIMESTAMP_FORMAT)}{extension}"


class BackupWriter:
    """Writes versioned backup copies into the reserved backup directory."""

    def __init__(self, backup_directory: Union[str, Path],
                 hasher: Optional[ContentHasher] = None,
                 clock: Callable[[], datetime] = datetime.now):
        """Initialize backup writer.

        Args:
            backup_directory: Directory receiving the artifacts
            hasher: Hasher used to fingerprint the bytes as they are copied
            clock: Source of artifact timestamps
        """
        self.backup_directory = Path(backup_directory)
        self.hasher = hasher or ContentHasher()
        self._clock = clock

    def ensure_directory(self) -> None:
        """Create the backup directory if it doesn't exist."""
        if self.backup_directory.is_dir():
            return
        try:
            self.backup_directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BackupWriteError(
                f"Cannot create backup directory {self.backup_directory}: {e}"
            ) from e
        logger.info(f"Created backup directory: {self.backup_directory}")

    def write(self, source_path: Union[str, Path], base_name: str, extension: str,
              version: int, timestamp: Optional[datetime] = None) -> BackupArtifact:
        """Copy a source file into a new artifact.

        The copy is streamed into a hidden ``.partial`` file, hashed on the
        way, synced and then renamed into place. An existing artifact with
        the same name is never overwritten.

        Args:
            source_path: File to back up
            base_name: Original file name without extension
            extension: Original extension including the dot, or ""
            version: Version number the artifact captures
            timestamp: Creation time (defaults to the writer's clock)

        Returns:
            The created artifact, with the digest of the bytes actually copied

        Raises:
            BackupCollisionError: If the artifact name is already taken
            BackupWriteError: If the source cannot be read or the copy cannot be written
        """
        if version < 1:
            raise ValueError(f"Invalid version: {version}")

        created = timestamp or self._clock()
        self.ensure_directory()

        dest = self.backup_directory / artifact_name(base_name, extension, version, created)
        if dest.exists():
            raise BackupCollisionError(f"Backup already exists: {dest}")

        temp_path = self.backup_directory / f".{dest.name}{PARTIAL_SUFFIX}"
        digest = self.hasher.new()
        size = 0

        try:
            try:
                src = open(source_path, 'rb')
            except OSError as e:
                raise BackupWriteError(f"Cannot read {source_path}: {e}") from e

            with src, open(temp_path, 'wb') as dst:
                for chunk in iter(lambda: src.read(self.hasher.chunk_size), b""):
                    digest.update(chunk)
                    dst.write(chunk)
                    size += len(chunk)
                dst.flush()
                os.fsync(dst.fileno())

            if dest.exists():
                raise BackupCollisionError(f"Backup already exists: {dest}")
            os.replace(temp_path, dest)

        except BackupWriteError:
            self._discard(temp_path)
            raise
        except OSError as e:
            self._discard(temp_path)
            raise BackupWriteError(f"Failed to create backup {dest}: {e}") from e

        artifact = BackupArtifact(
            path=dest,
            version=version,
            fingerprint=digest.hexdigest(),
            size=size,
            created=created,
        )
        logger.debug(f"Wrote {artifact.name} ({FileHelper.format_file_size(size)})")
        return artifact

    def list_artifacts(self, file_name: str) -> List[Path]:
        """List the artifacts written for one tracked file, oldest version first.

        Args:
            file_name: Tracked file name (with extension)

        Returns:
            Artifact paths ordered by version, then timestamp
        """
        if not self.backup_directory.is_dir():
            return []

        base_name, extension = FileHelper.split_name(file_name)
        found = []
        for path in self.backup_directory.iterdir():
            if not path.is_file() or path.name.startswith('.'):
                continue
            match = BACKUP_NAME_PATTERN.match(path.name)
            if not match or match.group('base') != base_name:
                continue
            if path.name[match.end():] != extension:
                continue
            found.append((int(match.group('version')), match.group('stamp'), path))

        found.sort(key=lambda item: (item[0], item[1]))
        return [path for _, _, path in found]

    @staticmethod
    def _discard(temp_path: Path) -> None:
        try:
            temp_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove partial backup {temp_path}: {e}")
