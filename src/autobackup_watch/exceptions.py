"""Exceptions raised by the backup watcher."""

from pathlib import Path
from typing import Optional, Union


class AutoBackupError(Exception):
    """Base exception for backup watcher errors."""
    pass


class UnreadableFileError(AutoBackupError):
    """Raised when a file's content cannot be opened or read."""

    def __init__(self, path: Union[str, Path], reason: Optional[str] = None):
        self.path = Path(path)
        self.reason = reason
        message = f"Cannot read file: {self.path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class BackupWriteError(AutoBackupError):
    """Raised when a backup artifact cannot be created."""
    pass


class BackupCollisionError(BackupWriteError):
    """Raised when the artifact name is already taken by an earlier backup."""
    pass


class StateStoreError(AutoBackupError):
    """Raised when the tracking state cannot be persisted."""
    pass


class CorruptStateError(StateStoreError):
    """Raised when persisted state is malformed or violates registry invariants."""
    pass


class InvalidDirectoryError(AutoBackupError):
    """Raised when the watched directory is missing or not a directory."""
    pass
