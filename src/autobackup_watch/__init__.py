"""
AutoBackup Watch - Directory File Versioning

Polls a directory and writes versioned backup copies of files whose content
changed. SHA-256 fingerprints tell real content changes apart from timestamp
updates, and version numbers survive restarts through a durable state file.
"""

__version__ = "1.0.0"
__author__ = "AutoBackup Watch"
__description__ = "Poll a directory and keep versioned backups of changed files"

from .config.settings import WatchConfig
from .sync.backup_manager import BackupManager
from .sync.file_tracker import FileRegistry

__all__ = ["WatchConfig", "BackupManager", "FileRegistry"]
