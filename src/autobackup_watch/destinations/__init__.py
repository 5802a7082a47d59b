"""Backup destinations."""

from .local_backup import BackupArtifact, BackupWriter

__all__ = ["BackupArtifact", "BackupWriter"]
