"""Data types shared by the registry, state store and driver."""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional

from ..destinations.local_backup import BackupArtifact

# Stored for files whose content couldn't be read when their state was recorded
UNKNOWN_FINGERPRINT = ""


@dataclass(frozen=True)
class TrackedFile:
    """Last known state of one file under version-backup management."""
    name: str
    content_fingerprint: str
    last_observed_mtime: int  # seconds since epoch
    version: int

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the persisted field names."""
        data = asdict(self)
        data['fingerprint'] = data.pop('content_fingerprint')
        return data


class TrackResult(str, Enum):
    """Outcome of offering a file to the registry."""
    ADDED = "added"
    ALREADY_TRACKED = "already_tracked"


class ReconcileStatus(str, Enum):
    """Outcome of reconciling a tracked file against disk."""
    UNCHANGED = "unchanged"
    CHANGED = "changed"
    INACCESSIBLE = "inaccessible"


@dataclass
class ReconcileResult:
    """Result of one reconcile call."""
    status: ReconcileStatus
    version: int
    artifact: Optional[BackupArtifact] = None
    error: Optional[Exception] = None

    @property
    def changed(self) -> bool:
        return self.status == ReconcileStatus.CHANGED
