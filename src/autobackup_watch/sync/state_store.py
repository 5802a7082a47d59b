"""Durable storage for the tracked-file registry."""

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from ..exceptions import CorruptStateError, StateStoreError
from ..utils.hashing import ContentHasher
from .models import UNKNOWN_FINGERPRINT, TrackedFile

logger = logging.getLogger(__name__)

STATE_FORMAT = 1
LEGACY_DELIMITER = "|"


class StateStore:
    """Persist snapshots of tracked files as a JSON document.

    Writes go to a temporary file in the same directory which is synced and
    then atomically renamed over the previous state, so a crash mid-write
    leaves either the old or the new state, never a partial one.
    """

    def __init__(self, state_file: Union[str, Path]):
        """Initialize state store.

        Args:
            state_file: Path to the state file
        """
        self.state_file = Path(state_file)

    def exists(self) -> bool:
        """True if a state file is present."""
        return self.state_file.exists()

    def save(self, files: Sequence[TrackedFile]) -> None:
        """Save a snapshot of tracked files.

        Args:
            files: Tracked file entries to persist

        Raises:
            StateStoreError: If the state cannot be written
        """
        records = [f.to_dict() for f in files]
        data = {
            'format': STATE_FORMAT,
            'count': len(records),
            'files': records,
        }

        try:
            self._atomic_write_json(data)
        except OSError as e:
            raise StateStoreError(f"Could not save state to {self.state_file}: {e}") from e

        logger.debug(f"Saved state: {len(records)} tracked files")

    def load(self) -> Optional[List[TrackedFile]]:
        """Load the last saved snapshot.

        Returns:
            List of tracked files, or None if no state has been saved yet

        Raises:
            CorruptStateError: If the state file is malformed
            StateStoreError: If the state file exists but cannot be read
        """
        try:
            with open(self.state_file, 'r', encoding='utf-8') as f:
                text = f.read()
        except FileNotFoundError:
            logger.info(f"No saved state at {self.state_file} - starting fresh")
            return None
        except UnicodeDecodeError as e:
            raise CorruptStateError(f"State file is not valid UTF-8: {self.state_file}") from e
        except OSError as e:
            raise StateStoreError(f"Could not read state from {self.state_file}: {e}") from e

        if text.lstrip().startswith('{'):
            files = self._parse_json(text)
        else:
            files = self._parse_legacy(text)

        logger.info(f"Loaded state: tracking {len(files)} files")
        return files

    def quarantine(self) -> Optional[Path]:
        """Move the current state file aside so tracking can start over.

        Returns:
            New location of the old state file, or None if there was none
        """
        if not self.exists():
            return None
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        target = self.state_file.with_name(f"{self.state_file.name}.corrupt-{stamp}")
        try:
            os.replace(self.state_file, target)
        except OSError as e:
            raise StateStoreError(f"Could not move corrupt state aside: {e}") from e
        return target

    def _parse_json(self, text: str) -> List[TrackedFile]:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise CorruptStateError(f"State file is not valid JSON: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get('files'), list):
            raise CorruptStateError("State file has no file list")

        records = data['files']
        count = data.get('count')
        if not isinstance(count, int) or isinstance(count, bool) or count != len(records):
            raise CorruptStateError(
                f"State record count {count!r} does not match {len(records)} records"
            )

        return [self._record_to_file(record, index) for index, record in enumerate(records)]

    def _parse_legacy(self, text: str) -> List[TrackedFile]:
        """Parse the line-based format: a count line, then name|hash|mtime|version."""
        lines = [line for line in text.splitlines() if line.strip()]
        if not lines:
            raise CorruptStateError("State file is empty")

        try:
            count = int(lines[0].strip())
        except ValueError as e:
            raise CorruptStateError(f"Invalid record count: {lines[0]!r}") from e

        records = lines[1:]
        if count != len(records):
            raise CorruptStateError(
                f"State record count {count} does not match {len(records)} records"
            )

        files = []
        for index, line in enumerate(records):
            parts = line.rsplit(LEGACY_DELIMITER, 3)
            if len(parts) != 4:
                raise CorruptStateError(f"Malformed state record {index}: {line!r}")
            name, fingerprint, mtime, version = parts
            try:
                mtime, version = int(mtime), int(version)
            except ValueError as e:
                raise CorruptStateError(f"State record {index} has an invalid number: {e}") from e
            files.append(self._record_to_file({
                'name': name,
                'fingerprint': fingerprint,
                'last_observed_mtime': mtime,
                'version': version,
            }, index))
        return files

    @staticmethod
    def _record_to_file(record: Any, index: int) -> TrackedFile:
        if not isinstance(record, dict):
            raise CorruptStateError(f"State record {index} is not an object")

        try:
            name = record['name']
            fingerprint = record['fingerprint']
            mtime = record['last_observed_mtime']
            version = record['version']
        except KeyError as e:
            raise CorruptStateError(f"State record {index} is missing field {e}") from e

        if not isinstance(name, str) or not name:
            raise CorruptStateError(f"State record {index} has an invalid name")
        for field_name, value in (('last_observed_mtime', mtime), ('version', version)):
            if not isinstance(value, int) or isinstance(value, bool):
                raise CorruptStateError(
                    f"State record {index} ({name}) has a non-integer {field_name}: {value!r}"
                )
        # An empty fingerprint marks content that could not be read when last seen
        if fingerprint != UNKNOWN_FINGERPRINT and not ContentHasher.is_valid_digest(fingerprint):
            raise CorruptStateError(f"State record {index} ({name}) has an invalid fingerprint")

        return TrackedFile(
            name=name,
            content_fingerprint=fingerprint,
            last_observed_mtime=mtime,
            version=version,
        )

    def _atomic_write_json(self, data: Dict[str, Any]) -> None:
        """Atomically write JSON data to the state file."""
        directory = self.state_file.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(
            suffix=".tmp",
            prefix=f"{self.state_file.name}_",
            dir=directory,
        )

        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())

            os.replace(temp_path, self.state_file)
            self._fsync_directory(directory)

        except Exception:
            if Path(temp_path).exists():
                Path(temp_path).unlink()
            raise

    @staticmethod
    def _fsync_directory(dir_path: Path) -> None:
        """Sync directory for crash safety."""
        try:
            fd = os.open(str(dir_path), os.O_RDONLY)
            try:
                os.fsync(fd)
            finally:
                os.close(fd)
        except OSError:
            # Not supported on every platform (e.g. Windows)
            pass
