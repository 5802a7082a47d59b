"""File utility functions."""

import os
import re
from pathlib import Path
from typing import List, Tuple

# name_v3_backup_20240101_120000.ext
BACKUP_NAME_PATTERN = re.compile(r"^(?P<base>.*)_v(?P<version>\d+)_backup_(?P<stamp>\d{8}_\d{6})")


class FileHelper:
    """Helper class for file operations."""

    @staticmethod
    def split_name(file_name: str) -> Tuple[str, str]:
        """Split a file name into base name and extension.

        Args:
            file_name: File name without directory part

        Returns:
            Tuple of (base name, extension including the leading dot or "")
        """
        base, ext = os.path.splitext(file_name)
        return base, ext

    @staticmethod
    def format_file_size(size_bytes: int) -> str:
        """Format file size in human readable format.

        Args:
            size_bytes: Size in bytes

        Returns:
            Formatted size string
        """
        if size_bytes == 0:
            return "0 B"

        size_names = ["B", "KB", "MB", "GB", "TB", "PB"]
        i = 0

        while size_bytes >= 1024 and i < len(size_names) - 1:
            size_bytes /= 1024.0
            i += 1

        return f"{size_bytes:.1f} {size_names[i]}"

    @staticmethod
    def is_hidden_file(file_path: Path) -> bool:
        """Check if a file is hidden.

        Args:
            file_path: Path to check

        Returns:
            True if file is hidden
        """
        # On Windows, check file attributes
        if os.name == 'nt':
            try:
                attrs = os.stat(str(file_path)).st_file_attributes
                if attrs & 0x02:  # FILE_ATTRIBUTE_HIDDEN
                    return True
            except (AttributeError, OSError):
                pass

        # On Unix-like systems, files starting with . are hidden
        return file_path.name.startswith('.')

    @staticmethod
    def is_backup_file(file_name: str) -> bool:
        """Check if a file name follows the backup artifact naming scheme."""
        return BACKUP_NAME_PATTERN.match(file_name) is not None

    @staticmethod
    def should_exclude_file(file_path: Path, reserved_names: Tuple[str, ...] = ()) -> bool:
        """Check if a directory entry should be kept out of tracking.

        Args:
            file_path: Path to check
            reserved_names: Names owned by the watcher itself (backup dir, state file)

        Returns:
            True if file should be excluded
        """
        if file_path.name in reserved_names:
            return True

        if FileHelper.is_hidden_file(file_path):
            return True

        return FileHelper.is_backup_file(file_path.name)

    @staticmethod
    def list_candidates(directory: Path,
                        reserved_names: Tuple[str, ...] = ()) -> List[Tuple[str, os.stat_result]]:
        """Enumerate regular files in a directory that are eligible for tracking.

        Subdirectories, hidden entries, reserved names and backup artifacts are
        skipped. Entries that vanish between listing and stat are skipped too.

        Args:
            directory: Directory to scan (not recursive)
            reserved_names: Names owned by the watcher itself

        Returns:
            List of (file name, stat result) sorted by name
        """
        candidates = []
        with os.scandir(directory) as entries:
            for entry in entries:
                path = Path(entry.path)
                if FileHelper.should_exclude_file(path, reserved_names):
                    continue
                try:
                    if not entry.is_file():
                        continue
                    stat_info = entry.stat()
                except OSError:
                    continue
                candidates.append((entry.name, stat_info))

        candidates.sort(key=lambda item: item[0])
        return candidates
