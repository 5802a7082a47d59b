"""Configuration settings and models for the backup watcher."""

from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, field_validator

from ..exceptions import InvalidDirectoryError

DEFAULT_POLL_INTERVAL = 5  # seconds
DEFAULT_BACKUP_DIR_NAME = ".autobackup"
DEFAULT_STATE_FILE_NAME = ".autobackup_state"


class CorruptStatePolicy(str, Enum):
    """What to do when the saved state can't be trusted."""
    ABORT = "abort"
    DISCARD = "discard"


class WatchConfig(BaseModel):
    """Main configuration class."""
    watch_directory: Path
    poll_interval: int = DEFAULT_POLL_INTERVAL
    backup_dir_name: str = DEFAULT_BACKUP_DIR_NAME
    state_file_name: str = DEFAULT_STATE_FILE_NAME
    chunk_size: int = 8192
    on_corrupt_state: CorruptStatePolicy = CorruptStatePolicy.ABORT
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    @field_validator('poll_interval', mode='before')
    @classmethod
    def default_non_positive_interval(cls, v):
        if v is None:
            return DEFAULT_POLL_INTERVAL
        if int(v) < 1:
            return DEFAULT_POLL_INTERVAL
        return v

    @field_validator('chunk_size')
    @classmethod
    def validate_chunk_size(cls, v):
        if v <= 0:
            raise ValueError('chunk_size must be positive')
        return v

    @field_validator('backup_dir_name', 'state_file_name')
    @classmethod
    def validate_plain_name(cls, v):
        if not v or v in ('.', '..') or '/' in v or '\\' in v:
            raise ValueError(f'must be a plain file name, got {v!r}')
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f'unknown log level: {v}')
        return level

    @property
    def backup_directory(self) -> Path:
        """Reserved subdirectory holding backup artifacts."""
        return self.watch_directory / self.backup_dir_name

    @property
    def state_file(self) -> Path:
        """File holding the tracked-file registry."""
        return self.watch_directory / self.state_file_name

    @property
    def reserved_names(self) -> tuple:
        """Names inside the watched directory that are never tracked."""
        return (self.backup_dir_name, self.state_file_name)

    def validate_directory(self) -> None:
        """Check that the watched directory exists.

        Raises:
            InvalidDirectoryError: If the path is missing or not a directory
        """
        if not self.watch_directory.exists():
            raise InvalidDirectoryError(f"Directory not found: {self.watch_directory}")
        if not self.watch_directory.is_dir():
            raise InvalidDirectoryError(f"Not a directory: {self.watch_directory}")

    def with_overrides(self, **overrides: Any) -> "WatchConfig":
        """Return a copy with the given non-None fields replaced."""
        data = self.model_dump()
        data.update({k: v for k, v in overrides.items() if v is not None})
        return WatchConfig(**data)

    @classmethod
    def from_yaml(cls, config_path: Union[str, Path], **overrides: Any) -> "WatchConfig":
        """Load configuration from YAML file.

        Args:
            config_path: Path to the YAML file
            **overrides: Values taking precedence over the file (None is ignored)
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            config_data: Dict[str, Any] = yaml.safe_load(f) or {}

        config_data.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**config_data)

    def to_yaml(self, config_path: Union[str, Path]) -> None:
        """Save configuration to YAML file."""
        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(self.model_dump(mode='json', exclude_none=True), f,
                      default_flow_style=False, indent=2)
