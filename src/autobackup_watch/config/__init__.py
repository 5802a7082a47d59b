"""Configuration management for the backup watcher."""

from .settings import CorruptStatePolicy, WatchConfig

__all__ = ["CorruptStatePolicy", "WatchConfig"]
