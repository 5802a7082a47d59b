"""Utility functions and helpers."""

from .logging import setup_logging, TimedOperation
from .hashing import ContentHasher
from .file_utils import FileHelper

__all__ = ["setup_logging", "TimedOperation", "ContentHasher", "FileHelper"]
