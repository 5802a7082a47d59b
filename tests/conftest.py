"""Shared fixtures for the backup watcher tests."""

import logging
import os
from datetime import datetime
from pathlib import Path

import pytest

from autobackup_watch.destinations.local_backup import BackupWriter
from autobackup_watch.sync.file_tracker import FileRegistry
from autobackup_watch.sync.state_store import StateStore
from autobackup_watch.utils.hashing import ContentHasher
from autobackup_watch.utils.logging import LOGGER_NAME

BASE_MTIME = 1_700_000_000


def write_file(path: Path, content, mtime=None) -> Path:
    """Write content to path and optionally pin its modification time."""
    if isinstance(content, str):
        content = content.encode('utf-8')
    path.write_bytes(content)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


class FixedClock:
    """Clock returning a fixed time that tests can move forward."""

    def __init__(self, now=datetime(2024, 1, 2, 3, 4, 5)):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture(autouse=True)
def reset_package_logger():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def watch_dir(tmp_path):
    directory = tmp_path / "watched"
    directory.mkdir()
    return directory


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def hasher():
    return ContentHasher()


@pytest.fixture
def backup_writer(watch_dir, hasher, clock):
    return BackupWriter(watch_dir / ".autobackup", hasher=hasher, clock=clock)


@pytest.fixture
def state_store(watch_dir):
    return StateStore(watch_dir / ".autobackup_state")


@pytest.fixture
def registry(watch_dir, hasher, backup_writer, state_store):
    return FileRegistry(watch_dir, hasher=hasher, backup_writer=backup_writer,
                        state_store=state_store)
