"""Tests for the command-line interface."""

import os
import signal
import sys

import pytest
import yaml
from click.testing import CliRunner

from autobackup_watch.cli import cli
from autobackup_watch.sync.backup_manager import BackupManager
from autobackup_watch.sync.state_store import StateStore

from conftest import BASE_MTIME, write_file


def invoke(*args):
    return CliRunner().invoke(cli, [str(a) for a in args])


def test_version():
    result = invoke('--version')
    assert result.exit_code == 0
    assert "1.0.0" in result.output


def test_scan_tracks_then_backs_up(watch_dir):
    path = write_file(watch_dir / "a.txt", "hello", BASE_MTIME)

    result = invoke('scan', watch_dir)
    assert result.exit_code == 0, result.output
    assert "now tracking" in result.output

    write_file(path, "world", BASE_MTIME + 10)
    result = invoke('scan', watch_dir)
    assert result.exit_code == 0, result.output
    assert "backed up as v2" in result.output
    assert len(list((watch_dir / ".autobackup").iterdir())) == 1


def test_scan_invalid_directory(tmp_path):
    result = invoke('scan', tmp_path / "missing")
    assert result.exit_code == 1
    assert "Error" in result.output


def test_scan_requires_directory_or_config():
    result = invoke('scan')
    assert result.exit_code == 2


def test_scan_corrupt_state_aborts(watch_dir):
    (watch_dir / ".autobackup_state").write_text("{broken", encoding='utf-8')

    result = invoke('scan', watch_dir)
    assert result.exit_code == 1
    assert (watch_dir / ".autobackup_state").read_text(encoding='utf-8') == "{broken"


def test_scan_can_discard_corrupt_state(watch_dir):
    (watch_dir / ".autobackup_state").write_text("{broken", encoding='utf-8')
    write_file(watch_dir / "a.txt", "hello", BASE_MTIME)

    result = invoke('scan', watch_dir, '--discard-corrupt-state')
    assert result.exit_code == 0, result.output
    assert len(list(watch_dir.glob(".autobackup_state.corrupt-*"))) == 1


def test_status_and_history(watch_dir):
    path = write_file(watch_dir / "a.txt", "hello", BASE_MTIME)
    invoke('scan', watch_dir)
    write_file(path, "world", BASE_MTIME + 10)
    invoke('scan', watch_dir)

    result = invoke('status', watch_dir)
    assert result.exit_code == 0, result.output
    assert "a.txt" in result.output
    assert "v2" in result.output

    result = invoke('history', watch_dir, "a.txt")
    assert result.exit_code == 0, result.output
    assert "a_v2_backup_" in result.output


def test_status_without_state(watch_dir):
    result = invoke('status', watch_dir)
    assert result.exit_code == 0
    assert "No saved state" in result.output


def test_history_without_backups(watch_dir):
    result = invoke('history', watch_dir, "a.txt")
    assert result.exit_code == 0
    assert "No backups" in result.output


def test_watch_single_cycle(watch_dir):
    write_file(watch_dir / "a.txt", "hello", BASE_MTIME)

    result = invoke('watch', watch_dir, '--cycles', 1, '--interval', 0)
    assert result.exit_code == 0, result.output
    assert "Poll interval: 5 seconds" in result.output
    assert (watch_dir / ".autobackup_state").exists()


def test_init_writes_config(tmp_path, watch_dir):
    config_path = tmp_path / "autobackup.yaml"

    result = invoke('init', watch_dir, '--config', config_path)
    assert result.exit_code == 0, result.output

    data = yaml.safe_load(config_path.read_text(encoding='utf-8'))
    assert data['watch_directory'] == str(watch_dir)
    assert data['poll_interval'] == 5


def test_scan_with_config_file(tmp_path, watch_dir):
    config_path = tmp_path / "autobackup.yaml"
    invoke('init', watch_dir, '--config', config_path)
    write_file(watch_dir / "a.txt", "hello", BASE_MTIME)

    result = invoke('scan', '--config', config_path)
    assert result.exit_code == 0, result.output
    assert "now tracking" in result.output


def test_watch_fails_when_state_cannot_be_saved(watch_dir, monkeypatch):
    write_file(watch_dir / "a.txt", "hello", BASE_MTIME)

    def disk_full(self, data):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(StateStore, "_atomic_write_json", disk_full)
    result = invoke('watch', watch_dir, '--cycles', 1)

    assert result.exit_code == 1
    assert "No space left on device" in result.output
    assert "state saved" not in result.output


def test_scan_fails_when_state_cannot_be_saved(watch_dir, monkeypatch):
    write_file(watch_dir / "a.txt", "hello", BASE_MTIME)

    def disk_full(self, data):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(StateStore, "_atomic_write_json", disk_full)
    result = invoke('scan', watch_dir)

    assert result.exit_code == 1
    assert not (watch_dir / ".autobackup_state").exists()


@pytest.mark.skipif(sys.platform == 'win32', reason="needs POSIX signal delivery")
def test_watch_stops_on_sigterm(watch_dir, monkeypatch):
    write_file(watch_dir / "a.txt", "hello", BASE_MTIME)
    real_run_cycle = BackupManager.run_cycle

    def run_cycle_then_terminate(self):
        report = real_run_cycle(self)
        os.kill(os.getpid(), signal.SIGTERM)
        return report

    monkeypatch.setattr(BackupManager, "run_cycle", run_cycle_then_terminate)
    previous = signal.getsignal(signal.SIGTERM)

    result = invoke('watch', watch_dir, '--interval', 1)

    assert result.exit_code == 0, result.output
    assert "state saved" in result.output
    assert (watch_dir / ".autobackup_state").exists()
    assert signal.getsignal(signal.SIGTERM) == previous
