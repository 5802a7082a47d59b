"""Command-line interface for the backup watcher."""

import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError
from rich import print as rprint
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config.settings import CorruptStatePolicy, WatchConfig
from .destinations.local_backup import BackupWriter
from .exceptions import AutoBackupError
from .sync.backup_manager import BackupManager, CycleReport
from .utils.file_utils import FileHelper
from .utils.logging import setup_logging

console = Console()


@click.group()
@click.version_option(version=__version__)
def cli():
    """AutoBackup Watch - Directory File Versioning

    Watches a directory and creates versioned backups when files change.
    Uses SHA-256 hashing to detect actual content changes, not just timestamps.
    """
    pass


def _watch_options(func):
    """Options shared by the commands that run poll cycles."""
    decorators = [
        click.argument('directory', required=False, type=click.Path(path_type=Path)),
        click.option('--config', '-c', 'config_path',
                     type=click.Path(exists=True, dir_okay=False, path_type=Path),
                     help='Path to configuration file'),
        click.option('--interval', '-i', type=int,
                     help='Poll interval in seconds (non-positive values use the default)'),
        click.option('--discard-corrupt-state', is_flag=True,
                     help='Move corrupt state aside and start fresh instead of aborting'),
        click.option('--log-file', type=click.Path(dir_okay=False, path_type=Path),
                     help='Also write a rotating log file'),
        click.option('--verbose', '-v', is_flag=True, help='Enable debug logging'),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


def _load_config(directory: Optional[Path], config_path: Optional[Path],
                 interval: Optional[int] = None, discard_corrupt_state: Optional[bool] = None,
                 log_file: Optional[Path] = None, verbose: bool = False) -> WatchConfig:
    """Build the configuration from an optional YAML file and CLI overrides."""
    overrides = {
        'watch_directory': directory,
        'poll_interval': interval,
        'on_corrupt_state': CorruptStatePolicy.DISCARD if discard_corrupt_state else None,
        'log_file': log_file,
        'log_level': 'DEBUG' if verbose else None,
    }

    if config_path:
        return WatchConfig.from_yaml(config_path, **overrides)

    if directory is None:
        raise click.UsageError("DIRECTORY is required when no --config is given")

    return WatchConfig(**{k: v for k, v in overrides.items() if v is not None})


def _fail(error: Exception):
    console.print(f"❌ Error: {escape(str(error))}", style="red bold")
    sys.exit(1)


@cli.command()
@_watch_options
@click.option('--cycles', type=click.IntRange(min=1),
              help='Stop after this many poll cycles')
def watch(directory: Optional[Path], config_path: Optional[Path], interval: Optional[int],
          discard_corrupt_state: Optional[bool], log_file: Optional[Path], verbose: bool,
          cycles: Optional[int]):
    """Watch DIRECTORY and back up every content change until Ctrl+C."""
    try:
        config = _load_config(directory, config_path, interval,
                              discard_corrupt_state, log_file, verbose)
        setup_logging(log_level=config.log_level, log_file=config.log_file)

        manager = BackupManager(config)
        with console.status("Loading state..."):
            restored = manager.start()

        console.print("\n[bold]AutoBackup Watch - File Versioning[/bold]\n")
        console.print(f"Watching directory: {config.watch_directory}")
        console.print(f"Backup location: {config.backup_directory}")
        console.print(f"Poll interval: {config.poll_interval} seconds")
        if restored:
            console.print(f"Restored state: tracking {len(manager.registry)} file(s)")
        console.print("Press Ctrl+C to stop\n")

        def _handler(sig, frame):
            manager.stop()

        previous = {
            signal.SIGINT: signal.signal(signal.SIGINT, _handler),
            signal.SIGTERM: signal.signal(signal.SIGTERM, _handler),
        }

        first_cycle = True

        def _on_cycle(report: CycleReport):
            nonlocal first_cycle
            if first_cycle:
                first_cycle = False
                _display_status(manager)
            for error in report.errors:
                rprint(f"   • [red]{escape(error)}[/red]")

        try:
            manager.run(max_cycles=cycles, on_cycle=_on_cycle)
        finally:
            for signum, handler in previous.items():
                signal.signal(signum, handler)

        console.print("👋 Stopped, state saved.", style="green")

    except (AutoBackupError, ValidationError, FileNotFoundError) as e:
        _fail(e)


@cli.command()
@_watch_options
def scan(directory: Optional[Path], config_path: Optional[Path], interval: Optional[int],
         discard_corrupt_state: Optional[bool], log_file: Optional[Path], verbose: bool):
    """Run a single poll cycle over DIRECTORY and report what changed."""
    try:
        config = _load_config(directory, config_path, interval,
                              discard_corrupt_state, log_file, verbose)
        setup_logging(log_level=config.log_level, log_file=config.log_file)

        manager = BackupManager(config)
        manager.start()
        report = manager.run_cycle()
        _display_cycle_report(report)
        manager.shutdown()

        if report.has_errors:
            sys.exit(1)

    except (AutoBackupError, ValidationError, FileNotFoundError) as e:
        _fail(e)


@cli.command()
@click.argument('directory', type=click.Path(path_type=Path))
@click.option('--config', '-c', 'config_path',
              type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help='Path to configuration file')
def status(directory: Path, config_path: Optional[Path]):
    """Show the files tracked in DIRECTORY and their versions."""
    try:
        config = _load_config(directory, config_path)
        config.validate_directory()

        manager = BackupManager(config)
        if not manager.registry.load_state():
            console.print(f"No saved state in {config.watch_directory}", style="yellow")
            return

        _display_status(manager)

    except (AutoBackupError, ValidationError, FileNotFoundError) as e:
        _fail(e)


@cli.command()
@click.argument('directory', type=click.Path(path_type=Path))
@click.argument('name')
@click.option('--config', '-c', 'config_path',
              type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help='Path to configuration file')
def history(directory: Path, name: str, config_path: Optional[Path]):
    """List the backups written for file NAME in DIRECTORY."""
    try:
        config = _load_config(directory, config_path)
        config.validate_directory()

        artifacts = BackupWriter(config.backup_directory).list_artifacts(name)
        if not artifacts:
            console.print(f"No backups of {name}", style="yellow")
            return

        table = Table(title=f"Backups of {name}")
        table.add_column("Backup", style="cyan")
        table.add_column("Size", justify="right")
        table.add_column("Written")

        for path in artifacts:
            stat_info = path.stat()
            table.add_row(
                path.name,
                FileHelper.format_file_size(stat_info.st_size),
                datetime.fromtimestamp(stat_info.st_mtime).strftime('%Y-%m-%d %H:%M:%S'),
            )

        console.print(table)

    except (AutoBackupError, ValidationError, FileNotFoundError) as e:
        _fail(e)


@cli.command()
@click.argument('directory', type=click.Path(path_type=Path))
@click.option('--config', '-c', 'config_path',
              type=click.Path(dir_okay=False, path_type=Path),
              default=Path('autobackup.yaml'),
              help='Path to save configuration file')
def init(directory: Path, config_path: Path):
    """Create a configuration file for watching DIRECTORY."""
    if config_path.exists():
        if not click.confirm(f"Configuration file {config_path} already exists. Overwrite?"):
            return

    config = WatchConfig(watch_directory=directory)
    config.to_yaml(config_path)

    console.print(f"✅ Configuration saved to {config_path}", style="green")
    console.print("\n📝 Next steps:")
    console.print("1. Edit the configuration file to adjust the poll interval and policies")
    console.print(f"2. Run 'autobackup-watch watch --config {config_path}' to start watching")


def _display_status(manager: BackupManager):
    """Display tracked files in a table."""
    rows = manager.get_status()

    table = Table(title=f"Tracking {len(rows)} file(s) in {manager.config.watch_directory}")
    table.add_column("File", style="cyan")
    table.add_column("Version", justify="right", style="magenta")
    table.add_column("Backups", justify="right")
    table.add_column("Last Modified")
    table.add_column("Fingerprint", style="dim")

    for row in rows:
        name = escape(row['name'])
        if not row['present']:
            name = f"{name} [red](missing)[/red]"
        table.add_row(
            name,
            f"v{row['version']}",
            str(row['backups']),
            row['last_observed'].strftime('%Y-%m-%d %H:%M:%S'),
            row['fingerprint'][:12],
        )

    console.print(table)


def _display_cycle_report(report: CycleReport):
    """Display the outcome of one poll cycle."""
    table = Table(title="Scan Results")
    table.add_column("File", style="cyan")
    table.add_column("Result", style="magenta")

    for name in report.added:
        table.add_row(escape(name), "[green]now tracking (v1)[/green]")
    for name, version in sorted(report.changed.items()):
        table.add_row(escape(name), f"[green]backed up as v{version}[/green]")
    for name in report.inaccessible:
        table.add_row(escape(name), "[yellow]inaccessible[/yellow]")

    console.print(table)

    rprint("\n📊 [bold]Summary:[/bold]")
    rprint(f"   • New files: {len(report.added)}")
    rprint(f"   • Backed up: [green]{len(report.changed)}[/green]")
    rprint(f"   • Unchanged: {report.unchanged}")
    rprint(f"   • Inaccessible: [yellow]{len(report.inaccessible)}[/yellow]")
    rprint(f"   • Duration: {report.duration:.2f}s")

    if report.has_errors:
        rprint(f"\n⚠️ [yellow]{len(report.errors)} errors occurred:[/yellow]")
        for error in report.errors:
            rprint(f"   • [red]{escape(error)}[/red]")


if __name__ == '__main__':
    cli()
