#!/usr/bin/env python3
"""
Entry point wrapper for the AutoBackup Watch CLI.
Runs the CLI straight from a source checkout without installing it.
"""
import sys
from pathlib import Path

# Add src directory to path
src_path = Path(__file__).parent / 'src'
if src_path.exists():
    sys.path.insert(0, str(src_path))

from autobackup_watch.cli import cli

if __name__ == '__main__':
    cli()
