"""Allow ``python -m autobackup_watch``."""

from .cli import cli

if __name__ == '__main__':
    cli()
