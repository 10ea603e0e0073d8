"""Vault Backup: periodic git backups of a working directory.

This package provides the backup cycle engine, its timers and status line, the
git client it drives, and the command-line interface and foreground watcher
that host it.
"""

from . import (
    cli,
    config,
    constants,
    daemon,
    engine,
    errors,
    formatter,
    git_wrapper,
    scheduler,
    settings,
    state,
    status,
    system,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "daemon",
    "engine",
    "errors",
    "formatter",
    "git_wrapper",
    "scheduler",
    "settings",
    "state",
    "status",
    "system",
]
