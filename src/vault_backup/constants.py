"""Global constants and path definitions for Vault Backup.

This module defines the filesystem layout (adhering to XDG standards where applicable),
application identifiers, and the defaults shared by the engine, the status line and
the settings store.
"""

import os
from pathlib import Path

# --- Identity ---
APP_NAME = "vault-backup"
"""str: The human-readable application name (also the logger name)."""

NOTIFICATION_TITLE = "Vault Backup"
"""str: The title used for desktop notifications."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "vault-backup"
"""Path: The directory for runtime state data (logs, pid file)."""

# Ensure state directory exists immediately upon module import.
STATE_DIR.mkdir(parents=True, exist_ok=True)

LOG_FILE = STATE_DIR / "vault-backup.log"
"""Path: The file path for the watcher process logs."""

PID_FILE = STATE_DIR / "watch.pid"
"""Path: The file path storing the watcher's process ID."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/vault-backup"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The global application configuration file."""

LOCAL_CONFIG_NAME = "vault-backup.toml"
"""str: Per-repository configuration file, looked up in the repository root."""

SETTINGS_FILE_NAME = "vault-backup.json"
"""str: The persisted settings record, stored inside the repository's .git dir."""

# --- Backup Defaults ---
DEFAULT_COMMIT_MESSAGE = "vault backup: {{date}}"
DEFAULT_DATE_FORMAT = "YYYY-MM-DD HH:mm:ss"

STAGE_ALL_PATTERN = "."
"""str: Pathspec handed to `git add -A` to stage every change in one call."""

MS_PER_MINUTE = 60_000

# --- Status Line ---
STATUS_PREFIX = "git"
MAX_MESSAGE_LENGTH = 100
MESSAGE_TIMEOUT = 4
"""int: Seconds a success message suppresses the phase display."""

ERROR_TIMEOUT = 10
"""int: Seconds an operation error stays on the status line."""

REFRESH_PERIOD_MS = 1000
"""int: Period of the status line refresh timer."""

NOTIFY_TIMEOUT = 10
"""int: Seconds before a desktop notification helper is abandoned."""
