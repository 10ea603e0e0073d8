import logging
import math
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_COMMIT_MESSAGE,
    DEFAULT_DATE_FORMAT,
    ERROR_TIMEOUT,
    LOCAL_CONFIG_NAME,
    MAX_MESSAGE_LENGTH,
    MESSAGE_TIMEOUT,
)
from .errors import ValidationError

logger = logging.getLogger(APP_NAME)


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | str) -> int:
    """Converts human-readable time strings (e.g., '10s', '1m') to seconds."""
    if isinstance(value, int):
        return value
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr)s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return int(num * multiplier[unit])


def parse_interval(value: int | float | str) -> int:
    """Converts an auto-backup interval to whole minutes.

    Accepts whole numbers (15, "15", 15.0) and durations that come to whole
    minutes ("30m", "1.5h"). Values <= 0 disable automatic backups.

    Args:
        value (int | float | str): The interval as entered by the user.

    Returns:
        int: The interval in whole minutes.

    Raises:
        ValidationError: If the value is not a finite whole number of minutes.
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid interval format '{value}'")
    if isinstance(value, int):
        return value
    text = str(value).strip().lower()
    try:
        number = float(text)
    except ValueError:
        try:
            seconds = parse_time(text)
        except ValueError:
            raise ValidationError(f"Invalid interval format '{value}'") from None
        if seconds % 60:
            raise ValidationError(
                f"Interval '{value}' is not a whole number of minutes"
            ) from None
        return seconds // 60
    if not math.isfinite(number) or not number.is_integer():
        raise ValidationError(f"Interval '{value}' is not a whole number of minutes")
    return int(number)


@dataclass
class DisplayConfig:
    """Status line settings.

    Attributes:
        message_timeout (int): Seconds a success message stays on the status line.
        error_timeout (int): Seconds an error stays on the status line (0 = sticky).
        max_message_length (int): Messages are truncated to this many characters.
    """

    message_timeout: int = MESSAGE_TIMEOUT
    error_timeout: int = ERROR_TIMEOUT
    max_message_length: int = MAX_MESSAGE_LENGTH


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


@dataclass
class DefaultsConfig:
    """Initial backup settings for a repository that has none saved yet.

    Attributes:
        commit_message (str): Commit message template.
        commit_date_format (str): Format for the {{date}} placeholder.
        auto_save_interval (int): Minutes between automatic backups (0 = off).
        auto_pull_on_boot (bool): Pull when the watcher starts.
        auto_push (bool): Push after every backup commit.
        disable_notifications (bool): Only report through the status line.
    """

    commit_message: str = DEFAULT_COMMIT_MESSAGE
    commit_date_format: str = DEFAULT_DATE_FORMAT
    auto_save_interval: int = 0
    auto_pull_on_boot: bool = False
    auto_push: bool = True
    disable_notifications: bool = False


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        display (DisplayConfig): Status line settings.
        limits (LimitsConfig): Resource limits.
        defaults (DefaultsConfig): Seed values for new backup settings.
    """

    display: DisplayConfig = field(default_factory=DisplayConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    defaults: DefaultsConfig = field(default_factory=DefaultsConfig)

    # Cache for the base global configuration
    _global_cache: "Config | None" = None

    @classmethod
    def load(cls, repo_path: Path | None = None) -> "Config":
        """Loads and merges configuration from defaults, global, and local sources.

        Args:
            repo_path (Path | None): The repository root to search for local config.

        Returns:
            Config: The fully merged configuration object.
        """
        # 1. Load or Retrieve Global Config
        if cls._global_cache is None:
            instance = cls()
            if CONFIG_FILE.exists():
                instance._merge_from_file(CONFIG_FILE)
            cls._global_cache = instance

        # Start with a copy of the cached global config
        instance = replace(cls._global_cache)

        # 2. Load Local Config (if applicable)
        if repo_path:
            local_toml = repo_path / LOCAL_CONFIG_NAME
            if local_toml.exists():
                instance._merge_from_file(local_toml)

        return instance

    def _merge_from_file(self, path: Path) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if not data:
                return

            unknown = set(data) - {"display", "limits", "defaults"}
            if unknown:
                logger.warning(
                    f"Unknown config sections in {path}: {', '.join(sorted(unknown))}. Ignoring."
                )

            if "display" in data:
                self.display = self._update_dataclass(
                    "display", self.display, data["display"]
                )
            if "limits" in data:
                self.limits = self._update_dataclass(
                    "limits", self.limits, data["limits"]
                )
            if "defaults" in data:
                self.defaults = self._update_dataclass(
                    "defaults", self.defaults, data["defaults"]
                )

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except Exception as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        # 1. Catch and warn about typos / unknown keys
        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        # 2. Process valid keys
        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                # Route specific keys through our parsers
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k in ["message_timeout", "error_timeout"]:
                    filtered_updates[k] = parse_time(v)
                elif k == "auto_save_interval":
                    filtered_updates[k] = parse_interval(v)
                elif isinstance(getattr(instance, k), bool):
                    if not isinstance(v, bool):
                        raise ValueError(f"Expected true/false, got '{v}'")
                    filtered_updates[k] = v
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
