import contextlib
import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

from .config import DefaultsConfig, parse_interval
from .constants import (
    APP_NAME,
    DEFAULT_COMMIT_MESSAGE,
    DEFAULT_DATE_FORMAT,
    SETTINGS_FILE_NAME,
)
from .errors import ValidationError

logger = logging.getLogger(APP_NAME)


@dataclass
class BackupSettings:
    """The persisted settings record of one repository.

    Attributes:
        commit_message (str): Template with {{date}} and {{numFiles}} placeholders.
        commit_date_format (str): Moment-style format for {{date}}.
        auto_save_interval (int): Minutes between automatic backups (<= 0 = off).
        auto_pull_on_boot (bool): Pull when the watcher starts.
        auto_push (bool): Push after every backup commit.
        disable_notifications (bool): Suppress success notifications.
        current_branch (str | None): Last known checked-out branch.
        remote (str | None): Last known remote name.
    """

    commit_message: str = DEFAULT_COMMIT_MESSAGE
    commit_date_format: str = DEFAULT_DATE_FORMAT
    auto_save_interval: int = 0
    auto_pull_on_boot: bool = False
    auto_push: bool = True
    disable_notifications: bool = False
    current_branch: str | None = None
    remote: str | None = None

    @classmethod
    def from_defaults(cls, defaults: DefaultsConfig) -> "BackupSettings":
        """Builds a settings record from the configured defaults."""
        return cls(**asdict(defaults))

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], base: "BackupSettings | None" = None
    ) -> "BackupSettings":
        """Builds a settings record, skipping unknown keys and invalid values.

        Args:
            data (dict[str, Any]): The decoded JSON document.
            base (BackupSettings | None, optional): Values used for missing or
                invalid keys. Defaults to the built-in defaults.

        Returns:
            BackupSettings: The settings.
        """
        settings = base if base is not None else cls()
        known = {f.name: f for f in fields(cls)}

        unknown = set(data) - set(known)
        if unknown:
            logger.warning(
                f"Unknown settings keys: {', '.join(sorted(unknown))}. Ignoring."
            )

        for key, value in data.items():
            if key not in known:
                continue
            current = getattr(settings, key)
            try:
                if key == "auto_save_interval":
                    value = parse_interval(value)
                elif isinstance(current, bool) and not isinstance(value, bool):
                    raise ValidationError(f"Expected true/false, got '{value}'")
                elif key in ("current_branch", "remote"):
                    if value is not None and not isinstance(value, str):
                        raise ValidationError(f"Expected a string, got '{value}'")
                elif not isinstance(value, str):
                    raise ValidationError(f"Expected a string, got '{value}'")
            except ValidationError as e:
                logger.warning(f"Settings error in '{key}': {e}. Keeping default.")
                continue
            setattr(settings, key, value)
        return settings

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class SettingsStore:
    """Loads and saves `BackupSettings` as JSON inside the repository's .git dir.

    Attributes:
        path (Path): The settings file.
    """

    def __init__(self, path: Path):
        self.path = path

    @classmethod
    def for_repo(cls, repo_path: Path) -> "SettingsStore":
        return cls(repo_path / ".git" / SETTINGS_FILE_NAME)

    def load(self, defaults: DefaultsConfig | None = None) -> BackupSettings:
        """Reads the settings, falling back to defaults if absent or unreadable.

        Args:
            defaults (DefaultsConfig | None, optional): Configured seed values.

        Returns:
            BackupSettings: The loaded settings.
        """
        base = (
            BackupSettings.from_defaults(defaults)
            if defaults is not None
            else BackupSettings()
        )
        if not self.path.exists():
            return base

        try:
            content = self.path.read_text().strip()
            if not content:
                return base
            data = json.loads(content)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to read settings from {self.path}: {e}")
            return base

        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed settings in {self.path}")
            return base
        return BackupSettings.from_dict(data, base=base)

    def save(self, settings: BackupSettings) -> None:
        """Persists the settings to disk atomically.

        Args:
            settings (BackupSettings): The settings to write.
        """
        tmp_file = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_file, "w") as f:
                json.dump(settings.to_dict(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())

            # Atomic pointer swap at the filesystem level
            os.replace(tmp_file, self.path)
        except OSError as e:
            logger.error(f"Failed to save settings to {self.path}: {e}")
            if tmp_file.exists():
                with contextlib.suppress(OSError):
                    tmp_file.unlink()
