"""Tests for the persisted backup settings."""

import json
import logging
from pathlib import Path

import pytest

from vault_backup.config import DefaultsConfig
from vault_backup.settings import BackupSettings, SettingsStore


def test_for_repo_path(tmp_path: Path) -> None:
    store = SettingsStore.for_repo(tmp_path)
    assert store.path == tmp_path / ".git" / "vault-backup.json"


def test_load_missing_file_returns_defaults(tmp_path: Path) -> None:
    """Verifies that a repository without saved settings uses the defaults."""
    store = SettingsStore(tmp_path / "settings.json")

    settings = store.load()

    assert settings == BackupSettings()
    assert settings.commit_message == "vault backup: {{date}}"
    assert settings.auto_save_interval == 0
    assert settings.auto_push is True


def test_load_uses_configured_defaults(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "settings.json")
    defaults = DefaultsConfig(auto_save_interval=10, auto_push=False)

    settings = store.load(defaults)

    assert settings.auto_save_interval == 10
    assert settings.auto_push is False


def test_save_and_load(tmp_path: Path) -> None:
    """Verifies that saved settings are read back and no temp file is left."""
    store = SettingsStore(tmp_path / ".git" / "vault-backup.json")
    settings = BackupSettings(
        commit_message="{{numFiles}} notes",
        auto_save_interval=15,
        current_branch="drafts",
        remote="origin",
    )

    store.save(settings)

    assert store.load() == settings
    assert not store.path.with_suffix(".tmp").exists()
    data = json.loads(store.path.read_text())
    assert data["auto_save_interval"] == 15
    assert data["current_branch"] == "drafts"


@pytest.mark.parametrize("content", ["{not json", "[1, 2]", ""])
def test_load_malformed_file(tmp_path: Path, content: str) -> None:
    """Verifies that an unreadable settings file falls back to defaults.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        content (str): The corrupt file content.
    """
    path = tmp_path / "settings.json"
    path.write_text(content)

    assert SettingsStore(path).load() == BackupSettings()


def test_load_skips_unknown_keys_and_bad_values(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that each bad entry is dropped on its own, keeping the rest."""
    caplog.set_level(logging.WARNING)
    path = tmp_path / "settings.json"
    path.write_text(
        json.dumps(
            {
                "commit_message": "custom {{date}}",
                "auto_save_interval": "soon",
                "auto_push": "yes",
                "remote": 42,
                "legacy_option": True,
            }
        )
    )

    settings = SettingsStore(path).load()

    assert settings.commit_message == "custom {{date}}"
    assert settings.auto_save_interval == 0
    assert settings.auto_push is True
    assert settings.remote is None
    assert "Unknown settings keys: legacy_option" in caplog.text
    assert "Settings error in 'auto_save_interval'" in caplog.text


def test_save_failure_is_logged(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies a failed write is reported without raising."""
    blocker = tmp_path / "file"
    blocker.write_text("")
    store = SettingsStore(blocker / "settings.json")

    store.save(BackupSettings())

    assert "Failed to save settings" in caplog.text


def test_load_reads_duration_interval(tmp_path: Path) -> None:
    """Verifies the settings file takes the same interval forms as the CLI."""
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"auto_save_interval": "1h"}))

    assert SettingsStore(path).load().auto_save_interval == 60
