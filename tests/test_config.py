"""Tests for the configuration management subsystem."""

from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from vault_backup.config import Config, parse_interval
from vault_backup.errors import ValidationError


@pytest.fixture(autouse=True)
def clear_config_cache(tmp_path: Path, mocker: MagicMock) -> Any:
    """Ensures every test starts with a clean config cache and no global file."""
    mocker.patch("vault_backup.config.CONFIG_FILE", tmp_path / "missing.toml")
    Config._global_cache = None
    yield
    Config._global_cache = None


def test_config_defaults() -> None:
    """Verifies that the configuration initializes with sensible defaults."""
    conf = Config()
    assert conf.display.message_timeout == 4
    assert conf.display.error_timeout == 10
    assert conf.display.max_message_length == 100
    assert conf.defaults.commit_message == "vault backup: {{date}}"
    assert conf.defaults.commit_date_format == "YYYY-MM-DD HH:mm:ss"
    assert conf.defaults.auto_save_interval == 0
    assert conf.defaults.auto_push is True


def test_config_load_merges_layers(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies the cascading merge logic (Defaults -> Global -> Local).

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        mocker (MagicMock): Pytest fixture for mocking.
    """
    # 1. Setup Global Config (Real File in tmp_path)
    global_config_path = tmp_path / "global_config.toml"
    global_config_path.write_text(
        '[defaults]\ncommit_message = "notes: {{date}}"\nauto_save_interval = 5\n'
        '[display]\nerror_timeout = "30s"\n'
    )

    # 2. Setup Local Config (Real file in tmp_path)
    local_toml = tmp_path / "vault-backup.toml"
    local_toml.write_text('[defaults]\nauto_save_interval = "1h"\n')

    # Point the global CONFIG_FILE constant to our real temporary file
    mocker.patch("vault_backup.config.CONFIG_FILE", global_config_path)

    # 3. Load Config (specifying tmp_path as the repo root)
    conf = Config.load(repo_path=tmp_path)

    # 4. Assertions
    assert conf.defaults.commit_message == "notes: {{date}}"  # From Global
    assert conf.display.error_timeout == 30  # From Global
    assert conf.defaults.auto_save_interval == 60  # Local overrides Global

    # The cached global layer is not touched by local overrides.
    assert Config.load().defaults.auto_save_interval == 5


def test_parse_size() -> None:
    """Verifies that human-readable sizes are correctly converted to bytes."""
    from vault_backup.config import parse_size

    assert parse_size(100) == 100
    assert parse_size("100kb") == 102400
    assert parse_size("10 MB") == 10485760
    assert parse_size("1.5gb") == int(1.5 * 1024**3)

    with pytest.raises(ValueError, match=r"Invalid size format '100 bits'"):
        parse_size("100 bits")


def test_parse_time() -> None:
    """Verifies that human-readable times are correctly converted to seconds."""
    from vault_backup.config import parse_time

    assert parse_time(50) == 50
    assert parse_time("30s") == 30
    assert parse_time("10 min") == 600
    assert parse_time("2 hrs") == 7200

    with pytest.raises(ValueError, match=r"Invalid time format '10 lightyears'"):
        parse_time("10 lightyears")


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (15, 15),
        (0, 0),
        (-3, -3),
        ("15", 15),
        (" 7 ", 7),
        ("-1", -1),
        ("5.0", 5),
        (2.0, 2),
        ("10m", 10),
        ("30min", 30),
        ("1.5h", 90),
    ],
)
def test_parse_interval(value: int | float | str, expected: int) -> None:
    """Verifies that intervals are converted to whole minutes.

    Args:
        value (int | float | str): The interval as entered.
        expected (int): The interval in minutes.
    """
    assert parse_interval(value) == expected


@pytest.mark.parametrize(
    ("value", "message"),
    [
        ("often", "Invalid interval format"),
        ("", "Invalid interval format"),
        (True, "Invalid interval format"),
        ("90s", "not a whole number of minutes"),
        ("2.5", "not a whole number of minutes"),
        (1.5, "not a whole number of minutes"),
        ("inf", "not a whole number of minutes"),
        ("nan", "not a whole number of minutes"),
    ],
)
def test_parse_interval_rejects(value: int | float | str, message: str) -> None:
    with pytest.raises(ValidationError, match=message):
        parse_interval(value)


def test_config_invalid_keys_and_values(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that unknown keys are ignored and invalid values fallback to defaults.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        caplog (pytest.LogCaptureFixture): Pytest fixture for capturing logs.
    """
    import logging

    caplog.set_level(logging.WARNING)

    local_toml = tmp_path / "vault-backup.toml"
    local_toml.write_text(
        "[defaults]\n"
        'auto_save_interval = "often"\n'
        'auto_push = "sometimes"\n'
        'fake_setting = "ignored"\n'
        "[limits]\n"
        'max_log_size = "10 gallons"\n'
        "[daemon]\n"
        "commit_interval = 5\n"
    )

    conf = Config.load(repo_path=tmp_path)

    # Assert fallbacks to defaults
    assert conf.defaults.auto_save_interval == 0
    assert conf.defaults.auto_push is True
    assert conf.limits.max_log_size == 5242880

    # Assert warnings were logged
    assert "Unknown config sections" in caplog.text
    assert "Unknown config keys in [defaults]: fake_setting" in caplog.text
    assert (
        "Config error in [defaults].auto_save_interval: Invalid interval format"
        in caplog.text
    )
    assert "Config error in [defaults].auto_push: Expected true/false" in caplog.text
    assert "Config error in [limits].max_log_size: Invalid size format" in caplog.text


def test_config_syntax_error_keeps_defaults(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    (tmp_path / "vault-backup.toml").write_text("[display\nbroken")

    conf = Config.load(repo_path=tmp_path)

    assert conf.display.message_timeout == 4
    assert "Config syntax error" in caplog.text
