"""Tests for the repeating timer."""

from unittest.mock import MagicMock

import pytest

from conftest import FakeLoop
from vault_backup.scheduler import Scheduler, minutes_to_ms


def test_minutes_to_ms() -> None:
    assert minutes_to_ms(1) == 60_000
    assert minutes_to_ms(5) == 300_000
    assert minutes_to_ms(0) == 0


def test_fires_every_period(fake_loop: FakeLoop) -> None:
    """Verifies the callback runs once per elapsed period."""
    callback = MagicMock()
    timer = Scheduler(fake_loop, callback)

    assert timer.start(minutes_to_ms(5)) is True
    fake_loop.advance(5 * 60 - 1)
    callback.assert_not_called()

    fake_loop.advance(1)
    assert callback.call_count == 1

    fake_loop.advance(10 * 60)
    assert callback.call_count == 3


def test_non_positive_period_cancels(fake_loop: FakeLoop) -> None:
    """Verifies a period <= 0 leaves no timer behind."""
    callback = MagicMock()
    timer = Scheduler(fake_loop, callback)
    timer.start(1000)

    assert timer.start(0) is False
    assert not timer.active
    assert timer.start(-60_000) is False

    fake_loop.advance(3600)
    callback.assert_not_called()
    assert fake_loop.pending == []


def test_restart_keeps_single_timer(fake_loop: FakeLoop) -> None:
    """Verifies that re-arming replaces the pending tick instead of adding one."""
    callback = MagicMock()
    timer = Scheduler(fake_loop, callback)

    timer.start(60_000)
    timer.start(60_000)
    timer.start(120_000)

    assert len(fake_loop.pending) == 1
    assert timer.period_ms == 120_000
    fake_loop.advance(120)
    assert callback.call_count == 1


def test_cancel_reports_previous_state(fake_loop: FakeLoop) -> None:
    timer = Scheduler(fake_loop, MagicMock())

    assert timer.cancel() is False
    timer.start(1000)
    assert timer.cancel() is True
    assert timer.period_ms == 0


def test_callback_error_keeps_timer(
    fake_loop: FakeLoop, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that a failing tick is logged and the next tick still runs."""
    callback = MagicMock(side_effect=[RuntimeError("boom"), None])
    timer = Scheduler(fake_loop, callback, name="auto backup")
    timer.start(1000)

    fake_loop.advance(2)

    assert callback.call_count == 2
    assert timer.active
    assert "auto backup: tick failed" in caplog.text


def test_callback_may_cancel_its_timer(fake_loop: FakeLoop) -> None:
    """Verifies a tick that cancels the timer is not re-armed behind its back."""
    timer = Scheduler(fake_loop, lambda: timer.cancel())
    timer.start(1000)

    fake_loop.advance(5)

    assert not timer.active
    assert fake_loop.pending == []
