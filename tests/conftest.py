"""Shared fixtures: a synthetic event loop clock and a mocked git client."""

import datetime
from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest

from vault_backup.config import Config
from vault_backup.engine import BackupEngine
from vault_backup.git_wrapper import BranchSummary, FileStatus, GitRepo, PullResult
from vault_backup.settings import BackupSettings
from vault_backup.status import StatusIndicator
from vault_backup.system import Notifier

FROZEN_NOW = datetime.datetime(2024, 1, 1, 0, 0, 0).timestamp()


class FakeHandle:
    """Stand-in for `asyncio.TimerHandle`."""

    def __init__(self, when: float, callback: Callable[..., None], args: tuple):
        self.when = when
        self.callback = callback
        self.args = args
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class FakeTask:
    """Stand-in for `asyncio.Task` that records the coroutine without running it."""

    def __init__(self, name: str):
        self.name = name

    def add_done_callback(self, callback: Callable[[Any], None]) -> None:
        pass


class FakeLoop:
    """A synthetic clock implementing the event loop calls the timers use."""

    def __init__(self) -> None:
        self.now = 0.0
        self.handles: list[FakeHandle] = []
        self.tasks: list[FakeTask] = []

    def time(self) -> float:
        return self.now

    def call_later(
        self, delay: float, callback: Callable[..., None], *args: Any
    ) -> FakeHandle:
        handle = FakeHandle(self.now + delay, callback, args)
        self.handles.append(handle)
        return handle

    def create_task(self, coro: Any) -> FakeTask:
        task = FakeTask(coro.__qualname__)
        coro.close()
        self.tasks.append(task)
        return task

    @property
    def pending(self) -> list[FakeHandle]:
        return [h for h in self.handles if not h.cancelled() and h.when > self.now]

    def advance(self, seconds: float) -> None:
        """Moves the clock forward, firing every handle that falls due on the way."""
        target = self.now + seconds
        while True:
            due = [
                h for h in self.handles if not h.cancelled() and h.when <= target
            ]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self.handles.remove(handle)
            self.now = handle.when
            handle.callback(*handle.args)
        self.now = target


@pytest.fixture
def fake_loop() -> FakeLoop:
    return FakeLoop()


@pytest.fixture
def client(mocker: MagicMock) -> MagicMock:
    """A GitRepo mock for a clean repository on 'main' with remote 'origin'."""
    repo = mocker.MagicMock(spec=GitRepo)
    repo.is_repo_root.return_value = True
    repo.current_branch.return_value = "main"
    repo.remotes.return_value = ["origin"]
    repo.remote_url.return_value = "git@github.com:user/vault.git"
    repo.status.return_value = []
    repo.pull.return_value = PullResult()
    repo.list_branches.return_value = BranchSummary(
        current="main", all=["main", "drafts"]
    )
    return repo


@pytest.fixture
def notifier(mocker: MagicMock) -> MagicMock:
    return mocker.MagicMock(spec=Notifier)


@pytest.fixture
def settings() -> BackupSettings:
    return BackupSettings(current_branch="main", remote="origin")


@pytest.fixture
def make_engine(
    client: MagicMock,
    notifier: MagicMock,
    settings: BackupSettings,
    fake_loop: FakeLoop,
) -> Callable[..., BackupEngine]:
    """Builds an engine on the mocked client with a frozen clock at 2024-01-01."""

    def factory(**kwargs: Any) -> BackupEngine:
        clock = kwargs.pop("clock", lambda: FROZEN_NOW)
        engine = BackupEngine(
            kwargs.pop("client", client),
            kwargs.pop("settings", settings),
            config=kwargs.pop("config", Config()),
            indicator=kwargs.pop("indicator", StatusIndicator(clock=clock)),
            notifier=kwargs.pop("notifier", notifier),
            loop=kwargs.pop("loop", fake_loop),
            clock=clock,
            **kwargs,
        )
        engine.repository.branch = "main"
        engine.repository.remote = "origin"
        return engine

    return factory


def changes(*paths: str) -> list[FileStatus]:
    """Builds a ChangeSet of modified files."""
    return [FileStatus(path=p, index=" ", working_dir="M") for p in paths]
