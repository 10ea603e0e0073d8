"""The backup cycle state machine.

`BackupEngine` turns "the working directory has changes" into "committed and
pushed" and "the remote is ahead" into "pulled", one git call at a time, on a
timer and on demand. Only one cycle runs at a time: a cycle starts only from
`CycleState.IDLE`, and every cycle ends back there whether it succeeds or not.
"""

import asyncio
import datetime
import logging
import time
from collections.abc import Callable, Coroutine
from typing import Any

from .config import Config, parse_interval
from .constants import (
    APP_NAME,
    NOTIFICATION_TITLE,
    REFRESH_PERIOD_MS,
    STAGE_ALL_PATTERN,
)
from .errors import OperationError, SetupError
from .formatter import format_commit_message, needs_file_count
from .git_wrapper import BranchSummary, VersionControlClient
from .scheduler import Scheduler, minutes_to_ms
from .settings import BackupSettings, SettingsStore
from .state import CycleState, RepositoryState
from .status import StatusIndicator
from .system import Notifier

logger = logging.getLogger(APP_NAME)

BUSY_MESSAGE = "Another git operation is in progress"

ERROR_TEXT = {
    CycleState.CHECKING_STATUS: "Status check failed",
    CycleState.STAGING: "Cannot add files",
    CycleState.COMMITTING: "Commit failed",
    CycleState.PUSHING: "Push failed",
    CycleState.PULLING: "Pull failed",
    CycleState.CHECKING_OUT: "Checkout failed",
}


class BackupEngine:
    """Drives backup and pull cycles for one repository.

    Attributes:
        client (VersionControlClient): The git backend.
        settings (BackupSettings): The persisted settings, saved on every change.
        repository (RepositoryState): Branch, remote and last sync time.
        indicator (StatusIndicator): The status line fed by every transition.
        notifier (Notifier): Receives transient notifications.
    """

    def __init__(
        self,
        client: VersionControlClient,
        settings: BackupSettings,
        store: SettingsStore | None = None,
        config: Config | None = None,
        indicator: StatusIndicator | None = None,
        notifier: Notifier | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.settings = settings
        self.store = store
        self.config = config or Config()
        self.indicator = indicator or StatusIndicator(
            clock=clock, max_length=self.config.display.max_message_length
        )
        self.notifier = notifier or Notifier()
        self.repository = RepositoryState(
            branch=settings.current_branch, remote=settings.remote
        )
        self.connected = False

        self._state = CycleState.IDLE
        self._clock = clock
        self._loop = loop
        self._backup_timer: Scheduler | None = None
        self._refresh_timer: Scheduler | None = None
        self._tasks: set[Any] = set()

    # --- State ---

    @property
    def state(self) -> CycleState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._state is not CycleState.IDLE

    @property
    def auto_backup_active(self) -> bool:
        return self._backup_timer is not None and self._backup_timer.active

    def set_state(self, state: CycleState) -> None:
        self._state = state
        self.refresh_status()

    def refresh_status(self) -> None:
        self.indicator.display_state(self._state, self.repository.last_sync)

    def _acquire(self, state: CycleState) -> bool:
        """Moves from IDLE to `state`; refuses if another cycle is running."""
        if self.busy:
            logger.info(
                f"Skipped {state.value}: '{self._state.value}' is already running."
            )
            return False
        self.set_state(state)
        return True

    def _mark_synced(self) -> None:
        self.repository.last_sync = self._clock()

    # --- Lifecycle ---

    async def connect(self) -> None:
        """Verifies the repository and resolves its branch and remote.

        Raises:
            SetupError: If the working directory is not a repository root, HEAD is
                detached, or no remote is configured.
        """
        try:
            if not await self.client.is_repo_root():
                raise SetupError("Valid git repository not found.")
            branch = await self.client.current_branch()
            remotes = await self.client.remotes()
            if not branch:
                raise SetupError("No branch checked out (detached HEAD).")
            if not remotes:
                raise SetupError("Failed to detect remote.")

            remote = (
                self.settings.remote if self.settings.remote in remotes else remotes[0]
            )
            url = await self.client.remote_url(remote)
        except OperationError as e:
            raise SetupError(f"Could not inspect repository: {e}") from e

        if not url:
            raise SetupError("Failed to detect remote.")

        self.repository.branch = branch
        self.repository.remote = remote
        self.settings.current_branch = branch
        self.settings.remote = remote
        self.connected = True
        logger.info(f"Backing up branch '{branch}' to remote '{remote}' ({url}).")

    async def start(self) -> bool:
        """Connects, arms the status refresh and auto-backup timers, and pulls on boot.

        Returns:
            bool: False if the repository could not be set up; the error is shown
            on the status line and no backup timer is armed.
        """
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        self._refresh_timer = Scheduler(
            self._loop, self.refresh_status, name="status refresh"
        )
        self._refresh_timer.start(REFRESH_PERIOD_MS)
        self.refresh_status()

        try:
            await self.connect()
        except SetupError as e:
            self.display_error(str(e), timeout=0)
            return False

        self.save_settings()

        if self.settings.auto_pull_on_boot:
            await self.pull_from_remote()

        self._backup_timer = Scheduler(
            self._loop, self._on_backup_tick, name="auto backup"
        )
        self.enable_auto_backup()
        return True

    async def stop(self) -> None:
        """Cancels both timers, waits for in-flight cycles, and saves settings."""
        self.disable_auto_backup()
        if self._refresh_timer is not None:
            self._refresh_timer.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self.connected:
            self.save_settings()

    def save_settings(self) -> None:
        if self.store is not None:
            self.store.save(self.settings)

    async def reload(self) -> None:
        """Re-reads settings written by another process.

        The branch and remote are resolved again from the repository. If the
        saved branch differs from the checked-out one (`vault-backup branch NAME`
        hands its request over this way), it is checked out. The backup timer is
        re-armed only if the interval changed or the timer is not running.
        """
        if self.store is None:
            return
        if self.busy:
            logger.info("Settings reload deferred: a cycle is running.")
            self.spawn(self._reload_when_idle())
            return

        previous_interval = self.settings.auto_save_interval
        self.settings = self.store.load(self.config.defaults)
        requested_branch = self.settings.current_branch
        try:
            await self.connect()
        except SetupError as e:
            self.display_error(str(e), timeout=0)
            self.disable_auto_backup()
            return

        if requested_branch and requested_branch != self.repository.branch:
            if not await self.set_current_branch(requested_branch):
                # Keep the file in line with the branch that is checked out.
                self.save_settings()

        if (
            self.settings.auto_save_interval != previous_interval
            or not self.auto_backup_active
        ):
            self.enable_auto_backup()
        logger.info("Settings reloaded.")

    async def _reload_when_idle(self) -> None:
        while self.busy:
            await asyncio.sleep(REFRESH_PERIOD_MS / 1000)
        await self.reload()

    # --- Scheduling ---

    def enable_auto_backup(self) -> bool:
        """(Re-)arms the backup timer from the configured interval.

        Returns:
            bool: True if a timer is armed afterwards.
        """
        if self._backup_timer is None:
            return False
        return self._backup_timer.start(
            minutes_to_ms(self.settings.auto_save_interval)
        )

    def disable_auto_backup(self) -> bool:
        """Cancels the backup timer.

        Returns:
            bool: True if a timer was active.
        """
        if self._backup_timer is None:
            return False
        return self._backup_timer.cancel()

    def _on_backup_tick(self) -> None:
        self.spawn(self.run_backup_cycle())

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        """Runs a cycle or command in the background on the engine's loop."""
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        task = self._loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # --- Cycles ---

    async def run_backup_cycle(self) -> int:
        """Stages, commits and (optionally) pushes every change.

        Returns:
            int: The number of files committed; 0 if there was nothing to commit,
            another cycle was running, or staging/committing failed.
        """
        if not self._acquire(CycleState.CHECKING_STATUS):
            return 0

        committed = 0
        try:
            files = await self.client.status()
            if not files:
                return 0

            self.set_state(CycleState.STAGING)
            await self.client.add(STAGE_ALL_PATTERN)

            self.set_state(CycleState.COMMITTING)
            message = await self.format_commit_message()
            await self.client.commit(message)
            committed = len(files)
            self.display_message(f"Committed {committed} files")

            if self.settings.auto_push:
                self.set_state(CycleState.PUSHING)
                await self.push()
                self.display_message(f"Pushed {committed} files to remote")

            return committed
        except OperationError as e:
            self.display_error(f"{ERROR_TEXT[self._state]}: {e}")
            return committed
        finally:
            self.set_state(CycleState.IDLE)

    async def run_pull_cycle(self, report: bool = False) -> int:
        """Pulls the configured remote/branch.

        Args:
            report (bool, optional): Whether to display the outcome on success.

        Returns:
            int: The number of files the pull updated; 0 on failure.
        """
        if not self._acquire(CycleState.PULLING):
            return 0

        try:
            updated = await self.pull()
        except OperationError as e:
            self.display_error(f"{ERROR_TEXT[CycleState.PULLING]}: {e}")
            return 0
        finally:
            self.set_state(CycleState.IDLE)

        if report:
            if updated > 0:
                self.display_message(f"Pulled new changes. {updated} files updated")
            else:
                self.display_message("Everything is up-to-date")
        return updated

    async def push(self) -> None:
        """Pushes the current branch and records the sync time."""
        await self.client.push(self.repository.remote, self.repository.branch)
        self._mark_synced()

    async def pull(self) -> int:
        """Pulls the current branch and records the sync time.

        Returns:
            int: The number of files updated.
        """
        result = await self.client.pull(self.repository.remote, self.repository.branch)
        self._mark_synced()
        return result.updated_file_count

    # --- Commands ---

    async def pull_from_remote(self) -> int:
        """The "pull from remote" command."""
        if self.busy:
            self.display_message(BUSY_MESSAGE)
            return 0
        return await self.run_pull_cycle(report=True)

    async def commit_and_push(self) -> int:
        """The "commit all changes and push" command.

        Reports "No changes detected" without touching the index when the
        working directory is clean.

        Returns:
            int: The number of files committed.
        """
        if not self._acquire(CycleState.CHECKING_STATUS):
            self.display_message(BUSY_MESSAGE)
            return 0

        try:
            files = await self.client.status()
        except OperationError as e:
            self.display_error(f"{ERROR_TEXT[CycleState.CHECKING_STATUS]}: {e}")
            return 0
        finally:
            self.set_state(CycleState.IDLE)

        if not files:
            self.display_message("No changes detected")
            return 0
        return await self.run_backup_cycle()

    async def format_commit_message(self, template: str | None = None) -> str:
        """Renders the commit message template against the live repository.

        A status query is made only if the template uses {{numFiles}}.

        Args:
            template (str | None, optional): Defaults to the configured template.

        Returns:
            str: The commit message.
        """
        if template is None:
            template = self.settings.commit_message
        num_files = None
        if needs_file_count(template):
            num_files = len(await self.client.status())
        now = datetime.datetime.fromtimestamp(self._clock())
        return format_commit_message(
            template, now, self.settings.commit_date_format, num_files
        )

    async def preview_commit_message(self) -> str | None:
        """Renders the message the next backup commit would use."""
        try:
            return await self.format_commit_message()
        except OperationError as e:
            self.display_error(f"{ERROR_TEXT[CycleState.CHECKING_STATUS]}: {e}")
            return None

    async def list_branches(self) -> BranchSummary | None:
        try:
            return await self.client.list_branches()
        except OperationError as e:
            self.display_error(f"Cannot list branches: {e}")
            return None

    # --- Configuration ---

    def set_interval(self, value: int | float | str) -> int:
        """Changes the auto-backup interval and re-arms the timer.

        Args:
            value (int | float | str): Whole minutes; <= 0 disables auto-backup.

        Returns:
            int: The new interval.

        Raises:
            ValidationError: If the value is not a whole number. Nothing changes.
        """
        minutes = parse_interval(value)
        self.settings.auto_save_interval = minutes
        self.save_settings()

        if minutes > 0:
            if self.enable_auto_backup():
                self._announce(f"Automatic backup enabled! Every {minutes} minutes.")
        elif self.disable_auto_backup():
            self._announce("Automatic backup disabled!")
        return minutes

    def set_commit_message(self, template: str) -> None:
        self.settings.commit_message = template
        self.save_settings()

    def set_date_format(self, date_format: str) -> None:
        self.settings.commit_date_format = date_format
        self.save_settings()

    def set_auto_pull_on_boot(self, enabled: bool) -> None:
        self.settings.auto_pull_on_boot = enabled
        self.save_settings()

    def set_auto_push(self, enabled: bool) -> None:
        self.settings.auto_push = enabled
        self.save_settings()

    def set_disable_notifications(self, disabled: bool) -> None:
        self.settings.disable_notifications = disabled
        self.save_settings()

    async def set_current_branch(self, branch: str) -> bool:
        """Checks out another branch; backups then go to that branch.

        The checkout holds the engine like a cycle does, so no backup can stage
        or push while HEAD is moving.

        Args:
            branch (str): The branch to check out.

        Returns:
            bool: True if `branch` is checked out afterwards.
        """
        if branch == self.repository.branch:
            return True
        if not self._acquire(CycleState.CHECKING_OUT):
            self.display_message(BUSY_MESSAGE)
            return False

        try:
            await self.client.checkout(branch)
        except OperationError as e:
            self.display_error(f"{ERROR_TEXT[CycleState.CHECKING_OUT]}: {e}")
            return False
        finally:
            self.set_state(CycleState.IDLE)

        self.repository.branch = branch
        self.settings.current_branch = branch
        self.save_settings()
        self._announce(f"Checked out to {branch}")
        return True

    # --- Displaying Messages ---

    def display_message(self, message: str, timeout: float | None = None) -> None:
        """Shows a message on the status line and, unless disabled, as a notification."""
        if timeout is None:
            timeout = self.config.display.message_timeout
        self.indicator.display_message(message, timeout)
        if not self.settings.disable_notifications:
            self.notifier.notify(NOTIFICATION_TITLE, message)
        logger.info(message)

    def display_error(self, message: str, timeout: float | None = None) -> None:
        """Shows an error on the status line and always as a notification."""
        if timeout is None:
            timeout = self.config.display.error_timeout
        self.indicator.display_message(message, timeout)
        self.notifier.notify(NOTIFICATION_TITLE, message, error=True)
        logger.error(message)

    def _announce(self, message: str) -> None:
        self.notifier.notify(NOTIFICATION_TITLE, message)
        logger.info(message)
