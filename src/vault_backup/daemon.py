import asyncio
import atexit
import logging
import os
import signal
import sys
from collections.abc import Callable
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.text import Text

from .config import Config
from .constants import APP_NAME, LOG_FILE, PID_FILE
from .engine import BackupEngine
from .git_wrapper import GitRepo
from .settings import SettingsStore
from .status import StatusIndicator
from .system import Notifier, get_notifier

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)

# The watcher's status line and its log lines share one stderr console, so log
# records are printed above the live line instead of through it.
console = Console(stderr=True)

# Signals a running watcher accepts from the one-shot CLI commands.
PUSH_SIGNAL = getattr(signal, "SIGUSR1", None)
PULL_SIGNAL = getattr(signal, "SIGUSR2", None)
RELOAD_SIGNAL = getattr(signal, "SIGHUP", None)


def setup_logging(interactive: bool, max_log_size: int | None = None) -> None:
    """Configures the logging subsystem.

    Args:
        interactive (bool): If True (one-shot CLI commands), log to the rotating
                            file only, since results are printed to the console.
                            If False (the watcher), also log to stderr.
        max_log_size (int | None, optional): Bytes before the log file rotates.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    if max_log_size is None:
        max_log_size = Config.load().limits.max_log_size

    if not interactive:
        # Log to stderr through the live console.
        stream_handler = RichHandler(
            console=console,
            show_path=False,
            log_time_format="[%Y-%m-%d %H:%M:%S]",
        )
        stream_handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(stream_handler)

    file_handler = RotatingFileHandler(
        LOG_FILE,
        maxBytes=max_log_size,
        backupCount=5,
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)


def build_engine(
    repo_path: Path,
    notifier: Notifier | None = None,
    render: Callable[[str], None] | None = None,
) -> BackupEngine:
    """Wires a `BackupEngine` to the repository at `repo_path`.

    Args:
        repo_path (Path): The working directory to back up.
        notifier (Notifier | None, optional): Defaults to the desktop notifier.
        render (Callable[[str], None] | None, optional): Receives the status line.

    Returns:
        BackupEngine: An engine that has not been started yet.
    """
    config = Config.load(repo_path)
    store = SettingsStore.for_repo(repo_path)
    settings = store.load(config.defaults)
    indicator = StatusIndicator(
        render=render, max_length=config.display.max_message_length
    )
    return BackupEngine(
        GitRepo(repo_path),
        settings,
        store=store,
        config=config,
        indicator=indicator,
        notifier=notifier or get_notifier(),
    )


def read_pid_file() -> tuple[int, Path] | None:
    """Returns the PID and repository of a live watcher, if one is running.

    Returns:
        tuple[int, Path] | None: (pid, repo_path), or None if no watcher is alive.
    """
    if not PID_FILE.exists():
        return None
    try:
        pid_str, _, path_str = PID_FILE.read_text().partition("\n")
        pid = int(pid_str.strip())
        os.kill(pid, 0)
    except (ValueError, OSError):
        return None
    return pid, Path(path_str.strip())


def find_watcher(repo_path: Path) -> int | None:
    """Returns the PID of the live watcher backing up `repo_path`, if any."""
    running = read_pid_file()
    if running is None:
        return None
    pid, watched = running
    if watched != repo_path.resolve():
        return None
    return pid


def signal_watcher(repo_path: Path, sig: signal.Signals | None) -> bool:
    """Hands a command to the watcher running on `repo_path`, if any.

    Args:
        repo_path (Path): The repository the command targets.
        sig (signal.Signals | None): PUSH_SIGNAL, PULL_SIGNAL or RELOAD_SIGNAL.

    Returns:
        bool: True if the watcher was signalled.
    """
    if sig is None:
        return False
    pid = find_watcher(repo_path)
    if pid is None:
        return False
    try:
        os.kill(pid, sig)
    except OSError as e:
        logger.warning(f"Could not signal watcher {pid}: {e}")
        return False
    logger.info(f"Forwarded {sig.name} to watcher {pid}.")
    return True


def request_checkout(repo_path: Path, branch: str) -> bool:
    """Asks the watcher running on `repo_path` to check out `branch`.

    The branch is written to the saved settings and the watcher is told to
    reload them; it checks the branch out between cycles.

    Args:
        repo_path (Path): The repository the command targets.
        branch (str): The branch to check out.

    Returns:
        bool: True if a watcher took the request.
    """
    if RELOAD_SIGNAL is None or find_watcher(repo_path) is None:
        return False
    store = SettingsStore.for_repo(repo_path)
    settings = store.load(Config.load(repo_path).defaults)
    settings.current_branch = branch
    store.save(settings)
    return signal_watcher(repo_path, RELOAD_SIGNAL)


async def watch(repo_path: Path, live: Live | None = None) -> int:
    """Runs the engine until SIGINT/SIGTERM.

    Args:
        repo_path (Path): The working directory to back up.
        live (Live | None, optional): Receives the status line.

    Returns:
        int: The process exit code.
    """

    def render(text: str) -> None:
        if live is not None:
            live.update(Text(text))

    engine = build_engine(repo_path, render=render)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    handlers = {
        signal.SIGINT: stop_event.set,
        signal.SIGTERM: stop_event.set,
    }
    if PUSH_SIGNAL is not None:
        handlers[PUSH_SIGNAL] = lambda: engine.spawn(engine.commit_and_push())
    if PULL_SIGNAL is not None:
        handlers[PULL_SIGNAL] = lambda: engine.spawn(engine.pull_from_remote())
    if RELOAD_SIGNAL is not None:
        handlers[RELOAD_SIGNAL] = lambda: engine.spawn(engine.reload())

    for sig, handler in handlers.items():
        try:
            loop.add_signal_handler(sig, handler)
        except NotImplementedError:
            # Windows event loops do not support signal handlers.
            pass

    if not await engine.start():
        await engine.stop()
        return 1

    if engine.settings.auto_save_interval <= 0:
        logger.info("Automatic backup is disabled; waiting for manual commands.")

    await stop_event.wait()
    logger.info("Shutting down...")
    await engine.stop()
    return 0


def main(repo_path: Path | None = None) -> None:
    """The watcher entry point: backs up the working directory on a timer.

    Args:
        repo_path (Path | None, optional): Defaults to the current directory.
    """
    repo_path = (repo_path or Path.cwd()).resolve()
    config = Config.load(repo_path)
    setup_logging(interactive=False, max_log_size=config.limits.max_log_size)

    # PID File Management.
    try:
        with open(PID_FILE, "w") as f:
            f.write(f"{os.getpid()}\n{repo_path}")

        # Ensure cleanup on exit.
        atexit.register(lambda: PID_FILE.unlink(missing_ok=True))
    except OSError as e:
        logger.warning(f"Could not write PID file: {e}")

    with Live(Text("git: starting.."), console=console, transient=True) as live:
        code = asyncio.run(watch(repo_path, live))
    sys.exit(code)


if __name__ == "__main__":
    main()
