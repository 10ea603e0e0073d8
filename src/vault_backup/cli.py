import argparse
import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

from rich.console import Console
from rich.table import Table

from . import daemon
from .config import Config
from .constants import APP_NAME
from .engine import BackupEngine
from .errors import OperationError, SetupError, ValidationError
from .system import ConsoleNotifier

logger = logging.getLogger(APP_NAME)
console = Console()

T = TypeVar("T")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}

SETTING_KEYS = {
    "interval": "auto_save_interval",
    "commit-message": "commit_message",
    "date-format": "commit_date_format",
    "auto-pull-on-boot": "auto_pull_on_boot",
    "auto-push": "auto_push",
    "disable-notifications": "disable_notifications",
}
"""dict[str, str]: CLI names of the editable settings -> settings record fields."""

SETTING_HELP = {
    "auto_save_interval": "Minutes between backups, e.g. 15 or 1h (<= 0 disables)",
    "commit_message": "Commit message; placeholders {{date}} and {{numFiles}}",
    "commit_date_format": 'Format of {{date}}, e.g. "YYYY-MM-DD HH:mm:ss"',
    "auto_pull_on_boot": "Pull updates when the watcher starts",
    "auto_push": "Push changes after every backup commit",
    "disable_notifications": "Only report through the status line",
}


def parse_bool(value: str) -> bool:
    """Parses a yes/no style toggle.

    Raises:
        ValidationError: If the value is not a recognised toggle.
    """
    text = value.strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValidationError(f"Expected true/false, got '{value}'")


def run_command(
    repo_path: Path, command: Callable[[BackupEngine], Awaitable[T]]
) -> T:
    """Connects a one-shot engine to the repository and runs a command on it.

    Args:
        repo_path (Path): The repository.
        command (Callable[[BackupEngine], Awaitable[T]]): The coroutine to run.

    Returns:
        T: The command's result.
    """
    engine = daemon.build_engine(repo_path, notifier=ConsoleNotifier(console))

    async def runner() -> T:
        await engine.connect()
        return await command(engine)

    try:
        return asyncio.run(runner())
    except SetupError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        sys.exit(1)


def commit_and_push(repo_path: Path) -> None:
    """Commits all changes and pushes, via the running watcher when there is one."""
    if daemon.signal_watcher(repo_path, daemon.PUSH_SIGNAL):
        console.print("[dim]Handed over to the running watcher.[/dim]")
        return
    run_command(repo_path, lambda engine: engine.commit_and_push())


def pull(repo_path: Path) -> None:
    """Pulls from the remote, via the running watcher when there is one."""
    if daemon.signal_watcher(repo_path, daemon.PULL_SIGNAL):
        console.print("[dim]Handed over to the running watcher.[/dim]")
        return
    run_command(repo_path, lambda engine: engine.pull_from_remote())


def preview(repo_path: Path) -> None:
    """Prints the message the next backup commit would use."""
    message = run_command(repo_path, lambda engine: engine.preview_commit_message())
    if message is not None:
        console.print(message)


def branch(repo_path: Path, name: str | None) -> None:
    """Lists local branches, or checks one out when a name is given."""
    if name is None:
        summary = run_command(repo_path, lambda engine: engine.list_branches())
        if summary is None:
            sys.exit(1)
        for b in summary.all:
            if b == summary.current:
                console.print(f"[bold green]* {b}[/bold green]")
            else:
                console.print(f"  {b}")
        return

    # A running watcher checks out between its own cycles.
    if daemon.request_checkout(repo_path, name):
        console.print("[dim]Handed over to the running watcher.[/dim]")
        return
    if not run_command(repo_path, lambda engine: engine.set_current_branch(name)):
        sys.exit(1)


def show_config(repo_path: Path) -> None:
    """Prints the backup settings of the repository."""
    engine = daemon.build_engine(repo_path)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_column("Description", style="dim")

    for key, field_name in SETTING_KEYS.items():
        value = getattr(engine.settings, field_name)
        table.add_row(key, str(value), SETTING_HELP[field_name])
    table.add_row("branch", str(engine.settings.current_branch or "-"), "Cached")
    table.add_row("remote", str(engine.settings.remote or "-"), "Cached")
    console.print(table)


def set_config(repo_path: Path, key: str, value: str) -> None:
    """Changes one setting and tells a running watcher to reload."""
    field_name = SETTING_KEYS[key]

    async def apply(engine: BackupEngine) -> None:
        if field_name == "auto_save_interval":
            minutes = engine.set_interval(value)
            if minutes > 0:
                console.print(f"Automatic backup every {minutes} minutes.")
            else:
                console.print("Automatic backup disabled.")
        elif field_name == "commit_message":
            engine.set_commit_message(value)
        elif field_name == "commit_date_format":
            engine.set_date_format(value)
        elif field_name == "auto_pull_on_boot":
            engine.set_auto_pull_on_boot(parse_bool(value))
        elif field_name == "auto_push":
            engine.set_auto_push(parse_bool(value))
        elif field_name == "disable_notifications":
            engine.set_disable_notifications(parse_bool(value))

    try:
        run_command(repo_path, apply)
    except ValidationError as e:
        logger.warning(f"Rejected {key}={value!r}: {e}")
        if field_name == "auto_save_interval":
            console.print("[bold red]ERROR:[/bold red] Please specify a valid number.")
        else:
            console.print(f"[bold red]ERROR:[/bold red] {e}")
        sys.exit(1)

    console.print(f"[bold green]✔[/bold green] {key} = {value}")
    daemon.signal_watcher(repo_path, daemon.RELOAD_SIGNAL)


def show_status(repo_path: Path) -> None:
    """Displays the watcher state and the pending changes of the repository."""
    running = daemon.read_pid_file()
    if running is not None and running[1] == repo_path.resolve():
        console.print(f"Watcher: [bold green]Active[/bold green] (pid {running[0]})")
    else:
        console.print("Watcher: [bold red]Stopped[/bold red]")

    async def inspect(engine: BackupEngine) -> tuple[BackupEngine, int | None]:
        try:
            return engine, len(await engine.client.status())
        except OperationError as e:
            logger.debug(f"Status check failed: {e}")
            return engine, None

    engine, pending = run_command(repo_path, inspect)
    interval = engine.settings.auto_save_interval
    console.print(f"Branch:  {engine.repository.branch}")
    console.print(f"Remote:  {engine.repository.remote}")
    if pending is None:
        console.print("Pending: [yellow]unknown[/yellow]")
    else:
        console.print(f"Pending: {pending} files changed")
    if interval > 0:
        console.print(f"Backup:  every {interval} minutes")
    else:
        console.print("Backup:  manual only")


def main() -> None:
    """Main entry point for the Vault Backup CLI."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Back up a working directory to git on a timer and on demand.",
    )
    parser.add_argument(
        "-C",
        "--path",
        type=Path,
        default=None,
        help="Repository to operate on (default: current directory)",
    )

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("watch", help="Run automatic backups in the foreground")
    subparsers.add_parser("push", help="Commit *all* changes and push to remote")
    subparsers.add_parser("pull", help="Pull from remote repository")
    subparsers.add_parser("preview", help="Preview the next commit message")
    subparsers.add_parser("status", help="Show watcher and repository status")

    branch_parser = subparsers.add_parser(
        "branch", help="List branches or switch to another one"
    )
    branch_parser.add_argument("name", nargs="?", help="Branch to check out")

    config_parser = subparsers.add_parser("config", help="Show or change settings")
    config_sub = config_parser.add_subparsers(dest="config_command")
    set_parser = config_sub.add_parser("set", help="Change a setting")
    set_parser.add_argument("key", choices=sorted(SETTING_KEYS))
    set_parser.add_argument("value")

    args = parser.parse_args()
    repo_path = (args.path or Path.cwd()).resolve()

    if args.command == "watch":
        daemon.main(repo_path)
        return

    config = Config.load(repo_path)
    daemon.setup_logging(interactive=True, max_log_size=config.limits.max_log_size)

    # Handle Subcommands
    if args.command == "push":
        commit_and_push(repo_path)
    elif args.command == "pull":
        pull(repo_path)
    elif args.command == "preview":
        preview(repo_path)
    elif args.command == "status":
        show_status(repo_path)
    elif args.command == "branch":
        branch(repo_path, args.name)
    elif args.command == "config":
        if args.config_command == "set":
            set_config(repo_path, args.key, args.value)
        else:
            show_config(repo_path)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
