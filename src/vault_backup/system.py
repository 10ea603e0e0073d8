import logging
import subprocess
import sys
import threading

from rich.console import Console

from .constants import APP_NAME, NOTIFY_TIMEOUT

logger = logging.getLogger(APP_NAME)


class Notifier:
    """Base class for transient user notifications.

    The base implementation drops every notification; platform subclasses
    forward them to the desktop.
    """

    def notify(self, title: str, message: str, error: bool = False) -> None:
        """Sends a notification.

        Args:
            title (str): The notification title.
            message (str): The notification body text.
            error (bool, optional): Whether the message reports a failure.
        """
        pass


class DesktopNotifier(Notifier):
    """Runs a platform notification command on a background thread.

    `notify` returns immediately, so a slow or hanging helper (e.g. `notify-send`
    waiting on a missing D-Bus session) never blocks the event loop.
    """

    def command(self, title: str, message: str, error: bool) -> list[str]:
        raise NotImplementedError

    def notify(self, title: str, message: str, error: bool = False) -> None:
        cmd = self.command(title, message, error)
        worker = threading.Thread(
            target=self.run_command, args=(cmd,), name="Notify", daemon=True
        )
        worker.start()

    @staticmethod
    def run_command(cmd: list[str]) -> None:
        try:
            subprocess.run(cmd, stderr=subprocess.DEVNULL, timeout=NOTIFY_TIMEOUT)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"Notification via {cmd[0]} failed: {e}")


class MacOSNotifier(DesktopNotifier):
    """Notifier implementation for macOS."""

    def command(self, title: str, message: str, error: bool) -> list[str]:
        """Builds the AppleScript notification call."""
        # Sanitize quotes to prevent AppleScript syntax errors.
        clean_msg = message.replace('"', "'")
        script = f'display notification "{clean_msg}" with title "{title}"'
        return ["osascript", "-e", script]


class LinuxNotifier(DesktopNotifier):
    """Notifier implementation for Linux."""

    def command(self, title: str, message: str, error: bool) -> list[str]:
        """Builds the `notify-send` call; errors are sent as critical."""
        cmd = ["notify-send"]
        if error:
            cmd.extend(["--urgency", "critical"])
        return [*cmd, title, message]


class ConsoleNotifier(Notifier):
    """Prints notifications to the terminal; used by one-shot CLI commands."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def notify(self, title: str, message: str, error: bool = False) -> None:
        if error:
            self.console.print(f"[bold red]ERROR:[/bold red] {message}")
        else:
            self.console.print(f"[bold green]✔[/bold green] {message}")


def get_notifier() -> Notifier:
    """Factory function to retrieve the platform-specific desktop notifier.

    Returns:
        Notifier: An instance of MacOSNotifier, LinuxNotifier, or the base
        Notifier depending on the operating system.
    """
    if sys.platform == "darwin":
        return MacOSNotifier()
    elif sys.platform.startswith("linux"):
        return LinuxNotifier()
    else:
        return Notifier()
