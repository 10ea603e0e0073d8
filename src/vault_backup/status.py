import time
from collections.abc import Callable

from .constants import MAX_MESSAGE_LENGTH, STATUS_PREFIX
from .formatter import from_now
from .state import CycleState

PHASE_TEXT = {
    CycleState.CHECKING_STATUS: "checking repo status..",
    CycleState.STAGING: "adding files to repo..",
    CycleState.COMMITTING: "committing changes..",
    CycleState.PUSHING: "pushing changes..",
    CycleState.PULLING: "pulling changes..",
    CycleState.CHECKING_OUT: "checking out branch..",
}


class StatusIndicator:
    """A single-line presenter of what the backup engine is doing.

    Two inputs compete for the line: the engine phase, pushed on every state
    change and on every refresh tick, and transient messages. While a message is
    showing, phase updates are ignored; once its timeout has passed, the next
    phase update takes the line back. A timeout of 0 keeps the message until the
    next message replaces it.

    Attributes:
        text (str): The line currently displayed.
    """

    def __init__(
        self,
        render: Callable[[str], None] | None = None,
        clock: Callable[[], float] = time.time,
        max_length: int = MAX_MESSAGE_LENGTH,
    ):
        """Initializes the indicator.

        Args:
            render (Callable[[str], None] | None, optional): Called with every new
                line. Defaults to None (the line is only kept in `text`).
            clock (Callable[[], float], optional): Source of the current Unix time.
            max_length (int, optional): Maximum message length before truncation.
        """
        self._render = render
        self._clock = clock
        self._max_length = max_length
        self._message_until: float | None = None
        self._sticky = False
        self.text = ""

    @property
    def is_displaying_message(self) -> bool:
        if self._sticky:
            return True
        return self._message_until is not None and self._clock() < self._message_until

    def _set_text(self, text: str) -> None:
        self.text = text
        if self._render is not None:
            self._render(text)

    def display_message(self, message: str, timeout: float) -> None:
        """Shows a transient message, suppressing phase updates.

        Args:
            message (str): The message; lower-cased and truncated for display.
            timeout (float): Seconds before phase updates resume; 0 means until
                the next message.
        """
        self._sticky = timeout <= 0
        self._message_until = None if self._sticky else self._clock() + timeout
        self._set_text(f"{STATUS_PREFIX}: {message.lower()[: self._max_length]}")

    def clear_message(self) -> None:
        """Drops any active message so the next phase update is shown."""
        self._sticky = False
        self._message_until = None

    def display_state(self, state: CycleState, last_sync: float | None) -> None:
        """Shows the engine phase unless a message is active.

        Args:
            state (CycleState): The current engine phase.
            last_sync (float | None): Unix time of the last successful sync.
        """
        if self.is_displaying_message:
            return
        self._message_until = None

        if state is CycleState.IDLE:
            self.display_from_now(last_sync)
        else:
            self._set_text(f"{STATUS_PREFIX}: {PHASE_TEXT[state]}")

    def display_from_now(self, timestamp: float | None) -> None:
        if timestamp:
            self._set_text(
                f"{STATUS_PREFIX}: last update {from_now(timestamp, self._clock())}.."
            )
        else:
            self._set_text(f"{STATUS_PREFIX}: ready")
