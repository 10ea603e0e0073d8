import asyncio
import logging
from collections.abc import Callable

from .constants import APP_NAME, MS_PER_MINUTE

logger = logging.getLogger(APP_NAME)


def minutes_to_ms(minutes: int) -> int:
    """Converts a whole-minute interval to a timer period in milliseconds."""
    return minutes * MS_PER_MINUTE


class Scheduler:
    """A cancellable repeating timer on an asyncio event loop.

    At most one pending handle exists at any time: `start` cancels the previous
    handle before arming a new one, and the timer re-arms itself before running
    its callback.

    Attributes:
        name (str): A label used in log messages.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        callback: Callable[[], None],
        name: str = "timer",
    ):
        self._loop = loop
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None
        self._period_ms = 0
        self.name = name

    @property
    def active(self) -> bool:
        return self._handle is not None

    @property
    def period_ms(self) -> int:
        return self._period_ms

    def start(self, period_ms: int) -> bool:
        """Replaces the running timer with one firing every `period_ms`.

        Args:
            period_ms (int): The period in milliseconds; <= 0 only cancels.

        Returns:
            bool: True if a timer is armed afterwards.
        """
        self.cancel()
        if period_ms <= 0:
            return False
        self._period_ms = period_ms
        self._arm()
        logger.debug(f"{self.name}: armed every {period_ms}ms")
        return True

    def cancel(self) -> bool:
        """Cancels the pending tick.

        Returns:
            bool: True if a timer was active.
        """
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        self._period_ms = 0
        logger.debug(f"{self.name}: cancelled")
        return True

    def _arm(self) -> None:
        self._handle = self._loop.call_later(self._period_ms / 1000, self._fire)

    def _fire(self) -> None:
        self._arm()
        try:
            self._callback()
        except Exception:
            logger.exception(f"{self.name}: tick failed")
