"""Single-shot flush timer."""

import asyncio
import logging
from collections.abc import Callable

__all__ = ["FlushTimer"]

logger = logging.getLogger(__name__)


class FlushTimer:
    """One-shot timer with at most one pending firing.

    Must be armed and disarmed from the event loop thread. The handle is
    cleared before the callback runs, so the callback may re-arm.
    """

    def __init__(self, interval_sec: float, callback: Callable[[], None]) -> None:
        """Initialize the timer.

        Args:
            interval_sec: Delay between arming and firing.
            callback: Function run when the timer fires.
        """
        self.interval_sec = interval_sec
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def arm(self) -> bool:
        """Schedule the callback unless already scheduled.

        Returns:
            True if a new firing was scheduled, False if already armed.
        """
        if self._handle is not None:
            return False
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.interval_sec, self._fire)
        logger.debug(f"Flush timer armed ({self.interval_sec}s)")
        return True

    def disarm(self) -> None:
        """Cancel the pending firing, if any."""
        if self._handle is None:
            return
        self._handle.cancel()
        self._handle = None
        logger.debug("Flush timer disarmed")

    def _fire(self) -> None:
        self._handle = None
        self._callback()
