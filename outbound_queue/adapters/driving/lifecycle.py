"""App lifecycle and connectivity signal source."""

import asyncio
import logging
import threading

from outbound_queue.ports.lifecycle import LifecycleCallback, LifecyclePort

__all__ = ["AppLifecycle"]

logger = logging.getLogger(__name__)


class AppLifecycle(LifecyclePort):
    """Foreground/background notifier with a last-known connectivity flag.

    Transitions may be reported from any thread; callbacks always run on
    the event loop the instance was bound to with bind_loop().
    """

    def __init__(self, *, connected: bool = True) -> None:
        self._connected = connected
        self._subscribers: list[tuple[LifecycleCallback, LifecycleCallback]] = []
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_thread: int | None = None

    def bind_loop(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Deliver callbacks on loop (defaults to the running loop).

        Must be called from the thread running that loop.
        """
        self._loop = loop or asyncio.get_running_loop()
        self._loop_thread = threading.get_ident()

    def has_connectivity(self) -> bool:
        return self._connected

    def set_connectivity(self, connected: bool) -> None:
        if connected != self._connected:
            logger.info(f"Connectivity {'restored' if connected else 'lost'}")
        self._connected = connected

    def subscribe(self, on_foreground: LifecycleCallback, on_background: LifecycleCallback) -> None:
        self._subscribers.append((on_foreground, on_background))

    def unsubscribe(
        self, on_foreground: LifecycleCallback, on_background: LifecycleCallback
    ) -> None:
        try:
            self._subscribers.remove((on_foreground, on_background))
        except ValueError:
            logger.debug("Unsubscribe called for unknown lifecycle callbacks")

    def foreground(self) -> None:
        """Report that the app came to the foreground."""
        logger.info("App foregrounded")
        for on_foreground, _ in list(self._subscribers):
            self._deliver(on_foreground)

    def background(self) -> None:
        """Report that the app went to the background."""
        logger.info("App backgrounded")
        for _, on_background in list(self._subscribers):
            self._deliver(on_background)

    def _deliver(self, callback: LifecycleCallback) -> None:
        if self._loop is None or threading.get_ident() == self._loop_thread:
            callback()
        else:
            self._loop.call_soon_threadsafe(callback)

