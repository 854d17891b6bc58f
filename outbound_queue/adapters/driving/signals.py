"""Signal handling for graceful shutdown and lifecycle transitions."""

import asyncio
import logging
import signal

from outbound_queue.adapters.driving.lifecycle import AppLifecycle

__all__ = ["make_stop_on_sigterm", "install_lifecycle_signals"]

logger = logging.getLogger(__name__)


def make_stop_on_sigterm() -> asyncio.Event:
    """Create SIGTERM-based stop event for the service.

    Registers SIGTERM/SIGINT handlers that set an asyncio.Event the
    entrypoint waits on before shutting the dispatcher down.

    On Docker/Kubernetes, SIGTERM is sent 30s before SIGKILL,
    allowing the queue to be persisted and the worker stopped.

    Returns:
        Event set when a termination signal has been received.
    """
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()

    def handle_signal() -> None:
        logger.info("Termination signal received, initiating graceful shutdown...")
        stop.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal)

    return stop


def install_lifecycle_signals(lifecycle: AppLifecycle) -> None:
    """Map SIGUSR1 to foreground and SIGUSR2 to background transitions.

    Args:
        lifecycle: Signal source notified on each signal.
    """
    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGUSR1, lifecycle.foreground)
    loop.add_signal_handler(signal.SIGUSR2, lifecycle.background)
