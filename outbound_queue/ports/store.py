"""Queue store port definition (interface)."""

from __future__ import annotations

from typing import Protocol

from outbound_queue.ports.http import Request

__all__ = ["QueueStorePort"]


class QueueStorePort(Protocol):
    """Durable snapshot of the pending request queue.

    Read once at startup, written after every queue mutation.
    """

    def load(self) -> list[Request]:
        """Return persisted requests in queue order.

        Must return an empty list instead of raising when the snapshot is
        missing or unreadable.
        """
        ...

    def save(self, requests: list[Request], /) -> None:
        """Replace the snapshot with the given requests."""
        ...
