"""Lifecycle/connectivity port definition (interface)."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

__all__ = ["LifecycleCallback", "LifecyclePort"]

LifecycleCallback = Callable[[], None]


class LifecyclePort(Protocol):
    """Source of app lifecycle transitions and connectivity state."""

    def has_connectivity(self) -> bool:
        """Return True when the network is believed to be reachable."""
        ...

    def subscribe(
        self, on_foreground: LifecycleCallback, on_background: LifecycleCallback, /
    ) -> None:
        """Register callbacks for foreground and background transitions."""
        ...

    def unsubscribe(
        self, on_foreground: LifecycleCallback, on_background: LifecycleCallback, /
    ) -> None:
        """Remove previously registered callbacks."""
        ...
