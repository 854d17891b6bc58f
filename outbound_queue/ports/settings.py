"""Settings port definition (DTO)."""

from dataclasses import dataclass

__all__ = ["SettingsPort"]


@dataclass
class SettingsPort:
    """Runtime settings for the dispatcher core.

    Decouples core from concrete configuration sources, enabling
    easy testing and implementation swapping.

    Attributes:
        flush_interval_sec: Delay of the one-shot flush timer.
        max_retries: Failed attempts after which a request is dropped.
        health_check_endpoint: Optional URL probed to track connectivity.
    """

    flush_interval_sec: float = 30.0
    max_retries: int = 3
    health_check_endpoint: str | None = None
