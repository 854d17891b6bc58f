"""Retry budget for queued requests."""

from dataclasses import dataclass

from outbound_queue.ports.http import Request

__all__ = ["RetryBudget", "DEFAULT_MAX_RETRIES"]

DEFAULT_MAX_RETRIES = 3


@dataclass(frozen=True)
class RetryBudget:
    """Maximum number of failed attempts a request may accumulate.

    Server-reported failures (>=300) and transport errors are counted
    the same way.

    Attributes:
        max_retries: Attempts after which the request is discarded.
    """

    max_retries: int = DEFAULT_MAX_RETRIES

    def __post_init__(self) -> None:
        if self.max_retries <= 0:
            raise ValueError("max_retries must be positive")

    def exhausted(self, request: Request) -> bool:
        """Return True when the request must not be queued again."""
        return request.retry_count >= self.max_retries
