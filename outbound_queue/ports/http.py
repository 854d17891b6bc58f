"""HTTP port definition (request model, result type and transport interface)."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel, Field

__all__ = [
    "API_FORMAT",
    "API_VERSION",
    "Method",
    "Request",
    "RequestOutcome",
    "ServerError",
    "TransportPort",
    "compose_url",
]

API_VERSION = "v2"
API_FORMAT = "json"


def compose_url(endpoint: str, path: str) -> str:
    """Merge endpoint, API version, resource path and format suffix.

    Args:
        endpoint: Base API endpoint (e.g. "https://api.hokolinks.com").
        path: Resource path (e.g. "routes").

    Returns:
        Full URL, e.g. "https://api.hokolinks.com/v2/routes.json".
    """
    return f"{endpoint.rstrip('/')}/{API_VERSION}/{path.strip('/')}.{API_FORMAT}"


class Method(str, Enum):
    """Supported HTTP verbs."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"


class Request(BaseModel):
    """One outbound API call waiting in the queue.

    Persisted as JSON by the queue store, so every field must stay
    serializable.

    Attributes:
        method: HTTP verb.
        url: Absolute target URL.
        auth_token: Application token sent as ``Authorization: Token <token>``.
        body: Serialized JSON payload (query string for GET).
        retry_count: Number of failed attempts so far.
    """

    method: Method
    url: str
    auth_token: str | None = None
    body: str | None = None
    retry_count: int = Field(default=0, ge=0)

    @classmethod
    def for_path(
        cls,
        method: Method,
        path: str,
        *,
        endpoint: str,
        auth_token: str | None = None,
        body: str | None = None,
    ) -> Request:
        """Build a request for an API resource path.

        Paths that already look like URLs are kept as-is.
        """
        url = path if "http" in path else compose_url(endpoint, path)
        return cls(method=method, url=url, auth_token=auth_token, body=body)

    def record_failure(self) -> None:
        """Count one more failed attempt."""
        self.retry_count += 1


class ServerError(Exception):
    """Server answered with a status code >= 300."""

    def __init__(self, status: int, body: dict[str, Any]) -> None:
        super().__init__(f"Server responded with status {status}: {body}")
        self.status = status
        self.body = body


@dataclass(slots=True, frozen=True)
class RequestOutcome:
    """Result of a single request attempt.

    Attributes:
        body: Decoded JSON response (error detail on server failures).
        error: Failure cause; None when the attempt succeeded.
    """

    body: dict[str, Any] = field(default_factory=dict)
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, body: dict[str, Any]) -> RequestOutcome:
        return cls(body=body)

    @classmethod
    def failure(cls, error: BaseException) -> RequestOutcome:
        body = error.body if isinstance(error, ServerError) else {}
        return cls(body=body, error=error)


class TransportPort(Protocol):
    """Interface used by the dispatcher to run one request attempt."""

    async def execute(self, request: Request, /) -> RequestOutcome:
        """Perform the request and classify its result.

        Implementations must not raise for network or server errors; those
        are reported as failed outcomes.

        Args:
            request: Request to execute.

        Returns:
            Success or failure outcome.
        """
        ...
