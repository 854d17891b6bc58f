"""HTTP client adapter executing queued requests with metrics integration."""

import asyncio
import json
import logging
import platform
from types import TracebackType
from typing import Any

import aiohttp
from aiohttp import ClientTimeout
from yarl import URL

from outbound_queue.adapters.driven.http.tls import TlsPolicy
from outbound_queue.ports.http import Method, Request, RequestOutcome, ServerError
from outbound_queue.ports.metrics import HttpAttemptDto, MetricsPort

__all__ = ["HttpClient", "build_url", "decode_json_body", "TRANSPORT_ERRORS"]

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 10
REQUEST_TIMEOUT = 15
FIRST_FAILING_HTTP_CODE = 300

SDK_VERSION_HEADER = "Hoko-SDK-Version"
SDK_ENV_HEADER = "Hoko-SDK-Env"

# Exceptions reported as failed attempts instead of propagating
TRANSPORT_ERRORS = (
    aiohttp.ClientError,  # Connection refused, DNS failed, payload errors
    asyncio.TimeoutError,  # Per-request timeout
)


def build_url(request: Request) -> str:
    """Return the URL a request is sent to.

    GET bodies are turned into a query string; other verbs send the body
    as payload and keep the URL unchanged.

    Args:
        request: Request to send.

    Returns:
        Final URL.
    """
    if request.method is not Method.GET or request.body is None:
        return request.url
    try:
        params = json.loads(request.body)
    except json.JSONDecodeError as e:
        logger.error(f"Cannot encode GET parameters for {request.url}: {e}")
        return request.url
    if not isinstance(params, dict) or not params:
        return request.url
    query = {
        key: value if isinstance(value, str) else json.dumps(value)
        for key, value in params.items()
    }
    return str(URL(request.url).update_query(query))


def decode_json_body(text: str) -> dict[str, Any]:
    """Decode a response body into a JSON object.

    Accepts an object, or an array whose first element is an object.
    Anything else yields an empty dict.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return {}
    if isinstance(data, dict):
        return data
    if isinstance(data, list) and data and isinstance(data[0], dict):
        return data[0]
    return {}


def user_agent(sdk_version: str, environment: str) -> str:
    """Build the User-Agent identifying SDK, environment and host."""
    return (
        f"HOKO/{sdk_version} ({environment}; {platform.system()}; "
        f"{platform.release()}; {platform.machine()})"
    )


class HttpClient:
    """Transport executing queued requests against the API.

    Features:
    - One attempt per call; retries are owned by the dispatcher.
    - Failures (network errors, status >= 300) returned as outcomes.
    - Metrics collection (latency, failure rate).
    - Context manager for proper resource cleanup.
    - Health check/probe functionality.
    """

    def __init__(
        self,
        *,
        endpoint: str,
        sdk_version: str,
        environment: str,
        timeout_sec: float = REQUEST_TIMEOUT,
        tls: TlsPolicy | None = None,
        metrics: MetricsPort | None = None,
    ) -> None:
        """Initialize HTTP client.

        Args:
            endpoint: API endpoint, used for TLS host relaxation.
            sdk_version: Value of the SDK version header.
            environment: Value of the SDK environment header.
            timeout_sec: Total timeout of one attempt.
            tls: SSL selection policy; defaults to relaxed for the endpoint.
            metrics: Optional metrics collector to track attempts.
        """
        self.endpoint = endpoint
        self.sdk_version = sdk_version
        self.environment = environment
        self.timeout = ClientTimeout(total=timeout_sec)
        self.tls = tls or TlsPolicy(endpoint)
        self.metrics = metrics
        self.session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> "HttpClient":
        """Enter async context manager (start session).

        Returns:
            Self for use in async with statement.
        """
        self.session = aiohttp.ClientSession()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Exit async context manager (close session)."""
        if self.session:
            await self.session.close()

    def headers_for(self, request: Request) -> dict[str, str]:
        """Return the headers sent with a request."""
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
        }
        if request.method is not Method.GET:
            headers["Content-Type"] = "application/json; charset=utf-8"
        if request.auth_token is not None:
            headers["Authorization"] = f"Token {request.auth_token}"
            headers[SDK_VERSION_HEADER] = self.sdk_version
            headers[SDK_ENV_HEADER] = self.environment
            headers["User-Agent"] = user_agent(self.sdk_version, self.environment)
        return headers

    async def probe(self, url: str, timeout: int = PROBE_TIMEOUT) -> bool:
        """Check if HTTP endpoint is reachable.

        Args:
            url: URL to probe.
            timeout: Timeout in seconds.

        Returns:
            True if reachable (200 <= status < 300), False otherwise.
        """
        if self.session is None:
            raise RuntimeError("Session not initialized; use 'async with' context manager")
        try:
            async with self.session.get(
                url, timeout=ClientTimeout(timeout), allow_redirects=True
            ) as resp:
                logger.debug(f"Probe for {url} returned status {resp.status}")
                return 200 <= resp.status < 300
        except TRANSPORT_ERRORS as e:
            logger.warning(f"Probe failed for {url}: {e}")
            return False

    async def _send(self, request: Request) -> tuple[int, dict[str, Any]]:
        """Single HTTP attempt.

        Returns:
            Status code and decoded JSON body.

        Raises:
            RuntimeError: If session not initialized.
            aiohttp exceptions: Network/timeout errors.
        """
        if self.session is None:
            raise RuntimeError("Session not initialized; use 'async with' context manager")

        url = build_url(request)
        data = None if request.method is Method.GET else request.body
        logger.debug(f"{request.method.value} {url}")
        async with self.session.request(
            request.method.value,
            url,
            data=data,
            headers=self.headers_for(request),
            timeout=self.timeout,
            ssl=self.tls.for_url(url),
        ) as resp:
            # Lenient decode; undecodable bodies then parse as {}
            text = await resp.text(errors="replace")
            return resp.status, decode_json_body(text)

    async def execute(self, request: Request) -> RequestOutcome:
        """Execute one request attempt and record metrics.

        Args:
            request: Request to execute.

        Returns:
            Success with the decoded body, or failure with the cause.
        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        status: int | None = None

        try:
            status, body = await self._send(request)
        except TRANSPORT_ERRORS as e:
            outcome = RequestOutcome.failure(e)
        else:
            if status >= FIRST_FAILING_HTTP_CODE:
                outcome = RequestOutcome.failure(ServerError(status, body))
            else:
                outcome = RequestOutcome.success(body)

        if self.metrics:
            self.metrics.update(
                HttpAttemptDto(
                    started_at_sec=started,
                    finished_at_sec=loop.time(),
                    is_failed=not outcome.ok,
                    status_code=status,
                )
            )
            logger.info(f"HTTP metrics: {self.metrics}")

        return outcome
