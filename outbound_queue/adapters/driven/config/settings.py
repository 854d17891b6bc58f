"""Configuration loading from environment variables."""

import logging
import os
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, HttpUrl, TypeAdapter, field_validator

__all__ = ["Settings", "load_settings", "SDK_VERSION"]

load_dotenv()

logger = logging.getLogger(__name__)
_http_url_adapter = TypeAdapter(HttpUrl)

SDK_VERSION = "2.3.0"
_TRUE_VALUES = ("1", "true", "yes", "on")


def _validate_url(v: str, what: str) -> str:
    try:
        url = _http_url_adapter.validate_python(v)
        if url.scheme not in ("http", "https"):
            raise ValueError("Only http:// and https:// endpoints allowed")
    except Exception as e:
        raise ValueError(f"Invalid {what}: {e}") from e
    return v


class Settings(BaseModel):
    """Runtime configuration for the request queue service.

    Attributes:
        api_endpoint: Base URL of the API (version and path are appended).
        queue_file_path: Location of the durable queue snapshot.
        flush_interval_sec: Delay of the idle flush timer.
        request_timeout_sec: Timeout of a single request attempt.
        max_retries: Failed attempts after which a request is dropped.
        sdk_environment: Reported in the SDK environment header.
        sdk_version: Reported in the SDK version header and User-Agent.
        tls_relaxed_hostname: Skip certificate hostname match for API hosts.
        http_health_endpoint: Optional URL probed to track connectivity.
    """

    api_endpoint: str = Field(..., description="Base URL of the API.")
    queue_file_path: str = Field(..., description="Path of the queue snapshot file.")
    flush_interval_sec: float = Field(default=30.0, gt=0)
    request_timeout_sec: float = Field(default=15.0, gt=0)
    max_retries: int = Field(default=3, gt=0)
    sdk_environment: Literal["debug", "release"] = "release"
    sdk_version: str = SDK_VERSION
    tls_relaxed_hostname: bool = True
    http_health_endpoint: str | None = Field(
        default=None,
        description=(
            "Optional HTTP endpoint probed to track connectivity. "
            "If not set, the network is assumed reachable."
        ),
    )

    @field_validator("api_endpoint")
    @classmethod
    def validate_api_endpoint(cls, v: str) -> str:
        """Validate that the endpoint is a valid HTTP(S) URL.

        Raises:
            ValueError: If URL is invalid.
        """
        return _validate_url(v, "API endpoint")

    @field_validator("http_health_endpoint")
    @classmethod
    def validate_http_health_endpoint(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return _validate_url(v, "health endpoint")


def _positive_number(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        value = float(raw)
        if value <= 0:
            raise ValueError("Must be positive")
    except ValueError as e:
        raise RuntimeError(f"{name} must be a positive number (got: {raw})") from e
    return value


def load_settings() -> Settings:
    """Load and validate settings from the environment.

    Required environment variables:
    - API_ENDPOINT: Valid HTTP(S) URL of the API.
    - QUEUE_FILE_PATH: Where the pending queue is persisted.

    Optional:
    - FLUSH_INTERVAL_SECONDS (default 30), REQUEST_TIMEOUT_SECONDS (default 15).
    - MAX_RETRIES (default 3).
    - SDK_ENVIRONMENT (debug|release), SDK_VERSION.
    - TLS_RELAXED_HOSTNAME (default true).
    - HEALTH_CHECK_ENDPOINT: URL probed to track connectivity.

    Returns:
        Validated Settings object.

    Raises:
        RuntimeError: If required env vars missing or invalid.
        ValueError: If configuration is invalid.
    """
    try:
        api_endpoint = os.environ["API_ENDPOINT"]
        queue_file_path = os.environ["QUEUE_FILE_PATH"]
    except KeyError as e:
        raise RuntimeError(f"Missing required environment variable: {e.args[0]}") from e

    max_retries_raw = os.getenv("MAX_RETRIES", "3")
    try:
        max_retries = int(max_retries_raw)
        if max_retries <= 0:
            raise ValueError("Must be positive")
    except ValueError as e:
        raise RuntimeError(
            f"MAX_RETRIES must be a positive integer (got: {max_retries_raw})"
        ) from e

    settings = Settings(
        api_endpoint=api_endpoint,
        queue_file_path=queue_file_path,
        flush_interval_sec=_positive_number("FLUSH_INTERVAL_SECONDS", "30"),
        request_timeout_sec=_positive_number("REQUEST_TIMEOUT_SECONDS", "15"),
        max_retries=max_retries,
        sdk_environment=os.getenv("SDK_ENVIRONMENT", "release"),
        sdk_version=os.getenv("SDK_VERSION", SDK_VERSION),
        tls_relaxed_hostname=os.getenv("TLS_RELAXED_HOSTNAME", "true").lower() in _TRUE_VALUES,
        http_health_endpoint=os.getenv("HEALTH_CHECK_ENDPOINT"),
    )

    logger.info(
        f"Request queue configured: endpoint={settings.api_endpoint}, "
        f"queue_file={settings.queue_file_path}, "
        f"flush_interval={settings.flush_interval_sec}s, "
        f"max_retries={settings.max_retries}, "
        f"health_check={settings.http_health_endpoint or '<disabled>'}"
    )

    return settings
