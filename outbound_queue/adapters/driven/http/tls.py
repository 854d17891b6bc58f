"""TLS verification rules for the API backend."""

import logging
import ssl

from yarl import URL

__all__ = ["hostname_allowed", "TlsPolicy"]

logger = logging.getLogger(__name__)


def hostname_allowed(hostname: str | None, endpoint: str) -> bool:
    """Relaxed hostname rule: accept hosts contained in the endpoint string.

    Args:
        hostname: Host the connection is made to.
        endpoint: Configured API endpoint (e.g. "https://api.hokolinks.com").

    Returns:
        True if the certificate hostname check may be skipped.
    """
    return bool(hostname) and hostname in endpoint


class TlsPolicy:
    """Select the SSL setting aiohttp should use for a URL.

    Hosts that are part of the API endpoint get a context with the chain
    still verified but no certificate hostname match. Everything else uses
    aiohttp's default verification.

    Notes:
        The relaxed rule is a known weakening kept for compatibility with
        the backend certificate setup; disable it with relaxed=False.
    """

    def __init__(self, endpoint: str, *, relaxed: bool = True) -> None:
        self.endpoint = endpoint
        self.relaxed = relaxed
        self._relaxed_context: ssl.SSLContext | None = None

    def for_url(self, url: str) -> ssl.SSLContext | bool:
        """Return the ``ssl`` argument for a request to url.

        Args:
            url: Final request URL.

        Returns:
            Relaxed SSL context, or True for default verification.
        """
        parsed = URL(url)
        if not self.relaxed or parsed.scheme != "https":
            return True
        if not hostname_allowed(parsed.host, self.endpoint):
            return True
        if self._relaxed_context is None:
            context = ssl.create_default_context()
            context.check_hostname = False
            self._relaxed_context = context
            logger.debug(f"Relaxed hostname verification enabled for {self.endpoint}")
        return self._relaxed_context
