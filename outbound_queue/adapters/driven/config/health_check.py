"""Healthcheck validator for container orchestration."""

import logging

from outbound_queue.adapters.driven.config.settings import load_settings
from outbound_queue.adapters.driven.logging.logging_config import configure_logs
from outbound_queue.adapters.driven.store.file_store import JsonFileQueueStore

__all__ = ["main"]

logger = logging.getLogger(__name__)


def main() -> int:
    """Run health check for container orchestration.

    Validates:
    - Required environment variables are set.
    - Configuration can be loaded successfully.
    - The queue snapshot can be read (a missing snapshot is fine).

    Returns:
        0 if healthy, 1 if unhealthy.
    """
    configure_logs()

    try:
        settings = load_settings()
        pending = JsonFileQueueStore(settings.queue_file_path).load()
    except Exception as exc:
        logger.error(f"Request queue healthcheck FAILED: {exc}")
        return 1

    logger.info(f"Request queue healthcheck OK ({len(pending)} pending)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
