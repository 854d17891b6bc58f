"""Application entrypoint."""

import asyncio
import logging

from outbound_queue.adapters.driven.config.settings import load_settings
from outbound_queue.adapters.driven.http.client import HttpClient
from outbound_queue.adapters.driven.http.tls import TlsPolicy
from outbound_queue.adapters.driven.logging.logging_config import configure_logs
from outbound_queue.adapters.driven.metrics.http_metrics import Metrics
from outbound_queue.adapters.driven.store.file_store import JsonFileQueueStore
from outbound_queue.adapters.driving.lifecycle import AppLifecycle
from outbound_queue.adapters.driving.signals import (
    install_lifecycle_signals,
    make_stop_on_sigterm,
)
from outbound_queue.core.dispatcher import Dispatcher
from outbound_queue.ports.settings import SettingsPort

__all__ = ["main", "run"]

logger = logging.getLogger(__name__)


async def main() -> None:
    """Start the request queue service.

    Startup sequence:
    1. Configure logging.
    2. Load and validate configuration.
    3. Optionally probe connectivity, then keep probing in background.
    4. Start the dispatcher (resumes the persisted queue).
    5. Gracefully shutdown on SIGTERM.

    Nothing here produces requests: embedding hosts feed the dispatcher through
    Dispatcher.enqueue() or, from other threads, enqueue_threadsafe(). Run
    standalone, the service drains the persisted queue and keeps retrying it.
    """
    configure_logs()
    logger.info("Starting request queue service...")

    try:
        config = load_settings()
    except (RuntimeError, ValueError) as exc:
        logger.error(
            "Configuration error: %s\n"
            "Hint: check API_ENDPOINT, QUEUE_FILE_PATH and the optional "
            "FLUSH_INTERVAL_SECONDS, REQUEST_TIMEOUT_SECONDS and MAX_RETRIES.",
            exc,
        )
        return

    # Wrap config into port so core depends on interface (hexagonal)
    settings_port = SettingsPort(
        flush_interval_sec=config.flush_interval_sec,
        max_retries=config.max_retries,
        health_check_endpoint=config.http_health_endpoint,
    )

    metrics = Metrics()
    http_client = HttpClient(
        endpoint=config.api_endpoint,
        sdk_version=config.sdk_version,
        environment=config.sdk_environment,
        timeout_sec=config.request_timeout_sec,
        tls=TlsPolicy(config.api_endpoint, relaxed=config.tls_relaxed_hostname),
        metrics=metrics,
    )
    lifecycle = AppLifecycle()
    lifecycle.bind_loop()

    async with http_client as http:
        lifecycle.set_connectivity(await optional_endpoint_health_check(settings_port, http))

        dispatcher = Dispatcher(
            settings=settings_port,
            store=JsonFileQueueStore(config.queue_file_path),
            transport=http,
            lifecycle=lifecycle,
        )
        stop = make_stop_on_sigterm()
        install_lifecycle_signals(lifecycle)

        watcher: asyncio.Task[None] | None = None
        if settings_port.health_check_endpoint:
            watcher = asyncio.create_task(
                watch_connectivity(
                    lifecycle,
                    http,
                    settings_port.health_check_endpoint,
                    settings_port.flush_interval_sec,
                )
            )

        try:
            dispatcher.start()
            await stop.wait()
        except Exception as e:
            logger.error(f"Unhandled exception in request queue: {e}", exc_info=True)
        finally:
            if watcher is not None:
                watcher.cancel()
                await asyncio.gather(watcher, return_exceptions=True)
            await dispatcher.stop()

        logger.info("Request queue stopped.")


async def optional_endpoint_health_check(settings_port: SettingsPort, http: HttpClient) -> bool:
    """Probe connectivity before the first flush.

    Only runs if HEALTH_CHECK_ENDPOINT is configured.

    Args:
        settings_port: Runtime settings.
        http: HTTP client for probing.

    Returns:
        True if reachable or check disabled, False if the probe failed.
    """
    if settings_port.health_check_endpoint:
        logger.info(f"Performing health check on {settings_port.health_check_endpoint}...")
        if not await http.probe(url=settings_port.health_check_endpoint):
            logger.warning(
                f"Health check failed for {settings_port.health_check_endpoint}, "
                "starting offline"
            )
            return False

        logger.info("Health check passed")
    return True


async def watch_connectivity(
    lifecycle: AppLifecycle,
    http: HttpClient,
    url: str,
    interval_sec: float,
) -> None:
    """Probe url forever, updating the lifecycle connectivity flag.

    Args:
        lifecycle: Signal source to update.
        http: HTTP client used for probing.
        url: Health endpoint.
        interval_sec: Delay between probes.
    """
    while True:
        await asyncio.sleep(interval_sec)
        lifecycle.set_connectivity(await http.probe(url))


def run() -> None:
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user (Ctrl+C).")


if __name__ == "__main__":
    run()
