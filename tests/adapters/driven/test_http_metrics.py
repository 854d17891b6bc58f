"""Tests for request attempt metrics."""

from outbound_queue.adapters.driven.metrics.http_metrics import Metrics
from outbound_queue.ports.metrics import HttpAttemptDto

__all__ = []


def test_metrics_initialization() -> None:
    """Metrics should initialize with empty window."""
    metrics = Metrics()
    assert str(metrics) == "Metrics: waiting for data …"


def test_metrics_calculates_latency() -> None:
    metrics = Metrics(window_size=10)
    metrics.update(
        HttpAttemptDto(started_at_sec=100.0, finished_at_sec=100.25, status_code=200)
    )

    output = str(metrics)
    assert "latency= 250.0 ms" in output
    assert "status=200" in output


def test_metrics_reports_missing_status_as_zero() -> None:
    """Attempts without a response (network errors) show status 0."""
    metrics = Metrics()
    metrics.update(HttpAttemptDto(100.0, 100.1, True, None))

    assert "status=  0" in str(metrics)


def test_metrics_tracks_failures() -> None:
    metrics = Metrics(window_size=10)

    for i in range(8):
        metrics.update(HttpAttemptDto(100.0 + i, 100.0 + i, False, 200))
    for i in range(2):
        metrics.update(HttpAttemptDto(108.0 + i, 108.0 + i, True, 503))

    assert "fail= 20.0%" in str(metrics)


def test_metrics_respects_window_size() -> None:
    """Metrics should maintain sliding window of specified size."""
    metrics = Metrics(window_size=5)

    for i in range(10):
        metrics.update(HttpAttemptDto(100.0 + i, 100.0 + i, False, 200))

    output = str(metrics)
    assert "win=5/5" in output
    assert "total=10" in output
