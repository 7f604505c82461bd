"""
Prometheus metrics for the ingestion pipeline.

DRY: metric definitions live here; call sites use the small helpers below so
that ``METRICS_ENABLED=false`` turns instrumentation off in one place.
"""

from __future__ import annotations

import contextlib
import time
from collections.abc import Iterator

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from rankforge.config.settings import get_settings

registry = CollectorRegistry()

# ============================================================================
# Counters
# ============================================================================

rankforge_lines_total = Counter(
    "rankforge_lines_total",
    "Log lines seen by the parser, by outcome",
    labelnames=("outcome",),
    registry=registry,
)

rankforge_anomalies_total = Counter(
    "rankforge_anomalies_total",
    "Reconciliation anomalies by kind",
    labelnames=("kind",),
    registry=registry,
)

rankforge_match_flush_total = Counter(
    "rankforge_match_flush_total",
    "Match flush attempts by final outcome",
    labelnames=("outcome",),
    registry=registry,
)

# ============================================================================
# Histograms
# ============================================================================

rankforge_flush_duration_seconds = Histogram(
    "rankforge_flush_duration_seconds",
    "Time spent committing one match batch",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
    registry=registry,
)


def _enabled() -> bool:
    return get_settings().metrics_enabled


def mark_line(outcome: str) -> None:
    if _enabled():
        rankforge_lines_total.labels(outcome=outcome).inc()


def mark_anomaly(kind: str) -> None:
    if _enabled():
        rankforge_anomalies_total.labels(kind=kind).inc()


def mark_flush(outcome: str) -> None:
    if _enabled():
        rankforge_match_flush_total.labels(outcome=outcome).inc()


@contextlib.contextmanager
def observe_flush() -> Iterator[None]:
    """Time a flush attempt, including failed ones."""
    started = time.perf_counter()
    try:
        yield
    finally:
        if _enabled():
            rankforge_flush_duration_seconds.observe(time.perf_counter() - started)


def render_latest() -> tuple[bytes, str]:
    """Return the exposition payload and its content type."""
    return generate_latest(registry), CONTENT_TYPE_LATEST
