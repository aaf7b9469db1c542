"""
Prometheus metrics for the asset import pipeline

Metrics live in a dedicated registry so tests and embedding applications do
not collide with the default global registry.
"""
import os

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()


# =======================
# PHASE METRICS
# =======================

rows_processed_total = Counter(
    name="asset_pipeline_rows_processed_total",
    documentation="Rows handled by each phase",
    labelnames=["phase", "status"],  # status: ok, failed, dropped
    registry=REGISTRY,
)

phase_duration_seconds = Histogram(
    name="asset_pipeline_phase_duration_seconds",
    documentation="Time spent in each pipeline phase",
    labelnames=["phase"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 120.0],
    registry=REGISTRY,
)

rule_failures_total = Counter(
    name="asset_pipeline_rule_failures_total",
    documentation="Row-scoped rule failures",
    labelnames=["phase", "rule_type"],
    registry=REGISTRY,
)

validation_warnings_total = Counter(
    name="asset_pipeline_validation_warnings_total",
    documentation="Non-blocking VALIDATE findings",
    labelnames=["rule_type"],
    registry=REGISTRY,
)

# =======================
# JOB METRICS
# =======================

jobs_total = Counter(
    name="asset_pipeline_jobs_total",
    documentation="Import jobs by final status",
    labelnames=["status"],  # COMPLETED, FAILED
    registry=REGISTRY,
)

jobs_running = Gauge(
    name="asset_pipeline_jobs_running",
    documentation="Import jobs currently running",
    registry=REGISTRY,
)

alias_coverage_percent = Gauge(
    name="asset_pipeline_alias_coverage_percent",
    documentation="Header coverage of the most recent MAP phase",
    registry=REGISTRY,
)

# =======================
# WAREHOUSE METRICS
# =======================

assets_written_total = Counter(
    name="asset_pipeline_assets_written_total",
    documentation="Asset writes performed by LOAD",
    labelnames=["action"],  # insert, update, skip, failed
    registry=REGISTRY,
)

load_batch_size = Histogram(
    name="asset_pipeline_load_batch_size",
    documentation="Rows per LOAD write group",
    buckets=[1, 10, 50, 100, 500, 1000, 5000, 10000],
    registry=REGISTRY,
)

batch_rollbacks_total = Counter(
    name="asset_pipeline_batch_rollbacks_total",
    documentation="LOAD groups rolled back after a failed row",
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """Render the registry in Prometheus text format"""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST


def start_metrics_server(port: int | None = None) -> None:
    """
    Start the HTTP endpoint for Prometheus scraping

    Args:
        port: Port to listen on (defaults to env var METRICS_PORT or 8000)
    """
    from prometheus_client import start_http_server

    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=REGISTRY)


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    if value <= 0:
        return
    if labels:
        counter.labels(**labels).inc(value)
    else:
        counter.inc(value)


def set_gauge(gauge: Gauge, value: float, **labels) -> None:
    if labels:
        gauge.labels(**labels).set(value)
    else:
        gauge.set(value)


def observe_histogram(histogram: Histogram, value: float, **labels) -> None:
    if labels:
        histogram.labels(**labels).observe(value)
    else:
        histogram.observe(value)


class track_duration:
    """
    Context manager observing the duration of a block in a histogram

    Usage:
        with track_duration(phase_duration_seconds, phase="CLEAN"):
            ...
    """

    def __init__(self, histogram: Histogram, **labels):
        self.histogram = histogram
        self.labels = labels
        self.timer = None

    def __enter__(self):
        metric = self.histogram.labels(**self.labels) if self.labels else self.histogram
        self.timer = metric.time()
        self.timer.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.timer.__exit__(exc_type, exc_val, exc_tb)
        return False


def record_phase(phase: str, rows_ok: int, rows_failed: int, rows_dropped: int = 0) -> None:
    """
    Record row outcomes for one phase execution.

    Args:
        phase: Phase name
        rows_ok: Rows emitted without a new error
        rows_failed: Rows that picked up an error in the phase
        rows_dropped: Rows removed by row-set rules
    """
    increment_counter(rows_processed_total, rows_ok, phase=phase, status="ok")
    increment_counter(rows_processed_total, rows_failed, phase=phase, status="failed")
    increment_counter(rows_processed_total, rows_dropped, phase=phase, status="dropped")


def record_rule_failure(phase: str, rule_type: str) -> None:
    increment_counter(rule_failures_total, 1, phase=phase, rule_type=rule_type)
