"""Prometheus metrics for the market sync engine."""

import time

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
app_info = Info("resale_market", "Resale market sync application info")
app_info.info({"version": "0.1.0", "name": "resale-market"})

# Fetch metrics
market_fetches_total = Counter(
    "market_fetches_total",
    "Total number of marketplace API requests",
    ["marketplace", "status"],
)

market_fetch_errors_total = Counter(
    "market_fetch_errors_total",
    "Total number of failed marketplace API requests",
    ["marketplace", "kind"],
)

market_fetch_duration_seconds = Histogram(
    "market_fetch_duration_seconds",
    "Time spent on marketplace API requests",
    ["marketplace"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)

# Sync metrics
sync_runs_total = Counter(
    "market_sync_runs_total",
    "Total number of orchestrator runs",
    ["marketplace", "mode", "status"],
)

sync_duration_seconds = Histogram(
    "market_sync_duration_seconds",
    "Wall-clock time of one orchestrator run",
    ["marketplace", "mode"],
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
)

market_rows_refreshed_total = Counter(
    "market_rows_refreshed_total",
    "Market snapshot rows refreshed",
    ["marketplace", "currency"],
)

sync_rate_limited_total = Counter(
    "market_sync_rate_limited_total",
    "Market data units that were throttled by the provider",
    ["marketplace"],
)

# Scheduler metrics
scheduler_runs_total = Counter(
    "scheduler_runs_total",
    "Total number of scheduler runs",
    ["job_type", "status"],
)

scheduler_last_run_timestamp = Gauge(
    "scheduler_last_run_timestamp",
    "Timestamp of last scheduler run",
    ["job_type"],
)

scheduler_items_skipped = Gauge(
    "scheduler_items_skipped",
    "Catalog items left for the next run because the budget ran out",
    ["job_type"],
)


def record_fetch_success(marketplace: str, duration: float):
    """Record a successful marketplace request."""
    market_fetches_total.labels(marketplace=marketplace, status="success").inc()
    market_fetch_duration_seconds.labels(marketplace=marketplace).observe(duration)


def record_fetch_error(marketplace: str, kind: str, duration: float):
    """Record a failed marketplace request."""
    market_fetches_total.labels(marketplace=marketplace, status="error").inc()
    market_fetch_errors_total.labels(marketplace=marketplace, kind=kind).inc()
    market_fetch_duration_seconds.labels(marketplace=marketplace).observe(duration)


def record_market_row(marketplace: str, currency: str):
    market_rows_refreshed_total.labels(marketplace=marketplace, currency=currency).inc()


def record_sync_run(marketplace: str, mode: str, success: bool, duration: float, rate_limited: int = 0):
    """Record one orchestrator run."""
    status = "success" if success else "error"
    sync_runs_total.labels(marketplace=marketplace, mode=mode, status=status).inc()
    sync_duration_seconds.labels(marketplace=marketplace, mode=mode).observe(duration)
    if rate_limited:
        sync_rate_limited_total.labels(marketplace=marketplace).inc(rate_limited)


def record_scheduler_run(job_type: str, success: bool, skipped: int = 0):
    """Record a scheduler job run."""
    status = "success" if success else "error"
    scheduler_runs_total.labels(job_type=job_type, status=status).inc()
    scheduler_last_run_timestamp.labels(job_type=job_type).set(time.time())
    scheduler_items_skipped.labels(job_type=job_type).set(skipped)
