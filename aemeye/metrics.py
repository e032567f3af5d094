"""Prometheus metrics for aem-eye.

Counters are process-wide; run-scoped numbers live in
``aemeye.pipeline.stats.RunStats``. The CLI can expose these over HTTP with
``--metrics-port``.
"""

import time

from prometheus_client import Counter, Gauge, Histogram, start_http_server

# ============ Metrics Definitions ============

JOBS_DISPATCHED = Counter(
    'aemeye_jobs_dispatched_total',
    'Jobs admitted by the rate limiter and handed to the job queue'
)

TARGETS_SKIPPED = Counter(
    'aemeye_targets_skipped_total',
    'Input lines dropped before dispatch',
    ['reason']  # invalid, duplicate
)

REQUESTS_TOTAL = Counter(
    'aemeye_requests_total',
    'HTTP probes issued by workers',
    ['outcome']  # ok, error
)

FETCH_ERRORS = Counter(
    'aemeye_fetch_errors_total',
    'Failed HTTP probes by error class',
    ['error_type']  # timeout, dns, ssl, conn, redirects, invalid_url, body, other
)

MATCHES_TOTAL = Counter(
    'aemeye_matches_total',
    'Targets reported as matched',
    ['pattern']
)

FETCH_DURATION = Histogram(
    'aemeye_fetch_duration_seconds',
    'Time spent on a single HTTP probe including body read',
    buckets=[0.1, 0.25, 0.5, 1, 2, 5, 10, 20, 30]
)

ACTIVE_FETCHES = Gauge(
    'aemeye_active_fetches',
    'HTTP probes currently in flight'
)


# ============ Helper Functions ============

def record_dispatch():
    JOBS_DISPATCHED.inc()


def record_skip(reason: str):
    TARGETS_SKIPPED.labels(reason=reason).inc()


def record_fetch(duration: float, error_type: str | None = None):
    """Record one HTTP probe.

    Args:
        duration: Seconds spent on the request and body read
        error_type: Classified failure, or None when the body was read
    """
    FETCH_DURATION.observe(duration)
    if error_type is None:
        REQUESTS_TOTAL.labels(outcome='ok').inc()
    else:
        REQUESTS_TOTAL.labels(outcome='error').inc()
        FETCH_ERRORS.labels(error_type=error_type).inc()


def record_match(pattern: str):
    MATCHES_TOTAL.labels(pattern=pattern).inc()


def track_active_fetch():
    """Context manager tracking in-flight probes and their duration."""
    class FetchTracker:
        def __enter__(self):
            ACTIVE_FETCHES.inc()
            self.start_time = time.monotonic()
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            ACTIVE_FETCHES.dec()
            return False

        @property
        def duration(self):
            return time.monotonic() - self.start_time

    return FetchTracker()


def serve_metrics(port: int, addr: str = '127.0.0.1'):
    """Expose the default registry over HTTP on ``addr:port``."""
    return start_http_server(port, addr=addr)
