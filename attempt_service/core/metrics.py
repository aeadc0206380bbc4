"""Application metrics using the Prometheus client library.

This module defines all metrics in one place: a single inventory of
everything the service measures. Other modules import specific metrics
and increment/observe them at the point of action.

COUNTERS vs GAUGES vs HISTOGRAMS
----------------------------------
  Counter    only goes up. Rates come from rate() in PromQL, e.g.
             rate(answers_saved_total[5m]) is auto-save traffic per second.
  Gauge      goes up and down. In-flight requests, queue depth.
  Histogram  buckets observations so Prometheus can compute percentiles.

The lifecycle counters below are the ones worth alerting on during an exam
window: a spike in attempt_start_conflicts_total means clients are
double-clicking "start", a spike in not-mutable rejections right after
ends_at means a deadline just passed with students still typing.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    # Auto-save sits at the low end, submit (grades every answer) higher up.
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Attempt lifecycle
# ---------------------------------------------------------------------------

ATTEMPTS_STARTED = Counter(
    "attempts_started_total",
    "Attempts created",
)

ATTEMPT_START_CONFLICTS = Counter(
    "attempt_start_conflicts_total",
    "Start requests that found an existing attempt for the same student",
)

ANSWERS_SAVED = Counter(
    "answers_saved_total",
    "Answer saves accepted",
)

ATTEMPT_TRANSITIONS = Counter(
    "attempt_transitions_total",
    "Attempt status transitions",
    ["to_status"],  # "submitted" or "evaluated"
)

ATTEMPT_REJECTIONS = Counter(
    "attempt_rejections_total",
    "Lifecycle operations rejected by the engine",
    ["operation", "kind"],  # e.g. operation="save_answer", kind="not-mutable"
)

GRADING_REJECTIONS = Counter(
    "grading_rejections_total",
    "Evaluate calls rejected before any change was applied",
    ["kind"],  # "marks-out-of-range", "validation", "already-evaluated", ...
)

# ---------------------------------------------------------------------------
# Events / background work
# ---------------------------------------------------------------------------

EVENT_PUBLISH_FAILURES = Counter(
    "event_publish_failures_total",
    "Lifecycle events that could not be enqueued",
    ["queue"],
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],  # "attempt_submitted", "attempt_evaluated"
)
