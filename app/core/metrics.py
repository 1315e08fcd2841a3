"""Prometheus metric inventory.

Every metric the service exports is declared here; the modules that own
the behaviour import and increment them.  HTTP metrics are filled in by
MetricsMiddleware, the rest at the point of action in the services.
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
    # A quiz submission is ~6-10 sequential statements; 250ms is already slow
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Domain metrics
# ---------------------------------------------------------------------------

QUIZ_SUBMISSIONS = Counter(
    "quiz_submissions_total",
    "Graded quiz submissions by outcome",
    ["outcome"],  # passed|failed|retake
)

PROGRESS_RECOMPUTES = Counter(
    "progress_recomputes_total",
    "Enrollment progress recomputations",
)

LESSON_COMPLETION_CHANGES = Counter(
    "lesson_completion_changes_total",
    "Lesson completion facts written or removed",
    ["action"],  # marked|unmarked|noop
)

MEDIA_STORAGE_FAILURES = Counter(
    "media_storage_failures_total",
    "Failed calls to the media storage provider",
    ["operation"],  # upload|delete
)

RATE_LIMIT_HITS = Counter(
    "rate_limit_hits_total",
    "Requests rejected by rate limiting (429s)",
    ["key_type"],  # user|ip
)
