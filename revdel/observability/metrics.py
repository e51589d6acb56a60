"""Prometheus metric definitions for redaction observability."""

from prometheus_client import Counter, Histogram

# --- Bucket configurations ---

REDACTION_LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

# --- Record metrics ---

REDACTION_ITEMS = Counter(
    "revdel_items_total",
    "Per-record redaction outcomes",
    ["kind", "outcome"],
)

REDACTION_DURATION = Histogram(
    "revdel_redaction_duration_seconds",
    "End-to-end redaction latency in seconds",
    ["kind"],
    buckets=REDACTION_LATENCY_BUCKETS,
)

# --- File migration metrics ---

STORAGE_OPS = Counter(
    "revdel_storage_ops_total",
    "File migration operations by phase and result",
    ["phase", "result"],
)

# --- Hook metrics ---

HOOK_FAILURES = Counter(
    "revdel_hook_failures_total",
    "Pre/post-commit hook failures",
    ["kind", "hook"],
)
