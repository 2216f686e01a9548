"""Monitoring configuration for the vocabulary builder."""
from prometheus_client import Counter, Gauge, Histogram, start_http_server

# Session metrics
sessions_started = Counter(
    "vocab_builder_sessions_started_total",
    "Total number of review sessions started",
    ["mode"],
)

sessions_finished = Counter(
    "vocab_builder_sessions_finished_total",
    "Total number of review sessions that ended",
    ["outcome"],  # completed, timed_out, disposed
)

active_sessions = Gauge(
    "vocab_builder_active_sessions",
    "Number of review sessions currently running",
)

session_duration = Histogram(
    "vocab_builder_session_duration_seconds",
    "Duration of review sessions in seconds",
    buckets=[60, 180, 300, 600, 900],
)

empty_selections = Counter(
    "vocab_builder_empty_selections_total",
    "Session requests that found no eligible words",
)

# Scheduling metrics
ratings_applied = Counter(
    "vocab_builder_ratings_total",
    "Total number of ratings applied to words",
    ["rating"],
)

words_completed = Counter(
    "vocab_builder_words_completed_total",
    "Total number of words moved to completed",
)

retry_reinsertions = Counter(
    "vocab_builder_retry_reinsertions_total",
    "Lapsed items reinserted later in the same session",
)

retry_deferrals = Counter(
    "vocab_builder_retry_deferrals_total",
    "Lapsed items deferred to the next day after reaching the attempt cap",
)

# Store metrics
store_write_errors = Counter(
    "vocab_builder_store_write_errors_total",
    "Total number of failed word writes",
    ["error_type"],
)

imports = Counter(
    "vocab_builder_imports_total",
    "Snapshot imports by policy and result",
    ["policy", "result"],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
