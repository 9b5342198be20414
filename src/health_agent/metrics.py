"""Prometheus metrics definitions for the health agent."""

from prometheus_client import Counter, Histogram

# -- Aggregation --
AGGREGATION_RUNS = Counter(
    "health_agent_aggregation_runs_total",
    "Total health summary aggregation runs",
)
AGGREGATION_DURATION = Histogram(
    "health_agent_aggregation_duration_seconds",
    "Wall time of one fan-out/fan-in aggregation run",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)
SAMPLES_COLLECTED = Counter(
    "health_agent_samples_collected_total",
    "Samples accepted into a metric series",
    ["metric"],
)
SAMPLES_DROPPED = Counter(
    "health_agent_samples_dropped_total",
    "Samples rejected during normalization",
    ["metric"],
)
SOURCE_QUERY_ERRORS = Counter(
    "health_agent_source_query_errors_total",
    "Metric queries that failed and degraded to an empty series",
    ["metric"],
)

# -- Conversation --
QUESTIONS = Counter(
    "health_agent_questions_total",
    "Submitted questions by guard outcome",
    ["status"],
)

# -- Remote completion --
COMPLETION_REQUESTS = Counter(
    "health_agent_completion_requests_total",
    "Remote completion requests by outcome",
    ["outcome"],
)
COMPLETION_DURATION = Histogram(
    "health_agent_completion_duration_seconds",
    "Remote completion request latency",
    buckets=(0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)
