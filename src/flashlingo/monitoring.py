"""Monitoring configuration for the trainer."""
from prometheus_client import Counter, Histogram, start_http_server

# Session metrics
sessions_started = Counter(
    "flashlingo_sessions_started_total",
    "Total number of practice sessions started",
    ["language"],
)

sessions_completed = Counter(
    "flashlingo_sessions_completed_total",
    "Total number of practice sessions that reached the summary",
    ["language"],
)

session_duration = Histogram(
    "flashlingo_session_duration_seconds",
    "Duration of completed practice sessions in seconds",
    ["language"],
    buckets=[60, 300, 600, 1800, 3600],  # 1min, 5min, 10min, 30min, 1hour
)

# Learning metrics
verdicts = Counter(
    "flashlingo_verdicts_total",
    "Total number of learner verdicts processed",
    ["verdict", "card_type"],
)

words_added = Counter(
    "flashlingo_words_added_total",
    "Total number of words inserted into word banks",
    ["language"],
)

level_changes = Counter(
    "flashlingo_level_changes_total",
    "Total number of CEFR level changes",
    ["direction"],
)

# Error metrics
generation_errors = Counter(
    "flashlingo_generation_errors_total",
    "Total number of failed word generation requests",
    ["error_type"],
)

store_corruptions = Counter(
    "flashlingo_store_corruptions_total",
    "Total number of persisted values discarded as undecodable",
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
