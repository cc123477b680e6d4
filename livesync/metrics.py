"""Prometheus metrics shared by channels, poll engines and the registry."""

from prometheus_client import Counter, Gauge, Histogram

POLLS_TOTAL = Counter(
    "livesync_polls_total",
    "Total number of poll ticks executed",
    ["resource", "status"],
)

POLL_DURATION = Histogram(
    "livesync_poll_duration_seconds",
    "Time spent querying a resource during a poll tick",
    ["resource"],
)

EVENTS_DELIVERED = Counter(
    "livesync_events_delivered_total",
    "Total number of change events handed to subscription callbacks",
    ["resource", "source"],
)

CALLBACK_ERRORS = Counter(
    "livesync_callback_errors_total",
    "Total number of exceptions raised by subscription callbacks",
    ["resource"],
)

MODE_TRANSITIONS = Counter(
    "livesync_mode_transitions_total",
    "Total number of subscription state transitions",
    ["resource", "state"],
)

ESTABLISH_RETRIES = Counter(
    "livesync_establish_retries_total",
    "Total number of scheduled channel establishment retries",
    ["resource"],
)

ACTIVE_SUBSCRIPTIONS = Gauge(
    "livesync_active_subscriptions", "Number of tracked subscriptions"
)
