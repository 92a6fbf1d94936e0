"""Prometheus metrics definitions for the blood-pressure tracker."""

from prometheus_client import Counter, Histogram, Info

# -- Service info --
SERVICE_INFO = Info("bp_tracker", "Blood pressure tracker service info")

# -- Readings --
READINGS_RECORDED = Counter(
    "bp_tracker_readings_recorded_total",
    "Total readings stored",
    ["arm"],
)

# -- Averages --
AVERAGES_COMPUTED = Counter(
    "bp_tracker_averages_computed_total",
    "Total averages computations",
    ["timeframe"],
)
AVERAGES_DURATION = Histogram(
    "bp_tracker_averages_duration_seconds",
    "Averages computation latency including storage fetch",
    ["timeframe"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

# -- Storage --
STORAGE_OPERATION_DURATION = Histogram(
    "bp_tracker_storage_operation_duration_seconds",
    "Storage operation latency",
    ["operation"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
)
STORAGE_ERRORS = Counter(
    "bp_tracker_storage_errors_total",
    "Storage operations that failed after retries",
    ["operation"],
)

# -- Bot --
BOT_COMMANDS = Counter(
    "bp_tracker_bot_commands_total",
    "Bot commands processed",
    ["command", "status"],
)

# -- HTTP --
HTTP_REQUESTS_TOTAL = Counter(
    "bp_tracker_http_requests_total",
    "HTTP requests handled",
    ["method", "path", "status"],
)
