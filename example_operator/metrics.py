"""
Prometheus metrics for the reconcile loop and work queue
"""

# Third Party
from prometheus_client import Counter, Gauge, Histogram

# Reconcile metrics
reconcile_total = Counter(
    "example_operator_reconcile_total",
    "Total number of reconciles run",
    ["result"],
)

reconcile_duration_seconds = Histogram(
    "example_operator_reconcile_duration_seconds",
    "Time spent running a single reconcile",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60),
)

reconcile_errors_total = Counter(
    "example_operator_reconcile_errors_total",
    "Total number of reconciles that ended with an error",
    ["error_type"],
)

child_actions_total = Counter(
    "example_operator_child_actions_total",
    "Total number of child writes by action",
    ["action"],
)

# Queue metrics
work_queue_depth = Gauge(
    "example_operator_work_queue_depth",
    "Number of requests waiting for a worker",
)

reconciles_in_flight = Gauge(
    "example_operator_reconciles_in_flight",
    "Number of reconciles currently running",
)
