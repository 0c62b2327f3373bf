"""Prometheus metrics for cycle progression, settlement health and reconciliation outcomes"""

from prometheus_client import Counter, Histogram

# Cycle metrics
cycle_transition_counter = Counter(
    "remittance_cycle_transitions_total",
    "Remittance cycle state transitions",
    ["status"],  # open | closed | locked | settled
)

waterfall_calculation_histogram = Histogram(
    "remittance_waterfall_seconds",
    "Waterfall calculation duration per cycle",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0],
)

# Settlement metrics
settlement_counter = Counter(
    "remittance_settlements_total",
    "Cycles settled against the ledger",
)

settlement_failure_counter = Counter(
    "remittance_settlement_failures_total",
    "Settlement postings rolled back",
)

# Export metrics
export_counter = Counter(
    "remittance_exports_total",
    "Export artifacts generated",
    ["format"],  # csv | xml
)

# Reconciliation metrics
reconciliation_counter = Counter(
    "remittance_reconciliations_total",
    "Reconciliation snapshots recorded",
    ["outcome"],  # balanced | unbalanced
)

# Scheduler metrics
scheduler_run_histogram = Histogram(
    "remittance_scheduler_run_seconds",
    "Duration of a full scheduler pass",
    buckets=[0.1, 0.5, 1.0, 5.0, 30.0, 120.0, 600.0],
)

scheduler_contract_failure_counter = Counter(
    "remittance_scheduler_contract_failures_total",
    "Contracts that failed during a scheduler pass",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_transition(status: str) -> None:
    cycle_transition_counter.labels(status=status).inc()


def record_reconciliation(is_balanced: bool) -> None:
    """Record reconciliation outcome for monitoring unexplained variance"""
    outcome = "balanced" if is_balanced else "unbalanced"
    reconciliation_counter.labels(outcome=outcome).inc()
