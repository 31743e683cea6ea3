"""
Prometheus metrics for the EAV data repository.

Tracks entity resolution strategies, their outcomes and integrity violations.
"""

from prometheus_client import Counter, Histogram

# Lookup metrics
eav_lookups_total = Counter(
    "eav_lookups_total",
    "Total entity lookups",
    ["strategy", "outcome"],
)

eav_lookup_duration_seconds = Histogram(
    "eav_lookup_duration_seconds",
    "Entity lookup duration in seconds",
    ["strategy"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

# Integrity metrics
eav_integrity_violations_total = Counter(
    "eav_integrity_violations_total",
    "Single-result queries that matched more than one entity",
)


def track_lookup(strategy: str, found: bool) -> None:
    """Record the outcome of a lookup."""
    eav_lookups_total.labels(
        strategy=strategy, outcome="found" if found else "not_found"
    ).inc()


def track_lookup_error(strategy: str) -> None:
    """Record a failed lookup."""
    eav_lookups_total.labels(strategy=strategy, outcome="error").inc()
