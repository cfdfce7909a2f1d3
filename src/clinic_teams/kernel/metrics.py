"""
Prometheus metrics for clinic_teams.

Counters for the event log and domain operations, gauges for the dashboard
figures computed by the statistics aggregator.
"""

import time
from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from prometheus_client import Counter, Gauge, Histogram, start_http_server

# ============================================================================
# Event Store Metrics
# ============================================================================

events_appended_total = Counter(
    "clinic_teams_events_appended_total",
    "Total number of events appended to the event store",
    ["stream_type", "event_type"],
)

events_loaded_total = Counter(
    "clinic_teams_events_loaded_total",
    "Total number of events loaded from the event store",
    ["stream_type"],
)

stream_version_conflicts_total = Counter(
    "clinic_teams_stream_version_conflicts_total",
    "Total number of optimistic locking version conflicts",
    ["stream_type"],
)

# ============================================================================
# Operation Metrics
# ============================================================================

operation_duration_seconds = Histogram(
    "clinic_teams_operation_duration_seconds",
    "Duration of facade operations in seconds",
    ["operation"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

operations_total = Counter(
    "clinic_teams_operations_total",
    "Total number of facade operations",
    ["operation", "status"],  # status: success, failure
)

delegation_conflicts_total = Counter(
    "clinic_teams_delegation_conflicts_total",
    "Delegations created while overlapping an existing grant to the same recipient",
)

authorization_checks_total = Counter(
    "clinic_teams_authorization_checks_total",
    "Permission checks answered by the effective permission resolver",
    ["result"],  # granted, denied
)

# ============================================================================
# Dashboard Gauges
# ============================================================================

active_delegations = Gauge(
    "clinic_teams_active_delegations",
    "Delegations whose derived status is active at the last statistics query",
)

pending_approvals = Gauge(
    "clinic_teams_pending_approvals",
    "Active delegations still waiting for approval",
)

active_teams = Gauge(
    "clinic_teams_active_teams",
    "Active, non-deleted teams",
)

# ============================================================================
# System Metrics
# ============================================================================

projection_rebuild_duration_seconds = Histogram(
    "clinic_teams_projection_rebuild_duration_seconds",
    "Duration of projection rebuild in seconds",
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0),
)

P = ParamSpec("P")
R = TypeVar("R")


def track_operation(operation: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator recording duration and success/failure of an operation.

    Args:
        operation: Operation name used as metric label
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.perf_counter()
            status = "success"
            try:
                return func(*args, **kwargs)
            except Exception:
                status = "failure"
                raise
            finally:
                operation_duration_seconds.labels(operation=operation).observe(
                    time.perf_counter() - start
                )
                operations_total.labels(operation=operation, status=status).inc()

        return wrapper

    return decorator


def update_dashboard_gauges(
    *, delegations_active: int, approvals_pending: int, teams_active: int
) -> None:
    """Publish the latest statistics snapshot as gauges"""
    active_delegations.set(delegations_active)
    pending_approvals.set(approvals_pending)
    active_teams.set(teams_active)


def start_metrics_server(port: int = 9090) -> None:
    """Start Prometheus metrics HTTP server on the given port."""
    start_http_server(port)
