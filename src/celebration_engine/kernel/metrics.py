"""
Prometheus metrics for the celebration engine.

Provides observability into the ledger, limit decisions, lifecycle
transitions and the degraded paths that must stay auditable.
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
    "celebration_events_appended_total",
    "Total number of events appended to the event store",
    ["stream_type", "event_type"],
)

events_loaded_total = Counter(
    "celebration_events_loaded_total",
    "Total number of events loaded from the event store",
    ["stream_type"],
)

stream_version_conflicts_total = Counter(
    "celebration_stream_version_conflicts_total",
    "Total number of conditional-write version conflicts",
    ["stream_type"],
)

# ============================================================================
# Command Processing Metrics
# ============================================================================

command_duration_seconds = Histogram(
    "celebration_command_duration_seconds",
    "Duration of command processing in seconds",
    ["command_type"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

commands_processed_total = Counter(
    "celebration_commands_processed_total",
    "Total number of commands processed",
    ["command_type", "status"],  # status: success, failure
)

# ============================================================================
# Compliance Metrics
# ============================================================================

donations_approved_total = Counter(
    "celebration_donations_approved_total",
    "Donations that passed every limit check",
    ["compliance_tier", "validation_method"],
)

limit_rejections_total = Counter(
    "celebration_limit_rejections_total",
    "Donations rejected by a contribution limit",
    ["compliance_tier", "limit_type"],
)

tips_truncated_total = Counter(
    "celebration_tips_truncated_total",
    "Tips zeroed because they would exceed the annual PAC limit",
)

tip_limit_reached_total = Counter(
    "celebration_tip_limit_reached_total",
    "Donors whose sticky tip-limit flag was set",
)

data_degraded_total = Counter(
    "celebration_data_degraded_total",
    "Fallbacks taken because input data was missing or unrecognized",
    ["subject"],  # tier, election_dates, enhanced_validation
)

# ============================================================================
# Lifecycle Metrics
# ============================================================================

status_transitions_total = Counter(
    "celebration_status_transitions_total",
    "Celebration status transitions appended to ledgers",
    ["from_status", "to_status"],
)

invalid_transitions_total = Counter(
    "celebration_invalid_transitions_total",
    "Rejected celebration status transitions",
    ["from_status", "to_status"],
)

celebrations_by_status = Gauge(
    "celebration_celebrations_by_status",
    "Number of celebrations currently in each status",
    ["status"],
)

notification_failures_total = Counter(
    "celebration_notification_failures_total",
    "Notification sink failures (logged, never propagated)",
    ["topic"],
)

# ============================================================================
# System Metrics
# ============================================================================

tick_execution_duration_seconds = Histogram(
    "celebration_tick_execution_duration_seconds",
    "Duration of tick execution in seconds",
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
)

projection_rebuild_duration_seconds = Histogram(
    "celebration_projection_rebuild_duration_seconds",
    "Duration of projection rebuild in seconds",
    buckets=(0.01, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0),
)

# ============================================================================
# Helper Functions
# ============================================================================

P = ParamSpec("P")
R = TypeVar("R")


def track_command_duration(command_type: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator to track command processing duration and outcome.

    Args:
        command_type: Type of command being processed
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
                duration = time.perf_counter() - start
                command_duration_seconds.labels(command_type=command_type).observe(duration)
                commands_processed_total.labels(
                    command_type=command_type, status=status
                ).inc()

        return wrapper

    return decorator


def start_metrics_server(port: int = 9090) -> None:
    """Start Prometheus metrics HTTP server."""
    start_http_server(port)


def update_status_gauges(counts: dict[str, int]) -> None:
    """Publish the current celebration count per status."""
    for status, count in counts.items():
        celebrations_by_status.labels(status=status).set(count)
