"""
Prometheus metrics for archive operations.

Design principles:
- Low cardinality (controlled labels)
- Best-effort (never block main flow)

=============================================================================
CARDINALITY CONTROL
=============================================================================

ALLOWED LABELS (bounded sets):
- operation:  "archive", "get", "list", "delete_archive", "reconcile"
- outcome:    "success", "partial", "failed", "not_found", "stale", "error"

FORBIDDEN AS LABELS:
- tournament_id, tournament names, object keys, actors
- Raw error messages

For debugging a specific tournament use the logs, NOT metric labels.
=============================================================================
"""

import logging
from typing import Optional

from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, Counter, Histogram, generate_latest

logger = logging.getLogger(__name__)

archive_operations_total = Counter(
    "archive_operations_total",
    "Archive operation results",
    ["operation", "outcome"],
)

archive_index_attempts_total = Counter(
    "archive_index_attempts_total",
    "Archive index read-modify-write attempts",
    ["outcome"],
)

reconcile_steps_total = Counter(
    "reconcile_steps_total",
    "Deletion reconciler step results",
    ["outcome"],
)

archive_size_bytes = Histogram(
    "archive_size_bytes",
    "Serialized snapshot size in bytes",
    buckets=[1_000, 10_000, 50_000, 100_000, 250_000, 500_000, 1_000_000, 5_000_000],
)

archive_operation_duration_ms = Histogram(
    "archive_operation_duration_ms",
    "Archive operation duration in milliseconds",
    ["operation"],
    buckets=[10, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000],
)


def record_operation(operation: str, outcome: str, duration_ms: Optional[float] = None) -> None:
    try:
        archive_operations_total.labels(operation=operation, outcome=outcome).inc()
        if duration_ms is not None:
            archive_operation_duration_ms.labels(operation=operation).observe(duration_ms)
    except Exception as e:
        logger.warning(f"Failed to record archive operation metric: {e}")


def record_index_attempt(outcome: str) -> None:
    try:
        archive_index_attempts_total.labels(outcome=outcome).inc()
    except Exception as e:
        logger.warning(f"Failed to record index attempt metric: {e}")


def record_reconcile_step(outcome: str) -> None:
    try:
        reconcile_steps_total.labels(outcome=outcome).inc()
    except Exception as e:
        logger.warning(f"Failed to record reconcile step metric: {e}")


def record_archive_size(size_bytes: int) -> None:
    try:
        archive_size_bytes.observe(size_bytes)
    except Exception as e:
        logger.warning(f"Failed to record archive size metric: {e}")


def get_metrics_text() -> tuple[str, str]:
    """
    Generate Prometheus metrics text output.

    Returns:
        Tuple of (content, content_type)
    """
    return generate_latest(REGISTRY).decode("utf-8"), CONTENT_TYPE_LATEST
