"""
Archive Telemetry Module

Prometheus metrics for archive/index/reconcile operations.
"""

from tourney.telemetry.metrics import (
    archive_index_attempts_total,
    archive_operation_duration_ms,
    archive_operations_total,
    archive_size_bytes,
    get_metrics_text,
    record_archive_size,
    record_index_attempt,
    record_operation,
    record_reconcile_step,
    reconcile_steps_total,
)

__all__ = [
    "archive_index_attempts_total",
    "archive_operation_duration_ms",
    "archive_operations_total",
    "archive_size_bytes",
    "get_metrics_text",
    "record_archive_size",
    "record_index_attempt",
    "record_operation",
    "record_reconcile_step",
    "reconcile_steps_total",
]
