"""
Tournament archival
===================
Freezes a tournament into an immutable, versioned snapshot in the object
store and removes its live rows afterwards.

Key components:
- collector.py: relational rows -> snapshot payload
- archiver.py: snapshot objects + global index (index.py)
- versions.py: UI version registry and inference for untagged snapshots
- reconciler.py: ordered, failure-tolerant deletion cascade
- service.py: operation surface returning OperationResult

Object layout: {prefix}/{tournament_id}/archive.json, {prefix}/index.json
"""

from tourney.archive.archiver import Archiver, ArchiveOutcome, ArchiveRef, DeleteArchiveOutcome
from tourney.archive.errors import (
    ArchiveError,
    ArchiveNotFound,
    ConstraintViolation,
    IndexCorrupted,
    IndexUpdateError,
    PartialDeletionError,
    TournamentNotFound,
)
from tourney.archive.reconciler import DEFAULT_STEPS, DeletionReconciler, DeletionReport, DeletionStep
from tourney.archive.service import ArchiveService, OperationResult, ReasonCode, ResultStatus

__all__ = [
    "ArchiveError",
    "ArchiveNotFound",
    "ArchiveOutcome",
    "ArchiveRef",
    "ArchiveService",
    "Archiver",
    "ConstraintViolation",
    "DEFAULT_STEPS",
    "DeleteArchiveOutcome",
    "DeletionReconciler",
    "DeletionReport",
    "DeletionStep",
    "IndexCorrupted",
    "IndexUpdateError",
    "OperationResult",
    "PartialDeletionError",
    "ReasonCode",
    "ResultStatus",
    "TournamentNotFound",
]
