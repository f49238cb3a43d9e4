"""
Archive operation surface used by the admin routes and the operator CLI.

Every operation returns an OperationResult instead of raising, so callers can
tell success, partial success (with warnings) and failure apart through a
machine-readable reason code.
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from tourney.archive.archiver import Archiver
from tourney.archive.errors import ArchiveNotFound, TournamentNotFound
from tourney.archive.reconciler import DeletionReconciler, ReconcileStatus
from tourney.storage.base import ObjectStore, StorageError
from tourney.storage.r2_client import health_check
from tourney.telemetry.metrics import record_operation

logger = logging.getLogger(__name__)


class ResultStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class ReasonCode(str, Enum):
    TOURNAMENT_NOT_FOUND = "tournament_not_found"
    ARCHIVE_NOT_FOUND = "archive_not_found"
    ARCHIVE_CORRUPTED = "archive_corrupted"
    COLLECT_FAILED = "collect_failed"
    STORE_WRITE_FAILED = "store_write_failed"
    INDEX_UPDATE_FAILED = "index_update_failed"
    ROW_STAMP_FAILED = "row_stamp_failed"
    STORE_DELETE_FAILED = "store_delete_failed"
    CASCADE_WARNINGS = "cascade_warnings"
    MAIN_ROW_DELETE_FAILED = "main_row_delete_failed"
    STORAGE_UNAVAILABLE = "storage_unavailable"


@dataclass
class OperationResult:
    status: ResultStatus
    reason: Optional[ReasonCode] = None
    message: str = ""
    warnings: list[str] = field(default_factory=list)
    data: Any = None

    @property
    def ok(self) -> bool:
        return self.status != ResultStatus.FAILED

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "reason": self.reason.value if self.reason else None,
            "message": self.message,
            "warnings": self.warnings,
            "data": self.data,
        }


def _failed(reason: ReasonCode, message: str, data: Any = None) -> OperationResult:
    return OperationResult(ResultStatus.FAILED, reason, message, data=data)


class ArchiveService:
    """Archive, read, list and delete snapshots; reconcile live data."""

    def __init__(
        self,
        session_maker: sessionmaker,
        store: ObjectStore,
        archiver: Optional[Archiver] = None,
        reconciler: Optional[DeletionReconciler] = None,
    ):
        self.store = store
        self.archiver = archiver or Archiver(session_maker, store)
        self.reconciler = reconciler or DeletionReconciler(session_maker, store)

    async def archive(self, tournament_id: int, actor: Optional[str]) -> OperationResult:
        start = time.monotonic()
        try:
            outcome = await self.archiver.archive(tournament_id, actor)
        except TournamentNotFound as e:
            result = _failed(ReasonCode.TOURNAMENT_NOT_FOUND, str(e))
        except SQLAlchemyError as e:
            logger.error(f"[ARCHIVE] Collecting tournament {tournament_id} failed: {e}")
            result = _failed(ReasonCode.COLLECT_FAILED, f"Collecting tournament data failed: {e}")
        except StorageError as e:
            result = _failed(ReasonCode.STORE_WRITE_FAILED, f"Archive object not written: {e}")
        else:
            data = {**asdict(outcome.ref), "indexed": outcome.indexed, "row_stamped": outcome.row_stamped}
            result = OperationResult(
                ResultStatus.SUCCESS,
                message=f"Tournament {tournament_id} archived ({outcome.ref.file_size} bytes)",
                data=data,
            )
            if not outcome.row_stamped:
                result.status = ResultStatus.PARTIAL
                result.reason = ReasonCode.ROW_STAMP_FAILED
                result.warnings.append(f"Tournament row not stamped: {outcome.row_error}")
            if not outcome.indexed:
                result.status = ResultStatus.PARTIAL
                result.reason = ReasonCode.INDEX_UPDATE_FAILED
                result.warnings.append(f"Archive index not updated: {outcome.index_error}")

        record_operation("archive", result.status.value, (time.monotonic() - start) * 1000)
        return result

    async def get_archive(self, tournament_id: int) -> OperationResult:
        try:
            archive = await self.archiver.get(tournament_id)
        except ArchiveNotFound as e:
            record_operation("get", "not_found")
            return _failed(ReasonCode.ARCHIVE_NOT_FOUND, str(e))
        except StorageError as e:
            record_operation("get", "failed")
            return _failed(ReasonCode.STORAGE_UNAVAILABLE, str(e))
        except ValueError as e:
            logger.error(f"[ARCHIVE] Archive of tournament {tournament_id} is unreadable: {e}")
            record_operation("get", "failed")
            return _failed(ReasonCode.ARCHIVE_CORRUPTED, f"Archive unreadable: {e}")

        record_operation("get", "success")
        return OperationResult(ResultStatus.SUCCESS, data=archive.model_dump(mode="json"))

    async def list_archives(self) -> OperationResult:
        entries = await self.archiver.list_archives()
        record_operation("list", "success")
        return OperationResult(
            ResultStatus.SUCCESS,
            message=f"{len(entries)} archived tournaments",
            data=[e.model_dump(mode="json") for e in entries],
        )

    async def delete_archive(self, tournament_id: int) -> OperationResult:
        outcome = await self.archiver.delete_archive(tournament_id)
        data = asdict(outcome)

        if not outcome.object_deleted:
            result = _failed(ReasonCode.STORE_DELETE_FAILED, outcome.object_error or "", data)
            if not outcome.index_updated:
                result.warnings.append(f"Index entry not removed: {outcome.index_error}")
        else:
            result = OperationResult(
                ResultStatus.SUCCESS, message=f"Archive of tournament {tournament_id} deleted", data=data
            )
            if not outcome.index_updated:
                result.status = ResultStatus.PARTIAL
                result.reason = ReasonCode.INDEX_UPDATE_FAILED
                result.warnings.append(f"Index entry not removed: {outcome.index_error}")
        if not outcome.row_cleared:
            if result.status == ResultStatus.SUCCESS:
                result.status = ResultStatus.PARTIAL
                result.reason = ReasonCode.ROW_STAMP_FAILED
            result.warnings.append(f"Tournament row archive stamp not cleared: {outcome.row_error}")

        record_operation("delete_archive", result.status.value)
        return result

    async def reconcile_deletion(self, tournament_id: int, keep_tournament_row: bool = False) -> OperationResult:
        start = time.monotonic()
        try:
            report = await self.reconciler.reconcile(tournament_id, keep_tournament_row)
        except TournamentNotFound as e:
            record_operation("reconcile", "failed")
            return _failed(ReasonCode.TOURNAMENT_NOT_FOUND, str(e))

        data = {
            "tournament_id": report.tournament_id,
            "tournament_name": report.tournament_name,
            "was_archived": report.was_archived,
            "keep_tournament_row": report.keep_tournament_row,
            "summary": report.summary(),
            "pre_counts": report.pre_counts,
            "post_counts": report.post_counts,
            "steps": [asdict(s) for s in report.steps],
            "investigation": report.investigation,
            "partial_deletion": report.partial_deletion,
        }

        if report.status == ReconcileStatus.FAILED:
            result = OperationResult(
                ResultStatus.FAILED,
                ReasonCode.MAIN_ROW_DELETE_FAILED,
                f"Related data of tournament {tournament_id} removed but the tournament row remains",
                warnings=list(report.ledger),
                data=data,
            )
        elif report.ledger:
            result = OperationResult(
                ResultStatus.PARTIAL,
                ReasonCode.CASCADE_WARNINGS,
                f"Tournament {tournament_id} deleted with {len(report.ledger)} warnings",
                warnings=list(report.ledger),
                data=data,
            )
        else:
            result = OperationResult(ResultStatus.SUCCESS, message=f"Tournament {tournament_id} deleted", data=data)

        record_operation("reconcile", result.status.value, (time.monotonic() - start) * 1000)
        return result

    async def storage_health(self) -> OperationResult:
        health = await health_check(self.store)
        if not health["healthy"]:
            return _failed(ReasonCode.STORAGE_UNAVAILABLE, health.get("error", ""), health)
        return OperationResult(ResultStatus.SUCCESS, data=health)
