"""
Deletion reconciler: removes a tournament's live rows after it was archived.

The cascade is data: DEFAULT_STEPS lists every dependent table, children
before parents, and one executor runs them in order. A failing step is
recorded in the ledger and the cascade continues; foreign-key failures of
later steps that it caused are marked deferred instead. After the last step a
verification pass counts what is left in each table and force-deletes
residual rows one by one. Only then is the tournament row deleted; if that
fails, the tables are searched for rows still pointing at the tournament and
the run ends as Failed with partial_deletion set.

There is no enclosing transaction: each step commits on its own. No other
writer is expected to touch the tournament's rows while this runs.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from urllib.parse import urlparse

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from tourney.archive.errors import ConstraintViolation, PartialDeletionError, TournamentNotFound
from tourney.config import get_settings
from tourney.db_utils import count_rows, fetch_all, fetch_one, is_missing_table_error
from tourney.storage.base import ObjectNotFound, ObjectStore, StorageError
from tourney.telemetry.metrics import record_reconcile_step

logger = logging.getLogger(__name__)

_MATCHES_OF_TOURNAMENT = """
    SELECT ml.match_id FROM matches_live ml
    JOIN match_blocks mb ON ml.match_block_id = mb.match_block_id
    WHERE mb.tournament_id = :tournament_id
"""


@dataclass(frozen=True)
class DeletionStep:
    """One dependent table of a tournament.

    scope_sql selects the key_column of every row of `table` belonging to the
    tournament (bound as :tournament_id). delete_sql replaces the generated
    bulk delete when set.
    """

    table: str
    key_column: str
    scope_sql: str
    description: str
    delete_sql: Optional[str] = None

    @property
    def count_sql(self) -> str:
        return f"SELECT COUNT(*) FROM ({self.scope_sql}) AS scoped"

    @property
    def bulk_delete_sql(self) -> str:
        return self.delete_sql or f"DELETE FROM {self.table} WHERE {self.key_column} IN ({self.scope_sql})"

    @property
    def row_delete_sql(self) -> str:
        return f"DELETE FROM {self.table} WHERE {self.key_column} = :key"


def _by_tournament(table: str, key_column: str, description: str) -> DeletionStep:
    return DeletionStep(
        table=table,
        key_column=key_column,
        scope_sql=f"SELECT {key_column} FROM {table} WHERE tournament_id = :tournament_id",
        description=description,
    )


# Children before parents
DEFAULT_STEPS: tuple[DeletionStep, ...] = (
    DeletionStep(
        table="match_status",
        key_column="match_id",
        scope_sql=f"SELECT ms.match_id FROM match_status ms WHERE ms.match_id IN ({_MATCHES_OF_TOURNAMENT})",
        description="Live match status",
    ),
    DeletionStep(
        table="matches_final",
        key_column="match_id",
        scope_sql=f"SELECT mf.match_id FROM matches_final mf WHERE mf.match_id IN ({_MATCHES_OF_TOURNAMENT})",
        description="Confirmed match results",
    ),
    DeletionStep(
        table="matches_live",
        key_column="match_id",
        scope_sql=_MATCHES_OF_TOURNAMENT,
        description="Scheduled matches",
    ),
    _by_tournament("match_blocks", "match_block_id", "Match blocks and standings"),
    _by_tournament("tournament_players", "tournament_player_id", "Team rosters"),
    _by_tournament("tournament_teams", "tournament_team_id", "Participating teams"),
    _by_tournament("tournament_rules", "tournament_rule_id", "Competition rules"),
    _by_tournament("tournament_files", "file_id", "Uploaded documents"),
    _by_tournament("sponsor_banners", "banner_id", "Sponsor banners"),
    _by_tournament("tournament_notifications", "notification_id", "Notifications"),
    _by_tournament("match_overrides", "override_id", "Bracket overrides"),
    _by_tournament("tournament_status_history", "history_id", "Status history"),
    _by_tournament("archived_tournament_json", "tournament_id", "Relational-form snapshot"),
)

# Object keys referenced by rows about to be deleted
EXTERNAL_OBJECTS_SQL = (
    "SELECT image_blob_url AS blob_url FROM sponsor_banners "
    "WHERE tournament_id = :tournament_id AND image_blob_url IS NOT NULL",
    "SELECT blob_url FROM tournament_files "
    "WHERE tournament_id = :tournament_id AND blob_url IS NOT NULL",
)


class ReconcileStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class StepResult:
    step: int
    table: str
    description: str
    success: bool
    rows_deleted: int = 0
    error: Optional[str] = None
    execution_ms: int = 0
    forced: bool = False
    deferred: bool = False  # FK failure caused by an earlier failed step


@dataclass
class DeletionReport:
    """Outcome of one reconcile run. The ledger holds per-table failures."""

    tournament_id: int
    tournament_name: str = ""
    was_archived: bool = False
    keep_tournament_row: bool = False
    status: ReconcileStatus = ReconcileStatus.FAILED
    steps: list[StepResult] = field(default_factory=list)
    ledger: list[str] = field(default_factory=list)
    pre_counts: dict[str, int] = field(default_factory=dict)
    post_counts: dict[str, int] = field(default_factory=dict)
    investigation: dict[str, list[Any]] = field(default_factory=dict)
    main_row_deleted: bool = False
    partial_deletion: bool = False
    error: Optional[str] = None

    @property
    def total_deleted(self) -> int:
        return sum(s.rows_deleted for s in self.steps)

    @property
    def remaining_rows(self) -> int:
        return sum(self.post_counts.values())

    def summary(self) -> dict[str, Any]:
        return {
            "total_steps": len(self.steps),
            "successful_steps": sum(1 for s in self.steps if s.success),
            "failed_steps": sum(1 for s in self.steps if not s.success),
            "deferred_steps": sum(1 for s in self.steps if s.deferred),
            "total_deleted_records": self.total_deleted,
            "remaining_records": self.remaining_rows,
            "total_execution_ms": sum(s.execution_ms for s in self.steps),
            "tournament_main_deleted": self.main_row_deleted,
        }


class DeletionReconciler:
    """Runs the deletion cascade for one tournament at a time."""

    def __init__(
        self,
        session_maker: sessionmaker,
        store: Optional[ObjectStore] = None,
        steps: tuple[DeletionStep, ...] = DEFAULT_STEPS,
        investigate: tuple[DeletionStep, ...] = DEFAULT_STEPS,
        investigation_limit: Optional[int] = None,
    ):
        self.session_maker = session_maker
        self.store = store
        self.steps = steps
        self.investigate_steps = investigate
        self.investigation_limit = (
            investigation_limit
            if investigation_limit is not None
            else get_settings().RECONCILER_INVESTIGATION_LIMIT
        )

    async def reconcile(self, tournament_id: int, keep_tournament_row: bool = False) -> DeletionReport:
        """
        Delete every row belonging to the tournament, then the tournament row.

        Args:
            keep_tournament_row: Cleanup mode, the tournament row stays and is
                marked archived

        Raises:
            TournamentNotFound: no tournaments row (nothing deleted)
        """
        params = {"tournament_id": tournament_id}
        async with self.session_maker() as session:
            row = await fetch_one(
                session,
                "SELECT tournament_name, is_archived FROM tournaments WHERE tournament_id = :tournament_id",
                params,
            )
        if row is None:
            raise TournamentNotFound(tournament_id)

        report = DeletionReport(
            tournament_id=tournament_id,
            tournament_name=row["tournament_name"],
            was_archived=bool(row["is_archived"]),
            keep_tournament_row=keep_tournament_row,
        )
        if not report.was_archived:
            logger.warning(
                f"[RECONCILE] Tournament {tournament_id} '{report.tournament_name}' was never archived; "
                f"its data will not be recoverable"
            )

        logger.info(f"[RECONCILE] Starting deletion of tournament {tournament_id} ({len(self.steps)} steps)")
        report.pre_counts = await self._count_all(params)

        await self._cleanup_external_objects(report, params)

        for number, step in enumerate(self.steps, start=1):
            report.steps.append(await self._run_step(number, step, params, report))

        await self._verify(report, params)
        report.post_counts = await self._count_all(params)

        if keep_tournament_row:
            await self._mark_archived(report, params)
        else:
            await self._delete_main_row(report, params)

        summary = report.summary()
        log = logger.info if report.status == ReconcileStatus.COMPLETED else logger.error
        log(
            f"[RECONCILE] Tournament {tournament_id} {report.status.value}: "
            f"{summary['successful_steps']}/{summary['total_steps']} steps ok, "
            f"{summary['total_deleted_records']} rows deleted, {summary['remaining_records']} remaining, "
            f"{len(report.ledger)} ledger entries, main_row_deleted={report.main_row_deleted}"
        )
        return report

    async def reconcile_or_raise(self, tournament_id: int, keep_tournament_row: bool = False) -> DeletionReport:
        """reconcile(), raising PartialDeletionError when the run Failed."""
        report = await self.reconcile(tournament_id, keep_tournament_row)
        if report.status == ReconcileStatus.FAILED:
            raise PartialDeletionError(tournament_id, report)
        return report

    # ==========================================================================
    # Steps
    # ==========================================================================

    @staticmethod
    def _earlier_step_failed(report: DeletionReport) -> bool:
        return any(not s.success and s.step > 0 for s in report.steps)

    async def _run_step(
        self,
        number: int,
        step: DeletionStep,
        params: dict,
        report: DeletionReport,
    ) -> StepResult:
        start = time.monotonic()
        async with self.session_maker() as session:
            try:
                result = await session.execute(text(step.bulk_delete_sql), params)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                elapsed = round((time.monotonic() - start) * 1000)
                if is_missing_table_error(e):
                    logger.info(f"[RECONCILE] Step {number} {step.table}: table missing, nothing to delete")
                    record_reconcile_step("success")
                    return StepResult(number, step.table, step.description, True, 0, None, elapsed)

                error = f"{step.table}: {e.orig if getattr(e, 'orig', None) else e}"
                record_reconcile_step("failed")
                if isinstance(e, IntegrityError) and self._earlier_step_failed(report):
                    # Blocked by rows an earlier failed step left behind; verification retries it
                    logger.info(f"[RECONCILE] Step {number} {step.table} deferred to verification: {error}")
                    return StepResult(number, step.table, step.description, False, 0, error, elapsed, deferred=True)

                report.ledger.append(error)
                logger.warning(f"[RECONCILE] Step {number} {step.table} failed, continuing: {error}")
                return StepResult(number, step.table, step.description, False, 0, error, elapsed)

        rows = max(result.rowcount or 0, 0)
        elapsed = round((time.monotonic() - start) * 1000)
        record_reconcile_step("success")
        logger.info(f"[RECONCILE] Step {number} {step.table}: {rows} rows deleted ({elapsed}ms)")
        return StepResult(number, step.table, step.description, True, rows, None, elapsed)

    async def _cleanup_external_objects(self, report: DeletionReport, params: dict) -> None:
        """Delete stored images/documents referenced by rows about to cascade."""
        if self.store is None:
            return

        start = time.monotonic()
        keys: list[str] = []
        async with self.session_maker() as session:
            for sql in EXTERNAL_OBJECTS_SQL:
                keys.extend(row["blob_url"] for row in await fetch_all(session, sql, params, optional=True))

        failures = []
        for key in keys:
            # Older rows store the public URL instead of the object key
            if key.startswith(("http://", "https://")):
                key = urlparse(key).path.lstrip("/")
            try:
                await self.store.delete_object(key)
            except ObjectNotFound:
                continue
            except StorageError as e:
                failures.append(f"{key} ({e})")

        elapsed = round((time.monotonic() - start) * 1000)
        error = None
        if failures:
            error = f"object_store: {len(failures)} objects not deleted: {'; '.join(failures)}"
            report.ledger.append(error)
            record_reconcile_step("failed")
            logger.warning(f"[RECONCILE] {error}")
        else:
            record_reconcile_step("success")
            logger.info(f"[RECONCILE] External objects: {len(keys)} deleted")

        report.steps.append(
            StepResult(0, "object_store", "Stored banner images and documents", not failures,
                       len(keys) - len(failures), error, elapsed)
        )

    # ==========================================================================
    # Verification
    # ==========================================================================

    async def _count_all(self, params: dict) -> dict[str, int]:
        counts: dict[str, int] = {}
        for step in self.investigate_steps:
            async with self.session_maker() as session:
                try:
                    counts[step.table] = await count_rows(session, step.count_sql, params, optional=True)
                except SQLAlchemyError as e:
                    logger.warning(f"[RECONCILE] Count of {step.table} failed: {e}")
                    counts[step.table] = 0
        return counts

    async def _verify(self, report: DeletionReport, params: dict) -> None:
        """Re-count every step's table and force-delete what is left."""
        for step in self.steps:
            async with self.session_maker() as session:
                try:
                    remaining = await count_rows(session, step.count_sql, params, optional=True)
                except SQLAlchemyError as e:
                    logger.warning(f"[RECONCILE] Verification count of {step.table} failed: {e}")
                    continue
            if remaining == 0:
                continue

            logger.warning(f"[RECONCILE] {step.table}: {remaining} rows left, forcing deletion")
            report.steps.append(await self._force_delete(step, params, report))

    async def _force_delete(self, step: DeletionStep, params: dict, report: DeletionReport) -> StepResult:
        start = time.monotonic()
        async with self.session_maker() as session:
            keys = [row[step.key_column] for row in await fetch_all(session, step.scope_sql, params)]

        deleted = 0
        errors = []
        for key in keys:
            async with self.session_maker() as session:
                try:
                    result = await session.execute(text(step.row_delete_sql), {"key": key})
                    await session.commit()
                    deleted += max(result.rowcount or 0, 0)
                except SQLAlchemyError as e:
                    await session.rollback()
                    errors.append(f"{step.key_column}={key}: {getattr(e, 'orig', None) or e}")

        elapsed = round((time.monotonic() - start) * 1000)
        error = None
        if errors:
            error = f"{step.table} (forced): {len(errors)} rows not deleted: {'; '.join(errors)}"
            report.ledger.append(error)
            record_reconcile_step("failed")
            logger.warning(f"[RECONCILE] {error}")
        else:
            record_reconcile_step("success")
            logger.info(f"[RECONCILE] {step.table}: forced deletion of {deleted} rows")

        return StepResult(
            len(report.steps) + 1, step.table, f"Forced deletion: {step.description}",
            not errors, deleted, error, elapsed, forced=True,
        )

    # ==========================================================================
    # Main row
    # ==========================================================================

    async def _delete_main_row(self, report: DeletionReport, params: dict) -> None:
        tournament_id = report.tournament_id
        async with self.session_maker() as session:
            try:
                await session.execute(
                    text("DELETE FROM tournaments WHERE tournament_id = :tournament_id"), params
                )
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                violation = ConstraintViolation(tournament_id, str(getattr(e, "orig", None) or e))
                await self._fail(report, params, str(violation))
                return
            except SQLAlchemyError as e:
                await session.rollback()
                await self._fail(report, params, f"tournaments: {e}")
                return

        async with self.session_maker() as session:
            remaining = await count_rows(
                session, "SELECT COUNT(*) FROM tournaments WHERE tournament_id = :tournament_id", params
            )
        if remaining:
            await self._fail(report, params, f"tournaments: row {tournament_id} still present after delete")
            return

        report.main_row_deleted = True
        report.status = ReconcileStatus.COMPLETED

    async def _mark_archived(self, report: DeletionReport, params: dict) -> None:
        async with self.session_maker() as session:
            try:
                await session.execute(
                    text("UPDATE tournaments SET is_archived = :flag WHERE tournament_id = :tournament_id"),
                    {**params, "flag": True},
                )
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                report.ledger.append(f"tournaments: archive flag not set: {e}")
                logger.warning(f"[RECONCILE] Could not mark tournament {report.tournament_id} archived: {e}")
        report.status = ReconcileStatus.COMPLETED

    async def _fail(self, report: DeletionReport, params: dict, error: str) -> None:
        report.error = error
        report.ledger.append(error)
        report.status = ReconcileStatus.FAILED
        report.partial_deletion = True
        logger.error(f"[RECONCILE] Tournament {report.tournament_id} row not deleted: {error}")
        report.investigation = await self._investigate(params)
        for table, keys in report.investigation.items():
            logger.error(f"[RECONCILE]   {table} still references it: {keys}")

    async def _investigate(self, params: dict) -> dict[str, list[Any]]:
        """Ids of rows still belonging to the tournament, per table."""
        found: dict[str, list[Any]] = {}
        for step in self.investigate_steps:
            async with self.session_maker() as session:
                try:
                    rows = await fetch_all(
                        session,
                        f"{step.scope_sql} LIMIT {int(self.investigation_limit)}",
                        params,
                        optional=True,
                    )
                except SQLAlchemyError as e:
                    logger.warning(f"[RECONCILE] Investigation of {step.table} failed: {e}")
                    continue
            if rows:
                found[step.table] = [row[step.key_column] for row in rows]
        return found
