"""
Snapshot store: writes, reads and deletes tournament archives.

Archive flow (strictly sequential):
    1. collect the aggregate        -> failure aborts, nothing written
    2. write the snapshot object    -> durability boundary
    3. upsert the index entry       -> failure reported, archive still valid
    4. stamp the tournament row     -> failure reported, archive still valid

Archived and indexed are separate outcomes: a snapshot whose index update
failed is safe, only listings may be stale until it is re-archived.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from tourney.archive.collector import TournamentCollector
from tourney.archive.errors import ArchiveNotFound, IndexUpdateError
from tourney.archive.index import ArchiveIndexStore
from tourney.archive.schema import (
    ArchivedTournament,
    ArchiveIndexEntry,
    IndexEntryMetadata,
    normalize_archive,
)
from tourney.archive.versions import get_current_version
from tourney.config import build_archive_path, get_settings
from tourney.models import Tournament, utc_now
from tourney.storage.base import ObjectNotFound, ObjectStore, StorageError
from tourney.storage.r2_client import dump_json, get_json_retrying
from tourney.telemetry.metrics import record_archive_size

logger = logging.getLogger(__name__)


@dataclass
class ArchiveRef:
    """Where a snapshot was written and what it contains."""

    tournament_id: int
    tournament_name: str
    file_size: int
    archived_at: str
    archived_by: Optional[str]
    blob_url: str
    archive_ui_version: str


@dataclass
class ArchiveOutcome:
    ref: ArchiveRef
    indexed: bool = True
    index_error: Optional[IndexUpdateError] = None
    row_stamped: bool = True
    row_error: Optional[str] = None


@dataclass
class DeleteArchiveOutcome:
    tournament_id: int
    object_deleted: bool = True
    object_error: Optional[str] = None
    index_updated: bool = True
    index_error: Optional[str] = None
    row_cleared: bool = True
    row_error: Optional[str] = None


class Archiver:
    """Owns the snapshot objects and the global archive index."""

    def __init__(
        self,
        session_maker: sessionmaker,
        store: ObjectStore,
        index: Optional[ArchiveIndexStore] = None,
        prefix: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        settings = get_settings()
        self.session_maker = session_maker
        self.store = store
        self.prefix = prefix or settings.ARCHIVE_PREFIX
        self.index = index or ArchiveIndexStore(store)
        self.format_version = settings.ARCHIVE_FORMAT_VERSION
        self.cache_max_age = settings.ARCHIVE_CACHE_MAX_AGE_SECONDS
        self._clock = clock

    def archive_path(self, tournament_id: int) -> str:
        return build_archive_path(tournament_id, self.prefix)

    # ==========================================================================
    # Archive
    # ==========================================================================

    async def archive(self, tournament_id: int, actor: Optional[str]) -> ArchiveOutcome:
        """
        Snapshot a tournament into the object store.

        Re-archiving overwrites the object at the same path and replaces the
        tournament's index entry.

        Raises:
            TournamentNotFound: tournament row missing (nothing written)
            SQLAlchemyError: collection failed (nothing written)
            StorageError: snapshot object write failed
        """
        start = time.monotonic()
        logger.info(f"[ARCHIVE] Starting archive of tournament {tournament_id} (actor={actor})")

        async with self.session_maker() as session:
            aggregate = await TournamentCollector(session).collect(tournament_id)

        archived_at = self._clock()
        archived_at_iso = archived_at.isoformat()
        ui_version = get_current_version()

        payload: dict[str, Any] = {
            "version": self.format_version,
            "archived_at": archived_at_iso,
            "archived_by": actor,
            **aggregate,
            "metadata": {**aggregate["metadata"], "archive_ui_version": ui_version},
        }
        # Size of the payload before it records its own size
        file_size = len(dump_json(payload))
        payload["metadata"]["file_size"] = file_size

        path = self.archive_path(tournament_id)
        await self.store.put_object(
            path,
            dump_json(payload),
            content_type="application/json",
            cache_max_age=self.cache_max_age,
        )
        record_archive_size(file_size)

        tournament_name = aggregate["tournament"].get("tournament_name") or ""
        ref = ArchiveRef(
            tournament_id=tournament_id,
            tournament_name=tournament_name,
            file_size=file_size,
            archived_at=archived_at_iso,
            archived_by=actor,
            blob_url=path,
            archive_ui_version=ui_version,
        )
        outcome = ArchiveOutcome(ref=ref)

        entry = ArchiveIndexEntry(
            tournament_id=tournament_id,
            tournament_name=tournament_name,
            archived_at=archived_at_iso,
            archived_by=actor,
            file_size=file_size,
            blob_url=path,
            metadata=IndexEntryMetadata(
                total_teams=aggregate["metadata"]["total_teams"],
                total_matches=aggregate["metadata"]["total_matches"],
                archive_ui_version=ui_version,
            ),
        )
        try:
            await self.index.upsert(entry)
        except IndexUpdateError as e:
            outcome.indexed = False
            outcome.index_error = e
            logger.error(f"[ARCHIVE] Tournament {tournament_id} archived but not indexed: {e}")

        try:
            await self._stamp_row(
                tournament_id,
                is_archived=True,
                archive_ui_version=ui_version,
                archived_at=archived_at.astimezone(timezone.utc),
                archived_by=actor,
            )
        except SQLAlchemyError as e:
            outcome.row_stamped = False
            outcome.row_error = str(e)
            logger.error(f"[ARCHIVE] Tournament {tournament_id} archived but row not stamped: {e}")

        duration_ms = round((time.monotonic() - start) * 1000)
        logger.info(
            f"[ARCHIVE] Tournament {tournament_id} '{tournament_name}' archived to {path} "
            f"({file_size / 1024:.2f} KB, ui={ui_version}, indexed={outcome.indexed}, {duration_ms}ms)"
        )
        return outcome

    async def _stamp_row(self, tournament_id: int, **values: Any) -> int:
        async with self.session_maker() as session:
            result = await session.execute(
                update(Tournament).where(Tournament.tournament_id == tournament_id).values(**values)
            )
            await session.commit()
            return result.rowcount

    # ==========================================================================
    # Read
    # ==========================================================================

    async def get(self, tournament_id: int) -> ArchivedTournament:
        """
        Read and normalize a snapshot.

        NotFound is retried with the index's listing backoff, since a fresh
        snapshot may not be visible yet. When it stays missing and the index
        still lists it, the entry is removed (best-effort) before
        ArchiveNotFound is raised, but only if the object is also absent from
        a HEAD check.

        Raises:
            ArchiveNotFound: no snapshot object
            StorageError: store unavailable
            ValueError: object is not a valid snapshot
        """
        path = self.archive_path(tournament_id)
        try:
            raw = await get_json_retrying(
                self.store,
                path,
                self.index.list_max_retries,
                self.index.list_backoff_base,
                self.index.sleep,
            )
        except ObjectNotFound:
            logger.info(f"[ARCHIVE] No archive for tournament {tournament_id} at {path}")
            await self._heal_index(tournament_id, path)
            raise ArchiveNotFound(tournament_id, path)

        return normalize_archive(raw)

    async def _heal_index(self, tournament_id: int, path: str) -> None:
        try:
            index = await self.index.read()
            if index.find(tournament_id) is None:
                return
            if await self.store.object_exists(path):
                logger.info(f"[ARCHIVE] Archive {tournament_id} exists but is not readable yet, keeping index entry")
                return
            logger.warning(f"[ARCHIVE] Index lists missing archive {tournament_id}, removing entry")
            await self.index.remove(tournament_id)
        except (IndexUpdateError, StorageError) as e:
            logger.warning(f"[ARCHIVE] Index self-heal for {tournament_id} failed: {e}")

    async def list_archives(self) -> list[ArchiveIndexEntry]:
        """Archived tournaments, newest first. Best-effort: [] when unavailable."""
        return await self.index.list_entries()

    # ==========================================================================
    # Delete
    # ==========================================================================

    async def delete_archive(self, tournament_id: int) -> DeleteArchiveOutcome:
        """
        Delete a snapshot, its index entry and the row's archive stamp.

        The three steps are independent: each runs whether or not the
        previous one failed, and each failure is reported on the outcome.
        """
        outcome = DeleteArchiveOutcome(tournament_id=tournament_id)
        path = self.archive_path(tournament_id)

        try:
            await self.store.delete_object(path)
        except ObjectNotFound:
            logger.info(f"[ARCHIVE] {path} already absent")
        except StorageError as e:
            outcome.object_deleted = False
            outcome.object_error = str(e)
            logger.error(f"[ARCHIVE] Failed to delete {path}: {e}")

        try:
            await self.index.remove(tournament_id)
        except IndexUpdateError as e:
            outcome.index_updated = False
            outcome.index_error = str(e)
            logger.error(f"[ARCHIVE] Failed to remove tournament {tournament_id} from index: {e}")

        try:
            await self._stamp_row(
                tournament_id,
                is_archived=False,
                archive_ui_version=None,
                archived_at=None,
                archived_by=None,
            )
        except SQLAlchemyError as e:
            outcome.row_cleared = False
            outcome.row_error = str(e)
            logger.error(f"[ARCHIVE] Failed to clear archive stamp of tournament {tournament_id}: {e}")

        logger.info(
            f"[ARCHIVE] Delete archive {tournament_id}: object={outcome.object_deleted}, "
            f"index={outcome.index_updated}, row={outcome.row_cleared}"
        )
        return outcome
