"""
Global archive index: optimistic read-modify-write updates and listing.

The index is one JSON document rewritten in full on every change. The object
store has no compare-and-swap, so an update is:

    read -> apply change -> write -> read back and check the change is there

and the whole cycle is retried (bounded, exponential backoff) when the write
fails or the read-back shows another writer replaced the document in between.
This is last-writer-wins: it guarantees that a successful update saw its own
change persisted, not that concurrent updates are serialized.

A just-written index may not be visible yet, so both reads retry NotFound
with bounded backoff. The read before a change only falls back to an empty
index after those retries; a read-back that stays NotFound is not confirmed.

Within one process, updates to the same index path are additionally serialized
with an asyncio.Lock so concurrent tasks never clobber each other.
"""

import asyncio
import logging
import weakref
from typing import Any, Awaitable, Callable, Optional

from tourney.archive.errors import IndexCorrupted, IndexUpdateError
from tourney.archive.schema import ArchiveIndex, ArchiveIndexEntry, parse_index
from tourney.config import build_index_path, get_settings
from tourney.storage.base import ObjectNotFound, ObjectStore, StorageError
from tourney.storage.r2_client import get_json, get_json_retrying, put_json
from tourney.telemetry.metrics import record_index_attempt

logger = logging.getLogger(__name__)

# One lock per (event loop, index path), shared by every ArchiveIndexStore
_path_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, dict[str, asyncio.Lock]]" = (
    weakref.WeakKeyDictionary()
)


def _lock_for(path: str) -> asyncio.Lock:
    locks = _path_locks.setdefault(asyncio.get_running_loop(), {})
    lock = locks.get(path)
    if lock is None:
        lock = asyncio.Lock()
        locks[path] = lock
    return lock


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """Delay after failed attempt n (1-based): base * 2^(n-1), capped."""
    return min(base * (2 ** (attempt - 1)), cap)


class ArchiveIndexStore:
    """Reads, updates and lists the archive index document."""

    def __init__(
        self,
        store: ObjectStore,
        path: Optional[str] = None,
        format_version: Optional[str] = None,
        max_attempts: Optional[int] = None,
        backoff_base: Optional[float] = None,
        backoff_max: Optional[float] = None,
        list_max_retries: Optional[int] = None,
        list_backoff_base: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        settings = get_settings()
        self.store = store
        self.path = path or build_index_path()
        self.format_version = format_version or settings.ARCHIVE_FORMAT_VERSION
        self.max_attempts = max_attempts if max_attempts is not None else settings.ARCHIVE_INDEX_MAX_ATTEMPTS
        self.backoff_base = (
            backoff_base if backoff_base is not None else settings.ARCHIVE_INDEX_BACKOFF_BASE_SECONDS
        )
        self.backoff_max = backoff_max if backoff_max is not None else settings.ARCHIVE_INDEX_BACKOFF_MAX_SECONDS
        self.list_max_retries = (
            list_max_retries if list_max_retries is not None else settings.ARCHIVE_LIST_MAX_RETRIES
        )
        self.list_backoff_base = (
            list_backoff_base if list_backoff_base is not None else settings.ARCHIVE_LIST_BACKOFF_BASE_SECONDS
        )
        self.sleep = sleep

    # ==========================================================================
    # Read
    # ==========================================================================

    async def _get_raw(self) -> Any:
        return await get_json_retrying(
            self.store, self.path, self.list_max_retries, self.list_backoff_base, self.sleep
        )

    async def read(self, retry_missing: bool = False) -> ArchiveIndex:
        """Current index; missing or structurally invalid documents read as empty.

        Args:
            retry_missing: Retry NotFound with backoff before treating the
                index as absent (a recent write may not be visible yet)

        Raises:
            TransientStoreError: the store could not be reached
        """
        try:
            if retry_missing:
                raw = await self._get_raw()
            else:
                raw = await get_json(self.store, self.path)
        except ObjectNotFound:
            logger.debug(f"[INDEX] {self.path} not found, starting from empty index")
            return ArchiveIndex.empty(self.format_version)
        except ValueError as e:
            logger.warning(f"[INDEX] {self.path} is not valid JSON, treating as empty: {e}")
            return ArchiveIndex.empty(self.format_version)

        try:
            return parse_index(raw)
        except IndexCorrupted as e:
            logger.warning(f"[INDEX] {e}, treating as empty")
            return ArchiveIndex.empty(self.format_version)

    # ==========================================================================
    # Optimistic update
    # ==========================================================================

    async def _update(
        self,
        apply: Callable[[ArchiveIndex], None],
        applied: Callable[[ArchiveIndex], bool],
        description: str,
    ) -> ArchiveIndex:
        last_error: Optional[BaseException] = None

        async with _lock_for(self.path):
            for attempt in range(1, self.max_attempts + 1):
                try:
                    index = await self.read(retry_missing=True)
                    apply(index)
                    index.version = self.format_version
                    await put_json(self.store, self.path, index.model_dump(mode="json"))

                    if await self._confirm(applied):
                        record_index_attempt("success")
                        logger.info(
                            f"[INDEX] {description} (attempt {attempt}/{self.max_attempts}, "
                            f"total={index.total_archives})"
                        )
                        return index

                    record_index_attempt("stale")
                    last_error = None
                    logger.warning(
                        f"[INDEX] {description}: change missing after write, "
                        f"concurrent writer suspected (attempt {attempt}/{self.max_attempts})"
                    )
                except StorageError as e:
                    record_index_attempt("error")
                    last_error = e
                    logger.warning(
                        f"[INDEX] {description} failed (attempt {attempt}/{self.max_attempts}): {e}"
                    )

                if attempt < self.max_attempts:
                    await self.sleep(backoff_delay(attempt, self.backoff_base, self.backoff_max))

        logger.error(f"[INDEX] Giving up on {description} after {self.max_attempts} attempts")
        raise IndexUpdateError(self.path, self.max_attempts, last_error)

    async def _confirm(self, applied: Callable[[ArchiveIndex], bool]) -> bool:
        """Read the index back; True when our change is present."""
        try:
            raw = await self._get_raw()
        except ObjectNotFound:
            logger.info(f"[INDEX] {self.path} still not visible after write, not confirmed")
            return False
        except ValueError:
            return False
        try:
            return applied(parse_index(raw))
        except IndexCorrupted:
            return False

    async def upsert(self, entry: ArchiveIndexEntry) -> ArchiveIndex:
        """Add or replace the entry for entry.tournament_id.

        Raises:
            IndexUpdateError: attempts exhausted
        """

        def applied(index: ArchiveIndex) -> bool:
            current = index.find(entry.tournament_id)
            return current is not None and current.archived_at == entry.archived_at

        return await self._update(
            lambda index: index.upsert(entry),
            applied,
            f"upsert tournament {entry.tournament_id}",
        )

    async def remove(self, tournament_id: int) -> ArchiveIndex:
        """Remove the entry for tournament_id (no-op write if absent).

        Raises:
            IndexUpdateError: attempts exhausted
        """
        return await self._update(
            lambda index: index.remove(tournament_id),
            lambda index: index.find(tournament_id) is None,
            f"remove tournament {tournament_id}",
        )

    # ==========================================================================
    # Listing
    # ==========================================================================

    async def list_entries(self) -> list[ArchiveIndexEntry]:
        """Index entries, newest first. Best-effort: never raises.

        A NotFound index may just be lagging behind a concurrent writer, so it
        is retried with exponential backoff before giving up with [].
        """
        try:
            return parse_index(await self._get_raw()).archives
        except ObjectNotFound:
            logger.info(f"[INDEX] {self.path} not found after retries, no archives listed")
        except (ValueError, IndexCorrupted) as e:
            logger.warning(f"[INDEX] Cannot list archives, index unreadable: {e}")
        except StorageError as e:
            logger.warning(f"[INDEX] Cannot list archives: {e}")
        return []
