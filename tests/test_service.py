"""Tests for ArchiveService result statuses and reason codes."""

from dataclasses import replace

import pytest

from tourney.archive.archiver import Archiver
from tourney.archive.index import ArchiveIndexStore
from tourney.archive.reconciler import DEFAULT_STEPS, DeletionReconciler
from tourney.archive.service import ArchiveService, ReasonCode, ResultStatus
from tourney.storage.memory import InMemoryObjectStore


def build_service(session_maker, store, index_store=None, reconciler=None) -> ArchiveService:
    index_store = index_store or ArchiveIndexStore(store, backoff_base=0, backoff_max=0, list_backoff_base=0)
    return ArchiveService(
        session_maker,
        store,
        archiver=Archiver(session_maker, store, index=index_store),
        reconciler=reconciler or DeletionReconciler(session_maker, store),
    )


@pytest.fixture
def service(session_maker, store):
    return build_service(session_maker, store)


class TestArchive:
    @pytest.mark.asyncio
    async def test_success(self, service, seeded):
        result = await service.archive(seeded, "ops")

        assert result.status == ResultStatus.SUCCESS
        assert result.reason is None
        assert result.data["blob_url"] == "tournaments/1/archive.json"
        assert result.data["indexed"] is True

    @pytest.mark.asyncio
    async def test_unknown_tournament(self, service, seeded):
        result = await service.archive(999, "ops")

        assert result.status == ResultStatus.FAILED
        assert result.reason == ReasonCode.TOURNAMENT_NOT_FOUND

    @pytest.mark.asyncio
    async def test_store_write_failure(self, session_maker, seeded):
        service = build_service(session_maker, InMemoryObjectStore(fail_operations={"PUT"}))

        result = await service.archive(seeded, "ops")

        assert result.status == ResultStatus.FAILED
        assert result.reason == ReasonCode.STORE_WRITE_FAILED

    @pytest.mark.asyncio
    async def test_index_failure_is_partial(self, session_maker, store, seeded):
        broken_index = ArchiveIndexStore(
            InMemoryObjectStore(fail_operations={"PUT"}),
            max_attempts=2,
            backoff_base=0,
            backoff_max=0,
            list_backoff_base=0,
        )
        service = build_service(session_maker, store, index_store=broken_index)

        result = await service.archive(seeded, "ops")

        assert result.status == ResultStatus.PARTIAL
        assert result.reason == ReasonCode.INDEX_UPDATE_FAILED
        assert result.ok is True
        assert len(result.warnings) == 1
        assert result.data["indexed"] is False


class TestRead:
    @pytest.mark.asyncio
    async def test_get_archive(self, service, seeded):
        await service.archive(seeded, "ops")

        result = await service.get_archive(seeded)

        assert result.status == ResultStatus.SUCCESS
        assert result.data["ui_version"] == "2.0"
        assert result.data["metadata"]["total_teams"] == 3

    @pytest.mark.asyncio
    async def test_get_missing(self, service, seeded):
        result = await service.get_archive(seeded)

        assert result.reason == ReasonCode.ARCHIVE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_get_corrupted(self, service, store, seeded):
        await store.put_object("tournaments/1/archive.json", b"{not json")

        result = await service.get_archive(seeded)

        assert result.status == ResultStatus.FAILED
        assert result.reason == ReasonCode.ARCHIVE_CORRUPTED

    @pytest.mark.asyncio
    async def test_list(self, service, seeded):
        await service.archive(1, "ops")
        await service.archive(2, "ops")

        result = await service.list_archives()

        assert result.status == ResultStatus.SUCCESS
        assert {e["tournament_id"] for e in result.data} == {1, 2}


class TestDeleteArchive:
    @pytest.mark.asyncio
    async def test_success(self, service, seeded):
        await service.archive(seeded, "ops")

        result = await service.delete_archive(seeded)

        assert result.status == ResultStatus.SUCCESS
        assert result.data["object_deleted"] is True

    @pytest.mark.asyncio
    async def test_object_delete_failure(self, service, store, seeded):
        await service.archive(seeded, "ops")
        store.fail_operations.add("DELETE")

        result = await service.delete_archive(seeded)

        assert result.status == ResultStatus.FAILED
        assert result.reason == ReasonCode.STORE_DELETE_FAILED
        assert result.data["index_updated"] is True


class TestReconcile:
    @pytest.mark.asyncio
    async def test_success(self, service, seeded):
        await service.archive(seeded, "ops")

        result = await service.reconcile_deletion(seeded)

        assert result.status == ResultStatus.SUCCESS
        assert result.data["was_archived"] is True
        assert result.data["summary"]["tournament_main_deleted"] is True

    @pytest.mark.asyncio
    async def test_cascade_warnings(self, session_maker, store, seeded):
        steps = tuple(
            replace(s, delete_sql="DELETE FROM match_overrides WHERE no_such_column = :tournament_id")
            if s.table == "match_overrides" else s
            for s in DEFAULT_STEPS
        )
        service = build_service(session_maker, store, reconciler=DeletionReconciler(session_maker, steps=steps))

        result = await service.reconcile_deletion(seeded)

        assert result.status == ResultStatus.PARTIAL
        assert result.reason == ReasonCode.CASCADE_WARNINGS
        assert len(result.warnings) == 1

    @pytest.mark.asyncio
    async def test_main_row_failure(self, session_maker, store, seeded):
        steps = tuple(s for s in DEFAULT_STEPS if s.table != "tournament_rules")
        service = build_service(session_maker, store, reconciler=DeletionReconciler(session_maker, steps=steps))

        result = await service.reconcile_deletion(seeded)

        assert result.status == ResultStatus.FAILED
        assert result.reason == ReasonCode.MAIN_ROW_DELETE_FAILED
        assert result.data["partial_deletion"] is True
        assert result.data["investigation"] == {"tournament_rules": [1]}

    @pytest.mark.asyncio
    async def test_unknown_tournament(self, service, seeded):
        result = await service.reconcile_deletion(999)

        assert result.reason == ReasonCode.TOURNAMENT_NOT_FOUND


class TestStorageHealth:
    @pytest.mark.asyncio
    async def test_healthy(self, service):
        result = await service.storage_health()

        assert result.status == ResultStatus.SUCCESS
        assert result.data["healthy"] is True

    @pytest.mark.asyncio
    async def test_unavailable(self, session_maker):
        service = build_service(session_maker, InMemoryObjectStore(fail_operations={"PUT"}))

        result = await service.storage_health()

        assert result.reason == ReasonCode.STORAGE_UNAVAILABLE
