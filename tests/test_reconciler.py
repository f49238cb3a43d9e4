"""Tests for the deletion reconciler against seeded SQLite with foreign keys on."""

from dataclasses import replace

import pytest
import pytest_asyncio
from sqlalchemy import text

from tests.conftest import SEEDED_MATCHES
from tourney.archive.errors import PartialDeletionError, TournamentNotFound
from tourney.archive.reconciler import DEFAULT_STEPS, DeletionReconciler, ReconcileStatus
from tourney.db_utils import count_rows

OTHER_TOURNAMENT = 2


def steps_with(table: str, **changes):
    return tuple(replace(s, **changes) if s.table == table else s for s in DEFAULT_STEPS)


def steps_without(table: str):
    return tuple(s for s in DEFAULT_STEPS if s.table != table)


async def table_counts(session_maker, tournament_id: int) -> dict[str, int]:
    counts = {}
    async with session_maker() as session:
        for step in DEFAULT_STEPS:
            counts[step.table] = await count_rows(session, step.count_sql, {"tournament_id": tournament_id})
        counts["tournaments"] = await count_rows(
            session,
            "SELECT COUNT(*) FROM tournaments WHERE tournament_id = :tournament_id",
            {"tournament_id": tournament_id},
        )
    return counts


@pytest_asyncio.fixture
async def seeded_objects(store, seeded):
    for tid in (seeded, OTHER_TOURNAMENT):
        await store.put_object(f"tournaments/{tid}/files/bracket.pdf", b"%PDF", "application/pdf")
        await store.put_object(f"tournaments/{tid}/banners/main.png", b"PNG", "image/png")
    return seeded


class TestReconcile:
    @pytest.mark.asyncio
    async def test_removes_every_row(self, session_maker, store, seeded_objects):
        tournament_id = seeded_objects
        before_other = await table_counts(session_maker, OTHER_TOURNAMENT)

        report = await DeletionReconciler(session_maker, store).reconcile(tournament_id)

        assert report.status == ReconcileStatus.COMPLETED
        assert report.main_row_deleted is True
        assert report.ledger == []
        assert report.partial_deletion is False
        assert set((await table_counts(session_maker, tournament_id)).values()) == {0}
        assert report.pre_counts["matches_live"] == SEEDED_MATCHES
        assert report.remaining_rows == 0
        assert await table_counts(session_maker, OTHER_TOURNAMENT) == before_other

    @pytest.mark.asyncio
    async def test_external_objects_deleted(self, session_maker, store, seeded_objects):
        await DeletionReconciler(session_maker, store).reconcile(seeded_objects)

        assert sorted(store.objects) == [
            "tournaments/2/banners/main.png",
            "tournaments/2/files/bracket.pdf",
        ]

    @pytest.mark.asyncio
    async def test_public_url_references(self, session_maker, store, seeded_objects):
        async with session_maker() as session:
            await session.execute(text(
                "UPDATE sponsor_banners SET image_blob_url = "
                "'https://cdn.example.com/tournaments/1/banners/main.png' WHERE tournament_id = 1"
            ))
            await session.commit()

        report = await DeletionReconciler(session_maker, store).reconcile(seeded_objects)

        assert report.steps[0].table == "object_store"
        assert report.steps[0].success is True
        assert not await store.object_exists("tournaments/1/banners/main.png")

    @pytest.mark.asyncio
    async def test_step_report(self, session_maker, seeded):
        report = await DeletionReconciler(session_maker).reconcile(seeded)

        by_table = {s.table: s for s in report.steps}
        assert by_table["matches_live"].rows_deleted == SEEDED_MATCHES
        assert by_table["tournament_players"].rows_deleted == 3
        assert report.summary()["failed_steps"] == 0
        assert report.summary()["tournament_main_deleted"] is True

    @pytest.mark.asyncio
    async def test_failed_step_is_recorded_and_cascade_continues(self, session_maker, seeded):
        steps = steps_with(
            "tournament_notifications",
            delete_sql="DELETE FROM tournament_notifications WHERE no_such_column = :tournament_id",
        )

        report = await DeletionReconciler(session_maker, steps=steps).reconcile(seeded)

        assert len(report.ledger) == 1
        assert report.ledger[0].startswith("tournament_notifications")
        forced = [s for s in report.steps if s.forced]
        assert [(s.table, s.success, s.rows_deleted) for s in forced] == [("tournament_notifications", True, 1)]
        assert report.main_row_deleted is True
        assert report.status == ReconcileStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_parent_steps_blocked_by_failed_child_are_deferred(self, session_maker, seeded):
        steps = steps_with(
            "matches_live",
            delete_sql="DELETE FROM matches_live WHERE no_such_column = :tournament_id",
        )

        report = await DeletionReconciler(session_maker, steps=steps).reconcile(seeded)

        assert len(report.ledger) == 1
        assert report.ledger[0].startswith("matches_live")
        deferred = [s.table for s in report.steps if s.deferred]
        assert deferred == ["match_blocks", "tournament_teams"]
        assert report.summary()["deferred_steps"] == 2
        forced = {s.table for s in report.steps if s.forced}
        assert {"matches_live", "match_blocks", "tournament_teams"} <= forced
        assert all(s.success for s in report.steps if s.forced)
        assert report.status == ReconcileStatus.COMPLETED
        assert set((await table_counts(session_maker, seeded)).values()) == {0}

    @pytest.mark.asyncio
    async def test_missing_table_is_not_a_failure(self, session_maker, store, seeded):
        async with session_maker() as session:
            await session.execute(text("DROP TABLE sponsor_banners"))
            await session.commit()

        report = await DeletionReconciler(session_maker, store).reconcile(seeded)

        assert report.ledger == []
        assert report.status == ReconcileStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_remaining_reference_fails_with_investigation(self, session_maker, seeded):
        reconciler = DeletionReconciler(session_maker, steps=steps_without("tournament_rules"))

        report = await reconciler.reconcile(seeded)

        assert report.status == ReconcileStatus.FAILED
        assert report.main_row_deleted is False
        assert report.partial_deletion is True
        assert report.investigation == {"tournament_rules": [1]}
        assert "still referenced" in report.error
        counts = await table_counts(session_maker, seeded)
        assert counts["tournaments"] == 1
        assert counts["matches_live"] == 0

    @pytest.mark.asyncio
    async def test_reconcile_or_raise(self, session_maker, seeded):
        reconciler = DeletionReconciler(session_maker, steps=steps_without("tournament_rules"))

        with pytest.raises(PartialDeletionError) as exc_info:
            await reconciler.reconcile_or_raise(seeded)

        assert exc_info.value.report.partial_deletion is True

    @pytest.mark.asyncio
    async def test_keep_tournament_row(self, session_maker, seeded):
        report = await DeletionReconciler(session_maker).reconcile(seeded, keep_tournament_row=True)

        assert report.status == ReconcileStatus.COMPLETED
        assert report.main_row_deleted is False
        counts = await table_counts(session_maker, seeded)
        assert counts.pop("tournaments") == 1
        assert set(counts.values()) == {0}
        async with session_maker() as session:
            flag = await count_rows(
                session, "SELECT COUNT(*) FROM tournaments WHERE tournament_id = 1 AND is_archived = 1"
            )
        assert flag == 1

    @pytest.mark.asyncio
    async def test_never_archived_still_runs(self, session_maker, seeded):
        report = await DeletionReconciler(session_maker).reconcile(seeded)

        assert report.was_archived is False
        assert report.main_row_deleted is True

    @pytest.mark.asyncio
    async def test_unknown_tournament(self, session_maker, seeded):
        with pytest.raises(TournamentNotFound):
            await DeletionReconciler(session_maker).reconcile(999)
