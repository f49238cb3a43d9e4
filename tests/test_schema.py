"""Tests for snapshot normalization and index document models."""

import pytest

from tourney.archive.errors import IndexCorrupted
from tourney.archive.schema import (
    ArchivedTournamentV1,
    ArchivedTournamentV2,
    ArchiveIndex,
    ArchiveIndexEntry,
    normalize_archive,
    parse_index,
)


def _entry(tournament_id: int, archived_at: str, name: str = "Cup") -> ArchiveIndexEntry:
    return ArchiveIndexEntry(
        tournament_id=tournament_id,
        tournament_name=name,
        archived_at=archived_at,
        archived_by="ops",
        file_size=100,
        blob_url=f"tournaments/{tournament_id}/archive.json",
    )


class TestNormalizeArchive:
    """Read boundary: every stored shape becomes a typed, versioned model."""

    def test_legacy_v1_payload(self):
        raw = {
            "version": "1.0",
            "archived_at": "2025-09-10T00:00:00Z",
            "archived_by": "admin",
            "tournament": {"tournament_id": 7, "tournament_name": "Autumn Cup"},
            "teams": [{"team_id": "t1", "team_name": "One"}],
            "matches": [
                {"match_id": 1, "match_code": "A1", "team1_scores": "2,1", "team2_scores": "1"},
            ],
            "standings": [{"block_name": "A", "team_rankings": '[{"team_id": "t1"}]'}],
            "results": [],
            "pdf_info": {"bracketPdfExists": True, "resultsPdfExists": False},
            "metadata": {"total_teams": 1, "total_matches": 1},
        }

        archive = normalize_archive(raw)

        assert isinstance(archive, ArchivedTournamentV1)
        assert archive.ui_version == "1.0"
        assert archive.tournament_id == 7
        assert archive.matches[0].team1_goals == 3
        assert archive.matches[0].team2_goals == 1
        assert archive.standings[0].team_rankings == [{"team_id": "t1"}]
        assert archive.pdf_info.bracket_pdf_exists is True
        assert archive.teams[0].players == []

    def test_tagged_v2_payload(self):
        raw = {
            "version": "1.0",
            "archived_at": "2025-09-10T00:00:00Z",
            "tournament": {"tournament_id": 8},
            "metadata": {"archive_ui_version": "2.0", "file_size": 512},
        }

        archive = normalize_archive(raw)

        assert isinstance(archive, ArchivedTournamentV2)
        assert archive.metadata.file_size == 512

    def test_malformed_rankings_become_empty(self):
        raw = {
            "archived_at": "2025-12-01T00:00:00Z",
            "tournament": {"tournament_id": 9},
            "standings": [{"block_name": "A", "team_rankings": "not json"}],
        }
        assert normalize_archive(raw).standings[0].team_rankings == []

    def test_non_object_rejected(self):
        with pytest.raises(ValueError):
            normalize_archive(["not", "an", "archive"])

    def test_missing_tournament_rejected(self):
        with pytest.raises(ValueError):
            normalize_archive({"archived_at": "2025-12-01T00:00:00Z"})


class TestArchiveIndex:
    def test_upsert_replaces_and_sorts(self):
        index = ArchiveIndex.empty("1.0")
        index.upsert(_entry(1, "2025-01-01T00:00:00+00:00"))
        index.upsert(_entry(2, "2025-03-01T00:00:00+00:00"))
        index.upsert(_entry(1, "2025-05-01T00:00:00+00:00", name="Renamed"))

        assert [a.tournament_id for a in index.archives] == [1, 2]
        assert index.archives[0].tournament_name == "Renamed"
        assert index.total_archives == 2

    def test_remove(self):
        index = ArchiveIndex.empty("1.0")
        index.upsert(_entry(1, "2025-01-01T00:00:00+00:00"))

        assert index.remove(1) is True
        assert index.remove(1) is False
        assert index.total_archives == 0


class TestParseIndex:
    @pytest.mark.parametrize(
        "raw",
        [
            None,
            [],
            {"archives": []},
            {"version": "1.0", "archives": "nope"},
            {"version": "1.0", "updated_at": "x", "archives": [{"tournament_id": "abc"}]},
        ],
    )
    def test_corrupted(self, raw):
        with pytest.raises(IndexCorrupted):
            parse_index(raw)

    def test_duplicates_collapse_to_newest(self):
        raw = {
            "version": "1.0",
            "updated_at": "2025-01-01T00:00:00Z",
            "total_archives": 5,
            "archives": [
                _entry(1, "2025-01-01T00:00:00+00:00", name="old").model_dump(),
                _entry(1, "2025-02-01T00:00:00+00:00", name="new").model_dump(),
                _entry(2, "2025-01-15T00:00:00+00:00").model_dump(),
            ],
        }

        index = parse_index(raw)

        assert index.total_archives == 2
        assert [a.tournament_id for a in index.archives] == [1, 2]
        assert index.find(1).tournament_name == "new"
