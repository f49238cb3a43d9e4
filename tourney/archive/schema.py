"""
Snapshot and archive index schemas.

Snapshot object (tournaments/{id}/archive.json):
    {version, archived_at, archived_by, tournament, teams[], matches[],
     standings[], results[], pdf_info, metadata{total_teams, total_matches,
     completed_matches, blocks_count, archive_ui_version, file_size}}

Archive index (tournaments/index.json):
    {version, updated_at, total_archives, archives: [{tournament_id,
     tournament_name, archived_at, archived_by, file_size, blob_url,
     metadata{total_teams, total_matches, archive_ui_version}}]}

Stored snapshots differ per UI version (v1.0 objects predate rosters, document
flags and derived goal totals). normalize_archive() is the read boundary: it
resolves the version and upgrades legacy shapes into the typed model for that
version, so nothing past it handles raw dicts.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from tourney.archive.errors import IndexCorrupted
from tourney.archive.scores import parse_total_score
from tourney.archive.versions import parse_timestamp, resolve_version

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# Snapshot
# =============================================================================


class PlayerEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    player_name: Optional[str] = None
    jersey_number: Optional[int] = None


class TeamEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    team_id: str
    team_name: str
    team_omission: Optional[str] = None
    assigned_block: Optional[str] = None
    block_position: Optional[int] = None
    withdrawal_status: Optional[str] = None
    player_count: int = 0
    contact_person: Optional[str] = None
    contact_email: Optional[str] = None
    players: list[PlayerEntry] = Field(default_factory=list)


class MatchEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    match_id: int
    match_block_id: Optional[int] = None
    match_code: str
    match_number: Optional[int] = None
    tournament_date: Optional[str] = None
    team1_id: Optional[str] = None
    team2_id: Optional[str] = None
    team1_display_name: Optional[str] = None
    team2_display_name: Optional[str] = None
    court_number: Optional[int] = None
    start_time: Optional[str] = None
    phase: Optional[str] = None
    block_name: Optional[str] = None
    team1_scores: Optional[str] = None
    team2_scores: Optional[str] = None
    team1_goals: int = 0
    team2_goals: int = 0
    winner_team_id: Optional[str] = None
    is_draw: bool = False
    is_walkover: bool = False
    match_status: Optional[str] = None
    has_result: bool = False


class StandingEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    block_name: str
    phase: Optional[str] = None
    team_rankings: list[dict[str, Any]] = Field(default_factory=list)
    remarks: Optional[str] = None


class ResultEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    match_code: str
    team1_id: Optional[str] = None
    team2_id: Optional[str] = None
    team1_name: Optional[str] = None
    team2_name: Optional[str] = None
    team1_scores: Optional[str] = None
    team2_scores: Optional[str] = None
    winner_team_id: Optional[str] = None
    is_draw: bool = False
    is_walkover: bool = False
    block_name: Optional[str] = None


class PdfInfo(BaseModel):
    bracket_pdf_exists: bool = False
    results_pdf_exists: bool = False


class ArchiveMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    total_teams: int = 0
    total_matches: int = 0
    completed_matches: int = 0
    blocks_count: int = 0
    archive_ui_version: Optional[str] = None
    file_size: Optional[int] = None


class _ArchivedTournamentBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: str
    archived_at: str
    archived_by: Optional[str] = None
    tournament: dict[str, Any]
    teams: list[TeamEntry] = Field(default_factory=list)
    matches: list[MatchEntry] = Field(default_factory=list)
    standings: list[StandingEntry] = Field(default_factory=list)
    results: list[ResultEntry] = Field(default_factory=list)
    pdf_info: PdfInfo = Field(default_factory=PdfInfo)
    metadata: ArchiveMetadata = Field(default_factory=ArchiveMetadata)

    @property
    def tournament_id(self) -> Optional[int]:
        return self.tournament.get("tournament_id")


class ArchivedTournamentV1(_ArchivedTournamentBase):
    """Snapshot rendered by the v1.0 archive UI (schedule, results, standings)."""

    ui_version: Literal["1.0"] = "1.0"


class ArchivedTournamentV2(_ArchivedTournamentBase):
    """Snapshot rendered by the v2.0 archive UI (adds rosters and document links)."""

    ui_version: Literal["2.0"] = "2.0"


ArchivedTournament = Annotated[
    Union[ArchivedTournamentV1, ArchivedTournamentV2],
    Field(discriminator="ui_version"),
]

_archived_tournament_adapter = TypeAdapter(ArchivedTournament)


def _decode_rankings(value: Any) -> list:
    if isinstance(value, list):
        return value
    if isinstance(value, str) and value.strip():
        try:
            decoded = json.loads(value)
        except ValueError:
            return []
        return decoded if isinstance(decoded, list) else []
    return []


def _upgrade_legacy(raw: dict[str, Any]) -> dict[str, Any]:
    """Bring older payload shapes up to the current field layout."""
    data = dict(raw)

    pdf_info = data.get("pdf_info") or {}
    data["pdf_info"] = {
        "bracket_pdf_exists": bool(
            pdf_info.get("bracket_pdf_exists", pdf_info.get("bracketPdfExists", False))
        ),
        "results_pdf_exists": bool(
            pdf_info.get("results_pdf_exists", pdf_info.get("resultsPdfExists", False))
        ),
    }

    matches = []
    for match in data.get("matches") or []:
        match = dict(match)
        if match.get("team1_goals") is None:
            match["team1_goals"] = parse_total_score(match.get("team1_scores"))
        if match.get("team2_goals") is None:
            match["team2_goals"] = parse_total_score(match.get("team2_scores"))
        matches.append(match)
    data["matches"] = matches

    data["standings"] = [
        {**standing, "team_rankings": _decode_rankings(standing.get("team_rankings"))}
        for standing in data.get("standings") or []
    ]

    data.setdefault("archived_at", "")
    data.setdefault("version", "1.0")
    return data


def normalize_archive(raw: dict[str, Any]) -> ArchivedTournament:
    """Typed, version-tagged snapshot from a stored payload.

    Raises:
        ValueError: payload is not a snapshot (pydantic ValidationError)
    """
    if not isinstance(raw, dict):
        raise ValueError(f"Archive payload must be an object, got {type(raw).__name__}")
    ui_version = resolve_version(raw)
    data = _upgrade_legacy(raw)
    data["ui_version"] = ui_version
    return _archived_tournament_adapter.validate_python(data)


# =============================================================================
# Archive index
# =============================================================================


class IndexEntryMetadata(BaseModel):
    total_teams: int = 0
    total_matches: int = 0
    archive_ui_version: Optional[str] = None


class ArchiveIndexEntry(BaseModel):
    tournament_id: int
    tournament_name: str
    archived_at: str
    archived_by: Optional[str] = None
    file_size: int = 0
    blob_url: str
    metadata: IndexEntryMetadata = Field(default_factory=IndexEntryMetadata)


class ArchiveIndex(BaseModel):
    """The single shared document listing every archived tournament.

    Invariants: at most one entry per tournament_id, entries ordered by
    archived_at descending, total_archives == len(archives).
    """

    version: str
    updated_at: str
    total_archives: int = 0
    archives: list[ArchiveIndexEntry] = Field(default_factory=list)

    @classmethod
    def empty(cls, version: str) -> "ArchiveIndex":
        return cls(version=version, updated_at=utc_now_iso(), total_archives=0, archives=[])

    def find(self, tournament_id: int) -> Optional[ArchiveIndexEntry]:
        for entry in self.archives:
            if entry.tournament_id == tournament_id:
                return entry
        return None

    def upsert(self, entry: ArchiveIndexEntry) -> None:
        """Replace the entry for entry.tournament_id, or append it."""
        self.archives = [a for a in self.archives if a.tournament_id != entry.tournament_id]
        self.archives.append(entry)
        self._finalize()

    def remove(self, tournament_id: int) -> bool:
        before = len(self.archives)
        self.archives = [a for a in self.archives if a.tournament_id != tournament_id]
        self._finalize()
        return len(self.archives) != before

    def _finalize(self) -> None:
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        self.archives.sort(
            key=lambda a: parse_timestamp(a.archived_at) or epoch,
            reverse=True,
        )
        self.total_archives = len(self.archives)
        self.updated_at = utc_now_iso()


def parse_index(raw: Any) -> ArchiveIndex:
    """Validate a stored index document.

    Duplicate tournament ids (left by older writers) collapse to the newest
    entry, and total_archives is recomputed.

    Raises:
        IndexCorrupted: not an object, no version, archives not a list, or an
            entry fails validation
    """
    if not isinstance(raw, dict) or not raw.get("version") or not isinstance(raw.get("archives"), list):
        raise IndexCorrupted("Archive index is not a valid index document")
    try:
        index = ArchiveIndex.model_validate(raw)
    except ValidationError as e:
        raise IndexCorrupted(f"Archive index entry invalid: {e.error_count()} errors") from e

    seen: dict[int, ArchiveIndexEntry] = {}
    epoch = datetime.min.replace(tzinfo=timezone.utc)
    for entry in index.archives:
        current = seen.get(entry.tournament_id)
        if current is None or (parse_timestamp(entry.archived_at) or epoch) > (
            parse_timestamp(current.archived_at) or epoch
        ):
            seen[entry.tournament_id] = entry
    if len(seen) != len(index.archives):
        logger.warning(
            f"[INDEX] Collapsed {len(index.archives) - len(seen)} duplicate index entries"
        )
    index.archives = list(seen.values())
    index.archives.sort(key=lambda a: parse_timestamp(a.archived_at) or epoch, reverse=True)
    index.total_archives = len(index.archives)
    return index
