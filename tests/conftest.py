"""Shared fixtures: in-memory SQLite (foreign keys on), seeded tournaments, in-memory object store."""

import pytest
import pytest_asyncio

from tourney.archive.index import ArchiveIndexStore
from tourney.database import build_engine, build_session_maker, init_db
from tourney.models import (
    ArchivedTournamentJson,
    MatchBlock,
    MatchFinal,
    MatchLive,
    MatchOverride,
    MatchStatus,
    Player,
    SponsorBanner,
    Team,
    Tournament,
    TournamentFile,
    TournamentNotification,
    TournamentPlayer,
    TournamentRule,
    TournamentStatusHistory,
    TournamentTeam,
    Venue,
)
from tourney.storage.memory import InMemoryObjectStore

# Tournament 1 expected aggregate
SEEDED_TEAMS = 3
SEEDED_MATCHES = 4
SEEDED_COMPLETED = 2
SEEDED_BLOCKS = 2


@pytest_asyncio.fixture
async def engine():
    engine = build_engine("sqlite://", foreign_keys=True)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
def store():
    return InMemoryObjectStore()


@pytest.fixture
def index_store(store):
    """Index store without backoff delays."""
    return ArchiveIndexStore(store, backoff_base=0, backoff_max=0, list_backoff_base=0)


async def seed_master_data(session_maker) -> None:
    async with session_maker() as session:
        session.add(Venue(venue_id=1, venue_name="Central Arena"))
        session.add_all(
            [
                Team(team_id="team-a", team_name="Aoba FC", team_omission="AOB", contact_person="Sato"),
                Team(team_id="team-b", team_name="Bunkyo United", team_omission="BUN"),
                Team(team_id="team-c", team_name="Chuo Rovers", team_omission="CHU"),
            ]
        )
        await session.flush()
        session.add_all(
            [
                Player(player_id=1, player_name="Kenta", current_team_id="team-a"),
                Player(player_id=2, player_name="Yuto", current_team_id="team-a"),
                Player(player_id=3, player_name="Haruto", current_team_id="team-b"),
            ]
        )
        await session.commit()


async def seed_tournament(session_maker, tournament_id: int, offset: int = 0) -> None:
    """One tournament with rows in every dependent table.

    offset shifts every generated primary key so several tournaments coexist.
    """
    o = offset
    async with session_maker() as session:
        session.add(
            Tournament(
                tournament_id=tournament_id,
                tournament_name=f"Spring Cup {tournament_id}",
                venue_id=1,
                format_name="3 teams round robin + final",
                team_count=3,
                tournament_dates='{"1": "2025-05-04"}',
                status="completed",
            )
        )
        await session.flush()

        session.add(TournamentRule(tournament_rule_id=1 + o, tournament_id=tournament_id, phase="preliminary"))
        session.add_all(
            [
                TournamentTeam(tournament_team_id=1 + o, tournament_id=tournament_id, team_id="team-a",
                               team_name="Aoba FC", assigned_block="A", block_position=1),
                TournamentTeam(tournament_team_id=2 + o, tournament_id=tournament_id, team_id="team-b",
                               team_name="Bunkyo United", assigned_block="A", block_position=2),
                TournamentTeam(tournament_team_id=3 + o, tournament_id=tournament_id, team_id="team-c",
                               team_name="Chuo Rovers", assigned_block="A", block_position=3),
            ]
        )
        session.add_all(
            [
                MatchBlock(match_block_id=1 + o, tournament_id=tournament_id, phase="preliminary", block_name="A",
                           team_rankings='[{"team_id": "team-a", "position": 1, "points": 6}]'),
                MatchBlock(match_block_id=2 + o, tournament_id=tournament_id, phase="final", block_name="Final"),
            ]
        )
        await session.flush()

        session.add_all(
            [
                TournamentPlayer(tournament_player_id=1 + o, tournament_id=tournament_id,
                                 tournament_team_id=1 + o, player_id=1, jersey_number=10),
                TournamentPlayer(tournament_player_id=2 + o, tournament_id=tournament_id,
                                 tournament_team_id=1 + o, player_id=2, jersey_number=7),
                TournamentPlayer(tournament_player_id=3 + o, tournament_id=tournament_id,
                                 tournament_team_id=2 + o, player_id=3, jersey_number=1),
            ]
        )
        session.add_all(
            [
                MatchLive(match_id=1 + o, match_block_id=1 + o, match_number=1, match_code="A1",
                          team1_id="team-a", team2_id="team-b",
                          team1_tournament_team_id=1 + o, team2_tournament_team_id=2 + o),
                MatchLive(match_id=2 + o, match_block_id=1 + o, match_number=2, match_code="A2",
                          team1_id="team-b", team2_id="team-c",
                          team1_tournament_team_id=2 + o, team2_tournament_team_id=3 + o),
                MatchLive(match_id=3 + o, match_block_id=1 + o, match_number=3, match_code="A3",
                          team1_id="team-a", team2_id="team-c",
                          team1_tournament_team_id=1 + o, team2_tournament_team_id=3 + o),
                MatchLive(match_id=4 + o, match_block_id=2 + o, match_number=4, match_code="F1",
                          team1_display_name="A 1st", team2_display_name="A 2nd"),
            ]
        )
        await session.flush()

        session.add_all(
            [
                MatchFinal(match_id=1 + o, team1_scores="[2,1]", team2_scores="0", winner_team_id="team-a"),
                MatchFinal(match_id=2 + o, team1_scores="1,1", team2_scores="2", is_draw=True),
                MatchStatus(match_id=1 + o, match_status="completed"),
                MatchStatus(match_id=2 + o, match_status="completed"),
                TournamentFile(file_id=1 + o, tournament_id=tournament_id, file_type="bracket_pdf",
                               file_title="Bracket", blob_url=f"tournaments/{tournament_id}/files/bracket.pdf"),
                SponsorBanner(banner_id=1 + o, tournament_id=tournament_id, banner_name="Main sponsor",
                              image_blob_url=f"tournaments/{tournament_id}/banners/main.png"),
                TournamentNotification(notification_id=1 + o, tournament_id=tournament_id,
                                       notification_type="promotion", title="Final slots unresolved"),
                MatchOverride(override_id=1 + o, tournament_id=tournament_id, match_code="F1",
                              team1_source_override="A_1"),
                TournamentStatusHistory(history_id=1 + o, tournament_id=tournament_id,
                                        from_status="ongoing", to_status="completed"),
                ArchivedTournamentJson(tournament_id=tournament_id, tournament_name=f"Spring Cup {tournament_id}",
                                       archive_data="{}"),
            ]
        )
        await session.commit()


@pytest_asyncio.fixture
async def seeded(session_maker) -> int:
    """Tournament 1 (under test) plus tournament 2 (must stay untouched)."""
    await seed_master_data(session_maker)
    await seed_tournament(session_maker, 1)
    await seed_tournament(session_maker, 2, offset=100)
    return 1
