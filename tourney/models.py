"""Database models using SQLModel."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, Text
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_column(nullable: bool = False) -> Column:
    """Timezone-aware timestamp column (one instance per field)."""
    return Column(DateTime(timezone=True), nullable=nullable)


# =============================================================================
# Master data
# =============================================================================


class Venue(SQLModel, table=True):
    """Venue where tournament days are played."""

    __tablename__ = "venues"

    venue_id: Optional[int] = Field(default=None, primary_key=True)
    venue_name: str = Field(max_length=255)
    address: Optional[str] = Field(default=None, max_length=500)


class Team(SQLModel, table=True):
    """Registered team (master record, survives tournament deletion)."""

    __tablename__ = "teams"

    team_id: str = Field(primary_key=True, max_length=64, description="Login id of the team")
    team_name: str = Field(max_length=255)
    team_omission: Optional[str] = Field(default=None, max_length=50, description="Short name")
    contact_person: Optional[str] = Field(default=None, max_length=255)
    contact_email: Optional[str] = Field(default=None, max_length=255)


class Player(SQLModel, table=True):
    """Registered player (master record)."""

    __tablename__ = "players"

    player_id: Optional[int] = Field(default=None, primary_key=True)
    player_name: str = Field(max_length=255)
    current_team_id: Optional[str] = Field(default=None, foreign_key="teams.team_id")


# =============================================================================
# Tournament
# =============================================================================


class Tournament(SQLModel, table=True):
    """Tournament header row. Archival stamps the archive_* columns."""

    __tablename__ = "tournaments"

    tournament_id: Optional[int] = Field(default=None, primary_key=True)
    tournament_name: str = Field(max_length=255)
    venue_id: Optional[int] = Field(default=None, foreign_key="venues.venue_id")
    format_name: Optional[str] = Field(default=None, max_length=255)
    team_count: int = Field(default=0)
    court_count: int = Field(default=1)
    tournament_dates: Optional[str] = Field(
        default=None, sa_column=Column(Text), description='JSON object {"1": "2025-05-04", ...}'
    )
    match_duration_minutes: int = Field(default=15)
    break_duration_minutes: int = Field(default=5)
    status: str = Field(default="planning", max_length=20, description="planning, ongoing, completed")
    visibility: str = Field(default="open", max_length=20)
    public_start_date: Optional[datetime] = Field(default=None, sa_column=utc_column(nullable=True))
    recruitment_start_date: Optional[datetime] = Field(default=None, sa_column=utc_column(nullable=True))
    recruitment_end_date: Optional[datetime] = Field(default=None, sa_column=utc_column(nullable=True))
    created_by: Optional[str] = Field(default=None, max_length=64)
    created_at: datetime = Field(default_factory=utc_now, sa_column=utc_column())
    updated_at: datetime = Field(default_factory=utc_now, sa_column=utc_column())

    # Archive stamp
    is_archived: bool = Field(default=False)
    archive_ui_version: Optional[str] = Field(default=None, max_length=20)
    archived_at: Optional[datetime] = Field(default=None, sa_column=utc_column(nullable=True))
    archived_by: Optional[str] = Field(default=None, max_length=64)


class TournamentRule(SQLModel, table=True):
    """Per-phase competition rules."""

    __tablename__ = "tournament_rules"

    tournament_rule_id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournaments.tournament_id", index=True)
    phase: str = Field(max_length=20, description="'preliminary' or 'final'")
    use_extra_time: bool = Field(default=False)
    use_penalty: bool = Field(default=False)
    active_periods: Optional[str] = Field(default=None, max_length=100, description="JSON array")
    point_system: Optional[str] = Field(default=None, sa_column=Column(Text))
    tie_breaking_rules: Optional[str] = Field(default=None, sa_column=Column(Text))


class TournamentTeam(SQLModel, table=True):
    """Team entry for one tournament."""

    __tablename__ = "tournament_teams"

    tournament_team_id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournaments.tournament_id", index=True)
    team_id: str = Field(foreign_key="teams.team_id", index=True)
    team_name: str = Field(max_length=255)
    team_omission: Optional[str] = Field(default=None, max_length=50)
    assigned_block: Optional[str] = Field(default=None, max_length=20)
    block_position: Optional[int] = Field(default=None)
    withdrawal_status: str = Field(default="active", max_length=30)


class TournamentPlayer(SQLModel, table=True):
    """Roster line: a player registered for a tournament team."""

    __tablename__ = "tournament_players"

    tournament_player_id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournaments.tournament_id", index=True)
    tournament_team_id: int = Field(foreign_key="tournament_teams.tournament_team_id", index=True)
    player_id: int = Field(foreign_key="players.player_id")
    jersey_number: Optional[int] = Field(default=None)


class MatchBlock(SQLModel, table=True):
    """Group/bracket block. Standings are stored serialized in team_rankings."""

    __tablename__ = "match_blocks"

    match_block_id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournaments.tournament_id", index=True)
    phase: str = Field(max_length=20, description="'preliminary' or 'final'")
    display_round_name: Optional[str] = Field(default=None, max_length=100)
    block_name: str = Field(max_length=50)
    match_type: str = Field(default="standard", max_length=20)
    block_order: int = Field(default=0)
    team_rankings: Optional[str] = Field(
        default=None, sa_column=Column(Text), description="JSON array of ranked teams"
    )
    remarks: Optional[str] = Field(default=None, sa_column=Column(Text))


class MatchLive(SQLModel, table=True):
    """Scheduled match and its in-progress state."""

    __tablename__ = "matches_live"

    match_id: Optional[int] = Field(default=None, primary_key=True)
    match_block_id: int = Field(foreign_key="match_blocks.match_block_id", index=True)
    tournament_date: Optional[str] = Field(default=None, max_length=20)
    match_number: int = Field(default=0)
    match_code: str = Field(max_length=20)
    team1_id: Optional[str] = Field(default=None, max_length=64)
    team2_id: Optional[str] = Field(default=None, max_length=64)
    team1_tournament_team_id: Optional[int] = Field(
        default=None, foreign_key="tournament_teams.tournament_team_id"
    )
    team2_tournament_team_id: Optional[int] = Field(
        default=None, foreign_key="tournament_teams.tournament_team_id"
    )
    team1_display_name: Optional[str] = Field(default=None, max_length=255)
    team2_display_name: Optional[str] = Field(default=None, max_length=255)
    court_number: Optional[int] = Field(default=None)
    start_time: Optional[str] = Field(default=None, max_length=10)
    match_status: str = Field(default="scheduled", max_length=20)
    result_status: str = Field(default="none", max_length=20)
    remarks: Optional[str] = Field(default=None, sa_column=Column(Text))


class MatchFinal(SQLModel, table=True):
    """Confirmed result of a match. Scores are per-period encodings."""

    __tablename__ = "matches_final"

    match_id: int = Field(foreign_key="matches_live.match_id", primary_key=True)
    team1_scores: Optional[str] = Field(default=None, max_length=100, description='"[2,1]", legacy "2,1" or "2"')
    team2_scores: Optional[str] = Field(default=None, max_length=100)
    winner_team_id: Optional[str] = Field(default=None, max_length=64)
    is_draw: bool = Field(default=False)
    is_walkover: bool = Field(default=False)
    confirmed_at: datetime = Field(default_factory=utc_now, sa_column=utc_column())


class MatchStatus(SQLModel, table=True):
    """Referee-side live status of a match."""

    __tablename__ = "match_status"

    match_id: int = Field(foreign_key="matches_live.match_id", primary_key=True)
    match_status: str = Field(default="scheduled", max_length=20)
    current_period: int = Field(default=1)
    updated_at: datetime = Field(default_factory=utc_now, sa_column=utc_column())
    updated_by: Optional[str] = Field(default=None, max_length=64)


class TournamentFile(SQLModel, table=True):
    """Uploaded document (bracket/results PDF, guidelines) stored in the object store."""

    __tablename__ = "tournament_files"

    file_id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournaments.tournament_id", index=True)
    file_type: str = Field(max_length=30, description="'bracket_pdf', 'results_pdf', 'document'")
    file_title: str = Field(max_length=255)
    blob_url: Optional[str] = Field(default=None, max_length=500, description="Object key")
    is_public: bool = Field(default=True)
    uploaded_at: datetime = Field(default_factory=utc_now, sa_column=utc_column())


class SponsorBanner(SQLModel, table=True):
    """Sponsor banner shown on the public tournament page."""

    __tablename__ = "sponsor_banners"

    banner_id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournaments.tournament_id", index=True)
    banner_name: str = Field(max_length=255)
    image_blob_url: Optional[str] = Field(default=None, max_length=500, description="Object key")
    display_position: str = Field(default="top", max_length=20)


class TournamentNotification(SQLModel, table=True):
    """Operational notification raised for a tournament (e.g. promotion issues)."""

    __tablename__ = "tournament_notifications"

    notification_id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournaments.tournament_id", index=True)
    notification_type: str = Field(max_length=50)
    title: str = Field(max_length=255)
    message: Optional[str] = Field(default=None, sa_column=Column(Text))
    is_resolved: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utc_now, sa_column=utc_column())


class MatchOverride(SQLModel, table=True):
    """Manual override of a bracket slot (team source) for one match code."""

    __tablename__ = "match_overrides"

    override_id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournaments.tournament_id", index=True)
    match_code: str = Field(max_length=20)
    team1_source_override: Optional[str] = Field(default=None, max_length=50)
    team2_source_override: Optional[str] = Field(default=None, max_length=50)
    override_reason: Optional[str] = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(default_factory=utc_now, sa_column=utc_column())


class TournamentStatusHistory(SQLModel, table=True):
    """Audit trail of tournament status transitions."""

    __tablename__ = "tournament_status_history"

    history_id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournaments.tournament_id", index=True)
    from_status: Optional[str] = Field(default=None, max_length=20)
    to_status: str = Field(max_length=20)
    changed_by: Optional[str] = Field(default=None, max_length=64)
    changed_at: datetime = Field(default_factory=utc_now, sa_column=utc_column())


class ArchivedTournamentJson(SQLModel, table=True):
    """Legacy relational-form snapshot written before object-store archives existed."""

    __tablename__ = "archived_tournament_json"

    tournament_id: int = Field(foreign_key="tournaments.tournament_id", primary_key=True)
    tournament_name: str = Field(max_length=255)
    archive_data: str = Field(sa_column=Column(Text, nullable=False))
    archive_version: str = Field(default="v1_json", max_length=20)
    archived_at: datetime = Field(default_factory=utc_now, sa_column=utc_column())
    archived_by: Optional[str] = Field(default=None, max_length=64)
