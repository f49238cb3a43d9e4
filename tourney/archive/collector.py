"""
Tournament aggregate collector.

Reads one tournament from the relational store and merges it into the nested
snapshot payload: header (with venue and rules), teams with rosters, matches
with results and derived goal totals, standings per block, head-to-head
results, document flags and summary counts.

Rosters, rules and uploaded files live in tables some deployments never
created; those sub-queries count a missing table as zero rows.
"""

import json
import logging
from collections import defaultdict
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from tourney.archive.errors import TournamentNotFound
from tourney.archive.scores import parse_total_score
from tourney.db_utils import fetch_all, fetch_one

logger = logging.getLogger(__name__)

HEADER_SQL = """
    SELECT
        t.tournament_id,
        t.tournament_name,
        t.venue_id,
        v.venue_name,
        t.format_name,
        t.team_count,
        t.court_count,
        t.tournament_dates,
        t.match_duration_minutes,
        t.break_duration_minutes,
        t.status,
        t.visibility,
        t.public_start_date,
        t.recruitment_start_date,
        t.recruitment_end_date,
        t.created_by,
        t.created_at,
        t.updated_at
    FROM tournaments t
    LEFT JOIN venues v ON t.venue_id = v.venue_id
    WHERE t.tournament_id = :tournament_id
"""

RULES_SQL = """
    SELECT phase, use_extra_time, use_penalty, active_periods, point_system, tie_breaking_rules
    FROM tournament_rules
    WHERE tournament_id = :tournament_id
    ORDER BY phase
"""

TEAMS_SQL = """
    SELECT
        tt.tournament_team_id,
        tt.team_id,
        tt.team_name,
        tt.team_omission,
        tt.assigned_block,
        tt.block_position,
        tt.withdrawal_status,
        t.contact_person,
        t.contact_email
    FROM tournament_teams tt
    LEFT JOIN teams t ON tt.team_id = t.team_id
    WHERE tt.tournament_id = :tournament_id
    ORDER BY tt.assigned_block, tt.block_position, tt.tournament_team_id
"""

PLAYERS_SQL = """
    SELECT tp.tournament_team_id, p.player_name, tp.jersey_number
    FROM tournament_players tp
    LEFT JOIN players p ON tp.player_id = p.player_id
    WHERE tp.tournament_id = :tournament_id
    ORDER BY tp.tournament_team_id, tp.jersey_number
"""

MATCHES_SQL = """
    SELECT
        ml.match_id,
        ml.match_block_id,
        ml.tournament_date,
        ml.match_number,
        ml.match_code,
        ml.team1_id,
        ml.team2_id,
        ml.team1_display_name,
        ml.team2_display_name,
        ml.court_number,
        ml.start_time,
        mb.phase,
        mb.display_round_name,
        mb.block_name,
        mb.match_type,
        mb.block_order,
        mf.team1_scores,
        mf.team2_scores,
        mf.winner_team_id,
        COALESCE(mf.is_draw, 0) AS is_draw,
        COALESCE(mf.is_walkover, 0) AS is_walkover,
        ml.match_status,
        ml.result_status,
        ml.remarks,
        CASE WHEN mf.match_id IS NOT NULL THEN 1 ELSE 0 END AS has_result
    FROM matches_live ml
    JOIN match_blocks mb ON ml.match_block_id = mb.match_block_id
    LEFT JOIN matches_final mf ON ml.match_id = mf.match_id
    WHERE mb.tournament_id = :tournament_id
    ORDER BY ml.tournament_date, ml.match_number, ml.match_id
"""

STANDINGS_SQL = """
    SELECT mb.block_name, mb.phase, mb.team_rankings, mb.remarks
    FROM match_blocks mb
    WHERE mb.tournament_id = :tournament_id
    ORDER BY
        CASE mb.phase WHEN 'preliminary' THEN 1 WHEN 'final' THEN 2 ELSE 3 END,
        mb.block_name
"""

RESULTS_SQL = """
    SELECT
        ml.match_code,
        ml.team1_id,
        ml.team2_id,
        COALESCE(tt1.team_name, ml.team1_display_name) AS team1_name,
        COALESCE(tt2.team_name, ml.team2_display_name) AS team2_name,
        mf.team1_scores,
        mf.team2_scores,
        mf.winner_team_id,
        mf.is_draw,
        mf.is_walkover,
        mb.block_name
    FROM matches_live ml
    JOIN matches_final mf ON ml.match_id = mf.match_id
    JOIN match_blocks mb ON ml.match_block_id = mb.match_block_id
    LEFT JOIN tournament_teams tt1 ON ml.team1_tournament_team_id = tt1.tournament_team_id
    LEFT JOIN tournament_teams tt2 ON ml.team2_tournament_team_id = tt2.tournament_team_id
    WHERE mb.tournament_id = :tournament_id
    ORDER BY ml.match_code
"""

DOCUMENTS_SQL = """
    SELECT DISTINCT file_type
    FROM tournament_files
    WHERE tournament_id = :tournament_id AND file_type IN ('bracket_pdf', 'results_pdf')
"""


def _decode_json_text(value: Any, default: Any) -> Any:
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except ValueError:
        logger.warning(f"[COLLECT] Malformed JSON column value: {value[:80]!r}")
        return default


class TournamentCollector:
    """Builds the snapshot payload for one tournament from a session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def collect(self, tournament_id: int) -> dict[str, Any]:
        """
        Read every table the snapshot needs and merge the rows.

        Returns:
            {tournament, teams, matches, standings, results, pdf_info, metadata}

        Raises:
            TournamentNotFound: no tournaments row with this id
            SQLAlchemyError: a required query failed
        """
        params = {"tournament_id": tournament_id}

        header = await fetch_one(self.session, HEADER_SQL, params)
        if header is None:
            raise TournamentNotFound(tournament_id)

        header["tournament_dates"] = _decode_json_text(header.get("tournament_dates"), {})
        header["rules"] = await fetch_all(self.session, RULES_SQL, params, optional=True)

        teams = await self._collect_teams(params)
        matches = await self._collect_matches(params)

        standings = [
            {**row, "team_rankings": self._rankings(row.get("team_rankings"))}
            for row in await fetch_all(self.session, STANDINGS_SQL, params)
        ]

        results = [
            {**row, "is_draw": bool(row["is_draw"]), "is_walkover": bool(row["is_walkover"])}
            for row in await fetch_all(self.session, RESULTS_SQL, params)
        ]

        documents = {
            row["file_type"] for row in await fetch_all(self.session, DOCUMENTS_SQL, params, optional=True)
        }

        metadata = {
            "total_teams": len(teams),
            "total_matches": len(matches),
            "completed_matches": sum(1 for m in matches if m["has_result"]),
            "blocks_count": len({s["block_name"] for s in standings}),
        }

        logger.info(
            f"[COLLECT] Tournament {tournament_id}: {metadata['total_teams']} teams, "
            f"{metadata['total_matches']} matches ({metadata['completed_matches']} completed), "
            f"{metadata['blocks_count']} blocks"
        )

        return {
            "tournament": header,
            "teams": teams,
            "matches": matches,
            "standings": standings,
            "results": results,
            "pdf_info": {
                "bracket_pdf_exists": "bracket_pdf" in documents,
                "results_pdf_exists": "results_pdf" in documents,
            },
            "metadata": metadata,
        }

    async def _collect_teams(self, params: dict) -> list[dict[str, Any]]:
        rows = await fetch_all(self.session, TEAMS_SQL, params)
        rosters: dict[int, list[dict]] = defaultdict(list)
        for player in await fetch_all(self.session, PLAYERS_SQL, params, optional=True):
            rosters[player["tournament_team_id"]].append(
                {"player_name": player["player_name"], "jersey_number": player["jersey_number"]}
            )

        teams = []
        for row in rows:
            players = rosters.get(row.pop("tournament_team_id"), [])
            teams.append({**row, "player_count": len(players), "players": players})
        return teams

    async def _collect_matches(self, params: dict) -> list[dict[str, Any]]:
        matches = []
        for row in await fetch_all(self.session, MATCHES_SQL, params):
            matches.append(
                {
                    **row,
                    "is_draw": bool(row["is_draw"]),
                    "is_walkover": bool(row["is_walkover"]),
                    "has_result": bool(row["has_result"]),
                    "team1_goals": parse_total_score(row.get("team1_scores")),
                    "team2_goals": parse_total_score(row.get("team2_scores")),
                }
            )
        return matches

    @staticmethod
    def _rankings(value: Any) -> list:
        rankings = _decode_json_text(value, [])
        return rankings if isinstance(rankings, list) else []
