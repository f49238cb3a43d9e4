"""Error taxonomy of the archival subsystem."""

from typing import Any, Optional


class ArchiveError(Exception):
    """Base error for archive operations."""


class TournamentNotFound(ArchiveError):
    """The live tournament row does not exist."""

    def __init__(self, tournament_id: int):
        self.tournament_id = tournament_id
        super().__init__(f"Tournament {tournament_id} not found")


class ArchiveNotFound(ArchiveError):
    """No snapshot object exists for the tournament (not archived yet)."""

    def __init__(self, tournament_id: int, path: str):
        self.tournament_id = tournament_id
        self.path = path
        super().__init__(f"Archive for tournament {tournament_id} not found at '{path}'")


class IndexCorrupted(ArchiveError):
    """The archive index object is structurally invalid.

    Always recovered by treating the index as empty.
    """


class IndexUpdateError(ArchiveError):
    """Optimistic index update exhausted its attempts."""

    def __init__(self, path: str, attempts: int, last_error: Optional[BaseException] = None):
        self.path = path
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error}" if last_error else ""
        super().__init__(f"Failed to update index '{path}' after {attempts} attempts{detail}")


class ConstraintViolation(ArchiveError):
    """Main tournament row could not be deleted because rows still reference it."""

    def __init__(self, tournament_id: int, message: str):
        self.tournament_id = tournament_id
        super().__init__(f"Tournament {tournament_id} is still referenced: {message}")


class PartialDeletionError(ArchiveError):
    """Cascade removed related data but the main tournament row persists."""

    def __init__(self, tournament_id: int, report: Any):
        self.tournament_id = tournament_id
        self.report = report
        super().__init__(
            f"Tournament {tournament_id} not deleted; related data partially removed "
            f"({len(report.ledger)} ledger entries)"
        )
