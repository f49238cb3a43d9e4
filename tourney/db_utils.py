"""Database utility functions for raw-SQL reads across SQLite and PostgreSQL."""

import logging
from typing import Any, Optional

from sqlalchemy import text
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def is_missing_table_error(exc: Exception) -> bool:
    """True when a statement failed because a table/relation does not exist.

    SQLite: "no such table: x" (OperationalError)
    PostgreSQL: 'relation "x" does not exist' (ProgrammingError, UndefinedTable)
    """
    message = str(exc).lower()
    return "no such table" in message or ("relation" in message and "does not exist" in message)


async def fetch_all(
    session: AsyncSession,
    sql: str,
    params: Optional[dict[str, Any]] = None,
    optional: bool = False,
) -> list[dict[str, Any]]:
    """
    Run a SELECT and return rows as dicts.

    Args:
        session: AsyncSession instance
        sql: Raw SQL with :named parameters
        params: Bound parameters
        optional: The queried table may not exist in this deployment; a missing
            table yields [] instead of raising

    Raises:
        SQLAlchemyError: any failure other than a missing optional table
    """
    try:
        result = await session.execute(text(sql), params or {})
    except (OperationalError, ProgrammingError) as e:
        if optional and is_missing_table_error(e):
            # PostgreSQL aborts the transaction on error; reset it for later reads
            await session.rollback()
            logger.info(f"Optional table missing, treating as empty: {e.orig}")
            return []
        raise
    return [dict(row) for row in result.mappings().all()]


async def fetch_one(
    session: AsyncSession,
    sql: str,
    params: Optional[dict[str, Any]] = None,
) -> Optional[dict[str, Any]]:
    result = await session.execute(text(sql), params or {})
    row = result.mappings().first()
    return dict(row) if row is not None else None


async def count_rows(
    session: AsyncSession,
    sql: str,
    params: Optional[dict[str, Any]] = None,
    optional: bool = False,
) -> int:
    """Scalar COUNT(*) query. Missing optional tables count as 0."""
    try:
        result = await session.execute(text(sql), params or {})
    except (OperationalError, ProgrammingError) as e:
        if optional and is_missing_table_error(e):
            await session.rollback()
            return 0
        raise
    return int(result.scalar() or 0)
