"""
Unit of work runner for the booking engine.

Each attempt runs in a fresh session and either commits as a whole or
rolls back as a whole. Business-rule failures roll back and are returned.
Transient storage failures (serialization conflicts, deadlocks, a locked
SQLite database) re-run the whole unit of work a bounded number of times.
"""

import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.domain.booking.results import BookingFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PostgreSQL serialization_failure / deadlock_detected
TRANSIENT_SQLSTATES = {"40001", "40P01"}


def is_transient_error(exc: DBAPIError) -> bool:
    """Return True if the whole unit of work may safely be retried."""
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in TRANSIENT_SQLSTATES:
        return True
    return "database is locked" in str(exc).lower()


async def run_unit_of_work(
    session_factory: async_sessionmaker,
    work: Callable[[AsyncSession], Awaitable[T]],
    max_attempts: int = 3,
    name: str = "unit_of_work",
) -> T:
    """
    Run `work` atomically.

    Args:
        session_factory: Factory producing a new AsyncSession per attempt
        work: Coroutine function doing all reads and writes on the given session
        max_attempts: Upper bound on attempts for transient storage failures
        name: Operation name for logs

    Returns:
        Whatever `work` returned. BookingFailure results are rolled back,
        every other result is committed.

    Raises:
        DBAPIError: non-transient storage failure, or transient failure on the last attempt
    """
    attempt = 0
    while True:
        attempt += 1
        async with session_factory() as session:
            try:
                result = await work(session)
                if isinstance(result, BookingFailure):
                    await session.rollback()
                    logger.info("%s rejected: %s", name, result.error_code)
                else:
                    await session.commit()
                return result
            except DBAPIError as exc:
                await session.rollback()
                if attempt >= max_attempts or not is_transient_error(exc):
                    logger.error("%s failed after %d attempt(s): %s", name, attempt, exc)
                    raise
                logger.warning("%s hit a transient conflict, retrying (%d/%d)", name, attempt, max_attempts)
            except Exception:
                await session.rollback()
                raise
