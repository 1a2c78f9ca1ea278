"""
Database interaction module for PostgreSQL.

Runs check statements on a pooled asyncpg connection and never commits:
every statement executes inside a transaction that is rolled back.
"""

import asyncio
from typing import Any, List, Optional, Protocol, Sequence

from sqlalchemy.exc import DBAPIError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from fragment_check.config import Settings
from fragment_check.errors import DatabaseConnectionError, StatementRejectedError
from fragment_check.logger_config import get_logger
from fragment_check.result import DatabaseError
from fragment_check.tags import extract_error_code

# SQLSTATE classes that mean the connection, not the statement, is the problem
_CONNECTION_SQLSTATE_PREFIXES = ("08", "28", "3D", "57P")

logger = get_logger()


class QueryExecutor(Protocol):
    """What the validator needs from a database."""

    async def execute(
        self,
        sql: str,
        parameters: Optional[Sequence[Any]] = None,
        teardown: Optional[str] = None,
    ) -> List[Any]: ...


def _driver_error(exc: BaseException) -> BaseException:
    """Innermost driver exception behind SQLAlchemy's and the adapter's wrappers."""
    orig = getattr(exc, "orig", None) or exc
    cause = orig.__cause__
    return cause if cause is not None else orig


def _sqlstate(exc: BaseException) -> Optional[str]:
    for candidate in (_driver_error(exc), getattr(exc, "orig", None), exc):
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return str(code)
    return None


def database_error_from_exception(exc: BaseException) -> DatabaseError:
    """
    Build a DatabaseError from whatever the driver raised.

    asyncpg's PostgresError carries message/hint/detail/position; other
    errors only have their string form, from which a SQLSTATE is inferred.
    """
    driver = _driver_error(exc)
    message = getattr(driver, "message", None) or str(driver) or str(exc)
    if not message:
        message = "statement timed out" if _is_timeout(driver) else type(driver).__name__
    position = getattr(driver, "position", None)
    sqlstate = _sqlstate(exc) or extract_error_code(message)

    return DatabaseError(
        message=message,
        hint=getattr(driver, "hint", None) or None,
        detail=getattr(driver, "detail", None) or None,
        sqlstate=sqlstate,
        position=int(position) if position and str(position).isdigit() else None,
    )


def _is_timeout(exc: BaseException) -> bool:
    # TimeoutError is an OSError, so this must be asked before the OSError check
    return isinstance(exc, (asyncio.TimeoutError, TimeoutError))


def is_connection_failure(exc: BaseException, checking_out: bool = False) -> bool:
    """True when an error is about reaching the server rather than the statement.

    Anything raised while a connection is checked out from the pool counts.
    Once the statement runs, a timeout belongs to that statement alone.
    """
    if checking_out or isinstance(exc, PoolTimeoutError):
        return True
    if _is_timeout(exc):
        return False
    if isinstance(exc, OSError):
        return True
    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return True
        driver = _driver_error(exc)
        if isinstance(driver, OSError) and not _is_timeout(driver):
            return True
    sqlstate = _sqlstate(exc)
    return bool(sqlstate) and sqlstate.upper().startswith(_CONNECTION_SQLSTATE_PREFIXES)


class Database:
    """A PostgreSQL connection pool used to run check statements.

    The engine is created once; checks share its pool and each one checks
    out its own connection, so concurrent checks never interfere.
    """

    def __init__(self, url: str, **engine_options: Any):
        """Create the engine (no connection is opened yet).

        Args:
            url: SQLAlchemy URL, e.g. postgresql+asyncpg://user:pw@host:5432/db
            **engine_options: Extra create_async_engine options
        """
        options = {
            "pool_size": 5,
            "max_overflow": 10,
            "pool_timeout": 30,
            "pool_recycle": 1800,
        }
        options.update(engine_options)
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, **options)

    @classmethod
    async def open(cls, settings: Settings, **engine_options: Any) -> "Database":
        """Create a database from settings and verify it answers."""
        database = cls(settings.get_database_url(), **engine_options)
        try:
            await database.connect()
        except DatabaseConnectionError:
            await database.dispose()
            raise
        return database

    @property
    def dialect(self) -> str:
        """Get database dialect name."""
        return self.engine.dialect.name

    async def connect(self) -> None:
        """Health check: run SELECT 1.

        Raises:
            DatabaseConnectionError: If the server cannot be reached
        """
        try:
            async with self.engine.connect() as conn:
                await conn.exec_driver_sql("SELECT 1")
        except Exception as e:
            logger.error(f"Failed to test database connection: {e}")
            raise DatabaseConnectionError(str(e)) from e
        logger.info("Connection is established!")

    async def execute(
        self,
        sql: str,
        parameters: Optional[Sequence[Any]] = None,
        teardown: Optional[str] = None,
    ) -> List[Any]:
        """Execute a statement and roll back whatever it did.

        Args:
            sql: Statement using $1..$n positional placeholders
            parameters: Values bound to the placeholders
            teardown: Statement run on the same connection when sql succeeded

        Returns:
            Result rows, empty for statements that return none

        Raises:
            StatementRejectedError: If the server rejects the statement
            DatabaseConnectionError: If the server cannot be reached
        """
        checking_out = True
        try:
            async with self.engine.connect() as conn:
                checking_out = False
                try:
                    result = await conn.exec_driver_sql(
                        sql, tuple(parameters) if parameters else None
                    )
                    rows = list(result.fetchall()) if result.returns_rows else []
                    if teardown:
                        await conn.exec_driver_sql(teardown)
                finally:
                    await conn.rollback()
        except (DBAPIError, OSError, asyncio.TimeoutError, PoolTimeoutError) as e:
            if is_connection_failure(e, checking_out):
                raise DatabaseConnectionError(str(e)) from e
            raise StatementRejectedError(database_error_from_exception(e)) from e
        return rows

    async def dispose(self) -> None:
        """Release every pooled connection."""
        await self.engine.dispose()


class DatabaseHandle:
    """Explicitly owned, swappable reference to the current Database.

    Reconfiguration is: build and connect a new Database, swap it in,
    then dispose the old one.
    """

    def __init__(self, database: Optional[QueryExecutor] = None):
        self._database = database

    @property
    def current(self) -> QueryExecutor:
        if self._database is None:
            raise DatabaseConnectionError("No database connection is configured")
        return self._database

    async def swap(self, database: QueryExecutor) -> None:
        """Install a new database and release the previous one."""
        old, self._database = self._database, database
        if old is not None and old is not database:
            await _dispose(old)

    async def close(self) -> None:
        old, self._database = self._database, None
        if old is not None:
            await _dispose(old)


async def _dispose(database: Any) -> None:
    dispose = getattr(database, "dispose", None)
    if dispose is not None:
        await dispose()
