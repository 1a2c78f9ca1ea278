# -*- coding: utf-8 -*-
"""
Tests for the database collaborator.

No server is needed: the engine is replaced with a fake whose connections
record what they were asked to run.
"""

import asyncio
from contextlib import asynccontextmanager

import pytest
from sqlalchemy.exc import DBAPIError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from fragment_check.database import (
    Database,
    DatabaseHandle,
    database_error_from_exception,
    is_connection_failure,
)
from fragment_check.errors import DatabaseConnectionError, StatementRejectedError
from fragment_check.tags import ErrorTag


class FakePostgresError(Exception):
    """Shaped like asyncpg's PostgresError."""

    def __init__(self, message, sqlstate=None, hint=None, detail=None, position=None):
        super().__init__(message)
        self.message = message
        self.sqlstate = sqlstate
        self.hint = hint
        self.detail = detail
        self.position = position


def wrapped(driver_error: Exception) -> DBAPIError:
    """Wrap a driver error the way SQLAlchemy's asyncpg adapter does."""
    adapted = Exception(f"<class 'asyncpg.exceptions'>: {driver_error}")
    adapted.__cause__ = driver_error
    return DBAPIError("statement", None, adapted)


class FakeResult:
    def __init__(self, rows=None):
        self.rows = rows
        self.returns_rows = rows is not None

    def fetchall(self):
        return self.rows


class FakeConnection:
    def __init__(self, fail_on=None, error=None, rows=None):
        self.executed = []
        self.rolled_back = False
        self.fail_on = fail_on
        self.error = error
        self.rows = rows

    async def exec_driver_sql(self, sql, parameters=None):
        self.executed.append((sql, parameters))
        if self.fail_on is not None and self.fail_on in sql:
            raise self.error
        return FakeResult(self.rows)

    async def rollback(self):
        self.rolled_back = True


class FakeEngine:
    def __init__(self, connection=None, connect_error=None):
        self.connection = connection or FakeConnection()
        self.connect_error = connect_error
        self.disposed = False

    @asynccontextmanager
    async def connect(self):
        if self.connect_error is not None:
            raise self.connect_error
        yield self.connection

    async def dispose(self):
        self.disposed = True


def make_database(engine: FakeEngine) -> Database:
    database = Database("postgresql+asyncpg://u:p@localhost:5432/db")
    database.engine = engine
    return database


# =============================================================================
# Error conversion
# =============================================================================

class TestErrorConversion:
    def test_unwraps_driver_error(self):
        driver = FakePostgresError(
            'syntax error at or near "form"',
            sqlstate="42601",
            hint="Check the spelling",
            position="15",
        )

        error = database_error_from_exception(wrapped(driver))

        assert error.message == 'syntax error at or near "form"'
        assert error.hint == "Check the spelling"
        assert error.sqlstate == "42601"
        assert error.position == 15
        assert error.tag is ErrorTag.SYNTAX_ERROR

    def test_code_inferred_from_message(self):
        error = database_error_from_exception(
            Exception("could not determine data type of parameter $1")
        )

        assert error.sqlstate == "42P18"
        assert error.tag is ErrorTag.INDETERMINATE_PARAMETER
        assert error.hint is None

    def test_connection_failures(self):
        assert is_connection_failure(OSError("refused"))
        assert is_connection_failure(wrapped(FakePostgresError("gone", sqlstate="08006")))
        assert is_connection_failure(wrapped(FakePostgresError("auth", sqlstate="28P01")))
        assert is_connection_failure(
            DBAPIError("select 1", None, Exception("closed"), connection_invalidated=True)
        )

    def test_statement_errors_are_not_connection_failures(self):
        assert not is_connection_failure(wrapped(FakePostgresError("bad", sqlstate="42601")))
        assert not is_connection_failure(wrapped(FakePostgresError("no code")))

    def test_statement_timeouts_are_not_connection_failures(self):
        assert not is_connection_failure(asyncio.TimeoutError())
        assert not is_connection_failure(TimeoutError("timed out"))
        assert not is_connection_failure(wrapped(asyncio.TimeoutError()))
        assert not is_connection_failure(
            wrapped(FakePostgresError("canceling statement due to statement timeout", sqlstate="57014"))
        )

    def test_timeouts_while_checking_out_are_connection_failures(self):
        assert is_connection_failure(PoolTimeoutError("QueuePool limit reached"))
        assert is_connection_failure(asyncio.TimeoutError(), checking_out=True)

    def test_bare_timeout_gets_a_message(self):
        error = database_error_from_exception(asyncio.TimeoutError())

        assert error.message == "statement timed out"
        assert error.sqlstate is None


# =============================================================================
# Database
# =============================================================================

class TestDatabase:
    @pytest.mark.asyncio
    async def test_execute_binds_parameters_and_rolls_back(self):
        engine = FakeEngine(FakeConnection(rows=[("Seq Scan on t",)]))
        database = make_database(engine)

        rows = await database.execute("EXPLAIN\nselect $1;", [None])

        assert rows == [("Seq Scan on t",)]
        assert engine.connection.executed == [("EXPLAIN\nselect $1;", (None,))]
        assert engine.connection.rolled_back is True

    @pytest.mark.asyncio
    async def test_teardown_runs_after_success(self):
        engine = FakeEngine()
        database = make_database(engine)

        await database.execute("PREPARE q AS\nselect 1;", teardown="DEALLOCATE q;")

        assert [sql for sql, _ in engine.connection.executed] == [
            "PREPARE q AS\nselect 1;",
            "DEALLOCATE q;",
        ]

    @pytest.mark.asyncio
    async def test_rejection_raises_statement_error(self):
        driver = FakePostgresError('relation "t" does not exist', sqlstate="42P01")
        connection = FakeConnection(fail_on="PREPARE", error=wrapped(driver))
        database = make_database(FakeEngine(connection))

        with pytest.raises(StatementRejectedError) as exc_info:
            await database.execute("PREPARE q AS\nselect * from t;", teardown="DEALLOCATE q;")

        assert exc_info.value.error.sqlstate == "42P01"
        assert exc_info.value.error.tag is ErrorTag.UNDEFINED_TABLE
        assert len(connection.executed) == 1
        assert connection.rolled_back is True

    @pytest.mark.asyncio
    async def test_unreachable_server_raises_connection_error(self):
        database = make_database(FakeEngine(connect_error=OSError("Connection refused")))

        with pytest.raises(DatabaseConnectionError):
            await database.execute("select 1;")

    @pytest.mark.asyncio
    async def test_statement_timeout_rejects_only_that_statement(self):
        connection = FakeConnection(fail_on="PREPARE", error=asyncio.TimeoutError())
        database = make_database(FakeEngine(connection))

        with pytest.raises(StatementRejectedError) as exc_info:
            await database.execute("PREPARE q AS\nselect pg_sleep(60);", teardown="DEALLOCATE q;")

        assert exc_info.value.error.message == "statement timed out"
        assert connection.rolled_back is True

    @pytest.mark.asyncio
    async def test_timeout_while_checking_out_raises_connection_error(self):
        database = make_database(FakeEngine(connect_error=asyncio.TimeoutError()))

        with pytest.raises(DatabaseConnectionError):
            await database.execute("select 1;")

    @pytest.mark.asyncio
    async def test_exhausted_pool_raises_connection_error(self):
        database = make_database(
            FakeEngine(connect_error=PoolTimeoutError("QueuePool limit reached"))
        )

        with pytest.raises(DatabaseConnectionError):
            await database.execute("select 1;")

    @pytest.mark.asyncio
    async def test_health_check(self):
        engine = FakeEngine()
        database = make_database(engine)

        await database.connect()

        assert engine.connection.executed == [("SELECT 1", None)]

    @pytest.mark.asyncio
    async def test_health_check_failure(self):
        database = make_database(FakeEngine(connect_error=OSError("Connection refused")))

        with pytest.raises(DatabaseConnectionError):
            await database.connect()


# =============================================================================
# DatabaseHandle
# =============================================================================

class TestDatabaseHandle:
    def test_empty_handle_raises(self):
        with pytest.raises(DatabaseConnectionError):
            DatabaseHandle().current

    @pytest.mark.asyncio
    async def test_swap_disposes_previous(self, fake_db_factory):
        old, new = fake_db_factory(), fake_db_factory()
        handle = DatabaseHandle(old)

        await handle.swap(new)

        assert handle.current is new
        assert old.disposed is True
        assert new.disposed is False

    @pytest.mark.asyncio
    async def test_close(self, fake_db):
        handle = DatabaseHandle(fake_db)

        await handle.close()

        assert fake_db.disposed is True
        with pytest.raises(DatabaseConnectionError):
            handle.current
