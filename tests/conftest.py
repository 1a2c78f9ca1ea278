# -*- coding: utf-8 -*-
"""Shared fixtures: an in-memory database that records check statements."""

from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest

from fragment_check.errors import DatabaseConnectionError, StatementRejectedError
from fragment_check.result import DatabaseError


class FakeDatabase:
    """
    Records every statement it receives.

    ``reject`` maps a substring of the statement to the error the server
    would report; ``unreachable`` makes every call fail as a lost connection.
    """

    def __init__(self):
        self.statements: List[Dict[str, Any]] = []
        self.reject: Dict[str, DatabaseError] = {}
        self.unreachable = False
        self.before_execute: Optional[Callable[[str], Any]] = None
        self.disposed = False

    async def execute(
        self,
        sql: str,
        parameters: Optional[Sequence[Any]] = None,
        teardown: Optional[str] = None,
    ) -> List[Any]:
        if self.before_execute is not None:
            await self.before_execute(sql)
        if self.unreachable:
            raise DatabaseConnectionError("connection refused")

        self.statements.append({"sql": sql, "parameters": parameters, "teardown": teardown})
        for needle, error in self.reject.items():
            if needle in sql:
                raise StatementRejectedError(error)
        return []

    async def dispose(self) -> None:
        self.disposed = True

    @property
    def sql(self) -> List[str]:
        return [s["sql"] for s in self.statements]


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def workspace(tmp_path):
    (tmp_path / "src").mkdir()
    return tmp_path


@pytest.fixture
def fake_db_factory():
    return FakeDatabase
