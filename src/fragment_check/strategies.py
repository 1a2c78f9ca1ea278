# -*- coding: utf-8 -*-
"""
Check strategies: which statements validate a fragment, and how to run them.

Two generations share one interface:

    PrepareStrategy        PREPARE name(types) AS <fragment>; DEALLOCATE name
    SyntaxExplainStrategy  DO-block syntax check, then EXPLAIN with default values inlined

A strategy runs its statements in order and stops at the first rejection,
so at most one error is reported per fragment.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Type

from fragment_check.database import QueryExecutor
from fragment_check.errors import ConfigurationError, StatementRejectedError
from fragment_check.logger_config import get_logger
from fragment_check.overrides import ParameterOverrides
from fragment_check.result import DatabaseError, Fragment
from fragment_check.rewriter import (
    CheckStatement,
    host_line,
    wrap_explain_check,
    wrap_prepare_check,
    wrap_syntax_check,
)

logger = get_logger()


class CheckStrategy(ABC):
    """Turns a fragment into check statements and runs them."""

    name: str = ""

    @abstractmethod
    def build(self, fragment: Fragment, overrides: ParameterOverrides) -> List[CheckStatement]:
        """Statements to issue for the fragment, in order."""

    async def run(
        self,
        database: QueryExecutor,
        fragment: Fragment,
        overrides: Optional[ParameterOverrides] = None,
    ) -> Optional[DatabaseError]:
        """
        Run every statement for the fragment.

        Returns:
            None when all statements pass, otherwise the first captured error

        Raises:
            DatabaseConnectionError: If the database cannot be reached
        """
        overrides = overrides or ParameterOverrides()
        line_number = fragment.span.start.line + 1

        if overrides:
            logger.info(
                f"Fragment at line {line_number} ({fragment.identity}) has parameter "
                f"overrides, its checked query is changed"
            )

        for statement in self.build(fragment, overrides):
            logger.debug(
                f"{statement.kind} check for line {line_number} "
                f"fragment ({fragment.identity}) is\n---\n{statement.sql}\n===\n"
            )
            try:
                await database.execute(
                    statement.sql,
                    statement.parameters or None,
                    teardown=statement.teardown,
                )
            except StatementRejectedError as e:
                line = host_line(statement, fragment.span.start.line, e.error.position)
                where = f" near line {line + 1}" if line is not None else ""
                logger.debug(
                    f"{statement.kind} check rejected fragment ({fragment.identity}){where}: "
                    f"{e.error.message}"
                )
                return e.error
        return None


class PrepareStrategy(CheckStrategy):
    """
    Declare the fragment as a prepared statement.

    The server fully analyzes it, resolving parameter types, without running
    it. Type overrides become the declared parameter types; default values
    cannot be bound by PREPARE and are not used.
    """

    name = "prepare"

    def build(self, fragment: Fragment, overrides: ParameterOverrides) -> List[CheckStatement]:
        return [
            wrap_prepare_check(
                fragment.text,
                overrides.type_casts,
                name=f"fragment_check_{fragment.identity}",
            )
        ]


class SyntaxExplainStrategy(CheckStrategy):
    """
    Syntax-only DO-block check, then an EXPLAIN check.

    The DO block catches syntax errors without semantic analysis; EXPLAIN
    then resolves names and parameter types with type overrides applied as
    casts and default values inlined as literals the server converts.
    """

    name = "syntax-explain"

    def build(self, fragment: Fragment, overrides: ParameterOverrides) -> List[CheckStatement]:
        return [
            wrap_syntax_check(fragment.text),
            wrap_explain_check(fragment.text, overrides.type_casts, overrides.default_values),
        ]


STRATEGIES: Dict[str, Type[CheckStrategy]] = {
    PrepareStrategy.name: PrepareStrategy,
    SyntaxExplainStrategy.name: SyntaxExplainStrategy,
}


def get_strategy(name: str) -> CheckStrategy:
    """
    Instantiate a strategy by name.

    Raises:
        ConfigurationError: If the name is unknown
    """
    try:
        return STRATEGIES[name]()
    except KeyError:
        raise ConfigurationError(
            f"Unknown check strategy '{name}'. Supported: {', '.join(STRATEGIES)}"
        ) from None
