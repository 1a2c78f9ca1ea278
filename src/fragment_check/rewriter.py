# -*- coding: utf-8 -*-
"""
Rewrite a raw fragment into statements the server can check without running it.

    wrap_syntax_check(sql)                      # DO block that returns first
    wrap_explain_check(sql, casts, defaults)    # EXPLAIN, defaults inlined
    wrap_prepare_check(sql, casts, name)        # PREPARE name(types) AS ...

Nothing here talks to a database; strategies.py executes the results.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

UNKNOWN_TYPE = "unknown"
TERMINATOR = ";"

_PARAMETER = re.compile(r"\$([1-9][0-9]*)")


@dataclass(frozen=True)
class CheckStatement:
    """
    One statement issued for a check.

    Attributes:
        kind: "syntax", "explain" or "prepare"
        sql: Statement text
        parameters: Positional values bound to $1..$n
        teardown: Statement run on the same connection after success
        fragment_line: Line of ``sql`` holding the fragment's first line
    """

    kind: str
    sql: str
    parameters: Tuple[Any, ...] = ()
    teardown: Optional[str] = None
    fragment_line: int = 0


def normalize_ending(sql: str) -> str:
    """Trim trailing whitespace and make sure the statement ends with ';'."""
    trimmed = sql.rstrip()
    return trimmed if trimmed.endswith(TERMINATOR) else trimmed + TERMINATOR


def find_parameters(sql: str) -> List[int]:
    """Distinct positional parameter indexes ($1, $2, ...) in ascending order."""
    return sorted({int(m.group(1)) for m in _PARAMETER.finditer(sql)})


def parameter_count(sql: str) -> int:
    """Number of distinct positional parameters."""
    return len(find_parameters(sql))


def parameter_slots(sql: str) -> int:
    """Number of slots to declare or bind: the highest index used."""
    indexes = find_parameters(sql)
    return indexes[-1] if indexes else 0


def _placeholder(index: int) -> re.Pattern:
    return re.compile(rf"\${index}(?![0-9])")


def annotate_parameters(sql: str, type_casts: Mapping[int, str]) -> str:
    """Rewrite every ``$N`` with a type override to ``$N::type``."""
    for index, type_name in sorted(type_casts.items()):
        sql = _placeholder(index).sub(lambda _m, i=index, t=type_name: f"${i}::{t}", sql)
    return sql


def sql_literal(value: Any) -> str:
    """
    Render a default value as an untyped SQL string literal.

    The server converts the literal to whatever type the parameter position
    needs, so "2024-01-01" works for a date and 42 for a text column.
    """
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        text = "true" if value else "false"
    elif isinstance(value, (dict, list)):
        text = json.dumps(value)
    else:
        text = str(value)
    return "'" + text.replace("'", "''") + "'"


def substitute_defaults(
    sql: str,
    type_casts: Mapping[int, str],
    default_values: Mapping[int, Any],
) -> Tuple[str, int]:
    """
    Apply type casts and inline default values in one pass.

    Parameters with a default become literals; when any was inlined, the
    remaining placeholders are renumbered from $1 so no declared slot is
    left unreferenced.

    Returns:
        The rewritten statement and the number of slots left to bind
    """
    indexes = find_parameters(sql)
    inlined = [i for i in indexes if i in default_values]
    if not inlined:
        return annotate_parameters(sql, type_casts), parameter_slots(sql)

    remaining = [i for i in indexes if i not in default_values]
    numbering: Dict[int, int] = {old: new for new, old in enumerate(remaining, 1)}

    def replace(match: re.Match) -> str:
        index = int(match.group(1))
        cast = f"::{type_casts[index]}" if index in type_casts else ""
        if index in default_values:
            return sql_literal(default_values[index]) + cast
        return f"${numbering[index]}{cast}"

    return _PARAMETER.sub(replace, sql), len(remaining)


def _dollar_quote(sql: str) -> str:
    tag = "fragment_check"
    while f"${tag}$" in sql:
        tag += "_"
    return f"${tag}$"


def wrap_syntax_check(sql: str) -> CheckStatement:
    """
    Wrap the fragment in a DO block whose body returns before its first statement.

    PL/pgSQL parses the unreachable statement, so syntax errors surface while
    nothing runs. A DO block has no parameters, so placeholders become NULL.
    """
    body = normalize_ending(_PARAMETER.sub("NULL", sql))
    quote = _dollar_quote(body)
    script = f"DO {quote}\nBEGIN\nRETURN;\n{body}\nEND\n{quote};"
    return CheckStatement(kind="syntax", sql=script, fragment_line=3)


def wrap_explain_check(
    sql: str,
    type_casts: Mapping[int, str],
    default_values: Mapping[int, Any],
) -> CheckStatement:
    """
    Plan the fragment with EXPLAIN so parameter types are resolved.

    Parameters with a default value are replaced by it as a literal, the
    rest stay placeholders bound to NULL.
    """
    rewritten, slots = substitute_defaults(sql, type_casts, default_values)
    body = normalize_ending(rewritten)
    parameters = (None,) * slots
    return CheckStatement(
        kind="explain",
        sql=f"EXPLAIN\n{body}",
        parameters=parameters,
        fragment_line=1,
    )


def wrap_prepare_check(
    sql: str,
    type_casts: Mapping[int, str],
    name: str,
) -> CheckStatement:
    """
    Declare the fragment as a prepared statement, then deallocate it.

    Parameters without a type override are declared ``unknown`` so the server
    infers them, and reports the ones it cannot.
    """
    types = [type_casts.get(i, UNKNOWN_TYPE) for i in range(1, parameter_slots(sql) + 1)]
    header = f"PREPARE {name}({', '.join(types)})" if types else f"PREPARE {name}"
    return CheckStatement(
        kind="prepare",
        sql=f"{header} AS\n{normalize_ending(sql)}",
        teardown=f"DEALLOCATE {name};",
        fragment_line=1,
    )


def host_line(
    statement: CheckStatement,
    fragment_start_line: int,
    position: Optional[int],
) -> Optional[int]:
    """
    Map a 1-based character position in ``statement.sql`` to a zero-based
    host document line, or None when it falls outside the fragment.
    """
    if not position or position > len(statement.sql) + 1:
        return None
    statement_line = statement.sql.count("\n", 0, position - 1)
    offset = statement_line - statement.fragment_line
    if offset < 0 or offset > statement.sql.count("\n") - statement.fragment_line:
        return None
    return fragment_start_line + offset
