# -*- coding: utf-8 -*-
"""
Canonical tags for rejected check statements, plus SQLSTATE helpers.

Every tag value is "{prefix}_{name}"; the prefix is the category:

    ErrorTag.UNDEFINED_TABLE.category      # "schema"
    tag_for_sqlstate("42P18")              # ErrorTag.INDETERMINATE_PARAMETER
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Optional

_PREFIX_TO_CATEGORY: dict[str, str] = {
    "syntax": "syntax",
    "schema": "schema",
    "param": "parameter",
    "value": "value",
    "integrity": "integrity",
    "unknown": "unknown",
}


class ErrorTag(str, Enum):
    """
    Canonical tags for check failures.

    Members compare equal to their string values:
        ErrorTag.SYNTAX_ERROR == "syntax_error"  # True
    """

    # ── Syntax ────────────────────────────────────────────────────────────
    SYNTAX_ERROR = "syntax_error"
    INVALID_NAME = "syntax_invalid_name"

    # ── Schema ────────────────────────────────────────────────────────────
    UNDEFINED_TABLE = "schema_undefined_table"
    UNDEFINED_COLUMN = "schema_undefined_column"
    UNDEFINED_FUNCTION = "schema_undefined_function"
    UNDEFINED_OBJECT = "schema_undefined_object"
    AMBIGUOUS_COLUMN = "schema_ambiguous_column"
    DATATYPE_MISMATCH = "schema_datatype_mismatch"
    GROUPING_ERROR = "schema_grouping_error"
    SCHEMA_ERROR = "schema_error"

    # ── Parameters ────────────────────────────────────────────────────────
    INDETERMINATE_PARAMETER = "param_indeterminate_type"
    UNDEFINED_PARAMETER = "param_undefined"

    # ── Values ────────────────────────────────────────────────────────────
    INVALID_TEXT_REPRESENTATION = "value_invalid_text_representation"
    VALUE_ERROR = "value_error"

    # ── Integrity ─────────────────────────────────────────────────────────
    INTEGRITY_VIOLATION = "integrity_violation"

    UNKNOWN_ERROR = "unknown_error"

    @property
    def category(self) -> str:
        """Category derived from the tag value prefix."""
        prefix = self.value.split("_")[0]
        return _PREFIX_TO_CATEGORY.get(prefix, "unknown")


# ─── SQLSTATE → tag (exact) ──────────────────────────────────────────────────
_SQLSTATE_TO_TAG: dict[str, ErrorTag] = {
    "42601": ErrorTag.SYNTAX_ERROR,
    "42602": ErrorTag.INVALID_NAME,
    "42622": ErrorTag.INVALID_NAME,
    "42P01": ErrorTag.UNDEFINED_TABLE,
    "42703": ErrorTag.UNDEFINED_COLUMN,
    "42883": ErrorTag.UNDEFINED_FUNCTION,
    "42704": ErrorTag.UNDEFINED_OBJECT,
    "42702": ErrorTag.AMBIGUOUS_COLUMN,
    "42804": ErrorTag.DATATYPE_MISMATCH,
    "42846": ErrorTag.DATATYPE_MISMATCH,
    "42P08": ErrorTag.DATATYPE_MISMATCH,
    "42803": ErrorTag.GROUPING_ERROR,
    "42P18": ErrorTag.INDETERMINATE_PARAMETER,
    "42P02": ErrorTag.UNDEFINED_PARAMETER,
    "22P02": ErrorTag.INVALID_TEXT_REPRESENTATION,
}

# SQLSTATE class prefix (first 2 chars) → fallback tag
_SQLSTATE_CLASS_FALLBACK: dict[str, ErrorTag] = {
    "42": ErrorTag.SCHEMA_ERROR,
    "22": ErrorTag.VALUE_ERROR,
    "23": ErrorTag.INTEGRITY_VIOLATION,
}

# Error message patterns → SQLSTATE, for errors that arrive without a code
_ERROR_PATTERNS: dict[str, str] = {
    r"syntax error": "42601",
    r"unterminated quoted string": "42601",
    r"column reference .* is ambiguous": "42702",
    r"column .* does not exist": "42703",
    r"relation .* does not exist": "42P01",
    r"function .* does not exist": "42883",
    r"type .* does not exist": "42704",
    r"could not determine data type of parameter": "42P18",
    r"there is no parameter \$\d+": "42P02",
    r"invalid input syntax": "22P02",
}


def extract_error_code(error_message: str) -> Optional[str]:
    """Extract a SQLSTATE from a message, falling back to known message patterns."""
    pattern = r"(?:SQLSTATE|ERROR)[\s:]*([0-9][0-9A-Z]{4})\b|\[([0-9][0-9A-Z]{4})\]"
    match = re.search(pattern, error_message, re.IGNORECASE)
    if match:
        return (match.group(1) or match.group(2)).upper()

    msg_lower = error_message.lower()
    for pat, code in _ERROR_PATTERNS.items():
        if re.search(pat, msg_lower):
            return code
    return None


def tag_for_sqlstate(code: Optional[str]) -> ErrorTag:
    """Best tag for a SQLSTATE: exact match, then class fallback."""
    if not code:
        return ErrorTag.UNKNOWN_ERROR
    code = code.upper()
    exact = _SQLSTATE_TO_TAG.get(code)
    if exact is not None:
        return exact
    return _SQLSTATE_CLASS_FALLBACK.get(code[:2], ErrorTag.UNKNOWN_ERROR)
