# -*- coding: utf-8 -*-
"""
Pydantic v2 models shared by the extractor, the strategies and the validator.

  Position / Span   – zero-based (line, character) anchors in a host document
  Fragment          – one delimited query block plus its identity
  DatabaseError     – what the server said when it rejected a check statement
  Diagnostic        – span-anchored, user-visible failure message
  FragmentOutcome   – passed flag + captured error for one fragment
  ValidationReport  – how a validation pass for one document ended
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from fragment_check.tags import ErrorTag, tag_for_sqlstate

HASH_LABEL = "Query cyrb53 hash"


class Position(BaseModel):
    """Zero-based line and character offset."""

    line: int
    character: int

    model_config = {"frozen": True, "extra": "forbid"}


class Span(BaseModel):
    """Half-open text range between two positions."""

    start: Position
    end: Position

    @classmethod
    def of(cls, start_line: int, start_char: int, end_line: int, end_char: int) -> "Span":
        return cls(
            start=Position(line=start_line, character=start_char),
            end=Position(line=end_line, character=end_char),
        )

    def __str__(self) -> str:
        return (
            f"{self.start.line + 1}:{self.start.character + 1}-"
            f"{self.end.line + 1}:{self.end.character + 1}"
        )

    model_config = {"frozen": True, "extra": "forbid"}


class Fragment(BaseModel):
    """A delimited query block: where it is, what it says, who it is."""

    span: Span
    text: str
    normalized: str
    identity: int

    model_config = {"frozen": True, "extra": "forbid"}


class DatabaseError(BaseModel):
    """Error reported by the database for a rejected check statement."""

    message: str
    hint: Optional[str] = None
    detail: Optional[str] = None
    sqlstate: Optional[str] = None
    position: Optional[int] = None

    @property
    def tag(self) -> ErrorTag:
        return tag_for_sqlstate(self.sqlstate)

    model_config = {"extra": "forbid"}


class Diagnostic(BaseModel):
    """A span-anchored validation failure."""

    span: Span
    message: str
    code: Optional[str] = None
    tag: ErrorTag = ErrorTag.UNKNOWN_ERROR

    @classmethod
    def for_fragment(cls, fragment: Fragment, error: DatabaseError) -> "Diagnostic":
        """Anchor a database error on the fragment's original span."""
        parts = [f"{HASH_LABEL}: {fragment.identity}", error.message, error.hint]
        return cls(
            span=fragment.span,
            message="\n".join(p for p in parts if p),
            code=error.sqlstate,
            tag=error.tag,
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "line": self.span.start.line + 1,
            "character": self.span.start.character + 1,
            "message": self.message,
            "tag": self.tag.value,
        }
        if self.code is not None:
            d["code"] = self.code
        return d

    model_config = {"extra": "forbid"}


class FragmentOutcome(BaseModel):
    """Result of checking one fragment."""

    fragment: Fragment
    error: Optional[DatabaseError] = None

    @property
    def passed(self) -> bool:
        return self.error is None

    model_config = {"extra": "forbid"}


class PassState(str, Enum):
    """Terminal states of one validation pass."""

    REPLACED = "diagnostics_replaced"
    ABORTED_UNWELL_FORMED = "aborted_unwell_formed"
    ABORTED_CONNECTION = "aborted_connection"
    SUPERSEDED = "superseded"
    FAILED = "failed"


class ValidationReport(BaseModel):
    """Summary of a validation pass over one document."""

    uri: str
    state: PassState
    outcomes: List[FragmentOutcome] = Field(default_factory=list)
    diagnostics: List[Diagnostic] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def passed(self) -> int:
        return sum(1 for o in self.outcomes if o.passed)

    @property
    def ok(self) -> bool:
        return self.state is PassState.REPLACED and not self.diagnostics

    def __repr__(self) -> str:
        return (
            f"ValidationReport(uri={self.uri!r}, state={self.state.value}, "
            f"passed={self.passed}/{self.total})"
        )

    model_config = {"extra": "forbid"}
