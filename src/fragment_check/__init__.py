"""
fragment_check - validate SQL fragments embedded in host source files.

Fragments are located by literal delimiters, identified by a cyrb53 hash of
their normalized text, and checked against a live PostgreSQL server without
being executed.

Example usage:
    >>> from fragment_check import load_settings, create_session, TextDocument
    >>> session = await create_session(load_settings())
    >>> report = await session.on_save(TextDocument.from_path("src/Users.hs", "."))
    >>> report.passed, report.total
"""

from .config import Settings, load_settings
from .database import Database, DatabaseHandle
from .diagnostics import DiagnosticCollection
from .documents import TextDocument
from .errors import (
    ConfigurationError,
    DatabaseConnectionError,
    FragmentCheckError,
    StatementRejectedError,
)
from .extractor import extract_spans
from .hashing import cyrb53, fragment_identity, normalize_fragment
from .overrides import OverrideStore, OverrideTables, resolve
from .result import Diagnostic, Fragment, PassState, ValidationReport
from .session import ValidationSession, create_session
from .strategies import PrepareStrategy, SyntaxExplainStrategy, get_strategy
from .validator import Validator

__all__ = [
    "Settings",
    "load_settings",
    "Database",
    "DatabaseHandle",
    "DiagnosticCollection",
    "TextDocument",
    "FragmentCheckError",
    "ConfigurationError",
    "DatabaseConnectionError",
    "StatementRejectedError",
    "extract_spans",
    "cyrb53",
    "fragment_identity",
    "normalize_fragment",
    "OverrideStore",
    "OverrideTables",
    "resolve",
    "Diagnostic",
    "Fragment",
    "PassState",
    "ValidationReport",
    "ValidationSession",
    "create_session",
    "PrepareStrategy",
    "SyntaxExplainStrategy",
    "get_strategy",
    "Validator",
]
