# -*- coding: utf-8 -*-
"""
Validation orchestrator.

One pass over one document:

    extract spans -> (abort if a fragment is unterminated)
    -> fragments with identities -> per-fragment overrides
    -> concurrent checks -> diagnostics in fragment order -> replace the set

Example usage:
    >>> validator = Validator(DatabaseHandle(db), PrepareStrategy(), DiagnosticCollection())
    >>> report = await validator.validate(TextDocument.from_path("src/Users.hs"))
    >>> report.passed, report.total
    (3, 4)
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Dict, List, Optional

from fragment_check.database import DatabaseHandle
from fragment_check.diagnostics import DiagnosticSink
from fragment_check.documents import Document
from fragment_check.errors import DatabaseConnectionError
from fragment_check.extractor import (
    DEFAULT_END_DELIMITER,
    DEFAULT_START_DELIMITER,
    extract_spans,
)
from fragment_check.hashing import cyrb53, normalize_fragment
from fragment_check.logger_config import get_logger
from fragment_check.overrides import OverrideTables
from fragment_check.result import (
    Diagnostic,
    Fragment,
    FragmentOutcome,
    PassState,
    Span,
    ValidationReport,
)
from fragment_check.strategies import CheckStrategy

logger = get_logger()


def build_fragment(document: Document, span: Span) -> Fragment:
    """Cut a fragment out of a document and compute its identity."""
    text = document.get_text(span)
    normalized = normalize_fragment(text)
    return Fragment(span=span, text=text, normalized=normalized, identity=cyrb53(normalized))


def collect_fragments(
    document: Document,
    start_delimiter: str = DEFAULT_START_DELIMITER,
    end_delimiter: str = DEFAULT_END_DELIMITER,
) -> Optional[List[Fragment]]:
    """Fragments of a document in order, or None when one is unterminated."""
    lines = [document.line_at(i) for i in range(document.line_count)]
    spans, well_formed = extract_spans(lines, start_delimiter, end_delimiter)
    if not well_formed:
        return None
    return [build_fragment(document, span) for span in spans]


class Validator:
    """
    Validates the fragments of documents against a database.

    The database is reached through an explicitly owned handle so it can be
    swapped between passes. Override tables are passed in per call.
    """

    def __init__(
        self,
        database: DatabaseHandle,
        strategy: CheckStrategy,
        diagnostics: DiagnosticSink,
        start_delimiter: str = DEFAULT_START_DELIMITER,
        end_delimiter: str = DEFAULT_END_DELIMITER,
    ):
        self.database = database
        self.strategy = strategy
        self.diagnostics = diagnostics
        self.start_delimiter = start_delimiter
        self.end_delimiter = end_delimiter
        # Tickets are never reused, even for a uri that was forgotten
        self._tickets = itertools.count(1)
        # Latest pass ticket per document uri
        self._passes: Dict[str, int] = {}

    async def validate(
        self,
        document: Document,
        overrides: Optional[OverrideTables] = None,
    ) -> ValidationReport:
        """
        Run one validation pass and replace the document's diagnostics.

        Diagnostics stay untouched when a fragment is unterminated, when the
        database cannot be reached, or when a newer pass for the same
        document started meanwhile.

        Raises:
            Exception: Anything unexpected; use validate_safely() at trigger sites
        """
        uri = document.uri
        tables = overrides or OverrideTables()

        fragments = collect_fragments(document, self.start_delimiter, self.end_delimiter)
        if fragments is None:
            logger.warning(
                f"Document {uri} is not well formed, some fragments are not terminated"
            )
            return ValidationReport(uri=uri, state=PassState.ABORTED_UNWELL_FORMED)

        ticket = next(self._tickets)
        self._passes[uri] = ticket
        logger.info(f"Detected {len(fragments)} fragments in {uri}")

        results = await asyncio.gather(
            *(self._check(document, fragment, tables) for fragment in fragments),
            return_exceptions=True,
        )

        outcomes: List[FragmentOutcome] = []
        for fragment, result in zip(fragments, results):
            if isinstance(result, DatabaseConnectionError):
                logger.error(f"Validation of {uri} aborted, database unavailable: {result}")
                return ValidationReport(uri=uri, state=PassState.ABORTED_CONNECTION)
            if isinstance(result, BaseException):
                raise result
            outcomes.append(FragmentOutcome(fragment=fragment, error=result))

        if self._passes.get(uri) != ticket:
            logger.info(f"Discarding results of superseded pass {ticket} for {uri}")
            return ValidationReport(uri=uri, state=PassState.SUPERSEDED, outcomes=outcomes)

        diagnostics = [
            Diagnostic.for_fragment(o.fragment, o.error) for o in outcomes if o.error is not None
        ]
        self.diagnostics.set(uri, diagnostics)

        passed = len(outcomes) - len(diagnostics)
        logger.info(f"Fragments correct {passed}/{len(outcomes)} in {uri}")
        return ValidationReport(
            uri=uri,
            state=PassState.REPLACED,
            outcomes=outcomes,
            diagnostics=diagnostics,
        )

    async def validate_safely(
        self,
        document: Document,
        overrides: Optional[OverrideTables] = None,
    ) -> ValidationReport:
        """validate(), but an unexpected error is logged instead of raised."""
        try:
            return await self.validate(document, overrides)
        except Exception:
            logger.exception(f"Validation of {document.uri} failed")
            return ValidationReport(uri=document.uri, state=PassState.FAILED)

    def forget(self, uri: str) -> None:
        """Drop pass bookkeeping for a closed document."""
        self._passes.pop(uri, None)

    async def _check(
        self,
        document: Document,
        fragment: Fragment,
        tables: OverrideTables,
    ):
        parameters = tables.for_fragment(document.relative_path, fragment.identity)
        logger.debug(
            f"Fragment at line {fragment.span.start.line + 1} has hash "
            f"{fragment.identity} for normalized text: {fragment.normalized}"
        )
        return await self.strategy.run(self.database.current, fragment, parameters)
