# -*- coding: utf-8 -*-
"""
Locate delimited query fragments in host source text.

Delimiters are plain substrings, not a grammar: any two distinct literal
tokens work, so the same scanner serves other host languages.

    spans, well_formed = extract_spans(text.splitlines(), "hasql|", "|]")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from fragment_check.result import Span

DEFAULT_START_DELIMITER = "hasql|"
DEFAULT_END_DELIMITER = "|]"


@dataclass
class ExtractionResult:
    """Spans in document order plus whether every fragment was terminated."""

    spans: List[Span] = field(default_factory=list)
    well_formed: bool = True

    def __iter__(self):
        # Allows `spans, well_formed = extract_spans(...)`
        yield self.spans
        yield self.well_formed


def extract_spans(
    lines: Sequence[str],
    start_delimiter: str = DEFAULT_START_DELIMITER,
    end_delimiter: str = DEFAULT_END_DELIMITER,
) -> ExtractionResult:
    """
    Scan lines for start/end delimiter pairs.

    A span starts right after the start delimiter and ends right before the
    end delimiter. Start and end may share a line, and several fragments may
    sit on one line. When input ends inside a fragment the result is not
    well formed; spans closed before that point are still returned.

    Args:
        lines: Document text split into lines (without line terminators)
        start_delimiter: Token opening a fragment
        end_delimiter: Token closing a fragment

    Returns:
        ExtractionResult with non-overlapping spans in line order
    """
    result = ExtractionResult()
    open_at: Optional[tuple[int, int]] = None

    for line_index, line in enumerate(lines):
        column = 0
        while True:
            if open_at is None:
                found = line.find(start_delimiter, column)
                if found == -1:
                    break
                column = found + len(start_delimiter)
                open_at = (line_index, column)

            found = line.find(end_delimiter, column)
            if found == -1:
                break
            result.spans.append(Span.of(open_at[0], open_at[1], line_index, found))
            open_at = None
            column = found + len(end_delimiter)

    result.well_formed = open_at is None
    return result
