"""
Host documents: line-indexed text with a workspace-relative identity.

Example usage:
    >>> doc = TextDocument.from_path("src/Users.hs", workspace=".")
    >>> doc.relative_path, doc.language_id
    ('src/Users.hs', 'haskell')
"""

import os
import re
from pathlib import Path
from typing import List, Optional, Protocol, Union

from fragment_check.result import Span

_LINE_BREAK = re.compile(r"\r\n|\r|\n")

LANGUAGE_BY_SUFFIX = {
    ".hs": "haskell",
    ".lhs": "haskell",
}


class Document(Protocol):
    """What the validator needs from a host document."""

    @property
    def uri(self) -> str: ...

    @property
    def relative_path(self) -> str: ...

    @property
    def language_id(self) -> str: ...

    @property
    def line_count(self) -> int: ...

    def line_at(self, index: int) -> str: ...

    def get_text(self, span: Span) -> str: ...


def language_for(path: Path) -> str:
    """Language tag for a file name, from its suffix."""
    suffix = path.suffix.lower()
    return LANGUAGE_BY_SUFFIX.get(suffix, suffix.lstrip(".") or "plaintext")


class TextDocument:
    """An immutable snapshot of a document's text."""

    def __init__(
        self,
        text: str,
        path: Union[str, Path],
        workspace: Optional[Union[str, Path]] = None,
        language_id: Optional[str] = None,
    ):
        self.text = text
        self.path = Path(path)
        self.workspace = Path(workspace) if workspace is not None else None
        self._language_id = language_id or language_for(self.path)
        self._lines: List[str] = _LINE_BREAK.split(text)

    @classmethod
    def from_path(
        cls,
        path: Union[str, Path],
        workspace: Optional[Union[str, Path]] = None,
    ) -> "TextDocument":
        """Read a UTF-8 file from disk."""
        with open(path, "r", encoding="utf-8", newline="") as f:
            return cls(f.read(), path, workspace=workspace)

    @property
    def uri(self) -> str:
        return self.path.resolve().as_posix()

    @property
    def relative_path(self) -> str:
        """Path relative to the workspace; the absolute path when outside it."""
        if self.workspace is None:
            return self.path.as_posix()
        absolute = self.path.resolve()
        root = self.workspace.resolve()
        try:
            return absolute.relative_to(root).as_posix()
        except ValueError:
            return absolute.as_posix()

    @property
    def language_id(self) -> str:
        return self._language_id

    @property
    def lines(self) -> List[str]:
        return list(self._lines)

    @property
    def line_count(self) -> int:
        return len(self._lines)

    def line_at(self, index: int) -> str:
        return self._lines[index]

    def get_text(self, span: Span) -> str:
        """Text between two positions, lines joined with \\n."""
        start, end = span.start, span.end
        if start.line == end.line:
            return self._lines[start.line][start.character : end.character]

        parts = [self._lines[start.line][start.character :]]
        parts.extend(self._lines[start.line + 1 : end.line])
        parts.append(self._lines[end.line][: end.character])
        return "\n".join(parts)

    def __repr__(self) -> str:
        return f"TextDocument({os.fspath(self.path)!r}, lines={self.line_count})"
