"""Diagnostic sinks: where each validation pass publishes its results."""

from typing import Dict, Iterator, List, Protocol, Sequence

from fragment_check.result import Diagnostic


class DiagnosticSink(Protocol):
    """Receives a document's full diagnostic set, replacing the previous one."""

    def set(self, uri: str, diagnostics: Sequence[Diagnostic]) -> None: ...

    def delete(self, uri: str) -> None: ...


class DiagnosticCollection:
    """In-memory diagnostic sink keyed by document uri."""

    def __init__(self, name: str = "fragment_check"):
        self.name = name
        self._entries: Dict[str, List[Diagnostic]] = {}

    def set(self, uri: str, diagnostics: Sequence[Diagnostic]) -> None:
        """Replace (never merge) the diagnostics of a document."""
        self._entries[uri] = list(diagnostics)

    def delete(self, uri: str) -> None:
        self._entries.pop(uri, None)

    def get(self, uri: str) -> List[Diagnostic]:
        return list(self._entries.get(uri, []))

    def has(self, uri: str) -> bool:
        return uri in self._entries

    def uris(self) -> List[str]:
        """Documents that currently hold a diagnostic set (possibly empty)."""
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __iter__(self) -> Iterator[str]:
        return iter(self.uris())

    def __len__(self) -> int:
        return len(self._entries)
