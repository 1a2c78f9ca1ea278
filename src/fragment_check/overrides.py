# -*- coding: utf-8 -*-
"""
User-authored parameter overrides.

The table is a nested mapping, stored as JSON:

    {
      "typeCasts":     {"src/Users.hs": {"1147568695465191": {"2": "boolean"}}},
      "defaultValues": {"src/Users.hs": {"8222838396430377": {"1": 42}}}
    }

Levels are: workspace-relative file path → fragment identity (decimal string
or number) → 1-based parameter index → type name / default value. Lookups
are permissive: anything missing or oddly shaped simply yields nothing.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, Mapping, Optional, Union

from fragment_check.logger_config import get_logger

TYPE_CASTS_KEY = "typeCasts"
DEFAULT_VALUES_KEY = "defaultValues"
OVERRIDE_KEYS = frozenset({TYPE_CASTS_KEY, DEFAULT_VALUES_KEY})

logger = get_logger()


def _parameter_index(key: Any) -> Optional[int]:
    if isinstance(key, bool):
        return None
    if isinstance(key, int):
        index = key
    elif isinstance(key, str) and key.strip().isdigit():
        index = int(key)
    else:
        return None
    return index if index >= 1 else None


def resolve(table: Any, relative_path: str, identity: int) -> Dict[int, Any]:
    """
    Overrides for one fragment of one file.

    Args:
        table: path → identity → parameter index → value
        relative_path: Workspace-relative path of the document
        identity: Fragment identity

    Returns:
        A fresh ``{parameter_index: value}`` dict, empty when nothing applies
    """
    if not isinstance(table, Mapping):
        return {}
    by_identity = table.get(relative_path)
    if not isinstance(by_identity, Mapping):
        return {}

    by_index = by_identity.get(str(identity))
    if by_index is None:
        by_index = by_identity.get(identity)
    if not isinstance(by_index, Mapping):
        return {}

    resolved: Dict[int, Any] = {}
    for key, value in by_index.items():
        index = _parameter_index(key)
        if index is not None:
            resolved[index] = value
    return resolved


@dataclass(frozen=True)
class ParameterOverrides:
    """Type casts and default values for the parameters of one fragment."""

    type_casts: Dict[int, str] = field(default_factory=dict)
    default_values: Dict[int, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.type_casts or self.default_values)


@dataclass(frozen=True)
class OverrideTables:
    """Snapshot of both override tables, versioned by the store that read them."""

    type_casts: Mapping[str, Any] = field(default_factory=dict)
    default_values: Mapping[str, Any] = field(default_factory=dict)
    version: int = 0

    @classmethod
    def from_mapping(cls, data: Any, version: int = 0) -> "OverrideTables":
        if not isinstance(data, Mapping):
            return cls(version=version)
        type_casts = data.get(TYPE_CASTS_KEY)
        default_values = data.get(DEFAULT_VALUES_KEY)
        return cls(
            type_casts=type_casts if isinstance(type_casts, Mapping) else {},
            default_values=default_values if isinstance(default_values, Mapping) else {},
            version=version,
        )

    def for_fragment(self, relative_path: str, identity: int) -> ParameterOverrides:
        """Resolve both tables for one fragment."""
        type_casts = {
            index: value
            for index, value in resolve(self.type_casts, relative_path, identity).items()
            if isinstance(value, str) and value.strip()
        }
        return ParameterOverrides(
            type_casts=type_casts,
            default_values=resolve(self.default_values, relative_path, identity),
        )


class OverrideStore:
    """
    Override tables backed by a JSON file.

    ``refresh()`` re-reads the file when its modification time changes and
    reports which top-level keys changed; callers compare snapshot versions
    or react to the returned keys.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path is not None else None
        self._mtime: Optional[float] = None
        self._snapshot = OverrideTables()
        self.refresh()

    def snapshot(self) -> OverrideTables:
        """Current tables; never mutated in place."""
        return self._snapshot

    def refresh(self) -> FrozenSet[str]:
        """Reload if the file changed; return the override keys whose content changed."""
        mtime = self._current_mtime()
        if mtime == self._mtime:
            return frozenset()
        self._mtime = mtime
        return self.replace(self._read())

    def replace(self, data: Any) -> FrozenSet[str]:
        """Install new table content, as a configuration change notification would."""
        previous = self._snapshot
        current = OverrideTables.from_mapping(data, version=previous.version + 1)

        changed = set()
        if current.type_casts != previous.type_casts:
            changed.add(TYPE_CASTS_KEY)
        if current.default_values != previous.default_values:
            changed.add(DEFAULT_VALUES_KEY)

        if changed:
            self._snapshot = current
            logger.info(f"Override tables reloaded, changed: {', '.join(sorted(changed))}")
        return frozenset(changed)

    def _current_mtime(self) -> Optional[float]:
        if self.path is None:
            return None
        try:
            return self.path.stat().st_mtime
        except FileNotFoundError:
            return None

    def _read(self) -> Any:
        if self.path is None or not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to read override file {self.path}: {e}")
            return {}
