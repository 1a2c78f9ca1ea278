# -*- coding: utf-8 -*-
"""
Fragment identity: whitespace/case normalization plus the cyrb53 hash.

Override tables written by users are keyed by these numbers, so both the
normalization and the hash must stay bit-for-bit stable:

    normalize_fragment("SELECT *\\n  FROM t")  # "select*fromt"
    fragment_identity("SELECT *\\n  FROM t")   # cyrb53("select*fromt")
"""

from __future__ import annotations

import re
import struct
from typing import Iterator

_MASK32 = 0xFFFFFFFF

# Whitespace as JavaScript regular expressions define it
_WHITESPACE = re.compile(
    r"[\t\n\v\f\r \u00a0\u1680\u2000-\u200a\u2028\u2029\u202f\u205f\u3000\ufeff]"
)


def _imul(a: int, b: int) -> int:
    """32-bit wrapping multiply (low 32 bits are sign-agnostic)."""
    return (a * b) & _MASK32


def _code_units(text: str) -> Iterator[int]:
    """Yield UTF-16 code units, so astral characters count as surrogate pairs."""
    data = text.encode("utf-16-le", "surrogatepass")
    return iter(struct.unpack(f"<{len(data) // 2}H", data))


def cyrb53(text: str, seed: int = 0) -> int:
    """
    53-bit two-lane string hash.

    Args:
        text: String to hash
        seed: Optional seed, reduced to 32 bits

    Returns:
        Unsigned integer below 2**53
    """
    h1 = (0xDEADBEEF ^ seed) & _MASK32
    h2 = (0x41C6CE57 ^ seed) & _MASK32

    for ch in _code_units(text):
        h1 = _imul(h1 ^ ch, 2654435761)
        h2 = _imul(h2 ^ ch, 1597334677)

    h1 = _imul(h1 ^ (h1 >> 16), 2246822507) ^ _imul(h2 ^ (h2 >> 13), 3266489909)
    h2 = _imul(h2 ^ (h2 >> 16), 2246822507) ^ _imul(h1 ^ (h1 >> 13), 3266489909)

    return 4294967296 * (0x1FFFFF & h2) + h1


def normalize_fragment(text: str) -> str:
    """Strip every whitespace and line-break character and lowercase."""
    return _WHITESPACE.sub("", text).lower()


def fragment_identity(text: str) -> int:
    """Identity of a fragment: cyrb53 of its normalized text."""
    return cyrb53(normalize_fragment(text))
