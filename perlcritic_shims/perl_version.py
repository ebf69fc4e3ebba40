"""
perlcritic_shims/perl_version.py
════════════════════════════════

Perl version values as they appear in ``use VERSION`` statements.

Perl spells the same version several ways::

    use 5.010;          # decimal, three digits per component
    use 5.010_001;      # decimal with underscore separator
    use 5.10.1;         # dotted
    use v5.10;          # v-string

All of them normalise to a ``(revision, version, subversion)`` triple,
which is what comparisons use.
"""

from __future__ import annotations

import re
from functools import total_ordering
from typing import Tuple

_VSTRING_RE = re.compile(r"^v(\d+)(?:\.(\d+))?(?:\.(\d+))?$")
_DOTTED_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")
_DECIMAL_RE = re.compile(r"^(\d+)(?:\.([\d_]*))?$")


@total_ordering
class PerlVersion:
    """An ordered Perl version triple."""

    __slots__ = ("_parts", "_text")

    def __init__(self, revision: int, version: int = 0, subversion: int = 0,
                 text: str = "") -> None:
        self._parts: Tuple[int, int, int] = (revision, version, subversion)
        self._text = text or f"v{revision}.{version}.{subversion}"

    @classmethod
    def parse(cls, text: str) -> "PerlVersion":
        """
        Parse any of Perl's version spellings.

        Raises ``ValueError`` for anything that is not a version.
        """
        raw = text.strip()
        m = _VSTRING_RE.match(raw)
        if m:
            return cls(*(int(g or 0) for g in m.groups()), text=raw)
        m = _DOTTED_RE.match(raw)
        if m:
            return cls(*(int(g) for g in m.groups()), text=raw)
        m = _DECIMAL_RE.match(raw)
        if m:
            revision = int(m.group(1))
            fraction = (m.group(2) or "").replace("_", "")
            # 5.01 is 5.010, 5.0101 is 5.010_100
            fraction = fraction.ljust(6, "0")[:6]
            return cls(revision, int(fraction[:3]), int(fraction[3:]), text=raw)
        raise ValueError(f"not a Perl version: {text!r}")

    @property
    def parts(self) -> Tuple[int, int, int]:
        return self._parts

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PerlVersion):
            return NotImplemented
        return self._parts == other._parts

    def __lt__(self, other: "PerlVersion") -> bool:
        if not isinstance(other, PerlVersion):
            return NotImplemented
        return self._parts < other._parts

    def __hash__(self) -> int:
        return hash(self._parts)

    def __str__(self) -> str:
        return self._text

    def __repr__(self) -> str:
        return "PerlVersion(%d, %d, %d)" % self._parts


__all__ = ["PerlVersion"]
