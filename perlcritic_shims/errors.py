# perlcritic_shims/errors.py
"""
Error types for the perlcritic-shims front end.

Architecture Overview:
─────────────────────
┌─────────────────────────────────────────────────────────────────────┐
│                          Error Hierarchy                            │
├─────────────────────────────────────────────────────────────────────┤
│  PerlCriticShimsError (base)                                        │
│  ├── TokenizeError     - source text no token rule accepts          │
│  ├── TreeBuildError    - unbalanced structure delimiters            │
│  └── ConfigError       - bad profile file or option value           │
└─────────────────────────────────────────────────────────────────────┘

Error Codes:
────────────
Each error carries a code of the form PCS-XXXX:
  - 0001-0999: Lexical errors
  - 1000-1999: Tree construction errors
  - 2000-2999: Configuration errors

The capture-variable analysis itself never raises.  Only the source
model and the command-line layer produce these errors; the analysis
catches them where it re-parses the code of an ``s///e`` replacement.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique
from typing import Any, Optional


# ═══════════════════════════════════════════════════════════════════════════
#  ERROR PHASES AND CODES
# ═══════════════════════════════════════════════════════════════════════════

@unique
class ErrorPhase(Enum):
    """Front-end phase in which the error occurred."""

    LEXICAL = "lexical"        # Tokenization
    TREE = "tree"              # Element tree construction
    CONFIG = "config"          # Profile / option handling


class ErrorCode:
    """
    Structured error code: ``PCS-NNNN``.

    Compares equal to its string form so tests and callers can write
    ``err.code == "PCS-0001"``.
    """

    __slots__ = ("prefix", "number", "phase", "title")

    def __init__(self, number: int, phase: ErrorPhase, title: str,
                 prefix: str = "PCS") -> None:
        self.prefix = prefix
        self.number = number
        self.phase = phase
        self.title = title

    @property
    def code(self) -> str:
        return f"{self.prefix}-{self.number:04d}"

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"ErrorCode({self.code!r}, {self.title!r})"

    def __hash__(self) -> int:
        return hash((self.prefix, self.number))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ErrorCode):
            return self.prefix == other.prefix and self.number == other.number
        if isinstance(other, str):
            return self.code == other
        return False


class ErrorCodes:
    """Predefined error codes."""

    # ── Lexical (0001-0999) ─────────────────────────────────────────────
    UNRECOGNIZED_INPUT = ErrorCode(1, ErrorPhase.LEXICAL, "unrecognized input")
    UNTERMINATED_HEREDOC = ErrorCode(2, ErrorPhase.LEXICAL, "unterminated here-document")

    # ── Tree (1000-1999) ────────────────────────────────────────────────
    UNBALANCED_CLOSER = ErrorCode(1000, ErrorPhase.TREE, "unbalanced closing delimiter")
    MISMATCHED_CLOSER = ErrorCode(1001, ErrorPhase.TREE, "mismatched closing delimiter")

    # ── Config (2000-2999) ──────────────────────────────────────────────
    BAD_PROFILE = ErrorCode(2000, ErrorPhase.CONFIG, "unreadable profile")
    BAD_OPTION = ErrorCode(2001, ErrorPhase.CONFIG, "invalid option value")
    INTERNAL = ErrorCode(9000, ErrorPhase.CONFIG, "internal error")


@dataclass(frozen=True)
class SourceSpan:
    """A position in a source file (1-based line and column)."""

    file: str = ""
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        if self.column:
            return f"{self.file}:{self.line}:{self.column}"
        return f"{self.file}:{self.line}"


# ═══════════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ═══════════════════════════════════════════════════════════════════════════

class PerlCriticShimsError(Exception):
    """
    Base exception for all perlcritic-shims errors.

    Carries an :class:`ErrorCode` and an optional :class:`SourceSpan`.
    """

    default_code: ErrorCode = ErrorCodes.INTERNAL

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        span: Optional[SourceSpan] = None,
        hint: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.span = span or SourceSpan()
        self.hint = hint

    def to_gcc_format(self) -> str:
        """``file:line:col: error: message [PCS-NNNN]``"""
        text = f"{self.span}: error: {self.message} [{self.code}]"
        if self.hint:
            text += f"\n  hint: {self.hint}"
        return text

    def __str__(self) -> str:
        if self.span.line:
            return self.to_gcc_format()
        return f"{self.message} [{self.code}]"


class TokenizeError(PerlCriticShimsError):
    """Source text that no token rule accepts."""

    default_code = ErrorCodes.UNRECOGNIZED_INPUT

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        span: Optional[SourceSpan] = None,
        snippet: str = "",
        **kwargs: Any,
    ) -> None:
        super().__init__(message, code=code, span=span, **kwargs)
        self.snippet = snippet


class TreeBuildError(PerlCriticShimsError):
    """Structure delimiters that do not balance."""

    default_code = ErrorCodes.UNBALANCED_CLOSER


class ConfigError(PerlCriticShimsError):
    """Profile file or command-line option that cannot be honoured."""

    default_code = ErrorCodes.BAD_OPTION


__all__ = [
    "ErrorPhase",
    "ErrorCode",
    "ErrorCodes",
    "SourceSpan",
    "PerlCriticShimsError",
    "TokenizeError",
    "TreeBuildError",
    "ConfigError",
]
