"""
perlcritic_shims/checkers.py
════════════════════════════

Policy framework for Perl documents: diagnostics, ``## no critic``
suppressions, a registry, a runner, and the built-in policies.

Architecture
────────────

  ┌─────────────────────────────────────────────────────────┐
  │                   CheckerRunner                         │
  │  ┌──────────────────────────────────────────────────┐   │
  │  │ policy selection: severity ≥ minimum, themes,    │   │
  │  │ --include / --exclude, profile overrides         │   │
  │  └──────────────────────┬───────────────────────────┘   │
  │                         │                               │
  │  ┌──────────────────────▼───────────────────────────┐   │
  │  │  for each policy: prepare_to_scan_document()     │   │
  │  │  then violates(elem) for every elem whose kind   │   │
  │  │  is in policy.applies_to                         │   │
  │  └──────────────────────┬───────────────────────────┘   │
  │                         │                               │
  │  ┌──────────────────────▼───────────────────────────┐   │
  │  │           SuppressionManager                     │   │
  │  │  ## no critic │ file-level │ global              │   │
  │  └──────────────────────┬───────────────────────────┘   │
  │                         │                               │
  │  ┌──────────────────────▼───────────────────────────┐   │
  │  │  Diagnostic formatter (verbose / gcc / JSON)     │   │
  │  └──────────────────────────────────────────────────┘   │
  └─────────────────────────────────────────────────────────┘

Severities use Perl::Critic's numbering: 5 is the most severe and 1 the
least.  A run at minimum severity N loads the policies whose severity is
N or higher, so "gentle" (5) reports the least and "brutal" (1) everything.
"""

from __future__ import annotations

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from enum import IntEnum
from fnmatch import fnmatch
from typing import (
    Any,
    ClassVar,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
    Type,
    Union,
)

from perlcritic_shims.capture import APPLIES_TO, find_capture_violations
from perlcritic_shims.elements import Document, Element, ElementKind

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — DIAGNOSTIC MODEL
# ═════════════════════════════════════════════════════════════════════════

class Severity(IntEnum):
    """
    Perl::Critic severity levels, 5 being the most severe.

    Member names are the mode names Perl::Critic gives each threshold.
    """
    GENTLE = 5
    STERN = 4
    HARSH = 3
    CRUEL = 2
    BRUTAL = 1

    @classmethod
    def parse(cls, value: Union[str, int, "Severity"]) -> "Severity":
        """Accept ``3``, ``"3"``, ``"harsh"`` or a member."""
        if isinstance(value, Severity):
            return value
        if isinstance(value, int):
            return cls(value)
        text = value.strip()
        if text.isdigit():
            return cls(int(text))
        try:
            return cls[text.upper()]
        except KeyError:
            raise ValueError(f"unknown severity {value!r}") from None


SEVERITY_HIGH = Severity.STERN

VERBOSE_FORMAT = "%m at line %l, column %c.  %e.  (Severity: %s)"


@dataclass(frozen=True)
class SourceLocation:
    """A specific point in source code."""
    file: str = ""
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        if self.column:
            return f"{self.file}:{self.line}:{self.column}"
        return f"{self.file}:{self.line}"


@dataclass(frozen=True)
class Diagnostic:
    """
    A single policy violation.

    Attributes
    ----------
    policy       : Policy name (e.g., "Subroutines::ProhibitPassingCaptureVariable")
    message      : Short description of what is wrong
    explanation  : Why it is wrong
    severity     : Severity of the producing policy
    location     : Primary source location
    source       : Text of the offending source line
    evidence     : Machine-readable details for downstream tooling
    """
    policy: str
    message: str
    explanation: str
    severity: Severity
    location: SourceLocation
    source: str = ""
    evidence: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "file": self.location.file,
            "line": self.location.line,
            "column": self.location.column,
            "severity": int(self.severity),
            "policy": self.policy,
            "message": self.message,
            "explanation": self.explanation,
            "source": self.source,
        }
        if self.evidence:
            result["evidence"] = dict(self.evidence)
        return result

    def to_json_str(self) -> str:
        """Single-line JSON object."""
        return json.dumps(self.to_dict())

    def to_gcc_format(self) -> str:
        """GCC-style diagnostic string: file:line:col: severity N: message."""
        return (f"{self.location}: severity {int(self.severity)}: "
                f"{self.message} [{self.policy}]")

    def to_verbose(self, template: str = VERBOSE_FORMAT) -> str:
        """
        Expand a Perl::Critic ``--verbose`` template.

        ``%f`` file, ``%l`` line, ``%c`` column, ``%m`` message,
        ``%e`` explanation, ``%s`` severity, ``%p`` policy, ``%r`` source
        line, ``%%`` a literal percent sign.
        """
        fields = {
            "f": self.location.file,
            "l": str(self.location.line),
            "c": str(self.location.column),
            "m": self.message,
            "e": self.explanation,
            "s": str(int(self.severity)),
            "p": self.policy,
            "r": self.source,
            "%": "%",
        }
        return re.sub(r"%([flcmespr%])", lambda m: fields[m.group(1)], template)


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — SUPPRESSION MANAGER
# ═════════════════════════════════════════════════════════════════════════

_NO_CRITIC_RE = re.compile(
    r"""^\#\#\s*no\s+critic\b
        (?:\s*(?:qw)?\s*[(\[{<"']\s*(?P<names>[^)\]}>"']*))?""",
    re.VERBOSE,
)
_USE_CRITIC_RE = re.compile(r"^##\s*use\s+critic\b")

_TO_END_OF_FILE = 10 ** 9


@dataclass(frozen=True)
class _Region:
    first_line: int
    last_line: int
    names: FrozenSet[str] = frozenset()

    def covers(self, diag: Diagnostic) -> bool:
        if not self.first_line <= diag.location.line <= self.last_line:
            return False
        if not self.names:
            return True
        return any(re.search(re.escape(name), diag.policy, re.IGNORECASE)
                   for name in self.names)


class SuppressionManager:
    """
    Manages diagnostic suppressions from multiple sources.

    Sources:
      1. Annotations in the source:

         * ``## no critic`` after code on a line silences that line;
         * ``## no critic`` alone on a line silences everything up to the
           next ``## use critic`` (or the end of the file);
         * ``## no critic (Name, Other)`` limits either form to policies
           whose names contain one of the given strings.

      2. File-level suppressions (passed programmatically)
      3. Global suppressions (command-line or profile)

    Usage
    -----
    >>> sm = SuppressionManager()
    >>> sm.load_annotations(document)
    >>> sm.add_global_suppression("Subroutines::ProhibitPassingCaptureVariable")
    >>> kept = sm.filter_diagnostics(diagnostics)
    """

    def __init__(self) -> None:
        # file → annotated regions
        self._regions: Dict[str, List[_Region]] = defaultdict(list)
        # file pattern → set of policy names
        self._file_level: Dict[str, Set[str]] = defaultdict(set)
        # globally suppressed policy names
        self._global: Set[str] = set()

    def load_annotations(self, document: Document) -> None:
        """Scan the comments of ``document`` for ``## no critic`` markers."""
        filename = document.filename
        regions: List[_Region] = []
        open_region: Optional[Tuple[int, FrozenSet[str]]] = None

        for comment in document.find(ElementKind.COMMENT):
            text = comment.content
            line = comment.line
            if _USE_CRITIC_RE.match(text):
                if open_region is not None:
                    start, names = open_region
                    regions.append(_Region(start, line, names))
                    open_region = None
                continue
            m = _NO_CRITIC_RE.match(text)
            if m is None:
                continue
            names = frozenset(
                n for n in re.split(r"[\s,]+", m.group("names") or "") if n
            )
            before = document.source_line(line)[:max(comment.column - 1, 0)]
            if before.strip():
                regions.append(_Region(line, line, names))
            elif open_region is None:
                open_region = (line, names)

        if open_region is not None:
            start, names = open_region
            regions.append(_Region(start, _TO_END_OF_FILE, names))
        self._regions[filename] = regions
        if regions:
            logger.debug("%s: %d suppression region(s)", filename, len(regions))

    def add_file_suppression(self, policy: str, file_pattern: str) -> None:
        """Suppress ``policy`` in files matching ``file_pattern``."""
        self._file_level[file_pattern].add(policy)

    def add_global_suppression(self, policy: str) -> None:
        """Globally suppress ``policy``."""
        self._global.add(policy)

    def is_suppressed(self, diag: Diagnostic) -> bool:
        """Check whether a diagnostic should be suppressed."""
        policy = diag.policy

        # Global
        if policy in self._global or "*" in self._global:
            return True

        loc = diag.location

        # Annotations
        for region in self._regions.get(loc.file, ()):
            if region.covers(diag):
                return True

        # File-level
        for pattern, names in self._file_level.items():
            if policy in names or "*" in names:
                if pattern == loc.file or loc.file.endswith(pattern):
                    return True
                if fnmatch(loc.file, pattern):
                    return True

        return False

    def filter_diagnostics(
        self, diagnostics: Iterable[Diagnostic]
    ) -> List[Diagnostic]:
        """Return only non-suppressed diagnostics."""
        return [d for d in diagnostics if not self.is_suppressed(d)]


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — CHECKER BASE CLASS
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class CheckerContext:
    """
    Shared context passed to every checker while it scans one document.

    Attributes
    ----------
    document     : The parsed document
    suppressions : SuppressionManager
    options      : Per-policy options from the profile, keyed by policy name
    """
    document: Document
    suppressions: SuppressionManager = field(default_factory=SuppressionManager)
    options: Dict[str, Dict[str, str]] = field(default_factory=dict)


class Checker(ABC):
    """
    Abstract base class for all policies.

    Lifecycle
    ─────────
      1. ``prepare_to_scan_document(ctx)`` — per-document setup; return
         False to skip the document
      2. ``violates(elem, ctx)`` — called for every element whose kind is
         in ``applies_to``; returns diagnostics

    Subclass Contract
    ─────────────────
      - Override ``name``, ``description``, ``explanation``,
        ``default_severity``, ``default_themes`` and ``applies_to``
      - Implement ``violates()``
    """

    # ── Metadata (override in subclasses) ────────────────────────────

    name: ClassVar[str] = "base-checker"
    description: ClassVar[str] = ""
    explanation: ClassVar[str] = ""
    default_severity: ClassVar[Severity] = Severity.GENTLE
    default_themes: ClassVar[FrozenSet[str]] = frozenset()
    applies_to: ClassVar[FrozenSet[ElementKind]] = frozenset()

    def __init__(
        self,
        severity: Optional[Severity] = None,
        themes: Optional[Iterable[str]] = None,
    ) -> None:
        self.severity: Severity = severity or self.default_severity
        self.themes: FrozenSet[str] = (
            frozenset(themes) if themes is not None else self.default_themes
        )

    def prepare_to_scan_document(self, ctx: CheckerContext) -> bool:
        """Default: scan every document."""
        return True

    @abstractmethod
    def violates(self, elem: Element, ctx: CheckerContext) -> List[Diagnostic]:
        ...

    def _emit(
        self,
        message: str,
        elem: Element,
        ctx: CheckerContext,
        explanation: Optional[str] = None,
        evidence: Optional[Dict[str, Any]] = None,
    ) -> Diagnostic:
        """Helper to build a diagnostic located at ``elem``."""
        document = ctx.document
        return Diagnostic(
            policy=self.name,
            message=message,
            explanation=explanation if explanation is not None else self.explanation,
            severity=self.severity,
            location=SourceLocation(file=document.filename, line=elem.line,
                                    column=elem.column),
            source=document.source_line(elem.line),
            evidence=evidence or {},
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} '{self.name}'>"


# ═════════════════════════════════════════════════════════════════════════
#  PART 4 — CHECKER REGISTRY
# ═════════════════════════════════════════════════════════════════════════

class CheckerRegistry:
    """
    Registry of available policies with discovery and filtering.

    Usage
    -----
    >>> registry = CheckerRegistry()
    >>> registry.register(ProhibitPassingCaptureVariable)
    >>> checkers = registry.get_enabled()
    >>> checkers = registry.filter_by_theme("bugs")
    """

    def __init__(self) -> None:
        self._checkers: Dict[str, Type[Checker]] = {}
        self._disabled: Set[str] = set()

    def register(self, checker_cls: Type[Checker]) -> None:
        """Register a checker class."""
        self._checkers[checker_cls.name] = checker_cls

    def unregister(self, name: str) -> None:
        """Remove a checker by name."""
        self._checkers.pop(name, None)

    def disable(self, name: str) -> None:
        """Disable a registered checker."""
        self._disabled.add(name)

    def enable(self, name: str) -> None:
        """Re-enable a disabled checker."""
        self._disabled.discard(name)

    def get_all(self) -> List[Type[Checker]]:
        """Return all registered checker classes."""
        return list(self._checkers.values())

    def get_enabled(self) -> List[Type[Checker]]:
        """Return only enabled checker classes."""
        return [
            cls for name, cls in self._checkers.items()
            if name not in self._disabled
        ]

    def get_by_name(self, name: str) -> Optional[Type[Checker]]:
        return self._checkers.get(name)

    def filter_by_theme(self, theme: str) -> List[Type[Checker]]:
        """Return checkers that carry ``theme`` by default."""
        return [
            cls for cls in self._checkers.values()
            if theme in cls.default_themes
        ]

    def filter_by_severity(self, minimum: Severity) -> List[Type[Checker]]:
        """Return checkers whose default severity is ``minimum`` or more severe."""
        return [
            cls for cls in self._checkers.values()
            if cls.default_severity >= minimum
        ]

    @property
    def names(self) -> List[str]:
        return sorted(self._checkers.keys())


# ═════════════════════════════════════════════════════════════════════════
#  PART 5 — POLICIES
# ═════════════════════════════════════════════════════════════════════════

# ─────────────────────────────────────────────────────────────────────────
#  5.1  Subroutines::ProhibitPassingCaptureVariable
# ─────────────────────────────────────────────────────────────────────────

class ProhibitPassingCaptureVariable(Checker):
    """
    Flags ``$1``, ``%+`` and friends passed straight to a subroutine.

    The capture variables are aliased into ``@_``, so a regular
    expression run by the callee changes them under the caller.  Copying
    them first (``"$1"``, ``$1 . ''``, ``my $word = $1``) avoids it.
    Substitutions with ``/e`` are checked inside their replacement code.
    """

    name: ClassVar[str] = "Subroutines::ProhibitPassingCaptureVariable"
    description: ClassVar[str] = "Do not pass capture variables as parameters"
    explanation: ClassVar[str] = (
        "Any regular expression in the subroutine will modify the caller's copy"
    )
    default_severity: ClassVar[Severity] = SEVERITY_HIGH
    default_themes: ClassVar[FrozenSet[str]] = frozenset({"core", "bugs"})
    applies_to: ClassVar[FrozenSet[ElementKind]] = APPLIES_TO

    MESSAGE: ClassVar[str] = 'Capture variable "%s" passed to subroutine "%s"'

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._perl_version = None

    def prepare_to_scan_document(self, ctx: CheckerContext) -> bool:
        self._perl_version = ctx.document.highest_explicit_perl_version()
        return True

    def violates(self, elem: Element, ctx: CheckerContext) -> List[Diagnostic]:
        return [
            self._emit(
                self.MESSAGE % (v.variable, v.subroutine), elem, ctx,
                evidence={"variable": v.variable, "subroutine": v.subroutine},
            )
            for v in find_capture_violations(elem, self._perl_version)
        ]


# ═════════════════════════════════════════════════════════════════════════
#  PART 6 — CHECKER RUNNER
# ═════════════════════════════════════════════════════════════════════════

# Default registry with all built-in policies
_DEFAULT_REGISTRY = CheckerRegistry()
_DEFAULT_REGISTRY.register(ProhibitPassingCaptureVariable)


def default_registry() -> CheckerRegistry:
    return _DEFAULT_REGISTRY


@dataclass
class CheckerRunResults:
    """
    Aggregate results from running a suite of policies.

    Attributes
    ----------
    diagnostics            : All diagnostics from all policies
    diagnostics_by_checker : Diagnostics grouped by policy name
    stats                  : Timing and counting statistics
    checker_names          : Names of policies that were run
    files                  : Documents that were checked
    """
    diagnostics: List[Diagnostic] = field(default_factory=list)
    diagnostics_by_checker: Dict[str, List[Diagnostic]] = field(
        default_factory=lambda: defaultdict(list)
    )
    stats: Dict[str, Any] = field(default_factory=dict)
    checker_names: List[str] = field(default_factory=list)
    files: List[str] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        return len(self.diagnostics)

    def by_severity(self, severity: Severity) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == severity]

    def by_policy(self, policy: str) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.policy == policy]

    def by_file(self, file: str) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.location.file == file]

    def merge(self, other: "CheckerRunResults") -> None:
        """Fold the results of another run into this one."""
        self.diagnostics.extend(other.diagnostics)
        for name, diags in other.diagnostics_by_checker.items():
            self.diagnostics_by_checker[name].extend(diags)
        for key, val in other.stats.items():
            # Accumulate times
            self.stats[key] = self.stats.get(key, 0) + val
        for name in other.checker_names:
            if name not in self.checker_names:
                self.checker_names.append(name)
        self.files.extend(other.files)

    def to_json_lines(self) -> str:
        """One JSON object per diagnostic."""
        return "\n".join(d.to_json_str() for d in self.diagnostics)

    def to_gcc_format(self) -> str:
        """Format all diagnostics in GCC-style."""
        return "\n".join(d.to_gcc_format() for d in self.diagnostics)

    def to_verbose(self, template: str = VERBOSE_FORMAT) -> str:
        return "\n".join(d.to_verbose(template) for d in self.diagnostics)

    def summary(self) -> str:
        """Human-readable summary."""
        lines = [
            f"{len(self.files)} file(s) checked: {self.total_count} violation(s)",
        ]
        for severity in Severity:
            count = len(self.by_severity(severity))
            if count:
                lines.append(f"  severity {int(severity)}: {count}")
        for name in self.checker_names:
            count = len(self.diagnostics_by_checker.get(name, []))
            elapsed = self.stats.get(f"{name}_elapsed_ms", 0)
            lines.append(f"  {name}: {count} findings ({elapsed:.1f}ms)")
        return "\n".join(lines)


def _matches_any(name: str, patterns: Iterable[str]) -> bool:
    return any(re.search(re.escape(p), name, re.IGNORECASE) for p in patterns)


class CheckerRunner:
    """
    Runs the selected policies against parsed documents.

    Usage
    -----
    >>> runner = CheckerRunner(severity=Severity.STERN)
    >>> results = runner.run(parse_document(source, "lib/Foo.pm"))
    >>> print(results.summary())

    Parameters for constructor
    ─────────────────────────
    registry           : CheckerRegistry — source of policy classes
    suppressions       : SuppressionManager — pre-loaded suppression rules
    options            : per-policy option dicts (from the profile)
    severity           : minimum severity to load
    themes             : load only policies carrying one of these themes
    include / exclude  : policy-name substrings forced in / out
    severity_overrides : policy name → severity (from the profile)
    """

    def __init__(
        self,
        registry: Optional[CheckerRegistry] = None,
        suppressions: Optional[SuppressionManager] = None,
        options: Optional[Dict[str, Dict[str, str]]] = None,
        severity: Severity = Severity.STERN,
        themes: Iterable[str] = (),
        include: Sequence[str] = (),
        exclude: Sequence[str] = (),
        severity_overrides: Optional[Mapping[str, Severity]] = None,
    ) -> None:
        self.registry = registry or _DEFAULT_REGISTRY
        self.suppressions = suppressions or SuppressionManager()
        self.options = options or {}
        self.severity = severity
        self.themes = frozenset(themes)
        self.include = tuple(include)
        self.exclude = tuple(exclude)
        self.severity_overrides = dict(severity_overrides or {})

    def select(self) -> List[Checker]:
        """Instantiate the policies this run applies."""
        selected: List[Checker] = []
        for cls in self.registry.get_enabled():
            checker = cls(severity=self.severity_overrides.get(cls.name))
            if _matches_any(cls.name, self.include):
                selected.append(checker)
                continue
            if _matches_any(cls.name, self.exclude):
                continue
            if checker.severity < self.severity:
                continue
            if self.themes and not (checker.themes & self.themes):
                continue
            selected.append(checker)
        logger.debug("selected policies: %s", [c.name for c in selected])
        return selected

    def run(self, document: Document) -> CheckerRunResults:
        """Run the selected policies against a single document."""
        results = CheckerRunResults()
        results.files.append(document.filename)

        self.suppressions.load_annotations(document)
        ctx = CheckerContext(
            document=document,
            suppressions=self.suppressions,
            options=self.options,
        )

        for checker in self.select():
            checker_name = checker.name
            results.checker_names.append(checker_name)

            t0 = time.monotonic()
            try:
                diags: List[Diagnostic] = []
                if checker.prepare_to_scan_document(ctx):
                    kinds = checker.applies_to
                    for elem in document.find(lambda e: e.kind in kinds):
                        diags.extend(checker.violates(elem, ctx))
                diags = self.suppressions.filter_diagnostics(diags)
            except Exception as exc:
                # Graceful degradation: report the failure, don't crash
                logger.warning("%s: policy %s failed: %s",
                               document.filename, checker_name, exc)
                diags = [Diagnostic(
                    policy="internalError",
                    message=f"Policy '{checker_name}' failed: {exc}",
                    explanation="",
                    severity=checker.severity,
                    location=SourceLocation(file=document.filename),
                )]
            elapsed_ms = (time.monotonic() - t0) * 1000.0

            results.diagnostics.extend(diags)
            results.diagnostics_by_checker[checker_name] = diags
            results.stats[f"{checker_name}_elapsed_ms"] = elapsed_ms

        results.diagnostics.sort(
            key=lambda d: (d.location.file, d.location.line, d.location.column)
        )
        return results


# ═════════════════════════════════════════════════════════════════════════
#  PART 7 — PUBLIC API
# ═════════════════════════════════════════════════════════════════════════

__all__ = [
    # Diagnostic model
    "Severity",
    "SEVERITY_HIGH",
    "VERBOSE_FORMAT",
    "SourceLocation",
    "Diagnostic",
    # Suppression
    "SuppressionManager",
    # Checker framework
    "Checker",
    "CheckerContext",
    "CheckerRegistry",
    "default_registry",
    # Policies
    "ProhibitPassingCaptureVariable",
    # Runner
    "CheckerRunner",
    "CheckerRunResults",
]
