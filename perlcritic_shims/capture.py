r"""
perlcritic_shims/capture.py
═══════════════════════════

Detection of capture variables passed straight into subroutine calls.

In Perl the match variables (``$1``, ``$2`` …, and since 5.10 ``%+`` and
``%-``) are global.  Passing one as an argument passes an alias, so any
regular expression the callee runs overwrites the caller's value::

    if ($line =~ /^(\w+)/) {
        log_word($1);          # flagged: log_word() may clobber $1
        log_word("$1");        # fine: a new string is built
        log_word($1 || 'x');   # flagged: || yields $1 itself
    }

Pipeline
────────
    ┌────────────┐   ┌────────────────┐   ┌──────────────┐   ┌─────────────┐
    │ dispatch   │──▶│ call-site      │──▶│ tree scanner │──▶│ cleanliness │
    │ (by kind)  │   │ resolver       │   │ (classifier) │   │ analyzer    │
    └────────────┘   └────────────────┘   └──────────────┘   └─────────────┘
          │
          └──▶ s///e replacement ──▶ parse_document ──▶ dispatch (recursive)

Everything here is read-only over the tree and raises nothing: failures
to re-parse an ``s///e`` replacement yield no findings.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Dict, FrozenSet, List, Mapping, Optional, Tuple

from perlcritic_shims.document import parse_document
from perlcritic_shims.elements import Element, ElementKind, Node, Structure
from perlcritic_shims.errors import PerlCriticShimsError
from perlcritic_shims.perl_version import PerlVersion
from perlcritic_shims.utils import (
    is_function_call,
    is_method_call,
    is_perl_builtin,
    precedence_of,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  CONSTANTS
# ═══════════════════════════════════════════════════════════════════════════

MINIMUM_NAMED_CAPTURE_VERSION = PerlVersion.parse("5.010")

NAMED_CAPTURE_BUFFERS: FrozenSet[str] = frozenset({"%+", "%-"})

# Operators whose result may be one of their operands, unchanged.
UNCLEAN_OPERATORS: FrozenSet[str] = frozenset({
    "||", "//", "&&", "and", "or", "xor", ",", "=>",
})

# Containers that compute a fresh value from what they enclose.
CLEAN_CONTAINERS: FrozenSet[ElementKind] = frozenset({ElementKind.SUBSCRIPT})

# Tokens that end an argument list written without parentheses.
ARGUMENT_LIST_END: Mapping[ElementKind, FrozenSet[str]] = {
    ElementKind.STRUCTURE: frozenset({";"}),
    ElementKind.OPERATOR: frozenset({"and", "or", "xor"}),
}

# Element kinds the top-level dispatch handles.
APPLIES_TO: FrozenSet[ElementKind] = frozenset({
    ElementKind.WORD,
    ElementKind.REGEXP_SUBSTITUTE,
})

_NUMBERED_CAPTURE_RE = re.compile(r"\A\$(\d+)\Z")


# ═══════════════════════════════════════════════════════════════════════════
#  PART 1 — TREE SCANNER
# ═══════════════════════════════════════════════════════════════════════════

class Interest(Enum):
    """What a scan does with one visited element."""

    INCLUDE = "include"     # collect it and descend
    EXCLUDE = "exclude"     # skip it but descend
    PRUNE = "prune"         # skip it and its subtree


Wanted = Callable[[Element], Interest]
StopPredicate = Callable[[Element], bool]


def scan_from(
    start: Optional[Element],
    wanted: Wanted,
    stop: Optional[StopPredicate] = None,
) -> Tuple[List[Element], Optional[Element]]:
    """
    Pre-order scan of ``start``, its later siblings and their subtrees.

    The queue starts with ``start`` followed by every later sibling
    (whitespace and comments included).  When a node is visited its
    children go to the front of the queue; a structure contributes its
    opening delimiter, its children, then its closing delimiter.

    Returns ``(found, last)``.  ``last`` is the element on which ``stop``
    fired, or ``None`` when it never did.
    """
    found: List[Element] = []
    queue: Deque[Element] = deque()
    sibling = start
    while sibling is not None:
        queue.append(sibling)
        sibling = sibling.next_sibling()

    while queue:
        thing = queue.popleft()
        if stop is not None and stop(thing):
            return found, thing
        interest = wanted(thing)
        if interest is Interest.INCLUDE:
            found.append(thing)
        if interest is Interest.PRUNE or not isinstance(thing, Node):
            continue
        if isinstance(thing, Structure):
            front = [thing.start, *thing.children, thing.finish]
        else:
            front = list(thing.children)
        queue.extendleft(e for e in reversed(front) if e is not None)
    return found, None


# ═══════════════════════════════════════════════════════════════════════════
#  PART 2 — CAPTURE-VARIABLE CLASSIFIERS
# ═══════════════════════════════════════════════════════════════════════════

def is_numbered_capture(elem: Element) -> bool:
    """``$1``, ``$2`` … (``$0`` is the program name)."""
    if elem.kind is not ElementKind.MAGIC:
        return False
    m = _NUMBERED_CAPTURE_RE.match(elem.symbol)
    return m is not None and int(m.group(1)) != 0


def numbered_capture(elem: Element) -> Interest:
    """Classifier for code written before named captures existed."""
    return Interest.INCLUDE if is_numbered_capture(elem) else Interest.EXCLUDE


def any_capture(elem: Element) -> Interest:
    """Classifier for Perl 5.10 and later: numbered plus ``%+``/``%-``."""
    if is_numbered_capture(elem):
        return Interest.INCLUDE
    if elem.kind is ElementKind.MAGIC and elem.symbol in NAMED_CAPTURE_BUFFERS:
        return Interest.INCLUDE
    return Interest.EXCLUDE


def capture_classifier(perl_version: Optional[PerlVersion]) -> Wanted:
    """Pick the classifier for a declared version (``None`` means unknown)."""
    if perl_version is not None and perl_version >= MINIMUM_NAMED_CAPTURE_VERSION:
        return any_capture
    return numbered_capture


def ends_argument_list(elem: Element) -> bool:
    ends = ARGUMENT_LIST_END.get(elem.kind)
    return ends is not None and elem.content in ends


# ═══════════════════════════════════════════════════════════════════════════
#  PART 3 — CLEANLINESS ANALYZER
# ═══════════════════════════════════════════════════════════════════════════

Advance = Callable[[Element], Optional[Element]]


def _previous(elem: Element) -> Optional[Element]:
    return elem.sprevious_sibling()


def _next(elem: Element) -> Optional[Element]:
    return elem.snext_sibling()


def _find_operator(
    elem: Element, advance: Advance, stop: Optional[Element]
) -> Optional[Element]:
    """Next sibling in ``advance`` direction that is ``stop``, an operator or a word."""
    sibling = advance(elem)
    while sibling is not None:
        if sibling is stop:
            return sibling
        if sibling.kind in (ElementKind.OPERATOR, ElementKind.WORD):
            return sibling
        sibling = advance(sibling)
    return None


def _walk_is_dirty(
    elem: Element,
    ceiling: Optional[Element],
    stop: Optional[Element],
    advance: Advance,
    calls_are_clean: bool,
) -> bool:
    check: Optional[Element] = elem
    while check is not None and check is not ceiling:
        if check.kind in CLEAN_CONTAINERS:
            return False
        precedence: Optional[int] = None
        oper = _find_operator(check, advance, stop)
        while oper is not None:
            if oper is stop:
                return True
            if (calls_are_clean and oper.kind is ElementKind.WORD
                    and (is_method_call(oper) or is_function_call(oper))):
                return False
            level = precedence_of(oper)
            if level is not None and (precedence is None or level >= precedence):
                if oper.content not in UNCLEAN_OPERATORS:
                    return False
                precedence = level
            oper = _find_operator(oper, advance, stop)
        check = check.parent
    return True


def is_dirty_left(
    elem: Element, ceiling: Optional[Element], stop: Optional[Element]
) -> bool:
    """Walk leftward; a call word on the left means a separate call owns it."""
    return _walk_is_dirty(elem, ceiling, stop, _previous, calls_are_clean=True)


def is_dirty_right(
    elem: Element, ceiling: Optional[Element], stop: Optional[Element]
) -> bool:
    return _walk_is_dirty(elem, ceiling, stop, _next, calls_are_clean=False)


def is_dirty(
    elem: Element,
    ceiling: Optional[Element] = None,
    stop_left: Optional[Element] = None,
    stop_right: Optional[Element] = None,
) -> bool:
    """
    True when the value of ``elem`` reaches the call unchanged.

    Both directions must be dirty.  An operator that is not in
    :data:`UNCLEAN_OPERATORS` computes a new value and makes the
    occurrence clean, unless it binds more tightly than an unclean
    operator already seen on that side, in which case the unclean
    operator decides.
    """
    return (is_dirty_left(elem, ceiling, stop_left)
            and is_dirty_right(elem, ceiling, stop_right))


# ═══════════════════════════════════════════════════════════════════════════
#  PART 4 — CALL SITES AND RECURSION
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CaptureViolation:
    """A capture variable passed unchanged to a subroutine."""

    variable: str
    subroutine: str


# Populated by the ``@_register`` decorator below.
_HANDLERS: Dict[ElementKind, Callable[[Element, Optional[PerlVersion]],
                                      List[CaptureViolation]]] = {}


def _register(kind: ElementKind):
    """Decorator: register a handler for ``kind`` in :data:`_HANDLERS`."""
    def deco(fn):
        _HANDLERS[kind] = fn
        return fn
    return deco


@_register(ElementKind.WORD)
def _handle_call(
    elem: Element, perl_version: Optional[PerlVersion]
) -> List[CaptureViolation]:
    if not (is_method_call(elem) or is_function_call(elem)):
        return []
    if is_perl_builtin(elem):
        return []
    first = elem.snext_sibling()
    if first is None:
        return []

    ceiling: Optional[Element] = None
    stop_left: Optional[Element] = None
    stop: Optional[StopPredicate] = None
    start: Optional[Element]
    if first.kind is ElementKind.LIST:
        assert isinstance(first, Node)
        ceiling = first
        start = first.child(0)
    else:
        start = first
        stop_left = elem
        stop = ends_argument_list

    found, stop_right = scan_from(start, capture_classifier(perl_version), stop)

    violations = []
    for capture in found:
        if is_dirty(capture, ceiling, stop_left, stop_right):
            violations.append(CaptureViolation(capture.symbol, elem.content))
    return violations


@_register(ElementKind.REGEXP_SUBSTITUTE)
def _handle_substitute(
    elem: Element, perl_version: Optional[PerlVersion]
) -> List[CaptureViolation]:
    """
    Check the replacement of an ``s///e`` as a document of its own.

    Calls and nested substitutions inside the replacement are visited in
    document order, so findings come out in source order regardless of
    which kind of element produced them.
    """
    if "e" not in elem.get_modifiers():
        return []
    code = elem.get_substitute_string()
    try:
        document = parse_document(code, filename="<s///e replacement>")
    except PerlCriticShimsError as exc:
        logger.debug("line %d: replacement not parsed: %s", elem.line, exc)
        return []

    violations: List[CaptureViolation] = []
    for inner in document.find(lambda e: e.kind in APPLIES_TO):
        violations.extend(find_capture_violations(inner, perl_version))
    return violations


def find_capture_violations(
    elem: Optional[Element], perl_version: Optional[PerlVersion] = None
) -> List[CaptureViolation]:
    """
    Capture variables that ``elem`` passes, unchanged, to a subroutine.

    ``elem`` is a call word or an ``s///`` token; anything else yields no
    findings.  ``perl_version`` is the highest version the enclosing
    document declares, or ``None``.
    """
    if elem is None:
        return []
    handler = _HANDLERS.get(elem.kind)
    if handler is None:
        return []
    return handler(elem, perl_version)


__all__ = [
    "MINIMUM_NAMED_CAPTURE_VERSION",
    "NAMED_CAPTURE_BUFFERS",
    "UNCLEAN_OPERATORS",
    "CLEAN_CONTAINERS",
    "ARGUMENT_LIST_END",
    "APPLIES_TO",
    "Interest",
    "scan_from",
    "is_numbered_capture",
    "numbered_capture",
    "any_capture",
    "capture_classifier",
    "ends_argument_list",
    "is_dirty",
    "is_dirty_left",
    "is_dirty_right",
    "CaptureViolation",
    "find_capture_violations",
]
