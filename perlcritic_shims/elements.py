"""
perlcritic_shims/elements.py
════════════════════════════

The element tree for Perl source, modelled on PPI.

    ┌──────────────────────────────────────────────────────────────┐
    │  Document                                                    │
    │   └── Statement (plain / Expression / Include / Package /    │
    │        │          Sub / Compound / Null)                     │
    │        ├── Token  (Word, Symbol, Magic, Operator, Quote …)   │
    │        └── Structure (List / Condition / For / Subscript /   │
    │              │         Constructor / Block)                  │
    │              ├── start  ── opening delimiter (not a child)   │
    │              ├── children                                    │
    │              └── finish ── closing delimiter (not a child)   │
    └──────────────────────────────────────────────────────────────┘

Every element carries a closed :class:`ElementKind` tag; analyses
dispatch on ``elem.kind`` instead of on the Python class.  Elements
compare by identity only, so boundary checks such as ``oper is stop``
are reference comparisons.

The tree is built once by :mod:`perlcritic_shims.document` and is never
mutated afterwards.
"""

from __future__ import annotations

from enum import Enum
from typing import (
    Callable,
    Dict,
    FrozenSet,
    Iterator,
    List,
    Optional,
    Union,
)

from perlcritic_shims.perl_version import PerlVersion


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — ELEMENT KINDS
# ═════════════════════════════════════════════════════════════════════════

class ElementKind(Enum):
    """Closed set of element kinds."""

    # ── insignificant tokens ─────────────────────────────────────────
    WHITESPACE = "Token::Whitespace"
    COMMENT = "Token::Comment"
    POD = "Token::Pod"
    DATA = "Token::End"

    # ── significant tokens ───────────────────────────────────────────
    NUMBER = "Token::Number"
    VERSION = "Token::Number::Version"
    SYMBOL = "Token::Symbol"
    MAGIC = "Token::Magic"
    CAST = "Token::Cast"
    ARRAY_INDEX = "Token::ArrayIndex"
    WORD = "Token::Word"
    LABEL = "Token::Label"
    OPERATOR = "Token::Operator"
    STRUCTURE = "Token::Structure"
    QUOTE_SINGLE = "Token::Quote::Single"
    QUOTE_DOUBLE = "Token::Quote::Double"
    QUOTE_LITERAL = "Token::Quote::Literal"
    QUOTE_INTERPOLATE = "Token::Quote::Interpolate"
    QUOTE_WORDS = "Token::QuoteLike::Words"
    QUOTE_COMMAND = "Token::QuoteLike::Command"
    QUOTE_BACKTICK = "Token::QuoteLike::Backtick"
    QUOTE_REGEXP = "Token::QuoteLike::Regexp"
    READLINE = "Token::QuoteLike::Readline"
    HEREDOC = "Token::HereDoc"
    REGEXP_MATCH = "Token::Regexp::Match"
    REGEXP_SUBSTITUTE = "Token::Regexp::Substitute"
    REGEXP_TRANSLITERATE = "Token::Regexp::Transliterate"

    # ── nodes ────────────────────────────────────────────────────────
    DOCUMENT = "Document"
    STATEMENT = "Statement"
    STATEMENT_EXPRESSION = "Statement::Expression"
    STATEMENT_INCLUDE = "Statement::Include"
    STATEMENT_PACKAGE = "Statement::Package"
    STATEMENT_SUB = "Statement::Sub"
    STATEMENT_COMPOUND = "Statement::Compound"
    STATEMENT_NULL = "Statement::Null"
    LIST = "Structure::List"
    CONDITION = "Structure::Condition"
    FOR = "Structure::For"
    SUBSCRIPT = "Structure::Subscript"
    CONSTRUCTOR = "Structure::Constructor"
    BLOCK = "Structure::Block"


INSIGNIFICANT_KINDS: FrozenSet[ElementKind] = frozenset({
    ElementKind.WHITESPACE,
    ElementKind.COMMENT,
    ElementKind.POD,
    ElementKind.DATA,
})

STATEMENT_KINDS: FrozenSet[ElementKind] = frozenset({
    ElementKind.STATEMENT,
    ElementKind.STATEMENT_EXPRESSION,
    ElementKind.STATEMENT_INCLUDE,
    ElementKind.STATEMENT_PACKAGE,
    ElementKind.STATEMENT_SUB,
    ElementKind.STATEMENT_COMPOUND,
    ElementKind.STATEMENT_NULL,
})


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — ELEMENT BASE
# ═════════════════════════════════════════════════════════════════════════

class Element:
    """Anything that can sit in the tree."""

    __slots__ = ("kind", "parent")

    def __init__(self, kind: ElementKind) -> None:
        self.kind = kind
        self.parent: Optional[Node] = None

    # ── classification ───────────────────────────────────────────────

    @property
    def significant(self) -> bool:
        return self.kind not in INSIGNIFICANT_KINDS

    @property
    def content(self) -> str:
        raise NotImplementedError

    @property
    def line(self) -> int:
        raise NotImplementedError

    @property
    def column(self) -> int:
        raise NotImplementedError

    # ── sibling navigation ───────────────────────────────────────────

    def _siblings(self) -> List["Element"]:
        if self.parent is None:
            return []
        return self.parent.children

    def _index(self) -> int:
        siblings = self._siblings()
        for i, sib in enumerate(siblings):
            if sib is self:
                return i
        return -1

    def next_sibling(self) -> Optional["Element"]:
        siblings = self._siblings()
        i = self._index()
        if i < 0 or i + 1 >= len(siblings):
            return None
        return siblings[i + 1]

    def previous_sibling(self) -> Optional["Element"]:
        i = self._index()
        if i <= 0:
            return None
        return self._siblings()[i - 1]

    def snext_sibling(self) -> Optional["Element"]:
        """Next sibling, skipping whitespace, comments and POD."""
        siblings = self._siblings()
        i = self._index()
        if i < 0:
            return None
        for sib in siblings[i + 1:]:
            if sib.significant:
                return sib
        return None

    def sprevious_sibling(self) -> Optional["Element"]:
        """Previous sibling, skipping whitespace, comments and POD."""
        siblings = self._siblings()
        i = self._index()
        for sib in reversed(siblings[:max(i, 0)]):
            if sib.significant:
                return sib
        return None

    def ancestors(self) -> Iterator["Node"]:
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    def top(self) -> "Element":
        elem: Element = self
        while elem.parent is not None:
            elem = elem.parent
        return elem

    def __str__(self) -> str:
        return self.content


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — TOKENS
# ═════════════════════════════════════════════════════════════════════════

class Token(Element):
    """A leaf: one lexical token with its source text and position."""

    __slots__ = ("_content", "_line", "_column")

    def __init__(self, kind: ElementKind, content: str,
                 line: int = 0, column: int = 0) -> None:
        super().__init__(kind)
        self._content = content
        self._line = line
        self._column = column

    @property
    def content(self) -> str:
        return self._content

    @property
    def line(self) -> int:
        return self._line

    @property
    def column(self) -> int:
        return self._column

    @property
    def symbol(self) -> str:
        """
        The variable a Symbol or Magic token names.

        ``${^MATCH}`` is normalised to ``$^MATCH``.  A scalar sigil
        followed by a subscript names the aggregate, as in PPI:
        ``$h{key}`` is ``%h`` and ``$a[0]`` is ``@a``.
        """
        text = "".join(self._content.split())
        if text.startswith("${^") and text.endswith("}"):
            text = "$" + text[2:-1]
        if text.startswith("$") and not text.startswith("$#") and len(text) > 1:
            follow = self.snext_sibling()
            if isinstance(follow, Structure) and follow.kind is ElementKind.SUBSCRIPT \
                    and follow.start is not None:
                return ("%" if follow.start.content == "{" else "@") + text[1:]
        return text

    def __repr__(self) -> str:
        return f"<{self.kind.name} {self._content!r} @{self._line}:{self._column}>"


class HereDoc(Token):
    """``<<"EOF"`` introducer; the body lines are attached, not inline."""

    __slots__ = ("terminator", "body", "interpolates", "indented")

    def __init__(self, content: str, terminator: str, interpolates: bool,
                 line: int = 0, column: int = 0, indented: bool = False) -> None:
        super().__init__(ElementKind.HEREDOC, content, line, column)
        self.terminator = terminator
        self.interpolates = interpolates
        self.indented = indented
        self.body: List[str] = []


class RegexpToken(Token):
    """
    ``m//``, ``qr//``, ``s///`` and ``tr///`` tokens.

    The lexer splits the token into its sections, so ``pattern``,
    ``replacement`` (substitutions and transliterations only) and
    ``modifiers`` are available without re-scanning the text.
    """

    __slots__ = ("pattern", "replacement", "modifiers")

    def __init__(self, kind: ElementKind, content: str, pattern: str,
                 replacement: Optional[str], modifiers: str,
                 line: int = 0, column: int = 0) -> None:
        super().__init__(kind, content, line, column)
        self.pattern = pattern
        self.replacement = replacement
        self.modifiers = modifiers

    def get_modifiers(self) -> Dict[str, int]:
        """Modifier letters with their repeat counts (``ee`` → ``{'e': 2}``)."""
        counts: Dict[str, int] = {}
        for ch in self.modifiers:
            counts[ch] = counts.get(ch, 0) + 1
        return counts

    def get_substitute_string(self) -> str:
        """The replacement section of ``s///``; empty for other kinds."""
        return self.replacement or ""


# ═════════════════════════════════════════════════════════════════════════
#  PART 4 — NODES
# ═════════════════════════════════════════════════════════════════════════

ElementFilter = Union[ElementKind, Callable[[Element], bool]]


class Node(Element):
    """An element with children."""

    __slots__ = ("children",)

    def __init__(self, kind: ElementKind) -> None:
        super().__init__(kind)
        self.children: List[Element] = []

    def add_element(self, elem: Element) -> None:
        elem.parent = self
        self.children.append(elem)

    def schildren(self) -> List[Element]:
        return [c for c in self.children if c.significant]

    def child(self, index: int) -> Optional[Element]:
        if -len(self.children) <= index < len(self.children):
            return self.children[index]
        return None

    def schild(self, index: int) -> Optional[Element]:
        sig = self.schildren()
        if -len(sig) <= index < len(sig):
            return sig[index]
        return None

    def tokens(self) -> Iterator[Token]:
        """All tokens beneath this node, in source order."""
        for elem in self.elements():
            if isinstance(elem, Token):
                yield elem

    def elements(self) -> Iterator[Element]:
        """
        Pre-order walk of every descendant (this node excluded).

        Structure delimiters are yielded around the structure's children,
        in source order.
        """
        for elem in self.children:
            yield elem
            if isinstance(elem, Structure):
                if elem.start is not None:
                    yield elem.start
                yield from elem.elements()
                if elem.finish is not None:
                    yield elem.finish
            elif isinstance(elem, Node):
                yield from elem.elements()

    def find(self, wanted: ElementFilter) -> List[Element]:
        """
        Every descendant matching ``wanted``, in document order.

        ``wanted`` is either an :class:`ElementKind` or a predicate.
        """
        if isinstance(wanted, ElementKind):
            kind = wanted
            return [e for e in self.elements() if e.kind is kind]
        return [e for e in self.elements() if wanted(e)]

    def find_first(self, wanted: ElementFilter) -> Optional[Element]:
        found = self.find(wanted)
        return found[0] if found else None

    @property
    def content(self) -> str:
        return "".join(tok.content for tok in self.tokens())

    def _first_token(self) -> Optional[Token]:
        return next(self.tokens(), None)

    @property
    def line(self) -> int:
        tok = self._first_token()
        return tok.line if tok is not None else 0

    @property
    def column(self) -> int:
        tok = self._first_token()
        return tok.column if tok is not None else 0

    def __repr__(self) -> str:
        return f"<{self.kind.name} children={len(self.children)}>"


class Statement(Node):
    """One Perl statement (see :data:`STATEMENT_KINDS`)."""

    __slots__ = ()

    def __init__(self, kind: ElementKind = ElementKind.STATEMENT) -> None:
        super().__init__(kind)


class Structure(Node):
    """A bracketed container; delimiters live outside ``children``."""

    __slots__ = ("start", "finish")

    def __init__(self, kind: ElementKind, start: Optional[Token] = None) -> None:
        super().__init__(kind)
        self.start: Optional[Token] = None
        self.finish: Optional[Token] = None
        if start is not None:
            self.set_start(start)

    # Delimiters have the structure as parent but are not children, so
    # they have no siblings.
    def set_start(self, tok: Token) -> None:
        tok.parent = self
        self.start = tok

    def set_finish(self, tok: Token) -> None:
        tok.parent = self
        self.finish = tok

    def tokens(self) -> Iterator[Token]:
        if self.start is not None:
            yield self.start
        yield from super().tokens()
        if self.finish is not None:
            yield self.finish

    @property
    def braces(self) -> str:
        opening = self.start.content if self.start is not None else ""
        closing = self.finish.content if self.finish is not None else ""
        return opening + closing


class Document(Node):
    """Root of an element tree."""

    __slots__ = ("filename", "source")

    def __init__(self, filename: str = "<string>", source: str = "") -> None:
        super().__init__(ElementKind.DOCUMENT)
        self.filename = filename
        self.source = source

    def highest_explicit_perl_version(self) -> Optional[PerlVersion]:
        """
        Highest version stated by ``use VERSION`` or ``require VERSION``.

        Returns a :class:`~perlcritic_shims.perl_version.PerlVersion`, or
        ``None`` when the document states no version.
        """
        highest: Optional[PerlVersion] = None
        for stmt in self.find(ElementKind.STATEMENT_INCLUDE):
            assert isinstance(stmt, Node)
            arg = stmt.schild(1)
            if arg is None or arg.kind not in (ElementKind.NUMBER,
                                               ElementKind.VERSION):
                continue
            try:
                version = PerlVersion.parse(arg.content)
            except ValueError:
                continue
            if highest is None or highest < version:
                highest = version
        return highest

    def source_line(self, line: int) -> str:
        """Text of 1-based ``line`` (empty when out of range)."""
        lines = self.source.splitlines()
        if 1 <= line <= len(lines):
            return lines[line - 1]
        return ""


__all__ = [
    "ElementKind",
    "INSIGNIFICANT_KINDS",
    "STATEMENT_KINDS",
    "Element",
    "Token",
    "HereDoc",
    "RegexpToken",
    "Node",
    "Statement",
    "Structure",
    "Document",
    "ElementFilter",
]
