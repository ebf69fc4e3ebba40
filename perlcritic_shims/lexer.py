"""
perlcritic_shims/lexer.py
═════════════════════════

Perl tokenizer.

Token shapes are declared once, as a parsimonious PEG grammar.  Perl's
lexical grammar is context dependent (``/`` divides after a term and
starts a pattern before one; ``%`` is modulus or a hash sigil; ``<<`` is
a shift or a here-document), so the grammar exposes three entry rules
and the tokenizer picks one per token from what came before:

    ┌──────────────────┬──────────────────────────────────────────────┐
    │ entry rule       │ used when                                    │
    ├──────────────────┼──────────────────────────────────────────────┤
    │ operand_token    │ a term is expected (after an operator, an    │
    │                  │ opening bracket, ``;``, most words)          │
    │ operator_token   │ an operator is expected (after a variable,   │
    │                  │ a literal, ``)``, ``]``, a subscript ``}``)  │
    │ method_token     │ right after ``->``                           │
    └──────────────────┴──────────────────────────────────────────────┘

At a statement boundary a label (``LINE:``) is tried first, and at the
start of a line POD is tried first.  Here-document bodies are read
out-of-band when the line holding the ``<<"EOF"`` introducer ends.
"""

from __future__ import annotations

import bisect
import logging
import re
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from parsimonious.exceptions import ParseError
from parsimonious.grammar import Grammar
from parsimonious.nodes import Node as ParseNode

from perlcritic_shims.elements import ElementKind, HereDoc, RegexpToken, Token
from perlcritic_shims.errors import ErrorCodes, SourceSpan, TokenizeError

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
#  PART 1 — TOKEN GRAMMAR (Parsimonious PEG)
# ═══════════════════════════════════════════════════════════════════

PERL_TOKEN_GRAMMAR = Grammar(r'''
    # ─────────────────────────────────────────────────────────────
    # Entry rules, one per lexer context
    # ─────────────────────────────────────────────────────────────

    operand_token     = whitespace / comment / data_section / bare_key
                      / readline / heredoc / quote / regexp
                      / version_string / number / array_index / magic
                      / symbol / cast / filetest / named_operator / word
                      / structure / operator / sigil

    operator_token    = whitespace / comment / data_section / structure
                      / named_operator / operator / bare_key / quote
                      / keyword_regexp / number / array_index / magic
                      / symbol / cast / word / sigil

    method_token      = whitespace / comment / word / magic / symbol / cast
                      / structure / operator / sigil

    # ─────────────────────────────────────────────────────────────
    # Insignificant text
    # ─────────────────────────────────────────────────────────────

    whitespace        = ~r"\s+"
    comment           = ~r"#[^\n]*"
    data_section      = ~r"__(?:END|DATA)__\b.*"s
    pod               = ~r"=[a-zA-Z]\w*.*?(?:^=cut\b[^\n]*\n?|\Z)"ms

    # ─────────────────────────────────────────────────────────────
    # Words, labels, numbers
    # ─────────────────────────────────────────────────────────────

    label             = ~r"[A-Za-z_]\w*[ \t]*:(?!:)"
    bare_key          = ~r"[A-Za-z_]\w*(?=\s*(?:=>|\}))"
    word              = ~r"[A-Za-z_]\w*(?:::\w+)*(?:::)?|::\w+(?:::\w+)*"
    named_operator    = ~r"(?:x=|(?:and|or|xor|not|lt|gt|le|ge|eq|ne|cmp|x)\b(?!\s*=>))"
    version_string    = ~r"v\d+(?:\.\d+)*(?![\w.])|\d+\.\d+\.\d+(?:\.\d+)*"
    number            = ~r"0[xX][0-9a-fA-F_]+|0[bB][01_]+|\d[\d_]*(?:\.(?!\.)[\d_]*)?(?:[eE][+-]?\d+)?|\.\d[\d_]*(?:[eE][+-]?\d+)?"

    # ─────────────────────────────────────────────────────────────
    # Variables
    # ─────────────────────────────────────────────────────────────

    array_index       = ~r"\$#[A-Za-z_]\w*(?:::\w+)*"
    magic             = ~r"\$\d+|\$\{\^\w+\}|\$\^\w|\$(?:[&`'+!@/\\,;.<>\]^?|~=%-]|\$(?![\w{$:])|_(?!\w)|:(?!:))|@(?:[_+-](?!\w)|\{\^\w+\})|%(?:[+!-](?![\w{$])|\^H\b|\{\^\w+\})"
    symbol            = ~r"[$@%&*](?:::)?[A-Za-z_]\w*(?:::\w+)*(?:::)?"
    cast              = ~r"\$#(?=[{$])|[$@%&*](?=[{$])"
    sigil             = ~r"[$@%&*]"

    # ─────────────────────────────────────────────────────────────
    # Operators and structure
    # ─────────────────────────────────────────────────────────────

    filetest          = ~r"-[rwxoRWXOezsfdlpSbcugktTBAMC](?![\w=>])"
    operator          = ~r"<=>|\*\*=|\|\|=|&&=|//=|<<=|>>=|\.\.\.|->|\+\+|--|\*\*|=~|!~|==|!=|<=|>=|&&|\|\||//|\.\.|\+=|-=|\*=|/=|\.=|%=|&=|\|=|\^=|=>|<<|>>|~~|[-+*/%.=!~\\?:,&|^<>]"
    structure         = ~r"[()\[\]{};]"

    # ─────────────────────────────────────────────────────────────
    # Quotes and quote-likes
    # ─────────────────────────────────────────────────────────────

    quote             = quote_single / quote_double / quote_backtick / quote_keyworded
    quote_single      = ~r"'(?:[^'\\]|\\.)*'"s
    quote_double      = ~r"\"(?:[^\"\\]|\\.)*\""s
    quote_backtick    = ~r"`(?:[^`\\]|\\.)*`"s
    quote_keyworded   = quote_keyword delimited
    quote_keyword     = ~r"(?:qq|qw|qx|q)(?![\w=]|\s*(?:=>|,))"

    readline          = ~r"<<>>|<\$?(?:[A-Za-z_]\w*(?:::\w+)*)?>"
    heredoc           = ~r"<<(~?)(?:\"([^\"\n]*)\"|'([^'\n]*)'|([A-Za-z_]\w*))"

    # ─────────────────────────────────────────────────────────────
    # Regular expressions
    # ─────────────────────────────────────────────────────────────

    regexp            = keyword_regexp / bare_match
    keyword_regexp    = substitute / transliterate / match_keyworded
    substitute        = ~r"s(?![\w=]|\s*(?:=>|,))" two_sections modifiers
    transliterate     = ~r"(?:tr|y)(?![\w=]|\s*(?:=>|,))" two_sections modifiers
    match_keyworded   = match_keyword delimited modifiers
    match_keyword     = ~r"(?:qr|m)(?![\w=]|\s*(?:=>|,))"
    bare_match        = ~r"/((?:\\.|[^/\\\n])*)/" modifiers
    modifiers         = ~r"[a-zA-Z]*"

    # ─────────────────────────────────────────────────────────────
    # Delimited sections (same delimiter, or nested brackets)
    # ─────────────────────────────────────────────────────────────

    delimited         = paired_section / same_pair
    two_sections      = paired_pair / same_triple
    paired_section    = ws_opt paired
    paired_pair       = ws_opt paired ws_opt paired
    paired            = braced / parened / bracketed / angled
    braced            = "{" (braced / ~r"(?:\\.|[^{}\\])+"s)* "}"
    parened           = "(" (parened / ~r"(?:\\.|[^()\\])+"s)* ")"
    bracketed         = "[" (bracketed / ~r"(?:\\.|[^\[\]\\])+"s)* "]"
    angled            = "<" (angled / ~r"(?:\\.|[^<>\\])+"s)* ">"
    same_pair         = ~r"([^\w\s{(\[<])((?:\\.|(?!\1).)*)\1"s
    same_triple       = ~r"([^\w\s{(\[<])((?:\\.|(?!\1).)*)\1((?:\\.|(?!\1).)*)\1"s
    ws_opt            = ~r"\s*"
''')


# ═══════════════════════════════════════════════════════════════════
#  PART 2 — LEXER CONTEXT
# ═══════════════════════════════════════════════════════════════════

class Expect(Enum):
    """What the next significant token is expected to be."""

    OPERAND = "operand_token"
    OPERATOR = "operator_token"
    METHOD = "method_token"


# Words after which Perl parses a following ``/`` as division.
_TERM_WORDS = frozenset({
    "shift", "pop", "time", "wantarray", "wait", "times",
    "__PACKAGE__", "__FILE__", "__LINE__", "__SUB__",
})

# Brace roles tracked on the lexer's own stack.  A ``}`` closing a
# subscript or an anonymous hash ends a term; one closing a block does not.
_BRACE_SUBSCRIPT = "subscript"
_BRACE_TERM = "term"
_BRACE_BLOCK = "block"

_QUOTE_KINDS: Dict[str, ElementKind] = {
    "q": ElementKind.QUOTE_LITERAL,
    "qq": ElementKind.QUOTE_INTERPOLATE,
    "qw": ElementKind.QUOTE_WORDS,
    "qx": ElementKind.QUOTE_COMMAND,
}

_MATCH_KINDS: Dict[str, ElementKind] = {
    "m": ElementKind.REGEXP_MATCH,
    "qr": ElementKind.QUOTE_REGEXP,
}

_SECTION_RULES = frozenset({"paired", "same_pair", "same_triple"})


# ═══════════════════════════════════════════════════════════════════
#  PART 3 — TOKEN FACTORIES
# ═══════════════════════════════════════════════════════════════════

# Populated by the ``@_register`` decorator below.  Maps a grammar rule
# name to a factory ``(parse_node, line, column) -> Token``.
_TOKEN_FACTORIES: Dict[str, Callable[[ParseNode, int, int], Token]] = {}


def _register(*rules: str):
    """Decorator: register a token factory for the given grammar rules."""
    def deco(fn):
        for rule in rules:
            _TOKEN_FACTORIES[rule] = fn
        return fn
    return deco


def _simple(kind: ElementKind) -> Callable[[ParseNode, int, int], Token]:
    def factory(node: ParseNode, line: int, column: int) -> Token:
        return Token(kind, node.text, line, column)
    return factory


for _rule, _kind in (
    ("whitespace", ElementKind.WHITESPACE),
    ("comment", ElementKind.COMMENT),
    ("pod", ElementKind.POD),
    ("data_section", ElementKind.DATA),
    ("label", ElementKind.LABEL),
    ("bare_key", ElementKind.WORD),
    ("word", ElementKind.WORD),
    ("named_operator", ElementKind.OPERATOR),
    ("filetest", ElementKind.OPERATOR),
    ("operator", ElementKind.OPERATOR),
    ("structure", ElementKind.STRUCTURE),
    ("version_string", ElementKind.VERSION),
    ("number", ElementKind.NUMBER),
    ("array_index", ElementKind.ARRAY_INDEX),
    ("magic", ElementKind.MAGIC),
    ("symbol", ElementKind.SYMBOL),
    ("cast", ElementKind.CAST),
    ("sigil", ElementKind.CAST),
    ("quote_single", ElementKind.QUOTE_SINGLE),
    ("quote_double", ElementKind.QUOTE_DOUBLE),
    ("quote_backtick", ElementKind.QUOTE_BACKTICK),
    ("readline", ElementKind.READLINE),
):
    _TOKEN_FACTORIES[_rule] = _simple(_kind)


def _find_named(node: ParseNode, names: frozenset) -> List[ParseNode]:
    """Outermost descendants of ``node`` whose rule name is in ``names``."""
    if node.expr_name in names:
        return [node]
    found: List[ParseNode] = []
    for child in node.children:
        found.extend(_find_named(child, names))
    return found


def _sections(node: ParseNode) -> List[str]:
    """Body texts of a quote-like, in order, with delimiters removed."""
    bodies: List[str] = []
    for part in _find_named(node, _SECTION_RULES):
        if part.expr_name == "paired":
            bodies.append(part.text[1:-1])
        elif part.expr_name == "same_pair":
            bodies.append(part.match.group(2))
        else:
            bodies.extend(part.match.group(2, 3))
    return bodies


def _modifiers(node: ParseNode) -> str:
    found = _find_named(node, frozenset({"modifiers"}))
    return found[0].text if found else ""


@_register("quote_keyworded")
def _quote_keyworded(node: ParseNode, line: int, column: int) -> Token:
    keyword = node.children[0].text
    return Token(_QUOTE_KINDS[keyword], node.text, line, column)


@_register("match_keyworded")
def _match_keyworded(node: ParseNode, line: int, column: int) -> Token:
    keyword = node.children[0].text
    sections = _sections(node)
    return RegexpToken(_MATCH_KINDS[keyword], node.text,
                       pattern=sections[0] if sections else "",
                       replacement=None, modifiers=_modifiers(node),
                       line=line, column=column)


@_register("bare_match")
def _bare_match(node: ParseNode, line: int, column: int) -> Token:
    return RegexpToken(ElementKind.REGEXP_MATCH, node.text,
                       pattern=node.children[0].match.group(1),
                       replacement=None, modifiers=_modifiers(node),
                       line=line, column=column)


@_register("substitute", "transliterate")
def _two_part(node: ParseNode, line: int, column: int) -> Token:
    kind = (ElementKind.REGEXP_SUBSTITUTE if node.expr_name == "substitute"
            else ElementKind.REGEXP_TRANSLITERATE)
    sections = _sections(node) + ["", ""]
    return RegexpToken(kind, node.text, pattern=sections[0],
                       replacement=sections[1], modifiers=_modifiers(node),
                       line=line, column=column)


@_register("heredoc")
def _heredoc(node: ParseNode, line: int, column: int) -> Token:
    indent, dquoted, squoted, bare = node.match.groups()
    terminator = next(t for t in (dquoted, squoted, bare) if t is not None)
    return HereDoc(node.text, terminator=terminator,
                   interpolates=squoted is None, line=line, column=column,
                   indented=bool(indent))


# ═══════════════════════════════════════════════════════════════════
#  PART 4 — TOKENIZER
# ═══════════════════════════════════════════════════════════════════

class Tokenizer:
    """
    Split Perl source into :class:`~perlcritic_shims.elements.Token` objects.

    Usage::

        tokens = Tokenizer(source, filename="lib/Foo.pm").tokenize()
    """

    def __init__(self, source: str, filename: str = "<string>") -> None:
        self.source = source
        self.filename = filename
        self._line_starts = [0] + [m.end() for m in re.finditer(r"\n", source)]
        self._expect = Expect.OPERAND
        self._braces: List[str] = []
        self._prev: Optional[Token] = None
        self._closed_subscript = False
        self._pending_heredocs: List[HereDoc] = []

    # ── positions ────────────────────────────────────────────────────

    def _position(self, offset: int) -> Tuple[int, int]:
        index = bisect.bisect_right(self._line_starts, offset) - 1
        return index + 1, offset - self._line_starts[index] + 1

    def _at_line_start(self, offset: int) -> bool:
        return offset == 0 or self.source[offset - 1] == "\n"

    def _at_statement_start(self) -> bool:
        prev = self._prev
        if prev is None:
            return True
        return prev.kind is ElementKind.STRUCTURE and prev.content in (";", "{", "}")

    # ── main loop ────────────────────────────────────────────────────

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        pos = 0
        end = len(self.source)
        while pos < end:
            node = self._match_at(pos)
            line, column = self._position(pos)
            text_end = node.end
            rule = self._token_rule(node)
            if (rule.expr_name == "whitespace" and self._pending_heredocs
                    and "\n" in node.text):
                text_end = pos + node.text.index("\n") + 1
                tok = Token(ElementKind.WHITESPACE, self.source[pos:text_end],
                            line, column)
                tokens.append(tok)
                pos = self._read_heredoc_bodies(text_end)
                continue
            tok = _TOKEN_FACTORIES[rule.expr_name](rule, line, column)
            tokens.append(tok)
            if isinstance(tok, HereDoc):
                self._pending_heredocs.append(tok)
            if tok.significant:
                self._advance_context(tok)
            pos = text_end
        if self._pending_heredocs:
            doc = self._pending_heredocs[0]
            raise TokenizeError(
                f"here-document terminator {doc.terminator!r} not found",
                code=ErrorCodes.UNTERMINATED_HEREDOC,
                span=SourceSpan(self.filename, doc.line, doc.column),
            )
        logger.debug("%s: %d tokens", self.filename, len(tokens))
        return tokens

    def _match_at(self, pos: int) -> ParseNode:
        candidates = []
        if self._expect is Expect.OPERAND:
            if self._at_line_start(pos) and self.source.startswith("=", pos):
                candidates.append("pod")
            if self._at_statement_start():
                candidates.append("label")
        candidates.append(self._expect.value)
        for rule in candidates:
            try:
                return PERL_TOKEN_GRAMMAR[rule].match(self.source, pos)
            except ParseError:
                continue
        line, column = self._position(pos)
        snippet = self.source[pos:pos + 20].split("\n", 1)[0]
        raise TokenizeError(
            f"unrecognised input {snippet!r}",
            span=SourceSpan(self.filename, line, column),
            snippet=snippet,
        )

    @staticmethod
    def _token_rule(node: ParseNode) -> ParseNode:
        """Descend from an entry-rule match to the rule that built the token."""
        while node.expr_name not in _TOKEN_FACTORIES:
            node = node.children[0]
        return node

    def _read_heredoc_bodies(self, pos: int) -> int:
        source = self.source
        for doc in self._pending_heredocs:
            body: List[str] = []
            while True:
                if pos >= len(source):
                    raise TokenizeError(
                        f"here-document terminator {doc.terminator!r} not found",
                        code=ErrorCodes.UNTERMINATED_HEREDOC,
                        span=SourceSpan(self.filename, doc.line, doc.column),
                    )
                newline = source.find("\n", pos)
                stop = len(source) if newline < 0 else newline
                text = source[pos:stop].rstrip("\r")
                pos = stop + 1
                candidate = text.strip() if doc.indented else text
                if candidate == doc.terminator:
                    break
                body.append(text)
            doc.body = body
        self._pending_heredocs = []
        return min(pos, len(source))

    # ── context tracking ─────────────────────────────────────────────

    def _advance_context(self, tok: Token) -> None:
        prev, expect = self._prev, self._expect
        kind, text = tok.kind, tok.content
        closed_subscript = False

        if kind is ElementKind.WORD:
            after_arrow = prev is not None and prev.content == "->"
            if after_arrow or text in _TERM_WORDS:
                self._expect = Expect.OPERATOR
            else:
                self._expect = Expect.OPERAND
        elif kind is ElementKind.OPERATOR:
            if text == "->":
                self._expect = Expect.METHOD
            elif text in ("++", "--") and expect is Expect.OPERATOR:
                self._expect = Expect.OPERATOR
            else:
                self._expect = Expect.OPERAND
        elif kind is ElementKind.STRUCTURE:
            if text == "{":
                self._braces.append(self._brace_role(prev))
                self._expect = Expect.OPERAND
            elif text == "}":
                role = self._braces.pop() if self._braces else _BRACE_BLOCK
                closed_subscript = role == _BRACE_SUBSCRIPT
                self._expect = (Expect.OPERAND if role == _BRACE_BLOCK
                                else Expect.OPERATOR)
            elif text in (")", "]"):
                closed_subscript = text == "]"
                self._expect = Expect.OPERATOR
            else:
                self._expect = Expect.OPERAND
        elif kind in (ElementKind.CAST, ElementKind.LABEL):
            self._expect = Expect.OPERAND
        else:
            self._expect = Expect.OPERATOR

        self._closed_subscript = closed_subscript
        self._prev = tok

    def _brace_role(self, prev: Optional[Token]) -> str:
        if prev is None:
            return _BRACE_BLOCK
        if prev.kind in (ElementKind.SYMBOL, ElementKind.MAGIC) or prev.content == "->":
            return _BRACE_SUBSCRIPT
        if prev.kind is ElementKind.STRUCTURE and prev.content in ("}", "]"):
            return _BRACE_SUBSCRIPT if self._closed_subscript else _BRACE_BLOCK
        if prev.kind is ElementKind.CAST:
            return _BRACE_TERM
        if prev.kind is ElementKind.OPERATOR or prev.content in ("(", "[", ","):
            return _BRACE_TERM
        if prev.kind is ElementKind.WORD and prev.content == "return":
            return _BRACE_TERM
        return _BRACE_BLOCK


def tokenize(source: str, filename: str = "<string>") -> List[Token]:
    """Tokenize ``source``; raises :class:`TokenizeError` on bad input."""
    return Tokenizer(source, filename).tokenize()


__all__ = [
    "PERL_TOKEN_GRAMMAR",
    "Expect",
    "Tokenizer",
    "tokenize",
]
