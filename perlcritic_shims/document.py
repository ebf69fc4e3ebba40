"""
perlcritic_shims/document.py
════════════════════════════

Builds the element tree from the token stream and exposes
:func:`parse_document`, the one entry point the rest of the package uses
to turn Perl source into a :class:`~perlcritic_shims.elements.Document`.

The builder is a single left-to-right pass with a stack of frames.  Each
frame is an open container (the document or a structure) together with
the statement currently being filled inside it:

    tokens ──▶ [ frame: Document   | statement ]
                [ frame: Block      | statement ]      ◀── top
                        ▲ ``{`` pushes, ``}`` pops

Insignificant tokens are held back until the next significant token
decides whether they belong to the open statement or to the container.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from sexpdata import Symbol

from perlcritic_shims.elements import (
    Document,
    Element,
    ElementKind,
    Node,
    Statement,
    Structure,
    Token,
)
from perlcritic_shims.errors import ErrorCodes, SourceSpan, TreeBuildError
from perlcritic_shims.lexer import tokenize

logger = logging.getLogger(__name__)


_CLOSERS = {"(": ")", "[": "]", "{": "}"}

_CONDITION_WORDS = frozenset({"if", "elsif", "unless", "while", "until"})
_LOOP_WORDS = frozenset({"for", "foreach"})
_COMPOUND_WORDS = _CONDITION_WORDS - {"elsif"} | _LOOP_WORDS
_COMPOUND_CONTINUATIONS = frozenset({"elsif", "else", "continue"})
_SCHEDULED_BLOCKS = frozenset({"BEGIN", "END", "INIT", "CHECK", "UNITCHECK"})
_INCLUDE_WORDS = frozenset({"use", "no", "require"})

# A ``{`` after one of these starts an anonymous hash, not a block.
_CONSTRUCTOR_PRECEDERS = frozenset({
    ",", "=>", "=", "||=", "//=", "&&=", "?", ":", "||", "//", "&&",
    "and", "or", "not", "!", "\\", "return",
})


@dataclass
class _Frame:
    container: Node
    statement: Optional[Statement] = None
    block_closed: bool = False


class TreeBuilder:
    """Assemble a token list into a :class:`Document`."""

    def __init__(self, tokens: List[Token], filename: str = "<string>",
                 source: str = "") -> None:
        self._tokens = tokens
        self._document = Document(filename=filename, source=source)
        self._frames: List[_Frame] = [_Frame(self._document)]
        self._pending: List[Token] = []

    def build(self) -> Document:
        for index, tok in enumerate(self._tokens):
            if tok.significant:
                self._feed(index, tok)
            else:
                self._pending.append(tok)

        frame = self._frames[-1]
        if frame.statement is not None and frame.block_closed:
            self._close_statement(frame)
        self._flush(frame.statement or frame.container)
        if len(self._frames) > 1:
            logger.debug("%s: %d structure(s) left open at end of input",
                         self._document.filename, len(self._frames) - 1)
        return self._document

    # ── per-token dispatch ───────────────────────────────────────────

    def _feed(self, index: int, tok: Token) -> None:
        frame = self._frames[-1]
        if frame.statement is not None and frame.block_closed:
            if not (tok.kind is ElementKind.WORD
                    and frame.statement.kind is ElementKind.STATEMENT_COMPOUND
                    and tok.content in _COMPOUND_CONTINUATIONS):
                self._close_statement(frame)
            frame.block_closed = False

        if tok.kind is ElementKind.STRUCTURE:
            if tok.content == ";":
                self._semicolon(frame, tok)
            elif tok.content in _CLOSERS:
                self._open(index, frame, tok)
            else:
                self._close(tok)
            return

        stmt = self._ensure_statement(index, frame, tok)
        self._flush(stmt)
        stmt.add_element(tok)

    def _semicolon(self, frame: _Frame, tok: Token) -> None:
        if frame.statement is None:
            self._flush(frame.container)
            null = Statement(ElementKind.STATEMENT_NULL)
            null.add_element(tok)
            frame.container.add_element(null)
            return
        self._flush(frame.statement)
        frame.statement.add_element(tok)
        self._close_statement(frame)

    def _open(self, index: int, frame: _Frame, tok: Token) -> None:
        stmt = self._ensure_statement(index, frame, tok)
        kind = self._structure_kind(tok, stmt, frame)
        self._flush(stmt)
        struct = Structure(kind, start=tok)
        stmt.add_element(struct)
        self._frames.append(_Frame(struct))

    def _close(self, tok: Token) -> None:
        if len(self._frames) == 1:
            raise TreeBuildError(
                f"unbalanced {tok.content!r}",
                code=ErrorCodes.UNBALANCED_CLOSER,
                span=SourceSpan(self._document.filename, tok.line, tok.column),
            )
        frame = self._frames[-1]
        struct = frame.container
        assert isinstance(struct, Structure) and struct.start is not None
        expected = _CLOSERS[struct.start.content]
        if tok.content != expected:
            raise TreeBuildError(
                f"expected {expected!r} to close {struct.start.content!r} "
                f"from line {struct.start.line}, found {tok.content!r}",
                code=ErrorCodes.MISMATCHED_CLOSER,
                span=SourceSpan(self._document.filename, tok.line, tok.column),
            )
        self._flush(frame.statement or struct)
        if frame.statement is not None:
            self._close_statement(frame)
        struct.set_finish(tok)
        self._frames.pop()

        outer = self._frames[-1]
        if (struct.kind is ElementKind.BLOCK and outer.statement is not None
                and outer.statement.kind in (ElementKind.STATEMENT_SUB,
                                             ElementKind.STATEMENT_COMPOUND)):
            outer.block_closed = True

    # ── statements ───────────────────────────────────────────────────

    def _ensure_statement(self, index: int, frame: _Frame, tok: Token) -> Statement:
        if frame.statement is not None:
            return frame.statement
        self._flush(frame.container)
        stmt = Statement(self._statement_kind(index, frame.container, tok))
        frame.container.add_element(stmt)
        frame.statement = stmt
        return stmt

    def _close_statement(self, frame: _Frame) -> None:
        frame.statement = None
        frame.block_closed = False

    def _statement_kind(self, index: int, container: Node, tok: Token) -> ElementKind:
        if container.kind not in (ElementKind.DOCUMENT, ElementKind.BLOCK):
            return ElementKind.STATEMENT_EXPRESSION
        text = tok.content
        if tok.kind is ElementKind.STRUCTURE and text == "{":
            return ElementKind.STATEMENT_COMPOUND
        if tok.kind is ElementKind.LABEL:
            following = self._next_significant(index)
            if following is not None and following.content in _COMPOUND_WORDS:
                return ElementKind.STATEMENT_COMPOUND
            return ElementKind.STATEMENT
        if tok.kind is not ElementKind.WORD:
            return ElementKind.STATEMENT
        if text in _INCLUDE_WORDS:
            return ElementKind.STATEMENT_INCLUDE
        if text == "package":
            return ElementKind.STATEMENT_PACKAGE
        if text in _COMPOUND_WORDS:
            return ElementKind.STATEMENT_COMPOUND
        following = self._next_significant(index)
        if text == "sub" and following is not None and following.kind is ElementKind.WORD:
            return ElementKind.STATEMENT_SUB
        if text in _SCHEDULED_BLOCKS and following is not None and following.content == "{":
            return ElementKind.STATEMENT_SUB
        return ElementKind.STATEMENT

    def _next_significant(self, index: int) -> Optional[Token]:
        for tok in self._tokens[index + 1:]:
            if tok.significant:
                return tok
        return None

    # ── structures ───────────────────────────────────────────────────

    def _structure_kind(self, tok: Token, stmt: Statement, frame: _Frame) -> ElementKind:
        prev = stmt.schild(-1)
        opener = tok.content

        if opener == "(":
            if prev is not None and prev.kind is ElementKind.WORD:
                if prev.content in _CONDITION_WORDS:
                    return ElementKind.CONDITION
                if prev.content in _LOOP_WORDS:
                    return ElementKind.FOR
            if (prev is not None and prev.kind is ElementKind.SYMBOL
                    and stmt.kind is ElementKind.STATEMENT_COMPOUND
                    and _first_word(stmt) in _LOOP_WORDS):
                return ElementKind.FOR
            return ElementKind.LIST

        if _is_subscriptable(prev):
            return ElementKind.SUBSCRIPT
        if opener == "[":
            if isinstance(prev, Structure) and prev.kind is ElementKind.LIST:
                return ElementKind.SUBSCRIPT
            return ElementKind.CONSTRUCTOR

        if prev is None:
            if frame.container.kind in (ElementKind.DOCUMENT, ElementKind.BLOCK):
                return ElementKind.BLOCK
            return ElementKind.CONSTRUCTOR
        if prev.kind in (ElementKind.OPERATOR, ElementKind.WORD) \
                and prev.content in _CONSTRUCTOR_PRECEDERS:
            return ElementKind.CONSTRUCTOR
        return ElementKind.BLOCK

    # ── insignificant tokens ─────────────────────────────────────────

    def _flush(self, target: Node) -> None:
        for tok in self._pending:
            target.add_element(tok)
        self._pending = []


def _first_word(stmt: Statement) -> str:
    for elem in stmt.schildren():
        if elem.kind is ElementKind.WORD:
            return elem.content
        if elem.kind is not ElementKind.LABEL:
            break
    return ""


def _is_subscriptable(prev: Optional[Element]) -> bool:
    """True when a following ``[`` or ``{`` indexes into ``prev``."""
    if prev is None:
        return False
    if prev.kind in (ElementKind.SYMBOL, ElementKind.MAGIC):
        return True
    if prev.kind is ElementKind.OPERATOR and prev.content == "->":
        return True
    if prev.kind is ElementKind.SUBSCRIPT:
        return True
    if prev.kind is ElementKind.BLOCK:
        cast = prev.sprevious_sibling()
        return cast is not None and cast.kind is ElementKind.CAST
    return False


# ═══════════════════════════════════════════════════════════════════
#  PUBLIC API
# ═══════════════════════════════════════════════════════════════════

def parse_document(source: str, filename: str = "<string>") -> Document:
    """
    Tokenize and build ``source``.

    Raises :class:`~perlcritic_shims.errors.TokenizeError` or
    :class:`~perlcritic_shims.errors.TreeBuildError`.
    """
    tokens = tokenize(source, filename)
    document = TreeBuilder(tokens, filename=filename, source=source).build()
    logger.debug("%s: built %d top-level element(s)", filename, len(document.children))
    return document


def element_to_sexp(elem: Element, significant_only: bool = True) -> Any:
    """
    Render a subtree as nested lists of ``sexpdata.Symbol`` and strings,
    ready for ``sexpdata.dumps``.

    ``(Statement::Expression (Token::Word "foo") (Structure::List "(" … ")"))``
    """
    head = Symbol(elem.kind.value)
    if isinstance(elem, Token):
        return [head, elem.content]
    assert isinstance(elem, Node)
    children = elem.schildren() if significant_only else elem.children
    body = [element_to_sexp(c, significant_only) for c in children]
    if isinstance(elem, Structure):
        opening = elem.start.content if elem.start is not None else ""
        closing = elem.finish.content if elem.finish is not None else ""
        return [head, opening, *body, closing]
    return [head, *body]


__all__ = [
    "TreeBuilder",
    "parse_document",
    "element_to_sexp",
    "Document",
]
