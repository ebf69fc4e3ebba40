# tests/test_document.py
"""
Tests for the element tree: statement and structure classification,
delimiter ownership, navigation helpers, tree errors and the
S-expression dump.
"""

import pytest
from sexpdata import dumps

from perlcritic_shims.document import element_to_sexp, parse_document
from perlcritic_shims.elements import ElementKind, Structure
from perlcritic_shims.errors import TreeBuildError
from perlcritic_shims.perl_version import PerlVersion


def _statement_kinds(source):
    return [s.kind for s in parse_document(source).schildren()]


class TestStatements:

    @pytest.mark.parametrize("source,kind", [
        ("use strict;", ElementKind.STATEMENT_INCLUDE),
        ("no warnings;", ElementKind.STATEMENT_INCLUDE),
        ("require Foo::Bar;", ElementKind.STATEMENT_INCLUDE),
        ("package Foo;", ElementKind.STATEMENT_PACKAGE),
        ("sub foo { return 1; }", ElementKind.STATEMENT_SUB),
        ("BEGIN { $| = 1; }", ElementKind.STATEMENT_SUB),
        ("while (1) { last; }", ElementKind.STATEMENT_COMPOUND),
        ("foo(1);", ElementKind.STATEMENT),
    ])
    def test_statement_kind(self, source, kind):
        assert _statement_kinds(source) == [kind]

    def test_if_else_is_one_compound_statement(self):
        document = parse_document("if ($x) { 1 } else { 2 }\nfoo();")
        stmts = document.schildren()
        assert [s.kind for s in stmts] == [
            ElementKind.STATEMENT_COMPOUND,
            ElementKind.STATEMENT,
        ]
        blocks = [c for c in stmts[0].schildren() if c.kind is ElementKind.BLOCK]
        assert len(blocks) == 2

    def test_sub_statement_ends_at_block(self):
        assert _statement_kinds("sub foo { }\nbar();") == [
            ElementKind.STATEMENT_SUB,
            ElementKind.STATEMENT,
        ]

    def test_null_statements(self):
        assert _statement_kinds(";;") == [ElementKind.STATEMENT_NULL] * 2

    def test_statements_inside_structures_are_expressions(self):
        document = parse_document("foo(1, 2);")
        lst = document.find_first(ElementKind.LIST)
        assert lst.schild(0).kind is ElementKind.STATEMENT_EXPRESSION

    def test_whitespace_kept_between_statements(self):
        source = "foo();\n\n# note\nbar();\n"
        document = parse_document(source)
        assert document.content == source
        assert len(document.schildren()) == 2


class TestStructures:

    @pytest.mark.parametrize("source,kind", [
        ("foo(1);", ElementKind.LIST),
        ("if ($x) { }", ElementKind.CONDITION),
        ("for my $i (1..3) { }", ElementKind.FOR),
        ("foreach (@list) { }", ElementKind.FOR),
        ("$x{a};", ElementKind.SUBSCRIPT),
        ("$a[0];", ElementKind.SUBSCRIPT),
        ("$r->{a};", ElementKind.SUBSCRIPT),
        ("my $h = {a => 1};", ElementKind.CONSTRUCTOR),
        ("my $r = [1];", ElementKind.CONSTRUCTOR),
        ("map { $_ } @x;", ElementKind.BLOCK),
    ])
    def test_first_structure_kind(self, source, kind):
        document = parse_document(source)
        first = document.find_first(lambda e: isinstance(e, Structure))
        assert first.kind is kind

    def test_chained_subscripts(self):
        document = parse_document("$h{a}[0]{b};")
        kinds = [s.kind for s in document.find(lambda e: isinstance(e, Structure))]
        assert kinds == [ElementKind.SUBSCRIPT] * 3

    def test_delimiters_are_not_children(self):
        document = parse_document("foo(1);")
        lst = document.find_first(ElementKind.LIST)
        assert lst.start.content == "("
        assert lst.finish.content == ")"
        assert lst.start.parent is lst
        assert lst.start not in lst.children
        assert lst.braces == "()"
        assert lst.start.next_sibling() is None

    def test_find_yields_delimiters_in_source_order(self):
        document = parse_document("foo([1]);")
        structure_tokens = [t.content for t in document.find(ElementKind.STRUCTURE)]
        assert structure_tokens == ["(", "[", "]", ")", ";"]

    def test_unclosed_structure_is_tolerated(self):
        document = parse_document("foo(1, 2")
        lst = document.find_first(ElementKind.LIST)
        assert lst.finish is None


class TestNavigation:

    def test_significant_siblings(self):
        document = parse_document("foo ( 1 ) ;")
        stmt = document.schild(0)
        word = stmt.schild(0)
        assert word.next_sibling().kind is ElementKind.WHITESPACE
        assert word.snext_sibling().kind is ElementKind.LIST
        assert stmt.schild(-1).sprevious_sibling() is word.snext_sibling()

    def test_ancestors_and_top(self):
        document = parse_document("foo(bar($1));")
        magic = document.find_first(ElementKind.MAGIC)
        kinds = [a.kind for a in magic.ancestors()]
        assert kinds[-1] is ElementKind.DOCUMENT
        assert kinds.count(ElementKind.LIST) == 2
        assert magic.top() is document

    def test_node_position_is_first_token(self):
        document = parse_document("\n\n  foo(1);")
        stmt = document.schild(0)
        assert (stmt.line, stmt.column) == (3, 3)

    def test_source_line(self):
        document = parse_document("a();\nb();\n")
        assert document.source_line(2) == "b();"
        assert document.source_line(9) == ""

    def test_symbol_names_the_aggregate(self):
        document = parse_document("$h{a}; $l[0]; $s; ${^MATCH};")
        names = [t.symbol for t in document.find(
            lambda e: e.kind in (ElementKind.SYMBOL, ElementKind.MAGIC))]
        assert names == ["%h", "@l", "$s", "$^MATCH"]


class TestTreeErrors:

    def test_mismatched_closer(self):
        with pytest.raises(TreeBuildError) as info:
            parse_document("foo(1];", filename="bad.pl")
        assert info.value.code == "PCS-1001"
        assert info.value.span.file == "bad.pl"

    def test_unbalanced_closer(self):
        with pytest.raises(TreeBuildError) as info:
            parse_document("foo);")
        assert info.value.code == "PCS-1000"
        assert info.value.span.column == 4


class TestPerlVersion:

    def test_highest_explicit_version(self):
        document = parse_document("use 5.008;\nrequire 5.010_001;\n")
        assert document.highest_explicit_perl_version() == PerlVersion(5, 10, 1)

    def test_vstring_version(self):
        document = parse_document("use v5.36;")
        assert document.highest_explicit_perl_version() == PerlVersion(5, 36, 0)

    def test_no_version(self):
        document = parse_document("use strict;\nuse Foo 1.2;")
        assert document.highest_explicit_perl_version() is None


class TestSexpDump:

    def test_statement_dump(self):
        document = parse_document("foo(1);")
        text = dumps(element_to_sexp(document.schild(0)))
        assert text.startswith("(Statement (Token::Word \"foo\")")
        assert "(Structure::List \"(\"" in text
        assert '(Token::Number "1")' in text

    def test_insignificant_elements_on_request(self):
        document = parse_document("foo( 1 );")
        stmt = document.schild(0)
        assert "Token::Whitespace" not in dumps(element_to_sexp(stmt))
        assert "Token::Whitespace" in dumps(element_to_sexp(stmt, significant_only=False))
