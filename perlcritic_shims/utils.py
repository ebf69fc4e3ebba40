"""
perlcritic_shims/utils.py
═════════════════════════

Classification helpers for Perl elements, after Perl::Critic::Utils.

    ┌─────────────────────────────────────────────────────────────────┐
    │  Tables                                                         │
    │    • operator precedence (lower number = binds tighter)         │
    │    • built-in functions, barewords, standard filehandles        │
    ├─────────────────────────────────────────────────────────────────┤
    │  Word classification                                            │
    │    • is_function_call / is_method_call / is_class_name          │
    │    • is_hash_key / is_subroutine_name / is_label_pointer        │
    │    • is_included_module_name / is_package_declaration           │
    └─────────────────────────────────────────────────────────────────┘

Every predicate accepts ``None`` and answers ``False`` for it.  None of
them modify the tree.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import FrozenSet, Mapping, Optional, Union

from perlcritic_shims.elements import STATEMENT_KINDS, Element, ElementKind


# ═══════════════════════════════════════════════════════════════════════════
#  OPERATOR PRECEDENCE
# ═══════════════════════════════════════════════════════════════════════════

def _precedence_table() -> Mapping[str, int]:
    rows = (
        (1, ("->",)),
        (2, ("++", "--")),
        (3, ("**",)),
        (4, ("!", "~", "\\")),
        (5, ("=~", "!~")),
        (6, ("*", "/", "%", "x")),
        (7, ("+", "-", ".")),
        (8, ("<<", ">>")),
        (10, ("<", ">", "<=", ">=", "lt", "gt", "le", "ge")),
        (11, ("==", "!=", "<=>", "eq", "ne", "cmp", "~~")),
        (12, ("&",)),
        (13, ("|", "^")),
        (14, ("&&",)),
        (15, ("||", "//")),
        (16, ("..",)),
        (17, ("...",)),
        (18, ("?", ":")),
        (19, ("=", "+=", "-=", "*=", "/=", ".=", "%=", "x=", "**=",
              "||=", "&&=", "|=", "&=", "^=", "<<=", ">>=", "//=")),
        (20, (",", "=>")),
        (22, ("not",)),
        (23, ("and",)),
        (24, ("or", "xor")),
    )
    return MappingProxyType({op: level for level, ops in rows for op in ops})


PRECEDENCE_OF: Mapping[str, int] = _precedence_table()


def precedence_of(elem: Union[Element, str, None]) -> Optional[int]:
    """Precedence level of an operator element or spelling, or ``None``."""
    if elem is None:
        return None
    text = elem if isinstance(elem, str) else elem.content
    return PRECEDENCE_OF.get(text)


# ═══════════════════════════════════════════════════════════════════════════
#  WORD TABLES
# ═══════════════════════════════════════════════════════════════════════════

PERL_BUILTINS: FrozenSet[str] = frozenset("""
    abs accept alarm atan2 bind binmode bless break caller chdir chmod
    chomp chop chown chr chroot close closedir connect continue cos crypt
    dbmclose dbmopen default defined delete die do dump each endgrent
    endhostent endnetent endprotoent endpwent endservent eof eval
    evalbytes exec exists exit exp fc fcntl fileno flock fork format
    formline getc getgrent getgrgid getgrnam gethostbyaddr gethostbyname
    gethostent getlogin getnetbyaddr getnetbyname getnetent getpeername
    getpgrp getppid getpriority getprotobyname getprotobynumber
    getprotoent getpwent getpwnam getpwuid getservbyname getservbyport
    getservent getsockname getsockopt given glob gmtime goto grep hex
    index int ioctl join keys kill last lc lcfirst length link listen
    local localtime lock log lstat map mkdir msgctl msgget msgrcv msgsnd
    my next no oct open opendir ord our pack package pipe pop pos print
    printf prototype push quotemeta rand read readdir readline readlink
    readpipe recv redo ref rename require reset return reverse rewinddir
    rindex rmdir say scalar seek seekdir select semctl semget semop send
    setgrent sethostent setnetent setpgrp setpriority setprotoent
    setpwent setservent setsockopt shift shmctl shmget shmread shmwrite
    shutdown sin sleep socket socketpair sort splice split sprintf sqrt
    srand stat state study sub substr symlink syscall sysopen sysread
    sysseek system syswrite tell telldir tie tied time times truncate uc
    ucfirst umask undef unlink unpack unshift untie use utime values vec
    wait waitpid wantarray warn when write
""".split())

PERL_BAREWORDS: FrozenSet[str] = frozenset("""
    __FILE__ __LINE__ __PACKAGE__ __DATA__ __END__ __SUB__ AUTOLOAD
    BEGIN UNITCHECK DESTROY END INIT CHECK and cmp default do else elsif
    eq eval for foreach format ge given goto grep gt if last le lock lt
    m map ne no or our package q qq qr qw qx redo require return s sort
    sub tr unless until use when while x xor y
""".split())

PERL_FILEHANDLES: FrozenSet[str] = frozenset({
    "STDIN", "STDOUT", "STDERR", "ARGV", "ARGVOUT", "DATA",
    "*STDIN", "*STDOUT", "*STDERR", "*ARGV", "*ARGVOUT", "*DATA",
})

_LABEL_JUMPS: FrozenSet[str] = frozenset({"redo", "goto", "next", "last"})


def _text(elem: Union[Element, str, None]) -> str:
    if elem is None:
        return ""
    return elem if isinstance(elem, str) else elem.content


def is_perl_builtin(elem: Union[Element, str, None]) -> bool:
    return _text(elem) in PERL_BUILTINS


def is_perl_bareword(elem: Union[Element, str, None]) -> bool:
    return _text(elem) in PERL_BAREWORDS


def is_perl_filehandle(elem: Union[Element, str, None]) -> bool:
    return _text(elem) in PERL_FILEHANDLES


# ═══════════════════════════════════════════════════════════════════════════
#  WORD CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════════════

def _is_arrow(elem: Optional[Element]) -> bool:
    return (elem is not None and elem.kind is ElementKind.OPERATOR
            and elem.content == "->")


def _is_followed_by_parens(elem: Element) -> bool:
    sib = elem.snext_sibling()
    return sib is not None and sib.kind is ElementKind.LIST


def _statement_of(elem: Element) -> Optional[Element]:
    for node in elem.ancestors():
        if node.kind in STATEMENT_KINDS:
            return node
    return None


def is_method_call(elem: Optional[Element]) -> bool:
    """``$obj->name`` / ``Class->name``: the word right after ``->``."""
    if elem is None:
        return False
    return _is_arrow(elem.sprevious_sibling())


def is_class_name(elem: Optional[Element]) -> bool:
    """``Class->new``: followed by ``->`` and not itself after one."""
    if elem is None:
        return False
    return _is_arrow(elem.snext_sibling()) and not _is_arrow(elem.sprevious_sibling())


def is_hash_key(elem: Optional[Element]) -> bool:
    """
    A bareword used as a hash key: ``$h{key}`` or ``key => value``.

    A word followed by a parenthesised list is a call even in key
    position, as in ``$h{ lookup($k) }``.
    """
    if elem is None or _is_followed_by_parens(elem):
        return False
    parent = elem.parent
    grandparent = parent.parent if parent is not None else None
    if grandparent is not None and grandparent.kind is ElementKind.SUBSCRIPT:
        assert parent is not None
        significant = parent.schildren()
        if len(significant) == 1 and significant[0] is elem:
            return True
    sib = elem.snext_sibling()
    return (sib is not None and sib.kind is ElementKind.OPERATOR
            and sib.content == "=>")


def is_subroutine_name(elem: Optional[Element]) -> bool:
    """The name in ``sub NAME { ... }``."""
    if elem is None:
        return False
    prev = elem.sprevious_sibling()
    stmt = _statement_of(elem)
    return (prev is not None and prev.content == "sub"
            and stmt is not None and stmt.kind is ElementKind.STATEMENT_SUB)


def is_included_module_name(elem: Optional[Element]) -> bool:
    """The module in ``use Foo::Bar``, ``no strict`` or ``require Baz``."""
    if elem is None:
        return False
    stmt = elem.parent
    if stmt is None or stmt.kind is not ElementKind.STATEMENT_INCLUDE:
        return False
    return stmt.schild(1) is elem


def is_package_declaration(elem: Optional[Element]) -> bool:
    if elem is None:
        return False
    stmt = elem.parent
    if stmt is None or stmt.kind is not ElementKind.STATEMENT_PACKAGE:
        return False
    return stmt.schild(1) is elem


def is_label_pointer(elem: Optional[Element]) -> bool:
    """The label in ``next LINE``, ``last OUTER`` and friends."""
    if elem is None:
        return False
    prev = elem.sprevious_sibling()
    return (prev is not None and prev.kind is ElementKind.WORD
            and prev.content in _LABEL_JUMPS)


def is_function_call(elem: Optional[Element]) -> bool:
    """
    True when a word calls a subroutine with function-call syntax.

    Built-ins count as function calls here; callers that want to skip
    them check :func:`is_perl_builtin` separately.
    """
    if elem is None or elem.kind is not ElementKind.WORD:
        return False
    return not (
        is_hash_key(elem)
        or is_method_call(elem)
        or is_class_name(elem)
        or is_subroutine_name(elem)
        or is_included_module_name(elem)
        or is_package_declaration(elem)
        or is_perl_bareword(elem)
        or is_perl_filehandle(elem)
        or is_label_pointer(elem)
    )


__all__ = [
    "PRECEDENCE_OF",
    "PERL_BUILTINS",
    "PERL_BAREWORDS",
    "PERL_FILEHANDLES",
    "precedence_of",
    "is_perl_builtin",
    "is_perl_bareword",
    "is_perl_filehandle",
    "is_method_call",
    "is_class_name",
    "is_hash_key",
    "is_subroutine_name",
    "is_included_module_name",
    "is_package_declaration",
    "is_label_pointer",
    "is_function_call",
]
