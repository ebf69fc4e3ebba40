# tests/conftest.py
"""
Shared fixtures and Perl snippets for the perlcritic-shims test suite.
"""

import pytest

from perlcritic_shims.capture import APPLIES_TO, find_capture_violations
from perlcritic_shims.document import parse_document


# A capture passed straight to a user sub inside a match block; the call
# sits at line 2, column 5.
FLAGGED_SNIPPET = """\
if ($line =~ /^(\\w+)/) {
    frobnicate($1);
}
"""

CLEAN_SNIPPET = """\
if ($line =~ /^(\\w+)/) {
    frobnicate("$1");
}
"""


def collect_violations(source, filename="t.pl"):
    """Run the capture analysis over every call and ``s///`` in ``source``."""
    document = parse_document(source, filename)
    version = document.highest_explicit_perl_version()
    found = []
    for elem in document.find(lambda e: e.kind in APPLIES_TO):
        found.extend(find_capture_violations(elem, version))
    return found


@pytest.fixture
def parse():
    """``parse(source)`` → Document."""
    return parse_document


@pytest.fixture
def violations_for():
    """``violations_for(source)`` → list of ``(variable, subroutine)``."""
    def _run(source):
        return [(v.variable, v.subroutine) for v in collect_violations(source)]
    return _run


@pytest.fixture
def perl_file(tmp_path):
    """Write a Perl file under ``tmp_path`` and return its path."""
    def _write(name, source):
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source, encoding="utf-8")
        return path
    return _write
