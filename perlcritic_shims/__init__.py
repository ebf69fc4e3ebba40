"""
perlcritic_shims — Perl::Critic-style analysis in Python
========================================================

A small static-analysis toolkit for Perl sources: a tokenizer and a
PPI-like element tree, classification helpers, a checker framework, and
the ``Subroutines::ProhibitPassingCaptureVariable`` policy.

Core modules
------------
lexer
    Context-sensitive Perl tokenizer built on a ``parsimonious`` grammar.
elements
    Element tree types (tokens, statements, structures, documents).
document
    Tree builder and :func:`parse_document`.
utils
    Operator precedence and word classification.
capture
    The capture-variable analysis behind the policy.
checkers
    Diagnostics, ``## no critic`` handling, registry and runner.
config
    Run configuration and ``.perlcriticrc`` profiles.

Quick start
-----------
>>> from perlcritic_shims import parse_document, CheckerRunner
>>> doc = parse_document("if (/(\\w+)/) { frobnicate($1) }", "demo.pl")
>>> for diag in CheckerRunner().run(doc).diagnostics:
...     print(diag.to_verbose())
Capture variable "$1" passed to subroutine "frobnicate" at line 1, column 16. ...
"""

from __future__ import annotations

import importlib
import logging
import sys
from typing import Dict, List

__version__ = "0.1.0"
__all__: List[str] = []          # populated below

_log = logging.getLogger(__name__)
_log.addHandler(logging.NullHandler())

# module name → public symbols re-exported at package level
_CORE_MODULES: Dict[str, List[str]] = {
    "errors": [
        "PerlCriticShimsError",
        "TokenizeError",
        "TreeBuildError",
        "ConfigError",
    ],
    "elements": [
        "ElementKind",
        "Element",
        "Token",
        "Node",
        "Statement",
        "Structure",
        "Document",
    ],
    "perl_version": ["PerlVersion"],
    "document": ["parse_document", "element_to_sexp"],
    "capture": ["CaptureViolation", "find_capture_violations"],
    "checkers": [
        "Severity",
        "Diagnostic",
        "SuppressionManager",
        "Checker",
        "CheckerRegistry",
        "CheckerRunner",
        "CheckerRunResults",
        "ProhibitPassingCaptureVariable",
        "default_registry",
    ],
    "config": ["CriticConfig", "find_profile"],
}


def _import_names(module_rel_name: str, names: List[str]) -> None:
    """Bind ``names`` from a submodule into the package namespace."""
    mod = importlib.import_module(f"{__name__}.{module_rel_name}")
    current_module = sys.modules[__name__]
    for name in names:
        setattr(current_module, name, getattr(mod, name))
        __all__.append(name)


for _mod_name, _names in _CORE_MODULES.items():
    _import_names(_mod_name, _names)

__all__.append("__version__")
