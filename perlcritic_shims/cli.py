#!/usr/bin/env python3
"""perlcritic_shims/cli.py — command-line front end.

Usage examples
--------------
    # Critique files or whole directory trees (``check`` is the default)
    perlcritic-shims lib/ bin/tool.pl
    perlcritic-shims check --severity harsh --format gcc lib/

    # Read the source from stdin
    cat script.pl | perlcritic-shims check -

    # Show the element tree the policies see
    perlcritic-shims dump-tree script.pl

    # List the registered policies
    perlcritic-shims list-policies

Exit codes
----------
    0   No violations.
    1   One or more violations were reported.
    2   Infrastructure failure (missing file, unparseable source, bad profile).

The module doubles as ``python -m perlcritic_shims`` via the companion
``perlcritic_shims/__main__.py``.
"""

from __future__ import annotations

import argparse
import logging
import os
import re
import sys
import textwrap
from pathlib import Path
from typing import List, Optional, Sequence, TextIO

from sexpdata import dumps

from perlcritic_shims import __version__
from perlcritic_shims.checkers import (
    VERBOSE_FORMAT,
    CheckerRunResults,
    Severity,
    default_registry,
)
from perlcritic_shims.config import OUTPUT_FORMATS, CriticConfig, find_profile
from perlcritic_shims.document import element_to_sexp, parse_document
from perlcritic_shims.errors import ConfigError, PerlCriticShimsError

_log = logging.getLogger("perlcritic_shims")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_VIOLATIONS: int = 1
EXIT_INFRA: int = 2

COMMANDS = ("check", "dump-tree", "list-policies")
PERL_SUFFIXES = frozenset({".pl", ".pm", ".t", ".psgi"})
STDIN_NAME = "STDIN"

_SHEBANG_RE = re.compile(rb"^#!.*\bperl\b")


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``perlcritic_shims`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("perlcritic_shims")
    root.setLevel(level)
    root.handlers[:] = [handler]


def _resolve_path(raw: str, label: str = "file") -> Path:
    """Resolve *raw* to a ``Path``, raising on missing files."""
    p = Path(raw).expanduser()
    if not p.exists():
        _log.error("%s not found: %s", label, p)
        raise SystemExit(EXIT_INFRA)
    return p


def _open_output(dest: Optional[str]) -> TextIO:
    """Return a writable text stream.

    *dest* ``None`` or ``"-"`` → ``sys.stdout``; otherwise open the path
    for writing (creating parent directories as needed).
    """
    if dest is None or dest == "-":
        return sys.stdout
    p = Path(dest).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "w", encoding="utf-8")


def is_perl_file(path: Path) -> bool:
    """A Perl suffix, or no suffix and a ``perl`` shebang line."""
    if path.suffix in PERL_SUFFIXES:
        return True
    if path.suffix:
        return False
    try:
        with open(path, "rb") as fh:
            first = fh.readline(256)
    except OSError:
        return False
    return bool(_SHEBANG_RE.match(first))


def collect_perl_files(paths: Sequence[str]) -> List[str]:
    """
    Expand *paths* into the files to critique.

    Files named explicitly are always kept; directories are walked
    recursively (hidden entries skipped) for Perl files.  ``-`` stands
    for standard input.
    """
    files: List[str] = []
    for raw in paths:
        if raw == "-":
            files.append(raw)
            continue
        path = _resolve_path(raw, "input")
        if path.is_file():
            files.append(str(path))
            continue
        for root, dirs, names in os.walk(path):
            dirs[:] = sorted(d for d in dirs if not d.startswith("."))
            for name in sorted(names):
                candidate = Path(root) / name
                if not name.startswith(".") and is_perl_file(candidate):
                    files.append(str(candidate))
    return files


def _read_source(name: str) -> str:
    if name == "-":
        return sys.stdin.read()
    return Path(name).read_text(encoding="utf-8", errors="replace")


def _build_config(args: argparse.Namespace) -> CriticConfig:
    """Profile first, then command-line overrides."""
    config = CriticConfig(verbosity=args.verbose)
    if not args.noprofile:
        profile = find_profile(args.profile)
        if profile is not None:
            config.apply_profile(profile)
    if args.severity is not None:
        try:
            config.severity = Severity.parse(args.severity)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc
    if args.theme:
        config.themes = {t.lower() for t in args.theme}
    config.include.extend(args.include or [])
    config.exclude.extend(args.exclude or [])
    if args.format is not None:
        config.output_format = args.format
    return config


def format_results(
    results: CheckerRunResults,
    fmt: str,
    template: Optional[str] = None,
) -> str:
    """Render *results* in one of :data:`OUTPUT_FORMATS`."""
    if fmt == "json":
        return results.to_json_lines()
    if fmt == "gcc":
        return results.to_gcc_format()
    if fmt == "summary":
        return results.summary()

    if template is None:
        template = VERBOSE_FORMAT
        if len(results.files) > 1:
            template = "%f: " + template
    lines: List[str] = []
    for file in results.files:
        diags = results.by_file(file)
        if not diags:
            lines.append(f"{file} source OK")
        lines.extend(d.to_verbose(template) for d in diags)
    return "\n".join(lines)


def _write(dest: Optional[str], text: str) -> None:
    out = _open_output(dest)
    try:
        if text:
            out.write(text + "\n")
    finally:
        if out is not sys.stdout:
            out.close()


# ===========================================================================
# Sub-command implementations
# ===========================================================================

def cmd_check(args: argparse.Namespace) -> int:
    """Run the selected policies over every input file."""
    try:
        config = _build_config(args)
    except ConfigError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA
    for warning in config.validate():
        _log.warning("config: %s", warning)

    files = collect_perl_files(args.paths or ["-"])
    if not files:
        _log.error("no Perl files found in %s", ", ".join(args.paths))
        return EXIT_INFRA
    _log.info("critiquing %d file(s) at severity %d", len(files), config.severity)

    runner = config.build_runner()
    results = CheckerRunResults()
    failed = 0
    for name in files:
        filename = STDIN_NAME if name == "-" else name
        try:
            document = parse_document(_read_source(name), filename)
        except (OSError, PerlCriticShimsError) as exc:
            _log.error("%s: cannot parse: %s", filename, exc)
            failed += 1
            continue
        results.merge(runner.run(document))

    _write(args.output, format_results(results, config.output_format, args.template))

    if failed:
        return EXIT_INFRA
    return EXIT_VIOLATIONS if results.total_count else EXIT_OK


def cmd_dump_tree(args: argparse.Namespace) -> int:
    """Print the element tree of a file as S-expressions, one per statement."""
    name = args.source_file
    if name != "-":
        _resolve_path(name, "source file")
    filename = STDIN_NAME if name == "-" else name
    try:
        document = parse_document(_read_source(name), filename)
    except (OSError, PerlCriticShimsError) as exc:
        _log.error("%s: cannot parse: %s", filename, exc)
        return EXIT_INFRA

    significant_only = not args.all
    top = document.schildren() if significant_only else document.children
    _write(args.output, "\n".join(
        dumps(element_to_sexp(elem, significant_only)) for elem in top
    ))
    return EXIT_OK


def cmd_list_policies(args: argparse.Namespace) -> int:
    """List the registered policies with their severity and themes."""
    registry = default_registry()
    lines = []
    for cls in sorted(registry.get_all(), key=lambda c: c.name):
        severity = cls.default_severity
        themes = " ".join(sorted(cls.default_themes))
        lines.append(f"{cls.name}  {int(severity)} ({severity.name.lower()})  [{themes}]")
        if args.long and cls.description:
            lines.append(f"    {cls.description}")
    lines.append(f"\n{len(registry.get_all())} policy(ies) available.")
    _write(args.output, "\n".join(lines))
    return EXIT_OK


# ===========================================================================
# Argument parser construction
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    """Construct the full CLI argument parser with subcommands."""

    # --- Top-level parser --------------------------------------------------
    parser = argparse.ArgumentParser(
        prog="perlcritic-shims",
        description=(
            "Perl::Critic-style policies for Perl source, in Python.\n\n"
            "Parses Perl files into a PPI-like element tree and reports\n"
            "policy violations such as capture variables passed to subroutines."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              perlcritic-shims lib/
              perlcritic-shims check --severity 3 --format gcc bin/tool.pl
              perlcritic-shims dump-tree script.pl
              perlcritic-shims list-policies
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    def _add_output_args(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "-o", "--output",
            default=None,
            metavar="FILE",
            help='Output file ("-" or omit for stdout).',
        )

    # --- check -------------------------------------------------------------
    p_check = subparsers.add_parser(
        "check",
        help="Critique Perl files (default command).",
        description=(
            "Parse each Perl file and report the violations of every "
            "policy at or above the minimum severity."
        ),
    )
    p_check.add_argument(
        "paths",
        nargs="*",
        metavar="PATH",
        help="Files or directories to critique (default: stdin).",
    )
    g = p_check.add_argument_group("policy selection")
    g.add_argument(
        "-s", "--severity",
        default=None,
        metavar="N",
        help="Minimum severity, 1-5 or brutal..gentle (default: 4, stern).",
    )
    g.add_argument(
        "--theme",
        action="append",
        metavar="THEME",
        help="Run only policies with this theme (repeatable).",
    )
    g.add_argument(
        "--include",
        action="append",
        metavar="PATTERN",
        help="Always run policies whose name contains PATTERN.",
    )
    g.add_argument(
        "--exclude",
        action="append",
        metavar="PATTERN",
        help="Never run policies whose name contains PATTERN.",
    )
    g.add_argument(
        "--profile",
        default=None,
        metavar="FILE",
        help="Profile to read instead of $PERLCRITIC or .perlcriticrc.",
    )
    g.add_argument(
        "--noprofile",
        action="store_true",
        help="Ignore every profile.",
    )
    p_check.add_argument(
        "-f", "--format",
        choices=OUTPUT_FORMATS,
        default=None,
        help="Output format (default: verbose).",
    )
    p_check.add_argument(
        "--template",
        default=None,
        metavar="FMT",
        help="Template for the verbose format (%%f %%l %%c %%m %%e %%s %%p %%r).",
    )
    _add_output_args(p_check)
    p_check.set_defaults(func=cmd_check)

    # --- dump-tree ---------------------------------------------------------
    p_dump = subparsers.add_parser(
        "dump-tree",
        help="Print the element tree of a Perl file.",
        description="Parse a Perl file and print its element tree as S-expressions.",
    )
    p_dump.add_argument(
        "source_file",
        metavar="SOURCE",
        help='Perl source file ("-" for stdin).',
    )
    p_dump.add_argument(
        "-a", "--all",
        action="store_true",
        help="Include whitespace, comments and POD.",
    )
    _add_output_args(p_dump)
    p_dump.set_defaults(func=cmd_dump_tree)

    # --- list-policies -----------------------------------------------------
    p_list = subparsers.add_parser(
        "list-policies",
        help="List the registered policies.",
        description="Show each policy with its default severity and themes.",
    )
    p_list.add_argument(
        "-l", "--long",
        action="store_true",
        help="Include each policy's description.",
    )
    _add_output_args(p_list)
    p_list.set_defaults(func=cmd_list_policies)

    return parser


def _with_default_command(argv: Sequence[str]) -> List[str]:
    """Insert ``check`` when the arguments name no command."""
    args = list(argv)
    i = 0
    while i < len(args) and re.fullmatch(r"-v+|--verbose", args[i]):
        i += 1
    if i < len(args) and args[i] not in COMMANDS \
            and args[i] not in ("-h", "--help", "--version"):
        args.insert(i, "check")
    return args


# ===========================================================================
# Main entry point
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the CLI.

    Parameters
    ----------
    argv:
        Command-line arguments.  ``None`` → ``sys.argv[1:]``.

    Returns
    -------
    int
        Exit code (see module docstring for semantics).
    """
    parser = _build_parser()
    raw = sys.argv[1:] if argv is None else argv
    args = parser.parse_args(_with_default_command(raw))

    _configure_logging(args.verbose)

    # No subcommand given → print help.
    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    try:
        return args.func(args)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130  # Standard UNIX convention for SIGINT
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_INFRA
    except Exception as exc:
        _log.error("Unhandled exception: %s", exc, exc_info=True)
        return EXIT_INFRA


if __name__ == "__main__":
    raise SystemExit(main())
