"""
perlcritic_shims/config.py
══════════════════════════

Run configuration and ``.perlcriticrc`` profiles.

A profile is an INI file.  Settings before the first section are global;
each section names a policy (with or without the
``Perl::Critic::Policy::`` prefix), and a leading ``-`` disables it::

    severity = 3
    theme    = bugs
    exclude  = Variables

    [Subroutines::ProhibitPassingCaptureVariable]
    severity = 5

    [-ValuesAndExpressions::ProhibitMagicNumbers]

Profile lookup order: explicit path, ``$PERLCRITIC``, ``./.perlcriticrc``,
``~/.perlcriticrc``.  Command-line flags override profile values.
"""

from __future__ import annotations

import configparser
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Set

from perlcritic_shims.checkers import (
    CheckerRegistry,
    CheckerRunner,
    Severity,
    SuppressionManager,
)
from perlcritic_shims.errors import ConfigError, ErrorCodes

logger = logging.getLogger(__name__)

PROFILE_NAME = ".perlcriticrc"
PROFILE_ENV = "PERLCRITIC"
OUTPUT_FORMATS = ("verbose", "gcc", "json", "summary")

_GLOBAL_SECTION = "__global__"
_POLICY_PREFIX = "Perl::Critic::Policy::"
# Theme expressions may use boolean operators; only the names matter here.
_THEME_OPERATORS = frozenset({"and", "or", "not", "&&", "||", "!", "+", "-", "*", "(", ")"})


@dataclass
class CriticConfig:
    """Everything that decides which policies run and how results print."""
    severity: Severity = Severity.STERN
    themes: Set[str] = field(default_factory=set)
    exclude: List[str] = field(default_factory=list)
    include: List[str] = field(default_factory=list)
    output_format: str = "verbose"
    verbosity: int = 0
    disabled_policies: Set[str] = field(default_factory=set)
    policy_severity: Dict[str, Severity] = field(default_factory=dict)
    policy_options: Dict[str, Dict[str, str]] = field(default_factory=dict)
    profile_path: Optional[Path] = None

    def validate(self) -> List[str]:
        """Return a list of validation warnings (empty if valid)."""
        warnings: List[str] = []
        if self.output_format not in OUTPUT_FORMATS:
            warnings.append(
                f"output_format must be one of {', '.join(OUTPUT_FORMATS)}"
            )
        if self.verbosity < 0:
            warnings.append("verbosity must be non-negative")
        overlap = set(self.include) & set(self.exclude)
        if overlap:
            warnings.append(
                f"patterns both included and excluded: {', '.join(sorted(overlap))}"
            )
        return warnings

    # ── profiles ─────────────────────────────────────────────────────

    def apply_profile(self, path: Path) -> None:
        """Merge the settings of the profile at ``path`` into this config."""
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"cannot read profile {path}: {exc}",
                              code=ErrorCodes.BAD_PROFILE) from exc

        parser = configparser.ConfigParser(
            default_section="__defaults__",
            interpolation=None,
            inline_comment_prefixes=("#",),
            strict=False,
        )
        parser.optionxform = str.lower  # type: ignore[assignment,method-assign]
        try:
            parser.read_string(f"[{_GLOBAL_SECTION}]\n{text}", source=str(path))
        except configparser.Error as exc:
            raise ConfigError(f"malformed profile {path}: {exc}",
                              code=ErrorCodes.BAD_PROFILE) from exc

        self._apply_globals(parser[_GLOBAL_SECTION], path)
        for section in parser.sections():
            if section != _GLOBAL_SECTION:
                self._apply_policy_section(section, parser[section], path)
        self.profile_path = path
        logger.info("loaded profile %s", path)

    def _apply_globals(self, values: Mapping[str, str], path: Path) -> None:
        if "severity" in values:
            self.severity = _parse_severity(values["severity"], path)
        if "theme" in values:
            self.themes = parse_theme(values["theme"])
        if "exclude" in values:
            self.exclude = values["exclude"].split()
        if "include" in values:
            self.include = values["include"].split()
        if "format" in values:
            self.output_format = values["format"].strip()

    def _apply_policy_section(
        self, section: str, values: Mapping[str, str], path: Path
    ) -> None:
        disabled = section.startswith("-")
        name = section.lstrip("-").strip()
        if name.startswith(_POLICY_PREFIX):
            name = name[len(_POLICY_PREFIX):]
        if disabled:
            self.disabled_policies.add(name)
            return
        options = dict(values)
        if "severity" in options:
            self.policy_severity[name] = _parse_severity(options.pop("severity"), path)
        if options:
            self.policy_options[name] = options

    # ── wiring ───────────────────────────────────────────────────────

    def build_runner(self, registry: Optional[CheckerRegistry] = None) -> CheckerRunner:
        """A :class:`CheckerRunner` honouring this configuration."""
        suppressions = SuppressionManager()
        for name in self.disabled_policies:
            suppressions.add_global_suppression(name)
        return CheckerRunner(
            registry=registry,
            suppressions=suppressions,
            options=self.policy_options,
            severity=self.severity,
            themes=self.themes,
            include=self.include,
            exclude=self.exclude,
            severity_overrides=self.policy_severity,
        )


def _parse_severity(raw: str, path: Optional[Path] = None) -> Severity:
    try:
        return Severity.parse(raw)
    except ValueError as exc:
        where = f" in {path}" if path is not None else ""
        raise ConfigError(f"invalid severity {raw!r}{where}",
                          code=ErrorCodes.BAD_OPTION) from exc


def parse_theme(expression: str) -> Set[str]:
    """Theme names mentioned in a Perl::Critic theme expression."""
    tokens = re.findall(r"&&|\|\||[()!+*-]|[\w:]+", expression)
    return {t.lower() for t in tokens if t.lower() not in _THEME_OPERATORS}


def find_profile(
    explicit: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    cwd: Optional[Path] = None,
    home: Optional[Path] = None,
) -> Optional[Path]:
    """
    Locate the profile to use, or ``None``.

    An explicit path that does not exist is an error; the implicit
    locations are simply skipped when absent.
    """
    if explicit:
        path = Path(explicit).expanduser()
        if not path.is_file():
            raise ConfigError(f"profile not found: {path}", code=ErrorCodes.BAD_PROFILE)
        return path
    env = os.environ if environ is None else environ
    candidates = []
    if env.get(PROFILE_ENV):
        candidates.append(Path(env[PROFILE_ENV]).expanduser())
    candidates.append((cwd or Path.cwd()) / PROFILE_NAME)
    candidates.append((home or Path.home()) / PROFILE_NAME)
    for path in candidates:
        if path.is_file():
            logger.debug("using profile %s", path)
            return path
    return None


__all__ = [
    "PROFILE_NAME",
    "PROFILE_ENV",
    "OUTPUT_FORMATS",
    "CriticConfig",
    "parse_theme",
    "find_profile",
]
