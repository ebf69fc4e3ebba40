# tests/test_checkers.py
"""
Tests for the policy framework: severities, diagnostics and their
formats, ``## no critic`` suppressions, the registry, policy selection
and the runner around ProhibitPassingCaptureVariable.
"""

import json
from typing import ClassVar, FrozenSet

import pytest

from perlcritic_shims.checkers import (
    Checker,
    CheckerRegistry,
    CheckerRunner,
    CheckerRunResults,
    Diagnostic,
    ProhibitPassingCaptureVariable,
    Severity,
    SourceLocation,
    SuppressionManager,
    default_registry,
)
from perlcritic_shims.document import parse_document
from perlcritic_shims.elements import ElementKind

from conftest import CLEAN_SNIPPET, FLAGGED_SNIPPET

POLICY = ProhibitPassingCaptureVariable.name


def _run(source, filename="t.pl", **runner_kwargs):
    runner = CheckerRunner(**runner_kwargs)
    return runner.run(parse_document(source, filename))


def _diagnostic(line=1, policy=POLICY, file="t.pl", severity=Severity.STERN):
    return Diagnostic(
        policy=policy,
        message="m",
        explanation="e",
        severity=severity,
        location=SourceLocation(file=file, line=line, column=1),
    )


class _ExplodingChecker(Checker):
    name: ClassVar[str] = "Testing::Explode"
    default_severity: ClassVar[Severity] = Severity.GENTLE
    applies_to: ClassVar[FrozenSet[ElementKind]] = frozenset({ElementKind.WORD})

    def violates(self, elem, ctx):
        raise RuntimeError("boom")


class TestSeverity:

    @pytest.mark.parametrize("value,expected", [
        (5, Severity.GENTLE),
        ("1", Severity.BRUTAL),
        ("harsh", Severity.HARSH),
        (" Stern ", Severity.STERN),
        (Severity.CRUEL, Severity.CRUEL),
    ])
    def test_parse(self, value, expected):
        assert Severity.parse(value) is expected

    @pytest.mark.parametrize("value", ["extreme", "0", 6])
    def test_parse_rejects(self, value):
        with pytest.raises(ValueError):
            Severity.parse(value)

    def test_higher_number_is_more_severe(self):
        assert Severity.GENTLE > Severity.STERN > Severity.BRUTAL


class TestDiagnostics:

    def test_policy_diagnostic(self):
        results = _run(FLAGGED_SNIPPET)
        assert results.total_count == 1
        diag = results.diagnostics[0]
        assert diag.policy == POLICY
        assert diag.message == 'Capture variable "$1" passed to subroutine "frobnicate"'
        assert diag.severity is Severity.STERN
        assert (diag.location.line, diag.location.column) == (2, 5)
        assert diag.source == "    frobnicate($1);"
        assert diag.evidence == {"variable": "$1", "subroutine": "frobnicate"}

    def test_clean_source(self):
        assert _run(CLEAN_SNIPPET).total_count == 0

    def test_verbose_template(self):
        diag = _run(FLAGGED_SNIPPET).diagnostics[0]
        assert diag.to_verbose() == (
            'Capture variable "$1" passed to subroutine "frobnicate" at line 2, '
            "column 5.  Any regular expression in the subroutine will modify "
            "the caller's copy.  (Severity: 4)"
        )
        assert diag.to_verbose("%f:%l:%c %p 100%%") == f"t.pl:2:5 {POLICY} 100%"
        assert diag.to_verbose("[%r]") == "[    frobnicate($1);]"

    def test_gcc_format(self):
        diag = _run(FLAGGED_SNIPPET).diagnostics[0]
        assert diag.to_gcc_format().startswith("t.pl:2:5: severity 4: Capture variable")
        assert diag.to_gcc_format().endswith(f"[{POLICY}]")

    def test_json(self):
        diag = _run(FLAGGED_SNIPPET).diagnostics[0]
        data = json.loads(diag.to_json_str())
        assert data["line"] == 2
        assert data["severity"] == 4
        assert data["evidence"]["subroutine"] == "frobnicate"

    def test_location_str(self):
        assert str(SourceLocation("a.pl", 3, 7)) == "a.pl:3:7"
        assert str(SourceLocation("a.pl", 3)) == "a.pl:3"


class TestSuppressions:

    def test_trailing_no_critic(self):
        source = "foo($1); ## no critic\nbar($1);\n"
        results = _run(source)
        assert [d.location.line for d in results.diagnostics] == [2]

    def test_named_no_critic(self):
        source = (
            "foo($1); ## no critic (ProhibitPassingCaptureVariable)\n"
            "bar($1); ## no critic (ProhibitMagicNumbers)\n"
        )
        assert [d.location.line for d in _run(source).diagnostics] == [2]

    def test_qw_names(self):
        source = "foo($1); ## no critic qw(Subroutines::ProhibitPassing)\n"
        assert _run(source).total_count == 0

    def test_region_until_use_critic(self):
        source = (
            "## no critic\n"
            "foo($1);\n"
            "bar($1);\n"
            "## use critic\n"
            "baz($1);\n"
        )
        assert [d.location.line for d in _run(source).diagnostics] == [5]

    def test_region_to_end_of_file(self):
        source = "foo($1);\n## no critic\nbar($1);\nbaz($1);\n"
        assert [d.location.line for d in _run(source).diagnostics] == [1]

    def test_plain_comment_ignored(self):
        assert _run("foo($1); # no critic\n").total_count == 1

    def test_global_suppression(self):
        sm = SuppressionManager()
        sm.add_global_suppression(POLICY)
        assert sm.is_suppressed(_diagnostic())

    def test_file_suppression(self):
        sm = SuppressionManager()
        sm.add_file_suppression(POLICY, "lib/*.pm")
        assert sm.is_suppressed(_diagnostic(file="lib/Foo.pm"))
        assert not sm.is_suppressed(_diagnostic(file="bin/tool.pl"))

    def test_filter(self):
        sm = SuppressionManager()
        sm.add_global_suppression("Other::Policy")
        kept = sm.filter_diagnostics([_diagnostic(), _diagnostic(policy="Other::Policy")])
        assert [d.policy for d in kept] == [POLICY]


class TestRegistry:

    def test_default_registry(self):
        registry = default_registry()
        assert registry.get_by_name(POLICY) is ProhibitPassingCaptureVariable
        assert POLICY in registry.names

    def test_filters(self):
        registry = CheckerRegistry()
        registry.register(ProhibitPassingCaptureVariable)
        registry.register(_ExplodingChecker)
        assert registry.filter_by_theme("bugs") == [ProhibitPassingCaptureVariable]
        assert registry.filter_by_severity(Severity.GENTLE) == [_ExplodingChecker]
        assert len(registry.filter_by_severity(Severity.STERN)) == 2

    def test_disable_and_unregister(self):
        registry = CheckerRegistry()
        registry.register(ProhibitPassingCaptureVariable)
        registry.disable(POLICY)
        assert registry.get_enabled() == []
        registry.enable(POLICY)
        assert registry.get_enabled() == [ProhibitPassingCaptureVariable]
        registry.unregister(POLICY)
        assert registry.get_all() == []


class TestSelection:

    def test_default_severity_runs_policy(self):
        assert _run(FLAGGED_SNIPPET, severity=Severity.STERN).total_count == 1
        assert _run(FLAGGED_SNIPPET, severity=Severity.BRUTAL).total_count == 1

    def test_gentle_skips_policy(self):
        assert _run(FLAGGED_SNIPPET, severity=Severity.GENTLE).total_count == 0

    def test_include_overrides_severity(self):
        results = _run(FLAGGED_SNIPPET, severity=Severity.GENTLE,
                       include=["capturevariable"])
        assert results.total_count == 1

    def test_exclude(self):
        assert _run(FLAGGED_SNIPPET, exclude=["Subroutines"]).total_count == 0

    def test_themes(self):
        assert _run(FLAGGED_SNIPPET, themes={"bugs"}).total_count == 1
        assert _run(FLAGGED_SNIPPET, themes={"cosmetic"}).total_count == 0

    def test_severity_override(self):
        results = _run(FLAGGED_SNIPPET, severity=Severity.GENTLE,
                       severity_overrides={POLICY: Severity.GENTLE})
        assert results.diagnostics[0].severity is Severity.GENTLE


class TestRunner:

    def test_failing_policy_reported_not_raised(self):
        registry = CheckerRegistry()
        registry.register(_ExplodingChecker)
        results = _run("foo();", registry=registry)
        assert [d.policy for d in results.diagnostics] == ["internalError"]
        assert "boom" in results.diagnostics[0].message

    def test_options_reach_context(self):
        seen = []

        class _OptionReader(_ExplodingChecker):
            name: ClassVar[str] = "Testing::Options"

            def violates(self, elem, ctx):
                seen.append(ctx.options.get(self.name, {}))
                return []

        registry = CheckerRegistry()
        registry.register(_OptionReader)
        _run("foo();", registry=registry,
             options={"Testing::Options": {"max": "2"}})
        assert seen == [{"max": "2"}]

    def test_diagnostics_sorted_by_position(self):
        results = _run("bar($2);\nfoo($1, $3);\n")
        assert [(d.location.line, d.location.column) for d in results.diagnostics] == [
            (1, 1), (2, 1), (2, 1),
        ]

    def test_merge_and_summary(self):
        merged = CheckerRunResults()
        merged.merge(_run(FLAGGED_SNIPPET, filename="a.pl"))
        merged.merge(_run(CLEAN_SNIPPET, filename="b.pl"))
        assert merged.files == ["a.pl", "b.pl"]
        assert merged.checker_names == [POLICY]
        assert len(merged.by_file("a.pl")) == 1
        assert merged.by_file("b.pl") == []
        summary = merged.summary()
        assert summary.splitlines()[0] == "2 file(s) checked: 1 violation(s)"
        assert "  severity 4: 1" in summary

    def test_output_helpers(self):
        results = _run(FLAGGED_SNIPPET)
        assert results.by_policy(POLICY) == results.diagnostics
        assert results.by_severity(Severity.STERN) == results.diagnostics
        assert len(results.to_json_lines().splitlines()) == 1
        assert results.to_gcc_format().startswith("t.pl:2:5:")
