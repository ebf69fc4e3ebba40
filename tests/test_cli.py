# tests/test_cli.py
"""
Tests for the perlcritic-shims command line: exit codes, the default
``check`` command, output formats, file collection, stdin, profiles and
the dump-tree / list-policies commands.
"""

import io
import json

import pytest

from perlcritic_shims import __version__
from perlcritic_shims.checkers import ProhibitPassingCaptureVariable
from perlcritic_shims.cli import (
    EXIT_INFRA,
    EXIT_OK,
    EXIT_VIOLATIONS,
    _with_default_command,
    collect_perl_files,
    is_perl_file,
    main,
)

from conftest import CLEAN_SNIPPET, FLAGGED_SNIPPET

POLICY = ProhibitPassingCaptureVariable.name


class TestDefaultCommand:

    @pytest.mark.parametrize("argv,expected", [
        (["a.pl"], ["check", "a.pl"]),
        (["--noprofile", "a.pl"], ["check", "--noprofile", "a.pl"]),
        (["-v", "a.pl"], ["-v", "check", "a.pl"]),
        (["check", "a.pl"], ["check", "a.pl"]),
        (["dump-tree", "a.pl"], ["dump-tree", "a.pl"]),
        (["--version"], ["--version"]),
        ([], []),
    ])
    def test_insertion(self, argv, expected):
        assert _with_default_command(argv) == expected

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as info:
            main(["--version"])
        assert info.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_no_arguments_prints_help(self, capsys):
        assert main([]) == EXIT_INFRA
        assert "usage:" in capsys.readouterr().err


class TestCheck:

    def test_violation(self, perl_file, capsys):
        path = perl_file("flagged.pl", FLAGGED_SNIPPET)
        assert main(["--noprofile", str(path)]) == EXIT_VIOLATIONS
        out = capsys.readouterr().out
        assert 'Capture variable "$1" passed to subroutine "frobnicate"' in out
        assert "at line 2, column 5." in out

    def test_clean(self, perl_file, capsys):
        path = perl_file("clean.pl", CLEAN_SNIPPET)
        assert main(["check", "--noprofile", str(path)]) == EXIT_OK
        assert capsys.readouterr().out.strip() == f"{path} source OK"

    def test_multiple_files_prefix_names(self, perl_file, capsys):
        flagged = perl_file("a.pl", FLAGGED_SNIPPET)
        clean = perl_file("b.pl", CLEAN_SNIPPET)
        assert main(["--noprofile", str(flagged), str(clean)]) == EXIT_VIOLATIONS
        lines = capsys.readouterr().out.splitlines()
        assert lines[0].startswith(f"{flagged}: Capture variable")
        assert lines[1] == f"{clean} source OK"

    def test_missing_file(self, tmp_path):
        assert main(["--noprofile", str(tmp_path / "nope.pl")]) == EXIT_INFRA

    def test_unparseable_file(self, perl_file, capsys):
        bad = perl_file("bad.pl", "foo(1];\n")
        good = perl_file("good.pl", FLAGGED_SNIPPET)
        assert main(["--noprofile", str(bad), str(good)]) == EXIT_INFRA
        captured = capsys.readouterr()
        assert "cannot parse" in captured.err
        assert "frobnicate" in captured.out

    def test_json_format(self, perl_file, capsys):
        path = perl_file("flagged.pl", FLAGGED_SNIPPET)
        assert main(["--noprofile", "-f", "json", str(path)]) == EXIT_VIOLATIONS
        record = json.loads(capsys.readouterr().out.strip())
        assert record["policy"] == POLICY
        assert record["evidence"] == {"variable": "$1", "subroutine": "frobnicate"}

    def test_gcc_format(self, perl_file, capsys):
        path = perl_file("flagged.pl", FLAGGED_SNIPPET)
        main(["--noprofile", "--format", "gcc", str(path)])
        assert f"{path}:2:5: severity 4:" in capsys.readouterr().out

    def test_summary_format(self, perl_file, capsys):
        path = perl_file("flagged.pl", FLAGGED_SNIPPET)
        main(["--noprofile", "-f", "summary", str(path)])
        assert "1 file(s) checked: 1 violation(s)" in capsys.readouterr().out

    def test_template(self, perl_file, capsys):
        path = perl_file("flagged.pl", FLAGGED_SNIPPET)
        main(["--noprofile", "--template", "%l:%c:%p", str(path)])
        assert capsys.readouterr().out.strip() == f"2:5:{POLICY}"

    def test_severity_threshold(self, perl_file):
        path = perl_file("flagged.pl", FLAGGED_SNIPPET)
        assert main(["--noprofile", "--severity", "5", str(path)]) == EXIT_OK
        assert main(["--noprofile", "-s", "brutal", str(path)]) == EXIT_VIOLATIONS

    def test_bad_severity(self, perl_file):
        path = perl_file("flagged.pl", FLAGGED_SNIPPET)
        assert main(["--noprofile", "-s", "extreme", str(path)]) == EXIT_INFRA

    def test_theme_and_exclude(self, perl_file):
        path = perl_file("flagged.pl", FLAGGED_SNIPPET)
        assert main(["--noprofile", "--theme", "cosmetic", str(path)]) == EXIT_OK
        assert main(["--noprofile", "--exclude", "Capture", str(path)]) == EXIT_OK
        assert main(["--noprofile", "-s", "5", "--include", "Capture",
                     str(path)]) == EXIT_VIOLATIONS

    def test_output_file(self, perl_file, tmp_path):
        path = perl_file("flagged.pl", FLAGGED_SNIPPET)
        report = tmp_path / "out" / "report.txt"
        main(["--noprofile", "-o", str(report), str(path)])
        assert "frobnicate" in report.read_text(encoding="utf-8")

    def test_stdin(self, monkeypatch, capsys):
        monkeypatch.setattr("sys.stdin", io.StringIO("foo($1);\n"))
        assert main(["check", "--noprofile", "-"]) == EXIT_VIOLATIONS
        assert "at line 1, column 1." in capsys.readouterr().out

    def test_stdin_by_default(self, monkeypatch, capsys):
        monkeypatch.setattr("sys.stdin", io.StringIO("foo($1);\n"))
        assert main(["check", "--noprofile", "-f", "gcc"]) == EXIT_VIOLATIONS
        assert capsys.readouterr().out.startswith("STDIN:1:1:")


class TestProfiles:

    def test_explicit_profile(self, perl_file, tmp_path):
        path = perl_file("flagged.pl", FLAGGED_SNIPPET)
        rc = tmp_path / "critic.ini"
        rc.write_text(f"[-{POLICY}]\n", encoding="utf-8")
        assert main(["--profile", str(rc), str(path)]) == EXIT_OK

    def test_missing_profile(self, perl_file, tmp_path):
        path = perl_file("flagged.pl", FLAGGED_SNIPPET)
        assert main(["--profile", str(tmp_path / "nope.ini"), str(path)]) == EXIT_INFRA

    def test_environment_profile(self, perl_file, tmp_path, monkeypatch):
        path = perl_file("flagged.pl", FLAGGED_SNIPPET)
        rc = tmp_path / "env.ini"
        rc.write_text("severity = gentle\n", encoding="utf-8")
        monkeypatch.setenv("PERLCRITIC", str(rc))
        assert main([str(path)]) == EXIT_OK
        assert main(["--noprofile", str(path)]) == EXIT_VIOLATIONS

    def test_command_line_beats_profile(self, perl_file, tmp_path, monkeypatch):
        path = perl_file("flagged.pl", FLAGGED_SNIPPET)
        rc = tmp_path / "env.ini"
        rc.write_text("severity = gentle\n", encoding="utf-8")
        monkeypatch.setenv("PERLCRITIC", str(rc))
        assert main(["-s", "4", str(path)]) == EXIT_VIOLATIONS


class TestFileCollection:

    def test_directory_walk(self, perl_file, tmp_path):
        perl_file("lib/Foo.pm", "1;\n")
        perl_file("t/basic.t", "1;\n")
        perl_file("bin/tool", "#!/usr/bin/env perl\n1;\n")
        perl_file("bin/notes", "just text\n")
        perl_file("README.md", "# readme\n")
        perl_file(".hidden/Skip.pm", "1;\n")
        found = collect_perl_files([str(tmp_path)])
        names = sorted(p.rsplit("/", 1)[-1] for p in found)
        assert names == ["Foo.pm", "basic.t", "tool"]

    def test_explicit_file_always_kept(self, perl_file):
        path = perl_file("notes.txt", "foo($1);\n")
        assert collect_perl_files([str(path)]) == [str(path)]

    def test_stdin_marker(self):
        assert collect_perl_files(["-"]) == ["-"]

    def test_is_perl_file(self, perl_file):
        assert is_perl_file(perl_file("x.pm", ""))
        assert is_perl_file(perl_file("script", "#!/usr/bin/perl -w\n"))
        assert not is_perl_file(perl_file("x.py", "#!/usr/bin/perl\n"))
        assert not is_perl_file(perl_file("shell", "#!/bin/sh\n"))

    def test_directory_check(self, perl_file, tmp_path, capsys):
        perl_file("lib/A.pm", FLAGGED_SNIPPET)
        perl_file("lib/B.pm", CLEAN_SNIPPET)
        assert main(["--noprofile", "-f", "summary", str(tmp_path)]) == EXIT_VIOLATIONS
        assert "2 file(s) checked: 1 violation(s)" in capsys.readouterr().out

    def test_empty_directory(self, tmp_path):
        assert main(["--noprofile", str(tmp_path)]) == EXIT_INFRA


class TestDumpTree:

    def test_dump(self, perl_file, capsys):
        path = perl_file("t.pl", "use strict;\nfoo($1);\n")
        assert main(["dump-tree", str(path)]) == EXIT_OK
        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 2
        assert lines[0].startswith("(Statement::Include")
        assert '(Token::Magic "$1")' in lines[1]

    def test_dump_all(self, perl_file, capsys):
        path = perl_file("t.pl", "# hi\nfoo();\n")
        assert main(["dump-tree", "--all", str(path)]) == EXIT_OK
        assert "Token::Comment" in capsys.readouterr().out

    def test_dump_unparseable(self, perl_file):
        path = perl_file("t.pl", "foo);\n")
        assert main(["dump-tree", str(path)]) == EXIT_INFRA

    def test_dump_missing(self, tmp_path):
        assert main(["dump-tree", str(tmp_path / "nope.pl")]) == EXIT_INFRA


class TestListPolicies:

    def test_list(self, capsys):
        assert main(["list-policies"]) == EXIT_OK
        out = capsys.readouterr().out
        assert f"{POLICY}  4 (stern)  [bugs core]" in out
        assert "1 policy(ies) available." in out

    def test_long(self, capsys):
        assert main(["list-policies", "--long"]) == EXIT_OK
        assert ProhibitPassingCaptureVariable.description in capsys.readouterr().out
