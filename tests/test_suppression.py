# tests/test_suppression.py
"""
Tests for suppression entries and the matcher that filters diagnostics.
"""

import pytest

from psscriptlint.diagnostics import Diagnostic
from psscriptlint.errors import InvalidSuppression
from psscriptlint.suppression import (
    NamedRegion,
    RegionKind,
    SuppressionEntry,
    SuppressionMatcher,
    SuppressionScope,
    TargetKind,
    classify_target,
)

from conftest import span

FUNCTIONS = ["start-bar", "start-baz", "start-foo", "start-bam"]
WHOLE_SCRIPT = span(1, 1, 20, 1)


def function_regions():
    """Four functions of three lines each, starting on line 1."""
    return [
        NamedRegion(name, RegionKind.FUNCTION, span(1 + 3 * i, 1, 3 + 3 * i, 2))
        for i, name in enumerate(FUNCTIONS)
    ]


def diagnostics(rule_name="PSAvoidUsingWriteHost", rule_id=None):
    """One diagnostic in the middle of each function."""
    return [
        Diagnostic(f"in {name}", span(2 + 3 * i, 5, 2 + 3 * i, 15), rule_name, rule_id=rule_id)
        for i, name in enumerate(FUNCTIONS)
    ]


def suppressed_functions(entry, diags=None):
    matcher = SuppressionMatcher([entry], function_regions())
    _, suppressed = matcher.filter(diags or diagnostics())
    return [d.message[3:] for d in suppressed]


class TestClassifyTarget:

    @pytest.mark.parametrize("pattern, kind", [
        (None, TargetKind.NONE),
        ("", TargetKind.NONE),
        ("start-bar", TargetKind.LITERAL),
        ("start-ba[rz]", TargetKind.GLOB),
        ("start-*", TargetKind.GLOB),
        ("^start-.+$", TargetKind.REGEX),
        ("start-.*", TargetKind.GLOB),
        ("Get-*.*", TargetKind.GLOB),
        ("Invoke-C++", TargetKind.REGEX),
        ("start-[ab", TargetKind.REGEX),
        ("a|b", TargetKind.REGEX),
    ])
    def test_kinds(self, pattern, kind):
        assert classify_target(pattern) is kind


class TestTargets:

    def test_glob_target(self):
        entry = SuppressionEntry("PSAvoidUsingWriteHost", WHOLE_SCRIPT,
                                 target="start-ba[rz]", scope=SuppressionScope.FUNCTION)
        assert suppressed_functions(entry) == ["start-bar", "start-baz"]

    def test_regex_target(self):
        entry = SuppressionEntry("PSAvoidUsingWriteHost", WHOLE_SCRIPT,
                                 target="^start-.+$", scope=SuppressionScope.FUNCTION)
        assert suppressed_functions(entry) == FUNCTIONS

    def test_literal_target_ignores_case(self):
        entry = SuppressionEntry("PSAvoidUsingWriteHost", WHOLE_SCRIPT,
                                 target="Start-Foo", scope=SuppressionScope.FUNCTION)
        assert suppressed_functions(entry) == ["start-foo"]

    def test_target_without_scope_uses_any_region(self):
        entry = SuppressionEntry("PSAvoidUsingWriteHost", WHOLE_SCRIPT, target="start-bam")
        assert suppressed_functions(entry) == ["start-bam"]

    def test_innermost_region_names_the_target(self):
        outer = NamedRegion("Outer", RegionKind.FUNCTION, span(1, 1, 10, 2))
        inner = NamedRegion("Inner", RegionKind.FUNCTION, span(3, 5, 6, 6))
        diag = Diagnostic("x", span(4, 9, 4, 12), "PSRule")
        matcher_inner = SuppressionMatcher(
            [SuppressionEntry("PSRule", WHOLE_SCRIPT, target="Inner",
                              scope=SuppressionScope.FUNCTION)],
            [outer, inner],
        )
        matcher_outer = SuppressionMatcher(
            [SuppressionEntry("PSRule", WHOLE_SCRIPT, target="Outer",
                              scope=SuppressionScope.FUNCTION)],
            [outer, inner],
        )
        assert matcher_inner.is_suppressed(diag)
        assert not matcher_outer.is_suppressed(diag)

    def test_target_matching_itself_as_glob(self):
        entry = SuppressionEntry("PSRule", WHOLE_SCRIPT, target="Invoke-C++")
        assert entry.target_kind is TargetKind.REGEX
        assert entry.matches_target("Invoke-C++")
        assert entry.matches_target("invoke-c++")

    def test_glob_shaped_target_is_not_a_regex(self):
        entry = SuppressionEntry("PSRule", WHOLE_SCRIPT, target="Get-*.*")
        assert entry.matches_target("Get-Foo.Bar")
        assert not entry.matches_target("GetFoo")
        assert not entry.matches_target("Get-Foo")

    def test_unparsable_target_matches_only_itself(self):
        entry = SuppressionEntry("PSRule", WHOLE_SCRIPT, target="start-[ab")
        assert entry.matches_target("start-[ab")
        assert not entry.matches_target("start-a")


class TestRuleMatching:

    def test_region_only(self):
        entry = SuppressionEntry("PSAvoidUsingWriteHost", span(4, 1, 6, 2))
        assert suppressed_functions(entry) == ["start-baz"]

    def test_other_rule_not_suppressed(self):
        entry = SuppressionEntry("PSUseApprovedVerbs", WHOLE_SCRIPT)
        assert suppressed_functions(entry) == []

    def test_star_suppresses_every_rule(self):
        entry = SuppressionEntry("*", WHOLE_SCRIPT)
        assert suppressed_functions(entry, diagnostics("PSAnything")) == FUNCTIONS

    def test_rule_name_is_case_insensitive(self):
        entry = SuppressionEntry("psavoidusingwritehost", WHOLE_SCRIPT)
        assert len(suppressed_functions(entry)) == 4

    def test_rule_id(self):
        entry = SuppressionEntry("PSAvoidUsingWriteHost", WHOLE_SCRIPT, rule_id="Write-Host")
        assert suppressed_functions(entry, diagnostics(rule_id="write-host")) == FUNCTIONS
        assert suppressed_functions(entry, diagnostics(rule_id="Out-Host")) == []
        assert suppressed_functions(entry, diagnostics()) == []

    def test_class_scope_ignores_functions(self):
        entry = SuppressionEntry("PSAvoidUsingWriteHost", WHOLE_SCRIPT,
                                 scope=SuppressionScope.CLASS)
        assert suppressed_functions(entry) == []

    def test_other_file_not_suppressed(self):
        entry = SuppressionEntry("PSRule", span(1, 1, 5, 1, "a.ps1"))
        here = Diagnostic("x", span(2, 1, 2, 4, "a.ps1"), "PSRule", script_path="a.ps1")
        there = Diagnostic("x", span(2, 1, 2, 4, "b.ps1"), "PSRule", script_path="b.ps1")
        matcher = SuppressionMatcher([entry])
        assert matcher.is_suppressed(here)
        assert not matcher.is_suppressed(there)


class TestFilter:

    def test_filter_preserves_order(self):
        entry = SuppressionEntry("PSAvoidUsingWriteHost", span(4, 1, 9, 2))
        matcher = SuppressionMatcher([entry], function_regions())
        kept, suppressed = matcher.filter(diagnostics())
        assert [d.message for d in kept] == ["in start-bar", "in start-bam"]
        assert [d.message for d in suppressed] == ["in start-baz", "in start-foo"]

    def test_no_entries(self):
        kept, suppressed = SuppressionMatcher().filter(diagnostics())
        assert len(kept) == 4
        assert suppressed == []

    def test_add_entry(self):
        matcher = SuppressionMatcher()
        matcher.add(SuppressionEntry("*", WHOLE_SCRIPT))
        assert matcher.is_suppressed(diagnostics()[0])
        assert len(matcher.entries) == 1


class TestFromAttribute:

    def test_full_attribute(self):
        entry = SuppressionEntry.from_attribute(
            ["PSAvoidUsingWriteHost", ""],
            {"Scope": "Function", "Target": "start-ba[rz]", "Justification": "CLI output"},
            WHOLE_SCRIPT,
        )
        assert entry.rule_name == "PSAvoidUsingWriteHost"
        assert entry.rule_id is None
        assert entry.scope is SuppressionScope.FUNCTION
        assert entry.target_kind is TargetKind.GLOB
        assert entry.justification == "CLI output"

    def test_rule_name_only(self):
        entry = SuppressionEntry.from_attribute(["PSRule"], {}, WHOLE_SCRIPT)
        assert entry.scope is SuppressionScope.NONE
        assert entry.target is None

    @pytest.mark.parametrize("positional, named", [
        ([], {}),
        ([""], {}),
        ([1], {}),
        (["PSRule", "id", "extra"], {}),
        (["PSRule", 5], {}),
        (["PSRule"], {"Colour": "red"}),
        (["PSRule"], {"Scope": "Module"}),
        (["PSRule"], {"Target": 3}),
    ])
    def test_invalid(self, positional, named):
        with pytest.raises(InvalidSuppression) as info:
            SuppressionEntry.from_attribute(positional, named, span(3, 1, 3, 40, "s.ps1"))
        assert info.value.extent.start == (3, 1)
