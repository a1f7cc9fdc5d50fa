# tests/conftest.py
"""
Shared fixtures: small rules with predictable behavior and helpers for
writing settings files.
"""

import pytest

from psscriptlint.ast_nodes import CommandNode, Extent, StringConstantNode
from psscriptlint.diagnostics import Correction, DiagnosticSeverity
from psscriptlint.literal import LiteralMap
from psscriptlint.rules import ConfigurableRule, Rule, RuleDescriptor, RuleRegistry


class FailingRule(Rule):
    """Raises on every file."""
    descriptor = RuleDescriptor("PSAlwaysFails", description="Raises")

    def analyze(self, ast, file_path, context):
        raise RuntimeError("boom")


class HashtableCountRule(Rule):
    """One warning per hashtable in the tree."""
    descriptor = RuleDescriptor("PSCountHashtables")

    def analyze(self, ast, file_path, context):
        from psscriptlint.ast_nodes import HashtableNode
        for node in ast.find_all(lambda n: isinstance(n, HashtableNode)):
            yield self._diagnostic("Hashtable found", node.extent, file_path)


class ErrorSeverityRule(Rule):
    """Reports every command invocation as an error."""
    descriptor = RuleDescriptor(
        "PSNoCommands",
        default_severity=DiagnosticSeverity.ERROR,
    )

    def analyze(self, ast, file_path, context):
        for node in ast.find_all(lambda n: isinstance(n, CommandNode)):
            yield self._diagnostic(f"Command '{node.name}'", node.extent, file_path)


class UpperCaseStringsRule(ConfigurableRule):
    """Proposes an upper-case replacement for each single-quoted string."""
    descriptor = RuleDescriptor(
        "PSUpperCaseStrings",
        default_severity=DiagnosticSeverity.INFORMATION,
        argument_schema=LiteralMap({"MinLength": 1}),
    )

    def analyze(self, ast, file_path, context):
        minimum = self.argument("MinLength", 1)
        for node in ast.find_all(lambda n: isinstance(n, StringConstantNode)):
            text = node.extent.text
            if not text.startswith("'") or len(node.value) < minimum:
                continue
            if node.value == node.value.upper():
                continue
            fix = Correction(node.extent, f"'{node.value.upper()}'", "Upper-case")
            yield self._diagnostic("String is not upper-case", node.extent,
                                   file_path, corrections=[fix])


class ReentrantRule(Rule):
    descriptor = RuleDescriptor("PSReentrant", reentrant=True)

    def analyze(self, ast, file_path, context):
        yield self._diagnostic("Seen", ast.extent, file_path)


def span(start_line, start_column, end_line, end_column, file=""):
    return Extent(start_line, start_column, end_line, end_column, file)


@pytest.fixture
def registry():
    reg = RuleRegistry()
    for rule in (FailingRule, HashtableCountRule, ErrorSeverityRule, UpperCaseStringsRule):
        reg.register(rule)
    return reg


@pytest.fixture
def write_settings(tmp_path):
    """Write ``text`` as a settings file and return its path as a string."""
    def _write(text, name="PSScriptAnalyzerSettings.psd1", directory=None):
        target = (directory or tmp_path) / name
        target.write_text(text, encoding="utf-8")
        return str(target)
    return _write
