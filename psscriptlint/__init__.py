"""psscriptlint: settings resolution and rule dispatch for PowerShell script analysis.

Submodules
----------
parser
    parsimonious grammar for the PowerShell data-file subset (``.psd1``)
    and the visitor that builds the syntax tree of ``ast_nodes``.

literal
    Evaluation of literal syntax trees (hashtables, arrays, strings,
    numbers, ``$true``/``$false``) into immutable Python values.

settings
    Settings discovery (explicit hashtable, file, preset or
    ``PSScriptAnalyzerSettings.psd1`` next to the scripts) and
    validation into a :class:`~psscriptlint.settings.Configuration`.

rules, loader, dispatcher
    Rule model, registry, custom-rule discovery and the engine that runs
    the active rules over a syntax tree.

diagnostics, suppression, corrections
    Diagnostic records, suppression filtering and the single-pass
    correction applier.

main
    CLI entry-point with subcommands ``settings``, ``presets``, ``parse``.

Usage
-----
Command-line::

    python -m psscriptlint settings --path ./scripts
    python -m psscriptlint --help

Programmatic::

    from psscriptlint import resolve_settings, run_analysis, apply_corrections

    configuration = resolve_settings({"Severity": ["Error"]})
    diagnostics = run_analysis(ast, "script.ps1", configuration, registry)
    result = apply_corrections(text, diagnostics)
"""

from __future__ import annotations

__version__: str = "0.1.0"

from psscriptlint.corrections import CorrectionResult, apply_corrections
from psscriptlint.diagnostics import Correction, Diagnostic, DiagnosticSeverity
from psscriptlint.dispatcher import AnalysisResult, Dispatcher, DispatchOptions, run_analysis
from psscriptlint.errors import ParserFailure, PSLintError, SettingsError
from psscriptlint.literal import LiteralMap, evaluate
from psscriptlint.parser import parse
from psscriptlint.rules import ConfigurableRule, Rule, RuleDescriptor, RuleRegistry, default_registry
from psscriptlint.settings import Configuration, SettingsMode, resolve_settings
from psscriptlint.suppression import SuppressionEntry, SuppressionMatcher

__all__: list[str] = [
    "__version__",
    "AnalysisResult",
    "ConfigurableRule",
    "Configuration",
    "Correction",
    "CorrectionResult",
    "Diagnostic",
    "DiagnosticSeverity",
    "DispatchOptions",
    "Dispatcher",
    "LiteralMap",
    "ParserFailure",
    "PSLintError",
    "Rule",
    "RuleDescriptor",
    "RuleRegistry",
    "SettingsError",
    "SettingsMode",
    "SuppressionEntry",
    "SuppressionMatcher",
    "apply_corrections",
    "default_registry",
    "evaluate",
    "parse",
    "resolve_settings",
    "run_analysis",
]
