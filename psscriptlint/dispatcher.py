# psscriptlint/dispatcher.py
"""
Running rules over syntax trees.

:class:`Dispatcher` selects the active rules for a configuration and runs
each of them over a file's AST.  A rule that raises is isolated: its
failure becomes an :class:`AnalysisWarning` and the remaining rules still
run.

Files are independent units of work and may be analyzed in parallel
(:meth:`Dispatcher.run_many`).  Rules for one file run sequentially unless
``DispatchOptions.parallel_rules`` is set and every active rule is marked
reentrant.  Cancellation is cooperative and is checked between rules.

Usage
-----
>>> dispatcher = Dispatcher(registry)
>>> result = dispatcher.run(ast, "script.ps1", configuration)
>>> print(result.summary())
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple, Union

from psscriptlint.ast_nodes import Node
from psscriptlint.diagnostics import Diagnostic, DiagnosticSeverity
from psscriptlint.errors import ErrorCodes, ParserFailure, RuleExecutionFailure
from psscriptlint.loader import LoadResult, ModuleRuleLoader, RuleLoader
from psscriptlint.parser import DataFileParser
from psscriptlint.rules import RuleContext, RuleEntry, RuleRegistry, default_registry
from psscriptlint.settings import Configuration
from psscriptlint.suppression import SuppressionMatcher

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
#  PART 1: OPTIONS AND RESULTS
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DispatchOptions:
    """
    Engine knobs.

    max_workers    : thread count for multi-file runs (None = executor default)
    parallel_rules : run the rules of one file concurrently when all are reentrant
    """
    max_workers: Optional[int] = None
    parallel_rules: bool = False


class WarningKind(Enum):
    RULE_FAILURE = "RuleExecutionFailure"
    UNKNOWN_ARGUMENT = "UnknownRuleArgument"
    LOAD_FAILURE = "RuleLoadFailure"
    RULE_WARNING = "RuleWarning"


@dataclass(frozen=True)
class AnalysisWarning:
    """A recovered problem; never stops the analysis."""
    kind: WarningKind
    message: str
    rule_name: str = ""
    file_path: str = ""

    @property
    def code(self) -> str:
        return {
            WarningKind.RULE_FAILURE: ErrorCodes.RULE_EXECUTION_FAILURE,
            WarningKind.UNKNOWN_ARGUMENT: ErrorCodes.UNKNOWN_RULE_ARGUMENT,
            WarningKind.LOAD_FAILURE: ErrorCodes.RULE_LOAD_FAILURE,
            WarningKind.RULE_WARNING: ErrorCodes.RULE_EXECUTION_FAILURE,
        }[self.kind].code

    def __str__(self) -> str:
        where = f"{self.file_path}: " if self.file_path else ""
        return f"{where}warning: {self.message} [{self.code}]"


@dataclass
class AnalysisResult:
    """
    Outcome of analyzing one file.

    Attributes
    ----------
    file_path   : the analyzed file
    diagnostics : diagnostics that survived severity and suppression filters
    suppressed  : diagnostics removed by a suppression
    warnings    : recovered problems (rule failures, unknown arguments, ...)
    rule_names  : rules that actually ran, in order
    stats       : per-rule elapsed milliseconds
    cancelled   : the run stopped early because cancellation was requested
    """
    file_path: str = ""
    diagnostics: List[Diagnostic] = field(default_factory=list)
    suppressed: List[Diagnostic] = field(default_factory=list)
    warnings: List[AnalysisWarning] = field(default_factory=list)
    rule_names: List[str] = field(default_factory=list)
    stats: Dict[str, float] = field(default_factory=dict)
    cancelled: bool = False

    @property
    def error_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.severity is DiagnosticSeverity.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.severity is DiagnosticSeverity.WARNING)

    def by_rule(self, rule_name: str) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.rule_name.lower() == rule_name.lower()]

    def to_gcc_format(self) -> str:
        return "\n".join(d.to_gcc_format() for d in self.diagnostics)

    def summary(self) -> str:
        lines = [
            f"{self.file_path or '<text>'}: {len(self.diagnostics)} diagnostics "
            f"({self.error_count} errors, {self.warning_count} warnings, "
            f"{len(self.suppressed)} suppressed)",
        ]
        for name in self.rule_names:
            count = len(self.by_rule(name))
            ms = self.stats.get(name, 0.0)
            lines.append(f"  {name}: {count} ({ms:.1f} ms)")
        for warning in self.warnings:
            lines.append(f"  {warning}")
        return "\n".join(lines)


class AnalysisUnit(NamedTuple):
    """One file to analyze in a multi-file run."""
    ast: Node
    file_path: str
    suppressions: Optional[SuppressionMatcher] = None
    tokens: Sequence[Any] = ()


# ═══════════════════════════════════════════════════════════════════
#  PART 2: DISPATCHER
# ═══════════════════════════════════════════════════════════════════

class Dispatcher:
    """
    Runs the active rules of a configuration.

    Parameters
    ----------
    registry : RuleRegistry with the builtin (and pre-registered custom) rules
    loader   : custom-rule loader for ``configuration.custom_rule_paths``
    options  : DispatchOptions
    aliases  : command alias table handed to rules through their context
    """

    def __init__(
        self,
        registry: Optional[RuleRegistry] = None,
        *,
        loader: Optional[RuleLoader] = None,
        options: Optional[DispatchOptions] = None,
        aliases: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.registry = registry if registry is not None else default_registry
        self.loader = loader or ModuleRuleLoader()
        self.options = options or DispatchOptions()
        self.aliases = dict(aliases or {})
        self._loaded: Dict[Tuple[Tuple[str, ...], bool], LoadResult] = {}
        self._load_lock = threading.Lock()

    # ── rule selection ──────────────────────────────────────────

    def _discover(self, configuration: Configuration) -> LoadResult:
        if not configuration.custom_rule_paths:
            return LoadResult()
        key = (configuration.custom_rule_paths, configuration.recurse_custom_rule_path)
        with self._load_lock:
            if key not in self._loaded:
                self._loaded[key] = self.loader.load(
                    list(configuration.custom_rule_paths),
                    configuration.recurse_custom_rule_path,
                )
            return self._loaded[key]

    def active_rules(self, configuration: Configuration) -> List[RuleEntry]:
        return self.registry.select(configuration, self._discover(configuration).entries)

    # ── single rule ─────────────────────────────────────────────

    def _run_rule(
        self,
        entry: RuleEntry,
        ast: Node,
        file_path: str,
        configuration: Configuration,
        tokens: Sequence[Any],
    ) -> Tuple[List[Diagnostic], List[AnalysisWarning], bool, float]:
        name = entry.name
        descriptor = entry.descriptor
        warnings: List[AnalysisWarning] = []
        arguments = configuration.arguments_for(descriptor.name, descriptor.qualified_name)
        context = RuleContext(
            configuration=configuration,
            file_path=file_path,
            arguments=arguments,
            aliases=self.aliases,
            tokens=tokens,
        )

        t0 = time.monotonic()
        ran = False
        try:
            rule = entry.factory()
            for key in rule.configure(arguments):
                message = f"Rule '{name}' has no argument named '{key}'; it is ignored"
                logger.warning(message)
                warnings.append(AnalysisWarning(WarningKind.UNKNOWN_ARGUMENT, message, name, file_path))
            if not rule.enabled:
                logger.debug("Rule %s is not enabled", name)
                diags: List[Diagnostic] = []
            else:
                ran = True
                diags = list(rule.analyze(ast, file_path, context) or ())
        except Exception as exc:
            # The failure becomes a warning; the remaining rules still run.
            failure = RuleExecutionFailure(name, exc, file_path)
            logger.warning("%s", failure.message, exc_info=logger.isEnabledFor(logging.DEBUG))
            warnings.append(AnalysisWarning(WarningKind.RULE_FAILURE, failure.message, name, file_path))
            diags = []
        elapsed_ms = (time.monotonic() - t0) * 1000.0

        for message in context.warnings:
            warnings.append(AnalysisWarning(WarningKind.RULE_WARNING, f"{name}: {message}", name, file_path))
        return diags, warnings, ran, elapsed_ms

    # ── one file ────────────────────────────────────────────────

    def run(
        self,
        ast: Node,
        file_path: str,
        configuration: Configuration,
        *,
        suppressions: Optional[SuppressionMatcher] = None,
        cancel_event: Optional[threading.Event] = None,
        tokens: Sequence[Any] = (),
    ) -> AnalysisResult:
        """Run every active rule over ``ast``."""
        result = AnalysisResult(file_path=file_path)
        for failure in self._discover(configuration).failures:
            result.warnings.append(AnalysisWarning(
                WarningKind.LOAD_FAILURE, f"Cannot load custom rules: {failure}", "", failure.path,
            ))

        entries = self.active_rules(configuration)
        logger.debug("Analyzing %s with %d rule(s)", file_path or "<text>", len(entries))

        parallel = (self.options.parallel_rules and len(entries) > 1
                    and all(e.descriptor.reentrant for e in entries))
        if parallel:
            outcomes = self._run_parallel(entries, ast, file_path, configuration, tokens,
                                          cancel_event, result)
        else:
            outcomes = []
            for entry in entries:
                if cancel_event is not None and cancel_event.is_set():
                    result.cancelled = True
                    break
                outcomes.append((entry, self._run_rule(entry, ast, file_path, configuration, tokens)))

        collected: List[Diagnostic] = []
        for entry, (diags, warnings, ran, elapsed_ms) in outcomes:
            result.warnings.extend(warnings)
            if ran:
                result.rule_names.append(entry.name)
                result.stats[entry.name] = elapsed_ms
            collected.extend(
                d for d in diags if configuration.allows_severity(d.severity)
            )

        if suppressions is not None:
            collected, result.suppressed = suppressions.filter(collected)
        result.diagnostics = collected
        return result

    def _run_parallel(self, entries, ast, file_path, configuration, tokens,
                      cancel_event, result):
        def run_queued(entry):
            # Rules still queued when cancellation arrives never start.
            if cancel_event is not None and cancel_event.is_set():
                return None
            return self._run_rule(entry, ast, file_path, configuration, tokens)

        futures = []
        with ThreadPoolExecutor(max_workers=self.options.max_workers) as pool:
            for entry in entries:
                if cancel_event is not None and cancel_event.is_set():
                    break
                futures.append((entry, pool.submit(run_queued, entry)))
        outcomes = [(entry, future.result()) for entry, future in futures]
        if len(futures) < len(entries) or any(o is None for _, o in outcomes):
            result.cancelled = True
        return [(entry, outcome) for entry, outcome in outcomes if outcome is not None]

    # ── many files ──────────────────────────────────────────────

    def run_many(
        self,
        units: Iterable[Union[AnalysisUnit, Tuple[Node, str]]],
        configuration: Configuration,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[AnalysisResult]:
        """Analyze several files in parallel; results keep the input order."""
        units = [u if isinstance(u, AnalysisUnit) else AnalysisUnit(*u) for u in units]
        # Load custom rules once, before the workers start.
        self._discover(configuration)
        with ThreadPoolExecutor(max_workers=self.options.max_workers) as pool:
            futures = [
                pool.submit(self.run, unit.ast, unit.file_path, configuration,
                            suppressions=unit.suppressions, cancel_event=cancel_event,
                            tokens=unit.tokens)
                for unit in units
            ]
            return [f.result() for f in futures]

    # ── from source ─────────────────────────────────────────────

    def analyze_source(
        self,
        source: Union[str, Path],
        configuration: Configuration,
        *,
        parser: Optional[Any] = None,
        is_path: Optional[bool] = None,
        suppressions: Optional[SuppressionMatcher] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> AnalysisResult:
        """
        Parse ``source`` (text, or a path when ``is_path`` or a ``Path`` is
        given) and analyze it.  Syntax errors raise :class:`ParserFailure`.
        """
        parser = parser or DataFileParser()
        if is_path is None:
            is_path = isinstance(source, Path)
        if is_path:
            file_path = str(source)
            ast, tokens, errors = parser.parse_file(file_path)
        else:
            file_path = ""
            ast, tokens, errors = parser.parse_text(str(source))
        if errors:
            raise ParserFailure.from_issues(file_path, list(errors))
        return self.run(ast, file_path, configuration, suppressions=suppressions,
                        cancel_event=cancel_event, tokens=tokens)


# ═══════════════════════════════════════════════════════════════════
#  PART 3: MODULE-LEVEL CONVENIENCE
# ═══════════════════════════════════════════════════════════════════

def run_analysis(
    ast: Node,
    file_path: str,
    configuration: Configuration,
    registry: Optional[RuleRegistry] = None,
    **kwargs: Any,
) -> List[Diagnostic]:
    """Run the active rules over ``ast`` and return the surviving diagnostics."""
    return Dispatcher(registry).run(ast, file_path, configuration, **kwargs).diagnostics


def analyze_source(
    source: Union[str, Path],
    configuration: Configuration,
    registry: Optional[RuleRegistry] = None,
    **kwargs: Any,
) -> AnalysisResult:
    return Dispatcher(registry).analyze_source(source, configuration, **kwargs)


__all__ = [
    "DispatchOptions",
    "WarningKind",
    "AnalysisWarning",
    "AnalysisResult",
    "AnalysisUnit",
    "Dispatcher",
    "run_analysis",
    "analyze_source",
]
