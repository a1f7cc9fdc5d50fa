# psscriptlint/rules.py
"""
Rule model and registry.

A rule is a :class:`Rule` subclass (or any zero-argument callable that
returns a ``Rule``) registered with a :class:`RuleRegistry`.  The registry
holds factories, not instances: every analysis pass creates fresh rule
objects, so rules may keep per-file state on ``self``.

Subclass Contract
─────────────────
  - Set ``descriptor`` to a :class:`RuleDescriptor`
  - Implement ``analyze(ast, file_path, context)`` returning diagnostics
  - Optionally declare ``descriptor.argument_schema`` (argument defaults)
  - Derive from :class:`ConfigurableRule` for rules that are off unless
    their settings say ``Enable = $true``
"""

from __future__ import annotations

import fnmatch
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    ClassVar,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
)

from psscriptlint.ast_nodes import Extent, Node
from psscriptlint.diagnostics import Correction, Diagnostic, DiagnosticSeverity
from psscriptlint.literal import LiteralMap

if TYPE_CHECKING:
    from psscriptlint.settings import Configuration

logger = logging.getLogger(__name__)


class SourceType(Enum):
    BUILTIN = "Builtin"
    MANAGED = "Managed"
    MODULE = "Module"


# ═══════════════════════════════════════════════════════════════════
#  PART 1: NAME MATCHING
# ═══════════════════════════════════════════════════════════════════

def _simple_name(name: str) -> str:
    return name.rsplit("\\", 1)[-1]


def has_wildcards(pattern: str) -> bool:
    return any(ch in pattern for ch in "*?[")


def name_matches(pattern: str, name: str) -> bool:
    """
    Case-insensitive rule-name match with ``*``/``?`` wildcards.

    ``Source\\Name`` and ``Name`` forms match each other unless both sides
    are namespaced, in which case the namespaces must agree too.
    """
    p, n = pattern.lower(), name.lower()
    pairs = [(p, n)]
    if not ("\\" in p and "\\" in n):
        pairs.append((_simple_name(p), _simple_name(n)))
    wildcard = has_wildcards(p)
    for pat, candidate in pairs:
        if wildcard:
            if fnmatch.fnmatchcase(candidate, pat):
                return True
        elif candidate == pat:
            return True
    return False


# ═══════════════════════════════════════════════════════════════════
#  PART 2: DESCRIPTOR AND RULE BASE CLASSES
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RuleDescriptor:
    """
    Static metadata of a rule.

    Attributes
    ----------
    name             : rule name, e.g. "PSAvoidUsingCmdletAliases"
    common_name      : short human title
    description      : one-paragraph explanation
    source_type      : BUILTIN for shipped rules, MANAGED/MODULE for custom
    default_severity : severity of the diagnostics it emits by default
    argument_schema  : accepted argument names with their defaults
    source_name      : namespace used in "Source\\Name" references
    reentrant        : safe to run concurrently with other rules on one file
    """
    name: str
    common_name: str = ""
    description: str = ""
    source_type: SourceType = SourceType.BUILTIN
    default_severity: DiagnosticSeverity = DiagnosticSeverity.WARNING
    argument_schema: LiteralMap = field(default_factory=LiteralMap)
    source_name: str = ""
    reentrant: bool = False

    @property
    def simple_name(self) -> str:
        return _simple_name(self.name)

    @property
    def qualified_name(self) -> str:
        if self.source_name and "\\" not in self.name:
            return f"{self.source_name}\\{self.name}"
        return self.name

    def matches(self, pattern: str) -> bool:
        return name_matches(pattern, self.qualified_name) or name_matches(pattern, self.name)

    @property
    def is_builtin(self) -> bool:
        return self.source_type is SourceType.BUILTIN


class Rule(ABC):
    """Abstract base class for all rules."""

    descriptor: ClassVar[RuleDescriptor] = RuleDescriptor("BaseRule")
    # Arguments accepted regardless of the schema.
    implicit_arguments: ClassVar[Tuple[str, ...]] = ()

    def __init__(self) -> None:
        self._arguments: LiteralMap = LiteralMap(self.descriptor.argument_schema)

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def arguments(self) -> LiteralMap:
        return self._arguments

    @property
    def enabled(self) -> bool:
        return True

    def configure(self, arguments: Mapping[str, Any]) -> List[str]:
        """
        Overlay ``arguments`` on the schema defaults.

        Returns the argument names the schema does not know; they are
        ignored.  A rule without a schema accepts any argument.
        """
        schema = self.descriptor.argument_schema
        implicit = {name.lower(): name for name in self.implicit_arguments}
        merged = {k.lower(): (k, v) for k, v in self._arguments.items()}
        unknown = []
        for key, value in arguments.items():
            if key in schema:
                spelling = schema.original_key(key)
            elif key.lower() in implicit:
                spelling = implicit[key.lower()]
            elif schema:
                unknown.append(key)
                continue
            else:
                spelling = key
            merged[key.lower()] = (spelling, value)
        self._arguments = LiteralMap(merged.values())
        return unknown

    def argument(self, key: str, default: Any = None) -> Any:
        return self._arguments.get(key, default)

    @abstractmethod
    def analyze(self, ast: Node, file_path: str,
                context: "RuleContext") -> Iterable[Diagnostic]:
        ...

    def _diagnostic(
        self,
        message: str,
        extent: Extent,
        file_path: str = "",
        severity: Optional[DiagnosticSeverity] = None,
        rule_id: Optional[str] = None,
        corrections: Sequence[Correction] = (),
    ) -> Diagnostic:
        """Helper to build a diagnostic attributed to this rule."""
        return Diagnostic(
            message=message,
            extent=extent,
            rule_name=self.name,
            severity=severity or self.descriptor.default_severity,
            script_path=file_path or extent.file,
            rule_id=rule_id,
            corrections=tuple(corrections),
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} '{self.name}'>"


class ConfigurableRule(Rule):
    """A rule that only runs when its arguments set ``Enable = $true``."""

    descriptor: ClassVar[RuleDescriptor] = RuleDescriptor("BaseConfigurableRule")
    implicit_arguments: ClassVar[Tuple[str, ...]] = ("Enable",)

    @property
    def enabled(self) -> bool:
        return self.argument("Enable", False) is True


@dataclass
class RuleContext:
    """
    Per-run context handed to each rule.

    Attributes
    ----------
    configuration : the resolved settings
    file_path     : file being analyzed ("" for in-memory text)
    arguments     : this rule's own entry of ``configuration.rule_arguments``
    aliases       : command alias table, alias -> command name
    tokens        : leaf tokens of the file, when the parser provided them
    """
    configuration: "Configuration"
    file_path: str = ""
    arguments: LiteralMap = field(default_factory=LiteralMap)
    aliases: Mapping[str, str] = field(default_factory=dict)
    tokens: Sequence[Any] = ()
    warnings: List[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        """Report a non-fatal problem; it surfaces as an analysis warning."""
        self.warnings.append(message)

    def resolve_alias(self, command: str) -> Optional[str]:
        for alias, target in self.aliases.items():
            if alias.lower() == command.lower():
                return target
        return None


# ═══════════════════════════════════════════════════════════════════
#  PART 3: REGISTRY
# ═══════════════════════════════════════════════════════════════════

RuleFactory = Callable[[], Rule]


@dataclass(frozen=True)
class RuleEntry:
    descriptor: RuleDescriptor
    factory: RuleFactory

    @property
    def name(self) -> str:
        return self.descriptor.name


def describe_factory(factory: RuleFactory,
                     source_type: Optional[SourceType] = None) -> RuleEntry:
    """Build a registry entry, reading the descriptor off the factory."""
    descriptor = getattr(factory, "descriptor", None)
    if not isinstance(descriptor, RuleDescriptor):
        descriptor = factory().descriptor
    if source_type is not None and descriptor.source_type is not source_type:
        descriptor = replace(descriptor, source_type=source_type)
    return RuleEntry(descriptor, factory)


class RuleRegistry:
    """
    Registry of available rules.

    Usage
    -----
    >>> registry = RuleRegistry()
    >>> registry.register(AvoidAliasRule)
    >>> entries = registry.select(configuration)
    """

    def __init__(self) -> None:
        self._entries: Dict[str, RuleEntry] = {}
        self._lock = threading.Lock()

    def register(self, factory: RuleFactory,
                 source_type: Optional[SourceType] = None) -> RuleFactory:
        """Register a rule factory; returns it so this works as a decorator."""
        entry = describe_factory(factory, source_type)
        key = entry.descriptor.qualified_name.lower()
        with self._lock:
            if key in self._entries:
                raise ValueError(f"rule '{entry.descriptor.qualified_name}' is already registered")
            self._entries[key] = entry
        logger.debug("Registered rule %s (%s)", entry.name, entry.descriptor.source_type.value)
        return factory

    def unregister(self, name: str) -> None:
        with self._lock:
            for key, entry in list(self._entries.items()):
                if name_matches(name, entry.descriptor.qualified_name) and not has_wildcards(name):
                    del self._entries[key]

    def get(self, name: str) -> Optional[RuleEntry]:
        for entry in self._entries.values():
            if entry.descriptor.matches(name):
                return entry
        return None

    def entries(self) -> List[RuleEntry]:
        return list(self._entries.values())

    def builtin(self) -> List[RuleEntry]:
        return [e for e in self._entries.values() if e.descriptor.is_builtin]

    def custom(self) -> List[RuleEntry]:
        return [e for e in self._entries.values() if not e.descriptor.is_builtin]

    @property
    def names(self) -> List[str]:
        return [e.name for e in self._entries.values()]

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def select(self, configuration: "Configuration",
               discovered: Sequence[RuleEntry] = ()) -> List[RuleEntry]:
        """
        The active rule set for ``configuration``.

        With ``include_rules`` set, every known rule matching one of its
        patterns is active.  Otherwise the builtin rules (when
        ``include_default_rules``) plus all custom rules.  Excluded rules
        and rules whose default severity is not selected are then removed.
        """
        builtin = self.builtin()
        custom = self.custom() + list(discovered)

        if configuration.include_rules:
            candidates = [
                e for e in builtin + custom
                if any(e.descriptor.matches(p) for p in configuration.include_rules)
            ]
        else:
            candidates = (builtin if configuration.include_default_rules else []) + custom

        active: List[RuleEntry] = []
        seen = set()
        for entry in candidates:
            d = entry.descriptor
            if any(d.matches(p) for p in configuration.exclude_rules):
                continue
            if not configuration.allows_severity(d.default_severity):
                continue
            key = d.qualified_name.lower()
            if key in seen:
                continue
            seen.add(key)
            active.append(entry)
        return active


# Global default registry; empty until rules are registered.
default_registry = RuleRegistry()


__all__ = [
    "SourceType",
    "RuleDescriptor",
    "Rule",
    "ConfigurableRule",
    "RuleContext",
    "RuleFactory",
    "RuleEntry",
    "RuleRegistry",
    "default_registry",
    "describe_factory",
    "has_wildcards",
    "name_matches",
]
