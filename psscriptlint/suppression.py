# psscriptlint/suppression.py
"""
Suppression of diagnostics.

A :class:`SuppressionEntry` is attached to a region of a script (usually
the function, class or param block carrying a
``[Diagnostics.CodeAnalysis.SuppressMessageAttribute(...)]``).  It
suppresses diagnostics of one rule (or ``*``) inside that region,
optionally narrowed by

  - ``rule_id`` : only diagnostics with that rule id,
  - ``scope``   : only inside a function / class,
  - ``target``  : only when the nearest enclosing named construct's name
                  matches a literal, glob (``start-ba[rz]``) or regular
                  expression (``^start-.+$``) pattern.

Usage
-----
>>> matcher = SuppressionMatcher(entries, regions)
>>> kept, suppressed = matcher.filter(diagnostics)
"""

from __future__ import annotations

import fnmatch
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from psscriptlint.ast_nodes import Extent, same_file
from psscriptlint.diagnostics import Diagnostic
from psscriptlint.errors import InvalidSuppression
from psscriptlint.rules import name_matches

logger = logging.getLogger(__name__)


class RegionKind(Enum):
    SCRIPT = "script"
    FUNCTION = "function"
    CLASS = "class"


class SuppressionScope(Enum):
    NONE = "none"
    FUNCTION = "function"
    CLASS = "class"
    ALL = "all"

    @classmethod
    def parse(cls, text: Optional[str]) -> "SuppressionScope":
        folded = (text or "").strip().lower()
        if folded in ("", "none"):
            return cls.NONE
        if folded in ("*", "all"):
            return cls.ALL
        for member in (cls.FUNCTION, cls.CLASS):
            if folded == member.value:
                return member
        raise ValueError(f"unknown suppression scope {text!r}")

    @property
    def region_kinds(self) -> Tuple[RegionKind, ...]:
        if self is SuppressionScope.FUNCTION:
            return (RegionKind.FUNCTION,)
        if self is SuppressionScope.CLASS:
            return (RegionKind.CLASS,)
        return tuple(RegionKind)


class TargetKind(Enum):
    NONE = "none"
    LITERAL = "literal"
    GLOB = "glob"
    REGEX = "regex"


@dataclass(frozen=True)
class NamedRegion:
    """A named construct of a script: a function, a class or the script itself."""
    name: str
    kind: RegionKind
    extent: Extent


# Characters only meaningful in regular expressions.
_REGEX_ONLY = set("^$+(){}|\\")
_GLOB_SYNTAX = re.compile(r"(?:[^\[\]]|\[!?\]?[^\]]*\])*")


def is_glob(pattern: str) -> bool:
    """True when ``pattern`` parses as a glob: balanced ``[...]``, no regex-only characters."""
    return (not any(ch in _REGEX_ONLY for ch in pattern)
            and _GLOB_SYNTAX.fullmatch(pattern) is not None)


def classify_target(pattern: Optional[str]) -> TargetKind:
    """
    How a suppression target is matched.

    Every target is first matched as a glob.  Only a REGEX target (one
    that does not parse as a glob) is then tried as a regular expression.
    """
    if not pattern:
        return TargetKind.NONE
    if not is_glob(pattern):
        return TargetKind.REGEX
    if any(ch in pattern for ch in "*?["):
        return TargetKind.GLOB
    return TargetKind.LITERAL


@dataclass(frozen=True)
class SuppressionEntry:
    rule_name: str
    extent: Extent
    target: Optional[str] = None
    scope: SuppressionScope = SuppressionScope.NONE
    rule_id: Optional[str] = None
    justification: str = ""
    target_kind: TargetKind = field(init=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "target_kind", classify_target(self.target))

    @classmethod
    def from_attribute(
        cls,
        positional: Sequence[Any],
        named: Mapping[str, Any],
        extent: Extent,
    ) -> "SuppressionEntry":
        """
        Build an entry from ``SuppressMessageAttribute`` arguments::

            [SuppressMessage('PSAvoidUsingWriteHost', '', Scope='Function', Target='Show-*')]
        """
        if not positional or not isinstance(positional[0], str) or not positional[0]:
            raise InvalidSuppression("Suppression must name a rule", extent)
        if len(positional) > 2:
            raise InvalidSuppression(
                "Suppression takes at most a rule name and a rule id", extent,
            )
        rule_id = positional[1] if len(positional) > 1 else None
        if rule_id is not None and not isinstance(rule_id, str):
            raise InvalidSuppression("Suppression rule id must be a string", extent)

        options = {}
        for key, value in named.items():
            folded = key.lower()
            if folded not in ("scope", "target", "justification"):
                raise InvalidSuppression(f"Unknown suppression argument '{key}'", extent)
            if not isinstance(value, str):
                raise InvalidSuppression(f"Suppression argument '{key}' must be a string", extent)
            options[folded] = value

        try:
            scope = SuppressionScope.parse(options.get("scope"))
        except ValueError as exc:
            raise InvalidSuppression(str(exc), extent) from exc

        return cls(
            rule_name=positional[0],
            extent=extent,
            target=options.get("target") or None,
            scope=scope,
            rule_id=rule_id or None,
            justification=options.get("justification", ""),
        )

    def matches_target(self, name: str) -> bool:
        kind = self.target_kind
        if kind is TargetKind.NONE:
            return True
        pattern = self.target or ""
        if fnmatch.fnmatchcase(name.lower(), pattern.lower()):
            return True
        if kind is not TargetKind.REGEX:
            return False
        try:
            return re.fullmatch(pattern, name, re.IGNORECASE) is not None
        except re.error as exc:
            logger.debug("Suppression target %r is not a valid pattern (%s)", pattern, exc)
            return False


def _innermost(regions: Sequence[NamedRegion]) -> NamedRegion:
    return max(regions, key=lambda r: (r.extent.start, tuple(-x for x in r.extent.end)))


class SuppressionMatcher:
    """Filters diagnostics against suppression entries."""

    def __init__(self, entries: Iterable[SuppressionEntry] = (),
                 regions: Iterable[NamedRegion] = ()) -> None:
        self._entries: List[SuppressionEntry] = list(entries)
        self._regions: List[NamedRegion] = list(regions)

    @property
    def entries(self) -> List[SuppressionEntry]:
        return list(self._entries)

    def add(self, entry: SuppressionEntry) -> None:
        self._entries.append(entry)

    def add_region(self, region: NamedRegion) -> None:
        self._regions.append(region)

    def _enclosing(self, diag: Diagnostic, kinds: Tuple[RegionKind, ...]) -> List[NamedRegion]:
        path = diag.script_path or diag.extent.file
        return [
            r for r in self._regions
            if r.kind in kinds and same_file(r.extent.file, path)
            and r.extent.contains(diag.extent)
        ]

    def _applies(self, entry: SuppressionEntry, diag: Diagnostic) -> bool:
        if not entry.extent.contains(diag.extent):
            return False
        if not same_file(entry.extent.file, diag.script_path or diag.extent.file):
            return False
        if entry.rule_name != "*" and not name_matches(entry.rule_name, diag.rule_name):
            return False
        if entry.rule_id and (diag.rule_id or "").lower() != entry.rule_id.lower():
            return False
        if entry.scope is SuppressionScope.NONE and entry.target_kind is TargetKind.NONE:
            return True

        enclosing = self._enclosing(diag, entry.scope.region_kinds)
        if not enclosing:
            return False
        return entry.matches_target(_innermost(enclosing).name)

    def matching_entry(self, diag: Diagnostic) -> Optional[SuppressionEntry]:
        for entry in self._entries:
            if self._applies(entry, diag):
                return entry
        return None

    def is_suppressed(self, diag: Diagnostic) -> bool:
        return self.matching_entry(diag) is not None

    def filter(self, diagnostics: Iterable[Diagnostic]) -> Tuple[List[Diagnostic], List[Diagnostic]]:
        """Split diagnostics into (kept, suppressed), preserving order."""
        kept: List[Diagnostic] = []
        suppressed: List[Diagnostic] = []
        for diag in diagnostics:
            entry = self.matching_entry(diag)
            if entry is None:
                kept.append(diag)
            else:
                logger.debug("Suppressed %s at %s (%s)", diag.rule_name, diag.extent,
                             entry.justification or "no justification")
                suppressed.append(diag)
        return kept, suppressed


__all__ = [
    "RegionKind",
    "SuppressionScope",
    "TargetKind",
    "NamedRegion",
    "SuppressionEntry",
    "SuppressionMatcher",
    "classify_target",
    "is_glob",
]
