# psscriptlint/diagnostics.py
"""
Diagnostic records produced by rules.

A :class:`Diagnostic` is immutable once a rule creates it.  It may carry
an ordered tuple of :class:`Correction` proposals; the correction applier
only ever uses the first one.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from psscriptlint.ast_nodes import Extent


class DiagnosticSeverity(Enum):
    """Severity levels, in increasing order of importance."""
    INFORMATION = "Information"
    WARNING = "Warning"
    ERROR = "Error"
    PARSE_ERROR = "ParseError"

    def matches(self, names) -> bool:
        """True when this severity is named (case-insensitively) in ``names``."""
        return self.value.lower() in {n.lower() for n in names}


@dataclass(frozen=True)
class Correction:
    """A proposed replacement of ``extent`` with ``text``."""
    extent: Extent
    text: str
    description: str = ""

    @property
    def file(self) -> str:
        return self.extent.file

    def to_json(self) -> Dict[str, Any]:
        return {
            "file": self.extent.file,
            "start_line": self.extent.start_line,
            "start_column": self.extent.start_column,
            "end_line": self.extent.end_line,
            "end_column": self.extent.end_column,
            "text": self.text,
            "description": self.description,
        }


@dataclass(frozen=True)
class Diagnostic:
    """
    A single rule violation.

    Attributes
    ----------
    message     : Human-readable description
    extent      : Source region the violation refers to
    rule_name   : Name of the rule that produced it
    severity    : DiagnosticSeverity
    script_path : File the diagnostic belongs to ("" for in-memory text)
    rule_id     : Optional finer-grained identifier, used by suppressions
    corrections : Proposed fixes, in preference order
    """
    message: str
    extent: Extent
    rule_name: str
    severity: DiagnosticSeverity = DiagnosticSeverity.WARNING
    script_path: str = ""
    rule_id: Optional[str] = None
    corrections: Tuple[Correction, ...] = ()

    @property
    def preferred_correction(self) -> Optional[Correction]:
        return self.corrections[0] if self.corrections else None

    def to_json(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "file": self.script_path or self.extent.file,
            "line": self.extent.start_line,
            "column": self.extent.start_column,
            "severity": self.severity.value,
            "message": self.message,
            "ruleName": self.rule_name,
        }
        if self.rule_id:
            result["ruleId"] = self.rule_id
        if self.corrections:
            result["corrections"] = [c.to_json() for c in self.corrections]
        return result

    def to_gcc_format(self) -> str:
        """GCC-style string: file:line:col: severity: message [rule]."""
        e = self.extent
        location = ":".join(
            str(part) for part in (self.script_path or e.file, e.start_line, e.start_column)
            if part not in ("", 0)
        )
        main = f"{self.severity.value.lower()}: {self.message} [{self.rule_name}]"
        return f"{location}: {main}" if location else main


__all__ = ["DiagnosticSeverity", "Correction", "Diagnostic"]
