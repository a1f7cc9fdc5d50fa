# psscriptlint/errors.py
"""
Error types for settings resolution, parsing and analysis.

Error Hierarchy:
────────────────
    PSLintError (base)
    ├── SettingsError           - settings could not be resolved
    │   ├── UnsupportedLiteral      - non-literal construct in a data file
    │   ├── NoConfigurationLiteral  - settings file has no hashtable
    │   ├── TypeMismatch            - flag value is not a boolean
    │   ├── InvalidRuleArguments    - 'Rules' is not a map of maps
    │   ├── InvalidValueShape       - value has the wrong shape
    │   └── UnknownSetting          - unrecognized top-level key
    ├── ParserFailure           - source could not be parsed
    │   └── SettingsFileNotFound
    ├── InvalidSuppression      - malformed suppression attribute
    └── RuleExecutionFailure    - a rule raised (recovered by the dispatcher)

Error Codes:
────────────
Each error carries a code ``PSL-NNNN``:
  - 1000-1999: settings errors
  - 2000-2999: parser errors
  - 3000-3999: analysis errors
  - 4000-4999: correction problems (reported as skipped items, never raised)

``str()`` of an error renders in GCC style::

    settings.psd1:3:14: error: Variable reference is not allowed ... [PSL-1001]
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional, Sequence

from psscriptlint.ast_nodes import Extent


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR CODES
# ═══════════════════════════════════════════════════════════════════════════════

class ErrorCode:
    """A stable ``PREFIX-NNNN`` identifier for one kind of error."""

    __slots__ = ("prefix", "number", "title")

    def __init__(self, number: int, title: str, prefix: str = "PSL") -> None:
        self.prefix = prefix
        self.number = number
        self.title = title

    @property
    def code(self) -> str:
        return f"{self.prefix}-{self.number:04d}"

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"ErrorCode({self.code!r}, {self.title!r})"

    def __hash__(self) -> int:
        return hash((self.prefix, self.number))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ErrorCode):
            return self.prefix == other.prefix and self.number == other.number
        if isinstance(other, str):
            return self.code == other
        return False


class ErrorCodes:
    """Predefined error codes."""

    # Settings (1000-1999)
    UNSUPPORTED_LITERAL = ErrorCode(1001, "unsupported literal")
    NO_CONFIGURATION_LITERAL = ErrorCode(1002, "no configuration literal")
    TYPE_MISMATCH = ErrorCode(1003, "type mismatch")
    INVALID_RULE_ARGUMENTS = ErrorCode(1004, "invalid rule arguments")
    INVALID_VALUE_SHAPE = ErrorCode(1005, "invalid value shape")
    UNKNOWN_SETTING = ErrorCode(1006, "unknown setting")

    # Parser (2000-2999)
    PARSER_FAILURE = ErrorCode(2001, "parser failure")
    SETTINGS_FILE_NOT_FOUND = ErrorCode(2002, "settings file not found")

    # Analysis (3000-3999)
    RULE_EXECUTION_FAILURE = ErrorCode(3001, "rule execution failure")
    INVALID_SUPPRESSION = ErrorCode(3002, "invalid suppression")
    UNKNOWN_RULE_ARGUMENT = ErrorCode(3003, "unknown rule argument")
    RULE_LOAD_FAILURE = ErrorCode(3004, "rule load failure")

    # Corrections (4000-4999)
    CONFLICTING_CORRECTION = ErrorCode(4001, "conflicting correction")
    CROSS_FILE_CORRECTION = ErrorCode(4002, "cross-file correction")
    OUT_OF_RANGE = ErrorCode(4003, "correction out of range")


# ═══════════════════════════════════════════════════════════════════════════════
# EXCEPTION CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

class PSLintError(Exception):
    """
    Base exception for all psscriptlint errors.

    Carries a code and, when known, the extent of the source text that
    caused the error.
    """

    default_code: ErrorCode = ErrorCodes.PARSER_FAILURE

    def __init__(
        self,
        message: str,
        extent: Optional[Extent] = None,
        code: Optional[ErrorCode] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.extent = extent
        self.code = code or self.default_code

    @property
    def file(self) -> str:
        return self.extent.file if self.extent is not None else ""

    def with_file(self, path: str) -> "PSLintError":
        """Attach ``path`` to the error's location if it has none yet."""
        if self.extent is None:
            self.extent = Extent(file=path)
        elif not self.extent.file:
            e = self.extent
            self.extent = Extent(e.start_line, e.start_column, e.end_line,
                                 e.end_column, path, e.text)
        return self

    def to_gcc_format(self) -> str:
        main = f"error: {self.message} [{self.code}]"
        if self.extent is not None and (self.extent.file or self.extent.start_line):
            return f"{self.extent}: {main}"
        return main

    def to_json(self) -> Dict[str, Any]:
        e = self.extent or Extent()
        return {
            "code": self.code.code,
            "error": type(self).__name__,
            "message": self.message,
            "location": {
                "file": e.file,
                "line": e.start_line,
                "column": e.start_column,
                "end_line": e.end_line,
                "end_column": e.end_column,
            },
        }

    def __str__(self) -> str:
        return self.to_gcc_format()


# ───────────────────────────────────────────────────────────────────────────────
# SETTINGS ERRORS
# ───────────────────────────────────────────────────────────────────────────────

class SettingsError(PSLintError):
    """Settings could not be resolved. Always fatal to resolution."""


class UnsupportedLiteral(SettingsError):
    """A construct outside the accepted literal grammar."""

    default_code = ErrorCodes.UNSUPPORTED_LITERAL

    def __init__(self, message: str, extent: Optional[Extent] = None,
                 node_label: str = "") -> None:
        super().__init__(message, extent)
        self.node_label = node_label


class NoConfigurationLiteral(SettingsError):
    default_code = ErrorCodes.NO_CONFIGURATION_LITERAL


class TypeMismatch(SettingsError):
    default_code = ErrorCodes.TYPE_MISMATCH

    def __init__(self, key: str, expected: str, got: Any,
                 extent: Optional[Extent] = None) -> None:
        super().__init__(
            f"Setting '{key}' expects a {expected} value, got {_describe(got)}",
            extent,
        )
        self.key = key
        self.expected = expected


class InvalidRuleArguments(SettingsError):
    default_code = ErrorCodes.INVALID_RULE_ARGUMENTS


class InvalidValueShape(SettingsError):
    default_code = ErrorCodes.INVALID_VALUE_SHAPE


class UnknownSetting(SettingsError):
    default_code = ErrorCodes.UNKNOWN_SETTING

    def __init__(self, key: str, valid_keys: Sequence[str] = (),
                 extent: Optional[Extent] = None) -> None:
        message = f"'{key}' is not a recognized setting"
        if valid_keys:
            message += f"; valid settings are: {', '.join(valid_keys)}"
        super().__init__(message, extent)
        self.key = key


# ───────────────────────────────────────────────────────────────────────────────
# PARSER ERRORS
# ───────────────────────────────────────────────────────────────────────────────

class ParserFailure(PSLintError):
    """A source file has syntax errors or could not be read."""

    default_code = ErrorCodes.PARSER_FAILURE

    def __init__(self, message: str, extent: Optional[Extent] = None,
                 issues: Iterable[Any] = ()) -> None:
        super().__init__(message, extent)
        self.issues = list(issues)

    @classmethod
    def from_issues(cls, path: str, issues: Sequence[Any]) -> "ParserFailure":
        """Build one failure from the syntax issues of a parse result."""
        first = issues[0]
        extra = f" (and {len(issues) - 1} more)" if len(issues) > 1 else ""
        error = cls(f"{first.message}{extra}", first.extent, issues)
        return error.with_file(path) if path else error


class SettingsFileNotFound(ParserFailure):
    default_code = ErrorCodes.SETTINGS_FILE_NOT_FOUND

    def __init__(self, path: str) -> None:
        super().__init__(f"Settings file '{path}' does not exist",
                         Extent(file=path))
        self.path = path


# ───────────────────────────────────────────────────────────────────────────────
# ANALYSIS ERRORS
# ───────────────────────────────────────────────────────────────────────────────

class InvalidSuppression(PSLintError):
    default_code = ErrorCodes.INVALID_SUPPRESSION


class RuleExecutionFailure(PSLintError):
    """
    A rule raised while analyzing a file.

    The dispatcher never lets this escape; it is recorded as a warning
    attributed to ``rule_name``.
    """

    default_code = ErrorCodes.RULE_EXECUTION_FAILURE

    def __init__(self, rule_name: str, cause: BaseException,
                 file_path: str = "") -> None:
        super().__init__(
            f"Rule '{rule_name}' failed: {type(cause).__name__}: {cause}",
            Extent(file=file_path) if file_path else None,
        )
        self.rule_name = rule_name
        self.cause = cause


def _describe(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return f"number {value!r}"
    if isinstance(value, str):
        return f"string {value!r}"
    if isinstance(value, tuple):
        return "array"
    return type(value).__name__


__all__ = [
    "ErrorCode",
    "ErrorCodes",
    "PSLintError",
    "SettingsError",
    "UnsupportedLiteral",
    "NoConfigurationLiteral",
    "TypeMismatch",
    "InvalidRuleArguments",
    "InvalidValueShape",
    "UnknownSetting",
    "ParserFailure",
    "SettingsFileNotFound",
    "InvalidSuppression",
    "RuleExecutionFailure",
]
