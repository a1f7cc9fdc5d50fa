# psscriptlint/settings.py
"""
Settings resolution.

Settings come from exactly one source, chosen in this order:

    1. an explicit mapping                      -> SettingsMode.HASHTABLE
    2. an explicit string naming a preset       -> SettingsMode.PRESET
    3. any other explicit string / path         -> SettingsMode.FILE
    4. PSScriptAnalyzerSettings.psd1 found in
       the working directory                    -> SettingsMode.AUTO (then FILE)
    5. nothing                                  -> SettingsMode.NONE (defaults)

Settings files are PowerShell data files.  They are parsed, never executed:
the first hashtable in the file is evaluated by
:class:`~psscriptlint.literal.LiteralEvaluator` and then handled exactly
like an explicit mapping.

Recognized keys (case-insensitive)::

    @{
        Severity              = @('Error', 'Warning')
        IncludeRules          = @('PSAvoid*')
        ExcludeRules          = @('PSAvoidUsingWriteHost')
        CustomRulePath        = @('./rules')
        IncludeDefaultRules   = $true
        RecurseCustomRulePath = $false
        Rules                 = @{ PSPlaceOpenBrace = @{ Enable = $true } }
    }

Any other top-level key fails resolution with
:class:`~psscriptlint.errors.UnknownSetting`.
"""

from __future__ import annotations

import glob
import json
import logging
import os
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from psscriptlint.ast_nodes import Extent, HashtableNode, PipelineNode, StringConstantNode
from psscriptlint.diagnostics import DiagnosticSeverity
from psscriptlint.errors import (
    InvalidRuleArguments,
    InvalidValueShape,
    NoConfigurationLiteral,
    ParserFailure,
    SettingsError,
    SettingsFileNotFound,
    TypeMismatch,
    UnknownSetting,
)
from psscriptlint.literal import LiteralEvaluator, LiteralMap, to_plain
from psscriptlint.parser import DataFileParser

logger = logging.getLogger(__name__)

SETTINGS_FILE_NAME = "PSScriptAnalyzerSettings.psd1"
PRESET_SUFFIX = ".psd1"

SettingsInput = Union[None, str, "os.PathLike[str]", Mapping[str, Any]]
PathResolver = Callable[[str], str]
# folded key ("severity", "rules.psplaceopenbrace") -> (key extent, value extent)
SettingsLocations = Dict[str, Tuple[Extent, Extent]]


class SettingsMode(Enum):
    NONE = "none"
    AUTO = "auto"
    FILE = "file"
    HASHTABLE = "hashtable"
    PRESET = "preset"


# ═══════════════════════════════════════════════════════════════════
#  PART 1: CONFIGURATION
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Configuration:
    """
    The resolved, read-only settings for one analysis run.

    ``mode`` and ``source_path`` record where the settings came from; they
    do not take part in equality.
    """
    severities: Tuple[str, ...] = ()
    include_rules: Tuple[str, ...] = ()
    exclude_rules: Tuple[str, ...] = ()
    custom_rule_paths: Tuple[str, ...] = ()
    recurse_custom_rule_path: bool = False
    include_default_rules: bool = True
    rule_arguments: LiteralMap = field(default_factory=LiteralMap)
    mode: SettingsMode = field(default=SettingsMode.NONE, compare=False)
    source_path: Optional[str] = field(default=None, compare=False)

    @classmethod
    def default(cls) -> "Configuration":
        return cls()

    def arguments_for(self, name: str, qualified_name: str = "") -> LiteralMap:
        """The argument map of one rule, looked up by simple or namespaced name."""
        simple = name.rsplit("\\", 1)[-1]
        for candidate in (qualified_name, name, simple):
            if candidate and candidate in self.rule_arguments:
                return self.rule_arguments[candidate]
        return LiteralMap()

    def allows_severity(self, severity: DiagnosticSeverity) -> bool:
        if not self.severities:
            return True
        return severity.matches(self.severities)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "source_path": self.source_path,
            "severity": list(self.severities),
            "include_rules": list(self.include_rules),
            "exclude_rules": list(self.exclude_rules),
            "custom_rule_path": list(self.custom_rule_paths),
            "recurse_custom_rule_path": self.recurse_custom_rule_path,
            "include_default_rules": self.include_default_rules,
            "rules": to_plain(self.rule_arguments),
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


# ═══════════════════════════════════════════════════════════════════
#  PART 2: PRESETS
# ═══════════════════════════════════════════════════════════════════

def get_shipped_settings_directory() -> Optional[Path]:
    """Directory holding the preset ``*.psd1`` files, if installed."""
    directory = Path(__file__).resolve().parent / "presets"
    return directory if directory.is_dir() else None


def get_setting_presets() -> List[str]:
    """Names of the shipped presets (file names without extension)."""
    directory = get_shipped_settings_directory()
    if directory is None:
        return []
    return sorted(p.stem for p in directory.glob(f"*{PRESET_SUFFIX}") if p.is_file())


def get_setting_preset_file_path(preset: str) -> Optional[str]:
    """Path of the preset named ``preset`` (case-insensitive), else ``None``."""
    directory = get_shipped_settings_directory()
    if directory is None or not preset:
        return None
    for name in get_setting_presets():
        if name.lower() == preset.lower():
            return str(directory / f"{name}{PRESET_SUFFIX}")
    return None


# ═══════════════════════════════════════════════════════════════════
#  PART 3: MODE SELECTION AND FILE LOADING
# ═══════════════════════════════════════════════════════════════════

def find_settings_mode(
    settings: SettingsInput,
    working_directory: Optional[Union[str, "os.PathLike[str]"]] = None,
) -> Tuple[SettingsMode, Any]:
    """
    Decide which source the settings come from.

    Returns the mode and the found value: the mapping (HASHTABLE), a path
    string (PRESET, FILE, AUTO) or ``None`` (NONE).
    """
    if isinstance(settings, Mapping):
        return SettingsMode.HASHTABLE, settings
    if isinstance(settings, os.PathLike):
        settings = os.fspath(settings)
    if isinstance(settings, str) and settings.strip():
        preset_path = get_setting_preset_file_path(settings)
        if preset_path is not None:
            return SettingsMode.PRESET, preset_path
        return SettingsMode.FILE, settings
    if settings is not None and settings != "" and not isinstance(settings, str):
        raise InvalidValueShape(
            f"Settings must be a hashtable, a preset name or a file path, "
            f"not {type(settings).__name__}"
        )

    if working_directory:
        directory = Path(working_directory)
        if directory.is_file():
            directory = directory.parent
        candidate = directory / SETTINGS_FILE_NAME
        if candidate.is_file():
            return SettingsMode.AUTO, str(candidate)
    return SettingsMode.NONE, None


def resolve_settings_path(raw: str) -> str:
    """
    Best-effort resolution of a user-supplied settings path.

    Expands ``~`` and wildcards and makes the path absolute.  When the path
    cannot be resolved to exactly one existing file, the literal string is
    returned unchanged.
    """
    expanded = os.path.expanduser(raw)
    if any(ch in expanded for ch in "*?["):
        matches = sorted(glob.glob(expanded))
        if len(matches) == 1:
            return os.path.abspath(matches[0])
        logger.info("Cannot resolve settings path %r (%d matches)", raw, len(matches))
        return raw
    if os.path.exists(expanded):
        return os.path.abspath(expanded)
    logger.info("Cannot find settings file %r", raw)
    return raw


def _first_hashtable(ast) -> Optional[HashtableNode]:
    found = ast.find_first(lambda n: isinstance(n, HashtableNode), into_script_blocks=False)
    return found  # type: ignore[return-value]


def _unwrap(node):
    if isinstance(node, PipelineNode) and len(node.elements) == 1:
        return node.elements[0]
    return node


def settings_locations(hashtable: HashtableNode, prefix: str = "") -> SettingsLocations:
    """Key and value extents of a settings hashtable, including each ``Rules`` entry."""
    found: SettingsLocations = {}
    for key_node, value_node in hashtable.pairs:
        if not isinstance(key_node, StringConstantNode):
            continue
        key = prefix + key_node.value.lower()
        found[key] = (key_node.extent, value_node.extent)
        inner = _unwrap(value_node)
        if not prefix and key == "rules" and isinstance(inner, HashtableNode):
            found.update(settings_locations(inner, "rules."))
    return found


def load_settings_table(
    path: str,
    parser: Optional[Any] = None,
) -> Tuple[LiteralMap, SettingsLocations]:
    """
    Parse a settings file and evaluate its first hashtable.

    Returns the evaluated table and the source extents of its keys.
    Raises :class:`SettingsFileNotFound`, :class:`ParserFailure`,
    :class:`NoConfigurationLiteral` or :class:`UnsupportedLiteral`.
    """
    if not Path(path).is_file():
        raise SettingsFileNotFound(path)
    parser = parser or DataFileParser()
    ast, _tokens, errors = parser.parse_file(path)
    if errors:
        raise ParserFailure.from_issues(path, list(errors))

    hashtable = _first_hashtable(ast)
    if hashtable is None:
        raise NoConfigurationLiteral(
            f"Settings file '{path}' does not contain a hashtable",
        ).with_file(path)
    value = LiteralEvaluator().evaluate(hashtable)
    logger.debug("Evaluated settings file %s: %d top-level key(s)", path, len(value))
    return value, settings_locations(hashtable)


def load_settings_file(path: str, parser: Optional[Any] = None) -> LiteralMap:
    """The evaluated first hashtable of a settings file."""
    return load_settings_table(path, parser)[0]


# ═══════════════════════════════════════════════════════════════════
#  PART 4: KEY HANDLERS
# ═══════════════════════════════════════════════════════════════════

def _describe(value: Any) -> str:
    if isinstance(value, Mapping):
        return "a hashtable"
    if isinstance(value, tuple):
        return "an array containing non-string values"
    return f"{type(value).__name__} {value!r}"


def _value_extent(locations: SettingsLocations, key: str) -> Optional[Extent]:
    found = locations.get(key.lower())
    return found[1] if found is not None else None


def _string_list(key: str, value: Any, locations: SettingsLocations) -> Tuple[str, ...]:
    if isinstance(value, str):
        items: Tuple[Any, ...] = (value,)
    elif isinstance(value, tuple) and all(isinstance(v, str) for v in value):
        items = value
    else:
        raise InvalidValueShape(
            f"Setting '{key}' must be a string or an array of strings, "
            f"not {_describe(value)}",
            _value_extent(locations, key),
        )
    seen = set()
    unique = []
    for item in items:
        if item.lower() not in seen:
            seen.add(item.lower())
            unique.append(item)
    return tuple(unique)


def _boolean(key: str, value: Any, locations: SettingsLocations) -> bool:
    if not isinstance(value, bool):
        raise TypeMismatch(key, "boolean", value, _value_extent(locations, key))
    return value


def _rule_arguments(key: str, value: Any, locations: SettingsLocations) -> LiteralMap:
    if not isinstance(value, Mapping):
        raise InvalidRuleArguments(
            f"Setting '{key}' must be a hashtable of rule names to argument hashtables",
            _value_extent(locations, key),
        )
    rules = []
    for rule_name, arguments in value.items():
        if not isinstance(arguments, Mapping):
            raise InvalidRuleArguments(
                f"Arguments of rule '{rule_name}' must be a hashtable, "
                f"not {_describe(arguments)}",
                _value_extent(locations, f"rules.{rule_name}"),
            )
        rules.append((rule_name, arguments if isinstance(arguments, LiteralMap)
                      else LiteralMap(arguments)))
    return LiteralMap(rules)


# key -> (Configuration field, converter)
_SETTING_HANDLERS: Dict[str, Tuple[str, Callable[[str, Any, SettingsLocations], Any]]] = {
    "severity": ("severities", _string_list),
    "includerules": ("include_rules", _string_list),
    "excluderules": ("exclude_rules", _string_list),
    "customrulepath": ("custom_rule_paths", _string_list),
    "includedefaultrules": ("include_default_rules", _boolean),
    "recursecustomrulepath": ("recurse_custom_rule_path", _boolean),
    "rules": ("rule_arguments", _rule_arguments),
}

VALID_SETTING_KEYS = (
    "Severity", "IncludeRules", "ExcludeRules", "CustomRulePath",
    "IncludeDefaultRules", "RecurseCustomRulePath", "Rules",
)


def normalize_settings_mapping(value: Any, key_path: str = "") -> Any:
    """
    Freeze a caller-supplied mapping into literal values.

    Rejects non-string keys, keys colliding case-insensitively, ``None``
    values and values of types that have no literal form.
    """
    where = f"'{key_path}'" if key_path else "settings"
    if value is None:
        raise InvalidValueShape(f"Value of {where} must not be null")
    if isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Mapping):
        seen: Dict[str, str] = {}
        pairs = []
        for key, item in value.items():
            if not isinstance(key, str):
                raise InvalidValueShape(f"Keys of {where} must be strings, got {key!r}")
            if key.lower() in seen:
                raise InvalidValueShape(
                    f"Keys '{seen[key.lower()]}' and '{key}' of {where} differ only in case"
                )
            seen[key.lower()] = key
            child = f"{key_path}.{key}" if key_path else key
            pairs.append((key, normalize_settings_mapping(item, child)))
        return LiteralMap(pairs)
    if isinstance(value, (list, tuple)):
        return tuple(normalize_settings_mapping(item, key_path) for item in value)
    raise InvalidValueShape(f"Value of {where} has unsupported type {type(value).__name__}")


def build_configuration(
    table: Mapping[str, Any],
    mode: SettingsMode = SettingsMode.HASHTABLE,
    source_path: Optional[str] = None,
    locations: Optional[SettingsLocations] = None,
) -> Configuration:
    """
    Apply the key handlers to ``table``; all-or-nothing.

    ``locations`` (from :func:`settings_locations`) gives errors the
    position of the offending key or value in the settings file.
    """
    locations = locations or {}
    values: Dict[str, Any] = {}
    for key, value in table.items():
        handler = _SETTING_HANDLERS.get(key.lower())
        if handler is None:
            key_extent = locations.get(key.lower(), (None, None))[0]
            raise UnknownSetting(key, VALID_SETTING_KEYS, key_extent)
        field_name, convert = handler
        values[field_name] = convert(key, value, locations)

    if values.get("custom_rule_paths") and "include_default_rules" not in values:
        values["include_default_rules"] = False
    return replace(Configuration(mode=mode, source_path=source_path), **values)


# ═══════════════════════════════════════════════════════════════════
#  PART 5: ENTRY POINT
# ═══════════════════════════════════════════════════════════════════

def resolve_settings(
    explicit_input: SettingsInput = None,
    working_directory: Optional[Union[str, "os.PathLike[str]"]] = None,
    *,
    parser: Optional[Any] = None,
    path_resolver: Optional[PathResolver] = None,
) -> Configuration:
    """
    Resolve settings into a :class:`Configuration`.

    Parameters
    ----------
    explicit_input    : mapping, preset name, settings file path, or None
    working_directory : directory searched for ``PSScriptAnalyzerSettings.psd1``
                        when no explicit input is given
    parser            : object with ``parse_file(path)``; the bundled
                        data-file parser by default
    path_resolver     : maps a user-supplied path to a real one; defaults to
                        :func:`resolve_settings_path`

    Raises a :class:`~psscriptlint.errors.SettingsError` subclass, or
    :class:`~psscriptlint.errors.ParserFailure` for unreadable files.
    """
    mode, found = find_settings_mode(explicit_input, working_directory)

    if mode is SettingsMode.NONE:
        logger.debug("No settings provided and none discovered; using defaults")
        return Configuration()

    if mode is SettingsMode.HASHTABLE:
        logger.debug("Using settings hashtable")
        table = normalize_settings_mapping(found)
        return build_configuration(table, SettingsMode.HASHTABLE)

    if mode is SettingsMode.AUTO:
        logger.info("Settings not provided; discovered %s", found)
        path = found
        mode = SettingsMode.FILE
    else:
        path = (path_resolver or resolve_settings_path)(found)
        logger.info("Using settings file %s (%s)", path, mode.value)

    try:
        table, locations = load_settings_table(path, parser)
        return build_configuration(table, mode, path, locations)
    except (SettingsError, ParserFailure) as exc:
        exc.with_file(path)
        raise


__all__ = [
    "SETTINGS_FILE_NAME",
    "SettingsMode",
    "Configuration",
    "VALID_SETTING_KEYS",
    "get_shipped_settings_directory",
    "get_setting_presets",
    "get_setting_preset_file_path",
    "find_settings_mode",
    "resolve_settings_path",
    "load_settings_table",
    "load_settings_file",
    "settings_locations",
    "normalize_settings_mapping",
    "build_configuration",
    "resolve_settings",
]
