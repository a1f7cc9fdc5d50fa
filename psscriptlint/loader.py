# psscriptlint/loader.py
"""
Discovery of custom rules.

A custom rule path is a Python file, or a directory of Python files
(searched recursively when requested).  Every module must define a
``get_rules()`` function returning rule factories::

    # rules/no_write_host.py
    from psscriptlint.rules import Rule, RuleDescriptor, SourceType

    class NoWriteHost(Rule):
        descriptor = RuleDescriptor("NoWriteHost", source_type=SourceType.MODULE)

        def analyze(self, ast, file_path, context):
            ...

    def get_rules():
        return [NoWriteHost]

Problems with one module (import errors, a missing ``get_rules``) are
reported as :class:`LoadFailure` records and never stop the others from
loading.
"""

from __future__ import annotations

import hashlib
import importlib.util
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Protocol, Sequence, Tuple

from psscriptlint.rules import RuleEntry, SourceType, describe_factory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadFailure:
    path: str
    reason: str

    def __str__(self) -> str:
        return f"{self.path}: {self.reason}"


@dataclass
class LoadResult:
    entries: List[RuleEntry] = field(default_factory=list)
    failures: List[LoadFailure] = field(default_factory=list)

    @property
    def factories(self) -> list:
        return [entry.factory for entry in self.entries]


class RuleLoader(Protocol):
    def load(self, paths: Sequence[str], recurse: bool) -> LoadResult:
        ...


class ModuleRuleLoader:
    """Loads ``get_rules()`` factories from Python files."""

    def __init__(self, pattern: str = "*.py") -> None:
        self.pattern = pattern

    def _candidate_files(self, raw: str, recurse: bool) -> Tuple[List[Path], str]:
        path = Path(raw).expanduser()
        if path.is_file():
            return [path], ""
        if path.is_dir():
            found = path.rglob(self.pattern) if recurse else path.glob(self.pattern)
            return sorted(p for p in found if p.is_file() and not p.name.startswith("_")), ""
        return [], "path does not exist"

    def _import(self, path: Path):
        digest = hashlib.sha1(str(path.resolve()).encode("utf-8")).hexdigest()[:12]
        module_name = f"psscriptlint_custom_{path.stem}_{digest}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise ImportError(f"cannot create an import spec for {path}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module

    def load(self, paths: Sequence[str], recurse: bool = False) -> LoadResult:
        result = LoadResult()
        for raw in paths:
            files, problem = self._candidate_files(raw, recurse)
            if problem:
                logger.warning("Custom rule path %s: %s", raw, problem)
                result.failures.append(LoadFailure(raw, problem))
                continue
            for file in files:
                try:
                    module = self._import(file)
                    get_rules = getattr(module, "get_rules", None)
                    if not callable(get_rules):
                        raise LookupError("module defines no get_rules() function")
                    for factory in get_rules():
                        entry = describe_factory(factory)
                        if entry.descriptor.is_builtin:
                            entry = describe_factory(factory, SourceType.MODULE)
                        result.entries.append(entry)
                except Exception as exc:
                    # A broken module must not block the remaining ones.
                    reason = f"{type(exc).__name__}: {exc}"
                    logger.warning("Cannot load custom rules from %s: %s", file, reason)
                    result.failures.append(LoadFailure(str(file), reason))
        logger.debug("Loaded %d custom rule(s), %d failure(s)",
                     len(result.entries), len(result.failures))
        return result


__all__ = ["LoadFailure", "LoadResult", "RuleLoader", "ModuleRuleLoader"]
