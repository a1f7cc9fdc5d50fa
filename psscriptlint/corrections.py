# psscriptlint/corrections.py
"""
Applying the corrections proposed by diagnostics.

Each diagnostic contributes at most one edit: its first correction.  The
edits are sorted by start position and applied in a single forward sweep.
An edit that starts before the end of the previously applied one overlaps
it and is skipped as a conflict, so the earlier-starting edit always wins.

Usage
-----
>>> result = apply_corrections("abc def", diagnostics)
>>> result.text
'xyz uvw'
>>> [s.reason for s in result.skipped]
[]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union

from psscriptlint.ast_nodes import LineIndex, same_file
from psscriptlint.diagnostics import Correction, Diagnostic
from psscriptlint.errors import ErrorCode, ErrorCodes

logger = logging.getLogger(__name__)


class SkipReason(Enum):
    CONFLICT = "ConflictingCorrection"
    CROSS_FILE = "CrossFileCorrection"
    OUT_OF_RANGE = "OutOfRange"

    @property
    def error_code(self) -> ErrorCode:
        return {
            SkipReason.CONFLICT: ErrorCodes.CONFLICTING_CORRECTION,
            SkipReason.CROSS_FILE: ErrorCodes.CROSS_FILE_CORRECTION,
            SkipReason.OUT_OF_RANGE: ErrorCodes.OUT_OF_RANGE,
        }[self]


@dataclass(frozen=True)
class SkippedCorrection:
    """A correction that was not applied, and why."""
    diagnostic: Diagnostic
    correction: Correction
    reason: SkipReason
    conflicts_with: Optional[Correction] = None

    def __str__(self) -> str:
        message = f"{self.reason.value}: {self.diagnostic.rule_name} correction at {self.correction.extent}"
        if self.conflicts_with is not None:
            message += f" overlaps the correction at {self.conflicts_with.extent}"
        return f"{message} [{self.reason.error_code.code}]"


class CorrectionResult(NamedTuple):
    text: str
    applied_count: int
    skipped: List[SkippedCorrection]

    @property
    def changed(self) -> bool:
        return self.applied_count > 0


class _Edit(NamedTuple):
    start: int
    end: int
    order: int
    diagnostic: Diagnostic
    correction: Correction


class CorrectionApplier:
    """
    Merges corrections into one text.

    Parameters
    ----------
    file_path : the file the text belongs to; corrections whose extent names
                another file are skipped.  Empty means "don't check".
    """

    def __init__(self, file_path: str = "") -> None:
        self.file_path = file_path or ""

    def _skip(self, skipped: List[SkippedCorrection], diag: Diagnostic,
              correction: Correction, reason: SkipReason,
              conflicts_with: Optional[Correction] = None) -> None:
        item = SkippedCorrection(diag, correction, reason, conflicts_with)
        logger.warning("Skipping correction: %s", item)
        skipped.append(item)

    def _collect(self, text: str, diagnostics: Iterable[Diagnostic],
                 skipped: List[SkippedCorrection]) -> List[_Edit]:
        index = LineIndex(text)
        edits: List[_Edit] = []
        for order, diag in enumerate(diagnostics):
            correction = diag.preferred_correction
            if correction is None:
                continue
            if not same_file(self.file_path, correction.file):
                self._skip(skipped, diag, correction, SkipReason.CROSS_FILE)
                continue
            e = correction.extent
            start = index.offset(e.start_line, e.start_column)
            end = index.offset(e.end_line, e.end_column)
            if start is None or end is None or end < start:
                self._skip(skipped, diag, correction, SkipReason.OUT_OF_RANGE)
                continue
            edits.append(_Edit(start, end, order, diag, correction))
        edits.sort(key=lambda edit: (edit.start, edit.order))
        return edits

    def apply(self, text: str, diagnostics: Iterable[Diagnostic]) -> CorrectionResult:
        skipped: List[SkippedCorrection] = []
        edits = self._collect(text, diagnostics, skipped)

        pieces: List[str] = []
        cursor = 0
        applied = 0
        previous: Optional[Correction] = None
        for edit in edits:
            if edit.start < cursor:
                self._skip(skipped, edit.diagnostic, edit.correction,
                           SkipReason.CONFLICT, previous)
                continue
            pieces.append(text[cursor:edit.start])
            pieces.append(edit.correction.text)
            cursor = edit.end
            previous = edit.correction
            applied += 1
        pieces.append(text[cursor:])

        if applied:
            logger.info("Applied %d correction(s) to %s", applied, self.file_path or "<text>")
        return CorrectionResult("".join(pieces), applied, skipped)


def apply_corrections(
    source_text: str,
    diagnostics: Iterable[Diagnostic],
    file_path: Optional[str] = None,
) -> CorrectionResult:
    return CorrectionApplier(file_path or "").apply(source_text, diagnostics)


def apply_corrections_to_file(
    path: Union[str, Path],
    diagnostics: Iterable[Diagnostic],
    encoding: str = "utf-8",
) -> CorrectionResult:
    """Patch ``path`` in place; line endings are left as they are."""
    path = Path(path)
    with open(path, "r", encoding=encoding, newline="") as fh:
        text = fh.read()
    result = CorrectionApplier(str(path)).apply(text, diagnostics)
    if result.changed:
        with open(path, "w", encoding=encoding, newline="") as fh:
            fh.write(result.text)
    return result


AnalyzeCallback = Callable[[str], Sequence[Diagnostic]]


def fix_until_stable(
    text: str,
    analyze: AnalyzeCallback,
    *,
    file_path: Optional[str] = None,
    max_passes: int = 10,
) -> Tuple[str, int]:
    """
    Repeatedly analyze ``text`` and apply the corrections found.

    Stops when a pass applies nothing or after ``max_passes`` passes.
    Returns the final text and the total number of applied corrections.
    """
    applier = CorrectionApplier(file_path or "")
    total = 0
    for pass_number in range(1, max_passes + 1):
        result = applier.apply(text, analyze(text))
        if not result.changed:
            break
        total += result.applied_count
        text = result.text
        logger.debug("Fix pass %d applied %d correction(s)", pass_number, result.applied_count)
    else:
        logger.warning("Corrections did not stabilize after %d passes", max_passes)
    return text, total


__all__ = [
    "SkipReason",
    "SkippedCorrection",
    "CorrectionResult",
    "CorrectionApplier",
    "apply_corrections",
    "apply_corrections_to_file",
    "fix_until_stable",
]
