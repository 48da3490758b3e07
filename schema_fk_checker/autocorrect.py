"""
schema_fk_checker/autocorrect.py
════════════════════════════════

Applies the text replacements carried by findings back to the script.

Replacements are applied from the end of the text towards the start so
that earlier offsets stay valid.  A replacement whose span overlaps one
already applied, or whose span no longer contains the original type tag,
is skipped and reported back to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Union

from schema_fk_checker.errors import ErrorCodes, SchemaFkError
from schema_fk_checker.foreign_keys import Replacement

_log = logging.getLogger(__name__)


@dataclass
class CorrectionResult:
    """
    Outcome of applying a batch of replacements.

    Attributes
    ----------
    text    : corrected source text
    applied : replacements that were made
    skipped : replacements that overlapped another or were stale
    """
    text: str
    applied: List[Replacement] = field(default_factory=list)
    skipped: List[Replacement] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.applied)


def apply_fixes(text: str, replacements: Iterable[Replacement]) -> CorrectionResult:
    """Apply ``replacements`` to ``text``."""
    ordered = sorted(
        replacements,
        key=lambda r: (r.span.start, r.span.end),
        reverse=True,
    )
    result = CorrectionResult(text=text)
    boundary = len(text) + 1

    for replacement in ordered:
        if replacement.span.end > boundary:
            _log.debug("skipping overlapping fix at %s", replacement.span)
            result.skipped.append(replacement)
            continue
        corrected = replacement.corrected_text(result.text)
        if corrected is None:
            _log.debug("skipping stale fix at %s", replacement.span)
            result.skipped.append(replacement)
            continue
        result.text = (
            result.text[:replacement.span.start]
            + corrected
            + result.text[replacement.span.end:]
        )
        result.applied.append(replacement)
        boundary = replacement.span.start

    result.applied.reverse()
    return result


def correct_file(
    path: Union[str, Path],
    replacements: Iterable[Replacement],
) -> CorrectionResult:
    """Apply ``replacements`` to the file at ``path``, rewriting it if changed."""
    p = Path(path)
    try:
        with p.open(encoding="utf-8", newline="") as fh:
            original = fh.read()
    except OSError as exc:
        raise SchemaFkError(
            f"cannot read {p}: {exc}",
            code=ErrorCodes.UNREADABLE_SOURCE,
            cause=exc,
        ) from exc

    result = apply_fixes(original, replacements)
    if result.changed:
        with p.open("w", encoding="utf-8", newline="") as fh:
            fh.write(result.text)
        _log.info("corrected %d foreign key(s) in %s", len(result.applied), p)
    return result


__all__ = ["CorrectionResult", "apply_fixes", "correct_file"]
