"""
schema_fk_checker/checkers.py
═════════════════════════════

Checker framework that runs the foreign-key inference engine over parsed
schema scripts and turns its findings into reportable diagnostics.

Architecture
────────────

  ┌─────────────────────────────────────────────────────────┐
  │                   CheckerRunner                         │
  │  ┌───────────────────────────────────────────────────┐  │
  │  │        InvalidIntegerForeignKeyChecker            │  │
  │  └──────────────────────────┬────────────────────────┘  │
  │                             │                           │
  │  ┌──────────────────────────▼────────────────────────┐  │
  │  │   foreign_keys.analyze  (registry + resolver)     │  │
  │  └──────────────────────────┬────────────────────────┘  │
  │                             │                           │
  │  ┌──────────────────────────▼────────────────────────┐  │
  │  │           SuppressionManager                      │  │
  │  │  # schema-fk:disable  │  file-level  │  global    │  │
  │  └──────────────────────────┬────────────────────────┘  │
  │                             │                           │
  │  ┌──────────────────────────▼────────────────────────┐  │
  │  │        Diagnostic Formatter (JSON / gcc)          │  │
  │  └───────────────────────────────────────────────────┘  │
  └─────────────────────────────────────────────────────────┘

Each Checker follows a four-phase lifecycle:

  1. **configure()**        — read per-checker options
  2. **collect_evidence()** — run the analysis over the schema
  3. **diagnose()**         — turn evidence into Diagnostics
  4. **report()**           — return Diagnostics not suppressed
"""

from __future__ import annotations

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from fnmatch import fnmatch
from typing import (
    Any,
    ClassVar,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Optional,
    Sequence,
    Set,
    Tuple,
    Type,
)

from schema_fk_checker.foreign_keys import Finding, Replacement, analyze
from schema_fk_checker.model import PrimaryKeyRegistry, SourceSpan
from schema_fk_checker.parser import ParsedSchema

_log = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — DIAGNOSTIC MODEL
# ═════════════════════════════════════════════════════════════════════════

class DiagnosticSeverity(Enum):
    """Severity levels, ordered from most to least severe."""
    ERROR = "error"
    WARNING = "warning"
    STYLE = "style"
    INFORMATION = "information"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def at_least(self, other: "DiagnosticSeverity") -> bool:
        return self.rank <= other.rank


_SEVERITY_RANK = {
    DiagnosticSeverity.ERROR: 0,
    DiagnosticSeverity.WARNING: 1,
    DiagnosticSeverity.STYLE: 2,
    DiagnosticSeverity.INFORMATION: 3,
}


@dataclass(frozen=True)
class Diagnostic:
    """
    A single reportable diagnostic.

    Attributes
    ----------
    error_id     : Unique identifier (e.g., "invalidIntegerForeignKey")
    message      : Human-readable description
    severity     : DiagnosticSeverity
    location     : Primary source location
    checker_name : Name of the checker that produced this
    fix          : Optional text replacement that resolves it
    evidence     : Machine-readable context for downstream tooling
    """
    error_id: str
    message: str
    severity: DiagnosticSeverity
    location: SourceSpan
    checker_name: str = ""
    fix: Optional[Replacement] = None
    evidence: Dict[str, Any] = field(default_factory=dict)

    def to_json_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "file": self.location.file,
            "linenr": self.location.line,
            "column": self.location.column,
            "severity": self.severity.value,
            "message": self.message,
            "errorId": self.error_id,
            "checker": self.checker_name,
        }
        if self.fix is not None:
            result["fix"] = {
                "from": self.fix.original,
                "to": self.fix.replacement,
                "start": self.fix.span.start,
                "end": self.fix.span.end,
            }
        if self.evidence:
            result["evidence"] = self.evidence
        return result

    def to_json_str(self) -> str:
        """Single-line JSON string."""
        return json.dumps(self.to_json_dict(), ensure_ascii=False)

    def to_gcc_format(self) -> str:
        """GCC-style diagnostic string: file:line:col: severity: message."""
        sev = self.severity.value
        return f"{self.location}: {sev}: {self.message} [{self.error_id}]"

    def __str__(self) -> str:
        return self.to_gcc_format()


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — SUPPRESSION MANAGER
# ═════════════════════════════════════════════════════════════════════════

_INLINE_SUPPRESS_RE = re.compile(
    r"^#\s*schema-fk:\s*disable(?:\s+|=)(?P<ids>[A-Za-z0-9_*,\s-]+)"
)


class SuppressionManager:
    """
    Manages diagnostic suppressions from multiple sources.

    Sources:
      1. Inline comments:  ``# schema-fk:disable invalidIntegerForeignKey``
         on the flagged line or the line above it (``all`` or ``*`` for
         every id)
      2. File-level suppressions: ``<id>:<file pattern>`` from the
         command line or config
      3. Global suppressions: a bare ``<id>`` from the command line or config

    Usage
    -----
    >>> sm = SuppressionManager()
    >>> sm.load_inline_suppressions(schema)
    >>> sm.add_suppression("invalidIntegerForeignKey:db/legacy/*.rb")
    >>> sm.add_suppression("checkerInternalError")
    >>> if not sm.is_suppressed(diagnostic):
    ...     emit(diagnostic)
    """

    def __init__(self) -> None:
        # {(file, line)} → set of error_ids suppressed at that location
        self._inline: Dict[Tuple[str, int], Set[str]] = defaultdict(set)
        # file pattern → set of error_ids
        self._file_level: Dict[str, Set[str]] = defaultdict(set)
        # globally suppressed error_ids
        self._global: Set[str] = set()

    def load_inline_suppressions(self, schema: ParsedSchema) -> None:
        """Scan the script's comments for ``schema-fk:disable`` markers."""
        for lineno, comment in schema.comments:
            match = _INLINE_SUPPRESS_RE.match(comment)
            if match is None:
                continue
            for raw_id in re.split(r"[\s,]+", match.group("ids").strip()):
                if not raw_id:
                    continue
                error_id = "*" if raw_id.lower() == "all" else raw_id
                self._inline[(schema.filename, lineno)].add(error_id)

    def add_suppression(self, spec: str) -> None:
        """Add ``<id>`` (global) or ``<id>:<file pattern>`` (file-level)."""
        error_id, sep, file_pattern = spec.partition(":")
        error_id, file_pattern = error_id.strip(), file_pattern.strip()
        if sep and file_pattern:
            self.add_file_suppression(error_id, file_pattern)
        else:
            self.add_global_suppression(error_id)

    def add_file_suppression(self, error_id: str, file_pattern: str) -> None:
        """Suppress ``error_id`` in files matching ``file_pattern``."""
        self._file_level[file_pattern].add(error_id)

    def add_global_suppression(self, error_id: str) -> None:
        """Globally suppress ``error_id``."""
        self._global.add(error_id)

    def is_suppressed(self, diag: Diagnostic) -> bool:
        """Check whether a diagnostic should be suppressed."""
        eid = diag.error_id

        if eid in self._global or "*" in self._global:
            return True

        loc = diag.location

        # Inline (same line, or the line above)
        for line_offset in (0, 1):
            key = (loc.file, loc.line - line_offset)
            suppressed_ids = self._inline.get(key, set())
            if eid in suppressed_ids or "*" in suppressed_ids:
                return True

        for pattern, ids in self._file_level.items():
            if eid in ids or "*" in ids:
                if pattern == loc.file or loc.file.endswith(pattern):
                    return True
                if fnmatch(loc.file, pattern):
                    return True

        return False

    def filter_diagnostics(
        self, diagnostics: Iterable[Diagnostic]
    ) -> List[Diagnostic]:
        """Return only non-suppressed diagnostics."""
        return [d for d in diagnostics if not self.is_suppressed(d)]


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — CHECKER BASE CLASS
# ═════════════════════════════════════════════════════════════════════════

class Checker(ABC):
    """
    Abstract base class for all checkers.

    Lifecycle
    ─────────
      1. ``configure(ctx)``        — receive context, read options
      2. ``collect_evidence(ctx)``  — run the analysis
      3. ``diagnose(ctx)``          — turn evidence into diagnostics
      4. ``report(ctx)``            — yield final diagnostics

    Subclass Contract
    ─────────────────
      - Override ``name``, ``description``, ``error_ids``
      - Implement ``collect_evidence()`` and ``diagnose()``
      - Optionally override ``configure()`` for custom setup
    """

    name: ClassVar[str] = "base-checker"
    description: ClassVar[str] = ""
    error_ids: ClassVar[FrozenSet[str]] = frozenset()
    default_severity: ClassVar[DiagnosticSeverity] = DiagnosticSeverity.WARNING

    def __init__(self) -> None:
        self._diagnostics: List[Diagnostic] = []
        self._severity: DiagnosticSeverity = self.default_severity

    def configure(self, ctx: CheckerContext) -> None:
        """
        Called before evidence collection.

        The default reads an optional ``severity`` override from
        ``ctx.options[self.name]``.
        """
        settings = ctx.get_option(self.name) or {}
        severity = settings.get("severity")
        if severity:
            self._severity = DiagnosticSeverity(severity)

    @abstractmethod
    def collect_evidence(self, ctx: CheckerContext) -> None:
        """Run the analysis and store intermediate results."""
        ...

    @abstractmethod
    def diagnose(self, ctx: CheckerContext) -> None:
        """Append Diagnostic objects to ``self._diagnostics``."""
        ...

    def report(self, ctx: CheckerContext) -> List[Diagnostic]:
        """Return final diagnostics, filtered by suppressions."""
        return ctx.suppressions.filter_diagnostics(self._diagnostics)

    def _emit(
        self,
        error_id: str,
        message: str,
        location: SourceSpan,
        fix: Optional[Replacement] = None,
        evidence: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Helper to create and store a diagnostic."""
        self._diagnostics.append(Diagnostic(
            error_id=error_id,
            message=message,
            severity=self._severity,
            location=location,
            checker_name=self.name,
            fix=fix,
            evidence=evidence or {},
        ))

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} '{self.name}'>"


@dataclass
class CheckerContext:
    """
    Shared context passed to every checker during execution.

    Attributes
    ----------
    schema       : the parsed schema script
    suppressions : SuppressionManager
    options      : per-checker option dicts, keyed by checker name
    stats        : mutable dict for timing / counting statistics
    """
    schema: ParsedSchema
    suppressions: SuppressionManager = field(default_factory=SuppressionManager)
    options: Dict[str, Any] = field(default_factory=dict)
    stats: Dict[str, Any] = field(default_factory=dict)

    def get_option(self, key: str, default: Any = None) -> Any:
        return self.options.get(key, default)


# ═════════════════════════════════════════════════════════════════════════
#  PART 4 — CHECKER REGISTRY
# ═════════════════════════════════════════════════════════════════════════

class CheckerRegistry:
    """
    Registry of available checkers, keyed by name.

    Usage
    -----
    >>> registry = CheckerRegistry()
    >>> registry.register(InvalidIntegerForeignKeyChecker)
    >>> checkers = registry.get_all()
    """

    def __init__(self) -> None:
        self._checkers: Dict[str, Type[Checker]] = {}

    def register(self, checker_cls: Type[Checker]) -> None:
        """Register a checker class."""
        self._checkers[checker_cls.name] = checker_cls

    def get_all(self) -> List[Type[Checker]]:
        return list(self._checkers.values())

    def get_by_name(self, name: str) -> Optional[Type[Checker]]:
        return self._checkers.get(name)

    @property
    def names(self) -> List[str]:
        return sorted(self._checkers.keys())


# ═════════════════════════════════════════════════════════════════════════
#  PART 5 — PRODUCTION CHECKERS
# ═════════════════════════════════════════════════════════════════════════

class InvalidIntegerForeignKeyChecker(Checker):
    """
    Detects ``integer`` foreign-key columns whose referenced table has a
    ``bigint`` primary key.

    Bad::

        create_table "applications", force: :cascade do |t|
          t.string "name"
        end

        create_table "device_settings", force: :cascade do |t|
          t.integer "application_id"
        end

    Good::

        create_table "device_settings", force: :cascade do |t|
          t.bigint "application_id"
        end

    The referenced table is guessed from the column name.
    """

    name = "invalid-integer-foreign-key"
    description = "integer foreign key referencing a bigint primary key"
    error_ids = frozenset({"invalidIntegerForeignKey"})
    default_severity = DiagnosticSeverity.WARNING

    def __init__(self) -> None:
        super().__init__()
        self._findings: List[Finding] = []
        self._registry = PrimaryKeyRegistry()

    @property
    def registry(self) -> PrimaryKeyRegistry:
        return self._registry

    def collect_evidence(self, ctx: CheckerContext) -> None:
        self._registry = PrimaryKeyRegistry()
        self._findings = analyze(ctx.schema.tables, self._registry)
        ctx.stats[f"{self.name}_tables"] = len(self._registry)

    def diagnose(self, ctx: CheckerContext) -> None:
        for finding in self._findings:
            if finding.location is None:
                _log.debug("finding for %r has no location; dropped", finding.column)
                continue
            self._emit(
                error_id="invalidIntegerForeignKey",
                message=finding.message,
                location=finding.location,
                fix=finding.fix,
                evidence={
                    "column": finding.column,
                    "referencedTable": finding.referenced_table,
                },
            )


_DEFAULT_REGISTRY = CheckerRegistry()
_DEFAULT_REGISTRY.register(InvalidIntegerForeignKeyChecker)


def default_registry() -> CheckerRegistry:
    """The registry holding the built-in checkers."""
    return _DEFAULT_REGISTRY


# ═════════════════════════════════════════════════════════════════════════
#  PART 6 — RUNNER
# ═════════════════════════════════════════════════════════════════════════

INTERNAL_ERROR_ID = "checkerInternalError"


@dataclass
class CheckerRunResults:
    """
    Aggregate results from running a suite of checkers.

    Attributes
    ----------
    diagnostics            : All diagnostics from all checkers
    diagnostics_by_checker : Diagnostics grouped by checker name
    stats                  : Timing and counting statistics
    checker_names          : Names of checkers that were run
    """
    diagnostics: List[Diagnostic] = field(default_factory=list)
    diagnostics_by_checker: Dict[str, List[Diagnostic]] = field(
        default_factory=lambda: defaultdict(list)
    )
    stats: Dict[str, Any] = field(default_factory=dict)
    checker_names: List[str] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.by_severity(DiagnosticSeverity.ERROR))

    @property
    def warning_count(self) -> int:
        return len(self.by_severity(DiagnosticSeverity.WARNING))

    @property
    def total_count(self) -> int:
        return len(self.diagnostics)

    def by_severity(self, severity: DiagnosticSeverity) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == severity]

    def by_file(self, file: str) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.location.file == file]

    def count_at_least(self, severity: DiagnosticSeverity) -> int:
        return sum(1 for d in self.diagnostics if d.severity.at_least(severity))

    @property
    def internal_errors(self) -> List[Diagnostic]:
        """Diagnostics standing in for a checker that raised."""
        return [d for d in self.diagnostics if d.error_id == INTERNAL_ERROR_ID]

    def fixes(self) -> List[Replacement]:
        return [d.fix for d in self.diagnostics if d.fix is not None]

    def merge(self, other: "CheckerRunResults") -> None:
        """Fold another run (typically another file) into this one."""
        self.diagnostics.extend(other.diagnostics)
        for name, diags in other.diagnostics_by_checker.items():
            self.diagnostics_by_checker[name].extend(diags)
        for key, val in other.stats.items():
            if key in self.stats:
                self.stats[key] += val
            else:
                self.stats[key] = val
        for name in other.checker_names:
            if name not in self.checker_names:
                self.checker_names.append(name)

    def to_json_lines(self) -> str:
        return "\n".join(d.to_json_str() for d in self.diagnostics)

    def to_gcc_format(self) -> str:
        return "\n".join(d.to_gcc_format() for d in self.diagnostics)

    def summary(self) -> str:
        """Human-readable summary."""
        lines = [
            f"Checker run complete: {self.total_count} diagnostics "
            f"({self.error_count} errors, {self.warning_count} warnings)",
        ]
        for name in self.checker_names:
            count = len(self.diagnostics_by_checker.get(name, []))
            elapsed = self.stats.get(f"{name}_elapsed_ms", 0)
            lines.append(f"  {name}: {count} findings ({elapsed:.1f}ms)")
        return "\n".join(lines)


class CheckerRunner:
    """
    Runs a suite of checkers against a parsed schema script.

    Usage
    -----
    >>> runner = CheckerRunner()
    >>> results = runner.run(parse_file("db/schema.rb"))
    >>> print(results.summary())

    Parameters for constructor
    ─────────────────────────
    registry    : CheckerRegistry — source of checker classes
    suppressions: SuppressionManager — pre-loaded suppression rules
    options     : dict — per-checker configuration
    """

    def __init__(
        self,
        registry: Optional[CheckerRegistry] = None,
        suppressions: Optional[SuppressionManager] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.registry = registry or _DEFAULT_REGISTRY
        self.suppressions = suppressions or SuppressionManager()
        self.options = options or {}

    def _select(self, checkers: Optional[Sequence[str]]) -> List[Type[Checker]]:
        if checkers is None:
            return [
                cls for cls in self.registry.get_all()
                if (self.options.get(cls.name) or {}).get("enabled", True)
            ]
        selected: List[Type[Checker]] = []
        for name in checkers:
            cls = self.registry.get_by_name(name)
            if cls is None:
                _log.warning("unknown checker %r ignored", name)
                continue
            selected.append(cls)
        return selected

    def run(
        self,
        schema: ParsedSchema,
        checkers: Optional[Sequence[str]] = None,
    ) -> CheckerRunResults:
        """
        Run checkers against a single schema script.

        Parameters
        ----------
        schema   : ParsedSchema
        checkers : list of checker names to run (None = all enabled)
        """
        results = CheckerRunResults()
        self.suppressions.load_inline_suppressions(schema)

        ctx = CheckerContext(
            schema=schema,
            suppressions=self.suppressions,
            options=self.options,
        )

        for cls in self._select(checkers):
            checker = cls()
            checker_name = cls.name
            results.checker_names.append(checker_name)

            t0 = time.monotonic()
            try:
                checker.configure(ctx)
                checker.collect_evidence(ctx)
                checker.diagnose(ctx)
                diags = checker.report(ctx)
            except Exception as exc:
                # reported as a diagnostic; the remaining checkers still run
                _log.error("checker %s failed on %s: %s", checker_name, schema.filename, exc,
                           exc_info=True)
                diags = [Diagnostic(
                    error_id=INTERNAL_ERROR_ID,
                    message=f"Checker '{checker_name}' failed: {exc}",
                    severity=DiagnosticSeverity.INFORMATION,
                    location=SourceSpan(file=schema.filename),
                    checker_name=checker_name,
                )]
            elapsed_ms = (time.monotonic() - t0) * 1000.0

            results.diagnostics.extend(diags)
            results.diagnostics_by_checker[checker_name].extend(diags)
            results.stats[f"{checker_name}_elapsed_ms"] = elapsed_ms
            _log.debug("%s: %d diagnostic(s) in %.1fms", checker_name, len(diags), elapsed_ms)

        results.stats.update({k: v for k, v in ctx.stats.items() if k not in results.stats})
        return results

    def run_all(
        self,
        schemas: Iterable[ParsedSchema],
        checkers: Optional[Sequence[str]] = None,
    ) -> CheckerRunResults:
        """Run checkers over several scripts, each with its own registry."""
        combined = CheckerRunResults()
        for schema in schemas:
            combined.merge(self.run(schema, checkers=checkers))
        return combined


__all__ = [
    "Diagnostic",
    "DiagnosticSeverity",
    "SuppressionManager",
    "Checker",
    "CheckerContext",
    "CheckerRegistry",
    "InvalidIntegerForeignKeyChecker",
    "default_registry",
    "CheckerRunner",
    "CheckerRunResults",
    "INTERNAL_ERROR_ID",
]
