#!/usr/bin/env python3
"""schema_fk_checker/main.py — CLI entry-point for the foreign-key checker.

Usage examples
--------------
    # Check the schema and every migration below db/
    schema-fk check db/

    # Machine-readable output, one JSON object per line
    schema-fk check db/schema.rb --format json --output findings.jsonl

    # Rewrite the flagged integer columns to bigint in place
    schema-fk check db/schema.rb --fix

    # Treat findings as errors only (warnings do not fail the run)
    schema-fk check db/ --fail-on error

    # Silence the finding for legacy migrations only
    schema-fk check db/ --suppress "invalidIntegerForeignKey:db/migrate/2015*"

    # List the available checkers
    schema-fk list-checkers

    # Show version and exit
    schema-fk --version

Exit codes
----------
    0   Success (no diagnostics at or above ``--fail-on``).
    1   One or more diagnostics at or above ``--fail-on`` were emitted.
    2   Infrastructure failure (unreadable file, bad configuration, a
        checker that raised).

The module doubles as ``python -m schema_fk_checker`` via the companion
``schema_fk_checker/__main__.py`` which simply calls :func:`main`.
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
from collections import defaultdict
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, TextIO

from schema_fk_checker import __version__
from schema_fk_checker.autocorrect import correct_file
from schema_fk_checker.checkers import (
    CheckerRunner,
    CheckerRunResults,
    DiagnosticSeverity,
    SuppressionManager,
    default_registry,
)
from schema_fk_checker.config import (
    SchemaFkConfig,
    resolve_config,
    validate_checker_names,
)
from schema_fk_checker.errors import SchemaFkError
from schema_fk_checker.foreign_keys import Replacement
from schema_fk_checker.parser import parse_file

_log = logging.getLogger("schema_fk_checker")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_INFRA: int = 2


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``schema_fk_checker`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("schema_fk_checker")
    root.setLevel(level)
    for old in [h for h in root.handlers if getattr(h, "_schema_fk_cli", False)]:
        root.removeHandler(old)
    handler._schema_fk_cli = True  # type: ignore[attr-defined]
    root.addHandler(handler)


def _open_output(dest: Optional[str]) -> TextIO:
    """Return a writable text stream.

    *dest* ``None`` or ``"-"`` → ``sys.stdout``; otherwise open the path
    for writing (creating parent directories as needed).
    """
    if dest is None or dest == "-":
        return sys.stdout
    p = Path(dest).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "w", encoding="utf-8")


def _split_names(values: Optional[Sequence[str]]) -> List[str]:
    """Flatten repeated and comma-separated option values."""
    names: List[str] = []
    for value in values or ():
        names.extend(part.strip() for part in value.split(",") if part.strip())
    return names


def _collect_files(paths: Sequence[str], config: SchemaFkConfig) -> Iterator[Path]:
    """Expand *paths* into the script files to check.

    Files named explicitly are always checked unless excluded; directories
    are walked and filtered by the configured include patterns.
    """
    seen = set()
    for raw in paths:
        p = Path(raw).expanduser()
        if p.is_dir():
            candidates = sorted(c for c in p.rglob("*") if c.is_file())
            selected = [c for c in candidates if config.applies_to(c)]
            _log.debug("%s: %d of %d file(s) selected", p, len(selected), len(candidates))
        elif p.exists():
            selected = [p] if _not_excluded(p, config) else []
        else:
            raise SchemaFkError(f"path not found: {p}")
        for candidate in selected:
            key = candidate.resolve()
            if key not in seen:
                seen.add(key)
                yield candidate


def _not_excluded(path: Path, config: SchemaFkConfig) -> bool:
    # an explicit file bypasses the include list but not the exclude list
    relaxed = SchemaFkConfig(include=["*"], exclude=config.exclude)
    return relaxed.applies_to(path)


def _emit_results(results: CheckerRunResults, fmt: str, stream: TextIO) -> None:
    """Write *results* to *stream* in the chosen format."""
    if fmt == "json":
        text = results.to_json_lines()
    else:
        text = results.to_gcc_format()
    if text:
        stream.write(text + "\n")
    if fmt == "summary":
        stream.write(results.summary() + "\n")


def _apply_fixes(results: CheckerRunResults) -> List[Replacement]:
    """Rewrite every file that has fixable diagnostics; return applied fixes."""
    by_file: Dict[str, List[Replacement]] = defaultdict(list)
    for fix in results.fixes():
        by_file[fix.span.file].append(fix)

    applied: List[Replacement] = []
    for filename, fixes in by_file.items():
        outcome = correct_file(filename, fixes)
        applied.extend(outcome.applied)
        for skipped in outcome.skipped:
            _log.warning("%s: fix not applied (source changed or overlapping)", skipped.span)
    return applied


# ===========================================================================
# Sub-command implementations
# ===========================================================================

def cmd_check(args: argparse.Namespace) -> int:
    """Check schema scripts for integer foreign keys to bigint tables.

    Workflow:
        1. Resolve the configuration (``--config`` or ``.schema-fk.json``).
        2. Expand the paths into script files.
        3. Parse each file and run the selected checkers on it.
        4. Optionally apply the integer → bigint fixes.
        5. Emit diagnostics and return an appropriate exit code.
    """
    registry = default_registry()
    try:
        config = resolve_config(args.config)
        validate_checker_names(config, registry.names)
    except SchemaFkError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA

    selected = _split_names(args.checkers) or None
    if selected is not None:
        unknown = [name for name in selected if registry.get_by_name(name) is None]
        if unknown:
            _log.error(
                "unknown checker(s): %s (available: %s)",
                ", ".join(unknown), ", ".join(registry.names),
            )
            return EXIT_INFRA

    suppressions = SuppressionManager()
    for spec in config.suppress + _split_names(args.suppress):
        suppressions.add_suppression(spec)

    runner = CheckerRunner(
        registry=registry,
        suppressions=suppressions,
        options=config.to_options(),
    )

    results = CheckerRunResults()
    failures = 0
    try:
        files = list(_collect_files(args.paths, config))
    except SchemaFkError as exc:
        _log.error("%s", exc.message)
        return EXIT_INFRA

    for path in files:
        _log.info("checking %s", path)
        try:
            schema = parse_file(path)
        except SchemaFkError as exc:
            _log.error("%s", exc)
            failures += 1
            continue
        results.merge(runner.run(schema, checkers=selected))

    remaining = results.count_at_least(DiagnosticSeverity(args.fail_on))

    if args.fix and results.fixes():
        try:
            applied = _apply_fixes(results)
        except SchemaFkError as exc:
            _log.error("%s", exc)
            return EXIT_INFRA
        fixed = set(applied)
        remaining = sum(
            1 for d in results.diagnostics
            if d.severity.at_least(DiagnosticSeverity(args.fail_on))
            and d.fix not in fixed
        )
        _log.info("applied %d fix(es)", len(applied))

    out = _open_output(args.output)
    try:
        _emit_results(results, args.format, out)
    finally:
        if out is not sys.stdout:
            out.close()

    _log.info("checked %d file(s), %d diagnostic(s)", len(files), results.total_count)

    crashed = results.internal_errors
    if crashed:
        _log.error("%d checker run(s) failed; results are incomplete", len(crashed))
    if failures or crashed:
        return EXIT_INFRA
    return EXIT_ERROR if remaining > 0 else EXIT_OK


def cmd_list_checkers(args: argparse.Namespace) -> int:
    """List the registered checkers with their error ids and severities."""
    registry = default_registry()
    try:
        config = resolve_config(args.config)
    except SchemaFkError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA

    for cls in registry.get_all():
        severity = config.severity_for(cls.name) or cls.default_severity.value
        state = "enabled" if config.is_enabled(cls.name) else "disabled"
        ids = ", ".join(sorted(cls.error_ids))
        sys.stdout.write(f"{cls.name:<32} {severity:<12} {state:<9} {ids}\n")
        if args.long and cls.description:
            sys.stdout.write(f"    {cls.description}\n")
    return EXIT_OK


# ===========================================================================
# Argument parser
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    """Construct the full CLI argument parser with subcommands."""

    parser = argparse.ArgumentParser(
        prog="schema-fk",
        description=(
            "Find integer foreign-key columns in Rails-style schema scripts\n"
            "whose referenced table has a bigint primary key."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              schema-fk check db/schema.rb
              schema-fk check db/ --format json -o findings.jsonl
              schema-fk check db/schema.rb --fix
              schema-fk list-checkers
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    def _add_config_arg(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "-c", "--config",
            default=None,
            metavar="FILE",
            help="Configuration file (default: nearest .schema-fk.json).",
        )

    # --- check -------------------------------------------------------------
    p_check = subparsers.add_parser(
        "check",
        help="Check schema scripts.",
        description=(
            "Parse each schema script, build its primary-key registry in "
            "statement order, and report integer foreign keys that point at "
            "bigint primary keys."
        ),
    )
    p_check.add_argument(
        "paths",
        nargs="+",
        metavar="PATH",
        help="Schema scripts or directories to check.",
    )
    p_check.add_argument(
        "-o", "--output",
        default=None,
        metavar="FILE",
        help='Output file ("-" or omit for stdout).',
    )
    p_check.add_argument(
        "-f", "--format",
        choices=["gcc", "json", "summary"],
        default="gcc",
        help="Output format (default: gcc).",
    )
    p_check.add_argument(
        "--fix",
        action="store_true",
        help="Rewrite flagged integer columns to bigint in place.",
    )
    p_check.add_argument(
        "--suppress",
        action="append",
        default=None,
        metavar="ID[:FILE][,...]",
        help=(
            "Suppress diagnostics with these error ids, optionally only in "
            "files matching FILE (repeatable)."
        ),
    )
    p_check.add_argument(
        "--checkers",
        action="append",
        default=None,
        metavar="NAME[,NAME]",
        help="Run only these checkers (repeatable; default: all enabled).",
    )
    p_check.add_argument(
        "--fail-on",
        choices=["error", "warning"],
        default="warning",
        help="Lowest severity that makes the run fail (default: warning).",
    )
    _add_config_arg(p_check)
    p_check.set_defaults(func=cmd_check)

    # --- list-checkers -----------------------------------------------------
    p_list = subparsers.add_parser(
        "list-checkers",
        help="List available checkers.",
    )
    p_list.add_argument(
        "-l", "--long",
        action="store_true",
        help="Include each checker's description.",
    )
    _add_config_arg(p_list)
    p_list.set_defaults(func=cmd_list_checkers)

    return parser


# ===========================================================================
# Main entry point
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the schema-fk CLI.

    Parameters
    ----------
    argv:
        Command-line arguments.  ``None`` → ``sys.argv[1:]``.

    Returns
    -------
    int
        Exit code (see module docstring for semantics).
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    # No subcommand given → print help.
    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    try:
        return args.func(args)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130  # Standard UNIX convention for SIGINT
    except SchemaFkError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA
    except Exception as exc:
        _log.error("Unhandled exception: %s", exc, exc_info=True)
        return EXIT_INFRA


if __name__ == "__main__":
    raise SystemExit(main())
