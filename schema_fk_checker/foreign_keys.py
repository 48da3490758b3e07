"""
schema_fk_checker/foreign_keys.py
═════════════════════════════════

Integer foreign keys that point at bigint primary keys.

The engine is one forward pass over the table statements of a script:

  1. ``record_table()`` infers the statement's primary-key type and writes
     it into the registry under the table name.
  2. ``check_table()`` walks the statement's column declarations and flags
     every ``integer`` column named ``<singular>_id`` whose referenced table
     is already in the registry with a ``bigint`` key.

Lookups only see tables recorded earlier in the pass (or the table being
checked, which is recorded first), so a foreign key to a table defined
further down the script is not resolved.  That ordering is part of the
contract; do not batch or reorder statements.

Atypical statements never raise: a table without a name, an ``id`` option
with an unrecognised value, or a column without a name simply yields no
finding.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from schema_fk_checker.model import (
    ColumnDeclaration,
    KeywordOption,
    PrimaryKeyRegistry,
    PrimaryKeyType,
    SourceSpan,
    TableDefinition,
)
from schema_fk_checker.naming import infer_table, is_foreign_key_name

_log = logging.getLogger(__name__)

MESSAGE = (
    "Use bigint for this foreign key: the primary key of the referenced "
    "table is bigint."
)

NARROW_TYPE_TAG = PrimaryKeyType.INTEGER.value
WIDE_TYPE_TAG = PrimaryKeyType.BIGINT.value


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — FINDINGS
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Replacement:
    """
    Text fix: swap the first ``original`` inside ``span`` for ``replacement``.
    """
    span: SourceSpan
    original: str = NARROW_TYPE_TAG
    replacement: str = WIDE_TYPE_TAG

    def corrected_text(self, source: str) -> Optional[str]:
        """New text for the span, or None if ``original`` is no longer there."""
        current = self.span.text_of(source)
        if self.original not in current:
            return None
        return current.replace(self.original, self.replacement, 1)

    def apply(self, source: str) -> str:
        """Return ``source`` with this replacement made (unchanged if stale)."""
        corrected = self.corrected_text(source)
        if corrected is None:
            return source
        return source[:self.span.start] + corrected + source[self.span.end:]


@dataclass(frozen=True)
class Finding:
    """
    A flagged column declaration.

    Attributes
    ----------
    location         : span of the declaration, as supplied by the host
    message          : always :data:`MESSAGE`
    fix              : the integer → bigint replacement, when a span is known
    column           : name of the flagged column
    referenced_table : table the column was resolved to
    """
    location: Optional[SourceSpan]
    message: str = MESSAGE
    fix: Optional[Replacement] = None
    column: str = ""
    referenced_table: str = ""


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — PRIMARY-KEY REGISTRY BUILDER
# ═════════════════════════════════════════════════════════════════════════

def _primary_key_from_option(option: KeywordOption) -> Optional[PrimaryKeyType]:
    if not option.key.is_symbol("id"):
        return None
    if not option.value.is_symbol():
        return None
    return PrimaryKeyType.from_tag(option.value.value)


def infer_primary_key_type(table: TableDefinition) -> PrimaryKeyType:
    """
    Primary-key type declared by a table statement.

    The first ``id`` option whose value is ``:integer`` or ``:bigint`` wins.
    ``id: false``, ``id: :uuid``, ``id: "integer"`` and the like do not
    count, and without a usable ``id`` option the key is ``bigint``.
    """
    for option in table.options:
        pk_type = _primary_key_from_option(option)
        if pk_type is not None:
            return pk_type
    return PrimaryKeyType.BIGINT


def record_table(
    table: TableDefinition,
    registry: PrimaryKeyRegistry,
) -> Optional[PrimaryKeyType]:
    """
    Write ``table``'s primary-key type into ``registry``.

    Returns the recorded type, or None when the statement has no usable
    name and was skipped.
    """
    if not isinstance(table.name, str) or not table.name:
        _log.debug("skipping table statement without a name at %s", table.location)
        return None
    pk_type = infer_primary_key_type(table)
    registry.record(table.name, pk_type)
    _log.debug("registered %r with %s primary key", table.name, pk_type.value)
    return pk_type


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — FOREIGN-KEY RESOLVER
# ═════════════════════════════════════════════════════════════════════════

def _check_column(
    column: ColumnDeclaration,
    registry: PrimaryKeyRegistry,
) -> Optional[Finding]:
    if column.type_tag != NARROW_TYPE_TAG:
        return None
    if not isinstance(column.name, str) or not is_foreign_key_name(column.name):
        return None

    referenced_table = infer_table(column.name)
    referenced_pk = registry.lookup(referenced_table)
    if referenced_pk is not PrimaryKeyType.BIGINT:
        return None

    fix = Replacement(span=column.location) if column.location is not None else None
    return Finding(
        location=column.location,
        fix=fix,
        column=column.name,
        referenced_table=referenced_table,
    )


def check_table(
    table: TableDefinition,
    registry: PrimaryKeyRegistry,
) -> List[Finding]:
    """
    Findings for the integer foreign keys declared in ``table``'s block.

    Only ``integer`` columns named ``*_id`` are considered, and only when
    their referenced table is already registered with a bigint key.
    """
    if not isinstance(table.name, str) or not table.name:
        return []
    findings: List[Finding] = []
    for column in table.columns or ():
        finding = _check_column(column, registry)
        if finding is not None:
            findings.append(finding)
    return findings


def analyze(
    tables: Iterable[TableDefinition],
    registry: Optional[PrimaryKeyRegistry] = None,
) -> List[Finding]:
    """
    Run the full forward pass over ``tables`` in order.

    Each statement is recorded before its own columns are checked, so a
    table may reference itself.  A fresh registry is used unless one is
    passed in.
    """
    if registry is None:
        registry = PrimaryKeyRegistry()
    findings: List[Finding] = []
    for table in tables:
        record_table(table, registry)
        findings.extend(check_table(table, registry))
    return findings


__all__ = [
    "MESSAGE",
    "Replacement",
    "Finding",
    "infer_primary_key_type",
    "record_table",
    "check_table",
    "analyze",
]
