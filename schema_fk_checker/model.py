"""
schema_fk_checker/model.py
══════════════════════════

Structured form of a schema script, as consumed by the inference core.

A script is a sequence of :class:`TableDefinition` statements in document
order.  Each statement carries the table name, its keyword options in the
order they were written, and (when the statement has a block) its column
declarations.  Locations are :class:`SourceSpan` values that the core never
inspects; it only copies them into findings.

The :class:`PrimaryKeyRegistry` is the one piece of mutable state in an
analysis pass.  It is owned by the caller, created empty for each script,
and written strictly in statement order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, Optional, Tuple

_log = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — SOURCE LOCATIONS
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SourceSpan:
    """
    A range of source text.

    ``line``/``column`` are 1-based, ``start``/``end`` are 0-based character
    offsets into the script (``end`` exclusive).
    """
    file: str = ""
    line: int = 0
    column: int = 0
    end_line: int = 0
    end_column: int = 0
    start: int = 0
    end: int = 0

    def __str__(self) -> str:
        if self.column:
            return f"{self.file}:{self.line}:{self.column}"
        return f"{self.file}:{self.line}"

    def text_of(self, source: str) -> str:
        """Slice this span out of ``source``."""
        return source[self.start:self.end]


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — STATEMENT SHAPE
# ═════════════════════════════════════════════════════════════════════════

class TermKind(Enum):
    """Shape of an argument or option value in a statement."""
    SYMBOL = "symbol"
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    NIL = "nil"
    IDENTIFIER = "identifier"
    HASH = "hash"
    ARRAY = "array"
    LAMBDA = "lambda"


@dataclass(frozen=True)
class Term:
    """
    A literal, symbol, or nested value.

    ``value`` holds the symbol name without its colon, the unquoted text of
    a string, and the raw source text for every other kind.
    """
    kind: TermKind
    value: str

    def is_symbol(self, name: Optional[str] = None) -> bool:
        if self.kind is not TermKind.SYMBOL:
            return False
        return name is None or self.value == name

    def __str__(self) -> str:
        if self.kind is TermKind.SYMBOL:
            return f":{self.value}"
        if self.kind is TermKind.STRING:
            return f'"{self.value}"'
        return self.value


@dataclass(frozen=True)
class KeywordOption:
    """One ``key: value`` (or ``key => value``) option of a statement."""
    key: Term
    value: Term


@dataclass(frozen=True)
class ColumnDeclaration:
    """
    A typed column declaration inside a table block.

    Attributes
    ----------
    type_tag : declared type, e.g. ``"integer"``, ``"bigint"``, ``"string"``
    name     : column name, or None when the first argument is not a literal
    location : span of the whole declaration (receiver through arguments)
    source   : the declaration's source text
    """
    type_tag: str
    name: Optional[str] = None
    location: Optional[SourceSpan] = None
    source: str = ""


@dataclass(frozen=True)
class TableDefinition:
    """
    One table-creation statement.

    ``columns`` is None when the statement has no block at all, and an
    empty tuple when the block declares nothing.
    """
    name: Optional[str]
    options: Tuple[KeywordOption, ...] = ()
    columns: Optional[Tuple[ColumnDeclaration, ...]] = None
    location: Optional[SourceSpan] = None

    def option(self, key: str) -> Optional[Term]:
        """Value of the first symbol-keyed option named ``key``."""
        for opt in self.options:
            if opt.key.is_symbol(key):
                return opt.value
        return None


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — PRIMARY-KEY REGISTRY
# ═════════════════════════════════════════════════════════════════════════

class PrimaryKeyType(Enum):
    """Primary-key width.  ``BIGINT`` is the implicit default."""
    INTEGER = "integer"
    BIGINT = "bigint"

    @classmethod
    def from_tag(cls, tag: str) -> Optional["PrimaryKeyType"]:
        """Map a type tag to a key type; None for anything unrecognised."""
        for member in cls:
            if member.value == tag:
                return member
        return None


class PrimaryKeyRegistry:
    """
    Table name → primary-key type, written in statement order.

    A later write for the same name replaces the earlier one.  Create one
    registry per script; a registry reused across scripts would answer
    lookups with tables the current script never defined.

    Usage
    -----
    >>> registry = PrimaryKeyRegistry()
    >>> registry.record("companies", PrimaryKeyType.INTEGER)
    >>> registry.lookup("companies")
    <PrimaryKeyType.INTEGER: 'integer'>
    >>> registry.lookup("users") is None
    True
    """

    def __init__(self, entries: Optional[Dict[str, PrimaryKeyType]] = None) -> None:
        self._entries: Dict[str, PrimaryKeyType] = dict(entries or {})

    def record(self, table_name: str, pk_type: PrimaryKeyType) -> None:
        previous = self._entries.get(table_name)
        if previous is not None and previous is not pk_type:
            _log.debug(
                "table %r redefined: primary key %s replaces %s",
                table_name, pk_type.value, previous.value,
            )
        self._entries[table_name] = pk_type

    def lookup(self, table_name: str) -> Optional[PrimaryKeyType]:
        return self._entries.get(table_name)

    def as_dict(self) -> Dict[str, PrimaryKeyType]:
        return dict(self._entries)

    def __contains__(self, table_name: object) -> bool:
        return table_name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __repr__(self) -> str:
        body = ", ".join(f"{k}={v.value}" for k, v in self._entries.items())
        return f"<PrimaryKeyRegistry {body}>"


__all__ = [
    "SourceSpan",
    "TermKind",
    "Term",
    "KeywordOption",
    "ColumnDeclaration",
    "TableDefinition",
    "PrimaryKeyType",
    "PrimaryKeyRegistry",
]
