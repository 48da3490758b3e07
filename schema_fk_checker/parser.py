"""
parser.py — schema script → table definitions
=============================================

Turns a Rails-style schema script (``db/schema.rb`` or a migration) into
the :class:`~schema_fk_checker.model.TableDefinition` sequence the
inference core consumes.

Usage::

    from schema_fk_checker.parser import parse_schema

    schema = parse_schema('''
        create_table "companies", id: :integer, force: :cascade do |t|
          t.string "name"
        end
    ''', filename="db/schema.rb")

    for table in schema.tables:
        print(table.name, [c.name for c in table.columns or ()])

Only ``create_table`` statements and the ``<receiver>.<type> <name>``
declarations inside their blocks are structured, including declarations
inside nested ``do ... end`` blocks.  Comments are collected with their
line numbers for inline suppressions.  Every other line
(the ``ActiveRecord::Schema.define`` wrapper, ``add_foreign_key``,
comments, statements the grammar does not understand) is kept as an
opaque line and ignored, so well-formed text always parses.

Depends on:
    - parsimonious (PEG parser)
"""

from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union

from parsimonious.exceptions import ParseError, VisitationError
from parsimonious.grammar import Grammar
from parsimonious.nodes import Node, NodeVisitor

from schema_fk_checker.errors import ErrorCodes, SchemaParseError
from schema_fk_checker.model import (
    ColumnDeclaration,
    KeywordOption,
    SourceSpan,
    TableDefinition,
    Term,
    TermKind,
)

_log = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
#  PART 1 — SCHEMA GRAMMAR (Parsimonious PEG)
# ═══════════════════════════════════════════════════════════════════

SCHEMA_GRAMMAR = Grammar(r'''
    # ─────────────────────────────────────────────────────────────
    # Top-Level Structure
    # ─────────────────────────────────────────────────────────────

    script              = statement*
    statement           = create_table / comment_line / other_line
    comment_line        = hsp comment newline
    other_line          = ~r"[^\n]*\n"

    # ─────────────────────────────────────────────────────────────
    # create_table "name", key: value ... do |t| ... end
    # ─────────────────────────────────────────────────────────────

    create_table        = hsp create_kw table_call table_block? eol
    create_kw           = ~r"create_table\b"
    table_call          = paren_call / bare_call
    paren_call          = "(" hsp arguments? hsp ")"
    bare_call           = hsp1 arguments

    table_block         = hsp1 do_kw block_params? block_rest
    block_rest          = inline_end / block_body
    inline_end          = hsp end_kw
    block_body          = eol body_line* hsp end_kw
    block_params        = hsp "|" hsp ~r"[A-Za-z_][A-Za-z0-9_]*" hsp "|"
    body_line           = !block_end block_statement
    block_statement     = nested_block / column_line / comment_line / other_line
    block_end           = hsp end_kw

    # Nested do ... end (check constraints, with_options)
    nested_block        = hsp nested_open eol body_line* hsp end_kw eol
    nested_open         = ~r"[^\r\n#]*[ \t]do\b(?:[ \t]*\|[^|\r\n]*\|)?(?=[ \t]*(?:#[^\r\n]*)?\r?\n)"

    # ─────────────────────────────────────────────────────────────
    # Column declarations:  t.integer "user_id", null: false
    # ─────────────────────────────────────────────────────────────

    column_line         = hsp column_call eol
    column_call         = receiver "." column_type column_name? column_tail
    receiver            = ~r"[a-z_][A-Za-z0-9_]*"
    column_type         = ~r"[A-Za-z_][A-Za-z0-9_]*[?!]?"
    column_name         = name_separator name_literal
    name_separator      = hsp1 / paren_open
    paren_open          = hsp "(" hsp
    name_literal        = string / symbol
    column_tail         = ~r"(?:\"(?:[^\"\\\r\n]|\\.)*\"|'(?:[^'\\\r\n]|\\.)*'|[^\"'#\r\n])*"

    # ─────────────────────────────────────────────────────────────
    # Arguments and values
    # ─────────────────────────────────────────────────────────────

    arguments           = argument argument_tail*
    argument_tail       = hsp "," hsp argument
    argument            = pair / value
    pair                = label_pair / rocket_pair
    label_pair          = label hsp value
    label               = ~r"[A-Za-z_][A-Za-z0-9_]*[?!]?:(?!:)"
    rocket_pair         = value hsp "=>" hsp value

    value               = hash / array / lambda / string / symbol / number / identifier
    hash                = "{" hsp arguments? hsp "}"
    array               = "[" hsp values? hsp "]"
    values              = value value_tail*
    value_tail          = hsp "," hsp value
    lambda              = "->" hsp ~r"\{[^}\r\n]*\}"
    string              = ~r'"(?:[^"\\\r\n]|\\.)*"' / ~r"'(?:[^'\\\r\n]|\\.)*'"
    symbol              = ~r':"(?:[^"\\\r\n]|\\.)*"' / ~r":[A-Za-z_][A-Za-z0-9_]*[?!=]?"
    number              = ~r"-?[0-9][0-9_]*(?:\.[0-9][0-9_]*)?"
    identifier          = ~r"[A-Za-z_][A-Za-z0-9_]*(?:::[A-Z][A-Za-z0-9_]*)*[?!]?"

    # ─────────────────────────────────────────────────────────────
    # Lexical helpers
    # ─────────────────────────────────────────────────────────────

    do_kw               = ~r"do\b"
    end_kw              = ~r"end\b"
    eol                 = hsp comment? newline
    comment             = ~r"#[^\r\n]*"
    newline             = ~r"\r?\n"
    hsp                 = ~r"[ \t]*"
    hsp1                = ~r"[ \t]+"
''')


# ═══════════════════════════════════════════════════════════════════
#  PART 2 — PARSED SCHEMA
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ParsedSchema:
    """
    A structured schema script: its table statements in document order,
    plus every comment the grammar recognised as (line, text) pairs.
    """
    filename: str
    source: str
    tables: Tuple[TableDefinition, ...] = ()
    comments: Tuple[Tuple[int, str], ...] = ()

    @property
    def table_names(self) -> List[str]:
        return [t.name for t in self.tables if t.name]


# ═══════════════════════════════════════════════════════════════════
#  PART 3 — VISITOR (Parse Tree → TableDefinition)
# ═══════════════════════════════════════════════════════════════════

def _optional(value: Any) -> Any:
    """Unwrap the visited result of an ``x?`` node (None when absent)."""
    if isinstance(value, list) and value:
        return value[0]
    return None


def _repeated(value: Any) -> List[Any]:
    """Visited results of an ``x*`` node as a list."""
    if isinstance(value, list):
        return value
    return []


def _columns(lines: List[Any]) -> Tuple[ColumnDeclaration, ...]:
    """Column declarations of a block body, nested blocks flattened in."""
    found: List[ColumnDeclaration] = []
    for line in lines:
        if isinstance(line, ColumnDeclaration):
            found.append(line)
        elif isinstance(line, tuple):
            found.extend(line)
    return tuple(found)


def _unquote(text: str) -> str:
    body = text[1:-1]
    if "\\" not in body:
        return body
    out: List[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            out.append(body[i + 1])
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


class SchemaBuilder(NodeVisitor):
    """Transforms the Parsimonious parse tree into table definitions."""

    def __init__(self, source: str, filename: str = "<string>") -> None:
        self._source = source
        self._filename = filename
        self.comments: List[Tuple[int, str]] = []
        self._line_starts = [0]
        for index, ch in enumerate(source):
            if ch == "\n":
                self._line_starts.append(index + 1)

    # ─────────────────────────────────────────────────────────────
    # Locations
    # ─────────────────────────────────────────────────────────────

    def _position(self, offset: int) -> Tuple[int, int]:
        line = bisect.bisect_right(self._line_starts, offset)
        return line, offset - self._line_starts[line - 1] + 1

    def span(self, start: int, end: int) -> SourceSpan:
        line, column = self._position(start)
        end_line, end_column = self._position(end)
        return SourceSpan(
            file=self._filename,
            line=line,
            column=column,
            end_line=end_line,
            end_column=end_column,
            start=start,
            end=end,
        )

    def _trimmed_span(self, node: Node, start: Optional[int] = None) -> SourceSpan:
        begin = node.start if start is None else start
        text = self._source[begin:node.end].rstrip()
        return self.span(begin, begin + len(text))

    # ─────────────────────────────────────────────────────────────
    # Defaults
    # ─────────────────────────────────────────────────────────────

    def generic_visit(self, node, visited_children):
        return visited_children or node

    # ─────────────────────────────────────────────────────────────
    # Script
    # ─────────────────────────────────────────────────────────────

    def visit_script(self, node, visited_children):
        return [s for s in _repeated(visited_children) if isinstance(s, TableDefinition)]

    def visit_statement(self, node, visited_children):
        return visited_children[0]

    def visit_other_line(self, node, visited_children):
        return None

    def visit_comment_line(self, node, visited_children):
        return None

    def visit_comment(self, node, visited_children):
        line, _ = self._position(node.start)
        self.comments.append((line, node.text))
        return node

    # ─────────────────────────────────────────────────────────────
    # create_table
    # ─────────────────────────────────────────────────────────────

    def visit_create_table(self, node, visited_children):
        _, keyword, arguments, block, _ = visited_children
        arguments = arguments or []

        name: Optional[str] = None
        if arguments and isinstance(arguments[0], Term) and arguments[0].kind is TermKind.STRING:
            name = arguments[0].value

        options = tuple(a for a in arguments if isinstance(a, KeywordOption))
        columns = _optional(block)
        location = self._trimmed_span(node, start=keyword.start)
        if name is None:
            _log.debug("create_table without a string name at %s", location)
        return TableDefinition(
            name=name,
            options=options,
            columns=columns,
            location=location,
        )

    def visit_table_call(self, node, visited_children):
        return visited_children[0]

    def visit_paren_call(self, node, visited_children):
        _, _, arguments, _, _ = visited_children
        return _optional(arguments) or []

    def visit_bare_call(self, node, visited_children):
        _, arguments = visited_children
        return arguments

    def visit_table_block(self, node, visited_children):
        _, _, _, rest = visited_children
        return rest

    def visit_block_rest(self, node, visited_children):
        return visited_children[0]

    def visit_inline_end(self, node, visited_children):
        return ()

    def visit_block_body(self, node, visited_children):
        _, body, _, _ = visited_children
        return _columns(_repeated(body))

    def visit_nested_block(self, node, visited_children):
        _, _, _, body, _, _, _ = visited_children
        return _columns(_repeated(body))

    def visit_body_line(self, node, visited_children):
        _, statement = visited_children
        return statement

    def visit_block_statement(self, node, visited_children):
        return visited_children[0]

    # ─────────────────────────────────────────────────────────────
    # Column declarations
    # ─────────────────────────────────────────────────────────────

    def visit_column_line(self, node, visited_children):
        _, column, _ = visited_children
        return column

    def visit_column_call(self, node, visited_children):
        _, _, type_node, name_part, _ = visited_children
        name_term = _optional(name_part)
        name = name_term.value if isinstance(name_term, Term) else None
        location = self._trimmed_span(node)
        return ColumnDeclaration(
            type_tag=type_node.text,
            name=name,
            location=location,
            source=location.text_of(self._source),
        )

    def visit_column_name(self, node, visited_children):
        _, literal = visited_children
        return literal

    def visit_name_literal(self, node, visited_children):
        return visited_children[0]

    # ─────────────────────────────────────────────────────────────
    # Arguments
    # ─────────────────────────────────────────────────────────────

    def visit_arguments(self, node, visited_children):
        first, rest = visited_children
        return [first] + _repeated(rest)

    def visit_argument_tail(self, node, visited_children):
        return visited_children[3]

    def visit_argument(self, node, visited_children):
        return visited_children[0]

    def visit_pair(self, node, visited_children):
        return visited_children[0]

    def visit_label_pair(self, node, visited_children):
        label, _, value = visited_children
        return KeywordOption(key=Term(TermKind.SYMBOL, label), value=value)

    def visit_label(self, node, visited_children):
        return node.text[:-1]

    def visit_rocket_pair(self, node, visited_children):
        key, _, _, _, value = visited_children
        return KeywordOption(key=key, value=value)

    # ─────────────────────────────────────────────────────────────
    # Values
    # ─────────────────────────────────────────────────────────────

    def visit_value(self, node, visited_children):
        return visited_children[0]

    def visit_hash(self, node, visited_children):
        return Term(TermKind.HASH, node.text)

    def visit_array(self, node, visited_children):
        return Term(TermKind.ARRAY, node.text)

    def visit_lambda(self, node, visited_children):
        return Term(TermKind.LAMBDA, node.text)

    def visit_string(self, node, visited_children):
        return Term(TermKind.STRING, _unquote(node.text))

    def visit_symbol(self, node, visited_children):
        text = node.text[1:]
        if text.startswith('"'):
            text = _unquote(text)
        return Term(TermKind.SYMBOL, text)

    def visit_number(self, node, visited_children):
        return Term(TermKind.NUMBER, node.text)

    def visit_identifier(self, node, visited_children):
        text = node.text
        if text in ("true", "false"):
            return Term(TermKind.BOOLEAN, text)
        if text == "nil":
            return Term(TermKind.NIL, text)
        return Term(TermKind.IDENTIFIER, text)


# ═══════════════════════════════════════════════════════════════════
#  PART 4 — PUBLIC API
# ═══════════════════════════════════════════════════════════════════

def parse_schema(text: str, filename: str = "<string>") -> ParsedSchema:
    """
    Structure a schema script.

    Raises
    ------
    SchemaParseError
        Only if the grammar machinery itself fails; unrecognised
        statements are ignored rather than reported.
    """
    source = text if text.endswith("\n") or not text else text + "\n"
    try:
        tree = SCHEMA_GRAMMAR.parse(source)
        builder = SchemaBuilder(source, filename)
        tables = builder.visit(tree)
    except ParseError as exc:
        raise SchemaParseError(
            f"could not parse {filename}: {exc}",
            cause=exc,
        ) from exc
    except VisitationError as exc:
        raise SchemaParseError(
            f"could not structure {filename}",
            cause=exc,
        ) from exc

    _log.debug("parsed %d table statement(s) from %s", len(tables), filename)
    return ParsedSchema(
        filename=filename,
        source=text,
        tables=tuple(tables),
        comments=tuple(builder.comments),
    )


def parse_file(path: Union[str, Path]) -> ParsedSchema:
    """Read and structure the schema script at ``path`` (UTF-8, line endings kept)."""
    p = Path(path)
    try:
        with p.open(encoding="utf-8", newline="") as fh:
            text = fh.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise SchemaParseError(
            f"cannot read {p}: {exc}",
            code=ErrorCodes.UNREADABLE_SOURCE,
            cause=exc,
        ) from exc
    return parse_schema(text, filename=str(path))


__all__ = [
    "SCHEMA_GRAMMAR",
    "ParsedSchema",
    "SchemaBuilder",
    "parse_schema",
    "parse_file",
]
