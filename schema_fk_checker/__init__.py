"""
schema_fk_checker — integer foreign keys that point at bigint primary keys
==========================================================================

Reads Rails-style schema scripts, records every table's primary-key type
in statement order, and flags ``integer`` columns named ``<singular>_id``
whose referenced table has a ``bigint`` key.  Each finding carries the
``integer`` → ``bigint`` replacement that fixes it.

Core modules
------------
model
    Table statements, column declarations, source spans, and the
    primary-key registry.
naming
    Foreign-key column name → referenced table name.
foreign_keys
    The registry builder and foreign-key resolver.

Host modules
------------
parser
    Parsimonious grammar that structures schema scripts.
checkers
    Diagnostics, suppressions, and the checker runner.
autocorrect
    Applies replacements back to the script text.
config
    ``.schema-fk.json`` configuration.
main
    The ``schema-fk`` command line.

Quick start
-----------
>>> from schema_fk_checker import parse_schema, analyze
>>> schema = parse_schema('''
... create_table "applications", force: :cascade do |t|
... end
... create_table "device_settings", force: :cascade do |t|
...   t.integer "application_id"
... end
... ''')
>>> [f.column for f in analyze(schema.tables)]
['application_id']
"""

from __future__ import annotations

import logging

__version__ = "0.1.0"

_log = logging.getLogger(__name__)
_log.addHandler(logging.NullHandler())

from schema_fk_checker.errors import (  # noqa: E402
    ConfigError,
    ErrorCode,
    ErrorCodes,
    SchemaFkError,
    SchemaParseError,
)
from schema_fk_checker.model import (  # noqa: E402
    ColumnDeclaration,
    KeywordOption,
    PrimaryKeyRegistry,
    PrimaryKeyType,
    SourceSpan,
    TableDefinition,
    Term,
    TermKind,
)
from schema_fk_checker.naming import infer_table  # noqa: E402
from schema_fk_checker.foreign_keys import (  # noqa: E402
    MESSAGE,
    Finding,
    Replacement,
    analyze,
    check_table,
    infer_primary_key_type,
    record_table,
)
from schema_fk_checker.parser import ParsedSchema, parse_file, parse_schema  # noqa: E402
from schema_fk_checker.checkers import (  # noqa: E402
    CheckerRunner,
    CheckerRunResults,
    Diagnostic,
    DiagnosticSeverity,
    InvalidIntegerForeignKeyChecker,
    SuppressionManager,
)
from schema_fk_checker.autocorrect import CorrectionResult, apply_fixes, correct_file  # noqa: E402

__all__ = [
    "__version__",
    # errors
    "ConfigError",
    "ErrorCode",
    "ErrorCodes",
    "SchemaFkError",
    "SchemaParseError",
    # model
    "ColumnDeclaration",
    "KeywordOption",
    "PrimaryKeyRegistry",
    "PrimaryKeyType",
    "SourceSpan",
    "TableDefinition",
    "Term",
    "TermKind",
    # core
    "infer_table",
    "MESSAGE",
    "Finding",
    "Replacement",
    "analyze",
    "check_table",
    "infer_primary_key_type",
    "record_table",
    # host
    "ParsedSchema",
    "parse_file",
    "parse_schema",
    "CheckerRunner",
    "CheckerRunResults",
    "Diagnostic",
    "DiagnosticSeverity",
    "InvalidIntegerForeignKeyChecker",
    "SuppressionManager",
    "CorrectionResult",
    "apply_fixes",
    "correct_file",
]
