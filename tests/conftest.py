# tests/conftest.py
"""
Shared schema scripts and builders for the schema-fk-checker test suite.
"""

from typing import Optional, Sequence, Tuple

import pytest

from schema_fk_checker.model import (
    ColumnDeclaration,
    KeywordOption,
    PrimaryKeyRegistry,
    SourceSpan,
    TableDefinition,
    Term,
    TermKind,
)


# ═══════════════════════════════════════════════════════════════════════
#  Schema scripts
# ═══════════════════════════════════════════════════════════════════════

# applications has the default (bigint) key; application_id is on line 7
SCENARIO_A_SCHEMA = """\
ActiveRecord::Schema.define(version: 2021_05_10_120000) do
  create_table "applications", force: :cascade do |t|
    t.string "name"
  end

  create_table "device_settings", force: :cascade do |t|
    t.integer "application_id"
  end
end
"""

SCENARIO_B_SCHEMA = """\
create_table "applications", id: :integer, force: :cascade do |t|
  t.string "name"
end

create_table "device_settings", force: :cascade do |t|
  t.integer "application_id"
end
"""

SCENARIO_C_SCHEMA = """\
create_table "device_settings", force: :cascade do |t|
  t.integer "nonexistent_table_id"
end
"""

SCENARIO_D_SCHEMA = """\
create_table "application_refs", id: :bigint, force: :cascade do |t|
end

create_table "device_settings", force: :cascade do |t|
  t.integer "application_ref"
end
"""

# device_settings is defined before the table it references
FORWARD_REFERENCE_SCHEMA = """\
create_table "device_settings", force: :cascade do |t|
  t.integer "application_id"
end

create_table "applications", force: :cascade do |t|
end
"""

MIXED_SCHEMA = """\
ActiveRecord::Schema.define(version: 2023_01_01_000000) do
  create_table "companies", id: :integer, force: :cascade do |t|
    t.string "name", null: false
  end

  create_table "users", force: :cascade do |t|
    t.integer "company_id", null: false
    t.string "email"
  end

  create_table "orders", force: :cascade do |t|
    t.integer "user_id", null: false
    t.bigint "company_id"
    t.integer "quantity"
    t.integer "category_id"
    t.datetime "created_at", null: false
  end

  create_table "categories", force: :cascade do |t|
  end

  add_foreign_key "orders", "users"
end
"""

SELF_REFERENCE_SCHEMA = """\
create_table "categories", force: :cascade do |t|
  t.integer "category_id"
end
"""

SUPPRESSED_SCHEMA = """\
create_table "applications", force: :cascade do |t|
end

create_table "device_settings", force: :cascade do |t|
  t.integer "application_id" # schema-fk:disable invalidIntegerForeignKey
  # schema-fk:disable all
  t.integer "application_id", null: true
  t.integer "application_id", default: 0
end
"""


# ═══════════════════════════════════════════════════════════════════════
#  Builders for hand-made statements
# ═══════════════════════════════════════════════════════════════════════

def sym(name: str) -> Term:
    return Term(TermKind.SYMBOL, name)


def string(text: str) -> Term:
    return Term(TermKind.STRING, text)


def option(key: str, value: Term) -> KeywordOption:
    return KeywordOption(key=sym(key), value=value)


def column(type_tag: str, name: Optional[str], line: int = 1) -> ColumnDeclaration:
    text = f't.{type_tag} "{name}"' if name is not None else f"t.{type_tag}"
    return ColumnDeclaration(
        type_tag=type_tag,
        name=name,
        location=SourceSpan(file="schema.rb", line=line, column=3, start=0, end=len(text)),
        source=text,
    )


def table(
    name: Optional[str],
    *columns: ColumnDeclaration,
    options: Sequence[KeywordOption] = (),
) -> TableDefinition:
    cols: Tuple[ColumnDeclaration, ...] = tuple(columns)
    return TableDefinition(name=name, options=tuple(options), columns=cols)


@pytest.fixture
def registry():
    return PrimaryKeyRegistry()
