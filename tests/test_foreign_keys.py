# tests/test_foreign_keys.py
"""
Tests for the primary-key registry builder and the foreign-key resolver.
"""

import logging

import pytest

from schema_fk_checker.foreign_keys import (
    MESSAGE,
    Replacement,
    analyze,
    check_table,
    infer_primary_key_type,
    record_table,
)
from schema_fk_checker.model import (
    ColumnDeclaration,
    KeywordOption,
    PrimaryKeyRegistry,
    PrimaryKeyType,
    SourceSpan,
    TableDefinition,
    Term,
    TermKind,
)
from schema_fk_checker.parser import parse_schema
from tests.conftest import column, option, string, sym, table


class TestInferPrimaryKeyType:

    def test_default_is_bigint(self):
        assert infer_primary_key_type(table("users")) is PrimaryKeyType.BIGINT

    def test_integer_id(self):
        t = table("users", options=[option("id", sym("integer"))])
        assert infer_primary_key_type(t) is PrimaryKeyType.INTEGER

    def test_bigint_id(self):
        t = table("users", options=[option("id", sym("bigint"))])
        assert infer_primary_key_type(t) is PrimaryKeyType.BIGINT

    def test_id_after_other_options(self):
        t = table("users", options=[
            option("force", sym("cascade")),
            option("comment", string("people")),
            option("id", sym("integer")),
        ])
        assert infer_primary_key_type(t) is PrimaryKeyType.INTEGER

    def test_first_recognised_id_wins(self):
        t = table("users", options=[
            option("id", sym("integer")),
            option("id", sym("bigint")),
        ])
        assert infer_primary_key_type(t) is PrimaryKeyType.INTEGER

    @pytest.mark.parametrize("value", [
        Term(TermKind.BOOLEAN, "false"),
        Term(TermKind.STRING, "integer"),
        Term(TermKind.SYMBOL, "uuid"),
        Term(TermKind.NIL, "nil"),
        Term(TermKind.HASH, "{ type: :integer }"),
    ])
    def test_unrecognised_value_falls_through(self, value):
        t = table("users", options=[option("id", value)])
        assert infer_primary_key_type(t) is PrimaryKeyType.BIGINT

    def test_unrecognised_then_recognised(self):
        t = table("users", options=[
            option("id", sym("uuid")),
            option("id", sym("integer")),
        ])
        assert infer_primary_key_type(t) is PrimaryKeyType.INTEGER

    def test_string_key_is_not_the_id_option(self):
        t = table("users", options=[
            KeywordOption(key=string("id"), value=sym("integer")),
        ])
        assert infer_primary_key_type(t) is PrimaryKeyType.BIGINT


class TestRecordTable:

    def test_records_default(self, registry):
        assert record_table(table("users"), registry) is PrimaryKeyType.BIGINT
        assert registry.lookup("users") is PrimaryKeyType.BIGINT

    def test_records_integer(self, registry):
        record_table(table("companies", options=[option("id", sym("integer"))]), registry)
        assert registry.lookup("companies") is PrimaryKeyType.INTEGER

    def test_later_definition_wins(self, registry):
        record_table(table("companies", options=[option("id", sym("integer"))]), registry)
        record_table(table("companies"), registry)
        assert registry.lookup("companies") is PrimaryKeyType.BIGINT
        assert len(registry) == 1

    @pytest.mark.parametrize("name", [None, ""])
    def test_unnamed_table_skipped(self, registry, name):
        assert record_table(table(name), registry) is None
        assert len(registry) == 0

    def test_redefinition_logged(self, registry, caplog):
        with caplog.at_level(logging.DEBUG, logger="schema_fk_checker"):
            record_table(table("companies", options=[option("id", sym("integer"))]), registry)
            record_table(table("companies"), registry)
        assert "redefined" in caplog.text


class TestCheckTable:

    def test_flags_integer_fk_to_bigint(self):
        registry = PrimaryKeyRegistry({"applications": PrimaryKeyType.BIGINT})
        col = column("integer", "application_id", line=7)
        findings = check_table(table("device_settings", col), registry)
        assert len(findings) == 1
        finding = findings[0]
        assert finding.location == col.location
        assert finding.message == MESSAGE
        assert finding.column == "application_id"
        assert finding.referenced_table == "applications"
        assert finding.fix == Replacement(span=col.location)
        assert (finding.fix.original, finding.fix.replacement) == ("integer", "bigint")

    def test_integer_fk_to_integer_not_flagged(self):
        registry = PrimaryKeyRegistry({"applications": PrimaryKeyType.INTEGER})
        findings = check_table(table("device_settings", column("integer", "application_id")), registry)
        assert findings == []

    def test_unknown_table_not_flagged(self, registry):
        findings = check_table(table("device_settings", column("integer", "application_id")), registry)
        assert findings == []

    @pytest.mark.parametrize("type_tag", ["bigint", "string", "references", "Integer", "integer?"])
    def test_non_integer_never_flagged(self, type_tag):
        registry = PrimaryKeyRegistry({"applications": PrimaryKeyType.BIGINT})
        t = table("device_settings", column(type_tag, "application_id"))
        assert check_table(t, registry) == []

    @pytest.mark.parametrize("name", ["application", "application_ref", "application_ids", None])
    def test_non_fk_names_never_flagged(self, name):
        registry = PrimaryKeyRegistry({
            "applications": PrimaryKeyType.BIGINT,
            "application_refs": PrimaryKeyType.BIGINT,
            "application_idss": PrimaryKeyType.BIGINT,
        })
        t = table("device_settings", column("integer", name))
        assert check_table(t, registry) == []

    def test_column_without_location_has_no_fix(self):
        registry = PrimaryKeyRegistry({"users": PrimaryKeyType.BIGINT})
        t = table("orders", ColumnDeclaration(type_tag="integer", name="user_id"))
        findings = check_table(t, registry)
        assert len(findings) == 1
        assert findings[0].location is None
        assert findings[0].fix is None

    def test_table_without_block(self):
        registry = PrimaryKeyRegistry({"users": PrimaryKeyType.BIGINT})
        t = TableDefinition(name="orders", columns=None)
        assert check_table(t, registry) == []

    def test_unnamed_table_skipped(self):
        registry = PrimaryKeyRegistry({"users": PrimaryKeyType.BIGINT})
        t = table(None, column("integer", "user_id"))
        assert check_table(t, registry) == []

    def test_every_matching_column_flagged(self):
        registry = PrimaryKeyRegistry({
            "users": PrimaryKeyType.BIGINT,
            "companies": PrimaryKeyType.BIGINT,
        })
        t = table(
            "orders",
            column("integer", "user_id", line=2),
            column("string", "note", line=3),
            column("integer", "company_id", line=4),
        )
        findings = check_table(t, registry)
        assert [f.column for f in findings] == ["user_id", "company_id"]
        assert [f.location.line for f in findings] == [2, 4]


class TestAnalyze:

    def test_scenario_a(self):
        findings = analyze([
            table("applications"),
            table("device_settings", column("integer", "application_id")),
        ])
        assert len(findings) == 1
        assert findings[0].fix is not None

    def test_scenario_b(self):
        findings = analyze([
            table("applications", options=[option("id", sym("integer"))]),
            table("device_settings", column("integer", "application_id")),
        ])
        assert findings == []

    def test_scenario_c(self):
        findings = analyze([
            table("device_settings", column("integer", "nonexistent_table_id")),
        ])
        assert findings == []

    def test_scenario_d(self):
        findings = analyze([
            table("application_refs", options=[option("id", sym("bigint"))]),
            table("device_settings", column("integer", "application_ref")),
        ])
        assert findings == []

    def test_forward_reference_not_resolved(self):
        findings = analyze([
            table("device_settings", column("integer", "application_id")),
            table("applications"),
        ])
        assert findings == []

    def test_self_reference_resolved(self):
        findings = analyze([table("categories", column("integer", "category_id"))])
        assert len(findings) == 1
        assert findings[0].referenced_table == "categories"

    def test_redefinition_changes_later_checks(self):
        findings = analyze([
            table("companies", options=[option("id", sym("integer"))]),
            table("users", column("integer", "company_id", line=5)),
            table("companies"),
            table("orders", column("integer", "company_id", line=9)),
        ])
        assert [f.location.line for f in findings] == [9]

    def test_unnamed_statement_does_not_stop_the_pass(self):
        findings = analyze([
            table("applications"),
            table(None, column("integer", "application_id", line=4)),
            table("device_settings", column("integer", "application_id", line=7)),
        ])
        assert [f.location.line for f in findings] == [7]

    def test_one_line_table_is_registered(self):
        src = (
            'create_table "users", id: :bigint, force: :cascade do |t| end\n'
            'create_table "profiles" do |t|\n'
            '  t.integer "user_id"\n'
            "end\n"
        )
        findings = analyze(parse_schema(src).tables)
        assert [(f.column, f.location.line) for f in findings] == [("user_id", 3)]

    def test_columns_after_nested_block_are_checked(self):
        src = (
            'create_table "users" do |t|\n'
            "end\n"
            'create_table "profiles" do |t|\n'
            '  t.check_constraint "age_positive" do\n'
            "  end\n"
            '  t.integer "user_id", null: false\n'
            "end\n"
        )
        findings = analyze(parse_schema(src).tables)
        assert [(f.column, f.location.line) for f in findings] == [("user_id", 6)]

    def test_uses_given_registry(self):
        registry = PrimaryKeyRegistry()
        analyze([table("applications"), table("companies", options=[option("id", sym("integer"))])], registry)
        assert registry.as_dict() == {
            "applications": PrimaryKeyType.BIGINT,
            "companies": PrimaryKeyType.INTEGER,
        }

    def test_prepopulated_registry(self):
        registry = PrimaryKeyRegistry({"users": PrimaryKeyType.BIGINT})
        findings = analyze([table("orders", column("integer", "user_id"))], registry)
        assert len(findings) == 1

    def test_idempotent(self):
        statements = [
            table("applications"),
            table("companies", options=[option("id", sym("integer"))]),
            table(
                "device_settings",
                column("integer", "application_id", line=8),
                column("integer", "company_id", line=9),
            ),
        ]
        assert analyze(statements) == analyze(statements)

    def test_fresh_registry_per_call(self):
        analyze([table("applications")])
        findings = analyze([table("device_settings", column("integer", "application_id"))])
        assert findings == []


class TestReplacement:

    def test_first_occurrence_only(self):
        text = 't.integer "integer_id"'
        span = SourceSpan(file="s.rb", line=1, column=1, start=0, end=len(text))
        assert Replacement(span=span).apply(text) == 't.bigint "integer_id"'

    def test_only_within_span(self):
        text = 'x = integer\nt.integer "user_id"\n'
        start = text.index("t.integer")
        span = SourceSpan(file="s.rb", line=2, column=1, start=start, end=start + len('t.integer "user_id"'))
        assert Replacement(span=span).apply(text) == 'x = integer\nt.bigint "user_id"\n'

    def test_stale_span_unchanged(self):
        text = 't.bigint "user_id"'
        span = SourceSpan(file="s.rb", line=1, column=1, start=0, end=len(text))
        replacement = Replacement(span=span)
        assert replacement.corrected_text(text) is None
        assert replacement.apply(text) == text
