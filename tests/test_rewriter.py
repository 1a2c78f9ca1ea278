# -*- coding: utf-8 -*-
"""Tests for check statement construction."""

from fragment_check.rewriter import (
    CheckStatement,
    annotate_parameters,
    find_parameters,
    host_line,
    normalize_ending,
    parameter_count,
    parameter_slots,
    sql_literal,
    wrap_explain_check,
    wrap_prepare_check,
    wrap_syntax_check,
)


# =============================================================================
# Helpers
# =============================================================================

class TestNormalizeEnding:
    def test_appends_terminator(self):
        assert normalize_ending("select 1") == "select 1;"

    def test_keeps_existing_terminator(self):
        assert normalize_ending("select 1;") == "select 1;"

    def test_trims_trailing_whitespace(self):
        assert normalize_ending("select 1 \n  ") == "select 1;"
        assert normalize_ending("select 1;\n") == "select 1;"


class TestParameters:
    def test_repeated_parameter_counted_once(self):
        sql = "select * from t where a = $1 and b = $2 or a = $1"

        assert find_parameters(sql) == [1, 2]
        assert parameter_count(sql) == 2

    def test_multi_digit_parameters(self):
        sql = "select $1, $10, $2"

        assert find_parameters(sql) == [1, 2, 10]
        assert parameter_slots(sql) == 10

    def test_no_parameters(self):
        assert parameter_count("select 1") == 0
        assert parameter_slots("select 1") == 0

    def test_gap_in_numbering(self):
        sql = "select * from t where a = $2"

        assert parameter_count(sql) == 1
        assert parameter_slots(sql) == 2


class TestAnnotateParameters:
    def test_every_occurrence_is_cast(self):
        sql = "select * from t\nwhere a = $1\n  or b = $1"

        assert annotate_parameters(sql, {1: "int"}) == (
            "select * from t\nwhere a = $1::int\n  or b = $1::int"
        )

    def test_exact_token_only(self):
        sql = "select $1, $10, $11"

        assert annotate_parameters(sql, {1: "text"}) == "select $1::text, $10, $11"

    def test_only_overridden_parameters(self):
        sql = "select $1, $2"

        assert annotate_parameters(sql, {2: "boolean"}) == "select $1, $2::boolean"


# =============================================================================
# Check statements
# =============================================================================

class TestSyntaxCheck:
    """DO-block check that returns before the fragment runs."""

    def test_wraps_in_early_return_block(self):
        statement = wrap_syntax_check("delete from users")

        assert statement.kind == "syntax"
        assert statement.sql == (
            "DO $fragment_check$\nBEGIN\nRETURN;\ndelete from users;\nEND\n$fragment_check$;"
        )
        assert statement.parameters == ()

    def test_placeholders_become_null(self):
        statement = wrap_syntax_check("select * from t where id = $1 and x = $12")

        assert "id = NULL and x = NULL;" in statement.sql
        assert "$1" not in statement.sql

    def test_dollar_quote_does_not_clash(self):
        statement = wrap_syntax_check("select '$fragment_check$'")

        assert statement.sql.startswith("DO $fragment_check_$\n")
        assert statement.sql.endswith("\n$fragment_check_$;")


class TestExplainCheck:
    def test_untyped_parameter_bound_to_null(self):
        statement = wrap_explain_check("select * from t where id=$1", {}, {})

        assert statement.sql == "EXPLAIN\nselect * from t where id=$1;"
        assert statement.parameters == (None,)

    def test_type_override_casts(self):
        sql = "select * from information_schema.tables where table_type=$2"
        statement = wrap_explain_check(sql, {2: "boolean"}, {})

        assert "table_type=$2::boolean;" in statement.sql
        assert statement.parameters == (None, None)

    def test_default_value_is_inlined_as_literal(self):
        statement = wrap_explain_check("select $1, $2", {}, {2: 42})

        assert statement.sql == "EXPLAIN\nselect $1, '42';"
        assert statement.parameters == (None,)

    def test_string_default_for_non_text_parameter(self):
        sql = "select * from orders where placed_on = $1 and note = $2"
        statement = wrap_explain_check(sql, {}, {1: "2024-01-01", 2: 42})

        # Untyped literals: the server converts them to date and text
        assert statement.sql == (
            "EXPLAIN\nselect * from orders where placed_on = '2024-01-01' and note = '42';"
        )
        assert statement.parameters == ()

    def test_cast_and_default_together(self):
        statement = wrap_explain_check("select $1", {1: "int"}, {1: 7})

        assert statement.sql == "EXPLAIN\nselect '7'::int;"
        assert statement.parameters == ()

    def test_remaining_parameters_renumbered(self):
        statement = wrap_explain_check("select $1, $2, $3, $2", {3: "text"}, {1: "a"})

        assert statement.sql == "EXPLAIN\nselect 'a', $1, $2::text, $1;"
        assert statement.parameters == (None, None)

    def test_literal_text_is_not_substituted_again(self):
        statement = wrap_explain_check("select $1, $2", {}, {1: "$2"})

        assert statement.sql == "EXPLAIN\nselect '$2', $1;"


class TestSqlLiteral:
    def test_quotes_are_doubled(self):
        assert sql_literal("O'Brien") == "'O''Brien'"

    def test_scalars(self):
        assert sql_literal(None) == "NULL"
        assert sql_literal(True) == "'true'"
        assert sql_literal(1.5) == "'1.5'"

    def test_json_values(self):
        assert sql_literal({"a": [1, 2]}) == "'{\"a\": [1, 2]}'"


class TestPrepareCheck:
    def test_untyped_parameters_declared_unknown(self):
        statement = wrap_prepare_check("select $1, $2, $1", {}, name="q")

        assert statement.sql == "PREPARE q(unknown, unknown) AS\nselect $1, $2, $1;"
        assert statement.teardown == "DEALLOCATE q;"

    def test_type_override_declared(self):
        sql = "select * from information_schema.tables where table_type=$2"
        statement = wrap_prepare_check(sql, {2: "boolean"}, name="q")

        assert statement.sql.startswith("PREPARE q(unknown, boolean) AS\n")

    def test_no_parameters(self):
        statement = wrap_prepare_check("select 1", {}, name="q")

        assert statement.sql == "PREPARE q AS\nselect 1;"

    def test_default_values_are_not_bound(self):
        statement = wrap_prepare_check("select $1", {}, name="q")

        assert statement.parameters == ()


# =============================================================================
# Host line mapping
# =============================================================================

class TestHostLine:
    def test_maps_error_position_to_document_line(self):
        statement = wrap_prepare_check("select *\nfrom t\nwher id = 1", {}, name="q")
        position = statement.sql.index("wher") + 1

        assert host_line(statement, 10, position) == 12

    def test_syntax_block_offset(self):
        statement = wrap_syntax_check("select\nfrom")
        position = statement.sql.index("from") + 1

        assert host_line(statement, 4, position) == 5

    def test_position_in_wrapper_is_unmapped(self):
        statement = wrap_syntax_check("select 1")

        assert host_line(statement, 4, 1) is None

    def test_missing_position(self):
        statement = CheckStatement(kind="explain", sql="EXPLAIN\nselect 1;", fragment_line=1)

        assert host_line(statement, 0, None) is None
