# tests/test_sql_translation.py
"""Tests for SQL escaping, predicate translation and SQL safety checks."""

import datetime as dt

import pytest

from probity.engine.sql_utils import (
    count_query,
    esc_ident,
    esc_table,
    extract_query,
    lit_value,
    status_sql,
)
from probity.engine.sql_validator import parse_boolean_expression, transpile_expression, validate_select
from probity.errors import TranslationError
from probity.rules.predicates import (
    AllOf,
    Between,
    ColumnRef,
    Compare,
    Distinct,
    InSet,
    NaPolicy,
    NullCheck,
    Regex,
)


class TestEscaping:
    def test_identifiers(self):
        """Identifiers are double-quoted with quotes doubled."""
        assert esc_ident("amount") == '"amount"'
        assert esc_ident('we"ird') == '"we""ird"'

    def test_dotted_table(self):
        """Schema-qualified names are quoted per part."""
        assert esc_table("main.orders") == '"main"."orders"'

    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, "NULL"),
            (True, "TRUE"),
            (3, "3"),
            (2.5, "2.5"),
            ("O'Brien", "'O''Brien'"),
            (dt.date(2024, 1, 2), "DATE '2024-01-02'"),
            (dt.datetime(2024, 1, 2, 3, 4, 5), "TIMESTAMP '2024-01-02 03:04:05'"),
        ],
    )
    def test_literals(self, value, expected):
        """Python values render as SQL literals."""
        assert lit_value(value) == expected

    def test_unsupported_literal(self):
        """Values without a literal form raise TranslationError."""
        with pytest.raises(TranslationError):
            lit_value(object())


class TestStatusExpressions:
    def test_compare_null_policies(self):
        """The null branch follows the null policy."""
        assert status_sql(Compare("a", "gt", 6)) == 'CASE WHEN "a" IS NULL THEN 0 WHEN "a" > 6 THEN 1 ELSE 0 END'
        assert "THEN NULL" in status_sql(Compare("a", "gt", 6, na=NaPolicy.SKIP))
        assert "THEN 1 WHEN" in status_sql(Compare("a", "gt", 6, na=NaPolicy.PASS))

    def test_compare_column_operand(self):
        """A column operand adds its own null test."""
        sql = status_sql(Compare("a", "lte", ColumnRef("b")))
        assert '"a" IS NULL OR "b" IS NULL' in sql
        assert '"a" <= "b"' in sql

    def test_between_exclusive_and_outside(self):
        """Exclusive bounds and outside ranges negate correctly."""
        sql = status_sql(Between("a", 0, 10, inclusive=(True, False), inside=False))
        assert 'NOT ("a" >= 0 AND "a" < 10)' in sql

    def test_in_set_with_null_member(self):
        """A null set member lets null values pass."""
        sql = status_sql(InSet("c", ("x", None)))
        assert sql.startswith('CASE WHEN "c" IS NULL THEN 1')
        assert "IN ('x')" in sql

    def test_regex_per_dialect(self):
        """Regex matching uses each dialect's operator."""
        assert "regexp_matches" in status_sql(Regex("c", "^a"), "duckdb")
        assert "CAST(\"c\" AS TEXT) ~ '^a'" in status_sql(Regex("c", "^a"), "postgres")

    def test_null_check(self):
        """Null checks ignore the null policy."""
        assert status_sql(NullCheck("c")) == 'CASE WHEN "c" IS NOT NULL THEN 1 ELSE 0 END'

    def test_distinct(self):
        """Distinct rows use a window count over the keys."""
        sql = status_sql(Distinct(keys=("a", "b"), na=NaPolicy.PASS))
        assert 'COUNT(*) OVER (PARTITION BY "a", "b") = 1' in sql

    def test_distinct_without_keys(self):
        """Distinct needs resolved keys."""
        with pytest.raises(TranslationError):
            status_sql(Distinct(keys=()))

    def test_all_of_skips_on_any_null(self):
        """A conjoint unit is skipped when any part is null."""
        sql = status_sql(AllOf((Compare("a", "gt", 1), NullCheck("c"))))
        assert sql.startswith("CASE WHEN (")
        assert "THEN NULL" in sql

    def test_unknown_operator(self):
        """Unknown operators raise TranslationError."""
        with pytest.raises(TranslationError):
            status_sql(Compare("a", "approx", 1))


class TestQueries:
    def test_count_query(self):
        """The count query aggregates units and passes."""
        sql = count_query('"t"', "1")
        assert "COUNT(__status) AS n_units" in sql
        assert 'FROM "t" AS _t' in sql

    def test_extract_query_ordering(self):
        """_row_index is the scan position; rows are ordered by row_id when set."""
        with_id = extract_query('"t"', "1", 5, row_id="id")
        assert "ROW_NUMBER() OVER () - 1 AS _row_index" in with_id
        assert with_id.endswith('ORDER BY "id" LIMIT 5')
        scan = extract_query('"t"', "1", 3)
        assert scan.endswith("ORDER BY _row_index LIMIT 3")


class TestSafety:
    def test_expression_columns(self):
        """Referenced columns are collected from an expression."""
        parsed = parse_boolean_expression("a + b < c OR d IS NULL")
        assert parsed.columns == frozenset({"a", "b", "c", "d"})

    @pytest.mark.parametrize(
        "sql",
        ["", "SELECT 1", "a > 1; b < 2", "pg_sleep(1) IS NULL", "EXISTS (SELECT 1)", "DROP TABLE t"],
    )
    def test_rejected_expressions(self, sql):
        """Only a single side-effect-free boolean expression is accepted."""
        with pytest.raises(ValueError):
            parse_boolean_expression(sql)

    def test_transpile_to_postgres(self):
        """Expressions transpile to the target dialect."""
        assert transpile_expression("a + b < c", "postgres") == "a + b < c"
        assert transpile_expression("a < 1", "duckdb") == "a < 1"

    def test_validate_select(self):
        """Plain SELECT and WITH queries are safe."""
        assert validate_select("SELECT * FROM t WHERE a > 1").is_safe
        assert validate_select("WITH x AS (SELECT 1 AS a) SELECT * FROM x;").is_safe

    @pytest.mark.parametrize(
        "sql",
        ["", "DELETE FROM t", "SELECT 1; SELECT 2", "SELECT pg_sleep(5)", "INSERT INTO t VALUES (1)"],
    )
    def test_validate_select_rejects(self, sql):
        """Writes, multiple statements and side effects are unsafe."""
        result = validate_select(sql)
        assert not result.is_safe
        assert result.reason
