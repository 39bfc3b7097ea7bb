# tests/test_handles.py
"""Tests for table handles: resolution, schema, row counts, preconditions."""

import polars as pl
import pytest

from probity.connectors.handle import resolve_table
from probity.connectors.types import LogicalType, to_logical
from probity.engine.backends.duckdb_backend import DuckDBTable
from probity.engine.backends.polars_backend import PolarsTable
from probity.errors import InvalidDataError, SchemaUnavailable


# =============================================================================
# Resolution
# =============================================================================


class TestResolveTable:
    def test_polars_frame(self, numbers_df):
        """A Polars DataFrame becomes a PolarsTable."""
        h = resolve_table(numbers_df)
        assert isinstance(h, PolarsTable)
        assert h.columns == ["id", "x", "y"]
        assert h.source == "polars"

    def test_lazy_frame(self, numbers_df):
        """A LazyFrame is collected into a PolarsTable."""
        h = resolve_table(numbers_df.lazy())
        assert h.row_count() == 5

    def test_records(self):
        """A list of dicts (or one dict) is converted to a frame."""
        h = resolve_table([{"a": 1, "b": "x"}, {"a": 2, "b": "y"}])
        assert h.row_count() == 2
        assert resolve_table({"a": 1}).row_count() == 1

    def test_pandas_frame(self):
        """A pandas DataFrame is converted to Polars."""
        pd = pytest.importorskip("pandas")
        h = resolve_table(pd.DataFrame({"a": [1, 2, 3]}))
        assert isinstance(h, PolarsTable)
        assert h.row_count() == 3

    def test_handle_passes_through(self, numbers_df):
        """An existing handle is returned as is."""
        h = PolarsTable(numbers_df)
        assert resolve_table(h) is h

    def test_duckdb_connection(self, duck):
        """A DuckDB connection plus table name becomes a DuckDBTable."""
        h = resolve_table(duck, table="numbers")
        assert isinstance(h, DuckDBTable)
        assert h.row_count() == 5

    def test_connection_without_table(self, duck):
        """A connection without a table name is rejected."""
        with pytest.raises(InvalidDataError):
            resolve_table(duck)

    def test_parquet_file(self, numbers_parquet):
        """A Parquet path is read through DuckDB."""
        h = resolve_table(numbers_parquet)
        assert isinstance(h, DuckDBTable)
        assert h.columns == ["id", "x", "y"]
        assert h.row_count() == 5
        h.close()

    def test_csv_file(self, numbers_csv):
        """A CSV path is read through DuckDB."""
        h = resolve_table(numbers_csv)
        assert h.row_count() == 5
        h.close()

    def test_unsupported_source(self):
        """Unknown source types raise InvalidDataError."""
        with pytest.raises(InvalidDataError):
            resolve_table(42)

    def test_none_source(self):
        """None is not a table."""
        with pytest.raises(InvalidDataError):
            resolve_table(None)


# =============================================================================
# Schema
# =============================================================================


class TestSchema:
    def test_missing_table_is_schema_unavailable(self, duck):
        """Introspection failures surface at handle creation."""
        with pytest.raises(SchemaUnavailable):
            DuckDBTable(duck, "no_such_table")

    def test_missing_file_is_schema_unavailable(self, tmp_path):
        """A missing file fails at handle creation."""
        with pytest.raises(SchemaUnavailable):
            resolve_table(str(tmp_path / "missing.parquet"))

    def test_schema_is_read_only(self, numbers_df):
        """The schema mapping cannot be modified."""
        h = PolarsTable(numbers_df)
        with pytest.raises(TypeError):
            h.schema["z"] = "Int64"  # type: ignore[index]

    def test_resolve_schema_is_ordered_copy(self, duck):
        """resolve_schema() keeps column order and native types."""
        h = DuckDBTable(duck, "numbers")
        schema = h.resolve_schema()
        assert list(schema) == ["id", "x", "y"]
        assert schema["x"] == "INTEGER"

    def test_logical_types_agree_across_backends(self, duck, numbers_df):
        """The same rows map to the same logical types in Polars and DuckDB."""
        p = PolarsTable(numbers_df)
        d = DuckDBTable(duck, "numbers")
        for column in ("id", "x", "y"):
            assert p.logical_type(column) == d.logical_type(column)
        assert p.logical_type("y") is LogicalType.TEXT

    def test_row_id_dropped_when_absent(self, numbers_df):
        """A row_id naming a missing column is ignored."""
        h = PolarsTable(numbers_df, row_id="nope")
        assert h.row_id is None


class TestLogicalTypes:
    @pytest.mark.parametrize(
        "native,expected",
        [
            ("Int64", LogicalType.INTEGER),
            ("BIGINT", LogicalType.INTEGER),
            ("DECIMAL(18,3)", LogicalType.FLOATING),
            ("double precision", LogicalType.FLOATING),
            ("String", LogicalType.TEXT),
            ("character varying", LogicalType.TEXT),
            ("Boolean", LogicalType.BOOLEAN),
            ("Date", LogicalType.DATE),
            ("Datetime(time_unit='us', time_zone=None)", LogicalType.DATETIME),
            ("timestamp with time zone", LogicalType.DATETIME),
        ],
    )
    def test_known_types(self, native, expected):
        """Native type names map to logical types."""
        assert to_logical(native) is expected

    def test_unmapped_type(self):
        """Nested and binary types have no logical equivalent."""
        assert to_logical("List(Int64)") is None
        assert to_logical("BLOB") is None

    def test_parse_aliases(self):
        """Logical type names accept common aliases."""
        assert LogicalType.parse("str") is LogicalType.TEXT
        assert LogicalType.parse("Float") is LogicalType.FLOATING
        with pytest.raises(ValueError):
            LogicalType.parse("complex")


# =============================================================================
# Row counts and preconditions
# =============================================================================


class TestDerivedHandles:
    def test_row_count_is_memoized(self, numbers_df):
        """row_count() is computed once."""
        h = PolarsTable(numbers_df)
        assert h.row_count() == 5
        assert h._row_count == 5

    def test_polars_string_precondition(self, numbers_df):
        """A SQL filter string derives a new Polars handle."""
        h = PolarsTable(numbers_df)
        derived = h.apply("x > 3")
        assert derived.row_count() == 3
        # the original handle is untouched
        assert h.row_count() == 5

    def test_polars_callable_precondition(self, numbers_df):
        """A callable precondition receives and returns a frame."""
        h = PolarsTable(numbers_df)
        derived = h.apply(lambda df: df.filter(pl.col("id") <= 2))
        assert derived.row_count() == 2

    def test_polars_callable_must_return_frame(self, numbers_df):
        """A callable returning something else is a TypeError."""
        with pytest.raises(TypeError):
            PolarsTable(numbers_df).apply(lambda df: 3)

    def test_duckdb_string_precondition(self, duck):
        """A SQL filter string derives a new DuckDB relation."""
        h = DuckDBTable(duck, "numbers")
        assert h.apply("x > 3").row_count() == 3
        assert h.row_count() == 5

    def test_duckdb_callable_precondition(self, duck):
        """A callable precondition returns SELECT text over the relation."""
        h = DuckDBTable(duck, "numbers")
        derived = h.apply(lambda rel: f"SELECT * FROM {rel} AS s WHERE y IS NOT NULL")
        assert derived.row_count() == 4

    def test_duckdb_callable_must_be_select(self, duck):
        """Non-SELECT SQL from a callable is rejected and never run."""
        h = DuckDBTable(duck, "numbers")
        with pytest.raises(ValueError, match="rejected"):
            h.apply(lambda rel: f"DELETE FROM {rel}")
        assert h.row_count() == 5

    def test_duckdb_precondition_missing_column(self, duck):
        """A filter on a missing column fails at derivation."""
        h = DuckDBTable(duck, "numbers")
        with pytest.raises(SchemaUnavailable):
            h.apply("nope > 1")
