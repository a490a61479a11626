"""Unit tests for untyped query cells."""

from datetime import datetime, timezone

import pytest

from metrics_worker.connectors.telemetry.cells import Cell, QueryTable


class TestCellCoercion:
    """Every coercion returns None instead of raising."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [(1.5, 1.5), ("2.25", 2.25), (3, 3.0), (None, None), ("abc", None), (True, None)],
    )
    def test_as_float(self, raw, expected) -> None:
        assert Cell(raw).as_float() == expected

    def test_as_float_rejects_non_finite(self) -> None:
        assert Cell("nan").as_float() is None

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [(7, 7), ("42", 42), ("-3", -3), (12.0, 12), ("12.9", 12), (None, None), ("x", None)],
    )
    def test_as_int(self, raw, expected) -> None:
        assert Cell(raw).as_int() == expected

    def test_as_str(self) -> None:
        assert Cell("GET /").as_str() == "GET /"
        assert Cell(200).as_str() == "200"
        assert Cell(None).as_str() is None

    def test_as_datetime_parses_log_analytics_precision(self) -> None:
        parsed = Cell("2024-07-08T10:15:00.1234567Z").as_datetime()

        assert parsed == datetime(2024, 7, 8, 10, 15, 0, 123456, tzinfo=timezone.utc)

    def test_as_datetime_assumes_utc_for_naive_values(self) -> None:
        parsed = Cell(datetime(2024, 7, 8, 10, 15)).as_datetime()

        assert parsed.tzinfo is not None
        assert parsed.utcoffset().total_seconds() == 0

    @pytest.mark.parametrize("raw", [None, "", "yesterday", 12345])
    def test_as_datetime_invalid(self, raw) -> None:
        assert Cell(raw).as_datetime() is None


class TestQueryTable:
    """Tests for building tables from /query responses."""

    def test_columns_resolved_by_name(self) -> None:
        table = QueryTable.from_response(
            {
                "tables": [
                    {
                        "name": "PrimaryResult",
                        "columns": [
                            {"name": "Name", "type": "string"},
                            {"name": "request_count", "type": "long"},
                        ],
                        "rows": [["GET /", 5]],
                    }
                ]
            }
        )

        row = next(iter(table))
        assert len(table) == 1
        assert row.get_str("Name") == "GET /"
        assert row.get_int("request_count") == 5

    def test_unknown_column_is_empty(self) -> None:
        table = QueryTable(["Name"], [["GET /"]])

        row = table.rows[0]
        assert row.cell("missing").raw is None
        assert row.get_float("missing") is None

    def test_short_row_is_empty_cell(self) -> None:
        table = QueryTable(["Name", "Value"], [["only-name"]])

        assert table.rows[0].get_float("Value") is None

    def test_response_without_tables(self) -> None:
        assert len(QueryTable.from_response({})) == 0
