"""Tests for CSV parsing, schema inference and the structured operations."""

import pytest

from csv_agent.analysis.csv_engine import CsvAnalysisEngine, to_number
from csv_agent.analysis.models import CsvResource, FilterCondition, ParsedCsv
from csv_agent.core.exceptions import ParseError, UnsafeQueryError


@pytest.fixture
def people():
    return ParsedCsv(
        headers=["Name", "Age", "Department"],
        rows=[
            {"Name": "Alice", "Age": "34", "Department": "Sales"},
            {"Name": "Bob", "Age": "22", "Department": "Sales"},
            {"Name": "Carol", "Age": "41", "Department": "Engineering"},
            {"Name": "Dan", "Age": "n/a", "Department": "Sales"},
        ]
    )


class TestToNumber:
    """Tests for numeric coercion of cells."""

    def test_numeric_strings(self):
        assert to_number("42") == 42.0
        assert to_number(" 3.5 ") == 3.5
        assert to_number(7) == 7.0

    def test_non_numeric(self):
        assert to_number("") is None
        assert to_number("abc") is None
        assert to_number(None) is None
        assert to_number(True) is None

    def test_non_finite_is_not_numeric(self):
        assert to_number("nan") is None
        assert to_number("inf") is None


class TestParse:
    """Tests for CsvAnalysisEngine.parse."""

    def test_parse_full_file(self, engine, sales_csv):
        data = engine.parse(sales_csv)
        assert data.headers == ["Region", "Amount"]
        assert data.row_count == 3
        assert data.rows[0] == {"Region": "North", "Amount": "100"}

    def test_limit_truncates_rows_not_header(self, engine, sales_csv):
        data = engine.parse(sales_csv, limit=1)
        assert data.headers == ["Region", "Amount"]
        assert data.row_count == 1

    def test_columns_projection_ignores_unknown(self, engine, sales_csv):
        data = engine.parse(sales_csv, columns=["Amount", "Missing"])
        assert data.headers == ["Amount"]
        assert data.rows == [{"Amount": "100"}, {"Amount": "200"}, {"Amount": "50"}]

    def test_values_stay_strings(self, engine, tmp_path):
        path = tmp_path / "codes.csv"
        path.write_text("Code,Note\n007,\nNA,null\n", encoding="utf-8")
        data = engine.parse(path)
        assert data.rows == [{"Code": "007", "Note": ""}, {"Code": "NA", "Note": "null"}]

    def test_quoted_fields_with_delimiters(self, engine, tmp_path):
        path = tmp_path / "quoted.csv"
        path.write_text('"First Name",City\n"Smith, John","New York"\n', encoding="utf-8")
        data = engine.parse(path)
        assert data.headers == ["First Name", "City"]
        assert data.rows[0]["First Name"] == "Smith, John"

    def test_bom_is_stripped(self, engine, tmp_path):
        path = tmp_path / "bom.csv"
        path.write_bytes("\ufeffRegion,Amount\nNorth,1\n".encode("utf-8"))
        assert engine.parse(path).headers == ["Region", "Amount"]

    def test_empty_file(self, engine, tmp_path):
        path = tmp_path / "empty.csv"
        path.write_text("", encoding="utf-8")
        data = engine.parse(path)
        assert data.headers == []
        assert data.rows == []

    def test_malformed_file_raises_parse_error(self, engine, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_text("a,b\n1,2\n3,4,5,6\n", encoding="utf-8")
        with pytest.raises(ParseError):
            engine.parse(path)

    def test_extra_field_on_every_row_is_not_used_as_index(self, engine, tmp_path):
        path = tmp_path / "shifted.csv"
        path.write_text("a,b\n1,2,3\n4,5,6\n", encoding="utf-8")
        with pytest.raises(ParseError):
            engine.parse(path)

    def test_missing_fields_raise_parse_error(self, engine, tmp_path):
        path = tmp_path / "short.csv"
        path.write_text("a,b,c\n1,2,3\n4,5\n", encoding="utf-8")
        with pytest.raises(ParseError, match="fewer fields"):
            engine.parse(path)

    def test_trailing_empty_field_is_kept(self, engine, tmp_path):
        path = tmp_path / "trailing.csv"
        path.write_text("a,b\n1,\n", encoding="utf-8")
        assert engine.parse(path).rows == [{"a": "1", "b": ""}]

    def test_repeated_headers_are_suffixed(self, engine, tmp_path):
        path = tmp_path / "repeated.csv"
        path.write_text("a,a,b\n1,2,3\n", encoding="utf-8")
        data = engine.parse(path)
        assert data.headers == ["a", "a.1", "b"]
        assert data.rows == [{"a": "1", "a.1": "2", "b": "3"}]

    def test_header_only_file(self, engine, tmp_path):
        path = tmp_path / "header.csv"
        path.write_text("a,b\n", encoding="utf-8")
        data = engine.parse(path)
        assert data.headers == ["a", "b"]
        assert data.rows == []


class TestSchema:
    """Tests for schema inference."""

    def test_sales_schema(self, engine, sales_resource):
        schema = engine.schema(sales_resource)
        assert schema.column_names == ["Region", "Amount"]
        assert schema.row_count == 3
        assert schema.numeric_columns == ["Amount"]
        assert schema.text_columns == ["Region"]

    def test_schema_is_idempotent(self, engine, sales_resource):
        first = engine.schema(sales_resource)
        second = engine.schema(sales_resource)
        assert first == second

    def test_type_from_first_non_empty_value(self, engine, tmp_path):
        path = tmp_path / "sparse.csv"
        path.write_text("A,B,C\n,x,\n5,1,\n", encoding="utf-8")
        resource = CsvResource(id="r", original_name="sparse.csv", stored_path=str(path))
        schema = engine.schema(resource)
        types = {c.name: c.type for c in schema.columns}
        assert types == {"A": "numeric", "B": "text", "C": "text"}

    def test_row_count_is_not_limited_by_sample(self, engine, tmp_path):
        path = tmp_path / "big.csv"
        path.write_text("n\n" + "\n".join(str(i) for i in range(1500)) + "\n", encoding="utf-8")
        resource = CsvResource(id="r", original_name="big.csv", stored_path=str(path))
        assert engine.schema(resource).row_count == 1500

    def test_relative_path_resolves_against_uploads_dir(self, tmp_path, sales_resource):
        assert CsvAnalysisEngine(tmp_path).resolve_path(sales_resource) == tmp_path / "session-1" / "sales.csv"


class TestQuery:
    """Tests for CsvAnalysisEngine.query."""

    def test_group_by_totals(self, engine, sales_resource):
        result = engine.query(
            sales_resource,
            "SELECT Region, SUM(CAST(Amount AS REAL)) as total FROM csv_data GROUP BY Region"
        )
        totals = {row["Region"]: row["total"] for row in result.rows}
        assert totals == {"North": 150, "South": 200}
        assert result.columns == ["Region", "total"]
        assert result.row_count == 2

    def test_drop_is_rejected_and_file_untouched(self, engine, sales_resource, sales_csv):
        before = sales_csv.read_bytes()
        with pytest.raises(UnsafeQueryError):
            engine.query(sales_resource, "DROP TABLE csv_data")
        assert sales_csv.read_bytes() == before

    def test_unsafe_query_never_reads_the_file(self, engine, tmp_path):
        resource = CsvResource(id="r", original_name="gone.csv", stored_path=str(tmp_path / "gone.csv"))
        with pytest.raises(UnsafeQueryError):
            engine.query(resource, "DELETE FROM csv_data")

    def test_headers_differing_only_by_case(self, engine, tmp_path):
        path = tmp_path / "ids.csv"
        path.write_text("id,ID\n1,2\n", encoding="utf-8")
        resource = CsvResource(id="r", original_name="ids.csv", stored_path=str(path))
        result = engine.query(resource, "SELECT * FROM t")
        assert result.rows == [{"id": "1", "ID_2": "2"}]


class TestFilter:
    """Tests for the structured filter operation."""

    def test_conjunction_of_conditions(self, people):
        filtered = CsvAnalysisEngine.filter(people, [
            FilterCondition(column="Department", operator="eq", value="Sales"),
            FilterCondition(column="Age", operator="gt", value=25),
        ])
        assert [r["Name"] for r in filtered.rows] == ["Alice"]

    def test_empty_filter_list_returns_all_rows(self, people):
        filtered = CsvAnalysisEngine.filter(people, [])
        assert filtered.rows == people.rows
        assert filtered.headers == people.headers

    def test_eq_compares_numbers_loosely(self, people):
        filtered = CsvAnalysisEngine.filter(people, [FilterCondition(column="Age", operator="eq", value=34.0)])
        assert [r["Name"] for r in filtered.rows] == ["Alice"]

    def test_contains_is_case_insensitive(self, people):
        filtered = CsvAnalysisEngine.filter(people, [
            FilterCondition(column="Department", operator="contains", value="ENGIN")
        ])
        assert [r["Name"] for r in filtered.rows] == ["Carol"]

    def test_regex_is_case_insensitive(self, people):
        filtered = CsvAnalysisEngine.filter(people, [FilterCondition(column="Name", operator="regex", value="^[ab]")])
        assert [r["Name"] for r in filtered.rows] == ["Alice", "Bob"]

    def test_invalid_regex_matches_nothing(self, people):
        filtered = CsvAnalysisEngine.filter(people, [FilterCondition(column="Name", operator="regex", value="(")])
        assert filtered.rows == []

    def test_comparison_skips_non_numeric_cells(self, people):
        filtered = CsvAnalysisEngine.filter(people, [FilterCondition(column="Age", operator="lte", value=100)])
        assert "Dan" not in [r["Name"] for r in filtered.rows]
        assert len(filtered.rows) == 3


class TestAggregate:
    """Tests for the aggregate operation."""

    def test_count_ignores_column(self, people):
        assert CsvAnalysisEngine.aggregate(people, "count").value == 4

    def test_numeric_ops_exclude_non_numeric(self, people):
        assert CsvAnalysisEngine.aggregate(people, "sum", "Age").value == 97
        assert CsvAnalysisEngine.aggregate(people, "min", "Age").value == 22
        assert CsvAnalysisEngine.aggregate(people, "max", "Age").value == 41
        assert CsvAnalysisEngine.aggregate(people, "avg", "Age").value == pytest.approx(97 / 3)

    def test_no_numeric_values_yields_zero(self, people):
        assert CsvAnalysisEngine.aggregate(people, "avg", "Name").value == 0

    def test_group_by_sums_per_key(self, people):
        result = CsvAnalysisEngine.aggregate(people, "group_by", "Age", ["Department"])
        assert result.value["Sales"]["Age"] == 56
        assert result.value["Engineering"]["Age"] == 41
        assert result.group_by == ["Department"]

    def test_group_by_key_joins_columns(self, people):
        result = CsvAnalysisEngine.aggregate(people, "group_by", "Age", ["Department", "Name"])
        assert "Sales|Alice" in result.value

    def test_group_by_requires_columns(self, people):
        with pytest.raises(ValueError):
            CsvAnalysisEngine.aggregate(people, "group_by", "Age")

    def test_missing_column(self, people):
        with pytest.raises(ValueError):
            CsvAnalysisEngine.aggregate(people, "sum")

    def test_filter_and_aggregate(self, people):
        result = CsvAnalysisEngine.filter_and_aggregate(
            people,
            [FilterCondition(column="Department", operator="eq", value="Sales")],
            "sum",
            "Age"
        )
        assert result.value == 56


class TestStatistics:
    """Tests for descriptive statistics."""

    def test_population_std_dev_and_truncated_quartiles(self):
        data = ParsedCsv(headers=["v"], rows=[{"v": str(n)} for n in (2, 4, 4, 4, 5, 5, 7, 9)])
        stats = CsvAnalysisEngine.statistics(data)["v"]
        assert stats["count"] == 8
        assert stats["mean"] == 5
        assert stats["std_dev"] == 2
        assert stats["median"] == 4.5
        assert stats["q1"] == 4
        assert stats["q3"] == 7
        assert stats["min"] == 2
        assert stats["max"] == 9

    def test_text_column_reports_error(self, people):
        stats = CsvAnalysisEngine.statistics(people, ["Name"])
        assert stats == {"Name": {"error": "No numeric values found"}}


class TestSearch:
    """Tests for text search."""

    def test_search_all_columns(self, people):
        assert [r["Name"] for r in CsvAnalysisEngine.search(people, "sales").rows] == ["Alice", "Bob", "Dan"]

    def test_search_selected_columns(self, people):
        assert CsvAnalysisEngine.search(people, "sales", ["Name"]).rows == []
