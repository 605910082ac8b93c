"""
Tabular Ingestion Tests
"""

import pytest

from schema_query_server.ingest.csv_ingestor import (
    CsvIngestError,
    PayloadTooLargeError,
    TabularIngestor,
    ensure_within_limit,
    infer_column_type,
)


@pytest.fixture
def ingestor():
    return TabularIngestor(sample_size=50)


class TestParsing:
    def test_quoted_delimiters_and_escaped_quotes(self, ingestor):
        parsed = ingestor.parse('left,right\na,"b,""c"""\n')
        assert parsed.rows == [{"left": "a", "right": 'b,"c"'}]

    def test_doubled_quote_inside_field(self, ingestor):
        assert ingestor.split_rows('a,"b""c"') == [["a", 'b"c']]

    def test_quoted_comma_and_escaped_quote_form_one_value(self, ingestor):
        assert ingestor.split_rows('"a,b""c"') == [['a,b"c']]

    def test_quoted_newline_stays_in_field(self, ingestor):
        parsed = ingestor.parse('name,note\nAnn,"line one\nline two"\n')
        assert parsed.total_rows == 1
        assert parsed.rows[0]["note"] == "line one\nline two"

    def test_cells_are_trimmed_and_blank_rows_dropped(self, ingestor):
        parsed = ingestor.parse(" name , city \n\n  alice ,  Paris \n , \n")
        assert parsed.columns == ["name", "city"]
        assert parsed.rows == [{"name": "alice", "city": "Paris"}]

    def test_byte_order_mark_is_ignored(self, ingestor):
        plain = ingestor.parse(b"id,name\n1,alice\n")
        with_bom = ingestor.parse(b"\xef\xbb\xbfid,name\n1,alice\n")
        assert with_bom == plain
        assert ingestor.parse("\ufeffid,name\n1,alice\n").columns == ["id", "name"]

    def test_invalid_utf8_is_rejected(self, ingestor):
        with pytest.raises(CsvIngestError, match="not valid UTF-8"):
            ingestor.parse(b"id,name\n1,\xff\xfeice\n")

    def test_crlf_line_endings(self, ingestor):
        parsed = ingestor.parse(b"id,name\r\n1,alice\r\n2,bob\r\n")
        assert [r["name"] for r in parsed.rows] == ["alice", "bob"]

    def test_short_rows_are_padded_with_none(self, ingestor):
        parsed = ingestor.parse("a,b,c\n1,2\n")
        assert parsed.rows == [{"a": "1", "b": "2", "c": None}]

    def test_without_header_columns_are_generated(self, ingestor):
        parsed = ingestor.parse("1,alice\n2,bob,extra\n", has_header=False)
        assert parsed.columns == ["col_1", "col_2", "col_3"]
        assert parsed.rows[0] == {"col_1": "1", "col_2": "alice", "col_3": None}
        assert parsed.total_rows == 2

    def test_duplicate_headers_last_value_wins(self, ingestor):
        parsed = ingestor.parse("a,b,a\n1,2,3\n")
        assert parsed.columns == ["a", "b", "a"]
        assert parsed.rows == [{"a": "3", "b": "2"}]

    def test_empty_input(self, ingestor):
        parsed = ingestor.parse("")
        assert parsed.rows == []
        assert parsed.columns == []
        assert parsed.types == {}

    def test_header_only(self, ingestor):
        parsed = ingestor.parse("id,name\n")
        assert parsed.columns == ["id", "name"]
        assert parsed.types == {"id": "null", "name": "null"}

    def test_custom_delimiter(self):
        parsed = TabularIngestor(delimiter=";").parse("a;b\n1;x\n")
        assert parsed.rows == [{"a": "1", "b": "x"}]


class TestTypeInference:
    def test_types_per_column(self, ingestor):
        parsed = ingestor.parse(
            "id,active,joined,name,score,empty\n"
            "1,true,2024-01-05,Alice,1.5,\n"
            "2,FALSE,2024-02-10,Bob,-3,\n"
        )
        assert parsed.types == {
            "id": "number",
            "active": "boolean",
            "joined": "date",
            "name": "string",
            "score": "number",
            "empty": "null",
        }

    def test_empty_values_do_not_affect_type(self):
        assert infer_column_type(["", None, "42", " "]) == "number"

    def test_mixed_kinds_degrade_to_string(self):
        assert infer_column_type(["1", "2", "3"]) == "number"
        assert infer_column_type(["1", "x", "3"]) == "string"
        assert infer_column_type(["1", "true"]) == "string"
        assert infer_column_type(["true", "2024-01-05"]) == "string"

    def test_year_is_a_number(self):
        assert infer_column_type(["2024", "2025"]) == "number"
        assert infer_column_type(["2024", "2024-01-05"]) == "string"

    def test_boolean_requires_exact_words(self):
        assert infer_column_type(["yes", "no"]) == "string"
        assert infer_column_type(["True", "false"]) == "boolean"

    def test_all_empty_column_is_null(self):
        assert infer_column_type([None, "", "  "]) == "null"

    def test_only_sample_rows_are_inspected(self):
        parsed = TabularIngestor(sample_size=2).parse("v\n1\n2\nAlice\n")
        assert parsed.types == {"v": "number"}
        assert parsed.total_rows == 3


class TestSizeLimit:
    def test_under_limit_passes(self):
        ensure_within_limit(10, max_bytes=10)

    def test_over_limit_raises(self):
        with pytest.raises(PayloadTooLargeError):
            ensure_within_limit(11, max_bytes=10)

    def test_size_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            ensure_within_limit(2, max_bytes=1)
