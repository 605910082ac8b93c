"""
Field Mapping Tests
"""

from unittest.mock import AsyncMock

import pytest

from schema_query_server.graph.schema_graph import SchemaGraph
from schema_query_server.llm.client import GenerationError
from schema_query_server.synthesis.mapping import FieldMapper
from schema_query_server.synthesis.models import (
    FieldMapping,
    FieldMappingSet,
    MappingSucceeded,
    Rejection,
)

from conftest import make_table


CSV = b"First Name,Email Address,Unrelated Junk\nAda,ada@example.com,x\nAlan,alan@example.com,y\n"


@pytest.fixture
def contact_graph():
    return SchemaGraph.from_tables([
        make_table("Contact", [
            ("Id", "id"),
            ("FirstName", "string"),
            ("LastName", "string"),
            ("Email", "email"),
        ]),
    ])


@pytest.fixture
def llm():
    mock = AsyncMock()
    mock.generate.return_value = FieldMappingSet(mappings=[
        FieldMapping(source_field="First Name", target_field="FirstName",
                     target_type="text", confidence=0.95),
        FieldMapping(source_field="Email Address", target_field="email",
                     target_type="string", confidence=0.9),
    ])
    return mock


class TestMapFields:
    @pytest.mark.asyncio
    async def test_unmappable_headers_are_reported(self, llm, contact_graph):
        result = await FieldMapper(llm).map_fields("Contact", CSV, contact_graph)

        assert isinstance(result, MappingSucceeded)
        assert [(m.source_field, m.target_field, m.target_type) for m in result.mappings] == [
            ("First Name", "FirstName", "string"),
            ("Email Address", "Email", "email"),
        ]
        assert result.unmapped_headers == ["Unrelated Junk"]
        assert result.metadata.successful_mappings == 2
        assert result.metadata.total_csv_headers == 3
        assert result.metadata.file_size_bytes == len(CSV)
        assert result.csv_info.total_rows == 2
        assert result.csv_info.types["First Name"] == "string"

    @pytest.mark.asyncio
    async def test_prompt_lists_headers_and_fields(self, llm, contact_graph):
        await FieldMapper(llm).map_fields("Contact", CSV, contact_graph)
        prompt, output_model = llm.generate.call_args.args
        assert output_model is FieldMappingSet
        assert "Unrelated Junk (string)" in prompt
        assert '"FirstName"' in prompt

    @pytest.mark.asyncio
    async def test_sample_rows(self, llm, contact_graph):
        mapper = FieldMapper(llm)
        result = await mapper.map_fields("Contact", CSV, contact_graph, return_sample=1)
        assert result.csv_info.sample == [
            {"First Name": "Ada", "Email Address": "ada@example.com", "Unrelated Junk": "x"},
        ]
        result = await mapper.map_fields("Contact", CSV, contact_graph, return_sample=0)
        assert result.csv_info.sample is None

    @pytest.mark.asyncio
    async def test_oversized_payload(self, llm, contact_graph):
        result = await FieldMapper(llm, max_bytes=10).map_fields("Contact", CSV, contact_graph)
        assert isinstance(result, Rejection)
        assert result.stage == "input"
        llm.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expected_columns(self, llm, contact_graph):
        result = await FieldMapper(llm).map_fields(
            "Contact", CSV, contact_graph, expected_columns=["First Name", "Phone"]
        )
        assert result.stage == "input"
        assert result.details["missing_columns"] == ["Phone"]

    @pytest.mark.asyncio
    async def test_unknown_table(self, llm, contact_graph):
        result = await FieldMapper(llm).map_fields("Lead", CSV, contact_graph)
        assert result.stage == "schema"

    @pytest.mark.asyncio
    async def test_invalid_utf8(self, llm, contact_graph):
        result = await FieldMapper(llm).map_fields("Contact", b"First Name\n\xffAda\n", contact_graph)
        assert isinstance(result, Rejection)
        assert result.stage == "input"
        assert "UTF-8" in result.reason
        llm.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_csv(self, llm, contact_graph):
        result = await FieldMapper(llm).map_fields("Contact", b"", contact_graph)
        assert result.stage == "input"

    @pytest.mark.asyncio
    async def test_generation_failure(self, llm, contact_graph):
        llm.generate.side_effect = GenerationError("bad output")
        result = await FieldMapper(llm).map_fields("Contact", CSV, contact_graph)
        assert result.stage == "generation"


class TestFilterMappings:
    def test_first_mapping_per_header_wins(self):
        mappings = [
            FieldMapping(source_field="Mail", target_field="Email", target_type="email", confidence=0.6),
            FieldMapping(source_field="Mail", target_field="FirstName", target_type="string", confidence=0.9),
            FieldMapping(source_field="Ghost", target_field="Email", target_type="email", confidence=0.9),
            FieldMapping(source_field="Name", target_field="Nickname", target_type="string", confidence=0.9),
        ]
        kept = FieldMapper.filter_mappings(
            mappings,
            headers=["Mail", "Name"],
            target_columns={"email": "Email", "firstname": "FirstName"},
        )
        assert [(m.source_field, m.target_field) for m in kept] == [("Mail", "Email")]
