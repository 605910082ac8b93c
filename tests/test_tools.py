"""
Schema Tool Tests

Registry consistency, dispatch validation, and the exploration tool loop.
"""

import json
from unittest.mock import AsyncMock

import pytest

from schema_query_server.llm.client import GenerationError
from schema_query_server.synthesis.exploration import SchemaExplorer
from schema_query_server.tools.base import TOOL_REGISTRY, dispatch_tool_call
from schema_query_server.tools.definitions import TOOL_DEFINITIONS, get_tool_names


def tool_call(call_id, name, arguments):
    return {
        "id": call_id,
        "type": "function",
        "function": {"name": name, "arguments": arguments},
    }


def assistant(content=None, tool_calls=None):
    msg = {"role": "assistant", "content": content}
    if tool_calls:
        msg["tool_calls"] = tool_calls
    return msg


class TestRegistry:
    def test_registry_matches_definitions(self):
        assert set(TOOL_REGISTRY) == set(get_tool_names())
        assert len(TOOL_DEFINITIONS) == 4


class TestDispatch:
    @pytest.mark.asyncio
    async def test_list_tables_with_pattern(self, crm_graph):
        result = await dispatch_tool_call("list_tables", {"pattern": "acc"}, crm_graph)
        assert result == {"tables": ["Account"], "total": 1}

    @pytest.mark.asyncio
    async def test_list_tables_limit(self, crm_graph):
        result = await dispatch_tool_call("list_tables", {"limit": 2}, crm_graph)
        assert len(result["tables"]) == 2
        assert result["total"] == 6

    @pytest.mark.asyncio
    async def test_get_table_info(self, crm_graph):
        result = await dispatch_tool_call("get_table_info", {"table": "Contact"}, crm_graph)
        assert result["name"] == "Contact"
        assert [c["name"] for c in result["columns"]][:2] == ["Id", "FirstName"]

    @pytest.mark.asyncio
    async def test_relationships(self, crm_graph):
        result = await dispatch_tool_call(
            "analyze_table_relationships", {"table": "Opportunity"}, crm_graph
        )
        assert result["relationships"] == [{
            "table": "Opportunity",
            "related_table": "Account",
            "column_name": "AccountId",
            "referenced_column": "Id",
            "direction": "outgoing",
            "edge_type": "FOREIGN_KEY",
        }]

    @pytest.mark.asyncio
    async def test_find_join_path(self, crm_graph):
        result = await dispatch_tool_call(
            "find_join_path", {"from_table": "Contact", "to_table": "Opportunity"}, crm_graph
        )
        assert result["found"] is True
        assert len(result["steps"]) == 2

    @pytest.mark.asyncio
    async def test_unknown_tool(self, crm_graph):
        with pytest.raises(ValueError, match="Unknown tool"):
            await dispatch_tool_call("drop_table", {"table": "Account"}, crm_graph)

    @pytest.mark.asyncio
    async def test_missing_argument(self, crm_graph):
        with pytest.raises(ValueError, match="requires 'table'"):
            await dispatch_tool_call("get_table_info", {}, crm_graph)

    @pytest.mark.asyncio
    async def test_unknown_table(self, crm_graph):
        with pytest.raises(ValueError, match="Unknown table"):
            await dispatch_tool_call("get_table_info", {"table": "Lead"}, crm_graph)

    @pytest.mark.asyncio
    async def test_non_object_arguments(self, crm_graph):
        with pytest.raises(ValueError):
            await dispatch_tool_call("list_tables", ["Account"], crm_graph)

    @pytest.mark.asyncio
    async def test_bad_max_depth(self, crm_graph):
        with pytest.raises(ValueError, match="positive integer"):
            await dispatch_tool_call(
                "find_join_path",
                {"from_table": "Contact", "to_table": "Account", "max_depth": 0},
                crm_graph,
            )


class TestSchemaExplorer:
    @pytest.mark.asyncio
    async def test_tool_results_are_fed_back(self, crm_graph):
        llm = AsyncMock()
        llm.chat.side_effect = [
            assistant(tool_calls=[
                tool_call("call_1", "find_join_path", json.dumps({
                    "from_table": "Contact",
                    "to_table": "Account",
                })),
            ]),
            assistant("Join Contact.AccountId to Account.Id."),
        ]

        result = await SchemaExplorer(llm, crm_graph, max_steps=3).explore(
            "contacts with their account name", ["Contact"]
        )

        assert result.notes == "Join Contact.AccountId to Account.Id."
        assert result.steps == 2
        assert not result.exhausted
        assert result.used_tools[0].name == "find_join_path"
        assert result.used_tools[0].result["found"] is True

        messages = llm.chat.call_args.args[1]
        tool_msg = next(m for m in messages if m["role"] == "tool")
        assert tool_msg["tool_call_id"] == "call_1"
        assert json.loads(tool_msg["content"])["found"] is True

    @pytest.mark.asyncio
    async def test_invalid_json_is_reported_to_model(self, crm_graph):
        llm = AsyncMock()
        llm.chat.side_effect = [
            assistant(tool_calls=[tool_call("call_1", "get_table_info", "{not json")]),
            assistant("ok"),
        ]

        result = await SchemaExplorer(llm, crm_graph).explore("anything")
        assert result.used_tools[0].result == {"error": "Invalid JSON arguments for tool call."}

    @pytest.mark.asyncio
    async def test_decoded_object_arguments_are_accepted(self, crm_graph):
        llm = AsyncMock()
        llm.chat.side_effect = [
            assistant(tool_calls=[tool_call("call_1", "get_table_info", {"table": "Contact"})]),
            assistant("Contact has AccountId."),
        ]

        result = await SchemaExplorer(llm, crm_graph).explore("contacts")

        assert result.notes == "Contact has AccountId."
        assert json.loads(result.used_tools[0].args) == {"table": "Contact"}
        assert result.used_tools[0].result["name"] == "Contact"

    @pytest.mark.asyncio
    async def test_non_text_arguments_are_reported_to_model(self, crm_graph):
        llm = AsyncMock()
        llm.chat.side_effect = [
            assistant(tool_calls=[tool_call("call_1", "get_table_info", ["Contact"])]),
            assistant("ok"),
        ]

        result = await SchemaExplorer(llm, crm_graph).explore("contacts")
        assert result.used_tools[0].result == {"error": "Invalid JSON arguments for tool call."}

    @pytest.mark.asyncio
    async def test_tool_failure_is_reported_to_model(self, crm_graph):
        llm = AsyncMock()
        llm.chat.side_effect = [
            assistant(tool_calls=[tool_call("c1", "get_table_info", '{"table": "Lead"}')]),
            assistant("Lead does not exist."),
        ]

        result = await SchemaExplorer(llm, crm_graph).explore("leads")
        assert result.used_tools[0].result["error"].startswith("Tool execution failed")
        assert result.notes == "Lead does not exist."

    @pytest.mark.asyncio
    async def test_loop_is_bounded(self, crm_graph):
        llm = AsyncMock()
        llm.chat.return_value = assistant(
            "still looking",
            tool_calls=[tool_call("c", "list_tables", "{}")],
        )

        result = await SchemaExplorer(llm, crm_graph, max_steps=2).explore("anything")
        assert result.exhausted
        assert result.steps == 2
        assert llm.chat.await_count == 2
        assert result.notes == "still looking"

    @pytest.mark.asyncio
    async def test_model_failure_propagates(self, crm_graph):
        llm = AsyncMock()
        llm.chat.side_effect = GenerationError("down")
        with pytest.raises(GenerationError):
            await SchemaExplorer(llm, crm_graph).explore("anything")
