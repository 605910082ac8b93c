import json

import httpx
import pytest

from schema_query_server.llm.client import GenerationError, LLMClient
from schema_query_server.synthesis.models import QueryPlan


PLAN = {
    "query": "SELECT Id, Name FROM Account WHERE Industry = 'Technology'",
    "tables_used": ["Account"],
    "rationale": "Filter accounts by industry.",
    "confidence": 0.9,
}


def completion(content=None, **message):
    message = {"role": "assistant", "content": content, **message}
    return httpx.Response(200, json={"choices": [{"message": message}]})


def make_llm(handler):
    return LLMClient(
        api_key="llm-key",
        model="test-model",
        base_url="https://llm.test/v1/chat/completions",
        transport=httpx.MockTransport(handler),
    )


class TestGenerate:
    @pytest.mark.asyncio
    async def test_structured_output_is_validated(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(json.loads(request.content))
            return completion(json.dumps(PLAN))

        plan = await make_llm(handler).generate("list tech accounts", QueryPlan)

        assert plan.tables_used == ["Account"]
        assert seen["response_format"]["json_schema"]["name"] == "QueryPlan"
        assert seen["messages"][-1] == {"role": "user", "content": "list tech accounts"}

    @pytest.mark.asyncio
    async def test_schema_violation(self):
        bad = dict(PLAN, confidence=1.5)
        llm = make_llm(lambda request: completion(json.dumps(bad)))
        with pytest.raises(GenerationError):
            await llm.generate("x", QueryPlan)

    @pytest.mark.asyncio
    async def test_non_json_content(self):
        llm = make_llm(lambda request: completion("SELECT Id FROM Account"))
        with pytest.raises(GenerationError):
            await llm.generate("x", QueryPlan)

    @pytest.mark.asyncio
    async def test_refusal(self):
        llm = make_llm(lambda request: completion(None, refusal="I can't help with that."))
        with pytest.raises(GenerationError, match="refused"):
            await llm.generate("x", QueryPlan)

    @pytest.mark.asyncio
    async def test_http_failure(self):
        llm = make_llm(lambda request: httpx.Response(429, json={"error": "rate limited"}))
        with pytest.raises(GenerationError) as excinfo:
            await llm.generate("x", QueryPlan)
        assert isinstance(excinfo.value.__cause__, httpx.HTTPStatusError)

    @pytest.mark.asyncio
    async def test_missing_choices(self):
        llm = make_llm(lambda request: httpx.Response(200, json={"choices": []}))
        with pytest.raises(GenerationError):
            await llm.generate("x", QueryPlan)


class TestChat:
    @pytest.mark.asyncio
    async def test_chat_sends_tools_and_returns_message(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(json.loads(request.content))
            return completion("done")

        tools = [{"type": "function", "function": {"name": "list_tables"}}]
        msg = await make_llm(handler).chat(
            "system", [{"role": "user", "content": "hi"}], tools=tools
        )

        assert msg["content"] == "done"
        assert seen["tools"] == tools
        assert seen["messages"][0] == {"role": "system", "content": "system"}

    @pytest.mark.asyncio
    async def test_chat_without_tools_omits_key(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(json.loads(request.content))
            return completion("ok")

        await make_llm(handler).chat("system", [])
        assert "tools" not in seen
