"""
Schema Exploration Tool Loop

Bounded multi-step loop letting the model call read-only schema tools
before query generation. Each step is one model turn; tool calls in that
turn are dispatched against the `SchemaGraph` and their results appended to
the conversation. Bad arguments and tool failures are reported back to the
model as ``{"error": ...}`` so it can correct itself.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from ..config import settings
from ..graph.schema_graph import SchemaGraph
from ..llm.client import ToolChatCapability
from ..tools.base import dispatch_tool_call
from ..tools.definitions import TOOL_DEFINITIONS
from .prompts import EXPLORATION_SYSTEM_PROMPT, build_exploration_message

logger = logging.getLogger("sqs.exploration")


class ToolUse(BaseModel):
    name: str
    args: str
    result: Any = None


class ExplorationResult(BaseModel):
    notes: str = ""
    steps: int = 0
    exhausted: bool = False
    used_tools: List[ToolUse] = Field(default_factory=list)


def _append_tool_result(messages: List[Dict[str, Any]], call_id: str, result: Any) -> None:
    messages.append({
        "role": "tool",
        "tool_call_id": call_id,
        "content": json.dumps(result, default=str),
    })


class SchemaExplorer:
    def __init__(
        self,
        llm: ToolChatCapability,
        graph: SchemaGraph,
        max_steps: Optional[int] = None,
    ) -> None:
        self.llm = llm
        self.graph = graph
        self.max_steps = max_steps or settings.tool_loop_max_steps

    async def explore(self, description: str, tables: Sequence[str] = ()) -> ExplorationResult:
        """
        Run the tool loop for at most `max_steps` model turns.

        Raises
        ------
        GenerationError
            If a model call fails; tool failures never raise.
        """
        messages: List[Dict[str, Any]] = [
            {"role": "user", "content": build_exploration_message(description, tables)},
        ]
        used: List[ToolUse] = []
        steps = 0

        while steps < self.max_steps:
            response_msg = await self.llm.chat(
                EXPLORATION_SYSTEM_PROMPT,
                messages,
                tools=TOOL_DEFINITIONS,
            )
            steps += 1
            messages.append(response_msg)

            tool_calls = response_msg.get("tool_calls") or []
            if not tool_calls:
                return ExplorationResult(
                    notes=response_msg.get("content") or "",
                    steps=steps,
                    used_tools=used,
                )

            for tc in tool_calls:
                func = tc.get("function") or {}
                func_name = func.get("name", "")
                raw_args = func.get("arguments") or "{}"
                call_id = tc.get("id", "")

                # Some providers send arguments already decoded.
                if isinstance(raw_args, dict):
                    raw_args = json.dumps(raw_args)

                entry = ToolUse(name=str(func_name), args=str(raw_args))
                used.append(entry)

                try:
                    parsed_args = json.loads(raw_args)
                except (json.JSONDecodeError, TypeError):
                    entry.result = {"error": "Invalid JSON arguments for tool call."}
                    _append_tool_result(messages, call_id, entry.result)
                    continue

                try:
                    entry.result = await dispatch_tool_call(func_name, parsed_args, self.graph)
                except ValueError as exc:
                    entry.result = {"error": f"Tool execution failed: {exc}"}

                _append_tool_result(messages, call_id, entry.result)

        logger.info("Schema exploration stopped after %d steps", steps)

        # Notes from the last assistant turn that carried text, if any.
        notes = ""
        for msg in reversed(messages):
            if msg.get("role") == "assistant" and msg.get("content"):
                notes = msg["content"]
                break

        return ExplorationResult(notes=notes, steps=steps, exhausted=True, used_tools=used)
