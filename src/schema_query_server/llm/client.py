"""
LLM Client

Thin client for an OpenAI-compatible chat completions endpoint. Two entry
points are used by the pipeline:

- `chat` returns the raw assistant message (with any ``tool_calls``) and
  drives the schema exploration tool loop.
- `generate` requests a structured object matching a pydantic model through
  ``response_format=json_schema`` and validates it.

Every transport, status or shape problem surfaces as `GenerationError` with
the raw cause chained.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Protocol, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ..config import settings

logger = logging.getLogger("sqs.llm")


T = TypeVar("T", bound=BaseModel)


DEFAULT_SYSTEM_PROMPT = (
    "You are a precise assistant that answers strictly with JSON matching "
    "the requested schema."
)


class GenerationError(RuntimeError):
    """Raised when the generation capability fails or returns unusable output."""


class GenerationCapability(Protocol):
    async def generate(self, prompt: str, output_model: Type[T]) -> T: ...


class ToolChatCapability(Protocol):
    async def chat(
        self,
        system_prompt: str,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]: ...


class LLMClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        temperature: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key or settings.openai_api_key.get_secret_value()
        self.model = model or settings.llm_model
        self.base_url = base_url or settings.llm_base_url
        self.timeout = timeout or settings.llm_timeout
        self.temperature = settings.llm_temperature if temperature is None else temperature
        self._transport = transport

    async def _complete(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(
                    self.base_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as exc:
            logger.error("LLM request failed (%s)", type(exc).__name__)
            raise GenerationError(f"LLM request failed: {type(exc).__name__}: {exc}") from exc
        except ValueError as exc:
            raise GenerationError("LLM response was not valid JSON") from exc

        try:
            return data["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as exc:
            raise GenerationError("LLM response missing choices[0].message") from exc

    async def chat(
        self,
        system_prompt: str,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Returns the raw message dict, e.g.:
        {
            "role": "assistant",
            "content": "...",
            "tool_calls": [...]
        }
        """
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "system", "content": system_prompt}] + list(messages),
            "temperature": self.temperature if temperature is None else temperature,
        }
        if tools:
            payload["tools"] = tools

        return await self._complete(payload)

    async def generate(
        self,
        prompt: str,
        output_model: Type[T],
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ) -> T:
        """
        Generate one object conforming to `output_model`.

        Raises
        ------
        GenerationError
            On transport failure, refusal, non-JSON content or a schema
            violation.
        """
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.temperature,
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": output_model.__name__,
                    "schema": output_model.model_json_schema(),
                },
            },
        }

        message = await self._complete(payload)

        if message.get("refusal"):
            raise GenerationError(f"Model refused: {message['refusal']}")

        content = message.get("content")
        if not content:
            raise GenerationError("Model returned empty content")

        try:
            return output_model.model_validate(json.loads(content))
        except json.JSONDecodeError as exc:
            raise GenerationError("Model output was not valid JSON") from exc
        except ValidationError as exc:
            raise GenerationError(
                f"Model output did not match {output_model.__name__}: {exc}"
            ) from exc
