"""
Reasoning step: one call to the chat model with the conversation and tool schema.

OpenAI (primary) or Hugging Face router (fallback, OpenAI-compatible chat completions).
The result is a Decision: FinalAnswer(text) or ToolCalls(calls). Any transport
failure or unusable response raises ReasoningUnavailable; there is no retry.
"""

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Protocol, Union

import httpx
import openai
from openai import AsyncOpenAI

from app.agent.prompts import build_system_directive
from app.core.config import (
    AGENT_MAX_TOKENS,
    HF_API_KEY,
    HF_CHAT_URL,
    HF_LLM_MODEL,
    LLM_API_TIMEOUT,
    OPENAI_API_KEY,
    OPENAI_LLM_MODEL,
)
from app.core.errors import ReasoningUnavailable
from app.core.timeutil import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolCallRequest:
    id: str
    name: str
    arguments: dict[str, Any]

    def to_openai(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": json.dumps(self.arguments)},
        }


@dataclass(frozen=True)
class FinalAnswer:
    text: str


@dataclass(frozen=True)
class ToolCalls:
    calls: tuple[ToolCallRequest, ...]
    # Text the model emitted alongside its tool calls (often empty)
    content: str = ""


Decision = Union[FinalAnswer, ToolCalls]


class ReasoningStep(Protocol):
    async def decide(self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]) -> Decision: ...


def _parse_arguments(raw: Any) -> dict[str, Any]:
    """Tool-call arguments arrive as a JSON string; anything unparseable becomes {}."""
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        logger.warning("[llm] tool call arguments are not JSON: %r", str(raw)[:200])
        return {}
    return parsed if isinstance(parsed, dict) else {}


def to_decision(content: str | None, raw_tool_calls: list[dict[str, Any]]) -> Decision:
    """Build a Decision from a chat message's content and tool calls ({id, name, arguments})."""
    text = (content or "").strip()
    calls = []
    for tc in raw_tool_calls:
        name = (tc.get("name") or "").strip()
        if not name:
            # the chat API rejects history that holds a nameless call
            logger.warning("[llm] dropping tool call without a name: id=%r", tc.get("id"))
            continue
        calls.append(ToolCallRequest(
            id=tc.get("id") or f"call_{uuid.uuid4().hex[:12]}",
            name=name,
            arguments=_parse_arguments(tc.get("arguments")),
        ))
    if calls:
        logger.info("[llm] OUT tool_calls=%s", [c.name for c in calls])
        return ToolCalls(calls=tuple(calls), content=text)
    if not text:
        raise ReasoningUnavailable("model returned neither text nor tool calls")
    logger.info("[llm] OUT content_len=%d", len(text))
    return FinalAnswer(text=text)


class ChatReasoner:
    """
    Calls the chat model with the system directive prepended. Uses OpenAI when an
    OpenAI key is configured, else the Hugging Face router.
    """

    def __init__(
        self,
        openai_api_key: str = OPENAI_API_KEY,
        openai_model: str = OPENAI_LLM_MODEL,
        hf_api_key: str = HF_API_KEY,
        hf_model: str = HF_LLM_MODEL,
        max_tokens: int = AGENT_MAX_TOKENS,
        timeout: float = LLM_API_TIMEOUT,
        clock: Callable[[], datetime] = utcnow,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._openai = AsyncOpenAI(api_key=openai_api_key, timeout=timeout) if openai_api_key else None
        self._openai_model = openai_model
        self._hf_api_key = hf_api_key
        self._hf_model = hf_model
        self._max_tokens = max_tokens
        self._timeout = timeout
        self._clock = clock
        self._http_transport = http_transport

    async def decide(self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]) -> Decision:
        tool_names = [t["function"]["name"] for t in tools]
        system = build_system_directive(tool_names, self._clock())
        full = [{"role": "system", "content": system}, *messages]
        logger.info("[llm:decide] IN  messages=%d tools=%s", len(messages), tool_names)
        if self._openai is not None:
            return await self._call_openai(full, tools)
        if self._hf_api_key:
            return await self._call_hf(full, tools)
        raise ReasoningUnavailable("no language model configured (set OPENAI_API_KEY or HF_API_KEY)")

    async def _call_openai(self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]) -> Decision:
        try:
            response = await self._openai.chat.completions.create(
                model=self._openai_model,
                messages=messages,
                tools=tools,
                temperature=0,
                max_tokens=self._max_tokens,
            )
        except openai.OpenAIError as e:
            logger.warning("[llm:openai] request failed: %s", e)
            raise ReasoningUnavailable(f"OpenAI request failed: {e}") from e
        msg = response.choices[0].message if response.choices else None
        if msg is None:
            raise ReasoningUnavailable("OpenAI returned no choices")
        raw_calls = []
        for tc in getattr(msg, "tool_calls", None) or []:
            fn = getattr(tc, "function", None)
            if not fn:
                continue
            raw_calls.append({"id": getattr(tc, "id", "") or "", "name": fn.name, "arguments": fn.arguments})
        return to_decision(msg.content, raw_calls)

    async def _call_hf(self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]) -> Decision:
        headers = {"Authorization": f"Bearer {self._hf_api_key}", "Content-Type": "application/json"}
        payload = {
            "model": self._hf_model,
            "messages": messages,
            "tools": tools,
            "temperature": 0,
            "max_tokens": self._max_tokens,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._http_transport) as client:
                response = await client.post(HF_CHAT_URL, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("[llm:hf] request failed: %s", e)
            raise ReasoningUnavailable(f"HF request failed: {e}") from e
        if response.status_code != 200:
            logger.warning("[llm:hf] HF LLM error %s: %s", response.status_code, response.text[:200])
            raise ReasoningUnavailable(f"HF LLM error {response.status_code}")
        try:
            data = response.json()
        except ValueError as e:
            raise ReasoningUnavailable("HF LLM returned invalid JSON") from e
        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices or not isinstance(choices[0], dict):
            raise ReasoningUnavailable("HF LLM returned no choices")
        msg = choices[0].get("message") or {}
        raw_calls = []
        for tc in msg.get("tool_calls") or []:
            fn = tc.get("function") or {}
            raw_calls.append({"id": tc.get("id") or "", "name": fn.get("name") or "", "arguments": fn.get("arguments")})
        return to_decision(msg.get("content"), raw_calls)

    async def aclose(self) -> None:
        if self._openai is not None:
            await self._openai.close()
