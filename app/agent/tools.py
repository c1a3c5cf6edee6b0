"""
Agent tools: definitions and execution for tool-calling mode.

One tool, feed_lookup, wrapping the hybrid retriever. Arguments are validated
against RetrievalCriteria before anything reaches the retriever; invalid calls
and unknown tools produce an empty result with an error marker instead of an
exception, so the reasoning loop always gets a tool message back.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from app.agent.llm import ToolCallRequest
from app.core.config import DEFAULT_RESULT_LIMIT
from app.schemas.feed import Record, RetrievalCriteria
from app.services.retrieval_service import HybridRetriever

logger = logging.getLogger(__name__)

FEED_LOOKUP = "feed_lookup"

# OpenAI function-calling format
FEED_LOOKUP_TOOL = {
    "type": "function",
    "function": {
        "name": FEED_LOOKUP,
        "description": (
            "Searches for feed data based on various criteria. Combines semantic search over feed summaries "
            "with exact filters. Returns the matching feed records (country, currency, status, transaction "
            "source, record and job counts, timestamp)."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "The search query for semantic search"},
                "country_code": {"type": "string", "description": "Filter by country code (e.g., 'US', 'IN', 'DE')"},
                "currency_code": {"type": "string", "description": "Filter by currency code (e.g., 'USD', 'EUR')"},
                "status": {"type": "string", "description": "Filter by feed status (e.g., 'completed')"},
                "transactionSourceName": {
                    "type": "string",
                    "description": "Filter by transaction source (e.g., 'Deal1', 'Deal2')",
                },
                "date_from": {
                    "type": "string",
                    "format": "date",
                    "description": "Filter by start date in ISO format (e.g., '2025-07-01')",
                },
                "date_to": {
                    "type": "string",
                    "format": "date",
                    "description": "Filter by end date in ISO format (e.g., '2025-07-31')",
                },
                "min_records": {"type": "integer", "description": "Filter by minimum number of records"},
                "min_jobs": {"type": "integer", "description": "Filter by minimum number of jobs in feed"},
                "n": {
                    "type": "integer",
                    "description": "Number of results to return",
                    "default": DEFAULT_RESULT_LIMIT,
                },
            },
            "required": ["query"],
        },
    },
}


@dataclass
class ToolResult:
    call_id: str
    name: str
    records: list[Record] = field(default_factory=list)
    error: str | None = None

    def payload(self) -> dict[str, Any]:
        out: dict[str, Any] = {"count": len(self.records), "records": [r.to_wire() for r in self.records]}
        if self.error:
            out["error"] = self.error
        return out

    def to_message(self) -> dict[str, Any]:
        """Tool-result message for the conversation history."""
        return {"role": "tool", "tool_call_id": self.call_id, "content": json.dumps(self.payload())}


def _describe_validation_error(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "invalid arguments: " + "; ".join(parts)


class ToolRegistry:
    def __init__(self, retriever: HybridRetriever) -> None:
        self._retriever = retriever
        self._tools = {FEED_LOOKUP: FEED_LOOKUP_TOOL}

    @property
    def definitions(self) -> list[dict[str, Any]]:
        return list(self._tools.values())

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    async def execute(self, call: ToolCallRequest) -> ToolResult:
        """Run one tool call. Never raises."""
        logger.info("[tools] execute name=%r arguments=%r", call.name, call.arguments)
        if call.name != FEED_LOOKUP:
            return ToolResult(call_id=call.id, name=call.name, error=f"unknown tool: {call.name}")
        try:
            criteria = RetrievalCriteria.model_validate(call.arguments or {})
        except ValidationError as e:
            message = _describe_validation_error(e)
            logger.info("[tools] rejected %s call: %s", call.name, message)
            return ToolResult(call_id=call.id, name=call.name, error=message)
        try:
            records = await self._retriever.retrieve(criteria)
        except Exception:
            logger.exception("[tools] %s failed", call.name)
            return ToolResult(call_id=call.id, name=call.name, error="feed lookup failed")
        logger.info("[tools] OUT name=%s records=%d", call.name, len(records))
        return ToolResult(call_id=call.id, name=call.name, records=records)

    async def lookup(self, arguments: dict[str, Any]) -> ToolResult:
        """Direct feed_lookup invocation (tool server)."""
        return await self.execute(ToolCallRequest(id="direct", name=FEED_LOOKUP, arguments=arguments))
