"""
Minimal MCP-style tool server: exposes the agent's feed_lookup tool through a
standardized interface so external agents can query feed data directly.
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends

from app.agent.tools import ToolRegistry
from app.api.deps import get_tool_registry

logger = logging.getLogger(__name__)

mcp_router = APIRouter(tags=["mcp"])


@mcp_router.get(
    "/tools",
    summary="MCP tool discovery",
    description="List the tool definitions (OpenAI function-calling format) the agent uses.",
)
def mcp_list_tools(registry: ToolRegistry = Depends(get_tool_registry)) -> dict[str, list[dict[str, Any]]]:
    return {"tools": registry.definitions}


@mcp_router.post(
    "/tools/feed_lookup",
    summary="MCP tool: feed_lookup",
    description="This endpoint acts as an MCP tool server, allowing external agents to call feed retrieval "
    "through a standardized interface. Invalid arguments return an empty list with an error.",
)
async def mcp_feed_lookup(
    body: Any = Body(None),
    registry: ToolRegistry = Depends(get_tool_registry),
) -> dict[str, Any]:
    """
    Run feed_lookup with the request body as its arguments.
    Returns { records, count, error }; error is null on success.
    """
    logger.info("MCP tool called: feed_lookup")
    arguments = body if isinstance(body, dict) else {}
    result = await registry.lookup(arguments)
    return {
        "records": [r.to_wire() for r in result.records],
        "count": len(result.records),
        "error": result.error,
    }
