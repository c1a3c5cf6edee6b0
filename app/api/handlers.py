"""
API handlers: shape chat requests for the agent, run the turn, map results/errors to HTTP.

Responsibility: Bridge HTTP types and services. Marshalling and exception-to-HTTP mapping.
Lives in the API layer so the agent and services stay free of FastAPI/HTTP types.
"""

import uuid

from fastapi import HTTPException

from app.agent.graph import FeedAgent
from app.core.errors import (
    AgentError,
    ReasoningUnavailable,
    RecursionExceeded,
    ServiceUnavailableError,
    TurnTimeout,
)
from app.schemas.query import ChatFilters, ChatResponse, ThreadHistoryResponse


def new_thread_id() -> str:
    return uuid.uuid4().hex


def compose_filtered_query(query: str, filters: ChatFilters | None) -> str:
    """Append structured filters to the query text so the agent passes them to feed_lookup."""
    if filters is None:
        return query
    parts: list[str] = []
    if filters.country_code:
        parts.append(f"country code {filters.country_code}")
    if filters.currency_code:
        parts.append(f"currency code {filters.currency_code}")
    if filters.status:
        parts.append(f"status {filters.status}")
    if filters.source_name:
        parts.append(f"transaction source {filters.source_name}")
    if filters.date_from and filters.date_to:
        parts.append(f"date range from {filters.date_from} to {filters.date_to}")
    elif filters.date_from:
        parts.append(f"date from {filters.date_from}")
    elif filters.date_to:
        parts.append(f"date until {filters.date_to}")
    if filters.min_records:
        parts.append(f"minimum {filters.min_records} records")
    if filters.min_jobs:
        parts.append(f"minimum {filters.min_jobs} jobs")
    if not parts:
        return query
    return f"{query} with the following filters: {', '.join(parts)}"


async def handle_chat_turn(
    agent: FeedAgent,
    thread_id: str,
    query: str,
    filters: ChatFilters | None = None,
) -> ChatResponse:
    """
    Run one turn on thread_id and map agent/service failures to HTTP:
    400 invalid input, 500 cycle ceiling, 503 model or store unavailable, 504 timeout.
    """
    text = compose_filtered_query(query, filters)
    try:
        result = await agent.run_turn(thread_id, text)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except RecursionExceeded as e:
        raise HTTPException(status_code=500, detail=e.user_message) from e
    except ReasoningUnavailable as e:
        raise HTTPException(status_code=503, detail=e.user_message) from e
    except TurnTimeout as e:
        raise HTTPException(status_code=504, detail=e.user_message) from e
    except AgentError as e:
        raise HTTPException(status_code=500, detail=e.user_message) from e
    except ServiceUnavailableError as e:
        raise HTTPException(status_code=503, detail=e.message) from e
    return ChatResponse(
        thread_id=result.thread_id,
        text=result.text,
        records=[r.to_wire() for r in result.records],
    )


async def handle_thread_history(agent: FeedAgent, thread_id: str) -> ThreadHistoryResponse:
    """Stored messages and records for a thread; 404 when the thread is unknown."""
    try:
        state = await agent.history(thread_id)
    except ServiceUnavailableError as e:
        raise HTTPException(status_code=503, detail=e.message) from e
    if state is None:
        raise HTTPException(status_code=404, detail=f"Thread not found: {thread_id!r}")
    return ThreadHistoryResponse(
        thread_id=state.thread_id,
        messages=state.messages,
        records=[r.to_wire() for r in state.records],
    )
