"""Schemas for the chat endpoints."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.core.config import MAX_QUERY_LENGTH


class ChatFilters(BaseModel):
    """Optional filters appended to the query text before the turn runs."""

    model_config = ConfigDict(populate_by_name=True)

    country_code: str | None = None
    currency_code: str | None = None
    status: str | None = None
    source_name: str | None = Field(None, alias="transactionSourceName")
    date_from: str | None = None
    date_to: str | None = None
    min_records: int | None = Field(None, ge=0)
    min_jobs: int | None = Field(None, ge=0)


class ChatRequest(BaseModel):
    """Request body for POST /chat and POST /chat/{thread_id}. History is stored server-side by thread_id."""

    query: str = Field(..., min_length=1, max_length=MAX_QUERY_LENGTH, description="User question for the agent.")
    thread_id: str | None = Field(None, description="Thread to continue; a new one is created when omitted.")
    filters: ChatFilters | None = None


class ChatResponse(BaseModel):
    """Response for the chat endpoints."""

    thread_id: str
    text: str = Field(..., description="Final answer from the agent.")
    records: list[dict[str, Any]] = Field(
        default_factory=list, description="Every feed record retrieved on this thread, wire format."
    )


class ThreadHistoryResponse(BaseModel):
    """Response for GET /chat/{thread_id}."""

    thread_id: str
    messages: list[dict[str, Any]] = Field(default_factory=list)
    records: list[dict[str, Any]] = Field(default_factory=list)
