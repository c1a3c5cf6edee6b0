"""
API route aggregator: register endpoints; no logic, only delegate to handlers.
"""

import logging

from fastapi import APIRouter, Depends

from app.agent.graph import FeedAgent
from app.api.deps import get_agent
from app.api.handlers import handle_chat_turn, handle_thread_history, new_thread_id
from app.schemas.query import ChatRequest, ChatResponse, ThreadHistoryResponse

logger = logging.getLogger(__name__)
router = APIRouter()


# --- System ---

@router.get("/", tags=["system"])
def root():
    return {"status": "Feed assistant backend running"}


@router.get("/health", tags=["system"])
def health():
    return {"ok": True}


# --- Chat ---

@router.post(
    "/chat",
    response_model=ChatResponse,
    tags=["chat"],
    summary="Start (or continue) a conversation",
    description="Send a question, optionally with filters; a thread_id is generated when none is given. "
    "400 on invalid input, 500 when the agent cannot finish, 503 when the model or a store is unavailable, "
    "504 on timeout.",
)
async def post_chat(body: ChatRequest, agent: FeedAgent = Depends(get_agent)) -> ChatResponse:
    thread_id = body.thread_id or new_thread_id()
    logger.info("[api:post_chat] IN  query=%r thread_id=%s filters=%s",
                body.query, thread_id[:16], body.filters is not None)
    response = await handle_chat_turn(agent, thread_id, body.query, body.filters)
    logger.info("[api:post_chat] OUT text_len=%d records=%d", len(response.text), len(response.records))
    return response


@router.post(
    "/chat/{thread_id}",
    response_model=ChatResponse,
    tags=["chat"],
    summary="Continue a conversation",
    description="Send a follow-up question on an existing thread. The thread_id in the path wins over the body.",
)
async def post_chat_thread(thread_id: str, body: ChatRequest, agent: FeedAgent = Depends(get_agent)) -> ChatResponse:
    logger.info("[api:post_chat_thread] IN  query=%r thread_id=%s", body.query, thread_id[:16])
    response = await handle_chat_turn(agent, thread_id, body.query, body.filters)
    logger.info("[api:post_chat_thread] OUT text_len=%d records=%d", len(response.text), len(response.records))
    return response


@router.get(
    "/chat/{thread_id}",
    response_model=ThreadHistoryResponse,
    tags=["chat"],
    summary="Get a conversation",
    description="Stored messages and every record retrieved on the thread. 404 when the thread is unknown.",
)
async def get_chat_thread(thread_id: str, agent: FeedAgent = Depends(get_agent)) -> ThreadHistoryResponse:
    return await handle_thread_history(agent, thread_id)
