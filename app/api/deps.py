"""
Dependency wiring: build the feed store, checkpoint store, retriever, tool registry
and agent from config once at startup, and hand them to routes via FastAPI Depends.

Routes read everything from app.state.services; tests replace the getters with
app.dependency_overrides.
"""

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from fastapi import HTTPException, Request

from app.agent.graph import FeedAgent
from app.agent.llm import ChatReasoner, ReasoningStep
from app.agent.tools import ToolRegistry
from app.core.checkpoint_store import CheckpointStore, InMemoryCheckpointStore, SqliteCheckpointStore
from app.core.config import CHECKPOINT_BACKEND, CHECKPOINT_DB_PATH, FEED_SEED_FILE, FEED_STORE_BACKEND
from app.core.errors import ServiceUnavailableError
from app.services.feed_store import Embedder, FeedStore, MemoryFeedStore
from app.services.ingestion_service import ingest_feeds, load_feed_file, prepare_feed_rows
from app.services.retrieval_service import HybridRetriever
from app.services.vector_store import HFEmbedder, MilvusFeedStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    agent: FeedAgent
    tools: ToolRegistry
    checkpoints: CheckpointStore
    store: FeedStore
    reasoner: Any = None


def build_feed_store(backend: str = FEED_STORE_BACKEND) -> FeedStore:
    if backend == "memory":
        return MemoryFeedStore()
    if backend == "milvus":
        return MilvusFeedStore()
    raise ValueError(f"unknown FEED_STORE_BACKEND: {backend!r}")


def build_checkpoint_store(backend: str = CHECKPOINT_BACKEND) -> CheckpointStore:
    if backend == "memory":
        return InMemoryCheckpointStore()
    if backend == "sqlite":
        return SqliteCheckpointStore(CHECKPOINT_DB_PATH)
    raise ValueError(f"unknown CHECKPOINT_BACKEND: {backend!r}")


async def seed_memory_store(store: MemoryFeedStore, embedder: Embedder, path: str) -> int:
    """Load the seed file into the in-memory store; without embeddings only exact queries will match."""
    docs = load_feed_file(path)
    try:
        return await ingest_feeds(docs, embedder, store)
    except (ServiceUnavailableError, RuntimeError, httpx.HTTPError) as e:
        logger.warning("[deps] embedding seed feeds failed (%s); storing without vectors", e)
        return await store.insert(prepare_feed_rows(docs))


async def build_services(
    embedder: Embedder | None = None,
    reasoner: ReasoningStep | None = None,
    store: FeedStore | None = None,
    checkpoints: CheckpointStore | None = None,
) -> Services:
    """Assemble the object graph. Anything not passed in is built from config."""
    embedder = embedder if embedder is not None else HFEmbedder()
    store = store if store is not None else build_feed_store()
    checkpoints = checkpoints if checkpoints is not None else build_checkpoint_store()
    reasoner = reasoner if reasoner is not None else ChatReasoner()

    if isinstance(store, MemoryFeedStore) and FEED_SEED_FILE and len(store) == 0:
        seeded = await seed_memory_store(store, embedder, FEED_SEED_FILE)
        logger.info("[deps] seeded memory feed store with %d rows from %s", seeded, FEED_SEED_FILE)

    retriever = HybridRetriever.from_store(embedder, store)
    tools = ToolRegistry(retriever)
    agent = FeedAgent(reasoner, tools, checkpoints)
    logger.info("[deps] services ready store=%s checkpoints=%s",
                type(store).__name__, type(checkpoints).__name__)
    return Services(agent=agent, tools=tools, checkpoints=checkpoints, store=store, reasoner=reasoner)


async def close_services(services: Services) -> None:
    aclose = getattr(services.reasoner, "aclose", None)
    if aclose is not None:
        await aclose()
    close = getattr(services.store, "close", None)
    if close is not None:
        close()


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service is starting up or failed to initialize.")
    return services


def get_agent(request: Request) -> FeedAgent:
    return get_services(request).agent


def get_tool_registry(request: Request) -> ToolRegistry:
    return get_services(request).tools
