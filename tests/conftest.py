"""
Shared fakes and fixtures. Nothing here talks to Milvus, Hugging Face or OpenAI.
"""

import asyncio
from typing import Any, Callable

import pytest

from app.agent.graph import FeedAgent
from app.agent.llm import Decision, FinalAnswer, ToolCallRequest, ToolCalls
from app.agent.tools import FEED_LOOKUP, ToolRegistry
from app.core.checkpoint_store import InMemoryCheckpointStore
from app.services.feed_store import MemoryFeedStore
from app.services.ingestion_service import prepare_feed_rows
from app.services.retrieval_service import HybridRetriever

SAMPLE_FEEDS: list[dict[str, Any]] = [
    {
        "_id": "f1",
        "country_code": "IN",
        "currency_code": "INR",
        "status": "completed",
        "transactionSourceName": "Deal1",
        "recordCount": 120,
        "timestamp": "2025-07-01T10:00:00Z",
        "progress": {"TOTAL_RECORDS_IN_FEED": 120, "TOTAL_JOBS_IN_FEED": 12, "TOTAL_JOBS_SENT_TO_INDEX": 10},
        "uniqueRefNumberCount": 118,
        "noCoordinatesCount": 3,
    },
    {
        "_id": "f2",
        "country_code": "IN",
        "currency_code": "INR",
        "status": "completed",
        "transactionSourceName": "Deal2",
        "recordCount": 40,
        "timestamp": "2025-07-15T08:30:00Z",
        "progress": {"TOTAL_RECORDS_IN_FEED": 40, "TOTAL_JOBS_IN_FEED": 4},
        "uniqueRefNumberCount": 40,
        "noCoordinatesCount": 0,
    },
    {
        "_id": "f3",
        "country_code": "IN",
        "currency_code": "INR",
        "status": "completed",
        "transactionSourceName": "Deal1",
        "recordCount": 75,
        "timestamp": "2025-08-02T12:00:00Z",
        "progress": {"TOTAL_RECORDS_IN_FEED": 75, "TOTAL_JOBS_IN_FEED": 8},
        "uniqueRefNumberCount": 70,
        "noCoordinatesCount": 1,
    },
    {
        "_id": "f4",
        "country_code": "IN",
        "currency_code": "INR",
        "status": "failed",
        "transactionSourceName": "Deal2",
        "recordCount": 10,
        "timestamp": "2025-07-20T09:00:00Z",
        "progress": {"TOTAL_RECORDS_IN_FEED": 10, "TOTAL_JOBS_IN_FEED": 1},
        "uniqueRefNumberCount": 10,
        "noCoordinatesCount": 0,
    },
    {
        "_id": "f5",
        "country_code": "US",
        "currency_code": "USD",
        "status": "completed",
        "transactionSourceName": "Deal3",
        "recordCount": 300,
        "timestamp": "2025-07-10T16:45:00Z",
        "progress": {"TOTAL_RECORDS_IN_FEED": 300, "TOTAL_JOBS_IN_FEED": 30},
        "uniqueRefNumberCount": 295,
        "noCoordinatesCount": 7,
    },
]


class FakeEmbedder:
    """Same unit vector for every text, so similarity search returns every predicate match."""

    def __init__(self, fail: BaseException | None = None) -> None:
        self.fail = fail
        self.calls: list[list[str]] = []

    async def embed_query(self, text: str) -> list[float]:
        return (await self.embed_texts([text]))[0]

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail is not None:
            raise self.fail
        return [[1.0, 0.0, 0.0] for _ in texts]


class FakeReasoner:
    """
    Scripted reasoning step. Each entry is a Decision, an exception to raise, or a
    callable taking the messages and returning a Decision. Records what it was shown.
    """

    def __init__(self, script: list[Any] | None = None, default: Decision | None = None) -> None:
        self.script = list(script or [])
        self.default = default or FinalAnswer("FINAL ANSWER: done")
        self.seen: list[list[dict[str, Any]]] = []

    async def decide(self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]) -> Decision:
        self.seen.append([dict(m) for m in messages])
        step = self.script.pop(0) if self.script else self.default
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            return step(messages)
        return step

    @property
    def calls(self) -> int:
        return len(self.seen)


def lookup_call(call_id: str = "call_1", **arguments: Any) -> ToolCalls:
    arguments.setdefault("query", "feeds")
    return ToolCalls(calls=(ToolCallRequest(id=call_id, name=FEED_LOOKUP, arguments=arguments),))


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def sample_feeds() -> list[dict[str, Any]]:
    return [dict(d) for d in SAMPLE_FEEDS]


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def feed_store(sample_feeds) -> MemoryFeedStore:
    """Store seeded the way ingestion seeds it: epoch-ms timestamps, summary text, vectors."""
    vectors = [[1.0, 0.0, 0.0] for _ in sample_feeds]
    return MemoryFeedStore(prepare_feed_rows(sample_feeds, vectors))


@pytest.fixture
def retriever(embedder, feed_store) -> HybridRetriever:
    return HybridRetriever.from_store(embedder, feed_store)


@pytest.fixture
def registry(retriever) -> ToolRegistry:
    return ToolRegistry(retriever)


@pytest.fixture
def checkpoints() -> InMemoryCheckpointStore:
    return InMemoryCheckpointStore()


@pytest.fixture
def make_agent(registry, checkpoints) -> Callable[..., FeedAgent]:
    def _make(reasoner: FakeReasoner, **kwargs: Any) -> FeedAgent:
        kwargs.setdefault("tools", registry)
        kwargs.setdefault("checkpoints", checkpoints)
        return FeedAgent(reasoner, **kwargs)

    return _make
