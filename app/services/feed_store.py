"""
Feed document store contract and an in-process implementation.

FeedStore is what the hybrid retriever consumes: a similarity search restricted
by a Predicate and an exact predicate query ordered most recent first.
MemoryFeedStore backs local runs (FEED_STORE_BACKEND=memory) and the tests.
"""

import logging
import math
import threading
from typing import Any, Protocol, Sequence

from app.core.timeutil import parse_timestamp
from app.services.filter_builder import TIMESTAMP_FIELD, Predicate

logger = logging.getLogger(__name__)

ScoredDocument = tuple[dict[str, Any], float]


class Embedder(Protocol):
    async def embed_query(self, text: str) -> list[float]: ...

    async def embed_texts(self, texts: list[str]) -> list[list[float]]: ...


class FeedStore(Protocol):
    async def similarity_search(
        self, vector: Sequence[float], predicate: Predicate, n: int
    ) -> list[ScoredDocument]: ...

    async def exact_query(self, predicate: Predicate, n: int) -> list[dict[str, Any]]: ...

    async def insert(self, rows: list[dict[str, Any]]) -> int: ...

    async def reset(self) -> None: ...


def _cosine(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


def recency_key(doc: dict[str, Any]) -> float:
    """Sort key for most-recent-first ordering; undated documents sort last."""
    ts = parse_timestamp(doc.get(TIMESTAMP_FIELD), epoch_unit="ms")
    return ts.timestamp() if ts is not None else float("-inf")


class MemoryFeedStore:
    """
    Feed documents held in a list. Rows may carry a "vector" (and "embedding_text");
    rows without one are invisible to similarity search but still match exact queries.
    """

    def __init__(self, rows: list[dict[str, Any]] | None = None) -> None:
        self._rows: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        if rows:
            self._rows.extend(dict(r) for r in rows)

    def __len__(self) -> int:
        return len(self._rows)

    def _snapshot(self) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._rows)

    @staticmethod
    def _strip(row: dict[str, Any]) -> dict[str, Any]:
        return {k: v for k, v in row.items() if k != "vector"}

    async def similarity_search(
        self, vector: Sequence[float], predicate: Predicate, n: int
    ) -> list[ScoredDocument]:
        scored = []
        for row in self._snapshot():
            vec = row.get("vector")
            if not vec or not predicate.matches(row):
                continue
            doc = self._strip(row)
            scored.append(({"page_content": doc.get("embedding_text", ""), "metadata": doc}, _cosine(vector, vec)))
        scored.sort(key=lambda pair: -pair[1])
        logger.info("[memory_store:similarity_search] OUT hits=%d n=%d", min(len(scored), n), n)
        return scored[:n]

    async def exact_query(self, predicate: Predicate, n: int) -> list[dict[str, Any]]:
        matches = [self._strip(r) for r in self._snapshot() if predicate.matches(r)]
        matches.sort(key=recency_key, reverse=True)
        logger.info("[memory_store:exact_query] OUT matches=%d n=%d", min(len(matches), n), n)
        return matches[:n]

    async def insert(self, rows: list[dict[str, Any]]) -> int:
        with self._lock:
            self._rows.extend(dict(r) for r in rows)
        return len(rows)

    async def reset(self) -> None:
        with self._lock:
            self._rows.clear()
