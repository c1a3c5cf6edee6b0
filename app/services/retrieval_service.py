"""
Retrieval: hybrid feed lookup (similarity first, exact predicate query as fallback).

Responsibility: Turn RetrievalCriteria into normalized Records for the agent.
Each retrieval path is a RetrievalStrategy; a FallbackChain tries them in order
and the first non-empty result wins. Backend failures never escape retrieve():
they are logged (and reported to an optional error hook) and the next strategy runs.
"""

import logging
from typing import Any, Callable, Protocol

from app.schemas.feed import Record, RetrievalCriteria
from app.services.feed_store import Embedder, FeedStore
from app.services.filter_builder import Predicate, build_predicate
from app.services.normalizer import normalize_hits

logger = logging.getLogger(__name__)

ErrorHook = Callable[[str, BaseException], None]


class RetrievalStrategy(Protocol):
    name: str

    async def fetch(self, criteria: RetrievalCriteria, predicate: Predicate) -> list[Any]: ...


class SimilarityStrategy:
    """Embed the free-text query and rank predicate-matching documents by similarity."""

    name = "similarity"

    def __init__(self, embedder: Embedder, store: FeedStore) -> None:
        self._embedder = embedder
        self._store = store

    async def fetch(self, criteria: RetrievalCriteria, predicate: Predicate) -> list[Any]:
        vector = await self._embedder.embed_query(criteria.query)
        return await self._store.similarity_search(vector, predicate, criteria.n)


class ExactStrategy:
    """Exact predicate match, most recent first."""

    name = "exact"

    def __init__(self, store: FeedStore) -> None:
        self._store = store

    async def fetch(self, criteria: RetrievalCriteria, predicate: Predicate) -> list[Any]:
        return await self._store.exact_query(predicate, criteria.n)


class FallbackChain:
    """
    Try strategies in order; an empty result or an exception moves on to the next.
    Each strategy runs at most once per lookup.
    """

    def __init__(self, strategies: list[RetrievalStrategy], on_error: ErrorHook | None = None) -> None:
        if not strategies:
            raise ValueError("at least one retrieval strategy is required")
        self._strategies = strategies
        self._on_error = on_error

    async def run(self, criteria: RetrievalCriteria, predicate: Predicate) -> tuple[str | None, list[Any]]:
        for strategy in self._strategies:
            try:
                hits = await strategy.fetch(criteria, predicate)
            except Exception as e:
                logger.warning("[retrieval:%s] failed, falling back: %s", strategy.name, e)
                if self._on_error is not None:
                    self._on_error(strategy.name, e)
                continue
            if hits:
                return strategy.name, list(hits)
            logger.info("[retrieval:%s] returned no results", strategy.name)
        return None, []


class HybridRetriever:
    def __init__(self, chain: FallbackChain) -> None:
        self._chain = chain

    @classmethod
    def from_store(
        cls, embedder: Embedder, store: FeedStore, on_error: ErrorHook | None = None
    ) -> "HybridRetriever":
        """Similarity search first, exact query as the single fallback."""
        return cls(FallbackChain([SimilarityStrategy(embedder, store), ExactStrategy(store)], on_error=on_error))

    async def retrieve(self, criteria: RetrievalCriteria) -> list[Record]:
        """
        Pipeline: build predicate → similarity search → (empty or failed) exact query → normalize.
        Returns [] when nothing matches; never raises for backend failures.
        """
        predicate = build_predicate(criteria)
        logger.info("[retrieval:retrieve] IN  query=%r n=%d filter=%s", criteria.query, criteria.n, predicate.describe())
        source, hits = await self._chain.run(criteria, predicate)
        records = normalize_hits(hits[: criteria.n])
        logger.info("[retrieval:retrieve] OUT source=%s records=%d", source or "none", len(records))
        return records
