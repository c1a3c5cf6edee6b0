"""
Vector store client: Milvus Cloud connection, embeddings (HF Inference API), and feed storage.

Responsibility: Embed texts via all-MiniLM-L6-v2, store feed rows with their
metadata in Milvus, and answer the FeedStore contract (similarity search and
exact predicate query) with Predicates compiled to Milvus filter expressions.
"""

import asyncio
import json
import logging
from typing import Any, Sequence

import httpx

from app.core.config import (
    EMBED_API_TIMEOUT,
    EMBED_BATCH_SIZE,
    EXACT_QUERY_SCAN_LIMIT,
    FEED_COLLECTION_NAME,
    HF_API_KEY,
    HF_EMBED_MODEL,
    MILVUS_TOKEN,
    MILVUS_URI,
    VECTOR_DIM,
)
from app.core.errors import ServiceUnavailableError
from app.core.timeutil import to_epoch_ms
from app.services.feed_store import ScoredDocument, recency_key
from app.services.filter_builder import TIMESTAMP_FIELD, Predicate

logger = logging.getLogger(__name__)

HF_API_URL_ROUTER = (
    "https://router.huggingface.co/hf-inference/models/"
    f"{HF_EMBED_MODEL}/pipeline/feature-extraction"
)
HF_API_URL_STANDARD = f"https://api-inference.huggingface.co/models/{HF_EMBED_MODEL}"

# Fields returned from Milvus for every feed row (dynamic fields on the quick-setup collection)
FEED_OUTPUT_FIELDS = [
    "country_code",
    "currency_code",
    "status",
    "transactionSourceName",
    "recordCount",
    "timestamp",
    "progress",
    "uniqueRefNumberCount",
    "noCoordinatesCount",
    "embedding_text",
]


def _normalize_vector(vec: list[float]) -> list[float]:
    # Normalize for cosine similarity (Milvus COSINE)
    norm = sum(x * x for x in vec) ** 0.5
    if norm == 0:
        norm = 1.0
    return [x / norm for x in vec]


class HFEmbedder:
    """Batch embeddings through the Hugging Face Inference API (router first, then standard URL)."""

    def __init__(
        self,
        api_key: str = HF_API_KEY,
        batch_size: int = EMBED_BATCH_SIZE,
        timeout: float = EMBED_API_TIMEOUT,
    ) -> None:
        self._api_key = api_key
        self._batch_size = batch_size
        self._timeout = timeout

    async def embed_query(self, text: str) -> list[float]:
        vectors = await self.embed_texts([text])
        if not vectors:
            raise RuntimeError("HF API returned no embedding")
        return vectors[0]

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """
        Batch embed texts. Batch embeddings reduce latency and improve throughput.
        Returns list of 384-dim vectors (normalized for cosine similarity).
        """
        if not texts:
            return []
        if not self._api_key:
            raise ServiceUnavailableError(
                "HF_API_KEY must be set in .env. Get a token from https://huggingface.co/settings/tokens"
            )

        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        all_embeddings: list[list[float]] = []
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            for i in range(0, len(texts), self._batch_size):
                batch = texts[i : i + self._batch_size]
                result = await self._post_batch(client, batch, headers)
                if isinstance(result, list) and result and isinstance(result[0], list):
                    batch_emb = result
                else:
                    batch_emb = [
                        item if isinstance(item, list) else [item]
                        for item in (result if isinstance(result, list) else [result])
                    ]
                all_embeddings.extend(_normalize_vector(vec) for vec in batch_emb)
        logger.info("[vector_store:embed_texts] OUT vectors=%d", len(all_embeddings))
        return all_embeddings

    async def _post_batch(self, client: httpx.AsyncClient, batch: list[str], headers: dict) -> Any:
        payload = {"inputs": batch, "options": {"wait_for_model": True}}
        api_urls = [HF_API_URL_ROUTER, HF_API_URL_STANDARD]
        response = None
        last_error: str | None = None

        for api_url in api_urls:
            try:
                response = await client.post(api_url, json=payload, headers=headers)
                if response.status_code == 200:
                    break
                if response.status_code == 403 and api_url == HF_API_URL_ROUTER:
                    last_error = response.text
                    continue
                break
            except httpx.HTTPError as e:
                last_error = str(e)
                if api_url == api_urls[-1]:
                    raise
                continue

        if response is None or response.status_code != 200:
            msg = response.text if response is not None else last_error
            if response is not None and response.status_code == 503:
                raise RuntimeError(f"HF model is loading. Retry later. {msg}")
            if response is not None and response.status_code == 401:
                raise ServiceUnavailableError(
                    "Invalid HF API key. Check HF_API_KEY at https://huggingface.co/settings/tokens"
                )
            raise RuntimeError(f"HF API error: {msg}")
        return response.json()


def _literal(value: Any) -> str:
    # json.dumps quotes and escapes strings the way Milvus expressions expect
    return json.dumps(value)


def _field_ref(path: str) -> str:
    """Dotted path -> Milvus JSON access, e.g. progress.TOTAL_JOBS_IN_FEED -> progress["TOTAL_JOBS_IN_FEED"]."""
    head, *rest = path.split(".")
    return head + "".join(f"[{_literal(part)}]" for part in rest)


def to_milvus_expr(predicate: Predicate) -> str:
    """Compile a Predicate to a Milvus boolean filter expression ("" when open)."""
    clauses = [f"{_field_ref(path)} == {_literal(value)}" for path, value in predicate.equals.items()]
    if predicate.time_range is not None:
        if predicate.time_range.start is not None:
            clauses.append(f"{TIMESTAMP_FIELD} >= {to_epoch_ms(predicate.time_range.start)}")
        if predicate.time_range.end is not None:
            clauses.append(f"{TIMESTAMP_FIELD} <= {to_epoch_ms(predicate.time_range.end)}")
    for path, minimum in predicate.minimums.items():
        clauses.append(f"{_field_ref(path)} >= {int(minimum)}")
    return " and ".join(clauses)


class MilvusFeedStore:
    """
    Feed rows in a Milvus collection (quick-setup schema: id, vector, dynamic fields).
    Timestamps are stored as epoch milliseconds so range filters are numeric.
    pymilvus is blocking, so calls run in a worker thread.
    """

    def __init__(
        self,
        uri: str = MILVUS_URI,
        token: str = MILVUS_TOKEN,
        collection_name: str = FEED_COLLECTION_NAME,
        dimension: int = VECTOR_DIM,
    ) -> None:
        self._uri = uri
        self._token = token
        self._collection = collection_name
        self._dimension = dimension
        self._client: Any = None

    def _get_client(self) -> Any:
        """
        Connect to Milvus Cloud on first use. Creates the feed collection
        if it does not exist.
        """
        if self._client is not None:
            return self._client
        if not self._uri or not self._token:
            raise ServiceUnavailableError("MILVUS_URI and MILVUS_TOKEN must be set in .env")

        from pymilvus import MilvusClient

        client = MilvusClient(uri=self._uri, token=self._token)
        logger.info("Milvus connection established")
        if not client.has_collection(self._collection):
            client.create_collection(
                collection_name=self._collection,
                dimension=self._dimension,
                primary_field_name="id",
                vector_field_name="vector",
                metric_type="COSINE",
                auto_id=True,
            )
            logger.info("Collection %s created (dim=%s)", self._collection, self._dimension)
        self._client = client
        return client

    def _search(self, vector: Sequence[float], expr: str, n: int) -> list[ScoredDocument]:
        client = self._get_client()
        results = client.search(
            collection_name=self._collection,
            data=[list(vector)],
            filter=expr,
            limit=n,
            output_fields=FEED_OUTPUT_FIELDS,
        )
        # results: list of list of hits (one list per query vector)
        hits = results[0] if results else []
        scored: list[ScoredDocument] = []
        for h in hits:
            score = float(h.get("distance", h.get("score", 0.0)))
            entity = dict(h.get("entity") or {})
            scored.append(({"page_content": entity.get("embedding_text", ""), "metadata": entity}, score))
        return scored

    def _query(self, expr: str, n: int) -> list[dict[str, Any]]:
        client = self._get_client()
        rows = client.query(
            collection_name=self._collection,
            filter=expr,
            limit=EXACT_QUERY_SCAN_LIMIT,
            output_fields=FEED_OUTPUT_FIELDS,
        )
        docs = [{k: v for k, v in r.items() if k not in ("id", "vector")} for r in rows]
        docs.sort(key=recency_key, reverse=True)
        return docs[:n]

    async def similarity_search(
        self, vector: Sequence[float], predicate: Predicate, n: int
    ) -> list[ScoredDocument]:
        expr = to_milvus_expr(predicate)
        logger.info("[vector_store:similarity_search] IN  expr=%r n=%d", expr, n)
        hits = await asyncio.to_thread(self._search, vector, expr, n)
        logger.info("[vector_store:similarity_search] OUT hits=%d first_scores=%s",
                    len(hits), [round(s, 4) for _, s in hits[:5]])
        return hits

    async def exact_query(self, predicate: Predicate, n: int) -> list[dict[str, Any]]:
        expr = to_milvus_expr(predicate)
        logger.info("[vector_store:exact_query] IN  expr=%r n=%d", expr, n)
        docs = await asyncio.to_thread(self._query, expr, n)
        logger.info("[vector_store:exact_query] OUT docs=%d", len(docs))
        return docs

    async def insert(self, rows: list[dict[str, Any]]) -> int:
        """Insert prepared rows (each with "vector"), then flush the collection."""
        if not rows:
            return 0

        def _insert() -> int:
            client = self._get_client()
            client.insert(collection_name=self._collection, data=rows)
            client.flush(collection_name=self._collection)
            return len(rows)

        count = await asyncio.to_thread(_insert)
        logger.info("Embedded and stored %d feed rows", count)
        return count

    async def reset(self) -> None:
        """
        Drop the feed collection. It is recreated empty on the next call.
        """
        def _drop() -> None:
            client = self._get_client()
            if client.has_collection(self._collection):
                client.drop_collection(collection_name=self._collection)
                logger.info("Feed collection %s dropped", self._collection)

        await asyncio.to_thread(_drop)
        self._client = None

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
