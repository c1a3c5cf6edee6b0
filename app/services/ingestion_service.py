"""
Feed ingestion: load raw feed documents, embed their summaries, and persist them.

Responsibility: Turn a JSON export of feed documents into store rows (summary
text, embedding vector, epoch-ms timestamp) and insert them into a FeedStore.
Called by the seed script and at startup for the in-memory store; no HTTP here.
"""

import json
import logging
from pathlib import Path
from typing import Any, Mapping

from app.core.timeutil import parse_timestamp, to_epoch_ms
from app.services.feed_store import Embedder, FeedStore

logger = logging.getLogger(__name__)


def _project_root() -> Path:
    return Path(__file__).resolve().parent.parent.parent


def load_feed_file(path: str | Path) -> list[dict[str, Any]]:
    """
    Read a JSON array of raw feed documents. Relative paths resolve against the
    project root. Raises ValueError when the file is not a JSON array of objects.
    """
    p = Path(path)
    if not p.is_absolute():
        p = _project_root() / p
    with p.open(encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{p} must contain a JSON array of feed documents")
    docs = [d for d in data if isinstance(d, dict)]
    if len(docs) != len(data):
        logger.warning("[ingestion:load_feed_file] skipped %d non-object entries", len(data) - len(docs))
    logger.info("[ingestion:load_feed_file] loaded %d feed documents from %s", len(docs), p)
    return docs


def build_feed_summary(doc: Mapping[str, Any]) -> str:
    """Embedding text for one feed document."""
    progress = doc.get("progress") if isinstance(doc.get("progress"), Mapping) else {}
    basic = f"Feed from {doc.get('country_code')} in {doc.get('currency_code')}"
    totals = (
        f"Total records: {progress.get('TOTAL_RECORDS_IN_FEED')}, "
        f"Jobs in feed: {progress.get('TOTAL_JOBS_IN_FEED')}"
    )
    status = f"Status: {doc.get('status')}, Transaction source: {doc.get('transactionSourceName')}"
    counts = f"Record count: {doc.get('recordCount')}, Unique ref numbers: {doc.get('uniqueRefNumberCount')}"
    return f"{basic}. {totals}. {status}. {counts}. Timestamp: {doc.get('timestamp')}"


def prepare_feed_rows(
    docs: list[Mapping[str, Any]], vectors: list[list[float]] | None = None
) -> list[dict[str, Any]]:
    """
    Build store rows: source _id dropped, timestamp as epoch ms (left as-is when
    unparseable), plus embedding_text and, when given, vector. Rows without a
    vector are only reachable through exact queries.
    """
    if vectors is not None and len(docs) != len(vectors):
        raise ValueError(f"got {len(vectors)} vectors for {len(docs)} documents")
    rows = []
    for i, doc in enumerate(docs):
        row = {k: v for k, v in doc.items() if k != "_id"}
        ts = parse_timestamp(doc.get("timestamp"))
        if ts is not None:
            row["timestamp"] = to_epoch_ms(ts)
        row["embedding_text"] = build_feed_summary(doc)
        if vectors is not None:
            row["vector"] = vectors[i]
        rows.append(row)
    return rows


async def ingest_feeds(
    docs: list[Mapping[str, Any]],
    embedder: Embedder,
    store: FeedStore,
    reset: bool = False,
) -> int:
    """Embed feed summaries in batches and insert them. Returns the number of rows stored."""
    if reset:
        await store.reset()
        logger.info("[ingestion:ingest_feeds] store reset")
    if not docs:
        return 0
    summaries = [build_feed_summary(d) for d in docs]
    vectors = await embedder.embed_texts(summaries)
    rows = prepare_feed_rows(docs, vectors)
    stored = await store.insert(rows)
    logger.info("[ingestion:ingest_feeds] OUT stored=%d", stored)
    return stored
