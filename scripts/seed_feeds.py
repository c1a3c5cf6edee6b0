#!/usr/bin/env python3
"""
Seed the feed collection for demos or tests.

Loads a JSON array of feed documents, embeds a summary of each one through the
Hugging Face Inference API, and inserts them into Milvus (the collection is
created if missing). Use --reset to drop existing rows first.

Run from project root:

    python scripts/seed_feeds.py --file data/transformedFeeds.json
    python scripts/seed_feeds.py --file data/transformedFeeds.json --reset
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Project root on path so "app" resolves
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from app.core.config import FEED_SEED_FILE
from app.core.errors import ServiceUnavailableError
from app.services.ingestion_service import ingest_feeds, load_feed_file
from app.services.vector_store import HFEmbedder, MilvusFeedStore


async def _seed(path: str, reset: bool) -> int:
    docs = load_feed_file(path)
    print(f"Loaded {len(docs)} feed documents from {path}")
    store = MilvusFeedStore()
    try:
        return await ingest_feeds(docs, HFEmbedder(), store, reset=reset)
    finally:
        store.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the feed collection for demos/tests.")
    parser.add_argument(
        "--file",
        default=FEED_SEED_FILE or "data/transformedFeeds.json",
        help="JSON array of feed documents (default: FEED_SEED_FILE or data/transformedFeeds.json).",
    )
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Drop existing feed rows before inserting.",
    )
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)

    try:
        stored = asyncio.run(_seed(args.file, args.reset))
    except (OSError, ValueError, ServiceUnavailableError) as e:
        print(f"Seeding failed: {e}", file=sys.stderr)
        sys.exit(1)
    print(f"Done. Seeded {stored} feed rows.")


if __name__ == "__main__":
    main()
