"""
Result normalizer: raw retrieval hits -> canonical Records.

Handles the shapes the stores produce:
- (document, score) pairs from similarity search, where the document may wrap
  the feed fields under "metadata" (vector path) or "entity" (raw Milvus hit);
- flat feed documents from the exact-query fallback;
- already-canonical Records or their wire dicts (returned unchanged).

Missing scalars default to "" or 0. A missing or unparseable timestamp becomes
the normalization time and the record is flagged with timestamp_defaulted.
Records are never dropped and never de-duplicated.
"""

import logging
from datetime import datetime
from typing import Any, Iterable, Mapping

from app.core.timeutil import parse_timestamp, utcnow
from app.schemas.feed import FeedProgress, Record

logger = logging.getLogger(__name__)

# canonical attribute -> accepted source keys (wire name first)
_TEXT_FIELDS = {
    "country_code": ("country_code", "countryCode"),
    "currency_code": ("currency_code", "currencyCode"),
    "status": ("status",),
    "source_name": ("transactionSourceName", "source_name"),
}
_COUNT_FIELDS = {
    "record_count": ("recordCount", "record_count"),
    "unique_ref_count": ("uniqueRefNumberCount", "unique_ref_count"),
    "no_coordinates_count": ("noCoordinatesCount", "no_coordinates_count"),
}
_PROGRESS_FIELDS = {
    name: (info.alias, name) for name, info in FeedProgress.model_fields.items()
}


def _pick(doc: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        if key in doc and doc[key] is not None:
            return doc[key]
    return None


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _as_count(value: Any) -> int:
    """Coerce to a non-negative int; junk becomes 0."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, Mapping):
        # Mongo extended JSON, e.g. {"$numberInt": "5"}
        value = next(iter(value.values()), None)
    try:
        number = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(number, 0)


def _unwrap(hit: Any) -> Mapping[str, Any]:
    """Strip score tuples and metadata/entity envelopes down to the feed fields."""
    if isinstance(hit, tuple) and hit:
        hit = hit[0]
    if isinstance(hit, Mapping):
        for envelope in ("metadata", "entity"):
            inner = hit.get(envelope)
            if isinstance(inner, Mapping):
                return inner
        return hit
    return {}


def normalize_document(doc: Mapping[str, Any], now: datetime | None = None) -> Record:
    """Build a Record from one flat feed document."""
    values: dict[str, Any] = {name: _as_text(_pick(doc, keys)) for name, keys in _TEXT_FIELDS.items()}
    values.update({name: _as_count(_pick(doc, keys)) for name, keys in _COUNT_FIELDS.items()})

    raw_progress = doc.get("progress")
    progress_src = raw_progress if isinstance(raw_progress, Mapping) else {}
    values["progress"] = FeedProgress(
        **{name: _as_count(_pick(progress_src, keys)) for name, keys in _PROGRESS_FIELDS.items()}
    )

    timestamp = parse_timestamp(doc.get("timestamp"))
    defaulted = bool(doc.get("timestamp_defaulted"))
    if timestamp is None:
        timestamp = now or utcnow()
        defaulted = True
        logger.debug("[normalizer] defaulted timestamp raw=%r", doc.get("timestamp"))
    values["timestamp"] = timestamp
    values["timestamp_defaulted"] = defaulted
    return Record(**values)


def normalize_hit(hit: Any, now: datetime | None = None) -> Record:
    """Normalize one retrieval hit of any supported shape."""
    if isinstance(hit, Record):
        return hit
    return normalize_document(_unwrap(hit), now=now)


def normalize_hits(hits: Iterable[Any], now: datetime | None = None) -> list[Record]:
    """Normalize a batch with a single shared normalization time."""
    stamp = now or utcnow()
    records = [normalize_hit(h, now=stamp) for h in hits]
    defaulted = sum(1 for r in records if r.timestamp_defaulted)
    if defaulted:
        logger.warning("[normalizer] %d of %d records had no usable timestamp", defaulted, len(records))
    return records
