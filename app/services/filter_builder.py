"""
Filter builder: RetrievalCriteria -> backend-neutral Predicate.

A Predicate holds equality constraints on scalar fields, at most one closed
range on the timestamp field, and minimum thresholds on count fields. Field
names are the stored document names; nested fields use dotted paths
(progress.TOTAL_JOBS_IN_FEED). Backends compile it (see vector_store.to_milvus_expr)
or evaluate it directly with Predicate.matches.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from app.core.timeutil import parse_timestamp
from app.schemas.feed import RetrievalCriteria

TIMESTAMP_FIELD = "timestamp"
RECORD_COUNT_FIELD = "recordCount"
TOTAL_JOBS_FIELD = "progress.TOTAL_JOBS_IN_FEED"

_MISSING = object()


@dataclass(frozen=True)
class TimeRange:
    """Closed interval [start, end]; either side may be open."""

    start: datetime | None = None
    end: datetime | None = None

    @property
    def is_empty(self) -> bool:
        return self.start is not None and self.end is not None and self.start > self.end

    def contains(self, value: datetime) -> bool:
        if self.start is not None and value < self.start:
            return False
        if self.end is not None and value > self.end:
            return False
        return True


@dataclass(frozen=True)
class Predicate:
    equals: Mapping[str, str] = field(default_factory=dict)
    time_range: TimeRange | None = None
    minimums: Mapping[str, int] = field(default_factory=dict)

    @property
    def is_open(self) -> bool:
        """True when the predicate imposes no constraint at all."""
        return not self.equals and self.time_range is None and not self.minimums

    @property
    def is_empty(self) -> bool:
        """True when the predicate can never match (inverted date range)."""
        return self.time_range is not None and self.time_range.is_empty

    def matches(self, doc: Mapping[str, Any]) -> bool:
        for path, expected in self.equals.items():
            if resolve_path(doc, path) != expected:
                return False
        if self.time_range is not None:
            ts = parse_timestamp(resolve_path(doc, TIMESTAMP_FIELD), epoch_unit="ms")
            if ts is None or not self.time_range.contains(ts):
                return False
        for path, minimum in self.minimums.items():
            value = resolve_path(doc, path)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < minimum:
                return False
        return True

    def describe(self) -> dict[str, Any]:
        """Loggable view of the constraints."""
        out: dict[str, Any] = dict(self.equals)
        if self.time_range is not None:
            out[TIMESTAMP_FIELD] = {
                "gte": self.time_range.start.isoformat() if self.time_range.start else None,
                "lte": self.time_range.end.isoformat() if self.time_range.end else None,
            }
        for path, minimum in self.minimums.items():
            out[path] = {"gte": minimum}
        return out


def resolve_path(doc: Mapping[str, Any], path: str) -> Any:
    """Look up a dotted path in a nested mapping; returns None when any segment is missing."""
    current: Any = doc
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part, _MISSING)
        if current is _MISSING:
            return None
    return current


def build_predicate(criteria: RetrievalCriteria) -> Predicate:
    """Translate structured criteria into a Predicate. The free-text query is ignored."""
    equals: dict[str, str] = {}
    if criteria.country_code:
        equals["country_code"] = criteria.country_code
    if criteria.currency_code:
        equals["currency_code"] = criteria.currency_code
    if criteria.status:
        equals["status"] = criteria.status
    if criteria.source_name:
        equals["transactionSourceName"] = criteria.source_name

    time_range = None
    if criteria.date_from is not None or criteria.date_to is not None:
        time_range = TimeRange(start=criteria.date_from, end=criteria.date_to)

    # Zero thresholds are dropped: every count is already >= 0.
    minimums: dict[str, int] = {}
    if criteria.min_records:
        minimums[RECORD_COUNT_FIELD] = criteria.min_records
    if criteria.min_jobs:
        minimums[TOTAL_JOBS_FIELD] = criteria.min_jobs

    return Predicate(equals=equals, time_range=time_range, minimums=minimums)
