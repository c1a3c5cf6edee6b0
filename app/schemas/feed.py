"""
Feed schemas: canonical Record and the retrieval criteria accepted by feed_lookup.

Wire names (aliases) follow the feed documents as stored, e.g. transactionSourceName,
recordCount, progress.TOTAL_JOBS_IN_FEED. Python attributes are snake_case.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.config import DEFAULT_RESULT_LIMIT, MAX_RESULT_LIMIT
from app.core.timeutil import parse_timestamp


class FeedProgress(BaseModel):
    """Per-feed job progress counters."""

    model_config = ConfigDict(populate_by_name=True)

    total_records: int = Field(0, ge=0, alias="TOTAL_RECORDS_IN_FEED")
    total_jobs: int = Field(0, ge=0, alias="TOTAL_JOBS_IN_FEED")
    jobs_fail_indexed: int = Field(0, ge=0, alias="TOTAL_JOBS_FAIL_INDEXED")
    jobs_sent_to_enrich: int = Field(0, ge=0, alias="TOTAL_JOBS_SENT_TO_ENRICH")
    jobs_missing_metadata: int = Field(0, ge=0, alias="TOTAL_JOBS_DONT_HAVE_METADATA")
    jobs_missing_metadata_v2: int = Field(0, ge=0, alias="TOTAL_JOBS_DONT_HAVE_METADATA_V2")
    jobs_sent_to_index: int = Field(0, ge=0, alias="TOTAL_JOBS_SENT_TO_INDEX")


class Record(BaseModel):
    """Canonical feed-processing entry surfaced to the user."""

    model_config = ConfigDict(populate_by_name=True)

    country_code: str = ""
    currency_code: str = ""
    status: str = ""
    source_name: str = Field("", alias="transactionSourceName")
    record_count: int = Field(0, ge=0, alias="recordCount")
    timestamp: datetime
    progress: FeedProgress = Field(default_factory=FeedProgress)
    unique_ref_count: int = Field(0, ge=0, alias="uniqueRefNumberCount")
    no_coordinates_count: int = Field(0, ge=0, alias="noCoordinatesCount")
    # Set when the source timestamp was missing or unparseable and the normalization time was used.
    timestamp_defaulted: bool = False

    def to_wire(self) -> dict[str, Any]:
        """JSON-safe dict using the stored field names."""
        return self.model_dump(mode="json", by_alias=True)


class RetrievalCriteria(BaseModel):
    """
    Arguments of the feed_lookup tool.

    Only query is required. Empty strings count as absent. n is clamped to
    [1, MAX_RESULT_LIMIT] rather than rejected so an over-eager model still gets data.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    query: str
    n: int = DEFAULT_RESULT_LIMIT
    country_code: str | None = None
    currency_code: str | None = None
    status: str | None = None
    source_name: str | None = Field(None, alias="transactionSourceName")
    date_from: datetime | None = None
    date_to: datetime | None = None
    min_records: int | None = Field(None, ge=0)
    min_jobs: int | None = Field(None, ge=0)

    @field_validator("query")
    @classmethod
    def _query_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("query must not be empty")
        return v

    @field_validator("n", mode="before")
    @classmethod
    def _default_limit(cls, v: Any) -> Any:
        if v is None:
            return DEFAULT_RESULT_LIMIT
        if isinstance(v, float):
            return int(v)
        return v

    @field_validator("n")
    @classmethod
    def _clamp_limit(cls, v: int) -> int:
        # runs after int coercion, so numeric strings are clamped too
        return max(1, min(v, MAX_RESULT_LIMIT))

    @field_validator("country_code", "currency_code", "status", "source_name", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("date_from", "date_to", mode="before")
    @classmethod
    def _parse_date(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        parsed = parse_timestamp(v)
        if parsed is None:
            raise ValueError(f"not an ISO date: {v!r}")
        return parsed
