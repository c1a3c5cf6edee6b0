"""
Unit tests for the result normalizer.
"""

from datetime import datetime, timezone

from app.schemas.feed import Record
from app.services.normalizer import normalize_document, normalize_hit, normalize_hits

NOW = datetime(2025, 9, 1, 12, 0, tzinfo=timezone.utc)

RAW = {
    "_id": "abc",
    "country_code": "IN",
    "currency_code": "INR",
    "status": "completed",
    "transactionSourceName": "Deal1",
    "recordCount": 120,
    "timestamp": "2025-07-01T10:00:00Z",
    "progress": {"TOTAL_RECORDS_IN_FEED": 120, "TOTAL_JOBS_IN_FEED": 12},
    "uniqueRefNumberCount": 118,
    "noCoordinatesCount": 3,
}


def test_normalize_flat_document() -> None:
    record = normalize_document(RAW, now=NOW)
    assert record.country_code == "IN"
    assert record.source_name == "Deal1"
    assert record.record_count == 120
    assert record.progress.total_jobs == 12
    assert record.progress.jobs_sent_to_index == 0
    assert record.timestamp == datetime(2025, 7, 1, 10, 0, tzinfo=timezone.utc)
    assert record.timestamp_defaulted is False


def test_wire_shape_uses_stored_names() -> None:
    wire = normalize_document(RAW, now=NOW).to_wire()
    assert wire["transactionSourceName"] == "Deal1"
    assert wire["recordCount"] == 120
    assert wire["progress"]["TOTAL_JOBS_IN_FEED"] == 12
    assert "_id" not in wire


def test_envelopes_and_scored_pairs() -> None:
    expected = normalize_document(RAW, now=NOW)
    assert normalize_hit(({"page_content": "summary", "metadata": RAW}, 0.91), now=NOW) == expected
    assert normalize_hit({"id": 7, "distance": 0.5, "entity": RAW}, now=NOW) == expected


def test_normalize_is_idempotent() -> None:
    record = normalize_document(RAW, now=NOW)
    assert normalize_hit(record) is record
    assert normalize_hit(record.to_wire(), now=NOW) == record


def test_missing_timestamp_is_defaulted_and_flagged() -> None:
    record = normalize_document({"country_code": "IN"}, now=NOW)
    assert record.timestamp == NOW
    assert record.timestamp_defaulted is True
    # the flag survives another pass even though the timestamp now parses
    again = normalize_hit(record.to_wire(), now=datetime(2030, 1, 1, tzinfo=timezone.utc))
    assert again.timestamp == NOW
    assert again.timestamp_defaulted is True


def test_bad_values_default_without_dropping_the_record() -> None:
    record = normalize_document(
        {
            "recordCount": "lots",
            "uniqueRefNumberCount": -4,
            "noCoordinatesCount": {"$numberInt": "5"},
            "progress": "broken",
            "timestamp": "yesterday",
            "status": None,
        },
        now=NOW,
    )
    assert record.record_count == 0
    assert record.unique_ref_count == 0
    assert record.no_coordinates_count == 5
    assert record.progress.total_jobs == 0
    assert record.status == ""
    assert record.timestamp_defaulted is True


def test_extended_json_and_epoch_timestamps() -> None:
    assert normalize_document({"timestamp": {"$date": "2025-07-01T10:00:00Z"}}).timestamp == datetime(
        2025, 7, 1, 10, 0, tzinfo=timezone.utc
    )
    assert normalize_document({"timestamp": 1751364000000}).timestamp == datetime(
        2025, 7, 1, 10, 0, tzinfo=timezone.utc
    )


def test_normalize_hits_keeps_order_and_duplicates() -> None:
    hits = [RAW, ({"metadata": RAW}, 0.2), {"country_code": "US"}]
    records = normalize_hits(hits, now=NOW)
    assert len(records) == 3
    assert records[0] == records[1]
    assert records[2].country_code == "US"
    assert records[2].timestamp == NOW
    assert all(isinstance(r, Record) for r in records)
