"""
Tests for the Milvus filter compiler and vector store configuration errors.
No Milvus or HF API calls are made.
"""

from datetime import datetime, timezone

import pytest
from conftest import run

from app.core.errors import ServiceUnavailableError
from app.schemas.feed import RetrievalCriteria
from app.services.filter_builder import Predicate, build_predicate
from app.services.vector_store import HFEmbedder, MilvusFeedStore, to_milvus_expr


def test_open_predicate_compiles_to_empty_filter() -> None:
    assert to_milvus_expr(Predicate()) == ""


def test_full_predicate_compiles_to_milvus_expression() -> None:
    predicate = build_predicate(
        RetrievalCriteria(
            query="q",
            country_code="IN",
            transactionSourceName="Deal1",
            date_from="2025-07-01",
            date_to="2025-07-31",
            min_records=5,
            min_jobs=2,
        )
    )
    start = int(datetime(2025, 7, 1, tzinfo=timezone.utc).timestamp() * 1000)
    end = int(datetime(2025, 7, 31, tzinfo=timezone.utc).timestamp() * 1000)
    assert to_milvus_expr(predicate) == (
        'country_code == "IN" and transactionSourceName == "Deal1" '
        f"and timestamp >= {start} and timestamp <= {end} "
        'and recordCount >= 5 and progress["TOTAL_JOBS_IN_FEED"] >= 2'
    )


def test_string_literals_are_escaped() -> None:
    assert to_milvus_expr(Predicate(equals={"status": 'done" or 1 == 1'})) == 'status == "done\\" or 1 == 1"'


def test_milvus_store_requires_credentials() -> None:
    store = MilvusFeedStore(uri="", token="")
    with pytest.raises(ServiceUnavailableError):
        run(store.exact_query(Predicate(), 5))


def test_embedder_requires_api_key() -> None:
    with pytest.raises(ServiceUnavailableError):
        run(HFEmbedder(api_key="").embed_texts(["hello"]))
    assert run(HFEmbedder(api_key="").embed_texts([])) == []
