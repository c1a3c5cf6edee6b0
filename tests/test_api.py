"""
Integration tests for the chat endpoints.

The agent runs for real on fakes (scripted reasoner, in-memory stores) injected
through dependency_overrides, so tests do not require Milvus, HF or OpenAI.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import FakeReasoner, lookup_call
from fastapi.testclient import TestClient

from app.agent.llm import FinalAnswer
from app.api.deps import get_agent
from app.api.handlers import compose_filtered_query
from app.core.errors import CheckpointUnavailable, ReasoningUnavailable, RecursionExceeded, TurnTimeout
from app.main import app
from app.schemas.query import ChatFilters


@pytest.fixture
def reasoner() -> FakeReasoner:
    return FakeReasoner(
        [
            lookup_call(country_code="IN", status="completed"),
            FinalAnswer("FINAL ANSWER: Found 3 completed feeds from India."),
        ]
    )


@pytest.fixture
def client(make_agent, reasoner):
    agent = make_agent(reasoner)
    app.dependency_overrides[get_agent] = lambda: agent
    yield TestClient(app)
    app.dependency_overrides.clear()


def _client_with_failing_agent(error: Exception) -> TestClient:
    agent = MagicMock()
    agent.run_turn = AsyncMock(side_effect=error)
    app.dependency_overrides[get_agent] = lambda: agent
    return TestClient(app)


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"ok": True}


def test_chat_starts_thread_and_returns_records(client: TestClient) -> None:
    response = client.post("/chat", json={"query": "Show me completed feeds from India"})
    assert response.status_code == 200
    data = response.json()
    assert data["thread_id"]
    assert data["text"] == "Found 3 completed feeds from India."
    assert len(data["records"]) == 3
    assert {r["country_code"] for r in data["records"]} == {"IN"}
    assert "transactionSourceName" in data["records"][0]


def test_chat_continue_and_history(client: TestClient, reasoner: FakeReasoner) -> None:
    thread_id = client.post("/chat", json={"query": "India completed?"}).json()["thread_id"]

    reasoner.script = [lookup_call(call_id="call_2", country_code="US"), FinalAnswer("FINAL ANSWER: one more")]
    follow_up = client.post(f"/chat/{thread_id}", json={"query": "And the US?"})
    assert follow_up.status_code == 200
    assert follow_up.json()["thread_id"] == thread_id
    assert len(follow_up.json()["records"]) == 4

    history = client.get(f"/chat/{thread_id}")
    assert history.status_code == 200
    body = history.json()
    assert body["thread_id"] == thread_id
    assert [m["role"] for m in body["messages"]].count("user") == 2
    assert len(body["records"]) == 4


def test_unknown_thread_history_is_404(client: TestClient) -> None:
    assert client.get("/chat/does-not-exist").status_code == 404


def test_filters_are_appended_to_the_query(client: TestClient, reasoner: FakeReasoner) -> None:
    response = client.post(
        "/chat",
        json={"query": "Show me feed details", "filters": {"country_code": "IN", "status": "completed"}},
    )
    assert response.status_code == 200
    assert reasoner.seen[0][-1]["content"] == (
        "Show me feed details with the following filters: country code IN, status completed"
    )


@pytest.mark.parametrize("query", ["", "x" * 1001])
def test_query_length_is_validated(client: TestClient, query: str) -> None:
    assert client.post("/chat", json={"query": query}).status_code == 422


def test_blank_query_is_400(client: TestClient) -> None:
    assert client.post("/chat", json={"query": "   "}).status_code == 400


@pytest.mark.parametrize(
    "error, status",
    [
        (RecursionExceeded(15), 500),
        (ReasoningUnavailable("down"), 503),
        (TurnTimeout(180), 504),
        (CheckpointUnavailable("db locked"), 503),
    ],
)
def test_agent_failures_map_to_status_codes(error: Exception, status: int) -> None:
    client = _client_with_failing_agent(error)
    try:
        response = client.post("/chat", json={"query": "feeds?"})
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == status
    assert response.json()["detail"]


def test_recursion_failure_uses_user_facing_message() -> None:
    client = _client_with_failing_agent(RecursionExceeded(15))
    try:
        response = client.post("/chat", json={"query": "feeds?"})
    finally:
        app.dependency_overrides.clear()
    assert response.json()["detail"] == RecursionExceeded.user_message


def test_compose_filtered_query() -> None:
    filters = ChatFilters(
        country_code="IN",
        transactionSourceName="Deal1",
        date_from="2025-07-01",
        date_to="2025-07-31",
        min_records=5,
        min_jobs=2,
    )
    assert compose_filtered_query("Show feeds", filters) == (
        "Show feeds with the following filters: country code IN, transaction source Deal1, "
        "date range from 2025-07-01 to 2025-07-31, minimum 5 records, minimum 2 jobs"
    )
    assert compose_filtered_query("Show feeds", ChatFilters(date_to="2025-07-31")) == (
        "Show feeds with the following filters: date until 2025-07-31"
    )
    assert compose_filtered_query("Show feeds", ChatFilters()) == "Show feeds"
    assert compose_filtered_query("Show feeds", None) == "Show feeds"
