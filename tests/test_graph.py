"""
Tests for the orchestration loop (FeedAgent): tool cycles, ceiling, persistence, errors.
"""

import asyncio
import json

import pytest
from conftest import FakeReasoner, lookup_call, run

from app.agent.graph import FeedAgent, strip_sentinel
from app.agent.llm import FinalAnswer
from app.agent.tools import ToolRegistry
from app.core.errors import ReasoningUnavailable, RecursionExceeded, TurnTimeout
from app.services.feed_store import MemoryFeedStore
from app.services.retrieval_service import HybridRetriever


def test_single_turn_with_one_lookup(make_agent, checkpoints) -> None:
    reasoner = FakeReasoner(
        [
            lookup_call(country_code="IN", status="completed"),
            FinalAnswer("FINAL ANSWER: Found 3 completed feeds from India."),
        ]
    )
    agent = make_agent(reasoner)
    result = run(agent.run_turn("t1", "Show me completed feeds from India"))

    assert result.thread_id == "t1"
    assert result.text == "Found 3 completed feeds from India."
    assert len(result.records) == 3
    assert reasoner.calls == 2

    # second reasoning step sees the tool result
    tool_msg = reasoner.seen[1][-1]
    assert tool_msg["role"] == "tool"
    assert tool_msg["tool_call_id"] == "call_1"
    assert json.loads(tool_msg["content"])["count"] == 3

    state = run(checkpoints.load("t1"))
    assert [m["role"] for m in state.messages] == ["user", "assistant", "tool", "assistant"]
    assert state.messages[1]["tool_calls"][0]["function"]["name"] == "feed_lookup"
    # stored answer keeps the marker; the returned text does not
    assert state.messages[-1]["content"].startswith("FINAL ANSWER")
    assert state.records == result.records


def test_direct_answer_without_tools(make_agent) -> None:
    reasoner = FakeReasoner([FinalAnswer("Hello! Ask me about feed data.")])
    result = run(make_agent(reasoner).run_turn("t2", "hi"))
    assert result.text == "Hello! Ask me about feed data."
    assert result.records == []


def test_ceiling_aborts_on_the_call_after_the_limit(make_agent, checkpoints) -> None:
    reasoner = FakeReasoner(default=lookup_call())
    agent = make_agent(reasoner, max_cycles=3)
    with pytest.raises(RecursionExceeded) as exc_info:
        run(agent.run_turn("loop", "keep going"))
    assert exc_info.value.limit == 3
    assert reasoner.calls == 3
    # failed turns are not persisted
    assert run(checkpoints.load("loop")) is None


def test_two_turns_accumulate_records_and_history(make_agent) -> None:
    reasoner = FakeReasoner(
        [
            lookup_call(country_code="IN", status="completed"),
            FinalAnswer("FINAL ANSWER: three feeds"),
            lookup_call(call_id="call_2", country_code="US"),
            FinalAnswer("FINAL ANSWER: one feed"),
        ]
    )
    agent = make_agent(reasoner)
    first = run(agent.run_turn("t3", "India completed?"))
    second = run(agent.run_turn("t3", "And the US?"))

    assert len(first.records) == 3
    assert len(second.records) == 4
    assert second.records[:3] == first.records
    assert second.records[3].country_code == "US"

    # the second turn starts from the full first-turn history
    opening = reasoner.seen[2]
    assert opening[0] == {"role": "user", "content": "India completed?"}
    assert opening[-1] == {"role": "user", "content": "And the US?"}
    assert len(opening) == 5


def test_threads_are_isolated(make_agent) -> None:
    reasoner = FakeReasoner([lookup_call(country_code="US"), FinalAnswer("FINAL ANSWER: one")])
    agent = make_agent(reasoner)
    run(agent.run_turn("a", "US feeds"))
    other = run(agent.run_turn("b", "hello"))
    assert other.records == []
    assert reasoner.seen[-1] == [{"role": "user", "content": "hello"}]


def test_empty_collection_answers_without_data(embedder, checkpoints) -> None:
    tools = ToolRegistry(HybridRetriever.from_store(embedder, MemoryFeedStore()))
    reasoner = FakeReasoner([lookup_call(country_code="IN"), FinalAnswer("FINAL ANSWER: No matching feed data was found.")])
    agent = FeedAgent(reasoner, tools, checkpoints)
    result = run(agent.run_turn("empty", "Indian feeds?"))
    assert result.records == []
    assert result.text == "No matching feed data was found."
    assert json.loads(reasoner.seen[1][-1]["content"]) == {"count": 0, "records": []}


def test_reasoning_failure_propagates_and_is_not_persisted(make_agent, checkpoints) -> None:
    reasoner = FakeReasoner([lookup_call(), ReasoningUnavailable("model down")])
    with pytest.raises(ReasoningUnavailable):
        run(make_agent(reasoner).run_turn("t4", "feeds?"))
    assert run(checkpoints.load("t4")) is None


def test_turn_timeout(make_agent) -> None:
    class SlowReasoner(FakeReasoner):
        async def decide(self, messages, tools):
            await asyncio.sleep(1)
            return FinalAnswer("too late")

    agent = make_agent(SlowReasoner(), turn_timeout=0.05)
    with pytest.raises(TurnTimeout):
        run(agent.run_turn("t5", "slow question"))


def test_blank_query_is_rejected(make_agent) -> None:
    agent = make_agent(FakeReasoner())
    with pytest.raises(ValueError):
        run(agent.run_turn("t6", "   "))


def test_invalid_ceiling() -> None:
    with pytest.raises(ValueError):
        FeedAgent(FakeReasoner(), tools=None, checkpoints=None, max_cycles=0)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("FINAL ANSWER: 3 feeds", "3 feeds"),
        ("final answer - 3 feeds", "3 feeds"),
        ("FINAL ANSWER\n3 feeds", "3 feeds"),
        ("3 feeds", "3 feeds"),
        ("The FINAL ANSWER is 3", "The FINAL ANSWER is 3"),
    ],
)
def test_strip_sentinel(raw: str, expected: str) -> None:
    assert strip_sentinel(raw) == expected
