"""
LangGraph agent: reason → (tools → reason)* → answer, one conversational turn at a time.

The graph has two nodes. "agent" asks the reasoning step for a Decision;
ToolCalls route to "tools", a FinalAnswer ends the turn. "tools" runs every
requested call through the ToolRegistry and loops back. Messages and records
are append-only channels (list concatenation). Conversation state is loaded
from the checkpoint store before the turn and saved after it, so a thread
resumes with its full history and every record retrieved so far.

Turn-level failures: RecursionExceeded (cycle ceiling), ReasoningUnavailable
(model), TurnTimeout (overall deadline). A failed turn is not persisted.
"""

import asyncio
import logging
import operator
import re
from dataclasses import dataclass
from typing import Annotated, Any, Literal, TypedDict

from langgraph.errors import GraphRecursionError
from langgraph.graph import END, StateGraph

from app.agent.llm import ReasoningStep, ToolCalls
from app.agent.tools import ToolRegistry
from app.core.checkpoint_store import CheckpointStore, ConversationState
from app.core.config import FINAL_ANSWER_SENTINEL, RECURSION_LIMIT, TURN_TIMEOUT
from app.core.errors import AgentError, ReasoningUnavailable, RecursionExceeded, TurnTimeout
from app.schemas.feed import Record

logger = logging.getLogger(__name__)

_SENTINEL_RE = re.compile(rf"^\s*{re.escape(FINAL_ANSWER_SENTINEL)}\s*[:\-]?\s*", re.IGNORECASE)


class TurnState(TypedDict):
    messages: Annotated[list, operator.add]
    records: Annotated[list, operator.add]
    pending_calls: list
    reasoning_calls: int
    answer: str


@dataclass
class TurnResult:
    thread_id: str
    text: str
    records: list[Record]


def strip_sentinel(text: str) -> str:
    """Drop the leading FINAL ANSWER marker the model is told to emit."""
    return _SENTINEL_RE.sub("", text or "", count=1).strip()


class FeedAgent:
    def __init__(
        self,
        reasoner: ReasoningStep,
        tools: ToolRegistry,
        checkpoints: CheckpointStore,
        max_cycles: int = RECURSION_LIMIT,
        turn_timeout: float = TURN_TIMEOUT,
    ) -> None:
        if max_cycles < 1:
            raise ValueError("max_cycles must be at least 1")
        self._reasoner = reasoner
        self._tools = tools
        self._checkpoints = checkpoints
        self._max_cycles = max_cycles
        self._turn_timeout = turn_timeout
        # agent + tools per cycle, plus the agent step that trips the ceiling
        self._step_limit = 2 * max_cycles + 2
        self._graph = self._build_graph()

    @property
    def tools(self) -> ToolRegistry:
        return self._tools

    def _build_graph(self):
        graph = StateGraph(TurnState)
        graph.add_node("agent", self._reason)
        graph.add_node("tools", self._execute_tools)
        graph.set_entry_point("agent")
        graph.add_conditional_edges("agent", self._route_after_reason, {"tools": "tools", END: END})
        graph.add_edge("tools", "agent")
        return graph.compile()

    async def _reason(self, state: TurnState) -> dict[str, Any]:
        """Node: one reasoning step. The call after the ceiling aborts instead of reaching the model."""
        calls = (state.get("reasoning_calls") or 0) + 1
        if calls > self._max_cycles:
            logger.error("[graph:reason] cycle ceiling %d reached", self._max_cycles)
            raise RecursionExceeded(self._max_cycles)
        logger.info("[graph:reason] IN  cycle=%d messages=%d", calls, len(state["messages"]))
        try:
            decision = await self._reasoner.decide(state["messages"], self._tools.definitions)
        except AgentError:
            raise
        except Exception as e:
            logger.exception("[graph:reason] reasoning step crashed")
            raise ReasoningUnavailable(f"reasoning step failed: {e}") from e
        if isinstance(decision, ToolCalls):
            message = {
                "role": "assistant",
                "content": decision.content,
                "tool_calls": [c.to_openai() for c in decision.calls],
            }
            logger.info("[graph:reason] OUT tool_calls=%s", [c.name for c in decision.calls])
            return {"messages": [message], "pending_calls": list(decision.calls), "reasoning_calls": calls}
        logger.info("[graph:reason] OUT final answer_len=%d", len(decision.text))
        return {
            "messages": [{"role": "assistant", "content": decision.text}],
            "pending_calls": [],
            "answer": strip_sentinel(decision.text),
            "reasoning_calls": calls,
        }

    async def _execute_tools(self, state: TurnState) -> dict[str, Any]:
        """Node: run each pending call in order, one tool message per call."""
        messages: list[dict[str, Any]] = []
        records: list[Record] = []
        for call in state.get("pending_calls") or []:
            result = await self._tools.execute(call)
            records.extend(result.records)
            messages.append(result.to_message())
        logger.info("[graph:tools] OUT calls=%d records=%d", len(messages), len(records))
        return {"messages": messages, "records": records, "pending_calls": []}

    @staticmethod
    def _route_after_reason(state: TurnState) -> Literal["tools", "__end__"]:
        return "tools" if state.get("pending_calls") else END

    async def run_turn(self, thread_id: str, query: str) -> TurnResult:
        """
        Run one turn on a thread: load its state, append the user query, loop until
        a final answer, persist, and return the answer with all records on the thread.
        """
        q = (query or "").strip()
        if not q:
            raise ValueError("query is required")
        if not thread_id or not thread_id.strip():
            raise ValueError("thread_id is required")
        logger.info("[run_turn] START thread_id=%s query=%r", thread_id[:16], q)

        previous = await self._checkpoints.load(thread_id) or ConversationState(thread_id=thread_id)
        initial: TurnState = {
            "messages": [*previous.messages, {"role": "user", "content": q}],
            "records": list(previous.records),
            "pending_calls": [],
            "reasoning_calls": 0,
            "answer": "",
        }
        try:
            final = await asyncio.wait_for(
                self._graph.ainvoke(initial, config={"recursion_limit": self._step_limit}),
                timeout=self._turn_timeout,
            )
        except GraphRecursionError as e:
            logger.error("[run_turn] graph step limit hit thread_id=%s", thread_id[:16])
            raise RecursionExceeded(self._max_cycles) from e
        except asyncio.TimeoutError as e:
            logger.error("[run_turn] timed out after %.0fs thread_id=%s", self._turn_timeout, thread_id[:16])
            raise TurnTimeout(self._turn_timeout) from e
        except AgentError as e:
            logger.warning("[run_turn] aborted thread_id=%s: %s", thread_id[:16], e)
            raise

        snapshot = ConversationState(
            thread_id=thread_id,
            messages=list(final["messages"]),
            records=list(final["records"]),
        )
        await self._checkpoints.save(thread_id, snapshot)
        logger.info("[run_turn] END thread_id=%s cycles=%d records=%d new_records=%d",
                    thread_id[:16], final.get("reasoning_calls", 0), len(snapshot.records),
                    len(snapshot.records) - len(previous.records))
        return TurnResult(thread_id=thread_id, text=final.get("answer", ""), records=snapshot.records)

    async def history(self, thread_id: str) -> ConversationState | None:
        return await self._checkpoints.load(thread_id)
