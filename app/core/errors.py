"""
Application errors for clean API error handling.

Use ServiceUnavailableError when a dependency (vector store, checkpoint store, LLM)
is misconfigured or unreachable so the API can return 503 with a user-facing message.
AgentError subclasses are the turn-level failures of the orchestration loop.
"""


class ServiceUnavailableError(Exception):
    """Raised when a required service (e.g. vector store, embeddings API) is unavailable or misconfigured."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class CheckpointUnavailable(ServiceUnavailableError):
    """Raised when conversation state cannot be loaded from or saved to the checkpoint store."""


class AgentError(Exception):
    """Base class for failures that abort a conversational turn."""

    user_message = "Sorry, I encountered an error while processing your request. Please try again later."


class RecursionExceeded(AgentError):
    """The reasoning/tool cycle hit its ceiling without producing a final answer."""

    user_message = "Sorry, I could not finish answering that question. Please try rephrasing it."

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(f"reasoning cycle limit of {limit} exceeded")


class ReasoningUnavailable(AgentError):
    """The language model could not be reached or returned an unusable response."""


class TurnTimeout(AgentError):
    """The whole turn took longer than the configured timeout."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"turn did not finish within {timeout:.0f}s")
