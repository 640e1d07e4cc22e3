"""Exceptions raised inside the agent loop.

Everything here except ``ConversationSuperseded`` is fatal for the current
turn and ends up as the single unified error message in the conversation.
"""

from __future__ import annotations

from larder.config import TRANSIENT_STATUS_CODES


class AgentError(Exception):
    """Base class for agent loop failures."""


class ModelCallError(AgentError):
    """The model endpoint could not produce a response."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        timeout: bool = False,
        user_message: str = "",
    ):
        super().__init__(message)
        self.status = status
        self.timeout = timeout
        self.user_message = user_message

    @property
    def transient(self) -> bool:
        return self.timeout or self.status in TRANSIENT_STATUS_CODES


class ModelResponseError(AgentError):
    """The endpoint answered, but with an error payload instead of a reply."""


class ProtocolViolationError(AgentError):
    """An assistant tool call has no matching tool result in the history."""

    def __init__(self, missing_ids: list[str]):
        super().__init__(f"Unanswered tool calls before model call: {', '.join(missing_ids)}")
        self.missing_ids = missing_ids


class MalformedToolCallError(AgentError):
    """The model kept emitting tool calls that could not be parsed."""


class EmptyResponseError(AgentError):
    """The model returned neither tool calls nor usable text."""


class IterationBudgetExceeded(AgentError):
    def __init__(self, limit: int):
        super().__init__(f"Reached maximum agent iterations ({limit})")
        self.limit = limit


class ConversationSuperseded(AgentError):
    """The conversation was reset or cancelled while this turn was suspended."""
