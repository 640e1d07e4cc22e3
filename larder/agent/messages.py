"""Conversation message types."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Role(str, Enum):
    """Who authored a message."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class MessageStatus(str, Enum):
    OK = "ok"
    ERROR = "error"


class AgentPhase(str, Enum):
    """What the agent is doing right now, for the UI."""

    IDLE = "idle"
    THINKING = "thinking"
    FETCHING = "fetching"
    RESPONDING = "responding"


def new_message_id() -> str:
    return f"msg:{uuid.uuid4()}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ToolCall:
    """A normalized tool call, ready for the executor."""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class AgentMessage:
    """One turn in the conversation.

    ``tool_calls`` holds the wire form of each call
    (``{"id", "type", "function": {"name", "arguments"}}``) so it can be
    replayed verbatim to the model. ``model_content``, when set, is sent to the
    model instead of ``content``.
    """

    role: Role
    content: str = ""
    id: str = field(default_factory=new_message_id)
    status: MessageStatus = MessageStatus.OK
    model_content: str | None = None
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    tool_name: str | None = None
    tool_call_id: str | None = None
    ui_hidden: bool = False
    data: dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=_now)

    @property
    def tool_call_ids(self) -> list[str]:
        return [str(call.get("id")) for call in self.tool_calls if call.get("id")]

    @property
    def is_visible(self) -> bool:
        return not self.ui_hidden and self.role != Role.TOOL

    def to_model_message(self) -> dict[str, Any] | None:
        """Convert to the request shape. Returns None for empty chat turns."""
        content = self.model_content if self.model_content is not None else self.content
        content = content or ""

        if self.role == Role.TOOL:
            return {
                "role": "tool",
                "name": self.tool_name,
                "tool_call_id": self.tool_call_id,
                "content": content,
            }
        if self.role == Role.ASSISTANT and self.tool_calls:
            return {
                "role": "assistant",
                "content": content,
                "tool_calls": [dict(call) for call in self.tool_calls],
            }
        if not content.strip():
            return None
        return {"role": self.role.value, "content": content}


@dataclass
class ToolExecution:
    """Result of running one tool call. ``message`` is always a tool message."""

    tool: str
    success: bool
    message: AgentMessage


def create_message(
    role: Role,
    content: str,
    status: MessageStatus = MessageStatus.OK,
) -> AgentMessage:
    return AgentMessage(role=role, content=content, status=status)
