"""Tool-calling orchestration: store, gateway, extractor, executor and loop."""

from larder.agent.errors import AgentError, ModelCallError
from larder.agent.executor import ToolExecutor, ToolResult
from larder.agent.gateway import HttpTransport, ModelGateway, OllamaTransport
from larder.agent.loop import AgentLoop
from larder.agent.messages import AgentMessage, AgentPhase, MessageStatus, Role, ToolCall, ToolExecution
from larder.agent.store import ConversationStore

__all__ = [
    "AgentError",
    "AgentLoop",
    "AgentMessage",
    "AgentPhase",
    "ConversationStore",
    "HttpTransport",
    "MessageStatus",
    "ModelCallError",
    "ModelGateway",
    "OllamaTransport",
    "Role",
    "ToolCall",
    "ToolExecution",
    "ToolExecutor",
    "ToolResult",
]
