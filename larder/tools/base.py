"""Abstract base class for all pantry tools."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, Callable

from larder.agent.executor import ToolResult
from larder.agent.messages import AgentMessage, MessageStatus, Role
from larder.documents import DocumentStore
from larder.tools.catalog import PantryCatalog


class PantryTool(ABC):
    """Base class that all tools must inherit from.

    ``execute`` returns ``success=False`` for expected domain problems
    (unknown product, bad quantity). Exceptions are reserved for faults.
    """

    def __init__(
        self,
        documents: DocumentStore,
        catalog: PantryCatalog,
        translate: Callable[..., str],
    ):
        self.documents = documents
        self.catalog = catalog
        self.t = translate

    @property
    @abstractmethod
    def name(self) -> str:
        """Tool name as the model will call it."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        ...

    @property
    @abstractmethod
    def parameters(self) -> dict:
        """JSON Schema for the tool's parameters."""
        ...

    @abstractmethod
    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        ...

    def to_tool_definition(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    def ok(self, summary: str, payload: dict[str, Any], details: list[str] | None = None) -> ToolResult:
        message = AgentMessage(role=Role.TOOL, content=summary)
        message.data = {"summary": summary, "details": details or []}
        message.model_content = json.dumps(
            {"action": self.name, "status": "ok", **payload},
            ensure_ascii=False,
            default=str,
        )
        return ToolResult(success=True, message=message)

    def error(self, summary: str, details: list[str] | None = None) -> ToolResult:
        message = AgentMessage(role=Role.TOOL, content=summary, status=MessageStatus.ERROR)
        message.data = {"summary": summary, "details": details or []}
        message.model_content = json.dumps(
            {"action": self.name, "status": "error", "message": summary, "details": details or []},
            ensure_ascii=False,
        )
        return ToolResult(success=False, message=message)
