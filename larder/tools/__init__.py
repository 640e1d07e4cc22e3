"""Tool registry - instantiates and manages the pantry tools."""

from __future__ import annotations

from typing import Callable

from larder.agent.executor import ToolHandler
from larder.documents import DocumentStore
from larder.i18n import Translator
from larder.tools.base import PantryTool
from larder.tools.catalog import PantryCatalog
from larder.tools.pantry_tools import (
    AddProductTool,
    AdjustQuantityTool,
    DeleteProductTool,
    GetCategoriesTool,
    GetLocationsTool,
    GetExpiringSoonTool,
    GetProductsTool,
    ListByLocationTool,
    MarkOpenedTool,
    MoveProductTool,
)

__all__ = [
    "PantryCatalog",
    "PantryTool",
    "ToolRegistry",
]


class ToolRegistry:
    """Registry that holds all tool instances and provides lookup."""

    def __init__(
        self,
        documents: DocumentStore,
        catalog: PantryCatalog | None = None,
        translate: Callable[..., str] | None = None,
    ):
        self.catalog = catalog or PantryCatalog()
        self._tools: dict[str, PantryTool] = {}
        self._register_all(documents, translate or Translator())

    def _register_all(self, documents: DocumentStore, translate: Callable[..., str]):
        tools: list[PantryTool] = [
            AddProductTool(documents, self.catalog, translate),
            AdjustQuantityTool(documents, self.catalog, translate),
            MoveProductTool(documents, self.catalog, translate),
            MarkOpenedTool(documents, self.catalog, translate),
            DeleteProductTool(documents, self.catalog, translate),
            GetProductsTool(documents, self.catalog, translate),
            ListByLocationTool(documents, self.catalog, translate),
            GetExpiringSoonTool(documents, self.catalog, translate),
            GetLocationsTool(documents, self.catalog, translate),
            GetCategoriesTool(documents, self.catalog, translate),
        ]
        for tool in tools:
            self._tools[tool.name] = tool

    def get(self, name: str) -> PantryTool | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def all_tools(self) -> list[PantryTool]:
        return list(self._tools.values())

    def tool_definitions(self) -> list[dict]:
        """Return ``{name, description, parameters}`` for every tool."""
        return [tool.to_tool_definition() for tool in self._tools.values()]

    def handlers(self) -> dict[str, ToolHandler]:
        """Name→handler table for ``ToolExecutor``."""
        return {name: tool.execute for name, tool in self._tools.items()}
