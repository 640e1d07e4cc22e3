"""Document store used by the pantry tools.

Persistence is an external collaborator; tools only rely on the four
async operations of ``DocumentStore``. ``InMemoryDocumentStore`` backs the
CLI and the tests.
"""

from __future__ import annotations

import copy
from typing import Any, Callable, Protocol

Document = dict[str, Any]


class DocumentStore(Protocol):
    async def get(self, doc_id: str) -> Document | None:
        ...

    async def save(self, doc: Document) -> Document:
        ...

    async def remove(self, doc_id: str) -> bool:
        ...

    async def find(self, predicate: Callable[[Document], bool] | None = None) -> list[Document]:
        ...


class InMemoryDocumentStore:
    """Dict-backed store keyed by ``_id``. Returns copies, never live references."""

    def __init__(self, docs: list[Document] | None = None):
        self._docs: dict[str, Document] = {}
        for doc in docs or []:
            self._docs[doc["_id"]] = copy.deepcopy(doc)

    async def get(self, doc_id: str) -> Document | None:
        doc = self._docs.get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def save(self, doc: Document) -> Document:
        if not doc.get("_id"):
            raise ValueError("Document has no _id")
        self._docs[doc["_id"]] = copy.deepcopy(doc)
        return copy.deepcopy(doc)

    async def remove(self, doc_id: str) -> bool:
        return self._docs.pop(doc_id, None) is not None

    async def find(self, predicate: Callable[[Document], bool] | None = None) -> list[Document]:
        return [
            copy.deepcopy(doc)
            for doc in self._docs.values()
            if predicate is None or predicate(doc)
        ]

    def __len__(self) -> int:
        return len(self._docs)
