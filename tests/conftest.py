"""Shared fixtures for larder tests."""

import pytest

from fakes import RecordingSleep, ScriptedTransport

from larder.agent.executor import ToolExecutor
from larder.agent.gateway import ModelGateway
from larder.agent.loop import AgentLoop
from larder.agent.prompt import build_context, build_system_prompt
from larder.agent.store import ConversationStore
from larder.documents import InMemoryDocumentStore
from larder.i18n import Translator
from larder.tools import PantryCatalog, ToolRegistry


@pytest.fixture
def translator() -> Translator:
    return Translator("en")


@pytest.fixture
def catalog() -> PantryCatalog:
    return PantryCatalog()


@pytest.fixture
def documents() -> InMemoryDocumentStore:
    """Empty in-memory pantry."""
    return InMemoryDocumentStore()


@pytest.fixture
def registry(documents, catalog, translator) -> ToolRegistry:
    return ToolRegistry(documents, catalog, translator)


@pytest.fixture
def store() -> ConversationStore:
    return ConversationStore()


@pytest.fixture
def sleep() -> RecordingSleep:
    """Zero-delay sleep shared by the gateway and the loop."""
    return RecordingSleep()


@pytest.fixture
def make_executor(registry, translator):
    def _make(handlers=None, definitions=None, audit=None) -> ToolExecutor:
        return ToolExecutor(
            registry.handlers() if handlers is None else handlers,
            registry.tool_definitions() if definitions is None else definitions,
            normalizer=registry.catalog.normalize_argument,
            translate=translator,
            audit=audit,
        )

    return _make


@pytest.fixture
def make_loop(store, registry, translator, sleep, make_executor):
    """Build an AgentLoop over a scripted transport.

    Returns ``(loop, transport)``. Delays are recorded by ``sleep``, never waited.
    """

    def _make(script=(), repeat_last=False, handlers=None, definitions=None, **kwargs):
        transport = ScriptedTransport(script, repeat_last=repeat_last)
        gateway = ModelGateway(transport, translate=translator, sleep=sleep)
        loop = AgentLoop(
            store,
            gateway,
            make_executor(handlers, definitions),
            registry.tool_definitions() if definitions is None else definitions,
            system_prompt=build_system_prompt(registry.catalog),
            context=build_context(registry.catalog),
            translate=translator,
            sleep=sleep,
            **kwargs,
        )
        return loop, transport

    return _make
