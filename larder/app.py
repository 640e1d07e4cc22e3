"""Wire the agent loop, gateway, executor and pantry tools together."""

from __future__ import annotations

from dataclasses import dataclass

from larder.agent.executor import ToolExecutor
from larder.agent.gateway import HttpTransport, ModelGateway, ModelTransport, OllamaTransport
from larder.agent.loop import AgentLoop
from larder.agent.prompt import build_context, build_system_prompt
from larder.agent.store import ConversationStore
from larder.config import AgentConfig
from larder.documents import DocumentStore, InMemoryDocumentStore
from larder.i18n import Translator
from larder.telemetry import TelemetrySink
from larder.tools import PantryCatalog, ToolRegistry


@dataclass
class LarderApp:
    """Everything one conversation needs, with a single ``aclose``."""

    config: AgentConfig
    store: ConversationStore
    loop: AgentLoop
    registry: ToolRegistry
    documents: DocumentStore
    gateway: ModelGateway
    telemetry: TelemetrySink
    translate: Translator

    async def aclose(self) -> None:
        await self.gateway.aclose()
        await self.telemetry.aclose()


def build_transport(config: AgentConfig) -> ModelTransport:
    if config.provider == "ollama":
        return OllamaTransport(config.model, host=config.ollama_host, num_ctx=config.num_ctx)
    return HttpTransport(config.api_url, timeout=config.request_timeout, user_id=config.user_id)


def build_app(
    config: AgentConfig,
    documents: DocumentStore | None = None,
    catalog: PantryCatalog | None = None,
    transport: ModelTransport | None = None,
) -> LarderApp:
    translate = Translator(config.locale)
    documents = documents if documents is not None else InMemoryDocumentStore()
    registry = ToolRegistry(documents, catalog, translate)
    definitions = registry.tool_definitions()

    gateway = ModelGateway(
        transport or build_transport(config),
        timeout=config.request_timeout,
        max_retries=config.max_retries,
        retry_base_delay=config.retry_base_delay,
        translate=translate,
    )
    executor = ToolExecutor(
        registry.handlers(),
        definitions,
        normalizer=registry.catalog.normalize_argument,
        translate=translate,
    )
    telemetry = TelemetrySink(config.telemetry_url)
    store = ConversationStore()
    loop = AgentLoop(
        store,
        gateway,
        executor,
        definitions,
        system_prompt=build_system_prompt(registry.catalog),
        context=build_context(registry.catalog),
        translate=translate,
        telemetry=telemetry,
        max_iterations=config.max_iterations,
        malformed_retry_delay=config.malformed_retry_delay,
        pending_tool_delay=config.pending_tool_delay,
        pending_tool_checks=config.pending_tool_checks,
    )
    return LarderApp(
        config=config,
        store=store,
        loop=loop,
        registry=registry,
        documents=documents,
        gateway=gateway,
        telemetry=telemetry,
        translate=translate,
    )
