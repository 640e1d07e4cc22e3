"""Orchestration loop: drives one conversation between the model and the tools.

Per user request the loop alternates model calls and sequential tool
execution, at most ``max_iterations`` round-trips. Every fatal condition ends
in the same translated assistant message with retry enabled; nothing raw
reaches the user.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable

from larder.agent.errors import (
    ConversationSuperseded,
    EmptyResponseError,
    IterationBudgetExceeded,
    MalformedToolCallError,
    ModelCallError,
    ModelResponseError,
    ProtocolViolationError,
)
from larder.agent.executor import ToolExecutor
from larder.agent.extractor import Extraction, decode_response, extract_tool_calls
from larder.agent.gateway import ModelGateway
from larder.agent.messages import AgentMessage, AgentPhase, MessageStatus, Role
from larder.agent.store import ConversationStore
from larder.config import (
    MALFORMED_RETRY_DELAY,
    MAX_AGENT_ITERATIONS,
    PENDING_TOOL_CHECKS,
    PENDING_TOOL_DELAY,
)
from larder.i18n import Translator

logger = logging.getLogger("larder.agent.loop")


class AgentLoop:
    """State machine for one conversation.

    The store is only written from inside a turn, plus the user message
    appended just before the turn starts. A generation counter guards every
    suspension point: ``reset()`` and ``cancel()`` bump it, and a turn that
    wakes up under a newer generation stops without touching the store.
    """

    def __init__(
        self,
        store: ConversationStore,
        gateway: ModelGateway,
        executor: ToolExecutor,
        tool_definitions: list[dict[str, Any]],
        system_prompt: str = "",
        context: dict[str, Any] | None = None,
        translate: Callable[..., str] | None = None,
        telemetry: Any = None,
        max_iterations: int = MAX_AGENT_ITERATIONS,
        malformed_retry_delay: float = MALFORMED_RETRY_DELAY,
        pending_tool_delay: float = PENDING_TOOL_DELAY,
        pending_tool_checks: int = PENDING_TOOL_CHECKS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.gateway = gateway
        self.executor = executor
        self.tool_definitions = list(tool_definitions)
        self.system_prompt = system_prompt
        self.context = context
        self.t = translate or Translator()
        self.telemetry = telemetry
        self.max_iterations = max_iterations
        self.malformed_retry_delay = malformed_retry_delay
        self.pending_tool_delay = pending_tool_delay
        self.pending_tool_checks = pending_tool_checks
        self._sleep = sleep
        self._generation = 0

    # ── Public entrypoints ────────────────────────────────────────────────

    async def send_message(self, text: str) -> AgentMessage | None:
        """Append the user's message and run a turn.

        Returns the final assistant message (the reply or the unified error),
        or None when the text is blank, a turn is already running, or the turn
        was superseded.
        """
        text = (text or "").strip()
        if not text:
            return None
        if self.store.is_busy:
            logger.info("Ignoring message while a turn is in flight")
            return None

        self.store.set_retry_available(False)
        self.store.append(self.store.create_message(Role.USER, text))
        return await self._run_turn()

    def can_retry(self) -> bool:
        return self.store.retry_available and not self.store.is_busy

    async def retry_last(self) -> AgentMessage | None:
        """Drop everything after the last user message and replay the turn."""
        if not self.can_retry():
            return None
        if not self.store.truncate_to_last_user():
            return None
        self.store.set_retry_available(False)
        self._track("agent_retry")
        return await self._run_turn()

    def reset(self) -> None:
        """Start a new conversation. Any in-flight turn is abandoned."""
        self._generation += 1
        self.store.reset()

    def cancel(self) -> None:
        """Abandon the in-flight turn.

        The partial turn is dropped back to the user's message, so no
        unanswered tool call is left behind, and the request can be retried.
        """
        if not self.store.is_busy:
            return
        self._generation += 1
        if self.store.truncate_to_last_user():
            self.store.set_retry_available(True)
        self.store.set_phase(AgentPhase.IDLE)

    # ── Turn ──────────────────────────────────────────────────────────────

    async def _run_turn(self) -> AgentMessage | None:
        generation = self._generation
        started = time.monotonic()
        self._track("agent_turn_started")

        try:
            reply = await self._process(generation)
        except ConversationSuperseded:
            logger.info("Turn superseded, discarding its result", extra={"event": "superseded"})
            return None
        except Exception as e:
            if generation != self._generation:
                return None
            return self._unified_error(e)

        self.store.set_phase(AgentPhase.IDLE)
        self._track("agent_turn_completed", {"duration_s": round(time.monotonic() - started, 3)})
        return reply

    def _unified_error(self, error: Exception) -> AgentMessage:
        if isinstance(error, ModelCallError):
            logger.error(
                "Turn failed: %s",
                error,
                extra={"status": error.status, "event": "unified_error"},
            )
        else:
            logger.error("Turn failed: %s", error, exc_info=error, extra={"event": "unified_error"})

        # A failed turn must not leave a tool call without its result.
        self.store.close_unanswered_tool_calls(self._interrupted_result)

        message = self.store.create_message(
            Role.ASSISTANT,
            self.t("agent.messages.unifiedError"),
            MessageStatus.ERROR,
        )
        message.data = {"error": type(error).__name__}
        if isinstance(error, ModelCallError) and error.user_message:
            message.data["hint"] = error.user_message
        self.store.append(message)
        self.store.set_retry_available(True)
        self.store.set_phase(AgentPhase.IDLE)
        self._track("agent_unified_error", {"error": type(error).__name__})
        return message

    def _interrupted_result(self, call_id: str, tool_name: str) -> AgentMessage:
        content = self.t("agent.errors.toolFailed", name=tool_name)
        message = AgentMessage(
            role=Role.TOOL,
            content=content,
            status=MessageStatus.ERROR,
            tool_name=tool_name,
            tool_call_id=call_id,
        )
        message.model_content = json.dumps(
            {"status": "error", "error": "interrupted", "tool": tool_name, "message": content},
            ensure_ascii=False,
        )
        return message

    async def _process(self, generation: int) -> AgentMessage:
        malformed_retried = False

        for iteration in range(1, self.max_iterations + 1):
            self._set_phase(generation, AgentPhase.THINKING)
            await self._wait_for_pending_tools(generation)
            self._assert_tool_results_complete()

            logger.debug(
                "Model call %d/%d with %d messages",
                iteration,
                self.max_iterations,
                len(self.store.snapshot()),
                extra={"attempt": iteration, "phase": AgentPhase.THINKING.value},
            )
            raw = await self.gateway.call(self._build_request())
            self._ensure_current(generation)

            response = decode_response(raw)
            if response.error:
                raise ModelResponseError(response.error)

            extraction = extract_tool_calls(response)

            if not extraction.calls:
                if extraction.had_tool_intent:
                    if malformed_retried:
                        raise MalformedToolCallError("Model repeated an unusable tool call")
                    malformed_retried = True
                    logger.warning(
                        "Model emitted a tool call without a usable name, retrying once",
                        extra={"attempt": iteration},
                    )
                    await self._sleep(self.malformed_retry_delay)
                    self._ensure_current(generation)
                    continue
                return self._finish_with_text(generation, response.content)

            self._append_assistant(response.content, extraction)
            self._set_phase(generation, AgentPhase.FETCHING)
            executions = await self.executor.run_pending(
                extraction.calls,
                self.store,
                checkpoint=lambda: self._ensure_current(generation),
            )
            for execution in executions:
                self._track(
                    "agent_tool_executed",
                    {"tool": execution.tool, "success": execution.success},
                )

        raise IterationBudgetExceeded(self.max_iterations)

    def _finish_with_text(self, generation: int, content: str) -> AgentMessage:
        text = (content or "").strip()
        if text:
            self.store.append(self.store.create_message(Role.ASSISTANT, text))
        reply = self._latest_reply()
        if reply is None:
            raise EmptyResponseError("Model returned no tool calls and no text")
        self._set_phase(generation, AgentPhase.RESPONDING)
        return reply

    def _latest_reply(self) -> AgentMessage | None:
        """Newest visible assistant text written during the current request."""
        history = self.store.snapshot()
        start = self.store.last_user_index() + 1
        for message in reversed(history[start:]):
            if message.role == Role.ASSISTANT and message.is_visible and message.content.strip():
                return message
        return None

    def _append_assistant(self, content: str, extraction: Extraction) -> AgentMessage:
        text = (content or "").strip()
        if text:
            message = self.store.create_message(Role.ASSISTANT, text)
        else:
            # Anchor for the tool results; kept in history, never rendered.
            message = self.store.create_message(Role.ASSISTANT, self.t("agent.messages.processing"))
            message.ui_hidden = True
            message.model_content = ""
        message.tool_calls = list(extraction.raw_tool_calls)
        self.store.append(message)
        return message

    # ── Guards ────────────────────────────────────────────────────────────

    async def _wait_for_pending_tools(self, generation: int) -> None:
        for _ in range(self.pending_tool_checks):
            pending = self.store.unanswered_tool_call_ids()
            if not pending:
                return
            logger.debug("Waiting for %d tool result(s)", len(pending))
            await self._sleep(self.pending_tool_delay)
            self._ensure_current(generation)

    def _assert_tool_results_complete(self) -> None:
        missing = self.store.unanswered_tool_call_ids()
        if missing:
            raise ProtocolViolationError(missing)

    def _ensure_current(self, generation: int) -> None:
        if generation != self._generation:
            raise ConversationSuperseded()

    def _set_phase(self, generation: int, phase: AgentPhase) -> None:
        self._ensure_current(generation)
        self.store.set_phase(phase)

    # ── Request ───────────────────────────────────────────────────────────

    def _build_request(self) -> dict[str, Any]:
        messages = []
        for message in self.store.snapshot():
            converted = message.to_model_message()
            if converted is not None:
                messages.append(converted)
        payload: dict[str, Any] = {
            "system": self.system_prompt,
            "messages": messages,
            "tools": self.tool_definitions,
        }
        if self.context:
            payload["context"] = self.context
        return payload

    def _track(self, event: str, payload: dict[str, Any] | None = None) -> None:
        if self.telemetry is None:
            return
        try:
            self.telemetry.post(event, payload)
        except Exception:
            logger.warning("Telemetry sink failed for %s", event, exc_info=True)
