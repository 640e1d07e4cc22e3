"""Tool executor: sanitize arguments, dispatch to handlers, wrap results.

Failures leave this module as data (``ToolExecution`` with ``success=False``),
never as exceptions, so the model sees every outcome as a tool result.
"""

from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Mapping

from larder.agent.messages import (
    AgentMessage,
    MessageStatus,
    Role,
    ToolCall,
    ToolExecution,
)
from larder.i18n import Translator
from larder.logging_config import log_tool_execution

logger = logging.getLogger("larder.agent.executor")


@dataclass
class ToolResult:
    """What a handler returns. ``id`` is a fallback tool-call id."""

    success: bool
    message: AgentMessage
    id: str | None = None


ToolHandler = Callable[[dict[str, Any]], Awaitable[ToolResult]]
ArgumentNormalizer = Callable[[str, Any], Any]
AuditHook = Callable[..., None]


# ── Argument sanitation ──────────────────────────────────────────────────────


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def coerce_value(value: Any, declared: str | None) -> Any:
    """Coerce one argument to its declared JSON-schema type."""
    if declared == "string":
        if isinstance(value, str):
            return value.strip()
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value
    if declared in ("number", "integer"):
        if isinstance(value, bool):
            return math.nan
        if isinstance(value, (int, float)):
            return value
        if isinstance(value, str):
            try:
                return float(value.strip().replace(",", "."))
            except ValueError:
                return math.nan
        return math.nan
    if declared == "boolean":
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        return value
    if declared == "array":
        if isinstance(value, list):
            return [item.strip() if isinstance(item, str) else item for item in value if not _is_blank(item)]
        return value
    if isinstance(value, str):
        return value.strip()
    return value


def is_well_formed(value: Any, declared: str | None) -> bool:
    """Whether a required argument is present and usable."""
    if declared == "string":
        return isinstance(value, str) and bool(value.strip())
    if declared in ("number", "integer"):
        return (
            isinstance(value, (int, float))
            and not isinstance(value, bool)
            and math.isfinite(value)
        )
    if declared == "boolean":
        return isinstance(value, bool)
    if declared == "array":
        return isinstance(value, list) and bool(value)
    if declared == "object":
        return isinstance(value, dict)
    return value is not None


def sanitize_arguments(
    arguments: Mapping[str, Any],
    parameters: Mapping[str, Any] | None,
    normalizer: ArgumentNormalizer | None = None,
) -> dict[str, Any]:
    properties = (parameters or {}).get("properties") or {}
    sanitized: dict[str, Any] = {}
    for key, value in arguments.items():
        declared = (properties.get(key) or {}).get("type")
        value = coerce_value(value, declared)
        if normalizer is not None:
            value = normalizer(key, value)
        sanitized[key] = value
    return sanitized


def first_invalid_field(arguments: Mapping[str, Any], parameters: Mapping[str, Any] | None) -> str | None:
    if not parameters:
        return None
    properties = parameters.get("properties") or {}
    for key in parameters.get("required") or []:
        declared = (properties.get(key) or {}).get("type")
        if not is_well_formed(arguments.get(key), declared):
            return key
    return None


# ── Executor ─────────────────────────────────────────────────────────────────


class ToolExecutor:
    """Dispatch normalized tool calls through an injected name→handler table."""

    def __init__(
        self,
        handlers: Mapping[str, ToolHandler],
        definitions: Iterable[Mapping[str, Any]] = (),
        normalizer: ArgumentNormalizer | None = None,
        translate: Callable[..., str] | None = None,
        audit: AuditHook | None = log_tool_execution,
    ):
        self.handlers = dict(handlers)
        self.parameters = {d["name"]: d.get("parameters") or {} for d in definitions}
        self.normalizer = normalizer
        self.translate = translate or Translator()
        self.audit = audit

    async def execute(self, call: ToolCall) -> ToolExecution:
        parameters = self.parameters.get(call.name)
        arguments = sanitize_arguments(call.arguments, parameters, self.normalizer)

        invalid = first_invalid_field(arguments, parameters)
        if invalid is not None:
            logger.info(
                "Rejected %s: invalid argument %r",
                call.name,
                invalid,
                extra={"tool_name": call.name, "tool_call_id": call.id},
            )
            return self._failure(
                call,
                self.translate("agent.errors.invalidArgument", field=invalid),
                {"status": "error", "error": "validation", "tool": call.name, "field": invalid},
            )

        handler = self.handlers.get(call.name)
        if handler is None:
            logger.warning("Unknown tool requested: %s", call.name, extra={"tool_name": call.name})
            return self._failure(
                call,
                self.translate("agent.messages.toolUnavailable", name=call.name),
                {"status": "error", "error": "unavailable", "tool": call.name},
            )

        started = time.monotonic()
        try:
            result = await handler(arguments)
            if not isinstance(result, ToolResult):
                raise TypeError(f"handler returned {type(result).__name__}, expected ToolResult")
            execution = self._wrap(call, result)
        except Exception as e:
            logger.exception(
                "Tool handler %s failed",
                call.name,
                extra={"tool_name": call.name, "tool_call_id": call.id},
            )
            envelope = {
                "status": "error",
                "error": "handler_failed",
                "tool": call.name,
                "type": type(e).__name__,
                "detail": str(e),
            }
            execution = self._failure(call, json.dumps(envelope, ensure_ascii=False), None)

        if self.audit is not None:
            try:
                self.audit(
                    call.name,
                    execution.message.tool_call_id,
                    arguments,
                    execution.message.model_content or execution.message.content,
                    execution.success,
                    time.monotonic() - started,
                )
            except Exception:
                logger.warning(
                    "Audit hook failed for %s",
                    call.name,
                    exc_info=True,
                    extra={"tool_name": call.name, "tool_call_id": call.id},
                )
        return execution

    def _wrap(self, call: ToolCall, result: ToolResult) -> ToolExecution:
        message = result.message
        message.role = Role.TOOL
        message.tool_name = call.name
        message.tool_call_id = call.id or message.tool_call_id or result.id
        message.ui_hidden = False
        return ToolExecution(tool=call.name, success=result.success, message=message)

    def _failure(self, call: ToolCall, content: str, model_payload: dict[str, Any] | None) -> ToolExecution:
        message = AgentMessage(role=Role.TOOL, content=content, status=MessageStatus.ERROR)
        if model_payload is not None:
            message.model_content = json.dumps(
                {**model_payload, "message": content}, ensure_ascii=False
            )
        return self._wrap(call, ToolResult(success=False, message=message))

    async def run_pending(
        self,
        calls: Iterable[ToolCall],
        store: Any,
        checkpoint: Callable[[], None] | None = None,
    ) -> list[ToolExecution]:
        """Execute calls in order, appending each result to ``store``.

        Calls whose id already has a tool result in the history are skipped.
        ``checkpoint`` runs before each call and after each await; raising
        from it stops the batch without touching the store.
        """
        executions = []
        for call in calls:
            if checkpoint is not None:
                checkpoint()
            if call.id in store.answered_tool_call_ids():
                logger.info(
                    "Skipping already answered tool call %s",
                    call.id,
                    extra={"tool_name": call.name, "tool_call_id": call.id},
                )
                continue

            execution = await self.execute(call)
            if checkpoint is not None:
                checkpoint()
            if not execution.message.tool_call_id:
                logger.warning(
                    "Dropping result of %s: no tool call id to attach it to",
                    call.name,
                    extra={"tool_name": call.name},
                )
                continue
            store.append(execution.message, dedupe=False)
            executions.append(execution)
        return executions
