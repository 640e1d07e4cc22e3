"""Decode model responses and normalize their tool calls.

The endpoint answers in one of two wire shapes: a single-call shorthand
(``{"tool", "arguments", "tool_call_id"}``) or an OpenAI-style message with a
``tool_calls`` / ``toolCalls`` array. ``decode_response`` turns either into a
small closed set of variants once, at the boundary; ``extract_tool_calls``
then produces canonical calls with safe, unique ids.
"""

from __future__ import annotations

import hashlib
import itertools
import json
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Union

from larder.agent.arguments import parse_arguments
from larder.agent.messages import ToolCall
from larder.config import MAX_TOOL_CALL_ID_LENGTH

_id_counter = itertools.count()


@dataclass(frozen=True)
class TextResponse:
    content: str = ""
    error: str | None = None
    kind: str = field(default="text", init=False)


@dataclass(frozen=True)
class SingleToolResponse:
    tool: str | None
    arguments: Any = None
    tool_call_id: str | None = None
    content: str = ""
    error: str | None = None
    kind: str = field(default="single-tool", init=False)


@dataclass(frozen=True)
class MultiToolResponse:
    raw_calls: tuple[Any, ...]
    content: str = ""
    error: str | None = None
    kind: str = field(default="multi-tool", init=False)


ModelResponse = Union[TextResponse, SingleToolResponse, MultiToolResponse]


@dataclass
class Extraction:
    """Outcome of extraction.

    ``had_tool_intent`` is True whenever the model emitted any tool-call
    object, even one that could not be turned into a call.
    """

    calls: list[ToolCall] = field(default_factory=list)
    raw_tool_calls: list[dict[str, Any]] = field(default_factory=list)
    had_tool_intent: bool = False


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def decode_response(raw: dict[str, Any]) -> ModelResponse:
    """Classify a raw endpoint response."""
    message = raw.get("message") if isinstance(raw.get("message"), dict) else {}
    content = _text(message.get("content")) or _text(raw.get("content"))
    error = raw.get("error") if isinstance(raw.get("error"), str) and raw.get("error") else None

    calls = message.get("tool_calls")
    if calls is None:
        calls = message.get("toolCalls")
    if isinstance(calls, list) and calls:
        return MultiToolResponse(raw_calls=tuple(calls), content=content, error=error)

    if raw.get("tool") or (raw.get("tool_call_id") and raw.get("arguments") is not None):
        return SingleToolResponse(
            tool=raw.get("tool") if isinstance(raw.get("tool"), str) else None,
            arguments=raw.get("arguments"),
            tool_call_id=raw.get("tool_call_id") or message.get("tool_call_id"),
            content=content,
            error=error,
        )

    return TextResponse(content=content, error=error)


# ── Call ids ─────────────────────────────────────────────────────────────────


def shorten_call_id(call_id: str) -> str:
    """Deterministic short form of an oversized id."""
    digest = hashlib.sha256(call_id.encode("utf-8")).hexdigest()[:24]
    return f"call_{digest}"


def generate_call_id() -> str:
    """Fresh id from a monotonic clock, a process counter and random bits."""
    return f"call_{time.monotonic_ns():x}{next(_id_counter):x}{secrets.token_hex(3)}"


def allocate_call_id(candidate: Any, used: set[str]) -> str:
    call_id = candidate.strip() if isinstance(candidate, str) else ""
    if len(call_id) > MAX_TOOL_CALL_ID_LENGTH:
        call_id = shorten_call_id(call_id)
    if not call_id or call_id in used:
        call_id = generate_call_id()
        while call_id in used:
            call_id = generate_call_id()
    used.add(call_id)
    return call_id


# ── Extraction ───────────────────────────────────────────────────────────────


def _raw_name_and_arguments(raw: dict[str, Any]) -> tuple[str, Any]:
    function = raw.get("function") if isinstance(raw.get("function"), dict) else {}
    name = function.get("name") or raw.get("name")
    arguments = function.get("arguments") if "arguments" in function else raw.get("arguments")
    return (name.strip() if isinstance(name, str) else ""), arguments


def _to_wire(call: ToolCall) -> dict[str, Any]:
    return {
        "id": call.id,
        "type": "function",
        "function": {
            "name": call.name,
            "arguments": json.dumps(call.arguments, ensure_ascii=False),
        },
    }


def extract_tool_calls(response: ModelResponse) -> Extraction:
    """Normalize the response's tool calls.

    Ids are deduplicated within this response only. An id the model reuses
    from an earlier turn is kept, so the executor recognizes a call that was
    already answered and skips it.
    """
    if isinstance(response, TextResponse):
        return Extraction()

    if isinstance(response, SingleToolResponse):
        candidates: list[Any] = [{
            "id": response.tool_call_id,
            "name": response.tool,
            "arguments": response.arguments,
        }]
    else:
        candidates = list(response.raw_calls)

    used: set[str] = set()
    extraction = Extraction(had_tool_intent=bool(candidates))
    for raw in candidates:
        if not isinstance(raw, dict):
            continue
        name, arguments = _raw_name_and_arguments(raw)
        if not name:
            continue
        call = ToolCall(
            id=allocate_call_id(raw.get("id"), used),
            name=name,
            arguments=parse_arguments(arguments),
        )
        extraction.calls.append(call)
        extraction.raw_tool_calls.append(_to_wire(call))
    return extraction
