"""Model gateway: sends the conversation to a completion endpoint.

The gateway owns the timeout and retry policy; transports only know how to
deliver one request and translate their own failures into ``ModelCallError``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Protocol

import httpx
import ollama

from larder.agent.errors import ModelCallError
from larder.config import MAX_MODEL_RETRIES, REQUEST_TIMEOUT, RETRY_BASE_DELAY
from larder.i18n import Translator

logger = logging.getLogger("larder.agent.gateway")


class ModelTransport(Protocol):
    async def send(self, payload: dict[str, Any]) -> dict[str, Any]:
        ...


def to_function_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Accept catalog entries or OpenAI function tools; return function tools."""
    normalized = []
    for raw in tools or []:
        if not isinstance(raw, dict):
            continue
        if raw.get("type") == "function" and raw.get("function"):
            normalized.append(raw)
        elif raw.get("name") and raw.get("parameters"):
            normalized.append({
                "type": "function",
                "function": {
                    "name": raw["name"],
                    "description": raw.get("description", ""),
                    "parameters": raw["parameters"],
                },
            })
    return normalized


class HttpTransport:
    """POST the request to the agent proxy endpoint."""

    def __init__(
        self,
        url: str,
        timeout: float = REQUEST_TIMEOUT,
        user_id: str = "",
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self.user_id = user_id
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def send(self, payload: dict[str, Any]) -> dict[str, Any]:
        if not self.url:
            raise ModelCallError("Agent endpoint is not configured")

        headers = {"x-user-id": self.user_id} if self.user_id else None
        try:
            response = await self._get_client().post(self.url, json=payload, headers=headers)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            raise ModelCallError(f"Request timed out: {e}", timeout=True) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise ModelCallError(f"Endpoint returned HTTP {status}", status=status) from e
        except httpx.RequestError as e:
            raise ModelCallError(f"Request failed: {e}") from e
        except ValueError as e:
            raise ModelCallError(f"Endpoint returned invalid JSON: {e}") from e

        if not isinstance(body, dict):
            raise ModelCallError(f"Endpoint returned {type(body).__name__}, expected an object")
        return body

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


class OllamaTransport:
    """Local backend: answers the proxy request shape using an Ollama model."""

    def __init__(
        self,
        model: str,
        host: str | None = None,
        num_ctx: int | None = None,
        client: Any = None,
    ):
        self.model = model
        self.num_ctx = num_ctx
        self._client = client or ollama.AsyncClient(host=host)

    @staticmethod
    def _to_ollama_message(message: dict[str, Any]) -> dict[str, Any]:
        converted: dict[str, Any] = {
            "role": message.get("role", "user"),
            "content": message.get("content") or "",
        }
        if converted["role"] == "tool" and message.get("name"):
            converted["tool_name"] = message["name"]
        calls = []
        for call in message.get("tool_calls") or []:
            function = call.get("function") or {}
            arguments = function.get("arguments") or {}
            if isinstance(arguments, str):
                try:
                    arguments = json.loads(arguments)
                except json.JSONDecodeError:
                    arguments = {"value": arguments}
            calls.append({"function": {"name": function.get("name", ""), "arguments": arguments}})
        if calls:
            converted["tool_calls"] = calls
        return converted

    def build_messages(self, payload: dict[str, Any]) -> list[dict[str, Any]]:
        messages = []
        if payload.get("system"):
            messages.append({"role": "system", "content": str(payload["system"])})
        context = payload.get("context")
        if context:
            messages.append({
                "role": "system",
                "content": "Context: " + json.dumps(context, ensure_ascii=False),
            })
        messages.extend(self._to_ollama_message(m) for m in payload.get("messages") or [])
        return messages

    async def send(self, payload: dict[str, Any]) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": self.build_messages(payload),
        }
        tools = to_function_tools(payload.get("tools") or [])
        if tools:
            kwargs["tools"] = tools
        if self.num_ctx:
            kwargs["options"] = {"num_ctx": self.num_ctx}

        try:
            response = await self._client.chat(**kwargs)
        except ollama.ResponseError as e:
            raise ModelCallError(f"Ollama error: {e.error}", status=e.status_code) from e
        except httpx.TimeoutException as e:
            raise ModelCallError(f"Ollama timed out: {e}", timeout=True) from e
        except (ConnectionError, httpx.RequestError) as e:
            raise ModelCallError(f"Cannot reach Ollama: {e}") from e

        message = response.message
        raw_calls = []
        for call in message.tool_calls or []:
            raw_calls.append({
                "type": "function",
                "function": {
                    "name": call.function.name,
                    "arguments": json.dumps(dict(call.function.arguments or {}), ensure_ascii=False),
                },
            })

        content = message.content or ""
        result: dict[str, Any] = {
            "content": content,
            "message": {"content": content, "tool_calls": raw_calls},
        }
        if raw_calls:
            first = raw_calls[0]["function"]
            result["tool"] = first["name"]
            result["arguments"] = first["arguments"]
        return result

    async def aclose(self) -> None:
        return None


class ModelGateway:
    """Call the model with a hard timeout and bounded linear retry.

    Only transient failures (timeouts, HTTP 502/503/504) are retried; the
    delay before retry *n* is ``n * retry_base_delay``.
    """

    def __init__(
        self,
        transport: ModelTransport,
        timeout: float = REQUEST_TIMEOUT,
        max_retries: int = MAX_MODEL_RETRIES,
        retry_base_delay: float = RETRY_BASE_DELAY,
        translate: Callable[..., str] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.transport = transport
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.translate = translate or Translator()
        self._sleep = sleep

    async def call(self, payload: dict[str, Any]) -> dict[str, Any]:
        attempt = 0
        while True:
            try:
                return await asyncio.wait_for(self.transport.send(payload), timeout=self.timeout)
            except asyncio.TimeoutError:
                error = ModelCallError(f"No response within {self.timeout}s", timeout=True)
            except ModelCallError as e:
                error = e

            if not error.transient or attempt >= self.max_retries:
                error.user_message = self.translate(
                    "agent.messages.timeout" if error.timeout else "agent.messages.callFailed"
                )
                logger.error(
                    "Model call failed after %d attempt(s): %s",
                    attempt + 1,
                    error,
                    extra={"attempt": attempt + 1, "status": error.status},
                )
                raise error

            attempt += 1
            delay = attempt * self.retry_base_delay
            logger.warning(
                "Transient model failure (%s), retry %d/%d in %.1fs",
                error,
                attempt,
                self.max_retries,
                delay,
                extra={"attempt": attempt, "status": error.status},
            )
            await self._sleep(delay)

    async def aclose(self) -> None:
        close = getattr(self.transport, "aclose", None)
        if close is not None:
            await close()
