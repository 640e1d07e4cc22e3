"""In-memory conversation state: ordered history, phase and retry flag."""

from __future__ import annotations

import logging
from typing import Callable

from larder.agent.messages import (
    AgentMessage,
    AgentPhase,
    MessageStatus,
    Role,
    create_message,
)

logger = logging.getLogger("larder.agent.store")

Listener = Callable[["ConversationStore"], None]


class ConversationStore:
    """Single-writer state container for one conversation.

    The orchestration loop is the only writer while a turn is in flight.
    Readers either poll the accessors or ``subscribe`` for change callbacks.
    """

    def __init__(self) -> None:
        self._history: list[AgentMessage] = []
        self._phase = AgentPhase.IDLE
        self._retry_available = False
        self._listeners: list[Listener] = []

    # ── Notification ──────────────────────────────────────────────────────

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change callback. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                # Listeners are UI glue and must never break the loop.
                logger.warning("Conversation listener failed", exc_info=True)

    # ── History ───────────────────────────────────────────────────────────

    def create_message(
        self,
        role: Role,
        content: str,
        status: MessageStatus = MessageStatus.OK,
    ) -> AgentMessage:
        return create_message(role, content, status)

    def append(self, message: AgentMessage, dedupe: bool = True) -> None:
        """Append a message.

        With ``dedupe``, a message repeating the previous message's role and
        content replaces it, unless either side takes part in tool-call pairing.
        """
        if dedupe and self._history and self._is_duplicate(self._history[-1], message):
            self._history[-1] = message
        else:
            self._history.append(message)
        self._notify()

    @staticmethod
    def _is_duplicate(last: AgentMessage, message: AgentMessage) -> bool:
        if last.role != message.role or last.content != message.content:
            return False
        if last.tool_calls or message.tool_calls:
            return False
        return not (last.tool_call_id or message.tool_call_id)

    def snapshot(self) -> list[AgentMessage]:
        return list(self._history)

    def replace(self, history: list[AgentMessage]) -> None:
        self._history = list(history)
        self._notify()

    def visible_messages(self) -> list[AgentMessage]:
        return [message for message in self._history if message.is_visible]

    def last_user_index(self) -> int:
        for index in range(len(self._history) - 1, -1, -1):
            if self._history[index].role == Role.USER:
                return index
        return -1

    def truncate_to_last_user(self) -> bool:
        """Drop everything after the last user message. False if there is none."""
        index = self.last_user_index()
        if index < 0:
            return False
        self.replace(self._history[: index + 1])
        return True

    def answered_tool_call_ids(self) -> set[str]:
        return {
            message.tool_call_id
            for message in self._history
            if message.role == Role.TOOL and message.tool_call_id
        }

    def unanswered_tool_call_ids(self) -> list[str]:
        """Ids of the latest assistant tool-call message that have no tool result anywhere in history."""
        answered = self.answered_tool_call_ids()
        for message in reversed(self._history):
            if message.role == Role.ASSISTANT and message.tool_calls:
                return [call_id for call_id in message.tool_call_ids if call_id not in answered]
        return []

    def close_unanswered_tool_calls(self, make_result: Callable[[str, str], AgentMessage]) -> list[str]:
        """Give every tool call that still lacks a result a closing tool message.

        ``make_result(call_id, tool_name)`` builds the message. It is placed
        after the results that already follow its assistant message, so the
        transcript stays well-formed wherever the gap was. Returns the ids
        that were closed.
        """
        answered = self.answered_tool_call_ids()
        closed: list[str] = []
        history: list[AgentMessage] = []
        pending: list[AgentMessage] = []
        for message in self._history:
            if message.role != Role.TOOL:
                history.extend(pending)
                pending = []
            history.append(message)
            if message.role != Role.ASSISTANT:
                continue
            for call in message.tool_calls:
                call_id = call.get("id")
                if not call_id or call_id in answered:
                    continue
                name = (call.get("function") or {}).get("name") or ""
                pending.append(make_result(str(call_id), name))
                answered.add(call_id)
                closed.append(str(call_id))
        history.extend(pending)

        if closed:
            logger.warning("Closed %d unanswered tool call(s)", len(closed), extra={"event": "closed_tool_calls"})
            self.replace(history)
        return closed

    # ── UI signals ────────────────────────────────────────────────────────

    @property
    def phase(self) -> AgentPhase:
        return self._phase

    @property
    def is_busy(self) -> bool:
        return self._phase != AgentPhase.IDLE

    def set_phase(self, phase: AgentPhase) -> None:
        if phase == self._phase:
            return
        self._phase = phase
        self._notify()

    @property
    def retry_available(self) -> bool:
        return self._retry_available

    def set_retry_available(self, value: bool) -> None:
        if value == self._retry_available:
            return
        self._retry_available = value
        self._notify()

    def reset(self) -> None:
        self._history = []
        self._phase = AgentPhase.IDLE
        self._retry_available = False
        self._notify()
