"""Tests for the orchestration loop: scenarios, bounds and recovery."""

import json

from fakes import assert_tool_results_paired, text_reply, tool_call, tool_reply

from larder.agent.errors import ModelCallError
from larder.agent.executor import ToolResult
from larder.agent.messages import AgentMessage, AgentPhase, MessageStatus, Role
from larder.config import MALFORMED_RETRY_DELAY, MAX_AGENT_ITERATIONS, PENDING_TOOL_CHECKS, PENDING_TOOL_DELAY


class TestHappyPath:
    async def test_add_milk_then_answer(self, make_loop, store, documents):
        loop, transport = make_loop([
            tool_reply(tool_call("addProduct", {"name": "milk", "quantity": 2, "location": "nevera"}, "call_1")),
            text_reply("Added milk"),
        ])

        reply = await loop.send_message("add 2 liters of milk")

        assert reply.content == "Added milk"
        assert reply.role == Role.ASSISTANT
        assert store.retry_available is False
        assert store.phase == AgentPhase.IDLE
        assert transport.calls == 2

        second_request = transport.payloads[1]["messages"]
        assert second_request[-2]["tool_calls"][0]["id"] == "call_1"
        assert second_request[-1]["role"] == "tool"
        assert second_request[-1]["tool_call_id"] == "call_1"
        assert json.loads(second_request[-1]["content"])["status"] == "ok"

        (item,) = await documents.find()
        assert item["name"] == "milk"
        assert item["locations"][0]["locationId"] == "Fridge"
        assert_tool_results_paired(store.snapshot())

    async def test_request_carries_system_tools_and_context(self, make_loop, registry):
        loop, transport = make_loop([text_reply("Hi")])
        await loop.send_message("hello")
        payload = transport.payloads[0]
        assert "pantry" in payload["system"]
        assert {t["name"] for t in payload["tools"]} == set(registry.handlers())
        assert payload["context"]["locations"] == registry.catalog.locations
        assert payload["messages"] == [{"role": "user", "content": "hello"}]

    async def test_tool_only_turn_gets_hidden_placeholder(self, make_loop, store):
        loop, _ = make_loop([tool_reply(tool_call("getLocations", {}, "c1")), text_reply("Four places.")])
        await loop.send_message("where can I store things?")

        placeholder = store.snapshot()[1]
        assert placeholder.ui_hidden is True
        assert placeholder.tool_call_ids == ["c1"]
        assert [m.content for m in store.visible_messages()] == ["where can I store things?", "Four places."]

    async def test_multiple_calls_run_sequentially_in_model_order(self, make_loop, store):
        order = []

        def handler(name):
            async def run(arguments):
                order.append(name)
                return ToolResult(success=True, message=AgentMessage(role=Role.TOOL, content=name))
            return run

        loop, _ = make_loop(
            [tool_reply(tool_call("second", {}, "b"), tool_call("first", {}, "a")), text_reply("done")],
            handlers={"first": handler("first"), "second": handler("second")},
            definitions=[],
        )
        await loop.send_message("go")
        assert order == ["second", "first"]
        assert [m.tool_call_id for m in store.snapshot() if m.role == Role.TOOL] == ["b", "a"]

    async def test_reused_call_id_is_not_dispatched_twice(self, make_loop, store):
        calls = []

        async def handler(arguments):
            calls.append(arguments)
            return ToolResult(success=True, message=AgentMessage(role=Role.TOOL, content="ok"))

        loop, transport = make_loop(
            [
                tool_reply(tool_call("ping", {}, "call_0")),
                tool_reply(tool_call("ping", {}, "call_0")),
                text_reply("pong"),
            ],
            handlers={"ping": handler},
            definitions=[],
        )
        reply = await loop.send_message("ping twice")
        assert reply.content == "pong"
        assert len(calls) == 1
        assert transport.calls == 3
        assert [m.tool_call_id for m in store.snapshot() if m.role == Role.TOOL] == ["call_0"]
        assert_tool_results_paired(store.snapshot())

    async def test_repeated_add_with_same_id_adds_once(self, make_loop, documents):
        add_milk = tool_call("addProduct", {"name": "milk", "quantity": 2, "location": "Fridge"}, "call_1")
        loop, _ = make_loop([tool_reply(add_milk), tool_reply(add_milk), text_reply("Added milk")])

        await loop.send_message("add 2 milk")

        (item,) = await documents.find()
        assert len(item["locations"][0]["batches"]) == 1

    async def test_move_after_add_sees_the_new_stock(self, make_loop, documents):
        loop, _ = make_loop([
            tool_reply(
                tool_call("addProduct", {"name": "rice", "quantity": 1, "location": "Pantry"}, "a"),
                tool_call("moveProduct", {"name": "rice", "fromLocation": "Pantry", "toLocation": "Kitchen"}, "b"),
            ),
            text_reply("Rice is in the kitchen"),
        ])
        await loop.send_message("add rice and put it in the kitchen")
        (item,) = await documents.find()
        assert [loc["locationId"] for loc in item["locations"]] == ["Kitchen"]


class TestMalformedToolIntent:
    async def test_one_retry_then_text(self, make_loop, store, sleep):
        loop, transport = make_loop([
            tool_reply(tool_call(None, {"name": "milk"})),
            text_reply("Which product did you mean?"),
        ])
        reply = await loop.send_message("add it")
        assert reply.content == "Which product did you mean?"
        assert reply.status == MessageStatus.OK
        assert transport.calls == 2
        assert sleep.delays == [MALFORMED_RETRY_DELAY]
        assert store.retry_available is False

    async def test_second_malformed_response_is_fatal(self, make_loop, store, translator):
        loop, transport = make_loop([tool_reply(tool_call(None))], repeat_last=True)
        reply = await loop.send_message("add it")
        assert reply.content == translator("agent.messages.unifiedError")
        assert reply.data["error"] == "MalformedToolCallError"
        assert transport.calls == 2
        assert store.retry_available is True


class TestBounds:
    async def test_endless_tool_calls_stop_after_iteration_cap(self, make_loop, store, translator):
        loop, transport = make_loop([tool_reply(tool_call("getLocations", {}, "loop"))], repeat_last=True)
        reply = await loop.send_message("loop forever")

        assert transport.calls == MAX_AGENT_ITERATIONS
        assert reply.status == MessageStatus.ERROR
        assert reply.content == translator("agent.messages.unifiedError")
        assert reply.data["error"] == "IterationBudgetExceeded"
        assert store.phase == AgentPhase.IDLE
        assert loop.can_retry() is True
        assert_tool_results_paired(store.snapshot())

    async def test_custom_iteration_cap(self, make_loop):
        loop, transport = make_loop([tool_reply(tool_call("getLocations"))], repeat_last=True, max_iterations=2)
        await loop.send_message("loop")
        assert transport.calls == 2


class TestGatewayFailures:
    async def test_transient_errors_are_retried_inside_one_iteration(self, make_loop, store):
        loop, transport = make_loop([
            ModelCallError("HTTP 503", status=503),
            ModelCallError("HTTP 503", status=503),
            text_reply("Back online"),
        ])
        reply = await loop.send_message("hello")
        assert reply.content == "Back online"
        assert transport.calls == 3
        assert store.retry_available is False

    async def test_client_error_fails_without_retry(self, make_loop, store, sleep, translator):
        loop, transport = make_loop([ModelCallError("HTTP 400", status=400)])
        reply = await loop.send_message("hello")
        assert transport.calls == 1
        assert sleep.delays == []
        assert reply.content == translator("agent.messages.unifiedError")
        assert store.retry_available is True

    async def test_timeouts_then_retry_entrypoint(self, make_loop, store, translator):
        timeout = ModelCallError("timed out", timeout=True)
        loop, transport = make_loop([timeout, timeout, timeout, text_reply("Sorry for the wait")])

        reply = await loop.send_message("what do I have?")
        assert transport.calls == 3
        assert reply.content == translator("agent.messages.unifiedError")
        assert reply.data["hint"] == translator("agent.messages.timeout")
        assert loop.can_retry() is True
        assert [m.role for m in store.snapshot()] == [Role.USER, Role.ASSISTANT]

        retried = await loop.retry_last()
        assert retried.content == "Sorry for the wait"
        assert transport.calls == 4
        assert [m.content for m in store.snapshot()] == ["what do I have?", "Sorry for the wait"]
        assert transport.payloads[3]["messages"] == [{"role": "user", "content": "what do I have?"}]
        assert loop.can_retry() is False

    async def test_retry_is_noop_without_failure(self, make_loop):
        loop, transport = make_loop([text_reply("ok")])
        await loop.send_message("hi")
        assert await loop.retry_last() is None
        assert transport.calls == 1

    async def test_error_payload_is_fatal(self, make_loop, translator):
        loop, _ = make_loop([{"error": "upstream quota exceeded"}])
        reply = await loop.send_message("hi")
        assert reply.content == translator("agent.messages.unifiedError")
        assert "quota" not in reply.content
        assert reply.data["error"] == "ModelResponseError"

    async def test_empty_reply_is_fatal(self, make_loop):
        loop, _ = make_loop([text_reply("   ")])
        reply = await loop.send_message("hi")
        assert reply.data["error"] == "EmptyResponseError"


class TestPairingGuard:
    def _dangling_call(self, store, call_id="c9"):
        store.append(store.create_message(Role.USER, "earlier"))
        assistant = store.create_message(Role.ASSISTANT, "")
        assistant.tool_calls = [{"id": call_id, "type": "function", "function": {"name": "getProducts", "arguments": "{}"}}]
        store.append(assistant)

    async def test_unanswered_call_aborts_before_model_call(self, make_loop, store, sleep):
        self._dangling_call(store)
        loop, transport = make_loop([text_reply("never")])
        reply = await loop.send_message("hello")
        assert transport.calls == 0
        assert reply.data["error"] == "ProtocolViolationError"
        assert sleep.delays == [PENDING_TOOL_DELAY] * PENDING_TOOL_CHECKS

    async def test_conversation_recovers_after_pairing_failure(self, make_loop, store):
        self._dangling_call(store)
        loop, transport = make_loop([text_reply("Back on track")])
        await loop.send_message("hello")

        reply = await loop.send_message("hello again")
        assert reply.content == "Back on track"
        assert transport.calls == 1
        assert_tool_results_paired(store.snapshot())

    async def test_late_tool_result_is_waited_for(self, make_loop, store, sleep):
        self._dangling_call(store)

        def deliver(_delay):
            if not store.answered_tool_call_ids():
                store.append(
                    AgentMessage(role=Role.TOOL, content="[]", tool_name="getProducts", tool_call_id="c9"),
                    dedupe=False,
                )

        sleep.on_sleep = deliver
        loop, transport = make_loop([text_reply("All good")])
        reply = await loop.send_message("hello")
        assert reply.content == "All good"
        assert transport.calls == 1
        assert sleep.delays == [PENDING_TOOL_DELAY]


class TestRecovery:
    def _break_executor(self, loop, monkeypatch):
        async def broken(call):
            raise OSError("log directory is read-only")

        monkeypatch.setattr(loop.executor, "execute", broken)

    async def test_failing_audit_hook_does_not_fail_the_turn(self, make_loop, store):
        def audit(*args):
            raise OSError("log directory is read-only")

        loop, _ = make_loop([tool_reply(tool_call("getLocations", {}, "c1")), text_reply("Four places"), text_reply("hi")])
        loop.executor.audit = audit

        assert (await loop.send_message("where?")).content == "Four places"
        assert (await loop.send_message("hello")).content == "hi"
        assert store.retry_available is False

    async def test_executor_fault_closes_the_dangling_call(self, make_loop, store, monkeypatch):
        loop, transport = make_loop([tool_reply(tool_call("getLocations", {}, "c1")), text_reply("Hello again")])
        self._break_executor(loop, monkeypatch)

        failed = await loop.send_message("where?")
        assert failed.data["error"] == "OSError"
        assert_tool_results_paired(store.snapshot())
        (closing,) = [m for m in store.snapshot() if m.role == Role.TOOL]
        assert closing.tool_call_id == "c1"
        assert closing.status == MessageStatus.ERROR
        assert json.loads(closing.model_content)["error"] == "interrupted"

        reply = await loop.send_message("hi")
        assert reply.content == "Hello again"
        assert transport.calls == 2

    async def test_retry_after_executor_fault(self, make_loop, store, monkeypatch):
        loop, transport = make_loop([tool_reply(tool_call("getLocations", {}, "c1")), text_reply("Four places")])
        self._break_executor(loop, monkeypatch)

        await loop.send_message("where?")
        retried = await loop.retry_last()

        assert retried.content == "Four places"
        assert [m.content for m in store.snapshot()] == ["where?", "Four places"]
        assert transport.payloads[1]["messages"] == [{"role": "user", "content": "where?"}]


class TestConcurrencyGuards:
    async def test_message_while_busy_is_refused(self, make_loop, store):
        loop, transport = make_loop([text_reply("hi")])
        store.set_phase(AgentPhase.THINKING)
        assert await loop.send_message("hello") is None
        assert store.snapshot() == []
        assert transport.calls == 0

    async def test_blank_message_is_ignored(self, make_loop, store):
        loop, _ = make_loop([])
        assert await loop.send_message("   ") is None
        assert store.snapshot() == []

    async def test_reset_during_model_call_discards_the_turn(self, make_loop, store):
        holder = {}

        def reset_then_answer(payload):
            holder["loop"].reset()
            return text_reply("stale answer")

        loop, _ = make_loop([reset_then_answer])
        holder["loop"] = loop
        assert await loop.send_message("hello") is None
        assert store.snapshot() == []
        assert store.phase == AgentPhase.IDLE

    async def test_cancel_during_tool_execution(self, make_loop, store):
        holder = {}
        executed = []

        async def slow_tool(arguments):
            executed.append(arguments)
            holder["loop"].cancel()
            return ToolResult(success=True, message=AgentMessage(role=Role.TOOL, content="done"))

        loop, transport = make_loop(
            [tool_reply(tool_call("slow", {}, "c1"), tool_call("slow", {}, "c2")), text_reply("late")],
            handlers={"slow": slow_tool},
            definitions=[],
        )
        holder["loop"] = loop
        assert await loop.send_message("do it") is None
        assert len(executed) == 1
        assert transport.calls == 1
        assert [m.role for m in store.snapshot()] == [Role.USER]
        assert store.phase == AgentPhase.IDLE
        assert loop.can_retry() is True

    async def test_cancel_when_idle_keeps_history(self, make_loop, store):
        loop, _ = make_loop([text_reply("hi")])
        await loop.send_message("hello")
        loop.cancel()
        assert len(store.snapshot()) == 2
        assert loop.can_retry() is False


class TestTelemetry:
    async def test_events_are_posted(self, make_loop):
        events = []

        class Sink:
            def post(self, event, payload=None):
                events.append(event)

        loop, _ = make_loop(
            [tool_reply(tool_call("getLocations", {}, "c1")), text_reply("ok")],
            telemetry=Sink(),
        )
        await loop.send_message("where?")
        assert events == ["agent_turn_started", "agent_tool_executed", "agent_turn_completed"]

    async def test_failing_turn_reports_unified_error(self, make_loop):
        events = []

        class Sink:
            def post(self, event, payload=None):
                events.append((event, payload))

        loop, _ = make_loop([ModelCallError("HTTP 400", status=400), text_reply("ok")], telemetry=Sink())
        await loop.send_message("hi")
        await loop.retry_last()
        assert [e for e, _ in events] == [
            "agent_turn_started",
            "agent_unified_error",
            "agent_retry",
            "agent_turn_started",
            "agent_turn_completed",
        ]
        assert events[1][1] == {"error": "ModelCallError"}

    async def test_failing_sink_does_not_change_the_outcome(self, make_loop, store):
        class Sink:
            def post(self, event, payload=None):
                raise RuntimeError("sink is broken")

        loop, _ = make_loop([tool_reply(tool_call("getLocations", {}, "c1")), text_reply("ok")], telemetry=Sink())
        reply = await loop.send_message("where?")
        assert reply.content == "ok"
        assert store.retry_available is False
        assert store.phase == AgentPhase.IDLE
