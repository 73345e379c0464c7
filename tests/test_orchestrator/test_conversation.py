"""End-to-end tests for ConversationOrchestrator with a scripted model."""

import asyncio
from typing import Any, AsyncIterator

import pytest
from pydantic import BaseModel

from nexus_chat.config import AppConfig
from nexus_chat.llm_client import (
    CancellationToken,
    ChatMessage,
    DoneChunk,
    ErrorChunk,
    GeminiStreamClient,
    OpenAIStreamClient,
    StreamRequest,
    TextChunk,
    ToolCall,
    ToolCallChunk,
)
from nexus_chat.orchestrator import (
    ConversationOrchestrator,
    InMemorySessionStore,
    TurnState,
)
from nexus_chat.tools import (
    CRMData,
    Contact,
    ToolContext,
    ToolDefinition,
    ToolExecutionLayer,
    ToolRegistry,
    ToolResult,
    register_crm_tools,
)

USER = "user-1"


def text(*parts: str) -> list:
    return [*(TextChunk(content=p) for p in parts), DoneChunk()]


def tool_round(*calls: tuple[str, str, dict[str, Any]]) -> list:
    chunks: list = [
        ToolCallChunk(tool_call=ToolCall(id=call_id, name=name, arguments=arguments))
        for call_id, name, arguments in calls
    ]
    return [*chunks, DoneChunk()]


class ScriptedClient:
    """Model client that replays one scripted chunk list per round."""

    name = "scripted"

    def __init__(self, *rounds: list) -> None:
        self.rounds = list(rounds)
        self.requests: list[StreamRequest] = []

    async def stream(
        self, request: StreamRequest, token: CancellationToken
    ) -> AsyncIterator[Any]:
        self.requests.append(request)
        chunks = self.rounds.pop(0) if self.rounds else text("(no more rounds)")
        for chunk in chunks:
            await asyncio.sleep(0)
            yield chunk


class HangingClient:
    """Model client that sends one chunk and then waits for cancellation."""

    name = "hanging"

    def __init__(self) -> None:
        self.requests: list[StreamRequest] = []

    async def stream(
        self, request: StreamRequest, token: CancellationToken
    ) -> AsyncIterator[Any]:
        self.requests.append(request)
        yield TextChunk(content="Hel")
        while not token.cancelled:
            await asyncio.sleep(0.001)
        yield TextChunk(content="lo")
        yield DoneChunk()


class RecordingStore(InMemorySessionStore):
    """In-memory store that records every write."""

    def __init__(self) -> None:
        super().__init__(list_limit=50, title_max_length=50)
        self.writes: list[tuple[str, Any]] = []

    async def create(self, user_id: str) -> str:
        session_id = await super().create(user_id)
        self.writes.append(("create", session_id))
        return session_id

    async def update(self, user_id, session_id, *, messages=None, title=None) -> None:
        self.writes.append(("update", [m.model_copy() for m in messages or []]))
        await super().update(user_id, session_id, messages=messages, title=title)


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def crm_data() -> CRMData:
    return CRMData(
        contacts=[
            Contact(id="c1", first_name="Sundar", last_name="P", company="Google"),
            Contact(id="c2", first_name="Ada", last_name="Lovelace", company="Engines"),
        ]
    )


@pytest.fixture
def tool_layer() -> ToolExecutionLayer:
    registry = ToolRegistry()
    register_crm_tools(registry)
    return ToolExecutionLayer(registry)


def make_orchestrator(
    store, tool_layer, client, crm_data=None, **config
) -> ConversationOrchestrator:
    settings = AppConfig(**{"chat_flush_interval_ms": 0, "chat_clear_grace_ms": 0, **config})
    orchestrator = ConversationOrchestrator(
        USER, store, tool_layer, client=client, crm_data=crm_data, config=settings
    )
    orchestrator.start()
    return orchestrator


async def persisted(store: RecordingStore, session_id: str) -> list[ChatMessage]:
    session = await store.get(USER, session_id)
    return session.messages


async def wait_for(predicate, timeout: float = 1.0) -> None:
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0)

    await asyncio.wait_for(poll(), timeout)


@pytest.mark.asyncio
async def test_plain_text_reply_persists_two_messages(store, tool_layer) -> None:
    client = ScriptedClient(text("Hi ", "there!"))
    orchestrator = make_orchestrator(store, tool_layer, client)

    ctx = await orchestrator.send_message("Hello")

    messages = await persisted(store, ctx.session_id)
    assert [m.role for m in messages] == ["user", "assistant"]
    assert messages[1].content == "Hi there!"
    assert not any(m.is_streaming for m in messages)
    assert (await store.get(USER, ctx.session_id)).title == "Hello"
    assert ctx.state == TurnState.IDLE
    assert orchestrator.current_session_id == ctx.session_id
    assert orchestrator.render_state.get(ctx.session_id) is None
    assert not orchestrator.is_streaming


@pytest.mark.asyncio
async def test_tool_round_then_final_answer(store, tool_layer, crm_data) -> None:
    client = ScriptedClient(
        tool_round(("call_1", "searchContacts", {"query": "Google"})),
        text("You know Sundar at Google."),
    )
    orchestrator = make_orchestrator(store, tool_layer, client, crm_data)

    ctx = await orchestrator.send_message("find contacts at Google")

    messages = await persisted(store, ctx.session_id)
    assert [m.role for m in messages] == ["user", "assistant", "tool", "assistant"]
    assert [tc.id for tc in messages[1].tool_calls] == ["call_1"]
    (result,) = messages[2].tool_results
    assert result.tool_call_id == "call_1"
    assert result.success is True
    assert [c["company"] for c in result.result] == ["Google"]
    assert messages[3].content == "You know Sundar at Google."

    follow_up = client.requests[1]
    assert follow_up.messages[-1].role == "tool"
    assert "- Total Contacts: 2" in follow_up.system_prompt
    assert len(follow_up.tools) == 5


@pytest.mark.asyncio
async def test_failed_tool_result_is_persisted_and_loop_continues(store, tool_layer) -> None:
    client = ScriptedClient(
        tool_round(("call_1", "getContactDetails", {"contactName": "Nobody"})),
        text("I could not find that contact."),
    )
    orchestrator = make_orchestrator(store, tool_layer, client, CRMData())

    ctx = await orchestrator.send_message("Tell me about Nobody")

    messages = await persisted(store, ctx.session_id)
    assert [m.role for m in messages] == ["user", "assistant", "tool", "assistant"]
    (result,) = messages[2].tool_results
    assert result.success is False
    assert result.error == "Contact not found"
    assert len(client.requests) == 2


class _NoArgs(BaseModel):
    pass


@pytest.mark.asyncio
async def test_stop_with_queued_tool_calls(store) -> None:
    """Test only the started tool call completes and no follow-up round runs."""
    executed: list[str] = []
    holder: dict[str, ConversationOrchestrator] = {}

    async def stopping_tool(args: _NoArgs, ctx: ToolContext) -> dict:
        executed.append("first")
        holder["orchestrator"].stop_streaming()
        return {"ok": True}

    def second_tool(args: _NoArgs, ctx: ToolContext) -> dict:
        executed.append("second")
        return {"ok": True}

    registry = ToolRegistry()
    for name, executor in [("first", stopping_tool), ("second", second_tool)]:
        registry.register(
            ToolDefinition(name=name, description=name, category="query"), _NoArgs, executor
        )
    client = ScriptedClient(tool_round(("call_1", "first", {}), ("call_2", "second", {})))
    orchestrator = make_orchestrator(store, ToolExecutionLayer(registry), client)
    holder["orchestrator"] = orchestrator

    ctx = await orchestrator.send_message("Do two things")

    assert executed == ["first"]
    assert len(client.requests) == 1
    assert orchestrator.render_state.get(ctx.session_id) is None
    assert [m.role for m in await persisted(store, ctx.session_id)] == ["user"]
    assert ctx.machine.token.reason == "user"
    assert orchestrator.error is None


@pytest.mark.asyncio
async def test_iteration_limit_stops_tool_loop(store, tool_layer) -> None:
    stats_round = tool_round(("call_x", "getStats", {"metric": "overview"}))
    client = ScriptedClient(stats_round, stats_round, stats_round, text("never"))
    orchestrator = make_orchestrator(store, tool_layer, client, chat_max_iterations=2)

    ctx = await orchestrator.send_message("Loop forever")

    messages = await persisted(store, ctx.session_id)
    assert len(client.requests) == 2
    assert [m.role for m in messages] == ["user", "assistant", "tool", "assistant", "tool"]
    assert ctx.iteration_limit_reached is True
    assert ctx.machine.iteration == 2
    assert (await store.get(USER, ctx.session_id)).title == "Loop forever"


@pytest.mark.asyncio
async def test_abort_after_first_chunk(store, tool_layer) -> None:
    client = HangingClient()
    orchestrator = make_orchestrator(store, tool_layer, client)

    task = asyncio.create_task(orchestrator.send_message("Hi"))
    await wait_for(lambda: any(m.content == "Hel" for m in orchestrator.visible_messages()))
    assert orchestrator.is_streaming
    assert orchestrator.visible_messages()[-1].is_streaming

    orchestrator.stop_streaming()
    session_id = orchestrator.current_session_id
    assert orchestrator.render_state.get(session_id) is None
    assert not orchestrator.is_streaming

    ctx = await task

    assert ctx.state == TurnState.IDLE
    assert [m.role for m in await persisted(store, session_id)] == ["user"]
    assert orchestrator.render_state.get(session_id) is None
    assert (await store.get(USER, session_id)).title == "New Chat"


@pytest.mark.asyncio
async def test_nothing_streaming_is_persisted_and_tool_results_pair_up(
    store, tool_layer, crm_data
) -> None:
    client = ScriptedClient(
        [TextChunk(content="Checking. "), *tool_round(("call_a", "searchContacts", {}))],
        tool_round(
            ("call_b", "getStats", {"metric": "overview"}),
            ("call_c", "unknownTool", {}),
        ),
        text("All done."),
    )
    orchestrator = make_orchestrator(store, tool_layer, client, crm_data)

    await orchestrator.send_message("Summarize my CRM")

    updates = [payload for kind, payload in store.writes if kind == "update"]
    assert updates
    for messages in updates:
        assert not any(m.is_streaming for m in messages)
        for previous, message in zip(messages, messages[1:]):
            if message.role == "tool":
                assert previous.role == "assistant"
                assert [tc.id for tc in previous.tool_calls] == [
                    r.tool_call_id for r in message.tool_results
                ]
    final = updates[-1]
    assert final[1].content == "Checking. "
    assert [r.success for r in final[4].tool_results] == [True, False]
    assert final[4].tool_results[1].error == "Unknown tool: unknownTool"


@pytest.mark.asyncio
async def test_missing_client_reports_configuration_error(store, tool_layer) -> None:
    orchestrator = make_orchestrator(store, tool_layer, client=None, openai_api_key=None)

    assert orchestrator.configure_provider() is False
    result = await orchestrator.send_message("Hello")

    assert result is None
    assert "configure your API key" in orchestrator.error
    assert store.writes == []

    orchestrator.clear_error()
    assert orchestrator.error is None


@pytest.mark.asyncio
async def test_configure_provider_builds_openai_client(store, tool_layer) -> None:
    orchestrator = make_orchestrator(store, tool_layer, client=None)

    assert orchestrator.configure_provider("openai", "sk-test") is True
    assert isinstance(orchestrator.client, OpenAIStreamClient)
    assert orchestrator.error is None


@pytest.mark.asyncio
async def test_configure_provider_uses_key_of_selected_provider(store, tool_layer) -> None:
    orchestrator = make_orchestrator(
        store, tool_layer, client=None, openai_api_key=None, gemini_api_key="g-key"
    )

    assert orchestrator.configure_provider("gemini") is True
    assert isinstance(orchestrator.client, GeminiStreamClient)
    assert orchestrator.client.api_key == "g-key"
    assert orchestrator.configure_provider("openai") is False
    assert "configure your API key" in orchestrator.error


@pytest.mark.asyncio
async def test_second_turn_for_busy_session_is_rejected(store, tool_layer) -> None:
    client = HangingClient()
    orchestrator = make_orchestrator(store, tool_layer, client)
    task = asyncio.create_task(orchestrator.send_message("First"))
    await wait_for(lambda: orchestrator.is_streaming)

    rejected = await orchestrator.send_message("Second")

    assert rejected is None
    assert orchestrator.error == "A response is already in progress for this conversation."
    assert len(client.requests) == 1

    orchestrator.stop_streaming()
    await task


@pytest.mark.asyncio
async def test_stream_error_becomes_assistant_message(store, tool_layer) -> None:
    client = ScriptedClient([TextChunk(content="Part"), ErrorChunk(error="Rate limit exceeded.")])
    orchestrator = make_orchestrator(store, tool_layer, client)

    ctx = await orchestrator.send_message("Hello")

    messages = await persisted(store, ctx.session_id)
    assert [m.role for m in messages] == ["user", "assistant"]
    assert messages[1].content == "I encountered an error: Rate limit exceeded. Please try again."
    assert (await store.get(USER, ctx.session_id)).title == "New Chat"
    assert orchestrator.error is None


@pytest.mark.asyncio
async def test_follow_up_message_keeps_history(store, tool_layer) -> None:
    client = ScriptedClient(text("Hi!"), text("Still here."))
    orchestrator = make_orchestrator(store, tool_layer, client)

    first = await orchestrator.send_message("Hello")
    second = await orchestrator.send_message("Are you there?")

    assert second.session_id == first.session_id
    messages = await persisted(store, first.session_id)
    assert [m.content for m in messages] == ["Hello", "Hi!", "Are you there?", "Still here."]
    assert [m.role for m in client.requests[1].messages] == ["user", "assistant", "user"]
    assert (await store.get(USER, first.session_id)).title == "Hello"


@pytest.mark.asyncio
async def test_resume_after_interrupted_tool_round(store, tool_layer) -> None:
    session_id = await store.create(USER)
    await store.update(
        USER,
        session_id,
        messages=[
            ChatMessage(role="user", content="How many contacts?"),
            ChatMessage(
                role="assistant",
                tool_calls=[ToolCall(id="call_1", name="getStats", arguments={"metric": "all"})],
            ),
            ChatMessage(
                role="tool",
                tool_results=[
                    ToolResult(
                        tool_call_id="call_1",
                        name="getStats",
                        success=True,
                        result={"totalContacts": 2},
                    )
                ],
            ),
        ],
    )
    client = ScriptedClient(text("You have 2 contacts."))
    orchestrator = make_orchestrator(store, tool_layer, client)
    await wait_for(lambda: orchestrator.sessions)
    assert await orchestrator.select_session(session_id)

    ctx = await orchestrator.resume()

    messages = await persisted(store, session_id)
    assert [m.role for m in messages] == ["user", "assistant", "tool", "assistant"]
    assert messages[-1].content == "You have 2 contacts."
    assert ctx.title_source is None
    assert await orchestrator.resume() is None


@pytest.mark.asyncio
async def test_delete_session_clears_current(store, tool_layer) -> None:
    orchestrator = make_orchestrator(store, tool_layer, ScriptedClient(text("Hi")))
    ctx = await orchestrator.send_message("Hello")

    await orchestrator.delete_session(ctx.session_id)

    assert orchestrator.current_session_id is None
    assert await store.get(USER, ctx.session_id) is None
    assert "Hel" not in contents(orchestrator.visible_messages())


@pytest.mark.asyncio
async def test_listeners_are_notified(store, tool_layer) -> None:
    orchestrator = make_orchestrator(store, tool_layer, ScriptedClient(text("Hi")))
    calls: list[int] = []
    remove = orchestrator.add_listener(lambda: calls.append(1))

    await orchestrator.send_message("Hello")
    assert calls

    remove()
    count = len(calls)
    orchestrator.new_chat()
    assert len(calls) == count
    assert orchestrator.current_session_id is None


@pytest.mark.asyncio
async def test_set_crm_data_is_seen_by_the_next_turn(store, tool_layer, crm_data) -> None:
    client = ScriptedClient(
        tool_round(("call_1", "searchContacts", {"query": "Google"})),
        text("Nobody there."),
    )
    orchestrator = make_orchestrator(store, tool_layer, client, crm_data)

    orchestrator.set_crm_data(CRMData())
    ctx = await orchestrator.send_message("find contacts at Google")

    messages = await persisted(store, ctx.session_id)
    (result,) = messages[2].tool_results
    assert result.success is True
    assert result.result == []
    assert "- Total Contacts: 0" in client.requests[0].system_prompt


@pytest.mark.asyncio
async def test_close_cancels_turns_in_flight(store, tool_layer) -> None:
    orchestrator = make_orchestrator(store, tool_layer, HangingClient())
    task = asyncio.create_task(orchestrator.send_message("Hi"))
    await wait_for(lambda: orchestrator.is_streaming)
    session_id = orchestrator.current_session_id

    orchestrator.close()
    ctx = await task

    assert ctx.state == TurnState.IDLE
    assert ctx.machine.token.reason == "shutdown"
    assert [m.role for m in await persisted(store, session_id)] == ["user"]
    assert orchestrator.render_state.get(session_id) is None


async def seed_session(store: RecordingStore, *contents: str, title: str | None = None) -> str:
    """Create a session holding alternating user/assistant messages."""
    session_id = await store.create(USER)
    roles = ["user", "assistant"]
    messages = [
        ChatMessage(role=roles[i % 2], content=content) for i, content in enumerate(contents)
    ]
    await store.update(USER, session_id, messages=messages, title=title)
    return session_id


def contents(messages: list[ChatMessage]) -> list[str]:
    return [m.content for m in messages]


@pytest.mark.asyncio
async def test_send_before_first_push_keeps_stored_history(store, tool_layer) -> None:
    session_id = await seed_session(store, "Old question", "Old answer", title="Old")
    client = ScriptedClient(text("New answer"))
    orchestrator = make_orchestrator(store, tool_layer, client)
    assert orchestrator.mirror.get(session_id) is None

    assert await orchestrator.select_session(session_id)
    ctx = await orchestrator.send_message("New question")

    assert ctx.title_source is None
    assert contents(client.requests[0].messages) == ["Old question", "Old answer", "New question"]
    assert contents(await persisted(store, session_id)) == [
        "Old question",
        "Old answer",
        "New question",
        "New answer",
    ]
    assert (await store.get(USER, session_id)).title == "Old"


@pytest.mark.asyncio
async def test_select_unknown_session_is_rejected(store, tool_layer) -> None:
    orchestrator = make_orchestrator(store, tool_layer, ScriptedClient(text("Hi")))

    assert await orchestrator.select_session("missing") is False

    assert orchestrator.current_session_id is None
    assert orchestrator.error == "This conversation could not be found."


@pytest.mark.asyncio
async def test_send_to_deleted_session_writes_nothing(store, tool_layer) -> None:
    client = ScriptedClient(text("Hi"))
    orchestrator = make_orchestrator(store, tool_layer, client)
    ctx = await orchestrator.send_message("Hello")
    await store.delete(USER, ctx.session_id)
    await wait_for(lambda: not orchestrator.sessions)
    writes = len(store.writes)

    assert await orchestrator.send_message("Again") is None

    assert orchestrator.error == "This conversation could not be found."
    assert len(store.writes) == writes
    assert len(client.requests) == 1


class SlowCreateStore(RecordingStore):
    """Store whose create() blocks until released."""

    def __init__(self) -> None:
        super().__init__()
        self.release = asyncio.Event()

    async def create(self, user_id: str) -> str:
        await self.release.wait()
        return await super().create(user_id)


@pytest.mark.asyncio
async def test_stop_while_new_session_is_created(tool_layer) -> None:
    store = SlowCreateStore()
    client = ScriptedClient(text("Hi"))
    orchestrator = make_orchestrator(store, tool_layer, client)
    task = asyncio.create_task(orchestrator.send_message("Hello"))
    await wait_for(lambda: orchestrator.is_streaming)

    assert await orchestrator.send_message("Hello again") is None
    orchestrator.stop_streaming()
    assert not orchestrator.is_streaming
    store.release.set()
    ctx = await task

    assert ctx.machine.token.reason == "user"
    assert client.requests == []
    assert [m.role for m in await persisted(store, ctx.session_id)] == ["user"]
    assert orchestrator.render_state.get(ctx.session_id) is None


@pytest.mark.asyncio
async def test_finished_turn_stays_rendered_for_grace_window(store, tool_layer) -> None:
    orchestrator = make_orchestrator(
        store, tool_layer, ScriptedClient(text("Hi there")), chat_clear_grace_ms=50
    )

    ctx = await orchestrator.send_message("Hello")

    assert orchestrator.render_state.has(ctx.session_id)
    assert contents(orchestrator.visible_messages()) == ["Hello", "Hi there"]
    await wait_for(lambda: not orchestrator.render_state.has(ctx.session_id))
    assert contents(orchestrator.visible_messages()) == ["Hello", "Hi there"]


@pytest.mark.asyncio
async def test_abort_clears_render_state_despite_grace_window(store, tool_layer) -> None:
    orchestrator = make_orchestrator(
        store, tool_layer, HangingClient(), chat_clear_grace_ms=60_000
    )
    task = asyncio.create_task(orchestrator.send_message("Hi"))
    await wait_for(lambda: "Hel" in contents(orchestrator.visible_messages()))
    session_id = orchestrator.current_session_id

    orchestrator.stop_streaming()
    assert orchestrator.render_state.get(session_id) is None
    await task

    assert orchestrator.render_state.get(session_id) is None
    assert orchestrator.visible_messages() == []


@pytest.mark.asyncio
async def test_store_push_mid_stream_only_reaches_other_sessions(store, tool_layer) -> None:
    busy_id = await seed_session(store, "Old question", "Old answer")
    other_id = await seed_session(store, "Other question")
    orchestrator = make_orchestrator(store, tool_layer, HangingClient())
    await wait_for(lambda: len(orchestrator.sessions) == 2)
    assert await orchestrator.select_session(busy_id)

    task = asyncio.create_task(orchestrator.send_message("New question"))
    await wait_for(lambda: "Hel" in contents(orchestrator.visible_messages()))
    await store.update(USER, busy_id, messages=[ChatMessage(role="user", content="Stale")])
    await store.update(USER, other_id, messages=[ChatMessage(role="user", content="Edited")])
    await wait_for(lambda: contents(orchestrator.mirror.get(other_id).messages) == ["Edited"])

    assert contents(orchestrator.visible_messages()) == [
        "Old question",
        "Old answer",
        "New question",
        "Hel",
    ]
    busy = orchestrator.mirror.get(busy_id)
    assert contents(busy.messages) == ["Old question", "Old answer"]
    assert contents(orchestrator.visible_messages(other_id)) == ["Edited"]

    orchestrator.stop_streaming()
    await task


class MemoryWriter:
    """CRMWriter that hands out sequential ids and stores nothing."""

    def __init__(self) -> None:
        self.count = 0

    def _new_id(self) -> str:
        self.count += 1
        return f"id_{self.count}"

    async def add_contact(self, user_id: str, fields: dict[str, Any]) -> str:
        return self._new_id()

    async def add_interaction(self, user_id: str, fields: dict[str, Any]) -> str:
        return self._new_id()

    async def add_task(self, user_id: str, fields: dict[str, Any]) -> str:
        return self._new_id()

    async def update_contact(self, user_id: str, contact_id: str, updates: dict[str, Any]) -> None:
        pass

    async def update_task(self, user_id: str, task_id: str, updates: dict[str, Any]) -> None:
        pass


@pytest.mark.asyncio
async def test_tool_round_can_reference_contact_it_created(store, crm_data) -> None:
    registry = ToolRegistry()
    register_crm_tools(registry, writer=MemoryWriter())
    client = ScriptedClient(
        tool_round(
            ("call_1", "addContact", {"firstName": "Jane", "lastName": "Doe"}),
            (
                "call_2",
                "addInteraction",
                {"contactName": "Jane Doe", "type": "Call", "notes": "Hi"},
            ),
        ),
        text("Added Jane and logged the call."),
    )
    orchestrator = make_orchestrator(store, ToolExecutionLayer(registry), client, crm_data)

    ctx = await orchestrator.send_message("Add Jane Doe and log a call")

    tool_message = (await persisted(store, ctx.session_id))[2]
    assert [r.success for r in tool_message.tool_results] == [True, True]
    assert len(orchestrator.crm_data.contacts) == 2
