from __future__ import annotations

import asyncio

import pytest
from acp import RequestError

from acpquest.client.session import QuestSession
from acpquest.client.session_state import AgentItem, ToolCallItem
from acpquest.config import ClientSettings
from tests.utils import FakeConnector, make_session, sent_frames, update_frame, wait_until, wire


async def _open_quest(session: QuestSession, session_id: str = "s1", cwd: str = "/tmp", **result) -> str:
    task = asyncio.create_task(session.create_quest(cwd))
    await wait_until(lambda: session.correlator.pending_ids)
    request_id = session.correlator.pending_ids[-1]
    await session._on_raw_message(wire(id=request_id, result={"sessionId": session_id, **result}))
    return await task


@pytest.mark.asyncio
async def test_session_new_creates_active_quest():
    session = make_session()

    quest_id = await _open_quest(session)

    assert sent_frames(session) == [
        {"jsonrpc": "2.0", "id": 1, "method": "session/new", "params": {"cwd": "/tmp", "mcpServers": []}}
    ]
    assert quest_id == "s1"
    state = session.state
    assert list(state.quests) == ["s1"]
    assert state.active_quest_id == "s1"
    assert state.quests["s1"].title == "Quest 1"
    assert state.quests["s1"].created_at == 1000.0


@pytest.mark.asyncio
async def test_session_new_records_catalogs():
    session = make_session()
    await _open_quest(
        session,
        models={"availableModels": [{"modelId": "m1", "name": "One"}, {"bogus": True}], "currentModelId": "m1"},
        modes={"availableModes": [{"id": "ask", "name": "Ask"}], "currentModeId": "ask"},
    )
    state = session.state
    assert [m.model_id for m in state.models] == ["m1"]
    assert [m.id for m in state.modes] == ["ask"]
    assert state.quests["s1"].current_model_id == "m1"
    assert state.quests["s1"].current_mode_id == "ask"


@pytest.mark.asyncio
async def test_session_new_defaults_to_configured_cwd():
    session = make_session()
    task = asyncio.create_task(session.create_quest())
    await wait_until(lambda: session.correlator.pending_ids)
    assert sent_frames(session)[0]["params"]["cwd"] == "/work"
    await session._on_raw_message(wire(id=1, result={"sessionId": "s9"}))
    assert await task == "s9"


@pytest.mark.asyncio
async def test_session_new_without_session_id_raises():
    session = make_session()
    task = asyncio.create_task(session.create_quest("/tmp"))
    await wait_until(lambda: session.correlator.pending_ids)
    await session._on_raw_message(wire(id=1, result={}))
    with pytest.raises(RequestError):
        await task
    assert session.state.quests == {}


@pytest.mark.asyncio
async def test_streamed_text_then_tool_call():
    session = make_session()
    await _open_quest(session)

    await session._on_raw_message(
        update_frame("s1", {"sessionUpdate": "agent_message_chunk", "content": {"type": "text", "text": "Hi"}})
    )
    await session._on_raw_message(
        update_frame("s1", {"sessionUpdate": "tool_call", "toolCallId": "tc1", "title": "Read", "kind": "read"})
    )

    items = session.state.quests["s1"].items
    assert len(items) == 2
    assert isinstance(items[0], AgentItem)
    assert (items[0].text, items[0].complete) == ("Hi", True)
    assert isinstance(items[1], ToolCallItem)
    assert (items[1].tool_call_id, items[1].status) == ("tc1", "pending")


@pytest.mark.asyncio
async def test_send_prompt_completes_with_stop_reason():
    session = make_session()
    await _open_quest(session)

    task = asyncio.create_task(session.send_prompt("hello"))
    await wait_until(lambda: session.correlator.pending_ids)
    assert session.state.quests["s1"].processing is True
    prompt = sent_frames(session)[-1]
    assert prompt["method"] == "session/prompt"
    assert prompt["params"]["sessionId"] == "s1"
    assert prompt["params"]["prompt"][0]["text"] == "hello"

    await session._on_raw_message(wire(id=prompt["id"], result={"stopReason": "end_turn"}))
    assert await task == "end_turn"
    quest = session.state.quests["s1"]
    assert quest.processing is False
    assert quest.last_stop_reason == "end_turn"


@pytest.mark.asyncio
async def test_prompt_error_is_recorded_as_error_stop_reason():
    session = make_session()
    await _open_quest(session)

    task = asyncio.create_task(session.send_prompt("hello"))
    await wait_until(lambda: session.correlator.pending_ids)
    prompt_id = session.correlator.pending_ids[0]
    await session._on_raw_message(wire(id=prompt_id, error={"code": -32603, "message": "model exploded"}))

    assert await task == "error"
    assert session.state.quests["s1"].processing is False


@pytest.mark.asyncio
async def test_prompt_completion_targets_original_quest_after_switch():
    session = make_session()
    await _open_quest(session, "s1")
    task = asyncio.create_task(session.send_prompt("long job"))
    await wait_until(lambda: session.correlator.pending_ids)
    prompt_id = session.correlator.pending_ids[0]

    await _open_quest(session, "s2")
    assert session.state.active_quest_id == "s2"

    await session._on_raw_message(wire(id=prompt_id, result={"stopReason": "end_turn"}))
    await task
    assert session.state.quests["s1"].processing is False
    assert session.state.quests["s1"].last_stop_reason == "end_turn"
    assert session.state.quests["s2"].last_stop_reason is None


@pytest.mark.asyncio
async def test_send_prompt_without_quest_does_nothing():
    session = make_session()
    assert await session.send_prompt("hi") is None
    assert sent_frames(session) == []


@pytest.mark.asyncio
async def test_permission_round_trip():
    session = make_session()
    await _open_quest(session)
    await session._on_raw_message(
        wire(
            id=40,
            method="session/request_permission",
            params={
                "sessionId": "s1",
                "options": [{"optionId": "yes", "name": "Allow", "kind": "allow_once"}],
                "toolCall": {"toolCallId": "tc1"},
            },
        )
    )
    assert session.state.pending_permission is not None

    with pytest.raises(ValueError):
        await session.respond_permission("nope")
    assert await session.respond_permission("yes") is True

    reply = sent_frames(session)[-1]
    assert reply["id"] == 40
    assert reply["result"]["outcome"]["outcome"] == "selected"
    assert reply["result"]["outcome"]["optionId"] == "yes"
    assert session.state.pending_permission is None
    assert await session.respond_permission("yes") is False


@pytest.mark.asyncio
async def test_cancel_also_cancels_pending_permission():
    session = make_session()
    await _open_quest(session)
    await session._on_raw_message(
        wire(
            id=41,
            method="session/request_permission",
            params={"sessionId": "s1", "options": [{"optionId": "yes", "kind": "allow_once"}]},
        )
    )

    await session.cancel_prompt()

    frames = sent_frames(session)
    assert frames[-2] == {"jsonrpc": "2.0", "method": "session/cancel", "params": {"sessionId": "s1"}}
    assert frames[-1]["id"] == 41
    assert frames[-1]["result"]["outcome"]["outcome"] == "cancelled"
    assert session.state.pending_permission is None


@pytest.mark.asyncio
async def test_agent_file_request_gets_stub_reply():
    session = make_session()
    await session._on_raw_message(wire(id=77, method="fs/read_text_file", params={"path": "x"}))
    assert sent_frames(session) == [{"jsonrpc": "2.0", "id": 77, "result": {"content": ""}}]


@pytest.mark.asyncio
async def test_set_model_is_optimistic_even_when_rejected():
    session = make_session()
    await _open_quest(session)

    task = asyncio.create_task(session.set_model("big"))
    await wait_until(lambda: session.correlator.pending_ids)
    assert session.state.quests["s1"].current_model_id == "big"
    request = sent_frames(session)[-1]
    assert request["params"] == {"sessionId": "s1", "modelId": "big"}

    await session._on_raw_message(wire(id=request["id"], error={"code": -32602, "message": "unknown model"}))
    assert await task is False
    assert session.state.quests["s1"].current_model_id == "big"


@pytest.mark.asyncio
async def test_set_mode_round_trip():
    session = make_session()
    await _open_quest(session)
    task = asyncio.create_task(session.set_mode("code"))
    await wait_until(lambda: session.correlator.pending_ids)
    request = sent_frames(session)[-1]
    await session._on_raw_message(wire(id=request["id"], result={}))
    assert await task is True
    assert session.state.quests["s1"].current_mode_id == "code"


@pytest.mark.asyncio
async def test_switch_and_close_quests():
    session = make_session()
    await _open_quest(session, "s1")
    await _open_quest(session, "s2")

    assert session.switch_quest("s1") is True
    assert session.switch_quest("missing") is False
    assert session.state.active_quest_id == "s1"
    assert session.close_quest() is True
    assert session.state.active_quest_id == "s2"
    assert session.close_quest("missing") is False


@pytest.mark.asyncio
async def test_garbage_and_unmatched_frames_are_ignored():
    session = make_session()
    before = session.state
    await session._on_raw_message("not json")
    await session._on_raw_message(wire(id=999, result={}))
    await session._on_raw_message(wire(method="session/other", params={}))
    assert session.state is before


@pytest.mark.asyncio
async def test_cancelled_request_is_discarded():
    session = make_session()
    task = asyncio.create_task(session.create_quest("/tmp"))
    await wait_until(lambda: session.correlator.pending_ids)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert session.correlator.pending_ids == ()


@pytest.mark.asyncio
async def test_connect_initializes_and_reinitializes_after_reconnect():
    connector = FakeConnector()
    settings = ClientSettings(url="ws://agent.test/acp", reconnect_base_delay=0.0)
    session = QuestSession(settings, connector=connector)

    async def _answer_initialize(ws) -> None:
        await wait_until(lambda: ws.sent)
        request = ws.sent_frames()[0]
        assert request["method"] == "initialize"
        ws.feed(wire(id=request["id"], result={"protocolVersion": 1, "agentInfo": {"name": "bridge"}}))

    session.start()
    await wait_until(lambda: connector.sockets)
    await _answer_initialize(connector.latest)
    await wait_until(lambda: session.state.initialized)
    assert session.state.connected is True
    assert session.state.protocol_version == 1
    assert session.state.agent_info == {"name": "bridge"}

    connector.latest.drop()
    await wait_until(lambda: not session.state.connected)
    assert session.state.initialized is False

    await wait_until(lambda: len(connector.sockets) == 2)
    await _answer_initialize(connector.latest)
    await wait_until(lambda: session.state.initialized)
    # the second handshake used a fresh id
    assert connector.latest.sent_frames()[0]["id"] == 2

    await session.disconnect()
    assert session.state.connected is False
