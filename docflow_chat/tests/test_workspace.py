import asyncio

from docflow_chat.domain.models import Message, ModelConfig
from docflow_chat.engine.brainstorm import BrainstormCoordinator
from docflow_chat.engine.conversations import ConversationCache
from docflow_chat.engine.session import ChatSession
from docflow_chat.engine.tabs import ChatTabs, title_from_input
from docflow_chat.engine.workspace import ChatWorkspace, DocumentReference
from docflow_chat.infrastructure.notifications import RecordingNotifier

from stream_fakes import FakeConversationApi, FakeTransport, QueueHandle, SettingsStub, delta, spin, summary


def _workspace(*outcomes, api=None):
    api = api or FakeConversationApi()
    cfg = SettingsStub()
    notifier = RecordingNotifier()
    transport = FakeTransport(*outcomes)
    session = ChatSession(transport, api=api, notifier=notifier, cfg=cfg)
    ws = ChatWorkspace(
        session=session,
        tabs=ChatTabs(cfg),
        cache=ConversationCache(api, notifier=notifier, cfg=cfg),
        brainstorm=BrainstormCoordinator(transport, notifier=notifier, cfg=cfg),
    )
    return ws, transport


CONFIG = ModelConfig(model_name="m")


def test_title_from_input_truncates_to_24_chars():
    assert title_from_input("短标题") == "短标题"
    assert title_from_input("一" * 30) == "一" * 24 + "..."


def test_tabs_remove_active_moves_to_neighbour():
    tabs = ChatTabs(SettingsStub())
    a, b, c = tabs.add_tab(), tabs.add_tab(), tabs.add_tab()
    tabs.set_active(b)
    tabs.remove_tab(b)
    assert tabs.active_id == c
    tabs.remove_tab(c)
    assert tabs.active_id == a
    tabs.remove_tab(a)
    assert tabs.active_id is None


def test_tabs_bind_conversation_latches_once():
    tabs = ChatTabs(SettingsStub())
    tab_id = tabs.add_tab()
    assert tabs.bind_conversation(tab_id, "c-1") is True
    assert tabs.bind_conversation(tab_id, "c-2") is False
    assert tabs.find_by_conversation("c-1").id == tab_id


def test_send_prefixes_reference_retitles_and_binds_tab():
    async def scenario():
        handle = QueueHandle()
        ws, transport = _workspace(handle)
        ref = DocumentReference(file_name="README.md", start_line=3, end_line=4, content="line3\nline4")
        ws.send("帮我总结这一段内容，并给出三条修改建议", CONFIG, document_reference=ref)
        handle.feed(delta("好的", conversation_id="c-1"), delta(finish="stop"))
        await ws.session.wait()

        sent = transport.requests[0].payload["messages"][-1]["content"]
        assert sent.startswith("```README.md (行 3-4)\nline3\nline4\n```\n\n")
        assert sent.endswith("帮我总结这一段内容，并给出三条修改建议")
        tab = ws.tabs.active
        assert tab.title == "帮我总结这一段内容，并给出三条修改建议"
        assert tab.conversation_id == "c-1"
        assert [s.id for s in ws.cache.sessions] == ["c-1"]

    asyncio.run(scenario())


def test_switch_tab_stops_streaming_and_loads_history():
    async def scenario():
        handle = QueueHandle()
        api = FakeConversationApi(details={"c-9": [Message(id="h1", role="user", content="old")]})
        ws, _ = _workspace(handle, api=api)
        first = ws.tabs.active_id
        ws.tabs.add_tab(title="历史", conversation_id="c-9")
        second = ws.tabs.active_id
        ws.tabs.set_active(first)

        ws.send("hi", CONFIG)
        handle.feed(delta("part"))
        await spin()
        assert await ws.switch_tab(second) is True
        assert handle.cancelled
        assert [m.id for m in ws.session.messages] == ["h1"]
        assert ws.session.conversation_id == "c-9"
        assert ws.session.status == "idle"

    asyncio.run(scenario())


def test_new_and_close_tab_reset_session():
    async def scenario():
        ws, _ = _workspace()
        ws.session.messages.append(Message(id="x", role="user", content="keep"))
        tab_id = ws.new_tab()
        assert ws.tabs.active_id == tab_id
        assert ws.session.messages == []

        for t in list(ws.tabs.tabs):
            await ws.close_tab(t.id)
        assert len(ws.tabs.tabs) == 1
        assert ws.tabs.active.title == "新对话"

    asyncio.run(scenario())


def test_open_session_reuses_bound_tab():
    async def scenario():
        api = FakeConversationApi(details={"c-1": [Message(id="h", role="assistant", content="a")]})
        ws, _ = _workspace(api=api)
        await ws.open_session(summary("c-1", title="周报"))
        tab_id = ws.tabs.active_id
        assert ws.tabs.active.title == "周报"
        ws.new_tab()
        await ws.open_session(summary("c-1", title="周报"))
        assert ws.tabs.active_id == tab_id
        assert len(ws.tabs.tabs) == 3
        assert ws.session.conversation_id == "c-1"

    asyncio.run(scenario())
