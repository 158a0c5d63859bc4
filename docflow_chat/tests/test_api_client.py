import asyncio
import json

import httpx
import pytest

from docflow_chat.api.client import ChatApiClient
from docflow_chat.domain.exceptions import ApiError, NetworkError

from stream_fakes import SettingsStub


def _envelope(data, code=200, message="success"):
    return {"code": code, "message": message, "data": data, "timestamp": 1700000000}


def _run(handler, call):
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await call(ChatApiClient(SettingsStub(), client=client))

    return asyncio.run(scenario())


def test_list_conversations_unwraps_envelope():
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(
            200,
            json=_envelope(
                {
                    "list": [
                        {
                            "id": "c-1",
                            "title": "周报",
                            "created_at": "2024-05-01T10:00:00Z",
                            "last_message_at": "2024-05-02T10:00:00Z",
                            "message_count": 4,
                        }
                    ],
                    "total": 31,
                }
            ),
        )

    page = _run(handler, lambda api: api.list_conversations(2))
    assert seen["params"] == {"page": "2", "page_size": "20"}
    assert page.total == 31
    assert page.items[0].title == "周报"
    assert page.items[0].last_message_at.day == 2


def test_get_conversation_parses_messages():
    def handler(request):
        assert request.url.path == "/api/v1/chat/conversations/c-1"
        return httpx.Response(
            200,
            json=_envelope(
                {
                    "id": "c-1",
                    "title": "t",
                    "created_at": "2024-05-01T10:00:00Z",
                    "last_message_at": "2024-05-01T10:00:00Z",
                    "message_count": 1,
                    "messages": [
                        {"id": "m-1", "role": "user", "content": "hi", "created_at": "2024-05-01T10:00:00Z"}
                    ],
                }
            ),
        )

    detail = _run(handler, lambda api: api.get_conversation("c-1"))
    assert detail.summary.id == "c-1"
    assert [(m.role, m.content) for m in detail.messages] == [("user", "hi")]


def test_reads_retry_on_network_error():
    calls = []

    def handler(request):
        calls.append(1)
        if len(calls) < 3:
            raise httpx.ConnectError("reset", request=request)
        return httpx.Response(200, json=_envelope({"list": []}))

    assert _run(handler, lambda api: api.list_models()) == []
    assert len(calls) == 3


def test_mutations_give_up_after_configured_retries():
    calls = []

    def handler(request):
        calls.append(request.method)
        raise httpx.ConnectError("reset", request=request)

    with pytest.raises(NetworkError):
        _run(handler, lambda api: api.delete_conversation("c-1"))
    assert calls == ["DELETE", "DELETE"]


def test_api_errors_are_not_retried():
    calls = []

    def handler(request):
        calls.append(1)
        return httpx.Response(404, json={"code": 404, "message": "会话不存在"})

    with pytest.raises(ApiError) as exc_info:
        _run(handler, lambda api: api.get_conversation("nope"))
    assert exc_info.value.http_status == 404
    assert exc_info.value.message == "会话不存在"
    assert calls == [1]


def test_envelope_failure_code_raises_api_error():
    def handler(request):
        return httpx.Response(200, json=_envelope(None, code=40001, message="标题过长"))

    with pytest.raises(ApiError) as exc_info:
        _run(handler, lambda api: api.update_conversation_title("c-1", "x" * 500))
    assert exc_info.value.message == "标题过长"


def test_update_title_sends_patch_body():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_envelope(None))

    _run(handler, lambda api: api.update_conversation_title("c-1", "新标题"))
    assert seen == {"method": "PATCH", "body": {"title": "新标题"}}


def test_malformed_conversation_detail_raises_bad_response():
    def handler(request):
        return httpx.Response(200, json={"code": 0, "data": {"id": "c1", "title": "t", "messages": []}})

    with pytest.raises(ApiError) as exc_info:
        _run(handler, lambda api: api.get_conversation("c1"))
    assert exc_info.value.code == "BAD_RESPONSE"
    assert exc_info.value.extra["conversation_id"] == "c1"


def test_malformed_conversation_list_raises_bad_response():
    def handler(request):
        return httpx.Response(200, json=_envelope({"list": [{"id": "c-1", "created_at": "yesterday"}]}))

    with pytest.raises(ApiError) as exc_info:
        _run(handler, lambda api: api.list_conversations())
    assert exc_info.value.code == "BAD_RESPONSE"
