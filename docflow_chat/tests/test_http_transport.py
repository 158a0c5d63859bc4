import asyncio
import json

import httpx
import pytest

from docflow_chat.domain.exceptions import ApiError, NetworkError, RateLimitError
from docflow_chat.domain.models import ModelConfig, StreamRequest
from docflow_chat.engine.session import ChatSession
from docflow_chat.infrastructure.notifications import RecordingNotifier
from docflow_chat.transport.http_transport import HttpStreamTransport, status_error

from stream_fakes import SettingsStub


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_open_streams_body_and_exposes_headers():
    captured = {}

    def handler(request):
        captured["url"] = str(request.url)
        captured["auth"] = request.headers.get("Authorization")
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, headers={"Session-Id": "s-1"}, content=b"data: [DONE]\n")

    async def scenario():
        async with _client(handler) as client:
            transport = HttpStreamTransport(SettingsStub(), client=client)
            handle = await transport.open(StreamRequest(path="/api/v1/chat/completions", payload={"a": 1}))
            body = b"".join([chunk async for chunk in handle.chunks()])
            await handle.aclose()
            return handle, body

    handle, body = asyncio.run(scenario())
    assert body == b"data: [DONE]\n"
    assert handle.headers["session-id"] == "s-1"
    assert captured == {
        "url": "http://backend.test/api/v1/chat/completions",
        "auth": "Bearer t",
        "body": {"a": 1},
    }


def test_connect_error_maps_to_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async def scenario():
        async with _client(handler) as client:
            await HttpStreamTransport(SettingsStub(), client=client).open(StreamRequest(path="/x", payload={}))

    with pytest.raises(NetworkError):
        asyncio.run(scenario())


def test_rate_limit_and_server_message():
    def handler(request):
        if request.url.path == "/limited":
            return httpx.Response(429)
        return httpx.Response(500, json={"code": 500, "message": "服务异常"})

    async def scenario(path):
        async with _client(handler) as client:
            await HttpStreamTransport(SettingsStub(), client=client).open(StreamRequest(path=path, payload={}))

    with pytest.raises(RateLimitError):
        asyncio.run(scenario("/limited"))
    with pytest.raises(ApiError) as exc_info:
        asyncio.run(scenario("/broken"))
    assert exc_info.value.message == "服务异常"
    assert exc_info.value.http_status == 500


def test_status_error_falls_back_to_reason_phrase():
    err = status_error(404, b"<html>not found</html>")
    assert isinstance(err, ApiError)
    assert err.message == "HTTP 404: Not Found"


def test_session_over_http_transport_end_to_end():
    body = (
        'data: {"conversation_id": "c-7", "choices": [{"delta": {"content": "你"}}]}\n'
        'data: {"choices": [{"delta": {"content": "好"}, "finish_reason": "stop"}]}\n'
        "data: [DONE]\n"
    ).encode("utf-8")

    def handler(request):
        return httpx.Response(200, content=body)

    async def scenario():
        async with _client(handler) as client:
            session = ChatSession(
                HttpStreamTransport(SettingsStub(), client=client),
                notifier=RecordingNotifier(),
                cfg=SettingsStub(),
            )
            session.send_message("hi", ModelConfig(model_name="m"))
            await session.wait()
            return session

    session = asyncio.run(scenario())
    assert session.messages[-1].content == "你好"
    assert session.conversation_id == "c-7"
    assert session.status == "idle"
