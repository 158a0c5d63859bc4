import asyncio
import json
from datetime import datetime, timezone
from typing import Dict, List, Optional

from docflow_chat.domain.conversation import ConversationDetail, ConversationPage, ConversationSummary
from docflow_chat.domain.exceptions import ApiError
from docflow_chat.domain.models import Message


class SettingsStub:
    api_base_url = "http://backend.test"
    api_token = "t"
    http_timeout = 1.0
    request_retries = 2
    mutation_retries = 1
    request_retry_delay = 0.0
    flush_interval = 0.0
    default_model = "model-a"
    brainstorm_model = "model-b"
    brainstorm_min_count = 1
    brainstorm_max_count = 5
    brainstorm_temperature = 1.2
    conversation_page_size = 20
    locale = "zh"


def data(obj) -> str:
    return f"data: {json.dumps(obj, ensure_ascii=False)}\n"


def delta(content="", reasoning="", finish=None, conversation_id=None) -> str:
    obj = {"choices": [{"delta": {"content": content, "reasoning_content": reasoning}, "finish_reason": finish}]}
    if conversation_id:
        obj["conversation_id"] = conversation_id
    return data(obj)


async def spin(times: int = 10) -> None:
    for _ in range(times):
        await asyncio.sleep(0)


class QueueHandle:
    """由测试逐块喂数据的流式句柄：None 表示 EOF，异常对象会在读取时抛出。"""

    def __init__(self, headers: Optional[Dict[str, str]] = None):
        self.headers = headers or {}
        self.queue: asyncio.Queue = asyncio.Queue()
        self._cancelled = False
        self.closed = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def feed(self, *items) -> None:
        for item in items:
            self.queue.put_nowait(item)

    def end(self) -> None:
        self.queue.put_nowait(None)

    async def chunks(self):
        while True:
            item = await self.queue.get()
            if item is None or self._cancelled:
                return
            if isinstance(item, BaseException):
                raise item
            yield item.encode("utf-8") if isinstance(item, str) else item

    def cancel(self) -> None:
        self._cancelled = True

    async def aclose(self) -> None:
        self.closed = True


class FakeTransport:
    """按顺序返回预先准备的句柄（或抛出预先准备的异常），并记录请求。"""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests = []

    async def open(self, request):
        self.requests.append(request)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def summary(cid: str, title: str = "t") -> ConversationSummary:
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return ConversationSummary(id=cid, title=title, created_at=now, last_message_at=now, message_count=2)


class FakeConversationApi:
    def __init__(self, sessions: Optional[List[ConversationSummary]] = None, details=None):
        self.sessions = list(sessions or [])
        self.details: Dict[str, List[Message]] = dict(details or {})
        self.list_calls: List[int] = []
        self.deleted: List[str] = []
        self.renamed: List[tuple] = []
        self.fail_with: Optional[BaseException] = None
        self.gate: Optional[asyncio.Event] = None

    async def list_conversations(self, page: int = 1, page_size: int = 20) -> ConversationPage:
        self.list_calls.append(page)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        start = (page - 1) * page_size
        return ConversationPage(items=self.sessions[start:start + page_size], total=len(self.sessions))

    async def get_conversation(self, conversation_id: str) -> ConversationDetail:
        if self.fail_with is not None:
            raise self.fail_with
        if conversation_id not in self.details:
            raise ApiError(code="API_ERROR", message="会话不存在", http_status=404)
        return ConversationDetail(summary=summary(conversation_id), messages=list(self.details[conversation_id]))

    async def delete_conversation(self, conversation_id: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.deleted.append(conversation_id)

    async def update_conversation_title(self, conversation_id: str, title: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.renamed.append((conversation_id, title))

    async def list_models(self):
        return []
