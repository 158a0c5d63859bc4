"""会话管理 REST 客户端。

本模块负责：

1. 调用 /api/v1/chat/conversations 与 /api/v1/chat/models 等普通（非流式）接口。
2. 解包统一响应信封 {code, message, data, timestamp}。
3. 网络错误按配置重试（查询类 request_retries 次，变更类 mutation_retries 次），
   其余错误映射到 TransportError 层级后直接抛出。
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from docflow_chat.config.settings import settings
from docflow_chat.domain.conversation import ConversationDetail, ConversationPage, ConversationSummary
from docflow_chat.domain.exceptions import ApiError, NetworkError
from docflow_chat.domain.models import ChatModel
from docflow_chat.infrastructure.logging.logger import log_event
from docflow_chat.transport.http_transport import auth_headers, status_error

CONVERSATIONS_PATH = "/api/v1/chat/conversations"
MODELS_PATH = "/api/v1/chat/models"

_SUCCESS_CODES = (0, 200)


class ChatApiClient:
    """ConversationApi 的 httpx 实现。

    传入 client 时复用该 AsyncClient（测试中可注入 httpx.MockTransport），
    否则每次请求新建一个。
    """

    name = "chat_api"

    def __init__(self, cfg=settings, client: Optional[httpx.AsyncClient] = None):
        self._settings = cfg
        self._client = client

    async def list_conversations(self, page: int = 1, page_size: Optional[int] = None) -> ConversationPage:
        size = page_size or self._settings.conversation_page_size
        data = await self._request("GET", CONVERSATIONS_PATH, params={"page": page, "page_size": size})
        data = data or {}
        try:
            items = [ConversationSummary.from_payload(item) for item in data.get("list") or []]
            return ConversationPage(items=items, total=int(data.get("total", len(items))))
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise _bad_response("conversation list malformed", e) from e

    async def get_conversation(self, conversation_id: str) -> ConversationDetail:
        data = await self._request("GET", f"{CONVERSATIONS_PATH}/{conversation_id}")
        if not isinstance(data, dict):
            raise ApiError(code="BAD_RESPONSE", message="conversation detail missing", conversation_id=conversation_id)
        try:
            return ConversationDetail.from_payload(data)
        except (KeyError, ValueError, TypeError) as e:
            raise _bad_response("conversation detail malformed", e, conversation_id=conversation_id) from e

    async def delete_conversation(self, conversation_id: str) -> None:
        await self._request("DELETE", f"{CONVERSATIONS_PATH}/{conversation_id}", mutation=True)

    async def update_conversation_title(self, conversation_id: str, title: str) -> None:
        await self._request(
            "PATCH",
            f"{CONVERSATIONS_PATH}/{conversation_id}/title",
            json={"title": title},
            mutation=True,
        )

    async def list_models(self) -> List[ChatModel]:
        data = await self._request("GET", MODELS_PATH) or {}
        return [
            ChatModel(
                id=str(m["id"]),
                name=m.get("name") or str(m["id"]),
                description=m.get("description") or "",
                support_thinking=bool(m.get("support_thinking", False)),
                max_context_length=int(m.get("max_context_length", 0)),
            )
            for m in data.get("list") or []
        ]

    # ---- 内部 ----

    def _retrying(self, mutation: bool) -> AsyncRetrying:
        retries = self._settings.mutation_retries if mutation else self._settings.request_retries
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(retries + 1),
            wait=wait_fixed(self._settings.request_retry_delay),
            retry=retry_if_exception_type(NetworkError),
        )

    async def _request(self, method: str, path: str, *, mutation: bool = False, **kwargs) -> Any:
        async for attempt in self._retrying(mutation):
            with attempt:
                return await self._send(method, path, attempt.retry_state.attempt_number, **kwargs)

    async def _send(self, method: str, path: str, attempt: int, **kwargs) -> Any:
        url = f"{self._settings.api_base_url}{path}"
        log_ctx = {"component": self.name, "method": method, "url": url, "attempt": attempt}
        try:
            if self._client is not None:
                resp = await self._client.request(method, url, headers=auth_headers(self._settings), **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                    resp = await client.request(method, url, headers=auth_headers(self._settings), **kwargs)
        except httpx.RequestError as e:
            log_event(logging.WARNING, "Request failed", log_ctx, error=str(e))
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__, url=url)
        if resp.status_code >= 400:
            log_event(logging.ERROR, "Request rejected", log_ctx, status=resp.status_code)
            raise status_error(resp.status_code, resp.content, url)
        return self._unwrap(resp, url)

    def _unwrap(self, resp: httpx.Response, url: str) -> Any:
        if not resp.content:
            return None
        try:
            body: Dict[str, Any] = resp.json()
        except ValueError:
            raise ApiError(code="BAD_RESPONSE", message="response is not JSON", http_status=resp.status_code, url=url)
        if not isinstance(body, dict) or "code" not in body:
            return body
        if body.get("code") not in _SUCCESS_CODES:
            raise ApiError(
                code="API_ERROR",
                message=str(body.get("message") or "request failed"),
                http_status=resp.status_code,
                url=url,
                business_code=body.get("code"),
            )
        return body.get("data")


def _bad_response(message: str, cause: Exception, **extra: Any) -> ApiError:
    log_event(logging.ERROR, "Malformed response payload", {"component": ChatApiClient.name}, error=repr(cause), **extra)
    return ApiError(code="BAD_RESPONSE", message=f"{message}: {cause!r}", **extra)
