"""基于 httpx.AsyncClient 的流式传输实现。

本模块负责：

1. 把 StreamRequest 转换成带鉴权头的 POST 请求，并以 stream=True 发送。
2. 打开阶段的网络错误、限流与非 2xx 状态映射到统一的 TransportError 层级。
3. 逐块读取响应体；读取中途失败映射为 NetworkError，已取消时安静结束。
"""

import asyncio
import json
import logging
from typing import AsyncIterator, Dict, Mapping, Optional

import httpx

from docflow_chat.config.settings import settings
from docflow_chat.domain.exceptions import ApiError, NetworkError, RateLimitError, TransportError
from docflow_chat.domain.models import StreamRequest
from docflow_chat.infrastructure.logging.logger import log_event


def status_error(status: int, body: bytes, url: str = "") -> TransportError:
    """把非 2xx 响应转换为异常；JSON 错误体中的 message 优先作为提示。"""

    message = ""
    try:
        data = json.loads(body.decode("utf-8", errors="replace")) if body else None
    except json.JSONDecodeError:
        data = None
    if isinstance(data, dict):
        message = str(data.get("message") or data.get("error") or "")
    if not message:
        message = f"HTTP {status}: {httpx.codes.get_reason_phrase(status) or 'Error'}"
    if status == 429:
        return RateLimitError(code="RATE_LIMIT", message=message, http_status=status, url=url)
    return ApiError(code="API_ERROR", message=message, http_status=status, url=url)


def auth_headers(cfg) -> Dict[str, str]:
    headers = {"Content-Type": "application/json"}
    token = getattr(cfg, "api_token", None)
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


class HttpStreamHandle:
    """一次已打开的 httpx 流式响应。"""

    def __init__(self, response: httpx.Response, owned_client: Optional[httpx.AsyncClient] = None):
        self._response = response
        self._owned_client = owned_client
        self._cancelled = False
        self._closed = False
        self.headers: Mapping[str, str] = response.headers

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def chunks(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                if self._cancelled:
                    return
                if chunk:
                    yield chunk
        except (httpx.RequestError, httpx.StreamError) as e:
            if self._cancelled:
                return
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__)

    def cancel(self) -> None:
        self._cancelled = True

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()
        if self._owned_client is not None:
            await self._owned_client.aclose()


class HttpStreamTransport:
    """StreamTransport 的 httpx 实现。

    传入 client 时复用该连接池（调用方负责关闭）；否则每次 open 新建一个
    AsyncClient，并在句柄关闭时一并释放。
    """

    name = "http"

    def __init__(self, cfg=settings, client: Optional[httpx.AsyncClient] = None):
        self._settings = cfg
        self._client = client

    async def open(self, request: StreamRequest) -> HttpStreamHandle:
        timeout = request.timeout or self._settings.http_timeout
        url = f"{self._settings.api_base_url}{request.path}"
        owned = None
        client = self._client
        if client is None:
            owned = client = httpx.AsyncClient(timeout=timeout, trust_env=False)
        log_ctx = {"component": "http_transport", "url": url}
        try:
            http_request = client.build_request(
                "POST",
                url,
                json=request.payload,
                headers=auth_headers(self._settings),
                timeout=timeout,
            )
            response = await client.send(http_request, stream=True)
        except httpx.RequestError as e:
            if owned is not None:
                await owned.aclose()
            log_event(logging.ERROR, "Stream open failed", log_ctx, error=str(e))
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__, url=url)
        except asyncio.CancelledError:
            if owned is not None:
                await owned.aclose()
            raise

        if response.status_code >= 400:
            try:
                body = await response.aread()
            except (httpx.RequestError, httpx.StreamError):
                body = b""
            await response.aclose()
            if owned is not None:
                await owned.aclose()
            log_event(logging.ERROR, "Stream rejected", log_ctx, status=response.status_code)
            raise status_error(response.status_code, body, url)

        log_event(logging.INFO, "Stream opened", log_ctx, status=response.status_code)
        return HttpStreamHandle(response, owned)
