"""流式传输层。

该包下的模块负责：
- 定义传输抽象接口 (base)。
- 维护逻辑接口名与后端路径 (registry)。
- 协议帧解码 (frames)。
- httpx 实现 (http_transport)。
"""

from typing import Optional

import httpx

from docflow_chat.config.settings import settings
from docflow_chat.transport.base import StreamHandle, StreamTransport
from docflow_chat.transport.frames import FrameDecoder, decode_brainstorm_payload, decode_chat_payload
from docflow_chat.transport.http_transport import HttpStreamTransport
from docflow_chat.transport.registry import EndpointConfig, get_endpoint


def create_transport(cfg=None, client: Optional[httpx.AsyncClient] = None) -> StreamTransport:
    """根据配置创建默认的 StreamTransport。"""

    return HttpStreamTransport(cfg or settings, client=client)


def adapter_for(endpoint: EndpointConfig):
    """按接口的帧格式选择负载适配器。"""

    if endpoint.frame_format == "brainstorm":
        return decode_brainstorm_payload
    return decode_chat_payload


__all__ = [
    "FrameDecoder",
    "HttpStreamTransport",
    "StreamHandle",
    "StreamTransport",
    "adapter_for",
    "create_transport",
    "get_endpoint",
]
