"""流式传输抽象接口。

会话状态机不直接依赖 httpx，而是依赖此协议：

- StreamTransport.open(request) 打开一个响应体为无界字节流的请求，
  返回 StreamHandle；打开失败时抛出 TransportError 子类。
- StreamHandle 负责逐块产出字节、暴露响应头，并支持协作式取消。

取消永远不是错误：handle.cancel() 之后 chunks() 只会安静地结束。
"""

from typing import AsyncIterator, Mapping, Protocol

from docflow_chat.domain.models import StreamRequest


class StreamHandle(Protocol):
    """一次已打开的流式响应。"""

    headers: Mapping[str, str]

    @property
    def cancelled(self) -> bool:
        ...

    def chunks(self) -> AsyncIterator[bytes]:
        """按到达顺序逐块产出响应体字节。"""

        ...

    def cancel(self) -> None:
        """同步、幂等的协作式取消。"""

        ...

    async def aclose(self) -> None:
        ...


class StreamTransport(Protocol):
    async def open(self, request: StreamRequest) -> StreamHandle:
        ...
