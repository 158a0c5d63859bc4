"""单次流式生成的运行上下文。

StreamRun 把“打开传输 → 逐块解码 → 按序回调帧 → 收尾”的读取循环
收拢在一处，普通聊天、头脑风暴与行内续写共用，状态机只需关心帧语义。

- 唯一的挂起点是等待下一块字节；同一块内的帧处理与状态迁移同步完成。
- settle() 保证终止逻辑只执行一次（重复的终止信号是幂等的）。
- cancel() 是协作式的：置位、通知句柄、取消读取任务；取消不会以错误形式回调。
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Mapping, Optional

from docflow_chat.domain.exceptions import TransportError
from docflow_chat.domain.models import StreamFrame, StreamRequest
from docflow_chat.infrastructure.logging.logger import log_event
from docflow_chat.transport.base import StreamHandle, StreamTransport
from docflow_chat.transport.frames import FrameDecoder


def header_value(headers: Optional[Mapping[str, str]], name: str) -> Optional[str]:
    """大小写无关地读取响应头。"""

    if not headers:
        return None
    target = name.lower()
    for key, value in headers.items():
        if key.lower() == target:
            return value
    return None


class StreamRun:
    def __init__(self, decoder: FrameDecoder, log_ctx: Optional[Dict[str, Any]] = None):
        self.decoder = decoder
        self.log_ctx = dict(log_ctx or {})
        self.handle: Optional[StreamHandle] = None
        self.task: Optional[asyncio.Task] = None
        self.settled = False
        self.cancelled = False

    def start(
        self,
        transport: StreamTransport,
        request: StreamRequest,
        *,
        on_frame: Callable[[StreamFrame], None],
        on_eof: Callable[[], None],
        on_error: Callable[[BaseException], None],
        on_open: Optional[Callable[[StreamHandle], None]] = None,
    ) -> asyncio.Task:
        loop = asyncio.get_running_loop()
        self.task = loop.create_task(self._pump(transport, request, on_frame, on_eof, on_error, on_open))
        return self.task

    def settle(self) -> bool:
        """标记本次运行已结束；只有第一次调用返回 True。"""

        if self.settled:
            return False
        self.settled = True
        return True

    def cancel(self) -> None:
        self.cancelled = True
        if self.handle is not None:
            self.handle.cancel()
        task = self.task
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        # 在读取任务内部（例如帧回调里）停止时，只靠 settled 让循环退出
        if task is not current:
            task.cancel()

    async def wait(self) -> None:
        """等待读取任务结束；取消不算失败，其他异常原样抛出。"""

        task = self.task
        if task is None:
            return
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            raise task.exception()

    async def _pump(self, transport, request, on_frame, on_eof, on_error, on_open) -> None:
        chunks = None
        try:
            self.handle = await transport.open(request)
            if self.cancelled:
                return
            if on_open is not None:
                on_open(self.handle)
            chunks = self.handle.chunks()
            async for chunk in chunks:
                for frame in self.decoder.feed(chunk):
                    on_frame(frame)
                    if self.settled:
                        return
            if self.settled:
                return
            for frame in self.decoder.close():
                on_frame(frame)
                if self.settled:
                    return
            if not self.settled:
                on_eof()
        except asyncio.CancelledError:
            if not self.cancelled:
                raise
            log_event(logging.INFO, "Stream cancelled", self.log_ctx)
        except TransportError as exc:
            if self.cancelled:
                return
            log_event(logging.ERROR, "Stream failed", self.log_ctx, code=exc.code, error=exc.message)
            on_error(exc)
        except Exception as exc:
            log_event(logging.ERROR, "Stream handler crashed", self.log_ctx, error=repr(exc))
            on_error(exc)
            raise
        finally:
            aclose = getattr(chunks, "aclose", None)
            if aclose is not None:
                await aclose()
            if self.handle is not None:
                await self.handle.aclose()
