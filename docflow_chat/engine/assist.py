"""编辑器内的单目标流式生成：续写（autocomplete）与润色（polish）。

状态：input → loading → display。失败同样进入 display，
由调用方决定保留还是丢弃已生成的部分内容。
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from docflow_chat.config.settings import settings
from docflow_chat.domain.exceptions import ApiError
from docflow_chat.domain.models import AssistState, StreamFrame, StreamRequest
from docflow_chat.engine.buffer import ThrottledBuffer
from docflow_chat.engine.runner import StreamRun
from docflow_chat.infrastructure.logging.logger import log_event
from docflow_chat.infrastructure.notifications import LoggingNotifier, Notifier
from docflow_chat.prompts import placeholder
from docflow_chat.transport import adapter_for
from docflow_chat.transport.base import StreamTransport
from docflow_chat.transport.frames import FrameDecoder
from docflow_chat.transport.registry import EndpointConfig, get_endpoint


class InlineAssist:
    """续写 / 润色共用的流式状态。

    Args:
        transport: 流式传输。
        on_update: 每次落盘后以累计文本回调。
        on_complete: 正常结束时以最终文本回调。
        on_error: 失败（包括空白输入的润色）时回调。
    """

    def __init__(
        self,
        transport: StreamTransport,
        notifier: Optional[Notifier] = None,
        cfg=settings,
        on_update: Optional[Callable[[str], None]] = None,
        on_complete: Optional[Callable[[str], None]] = None,
        on_error: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._transport = transport
        self._notifier = notifier or LoggingNotifier()
        self._settings = cfg
        self._on_update = on_update
        self._on_complete = on_complete
        self._on_error = on_error
        self._clock = clock
        self._run: Optional[StreamRun] = None
        self._buffer: Optional[ThrottledBuffer] = None
        self._failure_key = "generic_error"

        self.state: AssistState = "input"
        self.response = ""

    def autocomplete(self, content: str, model: Optional[str] = None) -> Optional[asyncio.Task]:
        """以已有文档内容为上下文续写。"""

        endpoint = get_endpoint("autocomplete")
        return self._start(endpoint, content, model, endpoint.default_temperature, "autocomplete_failed")

    def polish(self, content: str, model: Optional[str] = None, temperature: float = 0.7) -> Optional[asyncio.Task]:
        """润色一段文本；空白内容直接走失败分支，不发起请求。"""

        if not (content or "").strip():
            self.state = "display"
            if self._on_error is not None:
                self._on_error()
            return None
        return self._start(get_endpoint("polish"), content, model, temperature, "polish_failed")

    def stop(self) -> None:
        run = self._run
        if run is not None and run.settle():
            run.cancel()
            self._buffer.close()
        self.state = "display"

    def reset(self) -> None:
        run = self._run
        if run is not None and run.settle():
            run.cancel()
        if self._buffer is not None:
            self._buffer.discard()
        self._run = None
        self._buffer = None
        self.state = "input"
        self.response = ""

    async def wait(self) -> None:
        if self._run is not None:
            await self._run.wait()

    def _start(self, endpoint: EndpointConfig, content, model, temperature, failure_key) -> asyncio.Task:
        previous = self._run
        if previous is not None and previous.settle():
            previous.cancel()
        if self._buffer is not None:
            self._buffer.discard()
        self.state = "loading"
        self.response = ""
        self._failure_key = failure_key
        payload = {
            "content": content,
            "model": model or self._settings.default_model,
            "temperature": temperature,
        }
        log_ctx = {"component": "inline_assist", "endpoint": endpoint.name, "model": payload["model"]}
        run = StreamRun(FrameDecoder(adapter_for(endpoint), log_ctx), log_ctx)
        self._run = run
        self._buffer = ThrottledBuffer(
            lambda c, r: self._apply(run, c, r),
            min_interval=self._settings.flush_interval,
            clock=self._clock,
        )
        return run.start(
            self._transport,
            StreamRequest(path=endpoint.path, payload=payload),
            on_frame=lambda frame: self._on_frame(run, frame),
            on_eof=lambda: self._complete(run),
            on_error=lambda exc: self._fail(run, exc),
        )

    def _apply(self, run: StreamRun, content: str, reasoning: str) -> None:
        if run is not self._run or not content:
            return
        self.response += content
        if self._on_update is not None:
            self._on_update(self.response)

    def _on_frame(self, run: StreamRun, frame: StreamFrame) -> None:
        if run.settled:
            return
        if frame.error:
            self._fail(run, ApiError(code="STREAM_ERROR", message=frame.error))
            return
        if frame.content:
            self._buffer.push(frame.content)
        if frame.is_terminal:
            self._complete(run)

    def _complete(self, run: StreamRun) -> None:
        if not run.settle():
            return
        self._buffer.close()
        self.state = "display"
        log_event(logging.INFO, "Inline assist completed", run.log_ctx, length=len(self.response))
        if self._on_complete is not None:
            self._on_complete(self.response)

    def _fail(self, run: StreamRun, exc: BaseException) -> None:
        if not run.settle():
            return
        self._buffer.close()
        self.state = "display"
        self._notifier.error(placeholder(self._failure_key, self._settings.locale))
        if self._on_error is not None:
            self._on_error()
