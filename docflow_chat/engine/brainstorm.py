"""头脑风暴：一次请求、N 个按 index 区分的并发生成目标。

状态：input → loading → display；失败回到 input。

槽位在打开传输前按 count 预先创建，之后长度不变：
越界 index 的帧只记日志并丢弃，绝不扩容或截断。
"""

import asyncio
import logging
from dataclasses import replace
from typing import Callable, List, Optional, Tuple

from docflow_chat.config.settings import settings
from docflow_chat.domain.exceptions import ApiError, UserInputError
from docflow_chat.domain.models import AssistState, BrainstormSlot, StreamFrame, StreamRequest
from docflow_chat.engine.runner import StreamRun
from docflow_chat.infrastructure.logging.logger import log_event
from docflow_chat.infrastructure.notifications import LoggingNotifier, Notifier
from docflow_chat.prompts import placeholder
from docflow_chat.transport import adapter_for
from docflow_chat.transport.base import StreamTransport
from docflow_chat.transport.frames import FrameDecoder
from docflow_chat.transport.registry import get_endpoint

BrainstormListener = Callable[["BrainstormCoordinator"], None]


class BrainstormCoordinator:
    def __init__(
        self,
        transport: StreamTransport,
        notifier: Optional[Notifier] = None,
        cfg=settings,
    ):
        self._transport = transport
        self._notifier = notifier or LoggingNotifier()
        self._settings = cfg
        self._listeners: List[BrainstormListener] = []
        self._run: Optional[StreamRun] = None
        self._on_done: Optional[Callable[[], None]] = None
        self._on_error: Optional[Callable[[BaseException], None]] = None

        self.state: AssistState = "input"
        self.slots: List[BrainstormSlot] = []
        self.topic: str = ""
        self.count: int = 0
        self.model: Optional[str] = None
        self.error: Optional[str] = None

    def subscribe(self, listener: BrainstormListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def snapshot(self) -> Tuple[BrainstormSlot, ...]:
        """槽位的只读副本，供观察者渲染。"""

        return tuple(replace(slot) for slot in self.slots)

    def validate(self, topic: str, count: int) -> str:
        """校验输入并返回去除首尾空白的主题；不合法时抛出 UserInputError。"""

        text = (topic or "").strip()
        if not text:
            raise UserInputError(code="EMPTY_TOPIC", message=placeholder("topic_required", self._settings.locale))
        low, high = self._settings.brainstorm_min_count, self._settings.brainstorm_max_count
        if isinstance(count, bool) or not isinstance(count, int) or not low <= count <= high:
            raise UserInputError(
                code="COUNT_OUT_OF_RANGE",
                message=placeholder("count_out_of_range", self._settings.locale, low=low, high=high),
                count=count,
            )
        return text

    def generate(
        self,
        topic: str,
        count: int,
        model: Optional[str] = None,
        on_done: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
    ) -> Optional[asyncio.Task]:
        """发起一次头脑风暴。输入不合法或正在生成时返回 None，且不发起网络请求。"""

        if self.state == "loading":
            return None
        try:
            text = self.validate(topic, count)
        except UserInputError as exc:
            self._notifier.warning(exc.message)
            log_event(logging.INFO, "Brainstorm input rejected", self._log_ctx(), code=exc.code)
            return None
        self.topic = text
        self.count = count
        self.model = model
        self._on_done = on_done
        self._on_error = on_error
        return self._start()

    def regenerate(self) -> Optional[asyncio.Task]:
        """用上一次的主题与数量重新生成；只在 display 状态下有效。"""

        if self.state != "display" or not self.topic:
            return None
        return self._start()

    def stop(self) -> None:
        """停止生成并保留已到达的部分内容，进入 display。不会回调错误。"""

        run = self._run
        if run is not None and run.settle():
            run.cancel()
            log_event(logging.INFO, "Brainstorm stopped", run.log_ctx)
        if self.state == "loading":
            self.state = "display"
            self._emit()

    def clear(self) -> None:
        run = self._run
        if run is not None and run.settle():
            run.cancel()
        self._run = None
        self.slots = []
        self.topic = ""
        self.count = 0
        self.error = None
        self.state = "input"
        self._emit()

    async def wait(self) -> None:
        if self._run is not None:
            await self._run.wait()

    # ---- 内部 ----

    def _start(self) -> asyncio.Task:
        previous = self._run
        if previous is not None and previous.settle():
            previous.cancel()
        self.slots = [BrainstormSlot(index=i) for i in range(self.count)]
        self.error = None
        self.state = "loading"

        payload = {
            "topic": self.topic,
            "n": self.count,
            "model": self.model or self._settings.brainstorm_model,
            "temperature": self._settings.brainstorm_temperature,
        }
        endpoint = get_endpoint("brainstorm")
        log_ctx = self._log_ctx(count=self.count, model=payload["model"])
        run = StreamRun(FrameDecoder(adapter_for(endpoint), log_ctx), log_ctx)
        self._run = run
        self._emit()
        log_event(logging.INFO, "Brainstorm started", log_ctx)
        return run.start(
            self._transport,
            StreamRequest(path=endpoint.path, payload=payload),
            on_frame=lambda frame: self._on_frame(run, frame),
            on_eof=lambda: self._finish(run),
            on_error=lambda exc: self._fail(run, exc),
        )

    def _on_frame(self, run: StreamRun, frame: StreamFrame) -> None:
        if run.settled:
            return
        if frame.error:
            self._fail(run, ApiError(code="STREAM_ERROR", message=frame.error))
            return
        if frame.done:
            self._finish(run)
            return
        index = frame.index
        if index is None or not 0 <= index < len(self.slots):
            log_event(logging.WARNING, "Dropped frame for unknown slot", run.log_ctx, index=index)
            return
        slot = self.slots[index]
        slot.content += frame.content
        slot.reasoning_content += frame.reasoning_content
        if frame.finish_reason:
            slot.finished = True
        self._emit()

    def _finish(self, run: StreamRun) -> None:
        if not run.settle():
            return
        self.state = "display"
        log_event(
            logging.INFO,
            "Brainstorm completed",
            run.log_ctx,
            finished=sum(1 for s in self.slots if s.finished),
        )
        self._emit()
        if self._on_done is not None:
            self._on_done()

    def _fail(self, run: StreamRun, exc: BaseException) -> None:
        if not run.settle():
            return
        self.state = "input"
        self.error = placeholder("brainstorm_failed", self._settings.locale)
        self._notifier.error(self.error)
        self._emit()
        if self._on_error is not None:
            self._on_error(exc)

    def _log_ctx(self, **fields):
        return {"component": "brainstorm", **fields}

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self)
