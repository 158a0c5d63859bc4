"""增量节流缓冲。

高频的小增量先累积在两个待写字符串（正文 / 推理）里，
距离上次落盘超过最小间隔时才合并写入；终止帧或取消前强制落盘。
只追加、不重排，每个增量恰好落盘一次。
"""

import asyncio
import time
from typing import Callable, List, Optional


class ThrottledBuffer:
    """按最小间隔合并增量的缓冲。

    Args:
        apply: 落盘回调，参数为 (content, reasoning_content)。
        min_interval: 两次落盘之间的最小间隔（秒）。
        clock: 单调时钟，测试中可注入。
    """

    def __init__(
        self,
        apply: Callable[[str, str], None],
        min_interval: float = 0.05,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._apply = apply
        self._min_interval = max(0.0, min_interval)
        self._clock = clock
        self._content: List[str] = []
        self._reasoning: List[str] = []
        self._last_flush: Optional[float] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._closed = False

    @property
    def pending(self) -> bool:
        return bool(self._content or self._reasoning)

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, content: str = "", reasoning: str = "") -> None:
        if self._closed:
            raise RuntimeError("push after close")
        if not content and not reasoning:
            return
        if content:
            self._content.append(content)
        if reasoning:
            self._reasoning.append(reasoning)
        now = self._clock()
        elapsed = None if self._last_flush is None else now - self._last_flush
        if elapsed is None or elapsed >= self._min_interval:
            self.flush()
        else:
            self._schedule(self._min_interval - elapsed)

    def flush(self) -> None:
        """立即落盘所有待写增量（没有待写内容时为空操作）。"""

        self._cancel_timer()
        if not self.pending:
            return
        content = "".join(self._content)
        reasoning = "".join(self._reasoning)
        self._content.clear()
        self._reasoning.clear()
        self._last_flush = self._clock()
        self._apply(content, reasoning)

    def close(self) -> None:
        """强制落盘并关闭；之后的 push 视为编程错误。"""

        if self._closed:
            return
        self.flush()
        self._closed = True

    def discard(self) -> None:
        """丢弃待写增量并关闭，不再回调 apply。"""

        self._cancel_timer()
        self._content.clear()
        self._reasoning.clear()
        self._closed = True

    def _schedule(self, delay: float) -> None:
        if self._timer is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # 没有事件循环时只依赖下一次 push 或终止帧落盘
            return
        self._timer = loop.call_later(delay, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        if not self._closed:
            self.flush()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
