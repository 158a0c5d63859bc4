"""流式协议帧解码。

协议是按换行分隔的文本记录：

- ``data: {...}``  携带 JSON 负载；
- ``data: [DONE]`` 哨兵，表示立即完成（不论负载状态如何）；
- 空行、SSE 注释（以 ``:`` 开头）以及 ``event:``/``id:``/``retry:`` 字段行被忽略；
- 没有 ``data:`` 前缀的非空行按原始 JSON 尝试解析（兼容旧后端）。

FrameDecoder 是一个显式的小对象：每打开一次传输就新建一个，关闭后丢弃。
它持有跨网络读取的残余缓冲，单条坏记录只记日志并跳过，绝不中断整个流。

JSON 负载由两个适配器转换成统一的 StreamFrame：
普通聊天使用 OpenAI 风格的 choices 数组，头脑风暴使用顶层 event + index。
"""

import codecs
import json
import logging
from typing import Any, Callable, Dict, List, Optional

from docflow_chat.domain.exceptions import ParseError
from docflow_chat.domain.models import StreamFrame
from docflow_chat.infrastructure.logging.logger import log_event

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"
_IGNORED_FIELDS = ("event:", "id:", "retry:")

PayloadAdapter = Callable[[Any], List[StreamFrame]]


# ---- 负载适配器 ----

def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    raise ParseError(code="BAD_DELTA", message=f"delta is not a string: {value!r}")


def _opt_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _slot_index(value: Any) -> int:
    if isinstance(value, bool) or value is None:
        raise ParseError(code="BAD_INDEX", message=f"invalid slot index: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ParseError(code="BAD_INDEX", message=f"invalid slot index: {value!r}")


def _error_text(value: Any) -> str:
    if isinstance(value, dict):
        return str(value.get("message") or value.get("error") or value)
    return str(value or "")


def _require_object(obj: Any) -> Dict[str, Any]:
    if not isinstance(obj, dict):
        raise ParseError(code="BAD_RECORD", message="record is not a JSON object")
    return obj


def _choice_frame(choice: Any, *, index: Optional[int], obj: Dict[str, Any]) -> StreamFrame:
    if not isinstance(choice, dict):
        raise ParseError(code="BAD_CHOICE", message="choice is not a JSON object")
    delta = choice.get("delta") or {}
    if not isinstance(delta, dict):
        raise ParseError(code="BAD_DELTA", message="delta is not a JSON object")
    return StreamFrame(
        content=_text(delta.get("content")),
        reasoning_content=_text(delta.get("reasoning_content")),
        finish_reason=_opt_str(choice.get("finish_reason")),
        conversation_id=_opt_str(obj.get("conversation_id")),
        message_id=_opt_str(obj.get("id")),
        index=index,
    )


def decode_chat_payload(obj: Any) -> List[StreamFrame]:
    """普通聊天负载：取 choices[0] 的增量与完成原因，外加顶层 conversation_id。"""

    data = _require_object(obj)
    event = data.get("event")
    if event == "done":
        return [StreamFrame(done=True)]
    if event == "error" or data.get("error"):
        return [StreamFrame(error=_error_text(data.get("error")) or "stream error")]

    choices = data.get("choices") or []
    if not isinstance(choices, list):
        raise ParseError(code="BAD_CHOICES", message="choices is not an array")
    if choices:
        frame = _choice_frame(choices[0], index=None, obj=data)
    else:
        frame = StreamFrame(
            conversation_id=_opt_str(data.get("conversation_id")),
            message_id=_opt_str(data.get("id")),
        )
    return [] if frame.is_empty else [frame]


def decode_brainstorm_payload(obj: Any) -> List[StreamFrame]:
    """头脑风暴负载：顶层 event（message|done|error）+ index；也接受每个 choice 自带 index 的数组。"""

    data = _require_object(obj)
    event = data.get("event") or "message"
    if event == "done":
        return [StreamFrame(done=True)]
    if event == "error":
        return [StreamFrame(error=_error_text(data.get("error")) or "stream error")]

    choices = data.get("choices")
    if isinstance(choices, list):
        frames = []
        for pos, choice in enumerate(choices):
            raw_index = choice.get("index", pos) if isinstance(choice, dict) else pos
            frame = _choice_frame(choice, index=_slot_index(raw_index), obj=data)
            if not frame.is_empty:
                frames.append(frame)
        return frames

    frame = StreamFrame(
        content=_text(data.get("content")),
        reasoning_content=_text(data.get("reasoning_content")),
        finish_reason=_opt_str(data.get("finish_reason")),
        conversation_id=_opt_str(data.get("conversation_id")),
        message_id=_opt_str(data.get("message_id") or data.get("id")),
        index=_slot_index(data.get("index")),
    )
    return [] if frame.is_empty else [frame]


# ---- 记录级解码器 ----

class FrameDecoder:
    """增量帧解码器。

    feed() 按到达顺序接收字节块，返回本次新凑齐的完整帧；
    close() 在流结束时处理最后一条没有换行的记录。
    收到哨兵（或 event=done）后 finished 置位，之后的输入全部忽略。
    """

    def __init__(self, adapter: PayloadAdapter = decode_chat_payload, log_ctx: Optional[Dict[str, Any]] = None):
        self._adapter = adapter
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._carry = ""
        self._log_ctx = log_ctx or {}
        self.finished = False
        self.skipped = 0

    def feed(self, chunk: bytes) -> List[StreamFrame]:
        if self.finished:
            return []
        self._carry += self._utf8.decode(chunk)
        lines = self._carry.split("\n")
        self._carry = lines.pop()
        return self._decode_lines(lines)

    def close(self) -> List[StreamFrame]:
        if self.finished:
            return []
        tail = self._carry + self._utf8.decode(b"", final=True)
        self._carry = ""
        frames = self._decode_lines([tail])
        self.finished = True
        return frames

    def _decode_lines(self, lines: List[str]) -> List[StreamFrame]:
        frames: List[StreamFrame] = []
        for line in lines:
            if self.finished:
                break
            record = line.strip()
            if not record or record.startswith(":") or record.startswith(_IGNORED_FIELDS):
                continue
            if record.startswith(DATA_PREFIX):
                body = record[len(DATA_PREFIX):].strip()
            else:
                body = record
            if not body:
                continue
            if body == DONE_SENTINEL:
                frames.append(StreamFrame(done=True))
                self.finished = True
                break
            try:
                decoded = self._adapter(json.loads(body))
            except (json.JSONDecodeError, ParseError) as exc:
                self.skipped += 1
                log_event(
                    logging.WARNING,
                    "Skipped malformed stream record",
                    self._log_ctx,
                    error=str(exc),
                    record=body[:200],
                )
                continue
            for frame in decoded:
                frames.append(frame)
                if frame.done:
                    self.finished = True
                    break
        return frames
