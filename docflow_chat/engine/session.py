"""会话状态机。

状态：idle → loading → idle（加载历史）；idle → streaming → idle|error（发送）。

ChatSession 持有消息列表并维护以下约束：
- 同一时刻最多一条消息 is_streaming=True；
- conversation_id 从空变为有值只发生一次（latching），之后的帧/响应头一律忽略，
  直到 clear_messages() / load_conversation() 重置会话；
- 流式期间助手消息只通过 ThrottledBuffer 落盘修改；
- 同一会话同一时刻只有一条活动传输。clear/load 会先取消在途传输，
  避免迟到的增量写进已经切换的会话。
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from docflow_chat.config.settings import settings
from docflow_chat.domain.conversation import ConversationApi
from docflow_chat.domain.exceptions import ApiError, BusinessError, TransportError
from docflow_chat.domain.models import ChatStatus, Message, ModelConfig, StreamFrame, StreamRequest
from docflow_chat.engine.buffer import ThrottledBuffer
from docflow_chat.engine.runner import StreamRun, header_value
from docflow_chat.infrastructure.logging.logger import log_event
from docflow_chat.infrastructure.notifications import LoggingNotifier, Notifier
from docflow_chat.prompts import placeholder
from docflow_chat.transport import adapter_for
from docflow_chat.transport.base import StreamHandle, StreamTransport
from docflow_chat.transport.frames import FrameDecoder
from docflow_chat.transport.registry import get_endpoint

SESSION_ID_HEADER = "Session-Id"

SessionListener = Callable[["ChatSession"], None]


class _ChatRun(StreamRun):
    """一次发送：在 StreamRun 之上记录目标助手消息、缓冲与回调。"""

    def __init__(self, decoder, message: Message, on_success, on_error, log_ctx):
        super().__init__(decoder, log_ctx)
        self.message = message
        self.buffer: Optional[ThrottledBuffer] = None
        self.on_success = on_success
        self.on_error = on_error


class ChatSession:
    """单个对话的客户端状态机。"""

    def __init__(
        self,
        transport: StreamTransport,
        api: Optional[ConversationApi] = None,
        notifier: Optional[Notifier] = None,
        cfg=settings,
        id_factory: Optional[Callable[[], str]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._transport = transport
        self._api = api
        self._notifier = notifier or LoggingNotifier()
        self._settings = cfg
        self._new_id = id_factory or (lambda: uuid4().hex)
        self._clock = clock
        self._listeners: List[SessionListener] = []
        self._run: Optional[_ChatRun] = None
        self._load_seq = 0

        self.messages: List[Message] = []
        self.status: ChatStatus = "idle"
        self.error: Optional[str] = None
        self._conversation_id: Optional[str] = None

    # ---- 只读视图 ----

    @property
    def conversation_id(self) -> Optional[str]:
        return self._conversation_id

    @property
    def streaming_message(self) -> Optional[Message]:
        for m in self.messages:
            if m.is_streaming:
                return m
        return None

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """注册状态变化监听，返回取消注册函数。"""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ---- 对外操作 ----

    def send_message(
        self,
        content: str,
        config: ModelConfig,
        on_success: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
    ) -> Optional[asyncio.Task]:
        """发送一条消息并开始接收流式回复。

        空白内容或正在生成/加载时为空操作并返回 None；
        否则原子地追加用户消息与助手占位消息，返回读取任务。
        必须在运行中的事件循环内调用。
        """

        text = (content or "").strip()
        if not text or self.status in ("streaming", "loading"):
            log_event(logging.DEBUG, "Send rejected", self._log_ctx(), status=self.status, empty=not text)
            return None
        self._abandon_run()

        history = [m.to_payload() for m in self.messages]
        user_message = Message(id=self._new_id(), role="user", content=text)
        assistant_message = Message(id=self._new_id(), role="assistant", content="", is_streaming=True)
        self.messages.extend([user_message, assistant_message])
        self.status = "streaming"
        self.error = None

        request = self._build_request(history, text, config)
        log_ctx = self._log_ctx(assistant_message_id=assistant_message.id, model=request.payload.get("model"))
        run = _ChatRun(
            FrameDecoder(adapter_for(get_endpoint("completions")), log_ctx),
            assistant_message,
            on_success,
            on_error,
            log_ctx,
        )
        run.buffer = ThrottledBuffer(
            lambda c, r: self._apply_delta(run, c, r),
            min_interval=self._settings.flush_interval,
            clock=self._clock,
        )
        self._run = run
        self._emit()
        log_event(logging.INFO, "Sending message", log_ctx, message_count=len(request.payload["messages"]))
        return run.start(
            self._transport,
            request,
            on_open=lambda handle: self._on_open(run, handle),
            on_frame=lambda frame: self._on_frame(run, frame),
            on_eof=lambda: self._complete(run),
            on_error=lambda exc: self._fail(run, exc),
        )

    def stop_generating(self) -> None:
        """停止生成：取消传输、强制落盘、收尾流式消息。对调用方是同步的。"""

        run = self._run
        if run is not None and run.settle():
            run.cancel()
            run.buffer.close()
            log_event(logging.INFO, "Generation stopped", run.log_ctx)
        for m in self.messages:
            if m.is_streaming:
                m.is_streaming = False
                if not m.content:
                    m.content = placeholder("terminated", self._settings.locale)
        self.status = "idle"
        self._emit()

    def clear_messages(self) -> None:
        """重置会话。在途传输会先被取消。"""

        self._abandon_run()
        self._load_seq += 1
        self.messages = []
        self._conversation_id = None
        self.error = None
        self.status = "idle"
        self._emit()

    async def load_conversation(self, conversation_id: str) -> bool:
        """从服务端历史整体替换消息列表；无论成败最终回到 idle。"""

        if self._api is None:
            raise RuntimeError("ChatSession has no ConversationApi for loading history")
        self._abandon_run()
        self._load_seq += 1
        seq = self._load_seq
        self.status = "loading"
        self.error = None
        self._emit()
        log_ctx = self._log_ctx(load_conversation_id=conversation_id)
        try:
            detail = await self._api.get_conversation(conversation_id)
        except TransportError as exc:
            if seq != self._load_seq:
                return False
            self.error = exc.message
            self.status = "idle"
            self._notifier.error(exc.message or placeholder("load_failed", self._settings.locale))
            log_event(logging.ERROR, "Load conversation failed", log_ctx, code=exc.code, error=exc.message)
            self._emit()
            return False
        except Exception:
            if seq == self._load_seq:
                self.status = "idle"
                log_event(logging.ERROR, "Load conversation crashed", log_ctx)
                self._emit()
            raise
        if seq != self._load_seq:
            # 期间已被更新的加载或 clear 取代
            return False
        self.messages = list(detail.messages)
        self._conversation_id = conversation_id
        self.status = "idle"
        log_event(logging.INFO, "Loaded conversation", log_ctx, message_count=len(self.messages))
        self._emit()
        return True

    async def wait(self) -> None:
        """等待当前读取任务结束（命令行调用方与测试使用）。"""

        if self._run is not None:
            await self._run.wait()

    # ---- 帧处理 ----

    def _on_open(self, run: _ChatRun, handle: StreamHandle) -> None:
        if run.settled:
            return
        self._latch(header_value(handle.headers, SESSION_ID_HEADER))

    def _on_frame(self, run: _ChatRun, frame: StreamFrame) -> None:
        if run.settled:
            return
        if frame.conversation_id:
            self._latch(frame.conversation_id)
        if frame.error:
            self._fail(run, ApiError(code="STREAM_ERROR", message=frame.error))
            return
        if frame.content or frame.reasoning_content:
            run.buffer.push(frame.content, frame.reasoning_content)
        if frame.is_terminal:
            self._complete(run)

    def _apply_delta(self, run: _ChatRun, content: str, reasoning: str) -> None:
        run.message.content += content
        run.message.reasoning_content += reasoning
        self._emit()

    def _complete(self, run: _ChatRun) -> None:
        if not run.settle():
            return
        run.buffer.close()
        run.message.is_streaming = False
        self.status = "idle"
        log_event(logging.INFO, "Generation completed", run.log_ctx, length=len(run.message.content))
        self._emit()
        if run.on_success is not None:
            run.on_success()

    def _fail(self, run: _ChatRun, exc: BaseException) -> None:
        if not run.settle():
            return
        run.buffer.close()
        run.message.is_streaming = False
        if not run.message.content:
            run.message.content = placeholder("request_failed", self._settings.locale)
        message = exc.message if isinstance(exc, BusinessError) else str(exc)
        self.error = message or placeholder("generic_error", self._settings.locale)
        self.status = "error"
        self._notifier.error(self.error)
        self._emit()
        if run.on_error is not None:
            run.on_error(exc)

    # ---- 辅助方法 ----

    def _latch(self, conversation_id: Optional[str]) -> None:
        if not conversation_id or self._conversation_id:
            return
        self._conversation_id = conversation_id
        log_event(logging.INFO, "Latched conversation id", self._log_ctx())

    def _abandon_run(self) -> None:
        run = self._run
        if run is not None and run.settle():
            run.cancel()
            run.buffer.close()
            run.message.is_streaming = False
            log_event(logging.INFO, "Abandoned in-flight generation", run.log_ctx)
        self._run = None

    def _build_request(self, history: List[Dict[str, str]], text: str, config: ModelConfig) -> StreamRequest:
        payload: Dict[str, Any] = {}
        # 新会话不发送 conversation_id，由后端创建并在首帧或响应头返回
        if self._conversation_id:
            payload["conversation_id"] = self._conversation_id
        payload["model"] = config.model_name or self._settings.default_model
        messages: List[Dict[str, str]] = []
        if config.system_prompt.strip():
            messages.append({"role": "system", "content": config.system_prompt})
        messages.extend(history)
        messages.append({"role": "user", "content": text})
        payload["messages"] = messages
        payload.update(config.sampling_params())
        return StreamRequest(path=get_endpoint("completions").path, payload=payload)

    def _log_ctx(self, **fields: Any) -> Dict[str, Any]:
        return {"component": "chat_session", "conversation_id": self._conversation_id, **fields}

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self)
