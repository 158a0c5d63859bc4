"""统一的消息、帧与请求数据模型。

本模块定义了会话引擎内部共享的标准数据结构：

- Message: 会话中的一条消息（本地乐观状态，流式期间逐步填充）。
- ModelConfig: 一次发送所使用的模型与采样参数（原样透传给后端）。
- StreamRequest: 交给 StreamTransport 打开的流式请求。
- StreamFrame: 帧解码器产出的统一帧类型；普通聊天与头脑风暴共用，
  头脑风暴通过 index 字段区分槽位。
- BrainstormSlot: 头脑风暴中的一个并发生成目标。

传输层、解码器与状态机都只依赖这些模型。
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional


# 消息角色（与后端 role 字段对应）
Role = Literal["system", "user", "assistant"]

# 会话状态：idle → loading → idle|error（加载历史）；idle → streaming → idle|error（发送）
ChatStatus = Literal["idle", "loading", "streaming", "error"]

# 头脑风暴 / 行内续写的展示状态
AssistState = Literal["input", "loading", "display"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Message:
    """一条会话消息。

    - is_streaming: 仅在助手占位消息接收增量期间为 True；同一会话内最多一条。
    - reasoning_content: 深度思考模式下的推理内容。
    """

    id: str
    role: Role
    content: str
    created_at: datetime = field(default_factory=utcnow)
    is_streaming: bool = False
    reasoning_content: str = ""

    def to_payload(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ModelConfig:
    """调用模型所需的参数配置。

    采样参数不在本地解释，只在构造请求时透传；值为 None 的字段不会发送。
    """

    model_name: str
    max_tokens: int = 1024
    temperature: float = 1.0
    top_p: Optional[float] = 0.7
    enable_thinking: bool = False
    thinking_budget: Optional[int] = None
    enable_web_search: bool = False
    system_prompt: str = ""
    top_k: Optional[int] = None
    frequency_penalty: Optional[float] = None
    min_p: Optional[float] = None
    stop: List[str] = field(default_factory=list)
    n: Optional[int] = None

    def sampling_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "top_p": self.top_p,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "enable_thinking": self.enable_thinking,
            "thinking_budget": self.thinking_budget,
            "enable_web_search": self.enable_web_search,
            "top_k": self.top_k,
            "frequency_penalty": self.frequency_penalty,
            "min_p": self.min_p,
            "stop": self.stop[:4] or None,
            "n": self.n,
        }
        return {k: v for k, v in params.items() if v is not None}


@dataclass
class StreamRequest:
    """一次流式请求：接口路径 + JSON 请求体。"""

    path: str
    payload: Dict[str, Any]
    timeout: Optional[float] = None


@dataclass
class StreamFrame:
    """解码后的一个协议帧。

    - content / reasoning_content: 本帧携带的增量，可能为空串。
    - finish_reason: 完成信号；index 为 None 时表示整条消息结束，
      否则只表示对应槽位结束。
    - conversation_id: 服务端分配的会话 ID，只有第一次出现时有意义。
    - done: 整体完成（哨兵记录或 event=done）。
    - error: 服务端在流内报告的错误信息。
    """

    content: str = ""
    reasoning_content: str = ""
    finish_reason: Optional[str] = None
    conversation_id: Optional[str] = None
    message_id: Optional[str] = None
    index: Optional[int] = None
    done: bool = False
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.done or (self.finish_reason is not None and self.index is None)

    @property
    def is_empty(self) -> bool:
        return not (
            self.content
            or self.reasoning_content
            or self.finish_reason
            or self.conversation_id
            or self.done
            or self.error
        )


@dataclass
class BrainstormSlot:
    """头脑风暴的一个槽位。index 是线上协议的稳定标识，而非到达顺序。"""

    index: int
    content: str = ""
    finished: bool = False
    reasoning_content: str = ""


@dataclass
class ChatModel:
    """后端可用模型信息。"""

    id: str
    name: str
    description: str = ""
    support_thinking: bool = False
    max_context_length: int = 0
