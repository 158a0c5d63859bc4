"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在会话层或 UI 层做统一捕获与用户提示。

取消（用户主动停止）不属于错误，不在此建模：它通过
asyncio.CancelledError 与 StreamHandle.cancelled 标记在会话内部被吸收。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "NETWORK_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 url、index 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class TransportError(BusinessError):
    """打开或读取流/接口失败的基类。"""


class NetworkError(TransportError):
    """网络层错误，例如连接失败、读取中断、超时等。"""


class ApiError(TransportError):
    """服务端返回非 2xx 状态，或响应信封中的 code 表示失败。"""


class RateLimitError(ApiError):
    """服务端限流（HTTP 429）。"""


class ParseError(BusinessError):
    """单条流记录无法解析。只在帧解码器内部抛出并被吞掉。"""


class UserInputError(BusinessError):
    """用户输入不合法（空主题、并发数越界等），在发起网络请求前同步拒绝。"""
