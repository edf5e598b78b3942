"""统一业务异常模型。

所有跨模块抛出的业务级错误都继承自 BusinessError，
便于在调用方统一捕获。工具函数自身抛出的异常不在此列：
编排器不会包装它们，而是原样抛给调用方。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "TOOL_NOT_FOUND"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 tool_name、round 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(BusinessError):
    """GigaChat API 返回非 2xx/429 错误时抛出。"""


class RateLimitError(BusinessError):
    """限流错误，由上层负责重试/退避策略。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class ProtocolStateError(BusinessError):
    """消息序列违反协议约束（不可恢复），例如出现多条 system 消息。"""


class ToolCallMismatchError(BusinessError):
    """工具结果的关联 id 找不到对应的工具调用请求。"""


class UnknownToolError(BusinessError):
    """模型请求调用了一个未注册的工具。"""


class ToolLoopLimitError(BusinessError):
    """工具调用往返次数超过配置的上限。"""
