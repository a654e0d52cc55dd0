"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 Dispatcher 边界做统一捕获，并转换成发往前端的 LLM_ERROR。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "DISPATCH_FAILED"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 retry_after、attempts 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ConfigurationError(BusinessError):
    """配置缺失（例如没有 API 密钥），立即上报，不重试。"""


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(BusinessError):
    """上游返回非 2xx/429 或没有响应体时抛出，属于可重试错误。"""


class RateLimitError(BusinessError):
    """上游限流（429），extra["retry_after"] 携带服务端建议的等待秒数。"""


class DispatchFailed(BusinessError):
    """Transport 用尽所有尝试后仍失败。

    extra["last_error"] 为最后一次观察到的错误，extra["attempts"] 为尝试次数。
    """


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class DestinationUnavailable(BusinessError):
    """通知目标（前端会话/标签页）已不存在，投递被丢弃。"""
