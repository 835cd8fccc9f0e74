"""Gateway error types.

网关错误分类。每个错误携带 HTTP 状态码和可以返回给调用方的公开信息，
具体错误细节只写日志，不会出现在响应中。
"""


class GatewayError(Exception):
    """网关错误基类."""

    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail or self.message)
        self.detail = detail


class ConfigurationError(GatewayError):
    """启动阶段的配置错误（空方法名、启动后修改配置等）."""


class BadRequest(GatewayError):
    status_code = 400
    message = "Bad Request"


class RoutingMiss(GatewayError):
    """分发键没有任何订阅者."""

    status_code = 404
    message = "Not Found"


class HandlerFailure(GatewayError):
    """业务处理函数抛出了异常."""


class MissingHandler(GatewayError):
    """方法已声明但没有注册处理函数."""

    status_code = 501
    message = "Not Implemented"


class CorrelationTimeout(GatewayError):
    """在超时时间内没有收到对应的回复."""

    status_code = 504
    message = "Gateway Timeout"
