"""网关异常定义

每个异常都携带对应的 HTTP 状态码，由响应封装层统一转换为错误信封。
"""


class GatewayError(Exception):
    """网关错误基类"""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class MissingServerIdentifier(GatewayError):
    """请求缺少 x-server-uuid 头"""

    status_code = 400

    def __init__(self, message: str = "Server UUID is required"):
        super().__init__(message)


class UnknownAction(GatewayError):
    """未识别的 action"""

    status_code = 400

    def __init__(self, action: str | None):
        super().__init__(f"Unknown action: {action}")
        self.action = action


class InvalidRequest(GatewayError):
    """请求体缺失或字段不合法"""

    status_code = 400


class ConfigurationError(GatewayError):
    """面板地址或 API 密钥未配置"""

    status_code = 500

    def __init__(self, message: str = "Pterodactyl configuration missing"):
        super().__init__(message)


class ActionFailed(GatewayError):
    """写操作的上游调用失败"""

    status_code = 500
