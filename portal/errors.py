"""
错误类型

- ConfigurationError: 缺少外部凭据
- AuthorizationError: 调用者未识别 / 非资源所有者 / 口令错误
- UpstreamError: LLM 网关返回非 2xx
- NotFoundError: 操作必需的记录不存在
"""
from typing import Optional


class PortalError(Exception):
    """所有门户错误的基类"""


class ConfigurationError(PortalError):
    """缺少必需的配置（如 API Key）"""


class AuthorizationError(PortalError):
    """无权访问"""


class NotFoundError(PortalError):
    """记录不存在"""


class UpstreamError(PortalError):
    """上游 LLM 网关调用失败"""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
