"""客户端错误类型

ValidationError 在发请求前抛出；TransportError / ApiError 来自网络和服务端。
所有错误都不会自动重试，由用户重新操作。
"""
from typing import Optional


class MessagingError(Exception):
    """私信客户端所有错误的基类"""


# ---------- 本地校验（不发请求） ----------
class ValidationError(MessagingError):
    pass


class EmptyMessageError(ValidationError):
    def __init__(self):
        super().__init__("消息内容或附件不能为空")


class DraftTooLongError(ValidationError):
    def __init__(self, limit: int):
        super().__init__(f"消息内容不能超过 {limit} 个字符")
        self.limit = limit


class AttachmentTooLargeError(ValidationError):
    def __init__(self, size: int, limit: int):
        super().__init__(f"文件大小 {size} 字节超过上限 {limit} 字节")
        self.size = size
        self.limit = limit


class NotEditableError(ValidationError):
    """只有自己发的、已撤回的消息才能编辑重发"""


# ---------- 网络 / 服务端 ----------
class TransportError(MessagingError):
    """连接失败、超时、返回内容无法解析"""


class ApiError(MessagingError):
    """服务端拒绝（4xx/5xx），detail 为服务端给出的原因"""

    def __init__(self, status: int, detail: Optional[str] = None):
        super().__init__(f"HTTP {status}: {detail or 'request failed'}")
        self.status = status
        self.detail = detail


class SendFailedError(MessagingError):
    def __init__(self, cause: Optional[Exception] = None):
        super().__init__("send failed")
        self.cause = cause
