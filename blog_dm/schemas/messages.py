"""
私信接口的数据结构（服务端和客户端共用）

字段统一 snake_case；消息类型与附件字段必须一致：
text 不带附件，image / attachment / mixed 一定带附件。
"""
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field, field_serializer, model_validator

from blog_dm.core.server_config import get_static_url

# 撤回时限：发送后 3 分钟内
RECALL_WINDOW = timedelta(minutes=3)

# 消息正文最大长度
MAX_CONTENT_LENGTH = 2000

# 只有附件没有文字时的占位正文，避免出现空气泡
IMAGE_PLACEHOLDER = "[image]"
ATTACHMENT_PLACEHOLDER = "[attachment]"

# 撤回后展示给对方的文字
RECALLED_PLACEHOLDER = "[message recalled]"


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    ATTACHMENT = "attachment"
    MIXED = "mixed"


# --------------------------------------------------
# 会话ID：与谁是发送方无关
# --------------------------------------------------
def thread_id_for(user_a: int, user_b: int) -> str:
    low, high = sorted((user_a, user_b))
    return f"{low}-{high}"


def parse_thread_id(thread_id: str) -> Tuple[int, int]:
    """拆出会话双方 id，格式不对抛 ValueError"""
    parts = thread_id.split("-")
    if len(parts) != 2:
        raise ValueError(f"无效的会话ID: {thread_id}")
    low, high = int(parts[0]), int(parts[1])
    if low >= high or thread_id_for(low, high) != thread_id:
        raise ValueError(f"无效的会话ID: {thread_id}")
    return low, high


def is_image_mime(mime_type: Optional[str]) -> bool:
    return bool(mime_type) and mime_type.startswith("image/")


class AttachmentInfo(BaseModel):
    url: str = Field(min_length=1)
    filename: str
    size: int = Field(ge=0)
    mime_type: str = ""

    @property
    def kind(self) -> str:
        """粗分类：image / file"""
        return "image" if is_image_mime(self.mime_type) else "file"


def derive_message_type(content: str, attachment: Optional[AttachmentInfo]) -> MessageType:
    has_text = bool(content and content.strip())
    if attachment is None:
        return MessageType.TEXT
    if has_text:
        return MessageType.MIXED
    if attachment.kind == "image":
        return MessageType.IMAGE
    return MessageType.ATTACHMENT


def compose_body(content: str, attachment: Optional[AttachmentInfo]) -> Tuple[str, MessageType]:
    """
    发送 / 重新发送前统一整理正文和类型
    只有附件时正文换成占位文字
    """
    text = (content or "").strip()
    message_type = derive_message_type(text, attachment)
    if attachment is not None and not text:
        text = IMAGE_PLACEHOLDER if message_type == MessageType.IMAGE else ATTACHMENT_PLACEHOLDER
    return text, message_type


class _AttachmentFields(BaseModel):
    message_type: MessageType = MessageType.TEXT
    attachment_url: Optional[str] = None
    attachment_filename: Optional[str] = None
    attachment_size: Optional[int] = None
    attachment_mime_type: Optional[str] = None

    @model_validator(mode="after")
    def check_type_matches_attachment(self):
        has_attachment = bool(self.attachment_url)
        if self.message_type == MessageType.TEXT:
            carries = any(
                v is not None for v in (
                    self.attachment_url, self.attachment_filename,
                    self.attachment_size, self.attachment_mime_type,
                )
            )
            if carries:
                raise ValueError("文本消息不能携带附件")
        elif not has_attachment:
            raise ValueError(f"{self.message_type.value} 消息缺少附件")
        return self

    @property
    def attachment(self) -> Optional[AttachmentInfo]:
        if not self.attachment_url:
            return None
        return AttachmentInfo(
            url=self.attachment_url,
            filename=self.attachment_filename or "file",
            size=self.attachment_size or 0,
            mime_type=self.attachment_mime_type or "",
        )


class MessageBody(_AttachmentFields):
    """重新发送的请求体"""
    content: str = Field(default="", max_length=MAX_CONTENT_LENGTH)

    @model_validator(mode="after")
    def check_not_empty(self):
        if not self.content.strip() and not self.attachment_url:
            raise ValueError("消息内容或附件不能为空")
        return self

    @classmethod
    def build(cls, content: str, attachment: Optional[AttachmentInfo] = None, **extra):
        text, message_type = compose_body(content, attachment)
        fields = dict(content=text, message_type=message_type, **extra)
        if attachment is not None:
            fields.update(
                attachment_url=attachment.url,
                attachment_filename=attachment.filename,
                attachment_size=attachment.size,
                attachment_mime_type=attachment.mime_type,
            )
        return cls(**fields)


class MessageCreate(MessageBody):
    """发送消息的请求体"""
    recipient_id: int


class MessageResponse(_AttachmentFields):
    id: int
    sender_id: int
    recipient_id: int
    thread_id: str
    content: str
    is_read: bool = False
    read_at: Optional[datetime] = None
    is_recalled: bool = False
    recalled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    # 双方资料（服务端联表带出）
    sender_username: Optional[str] = None
    sender_name: Optional[str] = None
    sender_avatar: Optional[str] = None
    recipient_username: Optional[str] = None
    recipient_name: Optional[str] = None
    recipient_avatar: Optional[str] = None

    @field_serializer("attachment_url", "sender_avatar", "recipient_avatar")
    def serialize_url(self, value: Optional[str]) -> Optional[str]:
        """相对路径转换为完整 URL"""
        return get_static_url(value) if value else value


class Pagination(BaseModel):
    page: int
    page_size: int
    total: int
    total_pages: int


class MessagePage(BaseModel):
    # 新消息在前
    messages: List[MessageResponse]
    pagination: Pagination


class RecallResponse(BaseModel):
    success: bool = True
    message_id: int
    recalled_at: datetime


class MarkReadResponse(BaseModel):
    success: bool = True
    thread_id: str
    updated_count: int


class MessageReadResponse(BaseModel):
    success: bool = True
    message_id: int
    read_at: Optional[datetime] = None


class ReadAllResponse(BaseModel):
    success: bool = True
    updated_count: int


class MessageSettingsUpdate(BaseModel):
    allow_strangers: bool


class MessageSettingsResponse(BaseModel):
    allow_strangers: bool = True


class UnreadCountResponse(BaseModel):
    count: int


class UploadResponse(BaseModel):
    url: str
    filename: str
    size: int
    mime_type: str


class ThreadSummary(BaseModel):
    thread_id: str
    other_user_id: int
    other_username: Optional[str] = None
    other_name: Optional[str] = None
    other_avatar: Optional[str] = None
    last_message: str
    last_message_at: datetime
    unread_count: int
    total_messages: int

    @field_serializer("other_avatar")
    def serialize_avatar(self, avatar: Optional[str]) -> Optional[str]:
        return get_static_url(avatar) if avatar else avatar


class ThreadPage(BaseModel):
    threads: List[ThreadSummary]
    pagination: Pagination
