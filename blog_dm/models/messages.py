from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from blog_dm.db.database import Base


def utcnow() -> datetime:
    # 库里统一存不带时区的 UTC 时间
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Messages(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # 发送方 & 接收方（私聊场景）
    sender_id    = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    recipient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # 会话ID："小id-大id"，双方算出来一样
    thread_id = Column(String(32), nullable=False, index=True)

    # 消息内容
    content = Column(Text, nullable=False, default="")

    # 消息类型：text / image / attachment / mixed
    message_type = Column(String(16), default="text", nullable=False)

    # 附件（仅 image / attachment / mixed）
    attachment_url       = Column(String(512), nullable=True)
    attachment_filename  = Column(String(255), nullable=True)
    attachment_size      = Column(Integer, nullable=True)
    attachment_mime_type = Column(String(128), nullable=True)

    # 已读标记（只会从未读变已读）
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True)

    # 撤回标记
    is_recalled = Column(Boolean, default=False, nullable=False)
    recalled_at = Column(DateTime, nullable=True)

    # 创建 & 更新（撤回/重新发送时更新 updated_at，created_at 不变）
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # ORM 关系（方便带出双方昵称头像）
    sender    = relationship("User", foreign_keys=[sender_id],    lazy="joined")
    recipient = relationship("User", foreign_keys=[recipient_id], lazy="joined")
