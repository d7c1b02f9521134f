from sqlalchemy import Column, Integer, Boolean, DateTime, ForeignKey
from blog_dm.db.database import Base
from blog_dm.models.messages import utcnow


# 私信偏好设置；没有记录的用户按默认值处理（允许陌生人私信）
class MessageSettings(Base):
    __tablename__ = "message_settings"

    id      = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)

    # 关闭后，只有已经有过会话的人才能继续发私信
    allow_strangers = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
