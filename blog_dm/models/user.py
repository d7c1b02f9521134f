from sqlalchemy import Column, Integer, String, DateTime
from blog_dm.db.database import Base
from blog_dm.models.messages import utcnow

# 用户表由认证服务维护，这里只读用户名/昵称/头像
class User(Base):
    __tablename__ = "users"

    id           = Column(Integer, primary_key=True, index=True, autoincrement=True)
    username     = Column(String(32), unique=True, nullable=False)
    display_name = Column(String(64), nullable=True)         # 昵称
    avatar       = Column(String(256), nullable=True)        # 头像 url
    created_at   = Column(DateTime, default=utcnow)
