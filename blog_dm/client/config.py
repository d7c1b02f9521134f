from pydantic_settings import BaseSettings


class ClientSettings(BaseSettings):
    # 服务端地址和访问令牌
    API_BASE_URL: str = "http://localhost:8000"
    API_TOKEN: str = ""

    # 单次请求超时（秒）
    REQUEST_TIMEOUT: float = 15.0

    # 会话每页条数
    PAGE_SIZE: int = 20

    # 未读数轮询间隔（秒）
    UNREAD_POLL_SECONDS: int = 30

    class Config:
        env_prefix = "BLOG_DM_"
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"
