from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    # ---------- MySQL ----------
    DB_HOST: str = "127.0.0.1"
    DB_PORT: int = 3306
    DB_USER: str = "root"
    DB_PASSWORD: str = ""
    DB_DATABASE: str = "blog"
    # 直接给完整连接串时优先使用（测试用 sqlite://）
    DB_URL: Optional[str] = None

    #跨域
    CORS_ORIGINS: str = "http://localhost:3000"

    @property
    def DATABASE_URI(self) -> str:
        if self.DB_URL:
            return self.DB_URL
        return (
            f"mysql+pymysql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_DATABASE}?charset=utf8mb4"
        )

    @property
    def CORS_ORIGINS_LIST(self) -> List[str]:
        return [orig.strip() for orig in self.CORS_ORIGINS.split(",") if orig.strip()]

    # ---------- JWT（由认证服务签发，这里只验签） ----------
    SECRET_KEY: str
    ALGORITHM: str = "HS256"

    # ---------- 上传 ----------
    UPLOAD_DIR: str = "static/upload"
    MAX_IMAGE_SIZE: int = 5 * 1024 * 1024
    MAX_FILE_SIZE: int = 10 * 1024 * 1024

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

settings = Settings()
