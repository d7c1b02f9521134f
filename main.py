import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text

from blog_dm.api import messages, upload
from blog_dm.core.config import settings
from blog_dm.db.init_db import init

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ===== 启动阶段 =====
    # 使用环境变量标记，确保只有一个进程执行初始化
    if os.environ.get("SKIP_DB_INIT") != "1":
        try:
            init()   # 建表
        except Exception as e:
            logger.error(f"数据库初始化失败: {e}")
            # 不阻止应用启动，因为表可能已经被其他worker创建

    yield
    # ===== 关闭阶段 =====


app = FastAPI(
    title="Blog Direct Messages",
    lifespan=lifespan
)


# 挂载静态文件目录（上传的图片/附件）
os.makedirs("static", exist_ok=True)
app.mount("/static", StaticFiles(directory="static"), name="static")

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS_LIST,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# 注册路由
app.include_router(messages.router, prefix="/api/messages", tags=["Messages"])
app.include_router(upload.router, prefix="/api/upload", tags=["Upload"])

# 根路由
@app.get("/")
def root():
    return {"msg": "私信服务已启动"}


@app.get("/health")
def health_check():
    """健康检查端点，用于监控服务状态"""
    from blog_dm.db.database import engine
    try:
        # 测试数据库连接
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "database": "connected",
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "database": "disconnected",
            "error": str(e)
        }
