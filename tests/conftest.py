"""
Pytest configuration and fixtures.
"""
import os
import sys
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

# Add project root to Python path
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__) + '/..'))

# 必须在导入 blog_dm 之前设置：settings 在导入时读取环境变量
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["DB_URL"] = "sqlite://"
os.environ["SKIP_DB_INIT"] = "1"
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="blog_dm_upload_"))


@pytest.fixture(scope="function", autouse=True)
def clean_db():
    """每个测试前重建表"""
    from blog_dm.db.database import Base, engine
    import blog_dm.models.message_settings  # noqa: F401
    import blog_dm.models.messages  # noqa: F401
    import blog_dm.models.user  # noqa: F401

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    from blog_dm.db.database import SessionLocal

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def users(db):
    """alice(1) / bob(2) / carol(3)"""
    from blog_dm.models.user import User

    rows = [
        User(id=1, username="alice", display_name="Alice", avatar="/static/avatar/alice.png"),
        User(id=2, username="bob", display_name="Bob", avatar=None),
        User(id=3, username="carol", display_name="Carol", avatar=None),
    ]
    db.add_all(rows)
    db.commit()
    return {"alice": 1, "bob": 2, "carol": 3}


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from main import app

    return TestClient(app)


def issue_token(payload: dict, expires_in: timedelta = timedelta(minutes=30)) -> str:
    """模拟认证服务签发 token"""
    from jose import jwt
    from blog_dm.core.config import settings

    claims = dict(payload, exp=datetime.now(timezone.utc) + expires_in)
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def auth_headers(user_id: int) -> dict:
    token = issue_token({"user_id": user_id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers(users):
    return {name: auth_headers(user_id) for name, user_id in users.items()}
