from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from blog_dm.core.security import InvalidToken, user_id_from_token
from blog_dm.db.database import get_db
from blog_dm.models.user import User

# Authorization: Bearer <token>；缺失时自己返回 401
bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
                     db: Session = Depends(get_db)) -> User:
    """当前登录用户；token 缺失或无效 → 401，用户不存在 → 404"""
    if credentials is None:
        raise _unauthorized("缺少 Token")
    try:
        user_id = user_id_from_token(credentials.credentials)
    except InvalidToken as e:
        raise _unauthorized(str(e))

    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="用户不存在")
    return user
