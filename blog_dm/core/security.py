from jose import jwt, JWTError
from blog_dm.core.config import settings


class InvalidToken(Exception):
    """签名不对、已过期或 payload 里没有 user_id"""


# -------- 验签（token 由认证服务签发，这里只解出 user_id） --------
def user_id_from_token(token: str) -> int:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        raise InvalidToken("Token 无效或已过期") from e

    user_id = payload.get("user_id")
    try:
        return int(user_id)
    except (TypeError, ValueError):
        raise InvalidToken("Token 缺少 user_id")
