"""aiohttp 版私信接口客户端

只负责请求和解析；状态全部在 ThreadStore / 控制器里。
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp
from pydantic import BaseModel, ValidationError as SchemaError

from blog_dm.client.config import ClientSettings
from blog_dm.client.errors import ApiError, TransportError
from blog_dm.schemas.messages import (
    MarkReadResponse,
    MessageBody,
    MessageCreate,
    MessagePage,
    MessageReadResponse,
    MessageResponse,
    MessageSettingsResponse,
    MessageSettingsUpdate,
    ReadAllResponse,
    RecallResponse,
    ThreadPage,
    UnreadCountResponse,
    UploadResponse,
)

logger = logging.getLogger(__name__)


@dataclass
class LocalFile:
    """待上传的本地文件（粘贴的图片或选择的文件）"""
    filename: str
    mime_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def _detail_from(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    detail = payload.get("detail")
    if isinstance(detail, list):
        # FastAPI 422：[{loc, msg, type}, ...]
        return "; ".join(str(item.get("msg", item)) if isinstance(item, dict) else str(item) for item in detail)
    return str(detail) if detail is not None else None


class MessagesApi:
    def __init__(
        self,
        base_url: str,
        token: str = "",
        *,
        timeout: float = 15.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_settings(cls, settings: Optional[ClientSettings] = None) -> "MessagesApi":
        settings = settings or ClientSettings()
        return cls(settings.API_BASE_URL, settings.API_TOKEN, timeout=settings.REQUEST_TIMEOUT)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def close(self):
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    def _headers(self) -> Dict[str, str]:
        if not self._token:
            return {}
        return {"Authorization": f"Bearer {self._token}"}

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self._base_url}{path}"
        session = self._get_session()
        try:
            async with session.request(method, url, headers=self._headers(), **kwargs) as resp:
                if resp.status >= 400:
                    try:
                        payload = await resp.json(content_type=None)
                    except ValueError:
                        payload = None
                    raise ApiError(resp.status, _detail_from(payload))
                return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"{method} {path} 请求失败: {e!r}")
            raise TransportError(f"{method} {path} failed: {e}") from e

    @staticmethod
    def _parse(model: type, payload: Any) -> BaseModel:
        try:
            return model.model_validate(payload)
        except SchemaError as e:
            raise TransportError(f"unexpected {model.__name__} payload: {e}") from e

    # --------------------------------------------------
    # 会话 / 消息
    # --------------------------------------------------
    async def get_thread_messages(self, thread_id: str, page: int = 1, page_size: int = 20) -> MessagePage:
        payload = await self._request(
            "GET", f"/api/messages/threads/{thread_id}",
            params={"page": page, "page_size": page_size},
        )
        return self._parse(MessagePage, payload)

    async def list_threads(self, page: int = 1, page_size: int = 20) -> ThreadPage:
        payload = await self._request(
            "GET", "/api/messages/threads",
            params={"page": page, "page_size": page_size},
        )
        return self._parse(ThreadPage, payload)

    async def send_message(self, body: MessageCreate) -> MessageResponse:
        payload = await self._request(
            "POST", "/api/messages/send",
            json=body.model_dump(mode="json", exclude_none=True),
        )
        return self._parse(MessageResponse, payload)

    async def recall_message(self, message_id: int) -> RecallResponse:
        payload = await self._request("POST", f"/api/messages/{message_id}/recall")
        return self._parse(RecallResponse, payload)

    async def resend_message(self, message_id: int, body: MessageBody) -> MessageResponse:
        payload = await self._request(
            "POST", f"/api/messages/{message_id}/resend",
            json=body.model_dump(mode="json", exclude_none=True),
        )
        return self._parse(MessageResponse, payload)

    async def mark_thread_read(self, thread_id: str) -> MarkReadResponse:
        payload = await self._request("POST", f"/api/messages/threads/{thread_id}/read")
        return self._parse(MarkReadResponse, payload)

    async def unread_count(self) -> int:
        payload = await self._request("GET", "/api/messages/unread/count")
        return self._parse(UnreadCountResponse, payload).count

    async def mark_message_read(self, message_id: int) -> MessageReadResponse:
        payload = await self._request("PUT", f"/api/messages/{message_id}/read")
        return self._parse(MessageReadResponse, payload)

    async def mark_all_read(self) -> int:
        payload = await self._request("PUT", "/api/messages/read-all")
        return self._parse(ReadAllResponse, payload).updated_count

    async def get_settings(self) -> MessageSettingsResponse:
        payload = await self._request("GET", "/api/messages/settings")
        return self._parse(MessageSettingsResponse, payload)

    async def update_settings(self, allow_strangers: bool) -> MessageSettingsResponse:
        body = MessageSettingsUpdate(allow_strangers=allow_strangers)
        payload = await self._request("PUT", "/api/messages/settings", json=body.model_dump())
        return self._parse(MessageSettingsResponse, payload)

    # --------------------------------------------------
    # 上传
    # --------------------------------------------------
    async def _upload(self, path: str, file: LocalFile) -> UploadResponse:
        form = aiohttp.FormData()
        form.add_field("file", file.data, filename=file.filename, content_type=file.mime_type)
        payload = await self._request("POST", path, data=form)
        return self._parse(UploadResponse, payload)

    async def upload_image(self, file: LocalFile) -> UploadResponse:
        return await self._upload("/api/upload/image", file)

    async def upload_file(self, file: LocalFile) -> UploadResponse:
        return await self._upload("/api/upload/file", file)
