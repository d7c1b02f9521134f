# services/upload_service.py
import logging
import uuid
from pathlib import Path

from fastapi import UploadFile

from blog_dm.core.config import settings
from blog_dm.core.server_config import get_static_url
from blog_dm.schemas.messages import UploadResponse

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = [
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
]

ALLOWED_FILE_TYPES = ALLOWED_IMAGE_TYPES + [
    "application/pdf",
    "text/plain",
    "text/markdown",
    "application/zip",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
]


class UploadRejected(Exception):
    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


async def save_upload(file: UploadFile, *, image_only: bool) -> UploadResponse:
    """
    校验类型和大小后落盘到 UPLOAD_DIR，文件名用 UUID 防止冲突
    image_only=True 走图片通道（5MB），否则走附件通道（10MB）
    """
    allowed = ALLOWED_IMAGE_TYPES if image_only else ALLOWED_FILE_TYPES
    max_size = settings.MAX_IMAGE_SIZE if image_only else settings.MAX_FILE_SIZE
    mime_type = file.content_type or "application/octet-stream"

    if mime_type not in allowed:
        raise UploadRejected(400, f"不支持的文件类型: {mime_type}")

    data = await file.read()
    if not data:
        raise UploadRejected(400, "文件为空")
    if len(data) > max_size:
        raise UploadRejected(413, f"文件大小不能超过 {max_size // (1024 * 1024)}MB")

    upload_dir = Path(settings.UPLOAD_DIR)
    upload_dir.mkdir(parents=True, exist_ok=True)

    filename = file.filename or "file"
    name = f"{uuid.uuid4().hex}{Path(filename).suffix}"
    (upload_dir / name).write_bytes(data)

    logger.info(f"[upload] saved {name} ({len(data)} bytes, {mime_type})")
    return UploadResponse(
        url=get_static_url(f"/{upload_dir.as_posix().strip('/')}/{name}"),
        filename=filename,
        size=len(data),
        mime_type=mime_type,
    )
