import logging

from blog_dm.client.api_client import LocalFile, MessagesApi
from blog_dm.client.errors import AttachmentTooLargeError
from blog_dm.schemas.messages import AttachmentInfo

logger = logging.getLogger(__name__)

MAX_IMAGE_SIZE = 5 * 1024 * 1024
MAX_ATTACHMENT_SIZE = 10 * 1024 * 1024


class AttachmentUploader:
    """
    图片 / 附件上传

    大小在本地先校验，超限直接抛 AttachmentTooLargeError，不发请求。
    上传失败把异常原样抛给调用方，调用方的状态保持不变。
    """

    def __init__(self, api: MessagesApi,
                 max_image_size: int = MAX_IMAGE_SIZE,
                 max_file_size: int = MAX_ATTACHMENT_SIZE):
        self._api = api
        self.max_image_size = max_image_size
        self.max_file_size = max_file_size

    async def upload_image(self, file: LocalFile) -> AttachmentInfo:
        if file.size > self.max_image_size:
            raise AttachmentTooLargeError(file.size, self.max_image_size)
        result = await self._api.upload_image(file)
        logger.info(f"图片上传成功 {file.filename} ({file.size} bytes)")
        return AttachmentInfo(
            url=result.url,
            filename=file.filename,
            size=file.size,
            mime_type=file.mime_type,
        )

    async def upload_file(self, file: LocalFile) -> AttachmentInfo:
        if file.size > self.max_file_size:
            raise AttachmentTooLargeError(file.size, self.max_file_size)
        result = await self._api.upload_file(file)
        logger.info(f"附件上传成功 {result.filename} ({result.size} bytes)")
        return AttachmentInfo(
            url=result.url,
            filename=result.filename or file.filename,
            size=result.size,
            mime_type=result.mime_type or file.mime_type,
        )
