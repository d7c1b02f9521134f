import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from blog_dm.client.api_client import LocalFile
from blog_dm.client.errors import EmptyMessageError, NotEditableError
from blog_dm.client.lifecycle import MessageLifecycleController
from blog_dm.client.uploader import AttachmentUploader
from blog_dm.schemas.messages import (
    ATTACHMENT_PLACEHOLDER,
    IMAGE_PLACEHOLDER,
    MAX_CONTENT_LENGTH,
    AttachmentInfo,
    MessageResponse,
    is_image_mime,
)

logger = logging.getLogger(__name__)

PASTED_IMAGE_NAME = "pasted-image.png"

EMOJI_LIST = [
    "😀", "😃", "😄", "😁", "😆", "😅", "🤣", "😂", "🙂", "😊",
    "😇", "🥰", "😍", "🤩", "😘", "😋", "😜", "🤪", "🤗", "🤔",
    "😐", "😏", "🙄", "😬", "😮", "😱", "😢", "😭", "😤", "😡",
    "👍", "👎", "👏", "🙌", "🤝", "💪", "🎉", "🔥", "❤️", "💔",
    "✨", "⭐", "💯", "✅", "❌", "❓", "💡", "📌", "📝", "🙏",
    "👋", "👌", "✌️", "🤞", "👉", "👈", "🐱", "🐶", "🌸", "🍎",
]


@dataclass
class ClipboardItem:
    """粘贴事件里的一项"""
    mime_type: str
    data: bytes
    filename: Optional[str] = None


def format_file_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


class Composer:
    """
    输入框状态：草稿文字（最多2000字）+ 最多一个待发送附件 + 编辑中的已撤回消息
    """

    def __init__(self, uploader: AttachmentUploader, max_length: int = MAX_CONTENT_LENGTH):
        self._uploader = uploader
        self.max_length = max_length
        self.draft = ""
        self.cursor = 0
        self.attachment: Optional[AttachmentInfo] = None
        self.editing_id: Optional[int] = None
        self.uploading = False
        self.closed = False

    @property
    def editing(self) -> bool:
        return self.editing_id is not None

    @property
    def can_submit(self) -> bool:
        return bool(self.draft.strip()) or self.attachment is not None

    # ---------- 文字 ----------
    def set_draft(self, text: str, cursor: Optional[int] = None):
        # 超长部分直接截掉，和输入框 maxLength 一致
        self.draft = text[:self.max_length]
        self.cursor = len(self.draft) if cursor is None else max(0, min(cursor, len(self.draft)))

    def insert_emoji(self, emoji: str, start: Optional[int] = None, end: Optional[int] = None) -> bool:
        """在光标处插入（有选区则替换选区），超长时不插入"""
        start = self.cursor if start is None else max(0, min(start, len(self.draft)))
        end = start if end is None else max(start, min(end, len(self.draft)))
        new_draft = self.draft[:start] + emoji + self.draft[end:]
        if len(new_draft) > self.max_length:
            return False
        self.draft = new_draft
        self.cursor = start + len(emoji)
        return True

    # ---------- 附件 ----------
    async def _upload(self, coro) -> AttachmentInfo:
        self.uploading = True
        try:
            attachment = await coro
        finally:
            self.uploading = False
        # 上传成功才替换，失败时保持原样；关闭后的结果丢弃
        if not self.closed:
            self.attachment = attachment
        return attachment

    async def paste(self, items: Iterable[ClipboardItem]) -> Optional[AttachmentInfo]:
        """只取第一张图片，其余忽略"""
        image = next((item for item in items if is_image_mime(item.mime_type)), None)
        if image is None:
            return None
        file = LocalFile(
            filename=image.filename or PASTED_IMAGE_NAME,
            mime_type=image.mime_type,
            data=image.data,
        )
        return await self._upload(self._uploader.upload_image(file))

    async def pick_file(self, file: LocalFile) -> AttachmentInfo:
        """选择文件，替换已有附件（每条消息只支持一个附件）"""
        return await self._upload(self._uploader.upload_file(file))

    def remove_attachment(self):
        self.attachment = None

    # ---------- 编辑已撤回的消息 ----------
    def begin_edit(self, message: MessageResponse):
        if not message.is_recalled:
            raise NotEditableError(f"消息 {message.id} 未撤回，不能编辑")
        attachment = message.attachment
        content = message.content
        if attachment is not None and content in (IMAGE_PLACEHOLDER, ATTACHMENT_PLACEHOLDER):
            content = ""
        self.editing_id = message.id
        self.attachment = attachment
        self.set_draft(content)

    def cancel_edit(self):
        self.editing_id = None
        self.clear()

    def close(self):
        self.closed = True

    def clear(self):
        self.draft = ""
        self.cursor = 0
        self.attachment = None
        self.editing_id = None

    # ---------- 提交 ----------
    async def submit(self, controller: MessageLifecycleController, recipient_id: int) -> MessageResponse:
        if not self.can_submit:
            raise EmptyMessageError()
        if self.editing:
            message = await controller.resend(self.editing_id, self.draft, self.attachment)
        else:
            message = await controller.send(recipient_id, self.draft, self.attachment)
        self.clear()
        return message
