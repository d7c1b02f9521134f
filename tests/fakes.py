"""内存版私信后端，给客户端组件测试用（规则与服务端一致）"""
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from blog_dm.client.errors import ApiError, TransportError
from blog_dm.schemas.messages import (
    RECALL_WINDOW,
    RECALLED_PLACEHOLDER,
    MarkReadResponse,
    MessageBody,
    MessageCreate,
    MessagePage,
    MessageReadResponse,
    MessageResponse,
    MessageType,
    Pagination,
    RecallResponse,
    UploadResponse,
    parse_thread_id,
    thread_id_for,
)

USERS = {
    1: ("alice", "Alice", "https://cdn.test/a.png"),
    2: ("bob", "Bob", "https://cdn.test/b.png"),
    3: ("carol", "Carol", None),
}


class FakeBackend:
    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2026, 10, 18, 12, 0, 0)
        self.messages: Dict[int, MessageResponse] = {}
        self._next_id = 1

    def clock(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)

    def as_user(self, user_id: int) -> "FakeMessagesApi":
        return FakeMessagesApi(self, user_id)

    def seed(self, sender_id: int, recipient_id: int, content: str, count: int = 1) -> List[MessageResponse]:
        """按时间顺序塞入若干条文本消息"""
        created = []
        for i in range(count):
            text = content if count == 1 else f"{content} {i + 1}"
            created.append(self.insert(sender_id, recipient_id, MessageBody.build(text)))
            self.advance(seconds=1)
        return created

    def insert(self, sender_id: int, recipient_id: int, body: MessageBody) -> MessageResponse:
        sender, recipient = USERS[sender_id], USERS[recipient_id]
        message = MessageResponse(
            id=self._next_id,
            sender_id=sender_id,
            recipient_id=recipient_id,
            thread_id=thread_id_for(sender_id, recipient_id),
            content=body.content,
            message_type=body.message_type,
            attachment_url=body.attachment_url,
            attachment_filename=body.attachment_filename,
            attachment_size=body.attachment_size,
            attachment_mime_type=body.attachment_mime_type,
            created_at=self.now,
            updated_at=self.now,
            sender_username=sender[0], sender_name=sender[1], sender_avatar=sender[2],
            recipient_username=recipient[0], recipient_name=recipient[1], recipient_avatar=recipient[2],
        )
        self.messages[message.id] = message
        self._next_id += 1
        return message


class FakeMessagesApi:
    def __init__(self, backend: FakeBackend, user_id: int):
        self.backend = backend
        self.user_id = user_id
        self.calls: List[str] = []
        # 下一次调用某个方法时抛出的异常
        self.failures: Dict[str, Exception] = {}

    def _enter(self, name: str):
        self.calls.append(name)
        error = self.failures.pop(name, None)
        if error is not None:
            raise error

    def _view(self, message: MessageResponse) -> MessageResponse:
        if message.is_recalled and message.sender_id != self.user_id:
            return message.model_copy(update=dict(
                content=RECALLED_PLACEHOLDER,
                message_type=MessageType.TEXT,
                attachment_url=None,
                attachment_filename=None,
                attachment_size=None,
                attachment_mime_type=None,
            ))
        return message

    def _own(self, message_id: int) -> MessageResponse:
        message = self.backend.messages.get(message_id)
        if message is None or self.user_id not in (message.sender_id, message.recipient_id):
            raise ApiError(404, "消息不存在")
        if message.sender_id != self.user_id:
            raise ApiError(403, "只能操作自己发送的消息")
        return message

    async def get_thread_messages(self, thread_id: str, page: int = 1, page_size: int = 20) -> MessagePage:
        self._enter("get_thread_messages")
        if self.user_id not in parse_thread_id(thread_id):
            raise ApiError(403, "无权查看该会话")
        rows = sorted(
            (m for m in self.backend.messages.values() if m.thread_id == thread_id),
            key=lambda m: (m.created_at, m.id),
            reverse=True,
        )
        total = len(rows)
        window = rows[(page - 1) * page_size: page * page_size]
        return MessagePage(
            messages=[self._view(m) for m in window],
            pagination=Pagination(
                page=page, page_size=page_size, total=total,
                total_pages=(total + page_size - 1) // page_size,
            ),
        )

    async def send_message(self, body: MessageCreate) -> MessageResponse:
        self._enter("send_message")
        fields = body.model_dump(exclude={"recipient_id"})
        return self.backend.insert(self.user_id, body.recipient_id, MessageBody(**fields))

    async def recall_message(self, message_id: int) -> RecallResponse:
        self._enter("recall_message")
        message = self._own(message_id)
        if message.is_recalled:
            raise ApiError(400, "消息已被撤回")
        if self.backend.now - message.created_at > RECALL_WINDOW:
            raise ApiError(400, "recall window expired")
        self.backend.messages[message_id] = message.model_copy(
            update=dict(is_recalled=True, recalled_at=self.backend.now)
        )
        return RecallResponse(message_id=message_id, recalled_at=self.backend.now)

    async def resend_message(self, message_id: int, body: MessageBody) -> MessageResponse:
        self._enter("resend_message")
        message = self._own(message_id)
        if not message.is_recalled:
            raise ApiError(400, "只能重新发送已撤回的消息")
        updated = message.model_copy(update=dict(
            content=body.content,
            message_type=body.message_type,
            attachment_url=body.attachment_url,
            attachment_filename=body.attachment_filename,
            attachment_size=body.attachment_size,
            attachment_mime_type=body.attachment_mime_type,
            is_recalled=False,
            recalled_at=None,
            updated_at=self.backend.now,
        ))
        self.backend.messages[message_id] = updated
        return updated

    async def mark_thread_read(self, thread_id: str) -> MarkReadResponse:
        self._enter("mark_thread_read")
        count = 0
        for message_id, message in list(self.backend.messages.items()):
            if message.thread_id == thread_id and message.recipient_id == self.user_id and not message.is_read:
                self.backend.messages[message_id] = message.model_copy(
                    update=dict(is_read=True, read_at=self.backend.now)
                )
                count += 1
        return MarkReadResponse(thread_id=thread_id, updated_count=count)

    async def mark_message_read(self, message_id: int) -> MessageReadResponse:
        self._enter("mark_message_read")
        message = self.backend.messages.get(message_id)
        if message is None or self.user_id not in (message.sender_id, message.recipient_id):
            raise ApiError(404, "消息不存在")
        if message.recipient_id != self.user_id:
            raise ApiError(403, "无权操作此消息")
        if not message.is_read:
            message = message.model_copy(update=dict(is_read=True, read_at=self.backend.now))
            self.backend.messages[message_id] = message
        return MessageReadResponse(message_id=message_id, read_at=message.read_at)

    async def mark_all_read(self) -> int:
        self._enter("mark_all_read")
        count = 0
        for message_id, message in list(self.backend.messages.items()):
            if message.recipient_id == self.user_id and not message.is_read:
                self.backend.messages[message_id] = message.model_copy(
                    update=dict(is_read=True, read_at=self.backend.now)
                )
                count += 1
        return count

    async def unread_count(self) -> int:
        self._enter("unread_count")
        return sum(
            1 for m in self.backend.messages.values()
            if m.recipient_id == self.user_id and not m.is_read and not m.is_recalled
        )

    async def _upload(self, name: str, file) -> UploadResponse:
        self._enter(name)
        return UploadResponse(
            url=f"https://cdn.test/upload/{file.filename}",
            filename=file.filename,
            size=file.size,
            mime_type=file.mime_type,
        )

    async def upload_image(self, file) -> UploadResponse:
        return await self._upload("upload_image", file)

    async def upload_file(self, file) -> UploadResponse:
        return await self._upload("upload_file", file)


def offline(name: str = "offline") -> TransportError:
    return TransportError(name)
