"""
消息生命周期：发送 / 撤回 / 重新发送 / 标记已读

    Active --recall(发送者, 3分钟内)--> Recalled --resend(发送者)--> Active

已读（Unread → Read）与撤回状态互不影响，只会往前走。
客户端的撤回时限判断只用来显示/隐藏按钮，以服务端结果为准；
服务端拒绝时本地状态不做任何改动。
"""
import inspect
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional, Union

from blog_dm.client.api_client import MessagesApi
from blog_dm.client.errors import (
    DraftTooLongError,
    EmptyMessageError,
    MessagingError,
    NotEditableError,
    SendFailedError,
)
from blog_dm.client.thread_store import ThreadStore
from blog_dm.schemas.messages import (
    MAX_CONTENT_LENGTH,
    RECALL_WINDOW,
    RECALLED_PLACEHOLDER,
    AttachmentInfo,
    MessageBody,
    MessageCreate,
    MessageResponse,
)

logger = logging.getLogger(__name__)

UnreadSignal = Callable[[], Union[Awaitable[object], object]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def display_text(message: MessageResponse) -> str:
    """气泡里显示的文字：已撤回的一律显示占位"""
    if message.is_recalled:
        return RECALLED_PLACEHOLDER
    return message.content


def _check_body(content: str, attachment: Optional[AttachmentInfo]):
    if not (content or "").strip() and attachment is None:
        raise EmptyMessageError()
    if content and len(content.strip()) > MAX_CONTENT_LENGTH:
        raise DraftTooLongError(MAX_CONTENT_LENGTH)


class MessageLifecycleController:
    def __init__(
        self,
        api: MessagesApi,
        store: ThreadStore,
        current_user_id: int,
        *,
        on_unread_changed: Optional[UnreadSignal] = None,
        clock: Callable[[], datetime] = utcnow,
        recall_window: timedelta = RECALL_WINDOW,
    ):
        self._api = api
        self._store = store
        self.current_user_id = current_user_id
        self._on_unread_changed = on_unread_changed
        self._clock = clock
        self.recall_window = recall_window

    async def _signal_unread(self):
        if self._on_unread_changed is None:
            return
        result = self._on_unread_changed()
        if inspect.isawaitable(result):
            await result

    # --------------------------------------------------
    # 资格判断（仅用于界面）
    # --------------------------------------------------
    def can_recall(self, message: MessageResponse, now: Optional[datetime] = None) -> bool:
        if message.sender_id != self.current_user_id or message.is_recalled:
            return False
        now = _naive_utc(now) if now is not None else self._clock()
        return now - _naive_utc(message.created_at) <= self.recall_window

    def can_resend(self, message: MessageResponse) -> bool:
        return message.sender_id == self.current_user_id and message.is_recalled

    # --------------------------------------------------
    # 发送：服务端确认后才进列表，不做乐观插入
    # --------------------------------------------------
    async def send(self, recipient_id: int, content: str,
                   attachment: Optional[AttachmentInfo] = None) -> MessageResponse:
        _check_body(content, attachment)
        body = MessageCreate.build(content, attachment, recipient_id=recipient_id)
        try:
            message = await self._api.send_message(body)
        except MessagingError as e:
            logger.warning(f"发送失败 -> {recipient_id}: {e}")
            raise SendFailedError(e) from e

        self._store.append(message)
        logger.info(f"消息已发送 id={message.id} type={message.message_type.value}")
        await self._signal_unread()
        return message

    # --------------------------------------------------
    # 撤回
    # --------------------------------------------------
    async def recall(self, message_id: int) -> Optional[MessageResponse]:
        result = await self._api.recall_message(message_id)
        updated = self._store.update(
            message_id,
            is_recalled=True,
            recalled_at=result.recalled_at,
        )
        logger.info(f"消息已撤回 id={message_id}")
        return updated

    # --------------------------------------------------
    # 编辑后重新发送：同一个 id，原地替换
    # --------------------------------------------------
    async def resend(self, message_id: int, content: str,
                     attachment: Optional[AttachmentInfo] = None) -> MessageResponse:
        current = self._store.get(message_id)
        if current is None or not self.can_resend(current):
            raise NotEditableError(f"消息 {message_id} 不能重新发送")
        _check_body(content, attachment)

        body = MessageBody.build(content, attachment)
        message = await self._api.resend_message(message_id, body)
        self._store.replace(message)
        logger.info(f"消息已重新发送 id={message_id}")
        return message

    # --------------------------------------------------
    # 标记会话已读（可重复调用）
    # --------------------------------------------------
    async def mark_thread_read(self, thread_id: str) -> int:
        result = await self._api.mark_thread_read(thread_id)
        self._store.mark_incoming_read(self._clock())
        await self._signal_unread()
        return result.updated_count

    # --------------------------------------------------
    # 标记单条消息已读（只对发给自己的消息）
    # --------------------------------------------------
    async def mark_message_read(self, message_id: int) -> Optional[MessageResponse]:
        current = self._store.get(message_id)
        if current is not None and (current.recipient_id != self.current_user_id or current.is_read):
            return current
        result = await self._api.mark_message_read(message_id)
        updated = self._store.update(message_id, is_read=True, read_at=result.read_at)
        await self._signal_unread()
        return updated
