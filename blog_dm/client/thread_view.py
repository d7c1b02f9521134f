import logging
from typing import Callable, Iterable, List, Optional

from blog_dm.client.api_client import LocalFile, MessagesApi
from blog_dm.client.composer import ClipboardItem, Composer
from blog_dm.client.errors import ApiError, MessagingError
from blog_dm.client.lifecycle import MessageLifecycleController, display_text
from blog_dm.client.thread_store import Participant, ThreadStore
from blog_dm.client.unread import UnreadCounter
from blog_dm.client.uploader import AttachmentUploader
from blog_dm.schemas.messages import AttachmentInfo, MessageResponse, thread_id_for

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20


class ThreadView:
    """
    一个会话界面：消息列表 + 生命周期控制 + 输入框 + 未读角标

    每个实例自己持有 ThreadStore，不与其他会话共享。
    操作失败时通过 notify 回调提示用户，本地状态不变。
    close() 之后返回的结果直接丢弃。
    """

    def __init__(
        self,
        api: MessagesApi,
        current_user_id: int,
        other_user_id: int,
        *,
        unread: Optional[UnreadCounter] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        notify: Optional[Callable[[str], None]] = None,
        **controller_options,
    ):
        self.current_user_id = current_user_id
        self.other_user_id = other_user_id
        self.thread_id = thread_id_for(current_user_id, other_user_id)
        self.page_size = page_size
        self.unread = unread
        self.notices: List[str] = []
        self._notify = notify

        self.store = ThreadStore(api, current_user_id)
        self.controller = MessageLifecycleController(
            api, self.store, current_user_id,
            on_unread_changed=unread.refresh if unread is not None else None,
            **controller_options,
        )
        self.composer = Composer(AttachmentUploader(api))

        self.loading = False
        self.loading_more = False
        self.sending = False
        self.closed = False

    # ---------- 展示 ----------
    @property
    def messages(self) -> List[MessageResponse]:
        return self.store.messages

    @property
    def other(self) -> Participant:
        return self.store.other or Participant(user_id=self.other_user_id)

    @property
    def has_more(self) -> bool:
        return self.store.has_more

    @property
    def uploading(self) -> bool:
        return self.composer.uploading

    def render_text(self, message: MessageResponse) -> str:
        return display_text(message)

    def can_recall(self, message: MessageResponse) -> bool:
        return self.controller.can_recall(message)

    def _report(self, error: MessagingError, fallback: str):
        logger.warning(f"[thread {self.thread_id}] {fallback}: {error}")
        if self.closed:
            return
        if isinstance(error, ApiError) and error.detail:
            text = error.detail
        else:
            text = str(error) or fallback
        self.notices.append(text)
        if self._notify is not None:
            self._notify(text)

    # ---------- 生命周期 ----------
    async def open(self) -> bool:
        """加载第一页，然后标记已读（只在第一页加载完后调一次）"""
        if self.closed:
            return False
        self.loading = True
        try:
            await self.store.load_page(self.thread_id, 1, self.page_size)
        except MessagingError as e:
            self._report(e, "加载消息失败")
            return False
        finally:
            self.loading = False

        if self.closed:
            return False
        try:
            await self.controller.mark_thread_read(self.thread_id)
        except MessagingError as e:
            self._report(e, "标记已读失败")
        return not self.closed

    async def load_more(self) -> bool:
        if self.closed or self.loading_more or not self.store.has_more:
            return False
        self.loading_more = True
        try:
            await self.store.load_page(self.thread_id, self.store.page + 1, self.page_size)
        except MessagingError as e:
            self._report(e, "加载更多失败")
            return False
        finally:
            self.loading_more = False
        return not self.closed

    def close(self):
        """卸载：之后到达的结果不再写入列表、输入框，也不再提示"""
        self.closed = True
        self.store.close()
        self.composer.close()

    # ---------- 操作 ----------
    async def submit(self) -> Optional[MessageResponse]:
        if self.closed or self.sending:
            return None
        self.sending = True
        try:
            message = await self.composer.submit(self.controller, self.other.user_id)
        except MessagingError as e:
            self._report(e, "send failed")
            return None
        finally:
            self.sending = False
        return None if self.closed else message

    async def recall(self, message_id: int) -> Optional[MessageResponse]:
        if self.closed:
            return None
        try:
            message = await self.controller.recall(message_id)
        except MessagingError as e:
            self._report(e, "撤回失败")
            return None
        return None if self.closed else message

    async def mark_read(self, message_id: int) -> Optional[MessageResponse]:
        if self.closed:
            return None
        try:
            message = await self.controller.mark_message_read(message_id)
        except MessagingError as e:
            self._report(e, "标记已读失败")
            return None
        return None if self.closed else message

    def begin_edit(self, message_id: int) -> bool:
        message = self.store.get(message_id)
        if self.closed or message is None or not self.controller.can_resend(message):
            return False
        self.composer.begin_edit(message)
        return True

    def cancel_edit(self):
        self.composer.cancel_edit()

    async def paste(self, items: Iterable[ClipboardItem]) -> Optional[AttachmentInfo]:
        if self.closed:
            return None
        try:
            attachment = await self.composer.paste(items)
        except MessagingError as e:
            self._report(e, "图片上传失败")
            return None
        return None if self.closed else attachment

    async def pick_file(self, file: LocalFile) -> Optional[AttachmentInfo]:
        if self.closed:
            return None
        try:
            attachment = await self.composer.pick_file(file)
        except MessagingError as e:
            self._report(e, "附件上传失败")
            return None
        return None if self.closed else attachment
