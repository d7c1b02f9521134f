import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from blog_dm.client.api_client import MessagesApi
from blog_dm.schemas.messages import MessageResponse

logger = logging.getLogger(__name__)


@dataclass
class Participant:
    """会话对方（从第一页消息推出来，不单独存）"""
    user_id: int
    username: Optional[str] = None
    display_name: Optional[str] = None
    avatar: Optional[str] = None


def other_side(message: MessageResponse, current_user_id: int) -> Participant:
    """哪边不是自己，哪边就是对方；每条消息单独判断"""
    if message.sender_id == current_user_id:
        return Participant(
            user_id=message.recipient_id,
            username=message.recipient_username,
            display_name=message.recipient_name,
            avatar=message.recipient_avatar,
        )
    return Participant(
        user_id=message.sender_id,
        username=message.sender_username,
        display_name=message.sender_name,
        avatar=message.sender_avatar,
    )


class ThreadStore:
    """
    一个会话的消息列表：旧 → 新

    内部是 id → 消息 的字典加一份顺序列表，
    按 id 原地替换时顺序不变；往前翻页时旧消息插在最前面。
    """

    def __init__(self, api: MessagesApi, current_user_id: int):
        self._api = api
        self.current_user_id = current_user_id
        self.thread_id: Optional[str] = None
        self.other: Optional[Participant] = None
        self.page = 0
        self.total_pages = 0
        self._by_id: Dict[int, MessageResponse] = {}
        self._order: List[int] = []
        # 界面关闭后不再接受任何写入
        self.closed = False

    # ---------- 读取 ----------
    @property
    def messages(self) -> List[MessageResponse]:
        return [self._by_id[message_id] for message_id in self._order]

    @property
    def has_more(self) -> bool:
        return self.page < self.total_pages

    def get(self, message_id: int) -> Optional[MessageResponse]:
        return self._by_id.get(message_id)

    def position(self, message_id: int) -> int:
        return self._order.index(message_id)

    def __len__(self):
        return len(self._order)

    def __contains__(self, message_id: int):
        return message_id in self._by_id

    def close(self):
        self.closed = True

    # ---------- 加载 ----------
    async def load_page(self, thread_id: str, page: int, page_size: int) -> List[MessageResponse]:
        result = await self._api.get_thread_messages(thread_id, page, page_size)
        if self.closed:
            return []
        # 服务端新消息在前，这里转成旧 → 新
        batch = list(reversed(result.messages))

        if page == 1 or thread_id != self.thread_id:
            self._reset(thread_id)
            self._extend(batch)
            self.other = self._derive_other(batch)
        else:
            self._prepend(batch)

        self.page = result.pagination.page
        self.total_pages = result.pagination.total_pages
        return batch

    def _reset(self, thread_id: str):
        self.thread_id = thread_id
        self.other = None
        self._by_id.clear()
        self._order.clear()

    def _extend(self, batch: Iterable[MessageResponse]):
        for message in batch:
            self.append(message)

    def _prepend(self, batch: List[MessageResponse]):
        # 发新消息后 offset 分页会错位，已有的 id 跳过
        older = [m for m in batch if m.id not in self._by_id]
        for message in older:
            self._by_id[message.id] = message
        self._order[0:0] = [m.id for m in older]

    def _derive_other(self, batch: List[MessageResponse]) -> Optional[Participant]:
        other = None
        for message in batch:
            candidate = other_side(message, self.current_user_id)
            if other is None:
                other = candidate
            elif candidate.user_id != other.user_id:
                logger.warning(
                    f"会话 {self.thread_id} 出现第三方 {candidate.user_id}，沿用 {other.user_id}"
                )
        return other

    # ---------- 写入 ----------
    def append(self, message: MessageResponse):
        """新发出的消息放到末尾；已存在则原地替换"""
        if self.closed:
            return
        if message.id in self._by_id:
            self._by_id[message.id] = message
            return
        self._by_id[message.id] = message
        self._order.append(message.id)
        if self.other is None:
            self.other = other_side(message, self.current_user_id)

    def replace(self, message: MessageResponse) -> bool:
        """按 id 原地替换，位置不动；不在列表里的忽略"""
        if self.closed or message.id not in self._by_id:
            return False
        self._by_id[message.id] = message
        return True

    def update(self, message_id: int, **changes) -> Optional[MessageResponse]:
        current = self._by_id.get(message_id)
        if current is None or self.closed:
            return None
        updated = current.model_copy(update=changes)
        self._by_id[message_id] = updated
        return updated

    def mark_incoming_read(self, read_at=None):
        """本地把对方发来的消息标成已读（只会前进）"""
        if self.closed:
            return
        for message_id in self._order:
            message = self._by_id[message_id]
            if message.recipient_id == self.current_user_id and not message.is_read:
                self._by_id[message_id] = message.model_copy(update={"is_read": True, "read_at": read_at})
