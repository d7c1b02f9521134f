import logging
from datetime import datetime
from typing import Callable, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from blog_dm.client.api_client import MessagesApi
from blog_dm.client.errors import MessagingError

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 30
JOB_ID = "unread-count-poll"


class UnreadCounter:
    """
    未读私信数（角标用）

    定时轮询服务端；任何组件在可能改变未读数的操作后调用 refresh()。
    轮询失败保留上一次的数字，不清零也不提示用户。
    """

    def __init__(self, api: MessagesApi, interval: int = POLL_INTERVAL_SECONDS,
                 scheduler: Optional[AsyncIOScheduler] = None):
        self._api = api
        self.interval = interval
        self.count = 0
        self.loading = False
        self._listeners: List[Callable[[int], None]] = []
        self._scheduler = scheduler or AsyncIOScheduler()
        self._stopped = False

    def subscribe(self, listener: Callable[[int], None]) -> Callable[[], None]:
        """注册回调，返回取消订阅的函数"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def refresh(self) -> int:
        self.loading = True
        try:
            count = await self._api.unread_count()
        except MessagingError as e:
            logger.warning(f"[unread] 获取未读数失败，保留 {self.count}: {e}")
            return self.count
        finally:
            self.loading = False

        if count != self.count:
            self.count = count
            for listener in list(self._listeners):
                listener(count)
        return self.count

    async def mark_all_read(self) -> int:
        """全部标记已读后重新拉一次数字"""
        updated = await self._api.mark_all_read()
        logger.info(f"[unread] 全部标记已读 {updated} 条")
        await self.refresh()
        return updated

    @property
    def running(self) -> bool:
        return not self._stopped and self._scheduler.running

    def start(self):
        """挂载：立即拉一次，之后每 interval 秒拉一次（需在事件循环内调用）"""
        if self._stopped:
            self._scheduler = AsyncIOScheduler()
            self._stopped = False
        if self._scheduler.get_job(JOB_ID) is None:
            self._scheduler.add_job(
                self.refresh, "interval",
                seconds=self.interval,
                id=JOB_ID,
                next_run_time=datetime.now(),
                max_instances=1,
                coalesce=True,
            )
        if not self._scheduler.running:
            self._scheduler.start()
        logger.info(f"[unread] 轮询已启动，间隔 {self.interval}s")

    def stop(self):
        """
        卸载：关掉定时器，避免泄漏

        AsyncIOScheduler.shutdown 要等到下一轮事件循环才真正执行，
        所以这里标记为已停止，下次 start() 换一个新的调度器。
        """
        if self._stopped:
            return
        if self._scheduler.get_job(JOB_ID) is not None:
            self._scheduler.remove_job(JOB_ID)
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._stopped = True
        logger.info("[unread] 轮询已关闭")
