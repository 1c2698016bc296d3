"""TaskEventHub -- 内存中任务通知广播器

按公司分组，每个订阅者持有一个 asyncio.Queue。
引擎在事务提交后调用 broadcast，发出即忘：队列已满的订阅者被移除，
不会有异常回流到引擎。
"""

import asyncio
from collections import defaultdict

import structlog

from ..models.notification import TaskNotification

log = structlog.get_logger()


class TaskEventHub:
    """任务通知广播器 -- 基于 asyncio.Queue 的发布/订阅模式"""

    def __init__(self, queue_maxsize: int = 100) -> None:
        # company_id -> set of asyncio.Queue
        self._subscribers: dict[str, set[asyncio.Queue]] = defaultdict(set)
        self._queue_maxsize = queue_maxsize

    async def subscribe(self, company_id: str) -> asyncio.Queue:
        """订阅指定公司的任务通知

        Returns:
            asyncio.Queue 实例，新通知会被推送到此队列
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_maxsize)
        self._subscribers[company_id].add(queue)
        return queue

    async def unsubscribe(self, company_id: str, queue: asyncio.Queue) -> None:
        """取消订阅"""
        self._subscribers[company_id].discard(queue)
        if not self._subscribers[company_id]:
            del self._subscribers[company_id]

    def subscriber_count(self, company_id: str) -> int:
        return len(self._subscribers.get(company_id, ()))

    async def broadcast(self, company_id: str, notification: TaskNotification) -> None:
        """向指定公司的所有订阅者广播通知"""
        dead_queues = []
        for queue in self._subscribers.get(company_id, set()):
            try:
                queue.put_nowait(notification)
            except asyncio.QueueFull:
                dead_queues.append(queue)

        # 清理已满的队列
        for q in dead_queues:
            self._subscribers[company_id].discard(q)
        if dead_queues:
            log.warning(
                "notification_subscribers_dropped",
                company_id=company_id,
                dropped=len(dead_queues),
            )
        if company_id in self._subscribers and not self._subscribers[company_id]:
            del self._subscribers[company_id]
