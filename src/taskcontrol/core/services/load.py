"""LoadAccountant -- 工人活跃任务计数与上限校验

活跃任务 = ASSIGNED + ACCEPTED。
计数必须在持有写事务时读取，保证“读 -> 校验 -> 写”不与其他分配交错。
"""

from ..exceptions import CapacityExceededError
from ..store.protocols import TaskStore


class LoadAccountant:
    """按可配置上限统计工人负载"""

    def __init__(self, task_store: TaskStore, ceiling: int) -> None:
        self._tasks = task_store
        self.ceiling = ceiling

    async def active_count(self, company_id: str, worker_id: str) -> int:
        return await self._tasks.count_active_tasks(company_id, worker_id)

    async def snapshot(self, company_id: str, worker_ids: list[str]) -> dict[str, int]:
        """一次分组查询返回每个工人的活跃任务数（无任务者为 0）"""
        counts = await self._tasks.count_active_tasks_for(company_id, worker_ids)
        return {worker_id: counts.get(worker_id, 0) for worker_id in worker_ids}

    async def ensure_capacity(
        self,
        company_id: str,
        task_id: str,
        worker_id: str,
    ) -> int:
        """校验工人未达上限

        Returns:
            当前活跃任务数

        Raises:
            CapacityExceededError: 活跃任务数 >= 上限
        """
        count = await self.active_count(company_id, worker_id)
        if count >= self.ceiling:
            raise CapacityExceededError(
                task_id=task_id,
                worker_id=worker_id,
                active_count=count,
                ceiling=self.ceiling,
            )
        return count
