"""Store Protocol 接口定义

定义 TaskStore、HistoryStore、UserDirectory 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
"""

from collections.abc import Iterable
from typing import Protocol

from ..models.history import AssignmentHistoryEntry
from ..models.task import Task, TaskFilters
from ..models.user import UserProfile


class TaskStore(Protocol):
    """Task 存储接口"""

    async def create_task(self, task: Task) -> None:
        """创建任务记录"""
        ...

    async def get_task(self, company_id: str, task_id: str) -> Task | None:
        """查询公司内的任务"""
        ...

    async def list_tasks(
        self,
        company_id: str,
        filters: TaskFilters | None = None,
        visible_to_worker: str | None = None,
    ) -> list[Task]:
        """查询任务列表"""
        ...

    async def update_task(self, task: Task, expected_version: int) -> Task:
        """整行更新任务（乐观版本检查）"""
        ...

    async def replace_capabilities(self, task_id: str, names: Iterable[str]) -> None:
        """整体替换能力要求"""
        ...

    async def count_active_tasks(self, company_id: str, worker_id: str) -> int:
        """统计工人活跃任务数"""
        ...

    async def count_active_tasks_for(
        self,
        company_id: str,
        worker_ids: list[str],
    ) -> dict[str, int]:
        """批量统计活跃任务数"""
        ...

    async def list_active_tasks_for_worker(
        self,
        company_id: str,
        worker_id: str,
    ) -> list[Task]:
        """查询工人当前持有的活跃任务"""
        ...


class HistoryStore(Protocol):
    """分配历史存储接口

    历史表 append-only：只允许插入，不允许更新。
    """

    async def append_entry(self, entry: AssignmentHistoryEntry) -> None:
        """追加历史记录"""
        ...

    async def list_for_task(self, task_id: str) -> list[AssignmentHistoryEntry]:
        """按时间顺序查询任务历史"""
        ...


class UserDirectory(Protocol):
    """用户目录接口（外部协作方的只读视图）"""

    async def get_user(self, company_id: str, user_id: str) -> UserProfile | None:
        """查询公司内的用户"""
        ...

    async def list_candidates(
        self,
        company_id: str,
        department: str,
    ) -> list[UserProfile]:
        """查询部门内在职工人"""
        ...
