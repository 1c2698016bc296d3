"""AuditRecorder -- 分配历史记录写入

每次改变负责人（分配/重新分配/释放）及每次委派动作都追加一条不可变记录。
必须在调用方的工作单元内使用，与任务更新同事务提交。
"""

from datetime import UTC, datetime

from ulid import ULID

from ..models.enums import AssignmentKind
from ..models.history import AssignmentHistoryEntry
from ..store.protocols import HistoryStore


class AuditRecorder:
    """构造并追加 AssignmentHistoryEntry"""

    def __init__(self, history_store: HistoryStore) -> None:
        self._history = history_store

    async def record(
        self,
        task_id: str,
        kind: AssignmentKind,
        assigned_to: str | None,
        assigned_by: str | None,
        motive: str | None = None,
        ts: datetime | None = None,
    ) -> AssignmentHistoryEntry:
        """追加一条历史记录

        Args:
            task_id: 任务 ID
            kind: 记录类型
            assigned_to: 接收方；脱离分配时为 None
            assigned_by: 操作者；None 表示系统自动
            motive: 原因说明
            ts: 记录时间，默认当前 UTC 时间

        Returns:
            已写入的记录
        """
        entry = AssignmentHistoryEntry(
            entry_id=str(ULID()),
            task_id=task_id,
            assigned_to_user_id=assigned_to,
            assigned_by_user_id=assigned_by,
            kind=kind,
            motive=motive,
            ts=ts or datetime.now(UTC),
        )
        await self._history.append_entry(entry)
        return entry
