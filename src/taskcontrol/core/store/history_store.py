"""HistoryStore SQLite 实现

分配历史表 append-only：只允许插入，UPDATE 由触发器拒绝。
seq 自增列保证同一任务内的记录按写入顺序返回。
"""

from datetime import datetime

import aiosqlite

from ..models.enums import AssignmentKind
from ..models.history import AssignmentHistoryEntry


class SqliteHistoryStore:
    """HistoryStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def append_entry(self, entry: AssignmentHistoryEntry) -> None:
        """追加历史记录（append-only）

        注意：此方法不自动提交事务，需由调用方管理事务。
        """
        await self._conn.execute(
            """
            INSERT INTO task_assignment_history (entry_id, task_id,
                assigned_to_user_id, assigned_by_user_id, kind, motive, ts)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.entry_id,
                entry.task_id,
                entry.assigned_to_user_id,
                entry.assigned_by_user_id,
                entry.kind.value,
                entry.motive,
                entry.ts.isoformat(),
            ),
        )

    async def list_for_task(self, task_id: str) -> list[AssignmentHistoryEntry]:
        """查询指定任务的全部历史记录，按写入顺序正序"""
        cursor = await self._conn.execute(
            "SELECT * FROM task_assignment_history WHERE task_id = ? ORDER BY seq ASC",
            (task_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_entry(row) for row in rows]

    @staticmethod
    def _row_to_entry(row: aiosqlite.Row) -> AssignmentHistoryEntry:
        """将数据库行转换为 AssignmentHistoryEntry 模型"""
        return AssignmentHistoryEntry(
            entry_id=row["entry_id"],
            task_id=row["task_id"],
            assigned_to_user_id=row["assigned_to_user_id"],
            assigned_by_user_id=row["assigned_by_user_id"],
            kind=AssignmentKind(row["kind"]),
            motive=row["motive"],
            ts=datetime.fromisoformat(row["ts"]),
        )
