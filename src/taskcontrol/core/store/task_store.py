"""TaskStore SQLite 实现

tasks 行 + task_capabilities 子表。
更新带乐观版本检查：version 不匹配即抛出 ConcurrentModificationError。
注意：此处方法均不提交事务，由调用方（unit_of_work）管理。
"""

from collections.abc import Iterable
from datetime import datetime

import aiosqlite

from ..exceptions import ConcurrentModificationError
from ..matching import dedupe_capabilities, normalize_capability
from ..models.enums import ACTIVE_STATES, DelegationStatus
from ..models.task import (
    AcceptedDelegation,
    PendingDelegation,
    RejectedDelegation,
    Task,
    TaskFilters,
)

_ACTIVE_STATE_VALUES = tuple(sorted(s.value for s in ACTIVE_STATES))

_TASK_COLUMNS = (
    "task_id, company_id, title, description, priority, due_date, department, "
    "state, assigned_worker_id, created_by_user_id, evidence_text, "
    "evidence_image_url, finalized_at, finalized_by_user_id, cancellation_reason, "
    "cancelled_at, is_delegated, delegated_by_user_id, delegated_to_user_id, "
    "delegated_at, delegation_status, delegation_comment, "
    "delegation_rejection_reason, delegation_resolved_at, "
    "delegation_previous_department, is_active, created_at, updated_at, version"
)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_task(self, task: Task) -> None:
        """创建任务记录及其能力要求"""
        await self._conn.execute(
            f"INSERT INTO tasks ({_TASK_COLUMNS}) "
            f"VALUES ({', '.join('?' * 29)})",
            self._task_params(task),
        )
        await self.replace_capabilities(task.task_id, task.required_capabilities)

    async def get_task(self, company_id: str, task_id: str) -> Task | None:
        """查询公司内的在用任务"""
        cursor = await self._conn.execute(
            f"SELECT {_TASK_COLUMNS} FROM tasks "
            "WHERE task_id = ? AND company_id = ? AND is_active = 1",
            (task_id, company_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        capabilities = await self._load_capabilities([task_id])
        return self._row_to_task(row, capabilities.get(task_id, []))

    async def list_tasks(
        self,
        company_id: str,
        filters: TaskFilters | None = None,
        visible_to_worker: str | None = None,
    ) -> list[Task]:
        """查询任务列表，按 created_at 倒序

        Args:
            company_id: 公司 ID
            filters: 状态/优先级/部门/负责人筛选
            visible_to_worker: 非空时只返回该工人负责或完成的任务
        """
        filters = filters or TaskFilters()
        clauses = ["company_id = ?", "is_active = 1"]
        params: list = [company_id]

        if visible_to_worker is not None:
            clauses.append("(assigned_worker_id = ? OR finalized_by_user_id = ?)")
            params.extend([visible_to_worker, visible_to_worker])
        if filters.state is not None:
            clauses.append("state = ?")
            params.append(filters.state.value)
        if filters.priority is not None:
            clauses.append("priority = ?")
            params.append(filters.priority.value)
        if filters.department is not None:
            clauses.append("department = ?")
            params.append(filters.department)
        if filters.assignee is not None:
            clauses.append("assigned_worker_id = ?")
            params.append(filters.assignee)

        cursor = await self._conn.execute(
            f"SELECT {_TASK_COLUMNS} FROM tasks WHERE {' AND '.join(clauses)} "
            "ORDER BY created_at DESC, task_id DESC",
            params,
        )
        rows = await cursor.fetchall()
        capabilities = await self._load_capabilities([row["task_id"] for row in rows])
        return [
            self._row_to_task(row, capabilities.get(row["task_id"], []))
            for row in rows
        ]

    async def update_task(self, task: Task, expected_version: int) -> Task:
        """整行更新任务（乐观版本检查）

        Returns:
            version 递增后的 Task

        Raises:
            ConcurrentModificationError: 行已被其他写入者修改
        """
        updated = task.evolve(version=expected_version + 1)
        params = self._task_params(updated)
        # 去掉 task_id（首列），追加 WHERE 参数
        assignments = ", ".join(
            f"{col.strip()} = ?" for col in _TASK_COLUMNS.split(",")[1:]
        )
        cursor = await self._conn.execute(
            f"UPDATE tasks SET {assignments} WHERE task_id = ? AND version = ?",
            (*params[1:], task.task_id, expected_version),
        )
        if cursor.rowcount != 1:
            raise ConcurrentModificationError(
                f"Task {task.task_id} was modified concurrently",
                task_id=task.task_id,
                expected_version=expected_version,
            )
        return updated

    async def replace_capabilities(self, task_id: str, names: Iterable[str]) -> None:
        """整体替换任务的能力要求（不做增量修补）"""
        await self._conn.execute(
            "DELETE FROM task_capabilities WHERE task_id = ?",
            (task_id,),
        )
        await self._conn.executemany(
            "INSERT INTO task_capabilities (task_id, name, normalized_name) "
            "VALUES (?, ?, ?)",
            [
                (task_id, name, normalize_capability(name))
                for name in dedupe_capabilities(names)
            ],
        )

    async def count_active_tasks(self, company_id: str, worker_id: str) -> int:
        """统计工人在公司内 ASSIGNED/ACCEPTED 任务数"""
        loads = await self.count_active_tasks_for(company_id, [worker_id])
        return loads.get(worker_id, 0)

    async def count_active_tasks_for(
        self,
        company_id: str,
        worker_ids: list[str],
    ) -> dict[str, int]:
        """一次查询统计多个工人的活跃任务数（缺省者不出现在结果中）"""
        if not worker_ids:
            return {}
        placeholders = ", ".join("?" * len(worker_ids))
        cursor = await self._conn.execute(
            f"""
            SELECT assigned_worker_id, COUNT(*) AS active_count
            FROM tasks
            WHERE company_id = ?
              AND assigned_worker_id IN ({placeholders})
              AND state IN (?, ?)
            GROUP BY assigned_worker_id
            """,
            (company_id, *worker_ids, *_ACTIVE_STATE_VALUES),
        )
        rows = await cursor.fetchall()
        return {row["assigned_worker_id"]: row["active_count"] for row in rows}

    async def list_active_tasks_for_worker(
        self,
        company_id: str,
        worker_id: str,
    ) -> list[Task]:
        """查询工人当前持有的活跃任务"""
        return [
            t
            for t in await self.list_tasks(company_id, TaskFilters(assignee=worker_id))
            if t.state in ACTIVE_STATES
        ]

    async def _load_capabilities(self, task_ids: list[str]) -> dict[str, list[str]]:
        if not task_ids:
            return {}
        placeholders = ", ".join("?" * len(task_ids))
        cursor = await self._conn.execute(
            f"SELECT task_id, name FROM task_capabilities "
            f"WHERE task_id IN ({placeholders}) ORDER BY task_id, rowid",
            task_ids,
        )
        result: dict[str, list[str]] = {}
        for row in await cursor.fetchall():
            result.setdefault(row["task_id"], []).append(row["name"])
        return result

    @staticmethod
    def _task_params(task: Task) -> tuple:
        """Task -> 与 _TASK_COLUMNS 顺序一致的参数元组"""
        d = task.delegation
        rejection_reason = d.rejection_reason if isinstance(d, RejectedDelegation) else None
        resolved_at = d.resolved_at if isinstance(d, AcceptedDelegation | RejectedDelegation) else None
        return (
            task.task_id,
            task.company_id,
            task.title,
            task.description,
            task.priority.value,
            _iso(task.due_date),
            task.department,
            task.state.value,
            task.assigned_worker_id,
            task.created_by_user_id,
            task.evidence_text,
            task.evidence_image_url,
            _iso(task.finalized_at),
            task.finalized_by_user_id,
            task.cancellation_reason,
            _iso(task.cancelled_at),
            1 if task.is_delegated else 0,
            d.origin_manager_id if d else None,
            d.destination_manager_id if d else None,
            _iso(d.delegated_at) if d else None,
            d.status.value if d else None,
            d.comment if d else None,
            rejection_reason,
            _iso(resolved_at),
            d.previous_department if d else None,
            1 if task.is_active else 0,
            task.created_at.isoformat(),
            task.updated_at.isoformat(),
            task.version,
        )

    @staticmethod
    def _row_to_task(row: aiosqlite.Row, capabilities: list[str]) -> Task:
        """将数据库行转换为 Task 模型"""
        delegation = None
        status = row["delegation_status"]
        if status is not None:
            common = {
                "origin_manager_id": row["delegated_by_user_id"],
                "destination_manager_id": row["delegated_to_user_id"],
                "delegated_at": _parse(row["delegated_at"]),
                "comment": row["delegation_comment"],
                "previous_department": row["delegation_previous_department"],
            }
            if status == DelegationStatus.PENDING:
                delegation = PendingDelegation(**common)
            elif status == DelegationStatus.ACCEPTED:
                delegation = AcceptedDelegation(
                    **common,
                    resolved_at=_parse(row["delegation_resolved_at"]),
                )
            else:
                delegation = RejectedDelegation(
                    **common,
                    resolved_at=_parse(row["delegation_resolved_at"]),
                    rejection_reason=row["delegation_rejection_reason"] or "",
                )

        return Task(
            task_id=row["task_id"],
            company_id=row["company_id"],
            title=row["title"],
            description=row["description"],
            priority=row["priority"],
            due_date=_parse(row["due_date"]),
            department=row["department"],
            state=row["state"],
            assigned_worker_id=row["assigned_worker_id"],
            created_by_user_id=row["created_by_user_id"],
            required_capabilities=capabilities,
            evidence_text=row["evidence_text"],
            evidence_image_url=row["evidence_image_url"],
            finalized_at=_parse(row["finalized_at"]),
            finalized_by_user_id=row["finalized_by_user_id"],
            cancellation_reason=row["cancellation_reason"],
            cancelled_at=_parse(row["cancelled_at"]),
            delegation=delegation,
            is_active=bool(row["is_active"]),
            created_at=_parse(row["created_at"]),
            updated_at=_parse(row["updated_at"]),
            version=row["version"],
        )
