"""UserDirectory SQLite 实现

用户与能力档案由外部协作方维护，这里只保存引擎需要的只读视图；
upsert_user / set_active 供同步任务与测试写入。
"""

import aiosqlite

from ..matching import normalize_capability
from ..models.enums import UserRole
from ..models.user import Capability, UserProfile


class SqliteUserDirectory:
    """UserDirectory 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def upsert_user(self, user: UserProfile) -> None:
        """写入或覆盖用户档案（能力整体替换）

        注意：此方法不自动提交事务，需由调用方管理事务。
        """
        await self._conn.execute(
            """
            INSERT INTO users (user_id, company_id, display_name, role,
                               department, is_active)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                company_id = excluded.company_id,
                display_name = excluded.display_name,
                role = excluded.role,
                department = excluded.department,
                is_active = excluded.is_active
            """,
            (
                user.user_id,
                user.company_id,
                user.display_name,
                user.role.value,
                user.department,
                1 if user.is_active else 0,
            ),
        )
        await self._conn.execute(
            "DELETE FROM user_capabilities WHERE user_id = ?",
            (user.user_id,),
        )
        # 同名能力（规范化后）保留最后一次出现的等级
        by_name = {normalize_capability(c.name): c for c in user.capabilities}
        await self._conn.executemany(
            """
            INSERT INTO user_capabilities (user_id, name, normalized_name, level)
            VALUES (?, ?, ?, ?)
            """,
            [
                (user.user_id, c.name, normalized, c.level)
                for normalized, c in by_name.items()
            ],
        )

    async def get_user(self, company_id: str, user_id: str) -> UserProfile | None:
        """查询公司内的用户；跨公司视为不存在"""
        cursor = await self._conn.execute(
            "SELECT * FROM users WHERE user_id = ? AND company_id = ?",
            (user_id, company_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        capabilities = await self._load_capabilities([user_id])
        return self._row_to_user(row, capabilities.get(user_id, []))

    async def list_candidates(
        self,
        company_id: str,
        department: str,
    ) -> list[UserProfile]:
        """查询部门内在职工人（自动分配候选池），按 user_id 排序"""
        cursor = await self._conn.execute(
            """
            SELECT * FROM users
            WHERE company_id = ? AND department = ? AND role = ? AND is_active = 1
            ORDER BY user_id ASC
            """,
            (company_id, department, UserRole.WORKER.value),
        )
        rows = await cursor.fetchall()
        capabilities = await self._load_capabilities([row["user_id"] for row in rows])
        return [
            self._row_to_user(row, capabilities.get(row["user_id"], []))
            for row in rows
        ]

    async def set_active(self, company_id: str, user_id: str, is_active: bool) -> bool:
        """更新在职状态

        Returns:
            True 如果找到并更新了用户
        """
        cursor = await self._conn.execute(
            "UPDATE users SET is_active = ? WHERE user_id = ? AND company_id = ?",
            (1 if is_active else 0, user_id, company_id),
        )
        return cursor.rowcount == 1

    async def _load_capabilities(
        self,
        user_ids: list[str],
    ) -> dict[str, list[Capability]]:
        if not user_ids:
            return {}
        placeholders = ", ".join("?" * len(user_ids))
        cursor = await self._conn.execute(
            f"SELECT user_id, name, level FROM user_capabilities "
            f"WHERE user_id IN ({placeholders}) ORDER BY user_id, normalized_name",
            user_ids,
        )
        result: dict[str, list[Capability]] = {}
        for row in await cursor.fetchall():
            result.setdefault(row["user_id"], []).append(
                Capability(name=row["name"], level=row["level"])
            )
        return result

    @staticmethod
    def _row_to_user(row: aiosqlite.Row, capabilities: list[Capability]) -> UserProfile:
        return UserProfile(
            user_id=row["user_id"],
            company_id=row["company_id"],
            display_name=row["display_name"],
            role=UserRole(row["role"]),
            department=row["department"],
            is_active=bool(row["is_active"]),
            capabilities=capabilities,
        )
