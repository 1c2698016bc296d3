"""taskcontrol Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
"""

import asyncio
from pathlib import Path

import aiosqlite

from .history_store import SqliteHistoryStore
from .sqlite_init import init_db, verify_wal_mode
from .task_store import SqliteTaskStore
from .transaction import read_session, unit_of_work
from .user_store import SqliteUserDirectory


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接与同一把连接锁

    连接锁串行化同一进程内的所有工作单元，
    保证“读负载 -> 校验上限 -> 写入”在并发请求间不交错。
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.lock = asyncio.Lock()
        self.task_store = SqliteTaskStore(conn)
        self.history_store = SqliteHistoryStore(conn)
        self.user_directory = SqliteUserDirectory(conn)

    async def close(self) -> None:
        await self.conn.close()


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    # 事务完全由 unit_of_work 显式控制
    conn = await aiosqlite.connect(db_path, isolation_level=None)
    conn.row_factory = aiosqlite.Row
    await init_db(conn)

    return StoreGroup(conn=conn)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "SqliteTaskStore",
    "SqliteHistoryStore",
    "SqliteUserDirectory",
    "init_db",
    "verify_wal_mode",
    "unit_of_work",
    "read_session",
]
