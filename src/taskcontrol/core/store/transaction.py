"""工作单元事务封装

一次引擎操作的所有读写（任务、能力、历史）在同一 SQLite 事务内原子提交：
持有连接锁 -> BEGIN IMMEDIATE -> 读/校验/写 -> COMMIT。
任何异常（包括 asyncio 取消与超时）都会先回滚再向上抛出。
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import aiosqlite
import structlog

from ..exceptions import ConcurrentModificationError, PersistenceFailureError

if TYPE_CHECKING:
    from . import StoreGroup

log = structlog.get_logger()

# SQLite 写锁竞争的错误信息片段
_LOCK_MARKERS = ("database is locked", "database is busy", "database table is locked")


def _is_lock_error(exc: aiosqlite.Error) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in _LOCK_MARKERS)


@asynccontextmanager
async def unit_of_work(
    stores: "StoreGroup",
    timeout_s: float | None = None,
) -> AsyncIterator["StoreGroup"]:
    """在一个写事务内执行操作

    Args:
        stores: 共享连接的 Store 实例组
        timeout_s: 整个工作单元（含等待锁）的超时秒数，None 表示不限

    Raises:
        ConcurrentModificationError: SQLite 写锁竞争失败
        PersistenceFailureError: 超时或存储层错误，事务已回滚
    """
    conn = stores.conn
    try:
        async with asyncio.timeout(timeout_s):
            async with stores.lock:
                await conn.execute("BEGIN IMMEDIATE")
                try:
                    yield stores
                    await conn.commit()
                except BaseException:
                    await conn.rollback()
                    raise
    except TimeoutError as exc:
        await log.awarning("unit_of_work_timeout", timeout_s=timeout_s)
        raise PersistenceFailureError(
            f"Operation exceeded {timeout_s}s and was rolled back",
            timeout_s=timeout_s,
        ) from exc
    except aiosqlite.OperationalError as exc:
        if _is_lock_error(exc):
            raise ConcurrentModificationError(
                "Store is locked by a concurrent writer",
            ) from exc
        await log.aerror("unit_of_work_failed", error=str(exc))
        raise PersistenceFailureError(f"Storage failure: {exc}") from exc
    except aiosqlite.Error as exc:
        await log.aerror("unit_of_work_failed", error=str(exc))
        raise PersistenceFailureError(f"Storage failure: {exc}") from exc


@asynccontextmanager
async def read_session(
    stores: "StoreGroup",
    timeout_s: float | None = None,
) -> AsyncIterator["StoreGroup"]:
    """只读访问：仅持有连接锁，不开启写事务

    Raises:
        PersistenceFailureError: 超时（含等待锁）或存储层错误
    """
    try:
        async with asyncio.timeout(timeout_s):
            async with stores.lock:
                yield stores
    except TimeoutError as exc:
        await log.awarning("read_session_timeout", timeout_s=timeout_s)
        raise PersistenceFailureError(
            f"Read exceeded {timeout_s}s",
            timeout_s=timeout_s,
        ) from exc
    except aiosqlite.Error as exc:
        await log.aerror("read_session_failed", error=str(exc))
        raise PersistenceFailureError(f"Storage failure: {exc}") from exc
