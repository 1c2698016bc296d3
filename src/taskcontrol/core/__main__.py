"""CLI 入口模块 -- python -m taskcontrol.core <command>

支持的命令：
  init-db                         创建数据库表、索引与触发器
  history <company_id> <task_id>  打印任务的分配历史
"""

import asyncio
import sys

from .config import get_db_path


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print("用法: python -m taskcontrol.core <command>")
        print("命令:")
        print("  init-db                         创建数据库表、索引与触发器")
        print("  history <company_id> <task_id>  打印任务的分配历史")
        sys.exit(1)

    command = sys.argv[1]

    if command == "init-db":
        asyncio.run(init_database())
    elif command == "history":
        if len(sys.argv) != 4:
            print("用法: python -m taskcontrol.core history <company_id> <task_id>")
            sys.exit(1)
        code = asyncio.run(print_history(sys.argv[2], sys.argv[3]))
        sys.exit(code)
    else:
        print(f"未知命令: {command}")
        print("可用命令: init-db, history")
        sys.exit(1)


async def init_database() -> None:
    """创建数据库（create_store_group 内部执行 init_db）"""
    from .store import create_store_group, verify_wal_mode

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    store_group = await create_store_group(db_path)
    try:
        wal = await verify_wal_mode(store_group.conn)
        print(f"初始化完成，WAL 模式: {'是' if wal else '否'}")
    finally:
        await store_group.close()


async def print_history(company_id: str, task_id: str) -> int:
    """打印分配历史，任务不存在时返回非零退出码"""
    from .exceptions import NotFoundError
    from .services import TaskService
    from .store import create_store_group

    store_group = await create_store_group(get_db_path())
    try:
        service = TaskService(store_group)
        try:
            entries = await service.get_assignment_history(company_id, task_id)
        except NotFoundError as exc:
            print(exc.message)
            return 1
        for entry in entries:
            print(
                f"{entry.ts.isoformat()}  {entry.kind.value:<12}  "
                f"to={entry.assigned_to_user_id or '-'}  "
                f"by={entry.assigned_by_user_id or 'system'}  "
                f"{entry.motive or ''}"
            )
        print(f"共 {len(entries)} 条记录")
        return 0
    finally:
        await store_group.close()


if __name__ == "__main__":
    main()
