"""SQLite 数据库初始化

PRAGMA 配置 + 表 DDL + 索引 + append-only 触发器。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# tasks 表 DDL
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    task_id                      TEXT PRIMARY KEY,
    company_id                   TEXT NOT NULL,
    title                        TEXT NOT NULL,
    description                  TEXT NOT NULL DEFAULT '',
    priority                     TEXT NOT NULL DEFAULT 'MEDIUM',
    due_date                     TEXT,
    department                   TEXT,
    state                        TEXT NOT NULL DEFAULT 'PENDING',
    assigned_worker_id           TEXT,
    created_by_user_id           TEXT NOT NULL,
    evidence_text                TEXT,
    evidence_image_url           TEXT,
    finalized_at                 TEXT,
    finalized_by_user_id         TEXT,
    cancellation_reason          TEXT,
    cancelled_at                 TEXT,
    is_delegated                 INTEGER NOT NULL DEFAULT 0,
    delegated_by_user_id         TEXT,
    delegated_to_user_id         TEXT,
    delegated_at                 TEXT,
    delegation_status            TEXT,
    delegation_comment           TEXT,
    delegation_rejection_reason  TEXT,
    delegation_resolved_at       TEXT,
    delegation_previous_department TEXT,
    is_active                    INTEGER NOT NULL DEFAULT 1,
    created_at                   TEXT NOT NULL,
    updated_at                   TEXT NOT NULL,
    version                      INTEGER NOT NULL DEFAULT 1,

    CHECK (
        assigned_worker_id IS NULL
        OR state IN ('ASSIGNED', 'ACCEPTED')
    )
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_company_state ON tasks(company_id, state);",
    # 负载统计：按工人聚合活跃任务
    (
        "CREATE INDEX IF NOT EXISTS idx_tasks_assignee_state "
        "ON tasks(company_id, assigned_worker_id, state);"
    ),
    (
        "CREATE INDEX IF NOT EXISTS idx_tasks_delegated_to "
        "ON tasks(delegated_to_user_id, is_delegated);"
    ),
    "CREATE INDEX IF NOT EXISTS idx_tasks_created_at ON tasks(created_at DESC);",
]

# task_capabilities 表 DDL
_TASK_CAPABILITIES_DDL = """
CREATE TABLE IF NOT EXISTS task_capabilities (
    task_id          TEXT NOT NULL,
    name             TEXT NOT NULL,
    normalized_name  TEXT NOT NULL,

    PRIMARY KEY (task_id, normalized_name),
    FOREIGN KEY (task_id) REFERENCES tasks(task_id) ON DELETE CASCADE
);
"""

# task_assignment_history 表 DDL（append-only）
_HISTORY_DDL = """
CREATE TABLE IF NOT EXISTS task_assignment_history (
    seq                  INTEGER PRIMARY KEY AUTOINCREMENT,
    entry_id             TEXT NOT NULL UNIQUE,
    task_id              TEXT NOT NULL,
    assigned_to_user_id  TEXT,
    assigned_by_user_id  TEXT,
    kind                 TEXT NOT NULL,
    motive               TEXT,
    ts                   TEXT NOT NULL,

    FOREIGN KEY (task_id) REFERENCES tasks(task_id) ON DELETE CASCADE
);
"""

_HISTORY_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_history_task ON task_assignment_history(task_id, seq);",
]

# 历史记录禁止更新；删除只允许公司级清理（外部管理操作）
_HISTORY_TRIGGERS = [
    """
    CREATE TRIGGER IF NOT EXISTS trg_history_no_update
    BEFORE UPDATE ON task_assignment_history
    BEGIN
        SELECT RAISE(ABORT, 'task_assignment_history is append-only');
    END;
    """,
]

# 用户目录（外部协作方数据的本地视图）
_USERS_DDL = """
CREATE TABLE IF NOT EXISTS users (
    user_id       TEXT PRIMARY KEY,
    company_id    TEXT NOT NULL,
    display_name  TEXT NOT NULL DEFAULT '',
    role          TEXT NOT NULL,
    department    TEXT,
    is_active     INTEGER NOT NULL DEFAULT 1
);
"""

_USER_CAPABILITIES_DDL = """
CREATE TABLE IF NOT EXISTS user_capabilities (
    user_id          TEXT NOT NULL,
    name             TEXT NOT NULL,
    normalized_name  TEXT NOT NULL,
    level            INTEGER NOT NULL DEFAULT 1 CHECK (level BETWEEN 1 AND 5),

    PRIMARY KEY (user_id, normalized_name),
    FOREIGN KEY (user_id) REFERENCES users(user_id) ON DELETE CASCADE
);
"""

_USERS_INDEXES = [
    (
        "CREATE INDEX IF NOT EXISTS idx_users_company_department "
        "ON users(company_id, department, role, is_active);"
    ),
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引 + 触发器

    Args:
        conn: aiosqlite 数据库连接
    """
    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表
    await conn.execute(_TASKS_DDL)
    await conn.execute(_TASK_CAPABILITIES_DDL)
    await conn.execute(_HISTORY_DDL)
    await conn.execute(_USERS_DDL)
    await conn.execute(_USER_CAPABILITIES_DDL)

    # 创建索引与触发器
    for sql in _TASKS_INDEXES + _HISTORY_INDEXES + _USERS_INDEXES + _HISTORY_TRIGGERS:
        await conn.execute(sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
