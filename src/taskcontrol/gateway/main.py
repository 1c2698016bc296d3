"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭 + 通知出口 + 引擎配置 + 路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from taskcontrol.core.config import get_db_path, load_engine_config
from taskcontrol.core.exceptions import TaskEngineError
from taskcontrol.core.services import TaskEventHub
from taskcontrol.core.store import create_store_group

from .errors import task_engine_error_handler
from .middleware.logging_config import setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import assignment, delegation, health, lifecycle, stream, tasks

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 DB，关闭时清理连接"""
    db_path = get_db_path()
    store_group = await create_store_group(db_path)
    app.state.store_group = store_group
    app.state.event_hub = TaskEventHub()
    app.state.engine_config = load_engine_config()

    await log.ainfo(
        "gateway_started",
        db_path=db_path,
        max_active_tasks=app.state.engine_config.max_active_tasks_per_worker,
    )

    yield

    if getattr(app.state, "store_group", None):
        await app.state.store_group.close()


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="taskcontrol Gateway",
        version="0.1.0",
        description="任务生命周期与分配引擎 API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    app.add_exception_handler(TaskEngineError, task_engine_error_handler)

    setup_logging()

    app.include_router(tasks.router, tags=["tasks"])
    app.include_router(assignment.router, tags=["assignment"])
    app.include_router(lifecycle.router, tags=["lifecycle"])
    app.include_router(delegation.router, tags=["delegation"])
    app.include_router(stream.router, tags=["stream"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
