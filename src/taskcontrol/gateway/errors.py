"""引擎异常 -> HTTP 响应映射

响应体统一为 {"error": {"code", "message", ...context}}，不暴露堆栈。
"""

import structlog
from fastapi import Request
from starlette.responses import JSONResponse
from taskcontrol.core.exceptions import TaskEngineError

log = structlog.get_logger()

STATUS_BY_CODE: dict[str, int] = {
    "NOT_FOUND": 404,
    "FORBIDDEN": 403,
    "ILLEGAL_STATE_TRANSITION": 409,
    "INVALID_CANDIDATE": 422,
    "CAPACITY_EXCEEDED": 409,
    "INVALID_DELEGATION_TARGET": 422,
    "DELEGATION_ALREADY_PENDING": 409,
    "CONCURRENT_MODIFICATION": 409,
    "PERSISTENCE_FAILURE": 503,
    "VALIDATION_FAILED": 422,
}


async def task_engine_error_handler(request: Request, exc: TaskEngineError) -> JSONResponse:
    """将 TaskEngineError 渲染为错误响应"""
    status_code = STATUS_BY_CODE.get(exc.code, 500)
    log_method = log.aerror if status_code >= 500 else log.awarning
    await log_method(
        "task_engine_error",
        code=exc.code,
        status_code=status_code,
        error=exc.message,
        context={k: str(v) for k, v in exc.context.items()},
    )
    return JSONResponse(status_code=status_code, content={"error": exc.to_dict()})
