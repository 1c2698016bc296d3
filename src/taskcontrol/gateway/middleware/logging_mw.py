"""LoggingMiddleware -- 请求级日志

每个请求分配一个 ULID request_id（响应头 X-Request-ID 回传），
并把租户/操作者绑定进 structlog contextvars，引擎内部日志自动带上。
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from ulid import ULID

log = structlog.get_logger()


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = str(ULID())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            company_id=request.headers.get("x-company-id"),
            actor_id=request.headers.get("x-user-id"),
        )

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 1)

        # 健康检查不记日志
        if request.url.path not in ("/health", "/ready"):
            await log.ainfo(
                "http_request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                elapsed_ms=elapsed_ms,
            )

        response.headers["X-Request-ID"] = request_id
        return response
