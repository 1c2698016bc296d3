"""structlog 配置

TASKCONTROL_LOG_FORMAT: dev（控制台，默认）/ json
TASKCONTROL_LOG_LEVEL: 根日志级别（默认 INFO）

引擎与网关的事件统一带上 service=taskcontrol；
aiosqlite 的逐语句 DEBUG 日志固定压到 WARNING，避免淹没请求日志。
"""

import logging
import os

import structlog

_NOISY_LOGGERS = ("aiosqlite", "uvicorn.access")


def _add_service(_logger, _method_name: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", "taskcontrol")
    return event_dict


def _pick_renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer(ensure_ascii=False)
    return structlog.dev.ConsoleRenderer(colors=False)


def setup_logging(log_format: str | None = None, log_level: str | None = None) -> None:
    """配置 structlog 走标准库 logging，参数缺省时读环境变量"""
    log_format = log_format or os.environ.get("TASKCONTROL_LOG_FORMAT", "dev")
    level_name = (log_level or os.environ.get("TASKCONTROL_LOG_LEVEL", "INFO")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        _add_service,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    structlog.configure(
        processors=[
            *pre_chain,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=_pick_renderer(log_format),
            foreign_pre_chain=pre_chain,
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
