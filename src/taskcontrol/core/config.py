"""配置模块 -- 可通过环境变量覆盖

包含数据库路径，以及以显式参数传入分配引擎的 EngineConfig。
"""

import os
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger()

# 通知流心跳间隔（秒）
STREAM_HEARTBEAT_INTERVAL: int = int(
    os.environ.get("TASKCONTROL_STREAM_HEARTBEAT_INTERVAL", "15")
)


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("TASKCONTROL_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "TASKCONTROL_DB_PATH",
        str(_get_base_dir() / "sqlite" / "taskcontrol.db"),
    )


class EngineConfig(BaseModel):
    """分配引擎配置 -- 显式传入，不做进程级全局查找

    环境变量:
        TASKCONTROL_MAX_ACTIVE_TASKS: 每个工人的活跃任务上限（默认 5）
        TASKCONTROL_MIN_REJECTION_REASON_LENGTH: 拒绝委派理由最小长度（默认 10）
        TASKCONTROL_OPERATION_TIMEOUT_S: 单次事务超时（秒，默认 10）
    """

    max_active_tasks_per_worker: int = Field(
        default=5,
        ge=1,
        description="ASSIGNED/ACCEPTED 任务数上限",
    )
    min_rejection_reason_length: int = Field(
        default=10,
        ge=1,
        description="拒绝委派理由最小长度",
    )
    operation_timeout_s: float = Field(
        default=10.0,
        gt=0,
        description="单个工作单元的超时（秒）",
    )


_ENV_MAPPING: dict[str, tuple[str, type]] = {
    "TASKCONTROL_MAX_ACTIVE_TASKS": ("max_active_tasks_per_worker", int),
    "TASKCONTROL_MIN_REJECTION_REASON_LENGTH": ("min_rejection_reason_length", int),
    "TASKCONTROL_OPERATION_TIMEOUT_S": ("operation_timeout_s", float),
}


def load_engine_config() -> EngineConfig:
    """从环境变量加载引擎配置

    无效值记录警告并回退到默认值，不阻塞启动。

    Returns:
        EngineConfig 实例
    """
    kwargs: dict = {}
    defaults = EngineConfig()

    for env_var, (field_name, cast) in _ENV_MAPPING.items():
        val = os.environ.get(env_var)
        if not val:
            continue
        try:
            parsed = cast(val)
            # 单字段校验，避免一个坏值拖垮整个配置
            EngineConfig(**{field_name: parsed})
        except ValueError:
            log.warning(
                "invalid_engine_config",
                env_var=env_var,
                value=val,
                fallback=getattr(defaults, field_name),
            )
            continue
        kwargs[field_name] = parsed

    return EngineConfig(**kwargs)
