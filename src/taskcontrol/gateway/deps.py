"""依赖注入模块 -- 通过 FastAPI Depends 注入 Store、通知出口与操作者身份

Store 实例通过 app.state 管理，在 lifespan 中初始化/清理。
操作者身份由上游认证解析后以请求头传入，网关不做认证。
"""

from typing import Annotated

from fastapi import Depends, Header, Request
from taskcontrol.core.config import EngineConfig
from taskcontrol.core.models import Actor, UserRole
from taskcontrol.core.services import TaskEventHub, TaskService
from taskcontrol.core.store import StoreGroup


def get_store_group(request: Request) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    return request.app.state.store_group


def get_event_hub(request: Request) -> TaskEventHub:
    """从 app.state 获取 TaskEventHub 实例"""
    return request.app.state.event_hub


def get_engine_config(request: Request) -> EngineConfig:
    """从 app.state 获取引擎配置"""
    return request.app.state.engine_config


def get_task_service(
    store_group: StoreGroup = Depends(get_store_group),
    event_hub: TaskEventHub = Depends(get_event_hub),
    config: EngineConfig = Depends(get_engine_config),
) -> TaskService:
    return TaskService(store_group, config=config, event_hub=event_hub)


def get_actor(
    x_company_id: Annotated[str, Header()],
    x_user_id: Annotated[str, Header()],
    x_user_role: Annotated[UserRole, Header()],
) -> Actor:
    """从已认证的请求头构造操作者"""
    return Actor(company_id=x_company_id, user_id=x_user_id, role=x_user_role)
