"""分配路由

POST /api/tasks/{task_id}/assign: 手动分配
POST /api/tasks/{task_id}/auto-assign: 自动分配（结果码区分信号不足/无合格候选人）
POST /api/tasks/{task_id}/reassign: 重新分配
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from taskcontrol.core.models import Actor, AssignmentResult
from taskcontrol.core.services import TaskService

from ..deps import get_actor, get_task_service

router = APIRouter()


class AssignRequest(BaseModel):
    worker_id: str
    skip_capability_check: bool = False


class AutoAssignRequest(BaseModel):
    force_reassign: bool = False


class ReassignRequest(BaseModel):
    new_worker_id: str | None = None
    auto_assign: bool = False
    motive: str | None = Field(default=None, max_length=500)


def _result_body(result: AssignmentResult) -> dict:
    return {
        "outcome": result.outcome.value,
        "worker_id": result.worker_id,
        "task": result.task.model_dump(mode="json"),
    }


@router.post("/api/tasks/{task_id}/assign")
async def assign_task(
    task_id: str,
    body: AssignRequest,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    task = await service.assign_manual(
        actor,
        task_id,
        body.worker_id,
        skip_capability_check=body.skip_capability_check,
    )
    return task.model_dump(mode="json")


@router.post("/api/tasks/{task_id}/auto-assign")
async def auto_assign_task(
    task_id: str,
    body: AutoAssignRequest | None = None,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    """自动分配 -- 须对任务有管理权"""
    result = await service.auto_assign(
        actor,
        task_id,
        force_reassign=body.force_reassign if body else False,
    )
    return _result_body(result)


@router.post("/api/tasks/{task_id}/reassign")
async def reassign_task(
    task_id: str,
    body: ReassignRequest,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    result = await service.reassign(
        actor,
        task_id,
        new_worker_id=body.new_worker_id,
        auto_assign=body.auto_assign,
        motive=body.motive,
    )
    return _result_body(result)
