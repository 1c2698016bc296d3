"""工人操作与取消路由

POST /api/tasks/{task_id}/accept: 负责人接受
POST /api/tasks/{task_id}/finalize: 负责人提交证据完成
POST /api/tasks/{task_id}/cancel: 有管理权者取消 PENDING/ASSIGNED 任务
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from taskcontrol.core.models import Actor
from taskcontrol.core.services import TaskService

from ..deps import get_actor, get_task_service

router = APIRouter()


class FinalizeRequest(BaseModel):
    evidence_text: str = Field(max_length=2000)
    evidence_image_url: str | None = Field(default=None, max_length=1000)


class CancelRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


@router.post("/api/tasks/{task_id}/accept")
async def accept_task(
    task_id: str,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    task = await service.accept(actor, task_id)
    return task.model_dump(mode="json")


@router.post("/api/tasks/{task_id}/finalize")
async def finalize_task(
    task_id: str,
    body: FinalizeRequest,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    task = await service.finalize(
        actor,
        task_id,
        body.evidence_text,
        evidence_image_url=body.evidence_image_url,
    )
    return task.model_dump(mode="json")


@router.post("/api/tasks/{task_id}/cancel")
async def cancel_task(
    task_id: str,
    body: CancelRequest | None = None,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    task = await service.cancel(actor, task_id, reason=body.reason if body else None)
    return task.model_dump(mode="json")
