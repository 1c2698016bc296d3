"""委派路由

POST /api/tasks/{task_id}/delegate: 委派给另一位经理
POST /api/tasks/{task_id}/delegation/accept: 目标经理接受
POST /api/tasks/{task_id}/delegation/reject: 目标经理拒绝（必须给出理由）
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from taskcontrol.core.models import Actor
from taskcontrol.core.services import TaskService

from ..deps import get_actor, get_task_service

router = APIRouter()


class DelegateRequest(BaseModel):
    destination_manager_id: str
    comment: str | None = Field(default=None, max_length=500)


class AcceptDelegationRequest(BaseModel):
    comment: str | None = Field(default=None, max_length=500)


class RejectDelegationRequest(BaseModel):
    # 最小长度由引擎按配置校验
    rejection_reason: str = Field(max_length=500)


@router.post("/api/tasks/{task_id}/delegate")
async def delegate_task(
    task_id: str,
    body: DelegateRequest,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    task = await service.delegate(
        actor,
        task_id,
        body.destination_manager_id,
        comment=body.comment,
    )
    return task.model_dump(mode="json")


@router.post("/api/tasks/{task_id}/delegation/accept")
async def accept_delegation(
    task_id: str,
    body: AcceptDelegationRequest | None = None,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    task = await service.accept_delegation(
        actor,
        task_id,
        comment=body.comment if body else None,
    )
    return task.model_dump(mode="json")


@router.post("/api/tasks/{task_id}/delegation/reject")
async def reject_delegation(
    task_id: str,
    body: RejectDelegationRequest,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    task = await service.reject_delegation(actor, task_id, body.rejection_reason)
    return task.model_dump(mode="json")
