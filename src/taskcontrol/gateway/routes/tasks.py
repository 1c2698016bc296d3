"""任务路由 -- 创建、编辑、查询与分配历史

POST /api/tasks: 创建任务（可选立即手动/自动分配）
GET  /api/tasks: 列表，工人只看到自己的任务
GET  /api/tasks/{task_id}: 详情
PUT  /api/tasks/{task_id}: 编辑 PENDING 任务
GET  /api/tasks/{task_id}/history: 分配历史（时间正序）
"""

from fastapi import APIRouter, Depends, Query
from starlette.responses import JSONResponse
from taskcontrol.core.models import Actor, Priority, TaskDraft, TaskFilters, TaskState
from taskcontrol.core.services import TaskService

from ..deps import get_actor, get_task_service

router = APIRouter()


@router.post("/api/tasks")
async def create_task(
    draft: TaskDraft,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    """创建任务，返回 201 + task_id"""
    task_id = await service.create_task(actor, draft)
    return JSONResponse(status_code=201, content={"task_id": task_id})


@router.get("/api/tasks")
async def list_tasks(
    state: TaskState | None = Query(default=None),
    priority: Priority | None = Query(default=None),
    department: str | None = Query(default=None),
    assignee: str | None = Query(default=None),
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    filters = TaskFilters(
        state=state,
        priority=priority,
        department=department,
        assignee=assignee,
    )
    tasks = await service.list_tasks(actor, filters)
    return {"tasks": [t.model_dump(mode="json") for t in tasks]}


@router.get("/api/tasks/{task_id}")
async def get_task(
    task_id: str,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    task = await service.get_task(actor, task_id)
    return task.model_dump(mode="json")


@router.put("/api/tasks/{task_id}")
async def update_task(
    task_id: str,
    draft: TaskDraft,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    task = await service.update_task(actor, task_id, draft)
    return task.model_dump(mode="json")


@router.get("/api/tasks/{task_id}/history")
async def get_history(
    task_id: str,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    """分配历史 -- 可见性与任务详情一致"""
    await service.get_task(actor, task_id)
    entries = await service.get_assignment_history(actor.company_id, task_id)
    return {"task_id": task_id, "entries": [e.model_dump(mode="json") for e in entries]}
