"""任务通知流路由

GET /api/stream/tasks: SSE 实时推送调用方所在公司的任务通知。
工人只收到与自己相关的通知；定时心跳保活。
"""

import asyncio

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse
from taskcontrol.core.config import STREAM_HEARTBEAT_INTERVAL
from taskcontrol.core.models import Actor, TaskNotification, UserRole
from taskcontrol.core.services import TaskEventHub

from ..deps import get_actor, get_event_hub

router = APIRouter()


def is_visible_to(actor: Actor, notification: TaskNotification) -> bool:
    """工人只看到分配给自己或刚从自己身上移走的任务通知"""
    if actor.role != UserRole.WORKER:
        return True
    return actor.user_id in (
        notification.assigned_worker_id,
        notification.data.get("previous_worker_id"),
    )


@router.get("/api/stream/tasks")
async def stream_task_notifications(
    actor: Actor = Depends(get_actor),
    event_hub: TaskEventHub = Depends(get_event_hub),
):
    async def event_generator():
        queue = await event_hub.subscribe(actor.company_id)
        try:
            while True:
                try:
                    notification: TaskNotification = await asyncio.wait_for(
                        queue.get(), timeout=STREAM_HEARTBEAT_INTERVAL
                    )
                except TimeoutError:
                    yield {"comment": "heartbeat"}
                    continue
                if not is_visible_to(actor, notification):
                    continue
                yield {
                    "event": notification.type.value,
                    "data": notification.model_dump_json(),
                }
        finally:
            await event_hub.unsubscribe(actor.company_id, queue)

    return EventSourceResponse(event_generator())
