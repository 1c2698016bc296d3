"""推送通知 payload

事务提交后由引擎交给通知出口，发出即忘。
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import NotificationType, TaskState


class TaskNotification(BaseModel):
    """任务变更通知"""

    type: NotificationType
    company_id: str
    task_id: str
    state: TaskState
    assigned_worker_id: str | None = None
    ts: datetime = Field(default_factory=lambda: datetime.now(UTC))
    data: dict[str, Any] = Field(default_factory=dict)
