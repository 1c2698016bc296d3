"""Task 生命周期状态机 -- 纯函数

每个函数先查 TRANSITIONS 校验 (状态, 事件)，非法即抛出
IllegalStateTransitionError，不做任何写入；合法则返回经过完整校验的新 Task。
持久化与历史记录由服务层在同一工作单元内完成。
"""

from datetime import datetime

from .exceptions import IllegalStateTransitionError, ValidationFailedError
from .matching import dedupe_capabilities
from .models.enums import TaskEvent, TaskState, next_state
from .models.task import Task, TaskDraft


def ensure_transition(task: Task, event: TaskEvent) -> TaskState:
    """校验事件在任务当前状态下合法

    Returns:
        目标状态

    Raises:
        IllegalStateTransitionError: 流转表中不存在该组合
    """
    target = next_state(task.state, event)
    if target is None:
        raise IllegalStateTransitionError(
            task_id=task.task_id,
            current_state=task.state.value,
            event=event.value,
        )
    return target


def assign(task: Task, worker_id: str, now: datetime) -> Task:
    """PENDING -> ASSIGNED"""
    target = ensure_transition(task, TaskEvent.ASSIGN)
    return task.evolve(state=target, assigned_worker_id=worker_id, updated_at=now)


def accept(task: Task, now: datetime) -> Task:
    """ASSIGNED -> ACCEPTED"""
    target = ensure_transition(task, TaskEvent.ACCEPT)
    return task.evolve(state=target, updated_at=now)


def finalize(
    task: Task,
    evidence_text: str,
    evidence_image_url: str | None,
    now: datetime,
) -> Task:
    """ACCEPTED -> FINALIZED，保存完成证据

    负责人记入 finalized_by_user_id 后清空 assigned_worker_id。

    Raises:
        ValidationFailedError: 证据文本为空
    """
    target = ensure_transition(task, TaskEvent.FINALIZE)
    if not evidence_text or not evidence_text.strip():
        raise ValidationFailedError(
            "Evidence text is required to finalize a task",
            task_id=task.task_id,
        )
    return task.evolve(
        state=target,
        assigned_worker_id=None,
        evidence_text=evidence_text.strip(),
        evidence_image_url=evidence_image_url,
        finalized_at=now,
        finalized_by_user_id=task.assigned_worker_id,
        updated_at=now,
    )


def cancel(task: Task, reason: str | None, now: datetime) -> Task:
    """PENDING/ASSIGNED -> CANCELLED"""
    target = ensure_transition(task, TaskEvent.CANCEL)
    return task.evolve(
        state=target,
        assigned_worker_id=None,
        cancellation_reason=reason.strip() if reason and reason.strip() else None,
        cancelled_at=now,
        updated_at=now,
    )


def detach(task: Task, event: TaskEvent, now: datetime) -> Task:
    """REASSIGN / RELEASE：清空负责人并回到 PENDING"""
    target = ensure_transition(task, event)
    return task.evolve(state=target, assigned_worker_id=None, updated_at=now)


def edit(task: Task, draft: TaskDraft, now: datetime) -> Task:
    """PENDING 状态下整体替换可编辑字段（含能力要求）"""
    ensure_transition(task, TaskEvent.EDIT)
    return task.evolve(
        title=draft.title.strip(),
        description=draft.description.strip(),
        priority=draft.priority,
        due_date=draft.due_date,
        department=draft.department,
        required_capabilities=dedupe_capabilities(draft.required_capabilities),
        updated_at=now,
    )
