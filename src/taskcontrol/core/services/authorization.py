"""管理权判定

管理员始终拥有管理权；
委派已被接受时只有目标经理拥有管理权（发起人失去管理权）；
否则（无委派 / 待处理 / 已拒绝）部门匹配、创建人或委派发起人的经理拥有管理权。
待处理委派的目标经理在接受之前没有管理权。
"""

from ..exceptions import ForbiddenError
from ..models.enums import DelegationStatus, UserRole
from ..models.task import Task
from ..models.user import Actor
from ..store.protocols import UserDirectory


async def can_manage(actor: Actor, task: Task, directory: UserDirectory) -> bool:
    """判断操作者能否管理（取消/重新分配/编辑/委派）该任务"""
    if actor.company_id != task.company_id:
        return False
    if actor.is_admin:
        return True
    if actor.role != UserRole.MANAGER:
        return False

    delegation = task.delegation
    if delegation is not None:
        if delegation.status == DelegationStatus.ACCEPTED:
            return delegation.destination_manager_id == actor.user_id
        if delegation.origin_manager_id == actor.user_id:
            return True
        if (
            delegation.status == DelegationStatus.PENDING
            and delegation.destination_manager_id == actor.user_id
        ):
            return False

    if task.created_by_user_id == actor.user_id:
        return True
    if task.department is None:
        return False
    profile = await directory.get_user(actor.company_id, actor.user_id)
    return (
        profile is not None
        and profile.is_active
        and profile.department == task.department
    )


async def ensure_can_manage(
    actor: Actor,
    task: Task,
    directory: UserDirectory,
    action: str,
) -> None:
    """
    Raises:
        ForbiddenError: 操作者没有管理权
    """
    if not await can_manage(actor, task, directory):
        raise ForbiddenError(
            f"User {actor.user_id} cannot {action} task {task.task_id}",
            task_id=task.task_id,
            user_id=actor.user_id,
            action=action,
        )
