"""DelegationProtocol -- 经理间委派

委派叠加在生命周期状态机之上，不改变任务状态：
- delegate: 发起人须有管理权；目标须为同公司在职经理（有部门、非本人）；
  已有待处理委派时拒绝；任务部门切换到目标经理的部门（保存原部门）
- accept: 仅目标经理、仅待处理时；管理权转移给目标经理
- reject: 仅目标经理、仅待处理时；理由去除空白后不少于最小长度；部门回退

每次调用追加一条 DELEGATION 历史记录。
"""

from datetime import UTC, datetime

import structlog

from .. import lifecycle
from ..exceptions import (
    DelegationAlreadyPendingError,
    ForbiddenError,
    IllegalStateTransitionError,
    InvalidDelegationTargetError,
    ValidationFailedError,
)
from ..models.enums import AssignmentKind, DelegationStatus, TaskEvent, UserRole
from ..models.task import (
    AcceptedDelegation,
    PendingDelegation,
    RejectedDelegation,
    Task,
)
from ..models.user import Actor
from ..store.protocols import TaskStore, UserDirectory
from .audit import AuditRecorder
from .authorization import ensure_can_manage

log = structlog.get_logger()


class DelegationProtocol:
    """委派/接受/拒绝"""

    def __init__(
        self,
        task_store: TaskStore,
        directory: UserDirectory,
        audit: AuditRecorder,
        min_rejection_reason_length: int,
    ) -> None:
        self._tasks = task_store
        self._directory = directory
        self._audit = audit
        self._min_reason = min_rejection_reason_length

    async def delegate(
        self,
        actor: Actor,
        task: Task,
        destination_manager_id: str,
        comment: str | None = None,
    ) -> Task:
        """发起委派

        Raises:
            IllegalStateTransitionError: 任务已处于终态
            ForbiddenError: 操作者不是有管理权的经理/管理员
            DelegationAlreadyPendingError: 已有待处理委派
            InvalidDelegationTargetError: 目标不合法
        """
        lifecycle.ensure_transition(task, TaskEvent.DELEGATE)
        if not actor.is_manager_or_admin:
            raise ForbiddenError(
                "Only managers or admins can delegate tasks",
                task_id=task.task_id,
                user_id=actor.user_id,
            )
        await ensure_can_manage(actor, task, self._directory, "delegate")
        if task.has_pending_delegation:
            raise DelegationAlreadyPendingError(
                f"Task {task.task_id} already has a pending delegation",
                task_id=task.task_id,
                destination_manager_id=task.delegation.destination_manager_id,
            )

        if destination_manager_id == actor.user_id:
            raise InvalidDelegationTargetError(
                "Cannot delegate a task to yourself",
                task_id=task.task_id,
                destination_manager_id=destination_manager_id,
            )
        destination = await self._directory.get_user(actor.company_id, destination_manager_id)
        if (
            destination is None
            or not destination.is_active
            or destination.role != UserRole.MANAGER
        ):
            raise InvalidDelegationTargetError(
                f"User {destination_manager_id} is not an active manager of this company",
                task_id=task.task_id,
                destination_manager_id=destination_manager_id,
            )
        if destination.department is None:
            raise InvalidDelegationTargetError(
                f"Manager {destination_manager_id} has no department",
                task_id=task.task_id,
                destination_manager_id=destination_manager_id,
            )

        now = datetime.now(UTC)
        delegation = PendingDelegation(
            origin_manager_id=actor.user_id,
            destination_manager_id=destination_manager_id,
            delegated_at=now,
            comment=comment,
            previous_department=task.department,
        )
        updated = await self._tasks.update_task(
            task.evolve(
                delegation=delegation,
                department=destination.department,
                updated_at=now,
            ),
            expected_version=task.version,
        )
        await self._audit.record(
            task.task_id,
            AssignmentKind.DELEGATION,
            assigned_to=destination_manager_id,
            assigned_by=actor.user_id,
            motive=comment,
            ts=now,
        )
        await log.ainfo(
            "task_delegated",
            task_id=task.task_id,
            origin=actor.user_id,
            destination=destination_manager_id,
            department=destination.department,
        )
        return updated

    async def accept(
        self,
        actor: Actor,
        task: Task,
        comment: str | None = None,
    ) -> Task:
        """目标经理接受委派

        Raises:
            IllegalStateTransitionError: 没有委派或委派已处理
            ForbiddenError: 操作者不是目标经理
        """
        pending = self._pending_for(actor, task, TaskEvent.ACCEPT_DELEGATION)
        now = datetime.now(UTC)
        delegation = AcceptedDelegation(
            **pending.model_dump(exclude={"status"}),
            resolved_at=now,
        )
        updated = await self._tasks.update_task(
            task.evolve(delegation=delegation, updated_at=now),
            expected_version=task.version,
        )
        await self._audit.record(
            task.task_id,
            AssignmentKind.DELEGATION,
            assigned_to=actor.user_id,
            assigned_by=actor.user_id,
            motive=comment or "delegation accepted",
            ts=now,
        )
        await log.ainfo(
            "delegation_accepted",
            task_id=task.task_id,
            destination=actor.user_id,
        )
        return updated

    async def reject(
        self,
        actor: Actor,
        task: Task,
        rejection_reason: str,
    ) -> Task:
        """目标经理拒绝委派，管理权与部门回到发起人

        Raises:
            IllegalStateTransitionError: 没有委派或委派已处理
            ForbiddenError: 操作者不是目标经理
            ValidationFailedError: 理由过短
        """
        pending = self._pending_for(actor, task, TaskEvent.REJECT_DELEGATION)
        reason = (rejection_reason or "").strip()
        if len(reason) < self._min_reason:
            raise ValidationFailedError(
                f"Rejection reason must be at least {self._min_reason} characters",
                task_id=task.task_id,
                min_length=self._min_reason,
            )

        now = datetime.now(UTC)
        delegation = RejectedDelegation(
            **pending.model_dump(exclude={"status"}),
            resolved_at=now,
            rejection_reason=reason,
        )
        updated = await self._tasks.update_task(
            task.evolve(
                delegation=delegation,
                department=pending.previous_department,
                updated_at=now,
            ),
            expected_version=task.version,
        )
        await self._audit.record(
            task.task_id,
            AssignmentKind.DELEGATION,
            assigned_to=pending.origin_manager_id,
            assigned_by=actor.user_id,
            motive=reason,
            ts=now,
        )
        await log.ainfo(
            "delegation_rejected",
            task_id=task.task_id,
            destination=actor.user_id,
            origin=pending.origin_manager_id,
        )
        return updated

    @staticmethod
    def _pending_for(actor: Actor, task: Task, event: TaskEvent) -> PendingDelegation:
        """校验操作者可以处理该任务的待处理委派"""
        lifecycle.ensure_transition(task, event)
        delegation = task.delegation
        if delegation is None:
            raise IllegalStateTransitionError(
                task_id=task.task_id,
                current_state="NOT_DELEGATED",
                event=event.value,
            )
        if delegation.destination_manager_id != actor.user_id:
            raise ForbiddenError(
                "Only the destination manager can resolve this delegation",
                task_id=task.task_id,
                user_id=actor.user_id,
            )
        if delegation.status != DelegationStatus.PENDING:
            raise IllegalStateTransitionError(
                task_id=task.task_id,
                current_state=f"DELEGATION_{delegation.status.value}",
                event=event.value,
            )
        return delegation
