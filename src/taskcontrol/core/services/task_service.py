"""TaskService -- 任务生命周期与分配引擎门面

每个写操作在一个工作单元内完成：
1. 持有连接锁 + BEGIN IMMEDIATE
2. 读取任务与负载，校验状态流转、权限与候选人
3. 写入任务与分配历史
4. 提交后向通知出口广播（发出即忘）

校验全部发生在写入之前；任何失败都会回滚整个工作单元。
"""

from datetime import UTC, datetime

import structlog
from ulid import ULID

from .. import lifecycle
from ..config import EngineConfig
from ..exceptions import ForbiddenError, NotFoundError, ValidationFailedError
from ..matching import dedupe_capabilities
from ..models.enums import (
    ACTIVE_STATES,
    AssignmentOutcome,
    NotificationType,
    TaskEvent,
    UserRole,
)
from ..models.history import AssignmentHistoryEntry
from ..models.notification import TaskNotification
from ..models.results import AssignmentResult
from ..models.task import Task, TaskDraft, TaskFilters
from ..models.user import Actor
from ..store import StoreGroup
from ..store.transaction import read_session, unit_of_work
from .assignment import AssignmentResolver
from .audit import AuditRecorder
from .authorization import ensure_can_manage
from .delegation import DelegationProtocol
from .load import LoadAccountant
from .notifier import TaskEventHub

log = structlog.get_logger()


class TaskService:
    """任务业务服务"""

    def __init__(
        self,
        store_group: StoreGroup,
        config: EngineConfig | None = None,
        event_hub: TaskEventHub | None = None,
    ) -> None:
        self._stores = store_group
        self._config = config or EngineConfig()
        self._hub = event_hub

        audit = AuditRecorder(store_group.history_store)
        self._resolver = AssignmentResolver(
            task_store=store_group.task_store,
            directory=store_group.user_directory,
            load=LoadAccountant(
                store_group.task_store,
                self._config.max_active_tasks_per_worker,
            ),
            audit=audit,
        )
        self._delegation = DelegationProtocol(
            task_store=store_group.task_store,
            directory=store_group.user_directory,
            audit=audit,
            min_rejection_reason_length=self._config.min_rejection_reason_length,
        )

    # ============================================================
    # 创建 / 编辑 / 查询
    # ============================================================

    async def create_task(self, actor: Actor, draft: TaskDraft) -> str:
        """创建任务（可选立即手动或自动分配）

        任务创建与显式分配在同一工作单元内：分配失败则任务也不会被创建。

        Returns:
            task_id
        """
        title = draft.title.strip()
        if not title:
            raise ValidationFailedError("Task title must not be blank")

        now = datetime.now(UTC)
        task_id = str(ULID())

        async with unit_of_work(self._stores, self._config.operation_timeout_s) as stores:
            department = await self._resolve_create_department(stores, actor, draft)
            task = Task(
                task_id=task_id,
                company_id=actor.company_id,
                title=title,
                description=draft.description.strip(),
                priority=draft.priority,
                due_date=draft.due_date,
                department=department,
                created_by_user_id=actor.user_id,
                required_capabilities=dedupe_capabilities(draft.required_capabilities),
                created_at=now,
                updated_at=now,
            )
            await stores.task_store.create_task(task)

            result: AssignmentResult | None = None
            if draft.explicit_assignee_id:
                task = await self._resolver.assign_manual(
                    task,
                    draft.explicit_assignee_id,
                    actor.user_id,
                )
            elif draft.auto_assign:
                result = await self._resolver.assign_automatic(task)
                task = result.task

        await log.ainfo(
            "task_created",
            task_id=task_id,
            company_id=actor.company_id,
            created_by=actor.user_id,
            state=task.state.value,
            auto_outcome=result.outcome.value if result else None,
        )
        await self._notify(NotificationType.TASK_CREATED, task)
        if task.assigned_worker_id:
            await self._notify(NotificationType.TASK_ASSIGNED, task)
        return task_id

    async def update_task(self, actor: Actor, task_id: str, draft: TaskDraft) -> Task:
        """编辑 PENDING 任务（能力要求整体替换）"""
        title = draft.title.strip()
        if not title:
            raise ValidationFailedError("Task title must not be blank", task_id=task_id)

        async with unit_of_work(self._stores, self._config.operation_timeout_s) as stores:
            task = await self._load_task(stores, actor.company_id, task_id)
            lifecycle.ensure_transition(task, TaskEvent.EDIT)
            await ensure_can_manage(actor, task, stores.user_directory, "edit")
            await self._ensure_edit_department(stores, actor, task, draft)

            edited = lifecycle.edit(task, draft, datetime.now(UTC))
            updated = await stores.task_store.update_task(edited, expected_version=task.version)
            await stores.task_store.replace_capabilities(
                task_id,
                updated.required_capabilities,
            )

        await log.ainfo("task_updated", task_id=task_id, updated_by=actor.user_id)
        await self._notify(NotificationType.TASK_UPDATED, updated)
        return updated

    async def list_tasks(
        self,
        actor: Actor,
        filters: TaskFilters | None = None,
    ) -> list[Task]:
        """查询任务列表

        工人只能看到分配给自己或由自己完成的任务；经理/管理员看到全公司。
        """
        visible_to = actor.user_id if actor.role == UserRole.WORKER else None
        async with read_session(self._stores, self._config.operation_timeout_s) as stores:
            return await stores.task_store.list_tasks(
                actor.company_id,
                filters,
                visible_to_worker=visible_to,
            )

    async def get_task(self, actor: Actor, task_id: str) -> Task:
        """查询单个任务

        Raises:
            NotFoundError: 任务不存在或不属于调用方公司
            ForbiddenError: 工人查看不属于自己的任务
        """
        async with read_session(self._stores, self._config.operation_timeout_s) as stores:
            task = await self._load_task(stores, actor.company_id, task_id)
        if actor.role == UserRole.WORKER and actor.user_id not in (
            task.assigned_worker_id,
            task.finalized_by_user_id,
        ):
            raise ForbiddenError(
                f"Task {task_id} is not assigned to you",
                task_id=task_id,
                user_id=actor.user_id,
            )
        return task

    async def get_assignment_history(
        self,
        company_id: str,
        task_id: str,
    ) -> list[AssignmentHistoryEntry]:
        """按时间顺序返回任务的分配历史"""
        async with read_session(self._stores, self._config.operation_timeout_s) as stores:
            await self._load_task(stores, company_id, task_id)
            return await stores.history_store.list_for_task(task_id)

    # ============================================================
    # 分配
    # ============================================================

    async def assign_manual(
        self,
        actor: Actor,
        task_id: str,
        worker_id: str,
        skip_capability_check: bool = False,
    ) -> Task:
        """手动分配 PENDING 任务给指定工人"""
        async with unit_of_work(self._stores, self._config.operation_timeout_s) as stores:
            task = await self._load_task(stores, actor.company_id, task_id)
            lifecycle.ensure_transition(task, TaskEvent.ASSIGN)
            await ensure_can_manage(actor, task, stores.user_directory, "assign")
            updated = await self._resolver.assign_manual(
                task,
                worker_id,
                actor.user_id,
                skip_capability_check=skip_capability_check,
            )

        await self._notify(NotificationType.TASK_ASSIGNED, updated)
        return updated

    async def assign_automatic(
        self,
        company_id: str,
        task_id: str,
        force_reassign: bool = False,
        acting_user_id: str | None = None,
    ) -> AssignmentResult:
        """自动分配（系统调用，不做角色校验）"""
        async with unit_of_work(self._stores, self._config.operation_timeout_s) as stores:
            task = await self._load_task(stores, company_id, task_id)
            result = await self._resolver.assign_automatic(
                task,
                force_reassign=force_reassign,
                acting_user_id=acting_user_id,
            )

        if result.assigned:
            await self._notify(NotificationType.TASK_ASSIGNED, result.task)
        return result

    async def auto_assign(
        self,
        actor: Actor,
        task_id: str,
        force_reassign: bool = False,
    ) -> AssignmentResult:
        """经理/管理员触发的自动分配

        与手动分配一样要求管理权；强制重新分配活跃任务按 reassign 校验。

        Raises:
            ForbiddenError: 操作者对该任务没有管理权
        """
        async with unit_of_work(self._stores, self._config.operation_timeout_s) as stores:
            task = await self._load_task(stores, actor.company_id, task_id)
            detaching = force_reassign and task.state in ACTIVE_STATES
            await ensure_can_manage(
                actor,
                task,
                stores.user_directory,
                "reassign" if detaching else "assign",
            )
            result = await self._resolver.assign_automatic(
                task,
                force_reassign=force_reassign,
                acting_user_id=actor.user_id,
            )

        if detaching and result.task.assigned_worker_id != task.assigned_worker_id:
            await self._notify(
                NotificationType.TASK_REASSIGNED,
                result.task,
                previous_worker_id=task.assigned_worker_id,
            )
        elif result.assigned:
            await self._notify(NotificationType.TASK_ASSIGNED, result.task)
        return result

    async def reassign(
        self,
        actor: Actor,
        task_id: str,
        new_worker_id: str | None = None,
        auto_assign: bool = False,
        motive: str | None = None,
    ) -> AssignmentResult:
        """重新分配：清空负责人回到 PENDING，再走手动或自动路径

        手动路径失败时整个重新分配回滚，任务保持原负责人。
        两者都未指定时任务停留在 PENDING（结果 UNASSIGNED）。
        """
        async with unit_of_work(self._stores, self._config.operation_timeout_s) as stores:
            task = await self._load_task(stores, actor.company_id, task_id)
            lifecycle.ensure_transition(task, TaskEvent.REASSIGN)
            await ensure_can_manage(actor, task, stores.user_directory, "reassign")

            detached = await self._resolver.detach(
                task,
                TaskEvent.REASSIGN,
                actor.user_id,
                motive=motive or "reassignment",
            )
            if new_worker_id:
                assigned = await self._resolver.assign_manual(
                    detached,
                    new_worker_id,
                    actor.user_id,
                )
                result = AssignmentResult(
                    outcome=AssignmentOutcome.ASSIGNED,
                    task=assigned,
                    worker_id=new_worker_id,
                )
            elif auto_assign:
                result = await self._resolver.assign_automatic(detached)
            else:
                result = AssignmentResult(
                    outcome=AssignmentOutcome.UNASSIGNED,
                    task=detached,
                )

        await log.ainfo(
            "task_reassigned",
            task_id=task_id,
            previous_worker_id=task.assigned_worker_id,
            outcome=result.outcome.value,
            worker_id=result.worker_id,
        )
        await self._notify(
            NotificationType.TASK_REASSIGNED,
            result.task,
            previous_worker_id=task.assigned_worker_id,
        )
        return result

    async def release_worker_tasks(
        self,
        company_id: str,
        worker_id: str,
        acting_user_id: str | None = None,
    ) -> list[str]:
        """工人停用钩子：其全部活跃任务回到 PENDING

        Returns:
            被释放的 task_id 列表
        """
        released: list[Task] = []
        async with unit_of_work(self._stores, self._config.operation_timeout_s) as stores:
            tasks = await stores.task_store.list_active_tasks_for_worker(company_id, worker_id)
            for task in tasks:
                released.append(
                    await self._resolver.detach(
                        task,
                        TaskEvent.RELEASE,
                        acting_user_id,
                        motive="worker deactivated",
                    )
                )

        await log.ainfo(
            "worker_tasks_released",
            company_id=company_id,
            worker_id=worker_id,
            count=len(released),
        )
        for task in released:
            await self._notify(
                NotificationType.TASK_RELEASED,
                task,
                previous_worker_id=worker_id,
            )
        return [t.task_id for t in released]

    # ============================================================
    # 工人操作 / 取消
    # ============================================================

    async def accept(self, actor: Actor, task_id: str) -> Task:
        """负责人接受任务（ASSIGNED -> ACCEPTED）"""
        async with unit_of_work(self._stores, self._config.operation_timeout_s) as stores:
            task = await self._load_task(stores, actor.company_id, task_id)
            lifecycle.ensure_transition(task, TaskEvent.ACCEPT)
            self._ensure_assignee(actor, task)
            updated = await stores.task_store.update_task(
                lifecycle.accept(task, datetime.now(UTC)),
                expected_version=task.version,
            )

        await log.ainfo("task_accepted", task_id=task_id, worker_id=actor.user_id)
        await self._notify(NotificationType.TASK_ACCEPTED, updated)
        return updated

    async def finalize(
        self,
        actor: Actor,
        task_id: str,
        evidence_text: str,
        evidence_image_url: str | None = None,
    ) -> Task:
        """负责人完成任务（ACCEPTED -> FINALIZED），必须提交证据文本"""
        async with unit_of_work(self._stores, self._config.operation_timeout_s) as stores:
            task = await self._load_task(stores, actor.company_id, task_id)
            lifecycle.ensure_transition(task, TaskEvent.FINALIZE)
            self._ensure_assignee(actor, task)
            updated = await stores.task_store.update_task(
                lifecycle.finalize(
                    task,
                    evidence_text,
                    evidence_image_url,
                    datetime.now(UTC),
                ),
                expected_version=task.version,
            )

        await log.ainfo("task_finalized", task_id=task_id, worker_id=actor.user_id)
        await self._notify(NotificationType.TASK_COMPLETED, updated)
        return updated

    async def cancel(
        self,
        actor: Actor,
        task_id: str,
        reason: str | None = None,
    ) -> Task:
        """取消 PENDING/ASSIGNED 任务"""
        async with unit_of_work(self._stores, self._config.operation_timeout_s) as stores:
            task = await self._load_task(stores, actor.company_id, task_id)
            lifecycle.ensure_transition(task, TaskEvent.CANCEL)
            await ensure_can_manage(actor, task, stores.user_directory, "cancel")
            updated = await stores.task_store.update_task(
                lifecycle.cancel(task, reason, datetime.now(UTC)),
                expected_version=task.version,
            )

        await log.ainfo(
            "task_cancelled",
            task_id=task_id,
            cancelled_by=actor.user_id,
            previous_worker_id=task.assigned_worker_id,
        )
        await self._notify(
            NotificationType.TASK_CANCELLED,
            updated,
            previous_worker_id=task.assigned_worker_id,
        )
        return updated

    # ============================================================
    # 委派
    # ============================================================

    async def delegate(
        self,
        actor: Actor,
        task_id: str,
        destination_manager_id: str,
        comment: str | None = None,
    ) -> Task:
        async with unit_of_work(self._stores, self._config.operation_timeout_s) as stores:
            task = await self._load_task(stores, actor.company_id, task_id)
            updated = await self._delegation.delegate(
                actor,
                task,
                destination_manager_id,
                comment,
            )

        await self._notify(
            NotificationType.TASK_DELEGATED,
            updated,
            destination_manager_id=destination_manager_id,
        )
        return updated

    async def accept_delegation(
        self,
        actor: Actor,
        task_id: str,
        comment: str | None = None,
    ) -> Task:
        async with unit_of_work(self._stores, self._config.operation_timeout_s) as stores:
            task = await self._load_task(stores, actor.company_id, task_id)
            updated = await self._delegation.accept(actor, task, comment)

        await self._notify(NotificationType.DELEGATION_ACCEPTED, updated)
        return updated

    async def reject_delegation(
        self,
        actor: Actor,
        task_id: str,
        rejection_reason: str,
    ) -> Task:
        async with unit_of_work(self._stores, self._config.operation_timeout_s) as stores:
            task = await self._load_task(stores, actor.company_id, task_id)
            updated = await self._delegation.reject(actor, task, rejection_reason)

        await self._notify(NotificationType.DELEGATION_REJECTED, updated)
        return updated

    # ============================================================
    # 内部辅助
    # ============================================================

    @staticmethod
    async def _load_task(stores: StoreGroup, company_id: str, task_id: str) -> Task:
        task = await stores.task_store.get_task(company_id, task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found", task_id=task_id)
        return task

    @staticmethod
    def _ensure_assignee(actor: Actor, task: Task) -> None:
        if task.state not in ACTIVE_STATES or task.assigned_worker_id != actor.user_id:
            raise ForbiddenError(
                f"Task {task.task_id} is not assigned to you",
                task_id=task.task_id,
                user_id=actor.user_id,
            )

    @staticmethod
    async def _resolve_create_department(
        stores: StoreGroup,
        actor: Actor,
        draft: TaskDraft,
    ) -> str | None:
        """管理员可为任意部门创建；经理只能为本部门创建（未指定时默认本部门）"""
        if actor.is_admin:
            return draft.department
        if actor.role != UserRole.MANAGER:
            raise ForbiddenError(
                "Only admins and managers can create tasks",
                user_id=actor.user_id,
            )
        manager = await stores.user_directory.get_user(actor.company_id, actor.user_id)
        if manager is None or not manager.is_active or manager.department is None:
            raise ForbiddenError(
                "Manager has no department in this company",
                user_id=actor.user_id,
            )
        department = draft.department or manager.department
        if department != manager.department:
            raise ForbiddenError(
                f"Managers can only create tasks for department {manager.department}",
                user_id=actor.user_id,
                department=department,
            )
        return department

    @staticmethod
    async def _ensure_edit_department(
        stores: StoreGroup,
        actor: Actor,
        task: Task,
        draft: TaskDraft,
    ) -> None:
        """编辑沿用创建时的部门规则：经理只能把任务改到本部门"""
        if draft.department == task.department or actor.is_admin:
            return
        manager = await stores.user_directory.get_user(actor.company_id, actor.user_id)
        if manager is None or manager.department is None or draft.department != manager.department:
            raise ForbiddenError(
                "Managers can only move tasks into their own department",
                task_id=task.task_id,
                user_id=actor.user_id,
                department=draft.department,
            )

    async def _notify(
        self,
        notification_type: NotificationType,
        task: Task,
        **data,
    ) -> None:
        """提交后广播通知；没有配置通知出口时跳过"""
        if self._hub is None:
            return
        await self._hub.broadcast(
            task.company_id,
            TaskNotification(
                type=notification_type,
                company_id=task.company_id,
                task_id=task.task_id,
                state=task.state,
                assigned_worker_id=task.assigned_worker_id,
                data={k: v for k, v in data.items() if v is not None},
            ),
        )
