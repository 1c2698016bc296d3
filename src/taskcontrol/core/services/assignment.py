"""AssignmentResolver -- 手动分配校验与自动候选人选择

两条路径都必须在调用方的工作单元内执行：
负载读取、上限校验、任务更新与历史写入在同一事务中完成。

手动路径：候选人存在于同公司、为 WORKER、在职；
任务声明部门且工人有部门时两者必须一致；工人须持有全部所需能力
（skip_capability_check 可跳过）；最后校验负载上限。

自动路径：需要部门 + 至少一项能力；候选池为部门内在职工人，
过滤能力、过滤上限，取最低负载，平局取最小 user_id。
"""

from datetime import UTC, datetime

import structlog

from .. import lifecycle
from ..exceptions import IllegalStateTransitionError, InvalidCandidateError
from ..matching import filter_capable, is_capable, select_least_loaded
from ..models.enums import (
    ACTIVE_STATES,
    TERMINAL_STATES,
    AssignmentKind,
    AssignmentOutcome,
    TaskEvent,
    UserRole,
)
from ..models.results import AssignmentResult
from ..models.task import Task
from ..store.protocols import TaskStore, UserDirectory
from .audit import AuditRecorder
from .load import LoadAccountant

log = structlog.get_logger()


class AssignmentResolver:
    """手动/自动分配"""

    def __init__(
        self,
        task_store: TaskStore,
        directory: UserDirectory,
        load: LoadAccountant,
        audit: AuditRecorder,
    ) -> None:
        self._tasks = task_store
        self._directory = directory
        self._load = load
        self._audit = audit

    async def assign_manual(
        self,
        task: Task,
        worker_id: str,
        acting_user_id: str,
        *,
        skip_capability_check: bool = False,
    ) -> Task:
        """手动分配给指定工人（PENDING -> ASSIGNED + MANUAL 记录）

        Raises:
            IllegalStateTransitionError: 任务不在 PENDING
            InvalidCandidateError: 候选人未通过校验
            CapacityExceededError: 候选人已达上限
        """
        lifecycle.ensure_transition(task, TaskEvent.ASSIGN)
        await self._validate_candidate(task, worker_id, skip_capability_check)
        count = await self._load.ensure_capacity(task.company_id, task.task_id, worker_id)

        now = datetime.now(UTC)
        updated = await self._tasks.update_task(
            lifecycle.assign(task, worker_id, now),
            expected_version=task.version,
        )
        await self._audit.record(
            task.task_id,
            AssignmentKind.MANUAL,
            assigned_to=worker_id,
            assigned_by=acting_user_id,
            motive="manual assignment",
            ts=now,
        )
        await log.ainfo(
            "task_assigned_manually",
            task_id=task.task_id,
            worker_id=worker_id,
            assigned_by=acting_user_id,
            active_count=count + 1,
        )
        return updated

    async def assign_automatic(
        self,
        task: Task,
        *,
        force_reassign: bool = False,
        acting_user_id: str | None = None,
    ) -> AssignmentResult:
        """自动分配

        信号不足与已分配（未强制）均为无副作用的结果码，不是错误。

        Raises:
            IllegalStateTransitionError: 任务已处于终态
        """
        if task.state in TERMINAL_STATES:
            raise IllegalStateTransitionError(
                task_id=task.task_id,
                current_state=task.state.value,
                event=TaskEvent.ASSIGN.value,
            )
        if not task.department or not task.required_capabilities:
            await log.ainfo(
                "auto_assign_insufficient_signal",
                task_id=task.task_id,
                has_department=bool(task.department),
                capability_count=len(task.required_capabilities),
            )
            return AssignmentResult(
                outcome=AssignmentOutcome.INSUFFICIENT_SIGNAL,
                task=task,
            )
        if task.state in ACTIVE_STATES:
            if not force_reassign:
                return AssignmentResult(
                    outcome=AssignmentOutcome.ALREADY_ASSIGNED,
                    task=task,
                    worker_id=task.assigned_worker_id,
                )
            task = await self.detach(
                task,
                TaskEvent.REASSIGN,
                acting_user_id,
                motive="forced automatic reassignment",
            )

        candidates = await self._directory.list_candidates(task.company_id, task.department)
        capable = filter_capable(task.required_capabilities, candidates)
        loads = await self._load.snapshot(task.company_id, [c.user_id for c in capable])
        chosen = select_least_loaded(loads.keys(), loads, self._load.ceiling)

        if chosen is None:
            await log.ainfo(
                "auto_assign_no_eligible_candidate",
                task_id=task.task_id,
                department=task.department,
                pool_size=len(candidates),
                capable_count=len(capable),
            )
            return AssignmentResult(
                outcome=AssignmentOutcome.NO_ELIGIBLE_CANDIDATE,
                task=task,
            )

        now = datetime.now(UTC)
        updated = await self._tasks.update_task(
            lifecycle.assign(task, chosen, now),
            expected_version=task.version,
        )
        await self._audit.record(
            task.task_id,
            AssignmentKind.AUTOMATIC,
            assigned_to=chosen,
            assigned_by=None,
            motive=self._load_motive(chosen, loads),
            ts=now,
        )
        await log.ainfo(
            "task_assigned_automatically",
            task_id=task.task_id,
            worker_id=chosen,
            load=loads[chosen],
            candidates=len(loads),
        )
        return AssignmentResult(
            outcome=AssignmentOutcome.ASSIGNED,
            task=updated,
            worker_id=chosen,
        )

    async def detach(
        self,
        task: Task,
        event: TaskEvent,
        acting_user_id: str | None,
        motive: str | None = None,
    ) -> Task:
        """清空负责人回到 PENDING，并追加 REASSIGNMENT 记录（assigned_to=None）"""
        now = datetime.now(UTC)
        previous = task.assigned_worker_id
        updated = await self._tasks.update_task(
            lifecycle.detach(task, event, now),
            expected_version=task.version,
        )
        await self._audit.record(
            task.task_id,
            AssignmentKind.REASSIGNMENT,
            assigned_to=None,
            assigned_by=acting_user_id,
            motive=motive,
            ts=now,
        )
        await log.ainfo(
            "task_detached",
            task_id=task.task_id,
            trigger=event.value,
            previous_worker_id=previous,
        )
        return updated

    async def _validate_candidate(
        self,
        task: Task,
        worker_id: str,
        skip_capability_check: bool,
    ) -> None:
        worker = await self._directory.get_user(task.company_id, worker_id)
        if worker is None:
            raise InvalidCandidateError(task.task_id, worker_id, "not found in company")
        if worker.role != UserRole.WORKER:
            raise InvalidCandidateError(task.task_id, worker_id, "not a worker")
        if not worker.is_active:
            raise InvalidCandidateError(task.task_id, worker_id, "inactive")
        if task.department and worker.department and task.department != worker.department:
            raise InvalidCandidateError(
                task.task_id,
                worker_id,
                f"department {worker.department} does not match {task.department}",
            )
        if not skip_capability_check and not is_capable(
            task.required_capabilities,
            worker.capability_names,
        ):
            raise InvalidCandidateError(
                task.task_id,
                worker_id,
                "missing required capabilities",
            )

    def _load_motive(self, chosen: str, loads: dict[str, int]) -> str:
        """自动分配的负载快照说明"""
        snapshot = ", ".join(f"{uid}={count}" for uid, count in sorted(loads.items()))
        return (
            f"least loaded {chosen} ({loads[chosen]}/{self._load.ceiling}); "
            f"loads: {snapshot}"
        )
