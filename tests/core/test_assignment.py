"""分配引擎测试

测试内容：
1. 自动分配：能力过滤、最低负载、平局取最小 ID、结果码
2. 手动分配：候选人校验、上限校验
3. 并发分配不突破上限
4. 创建任务与显式分配的原子性
5. 经理触发的自动分配需要管理权
"""

import asyncio

import pytest
from taskcontrol.core.exceptions import (
    CapacityExceededError,
    ConcurrentModificationError,
    ForbiddenError,
    IllegalStateTransitionError,
    InvalidCandidateError,
)
from taskcontrol.core.models import (
    AssignmentKind,
    AssignmentOutcome,
    TaskDraft,
    TaskState,
    UserRole,
)


async def _create(service, actor, **fields) -> str:
    fields.setdefault("title", "Repair conveyor")
    return await service.create_task(actor, TaskDraft(**fields))


async def _load_worker(service, actor, worker_id: str, count: int) -> None:
    """给工人分配 count 个活跃任务"""
    for i in range(count):
        task_id = await _create(service, actor, title=f"Filler {i}")
        await service.assign_manual(actor, task_id, worker_id)


class TestAutomaticAssignment:
    """自动分配路径"""

    async def test_picks_capable_worker(self, service, org, seed_user):
        """能力匹配者胜出，任务进入 ASSIGNED"""
        await seed_user("w-a", department="D", capabilities=[("Welding", 1)])
        await seed_user("w-b", department="D", capabilities=["Painting"])
        task_id = await _create(
            service, org["admin"], department="D", required_capabilities=["Welding"]
        )

        result = await service.assign_automatic("company-a", task_id)

        assert result.outcome == AssignmentOutcome.ASSIGNED
        assert result.worker_id == "w-a"
        assert result.task.state == TaskState.ASSIGNED
        history = await service.get_assignment_history("company-a", task_id)
        assert len(history) == 1
        assert history[0].kind == AssignmentKind.AUTOMATIC
        assert history[0].assigned_by_user_id is None
        assert "w-a" in history[0].motive

    async def test_lowest_load_then_lowest_id(self, service, org, seed_user):
        await seed_user("w-c", capabilities=["Welding"])
        await seed_user("w-b", capabilities=["Welding"])
        await seed_user("w-a", capabilities=["Welding"])
        await _load_worker(service, org["admin"], "w-a", 1)

        task_id = await _create(
            service, org["admin"], department="OPS", required_capabilities=["welding"]
        )
        result = await service.assign_automatic("company-a", task_id)
        assert result.worker_id == "w-b"

    async def test_determinism(self, service, org, seed_user):
        """同样的负载快照总是选出同一个人"""
        await seed_user("w-2", capabilities=["Welding"])
        await seed_user("w-1", capabilities=["Welding"])
        chosen = []
        for _ in range(2):
            task_id = await _create(
                service, org["admin"], department="OPS", required_capabilities=["Welding"]
            )
            result = await service.assign_automatic("company-a", task_id)
            chosen.append(result.worker_id)
        # 第一次两人都是 0，选 w-1；第二次 w-1 负载 1，选 w-2
        assert chosen == ["w-1", "w-2"]

    async def test_insufficient_signal(self, service, org, seed_user):
        """缺少部门或能力时不分配，结果码区别于无候选人"""
        await seed_user("w-1", capabilities=["Welding"])
        no_caps = await _create(service, org["admin"], department="OPS")
        no_dept = await _create(service, org["admin"], required_capabilities=["Welding"])

        for task_id in (no_caps, no_dept):
            result = await service.assign_automatic("company-a", task_id)
            assert result.outcome == AssignmentOutcome.INSUFFICIENT_SIGNAL
            assert result.task.state == TaskState.PENDING
            assert await service.get_assignment_history("company-a", task_id) == []

    async def test_no_eligible_candidate(self, service, org, seed_user, engine_config):
        await seed_user("w-1", capabilities=["Welding"])
        await _load_worker(service, org["admin"], "w-1", engine_config.max_active_tasks_per_worker)
        task_id = await _create(
            service, org["admin"], department="OPS", required_capabilities=["Welding"]
        )

        result = await service.assign_automatic("company-a", task_id)
        assert result.outcome == AssignmentOutcome.NO_ELIGIBLE_CANDIDATE
        assert result.task.state == TaskState.PENDING

    async def test_idempotent_without_force(self, service, org, seed_user):
        await seed_user("w-1", capabilities=["Welding"])
        await seed_user("w-2", capabilities=["Welding"])
        task_id = await _create(
            service, org["admin"], department="OPS", required_capabilities=["Welding"]
        )
        first = await service.assign_automatic("company-a", task_id)
        second = await service.assign_automatic("company-a", task_id)

        assert second.outcome == AssignmentOutcome.ALREADY_ASSIGNED
        assert second.worker_id == first.worker_id
        assert second.task.version == first.task.version
        assert len(await service.get_assignment_history("company-a", task_id)) == 1

    async def test_force_reassign(self, service, org, seed_user):
        """强制重新分配：脱离记录 + 自动记录"""
        await seed_user("w-1", capabilities=["Welding"])
        task_id = await _create(
            service, org["admin"], department="OPS", required_capabilities=["Welding"]
        )
        await service.assign_automatic("company-a", task_id)
        result = await service.assign_automatic(
            "company-a", task_id, force_reassign=True, acting_user_id="admin-1"
        )

        assert result.outcome == AssignmentOutcome.ASSIGNED
        history = await service.get_assignment_history("company-a", task_id)
        assert [e.kind for e in history] == [
            AssignmentKind.AUTOMATIC,
            AssignmentKind.REASSIGNMENT,
            AssignmentKind.AUTOMATIC,
        ]
        assert history[1].assigned_to_user_id is None
        assert history[1].assigned_by_user_id == "admin-1"

    async def test_terminal_task_rejected(self, service, org):
        task_id = await _create(service, org["admin"], department="OPS")
        await service.cancel(org["admin"], task_id)
        with pytest.raises(IllegalStateTransitionError):
            await service.assign_automatic("company-a", task_id)

    async def test_create_with_auto_assign(self, service, org, seed_user):
        await seed_user("w-1", capabilities=["Welding"])
        task_id = await _create(
            service,
            org["admin"],
            department="OPS",
            required_capabilities=["Welding"],
            auto_assign=True,
        )
        task = await service.get_task(org["admin"], task_id)
        assert task.assigned_worker_id == "w-1"


class TestAutoAssignRights:
    """经理触发的自动分配"""

    async def _assigned_ops_task(self, service, org, seed_user) -> str:
        await seed_user("w-1", capabilities=["Welding"])
        await seed_user("w-2", capabilities=["Welding"])
        task_id = await _create(
            service, org["admin"], department="OPS", required_capabilities=["Welding"]
        )
        await service.assign_manual(org["admin"], task_id, "w-2")
        return task_id

    async def test_other_department_cannot_force(self, service, org, seed_user):
        task_id = await self._assigned_ops_task(service, org, seed_user)

        with pytest.raises(ForbiddenError):
            await service.auto_assign(org["mgr_maint"], task_id, force_reassign=True)

        task = await service.get_task(org["admin"], task_id)
        assert task.assigned_worker_id == "w-2"
        history = await service.get_assignment_history("company-a", task_id)
        assert [e.kind for e in history] == [AssignmentKind.MANUAL]

    async def test_origin_loses_force_after_accepted_delegation(self, service, org, seed_user):
        task_id = await self._assigned_ops_task(service, org, seed_user)
        await service.delegate(org["mgr_ops"], task_id, "mgr-maint")
        await service.accept_delegation(org["mgr_maint"], task_id)

        with pytest.raises(ForbiddenError):
            await service.auto_assign(org["mgr_ops"], task_id, force_reassign=True)

    async def test_department_manager_can_force(self, service, org, seed_user, event_hub):
        task_id = await self._assigned_ops_task(service, org, seed_user)
        queue = await event_hub.subscribe("company-a")

        result = await service.auto_assign(org["mgr_ops"], task_id, force_reassign=True)

        assert result.outcome == AssignmentOutcome.ASSIGNED
        assert result.worker_id == "w-1"
        history = await service.get_assignment_history("company-a", task_id)
        assert history[1].kind == AssignmentKind.REASSIGNMENT
        assert history[1].assigned_by_user_id == "mgr-ops"
        notification = queue.get_nowait()
        assert notification.data["previous_worker_id"] == "w-2"

    async def test_worker_cannot_auto_assign(self, service, org, as_worker):
        task_id = await _create(service, org["admin"], department="OPS")
        with pytest.raises(ForbiddenError):
            await service.auto_assign(as_worker("w-1"), task_id)


class TestManualAssignment:
    """手动分配路径"""

    async def test_manual_assignment_records_actor(self, service, org, seed_user):
        await seed_user("w-1")
        task_id = await _create(service, org["mgr_ops"])
        task = await service.assign_manual(org["mgr_ops"], task_id, "w-1")

        assert task.state == TaskState.ASSIGNED
        history = await service.get_assignment_history("company-a", task_id)
        assert history[0].kind == AssignmentKind.MANUAL
        assert history[0].assigned_by_user_id == "mgr-ops"

    async def test_capacity_exceeded(self, service, org, seed_user):
        """工人已有 5 个活跃任务时手动分配失败，任务保持 PENDING"""
        await seed_user("w-1")
        await _load_worker(service, org["admin"], "w-1", 5)
        task_id = await _create(service, org["admin"])

        with pytest.raises(CapacityExceededError) as exc_info:
            await service.assign_manual(org["admin"], task_id, "w-1")
        assert exc_info.value.active_count == 5
        task = await service.get_task(org["admin"], task_id)
        assert task.state == TaskState.PENDING
        assert task.assigned_worker_id is None

    @pytest.mark.parametrize(
        "kwargs,reason",
        [
            ({"role": UserRole.MANAGER}, "not a worker"),
            ({"is_active": False}, "inactive"),
            ({"company_id": "company-b"}, "not found in company"),
            ({"department": "MAINT"}, "department"),
        ],
    )
    async def test_invalid_candidate(self, service, org, seed_user, kwargs, reason):
        await seed_user("w-x", **kwargs)
        task_id = await _create(service, org["admin"], department="OPS")
        with pytest.raises(InvalidCandidateError) as exc_info:
            await service.assign_manual(org["admin"], task_id, "w-x")
        assert reason in exc_info.value.reason

    async def test_missing_capability(self, service, org, seed_user):
        await seed_user("w-1", capabilities=["Painting"])
        task_id = await _create(service, org["admin"], required_capabilities=["Welding"])
        with pytest.raises(InvalidCandidateError):
            await service.assign_manual(org["admin"], task_id, "w-1")

        task = await service.assign_manual(
            org["admin"], task_id, "w-1", skip_capability_check=True
        )
        assert task.assigned_worker_id == "w-1"

    async def test_assign_non_pending_illegal(self, service, org, seed_user):
        await seed_user("w-1")
        await seed_user("w-2")
        task_id = await _create(service, org["admin"])
        await service.assign_manual(org["admin"], task_id, "w-1")
        with pytest.raises(IllegalStateTransitionError):
            await service.assign_manual(org["admin"], task_id, "w-2")

    async def test_create_is_atomic(self, service, org, seed_user):
        """显式分配失败时任务不会被创建"""
        await seed_user("mgr-x", role=UserRole.MANAGER)
        with pytest.raises(InvalidCandidateError):
            await _create(service, org["admin"], explicit_assignee_id="mgr-x")
        assert await service.list_tasks(org["admin"]) == []


class TestConcurrentAssignment:
    """并发手动分配不突破上限"""

    async def test_only_one_succeeds_at_ceiling_minus_one(self, service, org, seed_user):
        await seed_user("w-1")
        await _load_worker(service, org["admin"], "w-1", 4)
        first = await _create(service, org["admin"], title="Race 1")
        second = await _create(service, org["admin"], title="Race 2")

        results = await asyncio.gather(
            service.assign_manual(org["admin"], first, "w-1"),
            service.assign_manual(org["admin"], second, "w-1"),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], CapacityExceededError | ConcurrentModificationError)

        tasks = await service.list_tasks(org["admin"])
        active = [t for t in tasks if t.assigned_worker_id == "w-1"]
        assert len(active) == 5
