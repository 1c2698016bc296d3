"""状态机流转单元测试

测试内容：
1. 合法流转通过，目标状态正确
2. 非法流转被拒绝（终态不可再流转）
3. 生命周期纯函数的副作用与失败即关闭
"""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError
from taskcontrol.core import lifecycle
from taskcontrol.core.exceptions import IllegalStateTransitionError, ValidationFailedError
from taskcontrol.core.models import (
    TERMINAL_STATES,
    TRANSITIONS,
    Task,
    TaskDraft,
    TaskEvent,
    TaskState,
    next_state,
    validate_transition,
)


def _task(state: TaskState = TaskState.PENDING, worker: str | None = None) -> Task:
    now = datetime.now(UTC)
    return Task(
        task_id="01JTASK0000000000000000001",
        company_id="company-a",
        title="Fix pump",
        state=state,
        assigned_worker_id=worker,
        created_by_user_id="admin-1",
        required_capabilities=["Welding"],
        created_at=now,
        updated_at=now,
    )


class TestTransitionTable:
    """流转表验证"""

    @pytest.mark.parametrize(
        "state,event,target",
        [
            (TaskState.PENDING, TaskEvent.ASSIGN, TaskState.ASSIGNED),
            (TaskState.ASSIGNED, TaskEvent.ACCEPT, TaskState.ACCEPTED),
            (TaskState.ACCEPTED, TaskEvent.FINALIZE, TaskState.FINALIZED),
            (TaskState.PENDING, TaskEvent.CANCEL, TaskState.CANCELLED),
            (TaskState.ASSIGNED, TaskEvent.CANCEL, TaskState.CANCELLED),
            (TaskState.ACCEPTED, TaskEvent.REASSIGN, TaskState.PENDING),
            (TaskState.ASSIGNED, TaskEvent.RELEASE, TaskState.PENDING),
            (TaskState.ACCEPTED, TaskEvent.DELEGATE, TaskState.ACCEPTED),
        ],
    )
    def test_valid_transition(self, state, event, target):
        """合法流转返回目标状态"""
        assert validate_transition(state, event) is True
        assert next_state(state, event) == target

    @pytest.mark.parametrize(
        "state,event",
        [
            (TaskState.ACCEPTED, TaskEvent.CANCEL),
            (TaskState.PENDING, TaskEvent.ACCEPT),
            (TaskState.ASSIGNED, TaskEvent.FINALIZE),
            (TaskState.ASSIGNED, TaskEvent.ASSIGN),
            (TaskState.PENDING, TaskEvent.RELEASE),
            (TaskState.ASSIGNED, TaskEvent.EDIT),
        ],
    )
    def test_invalid_transition(self, state, event):
        """非法流转应被拒绝"""
        assert validate_transition(state, event) is False
        assert next_state(state, event) is None

    def test_terminal_states_accept_no_event(self):
        """终态不接受任何事件"""
        for terminal in TERMINAL_STATES:
            for event in TaskEvent:
                assert (terminal, event) not in TRANSITIONS, f"{terminal} 不应接受 {event}"


class TestLifecycleFunctions:
    """生命周期纯函数"""

    def test_assign_sets_worker(self):
        now = datetime.now(UTC)
        task = lifecycle.assign(_task(), "w-1", now)
        assert task.state == TaskState.ASSIGNED
        assert task.assigned_worker_id == "w-1"
        assert task.updated_at == now

    def test_cancel_accepted_task_fails_closed(self):
        """ACCEPTED 任务不可取消，原对象不变"""
        task = _task(TaskState.ACCEPTED, "w-1")
        with pytest.raises(IllegalStateTransitionError) as exc_info:
            lifecycle.cancel(task, "no longer needed", datetime.now(UTC))
        assert exc_info.value.current_state == "ACCEPTED"
        assert exc_info.value.event == "CANCEL"
        assert task.state == TaskState.ACCEPTED
        assert task.assigned_worker_id == "w-1"

    def test_cancel_clears_assignee(self):
        task = lifecycle.cancel(_task(TaskState.ASSIGNED, "w-1"), "  duplicate ", datetime.now(UTC))
        assert task.state == TaskState.CANCELLED
        assert task.assigned_worker_id is None
        assert task.cancellation_reason == "duplicate"
        assert task.cancelled_at is not None

    def test_finalize_keeps_finalizer(self):
        """完成后负责人清空，但保留 finalized_by_user_id"""
        task = lifecycle.finalize(
            _task(TaskState.ACCEPTED, "w-1"),
            "Replaced gasket",
            "https://files.example/evidence.jpg",
            datetime.now(UTC),
        )
        assert task.state == TaskState.FINALIZED
        assert task.assigned_worker_id is None
        assert task.finalized_by_user_id == "w-1"
        assert task.evidence_text == "Replaced gasket"

    def test_finalize_requires_evidence(self):
        with pytest.raises(ValidationFailedError):
            lifecycle.finalize(_task(TaskState.ACCEPTED, "w-1"), "   ", None, datetime.now(UTC))

    def test_detach_returns_to_pending(self):
        task = lifecycle.detach(_task(TaskState.ACCEPTED, "w-1"), TaskEvent.RELEASE, datetime.now(UTC))
        assert task.state == TaskState.PENDING
        assert task.assigned_worker_id is None

    def test_edit_replaces_capabilities(self):
        draft = TaskDraft(
            title="Fix pump v2",
            required_capabilities=["Electrical", " electrical ", "Plumbing"],
        )
        task = lifecycle.edit(_task(), draft, datetime.now(UTC))
        assert task.title == "Fix pump v2"
        assert task.required_capabilities == ["Electrical", "Plumbing"]

    def test_edit_only_pending(self):
        with pytest.raises(IllegalStateTransitionError):
            lifecycle.edit(_task(TaskState.ASSIGNED, "w-1"), TaskDraft(title="x"), datetime.now(UTC))


class TestAssigneeInvariant:
    """负责人仅在 ASSIGNED/ACCEPTED 下非空"""

    def test_pending_with_worker_rejected(self):
        with pytest.raises(ValidationError):
            _task(TaskState.PENDING, "w-1")

    def test_assigned_without_worker_rejected(self):
        with pytest.raises(ValidationError):
            _task(TaskState.ASSIGNED, None)

    def test_finalized_with_worker_rejected(self):
        with pytest.raises(ValidationError):
            _task(TaskState.FINALIZED, "w-1")
