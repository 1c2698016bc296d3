"""枚举定义 -- 任务状态机、事件、角色、优先级、分配类型

包含 TaskState 状态机与 TaskEvent 事件枚举，
TRANSITIONS 以 (state, event) 为键的集中流转表，
以及 TERMINAL_STATES 终态集合和 ACTIVE_STATES 占用负载的状态集合。
"""

from enum import StrEnum


class TaskState(StrEnum):
    """Task 生命周期状态"""

    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    ACCEPTED = "ACCEPTED"

    # 终态
    FINALIZED = "FINALIZED"
    CANCELLED = "CANCELLED"


class TaskEvent(StrEnum):
    """驱动状态机的事件"""

    ASSIGN = "ASSIGN"
    ACCEPT = "ACCEPT"
    FINALIZE = "FINALIZE"
    CANCEL = "CANCEL"
    REASSIGN = "REASSIGN"
    RELEASE = "RELEASE"
    EDIT = "EDIT"

    # 委派覆盖层事件：不改变生命周期状态
    DELEGATE = "DELEGATE"
    ACCEPT_DELEGATION = "ACCEPT_DELEGATION"
    REJECT_DELEGATION = "REJECT_DELEGATION"


_NON_TERMINAL = (TaskState.PENDING, TaskState.ASSIGNED, TaskState.ACCEPTED)

# 合法流转表：(当前状态, 事件) -> 目标状态
# 不在表中的组合一律视为非法流转
TRANSITIONS: dict[tuple[TaskState, TaskEvent], TaskState] = {
    (TaskState.PENDING, TaskEvent.ASSIGN): TaskState.ASSIGNED,
    (TaskState.ASSIGNED, TaskEvent.ACCEPT): TaskState.ACCEPTED,
    (TaskState.ACCEPTED, TaskEvent.FINALIZE): TaskState.FINALIZED,
    (TaskState.PENDING, TaskEvent.CANCEL): TaskState.CANCELLED,
    (TaskState.ASSIGNED, TaskEvent.CANCEL): TaskState.CANCELLED,
    (TaskState.PENDING, TaskEvent.REASSIGN): TaskState.PENDING,
    (TaskState.ASSIGNED, TaskEvent.REASSIGN): TaskState.PENDING,
    (TaskState.ACCEPTED, TaskEvent.REASSIGN): TaskState.PENDING,
    (TaskState.ASSIGNED, TaskEvent.RELEASE): TaskState.PENDING,
    (TaskState.ACCEPTED, TaskEvent.RELEASE): TaskState.PENDING,
    (TaskState.PENDING, TaskEvent.EDIT): TaskState.PENDING,
    **{
        (state, event): state
        for state in _NON_TERMINAL
        for event in (
            TaskEvent.DELEGATE,
            TaskEvent.ACCEPT_DELEGATION,
            TaskEvent.REJECT_DELEGATION,
        )
    },
}

TERMINAL_STATES: frozenset[TaskState] = frozenset(
    {TaskState.FINALIZED, TaskState.CANCELLED}
)

# 计入工人负载的状态
ACTIVE_STATES: frozenset[TaskState] = frozenset(
    {TaskState.ASSIGNED, TaskState.ACCEPTED}
)


class Priority(StrEnum):
    """任务优先级"""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class UserRole(StrEnum):
    """用户角色（由上游认证解析）"""

    ADMIN_GENERAL = "ADMIN_GENERAL"
    ADMIN_COMPANY = "ADMIN_COMPANY"
    MANAGER = "MANAGER"
    WORKER = "WORKER"


ADMIN_ROLES: frozenset[UserRole] = frozenset(
    {UserRole.ADMIN_GENERAL, UserRole.ADMIN_COMPANY}
)


class AssignmentKind(StrEnum):
    """分配历史记录类型"""

    MANUAL = "MANUAL"
    AUTOMATIC = "AUTOMATIC"
    REASSIGNMENT = "REASSIGNMENT"
    DELEGATION = "DELEGATION"


class DelegationStatus(StrEnum):
    """委派状态"""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class AssignmentOutcome(StrEnum):
    """自动分配结果码"""

    ASSIGNED = "ASSIGNED"
    ALREADY_ASSIGNED = "ALREADY_ASSIGNED"
    INSUFFICIENT_SIGNAL = "INSUFFICIENT_SIGNAL"
    NO_ELIGIBLE_CANDIDATE = "NO_ELIGIBLE_CANDIDATE"
    UNASSIGNED = "UNASSIGNED"


class NotificationType(StrEnum):
    """推送通知事件名"""

    TASK_CREATED = "task:created"
    TASK_UPDATED = "task:updated"
    TASK_ASSIGNED = "task:assigned"
    TASK_ACCEPTED = "task:accepted"
    TASK_COMPLETED = "task:completed"
    TASK_CANCELLED = "task:cancelled"
    TASK_REASSIGNED = "task:reassigned"
    TASK_RELEASED = "task:released"
    TASK_DELEGATED = "task:delegated"
    DELEGATION_ACCEPTED = "task:delegation_accepted"
    DELEGATION_REJECTED = "task:delegation_rejected"


def next_state(state: TaskState, event: TaskEvent) -> TaskState | None:
    """查询流转表

    Args:
        state: 当前状态
        event: 触发事件

    Returns:
        目标状态；流转非法时返回 None
    """
    return TRANSITIONS.get((state, event))


def validate_transition(state: TaskState, event: TaskEvent) -> bool:
    """验证事件在当前状态下是否合法"""
    return (state, event) in TRANSITIONS
