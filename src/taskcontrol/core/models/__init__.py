"""taskcontrol Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .enums import (
    ACTIVE_STATES,
    ADMIN_ROLES,
    TERMINAL_STATES,
    TRANSITIONS,
    AssignmentKind,
    AssignmentOutcome,
    DelegationStatus,
    NotificationType,
    Priority,
    TaskEvent,
    TaskState,
    UserRole,
    next_state,
    validate_transition,
)
from .history import AssignmentHistoryEntry
from .notification import TaskNotification
from .results import AssignmentResult
from .task import (
    AcceptedDelegation,
    Delegation,
    PendingDelegation,
    RejectedDelegation,
    Task,
    TaskDraft,
    TaskFilters,
)
from .user import Actor, Capability, UserProfile

__all__ = [
    # 枚举
    "TaskState",
    "TaskEvent",
    "Priority",
    "UserRole",
    "AssignmentKind",
    "AssignmentOutcome",
    "DelegationStatus",
    "NotificationType",
    # 状态机
    "TRANSITIONS",
    "TERMINAL_STATES",
    "ACTIVE_STATES",
    "ADMIN_ROLES",
    "next_state",
    "validate_transition",
    # Task
    "Task",
    "TaskDraft",
    "TaskFilters",
    "Delegation",
    "PendingDelegation",
    "AcceptedDelegation",
    "RejectedDelegation",
    # History
    "AssignmentHistoryEntry",
    # 用户
    "Actor",
    "Capability",
    "UserProfile",
    # 结果与通知
    "AssignmentResult",
    "TaskNotification",
]
