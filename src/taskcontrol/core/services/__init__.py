"""taskcontrol Core Services -- 分配、委派、审计与任务门面"""

from .assignment import AssignmentResolver
from .audit import AuditRecorder
from .authorization import can_manage, ensure_can_manage
from .delegation import DelegationProtocol
from .load import LoadAccountant
from .notifier import TaskEventHub
from .task_service import TaskService

__all__ = [
    "TaskService",
    "AssignmentResolver",
    "DelegationProtocol",
    "AuditRecorder",
    "LoadAccountant",
    "TaskEventHub",
    "can_manage",
    "ensure_can_manage",
]
