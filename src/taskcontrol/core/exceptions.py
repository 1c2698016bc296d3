"""任务引擎异常体系

所有异常均可由调用方恢复，不会导致进程崩溃。
每个异常携带稳定的 code 和 context（task_id、当前状态、尝试的事件等），
足以渲染可操作的错误信息，但不暴露堆栈或内部标识。
"""

from typing import Any


class TaskEngineError(Exception):
    """任务引擎基础异常"""

    code: str = "TASK_ENGINE_ERROR"

    def __init__(
        self,
        message: str,
        recoverable: bool = True,
        **context: Any,
    ) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 调用方是否可通过重试或修正输入恢复
            **context: 错误上下文（task_id、worker_id 等）
        """
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable
        self.context = {k: v for k, v in context.items() if v is not None}

    @property
    def task_id(self) -> str | None:
        return self.context.get("task_id")

    def to_dict(self) -> dict[str, Any]:
        """序列化为错误响应体"""
        return {
            "code": self.code,
            "message": self.message,
            **{k: str(v) for k, v in self.context.items()},
        }


class NotFoundError(TaskEngineError):
    """任务或用户不存在，或不属于调用方所在公司"""

    code = "NOT_FOUND"


class ForbiddenError(TaskEngineError):
    """角色或归属不匹配"""

    code = "FORBIDDEN"


class ValidationFailedError(TaskEngineError):
    """输入校验失败（缺少完成证据、拒绝理由过短等）"""

    code = "VALIDATION_FAILED"


class IllegalStateTransitionError(TaskEngineError):
    """事件在当前状态下不合法

    在任何写入之前检查，失败即关闭，不产生部分写入。
    """

    code = "ILLEGAL_STATE_TRANSITION"

    def __init__(self, task_id: str, current_state: str, event: str) -> None:
        super().__init__(
            f"Task {task_id} cannot handle {event} while {current_state}",
            task_id=task_id,
            current_state=current_state,
            event=event,
        )
        self.current_state = current_state
        self.event = event


class InvalidCandidateError(TaskEngineError):
    """手动分配的候选人未通过角色/公司/在职/能力校验"""

    code = "INVALID_CANDIDATE"

    def __init__(self, task_id: str, worker_id: str, reason: str) -> None:
        super().__init__(
            f"Worker {worker_id} cannot take task {task_id}: {reason}",
            task_id=task_id,
            worker_id=worker_id,
            reason=reason,
        )
        self.worker_id = worker_id
        self.reason = reason


class CapacityExceededError(TaskEngineError):
    """候选人的活跃任务数已达到上限"""

    code = "CAPACITY_EXCEEDED"

    def __init__(
        self,
        task_id: str,
        worker_id: str,
        active_count: int,
        ceiling: int,
    ) -> None:
        super().__init__(
            f"Worker {worker_id} already holds {active_count} active tasks "
            f"(ceiling {ceiling})",
            task_id=task_id,
            worker_id=worker_id,
            active_count=active_count,
            ceiling=ceiling,
        )
        self.worker_id = worker_id
        self.active_count = active_count
        self.ceiling = ceiling


class InvalidDelegationTargetError(TaskEngineError):
    """委派目标不是同公司的在职经理，或与发起人相同"""

    code = "INVALID_DELEGATION_TARGET"


class DelegationAlreadyPendingError(TaskEngineError):
    """任务已存在待处理的委派"""

    code = "DELEGATION_ALREADY_PENDING"


class ConcurrentModificationError(TaskEngineError):
    """乐观锁冲突或存储层写锁竞争失败"""

    code = "CONCURRENT_MODIFICATION"


class PersistenceFailureError(TaskEngineError):
    """存储层失败（超时、连接丢失），操作视为未生效"""

    code = "PERSISTENCE_FAILURE"
