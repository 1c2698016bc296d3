"""分配结果

调用方可据此区分“已分配”与“保持待分配”（信号不足 / 无合格候选人）。
"""

from pydantic import BaseModel

from .enums import AssignmentOutcome
from .task import Task


class AssignmentResult(BaseModel):
    """一次分配尝试的结果"""

    outcome: AssignmentOutcome
    task: Task
    worker_id: str | None = None

    @property
    def assigned(self) -> bool:
        return self.outcome == AssignmentOutcome.ASSIGNED
