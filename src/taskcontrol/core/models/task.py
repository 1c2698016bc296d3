"""Task Domain Model

Task 只能通过生命周期状态机变更。
assigned_worker_id 仅在 ASSIGNED/ACCEPTED 状态下非空，模型校验器强制该不变量。
委派以标签变体建模：Pending / Accepted / Rejected(reason)，不存在第四种隐式状态。
"""

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, model_validator

from .enums import ACTIVE_STATES, DelegationStatus, Priority, TaskState


class _DelegationBase(BaseModel):
    """委派公共字段"""

    origin_manager_id: str = Field(description="发起委派的经理/管理员")
    destination_manager_id: str = Field(description="接收委派的经理")
    delegated_at: datetime = Field(description="委派时间")
    comment: str | None = Field(default=None, max_length=500)
    previous_department: str | None = Field(
        default=None,
        description="委派前的部门，拒绝时回退",
    )


class PendingDelegation(_DelegationBase):
    """等待目标经理响应"""

    status: Literal[DelegationStatus.PENDING] = DelegationStatus.PENDING


class AcceptedDelegation(_DelegationBase):
    """目标经理已接受，管理权转移"""

    status: Literal[DelegationStatus.ACCEPTED] = DelegationStatus.ACCEPTED
    resolved_at: datetime


class RejectedDelegation(_DelegationBase):
    """目标经理已拒绝，管理权回到发起人"""

    status: Literal[DelegationStatus.REJECTED] = DelegationStatus.REJECTED
    resolved_at: datetime
    rejection_reason: str = Field(max_length=500)


Delegation = Annotated[
    PendingDelegation | AcceptedDelegation | RejectedDelegation,
    Field(discriminator="status"),
]


class Task(BaseModel):
    """Task 数据模型

    version 为乐观并发计数器，每次持久化更新递增。
    """

    task_id: str = Field(description="唯一标识，ULID 格式")
    company_id: str = Field(description="所属公司")
    title: str = Field(description="任务标题")
    description: str = Field(default="", description="任务描述")
    priority: Priority = Field(default=Priority.MEDIUM)
    due_date: datetime | None = Field(default=None)
    department: str | None = Field(default=None, description="部门分类标签")
    state: TaskState = Field(default=TaskState.PENDING, description="当前状态")
    assigned_worker_id: str | None = Field(default=None, description="当前负责人")
    created_by_user_id: str = Field(description="创建人")
    required_capabilities: list[str] = Field(
        default_factory=list,
        description="所需能力名称（按规范化名称去重）",
    )

    # 完成证据
    evidence_text: str | None = None
    evidence_image_url: str | None = None
    finalized_at: datetime | None = None
    finalized_by_user_id: str | None = None

    # 取消
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None

    delegation: Delegation | None = Field(default=None, description="委派覆盖层")

    is_active: bool = True
    created_at: datetime
    updated_at: datetime
    version: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def _check_assignee_invariant(self) -> "Task":
        if self.assigned_worker_id is not None and self.state not in ACTIVE_STATES:
            raise ValueError(
                f"assigned_worker_id must be empty while task is {self.state}"
            )
        if self.state in ACTIVE_STATES and self.assigned_worker_id is None:
            raise ValueError(f"task in {self.state} requires an assigned worker")
        return self

    @property
    def is_delegated(self) -> bool:
        """委派是否仍在生效（待处理或已接受）

        被拒绝的委派保留历史字段，但在授权判断中视为已清除。
        """
        return self.delegation is not None and self.delegation.status in (
            DelegationStatus.PENDING,
            DelegationStatus.ACCEPTED,
        )

    @property
    def has_pending_delegation(self) -> bool:
        return (
            self.delegation is not None
            and self.delegation.status == DelegationStatus.PENDING
        )

    def evolve(self, **changes: Any) -> "Task":
        """生成经过完整校验的新 Task（model_copy 不会重新校验）"""
        data = self.model_dump()
        data.update(changes)
        return Task.model_validate(data)


class TaskDraft(BaseModel):
    """创建/编辑任务的输入"""

    title: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)
    priority: Priority = Field(default=Priority.MEDIUM)
    due_date: datetime | None = None
    department: str | None = None
    required_capabilities: list[str] = Field(default_factory=list)
    explicit_assignee_id: str | None = Field(
        default=None,
        description="创建后立即手动分配给该工人",
    )
    auto_assign: bool = Field(default=False, description="创建后立即自动分配")


class TaskFilters(BaseModel):
    """任务列表筛选条件"""

    state: TaskState | None = None
    priority: Priority | None = None
    department: str | None = None
    assignee: str | None = None
