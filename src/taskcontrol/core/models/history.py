"""AssignmentHistoryEntry Domain Model

分配历史表 append-only，不允许更新。
assigned_by_user_id 为 None 表示系统自动分配。
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .enums import AssignmentKind


class AssignmentHistoryEntry(BaseModel):
    """分配历史记录 -- 创建后不可变"""

    model_config = ConfigDict(frozen=True)

    entry_id: str = Field(description="唯一标识，ULID 格式")
    task_id: str = Field(description="关联的 Task ID")
    assigned_to_user_id: str | None = Field(
        default=None,
        description="接收方；脱离分配时为 None",
    )
    assigned_by_user_id: str | None = Field(
        default=None,
        description="操作者；None 表示系统/自动",
    )
    kind: AssignmentKind = Field(description="记录类型")
    motive: str | None = Field(default=None, description="原因说明")
    ts: datetime = Field(description="记录时间")
