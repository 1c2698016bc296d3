"""用户目录视图与操作者身份

UserProfile 是外部用户目录在本引擎中的只读投影，
能力等级（1-5）会被存储，但不参与分配资格判断。
"""

from pydantic import BaseModel, Field

from .enums import ADMIN_ROLES, UserRole


class Capability(BaseModel):
    """用户持有的能力"""

    name: str = Field(min_length=1, max_length=120)
    level: int = Field(default=1, ge=1, le=5)


class UserProfile(BaseModel):
    """用户目录记录"""

    user_id: str
    company_id: str
    display_name: str = ""
    role: UserRole = UserRole.WORKER
    department: str | None = None
    is_active: bool = True
    capabilities: list[Capability] = Field(default_factory=list)

    @property
    def capability_names(self) -> list[str]:
        return [c.name for c in self.capabilities]


class Actor(BaseModel):
    """发起操作的用户（公司、身份、角色由上游认证解析）"""

    company_id: str
    user_id: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_manager_or_admin(self) -> bool:
        return self.is_admin or self.role == UserRole.MANAGER
