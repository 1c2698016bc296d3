"""taskcontrol 测试配置 -- 临时数据库、用户目录种子与服务 fixture"""

from collections.abc import AsyncGenerator, Awaitable, Callable, Iterable
from pathlib import Path

import pytest
import pytest_asyncio
from taskcontrol.core.config import EngineConfig
from taskcontrol.core.models import Actor, Capability, UserProfile, UserRole
from taskcontrol.core.services import TaskEventHub, TaskService
from taskcontrol.core.store import StoreGroup, create_store_group, unit_of_work

COMPANY = "company-a"
OTHER_COMPANY = "company-b"

SeedUser = Callable[..., Awaitable[UserProfile]]


@pytest_asyncio.fixture
async def store_group(tmp_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """已初始化的临时数据库 StoreGroup"""
    group = await create_store_group(str(tmp_path / "sqlite" / "test.db"))
    yield group
    await group.close()


@pytest_asyncio.fixture
async def seed_user(store_group: StoreGroup) -> SeedUser:
    """写入用户目录记录的工厂"""

    async def _seed(
        user_id: str,
        role: UserRole = UserRole.WORKER,
        department: str | None = "OPS",
        capabilities: Iterable[str | tuple[str, int]] = (),
        company_id: str = COMPANY,
        is_active: bool = True,
    ) -> UserProfile:
        caps = [
            Capability(name=c, level=1) if isinstance(c, str) else Capability(name=c[0], level=c[1])
            for c in capabilities
        ]
        profile = UserProfile(
            user_id=user_id,
            company_id=company_id,
            display_name=user_id,
            role=role,
            department=department,
            is_active=is_active,
            capabilities=caps,
        )
        async with unit_of_work(store_group) as stores:
            await stores.user_directory.upsert_user(profile)
        return profile

    return _seed


@pytest_asyncio.fixture
async def org(seed_user: SeedUser) -> dict[str, Actor]:
    """标准组织：一名公司管理员、两名不同部门的经理"""
    await seed_user("admin-1", role=UserRole.ADMIN_COMPANY, department=None)
    await seed_user("mgr-ops", role=UserRole.MANAGER, department="OPS")
    await seed_user("mgr-maint", role=UserRole.MANAGER, department="MAINT")
    return {
        "admin": Actor(company_id=COMPANY, user_id="admin-1", role=UserRole.ADMIN_COMPANY),
        "mgr_ops": Actor(company_id=COMPANY, user_id="mgr-ops", role=UserRole.MANAGER),
        "mgr_maint": Actor(company_id=COMPANY, user_id="mgr-maint", role=UserRole.MANAGER),
    }


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def event_hub() -> TaskEventHub:
    return TaskEventHub()


@pytest.fixture
def service(
    store_group: StoreGroup,
    engine_config: EngineConfig,
    event_hub: TaskEventHub,
) -> TaskService:
    return TaskService(store_group, config=engine_config, event_hub=event_hub)


@pytest.fixture
def as_worker() -> Callable[[str], Actor]:
    """构造工人身份的工厂"""

    def _actor(user_id: str, company_id: str = COMPANY) -> Actor:
        return Actor(company_id=company_id, user_id=user_id, role=UserRole.WORKER)

    return _actor
