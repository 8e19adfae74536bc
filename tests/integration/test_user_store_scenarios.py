from __future__ import annotations

from pathlib import Path

import pytest
from alembic.config import Config

from alembic import command
from mcp_user_store.application.ports.user_repository_port import (
    DuplicateEmailError,
    UserQueryFilter,
)
from mcp_user_store.application.services.user_store_service import (
    UserCreateRequest,
    UserNotFoundError,
    UserStoreService,
    UserUpdateRequest,
)
from mcp_user_store.infrastructure.db.session import create_session_factory
from mcp_user_store.infrastructure.db.user_repository import SqlAlchemyUserRepository


def _upgrade_head(tmp_path: Path, filename: str) -> str:
    db_path = tmp_path / filename
    alembic_config = Config("alembic.ini")
    alembic_config.set_main_option("sqlalchemy.url", f"sqlite+pysqlite:///{db_path}")
    command.upgrade(alembic_config, "head")
    return f"sqlite+aiosqlite:///{db_path}"


def _service(async_url: str) -> UserStoreService:
    return UserStoreService(users=SqlAlchemyUserRepository(create_session_factory(async_url)))


@pytest.mark.asyncio
async def test_create_duplicate_update_and_department_moves(tmp_path: Path) -> None:
    service = _service(_upgrade_head(tmp_path, "scenario_ana.db"))
    ana = UserCreateRequest(name="Ana", email="ana@x.com", department="IT", role="dev")

    created = await service.create_user(payload=ana)

    assert created.active is True
    assert created.created_at == created.updated_at
    assert created.user_id >= 1

    with pytest.raises(DuplicateEmailError, match="ana@x.com"):
        await service.create_user(payload=ana)
    assert len(await service.list_users()) == 1

    updated = await service.update_user(
        user_id=created.user_id,
        payload=UserUpdateRequest(department="QA"),
    )

    assert updated.department == "QA"
    assert (updated.name, updated.email, updated.role) == ("Ana", "ana@x.com", "dev")
    assert updated.updated_at > created.created_at
    assert [user.user_id for user in await service.find_users_by_department(department="QA")] == [
        created.user_id
    ]
    assert await service.find_users_by_department(department="IT") == []


@pytest.mark.asyncio
async def test_update_of_missing_id_creates_nothing(tmp_path: Path) -> None:
    service = _service(_upgrade_head(tmp_path, "scenario_missing.db"))

    with pytest.raises(UserNotFoundError):
        await service.update_user(user_id=42, payload=UserUpdateRequest(name="Ghost"))

    assert await service.list_users() == []


@pytest.mark.asyncio
async def test_update_keeping_own_email_is_not_a_duplicate(tmp_path: Path) -> None:
    service = _service(_upgrade_head(tmp_path, "scenario_own_email.db"))
    created = await service.create_user(
        payload=UserCreateRequest(name="Ana", email="ana@x.com", department="IT", role="dev")
    )

    updated = await service.update_user(
        user_id=created.user_id,
        payload=UserUpdateRequest(email="ANA@x.com", name="Ana Maria"),
    )

    assert updated.email == "ana@x.com"
    assert updated.name == "Ana Maria"


@pytest.mark.asyncio
async def test_empty_search_matches_list_and_sales_count(tmp_path: Path) -> None:
    service = _service(_upgrade_head(tmp_path, "scenario_search.db"))
    population = [
        ("Ana", "Sales", True),
        ("Bob", "Sales", False),
        ("Cid", "Sales", True),
        ("Dee", "IT", True),
    ]
    for name, department, active in population:
        created = await service.create_user(
            payload=UserCreateRequest(
                name=name,
                email=f"{name.lower()}@x.com",
                department=department,
                role="dev",
            )
        )
        if not active:
            await service.update_user(
                user_id=created.user_id,
                payload=UserUpdateRequest(active=False),
            )

    everyone = await service.list_users()
    searched = await service.search_users(query=UserQueryFilter(limit=100))

    assert {user.user_id for user in searched} == {user.user_id for user in everyone}
    assert await service.count_by_department(department="Sales") == sum(
        1 for user in everyone if user.department == "Sales" and user.active
    )
    assert await service.count_by_department(department="Sales") == 2
