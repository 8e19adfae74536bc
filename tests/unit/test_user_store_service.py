from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta

import pytest

from mcp_user_store.application.ports.user_repository_port import (
    DuplicateEmailError,
    UserCreateInput,
    UserQueryFilter,
    UserRecord,
    UserUpdateInput,
)
from mcp_user_store.application.services.user_store_service import (
    UserCreateRequest,
    UserNotFoundError,
    UserStoreService,
    UserUpdateRequest,
    UserValidationError,
)
from mcp_user_store.domain.field_update import UNSET

_FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _matches(user: UserRecord, query: UserQueryFilter) -> bool:
    if query.department is not None and user.department != query.department:
        return False
    if query.role is not None and user.role != query.role:
        return False
    return query.active is None or user.active is query.active


@dataclass
class FakeUserRepository:
    users: dict[int, UserRecord] = field(default_factory=dict)
    batch_calls: list[tuple[int, int]] = field(default_factory=list)
    update_calls: list[UserUpdateInput] = field(default_factory=list)
    next_id: int = 1

    def _store(self, payload: UserCreateInput) -> UserRecord:
        if any(user.email == payload.email for user in self.users.values()):
            raise DuplicateEmailError(email=payload.email)
        record = UserRecord(
            user_id=self.next_id,
            name=payload.name,
            email=payload.email,
            department=payload.department,
            role=payload.role,
            active=payload.active,
            created_at=payload.created_at,
            updated_at=payload.updated_at,
        )
        self.users[record.user_id] = record
        self.next_id += 1
        return record

    async def create_user(self, payload: UserCreateInput) -> UserRecord:
        return self._store(payload)

    async def create_users(
        self,
        payloads: Sequence[UserCreateInput],
        *,
        batch_size: int,
    ) -> list[UserRecord]:
        self.batch_calls.append((len(payloads), batch_size))
        snapshot = dict(self.users)
        next_id = self.next_id
        try:
            return [self._store(item) for item in payloads]
        except DuplicateEmailError:
            self.users = snapshot
            self.next_id = next_id
            raise

    async def get_by_id(self, *, user_id: int) -> UserRecord | None:
        return self.users.get(user_id)

    async def get_by_email(self, *, email: str) -> UserRecord | None:
        for user in self.users.values():
            if user.email == email:
                return user
        return None

    async def list_users(self) -> list[UserRecord]:
        return [self.users[key] for key in sorted(self.users)]

    async def list_active_by_department(self, *, department: str) -> list[UserRecord]:
        query = UserQueryFilter(department=department, active=True)
        matching = [user for user in self.users.values() if _matches(user, query)]
        return sorted(matching, key=lambda user: (user.name, user.user_id))

    async def search_users(self, query: UserQueryFilter) -> list[UserRecord]:
        matching = [user for user in await self.list_users() if _matches(user, query)]
        return matching[query.offset : query.offset + query.limit]

    async def count_users(self, query: UserQueryFilter) -> int:
        return sum(1 for user in self.users.values() if _matches(user, query))

    async def update_user(self, *, user_id: int, changes: UserUpdateInput) -> UserRecord | None:
        self.update_calls.append(changes)
        current = self.users.get(user_id)
        if current is None:
            return None
        values = {
            column: getattr(changes, column)
            for column in ("name", "email", "department", "role", "active")
            if getattr(changes, column) is not UNSET
        }
        updated = replace(current, updated_at=changes.updated_at, **values)
        self.users[user_id] = updated
        return updated

    async def delete_user(self, *, user_id: int) -> bool:
        return self.users.pop(user_id, None) is not None


def _request(
    name: str | None = "Ana",
    email: str | None = "ana@x.io",
    department: str | None = "Eng",
    role: str | None = "Dev",
) -> UserCreateRequest:
    return UserCreateRequest(name=name, email=email, department=department, role=role)


def _service(
    repository: FakeUserRepository,
    *,
    batch_size: int = 20,
    now: datetime = _FIXED_NOW,
) -> UserStoreService:
    return UserStoreService(users=repository, batch_size=batch_size, now=lambda: now)


@pytest.mark.asyncio
async def test_create_user_assigns_id_active_flag_and_timestamps() -> None:
    service = _service(FakeUserRepository())

    created = await service.create_user(payload=_request())

    assert created.user_id == 1
    assert created.name == "Ana"
    assert created.email == "ana@x.io"
    assert created.department == "Eng"
    assert created.role == "Dev"
    assert created.active is True
    assert created.created_at == _FIXED_NOW
    assert created.updated_at == _FIXED_NOW


@pytest.mark.asyncio
async def test_create_user_normalizes_text_and_email_case() -> None:
    service = _service(FakeUserRepository())

    created = await service.create_user(
        payload=_request(name="  Ana  ", email=" Ana@X.IO ", department=" Eng ", role=" Dev ")
    )

    assert created.name == "Ana"
    assert created.email == "ana@x.io"
    assert created.department == "Eng"
    assert created.role == "Dev"


@pytest.mark.asyncio
async def test_create_user_rejects_invalid_fields_without_storing() -> None:
    repository = FakeUserRepository()
    service = _service(repository)

    with pytest.raises(UserValidationError) as exc_info:
        await service.create_user(payload=_request(name="A", email="not-an-email"))

    assert [item.field for item in exc_info.value.violations] == ["name", "email"]
    assert "invalid user input" in str(exc_info.value)
    assert repository.users == {}


@pytest.mark.asyncio
async def test_create_user_with_taken_email_raises_duplicate() -> None:
    repository = FakeUserRepository()
    service = _service(repository)
    await service.create_user(payload=_request())

    with pytest.raises(DuplicateEmailError) as exc_info:
        await service.create_user(payload=_request(name="Other", email="ANA@x.io"))

    assert exc_info.value.email == "ana@x.io"
    assert len(repository.users) == 1


@pytest.mark.asyncio
async def test_find_user_by_id_returns_none_when_absent() -> None:
    service = _service(FakeUserRepository())

    assert await service.find_user_by_id(user_id=999) is None


@pytest.mark.asyncio
async def test_update_changes_only_supplied_fields_and_bumps_updated_at() -> None:
    repository = FakeUserRepository()
    created = await _service(repository).create_user(payload=_request())
    later = _FIXED_NOW + timedelta(minutes=5)

    updated = await _service(repository, now=later).update_user(
        user_id=created.user_id,
        payload=UserUpdateRequest(role="Lead"),
    )

    assert updated.role == "Lead"
    assert updated.name == "Ana"
    assert updated.email == "ana@x.io"
    assert updated.department == "Eng"
    assert updated.active is True
    assert updated.created_at == created.created_at
    assert updated.updated_at == later
    assert repository.update_calls[0].name is UNSET


@pytest.mark.asyncio
async def test_update_within_same_instant_still_moves_updated_at_forward() -> None:
    repository = FakeUserRepository()
    service = _service(repository)
    created = await service.create_user(payload=_request())

    updated = await service.update_user(
        user_id=created.user_id,
        payload=UserUpdateRequest(active=False),
    )

    assert updated.active is False
    assert updated.updated_at > created.updated_at


@pytest.mark.asyncio
async def test_update_missing_user_raises_not_found() -> None:
    service = _service(FakeUserRepository())

    with pytest.raises(UserNotFoundError, match="user not found: 999"):
        await service.update_user(user_id=999, payload=UserUpdateRequest(role="Lead"))


@pytest.mark.asyncio
async def test_update_validates_before_lookup() -> None:
    repository = FakeUserRepository()
    service = _service(repository)

    with pytest.raises(UserValidationError) as exc_info:
        await service.update_user(user_id=999, payload=UserUpdateRequest(email="bad", name=None))

    assert {item.field for item in exc_info.value.violations} == {"name", "email"}
    assert repository.update_calls == []


@pytest.mark.asyncio
async def test_update_email_is_normalized() -> None:
    repository = FakeUserRepository()
    service = _service(repository)
    created = await service.create_user(payload=_request())

    updated = await service.update_user(
        user_id=created.user_id,
        payload=UserUpdateRequest(email=" Ana.New@X.io "),
    )

    assert updated.email == "ana.new@x.io"


@pytest.mark.asyncio
async def test_delete_reports_whether_user_existed() -> None:
    repository = FakeUserRepository()
    service = _service(repository)
    created = await service.create_user(payload=_request())

    assert await service.delete_user(user_id=created.user_id) is True
    assert await service.delete_user(user_id=created.user_id) is False
    assert await service.find_user_by_id(user_id=created.user_id) is None


@pytest.mark.asyncio
async def test_department_lookup_and_count_consider_only_active_users() -> None:
    repository = FakeUserRepository()
    service = _service(repository)
    await service.create_user(payload=_request(name="Zoe", email="zoe@x.io"))
    await service.create_user(payload=_request(name="Ana", email="ana@x.io"))
    bob = await service.create_user(payload=_request(name="Bob", email="bob@x.io"))
    await service.create_user(payload=_request(name="Cid", email="cid@x.io", department="Ops"))
    await service.update_user(user_id=bob.user_id, payload=UserUpdateRequest(active=False))

    members = await service.find_users_by_department(department="Eng")

    assert [user.name for user in members] == ["Ana", "Zoe"]
    assert await service.count_by_department(department="Eng") == 2
    assert await service.count_by_department(department="Sales") == 0


@pytest.mark.asyncio
async def test_search_rejects_bad_window() -> None:
    service = _service(FakeUserRepository())

    with pytest.raises(UserValidationError) as exc_info:
        await service.search_users(query=UserQueryFilter(limit=0, offset=-1))

    assert [item.field for item in exc_info.value.violations] == ["limit", "offset"]


@pytest.mark.asyncio
async def test_search_combines_criteria_and_window() -> None:
    repository = FakeUserRepository()
    service = _service(repository)
    for index in range(5):
        await service.create_user(payload=_request(name=f"Dev{index}", email=f"d{index}@x.io"))
    await service.create_user(payload=_request(name="Ops", email="ops@x.io", role="Ops"))

    found = await service.search_users(
        query=UserQueryFilter(department="Eng", role="Dev", limit=2, offset=1)
    )

    assert [user.name for user in found] == ["Dev1", "Dev2"]


@pytest.mark.asyncio
async def test_list_users_page_is_zero_based_with_total() -> None:
    repository = FakeUserRepository()
    service = _service(repository)
    for index in range(5):
        await service.create_user(payload=_request(name=f"User{index}", email=f"u{index}@x.io"))

    first = await service.list_users_page(page=0, size=2)
    last = await service.list_users_page(page=2, size=2)
    beyond = await service.list_users_page(page=9, size=2)

    assert [user.name for user in first.items] == ["User0", "User1"]
    assert first.total == 5
    assert [user.name for user in last.items] == ["User4"]
    assert beyond.items == []
    assert beyond.total == 5


@pytest.mark.asyncio
async def test_list_users_page_rejects_negative_page() -> None:
    service = _service(FakeUserRepository())

    with pytest.raises(UserValidationError):
        await service.list_users_page(page=-1, size=10)


@pytest.mark.asyncio
async def test_batch_insert_stores_all_and_passes_batch_size() -> None:
    repository = FakeUserRepository()
    service = _service(repository, batch_size=2)

    inserted = await service.batch_insert_users(
        payloads=[_request(name=f"User{index}", email=f"u{index}@x.io") for index in range(5)]
    )

    assert inserted == 5
    assert repository.batch_calls == [(5, 2)]
    assert len(await service.list_users()) == 5


@pytest.mark.asyncio
async def test_batch_with_invalid_entry_reports_indexed_fields_and_stores_nothing() -> None:
    repository = FakeUserRepository()
    service = _service(repository)

    with pytest.raises(UserValidationError) as exc_info:
        await service.batch_insert_users(
            payloads=[_request(), _request(name="Bo", email="bo@x.io"), _request(email="bad")]
        )

    assert [item.field for item in exc_info.value.violations] == ["users[2].email"]
    assert repository.users == {}
    assert repository.batch_calls == []


@pytest.mark.asyncio
async def test_batch_with_repeated_email_is_rejected_before_storage() -> None:
    repository = FakeUserRepository()
    service = _service(repository)

    with pytest.raises(DuplicateEmailError):
        await service.transfer_users(
            payloads=[_request(), _request(name="Twin", email="ANA@x.io")]
        )

    assert repository.users == {}
    assert repository.batch_calls == []


@pytest.mark.asyncio
async def test_transfer_conflicting_with_stored_email_leaves_store_unchanged() -> None:
    repository = FakeUserRepository()
    service = _service(repository)
    await service.create_user(payload=_request())

    with pytest.raises(DuplicateEmailError):
        await service.transfer_users(
            payloads=[_request(name="Bo", email="bo@x.io"), _request(name="Ana")]
        )

    assert [user.email for user in await service.list_users()] == ["ana@x.io"]


@pytest.mark.asyncio
async def test_transfer_returns_true_and_empty_batch_is_a_no_op() -> None:
    repository = FakeUserRepository()
    service = _service(repository)

    assert await service.transfer_users(payloads=[_request()]) is True
    assert await service.batch_insert_users(payloads=[]) == 0
    assert repository.batch_calls == [(1, 20)]


def test_batch_size_must_be_positive() -> None:
    with pytest.raises(ValueError, match="batch_size"):
        UserStoreService(users=FakeUserRepository(), batch_size=0)
