"""Application service implementing the user store create/read/update/delete contract."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from mcp_user_store.application.ports.user_repository_port import (
    DuplicateEmailError,
    UserCreateInput,
    UserPage,
    UserQueryFilter,
    UserRecord,
    UserRepositoryPort,
    UserUpdateInput,
)
from mcp_user_store.domain.field_update import UNSET, Unset, is_set
from mcp_user_store.domain.user_validation import (
    FieldViolation,
    validate_page_request,
    validate_result_window,
    validate_user_create,
    validate_user_update,
)

NowCallable = Callable[[], datetime]
DEFAULT_BATCH_SIZE = 20
_TIMESTAMP_STEP = timedelta(microseconds=1)
logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class UserValidationError(ValueError):
    """Raised when input fails field rules; carries every violation found."""

    def __init__(self, violations: Sequence[FieldViolation]) -> None:
        self.violations = list(violations)
        details = "; ".join(f"{item.field}: {item.message}" for item in self.violations)
        super().__init__(f"invalid user input: {details}")


class UserNotFoundError(LookupError):
    """Raised when a target user id does not exist."""

    def __init__(self, *, user_id: int) -> None:
        super().__init__(f"user not found: {user_id}")
        self.user_id = user_id


@dataclass(frozen=True)
class UserCreateRequest:
    """Raw creation input as received from callers."""

    name: str | None
    email: str | None
    department: str | None
    role: str | None


@dataclass(frozen=True)
class UserUpdateRequest:
    """Raw partial update input; only fields not `UNSET` are applied."""

    name: str | None | Unset = UNSET
    email: str | None | Unset = UNSET
    department: str | None | Unset = UNSET
    role: str | None | Unset = UNSET
    active: bool | None | Unset = UNSET


class UserStoreService:
    """Expose user store use-cases on top of a repository port."""

    def __init__(
        self,
        *,
        users: UserRepositoryPort,
        batch_size: int = DEFAULT_BATCH_SIZE,
        now: NowCallable = _utc_now,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._users = users
        self._batch_size = batch_size
        self._now = now

    async def create_user(self, *, payload: UserCreateRequest) -> UserRecord:
        """Validate and insert one user with `active=True` and fresh timestamps."""

        violations = validate_user_create(
            name=payload.name,
            email=payload.email,
            department=payload.department,
            role=payload.role,
        )
        if violations:
            raise UserValidationError(violations)

        created = await self._users.create_user(_to_create_input(payload, now=self._now()))
        logger.info(
            "user_created user_id=%s department=%s",
            created.user_id,
            created.department,
        )
        return created

    async def find_user_by_id(self, *, user_id: int) -> UserRecord | None:
        """Return user by id; absence is returned as None."""

        return await self._users.get_by_id(user_id=user_id)

    async def list_users(self) -> list[UserRecord]:
        """Return all stored users."""

        return await self._users.list_users()

    async def find_users_by_department(self, *, department: str) -> list[UserRecord]:
        """Return active users of one department ordered by name."""

        return await self._users.list_active_by_department(department=department)

    async def update_user(self, *, user_id: int, payload: UserUpdateRequest) -> UserRecord:
        """Apply supplied fields to an existing user and refresh `updated_at`."""

        violations = validate_user_update(
            name=payload.name,
            email=payload.email,
            department=payload.department,
            role=payload.role,
            active=payload.active,
        )
        if violations:
            raise UserValidationError(violations)

        existing = await self._users.get_by_id(user_id=user_id)
        if existing is None:
            raise UserNotFoundError(user_id=user_id)

        changes = UserUpdateInput(
            updated_at=self._next_updated_at(existing),
            name=_normalize_text(payload.name),
            email=_normalize_email(payload.email),
            department=_normalize_text(payload.department),
            role=_normalize_text(payload.role),
            active=payload.active if isinstance(payload.active, bool) else UNSET,
        )
        updated = await self._users.update_user(user_id=user_id, changes=changes)
        if updated is None:
            raise UserNotFoundError(user_id=user_id)

        logger.info(
            "user_updated user_id=%s fields=%s",
            user_id,
            ",".join(_supplied_fields(payload)),
        )
        return updated

    async def delete_user(self, *, user_id: int) -> bool:
        """Hard-delete one user; return False when it does not exist."""

        deleted = await self._users.delete_user(user_id=user_id)
        logger.info("user_delete_requested user_id=%s deleted=%s", user_id, deleted)
        return deleted

    async def count_by_department(self, *, department: str) -> int:
        """Count active users of one department."""

        return await self._users.count_users(UserQueryFilter(department=department, active=True))

    async def search_users(self, *, query: UserQueryFilter) -> list[UserRecord]:
        """Return users matching every present criterion within limit/offset."""

        violations = validate_result_window(limit=query.limit, offset=query.offset)
        if violations:
            raise UserValidationError(violations)
        return await self._users.search_users(query)

    async def list_users_page(self, *, page: int, size: int) -> UserPage:
        """Return one zero-based page of users in id order with the total count."""

        violations = validate_page_request(page=page, size=size)
        if violations:
            raise UserValidationError(violations)

        items = await self._users.search_users(UserQueryFilter(limit=size, offset=page * size))
        total = await self._users.count_users(UserQueryFilter())
        return UserPage(items=items, page=page, size=size, total=total)

    async def batch_insert_users(self, *, payloads: Sequence[UserCreateRequest]) -> int:
        """Insert all users atomically in chunks and return how many were stored."""

        created = await self._insert_all(payloads)
        return len(created)

    async def transfer_users(self, *, payloads: Sequence[UserCreateRequest]) -> bool:
        """Insert all users atomically; True once the whole set is committed."""

        await self._insert_all(payloads)
        return True

    async def _insert_all(self, payloads: Sequence[UserCreateRequest]) -> list[UserRecord]:
        violations: list[FieldViolation] = []
        for index, payload in enumerate(payloads):
            violations.extend(
                validate_user_create(
                    name=payload.name,
                    email=payload.email,
                    department=payload.department,
                    role=payload.role,
                    field_prefix=f"users[{index}].",
                )
            )
        if violations:
            raise UserValidationError(violations)

        now = self._now()
        inputs = [_to_create_input(payload, now=now) for payload in payloads]
        seen_emails: set[str] = set()
        for item in inputs:
            if item.email in seen_emails:
                raise DuplicateEmailError(email=item.email)
            seen_emails.add(item.email)

        if not inputs:
            return []

        created = await self._users.create_users(inputs, batch_size=self._batch_size)
        logger.info(
            "user_batch_committed count=%s batch_size=%s",
            len(created),
            self._batch_size,
        )
        return created

    def _next_updated_at(self, existing: UserRecord) -> datetime:
        """Return a timestamp strictly after the record's current `updated_at`."""

        now = self._now()
        floor = existing.updated_at + _TIMESTAMP_STEP
        return now if now >= floor else floor


def _to_create_input(payload: UserCreateRequest, *, now: datetime) -> UserCreateInput:
    assert payload.name is not None
    assert payload.email is not None
    assert payload.department is not None
    assert payload.role is not None
    return UserCreateInput(
        name=payload.name.strip(),
        email=payload.email.strip().lower(),
        department=payload.department.strip(),
        role=payload.role.strip(),
        active=True,
        created_at=now,
        updated_at=now,
    )


def _normalize_text(value: str | None | Unset) -> str | Unset:
    if isinstance(value, str):
        return value.strip()
    return UNSET


def _normalize_email(value: str | None | Unset) -> str | Unset:
    if isinstance(value, str):
        return value.strip().lower()
    return UNSET


def _supplied_fields(payload: UserUpdateRequest) -> list[str]:
    supplied = {
        "name": payload.name,
        "email": payload.email,
        "department": payload.department,
        "role": payload.role,
        "active": payload.active,
    }
    return [field for field, value in supplied.items() if is_set(value)]
