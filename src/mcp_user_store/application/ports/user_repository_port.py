"""Port for user persistence and query operations."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from mcp_user_store.domain.field_update import UNSET, Unset

DEFAULT_QUERY_LIMIT = 10
DEFAULT_QUERY_OFFSET = 0


class DuplicateEmailError(ValueError):
    """Raised when a create or update would break email uniqueness."""

    def __init__(self, *, email: str) -> None:
        super().__init__(f"email already registered: {email}")
        self.email = email


class UserStorageError(RuntimeError):
    """Raised when the underlying database fails outside the user contract."""


@dataclass(frozen=True)
class UserRecord:
    """User persistence model used across repository boundaries."""

    user_id: int
    name: str
    email: str
    department: str
    role: str
    active: bool
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class UserCreateInput:
    """Normalized, validated payload for inserting one user row."""

    name: str
    email: str
    department: str
    role: str
    active: bool
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class UserUpdateInput:
    """Column changes for one user row; `UNSET` fields are left untouched."""

    updated_at: datetime
    name: str | Unset = UNSET
    email: str | Unset = UNSET
    department: str | Unset = UNSET
    role: str | Unset = UNSET
    active: bool | Unset = UNSET


@dataclass(frozen=True)
class UserQueryFilter:
    """Optional equality criteria plus limit/offset paging hints.

    ``None`` criteria impose no constraint. Count queries ignore the paging
    hints.
    """

    department: str | None = None
    role: str | None = None
    active: bool | None = None
    limit: int = DEFAULT_QUERY_LIMIT
    offset: int = DEFAULT_QUERY_OFFSET


@dataclass(frozen=True)
class UserPage:
    """One zero-based page of users in id order."""

    items: list[UserRecord]
    page: int
    size: int
    total: int


class UserRepositoryPort(Protocol):
    """User repository contract."""

    async def create_user(self, payload: UserCreateInput) -> UserRecord:
        """Insert one user and return it with its assigned id."""

    async def create_users(
        self,
        payloads: Sequence[UserCreateInput],
        *,
        batch_size: int,
    ) -> list[UserRecord]:
        """Insert all users in one transaction or none of them."""

    async def get_by_id(self, *, user_id: int) -> UserRecord | None:
        """Return user by id or None."""

    async def get_by_email(self, *, email: str) -> UserRecord | None:
        """Return user by normalized email or None."""

    async def list_users(self) -> list[UserRecord]:
        """Return every stored user."""

    async def list_active_by_department(self, *, department: str) -> list[UserRecord]:
        """Return active users of one department ordered by name."""

    async def search_users(self, query: UserQueryFilter) -> list[UserRecord]:
        """Return users matching every present criterion, windowed by limit/offset."""

    async def count_users(self, query: UserQueryFilter) -> int:
        """Count users matching every present criterion."""

    async def update_user(self, *, user_id: int, changes: UserUpdateInput) -> UserRecord | None:
        """Apply supplied column changes and return the row, or None when absent."""

    async def delete_user(self, *, user_id: int) -> bool:
        """Delete one user and return whether a row was removed."""
