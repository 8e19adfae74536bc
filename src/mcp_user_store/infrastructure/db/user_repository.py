"""SQLAlchemy adapter for user persistence and query operations."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any, cast

import sqlalchemy as sa
from sqlalchemy.engine import CursorResult, RowMapping
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mcp_user_store.application.ports.user_repository_port import (
    DuplicateEmailError,
    UserCreateInput,
    UserQueryFilter,
    UserRecord,
    UserRepositoryPort,
    UserStorageError,
    UserUpdateInput,
)
from mcp_user_store.domain.field_update import is_set
from mcp_user_store.domain.user_validation import SQL_INTEGER_MAX
from mcp_user_store.infrastructure.db.metadata import users
from mcp_user_store.infrastructure.db.user_query_builder import build_user_filter_clause

_USER_COLUMNS = (
    users.c.id,
    users.c.name,
    users.c.email,
    users.c.department,
    users.c.role,
    users.c.active,
    users.c.created_at,
    users.c.updated_at,
)
_UPDATABLE_COLUMNS = ("name", "email", "department", "role", "active")


def _is_storable_id(user_id: int) -> bool:
    return -SQL_INTEGER_MAX - 1 <= user_id <= SQL_INTEGER_MAX


def _is_duplicate_email_error(error: IntegrityError) -> bool:
    message = str(error.orig).lower()
    return "users.email" in message or "uq_users_email" in message


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _to_user_record(row: RowMapping) -> UserRecord:
    return UserRecord(
        user_id=int(row["id"]),
        name=cast(str, row["name"]),
        email=cast(str, row["email"]),
        department=cast(str, row["department"]),
        role=cast(str, row["role"]),
        active=bool(row["active"]),
        created_at=_as_utc(cast(datetime, row["created_at"])),
        updated_at=_as_utc(cast(datetime, row["updated_at"])),
    )


def _insert_values(payload: UserCreateInput) -> dict[str, Any]:
    return {
        "name": payload.name,
        "email": payload.email,
        "department": payload.department,
        "role": payload.role,
        "active": payload.active,
        "created_at": payload.created_at,
        "updated_at": payload.updated_at,
    }


def _chunks(
    payloads: Sequence[UserCreateInput],
    size: int,
) -> Iterator[Sequence[UserCreateInput]]:
    for start in range(0, len(payloads), size):
        yield payloads[start : start + size]


class SqlAlchemyUserRepository(UserRepositoryPort):
    """User repository backed by SQLAlchemy async sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_user(self, payload: UserCreateInput) -> UserRecord:
        """Insert one user row and return it with the assigned id."""

        statement = sa.insert(users).values(**_insert_values(payload)).returning(*_USER_COLUMNS)

        async with self._session() as session:
            try:
                result = await session.execute(statement)
                await session.commit()
            except IntegrityError as error:
                await session.rollback()
                if _is_duplicate_email_error(error):
                    raise DuplicateEmailError(email=payload.email) from error
                raise

        return _to_user_record(result.mappings().one())

    async def create_users(
        self,
        payloads: Sequence[UserCreateInput],
        *,
        batch_size: int,
    ) -> list[UserRecord]:
        """Insert all rows chunk by chunk inside one transaction, or none of them."""

        statement = sa.insert(users).returning(*_USER_COLUMNS, sort_by_parameter_order=True)
        created: list[UserRecord] = []

        async with self._session() as session:
            try:
                async with session.begin():
                    for chunk in _chunks(payloads, batch_size):
                        result = await session.execute(
                            statement,
                            [_insert_values(item) for item in chunk],
                        )
                        created.extend(_to_user_record(row) for row in result.mappings().all())
            except IntegrityError as error:
                if _is_duplicate_email_error(error):
                    conflicting = await _first_existing_email(
                        session,
                        [item.email for item in payloads],
                    )
                    raise DuplicateEmailError(email=conflicting or payloads[0].email) from error
                raise

        return created

    async def get_by_id(self, *, user_id: int) -> UserRecord | None:
        """Return user by id or None."""

        if not _is_storable_id(user_id):
            return None
        statement = sa.select(*_USER_COLUMNS).where(users.c.id == user_id).limit(1)

        async with self._session() as session:
            result = await session.execute(statement)

        row = result.mappings().first()
        if row is None:
            return None
        return _to_user_record(row)

    async def get_by_email(self, *, email: str) -> UserRecord | None:
        """Return user by normalized email or None."""

        statement = sa.select(*_USER_COLUMNS).where(users.c.email == email).limit(1)

        async with self._session() as session:
            result = await session.execute(statement)

        row = result.mappings().first()
        if row is None:
            return None
        return _to_user_record(row)

    async def list_users(self) -> list[UserRecord]:
        """Return every stored user in id order."""

        statement = sa.select(*_USER_COLUMNS).order_by(users.c.id)

        async with self._session() as session:
            result = await session.execute(statement)

        return [_to_user_record(row) for row in result.mappings().all()]

    async def list_active_by_department(self, *, department: str) -> list[UserRecord]:
        """Return active users of one department ordered by name."""

        criteria = UserQueryFilter(department=department, active=True)
        statement = (
            sa.select(*_USER_COLUMNS)
            .where(build_user_filter_clause(criteria))
            .order_by(users.c.name, users.c.id)
        )

        async with self._session() as session:
            result = await session.execute(statement)

        return [_to_user_record(row) for row in result.mappings().all()]

    async def search_users(self, query: UserQueryFilter) -> list[UserRecord]:
        """Return matching users in id order, skipping `offset` and capped at `limit`."""

        statement = (
            sa.select(*_USER_COLUMNS)
            .where(build_user_filter_clause(query))
            .order_by(users.c.id)
            .limit(query.limit)
            .offset(query.offset)
        )

        async with self._session() as session:
            result = await session.execute(statement)

        return [_to_user_record(row) for row in result.mappings().all()]

    async def count_users(self, query: UserQueryFilter) -> int:
        """Count matching users; paging hints are ignored."""

        statement = (
            sa.select(sa.func.count()).select_from(users).where(build_user_filter_clause(query))
        )

        async with self._session() as session:
            result = await session.execute(statement)

        return int(result.scalar_one())

    async def update_user(self, *, user_id: int, changes: UserUpdateInput) -> UserRecord | None:
        """Write supplied columns plus `updated_at`; return None when the row is absent."""

        if not _is_storable_id(user_id):
            return None
        values: dict[str, Any] = {"updated_at": changes.updated_at}
        for column in _UPDATABLE_COLUMNS:
            value = getattr(changes, column)
            if is_set(value):
                values[column] = value

        statement = (
            sa.update(users)
            .where(users.c.id == user_id)
            .values(**values)
            .returning(*_USER_COLUMNS)
        )

        async with self._session() as session:
            try:
                result = await session.execute(statement)
                await session.commit()
            except IntegrityError as error:
                await session.rollback()
                if _is_duplicate_email_error(error) and isinstance(changes.email, str):
                    raise DuplicateEmailError(email=changes.email) from error
                raise

        row = result.mappings().first()
        if row is None:
            return None
        return _to_user_record(row)

    async def delete_user(self, *, user_id: int) -> bool:
        """Delete one user row and return whether it existed."""

        if not _is_storable_id(user_id):
            return False
        statement = sa.delete(users).where(users.c.id == user_id)

        async with self._session() as session:
            result = cast(CursorResult[Any], await session.execute(statement))
            await session.commit()

        return int(result.rowcount or 0) > 0

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        """Open a session and surface driver failures as `UserStorageError`."""

        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as error:
            raise UserStorageError(f"user storage failure: {error.__class__.__name__}") from error


async def _first_existing_email(session: AsyncSession, emails: Sequence[str]) -> str | None:
    statement = (
        sa.select(users.c.email).where(users.c.email.in_(list(emails))).order_by(users.c.id).limit(1)
    )
    result = await session.execute(statement)
    return cast("str | None", result.scalar_one_or_none())
