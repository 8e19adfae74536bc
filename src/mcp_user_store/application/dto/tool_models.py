"""Pydantic models for MCP tool arguments and responses."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictBool

from mcp_user_store.application.ports.user_repository_port import (
    DEFAULT_QUERY_LIMIT,
    DEFAULT_QUERY_OFFSET,
    UserPage,
    UserQueryFilter,
    UserRecord,
)
from mcp_user_store.application.services.user_store_service import (
    UserCreateRequest,
    UserUpdateRequest,
)

DEFAULT_PAGE_SIZE = 10
_USER_ID_ALIASES = AliasChoices("user_id", "userId")


class StrictModel(BaseModel):
    """Base model with strict unknown-field rejection."""

    model_config = ConfigDict(extra="forbid")


class CreateUserArguments(StrictModel):
    """Arguments of `create_user`; content rules are enforced by the user store."""

    name: str | None = None
    email: str | None = None
    department: str | None = None
    role: str | None = None

    def to_request(self) -> UserCreateRequest:
        return UserCreateRequest(
            name=self.name,
            email=self.email,
            department=self.department,
            role=self.role,
        )


class UserIdArguments(StrictModel):
    """Arguments of tools addressing one user by id."""

    user_id: int = Field(validation_alias=_USER_ID_ALIASES)


class UpdateUserArguments(StrictModel):
    """Arguments of `update_user`; only keys present in the body are applied."""

    user_id: int = Field(validation_alias=_USER_ID_ALIASES)
    name: str | None = None
    email: str | None = None
    department: str | None = None
    role: str | None = None
    active: StrictBool | None = None

    def to_request(self) -> UserUpdateRequest:
        supplied = {
            field: getattr(self, field)
            for field in ("name", "email", "department", "role", "active")
            if field in self.model_fields_set
        }
        return UserUpdateRequest(**supplied)


class DepartmentArguments(StrictModel):
    """Arguments of department lookup and count tools."""

    department: str


class SearchUsersArguments(StrictModel):
    """Arguments of `search_users`; absent criteria do not filter."""

    department: str | None = None
    role: str | None = None
    active: StrictBool | None = None
    limit: int = DEFAULT_QUERY_LIMIT
    offset: int = DEFAULT_QUERY_OFFSET

    def to_filter(self) -> UserQueryFilter:
        return UserQueryFilter(
            department=self.department,
            role=self.role,
            active=self.active,
            limit=self.limit,
            offset=self.offset,
        )


class PaginationArguments(StrictModel):
    """Arguments of `find_users_with_pagination`; pages are zero-based."""

    page: int = 0
    size: int = DEFAULT_PAGE_SIZE


class UserBatchArguments(StrictModel):
    """Arguments of the all-or-nothing multi-user insert tools."""

    users: list[CreateUserArguments]

    def to_requests(self) -> list[UserCreateRequest]:
        return [item.to_request() for item in self.users]


class UserResponse(StrictModel):
    """Serialized user record."""

    id: int
    name: str
    email: str
    department: str
    role: str
    active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: UserRecord) -> UserResponse:
        return cls(
            id=record.user_id,
            name=record.name,
            email=record.email,
            department=record.department,
            role=record.role,
            active=record.active,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class UserPageResponse(StrictModel):
    """Serialized zero-based page of users."""

    items: list[UserResponse]
    page: int = Field(ge=0)
    size: int = Field(ge=1)
    total: int = Field(ge=0)

    @classmethod
    def from_page(cls, page: UserPage) -> UserPageResponse:
        return cls(
            items=[UserResponse.from_record(item) for item in page.items],
            page=page.page,
            size=page.size,
            total=page.total,
        )


class HealthResponse(StrictModel):
    """Liveness payload of the tool server."""

    status: Literal["UP"] = "UP"
    service: str


class ToolDescriptor(StrictModel):
    """Public description of one registered tool."""

    name: str
    description: str


class ToolListResponse(StrictModel):
    """Registered tools plus server identity."""

    tools: list[ToolDescriptor]
    count: int = Field(ge=0)
    server: str
    version: str


class ToolCallResponse(StrictModel):
    """Successful tool invocation envelope."""

    tool: str
    status: Literal["success"] = "success"
    result: Any
    count: int | None = None
