"""Static registration table of MCP tools exposed by the user store."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import asdict, dataclass
from typing import Any

from mcp_user_store.application.dto.tool_models import (
    CreateUserArguments,
    DepartmentArguments,
    PaginationArguments,
    SearchUsersArguments,
    UpdateUserArguments,
    UserBatchArguments,
    UserIdArguments,
    UserPageResponse,
    UserResponse,
)
from mcp_user_store.application.ports.database_inspector_port import DatabaseInspectorPort
from mcp_user_store.application.ports.user_repository_port import UserRecord
from mcp_user_store.application.services.user_store_service import (
    UserNotFoundError,
    UserStoreService,
)

ToolArguments = Mapping[str, Any]
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolResult:
    """JSON-ready tool output plus an optional item count."""

    result: Any
    count: int | None = None


ToolHandler = Callable[[ToolArguments], Awaitable[ToolResult]]


@dataclass(frozen=True)
class ToolDefinition:
    """One registered tool."""

    name: str
    description: str
    handler: ToolHandler


class DuplicateToolError(ValueError):
    """Raised when two tools are registered under the same name."""

    def __init__(self, *, name: str) -> None:
        super().__init__(f"tool already registered: {name}")
        self.name = name


class ToolRegistry:
    """Immutable name -> tool lookup preserving registration order."""

    def __init__(self, tools: Iterable[ToolDefinition]) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise DuplicateToolError(name=tool.name)
            self._tools[tool.name] = tool

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def list_tools(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)


def build_user_tool_registry(
    *,
    user_store: UserStoreService,
    database_inspector: DatabaseInspectorPort,
) -> ToolRegistry:
    """Build the tool table for the user store and database inspector."""

    handlers = _UserToolHandlers(user_store=user_store, database_inspector=database_inspector)
    registry = ToolRegistry(
        [
            ToolDefinition(
                "test_connection",
                "Run a trivial query to verify the database connection is alive",
                handlers.test_connection,
            ),
            ToolDefinition(
                "get_connection_info",
                "Describe the database dialect, driver, masked URL and connection pool",
                handlers.get_connection_info,
            ),
            ToolDefinition(
                "create_user",
                "Create a user from name, email, department and role",
                handlers.create_user,
            ),
            ToolDefinition(
                "find_user_by_id",
                "Fetch one user by id",
                handlers.find_user_by_id,
            ),
            ToolDefinition(
                "update_user",
                "Partially update a user; only supplied fields change",
                handlers.update_user,
            ),
            ToolDefinition(
                "delete_user",
                "Delete a user by id; reports whether a user was removed",
                handlers.delete_user,
            ),
            ToolDefinition(
                "find_all_users",
                "List every stored user",
                handlers.find_all_users,
            ),
            ToolDefinition(
                "find_users_by_department",
                "List active users of a department ordered by name",
                handlers.find_users_by_department,
            ),
            ToolDefinition(
                "search_users",
                "Filter users by department, role and active flag with limit/offset",
                handlers.search_users,
            ),
            ToolDefinition(
                "find_users_with_pagination",
                "List users one zero-based page at a time",
                handlers.find_users_with_pagination,
            ),
            ToolDefinition(
                "transfer_data",
                "Insert several users in a single all-or-nothing transaction",
                handlers.transfer_data,
            ),
            ToolDefinition(
                "batch_insert_users",
                "Insert several users in chunked statements inside one transaction",
                handlers.batch_insert_users,
            ),
            ToolDefinition(
                "get_session_statistics",
                "Report executed statement counters and the stored user count",
                handlers.get_session_statistics,
            ),
            ToolDefinition(
                "get_entity_metadata",
                "Describe the mapped columns of the User entity",
                handlers.get_entity_metadata,
            ),
            ToolDefinition(
                "execute_count_by_department",
                "Count active users of a department",
                handlers.execute_count_by_department,
            ),
        ]
    )
    logger.info("mcp_tools_registered count=%s", len(registry))
    for tool in registry.list_tools():
        logger.debug("mcp_tool_registered name=%s description=%s", tool.name, tool.description)
    return registry


class _UserToolHandlers:
    """Adapters from raw JSON arguments to user store and inspector calls."""

    def __init__(
        self,
        *,
        user_store: UserStoreService,
        database_inspector: DatabaseInspectorPort,
    ) -> None:
        self._user_store = user_store
        self._database_inspector = database_inspector

    async def test_connection(self, arguments: ToolArguments) -> ToolResult:
        _ = arguments
        check = await self._database_inspector.check_connection()
        return ToolResult(
            result=(
                f"connection alive | dialect: {check.dialect} | "
                f"database: {check.database or 'in-memory'} | probe: {check.probe_value}"
            )
        )

    async def get_connection_info(self, arguments: ToolArguments) -> ToolResult:
        _ = arguments
        return ToolResult(result=asdict(self._database_inspector.describe_connection()))

    async def create_user(self, arguments: ToolArguments) -> ToolResult:
        parsed = CreateUserArguments.model_validate(arguments)
        created = await self._user_store.create_user(payload=parsed.to_request())
        return ToolResult(result=_dump_user(created))

    async def find_user_by_id(self, arguments: ToolArguments) -> ToolResult:
        parsed = UserIdArguments.model_validate(arguments)
        user = await self._user_store.find_user_by_id(user_id=parsed.user_id)
        if user is None:
            raise UserNotFoundError(user_id=parsed.user_id)
        return ToolResult(result=_dump_user(user))

    async def update_user(self, arguments: ToolArguments) -> ToolResult:
        parsed = UpdateUserArguments.model_validate(arguments)
        updated = await self._user_store.update_user(
            user_id=parsed.user_id,
            payload=parsed.to_request(),
        )
        return ToolResult(result=_dump_user(updated))

    async def delete_user(self, arguments: ToolArguments) -> ToolResult:
        parsed = UserIdArguments.model_validate(arguments)
        deleted = await self._user_store.delete_user(user_id=parsed.user_id)
        return ToolResult(result={"user_id": parsed.user_id, "deleted": deleted})

    async def find_all_users(self, arguments: ToolArguments) -> ToolResult:
        _ = arguments
        return _user_list_result(await self._user_store.list_users())

    async def find_users_by_department(self, arguments: ToolArguments) -> ToolResult:
        parsed = DepartmentArguments.model_validate(arguments)
        return _user_list_result(
            await self._user_store.find_users_by_department(department=parsed.department)
        )

    async def search_users(self, arguments: ToolArguments) -> ToolResult:
        parsed = SearchUsersArguments.model_validate(arguments)
        return _user_list_result(await self._user_store.search_users(query=parsed.to_filter()))

    async def find_users_with_pagination(self, arguments: ToolArguments) -> ToolResult:
        parsed = PaginationArguments.model_validate(arguments)
        page = await self._user_store.list_users_page(page=parsed.page, size=parsed.size)
        return ToolResult(
            result=UserPageResponse.from_page(page).model_dump(mode="json"),
            count=len(page.items),
        )

    async def transfer_data(self, arguments: ToolArguments) -> ToolResult:
        parsed = UserBatchArguments.model_validate(arguments)
        transferred = await self._user_store.transfer_users(payloads=parsed.to_requests())
        return ToolResult(result=transferred, count=len(parsed.users))

    async def batch_insert_users(self, arguments: ToolArguments) -> ToolResult:
        parsed = UserBatchArguments.model_validate(arguments)
        inserted = await self._user_store.batch_insert_users(payloads=parsed.to_requests())
        return ToolResult(result=inserted, count=inserted)

    async def get_session_statistics(self, arguments: ToolArguments) -> ToolResult:
        _ = arguments
        return ToolResult(result=asdict(await self._database_inspector.get_statistics()))

    async def get_entity_metadata(self, arguments: ToolArguments) -> ToolResult:
        _ = arguments
        metadata = self._database_inspector.describe_user_entity()
        return ToolResult(result=asdict(metadata), count=len(metadata.columns))

    async def execute_count_by_department(self, arguments: ToolArguments) -> ToolResult:
        parsed = DepartmentArguments.model_validate(arguments)
        total = await self._user_store.count_by_department(department=parsed.department)
        return ToolResult(result=total)


def _dump_user(record: UserRecord) -> dict[str, Any]:
    return UserResponse.from_record(record).model_dump(mode="json")


def _user_list_result(records: list[UserRecord]) -> ToolResult:
    return ToolResult(result=[_dump_user(record) for record in records], count=len(records))
