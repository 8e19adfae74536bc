"""Port for database connectivity, statistics and entity metadata introspection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class ConnectionCheck:
    """Result of one database round trip."""

    dialect: str
    database: str | None
    probe_value: int


@dataclass(frozen=True)
class ConnectionInfo:
    """Engine configuration visible to operators; secrets are masked."""

    dialect: str
    driver: str
    url: str
    pool_class: str
    echo: bool


@dataclass(frozen=True)
class StatementStatisticsSnapshot:
    """Counters of SQL statements executed through one engine."""

    statements_total: int
    statements_by_kind: dict[str, int]
    errors_total: int
    entity_count: int


@dataclass(frozen=True)
class ColumnMetadata:
    """Mapped column description for one entity attribute."""

    name: str
    python_type: str
    sql_type: str
    nullable: bool
    primary_key: bool
    unique: bool
    max_length: int | None


@dataclass(frozen=True)
class EntityMetadata:
    """Mapped entity description built from table metadata."""

    entity: str
    table: str
    columns: list[ColumnMetadata]


class DatabaseInspectorPort(Protocol):
    """Database inspection contract."""

    async def check_connection(self) -> ConnectionCheck:
        """Execute a trivial query and report the connected database."""

    def describe_connection(self) -> ConnectionInfo:
        """Return engine configuration details."""

    async def get_statistics(self) -> StatementStatisticsSnapshot:
        """Return statement counters and the stored user count."""

    def describe_user_entity(self) -> EntityMetadata:
        """Return column metadata of the users table."""
