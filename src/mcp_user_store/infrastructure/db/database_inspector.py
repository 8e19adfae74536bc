"""SQLAlchemy adapter for connection checks, statement statistics and entity metadata."""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from mcp_user_store.application.ports.database_inspector_port import (
    ColumnMetadata,
    ConnectionCheck,
    ConnectionInfo,
    DatabaseInspectorPort,
    EntityMetadata,
    StatementStatisticsSnapshot,
)
from mcp_user_store.application.ports.user_repository_port import UserStorageError
from mcp_user_store.infrastructure.db.metadata import users
from mcp_user_store.infrastructure.db.statement_statistics import StatementStatistics


class SqlAlchemyDatabaseInspector(DatabaseInspectorPort):
    """Inspect the engine backing the user store."""

    def __init__(self, *, engine: AsyncEngine, statistics: StatementStatistics) -> None:
        self._engine = engine
        self._statistics = statistics

    async def check_connection(self) -> ConnectionCheck:
        """Run `SELECT 1` on a pooled connection."""

        try:
            async with self._engine.connect() as connection:
                result = await connection.execute(sa.text("SELECT 1"))
                probe_value = int(result.scalar_one())
        except SQLAlchemyError as error:
            raise UserStorageError(f"database unreachable: {error.__class__.__name__}") from error

        return ConnectionCheck(
            dialect=self._engine.dialect.name,
            database=self._engine.url.database or None,
            probe_value=probe_value,
        )

    def describe_connection(self) -> ConnectionInfo:
        """Return dialect, driver, masked URL, pool class and echo flag."""

        return ConnectionInfo(
            dialect=self._engine.dialect.name,
            driver=self._engine.dialect.driver,
            url=self._engine.url.render_as_string(hide_password=True),
            pool_class=type(self._engine.pool).__name__,
            echo=bool(self._engine.echo),
        )

    async def get_statistics(self) -> StatementStatisticsSnapshot:
        """Return statement counters together with the stored user count."""

        statement = sa.select(sa.func.count()).select_from(users)
        try:
            async with self._engine.connect() as connection:
                result = await connection.execute(statement)
                entity_count = int(result.scalar_one())
        except SQLAlchemyError as error:
            raise UserStorageError(f"user storage failure: {error.__class__.__name__}") from error

        return StatementStatisticsSnapshot(
            statements_total=self._statistics.statements_total,
            statements_by_kind=self._statistics.statements_by_kind(),
            errors_total=self._statistics.errors_total,
            entity_count=entity_count,
        )

    def describe_user_entity(self) -> EntityMetadata:
        """Return column metadata of the users table."""

        return describe_table(users, entity="User")


def describe_table(table: sa.Table, *, entity: str) -> EntityMetadata:
    """Build an entity description from SQLAlchemy table metadata."""

    unique_columns = {
        column.name
        for constraint in table.constraints
        if isinstance(constraint, sa.UniqueConstraint) and len(constraint.columns) == 1
        for column in constraint.columns
    }
    return EntityMetadata(
        entity=entity,
        table=table.name,
        columns=[
            ColumnMetadata(
                name=column.name,
                python_type=column.type.python_type.__name__,
                sql_type=str(column.type),
                nullable=bool(column.nullable),
                primary_key=column.primary_key,
                unique=bool(column.unique) or column.name in unique_columns,
                max_length=getattr(column.type, "length", None),
            )
            for column in table.columns
        ],
    )
