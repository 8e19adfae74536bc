"""Per-engine counters of executed SQL statements."""

from __future__ import annotations

from collections import Counter
from typing import Any

import sqlalchemy as sa
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine

_TRACKED_KINDS = ("SELECT", "INSERT", "UPDATE", "DELETE")


class StatementStatistics:
    """Collect statement and error counts from SQLAlchemy engine events."""

    def __init__(self) -> None:
        self._by_kind: Counter[str] = Counter()
        self._errors_total = 0

    def attach(self, engine: AsyncEngine) -> None:
        """Start counting statements executed through `engine`."""

        sync_engine = engine.sync_engine
        event.listen(sync_engine, "before_cursor_execute", self._on_before_cursor_execute)
        event.listen(sync_engine, "handle_error", self._on_handle_error)

    @property
    def statements_total(self) -> int:
        return sum(self._by_kind.values())

    @property
    def errors_total(self) -> int:
        return self._errors_total

    def statements_by_kind(self) -> dict[str, int]:
        """Return counts keyed by leading SQL keyword, unknown keywords as OTHER."""

        return dict(sorted(self._by_kind.items()))

    def _on_before_cursor_execute(
        self,
        conn: sa.Connection,
        cursor: Any,
        statement: str,
        parameters: Any,
        context: Any,
        executemany: bool,
    ) -> None:
        _ = conn, cursor, parameters, context, executemany
        self._by_kind[_statement_kind(statement)] += 1

    def _on_handle_error(self, exception_context: sa.engine.ExceptionContext) -> None:
        _ = exception_context
        self._errors_total += 1


def _statement_kind(statement: str) -> str:
    words = statement.split(None, 1)
    if not words:
        return "OTHER"
    keyword = words[0].upper()
    return keyword if keyword in _TRACKED_KINDS else "OTHER"
