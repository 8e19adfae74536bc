"""Translate user query filters into SQLAlchemy boolean clauses."""

from __future__ import annotations

import sqlalchemy as sa

from mcp_user_store.application.ports.user_repository_port import UserQueryFilter
from mcp_user_store.infrastructure.db.metadata import users


def build_user_filter_clause(query: UserQueryFilter) -> sa.ColumnElement[bool]:
    """Return the AND of every present criterion; an empty filter matches all rows."""

    conditions: list[sa.ColumnElement[bool]] = []
    if query.department is not None:
        conditions.append(users.c.department == query.department)
    if query.role is not None:
        conditions.append(users.c.role == query.role)
    if query.active is not None:
        conditions.append(users.c.active == query.active)

    if not conditions:
        return sa.true()
    return sa.and_(*conditions)
