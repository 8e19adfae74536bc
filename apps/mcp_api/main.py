"""mcp-api entrypoint and HTTP route wiring."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mcp_user_store.application.services.tool_registry import (
    ToolRegistry,
    build_user_tool_registry,
)
from mcp_user_store.application.services.user_store_service import UserStoreService
from mcp_user_store.config.settings import Settings, load_settings
from mcp_user_store.infrastructure.db.database_inspector import SqlAlchemyDatabaseInspector
from mcp_user_store.infrastructure.db.metadata import metadata
from mcp_user_store.infrastructure.db.session import (
    create_database_engine,
    create_session_factory,
)
from mcp_user_store.infrastructure.db.statement_statistics import StatementStatistics
from mcp_user_store.infrastructure.db.user_repository import SqlAlchemyUserRepository
from mcp_user_store.infrastructure.http.mcp_router import build_mcp_router
from mcp_user_store.infrastructure.logging import configure_logging

logger = logging.getLogger(__name__)


def create_app(
    *,
    settings: Settings | None = None,
    database_url: str | None = None,
    auto_create_schema: bool | None = None,
) -> FastAPI:
    """Create FastAPI app exposing the user store tools."""

    if settings is None:
        settings = load_settings()
    configure_logging(level=settings.log_level)

    if database_url is None:
        database_url = settings.database_url
    if auto_create_schema is None:
        auto_create_schema = settings.database_auto_create_schema

    engine = create_database_engine(database_url, echo=settings.database_echo)
    statistics = StatementStatistics()
    statistics.attach(engine)
    session_factory = create_session_factory(engine)

    user_store = UserStoreService(
        users=SqlAlchemyUserRepository(session_factory),
        batch_size=settings.user_batch_size,
    )
    registry: ToolRegistry = build_user_tool_registry(
        user_store=user_store,
        database_inspector=SqlAlchemyDatabaseInspector(engine=engine, statistics=statistics),
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if auto_create_schema:
            async with engine.begin() as connection:
                await connection.run_sync(metadata.create_all)
            logger.info("database_schema_ensured dialect=%s", engine.dialect.name)
        logger.info(
            "mcp_api_started server=%s version=%s tools=%s",
            settings.mcp_server_name,
            settings.mcp_server_version,
            len(registry),
        )
        try:
            yield
        finally:
            await engine.dispose()
            logger.info("mcp_api_stopped server=%s", settings.mcp_server_name)

    app = FastAPI(
        title=settings.mcp_server_name,
        version=settings.mcp_server_version,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(
        build_mcp_router(
            registry=registry,
            server_name=settings.mcp_server_name,
            server_version=settings.mcp_server_version,
        )
    )
    return app


def run_asgi_server(*, host: str | None = None, port: int | None = None) -> None:
    """Run mcp-api as a long-lived ASGI process using application factory mode."""

    settings = load_settings()
    uvicorn.run(
        "apps.mcp_api.main:create_app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        factory=True,
    )


def main() -> None:
    """Run mcp-api runtime process."""

    run_asgi_server()


if __name__ == "__main__":
    main()
