"""FastAPI router exposing registered tools as MCP-style HTTP endpoints."""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import ValidationError

from mcp_user_store.application.dto.tool_models import (
    HealthResponse,
    ToolCallResponse,
    ToolDescriptor,
    ToolListResponse,
)
from mcp_user_store.application.ports.user_repository_port import (
    DuplicateEmailError,
    UserStorageError,
)
from mcp_user_store.application.services.tool_registry import ToolRegistry
from mcp_user_store.application.services.user_store_service import (
    UserNotFoundError,
    UserValidationError,
)

logger = logging.getLogger(__name__)


def build_mcp_router(
    *,
    registry: ToolRegistry,
    server_name: str,
    server_version: str,
) -> APIRouter:
    """Build router for health, tool listing and tool invocation endpoints."""

    router = APIRouter(prefix="/mcp", tags=["mcp"])

    @router.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(service=server_name)

    @router.get("/tools", response_model=ToolListResponse)
    async def list_tools() -> ToolListResponse:
        tools = [
            ToolDescriptor(name=tool.name, description=tool.description)
            for tool in registry.list_tools()
        ]
        return ToolListResponse(
            tools=tools,
            count=len(tools),
            server=server_name,
            version=server_version,
        )

    @router.post(
        "/{tool_name}",
        response_model=ToolCallResponse,
        response_model_exclude_none=True,
    )
    async def call_tool(tool_name: str, request: Request) -> ToolCallResponse:
        tool = registry.get(tool_name)
        if tool is None:
            raise HTTPException(status_code=404, detail=f"unknown tool: {tool_name}")

        arguments = _parse_arguments(await request.body())
        logger.info("mcp_tool_called tool=%s", tool_name)
        try:
            outcome = await tool.handler(arguments)
        except ValidationError as error:
            raise HTTPException(status_code=400, detail=str(error)) from error
        except UserValidationError as error:
            raise HTTPException(
                status_code=400,
                detail={
                    "message": str(error),
                    "violations": [
                        {"field": item.field, "message": item.message}
                        for item in error.violations
                    ],
                },
            ) from error
        except UserNotFoundError as error:
            raise HTTPException(status_code=404, detail=str(error)) from error
        except DuplicateEmailError as error:
            raise HTTPException(status_code=409, detail=str(error)) from error
        except UserStorageError as error:
            logger.exception("mcp_tool_failed tool=%s", tool_name)
            raise HTTPException(status_code=500, detail="user storage failure") from error

        return ToolCallResponse(tool=tool_name, result=outcome.result, count=outcome.count)

    return router


def _parse_arguments(raw_body: bytes) -> dict[str, Any]:
    if not raw_body.strip():
        return {}
    try:
        parsed = json.loads(raw_body)
    except ValueError as error:
        raise HTTPException(status_code=400, detail="request body must be valid JSON") from error
    if not isinstance(parsed, dict):
        raise HTTPException(status_code=400, detail="request body must be a JSON object")
    return parsed
