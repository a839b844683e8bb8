"""HTTP front door: status, SSE session establishment and message intake."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import anyio
import httpx
import mcp.types as types
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse

from .audit import AuditLogger
from .bridge import TransportBridge
from .config import Config
from .registry import ResourceRegistry, ToolRegistry
from .tools import register_resources, register_tools
from .upstream import UpstreamClient

ENDPOINTS = {
    "/": "Server information (this response)",
    "/sse": "Server-Sent Events endpoint for MCP connection",
    "/messages": "POST endpoint for MCP messages",
}


class ToolServer:
    """Wires config, registries, the upstream client and the transport bridge."""

    def __init__(self, config: Config, *, upstream_transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config
        self.audit = AuditLogger(config.logging, config.server.version)
        self.upstream = UpstreamClient(config.upstream, transport=upstream_transport)
        self.tools = ToolRegistry(self.audit)
        self.resources = ResourceRegistry(self.audit)
        register_tools(self.tools, upstream=self.upstream, weather=config.weather, search=config.search)
        register_resources(self.resources)
        self.bridge = TransportBridge(config, self.tools, self.resources, audit=self.audit)

    def info(self) -> dict[str, Any]:
        return {
            "name": self.config.server.title,
            "version": self.config.server.version,
            "status": "running",
            "endpoints": dict(ENDPOINTS),
            "tools": [{"name": tool.name, "description": tool.description} for tool in self.tools.definitions()],
        }

    async def aclose(self) -> None:
        await self.bridge.close_all()
        await self.upstream.aclose()
        self.audit.close()


def create_app(server: ToolServer) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await server.aclose()

    app = FastAPI(title=server.config.server.title, version=server.config.server.version, lifespan=lifespan)
    app.state.server = server
    app.add_middleware(
        CORSMiddleware,
        allow_origins=server.config.cors.allow_origins,
        allow_methods=server.config.cors.allow_methods,
        allow_credentials=server.config.cors.allow_credentials,
    )
    bridge = server.bridge

    @app.get("/")
    async def info() -> dict[str, Any]:
        return server.info()

    @app.get("/sse")
    async def sse() -> EventSourceResponse:
        return EventSourceResponse(bridge.connect())

    @app.post("/messages")
    async def messages(request: Request, session_id: str | None = None) -> PlainTextResponse:
        if not session_id:
            raise HTTPException(status_code=400, detail="session_id is required")
        if bridge.get(session_id) is None:
            raise HTTPException(status_code=404, detail="Could not find session")
        body = await request.body()
        try:
            message = types.JSONRPCMessage.model_validate_json(body)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail="Could not parse message") from exc
        try:
            await bridge.deliver(session_id, message)
        except (KeyError, anyio.ClosedResourceError, anyio.BrokenResourceError) as exc:
            raise HTTPException(status_code=404, detail="Could not find session") from exc
        return PlainTextResponse("Accepted", status_code=202)

    return app
