"""Binds MCP sessions carried over SSE to the tool and resource registries.

Each ``GET /sse`` opens a :class:`Session` identified by a random token. The
token is advertised to the client in the initial ``endpoint`` event and every
``POST /messages`` must carry it, so inbound messages always reach the
session that owns them. Sessions are dropped as soon as their stream ends.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Iterable, Optional

import anyio
import mcp.types as types
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from mcp.server.lowlevel import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.shared.message import SessionMessage
from pydantic import AnyUrl

from .audit import AuditLogger
from .config import Config
from .registry import ResourceRegistry, ToolRegistry

logger = logging.getLogger(__name__)

INBOUND_BUFFER = 32

_current_session: ContextVar[Optional[str]] = ContextVar("mcpsse_session", default=None)


class ToolCallFailed(Exception):
    """Raised from the call_tool handler so the SDK reports ``isError``."""


@dataclass
class Session:
    session_id: str
    inbound: MemoryObjectSendStream
    read_stream: MemoryObjectReceiveStream
    write_stream: MemoryObjectSendStream
    outbound: MemoryObjectReceiveStream
    created_at: float = field(default_factory=time.time)
    task: Optional[asyncio.Task] = None

    def close(self) -> None:
        if self.task is not None and not self.task.done():
            self.task.cancel()
        # Senders first so a reader parked on outbound sees end-of-stream.
        self.write_stream.close()
        self.inbound.close()
        self.read_stream.close()
        self.outbound.close()


class TransportBridge:
    """Routes SSE sessions to a shared MCP low-level server."""

    def __init__(
        self,
        config: Config,
        tools: ToolRegistry,
        resources: ResourceRegistry,
        *,
        audit: AuditLogger | None = None,
        messages_path: str = "/messages",
    ) -> None:
        self.config = config
        self.tools = tools
        self.resources = resources
        self.audit = audit
        self.messages_path = messages_path
        self.sessions: dict[str, Session] = {}
        self.server = self._build_server()

    def _build_server(self) -> Server:
        server: Server = Server(self.config.server.name, version=self.config.server.version)
        tool_errors = self.config.errors.tool_errors

        @server.list_tools()
        async def list_tools() -> list[types.Tool]:
            return [
                types.Tool(name=tool.name, description=tool.description, inputSchema=tool.input_schema())
                for tool in self.tools.definitions()
            ]

        @server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[types.TextContent]:
            result = await self.tools.invoke(name, arguments, session=_current_session.get())
            if result.error is not None and tool_errors == "result":
                raise ToolCallFailed(result.error.message)
            if result.error is not None:
                return [types.TextContent(type="text", text=result.error.message)]
            return [types.TextContent(type="text", text=block["text"]) for block in result.content]

        @server.list_resources()
        async def list_resources() -> list[types.Resource]:
            return []

        @server.list_resource_templates()
        async def list_resource_templates() -> list[types.ResourceTemplate]:
            return [
                types.ResourceTemplate(
                    name=template.name,
                    uriTemplate=template.uri_template,
                    description=template.description or None,
                    mimeType=template.mime_type,
                )
                for template in self.resources.templates()
            ]

        @server.read_resource()
        async def read_resource(uri: AnyUrl) -> Iterable[ReadResourceContents]:
            template, text = await self.resources.read(str(uri), session=_current_session.get())
            return [ReadResourceContents(content=text, mime_type=template.mime_type)]

        return server

    def open_session(self) -> Session:
        inbound, read_stream = anyio.create_memory_object_stream(INBOUND_BUFFER)
        write_stream, outbound = anyio.create_memory_object_stream(0)
        session = Session(
            session_id=secrets.token_hex(16),
            inbound=inbound,
            read_stream=read_stream,
            write_stream=write_stream,
            outbound=outbound,
        )
        self.sessions[session.session_id] = session
        logger.debug("session %s opened", session.session_id)
        if self.audit is not None:
            self.audit.session_event("open", session.session_id)
        return session

    def start(self, session: Session) -> None:
        session.task = asyncio.create_task(self._run(session), name=f"mcp-session-{session.session_id}")

    async def _run(self, session: Session) -> None:
        _current_session.set(session.session_id)
        try:
            await self.server.run(
                session.read_stream,
                session.write_stream,
                self.server.create_initialization_options(),
            )
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("session %s terminated with an error", session.session_id)
            session.write_stream.close()

    def endpoint_for(self, session: Session) -> str:
        return f"{self.messages_path}?session_id={session.session_id}"

    async def connect(self) -> AsyncIterator[dict[str, str]]:
        """Open and start a session on first iteration, then stream its events.

        Nothing is allocated until the response body is consumed.
        """

        session = self.open_session()
        try:
            self.start(session)
            async for event in self.event_stream(session):
                yield event
        finally:
            self.close_session(session.session_id)

    async def event_stream(self, session: Session) -> AsyncIterator[dict[str, str]]:
        """Yield SSE events for ``session`` until it ends, then drop it."""

        try:
            yield {"event": "endpoint", "data": self.endpoint_for(session)}
            async for message in session.outbound:
                yield {
                    "event": "message",
                    "data": message.message.model_dump_json(by_alias=True, exclude_none=True),
                }
        finally:
            self.close_session(session.session_id)

    def get(self, session_id: str) -> Optional[Session]:
        return self.sessions.get(session_id)

    async def deliver(self, session_id: str, message: types.JSONRPCMessage) -> None:
        """Hand one inbound message to the session it belongs to."""

        session = self.sessions.get(session_id)
        if session is None:
            raise KeyError(session_id)
        await session.inbound.send(SessionMessage(message))

    def close_session(self, session_id: str) -> None:
        session = self.sessions.pop(session_id, None)
        if session is None:
            return
        session.close()
        logger.debug("session %s closed", session_id)
        if self.audit is not None:
            self.audit.session_event("close", session_id)

    async def close_all(self) -> None:
        """Close every live session and wait for its server task to finish."""

        tasks = [session.task for session in self.sessions.values() if session.task is not None]
        for session_id in list(self.sessions):
            self.close_session(session_id)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
