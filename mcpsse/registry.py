"""Tool and resource registries."""

from __future__ import annotations

import inspect
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import unquote

from pydantic import BaseModel, ConfigDict, ValidationError, create_model

from .audit import AuditLogger
from .exceptions import InvalidArguments, ResourceNotFound, ToolServerException, UnknownTool
from .types import ToolResult

logger = logging.getLogger(__name__)

ToolHandler = Callable[..., Awaitable[Any]]
ResourceHandler = Callable[..., Awaitable[str]]

_PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ToolArguments(BaseModel):
    """Base for tool parameter schemas: strict types, unknown keys ignored."""

    model_config = ConfigDict(strict=True, extra="ignore")


@dataclass
class ToolDefinition:
    name: str
    description: str
    schema: type[BaseModel]
    handler: ToolHandler

    def input_schema(self) -> dict[str, Any]:
        schema = self.schema.model_json_schema()
        schema.pop("title", None)
        return schema


def schema_from_signature(name: str, func: Callable[..., Any]) -> type[BaseModel]:
    """Build a strict argument model from a handler's annotations and defaults."""

    fields: dict[str, Any] = {}
    for param in inspect.signature(func, eval_str=True).parameters.values():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        annotation = param.annotation if param.annotation is not param.empty else Any
        default = param.default if param.default is not param.empty else ...
        fields[param.name] = (annotation, default)
    return create_model(f"{name}_arguments", __base__=ToolArguments, **fields)


class ToolRegistry:
    """Named, schema-validated tools."""

    def __init__(self, audit: AuditLogger | None = None) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        self.audit = audit

    def register(
        self,
        name: str,
        schema: type[BaseModel],
        handler: ToolHandler,
        *,
        description: str = "",
    ) -> ToolDefinition:
        if name in self._tools:
            raise ValueError(f"Tool already registered: {name}")
        if not inspect.iscoroutinefunction(handler):
            raise TypeError("Tool handler must be async")
        definition = ToolDefinition(name=name, description=description, schema=schema, handler=handler)
        self._tools[name] = definition
        return definition

    def tool(self, func: ToolHandler | None = None, *, name: str | None = None, description: str | None = None):
        """Register a handler, inferring its schema from the signature."""

        def decorator(inner: ToolHandler) -> ToolHandler:
            tool_name = name or inner.__name__
            doc = description if description is not None else inspect.getdoc(inner) or ""
            self.register(tool_name, schema_from_signature(tool_name, inner), inner, description=doc)
            return inner

        if func is not None:
            return decorator(func)
        return decorator

    def get(self, name: str) -> ToolDefinition:
        try:
            return self._tools[name]
        except KeyError:
            raise UnknownTool(message=f"Unknown tool: {name}", details={"tool": name}) from None

    def definitions(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools)

    def validate(self, name: str, arguments: dict[str, Any] | None) -> BaseModel:
        definition = self.get(name)
        try:
            return definition.schema.model_validate(arguments or {})
        except ValidationError as exc:
            errors = [
                {"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]} for err in exc.errors()
            ]
            raise InvalidArguments(
                message=f"Invalid arguments for tool {name}: {errors[0]['loc']}: {errors[0]['msg']}",
                details={"tool": name, "errors": errors},
            ) from exc

    async def invoke(self, name: str, arguments: dict[str, Any] | None = None, *, session: str | None = None) -> ToolResult:
        """Validate and run a tool, folding every outcome into a ``ToolResult``."""

        started = time.perf_counter()
        try:
            params = self.validate(name, arguments)
            payload = await self.get(name).handler(**params.model_dump())
            result = ToolResult.success(payload)
        except ToolServerException as exc:
            logger.info("tool %s failed (%s): %s", name, exc.kind, exc.message)
            result = ToolResult.failure(exc)
        except Exception as exc:
            logger.exception("tool %s raised unexpectedly", name)
            result = ToolResult.failure(ToolServerException(message=f"Internal error in tool {name}: {exc}"))
        if self.audit is not None:
            self.audit.tool_call(
                name,
                ok=result.ok,
                session=session,
                error_kind=result.error.kind if result.error else None,
                latency_ms=round((time.perf_counter() - started) * 1000, 3),
            )
        return result


@dataclass
class ResourceTemplate:
    name: str
    uri_template: str
    handler: ResourceHandler
    description: str = ""
    mime_type: str = "text/plain"

    def __post_init__(self) -> None:
        pattern = ""
        position = 0
        for match in _PLACEHOLDER.finditer(self.uri_template):
            pattern += re.escape(self.uri_template[position : match.start()])
            pattern += f"(?P<{match.group(1)}>[^/]+)"
            position = match.end()
        pattern += re.escape(self.uri_template[position:])
        self._pattern = re.compile(f"^{pattern}$")

    def match(self, uri: str) -> Optional[dict[str, str]]:
        found = self._pattern.match(uri)
        if found is None:
            return None
        return {key: unquote(value) for key, value in found.groupdict().items()}


class ResourceRegistry:
    """URI-templated read-only resources."""

    def __init__(self, audit: AuditLogger | None = None) -> None:
        self._templates: dict[str, ResourceTemplate] = {}
        self.audit = audit

    def register(
        self,
        name: str,
        uri_template: str,
        handler: ResourceHandler,
        *,
        description: str = "",
        mime_type: str = "text/plain",
    ) -> ResourceTemplate:
        if name in self._templates:
            raise ValueError(f"Resource already registered: {name}")
        template = ResourceTemplate(
            name=name,
            uri_template=uri_template,
            handler=handler,
            description=description,
            mime_type=mime_type,
        )
        self._templates[name] = template
        return template

    def resource(self, uri_template: str, *, name: str | None = None, description: str | None = None):
        def decorator(inner: ResourceHandler) -> ResourceHandler:
            doc = description if description is not None else inspect.getdoc(inner) or ""
            self.register(name or inner.__name__, uri_template, inner, description=doc)
            return inner

        return decorator

    def templates(self) -> list[ResourceTemplate]:
        return list(self._templates.values())

    def resolve(self, uri: str) -> tuple[ResourceTemplate, dict[str, str]]:
        for template in self._templates.values():
            params = template.match(uri)
            if params is not None:
                return template, params
        raise ResourceNotFound(message=f"Resource not found: {uri}", details={"uri": uri})

    async def read(self, uri: str, *, session: str | None = None) -> tuple[ResourceTemplate, str]:
        """Render the resource at ``uri``."""

        try:
            template, params = self.resolve(uri)
        except ResourceNotFound:
            if self.audit is not None:
                self.audit.resource_read(uri, session=session, error_kind="not_found")
            raise
        text = await template.handler(**params)
        if self.audit is not None:
            self.audit.resource_read(uri, session=session)
        return template, text
