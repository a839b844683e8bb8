"""Custom exceptions for mcpsse."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar


@dataclass(eq=False)
class ToolServerException(Exception):
    """Base class for mcpsse exceptions.

    ``kind`` is the structured error kind reported to clients when the
    exception escapes a tool handler.
    """

    message: str
    details: dict[str, object] | None = None

    kind: ClassVar[str] = "internal"

    def __str__(self) -> str:  # pragma: no cover - dataclass str wrapper
        return self.message


class InvalidArguments(ToolServerException):
    """Raised when tool arguments fail schema validation."""

    kind = "invalid_arguments"


class UnknownTool(ToolServerException):
    """Raised when a tool name is not registered."""

    kind = "unknown_tool"


class NotFound(ToolServerException):
    """Raised when an upstream lookup yields nothing usable."""

    kind = "not_found"


class UpstreamError(ToolServerException):
    """Raised when an upstream API answers with a non-success status."""

    kind = "upstream_error"


class UpstreamUnavailable(UpstreamError):
    """Raised when an upstream API cannot be reached after retries."""

    kind = "upstream_unavailable"


class MissingCredential(ToolServerException):
    """Raised when a tool needs a secret that is not configured."""

    kind = "configuration"


class ResourceNotFound(ToolServerException):
    """Raised when no resource template matches a URI."""

    kind = "not_found"


class BadConfig(ToolServerException):
    """Raised when a config file cannot be parsed or validated."""

    kind = "configuration"
