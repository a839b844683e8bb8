"""Shared data structures for mcpsse."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .exceptions import ToolServerException


@dataclass(slots=True)
class ToolError:
    """Structured failure of a tool invocation."""

    kind: str
    message: str
    details: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "details": self.details}


@dataclass(slots=True)
class ToolResult:
    """Outcome of a tool invocation: content on success, an error otherwise."""

    content: list[dict[str, Any]] = field(default_factory=list)
    error: Optional[ToolError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def text(self) -> str:
        if self.error is not None:
            return self.error.message
        return "\n".join(block.get("text", "") for block in self.content if block.get("type") == "text")

    @classmethod
    def success(cls, payload: Any) -> "ToolResult":
        if isinstance(payload, str):
            return cls(content=[text_block(payload)])
        return cls(content=list(payload))

    @classmethod
    def failure(cls, exc: ToolServerException) -> "ToolResult":
        return cls(error=ToolError(kind=exc.kind, message=exc.message, details=exc.details))


def text_block(text: str) -> dict[str, Any]:
    return {"type": "text", "text": text}
