"""mcpsse package: a small MCP tool server over Server-Sent Events."""

from .app import ToolServer, create_app
from .config import Config, load_config
from .exceptions import BadConfig, MissingCredential, ToolServerException, UpstreamError, UpstreamUnavailable
from .types import ToolError, ToolResult

__all__ = [
    "ToolServer",
    "create_app",
    "Config",
    "load_config",
    "BadConfig",
    "MissingCredential",
    "ToolServerException",
    "UpstreamError",
    "UpstreamUnavailable",
    "ToolError",
    "ToolResult",
]
