"""Configuration loading and validation for mcpsse."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .exceptions import BadConfig


class ServerSettings(BaseModel):
    name: str = "mcp-sse-server"
    title: str = "MCP SSE Server"
    version: str = "1.0.0"
    host: str = "0.0.0.0"
    port: int = 3001

    @field_validator("port")
    @classmethod
    def validate_port(cls, value: int) -> int:
        if not 0 <= value <= 65535:
            raise ValueError("port must be between 0 and 65535")
        return value


class CorsSettings(BaseModel):
    allow_origins: list[str] = Field(default_factory=lambda: ["*"])
    allow_methods: list[str] = Field(default_factory=lambda: ["GET", "POST", "OPTIONS"])
    allow_credentials: bool = False


class UpstreamSettings(BaseModel):
    timeout_secs: float = 10.0
    max_attempts: int = 3
    backoff_initial_secs: float = 0.5
    backoff_max_secs: float = 5.0
    backoff_jitter_secs: float = 0.5

    @model_validator(mode="after")
    def validate_values(self) -> "UpstreamSettings":
        if self.timeout_secs <= 0:
            raise ValueError("timeout_secs must be positive")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if min(self.backoff_initial_secs, self.backoff_max_secs, self.backoff_jitter_secs) < 0:
            raise ValueError("backoff values must not be negative")
        return self


class WeatherSettings(BaseModel):
    geocoding_url: str = "https://geocoding-api.open-meteo.com/v1/search"
    forecast_url: str = "https://api.open-meteo.com/v1/forecast"


class SearchSettings(BaseModel):
    url: str = "https://api.search.brave.com/res/v1/web/search"
    api_key: str | None = None
    default_count: int = 5


class LoggingSettings(BaseModel):
    level: str = "INFO"
    output: Literal["stderr", "file"] = "stderr"
    file_path: str = "mcpsse.log"
    rotate_bytes: int = 10_485_760


class ErrorSettings(BaseModel):
    # "result" marks failed tool calls with isError, "content" returns the
    # message as ordinary text content.
    tool_errors: Literal["result", "content"] = "result"


class Config(BaseModel):
    server: ServerSettings = Field(default_factory=ServerSettings)
    cors: CorsSettings = Field(default_factory=CorsSettings)
    upstream: UpstreamSettings = Field(default_factory=UpstreamSettings)
    weather: WeatherSettings = Field(default_factory=WeatherSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    errors: ErrorSettings = Field(default_factory=ErrorSettings)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise BadConfig(message=str(exc)) from exc


ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "PORT": ("server", "port"),
    "HOST": ("server", "host"),
    "BRAVE_API_KEY": ("search", "api_key"),
    "LOG_LEVEL": ("logging", "level"),
}


def apply_env(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """Overlay environment variables onto raw config data."""

    merged = {
        section: dict(values or {}) if values is None or isinstance(values, dict) else values
        for section, values in data.items()
    }
    for var, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if not value:
            continue
        target = merged.setdefault(section, {})
        if not isinstance(target, dict):
            raise BadConfig(message=f"Config section '{section}' must be a mapping")
        target[key] = value
    return merged


def load_config(path: str | Path | None = None, environ: Mapping[str, str] | None = None) -> Config:
    """Load config from an optional YAML file plus the environment.

    When ``environ`` is omitted, a ``.env`` file in the working directory is
    loaded first and ``os.environ`` is used.
    """

    data: dict[str, Any] = {}
    if path is not None:
        try:
            raw = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise BadConfig(message=f"Failed to read config: {exc}") from exc
        try:
            data = yaml.safe_load(raw) or {}
        except yaml.YAMLError as exc:
            raise BadConfig(message=f"Failed to parse config YAML: {exc}") from exc
        if not isinstance(data, dict):
            raise BadConfig(message="Config root must be a mapping")
    if environ is None:
        load_dotenv()
        environ = os.environ
    return Config.from_dict(apply_env(data, environ))
