"""CLI entry points."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

import uvicorn

from .app import ToolServer, create_app
from .config import Config, load_config
from .exceptions import ResourceNotFound


def _load(args: argparse.Namespace) -> Config:
    config = load_config(args.config)
    if getattr(args, "host", None):
        config.server.host = args.host
    if getattr(args, "port", None) is not None:
        config.server.port = args.port
    return config


async def run_server(args: argparse.Namespace) -> None:
    config = _load(args)
    app = create_app(ToolServer(config))
    uvicorn_config = uvicorn.Config(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
    )
    server = uvicorn.Server(uvicorn_config)
    await server.serve()


async def run_call(args: argparse.Namespace) -> int:
    server = ToolServer(_load(args))
    try:
        arguments = json.loads(args.args) if args.args else {}
        result = await server.tools.invoke(args.tool, arguments)
    finally:
        await server.aclose()
    if result.error is not None:
        print(f"ERROR [{result.error.kind}]: {result.error.message}", file=sys.stderr)
        return 1
    print(result.text)
    return 0


async def run_read(args: argparse.Namespace) -> int:
    server = ToolServer(_load(args))
    try:
        _, text = await server.resources.read(args.uri)
    except ResourceNotFound as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        await server.aclose()
    print(text)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mcp-sse-server", description="MCP server over Server-Sent Events")
    sub = parser.add_subparsers(dest="command")

    serve_cmd = sub.add_parser("serve", help="Run the HTTP/SSE server")
    serve_cmd.add_argument("--config")
    serve_cmd.add_argument("--host")
    serve_cmd.add_argument("--port", type=int)

    call_cmd = sub.add_parser("call", help="Invoke a tool locally")
    call_cmd.add_argument("--config")
    call_cmd.add_argument("--tool", required=True)
    call_cmd.add_argument("--args", default="", help="Tool arguments as a JSON object")

    read_cmd = sub.add_parser("read", help="Read a resource locally")
    read_cmd.add_argument("--config")
    read_cmd.add_argument("--uri", required=True)

    return parser


def cli_main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "serve":
        asyncio.run(run_server(args))
        return 0
    if args.command == "call":
        return asyncio.run(run_call(args))
    if args.command == "read":
        return asyncio.run(run_read(args))
    parser.print_help()
    return 0
