import pytest
from pydantic import BaseModel

from mcpsse.exceptions import NotFound, ResourceNotFound, UnknownTool
from mcpsse.registry import ResourceRegistry, ToolArguments, ToolRegistry


class Recorder:
    def __init__(self) -> None:
        self.calls: list[dict] = []


@pytest.mark.asyncio
async def test_schema_validation_runs_before_handler() -> None:
    registry = ToolRegistry()
    recorder = Recorder()

    @registry.tool(name="add")
    async def add(a: float, b: float) -> str:
        recorder.calls.append({"a": a, "b": b})
        return str(a + b)

    result = await registry.invoke("add", {"a": "1", "b": 2})
    assert not result.ok
    assert result.error.kind == "invalid_arguments"
    assert "a" in result.error.message
    assert recorder.calls == []

    missing = await registry.invoke("add", {"a": 1})
    assert missing.error.kind == "invalid_arguments"
    assert recorder.calls == []

    ok = await registry.invoke("add", {"a": 1, "b": 2})
    assert ok.ok
    assert recorder.calls == [{"a": 1.0, "b": 2.0}]


@pytest.mark.asyncio
async def test_defaults_and_schema_inference() -> None:
    registry = ToolRegistry()

    @registry.tool(name="search", description="Search things")
    async def search(query: str, count: int = 5) -> str:
        return f"{query}:{count}"

    definition = registry.get("search")
    schema = definition.input_schema()
    assert schema["required"] == ["query"]
    assert schema["properties"]["count"]["default"] == 5
    assert schema["properties"]["count"]["type"] == "integer"
    assert definition.description == "Search things"

    result = await registry.invoke("search", {"query": "cats"})
    assert result.content == [{"type": "text", "text": "cats:5"}]


@pytest.mark.asyncio
async def test_explicit_schema_registration() -> None:
    class EchoArgs(ToolArguments):
        text: str

    async def echo(text: str) -> list[dict]:
        return [{"type": "text", "text": text}, {"type": "text", "text": text.upper()}]

    registry = ToolRegistry()
    registry.register("echo", EchoArgs, echo, description="Echo text")
    result = await registry.invoke("echo", {"text": "hi", "ignored": True})
    assert result.text == "hi\nHI"


def test_registration_errors() -> None:
    registry = ToolRegistry()

    async def handler() -> str:
        return ""

    def sync_handler() -> str:
        return ""

    registry.register("one", BaseModel, handler)
    with pytest.raises(ValueError):
        registry.register("one", BaseModel, handler)
    with pytest.raises(TypeError):
        registry.register("two", BaseModel, sync_handler)
    with pytest.raises(UnknownTool):
        registry.get("missing")
    assert registry.names() == ["one"]


@pytest.mark.asyncio
async def test_invoke_folds_errors_into_result() -> None:
    registry = ToolRegistry()

    @registry.tool(name="lookup")
    async def lookup(key: str) -> str:
        raise NotFound(message=f"No entry for {key}")

    @registry.tool(name="broken")
    async def broken() -> str:
        raise RuntimeError("boom")

    unknown = await registry.invoke("nope", {})
    assert unknown.error.kind == "unknown_tool"

    not_found = await registry.invoke("lookup", {"key": "x"})
    assert not_found.error.kind == "not_found"
    assert not_found.text == "No entry for x"

    internal = await registry.invoke("broken")
    assert internal.error.kind == "internal"
    assert "boom" in internal.error.message


@pytest.mark.asyncio
async def test_resource_templates() -> None:
    resources = ResourceRegistry()

    @resources.resource("greeting://{name}", name="greeting")
    async def greeting(name: str) -> str:
        return f"Hello, {name}!"

    @resources.resource("files://{folder}/{file}", name="file")
    async def file(folder: str, file: str) -> str:
        return f"{folder}|{file}"

    _, text = await resources.read("greeting://Ada")
    assert text == "Hello, Ada!"
    _, text = await resources.read("greeting://Ada%20Lovelace")
    assert text == "Hello, Ada Lovelace!"
    template, text = await resources.read("files://docs/readme.md")
    assert template.name == "file"
    assert text == "docs|readme.md"

    with pytest.raises(ResourceNotFound):
        await resources.read("greeting://a/b")
    with pytest.raises(ResourceNotFound):
        await resources.read("other://Ada")
    assert [t.uri_template for t in resources.templates()] == ["greeting://{name}", "files://{folder}/{file}"]
