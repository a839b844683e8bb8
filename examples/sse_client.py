"""Connect to a running mcpsse server and exercise its tools."""

import asyncio
import sys

from mcp import ClientSession
from mcp.client.sse import sse_client


async def main(url: str) -> None:
    async with sse_client(url) as (read_stream, write_stream):
        async with ClientSession(read_stream, write_stream) as session:
            await session.initialize()
            tools = await session.list_tools()
            print("tools:", [tool.name for tool in tools.tools])

            result = await session.call_tool("add", {"a": 2, "b": 3})
            print("add:", result.content[0].text)

            result = await session.call_tool("weather", {"city": "Berlin"})
            print("weather:", result.content[0].text)

            greeting = await session.read_resource("greeting://Ada")
            print("greeting:", greeting.contents[0].text)


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "http://localhost:3001/sse"))
