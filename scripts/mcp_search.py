import asyncio
import os
import sys

from mcp import ClientSession
from mcp.client.streamable_http import streamablehttp_client

MCP_URL = os.getenv("MCP_URL", "http://localhost:8000/mcp/")


async def main(query: str):
    print(f"[MCP] {MCP_URL}")
    async with streamablehttp_client(MCP_URL) as (read, write, _):
        async with ClientSession(read, write) as session:
            await session.initialize()
            result = await session.call_tool("search_tickets", {"query": query})

    # list results come back wrapped as {"result": [...]}
    hits = (result.structuredContent or {}).get("result", [])
    if not hits:
        print("No match.")
    for hit in hits:
        print(f"#{hit['ticket_id']} {hit['external_id']}  {hit['title']}")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("usage: python scripts/mcp_search.py <query>")
        sys.exit(1)
    asyncio.run(main(" ".join(sys.argv[1:])))
