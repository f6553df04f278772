# mcp_server.py
import asyncio
import logging
from typing import Dict

import httpx
import uvicorn
from mcp.server.fastmcp import FastMCP

from config import API_HOST, API_PORT, MCP_ACCESS_TOKEN

API_BASE = f"http://localhost:{API_PORT}"  # FastAPI address used by bridge

logger = logging.getLogger(__name__)

if not MCP_ACCESS_TOKEN:
    logger.warning("MCP_ACCESS_TOKEN is not set; protected tools will answer 'Please log in'")

# create MCP server (bridge)
mcp = FastMCP("MentorMatch MCP Bridge")


# helper to call the HTTP endpoints
async def call_api(method: str, endpoint: str, params=None, transport=None) -> Dict:
    url = f"{API_BASE}{endpoint}"
    headers = {"Authorization": f"Bearer {MCP_ACCESS_TOKEN}"} if MCP_ACCESS_TOKEN else {}
    async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
        if method.lower() == "get":
            resp = await client.get(url, params=params, headers=headers)
        else:
            raise ValueError("unsupported method")
    try:
        return resp.json()
    except ValueError:
        return {"status_code": resp.status_code, "text": resp.text}


# Define MCP tools that proxy to HTTP endpoints
@mcp.tool()
async def match_all() -> Dict:
    """Pair every mentor with the available mentee sharing the most preferences."""
    return await call_api("get", "/match")


@mcp.tool()
async def list_preferences() -> Dict:
    """List every preference tag in use."""
    return await call_api("get", "/preferences")


@mcp.tool()
async def get_profile(user_id: str) -> Dict:
    return await call_api("get", f"/user/{user_id}")


@mcp.tool()
async def suggest_matches() -> Dict:
    """Ranked partner suggestions for the account the bridge is logged in as."""
    return await call_api("get", "/users/suggestions")


# Run uvicorn programmatically + MCP server (stdio)
async def run_uvicorn():
    """Run the FastAPI app (main.app) via uvicorn so both run in the same process."""
    from main import app

    server = uvicorn.Server(uvicorn.Config(app, host=API_HOST, port=API_PORT, log_level="info"))
    await server.serve()  # returns when server stops


async def main():
    # start uvicorn in a background task
    uvicorn_task = asyncio.create_task(run_uvicorn())
    # give uvicorn a moment to start before MCP begins handling calls
    await asyncio.sleep(0.5)

    # blocks until the stdio client disconnects
    await mcp.run_stdio_async()

    # If MCP stops, shut down uvicorn
    uvicorn_task.cancel()
    try:
        await uvicorn_task
    except asyncio.CancelledError:
        pass


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Shutting down.")
