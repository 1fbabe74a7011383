"""MCP server factory for the Bitbucket bridge."""

import logging

from mcp.server.fastmcp import FastMCP

from .config import DEFAULT_MCP_PORT
from .connectors.bitbucket.client import BitbucketClient
from .tools import ToolContext, register_all_tools

logger = logging.getLogger("bitbucket_bridge.server")

__all__ = ["SERVER_NAME", "create_server"]

SERVER_NAME = "bitbucket-bridge"

SERVER_INSTRUCTIONS = """\
Read-only access to Bitbucket Cloud and Bitbucket Data Center.

`workspace` means the Cloud workspace slug or the Data Center project key.
Tools called without `workspace` use the configured default.
Listing tools return one page by default; pass `page`/`pagelen`, or
`all=true` to fetch every page (capped at 1000 items).
"""


def create_server(
    client: BitbucketClient,
    default_workspace: str | None = None,
    *,
    host: str = "127.0.0.1",
    port: int = DEFAULT_MCP_PORT,
) -> FastMCP:
    """Create the MCP server with all tools registered.

    Args:
        client: Open client; the caller owns its lifecycle
        default_workspace: Workspace used when a tool call omits it
        host: Bind address for the http transport
        port: Listen port for the http transport

    Returns:
        FastMCP server instance.
    """
    mcp = FastMCP(SERVER_NAME, instructions=SERVER_INSTRUCTIONS, host=host, port=port)
    ctx = ToolContext.for_client(client, default_workspace)

    logger.info(
        "registering_tools",
        extra={"base_url": client.base_url, "dialect": client.dialect.value},
    )
    if default_workspace:
        logger.info("default_workspace", extra={"workspace": default_workspace})

    register_all_tools(mcp, ctx)
    return mcp
