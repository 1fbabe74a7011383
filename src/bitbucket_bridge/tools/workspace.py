"""Account and workspace tools: getCurrentUser, getWorkspace."""

import logging
from typing import Any

from mcp.server.fastmcp import FastMCP

from ..connectors.bitbucket.client import BitbucketClientError
from .context import READ_ONLY, ToolContext, WorkspaceArg
from .response import WORKSPACE_REQUIRED, record_tool_call, tool_error, tool_failure, tool_success

logger = logging.getLogger("bitbucket_bridge.tools.workspace")


async def get_current_user(ctx: ToolContext) -> dict[str, Any]:
    """Authenticated user (Cloud) or server properties (Data Center).

    Data Center has no current-user resource, so a successful call to
    /application-properties stands in as proof the credentials work.
    """
    logger.debug("get_current_user", extra={"dialect": ctx.paths.dialect.value})
    try:
        data = await ctx.client.fetch_one(ctx.paths.current_user())
    except BitbucketClientError as e:
        return tool_failure(e)

    if ctx.paths.is_cloud:
        return tool_success(data, "Authenticated successfully.")

    properties = data if isinstance(data, dict) else {}
    return tool_success(
        {"display_name": "Authenticated User", "type": "user", **properties},
        "Authenticated successfully (Data Center).",
    )


async def get_workspace(ctx: ToolContext, workspace: str | None = None) -> dict[str, Any]:
    ws = ctx.resolve_workspace(workspace)
    if ws is None:
        return tool_error(WORKSPACE_REQUIRED)

    logger.debug("get_workspace", extra={"workspace": ws})
    try:
        data = await ctx.client.fetch_one(ctx.paths.workspace(ws))
    except BitbucketClientError as e:
        return tool_failure(e, "Workspace/Project", ws)
    return tool_success(data)


def register_workspace_tools(mcp: FastMCP, ctx: ToolContext) -> None:
    @mcp.tool(name="getCurrentUser", annotations=READ_ONLY)
    async def _get_current_user() -> dict[str, Any]:
        """Get the currently authenticated Bitbucket user.

        Useful for verifying connectivity and credentials.
        """
        return record_tool_call("getCurrentUser", await get_current_user(ctx))

    @mcp.tool(name="getWorkspace", annotations=READ_ONLY)
    async def _get_workspace(workspace: WorkspaceArg = None) -> dict[str, Any]:
        """Get details about a Bitbucket workspace (Cloud) or project (Data Center)."""
        return record_tool_call("getWorkspace", await get_workspace(ctx, workspace))
