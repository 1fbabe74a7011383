"""Repository tools: listRepositories, getRepository."""

import logging
from typing import Annotated, Any

from mcp.server.fastmcp import FastMCP
from pydantic import Field

from ..connectors.bitbucket.client import BitbucketClientError
from .context import READ_ONLY, AllPagesArg, PageArg, PageLenArg, ToolContext, WorkspaceArg
from .response import (
    WORKSPACE_REQUIRED,
    page_message,
    record_tool_call,
    tool_error,
    tool_failure,
    tool_success,
)

logger = logging.getLogger("bitbucket_bridge.tools.repositories")


async def list_repositories(
    ctx: ToolContext,
    workspace: str | None = None,
    name: str | None = None,
    pagelen: int | None = None,
    page: int | None = None,
    all_pages: bool = False,
) -> dict[str, Any]:
    """List repositories, optionally filtered by (partial) name.

    On Data Center the project-scoped listing ignores name filters, so a
    filtered query goes to the instance-wide /repos endpoint with `name`
    and `projectkey` instead.
    """
    ws = ctx.resolve_workspace(workspace)
    if ws is None:
        return tool_error(WORKSPACE_REQUIRED)

    logger.debug("list_repositories", extra={"workspace": ws, "name": name})

    if not name:
        path = ctx.paths.repositories(ws)
        query: dict[str, Any] = {}
    elif ctx.paths.is_cloud:
        path = ctx.paths.repositories(ws)
        query = ctx.paths.name_filter(name)
    else:
        path = ctx.paths.repository_search()
        query = {"name": name, "projectkey": ws}

    try:
        result = await ctx.fetch_listing(
            path, pagelen=pagelen, page=page, all_pages=all_pages, query=query
        )
    except (BitbucketClientError, ValueError) as e:
        return tool_failure(e, "Workspace/Project", ws)
    return tool_success(result.items, page_message(result))


async def get_repository(
    ctx: ToolContext, repo_slug: str, workspace: str | None = None
) -> dict[str, Any]:
    ws = ctx.resolve_workspace(workspace)
    if ws is None:
        return tool_error(WORKSPACE_REQUIRED)

    logger.debug("get_repository", extra={"workspace": ws, "repo_slug": repo_slug})
    try:
        data = await ctx.client.fetch_one(ctx.paths.repository(ws, repo_slug))
    except BitbucketClientError as e:
        return tool_failure(e, "Repository", f"{ws}/{repo_slug}")
    return tool_success(data)


def register_repository_tools(mcp: FastMCP, ctx: ToolContext) -> None:
    @mcp.tool(name="listRepositories", annotations=READ_ONLY)
    async def _list_repositories(
        workspace: WorkspaceArg = None,
        name: Annotated[str | None, Field(description="Filter by repository name (partial match)")] = None,
        pagelen: PageLenArg = None,
        page: PageArg = None,
        all: AllPagesArg = False,
    ) -> dict[str, Any]:
        """List Bitbucket repositories in a workspace (Cloud) or project (Data Center)."""
        result = await list_repositories(ctx, workspace, name, pagelen, page, all)
        return record_tool_call("listRepositories", result)

    @mcp.tool(name="getRepository", annotations=READ_ONLY)
    async def _get_repository(repo_slug: str, workspace: WorkspaceArg = None) -> dict[str, Any]:
        """Get details for a specific Bitbucket repository."""
        return record_tool_call("getRepository", await get_repository(ctx, repo_slug, workspace))
