"""Branch and tag tools: listBranches, listTags."""

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

logger = logging.getLogger("bitbucket_bridge.tools.refs")

FilterArg = Annotated[str | None, Field(description="Filter by name (partial match)")]


async def _list_refs(
    ctx: ToolContext,
    kind: str,
    repo_slug: str,
    workspace: str | None,
    filter_text: str | None,
    pagelen: int | None,
    page: int | None,
    all_pages: bool,
) -> dict[str, Any]:
    ws = ctx.resolve_workspace(workspace)
    if ws is None:
        return tool_error(WORKSPACE_REQUIRED)

    logger.debug(
        "list_refs",
        extra={"kind": kind, "workspace": ws, "repo_slug": repo_slug, "filter": filter_text},
    )
    if kind == "branches":
        path = ctx.paths.branches(ws, repo_slug)
    else:
        path = ctx.paths.tags(ws, repo_slug)
    query = ctx.paths.name_filter(filter_text) if filter_text else None

    try:
        result = await ctx.fetch_listing(
            path, pagelen=pagelen, page=page, all_pages=all_pages, query=query
        )
    except (BitbucketClientError, ValueError) as e:
        return tool_failure(e, "Repository", f"{ws}/{repo_slug}")
    return tool_success(result.items, page_message(result))


async def list_branches(
    ctx: ToolContext,
    repo_slug: str,
    workspace: str | None = None,
    filter_text: str | None = None,
    pagelen: int | None = None,
    page: int | None = None,
    all_pages: bool = False,
) -> dict[str, Any]:
    return await _list_refs(ctx, "branches", repo_slug, workspace, filter_text, pagelen, page, all_pages)


async def list_tags(
    ctx: ToolContext,
    repo_slug: str,
    workspace: str | None = None,
    filter_text: str | None = None,
    pagelen: int | None = None,
    page: int | None = None,
    all_pages: bool = False,
) -> dict[str, Any]:
    return await _list_refs(ctx, "tags", repo_slug, workspace, filter_text, pagelen, page, all_pages)


def register_ref_tools(mcp: FastMCP, ctx: ToolContext) -> None:
    @mcp.tool(name="listBranches", annotations=READ_ONLY)
    async def _list_branches(
        repo_slug: str,
        workspace: WorkspaceArg = None,
        filter: FilterArg = None,
        pagelen: PageLenArg = None,
        page: PageArg = None,
        all: AllPagesArg = False,
    ) -> dict[str, Any]:
        """List branches in a repository."""
        result = await list_branches(ctx, repo_slug, workspace, filter, pagelen, page, all)
        return record_tool_call("listBranches", result)

    @mcp.tool(name="listTags", annotations=READ_ONLY)
    async def _list_tags(
        repo_slug: str,
        workspace: WorkspaceArg = None,
        filter: FilterArg = None,
        pagelen: PageLenArg = None,
        page: PageArg = None,
        all: AllPagesArg = False,
    ) -> dict[str, Any]:
        """List tags in a repository."""
        result = await list_tags(ctx, repo_slug, workspace, filter, pagelen, page, all)
        return record_tool_call("listTags", result)
