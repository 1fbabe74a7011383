"""Pull request diff tools.

getPullRequestDiff returns the raw unified diff text. getPullRequestDiffStat
lists per-file changes (Cloud diffstat, Data Center changes).
getPullRequestPatch is Cloud only.
"""

import logging
from typing import Any

from mcp.server.fastmcp import FastMCP

from ..connectors.bitbucket.client import BitbucketClientError
from .context import READ_ONLY, AllPagesArg, PageArg, PageLenArg, ToolContext, WorkspaceArg
from .pull_requests import PullRequestIdArg
from .response import (
    WORKSPACE_REQUIRED,
    page_message,
    record_tool_call,
    tool_error,
    tool_failure,
    tool_success,
)

logger = logging.getLogger("bitbucket_bridge.tools.diffs")

PATCH_UNSUPPORTED = (
    "getPullRequestPatch is not available on Bitbucket Data Center. "
    "Use getPullRequestDiff instead."
)


async def get_pull_request_diff(
    ctx: ToolContext, repo_slug: str, pull_request_id: int, workspace: str | None = None
) -> dict[str, Any]:
    ws = ctx.resolve_workspace(workspace)
    if ws is None:
        return tool_error(WORKSPACE_REQUIRED)

    logger.debug(
        "get_pull_request_diff",
        extra={"workspace": ws, "repo_slug": repo_slug, "pull_request_id": pull_request_id},
    )
    try:
        diff = await ctx.client.fetch_text(
            ctx.paths.pull_request_diff(ws, repo_slug, pull_request_id)
        )
    except BitbucketClientError as e:
        return tool_failure(e, "Pull Request", f"{ws}/{repo_slug}#{pull_request_id}")
    return tool_success(diff)


async def get_pull_request_diffstat(
    ctx: ToolContext,
    repo_slug: str,
    pull_request_id: int,
    workspace: str | None = None,
    pagelen: int | None = None,
    page: int | None = None,
    all_pages: bool = False,
) -> dict[str, Any]:
    ws = ctx.resolve_workspace(workspace)
    if ws is None:
        return tool_error(WORKSPACE_REQUIRED)

    try:
        result = await ctx.fetch_listing(
            ctx.paths.pull_request_diffstat(ws, repo_slug, pull_request_id),
            pagelen=pagelen,
            page=page,
            all_pages=all_pages,
        )
    except (BitbucketClientError, ValueError) as e:
        return tool_failure(e, "Pull Request", f"{ws}/{repo_slug}#{pull_request_id}")
    return tool_success(result.items, page_message(result))


async def get_pull_request_patch(
    ctx: ToolContext, repo_slug: str, pull_request_id: int, workspace: str | None = None
) -> dict[str, Any]:
    ws = ctx.resolve_workspace(workspace)
    if ws is None:
        return tool_error(WORKSPACE_REQUIRED)
    if ctx.paths.is_data_center:
        return tool_error(PATCH_UNSUPPORTED)

    try:
        patch = await ctx.client.fetch_text(
            ctx.paths.pull_request_patch(ws, repo_slug, pull_request_id)
        )
    except BitbucketClientError as e:
        return tool_failure(e, "Pull Request", f"{ws}/{repo_slug}#{pull_request_id}")
    return tool_success(patch)


def register_diff_tools(mcp: FastMCP, ctx: ToolContext) -> None:
    @mcp.tool(name="getPullRequestDiff", annotations=READ_ONLY)
    async def _get_pull_request_diff(
        repo_slug: str, pull_request_id: PullRequestIdArg, workspace: WorkspaceArg = None
    ) -> dict[str, Any]:
        """Get the raw diff for a pull request."""
        result = await get_pull_request_diff(ctx, repo_slug, pull_request_id, workspace)
        return record_tool_call("getPullRequestDiff", result)

    @mcp.tool(name="getPullRequestDiffStat", annotations=READ_ONLY)
    async def _get_pull_request_diffstat(
        repo_slug: str,
        pull_request_id: PullRequestIdArg,
        workspace: WorkspaceArg = None,
        pagelen: PageLenArg = None,
        page: PageArg = None,
        all: AllPagesArg = False,
    ) -> dict[str, Any]:
        """Get diff statistics for a pull request (files changed, lines added/removed)."""
        result = await get_pull_request_diffstat(
            ctx, repo_slug, pull_request_id, workspace, pagelen, page, all
        )
        return record_tool_call("getPullRequestDiffStat", result)

    @mcp.tool(name="getPullRequestPatch", annotations=READ_ONLY)
    async def _get_pull_request_patch(
        repo_slug: str, pull_request_id: PullRequestIdArg, workspace: WorkspaceArg = None
    ) -> dict[str, Any]:
        """Get the patch for a pull request (Bitbucket Cloud only)."""
        result = await get_pull_request_patch(ctx, repo_slug, pull_request_id, workspace)
        return record_tool_call("getPullRequestPatch", result)
