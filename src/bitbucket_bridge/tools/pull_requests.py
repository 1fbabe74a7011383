"""Pull request tools.

getPullRequests, getPullRequest, getPullRequestActivity, getPullRequestCommits
and getPullRequestStatuses (Cloud only). Cloud calls activity `activity`,
Data Center calls it `activities`; PathBuilder hides the difference.
"""

import logging
from typing import Annotated, Any, Literal

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

logger = logging.getLogger("bitbucket_bridge.tools.pull_requests")

PullRequestState = Literal["OPEN", "MERGED", "DECLINED", "SUPERSEDED"]
PullRequestIdArg = Annotated[int, Field(description="Pull request ID")]

STATUSES_UNSUPPORTED = "getPullRequestStatuses is not available on Bitbucket Data Center."


def _pr_label(ws: str, repo_slug: str, pr_id: int) -> str:
    return f"{ws}/{repo_slug}#{pr_id}"


async def get_pull_requests(
    ctx: ToolContext,
    repo_slug: str,
    workspace: str | None = None,
    state: str | None = None,
    pagelen: int | None = None,
    page: int | None = None,
    all_pages: bool = False,
) -> dict[str, Any]:
    ws = ctx.resolve_workspace(workspace)
    if ws is None:
        return tool_error(WORKSPACE_REQUIRED)

    logger.debug(
        "get_pull_requests",
        extra={"workspace": ws, "repo_slug": repo_slug, "state": state or "all"},
    )
    try:
        result = await ctx.fetch_listing(
            ctx.paths.pull_requests(ws, repo_slug),
            pagelen=pagelen,
            page=page,
            all_pages=all_pages,
            query={"state": state},
        )
    except (BitbucketClientError, ValueError) as e:
        return tool_failure(e, "Repository", f"{ws}/{repo_slug}")
    return tool_success(result.items, page_message(result))


async def get_pull_request(
    ctx: ToolContext, repo_slug: str, pull_request_id: int, workspace: str | None = None
) -> dict[str, Any]:
    ws = ctx.resolve_workspace(workspace)
    if ws is None:
        return tool_error(WORKSPACE_REQUIRED)

    logger.debug(
        "get_pull_request",
        extra={"workspace": ws, "repo_slug": repo_slug, "pull_request_id": pull_request_id},
    )
    try:
        data = await ctx.client.fetch_one(ctx.paths.pull_request(ws, repo_slug, pull_request_id))
    except BitbucketClientError as e:
        return tool_failure(e, "Pull Request", _pr_label(ws, repo_slug, pull_request_id))
    return tool_success(data)


async def get_pull_request_activity(
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

    logger.debug(
        "get_pull_request_activity",
        extra={"workspace": ws, "repo_slug": repo_slug, "pull_request_id": pull_request_id},
    )
    try:
        result = await ctx.fetch_listing(
            ctx.paths.pull_request_activity(ws, repo_slug, pull_request_id),
            pagelen=pagelen,
            page=page,
            all_pages=all_pages,
        )
    except (BitbucketClientError, ValueError) as e:
        return tool_failure(e, "Pull Request", _pr_label(ws, repo_slug, pull_request_id))
    return tool_success(result.items, page_message(result))


async def get_pull_request_commits(
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

    logger.debug(
        "get_pull_request_commits",
        extra={"workspace": ws, "repo_slug": repo_slug, "pull_request_id": pull_request_id},
    )
    try:
        result = await ctx.fetch_listing(
            ctx.paths.pull_request_commits(ws, repo_slug, pull_request_id),
            pagelen=pagelen,
            page=page,
            all_pages=all_pages,
        )
    except (BitbucketClientError, ValueError) as e:
        return tool_failure(e, "Pull Request", _pr_label(ws, repo_slug, pull_request_id))
    return tool_success(result.items, page_message(result))


async def get_pull_request_statuses(
    ctx: ToolContext,
    repo_slug: str,
    pull_request_id: int,
    workspace: str | None = None,
    pagelen: int | None = None,
    page: int | None = None,
    all_pages: bool = False,
) -> dict[str, Any]:
    """Commit statuses (builds, checks) attached to a pull request. Cloud only."""
    ws = ctx.resolve_workspace(workspace)
    if ws is None:
        return tool_error(WORKSPACE_REQUIRED)
    if ctx.paths.is_data_center:
        return tool_error(STATUSES_UNSUPPORTED)

    try:
        result = await ctx.fetch_listing(
            ctx.paths.pull_request_statuses(ws, repo_slug, pull_request_id),
            pagelen=pagelen,
            page=page,
            all_pages=all_pages,
        )
    except (BitbucketClientError, ValueError) as e:
        return tool_failure(e, "Pull Request", _pr_label(ws, repo_slug, pull_request_id))
    return tool_success(result.items, page_message(result))


def register_pull_request_tools(mcp: FastMCP, ctx: ToolContext) -> None:
    @mcp.tool(name="getPullRequests", annotations=READ_ONLY)
    async def _get_pull_requests(
        repo_slug: str,
        workspace: WorkspaceArg = None,
        state: Annotated[
            PullRequestState | None, Field(description="Filter by pull request state")
        ] = None,
        pagelen: PageLenArg = None,
        page: PageArg = None,
        all: AllPagesArg = False,
    ) -> dict[str, Any]:
        """List pull requests for a repository."""
        result = await get_pull_requests(ctx, repo_slug, workspace, state, pagelen, page, all)
        return record_tool_call("getPullRequests", result)

    @mcp.tool(name="getPullRequest", annotations=READ_ONLY)
    async def _get_pull_request(
        repo_slug: str, pull_request_id: PullRequestIdArg, workspace: WorkspaceArg = None
    ) -> dict[str, Any]:
        """Get details for a specific pull request."""
        result = await get_pull_request(ctx, repo_slug, pull_request_id, workspace)
        return record_tool_call("getPullRequest", result)

    @mcp.tool(name="getPullRequestActivity", annotations=READ_ONLY)
    async def _get_pull_request_activity(
        repo_slug: str,
        pull_request_id: PullRequestIdArg,
        workspace: WorkspaceArg = None,
        pagelen: PageLenArg = None,
        page: PageArg = None,
        all: AllPagesArg = False,
    ) -> dict[str, Any]:
        """Get the activity log for a pull request (comments, approvals, updates)."""
        result = await get_pull_request_activity(
            ctx, repo_slug, pull_request_id, workspace, pagelen, page, all
        )
        return record_tool_call("getPullRequestActivity", result)

    @mcp.tool(name="getPullRequestCommits", annotations=READ_ONLY)
    async def _get_pull_request_commits(
        repo_slug: str,
        pull_request_id: PullRequestIdArg,
        workspace: WorkspaceArg = None,
        pagelen: PageLenArg = None,
        page: PageArg = None,
        all: AllPagesArg = False,
    ) -> dict[str, Any]:
        """List the commits in a pull request."""
        result = await get_pull_request_commits(
            ctx, repo_slug, pull_request_id, workspace, pagelen, page, all
        )
        return record_tool_call("getPullRequestCommits", result)

    @mcp.tool(name="getPullRequestStatuses", annotations=READ_ONLY)
    async def _get_pull_request_statuses(
        repo_slug: str,
        pull_request_id: PullRequestIdArg,
        workspace: WorkspaceArg = None,
        pagelen: PageLenArg = None,
        page: PageArg = None,
        all: AllPagesArg = False,
    ) -> dict[str, Any]:
        """List commit statuses associated with a pull request (Bitbucket Cloud only)."""
        result = await get_pull_request_statuses(
            ctx, repo_slug, pull_request_id, workspace, pagelen, page, all
        )
        return record_tool_call("getPullRequestStatuses", result)
