"""Pull request task tools: getPullRequestTasks, getPullRequestTask.

Data Center models tasks as blocker comments; the response shapes differ
between dialects and are returned as-is.
"""

import logging
from typing import Annotated, Any

from mcp.server.fastmcp import FastMCP
from pydantic import Field

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

logger = logging.getLogger("bitbucket_bridge.tools.tasks")


async def get_pull_request_tasks(
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
        "get_pull_request_tasks",
        extra={"workspace": ws, "repo_slug": repo_slug, "pull_request_id": pull_request_id},
    )
    try:
        result = await ctx.fetch_listing(
            ctx.paths.pull_request_tasks(ws, repo_slug, pull_request_id),
            pagelen=pagelen,
            page=page,
            all_pages=all_pages,
        )
    except (BitbucketClientError, ValueError) as e:
        return tool_failure(e, "Pull Request", f"{ws}/{repo_slug}#{pull_request_id}")
    return tool_success(result.items, page_message(result))


async def get_pull_request_task(
    ctx: ToolContext,
    repo_slug: str,
    pull_request_id: int,
    task_id: int,
    workspace: str | None = None,
) -> dict[str, Any]:
    ws = ctx.resolve_workspace(workspace)
    if ws is None:
        return tool_error(WORKSPACE_REQUIRED)

    try:
        data = await ctx.client.fetch_one(
            ctx.paths.pull_request_task(ws, repo_slug, pull_request_id, task_id)
        )
    except BitbucketClientError as e:
        return tool_failure(e, "Task", f"{task_id} on PR {ws}/{repo_slug}#{pull_request_id}")
    return tool_success(data)


def register_task_tools(mcp: FastMCP, ctx: ToolContext) -> None:
    @mcp.tool(name="getPullRequestTasks", annotations=READ_ONLY)
    async def _get_pull_request_tasks(
        repo_slug: str,
        pull_request_id: PullRequestIdArg,
        workspace: WorkspaceArg = None,
        pagelen: PageLenArg = None,
        page: PageArg = None,
        all: AllPagesArg = False,
    ) -> dict[str, Any]:
        """List tasks on a pull request (blocker comments on Data Center)."""
        result = await get_pull_request_tasks(
            ctx, repo_slug, pull_request_id, workspace, pagelen, page, all
        )
        return record_tool_call("getPullRequestTasks", result)

    @mcp.tool(name="getPullRequestTask", annotations=READ_ONLY)
    async def _get_pull_request_task(
        repo_slug: str,
        pull_request_id: PullRequestIdArg,
        task_id: Annotated[int, Field(description="Task ID")],
        workspace: WorkspaceArg = None,
    ) -> dict[str, Any]:
        """Get a specific task on a pull request."""
        result = await get_pull_request_task(ctx, repo_slug, pull_request_id, task_id, workspace)
        return record_tool_call("getPullRequestTask", result)
