"""Read-only MCP tools over the Bitbucket client.

Each module exposes plain async functions taking a ToolContext (easy to
call from tests) and a register_* function that wires them into FastMCP
under their camelCase tool names.
"""

from mcp.server.fastmcp import FastMCP

from .comments import register_comment_tools
from .context import ToolContext, build_page_request
from .diffs import register_diff_tools
from .pull_requests import register_pull_request_tools
from .refs import register_ref_tools
from .repositories import register_repository_tools
from .response import tool_error, tool_failure, tool_not_found, tool_success
from .tasks import register_task_tools
from .workspace import register_workspace_tools

__all__ = [
    "ToolContext",
    "build_page_request",
    "register_all_tools",
    "tool_error",
    "tool_failure",
    "tool_not_found",
    "tool_success",
]


def register_all_tools(mcp: FastMCP, ctx: ToolContext) -> None:
    register_workspace_tools(mcp, ctx)
    register_repository_tools(mcp, ctx)
    register_pull_request_tools(mcp, ctx)
    register_comment_tools(mcp, ctx)
    register_diff_tools(mcp, ctx)
    register_task_tools(mcp, ctx)
    register_ref_tools(mcp, ctx)
