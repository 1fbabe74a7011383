"""Uniform result dicts returned by every tool.

Success: {"success": True, "data": ..., "message"?: str}
Failure: {"success": False, "error": str, "not_found"?: True}
"""

import logging
from typing import Any

from ..connectors.bitbucket.client import BitbucketClientError, ErrorKind, PageResult
from ..metrics import tool_calls_total

logger = logging.getLogger("bitbucket_bridge.tools")

__all__ = [
    "WORKSPACE_REQUIRED",
    "page_message",
    "record_tool_call",
    "tool_error",
    "tool_failure",
    "tool_not_found",
    "tool_success",
]

WORKSPACE_REQUIRED = (
    "Workspace/project is required. Provide it as a parameter or set BITBUCKET_WORKSPACE."
)

_CREDENTIAL_HINT = "Check that BITBUCKET_TOKEN is valid and has access to this resource."


def tool_success(data: Any, message: str | None = None) -> dict[str, Any]:
    result: dict[str, Any] = {"success": True, "data": data}
    if message:
        result["message"] = message
    return result


def tool_error(error: BaseException | str) -> dict[str, Any]:
    return {"success": False, "error": str(error)}


def tool_not_found(resource: str, identifier: str) -> dict[str, Any]:
    return {"success": False, "error": f"{resource} not found: {identifier}", "not_found": True}


def tool_failure(error: Exception, resource: str | None = None, identifier: str | None = None) -> dict[str, Any]:
    """Convert a client or validation error into a failure result.

    NOT_FOUND maps to tool_not_found() when the caller names the resource;
    UNAUTHORIZED gets a credential hint appended.
    """
    if isinstance(error, BitbucketClientError):
        if error.kind is ErrorKind.NOT_FOUND and resource is not None:
            return tool_not_found(resource, identifier or "")
        if error.kind is ErrorKind.UNAUTHORIZED:
            return tool_error(f"{error.message} {_CREDENTIAL_HINT}")
        return tool_error(error.message)
    return tool_error(error)


def page_message(result: PageResult) -> str | None:
    """Describe what a listing left out, None when it is complete."""
    if result.truncated:
        return f"Results truncated at {len(result.items)} items."
    if result.has_more:
        return f"Showing {len(result.items)} items. More are available: request the next page or set all=true."
    return None


def record_tool_call(tool: str, result: dict[str, Any]) -> dict[str, Any]:
    """Count the call by outcome and pass the result through."""
    if result.get("success"):
        status = "success"
    elif result.get("not_found"):
        status = "not_found"
    else:
        status = "error"
        logger.info("tool_call_failed", extra={"tool": tool, "error": result.get("error")})
    tool_calls_total.labels(tool=tool, status=status).inc()
    return result
