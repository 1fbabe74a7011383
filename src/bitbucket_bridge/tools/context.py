"""Shared state handed to every tool function."""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Annotated, Any

from mcp.types import ToolAnnotations
from pydantic import Field

from ..connectors.bitbucket.client import BitbucketClient, PageRequest, PageResult
from ..connectors.bitbucket.paths import PathBuilder

__all__ = [
    "AllPagesArg",
    "PageArg",
    "PageLenArg",
    "READ_ONLY",
    "ToolContext",
    "WorkspaceArg",
    "build_page_request",
]

READ_ONLY = ToolAnnotations(readOnlyHint=True)

# Argument types shared by the tool signatures (exposed in the MCP input schema)
WorkspaceArg = Annotated[
    str | None,
    Field(description="Workspace (Cloud) or project key (Data Center). Uses the default if omitted."),
]
PageLenArg = Annotated[int | None, Field(ge=1, le=100, description="Items per page (max 100)")]
PageArg = Annotated[int | None, Field(ge=1, description="Page number (1-based)")]
AllPagesArg = Annotated[bool, Field(description="Fetch all pages (capped at 1000 items)")]


@dataclass
class ToolContext:
    """Client, path builder and default workspace for one server.

    Attributes:
        client: Request client (its dialect drives pagination)
        paths: Path builder for the same dialect
        default_workspace: Used when a tool call omits `workspace`
    """

    client: BitbucketClient
    paths: PathBuilder
    default_workspace: str | None = None

    @classmethod
    def for_client(cls, client: BitbucketClient, default_workspace: str | None = None) -> "ToolContext":
        return cls(client=client, paths=PathBuilder(client.dialect), default_workspace=default_workspace)

    def resolve_workspace(self, workspace: str | None) -> str | None:
        if workspace:
            return workspace
        return self.default_workspace or None

    async def fetch_listing(
        self,
        path: str,
        *,
        pagelen: int | None = None,
        page: int | None = None,
        all_pages: bool | None = None,
        query: Mapping[str, Any] | None = None,
    ) -> PageResult:
        """Fetch a listing with tool-level pagination arguments.

        Raises:
            ValueError: pagelen or page out of range
            BitbucketClientError: request failed
        """
        page_request = build_page_request(pagelen, page, all_pages)
        return await self.client.fetch_page(path, page_request, query)


def build_page_request(
    pagelen: int | None = None, page: int | None = None, all_pages: bool | None = None
) -> PageRequest:
    """PageRequest from optional tool arguments. Raises ValueError when out of range."""
    return PageRequest(pagelen=pagelen, page=page, all=bool(all_pages))
