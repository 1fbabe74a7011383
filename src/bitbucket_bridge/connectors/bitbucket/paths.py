"""Dialect-specific request paths for Bitbucket Cloud and Data Center.

Cloud addresses repositories as /repositories/{workspace}/{repo_slug}/...
Data Center addresses them as /projects/{projectKey}/repos/{repositorySlug}/...

Every method is a pure function of the dialect and its arguments. Paths are
relative to the API root and start with a slash.

References:
- Cloud: https://developer.atlassian.com/cloud/bitbucket/rest/
- Data Center: https://developer.atlassian.com/server/bitbucket/rest/
"""

from typing import Any

from .dialect import Dialect

__all__ = ["PathBuilder"]


class PathBuilder:
    """Build request paths for one Bitbucket dialect.

    Example:
        >>> paths = PathBuilder(Dialect.DATA_CENTER)
        >>> paths.branches("PROJ", "my-repo")
        '/projects/PROJ/repos/my-repo/branches'
    """

    def __init__(self, dialect: Dialect) -> None:
        self._dialect = Dialect(dialect)

    def __repr__(self) -> str:
        return f"PathBuilder({self._dialect.value!r})"

    @property
    def dialect(self) -> Dialect:
        return self._dialect

    @property
    def is_cloud(self) -> bool:
        return self._dialect is Dialect.CLOUD

    @property
    def is_data_center(self) -> bool:
        return self._dialect is Dialect.DATA_CENTER

    # --- Query conventions ---

    def name_filter(self, value: str) -> dict[str, Any]:
        """Query parameters that filter a listing by (partial) name.

        Cloud uses its BBQL search syntax on `q`; Data Center takes a plain
        substring on `filterText`. The value is passed through as-is and only
        receives standard query-string encoding.
        """
        if self.is_cloud:
            return {"q": f'name ~ "{value}"'}
        return {"filterText": value}

    # --- Account & workspace ---

    def current_user(self) -> str:
        # Data Center has no "current user" resource; application-properties
        # is the cheapest authenticated endpoint.
        return "/user" if self.is_cloud else "/application-properties"

    def workspace(self, workspace: str) -> str:
        """Workspace (Cloud) or project (Data Center)."""
        if self.is_cloud:
            return f"/workspaces/{workspace}"
        return f"/projects/{workspace}"

    # --- Repositories ---

    def repositories(self, workspace: str) -> str:
        if self.is_cloud:
            return f"/repositories/{workspace}"
        return f"/projects/{workspace}/repos"

    def repository_search(self) -> str:
        """Instance-wide repository listing.

        Data Center's project-scoped /repos ignores name filters; the global
        /repos endpoint accepts `name` and `projectkey`.
        """
        return "/repositories" if self.is_cloud else "/repos"

    def repository(self, workspace: str, repo_slug: str) -> str:
        if self.is_cloud:
            return f"/repositories/{workspace}/{repo_slug}"
        return f"/projects/{workspace}/repos/{repo_slug}"

    def branches(self, workspace: str, repo_slug: str) -> str:
        base = self.repository(workspace, repo_slug)
        return f"{base}/refs/branches" if self.is_cloud else f"{base}/branches"

    def tags(self, workspace: str, repo_slug: str) -> str:
        base = self.repository(workspace, repo_slug)
        return f"{base}/refs/tags" if self.is_cloud else f"{base}/tags"

    # --- Pull requests ---

    def pull_requests(self, workspace: str, repo_slug: str) -> str:
        base = self.repository(workspace, repo_slug)
        return f"{base}/pullrequests" if self.is_cloud else f"{base}/pull-requests"

    def pull_request(self, workspace: str, repo_slug: str, pr_id: int) -> str:
        return f"{self.pull_requests(workspace, repo_slug)}/{pr_id}"

    def pull_request_activity(self, workspace: str, repo_slug: str, pr_id: int) -> str:
        base = self.pull_request(workspace, repo_slug, pr_id)
        return f"{base}/activity" if self.is_cloud else f"{base}/activities"

    def pull_request_commits(self, workspace: str, repo_slug: str, pr_id: int) -> str:
        return f"{self.pull_request(workspace, repo_slug, pr_id)}/commits"

    def pull_request_statuses(self, workspace: str, repo_slug: str, pr_id: int) -> str:
        # Cloud only; Data Center keeps build status per commit
        return f"{self.pull_request(workspace, repo_slug, pr_id)}/statuses"

    def pull_request_comments(self, workspace: str, repo_slug: str, pr_id: int) -> str:
        return f"{self.pull_request(workspace, repo_slug, pr_id)}/comments"

    def pull_request_comment(
        self, workspace: str, repo_slug: str, pr_id: int, comment_id: int
    ) -> str:
        return f"{self.pull_request_comments(workspace, repo_slug, pr_id)}/{comment_id}"

    def pull_request_diff(self, workspace: str, repo_slug: str, pr_id: int) -> str:
        return f"{self.pull_request(workspace, repo_slug, pr_id)}/diff"

    def pull_request_diffstat(self, workspace: str, repo_slug: str, pr_id: int) -> str:
        """Diffstat (Cloud) or changed-files listing (Data Center)."""
        base = self.pull_request(workspace, repo_slug, pr_id)
        return f"{base}/diffstat" if self.is_cloud else f"{base}/changes"

    def pull_request_patch(self, workspace: str, repo_slug: str, pr_id: int) -> str:
        # Cloud only; Data Center servers answer 404
        return f"{self.pull_request(workspace, repo_slug, pr_id)}/patch"

    def pull_request_tasks(self, workspace: str, repo_slug: str, pr_id: int) -> str:
        """Tasks (Cloud) or blocker comments (Data Center)."""
        base = self.pull_request(workspace, repo_slug, pr_id)
        return f"{base}/tasks" if self.is_cloud else f"{base}/blocker-comments"

    def pull_request_task(
        self, workspace: str, repo_slug: str, pr_id: int, task_id: int
    ) -> str:
        return f"{self.pull_request_tasks(workspace, repo_slug, pr_id)}/{task_id}"
