"""Gitea connector."""

from typing import Any

from repo_sync.connectors.base import CodeHostConnector, RawProject, Scope
from repo_sync.connectors.pagination import Page, paginate
from repo_sync.core.models.repository import CodeHost, GitRepository

PAGE_LIMIT = 50


class GiteaConnector(CodeHostConnector):
    """Lists repositories of Gitea organizations and users.

    Gitea reports the size of every listing in the ``x-total-count`` header.
    """

    code_host = CodeHost.GITEA
    display_name = "Gitea"
    homepage = "https://gitea.com"

    @property
    def api_url(self) -> str:
        return f"{self._base_url}/api/v1"

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"token {self._token}"} if self._token else {}

    def scopes(self) -> list[Scope]:
        return [Scope("org", org) for org in self._config.orgs] + [
            Scope("user", user) for user in self._config.users
        ]

    def project_identifiers(self) -> list[str]:
        return list(self._config.repos)

    async def _list(self, url: str, what: str) -> list[dict[str, Any]]:
        async def fetch_page(page: int) -> Page:
            response = await self._get(url, what, params={"page": page, "limit": PAGE_LIMIT})
            return Page(
                self._json(response, what), self._total_count(response, "x-total-count")
            )

        return await paginate(fetch_page)

    async def list_for_scope(self, scope: Scope) -> list[RawProject]:
        if scope.kind == "org":
            return await self._list(f"/orgs/{scope.name}/repos", f"repositories of org {scope.name}")
        if scope.kind == "user":
            return await self._list(
                f"/users/{scope.name}/repos", f"repositories of user {scope.name}"
            )
        raise ValueError(f"Unsupported Gitea scope: {scope.kind}")

    async def get_project(self, identifier: str) -> RawProject:
        return await self._get_json(f"/repos/{identifier}", f"repository {identifier}")

    async def list_branches(self, project: RawProject) -> list[str]:
        name = project["full_name"]
        branches = await self._list(f"/repos/{name}/branches", f"branches of {name}")
        return [branch["name"] for branch in branches]

    async def list_tags(self, project: RawProject) -> list[str]:
        name = project["full_name"]
        tags = await self._list(f"/repos/{name}/tags", f"tags of {name}")
        return [tag["name"] for tag in tags]

    def record_key(self, project: RawProject) -> str:
        return str(project.get("id", project["full_name"]))

    def to_repository(self, project: RawProject) -> GitRepository:
        repo_id = f"{self._hostname}/{project['full_name']}"
        is_fork = bool(project.get("fork", False))
        is_archived = bool(project.get("archived", False))

        metadata = self.base_metadata(
            name=repo_id,
            web_url=project.get("html_url"),
            is_fork=is_fork,
            is_archived=is_archived,
            is_public=not project.get("private", False),
        )
        if project.get("stars_count") is not None:
            metadata["zoekt.gitea-stars"] = str(project["stars_count"])
        if project.get("forks_count") is not None:
            metadata["zoekt.gitea-forks"] = str(project["forks_count"])

        return GitRepository(
            id=repo_id,
            name=project["full_name"],
            code_host=self.code_host,
            clone_url=self.clone_url(project["clone_url"]),
            path=self.repo_path(repo_id),
            is_fork=is_fork,
            is_archived=is_archived,
            git_config_metadata=metadata,
        )
