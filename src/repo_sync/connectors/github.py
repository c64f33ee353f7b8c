"""GitHub and GitHub Enterprise connector."""

from typing import Any

from repo_sync.connectors.base import CodeHostConnector, RawProject, Scope
from repo_sync.connectors.pagination import paginate_until_exhausted
from repo_sync.core.models.repository import CodeHost, GitRepository

PER_PAGE = 100


class GitHubConnector(CodeHostConnector):
    """Lists repositories of GitHub organizations and users.

    GitHub does not report total counts on list endpoints, so listings are
    followed through the ``Link: rel="next"`` header.
    """

    code_host = CodeHost.GITHUB
    display_name = "GitHub"
    homepage = "https://github.com"

    @property
    def api_url(self) -> str:
        if self._hostname == "github.com":
            return "https://api.github.com"
        return f"{self._base_url}/api/v3"

    def _auth_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def scopes(self) -> list[Scope]:
        return [Scope("org", org) for org in self._config.orgs] + [
            Scope("user", user) for user in self._config.users
        ]

    def project_identifiers(self) -> list[str]:
        return list(self._config.repos)

    async def _list(self, url: str, what: str, **params: Any) -> list[dict[str, Any]]:
        async def fetch_page(page: int) -> tuple[list[dict[str, Any]], bool]:
            response = await self._get(
                url, what, params={**params, "per_page": PER_PAGE, "page": page}
            )
            return self._json(response, what), "next" in response.links

        return await paginate_until_exhausted(fetch_page)

    async def list_for_scope(self, scope: Scope) -> list[RawProject]:
        if scope.kind == "org":
            return await self._list(
                f"/orgs/{scope.name}/repos", f"repositories of org {scope.name}", type="all"
            )
        if scope.kind == "user":
            return await self._list(
                f"/users/{scope.name}/repos", f"repositories of user {scope.name}", type="all"
            )
        raise ValueError(f"Unsupported GitHub scope: {scope.kind}")

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
        for key, field in (
            ("zoekt.github-stars", "stargazers_count"),
            ("zoekt.github-watchers", "watchers_count"),
            ("zoekt.github-subscribers", "subscribers_count"),
            ("zoekt.github-forks", "forks_count"),
        ):
            if project.get(field) is not None:
                metadata[key] = str(project[field])

        return GitRepository(
            id=repo_id,
            name=project["full_name"],
            code_host=self.code_host,
            clone_url=self.clone_url(project["clone_url"]),
            path=self.repo_path(repo_id),
            is_fork=is_fork,
            is_archived=is_archived,
            is_stale=bool(project.get("disabled", False)),
            git_config_metadata=metadata,
        )
