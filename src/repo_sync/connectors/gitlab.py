"""GitLab connector."""

from typing import Any
from urllib.parse import quote

import structlog

from repo_sync.connectors.base import CodeHostConnector, RawProject, Scope, with_credentials
from repo_sync.connectors.pagination import Page, paginate
from repo_sync.core.models.repository import CodeHost, GitRepository

logger = structlog.get_logger(__name__)

GITLAB_CLOUD_HOSTNAME = "gitlab.com"
PER_PAGE = 100


class GitLabConnector(CodeHostConnector):
    """Lists projects of GitLab groups (including subgroups) and users."""

    code_host = CodeHost.GITLAB
    display_name = "GitLab"
    homepage = "https://gitlab.com"

    @property
    def api_url(self) -> str:
        return f"{self._base_url}/api/v4"

    def _auth_headers(self) -> dict[str, str]:
        return {"PRIVATE-TOKEN": self._token} if self._token else {}

    def clone_url(self, url: str) -> str:
        return with_credentials(url, "oauth2", self._token) if self._token else url

    def scopes(self) -> list[Scope]:
        scopes: list[Scope] = []
        if self._config.all:
            if self._hostname == GITLAB_CLOUD_HOSTNAME:
                logger.warning(
                    "Ignoring 'all' for gitlab.com; list groups, users or projects instead"
                )
            else:
                scopes.append(Scope("all"))
        scopes += [Scope("group", group) for group in self._config.groups]
        scopes += [Scope("user", user) for user in self._config.users]
        return scopes

    def project_identifiers(self) -> list[str]:
        return list(self._config.projects)

    def exclude_patterns(self) -> list[str]:
        return list(self._config.exclude.projects)

    async def _list(self, url: str, what: str, **params: Any) -> list[dict[str, Any]]:
        async def fetch_page(page: int) -> Page:
            response = await self._get(
                url, what, params={**params, "per_page": PER_PAGE, "page": page}
            )
            return Page(self._json(response, what), self._total_count(response, "x-total"))

        return await paginate(fetch_page)

    async def list_for_scope(self, scope: Scope) -> list[RawProject]:
        if scope.kind == "all":
            return await self._list("/projects", "all projects")
        if scope.kind == "group":
            group = quote(scope.name, safe="")
            return await self._list(
                f"/groups/{group}/projects",
                f"projects of group {scope.name}",
                include_subgroups="true",
            )
        if scope.kind == "user":
            return await self._list(
                f"/users/{quote(scope.name, safe='')}/projects",
                f"projects of user {scope.name}",
            )
        raise ValueError(f"Unsupported GitLab scope: {scope.kind}")

    async def get_project(self, identifier: str) -> RawProject:
        return await self._get_json(
            f"/projects/{quote(identifier, safe='')}", f"project {identifier}"
        )

    async def list_branches(self, project: RawProject) -> list[str]:
        branches = await self._list(
            f"/projects/{project['id']}/repository/branches",
            f"branches of {project['path_with_namespace']}",
        )
        return [branch["name"] for branch in branches]

    async def list_tags(self, project: RawProject) -> list[str]:
        tags = await self._list(
            f"/projects/{project['id']}/repository/tags",
            f"tags of {project['path_with_namespace']}",
        )
        return [tag["name"] for tag in tags]

    def record_key(self, project: RawProject) -> str:
        return str(project.get("id", project["path_with_namespace"]))

    def to_repository(self, project: RawProject) -> GitRepository:
        name = project["path_with_namespace"]
        repo_id = f"{self._hostname}/{name}"
        is_fork = project.get("forked_from_project") is not None
        is_archived = bool(project.get("archived", False))
        is_stale = bool(
            project.get("marked_for_deletion_on") or project.get("marked_for_deletion_at")
        )

        metadata = self.base_metadata(
            name=repo_id,
            web_url=project.get("web_url"),
            is_fork=is_fork,
            is_archived=is_archived,
            is_public=project.get("visibility") == "public",
        )
        if project.get("star_count") is not None:
            metadata["zoekt.gitlab-stars"] = str(project["star_count"])
        if project.get("forks_count") is not None:
            metadata["zoekt.gitlab-forks"] = str(project["forks_count"])

        return GitRepository(
            id=repo_id,
            name=name,
            code_host=self.code_host,
            clone_url=self.clone_url(project["http_url_to_repo"]),
            path=self.repo_path(repo_id),
            is_fork=is_fork,
            is_archived=is_archived,
            is_stale=is_stale,
            git_config_metadata=metadata,
        )
