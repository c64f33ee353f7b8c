"""Gerrit connector."""

import json
from typing import Any
from urllib.parse import quote

import httpx

from repo_sync.connectors.base import CodeHostConnector, RawProject, Scope
from repo_sync.core.exceptions import ProtocolError
from repo_sync.core.models.repository import CodeHost, GitRepository

# Gerrit prefixes JSON responses to defeat cross-site script inclusion.
XSSI_PREFIX = ")]}'"

# Internal projects every Gerrit server carries; never indexed.
INTERNAL_PROJECTS = frozenset({"All-Projects", "All-Users", "All-Avatars", "All-Archived-Projects"})

BRANCH_PREFIX = "refs/heads/"
TAG_PREFIX = "refs/tags/"


class GerritConnector(CodeHostConnector):
    """Lists every project of a Gerrit server.

    Gerrit returns the full project map in a single response, so there is
    nothing to paginate. ``projects`` in the config acts as an include list.
    """

    code_host = CodeHost.GERRIT
    display_name = "Gerrit"
    homepage = "https://www.gerritcodereview.com/"

    @property
    def api_url(self) -> str:
        return self._base_url

    def scopes(self) -> list[Scope]:
        return [Scope("all")]

    def project_identifiers(self) -> list[str]:
        return []

    def include_patterns(self) -> list[str]:
        return list(self._config.projects)

    def exclude_patterns(self) -> list[str]:
        return list(self._config.exclude.projects)

    def exclude_forks(self) -> bool:
        return False

    def exclude_archived(self) -> bool:
        return False

    def _decode(self, response: httpx.Response, what: str) -> Any:
        body = response.text
        if body.startswith(XSSI_PREFIX):
            body = body[len(XSSI_PREFIX):]
        try:
            return json.loads(body)
        except json.JSONDecodeError as exc:
            raise ProtocolError(
                f"Failed to parse {what} from Gerrit: {exc}",
                provider=self.display_name,
                details={"url": str(response.request.url)},
            ) from exc

    async def list_for_scope(self, scope: Scope) -> list[RawProject]:
        response = await self._get("/projects/", "projects")
        projects = self._decode(response, "projects")
        return [
            {"name": name, **info}
            for name, info in projects.items()
            if name not in INTERNAL_PROJECTS
        ]

    async def get_project(self, identifier: str) -> RawProject:
        response = await self._get(f"/projects/{quote(identifier, safe='')}", f"project {identifier}")
        return {"name": identifier, **self._decode(response, f"project {identifier}")}

    async def _list_refs(self, project: RawProject, kind: str, prefix: str) -> list[str]:
        name = project["name"]
        response = await self._get(
            f"/projects/{quote(name, safe='')}/{kind}/", f"{kind} of {name}"
        )
        refs = self._decode(response, f"{kind} of {name}")
        return [ref["ref"][len(prefix):] for ref in refs if ref["ref"].startswith(prefix)]

    async def list_branches(self, project: RawProject) -> list[str]:
        return await self._list_refs(project, "branches", BRANCH_PREFIX)

    async def list_tags(self, project: RawProject) -> list[str]:
        return await self._list_refs(project, "tags", TAG_PREFIX)

    def record_key(self, project: RawProject) -> str:
        return project["name"]

    def to_repository(self, project: RawProject) -> GitRepository:
        name = project["name"]
        repo_id = f"{self._hostname}/{name}"
        state = project.get("state", "ACTIVE")
        is_archived = state == "READ_ONLY"

        web_links = project.get("web_links") or []
        web_url = web_links[0]["url"] if web_links else None
        if web_url and web_url.startswith("/"):
            web_url = f"{self._base_url}{web_url}"

        return GitRepository(
            id=repo_id,
            name=name,
            code_host=self.code_host,
            clone_url=f"{self._base_url}/{quote(name)}",
            path=self.repo_path(repo_id),
            is_archived=is_archived,
            is_stale=state == "HIDDEN",
            git_config_metadata=self.base_metadata(
                name=repo_id,
                web_url=web_url,
                is_fork=False,
                is_archived=is_archived,
                is_public=True,
                web_url_type="gitiles",
            ),
        )
