"""Base class for code host connectors."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar, Literal, TypeVar
from urllib.parse import urlsplit, urlunsplit

import httpx
import structlog

from repo_sync.connectors.filters import filter_repos, resolve_revisions
from repo_sync.core.exceptions import ProtocolError
from repo_sync.core.models.repository import CodeHost, GitRepository
from repo_sync.utils.timing import measure

logger = structlog.get_logger(__name__)

T = TypeVar("T")

RawProject = dict[str, Any]


@dataclass(frozen=True)
class Scope:
    """A listing scope: an organization, group or user, or every project."""

    kind: Literal["org", "group", "user", "all"]
    name: str | None = None


def marshal_bool(value: bool) -> str:
    return "true" if value else "false"


def with_credentials(url: str, username: str, password: str | None = None) -> str:
    """Embed credentials into an http(s) clone URL."""
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        return url
    userinfo = username if password is None else f"{username}:{password}"
    netloc = f"{userinfo}@{parts.hostname}"
    if parts.port:
        netloc += f":{parts.port}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


async def gather_all(aws: Iterable[Awaitable[T]]) -> list[T]:
    """Like ``asyncio.gather`` but cancels the remaining work on first failure."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class CodeHostConnector(ABC):
    """Turns one configured code host source into canonical repositories.

    Subclasses implement the provider capability set (list by scope, get a
    single project, list branches, list tags) and the mapping from a raw
    provider record to a ``GitRepository``. ``get_repos`` composes them:
    resolve scopes, de-duplicate, normalize, filter, resolve revisions.
    Any failure aborts the whole source; no partial list is returned.
    """

    code_host: ClassVar[CodeHost]
    display_name: ClassVar[str]
    homepage: ClassVar[str]

    def __init__(
        self,
        config: Any,
        repos_root: str | Path,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._config = config
        self._repos_root = Path(repos_root)
        self._token = token
        self._base_url = config.url.rstrip("/")
        self._hostname = urlsplit(self._base_url).hostname or self._base_url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    # --- provider capability set ---

    @property
    @abstractmethod
    def api_url(self) -> str:
        """Root URL of the provider's REST API."""

    @abstractmethod
    def scopes(self) -> list[Scope]:
        """Scopes configured for this source."""

    @abstractmethod
    def project_identifiers(self) -> list[str]:
        """Explicitly configured project identifiers."""

    @abstractmethod
    async def list_for_scope(self, scope: Scope) -> list[RawProject]:
        """List raw project records in a scope."""

    @abstractmethod
    async def get_project(self, identifier: str) -> RawProject:
        """Fetch one raw project record by qualified name."""

    @abstractmethod
    async def list_branches(self, project: RawProject) -> list[str]:
        """List branch names of a project."""

    @abstractmethod
    async def list_tags(self, project: RawProject) -> list[str]:
        """List tag names of a project."""

    @abstractmethod
    def record_key(self, project: RawProject) -> str:
        """Provider-native unique identifier used for de-duplication."""

    @abstractmethod
    def to_repository(self, project: RawProject) -> GitRepository:
        """Map a raw provider record into the canonical model."""

    # --- filtering hooks ---

    def include_patterns(self) -> list[str]:
        return []

    def exclude_patterns(self) -> list[str]:
        return list(self._config.exclude.repos)

    def exclude_forks(self) -> bool:
        return self._config.exclude.forks

    def exclude_archived(self) -> bool:
        return self._config.exclude.archived

    def _auth_headers(self) -> dict[str, str]:
        return {}

    # --- shared behaviour ---

    def repo_path(self, repo_id: str) -> str:
        return str(self._repos_root / f"{repo_id}.git")

    def clone_url(self, url: str) -> str:
        return with_credentials(url, self._token) if self._token else url

    async def get_repos(self) -> list[GitRepository]:
        """Discover, normalize and filter every repository of this source."""
        measured = await measure(self._collect_projects())
        projects = measured.data
        logger.debug(
            "Fetched projects",
            provider=self.display_name,
            count=len(projects),
            duration_ms=round(measured.duration_ms),
        )

        by_id: dict[str, RawProject] = {}
        candidates = []
        with self._malformed("project record"):
            for project in projects:
                repo = self.to_repository(project)
                by_id[repo.id] = project
                candidates.append(repo)

        repos = filter_repos(
            candidates,
            include=self.include_patterns(),
            exclude=self.exclude_patterns(),
            exclude_forks=self.exclude_forks(),
            exclude_archived=self.exclude_archived(),
        )

        revisions = self._config.revisions
        if revisions and (revisions.branches or revisions.tags):
            repos = await gather_all(
                self._resolve_revisions(repo, by_id[repo.id]) for repo in repos
            )

        logger.info(
            "Discovered repositories",
            provider=self.display_name,
            url=self._base_url,
            count=len(repos),
        )
        return repos

    async def _collect_projects(self) -> list[RawProject]:
        """Resolve scopes and identifiers into de-duplicated raw records."""
        with self._malformed("project listing"):
            batches = await gather_all(self.list_for_scope(scope) for scope in self.scopes())
            singles = await gather_all(
                self.get_project(identifier) for identifier in self.project_identifiers()
            )

            unique: dict[str, RawProject] = {}
            for batch in [*batches, singles]:
                for project in batch:
                    unique.setdefault(self.record_key(project), project)
        return list(unique.values())

    async def _resolve_revisions(
        self, repo: GitRepository, project: RawProject
    ) -> GitRepository:
        revisions = self._config.revisions
        update: dict[str, list[str]] = {}
        with self._malformed(f"revisions of {repo.name}"):
            if revisions.branches:
                branches = await self.list_branches(project)
                update["branches"] = resolve_revisions(revisions.branches, branches)
            if revisions.tags:
                tags = await self.list_tags(project)
                update["tags"] = resolve_revisions(revisions.tags, tags)
        logger.debug("Resolved revisions", repo=repo.name, **update)
        return repo.model_copy(update=update)

    async def _get(
        self, url: str, what: str, params: dict[str, Any] | None = None
    ) -> httpx.Response:
        """GET ``url`` (relative to ``api_url``) and raise ``ProtocolError`` on failure."""
        url = f"{self.api_url}{url}"
        try:
            response = await self._client.get(url, params=params, headers=self._auth_headers())
        except httpx.HTTPError as exc:
            raise ProtocolError(
                f"Failed to fetch {what} from {self.display_name}: {exc}",
                provider=self.display_name,
                details={"url": url},
            ) from exc

        if response.is_error:
            raise ProtocolError(
                f"Failed to fetch {what} from {self.display_name}: "
                f"{response.status_code} {response.reason_phrase}",
                provider=self.display_name,
                status_code=response.status_code,
                details={"url": str(response.request.url)},
            )
        return response

    def _json(self, response: httpx.Response, what: str) -> Any:
        """Decode a JSON response body, raising ``ProtocolError`` when it is not JSON."""
        try:
            return response.json()
        except ValueError as exc:
            raise ProtocolError(
                f"Failed to parse {what} from {self.display_name}: {exc}",
                provider=self.display_name,
                details={"url": str(response.request.url)},
            ) from exc

    async def _get_json(
        self, url: str, what: str, params: dict[str, Any] | None = None
    ) -> Any:
        return self._json(await self._get(url, what, params=params), what)

    def _total_count(self, response: httpx.Response, header: str) -> int | None:
        """The total declared in ``header``, or None when it is absent."""
        value = response.headers.get(header)
        if value is None:
            return None
        try:
            return int(value)
        except ValueError as exc:
            raise ProtocolError(
                f"Invalid {header} header from {self.display_name}: {value!r}",
                provider=self.display_name,
                details={"url": str(response.request.url), "header": header, "value": value},
            ) from exc

    @contextmanager
    def _malformed(self, what: str) -> Iterator[None]:
        """Turn shape errors while reading provider records into ``ProtocolError``."""
        try:
            yield
        except (KeyError, IndexError, TypeError, AttributeError, ValueError) as exc:
            raise ProtocolError(
                f"Malformed {what} from {self.display_name}: {exc!r}",
                provider=self.display_name,
                details={"url": self._base_url},
            ) from exc

    def base_metadata(
        self,
        name: str,
        web_url: str | None,
        is_fork: bool,
        is_archived: bool,
        is_public: bool,
        web_url_type: str | None = None,
    ) -> dict[str, str]:
        """Index hints written into the clone's git config."""
        return {
            "zoekt.web-url-type": web_url_type or self.code_host.value,
            "zoekt.web-url": web_url or self.homepage,
            "zoekt.name": name,
            "zoekt.archived": marshal_bool(is_archived),
            "zoekt.fork": marshal_bool(is_fork),
            "zoekt.public": marshal_bool(is_public),
        }

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "CodeHostConnector":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
