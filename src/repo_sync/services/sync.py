"""Repository discovery and synchronization service."""

import asyncio
from collections.abc import Awaitable
from pathlib import Path

import structlog

from repo_sync.config.settings import Settings
from repo_sync.config.sources import LocalConfig, SourceConfig, SourcesConfig, load_sources_config
from repo_sync.connectors.factory import ConnectorFactory
from repo_sync.connectors.local import get_local_repo_from_config
from repo_sync.core.exceptions import CancelledError, ConfigError, RepoSyncError
from repo_sync.core.models.repository import GitRepository, LocalRepository, Repository
from repo_sync.sync.cancellation import CancellationToken
from repo_sync.sync.git import mirror_repository
from repo_sync.sync.indexer import index_git_repository, index_local_repository
from repo_sync.telemetry import Telemetry
from repo_sync.utils.timing import measure
from repo_sync.watcher import WatcherRegistry, WatchFactory, watch_directory

logger = structlog.get_logger(__name__)


class SyncService:
    """Turns configured sources into mirrored, indexed repositories.

    Failures are isolated: a source that cannot be listed contributes no
    repositories but does not stop the others, and a repository that
    cannot be synchronized does not affect the rest of the pass.
    """

    def __init__(
        self,
        settings: Settings,
        sources: SourcesConfig,
        base_dir: str | Path,
        factory: ConnectorFactory | None = None,
        telemetry: Telemetry | None = None,
        watch: WatchFactory = watch_directory,
        config_path: str | Path | None = None,
    ) -> None:
        self._settings = settings
        self._sources = sources
        self._base_dir = Path(base_dir)
        self._factory = factory or ConnectorFactory(settings)
        self._telemetry = telemetry or Telemetry(settings)
        self._config_path = Path(config_path) if config_path is not None else None
        self.registry = WatcherRegistry(self.on_local_change, watch=watch)

    @classmethod
    def from_config_file(cls, settings: Settings, config_path: str | Path, **kwargs) -> "SyncService":
        """Load sources from ``config_path``; relative local paths resolve against its directory."""
        path = Path(config_path).resolve()
        return cls(
            settings,
            load_sources_config(path),
            base_dir=path.parent,
            config_path=path,
            **kwargs,
        )

    async def discover(self) -> list[Repository]:
        """Build the canonical repository list from every configured source."""
        sources = self._sources.repos
        results = await asyncio.gather(
            *(self._discover_source(source) for source in sources),
            return_exceptions=True,
        )

        repos: dict[str, Repository] = {}
        for source, result in zip(sources, results):
            if isinstance(result, RepoSyncError):
                logger.error(
                    "Failed to discover repositories",
                    source=source.type,
                    error=result.message,
                    details=result.details,
                )
                self._telemetry.capture("source_discovery_failed", {"type": source.type})
                continue
            if isinstance(result, Exception):
                logger.error(
                    "Unexpected error discovering repositories",
                    source=source.type,
                    error=str(result),
                    exc_info=result,
                )
                self._telemetry.capture("source_discovery_failed", {"type": source.type})
                continue
            if isinstance(result, BaseException):
                raise result
            for repo in result:
                repos.setdefault(repo.id, repo)

        logger.info("Discovery complete", sources=len(sources), repos=len(repos))
        return list(repos.values())

    async def _discover_source(self, source: SourceConfig) -> list[Repository]:
        if isinstance(source, LocalConfig):
            return [get_local_repo_from_config(source, self._base_dir)]
        async with self._factory.create(source) as connector:
            return list(await connector.get_repos())

    async def sync_repository(
        self, repo: Repository, token: CancellationToken | None = None
    ) -> bool:
        """Mirror (remote only) and index one repository.

        Returns False when the repository is stale and was skipped.

        Raises:
            ProcessError: git or the indexer failed.
            CancelledError: ``token`` was signalled mid-sync.
        """
        if repo.is_stale:
            logger.info("Skipping stale repository", repo=repo.id)
            return False

        if isinstance(repo, GitRepository):
            measured = await measure(self._sync_remote(repo, token))
        else:
            measured = await measure(index_local_repository(repo, self._settings, token=token))

        duration_ms = round(measured.duration_ms)
        logger.info("Repository synced", repo=repo.id, vcs=repo.vcs, duration_ms=duration_ms)
        self._telemetry.capture("repo_synced", {"vcs": repo.vcs, "duration_ms": duration_ms})
        return True

    async def _sync_remote(self, repo: GitRepository, token: CancellationToken | None) -> None:
        await mirror_repository(repo, git_binary=self._settings.git_binary, token=token)
        await index_git_repository(repo, self._settings, token=token)

    async def try_sync_repository(
        self, repo: Repository, token: CancellationToken | None = None
    ) -> str:
        """Sync ``repo`` and report the outcome instead of raising.

        Outcomes are ``synced``, ``skipped``, ``cancelled`` and ``failed``.
        """
        try:
            synced = await self.sync_repository(repo, token)
        except CancelledError:
            logger.info("Sync cancelled", repo=repo.id)
            return "cancelled"
        except RepoSyncError as e:
            logger.error("Failed to sync repository", repo=repo.id, error=e.message, details=e.details)
            self._telemetry.capture("repo_sync_failed", {"vcs": repo.vcs})
            return "failed"
        return "synced" if synced else "skipped"

    async def sync_all(self, repos: list[Repository]) -> dict[str, int]:
        """Synchronize ``repos`` concurrently and summarize the outcomes."""
        semaphore = asyncio.Semaphore(self._settings.sync_concurrency)

        async def bounded(repo: Repository) -> str:
            async with semaphore:
                return await self.try_sync_repository(repo)

        outcomes = await asyncio.gather(*(bounded(repo) for repo in repos))

        summary = {"synced": 0, "skipped": 0, "cancelled": 0, "failed": 0}
        for outcome in outcomes:
            summary[outcome] += 1
        logger.info("Sync pass complete", **summary)
        return summary

    async def on_local_change(self, repo: LocalRepository, token: CancellationToken) -> None:
        """Watcher callback: re-index a local repository after a change."""
        await self.try_sync_repository(repo, token)

    def reload_sources(self) -> None:
        """Re-read the sources file, keeping the current sources if it is invalid."""
        if self._config_path is None:
            return
        try:
            self._sources = load_sources_config(self._config_path)
        except ConfigError as e:
            logger.error("Keeping previous sources", error=e.message, details=e.details)

    async def run(self, stop_event: asyncio.Event) -> None:
        """Run as a daemon until ``stop_event`` is set.

        Every repository is synchronized once, then local repositories are
        watched for changes while remote repositories are re-discovered and
        re-synchronized every ``reindex_interval`` seconds.
        """
        try:
            await self._until_stopped(self._initial_pass(), stop_event)
            while not stop_event.is_set():
                try:
                    await asyncio.wait_for(
                        stop_event.wait(), timeout=self._settings.reindex_interval
                    )
                except asyncio.TimeoutError:
                    await self._until_stopped(self._periodic_pass(), stop_event)
        finally:
            await self.registry.close()
            logger.info("Sync service stopped")

    async def _initial_pass(self) -> None:
        repos = await self.discover()
        await self.sync_all(repos)
        self.registry.register_all(repos)

    async def _periodic_pass(self) -> None:
        self.reload_sources()
        repos = await self.discover()
        await self.sync_all(
            [
                r
                for r in repos
                if isinstance(r, GitRepository) or not self.registry.is_watching(r.path)
            ]
        )
        await self.registry.reconcile(repos)

    async def _until_stopped(self, coro: Awaitable[None], stop_event: asyncio.Event) -> None:
        """Await ``coro``, abandoning it as soon as ``stop_event`` is set."""
        work = asyncio.ensure_future(coro)
        stopped = asyncio.ensure_future(stop_event.wait())
        try:
            await asyncio.wait({work, stopped}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopped.cancel()
            if not work.done():
                logger.info("Abandoning sync pass")
                work.cancel()
                await asyncio.gather(work, return_exceptions=True)
        if not work.cancelled():
            work.result()

    async def aclose(self) -> None:
        await self.registry.close()
        await self._telemetry.aclose()
