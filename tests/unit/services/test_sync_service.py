"""Tests for the sync service."""

import asyncio
import json
from pathlib import Path

import httpx
import pytest
import respx

from factories import GitRepositoryFactory, LocalRepositoryFactory
from repo_sync.config.settings import Settings
from repo_sync.config.sources import GitHubConfig, LocalConfig, SourcesConfig
from repo_sync.core.exceptions import CancelledError, ProcessError, ProtocolError
from repo_sync.services import sync as sync_module
from repo_sync.services.sync import SyncService
from repo_sync.sync.cancellation import CancellationToken


class FakeConnector:
    def __init__(self, repos=None, error: Exception | None = None) -> None:
        self._repos = repos or []
        self._error = error
        self.closed = False

    async def get_repos(self):
        if self._error is not None:
            raise self._error
        return self._repos

    async def __aenter__(self) -> "FakeConnector":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.closed = True


class FakeFactory:
    """Hands out a prepared connector per source URL."""

    def __init__(self, connectors: dict[str, FakeConnector]) -> None:
        self.connectors = connectors

    def create(self, config):
        return self.connectors[config.url]


class FakeTelemetry:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    def capture(self, event: str, properties: dict | None = None) -> None:
        self.events.append((event, properties or {}))

    async def aclose(self) -> None:
        pass


class RecordingSteps:
    """Replaces mirror/index steps and records the order they ran in."""

    def __init__(self, fail: dict[str, Exception] | None = None) -> None:
        self.calls: list[tuple[str, str, CancellationToken | None]] = []
        self._fail = fail or {}

    def step(self, name: str):
        async def run(repo, *args, token=None, **kwargs):
            self.calls.append((name, repo.id, token))
            error = self._fail.get(repo.id)
            if error is not None:
                raise error
        return run

    def install(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sync_module, "mirror_repository", self.step("mirror"))
        monkeypatch.setattr(sync_module, "index_git_repository", self.step("index_git"))
        monkeypatch.setattr(sync_module, "index_local_repository", self.step("index_local"))


def idle_watch(path: str, stop_event: asyncio.Event):
    async def changes():
        await stop_event.wait()
        return
        yield

    return changes()


@pytest.fixture
def telemetry() -> FakeTelemetry:
    return FakeTelemetry()


def make_service(settings, sources, base_dir, telemetry, connectors=None) -> SyncService:
    return SyncService(
        settings,
        sources,
        base_dir,
        factory=FakeFactory(connectors or {}),
        telemetry=telemetry,
        watch=idle_watch,
    )


@pytest.mark.unit
class TestDiscover:
    """Tests for SyncService.discover."""

    @pytest.mark.asyncio
    async def test_collects_remote_and_local_repositories(
        self, settings: Settings, tmp_path: Path, telemetry: FakeTelemetry
    ) -> None:
        (tmp_path / "notes").mkdir()
        remote = GitRepositoryFactory()
        connector = FakeConnector([remote])
        sources = SourcesConfig(
            repos=[GitHubConfig(url="https://github.com", orgs=["acme"]), LocalConfig(path="notes")]
        )
        service = make_service(settings, sources, tmp_path, telemetry, {"https://github.com": connector})

        repos = await service.discover()

        assert [repo.vcs for repo in repos] == ["remote", "local"]
        assert repos[0] == remote
        assert repos[1].path == str((tmp_path / "notes").resolve())
        assert connector.closed

    @pytest.mark.asyncio
    async def test_failed_source_does_not_abort_others(
        self, settings: Settings, tmp_path: Path, telemetry: FakeTelemetry
    ) -> None:
        (tmp_path / "notes").mkdir()
        connectors = {
            "https://github.com": FakeConnector(error=ProtocolError("Failed to fetch", provider="GitHub")),
            "https://git.example.com": FakeConnector([GitRepositoryFactory(name="ok/repo")]),
        }
        sources = SourcesConfig(
            repos=[
                GitHubConfig(url="https://github.com", orgs=["acme"]),
                GitHubConfig(url="https://git.example.com", orgs=["ok"]),
                LocalConfig(path="missing"),
                LocalConfig(path="notes"),
            ]
        )
        service = make_service(settings, sources, tmp_path, telemetry, connectors)

        repos = await service.discover()

        assert [repo.name for repo in repos] == ["ok/repo", "notes"]
        assert [event for event, _ in telemetry.events] == [
            "source_discovery_failed",
            "source_discovery_failed",
        ]

    @pytest.mark.asyncio
    async def test_duplicate_ids_keep_first(
        self, settings: Settings, tmp_path: Path, telemetry: FakeTelemetry
    ) -> None:
        repo = GitRepositoryFactory()
        connectors = {
            "https://a.example.com": FakeConnector([repo]),
            "https://b.example.com": FakeConnector([repo.model_copy(update={"name": "copy"})]),
        }
        sources = SourcesConfig(
            repos=[GitHubConfig(url="https://a.example.com"), GitHubConfig(url="https://b.example.com")]
        )
        service = make_service(settings, sources, tmp_path, telemetry, connectors)

        repos = await service.discover()

        assert repos == [repo]

    @pytest.mark.asyncio
    async def test_from_config_file_resolves_against_config_dir(
        self, settings: Settings, tmp_path: Path, telemetry: FakeTelemetry
    ) -> None:
        config_dir = tmp_path / "conf"
        (config_dir / "repo").mkdir(parents=True)
        config_file = config_dir / "repo-sync.json"
        config_file.write_text(json.dumps({"repos": [{"type": "local", "path": "repo"}]}))

        service = SyncService.from_config_file(settings, config_file, telemetry=telemetry)
        [repo] = await service.discover()

        assert repo.path == str((config_dir / "repo").resolve())

    @pytest.mark.asyncio
    @respx.mock
    async def test_malformed_host_response_does_not_abort_local_source(
        self, settings: Settings, tmp_path: Path, telemetry: FakeTelemetry
    ) -> None:
        (tmp_path / "notes").mkdir()
        respx.get("https://api.github.com/orgs/acme/repos").mock(
            return_value=httpx.Response(200, text="<html>maintenance</html>")
        )
        sources = SourcesConfig(repos=[GitHubConfig(orgs=["acme"]), LocalConfig(path="notes")])
        service = SyncService(settings, sources, tmp_path, telemetry=telemetry, watch=idle_watch)

        repos = await service.discover()

        assert [repo.name for repo in repos] == ["notes"]
        assert telemetry.events == [("source_discovery_failed", {"type": "github"})]

    @pytest.mark.asyncio
    async def test_unexpected_source_error_is_isolated(
        self, settings: Settings, tmp_path: Path, telemetry: FakeTelemetry
    ) -> None:
        (tmp_path / "notes").mkdir()
        connectors = {"https://github.com": FakeConnector(error=RuntimeError("boom"))}
        sources = SourcesConfig(
            repos=[GitHubConfig(url="https://github.com", orgs=["acme"]), LocalConfig(path="notes")]
        )
        service = make_service(settings, sources, tmp_path, telemetry, connectors)

        repos = await service.discover()

        assert [repo.name for repo in repos] == ["notes"]
        assert [event for event, _ in telemetry.events] == ["source_discovery_failed"]


@pytest.mark.unit
class TestSyncRepository:
    """Tests for syncing individual repositories."""

    @pytest.mark.asyncio
    async def test_remote_mirrors_then_indexes(
        self, monkeypatch: pytest.MonkeyPatch, settings: Settings, tmp_path: Path, telemetry: FakeTelemetry
    ) -> None:
        steps = RecordingSteps()
        steps.install(monkeypatch)
        service = make_service(settings, SourcesConfig(), tmp_path, telemetry)
        repo = GitRepositoryFactory()
        token = CancellationToken()

        assert await service.sync_repository(repo, token) is True

        assert steps.calls == [("mirror", repo.id, token), ("index_git", repo.id, token)]
        assert telemetry.events[0][0] == "repo_synced"

    @pytest.mark.asyncio
    async def test_local_only_indexes(
        self, monkeypatch: pytest.MonkeyPatch, settings: Settings, tmp_path: Path, telemetry: FakeTelemetry
    ) -> None:
        steps = RecordingSteps()
        steps.install(monkeypatch)
        service = make_service(settings, SourcesConfig(), tmp_path, telemetry)
        repo = LocalRepositoryFactory()

        await service.sync_repository(repo)

        assert steps.calls == [("index_local", repo.id, None)]

    @pytest.mark.asyncio
    async def test_stale_repository_is_skipped(
        self, monkeypatch: pytest.MonkeyPatch, settings: Settings, tmp_path: Path, telemetry: FakeTelemetry
    ) -> None:
        steps = RecordingSteps()
        steps.install(monkeypatch)
        service = make_service(settings, SourcesConfig(), tmp_path, telemetry)

        assert await service.sync_repository(GitRepositoryFactory(is_stale=True)) is False
        assert steps.calls == []

    @pytest.mark.asyncio
    async def test_sync_all_isolates_failures(
        self, monkeypatch: pytest.MonkeyPatch, settings: Settings, tmp_path: Path, telemetry: FakeTelemetry
    ) -> None:
        broken = GitRepositoryFactory()
        superseded = LocalRepositoryFactory()
        steps = RecordingSteps(
            fail={
                broken.id: ProcessError("git clone failed", command=["git", "clone"], returncode=128),
                superseded.id: CancelledError("zoekt-index was cancelled", command=["zoekt-index"]),
            }
        )
        steps.install(monkeypatch)
        service = make_service(settings, SourcesConfig(), tmp_path, telemetry)
        healthy = GitRepositoryFactory()
        stale = LocalRepositoryFactory(is_stale=True)

        summary = await service.sync_all([broken, healthy, superseded, stale])

        assert summary == {"synced": 1, "skipped": 1, "cancelled": 1, "failed": 1}
        assert ("index_git", healthy.id, None) in steps.calls
        events = [event for event, _ in telemetry.events]
        assert events.count("repo_sync_failed") == 1
        assert events.count("repo_synced") == 1


@pytest.mark.unit
class TestRun:
    """Tests for the daemon loop."""

    @pytest.mark.asyncio
    async def test_initial_sync_then_watch_until_stopped(
        self, monkeypatch: pytest.MonkeyPatch, settings: Settings, tmp_path: Path, telemetry: FakeTelemetry
    ) -> None:
        (tmp_path / "notes").mkdir()
        steps = RecordingSteps()
        steps.install(monkeypatch)
        remote = GitRepositoryFactory()
        sources = SourcesConfig(
            repos=[GitHubConfig(url="https://github.com"), LocalConfig(path="notes")]
        )
        service = make_service(
            settings, sources, tmp_path, telemetry, {"https://github.com": FakeConnector([remote])}
        )
        local_path = str((tmp_path / "notes").resolve())
        stop_event = asyncio.Event()

        task = asyncio.create_task(service.run(stop_event))
        for _ in range(200):
            if service.registry.is_watching(local_path):
                break
            await asyncio.sleep(0.01)

        assert service.registry.is_watching(local_path)
        assert sorted(name for name, _, _ in steps.calls) == ["index_git", "index_local", "mirror"]

        stop_event.set()
        await asyncio.wait_for(task, timeout=5)
        assert service.registry.watched_paths == []

    @pytest.mark.asyncio
    async def test_periodic_resync_of_remote_repositories(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path, telemetry: FakeTelemetry
    ) -> None:
        settings = Settings(_env_file=None, data_dir=str(tmp_path / "data"), reindex_interval=0.05)
        steps = RecordingSteps()
        steps.install(monkeypatch)
        remote = GitRepositoryFactory()
        sources = SourcesConfig(repos=[GitHubConfig(url="https://github.com")])
        service = make_service(
            settings, sources, tmp_path, telemetry, {"https://github.com": FakeConnector([remote])}
        )
        stop_event = asyncio.Event()

        task = asyncio.create_task(service.run(stop_event))
        for _ in range(200):
            if sum(1 for name, _, _ in steps.calls if name == "mirror") >= 2:
                break
            await asyncio.sleep(0.01)
        stop_event.set()
        await asyncio.wait_for(task, timeout=5)

        assert sum(1 for name, _, _ in steps.calls if name == "mirror") >= 2

    @pytest.mark.asyncio
    async def test_stop_interrupts_pass_in_progress(
        self, monkeypatch: pytest.MonkeyPatch, settings: Settings, tmp_path: Path, telemetry: FakeTelemetry
    ) -> None:
        started = asyncio.Event()

        async def hanging_mirror(repo, *args, **kwargs) -> None:
            started.set()
            await asyncio.Event().wait()

        monkeypatch.setattr(sync_module, "mirror_repository", hanging_mirror)
        sources = SourcesConfig(repos=[GitHubConfig(url="https://github.com")])
        service = make_service(
            settings,
            sources,
            tmp_path,
            telemetry,
            {"https://github.com": FakeConnector([GitRepositoryFactory()])},
        )
        stop_event = asyncio.Event()

        task = asyncio.create_task(service.run(stop_event))
        await asyncio.wait_for(started.wait(), timeout=5)
        stop_event.set()

        await asyncio.wait_for(task, timeout=1)
        assert task.exception() is None
