"""Filesystem watching and sync supersession for local repositories."""

import asyncio
import contextlib
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from dataclasses import dataclass
from functools import partial
from pathlib import PurePath
from typing import Any

import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from repo_sync.core.exceptions import CancelledError
from repo_sync.core.models.repository import LocalRepository, RepositoryBase
from repo_sync.sync.cancellation import CancellationToken
from repo_sync.sync.indexer import ALWAYS_EXCLUDED_DIRS

logger = structlog.get_logger(__name__)

OnUpdate = Callable[[LocalRepository, CancellationToken], Awaitable[Any]]
WatchFactory = Callable[[str, asyncio.Event], AsyncIterator[Any]]

CHANGE_EVENT_TYPES = frozenset({"created", "deleted", "modified", "moved"})
OBSERVER_JOIN_TIMEOUT = 5.0


def _is_excluded(path: str, root: PurePath) -> bool:
    """Whether ``path`` lies in an always-excluded directory below ``root``."""
    candidate = PurePath(path)
    try:
        parts = candidate.relative_to(root).parts
    except ValueError:
        parts = candidate.parts
    return any(part in ALWAYS_EXCLUDED_DIRS for part in parts)


def is_relevant(event: FileSystemEvent, root: str) -> bool:
    """Whether ``event`` changes something the indexer would read under ``root``.

    Only the part of the path below ``root`` is checked against the
    excluded directories. A move counts when either end is relevant.
    """
    if event.event_type not in CHANGE_EVENT_TYPES:
        return False
    root_path = PurePath(root)
    paths = [str(event.src_path)]
    if event.event_type == "moved" and event.dest_path:
        paths.append(str(event.dest_path))
    return any(not _is_excluded(path, root_path) for path in paths)


class _ChannelHandler(FileSystemEventHandler):
    """Forwards observer-thread events into an asyncio queue."""

    def __init__(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue, root: str) -> None:
        super().__init__()
        self._loop = loop
        self._queue = queue
        self._root = root

    def on_any_event(self, event: FileSystemEvent) -> None:
        if is_relevant(event, self._root):
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)


async def watch_directory(
    path: str, stop_event: asyncio.Event
) -> AsyncIterator[list[FileSystemEvent]]:
    """Yield batches of changes under ``path`` until ``stop_event`` is set.

    Events that arrive while the consumer is busy are drained into the
    next batch, so a burst of writes produces one notification.
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()
    observer = Observer()
    observer.schedule(_ChannelHandler(loop, queue, path), path, recursive=True)
    observer.start()

    stopped = asyncio.ensure_future(stop_event.wait())
    received: asyncio.Future | None = None
    try:
        while True:
            received = asyncio.ensure_future(queue.get())
            await asyncio.wait({received, stopped}, return_when=asyncio.FIRST_COMPLETED)
            if stop_event.is_set() or not received.done():
                return
            batch = [received.result()]
            while not queue.empty():
                batch.append(queue.get_nowait())
            yield batch
    finally:
        stopped.cancel()
        if received is not None and not received.done():
            received.cancel()
        observer.stop()
        await asyncio.to_thread(observer.join, OBSERVER_JOIN_TIMEOUT)


@dataclass
class _Subscription:
    repo: LocalRepository
    stop_event: asyncio.Event
    task: asyncio.Task | None = None


class WatcherRegistry:
    """Per-path change subscriptions and the token of each path's in-flight sync.

    Each watched path has one consumer task reading its change channel. On
    every change the consumer calls ``supersede``: the previous token for
    that path is cancelled and dropped before a new token is installed and
    a new sync is started, so at most one live token exists per path. The
    superseded sync is not awaited; it is expected to observe its token and
    stop on its own.
    """

    def __init__(self, on_update: OnUpdate, watch: WatchFactory = watch_directory) -> None:
        self._on_update = on_update
        self._watch = watch
        self._subscriptions: dict[str, _Subscription] = {}
        self._tokens: dict[str, CancellationToken] = {}
        self._sync_tasks: set[asyncio.Task] = set()

    def is_watching(self, path: str) -> bool:
        return path in self._subscriptions

    def token_for(self, path: str) -> CancellationToken | None:
        """The authoritative token for ``path``, if a sync is in flight."""
        return self._tokens.get(path)

    @property
    def watched_paths(self) -> list[str]:
        return list(self._subscriptions)

    def register(self, repo: LocalRepository) -> bool:
        """Subscribe to changes under ``repo.path``.

        Stale and unwatched repositories are ignored. Returns whether a new
        subscription was created.
        """
        if repo.is_stale or not repo.watch:
            logger.debug("Not watching repository", path=repo.path, stale=repo.is_stale)
            return False

        existing = self._subscriptions.get(repo.path)
        if existing is not None:
            existing.repo = repo
            return False

        subscription = _Subscription(repo=repo, stop_event=asyncio.Event())
        self._subscriptions[repo.path] = subscription
        subscription.task = asyncio.create_task(self._consume(subscription))
        subscription.task.add_done_callback(partial(self._log_watch_result, repo.path))
        logger.info("Watching local repository for changes", path=repo.path)
        return True

    def register_all(self, repos: Iterable[RepositoryBase]) -> None:
        for repo in repos:
            if isinstance(repo, LocalRepository):
                self.register(repo)

    def supersede(self, repo: LocalRepository) -> CancellationToken:
        """Cancel the in-flight sync for ``repo.path`` and start a new one."""
        previous = self._tokens.pop(repo.path, None)
        if previous is not None:
            logger.debug("Superseding in-flight sync", path=repo.path)
            previous.cancel()

        token = CancellationToken()
        self._tokens[repo.path] = token
        task = asyncio.create_task(self._run_sync(repo, token))
        self._sync_tasks.add(task)
        task.add_done_callback(partial(self._log_sync_result, repo.path))
        return token

    async def teardown(self, path: str) -> None:
        """Cancel any live token for ``path`` and close its subscription."""
        token = self._tokens.pop(path, None)
        if token is not None:
            token.cancel()

        subscription = self._subscriptions.pop(path, None)
        if subscription is None:
            return
        subscription.stop_event.set()
        if subscription.task is not None:
            subscription.task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await subscription.task
        logger.info("Stopped watching local repository", path=path)

    async def reconcile(self, repos: Iterable[RepositoryBase]) -> None:
        """Match subscriptions to a freshly loaded repository list."""
        desired = {
            repo.path: repo
            for repo in repos
            if isinstance(repo, LocalRepository) and repo.watch and not repo.is_stale
        }
        for path in [path for path in self._subscriptions if path not in desired]:
            await self.teardown(path)
        for repo in desired.values():
            self.register(repo)

    async def close(self) -> None:
        """Tear down every path and wait for superseded syncs to wind down."""
        for path in list(self._subscriptions):
            await self.teardown(path)
        for token in self._tokens.values():
            token.cancel()
        self._tokens.clear()
        if self._sync_tasks:
            await asyncio.gather(*self._sync_tasks, return_exceptions=True)

    async def _consume(self, subscription: _Subscription) -> None:
        path = subscription.repo.path
        async with contextlib.aclosing(self._watch(path, subscription.stop_event)) as changes:
            async for _changes in changes:
                logger.debug("Change detected", path=path)
                self.supersede(subscription.repo)

    async def _run_sync(self, repo: LocalRepository, token: CancellationToken) -> None:
        try:
            await self._on_update(repo, token)
        finally:
            if self._tokens.get(repo.path) is token:
                del self._tokens[repo.path]

    def _log_sync_result(self, path: str, task: asyncio.Task) -> None:
        self._sync_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if isinstance(exc, CancelledError):
            logger.info("Superseded sync stopped", path=path)
        elif exc is not None:
            logger.error("Sync after change failed", path=path, error=str(exc), exc_info=exc)

    def _log_watch_result(self, path: str, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Watcher stopped unexpectedly", path=path, error=str(exc), exc_info=exc)
