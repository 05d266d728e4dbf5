"""
Background refresh of cached version listings.

Reads that find a stale or missing cache entry enqueue a refresh job instead
of blocking on GitHub. A single detached worker drains the queue and
repopulates the cache. Delivery is at-most-once: a failed job is logged and
dropped, and the next stale read enqueues it again.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Awaitable, Callable, Optional, Protocol, Set, Tuple

from release_registry.domain.errors import (
    CacheStoreError,
    InvalidRefreshJobError,
    RegistryError,
    RepositoryNotFoundError,
)
from release_registry.domain.models import ALLOWED_AGE, PackageIdentity
from release_registry.services.github import GitHubClient
from release_registry.services.versions import VersionAggregator
from release_registry.storage.cache_store import CacheStore

logger = logging.getLogger(__name__)

RefreshHandler = Callable[[PackageIdentity], Awaitable[None]]


class RefreshTrigger(Protocol):
    def enqueue(self, identity: PackageIdentity) -> None:
        ...


def _job_key(identity: PackageIdentity) -> Tuple[str, str]:
    return identity.kind, identity.cache_key


class RefreshQueue:
    """
    In-process job queue drained by one worker task.

    A job already waiting in the queue is not enqueued twice. Jobs run
    independently of the request that enqueued them.
    """

    def __init__(self, handler: RefreshHandler, maxsize: int = 0):
        self._handler = handler
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._pending: Set[Tuple[str, str]] = set()
        self._worker: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def start(self) -> None:
        if self.is_running:
            return
        logger.info("Starting refresh worker")
        self._worker = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._worker is None:
            return
        logger.info("Stopping refresh worker")
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

    def enqueue(self, identity: PackageIdentity) -> None:
        """
        Schedule a refresh of ``identity``.

        Returns immediately. Raises asyncio.QueueFull when the queue is bounded
        and full.
        """
        key = _job_key(identity)
        if key in self._pending:
            logger.debug(f"Refresh of {identity.kind} {identity.cache_key} already pending")
            return
        self._queue.put_nowait(identity)
        self._pending.add(key)
        logger.info(f"Enqueued refresh of {identity.kind} {identity.cache_key}")

    async def join(self) -> None:
        """Wait until every enqueued job has been processed."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            identity: PackageIdentity = await self._queue.get()
            self._pending.discard(_job_key(identity))
            try:
                await self._handler(identity)
            except Exception as e:
                logger.error(f"Refresh of {identity.kind} {identity.cache_key} failed: {e}")
            finally:
                self._queue.task_done()


class RefreshJobs:
    """Repopulates the provider and module caches from GitHub."""

    def __init__(
        self,
        github: GitHubClient,
        aggregator: VersionAggregator,
        provider_cache: CacheStore,
        module_cache: CacheStore,
        allowed_age: timedelta = ALLOWED_AGE,
    ):
        self.github = github
        self.aggregator = aggregator
        self.provider_cache = provider_cache
        self.module_cache = module_cache
        self.allowed_age = allowed_age

    async def run(self, identity: PackageIdentity) -> None:
        if identity.kind == "provider":
            await self.populate_provider_versions(identity)
        else:
            await self.populate_module_versions(identity)

    async def _require_repository(self, identity: PackageIdentity) -> None:
        exists = await self.github.repository_exists(identity.namespace, identity.repo_name)
        if not exists:
            raise RepositoryNotFoundError(f"repository {identity.namespace}/{identity.repo_name} does not exist")

    async def populate_provider_versions(self, identity: PackageIdentity) -> None:
        if identity.kind != "provider" or not identity.namespace or not identity.name:
            raise InvalidRefreshJobError(f"invalid provider refresh job: {identity!r}")

        logger.info(f"Populating provider versions for {identity.cache_key}")
        await self._require_repository(identity)

        versions = await self.aggregator.get_versions(identity.namespace, identity.repo_name)
        await self.provider_cache.store(identity.cache_key, versions)
        logger.info(f"Populated {len(versions)} provider versions for {identity.cache_key}")

    async def populate_module_versions(self, identity: PackageIdentity) -> None:
        if identity.kind != "module" or not identity.namespace or not identity.name or not identity.system:
            raise InvalidRefreshJobError(f"invalid module refresh job: {identity!r}")

        try:
            entry = await self.module_cache.get_item(identity.cache_key)
        except CacheStoreError as e:
            logger.warning(f"Could not read module cache for {identity.cache_key}, repopulating: {e}")
            entry = None
        if entry is not None and not entry.is_stale(self.allowed_age):
            logger.info(f"Module versions for {identity.cache_key} are up to date")
            return

        logger.info(f"Populating module versions for {identity.cache_key}")
        await self._require_repository(identity)

        versions = await self.aggregator.get_module_versions(identity.namespace, identity.repo_name)
        if not versions:
            raise RegistryError(f"no versions found for {identity.cache_key}")

        await self.module_cache.store(identity.cache_key, versions)
        logger.info(f"Populated {len(versions)} module versions for {identity.cache_key}")
