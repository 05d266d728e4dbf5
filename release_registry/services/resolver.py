"""
Cache-aside reads of provider and module metadata.

Every read consults the cache first:
- fresh hit: served from the cache
- stale hit: served from the cache, and a background refresh is enqueued
- miss (or unreadable cache): the repository is probed; if it exists a
  refresh is enqueued and the answer is resolved from GitHub directly

A None result means the package, version or platform does not exist.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from release_registry.core.config import RegistryConfig
from release_registry.domain.errors import CacheStoreError, FetchError
from release_registry.domain.models import (
    CacheEntry,
    ModuleVersion,
    PackageIdentity,
    VersionDetails,
    VersionRecord,
)
from release_registry.domain.registry_utils import module_download_url, normalize_version
from release_registry.services.artifacts import ArtifactResolver
from release_registry.services.github import GitHubClient
from release_registry.services.refresh import RefreshTrigger
from release_registry.services.versions import VersionAggregator
from release_registry.storage.cache_store import CacheStore

logger = logging.getLogger(__name__)


class RegistryResolver:
    def __init__(
        self,
        config: RegistryConfig,
        github: GitHubClient,
        aggregator: VersionAggregator,
        artifacts: ArtifactResolver,
        provider_cache: CacheStore,
        module_cache: CacheStore,
        refresh: RefreshTrigger,
    ):
        self.config = config
        self.github = github
        self.aggregator = aggregator
        self.artifacts = artifacts
        self.provider_cache = provider_cache
        self.module_cache = module_cache
        self.refresh = refresh

    def effective_identity(self, identity: PackageIdentity) -> PackageIdentity:
        """Apply the configured provider namespace redirects."""
        if identity.kind != "provider":
            return identity
        namespace = self.config.effective_provider_namespace(identity.namespace)
        if namespace == identity.namespace:
            return identity
        logger.info(f"Redirecting provider namespace {identity.namespace} to {namespace}")
        return identity.with_namespace(namespace)

    async def _read_cache(self, cache: CacheStore, key: str) -> Optional[CacheEntry]:
        try:
            return await cache.get_item(key)
        except CacheStoreError as e:
            logger.error(f"Error reading cache for {key}, falling back to GitHub: {e}")
            return None

    def _trigger_refresh(self, identity: PackageIdentity) -> None:
        try:
            self.refresh.enqueue(identity)
        except Exception as e:
            logger.error(f"Failed to enqueue refresh for {identity.kind} {identity.cache_key}: {e}")

    async def _cached(self, cache: CacheStore, identity: PackageIdentity) -> Optional[CacheEntry]:
        entry = await self._read_cache(cache, identity.cache_key)
        if entry is None:
            logger.info(f"Cache miss for {identity.kind} {identity.cache_key}")
            return None
        if entry.is_stale(self.config.allowed_age):
            logger.info(f"Cache entry for {identity.cache_key} is stale, triggering refresh")
            self._trigger_refresh(identity)
        return entry

    async def _repository_available(self, identity: PackageIdentity) -> bool:
        """Probe the backing repository and enqueue a refresh when it exists."""
        exists = await self.github.repository_exists(identity.namespace, identity.repo_name)
        if not exists:
            logger.info(f"Repository {identity.namespace}/{identity.repo_name} not found")
            return False
        self._trigger_refresh(identity)
        return True

    # ========================================================================
    # Providers
    # ========================================================================

    async def resolve_provider_versions(self, identity: PackageIdentity) -> Optional[List[VersionRecord]]:
        identity = self.effective_identity(identity)

        entry = await self._cached(self.provider_cache, identity)
        if entry is not None:
            return list(entry.versions)

        if not await self._repository_available(identity):
            return None
        return await self.aggregator.get_versions(identity.namespace, identity.repo_name)

    async def resolve_provider_download(
        self,
        identity: PackageIdentity,
        version: str,
        os: str,
        arch: str,
    ) -> Optional[VersionDetails]:
        """
        Resolve download details of one provider version and platform.

        Signing keys are left empty for the caller to attach. Raises FetchError
        for failures other than a missing release or platform asset.
        """
        identity = self.effective_identity(identity)
        version = normalize_version(version)

        entry = await self._cached(self.provider_cache, identity)
        if entry is not None:
            details = entry.get_version_details(version, os, arch)
            if details is None:
                logger.info(f"Version {version} for {os}/{arch} not in cache for {identity.cache_key}")
            return details

        if not await self._repository_available(identity):
            return None

        try:
            return await self.artifacts.get_version_details(
                identity.namespace, identity.repo_name, version, os, arch
            )
        except FetchError as e:
            if e.is_not_found:
                logger.info(f"Version {version} for {os}/{arch} not found for {identity.cache_key}: {e}")
                return None
            raise

    # ========================================================================
    # Modules
    # ========================================================================

    async def resolve_module_versions(self, identity: PackageIdentity) -> Optional[List[ModuleVersion]]:
        entry = await self._cached(self.module_cache, identity)
        if entry is not None:
            return list(entry.versions)

        if not await self._repository_available(identity):
            return None
        return await self.aggregator.get_module_versions(identity.namespace, identity.repo_name)

    async def resolve_module_download(self, identity: PackageIdentity, version: str) -> Optional[str]:
        """
        Resolve the go-getter address of one module version.

        The ref is the ``v``-prefixed tag when such a release exists, and the
        bare version otherwise.
        """
        version = normalize_version(version)

        entry = await self._cached(self.module_cache, identity)
        if entry is not None:
            cached = entry.find_version(version)
            if cached is None:
                logger.info(f"Module version {version} not in cache for {identity.cache_key}")
                return None
            if isinstance(cached, ModuleVersion) and cached.download_url:
                return cached.download_url
        elif not await self._repository_available(identity):
            return None

        release = await self.github.find_release(identity.namespace, identity.repo_name, version)
        tag = release.tag_name if release is not None else version
        return module_download_url(identity.namespace, identity.repo_name, tag)
