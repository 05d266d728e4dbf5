from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Request

from release_registry.core.config import RegistryConfig
from release_registry.domain.models import ModuleVersion, VersionRecord
from release_registry.services.artifacts import ArtifactResolver
from release_registry.services.github import GitHubClient
from release_registry.services.keys import FileKeyLookup
from release_registry.services.refresh import RefreshJobs, RefreshQueue
from release_registry.services.resolver import RegistryResolver
from release_registry.services.versions import VersionAggregator
from release_registry.storage.json_cache_store import JsonCacheStore

PROVIDER_TABLE = "providers"
MODULE_TABLE = "modules"


@dataclass
class Services:
    """Everything the routes need, built once per application."""

    config: RegistryConfig
    http: httpx.AsyncClient
    github: GitHubClient
    resolver: RegistryResolver
    refresh_queue: RefreshQueue
    key_lookup: FileKeyLookup

    async def aclose(self) -> None:
        await self.refresh_queue.stop()
        await self.http.aclose()


def build_services(config: RegistryConfig, http: Optional[httpx.AsyncClient] = None) -> Services:
    """
    Wire up the registry services from a config.

    ``http`` is mainly for tests, which pass a client with a mock transport.
    """
    if http is None:
        http = httpx.AsyncClient(timeout=config.request_timeout_seconds, follow_redirects=True)

    github = GitHubClient(
        http,
        token=config.github_token,
        api_url=config.github_api_url,
        graphql_url=config.github_graphql_url,
        page_size=config.releases_page_size,
        timeout=config.request_timeout_seconds,
    )
    artifacts = ArtifactResolver(github)
    aggregator = VersionAggregator(github, artifacts)

    cache_root = config.data_dir / "cache"
    provider_cache = JsonCacheStore(cache_root, PROVIDER_TABLE, VersionRecord)
    module_cache = JsonCacheStore(cache_root, MODULE_TABLE, ModuleVersion)

    jobs = RefreshJobs(github, aggregator, provider_cache, module_cache, config.allowed_age)
    refresh_queue = RefreshQueue(jobs.run)

    resolver = RegistryResolver(
        config,
        github,
        aggregator,
        artifacts,
        provider_cache,
        module_cache,
        refresh_queue,
    )

    return Services(
        config=config,
        http=http,
        github=github,
        resolver=resolver,
        refresh_queue=refresh_queue,
        key_lookup=FileKeyLookup(config.effective_keys_dir),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_resolver(request: Request) -> RegistryResolver:
    return get_services(request).resolver


def get_key_lookup(request: Request) -> FileKeyLookup:
    return get_services(request).key_lookup
