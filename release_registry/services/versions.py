"""
Aggregate the releases of a repository into version listings.

Provider releases are resolved concurrently, one task per release. A release
that fails to resolve is logged and left out; it never fails the listing.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, TypeVar

from release_registry.domain.models import ModuleVersion, Release, VersionRecord
from release_registry.domain.registry_utils import module_download_url, normalize_version, version_key
from release_registry.services.artifacts import ArtifactResolver
from release_registry.services.github import GitHubClient

logger = logging.getLogger(__name__)

V = TypeVar("V", VersionRecord, ModuleVersion)


@dataclass(frozen=True)
class ReleaseResult:
    """Outcome of resolving one release: a record (possibly None) or an error."""

    release: Release
    record: Optional[VersionRecord] = None
    error: Optional[Exception] = None

    @classmethod
    def ok(cls, release: Release, record: Optional[VersionRecord]) -> "ReleaseResult":
        return cls(release=release, record=record)

    @classmethod
    def failed(cls, release: Release, error: Exception) -> "ReleaseResult":
        return cls(release=release, error=error)

    @property
    def is_error(self) -> bool:
        return self.error is not None


def partition_results(results: Iterable[ReleaseResult]) -> Tuple[List[VersionRecord], List[ReleaseResult]]:
    """
    Split task results into usable records and failures.

    Records without download details are dropped silently.
    """
    records: List[VersionRecord] = []
    failures: List[ReleaseResult] = []
    for result in results:
        if result.is_error:
            failures.append(result)
        elif result.record is not None and result.record.version and result.record.download_details:
            records.append(result.record)
    return records, failures


def deduplicate(versions: Iterable[V]) -> List[V]:
    """Keep the first occurrence of each version string."""
    seen = set()
    unique = []
    for v in versions:
        if v.version in seen:
            continue
        seen.add(v.version)
        unique.append(v)
    return unique


def sort_versions(versions: Iterable[V], reverse: bool = True) -> List[V]:
    return sorted(versions, key=lambda v: version_key(v.version), reverse=reverse)


class VersionAggregator:
    """Builds provider and module version listings from GitHub releases."""

    def __init__(self, github: GitHubClient, resolver: ArtifactResolver):
        self.github = github
        self.resolver = resolver

    async def _resolve(self, release: Release) -> ReleaseResult:
        try:
            record = await self.resolver.resolve_release(release)
        except Exception as e:
            return ReleaseResult.failed(release, e)
        return ReleaseResult.ok(release, record)

    async def get_versions(self, owner: str, repo: str) -> List[VersionRecord]:
        """
        List every provider version of ``owner/repo`` with at least one platform.

        Raises UpstreamError only when the release harvest itself fails.
        When two tags normalize to the same version the newer release wins.
        Ordering of the result is not guaranteed.
        """
        logger.info(f"Fetching versions for {owner}/{repo}")
        releases = await self.github.fetch_releases(owner, repo)

        tasks = [asyncio.create_task(self._resolve(r)) for r in releases]
        results = await asyncio.gather(*tasks)

        records, failures = partition_results(results)
        records = deduplicate(records)
        for failure in failures:
            logger.error(
                f"Failed to process release {failure.release.tag_name} of {owner}/{repo}: {failure.error}"
            )

        logger.info(f"Found {len(records)} versions for {owner}/{repo} ({len(failures)} releases failed)")
        return records

    async def get_module_versions(self, owner: str, repo: str) -> List[ModuleVersion]:
        releases = await self.github.fetch_releases(owner, repo)
        return deduplicate([
            ModuleVersion(
                version=normalize_version(r.tag_name),
                download_url=module_download_url(owner, repo, r.tag_name),
            )
            for r in releases
        ])
