"""
Resolve provider artifacts from a release's asset list.

Asset roles are recognised by filename suffix:
- ``_<os>_<arch>.zip``   platform binary
- ``_SHA256SUMS``        checksum manifest
- ``_SHA256SUMS.sig``    GPG signature of the checksum manifest
- ``_manifest.json``     protocol-version manifest
"""
from __future__ import annotations

import json
import logging
from typing import Dict, List, Optional, Sequence

from pydantic import ValidationError

from release_registry.domain.errors import (
    FetchError,
    FetchErrorCode,
    MalformedReleaseError,
    UpstreamError,
)
from release_registry.domain.models import (
    DEFAULT_PROTOCOLS,
    DownloadDetails,
    Platform,
    ProtocolManifest,
    Release,
    ReleaseAsset,
    VersionDetails,
    VersionRecord,
)
from release_registry.domain.registry_utils import (
    extract_platform,
    find_sha_sum,
    normalize_version,
    parse_sha_sums,
    platform_suffix,
)
from release_registry.services.github import GitHubClient

logger = logging.getLogger(__name__)

MANIFEST_SUFFIX = "_manifest.json"
SHASUMS_SUFFIX = "_SHA256SUMS"
SHASUMS_SIGNATURE_SUFFIX = "_SHA256SUMS.sig"


def find_asset_by_suffix(assets: Sequence[ReleaseAsset], suffix: str) -> Optional[ReleaseAsset]:
    for asset in assets:
        if asset.name.endswith(suffix):
            return asset
    return None


def supported_platforms(assets: Sequence[ReleaseAsset]) -> List[Platform]:
    platforms = []
    for asset in assets:
        platform = extract_platform(asset.name)
        if platform is None:
            continue
        platforms.append(platform)
    return platforms


def parse_manifest(content: bytes) -> ProtocolManifest:
    try:
        return ProtocolManifest.model_validate(json.loads(content))
    except (ValueError, ValidationError) as e:
        raise MalformedReleaseError(f"failed to parse manifest: {e}") from e


def manifest_protocols(manifest: Optional[ProtocolManifest]) -> List[str]:
    if manifest is None or not manifest.metadata.protocol_versions:
        return list(DEFAULT_PROTOCOLS)
    return list(manifest.metadata.protocol_versions)


class ArtifactResolver:
    """Turns release assets into version records and download details."""

    def __init__(self, github: GitHubClient):
        self.github = github

    async def find_and_parse_manifest(self, assets: Sequence[ReleaseAsset]) -> Optional[ProtocolManifest]:
        """Return the release manifest, or None when the release publishes none."""
        asset = find_asset_by_suffix(assets, MANIFEST_SUFFIX)
        if asset is None:
            return None
        content = await self.github.download_asset(asset.download_url)
        return parse_manifest(content)

    async def download_sha_sums(self, assets: Sequence[ReleaseAsset]) -> Dict[str, str]:
        asset = find_asset_by_suffix(assets, SHASUMS_SUFFIX)
        if asset is None:
            raise MalformedReleaseError("could not find shasums asset")
        content = await self.github.download_asset(asset.download_url)
        return parse_sha_sums(content.decode("utf-8", errors="replace"))

    async def resolve_release(self, release: Release) -> Optional[VersionRecord]:
        """
        Build the version record for one release.

        Returns None when the release has no platform binary with a known
        checksum. Raises MalformedReleaseError or UpstreamError when the
        manifest or checksum file cannot be resolved.
        """
        assets = release.assets
        platforms = supported_platforms(assets)
        if not platforms:
            logger.debug(f"Release {release.tag_name} has no platform binaries, skipping")
            return None

        manifest = await self.find_and_parse_manifest(assets)
        protocols = manifest_protocols(manifest)

        sha_sums = await self.download_sha_sums(assets)
        sha_sums_asset = find_asset_by_suffix(assets, SHASUMS_SUFFIX)
        signature_asset = find_asset_by_suffix(assets, SHASUMS_SIGNATURE_SUFFIX)
        shasums_url = sha_sums_asset.download_url if sha_sums_asset else ""
        signature_url = signature_asset.download_url if signature_asset else ""

        download_details: List[DownloadDetails] = []
        for platform in platforms:
            asset = find_asset_by_suffix(assets, platform_suffix(platform.os, platform.arch))
            if asset is None:
                logger.warning(f"Could not find asset for platform {platform.os}_{platform.arch} in {release.tag_name}")
                continue
            shasum = sha_sums.get(asset.name)
            if shasum is None:
                logger.warning(f"Could not find shasum for asset {asset.name} in {release.tag_name}")
                continue
            download_details.append(
                DownloadDetails(
                    platform=platform,
                    filename=asset.name,
                    download_url=asset.download_url,
                    shasums_url=shasums_url,
                    shasums_signature_url=signature_url,
                    shasum=shasum,
                )
            )

        if not download_details:
            return None

        return VersionRecord(
            version=normalize_version(release.tag_name),
            protocols=protocols,
            download_details=download_details,
        )

    async def get_version_details(
        self,
        owner: str,
        repo: str,
        version: str,
        os: str,
        arch: str,
    ) -> VersionDetails:
        """
        Resolve download details for one version and platform straight from GitHub.

        Raises FetchError with a code describing which part could not be found.
        """
        release = await self.github.find_release(owner, repo, version)
        if release is None:
            raise FetchError("failed to find release", FetchErrorCode.RELEASE_NOT_FOUND)

        assets = release.assets

        try:
            manifest = await self.find_and_parse_manifest(assets)
        except (MalformedReleaseError, UpstreamError) as e:
            raise FetchError("failed to find and parse manifest", FetchErrorCode.MANIFEST_NOT_FOUND, e) from e

        asset = find_asset_by_suffix(assets, platform_suffix(os, arch))
        if asset is None:
            raise FetchError("failed to find asset to download", FetchErrorCode.ASSET_NOT_FOUND)

        sha_sums_asset = find_asset_by_suffix(assets, SHASUMS_SUFFIX)
        signature_asset = find_asset_by_suffix(assets, SHASUMS_SIGNATURE_SUFFIX)
        if sha_sums_asset is None or signature_asset is None:
            logger.error(f"Could not find shasums or its signature asset in {owner}/{repo} {release.tag_name}")
            raise FetchError("failed to find shasums or its signature asset", FetchErrorCode.SHASUMS_NOT_FOUND)

        try:
            content = await self.github.download_asset(sha_sums_asset.download_url)
        except UpstreamError as e:
            logger.error(f"Could not get shasum for {asset.name}: {e}")
            raise FetchError("failed to get shasum", FetchErrorCode.SHASUMS_NOT_FOUND, e) from e

        return VersionDetails(
            protocols=manifest_protocols(manifest),
            os=os,
            arch=arch,
            filename=asset.name,
            download_url=asset.download_url,
            shasums_url=sha_sums_asset.download_url,
            shasums_signature_url=signature_asset.download_url,
            shasum=find_sha_sum(content.decode("utf-8", errors="replace"), asset.name),
        )
